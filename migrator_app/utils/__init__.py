"""Utility helpers shared by the migration application."""
