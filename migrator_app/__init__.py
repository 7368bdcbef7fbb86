"""Jira to Redmine migration application package."""

__version__ = "1.0.0"
