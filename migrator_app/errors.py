"""Exception hierarchy for the migration engine."""

from __future__ import annotations


class MigrationError(RuntimeError):
    """Base class for failures that abort a migration command."""


class ConfigurationError(MigrationError):
    """Raised when required settings are missing or invalid."""


class PhaseSelectionError(ConfigurationError):
    """Raised when --phases/--skip produce an invalid phase selection."""


class DataIntegrityError(MigrationError):
    """Raised when a source record lacks a field the snapshot requires."""


class TransportError(MigrationError):
    """
    Raised when an HTTP call to Jira or Redmine fails.

    Carries the response details (when a response was received) so callers can
    record a readable summary without re-parsing the exception message.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        reason: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.body = body


class ExtendedApiUnavailable(MigrationError):
    """Raised when the Redmine extended API plugin cannot be confirmed."""
