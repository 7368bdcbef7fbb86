# config/validation.py

"""
Configuration validation for the migrator.

``require_settings`` guards individual phases (a Jira extraction needs Jira
credentials, a push needs Redmine credentials); ``validate_and_exit`` checks
the environment once at production start-up.
"""

import os
import sys
from typing import List, Mapping, Tuple

from migrator_app.errors import ConfigurationError

REQUIRED_SETTINGS = {
    "jira": ("JIRA_BASE_URL", "JIRA_USERNAME", "JIRA_API_TOKEN"),
    "redmine": ("REDMINE_BASE_URL", "REDMINE_API_KEY"),
}


def missing_settings(config: Mapping, section: str) -> List[str]:
    """Return the keys of ``section`` that are unset or blank in ``config``."""
    try:
        keys = REQUIRED_SETTINGS[section]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown configuration section '{section}'.") from exc
    return [key for key in keys if not str(config.get(key) or "").strip()]


def require_settings(config: Mapping, section: str) -> None:
    """Raise ConfigurationError listing every missing key of ``section``."""
    missing = missing_settings(config, section)
    if missing:
        raise ConfigurationError(
            f"Missing required {section} configuration: {', '.join(missing)}. "
            "Set them in the environment or in .env."
        )


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Check production settings before the app starts.

    Non-production environments always pass. Returns ``(is_valid, errors)``
    with one message per missing or inconsistent variable.
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    if flask_env != "production":
        return True, []

    errors = []
    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to the mapping database connection string.")

    for section in REQUIRED_SETTINGS:
        for key in missing_settings(os.environ, section):
            errors.append(f"{key} is required in production ({section} connection).")

    extended = os.environ.get("REDMINE_EXTENDED_API_ENABLED", "false").strip().lower()
    if extended in {"1", "true", "yes", "on"} and not os.environ.get("REDMINE_EXTENDED_API_PREFIX", "/extended_api"):
        errors.append("REDMINE_EXTENDED_API_PREFIX must not be empty when REDMINE_EXTENDED_API_ENABLED=true")

    return len(errors) == 0, errors


def validate_and_exit(flask_env: str = None) -> None:
    """Print every start-up problem to stderr and exit 1 if there are any."""
    is_valid, errors = validate_environment(flask_env)
    if is_valid:
        return

    lines = ["Refusing to start the migrator; fix these settings first:"]
    lines.extend(f"  - {error}" for error in errors)
    lines.append("Values are read from the process environment and from .env.")
    print("\n".join(lines), file=sys.stderr)
    sys.exit(1)
