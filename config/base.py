# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default=None, *, minimum=None):
    """
    Parse an optional positive integer setting.

    Blank or malformed values fall back to ``default``.
    """
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _coerce_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "migrator-cli")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Jira Cloud source
    JIRA_BASE_URL = os.environ.get("JIRA_BASE_URL")
    JIRA_USERNAME = os.environ.get("JIRA_USERNAME")
    JIRA_API_TOKEN = os.environ.get("JIRA_API_TOKEN")

    # Redmine target
    REDMINE_BASE_URL = os.environ.get("REDMINE_BASE_URL")
    REDMINE_API_KEY = os.environ.get("REDMINE_API_KEY")
    REDMINE_EXTENDED_API_ENABLED = _coerce_bool(os.environ.get("REDMINE_EXTENDED_API_ENABLED"), default=False)
    REDMINE_EXTENDED_API_PREFIX = os.environ.get("REDMINE_EXTENDED_API_PREFIX", "/extended_api")

    # Migration behaviour
    MIGRATION_HTTP_TIMEOUT = _coerce_float(os.environ.get("MIGRATION_HTTP_TIMEOUT"), 30.0)
    MIGRATION_PAGE_SIZE = _coerce_int(os.environ.get("MIGRATION_PAGE_SIZE"), 50, minimum=1)
    MIGRATION_TRACKERS_DEFAULT_STATUS_ID = _coerce_int(
        os.environ.get("MIGRATION_TRACKERS_DEFAULT_STATUS_ID"), None, minimum=1
    )
    MIGRATION_ROLES_DEFAULT_ROLE_ID = _coerce_int(os.environ.get("MIGRATION_ROLES_DEFAULT_ROLE_ID"), None, minimum=1)
    MIGRATION_PROJECTS_DEFAULT_IS_PUBLIC = _coerce_bool(
        os.environ.get("MIGRATION_PROJECTS_DEFAULT_IS_PUBLIC"), default=False
    )
    MIGRATION_CHECKLIST_FIELD = os.environ.get("MIGRATION_CHECKLIST_FIELD", "customfield_10083")
    MIGRATION_CHECKLIST_JQL = os.environ.get("MIGRATION_CHECKLIST_JQL", "ORDER BY key ASC")


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (3 slashes for absolute path)
    db_path = os.path.join(instance_path, "migration.db").replace("\\", "/")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", f"sqlite:///{db_path}")
    SQLALCHEMY_ECHO = False
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 5}}


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False}}
    JIRA_BASE_URL = None
    JIRA_USERNAME = None
    JIRA_API_TOKEN = None
    REDMINE_BASE_URL = None
    REDMINE_API_KEY = None
    REDMINE_EXTENDED_API_ENABLED = False
    MIGRATION_TRACKERS_DEFAULT_STATUS_ID = None
    MIGRATION_ROLES_DEFAULT_ROLE_ID = None


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
