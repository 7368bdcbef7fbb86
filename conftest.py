# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from migrator_app.models import db  # noqa: E402
from migrator_app.utils.logging_config import setup_logging  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    flask_app.config.update(
        {
            "TESTING": True,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            "LOG_LEVEL": "DEBUG",
            "METRICS_TEXTFILE_PATH": None,
            "JIRA_BASE_URL": None,
            "JIRA_USERNAME": None,
            "JIRA_API_TOKEN": None,
            "REDMINE_BASE_URL": None,
            "REDMINE_API_KEY": None,
            "REDMINE_EXTENDED_API_ENABLED": False,
            "REDMINE_EXTENDED_API_PREFIX": "/extended_api",
            "MIGRATION_TRACKERS_DEFAULT_STATUS_ID": None,
            "MIGRATION_ROLES_DEFAULT_ROLE_ID": None,
        }
    )

    # Re-initialize logging with updated config to pick up LOG_LEVEL=DEBUG
    setup_logging(flask_app)

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner"""
    return app.test_cli_runner()


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
