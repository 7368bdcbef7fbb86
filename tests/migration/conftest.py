from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
import requests

from migrator_app.migration.clients import ClientFactory
from migrator_app.models import db

JIRA_URL = "https://jira.example.com"
REDMINE_URL = "https://redmine.example.com"


class FakeResponse:
    def __init__(self, *, status_code=200, json_data=None, text=None, headers=None, reason="OK"):
        self.status_code = status_code
        self._json_data = json_data
        if text is None:
            text = "" if json_data is None else json.dumps(json_data)
        self.text = text
        self.headers = headers or {}
        self.reason = reason
        self.ok = status_code < 400

    def json(self):
        if self._json_data is None:
            raise ValueError("No JSON body")
        return self._json_data


class FakeSession:
    """
    Stand-in for ``requests.Session`` answering from canned routes.

    Routes are keyed by (method, absolute URL). Queued responses are consumed
    in order and the last one repeats.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[FakeResponse]] = {}
        self.headers: dict[str, str] = {}
        self.auth = None
        self.calls: list[SimpleNamespace] = []

    def add(self, method, url, *responses):
        self.routes.setdefault((method.upper(), url), []).extend(responses)
        return self

    def request(self, method, url, params=None, json=None, timeout=None):
        self.calls.append(SimpleNamespace(method=method, url=url, params=params, json=json, timeout=timeout))
        queue = self.routes.get((method.upper(), url))
        if not queue:
            raise requests.ConnectionError(f"No fake route for {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def calls_for(self, method, url):
        return [call for call in self.calls if call.method == method and call.url == url]


@pytest.fixture
def respond():
    return FakeResponse


@pytest.fixture
def http_session():
    return FakeSession()


@pytest.fixture
def migration_config(app, monkeypatch):
    """Populate Jira and Redmine credentials on the app config."""
    for key, value in {
        "JIRA_BASE_URL": JIRA_URL,
        "JIRA_USERNAME": "migrator@example.com",
        "JIRA_API_TOKEN": "jira-token",
        "REDMINE_BASE_URL": REDMINE_URL,
        "REDMINE_API_KEY": "redmine-key",
    }.items():
        monkeypatch.setitem(app.config, key, value)
    return app.config


@pytest.fixture
def client_factory(migration_config, http_session):
    return ClientFactory(migration_config, session_factory=lambda: http_session)


@pytest.fixture
def fake_http(monkeypatch, migration_config, http_session):
    """Route every client the CLI builds through ``http_session``."""
    monkeypatch.setattr(
        "migrator_app.migration.cli.ClientFactory",
        lambda config: ClientFactory(config, session_factory=lambda: http_session),
    )
    return http_session


@pytest.fixture
def persist():
    def _persist(*rows):
        db.session.add_all(rows)
        db.session.commit()
        return rows if len(rows) != 1 else rows[0]

    return _persist
