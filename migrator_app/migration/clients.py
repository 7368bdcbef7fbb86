"""
HTTP clients for the Jira Cloud and Redmine REST APIs.

Both clients wrap a ``requests.Session`` with a fixed timeout and convert
transport failures and non-2xx responses into :class:`TransportError`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Mapping

import requests

from migrator_app.errors import ConfigurationError, ExtendedApiUnavailable, TransportError

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PAGE_SIZE = 50
EXTENDED_API_HEADER = "X-Redmine-Extended-API"
MAX_ERROR_SUMMARY_LENGTH = 500

logger = logging.getLogger(__name__)


def _error_details(body: str | None) -> str | None:
    text = (body or "").strip()
    if not text:
        return None
    try:
        decoded = json.loads(text)
    except ValueError:
        return text
    if isinstance(decoded, Mapping):
        errors = decoded.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(item) for item in errors)
        if isinstance(errors, Mapping) and errors:
            return "; ".join(f"{key}: {value}" for key, value in errors.items())
        messages = decoded.get("errorMessages")
        if isinstance(messages, list) and messages:
            return "; ".join(str(item) for item in messages)
        error = decoded.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()
    return text


def summarize_error(exc: BaseException, *, limit: int = MAX_ERROR_SUMMARY_LENGTH) -> str:
    """
    Build a bounded, human-readable summary of a failed API call.

    HTTP failures render as ``HTTP <status> <reason>: <details>`` where the
    details come from the Redmine/Jira error body; anything else falls back to
    the exception message.
    """

    if isinstance(exc, TransportError) and exc.status_code is not None:
        message = f"HTTP {exc.status_code} {exc.reason or ''}".rstrip()
        details = _error_details(exc.body)
        if details:
            message = f"{message}: {details}"
    else:
        message = str(exc) or type(exc).__name__
    message = " ".join(message.split())
    if len(message) > limit:
        message = message[: limit - 3].rstrip() + "..."
    return message


class ApiClient:
    """Minimal JSON client bound to one base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError(f"{type(self).__name__} requires a base URL.")
        self.base_url = base_url.rstrip("/") + "/"
        self.session = session or requests.Session()
        self.timeout = timeout
        self.session.headers.update({"Accept": "application/json", **dict(headers or {})})

    def url_for(self, path: str) -> str:
        return self.base_url + path.lstrip("/")

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        expected: tuple[int, ...] | None = None,
    ) -> requests.Response:
        url = self.url_for(path)
        try:
            response = self.session.request(
                method,
                url,
                params=dict(params) if params else None,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}", method=method, url=url) from exc

        ok = response.status_code in expected if expected else response.ok
        if not ok:
            raise TransportError(
                f"{method} {url} returned HTTP {response.status_code}",
                method=method,
                url=url,
                status_code=response.status_code,
                reason=getattr(response, "reason", None),
                body=response.text,
            )
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def get_json(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return _decode(self.request("GET", path, params=params))

    def post_json(self, path: str, payload: Any, *, expected: tuple[int, ...] | None = None) -> Any:
        return _decode(self.request("POST", path, json_body=payload, expected=expected))

    def delete(self, path: str) -> None:
        self.request("DELETE", path)


def _decode(response: requests.Response) -> Any:
    if response.status_code == 204 or not (response.text or "").strip():
        return {}
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(
            f"Expected a JSON response (HTTP {response.status_code}).",
            status_code=response.status_code,
            body=response.text,
        ) from exc


class JiraClient(ApiClient):
    """Jira Cloud REST API v3 client using basic auth with an API token."""

    def __init__(self, base_url: str, username: str, api_token: str, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)
        self.session.auth = (username, api_token)

    def iter_paged(
        self,
        path: str,
        *,
        items_key: str = "values",
        params: Mapping[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> Iterator[Mapping[str, Any]]:
        """Yield items from a ``startAt``/``maxResults`` paged listing."""

        start_at = 0
        while True:
            query = {**dict(params or {}), "startAt": start_at, "maxResults": page_size}
            payload = self.get_json(path, params=query)
            items = payload.get(items_key) or []
            yield from items
            start_at += len(items)
            if not items or payload.get("isLast") is True:
                break
            total = payload.get("total")
            if total is not None and start_at >= int(total):
                break
            if payload.get("isLast") is None and total is None and len(items) < page_size:
                break

    def list_projects(self) -> list[Mapping[str, Any]]:
        return list(self.iter_paged("rest/api/3/project/search", params={"expand": "description"}))

    def list_groups(self) -> list[Mapping[str, Any]]:
        return list(self.iter_paged("rest/api/3/group/bulk"))

    def list_issue_types(self) -> list[Mapping[str, Any]]:
        return list(self.get_json("rest/api/3/issuetype") or [])

    def list_project_roles(self) -> list[Mapping[str, Any]]:
        return list(self.get_json("rest/api/3/role") or [])

    def get_project_role(self, project_id: str, role_id: str) -> Mapping[str, Any]:
        return self.get_json(f"rest/api/3/project/{project_id}/role/{role_id}")

    def search_issues(
        self, jql: str, fields: list[str], *, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Iterator[Mapping[str, Any]]:
        """Yield issues from the token-paged ``search/jql`` endpoint."""

        params: dict[str, Any] = {"jql": jql, "fields": ",".join(fields), "maxResults": page_size}
        while True:
            payload = self.get_json("rest/api/3/search/jql", params=params)
            issues = payload.get("issues") or []
            yield from issues
            token = payload.get("nextPageToken")
            if not issues or not token or payload.get("isLast") is True:
                break
            params = {**params, "nextPageToken": token}


class RedmineClient(ApiClient):
    """Redmine REST API client authenticated with an API key header."""

    def __init__(self, base_url: str, api_key: str, **kwargs: Any) -> None:
        super().__init__(base_url, headers={"X-Redmine-API-Key": api_key}, **kwargs)

    def iter_paged(
        self,
        path: str,
        items_key: str,
        *,
        params: Mapping[str, Any] | None = None,
        page_size: int = 100,
    ) -> Iterator[Mapping[str, Any]]:
        """Yield items from an ``offset``/``limit`` listing reporting ``total_count``."""

        offset = 0
        while True:
            query = {**dict(params or {}), "offset": offset, "limit": page_size}
            payload = self.get_json(path, params=query)
            items = payload.get(items_key) or []
            yield from items
            offset += len(items)
            total = payload.get("total_count")
            if not items or total is None or offset >= int(total):
                break

    def list_projects(self):
        return list(self.iter_paged("projects.json", "projects"))

    def list_groups(self):
        return list(self.iter_paged("groups.json", "groups"))

    def list_trackers(self):
        return list(self.iter_paged("trackers.json", "trackers"))

    def list_issue_statuses(self):
        return list(self.iter_paged("issue_statuses.json", "issue_statuses"))

    def list_roles(self):
        return list(self.iter_paged("roles.json", "roles"))

    def list_memberships(self, project_id: int):
        return list(self.iter_paged(f"projects/{project_id}/memberships.json", "memberships"))

    @staticmethod
    def extended_api_path(prefix: str, resource: str) -> str:
        normalized_prefix = (prefix or "").strip("/")
        normalized_resource = resource.lstrip("/")
        if not normalized_prefix:
            return normalized_resource
        return f"{normalized_prefix}/{normalized_resource}"

    def verify_extended_api(self, prefix: str, resource: str) -> None:
        """
        Confirm the extended API plugin answers for ``resource``.

        Raises ExtendedApiUnavailable when the probe fails or the plugin's
        marker header is missing from the response.
        """

        path = self.extended_api_path(prefix, resource)
        try:
            response = self.request("GET", path)
        except TransportError as exc:
            if exc.status_code is not None:
                raise ExtendedApiUnavailable(
                    f"Extended API availability check failed ({path}): HTTP {exc.status_code} {exc.reason or ''}".rstrip()
                ) from exc
            raise ExtendedApiUnavailable(f"Failed to reach the extended API: {exc}") from exc
        if not str(response.headers.get(EXTENDED_API_HEADER, "")).strip():
            raise ExtendedApiUnavailable(
                f"Extended API response missing {EXTENDED_API_HEADER} header. Verify the plugin installation."
            )


class ClientFactory:
    """Build API clients lazily from application config."""

    def __init__(self, config: Mapping[str, Any], *, session_factory=requests.Session) -> None:
        self.config = config
        self.session_factory = session_factory
        self._jira: JiraClient | None = None
        self._redmine: RedmineClient | None = None

    @property
    def timeout(self) -> float:
        return float(self.config.get("MIGRATION_HTTP_TIMEOUT") or DEFAULT_TIMEOUT_SECONDS)

    def jira(self) -> JiraClient:
        if self._jira is None:
            self._jira = JiraClient(
                self.config.get("JIRA_BASE_URL") or "",
                self.config.get("JIRA_USERNAME") or "",
                self.config.get("JIRA_API_TOKEN") or "",
                session=self.session_factory(),
                timeout=self.timeout,
            )
        return self._jira

    def redmine(self) -> RedmineClient:
        if self._redmine is None:
            self._redmine = RedmineClient(
                self.config.get("REDMINE_BASE_URL") or "",
                self.config.get("REDMINE_API_KEY") or "",
                session=self.session_factory(),
                timeout=self.timeout,
            )
        return self._redmine
