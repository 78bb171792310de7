"""Jira Cloud REST API v3 client for issue and user retrieval."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from .config import JiraConfig
from .errors import DataValidationError, TransientFetchError
from .models import IssueRecord
from .retry import extract_backoff_seconds
from .timeutils import parse_timestamp

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "summary",
    "description",
    "status",
    "issuetype",
    "priority",
    "assignee",
    "reporter",
    "created",
    "updated",
    "resolutiondate",
    "project",
    "labels",
)

# Story points live in a site-specific custom field; these are the common ones.
STORY_POINT_FIELDS = (
    "customfield_10016",
    "customfield_10002",
    "customfield_10004",
    "customfield_10014",
    "customfield_10020",
    "customfield_10026",
    "storyPoints",
)


@dataclass(slots=True)
class JiraSearchPage:
    """One page of a JQL search."""

    issues: List[IssueRecord]
    total: int
    max_results: int
    start_at: int


@dataclass(slots=True)
class JiraUser:
    account_id: str
    display_name: str
    email_address: str


@dataclass(slots=True)
class JiraProject:
    id: str
    key: str
    name: str


class JiraClient:
    """Small, typed client for the Jira REST search and user APIs."""

    _MAX_RETRIES = 3
    _MAX_BACKOFF_SECONDS = 30

    def __init__(self, config: JiraConfig, timeout_seconds: int = 30) -> None:
        """Initialize a Basic-auth Jira client.

        Args:
            config: Validated Jira configuration (base URL, email, API token).
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._base_url = f"{config.base_url.rstrip('/')}/rest/api/3"

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(config.email, config.api_token)
        self._session.headers.update({"Accept": "application/json"})

    def _build_url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Execute a GET request, retrying 429/5xx responses.

        Raises:
            TransientFetchError: If the request repeatedly fails, returns
                HTTP >= 400, or does not return valid JSON.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.get(url, params=params, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise TransientFetchError(f"Jira request failed after retries: GET {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            if (status_code == 429 or 500 <= status_code <= 599) and attempt < self._MAX_RETRIES:
                time.sleep(extract_backoff_seconds(response, attempt, self._MAX_BACKOFF_SECONDS))
                continue

            if status_code >= 400:
                raise TransientFetchError(
                    f"Jira API request failed: GET {url} returned {status_code} - {response.text}",
                    status_code=status_code,
                )

            try:
                return response.json()
            except ValueError as exc:
                raise TransientFetchError(f"Jira API returned invalid JSON: GET {url}") from exc

        raise TransientFetchError(f"Jira request failed after retries: GET {url}") from last_error

    def search_issues(self, jql: str, max_results: int = 50) -> JiraSearchPage:
        """Run a JQL search and return the first page of issues.

        The response total may exceed the number of issues returned; later
        pages are not requested. Issues missing an id, key or valid timestamp
        are skipped.
        """
        payload = self._get_json(
            "search",
            params={
                "jql": jql,
                "maxResults": max_results,
                "fields": ",".join(SEARCH_FIELDS + STORY_POINT_FIELDS),
            },
        )
        if not isinstance(payload, dict):
            raise TransientFetchError("Jira search returned an unexpected payload shape.")

        issues: List[IssueRecord] = []
        for item in payload.get("issues") or []:
            try:
                issues.append(issue_from_rest(item))
            except DataValidationError as exc:
                logger.debug("Skipping malformed Jira issue", extra={"error": str(exc)})

        return JiraSearchPage(
            issues=issues,
            total=int(payload.get("total", len(issues))),
            max_results=int(payload.get("maxResults", max_results)),
            start_at=int(payload.get("startAt", 0)),
        )

    def get_user(self, account_id: str) -> Optional[JiraUser]:
        """Look up a user by account ID; any failure yields ``None``."""
        try:
            payload = self._get_json("user", params={"accountId": account_id})
        except TransientFetchError as exc:
            logger.debug("Jira user lookup failed", extra={"account_id": account_id, "error": str(exc)})
            return None
        return user_from_rest(payload)

    def search_users(self, query: str) -> List[JiraUser]:
        """Search users by name or email; any failure yields an empty list."""
        try:
            payload = self._get_json("user/search", params={"query": query})
        except TransientFetchError as exc:
            logger.debug("Jira user search failed", extra={"query": query, "error": str(exc)})
            return []
        return [user_from_rest(item) for item in payload or []]

    def list_projects(self) -> List[JiraProject]:
        """List projects visible to the configured account."""
        payload = self._get_json("project")
        projects: List[JiraProject] = []
        for item in payload or []:
            if item.get("id") and item.get("key"):
                projects.append(
                    JiraProject(id=str(item["id"]), key=str(item["key"]), name=str(item.get("name") or ""))
                )
        return projects

    def test_connection(self) -> bool:
        """Check that the configured credentials authenticate."""
        try:
            self._get_json("myself")
        except TransientFetchError as exc:
            logger.warning("Jira connection test failed", extra={"error": str(exc)})
            return False
        return True


def extract_story_points(fields: Dict[str, Any]) -> Optional[float]:
    """Return the first positive story point value among the known fields."""
    for field_name in STORY_POINT_FIELDS:
        value = fields.get(field_name)
        if value is None:
            continue
        try:
            points = float(value)
        except (TypeError, ValueError):
            continue
        if points > 0:
            return points
    return None


def user_from_rest(item: Dict[str, Any]) -> JiraUser:
    return JiraUser(
        account_id=str(item.get("accountId") or ""),
        display_name=str(item.get("displayName") or item.get("name") or "Unknown User"),
        email_address=str(item.get("emailAddress") or ""),
    )


def issue_from_rest(item: Dict[str, Any]) -> IssueRecord:
    """Convert a REST search hit into an issue record.

    Missing type, status and priority fall back to ``Task``, ``Unknown`` and
    ``Medium``.

    Raises:
        DataValidationError: If the id, key or creation timestamp is missing.
    """
    fields = item.get("fields") or {}
    created = parse_timestamp(fields.get("created"))
    if not item.get("id") or not item.get("key") or created is None:
        raise DataValidationError(f"Jira issue payload is missing required fields: {item.get('key')}")

    assignee = fields.get("assignee") or {}

    return IssueRecord(
        id=str(item["id"]),
        key=str(item["key"]),
        issue_type=str((fields.get("issuetype") or {}).get("name") or "Task"),
        status=str((fields.get("status") or {}).get("name") or "Unknown"),
        priority=str((fields.get("priority") or {}).get("name") or "Medium"),
        assignee_id=assignee.get("accountId") or None,
        assignee_name=assignee.get("displayName") or None,
        created=created,
        resolved=parse_timestamp(fields.get("resolutiondate")),
        story_points=extract_story_points(fields),
        project=str((fields.get("project") or {}).get("key") or ""),
        summary=fields.get("summary"),
        updated=parse_timestamp(fields.get("updated")),
    )

