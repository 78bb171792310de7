"""GitHub REST and GraphQL client for pull request retrieval."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from .config import GitHubConfig
from .errors import DataValidationError, GraphQLError, TransientFetchError
from .models import PullRequestRecord, RepositoryRef
from .queries import GraphQLQuery
from .retry import extract_backoff_seconds
from .timeutils import parse_timestamp

logger = logging.getLogger(__name__)


class GitHubClient:
    """Small, typed client for the GitHub pull request APIs."""

    _MAX_RETRIES = 3
    _MAX_BACKOFF_SECONDS = 30
    _DEFAULT_PAGE_SIZE = 100
    _DEFAULT_MAX_PAGES = 10

    def __init__(self, config: GitHubConfig, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated GitHub API client.

        Args:
            config: Validated GitHub configuration carrying the bearer token.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._base_url = config.api_url.rstrip("/")

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {config.token}",
                "Accept": "application/vnd.github+json",
            }
        )

    def _build_url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Execute a request with retry logic for 429/5xx responses.

        Raises:
            TransientFetchError: If the request repeatedly fails, returns
                HTTP >= 400, or does not return valid JSON.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise TransientFetchError(
                        f"GitHub request failed after retries: {method} {url}"
                    ) from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                time.sleep(extract_backoff_seconds(response, attempt, self._MAX_BACKOFF_SECONDS))
                continue

            if status_code >= 400:
                raise TransientFetchError(
                    f"GitHub API request failed: {method} {url} returned {status_code} - {response.text}",
                    status_code=status_code,
                )

            try:
                return response.json()
            except ValueError as exc:
                raise TransientFetchError(f"GitHub API returned invalid JSON: {method} {url}") from exc

        raise TransientFetchError(f"GitHub request failed after retries: {method} {url}") from last_error

    def execute_graphql(self, query: GraphQLQuery) -> Dict[str, Any]:
        """Run a GraphQL query and return its ``data`` object.

        Raises:
            GraphQLError: If the response carries an ``errors`` array, even
                alongside partial data.
            TransientFetchError: On HTTP or network failure.
        """
        payload = self._request_json(
            "POST",
            "graphql",
            json_body={"query": query.document, "variables": query.variables},
        )
        if not isinstance(payload, dict):
            raise TransientFetchError("GitHub GraphQL returned an unexpected payload shape.")

        errors = payload.get("errors") or []
        if errors:
            raise GraphQLError(
                [str(error.get("message", error)) if isinstance(error, dict) else str(error) for error in errors]
            )

        data = payload.get("data")
        if not isinstance(data, dict):
            raise TransientFetchError("GitHub GraphQL response is missing 'data'.")
        return data

    def list_pull_requests(
        self,
        repository: RepositoryRef,
        since: Optional[datetime] = None,
        per_page: int = _DEFAULT_PAGE_SIZE,
        max_pages: int = _DEFAULT_MAX_PAGES,
    ) -> List[Dict[str, Any]]:
        """List raw pull requests for a repository, newest first.

        Pages are requested until a short page, ``max_pages``, or a page whose
        oldest pull request was created before ``since``.
        """
        pulls: List[Dict[str, Any]] = []

        for page in range(1, max_pages + 1):
            payload = self._request_json(
                "GET",
                f"repos/{repository.owner}/{repository.name}/pulls",
                params={
                    "state": "all",
                    "sort": "created",
                    "direction": "desc",
                    "per_page": per_page,
                    "page": page,
                },
            )
            if not isinstance(payload, list):
                raise TransientFetchError(
                    f"GitHub returned an unexpected pull request listing for {repository.full_name}."
                )

            pulls.extend(payload)

            if len(payload) < per_page:
                break

            try:
                oldest = parse_timestamp(payload[-1].get("created_at"))
            except DataValidationError:
                oldest = None
            if since is not None and oldest is not None and oldest < since:
                break

        return pulls

    def get_pull_request(self, repository: RepositoryRef, number: int) -> Dict[str, Any]:
        """Fetch one pull request with additions, deletions and review comment counts."""
        payload = self._request_json("GET", f"repos/{repository.owner}/{repository.name}/pulls/{number}")
        if not isinstance(payload, dict):
            raise TransientFetchError(
                f"GitHub returned an unexpected pull request payload for {repository.full_name}#{number}."
            )
        return payload

    def get_user(self, login: str) -> Optional[Dict[str, Any]]:
        """Return a user's public profile, or ``None`` if the login does not exist."""
        try:
            return self._request_json("GET", f"users/{login}")
        except TransientFetchError as exc:
            if exc.status_code == 404:
                return None
            raise

    def test_connection(self) -> bool:
        """Check that the configured token authenticates."""
        try:
            self._request_json("GET", "user")
        except TransientFetchError as exc:
            logger.warning("GitHub connection test failed", extra={"error": str(exc)})
            return False
        return True


def pull_request_from_rest(item: Dict[str, Any], repository: RepositoryRef) -> PullRequestRecord:
    """Convert a REST pull request payload into a record.

    A PR with ``merged_at`` set is reported as ``merged`` whatever its REST state.
    Listing payloads carry no line counts, so those default to zero.

    Raises:
        DataValidationError: If the id or creation timestamp is missing.
    """
    pr_id = item.get("id")
    created_at = parse_timestamp(item.get("created_at"))
    if pr_id is None or created_at is None:
        raise DataValidationError(
            f"GitHub pull request payload is missing required fields: repository={repository.full_name}"
        )

    merged_at = parse_timestamp(item.get("merged_at"))
    state = "merged" if merged_at else str(item.get("state") or "open").lower()

    return PullRequestRecord(
        id=str(pr_id),
        title=str(item.get("title") or ""),
        state=state,
        author=str((item.get("user") or {}).get("login") or ""),
        created_at=created_at,
        merged_at=merged_at,
        additions=int(item.get("additions") or 0),
        deletions=int(item.get("deletions") or 0),
        review_comment_count=int(item.get("review_comments") or 0),
        repository=repository.full_name,
        number=item.get("number"),
        url=item.get("html_url"),
        updated_at=parse_timestamp(item.get("updated_at")),
    )


def pull_request_from_graphql(node: Dict[str, Any], repository: RepositoryRef) -> PullRequestRecord:
    """Convert a GraphQL pull request node into a record.

    Review participation counts both reviews and conversation comments.

    Raises:
        DataValidationError: If the id or creation timestamp is missing.
    """
    pr_id = node.get("id")
    created_at = parse_timestamp(node.get("createdAt"))
    if pr_id is None or created_at is None:
        raise DataValidationError(
            f"GitHub GraphQL node is missing required fields: repository={repository.full_name}"
        )

    reviews = (node.get("reviews") or {}).get("totalCount") or 0
    comments = (node.get("comments") or {}).get("totalCount") or 0
    name_with_owner = (node.get("repository") or {}).get("nameWithOwner") or repository.full_name

    return PullRequestRecord(
        id=str(pr_id),
        title=str(node.get("title") or ""),
        state=str(node.get("state") or "OPEN").lower(),
        author=str((node.get("author") or {}).get("login") or ""),
        created_at=created_at,
        merged_at=parse_timestamp(node.get("mergedAt")),
        additions=int(node.get("additions") or 0),
        deletions=int(node.get("deletions") or 0),
        review_comment_count=int(reviews) + int(comments),
        repository=str(name_with_owner),
        number=node.get("number"),
        url=node.get("url"),
        updated_at=parse_timestamp(node.get("updatedAt")),
    )
