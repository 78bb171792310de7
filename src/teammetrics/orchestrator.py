"""Fetch orchestration for team pull requests and issues.

Pull requests are fetched with one aliased GraphQL query across every
repository. If that fails for any transient reason the REST strategy lists each
repository separately, skipping repositories that fail on their own.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .errors import (
    ConfigurationError,
    DataValidationError,
    PartialFetchError,
    TransientFetchError,
)
from .github_client import GitHubClient, pull_request_from_graphql, pull_request_from_rest
from .jira_client import JiraClient
from .models import IssueFetchResult, PullRequestFetchResult, PullRequestRecord, RepositoryRef
from .queries import build_pull_requests_query, build_team_jql_query
from .timeutils import window_start

logger = logging.getLogger(__name__)

GRAPHQL_RESULT_CAP = 200


def _normalize_identifiers(values: Iterable[Optional[str]], case_insensitive: bool = False) -> List[str]:
    normalized: List[str] = []
    seen: Set[str] = set()
    for value in values:
        stripped = (value or "").strip()
        if not stripped:
            continue
        key = stripped.lower() if case_insensitive else stripped
        if key in seen:
            continue
        seen.add(key)
        normalized.append(stripped)
    return normalized


def _is_in_window(record: PullRequestRecord, authors: Set[str], since: datetime) -> bool:
    return record.author.lower() in authors and record.created_at >= since


def _build_result(
    records: Iterable[PullRequestRecord],
    strategy: str,
    partial_failures: Optional[List[Exception]] = None,
    cap: Optional[int] = None,
) -> PullRequestFetchResult:
    """Deduplicate by id, sort newest first, and count states."""
    unique: Dict[str, PullRequestRecord] = {}
    for record in records:
        unique.setdefault(record.id, record)

    ordered = sorted(unique.values(), key=lambda record: record.created_at, reverse=True)
    if cap is not None:
        ordered = ordered[:cap]

    return PullRequestFetchResult(
        records=ordered,
        total_count=len(ordered),
        merged_count=sum(1 for record in ordered if record.state == "merged"),
        open_count=sum(1 for record in ordered if record.state == "open"),
        strategy=strategy,
        partial_failures=list(partial_failures or []),
    )


def fetch_pull_requests_graphql(
    client: GitHubClient,
    repositories: Sequence[RepositoryRef],
    logins: Sequence[str],
    since: datetime,
    limit: int = 100,
) -> PullRequestFetchResult:
    """Fetch team pull requests from every repository in one GraphQL request.

    Nodes are filtered to the given authors (case-insensitive) and to PRs
    created at or after ``since``. At most ``max(limit, 200)`` records are kept.

    Raises:
        TransientFetchError: If the request fails or the response carries
            GraphQL errors.
    """
    query = build_pull_requests_query(repositories, logins, since)
    data = client.execute_graphql(query)

    authors = {login.lower() for login in query.authors}
    collected: List[PullRequestRecord] = []

    for index, repository in enumerate(query.repositories):
        repository_data = data.get(query.alias(index)) or {}
        nodes = (repository_data.get("pullRequests") or {}).get("nodes") or []
        for node in nodes:
            if not node:
                continue
            try:
                record = pull_request_from_graphql(node, repository)
            except DataValidationError as exc:
                logger.debug("Skipping malformed pull request node", extra={"error": str(exc)})
                continue
            if _is_in_window(record, authors, query.since):
                collected.append(record)

    result = _build_result(collected, strategy="graphql", cap=max(limit, GRAPHQL_RESULT_CAP))
    logger.info(
        "Fetched team pull requests via GraphQL",
        extra={"repositories": len(repositories), "pull_requests": result.total_count},
    )
    return result


def fetch_pull_requests_rest(
    client: GitHubClient,
    repositories: Sequence[RepositoryRef],
    logins: Sequence[str],
    since: datetime,
) -> PullRequestFetchResult:
    """Fetch team pull requests by listing each repository over REST.

    A repository that fails is recorded as a :class:`PartialFetchError` on the
    result and skipped; the remaining repositories are still returned.
    """
    authors = {login.lower() for login in logins}
    collected: List[PullRequestRecord] = []
    partial_failures: List[Exception] = []

    for repository in repositories:
        try:
            items = client.list_pull_requests(repository, since=since)
        except (TransientFetchError, DataValidationError) as exc:
            logger.warning(
                "Skipping repository after REST fetch failure",
                extra={"repository": repository.full_name, "error": str(exc)},
            )
            partial_failures.append(PartialFetchError(repository.full_name, exc))
            continue

        for item in items:
            try:
                record = pull_request_from_rest(item, repository)
            except DataValidationError as exc:
                logger.debug("Skipping malformed pull request", extra={"error": str(exc)})
                continue
            if _is_in_window(record, authors, since):
                collected.append(record)

    result = _build_result(collected, strategy="rest", partial_failures=partial_failures)
    logger.info(
        "Fetched team pull requests via REST",
        extra={
            "repositories": len(repositories),
            "failed_repositories": len(partial_failures),
            "pull_requests": result.total_count,
        },
    )
    return result


def fetch_team_pull_requests(
    client: GitHubClient,
    repositories: Sequence[RepositoryRef],
    logins: Sequence[str],
    window_days: int = 30,
    now: Optional[datetime] = None,
) -> PullRequestFetchResult:
    """Fetch recent pull requests authored by any of ``logins``.

    GraphQL is tried first; on :class:`TransientFetchError` (GraphQL errors
    included) the REST strategy is used instead. With no usable logins no
    request is made and an empty ``"none"`` result is returned.

    Args:
        client: GitHub client built from explicit configuration.
        repositories: Repositories to search.
        logins: GitHub logins of the team members.
        window_days: Lookback window in days.
        now: End of the window; defaults to the current UTC time.

    Returns:
        Deduplicated pull requests, newest first, with state counts.

    Raises:
        ConfigurationError: If no repositories are configured.
    """
    if not repositories:
        raise ConfigurationError(
            "No repositories configured. "
            "Set 'TEAM_METRICS_GITHUB_REPOS' to a comma-separated list of owner/name pairs."
        )

    normalized = _normalize_identifiers(logins, case_insensitive=True)
    if not normalized:
        logger.info("No GitHub logins mapped; skipping pull request fetch")
        return _build_result([], strategy="none")

    since = window_start(window_days, now)

    try:
        return fetch_pull_requests_graphql(client, repositories, normalized, since)
    except TransientFetchError as exc:
        logger.warning(
            "GraphQL pull request fetch failed; falling back to REST",
            extra={"error": str(exc), "status_code": exc.status_code},
        )

    return fetch_pull_requests_rest(client, repositories, normalized, since)


def fetch_user_pull_requests(
    client: GitHubClient,
    repositories: Sequence[RepositoryRef],
    login: str,
    window_days: int = 30,
    detail_limit: int = 10,
    now: Optional[datetime] = None,
) -> PullRequestFetchResult:
    """Fetch one user's recent pull requests with line and review counts.

    Listings carry no line counts, so the ``detail_limit`` most recent PRs are
    looked up individually. A failed lookup keeps the listing record.
    """
    normalized = _normalize_identifiers([login], case_insensitive=True)
    if not normalized:
        return _build_result([], strategy="none")

    since = window_start(window_days, now)
    listed = fetch_pull_requests_rest(client, repositories, normalized, since)
    by_name = {repository.full_name: repository for repository in repositories}

    detailed: List[PullRequestRecord] = []
    for position, record in enumerate(listed.records):
        repository = by_name.get(record.repository)
        if position >= detail_limit or record.number is None or repository is None:
            detailed.append(record)
            continue

        try:
            detailed.append(pull_request_from_rest(client.get_pull_request(repository, record.number), repository))
        except (TransientFetchError, DataValidationError) as exc:
            logger.debug(
                "Keeping listing record after detail lookup failure",
                extra={"repository": record.repository, "number": record.number, "error": str(exc)},
            )
            detailed.append(record)

    return _build_result(detailed, strategy="rest", partial_failures=listed.partial_failures)


def fetch_team_issues(
    client: JiraClient,
    project_key: Optional[str],
    account_ids: Sequence[str],
    window_days: int = 30,
    max_results: int = 50,
) -> IssueFetchResult:
    """Fetch the first page of recent issues assigned to any of ``account_ids``.

    With no usable account IDs no request is made.

    Raises:
        ConfigurationError: If account IDs are given but no project key is.
        TransientFetchError: If the Jira search fails.
    """
    normalized = _normalize_identifiers(account_ids)
    if not normalized:
        logger.info("No Jira account IDs mapped; skipping issue fetch")
        return IssueFetchResult(records=[], total_count=0)

    if not project_key:
        raise ConfigurationError(
            "No Jira project configured. Set 'JIRA_PROJECT_KEY' or assign a project to the team."
        )

    jql = build_team_jql_query(project_key, normalized, window_days)
    logger.debug("Searching Jira issues", extra={"jql": jql})

    page = client.search_issues(jql, max_results=max_results)
    if page.total > len(page.issues):
        logger.info(
            "Jira search returned more issues than one page",
            extra={"total": page.total, "returned": len(page.issues)},
        )

    return IssueFetchResult(records=list(page.issues), total_count=page.total)


def fetch_peer_pull_requests(
    client: GitHubClient,
    repositories: Sequence[RepositoryRef],
    logins: Sequence[str],
    window_days: int = 30,
    detail_limit: int = 10,
    now: Optional[datetime] = None,
) -> PullRequestFetchResult:
    """Fetch each login's pull requests individually, with line and review counts.

    Used for drill-downs where per-PR detail matters more than request count.

    Raises:
        ConfigurationError: If no repositories are configured.
    """
    if not repositories:
        raise ConfigurationError(
            "No repositories configured. "
            "Set 'TEAM_METRICS_GITHUB_REPOS' to a comma-separated list of owner/name pairs."
        )

    records: List[PullRequestRecord] = []
    partial_failures: List[Exception] = []
    for login in _normalize_identifiers(logins, case_insensitive=True):
        fetched = fetch_user_pull_requests(
            client, repositories, login, window_days=window_days, detail_limit=detail_limit, now=now
        )
        records.extend(fetched.records)
        partial_failures.extend(fetched.partial_failures)

    result = _build_result(records, strategy="rest", partial_failures=partial_failures)
    logger.info(
        "Fetched peer pull requests with details",
        extra={"logins": len(logins), "pull_requests": result.total_count},
    )
    return result
