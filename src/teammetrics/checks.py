"""Connection and roster identity checks for the configured sources.

Each check reports a result line instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .config import GitHubConfig, JiraConfig
from .errors import ConfigurationError, TransientFetchError
from .github_client import GitHubClient
from .identity import GITHUB, JIRA, partition_identities
from .jira_client import JiraClient
from .jira_graphql import JiraGraphQLClient
from .models import PeerIdentity
from .queries import build_team_jql_query

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CheckResult:
    name: str
    ok: bool
    detail: str = ""


def check_github(client: GitHubClient, logins: Sequence[str]) -> List[CheckResult]:
    """Check authentication, then that every roster login exists."""
    if not client.test_connection():
        return [CheckResult("github: authentication", False, "token rejected or API unreachable")]

    results = [CheckResult("github: authentication", True)]
    for login in logins:
        try:
            user = client.get_user(login)
        except TransientFetchError as exc:
            results.append(CheckResult(f"github: user {login}", False, str(exc)))
            continue
        results.append(CheckResult(f"github: user {login}", user is not None, "" if user else "login not found"))
    return results


def check_jira(client: JiraClient, account_ids: Sequence[str]) -> List[CheckResult]:
    """Check authentication, then that every roster account ID resolves."""
    if not client.test_connection():
        return [CheckResult("jira: authentication", False, "credentials rejected or site unreachable")]

    results = [CheckResult("jira: authentication", True)]
    for account_id in account_ids:
        user = client.get_user(account_id)
        results.append(
            CheckResult(
                f"jira: account {account_id}",
                user is not None,
                user.display_name if user else "account not found",
            )
        )
    return results


def check_jira_gateway(
    client: JiraGraphQLClient,
    project_key: Optional[str],
    account_ids: Sequence[str],
    window_days: int,
) -> List[CheckResult]:
    """Check the Atlassian gateway: cloud ID, visible projects and the team's issue search."""
    try:
        cloud_id = client.ensure_cloud_id()
    except ConfigurationError as exc:
        return [CheckResult("jira gateway: cloud ID", False, str(exc))]

    results = [CheckResult("jira gateway: cloud ID", True, cloud_id)]
    try:
        projects = client.list_projects()
        results.append(CheckResult("jira gateway: projects", True, f"{len(projects)} visible"))

        if project_key and account_ids:
            search = client.search_issue_keys(build_team_jql_query(project_key, account_ids, window_days))
            results.append(
                CheckResult(
                    f"jira gateway: {project_key} issues",
                    True,
                    f"{search.total_count} matching in the last {window_days} days",
                )
            )
    except TransientFetchError as exc:
        logger.warning("Jira gateway check failed", extra={"error": str(exc)})
        results.append(CheckResult("jira gateway: query", False, str(exc)))
    return results


def run_checks(
    peers: Sequence[PeerIdentity],
    github_config: Optional[GitHubConfig],
    jira_config: Optional[JiraConfig],
    project_key: Optional[str] = None,
    window_days: int = 30,
    github_client_factory: Callable[[GitHubConfig], GitHubClient] = GitHubClient,
    jira_client_factory: Callable[[JiraConfig], JiraClient] = JiraClient,
    gateway_client_factory: Callable[[JiraConfig], JiraGraphQLClient] = JiraGraphQLClient,
) -> List[CheckResult]:
    """Run every check for the configured sources against ``peers``."""
    results: List[CheckResult] = []

    if github_config is not None:
        logins = partition_identities(peers, GITHUB).valid
        results.extend(check_github(github_client_factory(github_config), logins))

    if jira_config is not None:
        account_ids = partition_identities(peers, JIRA).valid
        results.extend(check_jira(jira_client_factory(jira_config), account_ids))
        results.extend(
            check_jira_gateway(
                gateway_client_factory(jira_config),
                project_key or jira_config.project_key,
                account_ids,
                window_days,
            )
        )

    logger.info(
        "Ran source checks",
        extra={"checks": len(results), "failed": sum(1 for result in results if not result.ok)},
    )
    return results


def format_checks(results: Sequence[CheckResult]) -> str:
    lines = []
    for result in results:
        status = "OK" if result.ok else "FAILED"
        line = f"[{status}] {result.name}"
        if result.detail:
            line += f" - {result.detail}"
        lines.append(line)
    return "\n".join(lines)
