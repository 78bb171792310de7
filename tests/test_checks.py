"""Tests for source connection and roster identity checks."""

import sys
from pathlib import Path
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teammetrics.checks import CheckResult, check_github, check_jira_gateway, format_checks, run_checks
from teammetrics.config import GitHubConfig, JiraConfig
from teammetrics.errors import ConfigurationError, GraphQLError, TransientFetchError
from teammetrics.jira_client import JiraUser
from teammetrics.jira_graphql import IssueKeySearch
from teammetrics.models import PeerIdentity, RepositoryRef

GITHUB_CONFIG = GitHubConfig(token="gh", repositories=(RepositoryRef("acme", "api"),))
JIRA_CONFIG = JiraConfig(base_url="https://acme.atlassian.net", email="e", api_token="t", project_key="PROJ")
PEERS = [
    PeerIdentity("p1", github_login="alice", jira_account_id="acc-1"),
    PeerIdentity("p2", github_login="ghost"),
]


def test_check_github_reports_missing_logins():
    """Verify each roster login is looked up and unknown logins fail."""
    client = Mock()
    client.test_connection.return_value = True
    client.get_user.side_effect = lambda login: {"login": login} if login == "alice" else None

    results = check_github(client, ["alice", "ghost"])

    assert [(result.name, result.ok) for result in results] == [
        ("github: authentication", True),
        ("github: user alice", True),
        ("github: user ghost", False),
    ]


def test_check_github_stops_after_failed_authentication():
    """Verify no user lookups are made when the token is rejected."""
    client = Mock()
    client.test_connection.return_value = False

    results = check_github(client, ["alice"])

    assert [result.ok for result in results] == [False]
    client.get_user.assert_not_called()


def test_check_github_records_lookup_failures():
    """Verify a non-404 lookup failure fails only that login."""
    client = Mock()
    client.test_connection.return_value = True
    client.get_user.side_effect = TransientFetchError("rate limited", status_code=403)

    results = check_github(client, ["alice"])

    assert results[-1].ok is False
    assert "rate limited" in results[-1].detail


def test_check_jira_gateway_searches_team_issue_keys():
    """Verify the gateway check resolves the cloud ID and searches the team's issues."""
    client = Mock()
    client.ensure_cloud_id.return_value = "cloud-1"
    client.list_projects.return_value = [Mock(), Mock()]
    client.search_issue_keys.return_value = IssueKeySearch(issues=[], total_count=12)

    results = check_jira_gateway(client, "PROJ", ["acc-1"], window_days=14)

    assert all(result.ok for result in results)
    assert results[0].detail == "cloud-1"
    assert results[-1].detail == "12 matching in the last 14 days"
    jql = client.search_issue_keys.call_args.args[0]
    assert jql.startswith("project = PROJ ")
    assert "-14d" in jql


def test_check_jira_gateway_reports_undiscoverable_cloud_id():
    """Verify a missing cloud ID fails the gateway check without querying."""
    client = Mock()
    client.ensure_cloud_id.side_effect = ConfigurationError("Failed to discover the Jira cloud ID.")

    results = check_jira_gateway(client, "PROJ", ["acc-1"], window_days=30)

    assert [result.ok for result in results] == [False]
    client.list_projects.assert_not_called()


def test_check_jira_gateway_reports_graphql_errors():
    """Verify GraphQL errors become a failed check line."""
    client = Mock()
    client.ensure_cloud_id.return_value = "cloud-1"
    client.list_projects.side_effect = GraphQLError(["Not authorized"])

    results = check_jira_gateway(client, "PROJ", ["acc-1"], window_days=30)

    assert results[-1].ok is False
    assert "Not authorized" in results[-1].detail


def test_run_checks_covers_configured_sources():
    """Verify GitHub, Jira REST and gateway checks run with mapped identities."""
    github_client = Mock()
    github_client.test_connection.return_value = True
    github_client.get_user.return_value = {"login": "x"}
    jira_client = Mock()
    jira_client.test_connection.return_value = True
    jira_client.get_user.return_value = JiraUser(account_id="acc-1", display_name="Alice", email_address="")
    gateway_client = Mock()
    gateway_client.ensure_cloud_id.return_value = "cloud-1"
    gateway_client.list_projects.return_value = []
    gateway_client.search_issue_keys.return_value = IssueKeySearch(issues=[], total_count=0)

    results = run_checks(
        PEERS,
        GITHUB_CONFIG,
        JIRA_CONFIG,
        github_client_factory=Mock(return_value=github_client),
        jira_client_factory=Mock(return_value=jira_client),
        gateway_client_factory=Mock(return_value=gateway_client),
    )

    names = [result.name for result in results]
    assert "github: user ghost" in names
    assert "jira: account acc-1" in names
    assert "jira gateway: PROJ issues" in names
    jira_client.get_user.assert_called_once_with("acc-1")


def test_run_checks_skips_unconfigured_sources():
    """Verify no clients are built for sources without configuration."""
    assert run_checks(PEERS, None, None) == []


def test_format_checks():
    """Verify check lines show status, name and optional detail."""
    lines = format_checks([CheckResult("jira: authentication", True), CheckResult("github: user bob", False, "login not found")])

    assert lines.splitlines() == ["[OK] jira: authentication", "[FAILED] github: user bob - login not found"]
