"""Tests for the team dashboard refresh service."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teammetrics.config import GitHubConfig, JiraConfig
from teammetrics.dashboard import ERROR, NO_DATA, NOT_CONFIGURED, READY, TeamDashboard
from teammetrics.errors import ConfigurationError, TransientFetchError
from teammetrics.jira_client import JiraSearchPage
from teammetrics.models import IssueRecord, PeerIdentity, RepositoryRef, Team

NOW = datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc)
GITHUB_CONFIG = GitHubConfig(token="gh", repositories=(RepositoryRef("acme", "api"),))
JIRA_CONFIG = JiraConfig(base_url="https://acme.atlassian.net", email="bot@acme.test", api_token="t", project_key="PROJ")
PEERS = [
    PeerIdentity("p1", github_login="alice", jira_account_id="acc-1"),
    PeerIdentity("p2", github_login="bob"),
]


def _github_client():
    client = Mock()
    client.execute_graphql.return_value = {
        "repo0": {
            "pullRequests": {
                "nodes": [
                    {
                        "id": "PR1",
                        "title": "Add cache",
                        "number": 1,
                        "state": "MERGED",
                        "createdAt": "2026-01-20T00:00:00Z",
                        "mergedAt": "2026-01-20T05:00:00Z",
                        "additions": 10,
                        "deletions": 2,
                        "author": {"login": "alice"},
                        "reviews": {"totalCount": 1},
                        "comments": {"totalCount": 0},
                    }
                ]
            }
        }
    }
    return client


def _jira_client():
    issue = IssueRecord(
        id="1",
        key="PROJ-1",
        issue_type="Story",
        status="Done",
        priority="High",
        assignee_id="acc-1",
        assignee_name="Alice",
        created=datetime(2026, 1, 20, tzinfo=timezone.utc),
        resolved=datetime(2026, 1, 22, tzinfo=timezone.utc),
        story_points=5.0,
        project="PROJ",
    )
    client = Mock()
    client.search_issues.return_value = JiraSearchPage(issues=[issue], total=1, max_results=50, start_at=0)
    return client


def test_refresh_summarizes_both_sources():
    """Verify both sources are summarized and per-peer metrics are built."""
    github_client = _github_client()
    jira_client = _jira_client()
    github_factory = Mock(return_value=github_client)
    jira_factory = Mock(return_value=jira_client)
    dashboard = TeamDashboard(GITHUB_CONFIG, JIRA_CONFIG, github_factory, jira_factory)

    snapshot = dashboard.refresh(PEERS, window_days=30, now=NOW)

    github_factory.assert_called_once_with(GITHUB_CONFIG)
    jira_factory.assert_called_once_with(JIRA_CONFIG)
    assert snapshot.github.status == READY
    assert snapshot.github.strategy == "graphql"
    assert snapshot.github.summary.merged_prs == 1
    assert snapshot.jira.status == READY
    assert snapshot.jira.summary.story_points == 5.0
    assert [peer.internal_id for peer in snapshot.jira.excluded_peers] == ["p2"]
    assert snapshot.peers["p1"].pull_requests == 1
    assert snapshot.peers["p1"].issues_completed == 1
    assert dashboard.latest is snapshot


def test_refresh_isolates_a_failing_source():
    """Verify a Jira failure is reported without blocking the GitHub summary."""
    jira_client = Mock()
    jira_client.search_issues.side_effect = TransientFetchError("jira down", status_code=503)
    dashboard = TeamDashboard(
        GITHUB_CONFIG,
        JIRA_CONFIG,
        Mock(return_value=_github_client()),
        Mock(return_value=jira_client),
    )

    snapshot = dashboard.refresh(PEERS, now=NOW)

    assert snapshot.github.status == READY
    assert snapshot.jira.status == ERROR
    assert "jira down" in snapshot.jira.error


def test_refresh_reports_unconfigured_sources():
    """Verify missing configuration is reported as not_configured."""
    dashboard = TeamDashboard(None, JiraConfig(base_url="https://x", email="e", api_token="t"))

    snapshot = dashboard.refresh(PEERS, now=NOW)

    assert snapshot.github.status == NOT_CONFIGURED
    assert snapshot.jira.status == NOT_CONFIGURED


def test_refresh_without_mapped_identities_builds_no_client():
    """Verify a team with no GitHub logins yields no_data without building a client."""
    github_factory = Mock()
    dashboard = TeamDashboard(GITHUB_CONFIG, None, github_factory)

    snapshot = dashboard.refresh([PeerIdentity("p3", name="Carol")], sources=("github",), now=NOW)

    github_factory.assert_not_called()
    assert snapshot.github.status == NO_DATA
    assert [peer.internal_id for peer in snapshot.github.excluded_peers] == ["p3"]
    assert snapshot.jira is None


def test_refresh_uses_team_project_key():
    """Verify a team's Jira project overrides the configured one."""
    jira_client = _jira_client()
    dashboard = TeamDashboard(None, JIRA_CONFIG, jira_client_factory=Mock(return_value=jira_client))

    dashboard.refresh(PEERS, team=Team("core", "Core", jira_project_key="CORE"), sources=("jira",), now=NOW)

    assert jira_client.search_issues.call_args.args[0].startswith("project = CORE ")


def test_refresh_rejects_non_positive_window():
    """Verify a non-positive window is a configuration error."""
    dashboard = TeamDashboard(GITHUB_CONFIG, None)

    with pytest.raises(ConfigurationError):
        dashboard.refresh(PEERS, window_days=0)


def test_stale_refresh_is_discarded_in_favor_of_newer_snapshot():
    """Verify a refresh overtaken by a newer one returns the newer snapshot."""
    dashboard = TeamDashboard(GITHUB_CONFIG, None)
    newer = {}

    def slow_factory(config):
        # A second refresh starts and finishes while the first is still fetching.
        if not newer:
            dashboard._github_client_factory = Mock(return_value=_github_client())
            newer["snapshot"] = dashboard.refresh(PEERS, sources=("github",), now=NOW)
        return _github_client()

    dashboard._github_client_factory = slow_factory

    result = dashboard.refresh(PEERS, sources=("github",), now=NOW)

    assert newer["snapshot"].generation == 2
    assert result is newer["snapshot"]
    assert dashboard.latest is newer["snapshot"]


def test_refresh_without_repositories_reports_not_configured():
    """Verify an empty repository list is a setup prompt rather than a fetch error."""
    github_factory = Mock()
    dashboard = TeamDashboard(GitHubConfig(token="gh", repositories=()), None, github_factory)

    snapshot = dashboard.refresh(PEERS, sources=("github",), now=NOW)

    github_factory.assert_not_called()
    assert snapshot.github.status == NOT_CONFIGURED
    assert "repositories" in snapshot.github.error


def test_refresh_skips_pull_requests_with_malformed_timestamps():
    """Verify a bad timestamp drops one PR without failing either source."""
    github_client = _github_client()
    nodes = github_client.execute_graphql.return_value["repo0"]["pullRequests"]["nodes"]
    nodes.append(dict(nodes[0], id="PR2", createdAt="not-a-date"))
    nodes.append(dict(nodes[0], id="PR3", mergedAt="garbage"))
    dashboard = TeamDashboard(
        GITHUB_CONFIG,
        JIRA_CONFIG,
        Mock(return_value=github_client),
        Mock(return_value=_jira_client()),
    )

    snapshot = dashboard.refresh(PEERS, now=NOW)

    assert snapshot.github.status == READY
    assert [record.id for record in snapshot.github.records] == ["PR1"]
    assert snapshot.jira.status == READY


def test_detailed_refresh_fetches_each_login_with_pull_request_details():
    """Verify a detailed refresh lists each login over REST and looks up PR details."""
    github_client = Mock()
    github_client.list_pull_requests.return_value = [
        {
            "id": 11,
            "number": 11,
            "title": "Tune cache",
            "state": "closed",
            "user": {"login": "alice"},
            "created_at": "2026-01-25T00:00:00Z",
            "merged_at": "2026-01-25T06:00:00Z",
        }
    ]
    github_client.get_pull_request.return_value = dict(
        github_client.list_pull_requests.return_value[0], additions=40, deletions=2
    )
    dashboard = TeamDashboard(GITHUB_CONFIG, None, Mock(return_value=github_client))

    snapshot = dashboard.refresh([PEERS[0]], sources=("github",), now=NOW, detailed=True)

    github_client.execute_graphql.assert_not_called()
    assert snapshot.github.strategy == "rest"
    assert snapshot.github.records[0].lines_changed == 42
    assert snapshot.github.summary.total_prs == 1
