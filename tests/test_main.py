"""Tests for report orchestration and exit codes in the main module."""

import json
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teammetrics.config import GitHubConfig, JiraConfig
from teammetrics.dashboard import ERROR, READY, DashboardSnapshot, SourceResult
from teammetrics.errors import ConfigurationError, TransientFetchError
from teammetrics.checks import CheckResult
from teammetrics.main import check_sources, main, orchestrate_report
from teammetrics.models import RepositoryRef

GITHUB_CONFIG = GitHubConfig(token="gh", repositories=(RepositoryRef("acme", "api"),))
JIRA_CONFIG = JiraConfig(base_url="https://acme.atlassian.net", email="e", api_token="t")


@pytest.fixture
def roster_path(tmp_path):
    path = tmp_path / "roster.json"
    path.write_text(
        json.dumps(
            {
                "teams": [{"id": "core", "name": "Core", "jiraProjectKey": "CORE"}],
                "peers": [
                    {"id": "p1", "teamId": "core", "githubUsername": "alice"},
                    {"id": "p2", "teamId": "other", "githubUsername": "bob"},
                ],
            }
        ),
        encoding="utf-8",
    )
    return str(path)


def _snapshot(github=None, jira=None):
    return DashboardSnapshot(
        generation=1,
        generated_at=Mock(isoformat=Mock(return_value="2026-01-31T00:00:00+00:00")),
        window_days=7,
        team=None,
        github=github,
        jira=jira,
        peers={},
    )


def test_orchestrate_report_refreshes_team_members(roster_path):
    """Verify the dashboard is built from loaded configs and refreshed for the team."""
    dashboard = Mock()
    dashboard.refresh.return_value = _snapshot(github=SourceResult(status=READY))
    dashboard_factory = Mock(return_value=dashboard)

    with patch("teammetrics.main.load_github_config", return_value=GITHUB_CONFIG), patch(
        "teammetrics.main.load_jira_config", return_value=JIRA_CONFIG
    ), patch("teammetrics.main.generate_report", return_value="REPORT") as report_mock:
        report = orchestrate_report(roster_path, team_id="core", days=7, dashboard_factory=dashboard_factory)

    assert report == "REPORT"
    dashboard_factory.assert_called_once_with(GITHUB_CONFIG, JIRA_CONFIG)
    peers = dashboard.refresh.call_args.args[0]
    assert [peer.internal_id for peer in peers] == ["p1"]
    assert dashboard.refresh.call_args.kwargs["window_days"] == 7
    assert dashboard.refresh.call_args.kwargs["team"].jira_project_key == "CORE"
    assert dashboard.refresh.call_args.kwargs["detailed"] is False
    report_mock.assert_called_once_with(dashboard.refresh.return_value)


def test_orchestrate_report_skips_unconfigured_source_when_both_requested(roster_path):
    """Verify a missing Jira configuration does not block a GitHub report."""
    dashboard = Mock()
    dashboard.refresh.return_value = _snapshot(github=SourceResult(status=READY))
    dashboard_factory = Mock(return_value=dashboard)

    with patch("teammetrics.main.load_github_config", return_value=GITHUB_CONFIG), patch(
        "teammetrics.main.load_jira_config", side_effect=ConfigurationError("no jira")
    ):
        orchestrate_report(roster_path, dashboard_factory=dashboard_factory, output_format="json")

    dashboard_factory.assert_called_once_with(GITHUB_CONFIG, None)


def test_orchestrate_report_single_source_requires_configuration(roster_path):
    """Verify a source requested on its own must be configured."""
    with patch("teammetrics.main.load_jira_config", side_effect=ConfigurationError("no jira")):
        with pytest.raises(ConfigurationError):
            orchestrate_report(roster_path, source="jira", dashboard_factory=Mock())


def test_orchestrate_report_unknown_team_raises(roster_path):
    """Verify an unknown team ID is a configuration error."""
    with pytest.raises(ConfigurationError):
        orchestrate_report(roster_path, team_id="ghost", dashboard_factory=Mock())


def test_orchestrate_report_raises_when_every_source_failed(roster_path):
    """Verify a refresh where every requested source errored raises TransientFetchError."""
    dashboard = Mock()
    dashboard.refresh.return_value = _snapshot(
        github=SourceResult(status=ERROR, error="gh down"),
        jira=SourceResult(status=ERROR, error="jira down"),
    )

    with patch("teammetrics.main.load_github_config", return_value=GITHUB_CONFIG), patch(
        "teammetrics.main.load_jira_config", return_value=JIRA_CONFIG
    ):
        with pytest.raises(TransientFetchError):
            orchestrate_report(roster_path, dashboard_factory=Mock(return_value=dashboard))


def test_main_success_prints_report(capsys):
    """Verify main returns 0 and prints the report."""
    with patch("teammetrics.main.orchestrate_report", return_value="REPORT") as orchestrate_mock:
        exit_code = main(["--roster", "peers.json", "--days", "7", "--source", "github"])

    assert exit_code == 0
    orchestrate_mock.assert_called_once_with(
        roster_path="peers.json",
        team_id=None,
        days=7,
        source="github",
        output_format="text",
        peer_id=None,
    )
    assert "REPORT" in capsys.readouterr().out


def test_main_configuration_error_returns_config_exit_code(capsys):
    """Verify configuration errors map to exit code 2."""
    with patch("teammetrics.main.orchestrate_report", side_effect=ConfigurationError("missing token")):
        exit_code = main(["--roster", "peers.json"])

    assert exit_code == 2
    assert "missing token" in capsys.readouterr().err


def test_main_fetch_error_returns_fetch_exit_code():
    """Verify fetch failures map to exit code 4."""
    with patch("teammetrics.main.orchestrate_report", side_effect=TransientFetchError("down", status_code=503)):
        assert main(["--roster", "peers.json"]) == 4


def test_main_unexpected_error_returns_generic_exit_code():
    """Verify unexpected errors map to exit code 1."""
    with patch("teammetrics.main.orchestrate_report", side_effect=RuntimeError("boom")):
        assert main(["--roster", "peers.json"]) == 1


def test_orchestrate_report_peer_drill_down_uses_detailed_refresh(roster_path):
    """Verify a peer drill-down refreshes only that peer, in detailed mode, with its team."""
    dashboard = Mock()
    dashboard.refresh.return_value = _snapshot(github=SourceResult(status=READY))

    with patch("teammetrics.main.load_github_config", return_value=GITHUB_CONFIG), patch(
        "teammetrics.main.load_jira_config", return_value=JIRA_CONFIG
    ), patch("teammetrics.main.generate_report", return_value="REPORT"):
        orchestrate_report(roster_path, peer_id="p1", dashboard_factory=Mock(return_value=dashboard))

    assert [peer.internal_id for peer in dashboard.refresh.call_args.args[0]] == ["p1"]
    assert dashboard.refresh.call_args.kwargs["detailed"] is True
    assert dashboard.refresh.call_args.kwargs["team"].id == "core"


def test_orchestrate_report_rejects_peer_outside_team(roster_path):
    """Verify a peer that is not a member of the requested team is a configuration error."""
    with pytest.raises(ConfigurationError):
        orchestrate_report(roster_path, team_id="core", peer_id="p2", dashboard_factory=Mock())


def test_check_sources_passes_team_project_and_reports_failures(roster_path):
    """Verify checks run for the team's peers and any failed check is reported."""
    checker = Mock(
        return_value=[
            CheckResult("github: authentication", True),
            CheckResult("jira: account x", False, "account not found"),
        ]
    )

    with patch("teammetrics.main.load_github_config", return_value=GITHUB_CONFIG), patch(
        "teammetrics.main.load_jira_config", return_value=JIRA_CONFIG
    ):
        report, passed = check_sources(roster_path, team_id="core", checker=checker)

    assert passed is False
    assert "[OK] github: authentication" in report
    assert "[FAILED] jira: account x - account not found" in report
    assert [peer.internal_id for peer in checker.call_args.args[0]] == ["p1"]
    assert checker.call_args.kwargs["project_key"] == "CORE"


def test_main_check_mode_exit_codes(capsys):
    """Verify --check prints its lines and exits 4 when any check failed."""
    with patch("teammetrics.main.check_sources", return_value=("[FAILED] github: authentication", False)):
        assert main(["--roster", "peers.json", "--check"]) == 4
    assert "[FAILED]" in capsys.readouterr().out

    with patch("teammetrics.main.check_sources", return_value=("[OK] github: authentication", True)):
        assert main(["--roster", "peers.json", "--check"]) == 0
