"""KPI cards, JSON-ready mappings and text reports for team summaries.

This module provides utilities for:
- Turning GitHub and Jira summaries into labelled KPI cards.
- Converting summaries and snapshots into camelCase dictionaries.
- Formatting hour, day and percentage values for display.
- Building a human-readable report for a dashboard snapshot.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from .dashboard import DashboardSnapshot, SourceResult
from .models import GitHubTeamSummary, JiraTeamSummary

# Keys whose generic camelCase form would read "Prs" instead of "PRs".
_CAMEL_CASE_OVERRIDES = {
    "total_prs": "totalPRs",
    "merged_prs": "mergedPRs",
    "open_prs": "openPRs",
    "closed_prs": "closedPRs",
    "recent_prs": "recentPRs",
    "pr_count": "prCount",
}


@dataclass(frozen=True)
class KpiCard:
    """One headline metric ready for display."""

    key: str
    label: str
    value: float
    unit: str = ""

    @property
    def display_value(self) -> str:
        if self.unit == "%":
            return format_percent(self.value)
        if self.unit == "h":
            return format_hours(self.value)
        if self.unit == "d":
            return format_days(self.value)
        if float(self.value).is_integer():
            return str(int(self.value))
        return f"{self.value:.1f}"


def format_hours(hours: Optional[float]) -> str:
    """Format a duration in hours as ``<1h``, ``Nh`` or ``Nd Mh``.

    Args:
        hours: Duration in hours.

    Returns:
        ``"n/a"`` when ``hours`` is ``None``; otherwise a compact duration.
    """
    if hours is None:
        return "n/a"
    if hours < 1:
        return "<1h"
    if hours < 24:
        return f"{round(hours)}h"

    days = int(hours // 24)
    remaining_hours = round(hours % 24)
    if remaining_hours == 24:
        days, remaining_hours = days + 1, 0
    return f"{days}d {remaining_hours}h" if remaining_hours else f"{days}d"


def format_days(days: Optional[float]) -> str:
    if days is None:
        return "n/a"
    return f"{days:.1f}d"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value:.1f}%"


def github_kpi_cards(summary: GitHubTeamSummary) -> List[KpiCard]:
    return [
        KpiCard("total_prs", "Pull Requests", summary.total_prs),
        KpiCard("merge_rate", "Merge Rate", summary.merge_rate, "%"),
        KpiCard("avg_time_to_merge", "Avg Time to Merge", summary.avg_time_to_merge, "h"),
        KpiCard("avg_lines_changed", "Avg Lines Changed", summary.avg_lines_changed),
        KpiCard("review_participation", "Review Coverage", summary.review_participation, "%"),
        KpiCard("avg_review_comments", "Avg Review Comments", summary.avg_review_comments),
    ]


def jira_kpi_cards(summary: JiraTeamSummary) -> List[KpiCard]:
    return [
        KpiCard("total_issues", "Issues", summary.total_issues),
        KpiCard("stories_completed", "Stories Completed", summary.stories_completed),
        KpiCard("bugs_fixed", "Bugs Fixed", summary.bugs_fixed),
        KpiCard("story_points", "Story Points", summary.story_points, "pts"),
        KpiCard("avg_cycle_time", "Avg Cycle Time", summary.avg_cycle_time, "d"),
        KpiCard("avg_lead_time", "Avg Lead Time", summary.avg_lead_time, "d"),
    ]


def to_camel_case(name: str) -> str:
    if name in _CAMEL_CASE_OVERRIDES:
        return _CAMEL_CASE_OVERRIDES[name]
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _to_json_ready(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            to_camel_case(item.name): _to_json_ready(getattr(value, item.name))
            for item in dataclasses.fields(value)
        }
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _to_json_ready(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_ready(item) for item in value]
    if isinstance(value, Exception):
        return str(value)
    return value


def summary_to_dict(summary: Union[GitHubTeamSummary, JiraTeamSummary]) -> Dict[str, Any]:
    """Convert a summary into a camelCase mapping (``totalPRs``, ``mergeRate``, ...)."""
    return _to_json_ready(summary)


def _source_to_dict(result: Optional[SourceResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {
        "status": result.status,
        "strategy": result.strategy,
        "error": result.error,
        "excludedPeers": [peer.internal_id for peer in result.excluded_peers],
        "partialFailures": [str(failure) for failure in result.partial_failures],
        "summary": summary_to_dict(result.summary) if result.summary is not None else None,
    }


def snapshot_to_dict(snapshot: DashboardSnapshot) -> Dict[str, Any]:
    """Convert a dashboard snapshot into a JSON-ready mapping.

    Raw fetched records are left out; only summaries and per-peer metrics are kept.
    """
    return {
        "generation": snapshot.generation,
        "generatedAt": snapshot.generated_at.isoformat(),
        "windowDays": snapshot.window_days,
        "team": _to_json_ready(snapshot.team),
        "github": _source_to_dict(snapshot.github),
        "jira": _source_to_dict(snapshot.jira),
        "peers": _to_json_ready(list(snapshot.peers.values())),
    }


def _source_header(title: str, result: SourceResult) -> List[str]:
    lines = [title, f"   Status: {result.status}"]
    if result.error:
        lines.append(f"   Error: {result.error}")
    if result.excluded_peers:
        excluded = ", ".join(peer.name or peer.internal_id for peer in result.excluded_peers)
        lines.append(f"   Excluded (no mapped identity): {excluded}")
    for failure in result.partial_failures:
        lines.append(f"   Skipped: {failure}")
    return lines


def _card_lines(cards: List[KpiCard]) -> List[str]:
    return [f"   {card.label}: {card.display_value}" for card in cards]


def generate_report(snapshot: DashboardSnapshot) -> str:
    """Generate a human-readable report for a dashboard snapshot.

    The report lists each requested source with its status, KPI cards and
    top contributors, then one line per peer.

    Args:
        snapshot: Snapshot returned by :meth:`TeamDashboard.refresh`.

    Returns:
        Formatted multi-line text report.
    """
    team_name = snapshot.team.name if snapshot.team else "All peers"
    lines = [
        f"Team: {team_name}",
        f"Team Metrics Report (last {snapshot.window_days} days)",
    ]

    if snapshot.github is not None:
        lines.append("")
        lines.extend(_source_header("GitHub Pull Requests", snapshot.github))
        summary = snapshot.github.summary
        if isinstance(summary, GitHubTeamSummary):
            lines.extend(_card_lines(github_kpi_cards(summary)))
            distribution = summary.size_distribution
            lines.append(
                f"   Sizes: small={distribution.small} medium={distribution.medium}"
                f" large={distribution.large} xlarge={distribution.xlarge}"
            )
            for contributor in summary.top_contributors:
                lines.append(
                    f"   - {contributor.author}: {contributor.pr_count} PRs,"
                    f" {contributor.merged_count} merged"
                )

    if snapshot.jira is not None:
        lines.append("")
        lines.extend(_source_header("Jira Issues", snapshot.jira))
        summary = snapshot.jira.summary
        if isinstance(summary, JiraTeamSummary):
            lines.extend(_card_lines(jira_kpi_cards(summary)))
            for contributor in summary.top_contributors:
                lines.append(
                    f"   - {contributor.display_name}: {contributor.issues_completed} completed,"
                    f" {contributor.story_points:g} pts"
                )

    if snapshot.peers:
        lines.append("")
        lines.append("Peers")
        for metrics in snapshot.peers.values():
            last_active = metrics.last_active.date().isoformat() if metrics.last_active else "n/a"
            lines.append(
                f"   {metrics.peer_id}: PRs={metrics.pull_requests} merged={metrics.merged_pull_requests}"
                f" issues={metrics.issues_completed} points={metrics.story_points:g}"
                f" last active={last_active}"
            )

    return "\n".join(lines)
