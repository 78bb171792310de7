"""Aggregation of fetched pull requests and issues into team summaries.

Everything here is a pure function of its inputs. Per-contributor statistics
are folded into an ``OrderedDict`` keyed by contributor so ties in the final
ranking keep first-seen order.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import (
    CategoryCount,
    GitHubTeamSummary,
    IssueContributor,
    IssueRecord,
    IssueTimelinePoint,
    JiraTeamSummary,
    MergeTimeBreakdown,
    PeerIdentity,
    PeerMetrics,
    PeerMetricsMap,
    PullRequestContributor,
    PullRequestRecord,
    PullRequestTimelinePoint,
    RecentPullRequest,
    Reviewer,
    SizeDistribution,
)
from .timeutils import window_dates

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = ("done", "closed", "resolved", "complete")

SMALL_PR_MAX_LINES = 50
MEDIUM_PR_MAX_LINES = 200
LARGE_PR_MAX_LINES = 500

FAST_MERGE_HOURS = 24
MEDIUM_MERGE_HOURS = 72

TOP_CONTRIBUTORS_LIMIT = 10
TOP_REVIEWERS_LIMIT = 5
RECENT_PRS_LIMIT = 10

UNASSIGNED = "unassigned"


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def merge_rate(merged: int, total: int) -> float:
    """Return merged PRs as a percentage of all PRs, or ``0.0`` when there are none."""
    if total <= 0:
        return 0.0
    return merged / total * 100


def hours_to_merge(record: PullRequestRecord) -> Optional[float]:
    if record.merged_at is None:
        return None
    return (record.merged_at - record.created_at).total_seconds() / 3600


def average_time_to_merge(records: Iterable[PullRequestRecord]) -> float:
    """Mean creation-to-merge time in hours.

    PRs without ``merged_at`` are left out of both the sum and the count.
    """
    durations = [hours for hours in (hours_to_merge(record) for record in records) if hours is not None]
    return _mean(durations)


def classify_pr_size(additions: int, deletions: int) -> str:
    """Bucket a PR by lines changed: small, medium, large or xlarge."""
    total_lines = additions + deletions
    if total_lines <= SMALL_PR_MAX_LINES:
        return "small"
    if total_lines <= MEDIUM_PR_MAX_LINES:
        return "medium"
    if total_lines <= LARGE_PR_MAX_LINES:
        return "large"
    return "xlarge"


def size_distribution(records: Iterable[PullRequestRecord]) -> SizeDistribution:
    distribution = SizeDistribution()
    for record in records:
        bucket = classify_pr_size(record.additions, record.deletions)
        setattr(distribution, bucket, getattr(distribution, bucket) + 1)
    return distribution


def merge_time_breakdown(records: Iterable[PullRequestRecord]) -> MergeTimeBreakdown:
    """Count merged PRs merged within a day, within three days, and later."""
    breakdown = MergeTimeBreakdown()
    for record in records:
        hours = hours_to_merge(record)
        if hours is None:
            continue
        if hours < FAST_MERGE_HOURS:
            breakdown.fast += 1
        elif hours < MEDIUM_MERGE_HOURS:
            breakdown.medium += 1
        else:
            breakdown.slow += 1
    return breakdown


def _identity_filter(identities: Optional[Iterable[str]], case_insensitive: bool) -> Optional[Set[str]]:
    if identities is None:
        return None
    return {
        (identity.strip().lower() if case_insensitive else identity.strip())
        for identity in identities
        if identity and identity.strip()
    }


def rank_pull_request_contributors(
    records: Iterable[PullRequestRecord],
    identities: Optional[Iterable[str]] = None,
    limit: int = TOP_CONTRIBUTORS_LIMIT,
) -> List[PullRequestContributor]:
    """Rank PR authors by PR count, keeping first-seen order on ties.

    Args:
        records: Pull requests to fold.
        identities: When given, only these GitHub logins (case-insensitive)
            can appear in the ranking.
        limit: Maximum number of contributors returned.
    """
    allowed = _identity_filter(identities, case_insensitive=True)
    folded: "OrderedDict[str, Dict[str, float]]" = OrderedDict()

    for record in records:
        author = record.author or "Unknown"
        if allowed is not None and author.lower() not in allowed:
            continue

        stats = folded.setdefault(
            author,
            {"prs": 0, "merged": 0, "open": 0, "additions": 0, "deletions": 0, "merge_hours": 0.0, "timed": 0},
        )
        stats["prs"] += 1
        stats["merged"] += 1 if record.state == "merged" else 0
        stats["open"] += 1 if record.state == "open" else 0
        stats["additions"] += record.additions
        stats["deletions"] += record.deletions

        hours = hours_to_merge(record)
        if hours is not None:
            stats["merge_hours"] += hours
            stats["timed"] += 1

    contributors = [
        PullRequestContributor(
            author=author,
            pr_count=int(stats["prs"]),
            merged_count=int(stats["merged"]),
            open_count=int(stats["open"]),
            additions=int(stats["additions"]),
            deletions=int(stats["deletions"]),
            avg_lines_changed=(stats["additions"] + stats["deletions"]) / stats["prs"],
            avg_merge_time=stats["merge_hours"] / stats["timed"] if stats["timed"] else 0.0,
        )
        for author, stats in folded.items()
    ]
    contributors.sort(key=lambda contributor: contributor.pr_count, reverse=True)
    return contributors[:limit]


def rank_reviewers(
    records: Iterable[PullRequestRecord],
    identities: Optional[Iterable[str]] = None,
    limit: int = TOP_REVIEWERS_LIMIT,
) -> List[Reviewer]:
    """Rank authors by review activity received on their PRs."""
    allowed = _identity_filter(identities, case_insensitive=True)
    folded: "OrderedDict[str, int]" = OrderedDict()

    for record in records:
        if record.review_comment_count <= 0:
            continue
        author = record.author or "Unknown"
        if allowed is not None and author.lower() not in allowed:
            continue
        folded[author] = folded.get(author, 0) + record.review_comment_count

    reviewers = [Reviewer(author=author, review_count=count) for author, count in folded.items()]
    reviewers.sort(key=lambda reviewer: reviewer.review_count, reverse=True)
    return reviewers[:limit]


def recent_pull_requests(records: Iterable[PullRequestRecord], limit: int = RECENT_PRS_LIMIT) -> List[RecentPullRequest]:
    ordered = sorted(records, key=lambda record: record.created_at, reverse=True)
    return [
        RecentPullRequest(
            number=record.number,
            title=record.title,
            url=record.url,
            state=record.state,
            merged=record.state == "merged",
            created_at=record.created_at,
            merged_at=record.merged_at,
            author=record.author or "Unknown",
            review_count=record.review_comment_count,
        )
        for record in ordered[:limit]
    ]


def build_pull_request_timeline(
    records: Iterable[PullRequestRecord],
    window_days: int,
    now: Optional[datetime] = None,
) -> List[PullRequestTimelinePoint]:
    """Build one point per day of the window for PRs created on that UTC day.

    Days without PRs are present with zero values.
    """
    by_day: Dict[str, List[PullRequestRecord]] = {}
    for record in records:
        by_day.setdefault(record.created_at.date().isoformat(), []).append(record)

    timeline: List[PullRequestTimelinePoint] = []
    for day in window_dates(window_days, now):
        key = day.isoformat()
        day_records = by_day.get(key, [])
        merged = sum(1 for record in day_records if record.state == "merged")
        reviewed = sum(1 for record in day_records if record.review_comment_count > 0)

        timeline.append(
            PullRequestTimelinePoint(
                date=key,
                pull_requests=len(day_records),
                merged=merged,
                merge_rate=merge_rate(merged, len(day_records)),
                code_changes=sum(record.lines_changed for record in day_records),
                contributors=len({record.author for record in day_records}),
                avg_merge_time=average_time_to_merge(day_records),
                review_coverage=merge_rate(reviewed, len(day_records)),
            )
        )
    return timeline


def summarize_pull_requests(
    records: Sequence[PullRequestRecord],
    identities: Optional[Iterable[str]] = None,
    window_days: int = 30,
    now: Optional[datetime] = None,
) -> GitHubTeamSummary:
    """Fold pull requests into a team summary.

    ``identities`` restricts the contributor and reviewer rankings only; the
    totals cover every record passed in.
    """
    identity_list = list(identities) if identities is not None else None

    total = len(records)
    merged = sum(1 for record in records if record.state == "merged")
    opened = sum(1 for record in records if record.state == "open")
    closed = sum(1 for record in records if record.state == "closed")

    total_additions = sum(record.additions for record in records)
    total_deletions = sum(record.deletions for record in records)
    total_review_comments = sum(record.review_comment_count for record in records)
    reviewed = sum(1 for record in records if record.review_comment_count > 0)

    summary = GitHubTeamSummary(
        total_prs=total,
        merged_prs=merged,
        open_prs=opened,
        closed_prs=closed,
        merge_rate=merge_rate(merged, total),
        avg_time_to_merge=average_time_to_merge(records),
        avg_lines_changed=(total_additions + total_deletions) / total if total else 0.0,
        avg_review_comments=total_review_comments / total if total else 0.0,
        total_additions=total_additions,
        total_deletions=total_deletions,
        review_participation=merge_rate(reviewed, total),
        top_contributors=rank_pull_request_contributors(records, identity_list),
        size_distribution=size_distribution(records),
        merge_time_breakdown=merge_time_breakdown(records),
        top_reviewers=rank_reviewers(records, identity_list),
        recent_prs=recent_pull_requests(records),
        timeline=build_pull_request_timeline(records, window_days, now),
    )

    logger.debug(
        "Summarized pull requests",
        extra={"total_prs": total, "merged_prs": merged, "window_days": window_days},
    )
    return summary


def is_issue_completed(status: str) -> bool:
    return status.strip().lower() in COMPLETED_STATUSES


def cycle_time_days(issue: IssueRecord) -> Optional[float]:
    """Creation-to-resolution time in days, or ``None`` if unresolved."""
    if issue.resolved is None:
        return None
    return (issue.resolved - issue.created).total_seconds() / 86400


def _count_by(values: Iterable[str], completed_flags: Optional[Iterable[bool]] = None) -> List[CategoryCount]:
    folded: "OrderedDict[str, CategoryCount]" = OrderedDict()
    flags = iter(completed_flags) if completed_flags is not None else None
    for value in values:
        category = folded.setdefault(value, CategoryCount(name=value, count=0))
        category.count += 1
        if flags is not None and next(flags):
            category.completed += 1
    return list(folded.values())


def rank_issue_contributors(
    records: Iterable[IssueRecord],
    identities: Optional[Iterable[str]] = None,
    limit: int = TOP_CONTRIBUTORS_LIMIT,
) -> List[IssueContributor]:
    """Rank assignees by completed issues, keeping first-seen order on ties.

    Args:
        records: Issues to fold.
        identities: When given, only these Jira account IDs can appear.
        limit: Maximum number of contributors returned.
    """
    allowed = _identity_filter(identities, case_insensitive=False)
    folded: "OrderedDict[str, Dict[str, object]]" = OrderedDict()

    for issue in records:
        assignee = issue.assignee_id or issue.assignee_name or UNASSIGNED
        if allowed is not None and assignee not in allowed:
            continue

        stats = folded.setdefault(
            assignee,
            {"display_name": "Unassigned", "completed": 0, "points": 0.0, "cycle_days": 0.0, "timed": 0},
        )
        if issue.assignee_name:
            stats["display_name"] = issue.assignee_name
        elif assignee != UNASSIGNED:
            stats["display_name"] = assignee

        if not is_issue_completed(issue.status):
            continue

        stats["completed"] = int(stats["completed"]) + 1
        stats["points"] = float(stats["points"]) + (issue.story_points or 0.0)
        days = cycle_time_days(issue)
        if days is not None and days > 0:
            stats["cycle_days"] = float(stats["cycle_days"]) + days
            stats["timed"] = int(stats["timed"]) + 1

    contributors = [
        IssueContributor(
            assignee=assignee,
            display_name=str(stats["display_name"]),
            issues_completed=int(stats["completed"]),
            story_points=float(stats["points"]),
            avg_cycle_time=float(stats["cycle_days"]) / int(stats["timed"]) if stats["timed"] else 0.0,
        )
        for assignee, stats in folded.items()
    ]
    contributors.sort(key=lambda contributor: contributor.issues_completed, reverse=True)
    return contributors[:limit]


def build_issue_timeline(
    records: Iterable[IssueRecord],
    window_days: int,
    now: Optional[datetime] = None,
) -> List[IssueTimelinePoint]:
    """Build one point per day of the window for completed issues resolved that UTC day."""
    by_day: Dict[str, List[IssueRecord]] = {}
    for issue in records:
        if issue.resolved is None or not is_issue_completed(issue.status):
            continue
        by_day.setdefault(issue.resolved.date().isoformat(), []).append(issue)

    timeline: List[IssueTimelinePoint] = []
    for day in window_dates(window_days, now):
        key = day.isoformat()
        day_issues = by_day.get(key, [])
        timeline.append(
            IssueTimelinePoint(
                date=key,
                completed=len(day_issues),
                story_points=sum(issue.story_points or 0.0 for issue in day_issues),
            )
        )
    return timeline


def summarize_issues(
    records: Sequence[IssueRecord],
    identities: Optional[Iterable[str]] = None,
    window_days: int = 30,
    now: Optional[datetime] = None,
) -> JiraTeamSummary:
    """Fold Jira issues into a team summary.

    Completion is decided by status name (done, closed, resolved, complete).
    Cycle time runs from creation to resolution of completed issues; lead time
    does the same for every resolved issue whatever its final status.
    """
    completed_flags = [is_issue_completed(issue.status) for issue in records]
    completed = [issue for issue, done in zip(records, completed_flags) if done]

    issues_by_type = _count_by((issue.issue_type for issue in records), completed_flags)
    completed_by_type = {category.name: category.completed for category in issues_by_type}

    cycle_times = [days for days in (cycle_time_days(issue) for issue in completed) if days is not None]
    lead_times = [days for days in (cycle_time_days(issue) for issue in records) if days is not None]

    summary = JiraTeamSummary(
        total_issues=len(records),
        stories_completed=completed_by_type.get("Story", 0),
        bugs_fixed=completed_by_type.get("Bug", 0),
        tasks_completed=completed_by_type.get("Task", 0),
        spikes_completed=completed_by_type.get("Spike", 0),
        story_points=sum(issue.story_points or 0.0 for issue in completed),
        avg_cycle_time=_mean(cycle_times),
        avg_lead_time=_mean(lead_times),
        issues_by_type=issues_by_type,
        issues_by_status=_count_by(issue.status for issue in records),
        issues_by_priority=_count_by(issue.priority for issue in records),
        top_contributors=rank_issue_contributors(records, identities),
        timeline=build_issue_timeline(records, window_days, now),
    )

    logger.debug(
        "Summarized issues",
        extra={"total_issues": len(records), "completed": len(completed), "window_days": window_days},
    )
    return summary


def _latest(current: Optional[datetime], *candidates: Optional[datetime]) -> Optional[datetime]:
    for candidate in candidates:
        if candidate is not None and (current is None or candidate > current):
            current = candidate
    return current


def summarize_peers(
    peers: Iterable[PeerIdentity],
    pull_requests: Iterable[PullRequestRecord],
    issues: Iterable[IssueRecord],
) -> PeerMetricsMap:
    """Slice team-wide records into per-peer metrics keyed by internal ID.

    Peers appear in input order. A peer without a mapping for a source gets
    zero counts for it.
    """
    metrics: PeerMetricsMap = OrderedDict()
    by_login: Dict[str, PeerMetrics] = {}
    by_account: Dict[str, PeerMetrics] = {}

    for peer in peers:
        peer_metrics = metrics.setdefault(peer.internal_id, PeerMetrics(peer_id=peer.internal_id))
        login = (peer.github_login or "").strip().lower()
        account_id = (peer.jira_account_id or "").strip()
        if login:
            by_login.setdefault(login, peer_metrics)
        if account_id:
            by_account.setdefault(account_id, peer_metrics)

    for record in pull_requests:
        peer_metrics = by_login.get(record.author.lower())
        if peer_metrics is None:
            continue
        peer_metrics.pull_requests += 1
        if record.state == "merged":
            peer_metrics.merged_pull_requests += 1
        peer_metrics.last_active = _latest(
            peer_metrics.last_active, record.created_at, record.merged_at, record.updated_at
        )

    for issue in issues:
        peer_metrics = by_account.get(issue.assignee_id or "")
        if peer_metrics is None:
            continue
        if is_issue_completed(issue.status):
            peer_metrics.issues_completed += 1
            peer_metrics.story_points += issue.story_points or 0.0
        peer_metrics.last_active = _latest(peer_metrics.last_active, issue.updated, issue.resolved)

    return metrics
