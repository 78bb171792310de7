"""Domain models for team metrics aggregation.

Fetched records are frozen: they are rebuilt from the APIs on every refresh and
never mutated afterwards. Summary dataclasses define the field names the
presentation layer depends on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .errors import ConfigurationError

PR_STATES = ("open", "merged", "closed")


@dataclass(frozen=True, slots=True)
class PeerIdentity:
    """An internal team member and the external identities mapped to them."""

    internal_id: str
    github_login: Optional[str] = None
    jira_account_id: Optional[str] = None
    name: Optional[str] = None
    team_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Team:
    """A group of peers, optionally bound to one Jira project."""

    id: str
    name: str
    jira_project_key: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    """A GitHub repository identified by owner and name."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "RepositoryRef":
        """Parse an ``owner/name`` string.

        Raises:
            ConfigurationError: If the value is not exactly two non-empty parts.
        """
        parts = [part.strip() for part in value.strip().split("/")]
        if len(parts) != 2 or not all(parts):
            raise ConfigurationError(
                f"Invalid repository '{value}': expected the 'owner/name' format."
            )
        return cls(owner=parts[0], name=parts[1])


@dataclass(frozen=True, slots=True)
class PullRequestRecord:
    """The pull request fields needed for team metrics."""

    id: str
    title: str
    state: str
    author: str
    created_at: datetime
    merged_at: Optional[datetime]
    additions: int
    deletions: int
    review_comment_count: int
    repository: str
    number: Optional[int] = None
    url: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions


@dataclass(frozen=True, slots=True)
class IssueRecord:
    """The Jira issue fields needed for team metrics."""

    id: str
    key: str
    issue_type: str
    status: str
    priority: str
    assignee_id: Optional[str]
    assignee_name: Optional[str]
    created: datetime
    resolved: Optional[datetime]
    story_points: Optional[float]
    project: str
    summary: Optional[str] = None
    updated: Optional[datetime] = None


@dataclass(slots=True)
class IdentityPartition:
    """External identifiers usable for one source plus the peers left out."""

    valid: List[str]
    excluded: List[PeerIdentity]


@dataclass(slots=True)
class PullRequestFetchResult:
    """Pull requests gathered for a team by one fetch strategy."""

    records: List[PullRequestRecord]
    total_count: int
    merged_count: int
    open_count: int
    strategy: str = "none"
    partial_failures: List[Exception] = field(default_factory=list)


@dataclass(slots=True)
class IssueFetchResult:
    """Issues returned by a Jira search.

    ``total_count`` is the server-reported total, which can be larger than the
    number of records on the first page.
    """

    records: List[IssueRecord]
    total_count: int


@dataclass(slots=True)
class SizeDistribution:
    small: int = 0
    medium: int = 0
    large: int = 0
    xlarge: int = 0


@dataclass(slots=True)
class MergeTimeBreakdown:
    fast: int = 0
    medium: int = 0
    slow: int = 0


@dataclass(slots=True)
class PullRequestContributor:
    """Per-author pull request statistics."""

    author: str
    pr_count: int
    merged_count: int
    open_count: int
    additions: int
    deletions: int
    avg_lines_changed: float
    avg_merge_time: float


@dataclass(slots=True)
class Reviewer:
    author: str
    review_count: int


@dataclass(slots=True)
class RecentPullRequest:
    number: Optional[int]
    title: str
    url: Optional[str]
    state: str
    merged: bool
    created_at: datetime
    merged_at: Optional[datetime]
    author: str
    review_count: int


@dataclass(slots=True)
class PullRequestTimelinePoint:
    """Pull request activity for PRs created on one calendar day."""

    date: str
    pull_requests: int
    merged: int
    merge_rate: float
    code_changes: int
    contributors: int
    avg_merge_time: float
    review_coverage: float


@dataclass(slots=True)
class GitHubTeamSummary:
    """Aggregated pull request metrics for a team."""

    total_prs: int
    merged_prs: int
    open_prs: int
    closed_prs: int
    merge_rate: float
    avg_time_to_merge: float
    avg_lines_changed: float
    avg_review_comments: float
    total_additions: int
    total_deletions: int
    review_participation: float
    top_contributors: List[PullRequestContributor]
    size_distribution: SizeDistribution
    merge_time_breakdown: MergeTimeBreakdown
    top_reviewers: List[Reviewer]
    recent_prs: List[RecentPullRequest]
    timeline: List[PullRequestTimelinePoint]


@dataclass(slots=True)
class CategoryCount:
    """Issue count for one type, status or priority value."""

    name: str
    count: int
    completed: int = 0


@dataclass(slots=True)
class IssueContributor:
    """Per-assignee issue statistics."""

    assignee: str
    display_name: str
    issues_completed: int
    story_points: float
    avg_cycle_time: float


@dataclass(slots=True)
class IssueTimelinePoint:
    """Issues resolved on one calendar day."""

    date: str
    completed: int
    story_points: float


@dataclass(slots=True)
class JiraTeamSummary:
    """Aggregated Jira issue metrics for a team."""

    total_issues: int
    stories_completed: int
    bugs_fixed: int
    tasks_completed: int
    spikes_completed: int
    story_points: float
    avg_cycle_time: float
    avg_lead_time: float
    issues_by_type: List[CategoryCount]
    issues_by_status: List[CategoryCount]
    issues_by_priority: List[CategoryCount]
    top_contributors: List[IssueContributor]
    timeline: List[IssueTimelinePoint]


@dataclass(slots=True)
class PeerMetrics:
    """One peer's slice of the team-wide records."""

    peer_id: str
    pull_requests: int = 0
    merged_pull_requests: int = 0
    issues_completed: int = 0
    story_points: float = 0.0
    last_active: Optional[datetime] = None


PeerMetricsMap = Dict[str, PeerMetrics]
