"""Team dashboard service: refreshes both sources and publishes snapshots.

Each refresh builds short-lived clients from the configuration it was given.
GitHub and Jira are refreshed independently, so one failing source is reported
in its own ``SourceResult`` while the other still produces a summary.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from .aggregator import summarize_issues, summarize_peers, summarize_pull_requests
from .config import GitHubConfig, JiraConfig, validate_window_days
from .errors import TeamMetricsError
from .github_client import GitHubClient
from .identity import GITHUB, JIRA, SOURCES, partition_identities
from .jira_client import JiraClient
from .models import GitHubTeamSummary, JiraTeamSummary, PeerIdentity, PeerMetricsMap, Team
from .orchestrator import fetch_peer_pull_requests, fetch_team_issues, fetch_team_pull_requests
from .timeutils import utc_now

logger = logging.getLogger(__name__)

READY = "ready"
NOT_CONFIGURED = "not_configured"
NO_DATA = "no_data"
ERROR = "error"


@dataclass(slots=True)
class SourceResult:
    """Outcome of refreshing one source.

    ``excluded_peers`` lists peers with no usable identity for the source, and
    ``partial_failures`` holds per-repository failures that were skipped.
    """

    status: str
    summary: Optional[Union[GitHubTeamSummary, JiraTeamSummary]] = None
    error: Optional[str] = None
    excluded_peers: List[PeerIdentity] = field(default_factory=list)
    partial_failures: List[Exception] = field(default_factory=list)
    records: List[Any] = field(default_factory=list)
    strategy: Optional[str] = None


@dataclass(slots=True)
class DashboardSnapshot:
    """Everything one refresh produced. A source not requested is ``None``."""

    generation: int
    generated_at: datetime
    window_days: int
    team: Optional[Team]
    github: Optional[SourceResult]
    jira: Optional[SourceResult]
    peers: PeerMetricsMap


class TeamDashboard:
    """Refreshes team metrics and keeps the latest published snapshot."""

    def __init__(
        self,
        github_config: Optional[GitHubConfig],
        jira_config: Optional[JiraConfig],
        github_client_factory: Callable[[GitHubConfig], GitHubClient] = GitHubClient,
        jira_client_factory: Callable[[JiraConfig], JiraClient] = JiraClient,
    ) -> None:
        self._github_config = github_config
        self._jira_config = jira_config
        self._github_client_factory = github_client_factory
        self._jira_client_factory = jira_client_factory

        self._lock = threading.Lock()
        self._generation = 0
        self._latest: Optional[DashboardSnapshot] = None

    @property
    def latest(self) -> Optional[DashboardSnapshot]:
        with self._lock:
            return self._latest

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def _publish(self, snapshot: DashboardSnapshot) -> DashboardSnapshot:
        """Publish ``snapshot`` unless a newer refresh already published."""
        with self._lock:
            if self._latest is not None and snapshot.generation < self._latest.generation:
                logger.info(
                    "Discarding stale dashboard refresh",
                    extra={"generation": snapshot.generation, "latest": self._latest.generation},
                )
                return self._latest
            self._latest = snapshot
            return snapshot

    def refresh(
        self,
        peers: Iterable[PeerIdentity],
        window_days: int = 30,
        team: Optional[Team] = None,
        sources: Sequence[str] = SOURCES,
        now: Optional[datetime] = None,
        detailed: bool = False,
    ) -> DashboardSnapshot:
        """Fetch and summarize both sources for ``peers``.

        Args:
            peers: Team members to report on.
            window_days: Lookback window in days.
            team: Optional team, whose Jira project overrides the configured one.
            sources: Which of ``"github"`` and ``"jira"`` to refresh.
            now: End of the window; defaults to the current UTC time.
            detailed: Fetch each GitHub login separately with line and review
                counts instead of one team-wide query.

        Returns:
            This refresh's snapshot, or the newer snapshot published while it
            was running.

        Raises:
            ConfigurationError: If ``window_days`` is not positive.
        """
        validate_window_days(window_days)
        generation = self._next_generation()
        now = now or utc_now()
        peer_list = list(peers)

        github = self._refresh_github(peer_list, window_days, now, detailed) if GITHUB in sources else None
        jira = self._refresh_jira(peer_list, window_days, team, now) if JIRA in sources else None

        snapshot = DashboardSnapshot(
            generation=generation,
            generated_at=now,
            window_days=window_days,
            team=team,
            github=github,
            jira=jira,
            peers=summarize_peers(
                peer_list,
                github.records if github else [],
                jira.records if jira else [],
            ),
        )
        return self._publish(snapshot)

    def _refresh_github(
        self,
        peers: List[PeerIdentity],
        window_days: int,
        now: datetime,
        detailed: bool = False,
    ) -> SourceResult:
        if self._github_config is None:
            return SourceResult(status=NOT_CONFIGURED, error="GitHub is not configured.")
        if not self._github_config.repositories:
            return SourceResult(status=NOT_CONFIGURED, error="No GitHub repositories are configured.")

        partition = partition_identities(peers, GITHUB)
        if not partition.valid:
            return SourceResult(status=NO_DATA, excluded_peers=partition.excluded)

        try:
            client = self._github_client_factory(self._github_config)
            fetch = fetch_peer_pull_requests if detailed else fetch_team_pull_requests
            fetched = fetch(
                client,
                self._github_config.repositories,
                partition.valid,
                window_days=window_days,
                now=now,
            )
        except TeamMetricsError as exc:
            logger.error("GitHub refresh failed", extra={"error": str(exc)})
            return SourceResult(status=ERROR, error=str(exc), excluded_peers=partition.excluded)

        return SourceResult(
            status=READY if fetched.records else NO_DATA,
            summary=summarize_pull_requests(fetched.records, partition.valid, window_days, now),
            excluded_peers=partition.excluded,
            partial_failures=fetched.partial_failures,
            records=list(fetched.records),
            strategy=fetched.strategy,
        )

    def _refresh_jira(
        self,
        peers: List[PeerIdentity],
        window_days: int,
        team: Optional[Team],
        now: datetime,
    ) -> SourceResult:
        if self._jira_config is None:
            return SourceResult(status=NOT_CONFIGURED, error="Jira is not configured.")

        project_key = (team.jira_project_key if team else None) or self._jira_config.project_key
        if not project_key:
            return SourceResult(status=NOT_CONFIGURED, error="No Jira project is configured for this team.")

        partition = partition_identities(peers, JIRA)
        if not partition.valid:
            return SourceResult(status=NO_DATA, excluded_peers=partition.excluded)

        try:
            client = self._jira_client_factory(self._jira_config)
            fetched = fetch_team_issues(client, project_key, partition.valid, window_days=window_days)
        except TeamMetricsError as exc:
            logger.error("Jira refresh failed", extra={"error": str(exc), "project": project_key})
            return SourceResult(status=ERROR, error=str(exc), excluded_peers=partition.excluded)

        return SourceResult(
            status=READY if fetched.records else NO_DATA,
            summary=summarize_issues(fetched.records, partition.valid, window_days, now),
            excluded_peers=partition.excluded,
            records=list(fetched.records),
        )
