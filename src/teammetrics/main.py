"""Entry point for the team metrics aggregator."""

from __future__ import annotations

import json
import logging
import sys
from typing import Callable, List, Optional, Sequence, Tuple

from .checks import CheckResult, format_checks, run_checks
from .cli import parse_args
from .config import GitHubConfig, JiraConfig, load_github_config, load_jira_config
from .dashboard import ERROR, TeamDashboard
from .errors import ConfigurationError, TransientFetchError
from .identity import GITHUB, JIRA, SOURCES
from .models import PeerIdentity, Team
from .presentation import generate_report, snapshot_to_dict
from .roster import load_roster

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_FETCH_FAILED = 4


def _selected_sources(source: str) -> Tuple[str, ...]:
    return SOURCES if source == "all" else (source,)


def _load_configs(sources: Sequence[str]) -> Tuple[Optional[GitHubConfig], Optional[JiraConfig]]:
    """Load configuration for the requested sources.

    A source requested on its own must be configured. When both are requested
    a missing one is skipped, as long as the other is configured.

    Raises:
        ConfigurationError: If no requested source is configured.
    """
    loaders = {GITHUB: load_github_config, JIRA: load_jira_config}
    configs = {}
    errors: List[str] = []

    for source in sources:
        try:
            configs[source] = loaders[source]()
        except ConfigurationError as exc:
            if len(sources) == 1:
                raise
            logger.warning("Source not configured; skipping", extra={"source": source, "error": str(exc)})
            errors.append(str(exc))

    if not configs:
        raise ConfigurationError(" ".join(errors))

    return configs.get(GITHUB), configs.get(JIRA)


def _select_peers(
    roster_path: str,
    team_id: Optional[str],
    peer_id: Optional[str],
) -> Tuple[Optional[Team], List[PeerIdentity]]:
    """Resolve the team and peers a run covers.

    When only a peer is given, the peer's own team supplies the Jira project.

    Raises:
        ConfigurationError: If the roster is invalid or the team or peer is unknown.
    """
    roster = load_roster(roster_path)

    team = None
    peers = list(roster.peers)
    if team_id is not None:
        team = roster.team(team_id)
        if team is None:
            raise ConfigurationError(f"Unknown team '{team_id}' in roster '{roster_path}'.")
        peers = roster.members_of(team_id)

    if peer_id is not None:
        peer = roster.peer(peer_id)
        if peer is None or (team_id is not None and peer.team_id != team_id):
            scope = f"team '{team_id}'" if team_id is not None else f"roster '{roster_path}'"
            raise ConfigurationError(f"Unknown peer '{peer_id}' in {scope}.")
        if team is None and peer.team_id is not None:
            team = roster.team(peer.team_id)
        peers = [peer]

    return team, peers


def orchestrate_report(
    roster_path: str,
    team_id: Optional[str] = None,
    days: int = 30,
    source: str = "all",
    output_format: str = "text",
    peer_id: Optional[str] = None,
    dashboard_factory: Callable[[Optional[GitHubConfig], Optional[JiraConfig]], TeamDashboard] = TeamDashboard,
) -> str:
    """Run one refresh for a roster and render it.

    Args:
        roster_path: Path to the JSON roster.
        team_id: Team to report on; every roster peer when omitted.
        days: Lookback window in days.
        source: ``"github"``, ``"jira"`` or ``"all"``.
        output_format: ``"text"`` or ``"json"``.
        peer_id: Single peer to drill into, with per-PR detail lookups.
        dashboard_factory: Builds the dashboard from the loaded configuration.

    Returns:
        The rendered report.

    Raises:
        ConfigurationError: If the roster, team, peer or source configuration is invalid.
        TransientFetchError: If every requested source failed.
    """
    team, peers = _select_peers(roster_path, team_id, peer_id)

    sources = _selected_sources(source)
    github_config, jira_config = _load_configs(sources)

    dashboard = dashboard_factory(github_config, jira_config)
    snapshot = dashboard.refresh(
        peers,
        window_days=days,
        team=team,
        sources=sources,
        detailed=peer_id is not None,
    )

    results = [result for result in (snapshot.github, snapshot.jira) if result is not None]
    if results and all(result.status == ERROR for result in results):
        raise TransientFetchError("; ".join(result.error or "unknown error" for result in results))

    logger.info(
        "Generated team metrics report",
        extra={"team": team_id, "peer": peer_id, "peers": len(peers), "days": days, "sources": list(sources)},
    )

    if output_format == "json":
        return json.dumps(snapshot_to_dict(snapshot), indent=2)
    return generate_report(snapshot)


def check_sources(
    roster_path: str,
    team_id: Optional[str] = None,
    days: int = 30,
    source: str = "all",
    peer_id: Optional[str] = None,
    checker: Callable[..., List[CheckResult]] = run_checks,
) -> Tuple[str, bool]:
    """Check connections and roster identities for the requested sources.

    Returns:
        The rendered check lines and whether every check passed.

    Raises:
        ConfigurationError: If the roster, team, peer or source configuration is invalid.
    """
    team, peers = _select_peers(roster_path, team_id, peer_id)
    github_config, jira_config = _load_configs(_selected_sources(source))

    results = checker(
        peers,
        github_config,
        jira_config,
        project_key=team.jira_project_key if team else None,
        window_days=days,
    )
    return format_checks(results), all(result.ok for result in results)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.check:
            report, passed = check_sources(
                roster_path=args.roster,
                team_id=args.team,
                days=args.days,
                source=args.source,
                peer_id=args.peer,
            )
            print(report)
            return EXIT_OK if passed else EXIT_FETCH_FAILED

        report = orchestrate_report(
            roster_path=args.roster,
            team_id=args.team,
            days=args.days,
            source=args.source,
            output_format=args.output_format,
            peer_id=args.peer,
        )
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except TransientFetchError as exc:
        logger.error("Metrics fetch failed", extra={"error": str(exc)})
        print(f"ERROR: Failed to fetch metrics: {exc}", file=sys.stderr)
        return EXIT_FETCH_FAILED
    except Exception:
        logger.exception("Unexpected error while generating the team metrics report")
        return EXIT_UNEXPECTED

    print(report)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
