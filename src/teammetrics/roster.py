"""Loading of the team and peer roster from a JSON file.

Expected shape::

    {
      "teams": [{"id": "core", "name": "Core", "jiraProjectKey": "CORE"}],
      "peers": [{"id": "p1", "name": "Ada", "teamId": "core",
                 "githubUsername": "ada", "jiraAccountId": "5b10..."}]
    }

Keys may be camelCase or snake_case.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ConfigurationError
from .models import PeerIdentity, Team

logger = logging.getLogger(__name__)

_PEER_ID_KEYS = ("id", "internalId", "internal_id")
_GITHUB_KEYS = ("githubUsername", "github_username", "githubLogin", "github_login")
_JIRA_KEYS = ("jiraAccountId", "jira_account_id")
_TEAM_ID_KEYS = ("teamId", "team_id")
_PROJECT_KEYS = ("jiraProjectKey", "jira_project_key")


@dataclass(frozen=True)
class Roster:
    teams: Tuple[Team, ...]
    peers: Tuple[PeerIdentity, ...]

    def team(self, team_id: str) -> Optional[Team]:
        for team in self.teams:
            if team.id == team_id:
                return team
        return None

    def peer(self, peer_id: str) -> Optional[PeerIdentity]:
        for peer in self.peers:
            if peer.internal_id == peer_id:
                return peer
        return None

    def members_of(self, team_id: str) -> List[PeerIdentity]:
        return [peer for peer in self.peers if peer.team_id == team_id]


def _first(entry: Dict[str, Any], keys: Tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = entry.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _parse_team(entry: Any, index: int) -> Team:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Invalid roster: team #{index} must be an object.")
    team_id = _first(entry, ("id",))
    if team_id is None:
        raise ConfigurationError(f"Invalid roster: team #{index} is missing 'id'.")
    return Team(
        id=team_id,
        name=_first(entry, ("name",)) or team_id,
        jira_project_key=_first(entry, _PROJECT_KEYS),
    )


def _parse_peer(entry: Any, index: int) -> PeerIdentity:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Invalid roster: peer #{index} must be an object.")
    peer_id = _first(entry, _PEER_ID_KEYS)
    if peer_id is None:
        raise ConfigurationError(f"Invalid roster: peer #{index} is missing 'id'.")
    return PeerIdentity(
        internal_id=peer_id,
        github_login=_first(entry, _GITHUB_KEYS),
        jira_account_id=_first(entry, _JIRA_KEYS),
        name=_first(entry, ("name",)),
        team_id=_first(entry, _TEAM_ID_KEYS),
    )


def parse_roster(payload: Any) -> Roster:
    """Build a roster from decoded JSON.

    Raises:
        ConfigurationError: If the payload is not an object with list-valued
            ``teams``/``peers`` or an entry lacks an ``id``.
    """
    if not isinstance(payload, dict):
        raise ConfigurationError("Invalid roster: expected a JSON object with 'teams' and 'peers'.")

    teams = payload.get("teams", [])
    peers = payload.get("peers", [])
    if not isinstance(teams, list) or not isinstance(peers, list):
        raise ConfigurationError("Invalid roster: 'teams' and 'peers' must be lists.")

    return Roster(
        teams=tuple(_parse_team(entry, index) for index, entry in enumerate(teams)),
        peers=tuple(_parse_peer(entry, index) for index, entry in enumerate(peers)),
    )


def load_roster(path: Union[str, Path]) -> Roster:
    """Read and parse a roster file.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid JSON, or
            does not have the roster shape.
    """
    roster_path = Path(path)
    try:
        payload = json.loads(roster_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Unable to read roster file '{roster_path}': {exc}") from exc
    except ValueError as exc:
        raise ConfigurationError(f"Roster file '{roster_path}' is not valid JSON: {exc}") from exc

    roster = parse_roster(payload)
    logger.info(
        "Loaded roster",
        extra={"path": str(roster_path), "teams": len(roster.teams), "peers": len(roster.peers)},
    )
    return roster
