"""Identity reconciliation between internal peers and GitHub/Jira accounts.

A peer without a mapping for a source is not an error: it is excluded from
that source only, and reported back so the caller can show who is missing.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set

from .models import IdentityPartition, PeerIdentity

logger = logging.getLogger(__name__)

GITHUB = "github"
JIRA = "jira"
SOURCES = (GITHUB, JIRA)

_GITHUB_LOGIN_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9]|-(?=[A-Za-z0-9])){0,38}$")


def is_valid_github_login(value: str) -> bool:
    """Check GitHub username rules: 1-39 alphanumerics or single inner hyphens."""
    return bool(_GITHUB_LOGIN_PATTERN.match(value))


def _external_id(peer: PeerIdentity, source: str) -> Optional[str]:
    raw = peer.github_login if source == GITHUB else peer.jira_account_id
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def partition_identities(peers: Iterable[PeerIdentity], source: str) -> IdentityPartition:
    """Split peers into usable external identifiers and excluded peers.

    Identifiers are returned in first-seen order without duplicates. GitHub
    logins are compared case-insensitively; Jira account IDs exactly.

    Raises:
        ValueError: If ``source`` is not ``"github"`` or ``"jira"``.
    """
    if source not in SOURCES:
        raise ValueError(f"Unknown identity source '{source}'; expected one of {SOURCES}.")

    valid: List[str] = []
    excluded: List[PeerIdentity] = []
    seen: Set[str] = set()

    for peer in peers:
        identifier = _external_id(peer, source)
        if identifier is None:
            excluded.append(peer)
            continue

        if source == GITHUB and not is_valid_github_login(identifier):
            logger.warning(
                "Excluding peer with invalid GitHub login",
                extra={"peer_id": peer.internal_id, "github_login": identifier},
            )
            excluded.append(peer)
            continue

        dedupe_key = identifier.lower() if source == GITHUB else identifier
        if dedupe_key in seen:
            continue
        seen.add(dedupe_key)
        valid.append(identifier)

    if excluded:
        logger.info(
            "Peers excluded from source",
            extra={
                "source": source,
                "excluded": [peer.internal_id for peer in excluded],
                "valid_count": len(valid),
            },
        )

    return IdentityPartition(valid=valid, excluded=excluded)


def resolve_identities(peers: Iterable[PeerIdentity], source: str) -> List[str]:
    """Return the external identifiers for ``source``, silently dropping unmapped peers."""
    return partition_identities(peers, source).valid
