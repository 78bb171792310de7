"""Tests for identity reconciliation between peers and external accounts."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from teammetrics.identity import (
    GITHUB,
    JIRA,
    is_valid_github_login,
    partition_identities,
    resolve_identities,
)
from teammetrics.models import PeerIdentity


def _peer(internal_id: str, github_login=None, jira_account_id=None) -> PeerIdentity:
    return PeerIdentity(internal_id=internal_id, github_login=github_login, jira_account_id=jira_account_id)


def test_partition_identities_splits_mapped_and_unmapped_peers():
    """Verify peers without a GitHub login are reported as excluded, not dropped."""
    peers = [_peer("p1", "alice"), _peer("p2"), _peer("p3", "bob")]

    partition = partition_identities(peers, GITHUB)

    assert partition.valid == ["alice", "bob"]
    assert [peer.internal_id for peer in partition.excluded] == ["p2"]


def test_partition_identities_treats_blank_values_as_absent():
    """Verify whitespace-only identifiers count as missing mappings."""
    peers = [_peer("p1", "   "), _peer("p2", jira_account_id=""), _peer("p3", " carol ")]

    github = partition_identities(peers, GITHUB)
    jira = partition_identities(peers, JIRA)

    assert github.valid == ["carol"]
    assert [peer.internal_id for peer in github.excluded] == ["p1", "p2"]
    assert jira.valid == []
    assert len(jira.excluded) == 3


def test_partition_identities_dedupes_github_logins_case_insensitively():
    """Verify duplicate logins keep the first spelling and first-seen order."""
    peers = [_peer("p1", "Alice"), _peer("p2", "bob"), _peer("p3", "alice")]

    partition = partition_identities(peers, GITHUB)

    assert partition.valid == ["Alice", "bob"]
    assert partition.excluded == []


def test_partition_identities_keeps_jira_ids_case_sensitive():
    """Verify Jira account IDs are compared exactly."""
    peers = [_peer("p1", jira_account_id="abc"), _peer("p2", jira_account_id="ABC")]

    assert partition_identities(peers, JIRA).valid == ["abc", "ABC"]


def test_partition_identities_excludes_invalid_github_logins():
    """Verify logins that GitHub would reject never reach the query."""
    peers = [_peer("p1", "bad login"), _peer("p2", "-leading"), _peer("p3", "good-one")]

    partition = partition_identities(peers, GITHUB)

    assert partition.valid == ["good-one"]
    assert [peer.internal_id for peer in partition.excluded] == ["p1", "p2"]


def test_partition_identities_rejects_unknown_source():
    """Verify an unknown source name raises ValueError."""
    with pytest.raises(ValueError):
        partition_identities([_peer("p1", "alice")], "gitlab")


def test_resolve_identities_returns_only_valid_identifiers():
    """Verify resolve_identities never raises for partial mappings."""
    peers = [_peer("p1"), _peer("p2", jira_account_id="acc-2")]

    assert resolve_identities(peers, JIRA) == ["acc-2"]
    assert resolve_identities(peers, GITHUB) == []


@pytest.mark.parametrize(
    "login,expected",
    [
        ("a", True),
        ("octo-cat", True),
        ("a" * 39, True),
        ("a" * 40, False),
        ("double--hyphen", False),
        ("trailing-", False),
        ("under_score", False),
        ("", False),
    ],
)
def test_is_valid_github_login(login, expected):
    """Verify GitHub username rules are enforced."""
    assert is_valid_github_login(login) is expected
