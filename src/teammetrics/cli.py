"""Command-line argument parsing for the team metrics aggregator."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

SOURCE_CHOICES = ("github", "jira", "all")
FORMAT_CHOICES = ("text", "json")
LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR")


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for a team metrics report.

    Returns:
        Parsed CLI arguments containing the roster path, optional team and peer IDs,
        lookback window, sources, output format, check mode and log level.
    """
    parser = argparse.ArgumentParser(
        prog="team-metrics",
        description=(
            "Aggregate per-team engineering metrics from GitHub pull requests "
            "and Jira issues."
        ),
    )

    parser.add_argument(
        "--roster",
        required=True,
        help="Path to the JSON roster of teams and peers.",
    )
    parser.add_argument(
        "--team",
        default=None,
        help="Team ID to report on (default: every peer in the roster).",
    )
    parser.add_argument(
        "--peer",
        default=None,
        help="Peer ID for a single-peer drill-down with per-PR line and review counts.",
    )
    parser.add_argument(
        "--days",
        type=_positive_int,
        default=30,
        help="Number of days of history to analyze (default: 30).",
    )
    parser.add_argument(
        "--source",
        choices=SOURCE_CHOICES,
        default="all",
        help="Which source to query (default: all).",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=FORMAT_CHOICES,
        default="text",
        help="Report format (default: text).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check source connections and roster identities instead of reporting.",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVEL_CHOICES,
        default="WARNING",
        help="Logging verbosity (default: WARNING).",
    )

    return parser.parse_args(argv)
