"""Custom exception types for the team metrics aggregator."""

from __future__ import annotations

from typing import List, Optional


class TeamMetricsError(Exception):
    """Base exception for all recoverable team metrics errors."""


class ConfigurationError(TeamMetricsError):
    """Raised when a token, repository list or project key is missing or invalid."""


class TransientFetchError(TeamMetricsError):
    """Raised when a GitHub or Jira request fails at the network or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GraphQLError(TransientFetchError):
    """Raised when a GraphQL response carries an ``errors`` array."""

    def __init__(self, messages: List[str]) -> None:
        super().__init__(f"GraphQL errors: {', '.join(messages)}", status_code=200)
        self.messages = list(messages)


class PartialFetchError(TeamMetricsError):
    """Records one repository failing inside a multi-repository fan-out.

    Instances are collected on fetch results instead of being raised.
    """

    def __init__(self, repository: str, cause: Exception) -> None:
        super().__init__(f"Failed to fetch pull requests from {repository}: {cause}")
        self.repository = repository
        self.cause = cause


class DataValidationError(TeamMetricsError):
    """Raised when an API payload is missing fields required for aggregation."""
