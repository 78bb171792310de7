"""Configuration parsing and validation for the team metrics aggregator.

Configuration values are passed explicitly into each client and fetch call;
nothing here is cached at module level.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ConfigurationError
from .models import RepositoryRef

DEFAULT_GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class GitHubConfig:
    """Validated GitHub settings: bearer token and tracked repositories."""

    token: str
    repositories: Tuple[RepositoryRef, ...]
    api_url: str = DEFAULT_GITHUB_API_URL


@dataclass(frozen=True)
class JiraConfig:
    """Validated Jira Cloud settings used for Basic-auth REST and GraphQL calls."""

    base_url: str
    email: str
    api_token: str
    project_key: Optional[str] = None
    cloud_id: Optional[str] = None


def validate_window_days(days: int) -> int:
    """Return ``days`` unchanged if it is a usable lookback window.

    Raises:
        ConfigurationError: If ``days`` is not greater than ``0``.
    """
    if days <= 0:
        raise ConfigurationError("Invalid value for 'days': expected an integer greater than 0.")
    return days


def parse_repositories(value: str) -> Tuple[RepositoryRef, ...]:
    """Parse a comma-separated ``owner/name`` list, skipping blank entries."""
    return tuple(
        RepositoryRef.parse(item)
        for item in value.split(",")
        if item.strip()
    )


def load_github_config(repositories: Optional[str] = None) -> GitHubConfig:
    """Build GitHub configuration from the environment.

    Args:
        repositories: Optional ``owner/name`` list overriding
            ``TEAM_METRICS_GITHUB_REPOS``.

    Raises:
        ConfigurationError: If ``GITHUB_TOKEN`` or the repository list is missing.
    """
    token = os.getenv("GITHUB_TOKEN", "").strip()
    if not token:
        raise ConfigurationError(
            "Missing required GitHub token. "
            "Set the 'GITHUB_TOKEN' environment variable to track pull requests."
        )

    raw_repositories = repositories if repositories is not None else os.getenv(
        "TEAM_METRICS_GITHUB_REPOS", ""
    )
    parsed = parse_repositories(raw_repositories)
    if not parsed:
        raise ConfigurationError(
            "No repositories configured. "
            "Set 'TEAM_METRICS_GITHUB_REPOS' to a comma-separated list of owner/name pairs."
        )

    api_url = os.getenv("GITHUB_API_URL", "").strip() or DEFAULT_GITHUB_API_URL
    return GitHubConfig(token=token, repositories=parsed, api_url=api_url.rstrip("/"))


def load_jira_config(project_key: Optional[str] = None) -> JiraConfig:
    """Build Jira configuration from the environment.

    Args:
        project_key: Optional project key overriding ``JIRA_PROJECT_KEY``.

    Raises:
        ConfigurationError: If the base URL, email or API token is missing.
    """
    base_url = os.getenv("JIRA_BASE_URL", "").strip()
    email = os.getenv("JIRA_EMAIL", "").strip()
    api_token = os.getenv("JIRA_API_TOKEN", "").strip()

    missing = [
        name
        for name, value in (
            ("JIRA_BASE_URL", base_url),
            ("JIRA_EMAIL", email),
            ("JIRA_API_TOKEN", api_token),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            "Missing Jira configuration. Set the following environment variables: "
            + ", ".join(missing)
        )

    key = project_key or os.getenv("JIRA_PROJECT_KEY", "").strip() or None
    cloud_id = os.getenv("JIRA_CLOUD_ID", "").strip() or None

    return JiraConfig(
        base_url=base_url.rstrip("/"),
        email=email,
        api_token=api_token,
        project_key=key,
        cloud_id=cloud_id,
    )
