"""Retry backoff shared by the GitHub and Jira REST clients."""

from __future__ import annotations

import requests


def extract_backoff_seconds(response: requests.Response, attempt: int, max_backoff_seconds: int = 30) -> int:
    """Compute exponential backoff seconds, honoring Retry-After when available."""
    retry_after_header = response.headers.get("Retry-After")
    if retry_after_header:
        try:
            retry_after_seconds = int(retry_after_header)
            return min(max_backoff_seconds, max(1, retry_after_seconds))
        except ValueError:
            pass

    return min(max_backoff_seconds, 2 ** (attempt - 1))
