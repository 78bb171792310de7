"""Atlassian gateway GraphQL client for Jira.

Every Jira query on the gateway is addressed by a cloud ID. When none is
configured it is discovered from the site hostname through ``tenantContexts``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.auth import HTTPBasicAuth

from .config import JiraConfig
from .errors import ConfigurationError, GraphQLError, TransientFetchError
from .jira_client import JiraProject, JiraUser

logger = logging.getLogger(__name__)

GATEWAY_URL = "https://api.atlassian.com/gateway/api/graphql"

GET_CLOUD_ID_QUERY = """
query GetCloudId($hostNames: [String!]!) {
  tenantContexts(hostNames: $hostNames) {
    cloudId
  }
}
"""

GET_PROJECTS_QUERY = """
query GetProjects($cloudId: ID!) {
  jira {
    allJiraProjects(cloudId: $cloudId, first: 50, filter: {}) {
      edges {
        node {
          id
          key
          name
        }
      }
    }
  }
}
"""

GET_TEAM_ISSUES_QUERY = """
query GetTeamIssues($cloudId: ID!, $jql: String!) {
  jira {
    issueSearchStable(cloudId: $cloudId, issueSearchInput: {jql: $jql}) {
      edges {
        node {
          id
          key
          summary
        }
      }
      totalCount
    }
  }
}
"""

GET_USER_QUERY = """
query GetUser($cloudId: ID!, $accountId: String!) {
  jira {
    user(cloudId: $cloudId, accountId: $accountId) {
      accountId
      displayName
    }
  }
}
"""


@dataclass(slots=True)
class IssueReference:
    id: str
    key: str
    summary: str


@dataclass(slots=True)
class IssueKeySearch:
    issues: List[IssueReference]
    total_count: int


def extract_hostname(base_url: str) -> str:
    """Return the hostname of a Jira site URL, or the input if it has no scheme."""
    hostname = urlparse(base_url).hostname
    return hostname or base_url.strip().strip("/")


class JiraGraphQLClient:
    """Client for the Jira parts of the Atlassian gateway GraphQL API."""

    def __init__(self, config: JiraConfig, timeout_seconds: int = 30, gateway_url: str = GATEWAY_URL) -> None:
        self._config = config
        self._timeout_seconds = timeout_seconds
        self._gateway_url = gateway_url
        self._cloud_id: Optional[str] = config.cloud_id

        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(config.email, config.api_token)
        self._session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})

    def _post(self, query: str, variables: Dict[str, Any], experimental: bool = False) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object.

        Raises:
            GraphQLError: If the response carries an ``errors`` array.
            TransientFetchError: On network failure or HTTP >= 400.
        """
        headers = {"X-ExperimentalApi": "JiraIssueSearch"} if experimental else None
        try:
            response = self._session.post(
                self._gateway_url,
                json={"query": query, "variables": variables},
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TransientFetchError(f"Jira GraphQL request failed: POST {self._gateway_url}") from exc

        if response.status_code >= 400:
            raise TransientFetchError(
                f"Jira GraphQL request failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransientFetchError("Jira GraphQL returned invalid JSON.") from exc

        errors = payload.get("errors") or []
        if errors:
            raise GraphQLError([str(error.get("message", error)) for error in errors])

        return payload.get("data") or {}

    def discover_cloud_id(self) -> Optional[str]:
        """Look up the site's cloud ID by hostname; failures yield ``None``."""
        hostname = extract_hostname(self._config.base_url)
        try:
            data = self._post(GET_CLOUD_ID_QUERY, {"hostNames": [hostname]})
        except TransientFetchError as exc:
            logger.warning("Cloud ID discovery failed", extra={"hostname": hostname, "error": str(exc)})
            return None

        contexts = data.get("tenantContexts") or []
        if not contexts or not contexts[0].get("cloudId"):
            return None
        return str(contexts[0]["cloudId"])

    def ensure_cloud_id(self) -> str:
        """Return the configured cloud ID, discovering and remembering it if needed.

        Raises:
            ConfigurationError: If no cloud ID is configured or discoverable.
        """
        if self._cloud_id:
            return self._cloud_id

        cloud_id = self.discover_cloud_id()
        if not cloud_id:
            raise ConfigurationError(
                "Failed to discover the Jira cloud ID. Check JIRA_BASE_URL or set JIRA_CLOUD_ID."
            )

        logger.info("Discovered Jira cloud ID", extra={"cloud_id": cloud_id})
        self._cloud_id = cloud_id
        return cloud_id

    def list_projects(self) -> List[JiraProject]:
        data = self._post(GET_PROJECTS_QUERY, {"cloudId": self.ensure_cloud_id()})
        edges = (((data.get("jira") or {}).get("allJiraProjects")) or {}).get("edges") or []
        return [
            JiraProject(id=str(edge["node"]["id"]), key=str(edge["node"]["key"]), name=str(edge["node"].get("name") or ""))
            for edge in edges
            if edge.get("node")
        ]

    def search_issue_keys(self, jql: str) -> IssueKeySearch:
        """Run a JQL search through the gateway and return issue references only."""
        data = self._post(
            GET_TEAM_ISSUES_QUERY,
            {"cloudId": self.ensure_cloud_id(), "jql": jql},
            experimental=True,
        )
        search = ((data.get("jira") or {}).get("issueSearchStable")) or {}
        issues = [
            IssueReference(
                id=str(edge["node"]["id"]),
                key=str(edge["node"]["key"]),
                summary=str(edge["node"].get("summary") or ""),
            )
            for edge in search.get("edges") or []
            if edge.get("node")
        ]
        return IssueKeySearch(issues=issues, total_count=int(search.get("totalCount") or len(issues)))

    def get_user(self, account_id: str) -> Optional[JiraUser]:
        """Look up a user by account ID; any failure yields ``None``."""
        try:
            data = self._post(GET_USER_QUERY, {"cloudId": self.ensure_cloud_id(), "accountId": account_id})
        except (TransientFetchError, ConfigurationError) as exc:
            logger.debug("Jira GraphQL user lookup failed", extra={"account_id": account_id, "error": str(exc)})
            return None

        user = (data.get("jira") or {}).get("user")
        if not user:
            return None
        return JiraUser(
            account_id=str(user.get("accountId") or ""),
            display_name=str(user.get("displayName") or "Unknown User"),
            email_address="",
        )

    def test_connection(self) -> bool:
        try:
            self.list_projects()
        except (TransientFetchError, ConfigurationError) as exc:
            logger.warning("Jira GraphQL connection test failed", extra={"error": str(exc)})
            return False
        return True
