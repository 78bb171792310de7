"""Query construction for Jira (JQL) and GitHub (GraphQL).

JQL values are quoted only when they contain characters JQL would otherwise
parse as operators or separators. The GitHub query covers every repository in
a single request by aliasing one ``repository`` selection per repository.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Mapping, Sequence, Tuple

from .models import RepositoryRef

DEFAULT_ISSUE_TYPES = "Bug, standardIssueTypes(), Spike"

_JQL_SPECIAL_CHARACTERS = re.compile(r"""[@\s"'<>=!~()\[\]{}+\-*/%&|^]""")

_PULL_REQUEST_FIELDS = """
        nodes {
          id
          title
          number
          state
          createdAt
          updatedAt
          mergedAt
          url
          additions
          deletions
          author {
            login
          }
          repository {
            nameWithOwner
          }
          reviews(first: 10) {
            totalCount
          }
          comments(first: 1) {
            totalCount
          }
        }"""


@dataclass(frozen=True)
class GraphQLQuery:
    """A GraphQL document, its variables, and the filters applied to its result.

    GitHub cannot filter a repository's pull requests by author or creation
    date, so ``authors`` and ``since`` travel with the query and are applied
    when the response is folded.
    """

    document: str
    variables: Dict[str, Any]
    repositories: Tuple[RepositoryRef, ...]
    authors: Tuple[str, ...]
    since: datetime

    def alias(self, index: int) -> str:
        return f"repo{index}"


def escape_jql_value(value: str) -> str:
    """Quote a JQL literal if it contains special characters.

    Values with whitespace, quotes, operators or brackets are wrapped in double
    quotes with inner double quotes backslash-escaped. Anything else is
    returned as-is.
    """
    if _JQL_SPECIAL_CHARACTERS.search(value):
        escaped = value.replace('"', '\\"')
        return f'"{escaped}"'
    return value


def _window(window_days: int) -> str:
    return f"-{window_days}d"


def _assignee_clause(assignee_id: str, window: str) -> str:
    return f"assignee WAS {escape_jql_value(assignee_id)} DURING ({window}, now())"


def build_jql_query(project_key: str, assignee_id: str, window_days: int = 30) -> str:
    """Build the JQL for one assignee's recent issues in a project."""
    window = _window(window_days)
    return " ".join(
        [
            f"project = {escape_jql_value(project_key)}",
            f"AND {_assignee_clause(assignee_id, window)}",
            f"AND updated >= {window}",
            f"AND issuetype IN ({DEFAULT_ISSUE_TYPES})",
            "ORDER BY updated DESC",
        ]
    )


def build_team_jql_query(
    project_key: str,
    assignee_ids: Sequence[str],
    window_days: int = 30,
    issue_types: str = DEFAULT_ISSUE_TYPES,
) -> str:
    """Build one JQL query OR-combining every assignee of a team.

    Clause order is fixed: project, assignees, updated bound, issue types,
    then ``ORDER BY updated DESC``.

    Raises:
        ValueError: If ``assignee_ids`` is empty. An empty OR group would be
            rejected or, worse, read as "no assignee filter".
    """
    if not assignee_ids:
        raise ValueError("At least one assignee is required to build a team JQL query.")

    window = _window(window_days)
    assignee_conditions = " OR ".join(
        _assignee_clause(assignee_id, window) for assignee_id in assignee_ids
    )
    return " ".join(
        [
            f"project = {escape_jql_value(project_key)}",
            f"AND ({assignee_conditions})",
            f"AND updated >= {window}",
            f"AND issuetype IN ({issue_types})",
            "ORDER BY updated DESC",
        ]
    )


def format_jql_date(value: date) -> str:
    """Format a date or datetime as the ``YYYY-MM-DD`` literal JQL accepts."""
    return value.strftime("%Y-%m-%d")


def build_jql_conditions(conditions: Mapping[str, Any]) -> str:
    """Join simple field conditions with ``AND``.

    ``None`` values and empty lists are skipped, lists become ``IN (...)``,
    strings are escaped, and other values are rendered as-is.
    """
    parts = []
    for field_name, value in conditions.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            if value:
                escaped = ", ".join(escape_jql_value(str(item)) for item in value)
                parts.append(f"{field_name} IN ({escaped})")
        elif isinstance(value, str):
            parts.append(f"{field_name} = {escape_jql_value(value)}")
        else:
            parts.append(f"{field_name} = {value}")
    return " AND ".join(parts)


def build_pull_requests_query(
    repositories: Sequence[RepositoryRef],
    authors: Sequence[str],
    since: datetime,
    first: int = 50,
) -> GraphQLQuery:
    """Build a single GraphQL query fetching recent PRs from every repository.

    Each repository becomes an aliased selection (``repo0``, ``repo1``, ...)
    whose owner and name are bound as variables.
    """
    if not repositories:
        raise ValueError("At least one repository is required to build a pull request query.")

    declarations = ["$first: Int!"]
    selections = []
    variables: Dict[str, Any] = {"first": first}

    for index, repository in enumerate(repositories):
        declarations.append(f"$owner{index}: String!")
        declarations.append(f"$name{index}: String!")
        variables[f"owner{index}"] = repository.owner
        variables[f"name{index}"] = repository.name
        selections.append(
            f"""
  repo{index}: repository(owner: $owner{index}, name: $name{index}) {{
    pullRequests(first: $first, orderBy: {{field: CREATED_AT, direction: DESC}}, states: [OPEN, MERGED, CLOSED]) {{{_PULL_REQUEST_FIELDS}
    }}
  }}"""
        )

    document = f"query GetTeamPullRequests({', '.join(declarations)}) {{{''.join(selections)}\n}}\n"

    return GraphQLQuery(
        document=document,
        variables=variables,
        repositories=tuple(repositories),
        authors=tuple(authors),
        since=since,
    )
