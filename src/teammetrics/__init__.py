"""Team performance metrics aggregated from GitHub and Jira."""

__version__ = "0.1.0"
