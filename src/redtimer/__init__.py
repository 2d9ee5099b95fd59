"""RedTimer - Redmine time tracking client."""

__version__ = "0.4.0"
