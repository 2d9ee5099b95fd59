"""Core functionality for the time tracking session."""

from redtimer.core.models import NULL_ID, Activity, Issue, IssueStatus, TimeEntry
from redtimer.core.session import Session, SessionState

__all__ = ["NULL_ID", "Activity", "Issue", "IssueStatus", "TimeEntry", "Session", "SessionState"]
