"""Core data models for the tracking session."""

from dataclasses import dataclass
from typing import Any, Optional

NULL_ID = -1
"""Sentinel identifier meaning "nothing selected"."""


@dataclass
class Issue:
    """Issue loaded from the remote tracker.

    Attributes:
        id: Issue identifier (NULL_ID if none loaded)
        subject: Issue subject line
        status_id: Current workflow status identifier
        status_name: Display name of the status
        tracker_name: Tracker the issue belongs to (Bug, Feature, ...)
        project_name: Project the issue belongs to
        assigned_to_name: Current assignee (optional)
        done_ratio: Completion percentage
        spent_hours: Hours already booked on the issue
        description: Issue description (optional)
    """

    id: int
    subject: str = ""
    status_id: int = NULL_ID
    status_name: str = ""
    tracker_name: str = ""
    project_name: str = ""
    assigned_to_name: Optional[str] = None
    done_ratio: int = 0
    spent_hours: float = 0.0
    description: Optional[str] = None

    @property
    def label(self) -> str:
        """Short display label, e.g. '#42 Fix the login form'."""
        if self.subject:
            return f"#{self.id} {self.subject}"
        return f"#{self.id}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for display and logging."""
        return {
            "id": self.id,
            "subject": self.subject,
            "status_id": self.status_id,
            "status_name": self.status_name,
            "tracker_name": self.tracker_name,
            "project_name": self.project_name,
            "assigned_to_name": self.assigned_to_name or "",
            "done_ratio": self.done_ratio,
            "spent_hours": self.spent_hours,
        }


@dataclass
class Activity:
    """Time entry activity (Development, Support, ...)."""

    id: int
    name: str
    is_default: bool = False


@dataclass
class IssueStatus:
    """Issue workflow status (New, In Progress, Closed, ...)."""

    id: int
    name: str
    is_closed: bool = False


@dataclass
class TimeEntry:
    """Time spent on an issue under an activity.

    Attributes:
        issue_id: Issue the time is booked on
        seconds: Tracked time in seconds
        activity_id: Activity identifier (NULL_ID lets the server use its default)
        id: Remote entry identifier when updating an existing entry
        comments: Optional comment stored with the entry
    """

    issue_id: int
    seconds: int
    activity_id: int = NULL_ID
    id: Optional[int] = None
    comments: Optional[str] = None

    @property
    def hours(self) -> float:
        """Tracked time in hours, as the tracker stores it."""
        return round(self.seconds / 3600, 4)
