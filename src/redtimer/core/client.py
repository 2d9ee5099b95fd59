"""Interface of the remote tracker capability used by the session."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from redtimer.core.errors import TrackerError
from redtimer.core.models import TimeEntry

Callback = Callable[[Any, Optional[TrackerError]], None]
"""Completion callback: ``callback(result, error)``, exactly one of them is None.

Implementations must invoke it on the session's control thread.
"""


class RemoteTrackerClient(ABC):
    """Asynchronous access to the remote issue tracker.

    Every call returns immediately. The outcome is delivered later through
    the callback, either as a result or as a TrackerError subclass.
    """

    @abstractmethod
    def fetch_issue(self, issue_id: int, callback: Callback) -> None:
        """Fetch an issue by id. Result: Issue."""
        pass

    @abstractmethod
    def fetch_activities(self, callback: Callback) -> None:
        """Fetch time entry activities. Result: list[Activity]."""
        pass

    @abstractmethod
    def fetch_issue_statuses(self, callback: Callback) -> None:
        """Fetch issue statuses. Result: list[IssueStatus]."""
        pass

    @abstractmethod
    def fetch_latest_activity(self, issue_id: int, callback: Callback) -> None:
        """Fetch the activity of the newest time entry on an issue. Result: Activity."""
        pass

    @abstractmethod
    def create_or_update_time_entry(self, entry: TimeEntry, callback: Callback) -> None:
        """Create a time entry, or update it if entry.id is set. Result: TimeEntry."""
        pass

    @abstractmethod
    def update_issue_status(self, issue_id: int, status_id: int, callback: Callback) -> None:
        """Set the status of an issue. Result: None."""
        pass

    @abstractmethod
    def reconnect(self) -> None:
        """Drop cached connection state and connect again."""
        pass
