"""Interface of the user-facing shell driven by the session."""

from abc import ABC, abstractmethod
from enum import Enum

from redtimer.core.models import Activity, Issue, IssueStatus


class MessageType(Enum):
    """Severity of a user-visible message."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ExitChoice(Enum):
    """Resolution of an exit request while the timer is running."""

    ABORT = "abort"
    SAVE = "save"
    DISCARD = "discard"


class ShellAdapter(ABC):
    """Observer receiving session output.

    The shell only reads session state and calls session methods; it never
    mutates session fields directly.
    """

    @abstractmethod
    def message(self, text: str, severity: MessageType = MessageType.INFO, timeout: int = 5000) -> None:
        """Show a message.

        Args:
            text: Message text
            severity: Message severity
            timeout: Display duration in milliseconds
        """
        pass

    @abstractmethod
    def refresh_counter_display(self, seconds: int) -> None:
        """Show the current counter value."""
        pass

    @abstractmethod
    def refresh_entity_lists(
        self,
        activities: list[Activity],
        issue_statuses: list[IssueStatus],
        recent_issues: list[Issue],
    ) -> None:
        """Show refreshed activity, status and recent issue lists."""
        pass

    @abstractmethod
    def refresh_issue(self, issue: Issue) -> None:
        """Show a newly loaded issue."""
        pass

    @abstractmethod
    def timer_state_changed(self, running: bool) -> None:
        """Reflect the timer state in the controls."""
        pass

    @abstractmethod
    def time_entry_saved(self) -> None:
        """Called once for every time entry saved remotely."""
        pass

    @abstractmethod
    def prompt_exit_choice(self) -> ExitChoice:
        """Ask how to exit while the timer is running.

        Returns:
            The user's choice
        """
        pass

    @abstractmethod
    def quit(self) -> None:
        """Terminate the application."""
        pass
