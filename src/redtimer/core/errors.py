"""Error taxonomy for the tracking session."""

from typing import Optional


class TrackerError(Exception):
    """Base class for all session and remote tracker errors."""

    pass


class RemoteConnectionError(TrackerError):
    """The remote tracker could not be reached or refused the credentials."""

    pass


class NotFoundError(TrackerError):
    """The requested issue, activity, status or entry is unknown to the remote."""

    pass


class RemoteValidationError(TrackerError):
    """The remote rejected a payload, or returned one that could not be parsed."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        """Initialize validation error.

        Args:
            message: Summary message
            errors: Individual validation errors reported by the remote
        """
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class LocalPreconditionError(TrackerError):
    """An operation was requested in a state that does not allow it."""

    pass
