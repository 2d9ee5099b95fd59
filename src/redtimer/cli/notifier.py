"""Desktop notifications for RedTimer."""

from typing import Any

from redtimer.core.shell import MessageType

TITLES = {
    MessageType.INFO: "RedTimer",
    MessageType.WARNING: "RedTimer - Warning",
    MessageType.CRITICAL: "RedTimer - Error",
}


class Notifier:
    """Send desktop notifications."""

    def __init__(self, enabled: bool = True, backend: str = "auto"):
        """Initialize notifier.

        Args:
            enabled: Whether notifications are enabled
            backend: Notification backend ('auto', 'plyer', etc.)
        """
        self.enabled = enabled
        self.backend = backend
        self._notifier = self._init_notifier()

    def _init_notifier(self) -> Any:
        """Initialize platform-specific notifier.

        Returns:
            Notification handler or None if not available
        """
        if not self.enabled:
            return None

        try:
            from plyer import notification  # type: ignore[import-not-found]

            return notification  # type: ignore[no-any-return]
        except ImportError:
            # Notifications not available
            return None

    @property
    def available(self) -> bool:
        """Check if notifications can be shown."""
        return self.enabled and self._notifier is not None

    def notify(
        self,
        message: str,
        severity: MessageType = MessageType.INFO,
        timeout: int = 5000,
    ) -> None:
        """Send a desktop notification.

        Args:
            message: Notification message
            severity: Message severity, used for the title
            timeout: Display duration in milliseconds
        """
        if not self.available:
            return

        try:
            self._notifier.notify(  # type: ignore[attr-defined]
                title=TITLES[severity],
                message=message,
                app_name="RedTimer",
                timeout=max(1, timeout // 1000),
            )
        except Exception:
            # Fail silently - the console already shows the message
            pass
