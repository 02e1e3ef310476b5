"""User-visible notifications for the LFS builder.

Notifications are the toast channel of the builder: a short title plus a
descriptive body. Every notification is logged, kept in a bounded
history and forwarded to subscribers (the CLI prints them). Desktop
delivery via notify-send is optional.
"""

from __future__ import annotations

import subprocess
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    """Severity of a notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"

    @property
    def urgency(self) -> str:
        """notify-send urgency for this level."""
        return {
            NotificationLevel.INFO: "low",
            NotificationLevel.SUCCESS: "normal",
            NotificationLevel.WARNING: "normal",
            NotificationLevel.ERROR: "critical",
        }[self]


@dataclass(frozen=True)
class Notification:
    """A single user-visible notification."""

    title: str
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@dataclass
class NotificationConfig:
    """Configuration for notifications."""

    enabled: bool = True
    desktop: bool = False
    history_size: int = 200
    app_name: str = "lfs-builder"
    icon: str = "drive-optical"


class NotificationManager:
    """Dispatches notifications to the log, subscribers and the desktop."""

    def __init__(self, config: NotificationConfig | None = None) -> None:
        """Initialize the notification manager.

        Args:
            config: Notification configuration. Uses defaults if not provided.
        """
        self.config = config or NotificationConfig()
        self.history: deque[Notification] = deque(maxlen=self.config.history_size)
        self._subscribers: list[Callable[[Notification], None]] = []
        self._notify_send_available: bool | None = None

    def subscribe(self, callback: Callable[[Notification], None]) -> Callable[[], None]:
        """Register a subscriber and return a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(
        self,
        title: str,
        message: str,
        level: NotificationLevel = NotificationLevel.INFO,
    ) -> Notification | None:
        """Publish a notification.

        Returns:
            The published notification, or None if notifications are disabled.
        """
        if not self.config.enabled:
            logger.debug("notifications_disabled", title=title)
            return None

        notification = Notification(title=title, message=message, level=level)
        self.history.append(notification)

        log_method = logger.warning if level == NotificationLevel.ERROR else logger.info
        log_method("notification", title=title, message=message, level=level.value)

        for callback in list(self._subscribers):
            try:
                callback(notification)
            except Exception as e:
                logger.error("notification_subscriber_error", error=str(e))

        if self.config.desktop:
            self._send_desktop(notification)

        return notification

    def info(self, title: str, message: str) -> Notification | None:
        return self.notify(title, message, NotificationLevel.INFO)

    def success(self, title: str, message: str) -> Notification | None:
        return self.notify(title, message, NotificationLevel.SUCCESS)

    def warning(self, title: str, message: str) -> Notification | None:
        return self.notify(title, message, NotificationLevel.WARNING)

    def error(self, title: str, message: str) -> Notification | None:
        return self.notify(title, message, NotificationLevel.ERROR)

    def titles(self) -> list[str]:
        """Titles of the notifications in history, oldest first."""
        return [n.title for n in self.history]

    def _check_notify_send(self) -> bool:
        """Check if notify-send is available."""
        if self._notify_send_available is None:
            try:
                result = subprocess.run(
                    ["which", "notify-send"],
                    capture_output=True,
                    check=False,
                )
                self._notify_send_available = result.returncode == 0
            except FileNotFoundError:
                self._notify_send_available = False

        return self._notify_send_available

    def _send_desktop(self, notification: Notification) -> bool:
        if not self._check_notify_send():
            logger.debug("notify_send_not_available")
            return False

        cmd = [
            "notify-send",
            "--urgency",
            notification.level.urgency,
            "--app-name",
            self.config.app_name,
            "--icon",
            self.config.icon,
            notification.title,
            notification.message,
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, check=False)
        except FileNotFoundError:
            logger.warning("notify_send_not_found")
            return False

        if result.returncode != 0:
            logger.warning(
                "desktop_notification_failed",
                title=notification.title,
                stderr=result.stderr.decode(errors="replace"),
            )
            return False
        return True
