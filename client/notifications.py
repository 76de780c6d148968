"""
User notifications for the Chat Auth Client.

Front ends register handlers to present messages (toasts, dialogs, terminal
output). Without handlers, notifications go to the log.
"""

import logging
from enum import Enum
from typing import Callable, List

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARN = "warn"
    INFO = "info"


_LOG_LEVELS = {
    NotificationType.SUCCESS: logging.INFO,
    NotificationType.ERROR: logging.ERROR,
    NotificationType.WARN: logging.WARNING,
    NotificationType.INFO: logging.INFO,
}

NotificationHandler = Callable[[str, NotificationType], None]


class Notifier:
    """Dispatches notifications to registered handlers."""

    def __init__(self):
        self._handlers: List[NotificationHandler] = []

    def add_handler(self, handler: NotificationHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, handler: NotificationHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def notify(self, message: str, type: NotificationType = NotificationType.INFO) -> None:
        if not self._handlers:
            logger.log(_LOG_LEVELS[type], message)
            return

        for handler in list(self._handlers):
            try:
                handler(message, type)
            except Exception as e:
                logger.error(f"Error in notification handler: {e}")
