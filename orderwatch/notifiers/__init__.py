"""New-order notification dispatch and the Telegram transport."""

from orderwatch.notifiers.notifier import NotificationDispatcher, Notifier, format_notification
from orderwatch.notifiers.telegram import TelegramClient

__all__ = [
    "NotificationDispatcher",
    "Notifier",
    "TelegramClient",
    "format_notification",
]
