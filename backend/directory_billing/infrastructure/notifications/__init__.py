"""
Notifications Infrastructure Module
"""

from directory_billing.infrastructure.notifications.notifier import (
    HttpNotifier,
    LoggingNotifier,
    Notifier,
    get_notifier,
)

__all__ = ["Notifier", "LoggingNotifier", "HttpNotifier", "get_notifier"]
