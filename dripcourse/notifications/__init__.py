"""Enrollment notifications (welcome and weekly unlock emails)."""

from .dispatcher import (
    EmailNotificationDispatcher,
    NotificationDispatcher,
    NotificationKind,
    build_portal_link,
)


__all__ = [
    "EmailNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationKind",
    "build_portal_link",
]
