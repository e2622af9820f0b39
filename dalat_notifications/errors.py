# dalat_notifications/errors.py
"""Exception types raised inside the notification core.

Channel senders never let these escape to callers of ``notify``; they are
converted into failed ``ChannelResult`` values. The one exception that is
meant to propagate is ``UnknownNotificationTypeError``.
"""
from __future__ import annotations


class NotificationError(Exception):
    """Base class for notification core errors."""


class UnknownNotificationTypeError(NotificationError, ValueError):
    """A payload or row carries a type tag with no registered renderer."""


class StoreError(NotificationError):
    """The persistence service rejected or failed a request."""


class StoreNotConfiguredError(StoreError):
    """Persistence URL or service role key is missing."""

    def __init__(self, message: str = "Supabase service client not configured"):
        super().__init__(message)
