# dalat_notifications/__init__.py
"""
Notification dispatch for Dalat Events.

Three delivery channels:
- In-App: rows in the ``notifications`` table, picked up by the web client
- Push: Web Push to every registered device (pywebpush)
- Email: Resend API

Usage:
    from dalat_notifications import notify, RsvpConfirmationPayload

    await notify(RsvpConfirmationPayload(
        user_id="user-123",
        locale="en",
        event_slug="my-event",
        event_title="My Event",
    ))
"""

__version__ = "0.3.0"

from .config import NotificationSettings, load_settings
from .errors import NotificationError, StoreError, StoreNotConfiguredError, UnknownNotificationTypeError
from .notifier import (
    Notifier,
    get_channels_for_notification,
    get_notifier,
    get_unread_count,
    get_user_preferences,
    mark_all_notifications_read,
    mark_notification_read,
    notify,
    notify_multiple,
    send_email_invitation,
    set_notifier,
    update_user_preferences,
)
from .preferences import PreferenceResolver, get_default_channels, is_in_quiet_hours
from .scheduler import ScheduledNotificationProcessor
from .store import NotificationStore, ServiceRoleCredentials, SupabaseNotificationStore
from .templates import render_template
from .types import *  # noqa: F401,F403
