# dalat_notifications/preferences.py
"""
Channel resolution from per-user notification preferences.

Resolution order for a (user, type) pair:
1. Static default channels for the type (unknown types get in_app only)
2. A stored per-type override replaces the default list
3. Channels whose master switch is off are dropped
4. During quiet hours push is dropped; other channels are never suppressed

A user without a stored preference row gets the defaults untouched.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from .errors import StoreError
from .store import NotificationStore
from .types import NotificationChannel, NotificationPreferences, NotificationType

logger = logging.getLogger("dalat_notifications.preferences")

IN_APP = NotificationChannel.IN_APP
PUSH = NotificationChannel.PUSH
EMAIL = NotificationChannel.EMAIL

DEFAULT_CHANNELS: Dict[NotificationType, tuple] = {
    # Event confirmations
    NotificationType.RSVP_CONFIRMATION: (IN_APP, PUSH),
    # Reminders are time-sensitive
    NotificationType.CONFIRM_ATTENDANCE_24H: (IN_APP, PUSH),
    NotificationType.FINAL_REMINDER_2H: (IN_APP, PUSH),
    NotificationType.EVENT_REMINDER: (IN_APP, PUSH),
    # Waitlist
    NotificationType.WAITLIST_PROMOTION: (IN_APP, PUSH),
    NotificationType.WAITLIST_POSITION: (IN_APP,),
    # Organizer and post-event
    NotificationType.NEW_RSVP: (IN_APP,),
    NotificationType.FEEDBACK_REQUEST: (IN_APP,),
    # Invitations: email for external addresses, in-app + push for users
    NotificationType.EVENT_INVITATION: (EMAIL,),
    NotificationType.USER_INVITATION: (IN_APP, PUSH),
    # Tribes
    NotificationType.TRIBE_JOIN_REQUEST: (IN_APP, PUSH),
    NotificationType.TRIBE_REQUEST_APPROVED: (IN_APP, PUSH),
    NotificationType.TRIBE_REQUEST_REJECTED: (IN_APP,),
    NotificationType.TRIBE_NEW_EVENT: (IN_APP, PUSH),
    # Comments: direct interactions push, thread digests don't
    NotificationType.COMMENT_ON_EVENT: (IN_APP, PUSH),
    NotificationType.COMMENT_ON_MOMENT: (IN_APP, PUSH),
    NotificationType.REPLY_TO_COMMENT: (IN_APP, PUSH),
    NotificationType.THREAD_ACTIVITY: (IN_APP,),
    # Media and social
    NotificationType.VIDEO_READY: (IN_APP, PUSH),
    NotificationType.NEW_FOLLOWER: (IN_APP, PUSH),
}

FALLBACK_CHANNELS = (IN_APP,)


def _coerce_type(notification_type: Union[NotificationType, str]) -> Optional[NotificationType]:
    try:
        return NotificationType(notification_type)
    except ValueError:
        return None


def get_default_channels(notification_type: Union[NotificationType, str]) -> List[NotificationChannel]:
    """Static default channels for a type; in_app for anything unrecognized."""
    known = _coerce_type(notification_type)
    return list(DEFAULT_CHANNELS.get(known, FALLBACK_CHANNELS)) if known else list(FALLBACK_CHANNELS)


def is_in_quiet_hours(current: str, start: str, end: str) -> bool:
    """
    True when ``current`` falls inside the window, both ends inclusive.

    All three values are zero-padded ``HH:MM`` strings, so string comparison
    orders them correctly. A window with start > end wraps past midnight.
    """
    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def _dedupe(channels: Sequence[NotificationChannel]) -> List[NotificationChannel]:
    seen = []
    for channel in channels:
        if channel not in seen:
            seen.append(channel)
    return seen


class PreferenceResolver:
    """
    Reads and writes notification preferences and resolves delivery channels.

    Args:
        store: Persistence adapter holding ``notification_preferences``
        timezone_name: Zone quiet-hours windows are expressed in
        clock: Returns the current instant; injectable for tests
    """

    def __init__(
        self,
        store: NotificationStore,
        *,
        timezone_name: str = "Asia/Ho_Chi_Minh",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.timezone = ZoneInfo(timezone_name)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _local_time(self, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        # Naive values are taken as wall-clock time in the quiet-hours zone
        if now.tzinfo is not None:
            now = now.astimezone(self.timezone)
        return now.strftime("%H:%M")

    async def get_user_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        """
        Stored preferences for a user, or None.

        A missing row is the normal case for users who never changed a setting.
        Persistence failures are logged and treated the same way.
        """
        try:
            row = await self.store.get_preferences(user_id)
        except StoreError as e:
            logger.error(f"Error fetching preferences for user {user_id}: {e}")
            return None
        if not row:
            return None
        return NotificationPreferences.from_row(row)

    async def update_user_preferences(self, user_id: str, updates: Mapping[str, Any]) -> bool:
        """
        Upsert a partial preference update keyed by user id.

        Raises:
            ValueError: ``updates`` names a field that is not a preference
        """
        unknown = set(updates) - NotificationPreferences.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

        row: Dict[str, Any] = {"user_id": user_id}
        for key, value in updates.items():
            if key == "channel_preferences":
                value = {
                    NotificationType(t).value: [NotificationChannel(c).value for c in channels]
                    for t, channels in (value or {}).items()
                }
            row[key] = value

        try:
            await self.store.upsert_preferences(row)
        except StoreError as e:
            logger.error(f"Error updating preferences for user {user_id}: {e}")
            return False
        logger.info(f"Updated notification preferences for user {user_id}: {sorted(updates)}")
        return True

    def resolve_channels(
        self,
        preferences: Optional[NotificationPreferences],
        notification_type: Union[NotificationType, str],
        now: Optional[datetime] = None,
    ) -> List[NotificationChannel]:
        """Apply stored preferences to the default channels for a type."""
        channels = get_default_channels(notification_type)
        if preferences is None:
            return channels

        known = _coerce_type(notification_type)
        if known is not None and known in preferences.channel_preferences:
            channels = _dedupe(preferences.channel_preferences[known])

        channels = [c for c in channels if preferences.is_channel_enabled(c)]

        if preferences.quiet_hours_enabled and PUSH in channels:
            current = self._local_time(now)
            if is_in_quiet_hours(current, preferences.quiet_hours_start, preferences.quiet_hours_end):
                logger.debug(f"Quiet hours at {current} for user {preferences.user_id}; dropping push")
                channels = [c for c in channels if c is not PUSH]

        return channels

    async def get_channels_for_notification(
        self, user_id: str, notification_type: Union[NotificationType, str]
    ) -> List[NotificationChannel]:
        preferences = await self.get_user_preferences(user_id)
        return self.resolve_channels(preferences, notification_type)
