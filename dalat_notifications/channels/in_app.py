# dalat_notifications/channels/in_app.py
"""
In-App Notification Channel

Writes one row per notification into the ``notifications`` table. The web
client picks new rows up over realtime subscriptions, so delivery is complete
once the insert succeeds.

Rows are written through the service-role store, on behalf of any user. The
inbox operations (mark read, unread count, listing) are used by the UI and
never by ``notify`` itself.
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import StoreError
from ..store import NotificationStore
from ..types import ChannelResult, NotificationChannel, NotificationContent, NotificationType
from .base import ChannelSender

logger = logging.getLogger("dalat_notifications.channels.in_app")


class InAppSender(ChannelSender):
    """In-app inbox delivery via the persisted ``notifications`` table."""

    channel = NotificationChannel.IN_APP
    channel_name = "In-App Notifications"

    def __init__(self, store: NotificationStore):
        self.store = store
        if not store.is_configured():
            self.config_error = "Supabase service client not configured"

    async def send(
        self,
        user_id: str,
        notification_type: NotificationType,
        content: NotificationContent,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChannelResult:
        """
        Insert an inbox row for the user.

        Args:
            user_id: Recipient
            notification_type: Stored alongside the rendered text
            content: Rendered in-app title, body and action links
            metadata: Free-form audit data, normally ``{"payload": ...}``

        Returns:
            ChannelResult whose ``message_id`` is the new row id
        """
        if not self.is_enabled():
            return self.not_configured()

        row = {
            "user_id": user_id,
            "type": NotificationType(notification_type).value,
            "title": content.title,
            "body": content.body,
            "primary_action_url": content.primary_action_url,
            "primary_action_label": content.primary_action_label,
            "secondary_action_url": content.secondary_action_url,
            "secondary_action_label": content.secondary_action_label,
            "metadata": metadata or {},
            "read": False,
            "archived": False,
        }

        try:
            notification_id = await self.store.insert_notification(row)
        except Exception as e:
            logger.error(f"Failed to store in-app notification for user {user_id}: {e}")
            return self.failure(str(e))

        logger.info(f"In-app notification stored for user {user_id}: {notification_id}")
        return self.ok(message_id=notification_id)

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """Mark a notification as read."""
        try:
            return await self.store.mark_notification_read(notification_id, user_id)
        except StoreError as e:
            logger.error(f"Error marking notification {notification_id} read: {e}")
            return False

    async def mark_all_read(self, user_id: str) -> int:
        """Mark all notifications as read for a user."""
        try:
            return await self.store.mark_all_notifications_read(user_id)
        except StoreError as e:
            logger.error(f"Error marking all notifications read for user {user_id}: {e}")
            return 0

    async def get_unread_count(self, user_id: str) -> int:
        try:
            return await self.store.get_unread_count(user_id)
        except StoreError as e:
            logger.error(f"Error fetching unread count for user {user_id}: {e}")
            return 0

    async def list_notifications(
        self, user_id: str, limit: int = 50, unread_only: bool = False
    ) -> List[Dict[str, Any]]:
        try:
            return await self.store.list_notifications(user_id, limit=limit, unread_only=unread_only)
        except StoreError as e:
            logger.error(f"Error listing notifications for user {user_id}: {e}")
            return []
