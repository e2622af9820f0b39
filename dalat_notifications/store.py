# dalat_notifications/store.py
"""
Persistence adapter for the notification core.

``NotificationStore`` is the narrow interface the channel senders, the
preference resolver and the scheduled-notification processor depend on.
``SupabaseNotificationStore`` implements it over the async Supabase client.

The Supabase implementation writes on behalf of any user, so it must be built
with the service role key. That capability is passed in explicitly as
``ServiceRoleCredentials`` and never read from the environment here.

Tables:
    notifications, notification_preferences, push_subscriptions,
    scheduled_notifications

RPCs:
    get_unread_notification_count(p_user_id) -> int
    mark_all_notifications_read(p_user_id) -> int
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from supabase import AsyncClient, acreate_client

from .config import NotificationSettings
from .errors import StoreError, StoreNotConfiguredError
from .types import PushSubscription, ScheduledNotification

logger = logging.getLogger("dalat_notifications.store")

NOTIFICATIONS_TABLE = "notifications"
PREFERENCES_TABLE = "notification_preferences"
PUSH_SUBSCRIPTIONS_TABLE = "push_subscriptions"
SCHEDULED_TABLE = "scheduled_notifications"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class NotificationStore(ABC):
    """Row-level operations the notification core needs from the database."""

    def is_configured(self) -> bool:
        return True

    # --- In-app inbox ---

    @abstractmethod
    async def insert_notification(self, row: Dict[str, Any]) -> str:
        """Insert an in-app notification row and return its id."""

    @abstractmethod
    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        """Mark one notification read; False when no row matched."""

    @abstractmethod
    async def mark_all_notifications_read(self, user_id: str) -> int:
        """Mark every unread notification read; returns the number updated."""

    @abstractmethod
    async def get_unread_count(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def list_notifications(
        self, user_id: str, limit: int = 50, unread_only: bool = False
    ) -> List[Dict[str, Any]]:
        """Newest first."""

    # --- Preferences ---

    @abstractmethod
    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Stored preference row, or None when the user never saved one."""

    @abstractmethod
    async def upsert_preferences(self, row: Dict[str, Any]) -> None:
        ...

    # --- Push subscriptions ---

    @abstractmethod
    async def list_push_subscriptions(self, user_id: str) -> List[PushSubscription]:
        ...

    @abstractmethod
    async def delete_push_subscriptions(self, subscription_ids: Sequence[str]) -> None:
        """Delete subscriptions by id in one call."""

    @abstractmethod
    async def upsert_push_subscription(self, row: Dict[str, Any]) -> None:
        """Insert or replace a device subscription, keyed by endpoint."""

    @abstractmethod
    async def delete_push_subscription(self, user_id: str, endpoint: str) -> bool:
        ...

    # --- Identity ---

    @abstractmethod
    async def get_user_email(self, user_id: str) -> Optional[str]:
        ...

    # --- Scheduled notifications ---

    @abstractmethod
    async def insert_scheduled(self, row: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def fetch_due_scheduled(self, now_iso: str, limit: int) -> List[ScheduledNotification]:
        """Pending rows with ``scheduled_for <= now``, oldest first."""

    @abstractmethod
    async def claim_scheduled(self, scheduled_id: str, claimed_at: str) -> bool:
        """
        Move a row from pending to sent, stamping ``sent_at``.

        Conditional on the row still being pending; False if another worker
        got it first or it was cancelled. A failed delivery later moves the
        row on to failed.
        """

    @abstractmethod
    async def update_scheduled(self, scheduled_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def cancel_scheduled(self, reference_type: str, reference_id: str) -> int:
        """Cancel pending rows for a related entity; returns how many were cancelled."""


@dataclass(frozen=True)
class ServiceRoleCredentials:
    """Elevated-privilege database access: bypasses row-level security."""
    url: str
    service_role_key: str

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> Optional["ServiceRoleCredentials"]:
        if not settings.store_configured:
            return None
        return cls(url=settings.supabase_url, service_role_key=settings.supabase_service_role_key)

    def __repr__(self) -> str:
        return f"ServiceRoleCredentials(url={self.url!r}, service_role_key='***')"


class SupabaseNotificationStore(NotificationStore):
    """
    ``NotificationStore`` over the async Supabase client.

    Built without credentials, every call raises ``StoreNotConfiguredError``.
    Any client or PostgREST error is re-raised as ``StoreError``.
    """

    def __init__(self, credentials: Optional[ServiceRoleCredentials]):
        self.credentials = credentials
        self._client: Optional[AsyncClient] = None
        self._client_lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return self.credentials is not None

    async def _get_client(self) -> AsyncClient:
        if self.credentials is None:
            raise StoreNotConfiguredError()
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = await acreate_client(self.credentials.url, self.credentials.service_role_key)
        return self._client

    async def _execute(self, query, action: str):
        try:
            return await query.execute()
        except Exception as e:
            raise StoreError(f"{action} failed: {e}") from e

    # --- In-app inbox ---

    async def insert_notification(self, row: Dict[str, Any]) -> str:
        client = await self._get_client()
        response = await self._execute(
            client.table(NOTIFICATIONS_TABLE).insert(row), "Insert notification"
        )
        if not response.data:
            raise StoreError("Insert notification returned no row")
        return str(response.data[0]["id"])

    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        client = await self._get_client()
        response = await self._execute(
            client.table(NOTIFICATIONS_TABLE)
            .update({"read": True, "read_at": utc_now_iso()})
            .eq("id", notification_id)
            .eq("user_id", user_id),
            "Mark notification read",
        )
        return bool(response.data)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        client = await self._get_client()
        response = await self._execute(
            client.rpc("mark_all_notifications_read", {"p_user_id": user_id}),
            "Mark all notifications read",
        )
        return int(response.data or 0)

    async def get_unread_count(self, user_id: str) -> int:
        client = await self._get_client()
        response = await self._execute(
            client.rpc("get_unread_notification_count", {"p_user_id": user_id}),
            "Unread count",
        )
        return int(response.data or 0)

    async def list_notifications(
        self, user_id: str, limit: int = 50, unread_only: bool = False
    ) -> List[Dict[str, Any]]:
        client = await self._get_client()
        query = client.table(NOTIFICATIONS_TABLE).select("*").eq("user_id", user_id).eq("archived", False)
        if unread_only:
            query = query.eq("read", False)
        response = await self._execute(
            query.order("created_at", desc=True).limit(limit), "List notifications"
        )
        return list(response.data or [])

    # --- Preferences ---

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        client = await self._get_client()
        response = await self._execute(
            client.table(PREFERENCES_TABLE).select("*").eq("user_id", user_id).limit(1),
            "Fetch preferences",
        )
        return response.data[0] if response.data else None

    async def upsert_preferences(self, row: Dict[str, Any]) -> None:
        client = await self._get_client()
        await self._execute(
            client.table(PREFERENCES_TABLE).upsert(row, on_conflict="user_id"),
            "Upsert preferences",
        )

    # --- Push subscriptions ---

    async def list_push_subscriptions(self, user_id: str) -> List[PushSubscription]:
        client = await self._get_client()
        response = await self._execute(
            client.table(PUSH_SUBSCRIPTIONS_TABLE)
            .select("id, user_id, endpoint, p256dh, auth, notification_mode")
            .eq("user_id", user_id),
            "Fetch push subscriptions",
        )
        return [PushSubscription.from_row(row) for row in (response.data or [])]

    async def delete_push_subscriptions(self, subscription_ids: Sequence[str]) -> None:
        if not subscription_ids:
            return
        client = await self._get_client()
        await self._execute(
            client.table(PUSH_SUBSCRIPTIONS_TABLE).delete().in_("id", list(subscription_ids)),
            "Delete push subscriptions",
        )

    async def upsert_push_subscription(self, row: Dict[str, Any]) -> None:
        client = await self._get_client()
        await self._execute(
            client.table(PUSH_SUBSCRIPTIONS_TABLE).upsert(row, on_conflict="endpoint"),
            "Upsert push subscription",
        )

    async def delete_push_subscription(self, user_id: str, endpoint: str) -> bool:
        client = await self._get_client()
        response = await self._execute(
            client.table(PUSH_SUBSCRIPTIONS_TABLE).delete().eq("user_id", user_id).eq("endpoint", endpoint),
            "Delete push subscription",
        )
        return bool(response.data)

    # --- Identity ---

    async def get_user_email(self, user_id: str) -> Optional[str]:
        client = await self._get_client()
        try:
            response = await client.auth.admin.get_user_by_id(user_id)
        except Exception as e:
            raise StoreError(f"Auth lookup failed: {e}") from e
        user = getattr(response, "user", None)
        return getattr(user, "email", None) or None

    # --- Scheduled notifications ---

    async def insert_scheduled(self, row: Dict[str, Any]) -> str:
        client = await self._get_client()
        response = await self._execute(
            client.table(SCHEDULED_TABLE).insert(row), "Insert scheduled notification"
        )
        if not response.data:
            raise StoreError("Insert scheduled notification returned no row")
        return str(response.data[0]["id"])

    async def fetch_due_scheduled(self, now_iso: str, limit: int) -> List[ScheduledNotification]:
        client = await self._get_client()
        response = await self._execute(
            client.table(SCHEDULED_TABLE)
            .select("*")
            .eq("status", "pending")
            .lte("scheduled_for", now_iso)
            .order("scheduled_for")
            .limit(limit),
            "Fetch due scheduled notifications",
        )
        return [ScheduledNotification.from_row(row) for row in (response.data or [])]

    async def claim_scheduled(self, scheduled_id: str, claimed_at: str) -> bool:
        client = await self._get_client()
        response = await self._execute(
            client.table(SCHEDULED_TABLE)
            .update({"status": "sent", "sent_at": claimed_at})
            .eq("id", scheduled_id)
            .eq("status", "pending"),
            "Claim scheduled notification",
        )
        return bool(response.data)

    async def update_scheduled(self, scheduled_id: str, fields: Dict[str, Any]) -> None:
        client = await self._get_client()
        await self._execute(
            client.table(SCHEDULED_TABLE).update(fields).eq("id", scheduled_id),
            "Update scheduled notification",
        )

    async def cancel_scheduled(self, reference_type: str, reference_id: str) -> int:
        client = await self._get_client()
        response = await self._execute(
            client.table(SCHEDULED_TABLE)
            .update({"status": "cancelled"})
            .eq("reference_type", reference_type)
            .eq("reference_id", reference_id)
            .eq("status", "pending"),
            "Cancel scheduled notifications",
        )
        return len(response.data or [])
