# tests/fakes.py
"""In-memory stand-ins for the database, the push service and the email API."""
import itertools
import json
import random
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
from pywebpush import WebPushException

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dalat_notifications.channels import EmailSender, InAppSender, PushSender  # noqa: E402
from dalat_notifications.errors import StoreError  # noqa: E402
from dalat_notifications.notifier import Notifier  # noqa: E402
from dalat_notifications.preferences import PreferenceResolver  # noqa: E402
from dalat_notifications.store import NotificationStore  # noqa: E402
from dalat_notifications.types import SCHEDULED_STATUSES, PushSubscription, ScheduledNotification  # noqa: E402


class InMemoryStore(NotificationStore):
    """
    Dict-backed ``NotificationStore``.

    ``fail_on`` holds method names that raise ``StoreError``;
    ``fail_users`` makes ``insert_notification`` fail for those user ids.
    Scheduled-row statuses are checked against ``SCHEDULED_STATUSES`` the way
    the table constraint checks them; ``status_writes`` records each accepted one.
    """

    def __init__(self, *, configured: bool = True):
        self.configured = configured
        self.notifications: List[Dict[str, Any]] = []
        self.preferences: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, PushSubscription] = {}
        self.emails: Dict[str, str] = {}
        self.scheduled: Dict[str, Dict[str, Any]] = {}
        self.deleted_subscription_batches: List[List[str]] = []
        self.fail_on: set = set()
        self.fail_users: set = set()
        self.calls: List[str] = []
        self.lost_claims: set = set()
        self.status_writes: List[tuple] = []
        self._ids = itertools.count(1)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StoreError(f"{operation} failed")

    def _set_scheduled(self, scheduled_id: str, fields: Dict[str, Any]) -> None:
        status = fields.get("status")
        if status is not None:
            if status not in SCHEDULED_STATUSES:
                raise StoreError(f"scheduled_notifications_status_check violated by '{status}'")
            self.status_writes.append((scheduled_id, status))
        self.scheduled[scheduled_id].update(fields)

    def is_configured(self) -> bool:
        return self.configured

    def add_subscription(self, sub_id: str, user_id: str, endpoint: str, mode: str = "sound_and_vibration") -> None:
        self.subscriptions[sub_id] = PushSubscription(
            id=sub_id, user_id=user_id, endpoint=endpoint, p256dh="p256", auth="auth", notification_mode=mode
        )

    # --- In-app inbox ---

    async def insert_notification(self, row: Dict[str, Any]) -> str:
        self._enter("insert_notification")
        if row["user_id"] in self.fail_users:
            raise StoreError(f"insert rejected for {row['user_id']}")
        notification_id = f"n-{next(self._ids)}"
        self.notifications.append({"id": notification_id, **row})
        return notification_id

    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        self._enter("mark_notification_read")
        for row in self.notifications:
            if row["id"] == notification_id and row["user_id"] == user_id:
                row["read"] = True
                return True
        return False

    async def mark_all_notifications_read(self, user_id: str) -> int:
        self._enter("mark_all_notifications_read")
        count = 0
        for row in self.notifications:
            if row["user_id"] == user_id and not row["read"]:
                row["read"] = True
                count += 1
        return count

    async def get_unread_count(self, user_id: str) -> int:
        self._enter("get_unread_count")
        return sum(1 for row in self.notifications if row["user_id"] == user_id and not row["read"])

    async def list_notifications(self, user_id: str, limit: int = 50, unread_only: bool = False):
        self._enter("list_notifications")
        rows = [r for r in self.notifications if r["user_id"] == user_id and (not unread_only or not r["read"])]
        return list(reversed(rows))[:limit]

    # --- Preferences ---

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._enter("get_preferences")
        return self.preferences.get(user_id)

    async def upsert_preferences(self, row: Dict[str, Any]) -> None:
        self._enter("upsert_preferences")
        existing = self.preferences.setdefault(row["user_id"], {"user_id": row["user_id"]})
        existing.update(row)

    # --- Push subscriptions ---

    async def list_push_subscriptions(self, user_id: str) -> List[PushSubscription]:
        self._enter("list_push_subscriptions")
        return [s for s in self.subscriptions.values() if s.user_id == user_id]

    async def delete_push_subscriptions(self, subscription_ids: Sequence[str]) -> None:
        self._enter("delete_push_subscriptions")
        self.deleted_subscription_batches.append(list(subscription_ids))
        for sub_id in subscription_ids:
            self.subscriptions.pop(sub_id, None)

    async def upsert_push_subscription(self, row: Dict[str, Any]) -> None:
        self._enter("upsert_push_subscription")
        existing = next((k for k, s in self.subscriptions.items() if s.endpoint == row["endpoint"]), None)
        sub_id = existing or f"s-{next(self._ids)}"
        self.subscriptions[sub_id] = PushSubscription.from_row({"id": sub_id, **row})

    async def delete_push_subscription(self, user_id: str, endpoint: str) -> bool:
        self._enter("delete_push_subscription")
        for sub_id, sub in list(self.subscriptions.items()):
            if sub.user_id == user_id and sub.endpoint == endpoint:
                del self.subscriptions[sub_id]
                return True
        return False

    # --- Identity ---

    async def get_user_email(self, user_id: str) -> Optional[str]:
        self._enter("get_user_email")
        return self.emails.get(user_id)

    # --- Scheduled notifications ---

    async def insert_scheduled(self, row: Dict[str, Any]) -> str:
        self._enter("insert_scheduled")
        scheduled_id = f"sch-{next(self._ids)}"
        self.scheduled[scheduled_id] = {"id": scheduled_id, **row}
        return scheduled_id

    async def fetch_due_scheduled(self, now_iso: str, limit: int) -> List[ScheduledNotification]:
        self._enter("fetch_due_scheduled")
        now = datetime.fromisoformat(now_iso)
        due = [
            row for row in self.scheduled.values()
            if row["status"] == "pending" and datetime.fromisoformat(row["scheduled_for"]) <= now
        ]
        due.sort(key=lambda row: datetime.fromisoformat(row["scheduled_for"]))
        return [ScheduledNotification.from_row(row) for row in due[:limit]]

    async def claim_scheduled(self, scheduled_id: str, claimed_at: str) -> bool:
        self._enter("claim_scheduled")
        if scheduled_id in self.lost_claims:
            return False
        row = self.scheduled[scheduled_id]
        if row["status"] != "pending":
            return False
        self._set_scheduled(scheduled_id, {"status": "sent", "sent_at": claimed_at})
        return True

    async def update_scheduled(self, scheduled_id: str, fields: Dict[str, Any]) -> None:
        self._enter("update_scheduled")
        self._set_scheduled(scheduled_id, fields)

    async def cancel_scheduled(self, reference_type: str, reference_id: str) -> int:
        self._enter("cancel_scheduled")
        count = 0
        for row in self.scheduled.values():
            if (
                row.get("reference_type") == reference_type
                and row.get("reference_id") == reference_id
                and row["status"] == "pending"
            ):
                self._set_scheduled(row["id"], {"status": "cancelled"})
                count += 1
        return count


class FakeWebPush:
    """Callable with pywebpush's ``webpush`` keyword signature."""

    def __init__(
        self,
        status_by_endpoint: Optional[Dict[str, int]] = None,
        delay_by_endpoint: Optional[Dict[str, float]] = None,
    ):
        self.status_by_endpoint = status_by_endpoint or {}
        self.delay_by_endpoint = delay_by_endpoint or {}
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def __call__(self, *, subscription_info, data, vapid_private_key, vapid_claims, timeout):
        with self._lock:
            self.calls.append({
                "endpoint": subscription_info["endpoint"],
                "keys": subscription_info["keys"],
                "data": json.loads(data),
                "vapid_private_key": vapid_private_key,
                "vapid_claims": dict(vapid_claims),
                "timeout": timeout,
            })
        delay = self.delay_by_endpoint.get(subscription_info["endpoint"])
        if delay:
            time.sleep(delay)
        status = self.status_by_endpoint.get(subscription_info["endpoint"])
        if status:
            raise WebPushException(f"Push failed: {status}", response=SimpleNamespace(status_code=status))
        return SimpleNamespace(status_code=201)


class EmailApi:
    """Records Resend API requests behind an ``httpx.MockTransport``."""

    def __init__(self, responder: Optional[Callable[[httpx.Request], httpx.Response]] = None):
        self.requests: List[httpx.Request] = []
        self.responder = responder
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responder is not None:
            return self.responder(request)
        if request.url.path.endswith("/batch"):
            body = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"id": f"b-{i}"} for i in range(len(body))]})
        return httpx.Response(200, json={"id": f"email-{len(self.requests)}"})

    def bodies(self) -> List[Any]:
        return [json.loads(r.content) for r in self.requests]


def make_email_sender(api: Optional[EmailApi] = None, **overrides) -> EmailSender:
    options = dict(
        api_key="re_test_key_123456",
        from_address="Dalat Events <events@dalat.app>",
        site_url="https://dalat.app",
        site_domain="dalat.app",
        rng=random.Random(7),
        transport=(api or EmailApi()).transport,
    )
    options.update(overrides)
    return EmailSender(**options)


def make_push_sender(store: InMemoryStore, webpush_fake: Optional[FakeWebPush] = None, **overrides) -> PushSender:
    options = dict(
        vapid_public_key="BPublicKey",
        vapid_private_key="private-key",
        vapid_contact="mailto:hello@dalat.app",
        send_func=webpush_fake or FakeWebPush(),
    )
    options.update(overrides)
    return PushSender(store, **options)


def make_notifier(
    store: Optional[InMemoryStore] = None,
    *,
    webpush_fake: Optional[FakeWebPush] = None,
    email_api: Optional[EmailApi] = None,
    clock: Optional[Callable[[], datetime]] = None,
    request_timeout_s: float = 5.0,
) -> Notifier:
    store = store or InMemoryStore()
    return Notifier(
        store=store,
        in_app=InAppSender(store),
        push=make_push_sender(store, webpush_fake, timeout=request_timeout_s),
        email=make_email_sender(email_api),
        preferences=PreferenceResolver(store, clock=clock),
        base_url="https://dalat.app",
        request_timeout_s=request_timeout_s,
    )
