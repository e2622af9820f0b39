# dalat_notifications/channels/push.py
"""
Web Push Notification Channel

Sends browser push notifications to every device a user registered, using the
Web Push protocol with VAPID authentication.

Configuration (see ``NotificationSettings``):
    NEXT_PUBLIC_VAPID_PUBLIC_KEY: VAPID public key handed to browsers
    VAPID_PRIVATE_KEY: VAPID private key used to sign deliveries
    VAPID_CONTACT: Contact URI for VAPID claims (e.g. mailto:hello@dalat.app)

Deliveries to a user's devices run concurrently. pywebpush is blocking, so
each delivery runs in a worker thread. A 404 or 410 from the push service
means the browser dropped the subscription; those rows are deleted in one
batch once every delivery has finished. Each delivery is bounded by ``timeout``;
a device that runs over counts as a failed delivery on that device only.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pywebpush import WebPushException, webpush

from ..store import NotificationStore
from ..types import (
    DEFAULT_NOTIFICATION_MODE,
    ChannelResult,
    NotificationChannel,
    PushContent,
    PushSubscription,
)
from .base import ChannelSender

logger = logging.getLogger("dalat_notifications.channels.push")

EXPIRED_STATUS_CODES = (404, 410)
BADGE_UPDATE_TAG = "badge-update"


@dataclass
class DeliveryOutcome:
    subscription_id: str
    success: bool
    expired: bool = False
    error: Optional[str] = None


def _status_code(error: WebPushException) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


class PushSender(ChannelSender):
    """
    Web Push delivery channel.

    Args:
        store: Holds ``push_subscriptions``
        vapid_public_key: Public key browsers subscribe with
        vapid_private_key: Signing key for deliveries
        vapid_contact: ``sub`` claim of the VAPID JWT
        timeout: Per-device bound in seconds, for the HTTP call and the worker thread
        send_func: Delivery function with pywebpush's ``webpush`` signature
    """

    channel = NotificationChannel.PUSH
    channel_name = "Browser Push Notifications"

    def __init__(
        self,
        store: NotificationStore,
        *,
        vapid_public_key: Optional[str],
        vapid_private_key: Optional[str],
        vapid_contact: str,
        timeout: float = 15.0,
        send_func: Callable[..., Any] = webpush,
    ):
        self.store = store
        self.vapid_public_key = vapid_public_key
        self.vapid_private_key = vapid_private_key
        self.vapid_contact = vapid_contact
        self.timeout = timeout
        self.send_func = send_func

        if not (vapid_public_key and vapid_private_key and vapid_contact):
            self.config_error = "VAPID keys not configured"
        elif not store.is_configured():
            self.config_error = "Supabase service client not configured"

    def build_payload(self, content: PushContent) -> Dict[str, Any]:
        """JSON body the service worker receives, without the per-device mode."""
        payload: Dict[str, Any] = {
            "title": content.title,
            "body": content.body,
            "url": content.primary_action_url,
            "tag": content.tag,
            "badgeCount": content.badge if content.badge is not None else 1,
            "requireInteraction": content.require_interaction,
        }
        if content.actions:
            payload["actions"] = [
                {k: v for k, v in {"action": a.action, "title": a.title, "url": a.url}.items() if v is not None}
                for a in content.actions
            ]
        return {k: v for k, v in payload.items() if v is not None}

    async def send(self, user_id: str, content: PushContent) -> ChannelResult:
        """
        Send a push notification to all of a user's devices.

        Returns:
            Success when at least one device received it, or when the user has
            no registered devices.
        """
        if not self.is_enabled():
            return self.not_configured()

        try:
            subscriptions = await self.store.list_push_subscriptions(user_id)
        except Exception as e:
            logger.error(f"Error fetching push subscriptions for user {user_id}: {e}")
            return self.failure(str(e))

        if not subscriptions:
            logger.info(f"No push subscriptions for user {user_id}")
            return self.ok()

        payload = self.build_payload(content)
        outcomes: List[DeliveryOutcome] = await asyncio.gather(
            *(self._send_to_subscription(sub, payload) for sub in subscriptions)
        )

        sent = sum(1 for o in outcomes if o.success)
        failed = len(outcomes) - sent
        expired_ids = [o.subscription_id for o in outcomes if o.expired]

        if expired_ids:
            logger.info(f"Cleaning up {len(expired_ids)} expired subscription(s) for user {user_id}")
            try:
                await self.store.delete_push_subscriptions(expired_ids)
            except Exception as e:
                logger.error(f"Error deleting expired subscriptions {expired_ids}: {e}")

        logger.info(f"Web push sent to {sent}/{len(outcomes)} devices for user {user_id}")

        if sent > 0 or failed == 0:
            return self.ok()
        first_error = next((o.error for o in outcomes if o.error), "unknown error")
        return self.failure(f"Push delivery failed on {failed} device(s): {first_error}")

    async def _send_to_subscription(self, subscription: PushSubscription, payload: Dict[str, Any]) -> DeliveryOutcome:
        data = json.dumps(
            {**payload, "notificationMode": subscription.notification_mode or DEFAULT_NOTIFICATION_MODE}
        )
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    self.send_func,
                    subscription_info=subscription.to_subscription_info(),
                    data=data,
                    vapid_private_key=self.vapid_private_key,
                    # pywebpush adds aud/exp to the claims dict, so each call gets its own
                    vapid_claims={"sub": self.vapid_contact},
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
            return DeliveryOutcome(subscription.id, success=True)
        except asyncio.TimeoutError:
            logger.warning(f"WebPush to subscription {subscription.id} timed out after {self.timeout}s")
            return DeliveryOutcome(subscription.id, success=False, error=f"Timed out after {self.timeout}s")
        except WebPushException as e:
            if _status_code(e) in EXPIRED_STATUS_CODES:
                return DeliveryOutcome(subscription.id, success=False, expired=True, error="subscription_expired")
            logger.error(f"WebPush error for subscription {subscription.id}: {e}")
            return DeliveryOutcome(subscription.id, success=False, error=str(e))
        except Exception as e:
            logger.error(f"Failed to send to subscription {subscription.id}: {e}")
            return DeliveryOutcome(subscription.id, success=False, error=str(e))

    async def update_badge_count(self, user_id: str, count: int) -> ChannelResult:
        """Badge-only update on all of a user's devices."""
        return await self.send(user_id, PushContent(title="", body="", badge=count, tag=BADGE_UPDATE_TAG))

    # --- Subscription Management ---

    async def save_subscription(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        notification_mode: str = DEFAULT_NOTIFICATION_MODE,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Save a push subscription for a user.

        One row per endpoint: re-subscribing the same browser replaces its keys.
        """
        row = {
            "user_id": user_id,
            "endpoint": endpoint,
            "p256dh": p256dh,
            "auth": auth,
            "notification_mode": notification_mode,
        }
        if user_agent:
            row["user_agent"] = user_agent
        try:
            await self.store.upsert_push_subscription(row)
            return True
        except Exception as e:
            logger.error(f"Error saving subscription for user {user_id}: {e}")
            return False

    async def remove_subscription(self, user_id: str, endpoint: str) -> bool:
        """Remove a push subscription."""
        try:
            return await self.store.delete_push_subscription(user_id, endpoint)
        except Exception as e:
            logger.error(f"Error removing subscription for user {user_id}: {e}")
            return False

    def get_public_key(self) -> Optional[str]:
        """Get VAPID public key for client subscription."""
        return self.vapid_public_key if self.is_enabled() else None
