# dalat_notifications/notifier.py
"""
Notification orchestrator.

``Notifier.notify`` is the single entry point: it renders the payload, resolves
channels from the user's preferences and fans out to the channel senders
concurrently, collecting one ``ChannelResult`` per channel.

Usage:
    from dalat_notifications import notify, RsvpConfirmationPayload

    result = await notify(RsvpConfirmationPayload(
        user_id="user-123",
        locale="en",
        event_slug="my-event",
        event_title="My Event",
    ))
    result.success          # any channel delivered
    result.all_succeeded    # every attempted channel delivered

Module-level functions delegate to a default ``Notifier`` built lazily from
``load_settings()``. Services that manage their own configuration construct a
``Notifier`` explicitly and call its methods instead.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .channels import EmailSender, InAppSender, PushSender
from .config import NotificationSettings, load_settings
from .errors import StoreError
from .preferences import PreferenceResolver, get_default_channels
from .store import NotificationStore, ServiceRoleCredentials, SupabaseNotificationStore
from .templates import DEFAULT_BASE_URL, render_template
from .types import (
    ChannelResult,
    CommentOnEventPayload,
    CommentOnMomentPayload,
    CommentTargetType,
    ConfirmAttendance24hPayload,
    EventInvitationPayload,
    EventReminderPayload,
    FeedbackRequestPayload,
    FinalReminder2hPayload,
    NewFollowerPayload,
    NewRsvpPayload,
    NotificationChannel,
    NotificationPayload,
    NotificationPreferences,
    NotificationType,
    NotifyOptions,
    NotifyResult,
    RecipientResult,
    RenderedNotification,
    ReplyToCommentPayload,
    RsvpConfirmationPayload,
    ThreadActivityPayload,
    TribeJoinRequestPayload,
    TribeNewEventPayload,
    TribeRequestApprovedPayload,
    TribeRequestRejectedPayload,
    UserInvitationPayload,
    VideoReadyPayload,
    WaitlistPositionPayload,
    WaitlistPromotionPayload,
    comment_preview,
)

logger = logging.getLogger("dalat_notifications.notifier")

# Used when the caller skips the preference lookup
SKIP_PREFERENCES_CHANNELS = (NotificationChannel.IN_APP, NotificationChannel.PUSH)

NO_EMAIL_TEMPLATE = "No email template for this notification type"
USER_EMAIL_NOT_FOUND = "User email not found"

PayloadFactory = Callable[[str], NotificationPayload]


def _ordered_unique(channels: Sequence[Union[NotificationChannel, str]]) -> List[NotificationChannel]:
    result: List[NotificationChannel] = []
    for channel in channels:
        channel = NotificationChannel(channel)
        if channel not in result:
            result.append(channel)
    return result


def _as_utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Notifier:
    """
    Orchestrates rendering, channel resolution and delivery.

    Args:
        store: Persistence adapter shared by the senders and the resolver
        in_app: In-app inbox sender
        push: Web Push sender
        email: Email sender
        preferences: Channel resolver
        base_url: Absolute app URL links are built from
        request_timeout_s: Upper bound for each channel branch of a notify call.
            The push branch gets the push sender's per-device bound on top.
    """

    def __init__(
        self,
        *,
        store: NotificationStore,
        in_app: InAppSender,
        push: PushSender,
        email: EmailSender,
        preferences: PreferenceResolver,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout_s: float = 15.0,
    ):
        self.store = store
        self.in_app = in_app
        self.push = push
        self.email = email
        self.preferences = preferences
        self.base_url = base_url
        self.request_timeout_s = request_timeout_s

    @classmethod
    def from_settings(
        cls,
        settings: Optional[NotificationSettings] = None,
        *,
        store: Optional[NotificationStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "Notifier":
        """Build a notifier and its senders from one settings object."""
        settings = settings or load_settings()
        store = store or SupabaseNotificationStore(ServiceRoleCredentials.from_settings(settings))
        return cls(
            store=store,
            in_app=InAppSender(store),
            push=PushSender(
                store,
                vapid_public_key=settings.vapid_public_key,
                vapid_private_key=settings.vapid_private_key,
                vapid_contact=settings.vapid_contact,
                timeout=settings.request_timeout_s,
            ),
            email=EmailSender(
                api_key=settings.resend_api_key,
                from_address=settings.email_from,
                site_url=settings.app_base_url,
                site_domain=settings.site_domain,
                api_url=settings.resend_api_url,
                timeout=settings.request_timeout_s,
            ),
            preferences=PreferenceResolver(
                store, timezone_name=settings.quiet_hours_timezone, clock=clock
            ),
            base_url=settings.app_base_url,
            request_timeout_s=settings.request_timeout_s,
        )

    # ------------------------------------------------------------------
    # Core flow
    # ------------------------------------------------------------------

    async def notify(self, payload: NotificationPayload, options: Optional[NotifyOptions] = None) -> NotifyResult:
        """
        Send a notification to a user via their preferred channels.

        Args:
            payload: Typed notification payload
            options: Forced channels, preference bypass, or deferred delivery

        Returns:
            NotifyResult with one entry per attempted channel. ``success`` is
            true when any channel delivered, or when no channel was needed.

        Raises:
            UnknownNotificationTypeError: payload has no registered template
        """
        options = options or NotifyOptions()
        rendered = render_template(payload, self.base_url)
        log_extra = {"user_id": payload.user_id, "notification_type": payload.type.value}

        if options.scheduled_for is not None:
            return await self._schedule(payload, options)

        logger.info(f"Starting notification: {payload.type.value} for user {payload.user_id}", extra=log_extra)

        if options.channels is not None:
            channels = _ordered_unique(options.channels)
        elif options.skip_preferences:
            channels = list(SKIP_PREFERENCES_CHANNELS)
        else:
            channels = await self.preferences.get_channels_for_notification(payload.user_id, payload.type)

        if not channels:
            logger.info("No enabled channels, skipping notification", extra=log_extra)
            return NotifyResult(success=True, channels=[])

        logger.info(f"Enabled channels: {', '.join(c.value for c in channels)}", extra=log_extra)

        outcomes = await asyncio.gather(
            *(self._guarded(channel, self._send_channel(channel, payload, rendered)) for channel in channels),
            return_exceptions=True,
        )
        results = [
            outcome if isinstance(outcome, ChannelResult) else ChannelResult.failure(channel, str(outcome))
            for channel, outcome in zip(channels, outcomes)
        ]

        success = any(r.success for r in results)
        notification_id = next(
            (r.message_id for r in results if r.channel is NotificationChannel.IN_APP and r.success), None
        )
        succeeded = sum(1 for r in results if r.success)
        log = logger.info if success else logger.warning
        log(f"Complete: {succeeded}/{len(results)} channels succeeded", extra=log_extra)

        return NotifyResult(success=success, channels=results, notification_id=notification_id)

    def _branch_timeout(self, channel: NotificationChannel) -> float:
        # Push bounds each device itself; its branch also covers the
        # subscription lookup and the expired-row cleanup around the deliveries.
        if channel is NotificationChannel.PUSH:
            return self.push.timeout + 2 * self.request_timeout_s
        return self.request_timeout_s

    async def _guarded(self, channel: NotificationChannel, coro) -> ChannelResult:
        timeout = self._branch_timeout(channel)
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"{channel.value} send timed out after {timeout}s", extra={"channel": channel.value})
            return ChannelResult.failure(channel, f"Timed out after {timeout}s")
        except Exception as e:
            logger.error(f"{channel.value} send raised: {e}", extra={"channel": channel.value})
            return ChannelResult.failure(channel, str(e) or e.__class__.__name__)

    async def _send_channel(
        self, channel: NotificationChannel, payload: NotificationPayload, rendered: RenderedNotification
    ) -> ChannelResult:
        if channel is NotificationChannel.IN_APP:
            return await self.in_app.send(
                payload.user_id, payload.type, rendered.in_app, metadata={"payload": payload.to_dict()}
            )
        if channel is NotificationChannel.PUSH:
            return await self.push.send(payload.user_id, rendered.push)

        if rendered.email is None:
            return ChannelResult.failure(channel, NO_EMAIL_TEMPLATE)
        email = await self._get_user_email(payload.user_id)
        if not email:
            return ChannelResult.failure(channel, USER_EMAIL_NOT_FOUND)
        return await self.email.send(email, rendered.email)

    async def _get_user_email(self, user_id: str) -> Optional[str]:
        try:
            return await self.store.get_user_email(user_id)
        except StoreError as e:
            logger.error(f"Error looking up email for user {user_id}: {e}")
            return None

    async def _schedule(self, payload: NotificationPayload, options: NotifyOptions) -> NotifyResult:
        row: Dict[str, Any] = {
            "user_id": payload.user_id,
            "type": payload.type.value,
            "scheduled_for": _as_utc_iso(options.scheduled_for),
            "payload": payload.to_dict(),
            "status": "pending",
        }
        if options.reference is not None:
            row["reference_type"] = options.reference.type
            row["reference_id"] = options.reference.id

        try:
            scheduled_id = await self.store.insert_scheduled(row)
        except StoreError as e:
            logger.error(f"Failed to schedule {payload.type.value} for user {payload.user_id}: {e}")
            return NotifyResult(success=False, channels=[])

        logger.info(f"Scheduled {payload.type.value} for user {payload.user_id} at {row['scheduled_for']}: {scheduled_id}")
        return NotifyResult(success=True, channels=[], scheduled_id=scheduled_id)

    async def cancel_scheduled(self, reference_type: str, reference_id: str) -> int:
        """Cancel pending scheduled notifications tied to an entity (e.g. a cancelled RSVP)."""
        try:
            cancelled = await self.store.cancel_scheduled(reference_type, reference_id)
        except StoreError as e:
            logger.error(f"Failed to cancel scheduled notifications for {reference_type}:{reference_id}: {e}")
            return 0
        if cancelled:
            logger.info(f"Cancelled {cancelled} scheduled notification(s) for {reference_type}:{reference_id}")
        return cancelled

    async def notify_multiple(
        self,
        user_ids: Sequence[str],
        factory: PayloadFactory,
        options: Optional[NotifyOptions] = None,
    ) -> List[RecipientResult]:
        """
        Notify many users concurrently, each with their own payload.

        Payloads are built up front, so a factory bug raises before anything is
        sent. After that, one recipient's failure never affects another's result.
        """
        payloads = [factory(user_id) for user_id in user_ids]
        outcomes = await asyncio.gather(
            *(self.notify(payload, options) for payload in payloads),
            return_exceptions=True,
        )

        results: List[RecipientResult] = []
        for user_id, outcome in zip(user_ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Notification for user {user_id} raised: {outcome}")
                outcome = NotifyResult(success=False, channels=[])
            results.append(RecipientResult(user_id=user_id, result=outcome))
        return results

    async def send_email_invitation(self, email: str, payload: NotificationPayload) -> ChannelResult:
        """
        Email a non-user directly by address.

        Skips user lookup and preference resolution: there is no account.
        """
        rendered = render_template(payload, self.base_url)
        if rendered.email is None:
            return ChannelResult.failure(NotificationChannel.EMAIL, NO_EMAIL_TEMPLATE)
        return await self._guarded(NotificationChannel.EMAIL, self.email.send(email, rendered.email))

    # ------------------------------------------------------------------
    # Preferences and inbox
    # ------------------------------------------------------------------

    async def get_user_preferences(self, user_id: str) -> Optional[NotificationPreferences]:
        return await self.preferences.get_user_preferences(user_id)

    async def update_user_preferences(self, user_id: str, updates: Mapping[str, Any]) -> bool:
        return await self.preferences.update_user_preferences(user_id, updates)

    async def get_channels_for_notification(
        self, user_id: str, notification_type: Union[NotificationType, str]
    ) -> List[NotificationChannel]:
        return await self.preferences.get_channels_for_notification(user_id, notification_type)

    async def mark_notification_read(self, notification_id: str, user_id: str) -> bool:
        return await self.in_app.mark_read(notification_id, user_id)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        return await self.in_app.mark_all_read(user_id)

    async def get_unread_count(self, user_id: str) -> int:
        return await self.in_app.get_unread_count(user_id)

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def notify_rsvp_confirmation(
        self, user_id: str, locale: str, event_title: str, event_slug: str, event_description: Optional[str] = None
    ) -> NotifyResult:
        return await self.notify(RsvpConfirmationPayload(
            user_id=user_id,
            locale=locale,
            event_slug=event_slug,
            event_title=event_title,
            event_description=event_description,
        ))

    async def notify_confirm_attendance_24h(
        self, user_id: str, locale: str, event_title: str, event_time: str, event_slug: str
    ) -> NotifyResult:
        return await self.notify(ConfirmAttendance24hPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title, event_time=event_time
        ))

    async def notify_final_reminder_2h(
        self,
        user_id: str,
        locale: str,
        event_title: str,
        location_name: str,
        google_maps_url: Optional[str],
        event_slug: str,
    ) -> NotifyResult:
        return await self.notify(FinalReminder2hPayload(
            user_id=user_id,
            locale=locale,
            event_slug=event_slug,
            event_title=event_title,
            location_name=location_name,
            google_maps_url=google_maps_url,
        ))

    async def notify_waitlist_promotion(
        self, user_id: str, locale: str, event_title: str, event_slug: str
    ) -> NotifyResult:
        return await self.notify(WaitlistPromotionPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title
        ))

    async def notify_event_reminder(
        self, user_id: str, locale: str, event_title: str, event_time: str, event_slug: str
    ) -> NotifyResult:
        return await self.notify(EventReminderPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title, event_time=event_time
        ))

    async def notify_waitlist_position_update(
        self, user_id: str, locale: str, event_title: str, position: int, event_slug: str
    ) -> NotifyResult:
        return await self.notify(WaitlistPositionPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title, position=position
        ))

    async def notify_organizer_new_rsvp(
        self, user_id: str, locale: str, event_title: str, attendee_name: str, event_slug: str
    ) -> NotifyResult:
        return await self.notify(NewRsvpPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title, attendee_name=attendee_name
        ))

    async def notify_feedback_request(
        self, user_id: str, locale: str, event_title: str, event_slug: str
    ) -> NotifyResult:
        return await self.notify(FeedbackRequestPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, event_title=event_title
        ))

    async def notify_user_invitation(
        self,
        user_id: str,
        locale: str,
        event_title: str,
        event_slug: str,
        starts_at: str,
        location_name: Optional[str],
        inviter_name: str,
    ) -> NotifyResult:
        return await self.notify(UserInvitationPayload(
            user_id=user_id,
            locale=locale,
            event_slug=event_slug,
            event_title=event_title,
            starts_at=starts_at,
            location_name=location_name,
            inviter_name=inviter_name,
        ))

    async def send_event_invitation(
        self,
        email: str,
        *,
        event_title: str,
        event_slug: str,
        starts_at: str,
        inviter_name: str,
        token: str,
        invitee_name: Optional[str] = None,
        event_description: Optional[str] = None,
        location_name: Optional[str] = None,
        locale: str = "en",
    ) -> ChannelResult:
        # Invitees have no account; user_id is left empty
        return await self.send_email_invitation(email, EventInvitationPayload(
            user_id="",
            locale=locale,
            invitee_email=email,
            invitee_name=invitee_name,
            event_title=event_title,
            event_slug=event_slug,
            event_description=event_description,
            starts_at=starts_at,
            location_name=location_name,
            inviter_name=inviter_name,
            token=token,
        ))

    async def notify_tribe_join_request(
        self, admin_ids: Sequence[str], requester_name: str, tribe_name: str, tribe_slug: str
    ) -> List[RecipientResult]:
        # Admin notifications default to English
        return await self.notify_multiple(
            admin_ids,
            lambda user_id: TribeJoinRequestPayload(
                user_id=user_id,
                locale="en",
                requester_name=requester_name,
                tribe_name=tribe_name,
                tribe_slug=tribe_slug,
            ),
        )

    async def notify_tribe_request_approved(self, user_id: str, tribe_name: str, tribe_slug: str) -> NotifyResult:
        return await self.notify(TribeRequestApprovedPayload(
            user_id=user_id, locale="en", tribe_name=tribe_name, tribe_slug=tribe_slug
        ))

    async def notify_tribe_request_rejected(self, user_id: str, tribe_name: str) -> NotifyResult:
        # Rejections are only ever shown in the inbox
        return await self.notify(
            TribeRequestRejectedPayload(user_id=user_id, locale="en", tribe_name=tribe_name),
            NotifyOptions(channels=[NotificationChannel.IN_APP]),
        )

    async def notify_tribe_new_event(
        self, member_ids: Sequence[str], event_title: str, event_slug: str, tribe_name: str
    ) -> List[RecipientResult]:
        return await self.notify_multiple(
            member_ids,
            lambda user_id: TribeNewEventPayload(
                user_id=user_id,
                locale="en",
                event_title=event_title,
                event_slug=event_slug,
                tribe_name=tribe_name,
            ),
        )

    async def notify_comment_on_event(
        self,
        user_id: str,
        locale: str,
        *,
        event_id: str,
        event_slug: str,
        event_title: str,
        comment_id: str,
        commenter_name: str,
        comment_content: str,
    ) -> NotifyResult:
        return await self.notify(CommentOnEventPayload(
            user_id=user_id,
            locale=locale,
            event_id=event_id,
            event_slug=event_slug,
            event_title=event_title,
            comment_id=comment_id,
            commenter_name=commenter_name,
            comment_preview=comment_preview(comment_content),
        ))

    async def notify_comment_on_moment(
        self,
        user_id: str,
        locale: str,
        *,
        moment_id: str,
        event_slug: str,
        commenter_name: str,
        comment_content: str,
    ) -> NotifyResult:
        return await self.notify(CommentOnMomentPayload(
            user_id=user_id,
            locale=locale,
            moment_id=moment_id,
            event_slug=event_slug,
            commenter_name=commenter_name,
            comment_preview=comment_preview(comment_content),
        ))

    async def notify_reply_to_comment(
        self,
        user_id: str,
        locale: str,
        *,
        content_type: CommentTargetType,
        content_id: str,
        event_slug: str,
        comment_id: str,
        parent_comment_id: str,
        replier_name: str,
        comment_content: str,
    ) -> NotifyResult:
        return await self.notify(ReplyToCommentPayload(
            user_id=user_id,
            locale=locale,
            content_type=content_type,
            content_id=content_id,
            event_slug=event_slug,
            comment_id=comment_id,
            parent_comment_id=parent_comment_id,
            replier_name=replier_name,
            comment_preview=comment_preview(comment_content),
        ))

    async def notify_thread_activity(
        self,
        user_id: str,
        locale: str,
        *,
        content_type: CommentTargetType,
        content_id: str,
        event_slug: str,
        content_title: str,
        thread_id: str,
        activity_count: int,
    ) -> NotifyResult:
        return await self.notify(ThreadActivityPayload(
            user_id=user_id,
            locale=locale,
            content_type=content_type,
            content_id=content_id,
            event_slug=event_slug,
            content_title=content_title,
            thread_id=thread_id,
            activity_count=activity_count,
        ))

    async def notify_video_ready(
        self, user_id: str, locale: str, event_slug: str, moment_id: str, event_title: Optional[str] = None
    ) -> NotifyResult:
        return await self.notify(VideoReadyPayload(
            user_id=user_id, locale=locale, event_slug=event_slug, moment_id=moment_id, event_title=event_title
        ))

    async def notify_new_follower(
        self, user_id: str, locale: str, follower_name: str, follower_username: str
    ) -> NotifyResult:
        return await self.notify(NewFollowerPayload(
            user_id=user_id, locale=locale, follower_name=follower_name, follower_username=follower_username
        ))


# ----------------------------------------------------------------------
# Default notifier
# ----------------------------------------------------------------------

_default_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Process-wide notifier, built from the environment on first use."""
    global _default_notifier
    if _default_notifier is None:
        _default_notifier = Notifier.from_settings(load_settings())
    return _default_notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    """Replace the process-wide notifier (None rebuilds it on next use)."""
    global _default_notifier
    _default_notifier = notifier


async def notify(payload: NotificationPayload, options: Optional[NotifyOptions] = None) -> NotifyResult:
    return await get_notifier().notify(payload, options)


async def notify_multiple(
    user_ids: Sequence[str], factory: PayloadFactory, options: Optional[NotifyOptions] = None
) -> List[RecipientResult]:
    return await get_notifier().notify_multiple(user_ids, factory, options)


async def send_email_invitation(email: str, payload: NotificationPayload) -> ChannelResult:
    return await get_notifier().send_email_invitation(email, payload)


async def get_user_preferences(user_id: str) -> Optional[NotificationPreferences]:
    return await get_notifier().get_user_preferences(user_id)


async def update_user_preferences(user_id: str, updates: Mapping[str, Any]) -> bool:
    return await get_notifier().update_user_preferences(user_id, updates)


async def get_channels_for_notification(
    user_id: str, notification_type: Union[NotificationType, str]
) -> List[NotificationChannel]:
    return await get_notifier().get_channels_for_notification(user_id, notification_type)


async def mark_notification_read(notification_id: str, user_id: str) -> bool:
    return await get_notifier().mark_notification_read(notification_id, user_id)


async def mark_all_notifications_read(user_id: str) -> int:
    return await get_notifier().mark_all_notifications_read(user_id)


async def get_unread_count(user_id: str) -> int:
    return await get_notifier().get_unread_count(user_id)


__all__ = [
    "Notifier",
    "get_notifier",
    "set_notifier",
    "notify",
    "notify_multiple",
    "send_email_invitation",
    "get_user_preferences",
    "update_user_preferences",
    "get_channels_for_notification",
    "get_default_channels",
    "mark_notification_read",
    "mark_all_notifications_read",
    "get_unread_count",
]
