# dalat_notifications/types.py
"""
Notification data model.

Payloads are frozen, keyword-only dataclasses, one per notification type. Each
class carries its type tag as a class attribute, so the set of payload classes
is the closed union ``NotificationPayload`` and the renderer can dispatch on the
class with an exhaustive ``match``.

Usage:
    from dalat_notifications.types import RsvpConfirmationPayload

    payload = RsvpConfirmationPayload(
        user_id="u1",
        locale="en",
        event_slug="jazz-night",
        event_title="Jazz Night",
        event_description="Bring a friend",
    )
    payload.to_dict()["type"]  # "rsvp_confirmation"
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from .errors import UnknownNotificationTypeError

logger = logging.getLogger("dalat_notifications.types")


class NotificationType(str, Enum):
    RSVP_CONFIRMATION = "rsvp_confirmation"
    CONFIRM_ATTENDANCE_24H = "confirm_attendance_24h"
    FINAL_REMINDER_2H = "final_reminder_2h"
    WAITLIST_PROMOTION = "waitlist_promotion"
    EVENT_REMINDER = "event_reminder"
    WAITLIST_POSITION = "waitlist_position"
    NEW_RSVP = "new_rsvp"
    FEEDBACK_REQUEST = "feedback_request"
    EVENT_INVITATION = "event_invitation"
    USER_INVITATION = "user_invitation"
    TRIBE_JOIN_REQUEST = "tribe_join_request"
    TRIBE_REQUEST_APPROVED = "tribe_request_approved"
    TRIBE_REQUEST_REJECTED = "tribe_request_rejected"
    TRIBE_NEW_EVENT = "tribe_new_event"
    COMMENT_ON_EVENT = "comment_on_event"
    COMMENT_ON_MOMENT = "comment_on_moment"
    REPLY_TO_COMMENT = "reply_to_comment"
    THREAD_ACTIVITY = "thread_activity"
    VIDEO_READY = "video_ready"
    NEW_FOLLOWER = "new_follower"


class NotificationChannel(str, Enum):
    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"


CommentTargetType = Literal["event", "moment"]

DEFAULT_NOTIFICATION_MODE = "sound_and_vibration"

COMMENT_PREVIEW_LENGTH = 100


def comment_preview(content: str) -> str:
    """First 100 characters of a comment, with an ellipsis when truncated."""
    if len(content) <= COMMENT_PREVIEW_LENGTH:
        return content
    return content[: COMMENT_PREVIEW_LENGTH - 3] + "..."


# ============================================
# Payloads
# ============================================

@dataclass(frozen=True, kw_only=True)
class BaseNotificationPayload:
    type: ClassVar[NotificationType]

    user_id: str
    locale: str = "en"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass(frozen=True, kw_only=True)
class EventNotificationPayload(BaseNotificationPayload):
    event_id: str = ""
    event_slug: str
    event_title: str
    event_description: Optional[str] = None
    event_time: Optional[str] = None
    location_name: Optional[str] = None
    google_maps_url: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class RsvpConfirmationPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.RSVP_CONFIRMATION


@dataclass(frozen=True, kw_only=True)
class ConfirmAttendance24hPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.CONFIRM_ATTENDANCE_24H
    event_time: str


@dataclass(frozen=True, kw_only=True)
class FinalReminder2hPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.FINAL_REMINDER_2H
    location_name: str


@dataclass(frozen=True, kw_only=True)
class WaitlistPromotionPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.WAITLIST_PROMOTION


@dataclass(frozen=True, kw_only=True)
class EventReminderPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.EVENT_REMINDER
    event_time: str


@dataclass(frozen=True, kw_only=True)
class WaitlistPositionPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.WAITLIST_POSITION
    position: int


@dataclass(frozen=True, kw_only=True)
class NewRsvpPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.NEW_RSVP
    attendee_name: str


@dataclass(frozen=True, kw_only=True)
class FeedbackRequestPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.FEEDBACK_REQUEST


@dataclass(frozen=True, kw_only=True)
class EventInvitationPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.EVENT_INVITATION
    invitee_email: str
    invitee_name: Optional[str] = None
    event_title: str
    event_slug: str
    event_description: Optional[str] = None
    starts_at: str
    location_name: Optional[str] = None
    inviter_name: str
    token: str


@dataclass(frozen=True, kw_only=True)
class UserInvitationPayload(EventNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.USER_INVITATION
    inviter_name: str
    starts_at: str


@dataclass(frozen=True, kw_only=True)
class TribeJoinRequestPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.TRIBE_JOIN_REQUEST
    requester_name: str
    tribe_name: str
    tribe_slug: str


@dataclass(frozen=True, kw_only=True)
class TribeRequestApprovedPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.TRIBE_REQUEST_APPROVED
    tribe_name: str
    tribe_slug: str


@dataclass(frozen=True, kw_only=True)
class TribeRequestRejectedPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.TRIBE_REQUEST_REJECTED
    tribe_name: str


@dataclass(frozen=True, kw_only=True)
class TribeNewEventPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.TRIBE_NEW_EVENT
    event_title: str
    event_slug: str
    tribe_name: str


@dataclass(frozen=True, kw_only=True)
class CommentOnEventPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.COMMENT_ON_EVENT
    event_id: str
    event_slug: str
    event_title: str
    comment_id: str
    commenter_name: str
    comment_preview: str


@dataclass(frozen=True, kw_only=True)
class CommentOnMomentPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.COMMENT_ON_MOMENT
    moment_id: str
    event_slug: str
    commenter_name: str
    comment_preview: str


@dataclass(frozen=True, kw_only=True)
class ReplyToCommentPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.REPLY_TO_COMMENT
    content_type: CommentTargetType
    content_id: str
    event_slug: str
    comment_id: str
    parent_comment_id: str
    replier_name: str
    comment_preview: str


@dataclass(frozen=True, kw_only=True)
class ThreadActivityPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.THREAD_ACTIVITY
    content_type: CommentTargetType
    content_id: str
    event_slug: str
    content_title: str
    thread_id: str
    activity_count: int


@dataclass(frozen=True, kw_only=True)
class VideoReadyPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.VIDEO_READY
    event_slug: str
    moment_id: str
    event_title: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class NewFollowerPayload(BaseNotificationPayload):
    type: ClassVar[NotificationType] = NotificationType.NEW_FOLLOWER
    follower_name: str
    follower_username: str


NotificationPayload = Union[
    RsvpConfirmationPayload,
    ConfirmAttendance24hPayload,
    FinalReminder2hPayload,
    WaitlistPromotionPayload,
    EventReminderPayload,
    WaitlistPositionPayload,
    NewRsvpPayload,
    FeedbackRequestPayload,
    EventInvitationPayload,
    UserInvitationPayload,
    TribeJoinRequestPayload,
    TribeRequestApprovedPayload,
    TribeRequestRejectedPayload,
    TribeNewEventPayload,
    # Comment notifications
    CommentOnEventPayload,
    CommentOnMomentPayload,
    ReplyToCommentPayload,
    ThreadActivityPayload,
    VideoReadyPayload,
    NewFollowerPayload,
]

PAYLOAD_CLASSES: Dict[NotificationType, type] = {
    cls.type: cls
    for cls in (
        RsvpConfirmationPayload,
        ConfirmAttendance24hPayload,
        FinalReminder2hPayload,
        WaitlistPromotionPayload,
        EventReminderPayload,
        WaitlistPositionPayload,
        NewRsvpPayload,
        FeedbackRequestPayload,
        EventInvitationPayload,
        UserInvitationPayload,
        TribeJoinRequestPayload,
        TribeRequestApprovedPayload,
        TribeRequestRejectedPayload,
        TribeNewEventPayload,
        CommentOnEventPayload,
        CommentOnMomentPayload,
        ReplyToCommentPayload,
        ThreadActivityPayload,
        VideoReadyPayload,
        NewFollowerPayload,
    )
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def payload_from_dict(data: Mapping[str, Any]) -> NotificationPayload:
    """
    Rebuild a payload from its serialized form (scheduled rows, row metadata).

    Accepts snake_case keys as written by ``to_dict`` and camelCase keys as
    written by the web frontend. Keys the payload class does not declare are
    dropped.
    """
    tag = data.get("type")
    try:
        notification_type = NotificationType(tag)
    except ValueError:
        raise UnknownNotificationTypeError(f"Unknown notification type: {tag!r}") from None

    cls = PAYLOAD_CLASSES[notification_type]
    names = {f.name for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(key)
        if name in names:
            kwargs[name] = value
    return cls(**kwargs)


# ============================================
# Rendered content
# ============================================

@dataclass(frozen=True, kw_only=True)
class NotificationContent:
    title: str
    body: str
    primary_action_url: Optional[str] = None
    primary_action_label: Optional[str] = None
    secondary_action_url: Optional[str] = None
    secondary_action_label: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class PushAction:
    action: str
    title: str
    url: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class PushContent(NotificationContent):
    tag: Optional[str] = None
    require_interaction: bool = False
    badge: Optional[int] = None
    actions: Tuple[PushAction, ...] = ()


@dataclass(frozen=True, kw_only=True)
class EmailContent(NotificationContent):
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None
    reply_to: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class RenderedNotification:
    in_app: NotificationContent
    push: PushContent
    email: Optional[EmailContent] = None


# ============================================
# Results
# ============================================

@dataclass
class ChannelResult:
    channel: NotificationChannel
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def ok(cls, channel: NotificationChannel, message_id: Optional[str] = None) -> "ChannelResult":
        return cls(channel=channel, success=True, message_id=message_id)

    @classmethod
    def failure(cls, channel: NotificationChannel, error: str) -> "ChannelResult":
        return cls(channel=channel, success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"channel": self.channel.value, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        if self.message_id is not None:
            data["message_id"] = self.message_id
        return data


@dataclass
class NotifyResult:
    success: bool
    channels: List[ChannelResult] = field(default_factory=list)
    notification_id: Optional[str] = None
    scheduled_id: Optional[str] = None

    @property
    def all_succeeded(self) -> bool:
        """Stricter reading of success: every attempted channel delivered."""
        return all(r.success for r in self.channels)

    @property
    def failed_channels(self) -> List[NotificationChannel]:
        return [r.channel for r in self.channels if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "channels": [r.to_dict() for r in self.channels],
        }
        if self.notification_id is not None:
            data["notification_id"] = self.notification_id
        if self.scheduled_id is not None:
            data["scheduled_id"] = self.scheduled_id
        return data


@dataclass
class RecipientResult:
    """One entry of a multi-user fan-out."""
    user_id: str
    result: NotifyResult


@dataclass
class BulkEmailResult:
    sent: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


# ============================================
# Options
# ============================================

@dataclass(frozen=True)
class NotificationReference:
    """Related entity of a scheduled notification, used to cancel it later."""
    type: str
    id: str


@dataclass(frozen=True, kw_only=True)
class NotifyOptions:
    # Override resolved channels for this notification
    channels: Optional[Sequence[NotificationChannel]] = None
    # Skip preference lookup and use in_app + push
    skip_preferences: bool = False
    # Store for later delivery instead of sending now
    scheduled_for: Optional[datetime] = None
    reference: Optional[NotificationReference] = None


# ============================================
# Persisted records
# ============================================

def _hhmm(value: Any, default: str) -> str:
    # Postgres time columns come back as HH:MM:SS
    if not value:
        return default
    return str(value)[:5]


@dataclass
class NotificationPreferences:
    user_id: str
    channel_preferences: Dict[NotificationType, List[NotificationChannel]] = field(default_factory=dict)
    email_enabled: bool = True
    push_enabled: bool = True
    in_app_enabled: bool = True
    email_digest: bool = False
    quiet_hours_enabled: bool = False
    quiet_hours_start: str = "22:00"
    quiet_hours_end: str = "08:00"

    # Columns callers may change through update_user_preferences
    UPDATABLE_FIELDS: ClassVar[frozenset] = frozenset({
        "channel_preferences",
        "email_enabled",
        "push_enabled",
        "in_app_enabled",
        "email_digest",
        "quiet_hours_enabled",
        "quiet_hours_start",
        "quiet_hours_end",
    })

    def is_channel_enabled(self, channel: NotificationChannel) -> bool:
        if channel is NotificationChannel.IN_APP:
            return self.in_app_enabled
        if channel is NotificationChannel.PUSH:
            return self.push_enabled
        if channel is NotificationChannel.EMAIL:
            return self.email_enabled
        return True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NotificationPreferences":
        overrides: Dict[NotificationType, List[NotificationChannel]] = {}
        for raw_type, raw_channels in (row.get("channel_preferences") or {}).items():
            try:
                overrides[NotificationType(raw_type)] = [NotificationChannel(c) for c in (raw_channels or [])]
            except ValueError:
                logger.warning(f"Ignoring unknown channel preference {raw_type!r}: {raw_channels!r}")
        return cls(
            user_id=str(row["user_id"]),
            channel_preferences=overrides,
            email_enabled=bool(row.get("email_enabled", True)),
            push_enabled=bool(row.get("push_enabled", True)),
            in_app_enabled=bool(row.get("in_app_enabled", True)),
            email_digest=bool(row.get("email_digest", False)),
            quiet_hours_enabled=bool(row.get("quiet_hours_enabled", False)),
            quiet_hours_start=_hhmm(row.get("quiet_hours_start"), "22:00"),
            quiet_hours_end=_hhmm(row.get("quiet_hours_end"), "08:00"),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "channel_preferences": {
                t.value: [c.value for c in channels] for t, channels in self.channel_preferences.items()
            },
            "email_enabled": self.email_enabled,
            "push_enabled": self.push_enabled,
            "in_app_enabled": self.in_app_enabled,
            "email_digest": self.email_digest,
            "quiet_hours_enabled": self.quiet_hours_enabled,
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
        }


@dataclass(frozen=True)
class PushSubscription:
    id: str
    user_id: str
    endpoint: str
    p256dh: str
    auth: str
    notification_mode: str = DEFAULT_NOTIFICATION_MODE

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PushSubscription":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            endpoint=row["endpoint"],
            p256dh=row["p256dh"],
            auth=row["auth"],
            notification_mode=row.get("notification_mode") or DEFAULT_NOTIFICATION_MODE,
        )

    def to_subscription_info(self) -> Dict[str, Any]:
        """Subscription in the shape the Web Push library expects."""
        return {"endpoint": self.endpoint, "keys": {"p256dh": self.p256dh, "auth": self.auth}}


# Matches the CHECK constraint on scheduled_notifications.status
SCHEDULED_STATUSES = ("pending", "sent", "cancelled", "failed")
ScheduledStatus = Literal["pending", "sent", "cancelled", "failed"]


@dataclass
class ScheduledNotification:
    id: str
    user_id: str
    type: str
    scheduled_for: str
    payload: Dict[str, Any]
    status: ScheduledStatus = "pending"
    sent_at: Optional[str] = None
    error_message: Optional[str] = None
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ScheduledNotification":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            type=row["type"],
            scheduled_for=str(row["scheduled_for"]),
            payload=dict(row.get("payload") or {}),
            status=row.get("status", "pending"),
            sent_at=row.get("sent_at"),
            error_message=row.get("error_message"),
            reference_type=row.get("reference_type"),
            reference_id=row.get("reference_id"),
        )


__all__ = [
    "NotificationType",
    "NotificationChannel",
    "CommentTargetType",
    "DEFAULT_NOTIFICATION_MODE",
    "comment_preview",
    "BaseNotificationPayload",
    "EventNotificationPayload",
    "RsvpConfirmationPayload",
    "ConfirmAttendance24hPayload",
    "FinalReminder2hPayload",
    "WaitlistPromotionPayload",
    "EventReminderPayload",
    "WaitlistPositionPayload",
    "NewRsvpPayload",
    "FeedbackRequestPayload",
    "EventInvitationPayload",
    "UserInvitationPayload",
    "TribeJoinRequestPayload",
    "TribeRequestApprovedPayload",
    "TribeRequestRejectedPayload",
    "TribeNewEventPayload",
    "CommentOnEventPayload",
    "CommentOnMomentPayload",
    "ReplyToCommentPayload",
    "ThreadActivityPayload",
    "VideoReadyPayload",
    "NewFollowerPayload",
    "NotificationPayload",
    "PAYLOAD_CLASSES",
    "payload_from_dict",
    "NotificationContent",
    "PushAction",
    "PushContent",
    "EmailContent",
    "RenderedNotification",
    "ChannelResult",
    "NotifyResult",
    "RecipientResult",
    "BulkEmailResult",
    "NotificationReference",
    "NotifyOptions",
    "NotificationPreferences",
    "PushSubscription",
    "SCHEDULED_STATUSES",
    "ScheduledStatus",
    "ScheduledNotification",
]
