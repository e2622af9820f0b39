# dalat_notifications/templates.py
"""
Notification Template Renderer

Maps a typed notification payload to per-channel content:
- in_app: title, body and up to two labeled action links
- push: same text plus a dedup tag and interaction hints
- email: subject, HTML body and plain-text body (event invitations only)

Copy is hand-maintained for three locales (en, fr, vi). Any other locale falls
back to English. Links are absolute, built from the app base URL and a
locale-free path, so they stay valid outside the originating session.

Rendering is pure: no I/O, no clock, no randomness.
"""

import html
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, NoReturn, Optional
from zoneinfo import ZoneInfo

from .errors import UnknownNotificationTypeError
from .types import (
    CommentOnEventPayload,
    CommentOnMomentPayload,
    ConfirmAttendance24hPayload,
    EmailContent,
    EventInvitationPayload,
    EventReminderPayload,
    FeedbackRequestPayload,
    FinalReminder2hPayload,
    NewFollowerPayload,
    NewRsvpPayload,
    NotificationContent,
    NotificationPayload,
    PushContent,
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
)

logger = logging.getLogger("dalat_notifications.templates")

SUPPORTED_LOCALES = ("en", "fr", "vi")
DEFAULT_BASE_URL = "https://dalat.app"
CITY_TIMEZONE = ZoneInfo("Asia/Ho_Chi_Minh")
INVITE_DESCRIPTION_LIMIT = 200


def notification_locale(locale: Optional[str]) -> str:
    """Clamp a content locale to one with notification copy."""
    return locale if locale in SUPPORTED_LOCALES else "en"


# ============================================
# Translation strings
# ============================================

Text = Dict[str, Callable[..., str]]

TRANSLATIONS: Dict[str, Text] = {
    "rsvp_confirmation": {
        "en": lambda title: f'You\'re going to "{title}"!',
        "fr": lambda title: f'Vous participez à "{title}" !',
        "vi": lambda title: f'Bạn sẽ tham gia "{title}"!',
    },
    "rsvp_confirmation_body": {
        "en": lambda desc: f"Remember: {desc}" if desc else "See you there!",
        "fr": lambda desc: f"À retenir : {desc}" if desc else "À bientôt !",
        "vi": lambda desc: f"Lưu ý: {desc}" if desc else "Hẹn gặp bạn!",
    },
    "confirm_attendance_24h": {
        "en": lambda title, time: f'"{title}" is tomorrow at {time}. Are you still coming?',
        "fr": lambda title, time: f'"{title}" demain à {time}. Vous venez toujours ?',
        "vi": lambda title, time: f'"{title}" vào ngày mai lúc {time}. Bạn vẫn đến chứ?',
    },
    "final_reminder_2h": {
        "en": lambda title, location: f'"{title}" starts in 2 hours at {location}!',
        "fr": lambda title, location: f'"{title}" commence dans 2h à {location} !',
        "vi": lambda title, location: f'"{title}" bắt đầu trong 2 giờ tại {location}!',
    },
    "waitlist_promotion": {
        "en": lambda title: f'You got a spot for "{title}"! See you there.',
        "fr": lambda title: f'Vous avez une place pour "{title}" ! À bientôt.',
        "vi": lambda title: f'Bạn đã có chỗ cho "{title}"! Hẹn gặp bạn.',
    },
    "event_reminder": {
        "en": lambda title, time: f'"{title}" is tomorrow at {time}. Don\'t forget!',
        "fr": lambda title, time: f'"{title}" demain à {time}. N\'oubliez pas !',
        "vi": lambda title, time: f'"{title}" vào ngày mai lúc {time}. Đừng quên!',
    },
    "waitlist_position": {
        "en": lambda title, pos: f'You\'re now #{pos} on the waitlist for "{title}".',
        "fr": lambda title, pos: f'Vous êtes #{pos} sur la liste d\'attente pour "{title}".',
        "vi": lambda title, pos: f'Bạn đang ở vị trí #{pos} trong danh sách chờ cho "{title}".',
    },
    "new_rsvp": {
        "en": lambda title, name: f'{name} is going to "{title}"',
        "fr": lambda title, name: f'{name} participe à "{title}"',
        "vi": lambda title, name: f'{name} sẽ tham gia "{title}"',
    },
    "feedback_request": {
        "en": lambda title: f'How was "{title}"?',
        "fr": lambda title: f'Comment était "{title}" ?',
        "vi": lambda title: f'"{title}" thế nào?',
    },
    "feedback_request_body": {
        "en": lambda: "Tap to share your experience with the organizer",
        "fr": lambda: "Appuyez pour partager votre avis",
        "vi": lambda: "Nhấn để chia sẻ trải nghiệm của bạn",
    },
    "invitation": {
        "en": lambda inviter, title: f'{inviter} invited you to "{title}"',
        "fr": lambda inviter, title: f'{inviter} vous invite à "{title}"',
        "vi": lambda inviter, title: f'{inviter} mời bạn tham gia "{title}"',
    },
    "invitation_body": {
        "en": lambda date, time, location: (f"{date} at {time}" if time else date) + (f" • {location}" if location else ""),
        "fr": lambda date, time, location: (f"{date} à {time}" if time else date) + (f" • {location}" if location else ""),
        "vi": lambda date, time, location: (f"{date} lúc {time}" if time else date) + (f" • {location}" if location else ""),
    },
    "tribe_join_request": {
        "en": lambda name, tribe: f'{name} wants to join "{tribe}"',
        "fr": lambda name, tribe: f'{name} souhaite rejoindre "{tribe}"',
        "vi": lambda name, tribe: f'{name} muốn tham gia "{tribe}"',
    },
    "tribe_request_approved": {
        "en": lambda tribe: f'Welcome to "{tribe}"! Your request was approved.',
        "fr": lambda tribe: f'Bienvenue dans "{tribe}" ! Votre demande a été approuvée.',
        "vi": lambda tribe: f'Chào mừng bạn đến "{tribe}"! Yêu cầu của bạn đã được chấp nhận.',
    },
    "tribe_request_rejected": {
        "en": lambda tribe: f'Your request to join "{tribe}" was not approved.',
        "fr": lambda tribe: f'Votre demande pour rejoindre "{tribe}" n\'a pas été approuvée.',
        "vi": lambda tribe: f'Yêu cầu tham gia "{tribe}" của bạn không được chấp nhận.',
    },
    "tribe_new_event": {
        "en": lambda event, tribe: f'New event "{event}" in {tribe}',
        "fr": lambda event, tribe: f'Nouvel événement "{event}" dans {tribe}',
        "vi": lambda event, tribe: f'Sự kiện mới "{event}" trong {tribe}',
    },
    # Comment notifications
    "comment_on_event": {
        "en": lambda commenter, event: f'{commenter} commented on "{event}"',
        "fr": lambda commenter, event: f'{commenter} a commenté "{event}"',
        "vi": lambda commenter, event: f'{commenter} đã bình luận về "{event}"',
    },
    "comment_on_moment": {
        "en": lambda commenter: f"{commenter} commented on your moment",
        "fr": lambda commenter: f"{commenter} a commenté votre moment",
        "vi": lambda commenter: f"{commenter} đã bình luận về khoảnh khắc của bạn",
    },
    "reply_to_comment": {
        "en": lambda replier: f"{replier} replied to your comment",
        "fr": lambda replier: f"{replier} a répondu à votre commentaire",
        "vi": lambda replier: f"{replier} đã trả lời bình luận của bạn",
    },
    "thread_activity": {
        "en": lambda count, title: f'{count} new {"comment" if count == 1 else "comments"} on "{title}"',
        "fr": lambda count, title: (
            f'{count} {"nouveau commentaire" if count == 1 else "nouveaux commentaires"} sur "{title}"'
        ),
        "vi": lambda count, title: f'{count} bình luận mới về "{title}"',
    },
    "video_ready": {
        "en": lambda: "Your video is ready!",
        "fr": lambda: "Votre vidéo est prête !",
        "vi": lambda: "Video của bạn đã sẵn sàng!",
    },
    "video_ready_body": {
        "en": lambda title: f'Your moment from "{title}" is ready to watch' if title else "Tap to watch your moment",
        "fr": lambda title: f'Votre moment de "{title}" est prêt' if title else "Appuyez pour voir votre moment",
        "vi": lambda title: f'Khoảnh khắc của bạn tại "{title}" đã sẵn sàng' if title else "Nhấn để xem khoảnh khắc của bạn",
    },
    "new_follower": {
        "en": lambda name: f"{name} started following you",
        "fr": lambda name: f"{name} a commencé à vous suivre",
        "vi": lambda name: f"{name} đã bắt đầu theo dõi bạn",
    },
}

BUTTONS: Dict[str, Dict[str, str]] = {
    "view_event": {"en": "View Event", "fr": "Voir", "vi": "Xem sự kiện"},
    "yes": {"en": "Yes, coming", "fr": "Oui", "vi": "Có, tôi đến"},
    "no": {"en": "Can't make it", "fr": "Non", "vi": "Không thể đến"},
    "get_directions": {"en": "Get Directions", "fr": "Itinéraire", "vi": "Chỉ đường"},
    "change_plans": {"en": "Change plans", "fr": "Modifier", "vi": "Thay đổi"},
    "share_feedback": {"en": "Share feedback", "fr": "Donner mon avis", "vi": "Chia sẻ nhận xét"},
    "review_requests": {"en": "Review requests", "fr": "Voir les demandes", "vi": "Xem yêu cầu"},
    "view_tribe": {"en": "View tribe", "fr": "Voir la tribu", "vi": "Xem tribe"},
    "view_comments": {"en": "View comments", "fr": "Voir les commentaires", "vi": "Xem bình luận"},
    "view_moment": {"en": "View moment", "fr": "Voir le moment", "vi": "Xem khoảnh khắc"},
    "view_profile": {"en": "View profile", "fr": "Voir le profil", "vi": "Xem hồ sơ"},
    "going": {"en": "Yes, I'm going", "fr": "Oui, je viens", "vi": "Có, tôi sẽ đến"},
    "maybe": {"en": "Maybe", "fr": "Peut-être", "vi": "Có thể"},
    "not_going": {"en": "Can't make it", "fr": "Non, désolé", "vi": "Không thể đến"},
}

EMAIL_PHRASES: Dict[str, Dict[str, str]] = {
    "click_to_confirm": {
        "en": "Click below to confirm:",
        "fr": "Cliquez ci-dessous pour confirmer :",
        "vi": "Nhấn bên dưới để xác nhận:",
    },
    "see_you_there": {"en": "See you there!", "fr": "À bientôt !", "vi": "Hẹn gặp bạn!"},
}


def _t(key: str, locale: str, *args) -> str:
    return TRANSLATIONS[key][locale](*args)


def _button(key: str, locale: str) -> str:
    return BUTTONS[key][locale]


# ============================================
# Date formatting (city time zone)
# ============================================

_WEEKDAYS = {
    "en": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
    "fr": ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"),
    "vi": ("Thứ Hai", "Thứ Ba", "Thứ Tư", "Thứ Năm", "Thứ Sáu", "Thứ Bảy", "Chủ Nhật"),
}

_MONTHS = {
    "en": ("January", "February", "March", "April", "May", "June",
           "July", "August", "September", "October", "November", "December"),
    "fr": ("janvier", "février", "mars", "avril", "mai", "juin",
           "juillet", "août", "septembre", "octobre", "novembre", "décembre"),
}


def _parse_instant(value: str) -> Optional[datetime]:
    # ISO-8601, with or without a trailing Z; naive values are taken as UTC
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable event start {value!r}, showing it as given")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(CITY_TIMEZONE)


def format_event_date(value: str, locale: str) -> str:
    """
    Weekday, month and day in the city time zone, e.g. ``Saturday, March 15``.

    A value that is not ISO-8601 is returned unchanged.
    """
    local = _parse_instant(value)
    if local is None:
        return value
    weekday = _WEEKDAYS[locale][local.weekday()]
    if locale == "fr":
        return f"{weekday} {local.day} {_MONTHS['fr'][local.month - 1]}"
    if locale == "vi":
        return f"{weekday}, {local.day} tháng {local.month}"
    return f"{weekday}, {_MONTHS['en'][local.month - 1]} {local.day}"


def format_event_time(value: str, locale: str) -> str:
    """
    Clock time in the city time zone: ``7:30 PM`` in English, ``19:30`` otherwise.

    Empty for a value that is not ISO-8601; the date then carries the raw value.
    """
    local = _parse_instant(value)
    if local is None:
        return ""
    if locale == "en":
        hour = local.hour % 12 or 12
        suffix = "AM" if local.hour < 12 else "PM"
        return f"{hour}:{local.minute:02d} {suffix}"
    return f"{local.hour:02d}:{local.minute:02d}"


# ============================================
# Template functions
# ============================================

def _simple(
    title: str,
    body: str,
    url: Optional[str],
    label: Optional[str],
    tag: str,
    require_interaction: bool = False,
) -> RenderedNotification:
    return RenderedNotification(
        in_app=NotificationContent(title=title, body=body, primary_action_url=url, primary_action_label=label),
        push=PushContent(
            title=title,
            body=body,
            primary_action_url=url,
            tag=tag,
            require_interaction=require_interaction,
        ),
    )


def _rsvp_confirmation(payload: RsvpConfirmationPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("rsvp_confirmation", locale, payload.event_title),
        _t("rsvp_confirmation_body", locale, payload.event_description or None),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"rsvp-{payload.event_slug}",
    )


def _confirm_attendance_24h(payload: ConfirmAttendance24hPayload, locale: str, base_url: str) -> RenderedNotification:
    event_url = f"{base_url}/events/{payload.event_slug}"
    title = _t("confirm_attendance_24h", locale, payload.event_title, payload.event_time)
    body = EMAIL_PHRASES["click_to_confirm"][locale]
    return RenderedNotification(
        in_app=NotificationContent(
            title=title,
            body=body,
            primary_action_url=f"{event_url}?confirm=yes",
            primary_action_label=_button("yes", locale),
            secondary_action_url=f"{event_url}?cancel=true",
            secondary_action_label=_button("change_plans", locale),
        ),
        push=PushContent(
            title=title,
            body=body,
            primary_action_url=f"{event_url}?confirm=yes",
            tag=f"24h-{payload.event_slug}",
            require_interaction=True,
        ),
    )


def _final_reminder_2h(payload: FinalReminder2hPayload, locale: str, base_url: str) -> RenderedNotification:
    event_url = f"{base_url}/events/{payload.event_slug}"
    title = _t("final_reminder_2h", locale, payload.event_title, payload.location_name)
    body = EMAIL_PHRASES["see_you_there"][locale]
    primary_url = payload.google_maps_url or event_url
    primary_label = _button("get_directions" if payload.google_maps_url else "view_event", locale)
    return RenderedNotification(
        in_app=NotificationContent(
            title=title,
            body=body,
            primary_action_url=primary_url,
            primary_action_label=primary_label,
            secondary_action_url=event_url,
            secondary_action_label=_button("change_plans", locale),
        ),
        push=PushContent(
            title=title,
            body=body,
            primary_action_url=primary_url,
            tag=f"2h-{payload.event_slug}",
            require_interaction=True,
        ),
    )


def _waitlist_promotion(payload: WaitlistPromotionPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("waitlist_promotion", locale, payload.event_title),
        _button("view_event", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"waitlist-{payload.event_slug}",
        require_interaction=True,
    )


def _event_reminder(payload: EventReminderPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("event_reminder", locale, payload.event_title, payload.event_time),
        _button("view_event", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"reminder-{payload.event_slug}",
    )


def _waitlist_position(payload: WaitlistPositionPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("waitlist_position", locale, payload.event_title, payload.position),
        _button("view_event", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"waitlist-pos-{payload.event_slug}",
    )


def _new_rsvp(payload: NewRsvpPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("new_rsvp", locale, payload.event_title, payload.attendee_name),
        _button("view_event", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"new-rsvp-{payload.event_slug}",
    )


def _feedback_request(payload: FeedbackRequestPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("feedback_request", locale, payload.event_title),
        _t("feedback_request_body", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("share_feedback", locale),
        f"feedback-{payload.event_slug}",
        require_interaction=True,
    )


def _event_invitation(payload: EventInvitationPayload, locale: str, base_url: str) -> RenderedNotification:
    # Email copy is always English; in-app and push follow the payload locale
    invite_url = f"{base_url}/en/invite/{payload.token}"

    title = _t("invitation", locale, payload.inviter_name, payload.event_title)
    body = _t(
        "invitation_body",
        locale,
        format_event_date(payload.starts_at, locale),
        format_event_time(payload.starts_at, locale),
        payload.location_name,
    )

    email_date = format_event_date(payload.starts_at, "en")
    email_time = format_event_time(payload.starts_at, "en")
    email_title = _t("invitation", "en", payload.inviter_name, payload.event_title)
    email_body = _t("invitation_body", "en", email_date, email_time, payload.location_name)

    return RenderedNotification(
        in_app=NotificationContent(
            title=title,
            body=body,
            primary_action_url=invite_url,
            primary_action_label=_button("going", locale),
        ),
        push=PushContent(
            title=title,
            body=body,
            primary_action_url=invite_url,
            tag=f"invite-{payload.event_slug}",
            require_interaction=True,
        ),
        email=EmailContent(
            title=email_title,
            body=email_body,
            subject=email_title,
            primary_action_url=f"{invite_url}?rsvp=going",
            primary_action_label=_button("going", "en"),
            secondary_action_url=f"{invite_url}?rsvp=cancelled",
            secondary_action_label=_button("not_going", "en"),
            html=_invitation_email_html(payload, invite_url, email_date, email_time),
            text=_invitation_email_text(payload, invite_url, email_date, email_time),
        ),
    )


def _user_invitation(payload: UserInvitationPayload, locale: str, base_url: str) -> RenderedNotification:
    body = _t(
        "invitation_body",
        locale,
        format_event_date(payload.starts_at, locale),
        format_event_time(payload.starts_at, locale),
        payload.location_name,
    )
    return _simple(
        _t("invitation", locale, payload.inviter_name, payload.event_title),
        body,
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"user-invite-{payload.event_slug}",
        require_interaction=True,
    )


def _tribe_join_request(payload: TribeJoinRequestPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("tribe_join_request", locale, payload.requester_name, payload.tribe_name),
        _button("review_requests", locale),
        f"{base_url}/tribes/{payload.tribe_slug}?tab=requests",
        _button("review_requests", locale),
        f"tribe-request-{payload.tribe_slug}",
    )


def _tribe_request_approved(payload: TribeRequestApprovedPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("tribe_request_approved", locale, payload.tribe_name),
        _button("view_tribe", locale),
        f"{base_url}/tribes/{payload.tribe_slug}",
        _button("view_tribe", locale),
        f"tribe-approved-{payload.tribe_slug}",
    )


def _tribe_request_rejected(payload: TribeRequestRejectedPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("tribe_request_rejected", locale, payload.tribe_name),
        "",
        None,
        None,
        f"tribe-rejected-{payload.tribe_name}",
    )


def _tribe_new_event(payload: TribeNewEventPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("tribe_new_event", locale, payload.event_title, payload.tribe_name),
        _button("view_event", locale),
        f"{base_url}/events/{payload.event_slug}",
        _button("view_event", locale),
        f"tribe-event-{payload.event_slug}",
    )


def _comment_on_event(payload: CommentOnEventPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("comment_on_event", locale, payload.commenter_name, payload.event_title),
        payload.comment_preview,
        f"{base_url}/events/{payload.event_slug}?comment={payload.comment_id}",
        _button("view_comments", locale),
        f"comment-event-{payload.event_id}",
    )


def _comment_on_moment(payload: CommentOnMomentPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("comment_on_moment", locale, payload.commenter_name),
        payload.comment_preview,
        f"{base_url}/events/{payload.event_slug}/moments/{payload.moment_id}?comment=true",
        _button("view_comments", locale),
        f"comment-moment-{payload.moment_id}",
    )


def _reply_to_comment(payload: ReplyToCommentPayload, locale: str, base_url: str) -> RenderedNotification:
    if payload.content_type == "event":
        url = f"{base_url}/events/{payload.event_slug}?comment={payload.comment_id}"
    else:
        url = f"{base_url}/events/{payload.event_slug}/moments/{payload.content_id}?comment={payload.comment_id}"
    return _simple(
        _t("reply_to_comment", locale, payload.replier_name),
        payload.comment_preview,
        url,
        _button("view_comments", locale),
        f"reply-{payload.parent_comment_id}",
    )


def _thread_activity(payload: ThreadActivityPayload, locale: str, base_url: str) -> RenderedNotification:
    if payload.content_type == "event":
        url = f"{base_url}/events/{payload.event_slug}?thread={payload.thread_id}"
    else:
        url = f"{base_url}/events/{payload.event_slug}/moments/{payload.content_id}?thread={payload.thread_id}"
    return _simple(
        _t("thread_activity", locale, payload.activity_count, payload.content_title),
        _button("view_comments", locale),
        url,
        _button("view_comments", locale),
        f"thread-{payload.thread_id}",
    )


def _video_ready(payload: VideoReadyPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("video_ready", locale),
        _t("video_ready_body", locale, payload.event_title),
        f"{base_url}/events/{payload.event_slug}/moments/{payload.moment_id}",
        _button("view_moment", locale),
        f"video-{payload.moment_id}",
    )


def _new_follower(payload: NewFollowerPayload, locale: str, base_url: str) -> RenderedNotification:
    return _simple(
        _t("new_follower", locale, payload.follower_name),
        f"@{payload.follower_username}",
        f"{base_url}/{payload.follower_username}",
        _button("view_profile", locale),
        f"follower-{payload.follower_username}",
    )


# ============================================
# Invitation email bodies
# ============================================

_FONT_STACK = "-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif"
_GRADIENT = "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"


def _truncated_description(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    if len(description) > INVITE_DESCRIPTION_LIMIT:
        return description[:INVITE_DESCRIPTION_LIMIT] + "..."
    return description


def _invitation_email_html(payload: EventInvitationPayload, invite_url: str, date: str, time: str) -> str:
    esc = html.escape
    greeting = (
        f'<p style="font-size: 16px;">Hi {esc(payload.invitee_name)},</p>'
        if payload.invitee_name
        else "<p>Hi there,</p>"
    )
    location = (
        f'<p style="margin: 5px 0; color: #6b7280;">📍 {esc(payload.location_name)}</p>'
        if payload.location_name
        else ""
    )
    description = _truncated_description(payload.event_description)
    description_html = (
        f'<p style="margin: 15px 0 0 0; color: #4b5563;">{esc(description)}</p>' if description else ""
    )
    when = _t("invitation_body", "en", date, time, None)

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: {_FONT_STACK}; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: {_GRADIENT}; padding: 30px; border-radius: 12px 12px 0 0; text-align: center;">
    <h1 style="color: white; margin: 0; font-size: 24px;">You're Invited!</h1>
  </div>

  <div style="background: #f9fafb; padding: 30px; border-radius: 0 0 12px 12px;">
    {greeting}

    <p style="font-size: 16px;">{esc(payload.inviter_name)} invited you to:</p>

    <div style="background: white; padding: 20px; border-radius: 8px; margin: 20px 0; border: 1px solid #e5e7eb;">
      <h2 style="margin: 0 0 10px 0; color: #1f2937;">{esc(payload.event_title)}</h2>
      <p style="margin: 5px 0; color: #6b7280;">📅 {esc(when)}</p>
      {location}
      {description_html}
    </div>

    <div style="text-align: center; margin: 30px 0;">
      <a href="{esc(invite_url)}?rsvp=going" style="display: inline-block; background: {_GRADIENT}; color: white; padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: 600; font-size: 16px; margin: 5px;">
        {esc(BUTTONS['going']['en'])}
      </a>
      <a href="{esc(invite_url)}?rsvp=interested" style="display: inline-block; background: #f3f4f6; color: #374151; padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: 600; font-size: 16px; margin: 5px;">
        {esc(BUTTONS['maybe']['en'])}
      </a>
    </div>

    <p style="font-size: 14px; color: #6b7280; margin-top: 30px; text-align: center;">
      <a href="{esc(invite_url)}" style="color: #667eea;">View event details</a>
    </p>
  </div>

  <p style="font-size: 12px; color: #9ca3af; text-align: center; margin-top: 20px;">
    Sent via Dalat Events
  </p>
</body>
</html>"""


def _invitation_email_text(payload: EventInvitationPayload, invite_url: str, date: str, time: str) -> str:
    lines = [
        "You're Invited!",
        "",
        f"Hi {payload.invitee_name}," if payload.invitee_name else "Hi there,",
        "",
        f"{payload.inviter_name} invited you to:",
        "",
        payload.event_title,
        _t("invitation_body", "en", date, time, None),
    ]
    if payload.location_name:
        lines.append(payload.location_name)
    description = _truncated_description(payload.event_description)
    if description:
        lines.extend(["", description])
    lines.extend([
        "",
        f"{BUTTONS['going']['en']}: {invite_url}?rsvp=going",
        f"{BUTTONS['maybe']['en']}: {invite_url}?rsvp=interested",
        f"{BUTTONS['not_going']['en']}: {invite_url}?rsvp=cancelled",
        "",
        f"View event details: {invite_url}",
        "",
        "---",
        "Sent via Dalat Events",
    ])
    return "\n".join(lines)


# ============================================
# Main template function
# ============================================

def _unknown_payload(payload: NoReturn) -> NoReturn:
    tag = getattr(payload, "type", None)
    raise UnknownNotificationTypeError(f"Unknown notification type: {getattr(tag, 'value', tag)!r}")


def render_template(payload: NotificationPayload, base_url: str = DEFAULT_BASE_URL) -> RenderedNotification:
    """
    Render per-channel content for a notification payload.

    Args:
        payload: Any member of the ``NotificationPayload`` union
        base_url: Absolute app URL that links are built from

    Returns:
        RenderedNotification with in_app and push content, plus email content
        for types that are delivered by email.

    Raises:
        UnknownNotificationTypeError: the payload is not a known payload class
    """
    locale = notification_locale(getattr(payload, "locale", None))
    base_url = base_url.rstrip("/")

    match payload:
        case RsvpConfirmationPayload():
            return _rsvp_confirmation(payload, locale, base_url)
        case ConfirmAttendance24hPayload():
            return _confirm_attendance_24h(payload, locale, base_url)
        case FinalReminder2hPayload():
            return _final_reminder_2h(payload, locale, base_url)
        case WaitlistPromotionPayload():
            return _waitlist_promotion(payload, locale, base_url)
        case EventReminderPayload():
            return _event_reminder(payload, locale, base_url)
        case WaitlistPositionPayload():
            return _waitlist_position(payload, locale, base_url)
        case NewRsvpPayload():
            return _new_rsvp(payload, locale, base_url)
        case FeedbackRequestPayload():
            return _feedback_request(payload, locale, base_url)
        case EventInvitationPayload():
            return _event_invitation(payload, locale, base_url)
        case UserInvitationPayload():
            return _user_invitation(payload, locale, base_url)
        case TribeJoinRequestPayload():
            return _tribe_join_request(payload, locale, base_url)
        case TribeRequestApprovedPayload():
            return _tribe_request_approved(payload, locale, base_url)
        case TribeRequestRejectedPayload():
            return _tribe_request_rejected(payload, locale, base_url)
        case TribeNewEventPayload():
            return _tribe_new_event(payload, locale, base_url)
        # Comment notifications
        case CommentOnEventPayload():
            return _comment_on_event(payload, locale, base_url)
        case CommentOnMomentPayload():
            return _comment_on_moment(payload, locale, base_url)
        case ReplyToCommentPayload():
            return _reply_to_comment(payload, locale, base_url)
        case ThreadActivityPayload():
            return _thread_activity(payload, locale, base_url)
        case VideoReadyPayload():
            return _video_ready(payload, locale, base_url)
        case NewFollowerPayload():
            return _new_follower(payload, locale, base_url)
        case _:
            _unknown_payload(payload)
