# tests/test_preferences.py
import sys
from datetime import datetime, timezone
from pathlib import Path
import unittest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dalat_notifications.preferences import (  # noqa: E402
    DEFAULT_CHANNELS,
    PreferenceResolver,
    get_default_channels,
    is_in_quiet_hours,
)
from dalat_notifications.types import (  # noqa: E402
    NotificationChannel,
    NotificationPreferences,
    NotificationType,
)
from tests.fakes import InMemoryStore  # noqa: E402

IN_APP = NotificationChannel.IN_APP
PUSH = NotificationChannel.PUSH
EMAIL = NotificationChannel.EMAIL


def _at_local(hour: int, minute: int):
    # Asia/Ho_Chi_Minh is UTC+7 year-round
    utc_hour = (hour - 7) % 24
    return lambda: datetime(2026, 1, 10, utc_hour, minute, tzinfo=timezone.utc)


class DefaultChannelTests(unittest.TestCase):
    def test_every_type_has_defaults(self) -> None:
        self.assertEqual(set(DEFAULT_CHANNELS), set(NotificationType))

    def test_known_defaults(self) -> None:
        self.assertEqual(get_default_channels(NotificationType.RSVP_CONFIRMATION), [IN_APP, PUSH])
        self.assertEqual(get_default_channels("event_invitation"), [EMAIL])
        self.assertEqual(get_default_channels("thread_activity"), [IN_APP])
        self.assertEqual(get_default_channels("tribe_request_rejected"), [IN_APP])

    def test_unknown_type_falls_back_to_in_app(self) -> None:
        self.assertEqual(get_default_channels("not_a_type"), [IN_APP])

    def test_defaults_are_copies(self) -> None:
        channels = get_default_channels(NotificationType.NEW_FOLLOWER)
        channels.append(EMAIL)
        self.assertEqual(get_default_channels(NotificationType.NEW_FOLLOWER), [IN_APP, PUSH])


class QuietHoursWindowTests(unittest.TestCase):
    def test_overnight_window_wraps_midnight(self) -> None:
        for current in ("22:00", "23:00", "00:00", "07:59", "08:00"):
            self.assertTrue(is_in_quiet_hours(current, "22:00", "08:00"), current)
        for current in ("08:01", "12:00", "21:59"):
            self.assertFalse(is_in_quiet_hours(current, "22:00", "08:00"), current)

    def test_daytime_window(self) -> None:
        self.assertTrue(is_in_quiet_hours("13:00", "12:00", "14:00"))
        self.assertFalse(is_in_quiet_hours("11:59", "12:00", "14:00"))
        self.assertFalse(is_in_quiet_hours("14:01", "12:00", "14:00"))


class ResolveChannelsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = PreferenceResolver(InMemoryStore(), clock=_at_local(12, 0))

    def test_no_preferences_uses_defaults(self) -> None:
        for notification_type in NotificationType:
            self.assertEqual(
                self.resolver.resolve_channels(None, notification_type),
                get_default_channels(notification_type),
            )

    def test_override_replaces_defaults(self) -> None:
        prefs = NotificationPreferences(
            user_id="u1",
            channel_preferences={NotificationType.RSVP_CONFIRMATION: [EMAIL, IN_APP, EMAIL]},
        )
        self.assertEqual(self.resolver.resolve_channels(prefs, NotificationType.RSVP_CONFIRMATION), [EMAIL, IN_APP])
        # Other types are untouched
        self.assertEqual(self.resolver.resolve_channels(prefs, NotificationType.NEW_FOLLOWER), [IN_APP, PUSH])

    def test_master_switches_remove_channels(self) -> None:
        prefs = NotificationPreferences(user_id="u1", push_enabled=False)
        self.assertEqual(self.resolver.resolve_channels(prefs, NotificationType.RSVP_CONFIRMATION), [IN_APP])

        prefs = NotificationPreferences(user_id="u1", email_enabled=False)
        self.assertEqual(self.resolver.resolve_channels(prefs, NotificationType.EVENT_INVITATION), [])

    def test_master_switch_applies_to_overrides(self) -> None:
        prefs = NotificationPreferences(
            user_id="u1",
            in_app_enabled=False,
            channel_preferences={NotificationType.NEW_RSVP: [IN_APP, EMAIL]},
        )
        self.assertEqual(self.resolver.resolve_channels(prefs, NotificationType.NEW_RSVP), [EMAIL])

    def test_quiet_hours_drop_push_only(self) -> None:
        resolver = PreferenceResolver(InMemoryStore(), clock=_at_local(23, 30))
        prefs = NotificationPreferences(
            user_id="u1",
            quiet_hours_enabled=True,
            channel_preferences={NotificationType.RSVP_CONFIRMATION: [IN_APP, PUSH, EMAIL]},
        )
        self.assertEqual(resolver.resolve_channels(prefs, NotificationType.RSVP_CONFIRMATION), [IN_APP, EMAIL])

    def test_quiet_hours_outside_window_keep_push(self) -> None:
        resolver = PreferenceResolver(InMemoryStore(), clock=_at_local(8, 1))
        prefs = NotificationPreferences(user_id="u1", quiet_hours_enabled=True)
        self.assertEqual(resolver.resolve_channels(prefs, NotificationType.RSVP_CONFIRMATION), [IN_APP, PUSH])

    def test_quiet_hours_disabled_keep_push(self) -> None:
        resolver = PreferenceResolver(InMemoryStore(), clock=_at_local(23, 30))
        prefs = NotificationPreferences(user_id="u1", quiet_hours_enabled=False)
        self.assertEqual(resolver.resolve_channels(prefs, NotificationType.RSVP_CONFIRMATION), [IN_APP, PUSH])

    def test_naive_now_is_local_wall_clock(self) -> None:
        prefs = NotificationPreferences(user_id="u1", quiet_hours_enabled=True)
        channels = self.resolver.resolve_channels(
            prefs, NotificationType.RSVP_CONFIRMATION, now=datetime(2026, 1, 10, 0, 0)
        )
        self.assertEqual(channels, [IN_APP])

    def test_unknown_type_resolves_to_in_app(self) -> None:
        prefs = NotificationPreferences(user_id="u1")
        self.assertEqual(self.resolver.resolve_channels(prefs, "mystery"), [IN_APP])


class PreferenceRowTests(unittest.TestCase):
    def test_from_row_normalizes_times_and_overrides(self) -> None:
        prefs = NotificationPreferences.from_row({
            "user_id": "u1",
            "channel_preferences": {"rsvp_confirmation": ["email"], "bogus": ["in_app"]},
            "quiet_hours_enabled": True,
            "quiet_hours_start": "21:30:00",
            "quiet_hours_end": None,
        })
        self.assertEqual(prefs.channel_preferences, {NotificationType.RSVP_CONFIRMATION: [EMAIL]})
        self.assertEqual(prefs.quiet_hours_start, "21:30")
        self.assertEqual(prefs.quiet_hours_end, "08:00")
        self.assertTrue(prefs.push_enabled)

    def test_to_row_uses_wire_values(self) -> None:
        prefs = NotificationPreferences(
            user_id="u1", channel_preferences={NotificationType.NEW_FOLLOWER: [IN_APP]}
        )
        row = prefs.to_row()
        self.assertEqual(row["channel_preferences"], {"new_follower": ["in_app"]})
        self.assertEqual(row["quiet_hours_start"], "22:00")


class PreferenceStorageTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = InMemoryStore()
        self.resolver = PreferenceResolver(self.store, clock=_at_local(23, 30))

    async def test_missing_row_returns_none(self) -> None:
        self.assertIsNone(await self.resolver.get_user_preferences("u1"))
        self.assertEqual(
            await self.resolver.get_channels_for_notification("u1", NotificationType.RSVP_CONFIRMATION),
            [IN_APP, PUSH],
        )

    async def test_store_failure_falls_back_to_defaults(self) -> None:
        self.store.fail_on.add("get_preferences")
        self.assertIsNone(await self.resolver.get_user_preferences("u1"))
        self.assertEqual(
            await self.resolver.get_channels_for_notification("u1", NotificationType.WAITLIST_PROMOTION),
            [IN_APP, PUSH],
        )

    async def test_update_then_resolve(self) -> None:
        ok = await self.resolver.update_user_preferences("u1", {
            "quiet_hours_enabled": True,
            "channel_preferences": {"rsvp_confirmation": ["in_app", "push", "email"]},
        })
        self.assertTrue(ok)
        self.assertEqual(
            self.store.preferences["u1"]["channel_preferences"],
            {"rsvp_confirmation": ["in_app", "push", "email"]},
        )
        self.assertEqual(
            await self.resolver.get_channels_for_notification("u1", NotificationType.RSVP_CONFIRMATION),
            [IN_APP, EMAIL],
        )

    async def test_update_rejects_unknown_fields(self) -> None:
        with self.assertRaises(ValueError):
            await self.resolver.update_user_preferences("u1", {"favorite_color": "blue"})
        self.assertNotIn("upsert_preferences", self.store.calls)

    async def test_update_reports_store_failure(self) -> None:
        self.store.fail_on.add("upsert_preferences")
        self.assertFalse(await self.resolver.update_user_preferences("u1", {"push_enabled": False}))


if __name__ == "__main__":
    unittest.main()
