# tests/test_in_app.py
import sys
from pathlib import Path
import unittest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dalat_notifications.channels import InAppSender  # noqa: E402
from dalat_notifications.types import NotificationChannel, NotificationContent, NotificationType  # noqa: E402
from tests.fakes import InMemoryStore  # noqa: E402

CONTENT = NotificationContent(
    title="Linh is going to Jazz Night",
    body="View Event",
    primary_action_url="https://dalat.app/events/jazz-night",
    primary_action_label="View Event",
)


class InAppSenderTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = InMemoryStore()
        self.sender = InAppSender(self.store)

    async def test_send_inserts_unread_row(self) -> None:
        result = await self.sender.send(
            "u1", NotificationType.NEW_RSVP, CONTENT, metadata={"payload": {"type": "new_rsvp"}}
        )

        self.assertTrue(result.success)
        self.assertEqual(result.channel, NotificationChannel.IN_APP)
        row = self.store.notifications[0]
        self.assertEqual(result.message_id, row["id"])
        self.assertEqual(row["type"], "new_rsvp")
        self.assertEqual(row["title"], "Linh is going to Jazz Night")
        self.assertEqual(row["primary_action_url"], "https://dalat.app/events/jazz-night")
        self.assertIsNone(row["secondary_action_url"])
        self.assertEqual(row["metadata"], {"payload": {"type": "new_rsvp"}})
        self.assertFalse(row["read"])
        self.assertFalse(row["archived"])

    async def test_insert_failure_becomes_result(self) -> None:
        self.store.fail_on.add("insert_notification")
        result = await self.sender.send("u1", NotificationType.NEW_RSVP, CONTENT)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "insert_notification failed")

    async def test_not_configured(self) -> None:
        sender = InAppSender(InMemoryStore(configured=False))
        result = await sender.send("u1", NotificationType.NEW_RSVP, CONTENT)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Supabase service client not configured")
        self.assertEqual(sender.get_config()["channel_id"], "in_app")

    async def test_inbox_operations(self) -> None:
        first = await self.sender.send("u1", NotificationType.NEW_RSVP, CONTENT)
        await self.sender.send("u1", NotificationType.NEW_RSVP, CONTENT)
        await self.sender.send("u2", NotificationType.NEW_RSVP, CONTENT)

        self.assertEqual(await self.sender.get_unread_count("u1"), 2)
        self.assertTrue(await self.sender.mark_read(first.message_id, "u1"))
        self.assertFalse(await self.sender.mark_read(first.message_id, "u2"))
        self.assertEqual(await self.sender.get_unread_count("u1"), 1)
        self.assertEqual(len(await self.sender.list_notifications("u1", unread_only=True)), 1)

        self.assertEqual(await self.sender.mark_all_read("u1"), 1)
        self.assertEqual(await self.sender.get_unread_count("u1"), 0)
        self.assertEqual(await self.sender.get_unread_count("u2"), 1)

    async def test_inbox_store_failures_are_absorbed(self) -> None:
        self.store.fail_on.update({
            "mark_notification_read",
            "mark_all_notifications_read",
            "get_unread_count",
            "list_notifications",
        })
        self.assertFalse(await self.sender.mark_read("n-1", "u1"))
        self.assertEqual(await self.sender.mark_all_read("u1"), 0)
        self.assertEqual(await self.sender.get_unread_count("u1"), 0)
        self.assertEqual(await self.sender.list_notifications("u1"), [])


if __name__ == "__main__":
    unittest.main()
