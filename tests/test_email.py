# tests/test_email.py
import json
import sys
from pathlib import Path
import unittest

import httpx

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dalat_notifications.channels.email import OutgoingEmail  # noqa: E402
from dalat_notifications.footers import INSPIRING_FOOTERS, pick_footer  # noqa: E402
from dalat_notifications.types import EmailContent, NotificationChannel  # noqa: E402
from tests.fakes import EmailApi, make_email_sender  # noqa: E402

CONTENT = EmailContent(
    title="Jazz Night tomorrow",
    body="Doors open at 7",
    subject="Jazz Night tomorrow",
    primary_action_url="https://dalat.app/events/jazz-night",
    primary_action_label="View Event",
)


class EmailSendTests(unittest.IsolatedAsyncioTestCase):
    async def test_send_posts_message(self) -> None:
        api = EmailApi()
        sender = make_email_sender(api)

        result = await sender.send("guest@example.com", CONTENT)

        self.assertTrue(result.success)
        self.assertEqual(result.channel, NotificationChannel.EMAIL)
        self.assertEqual(result.message_id, "email-1")
        request = api.requests[0]
        self.assertEqual(request.url.path, "/emails")
        self.assertEqual(request.headers["Authorization"], "Bearer re_test_key_123456")
        body = json.loads(request.content)
        self.assertEqual(body["from"], "Dalat Events <events@dalat.app>")
        self.assertEqual(body["to"], ["guest@example.com"])
        self.assertEqual(body["subject"], "Jazz Night tomorrow")
        self.assertIn("Jazz Night tomorrow", body["html"])
        self.assertIn("View Event: https://dalat.app/events/jazz-night", body["text"])
        self.assertNotIn("reply_to", body)

    async def test_rendered_bodies_are_used_as_is(self) -> None:
        api = EmailApi()
        sender = make_email_sender(api)
        content = EmailContent(
            title="t", body="b", subject="s", html="<p>custom</p>", text="custom", reply_to="host@example.com"
        )

        await sender.send("guest@example.com", content)

        body = api.bodies()[0]
        self.assertEqual(body["html"], "<p>custom</p>")
        self.assertEqual(body["text"], "custom")
        self.assertEqual(body["reply_to"], "host@example.com")

    async def test_api_error_becomes_failure(self) -> None:
        api = EmailApi(lambda request: httpx.Response(422, json={"message": "Invalid `to` field"}))
        result = await make_email_sender(api).send("nope", CONTENT)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Invalid `to` field")

    async def test_api_error_without_body(self) -> None:
        api = EmailApi(lambda request: httpx.Response(500, text="oops"))
        result = await make_email_sender(api).send("guest@example.com", CONTENT)
        self.assertEqual(result.error, "Email API returned HTTP 500")

    async def test_network_error_becomes_failure(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await make_email_sender(EmailApi(refuse)).send("guest@example.com", CONTENT)
        self.assertFalse(result.success)
        self.assertIn("connection refused", result.error)

    async def test_not_configured(self) -> None:
        api = EmailApi()
        sender = make_email_sender(api, api_key=None)
        self.assertFalse(sender.is_enabled())
        result = await sender.send("guest@example.com", CONTENT)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Resend client not configured")
        self.assertEqual(api.requests, [])


class EmailBulkTests(unittest.IsolatedAsyncioTestCase):
    async def test_bulk_is_chunked_by_hundred(self) -> None:
        api = EmailApi()
        sender = make_email_sender(api)
        emails = [OutgoingEmail(f"user{i}@example.com", CONTENT) for i in range(250)]

        result = await sender.send_bulk(emails)

        self.assertEqual((result.sent, result.failed, result.errors), (250, 0, []))
        self.assertEqual([len(body) for body in api.bodies()], [100, 100, 50])
        self.assertTrue(all(r.url.path == "/emails/batch" for r in api.requests))

    async def test_failed_batch_is_counted(self) -> None:
        calls = []

        def second_batch_fails(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(429, json={"message": "Too many requests"})
            return httpx.Response(200, json={"data": []})

        sender = make_email_sender(EmailApi(second_batch_fails))
        emails = [OutgoingEmail(f"user{i}@example.com", CONTENT) for i in range(150)]

        result = await sender.send_bulk(emails)

        self.assertEqual((result.sent, result.failed), (100, 50))
        self.assertEqual(result.errors, ["Too many requests"])

    async def test_empty_bulk(self) -> None:
        api = EmailApi()
        result = await make_email_sender(api).send_bulk([])
        self.assertEqual((result.sent, result.failed), (0, 0))
        self.assertEqual(api.requests, [])

    async def test_bulk_not_configured(self) -> None:
        sender = make_email_sender(api_key="")
        result = await sender.send_bulk([OutgoingEmail("a@example.com", CONTENT)] * 3)
        self.assertEqual((result.sent, result.failed), (0, 3))
        self.assertEqual(result.errors, ["Resend client not configured"])


class EmailLayoutTests(unittest.TestCase):
    def test_empty_footer_list(self) -> None:
        self.assertIsNone(pick_footer([]))
        sender = make_email_sender(footers=[])
        message = sender.build_message("guest@example.com", CONTENT)
        self.assertNotIn("font-style: italic", message["html"])
        self.assertFalse(any(line.startswith('"') for line in message["text"].splitlines()))
        self.assertTrue(message["text"].endswith("Sent via dalat.app (https://dalat.app)"))

    def test_footer_comes_from_list(self) -> None:
        sender = make_email_sender(footers=["Wear layers, make memories"])
        message = sender.build_message("guest@example.com", CONTENT)
        self.assertIn('"Wear layers, make memories"', message["text"])
        self.assertIn("Wear layers, make memories", message["html"])
        self.assertIn(pick_footer(INSPIRING_FOOTERS), INSPIRING_FOOTERS)

    def test_default_html_escapes_text(self) -> None:
        sender = make_email_sender()
        content = EmailContent(title="Tom & Jerry", body="<script>", subject="s")
        html_body = sender.default_html(content, None)
        self.assertIn("Tom &amp; Jerry", html_body)
        self.assertIn("&lt;script&gt;", html_body)
        self.assertNotIn("<a href", html_body.split("Sent via")[0])


if __name__ == "__main__":
    unittest.main()
