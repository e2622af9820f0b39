# tests/test_logging_config.py
import json
import logging
import sys
from pathlib import Path
import unittest

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from dalat_notifications.logging_config import (  # noqa: E402
    PrettyConsoleFormatter,
    ProductionJSONFormatter,
    reset_logging_state,
    sanitize_log_message,
    setup_logging,
)


def _record(name: str, msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(name, logging.INFO, __file__, 10, msg, None, None, func="send")
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class SanitizeTests(unittest.TestCase):
    def test_redacts_credentials(self) -> None:
        message = sanitize_log_message("Authorization: Bearer abc.def.ghi api_key=re_123456789 token='xyz'")
        self.assertNotIn("abc.def.ghi", message)
        self.assertNotIn("re_123456789", message)
        self.assertNotIn("xyz", message)
        self.assertIn("***REDACTED***", message)

    def test_redacts_invite_tokens(self) -> None:
        message = sanitize_log_message("Invite link https://dalat.app/en/invite/abcdef123456 sent")
        self.assertEqual(message, "Invite link https://dalat.app/en/invite/*** sent")

    def test_leaves_plain_text_alone(self) -> None:
        self.assertEqual(sanitize_log_message("share_feedback for user u1"), "share_feedback for user u1")


class FormatterTests(unittest.TestCase):
    def test_json_formatter_redacts_extras(self) -> None:
        record = _record(
            "dalat_notifications.channels.push",
            "Web push sent",
            user_id="u1",
            p256dh="BKeyMaterialLongEnough",
        )
        data = json.loads(ProductionJSONFormatter().format(record))
        self.assertEqual(data["level"], "INFO")
        self.assertEqual(data["logger"], "dalat_notifications.channels.push")
        self.assertEqual(data["extra"]["user_id"], "u1")
        self.assertEqual(data["extra"]["p256dh"], "BKey***ough")

    def test_pretty_formatter_shows_context(self) -> None:
        record = _record("dalat_notifications.channels.email", "Email sent", user_id="u1", channel="email")
        line = PrettyConsoleFormatter(no_color=True).format(record)
        self.assertIn("Email sent | user_id=u1 channel=email", line)
        self.assertIn("✉️", line)


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        root = logging.getLogger()
        self._handlers = list(root.handlers)
        self._level = root.level
        reset_logging_state()

    def tearDown(self) -> None:
        root = logging.getLogger()
        root.handlers[:] = self._handlers
        root.setLevel(self._level)
        reset_logging_state()

    def test_setup_is_idempotent(self) -> None:
        setup_logging(level="DEBUG", as_json=True)
        setup_logging(level="ERROR", as_json=False)
        root = logging.getLogger()
        self.assertEqual(len(root.handlers), 1)
        self.assertIsInstance(root.handlers[0].formatter, ProductionJSONFormatter)
        self.assertEqual(root.level, logging.DEBUG)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
