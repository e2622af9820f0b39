# dalat_notifications/channels/email.py
"""
Email Notification Channel

Sends transactional email through the Resend REST API.

Configuration (see ``NotificationSettings``):
    RESEND_API_KEY: API key (required to enable)
    RESEND_API_URL: API base URL (defaults to https://api.resend.com)
    EMAIL_FROM_NAME / SITE_DOMAIN: sender is "{name} <events@{domain}>"

Every message carries both an HTML and a plain-text body. When the rendered
content has no bodies of its own, the default layout is used, closed by one
random line from the footer list.
"""

import html
import logging
import random
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import httpx

from ..footers import INSPIRING_FOOTERS, pick_footer
from ..types import BulkEmailResult, ChannelResult, EmailContent, NotificationChannel
from .base import ChannelSender

logger = logging.getLogger("dalat_notifications.channels.email")

BATCH_SIZE = 100


class OutgoingEmail(NamedTuple):
    to: str
    content: EmailContent


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Email API returned HTTP {response.status_code}"


class EmailSender(ChannelSender):
    """
    Resend email delivery channel.

    Args:
        api_key: Resend API key; without it every call fails
        from_address: Full sender, e.g. ``Dalat Events <events@dalat.app>``
        site_url: Linked from the footer of the default layout
        site_domain: Shown in the footer of the default layout
        api_url: Resend API base URL
        timeout: HTTP timeout in seconds
        footers: Footer lines to pick from; empty means no footer line
        rng: Random source for footer selection
        transport: httpx transport override (tests use ``httpx.MockTransport``)
    """

    channel = NotificationChannel.EMAIL
    channel_name = "Email Notifications"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        from_address: str,
        site_url: str,
        site_domain: str,
        api_url: str = "https://api.resend.com",
        timeout: float = 15.0,
        footers: Sequence[str] = INSPIRING_FOOTERS,
        rng: Optional[random.Random] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.site_url = site_url.rstrip("/")
        self.site_domain = site_domain
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.footers = tuple(footers)
        self.rng = rng
        self.transport = transport

        if not api_key:
            self.config_error = "Resend client not configured"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    def build_message(self, to: str, content: EmailContent, reply_to: Optional[str] = None) -> Dict[str, Any]:
        """Resend request body for one recipient."""
        footer = pick_footer(self.footers, self.rng)
        message: Dict[str, Any] = {
            "from": self.from_address,
            "to": [to],
            "subject": content.subject,
            "html": content.html or self.default_html(content, footer),
            # Plain-text alternative improves spam-filter scoring
            "text": content.text or self.default_text(content, footer),
        }
        reply_to = reply_to or content.reply_to
        if reply_to:
            message["reply_to"] = reply_to
        return message

    async def send(self, to: str, content: EmailContent, reply_to: Optional[str] = None) -> ChannelResult:
        """
        Send one email.

        Returns:
            ChannelResult with the provider's message id on success
        """
        if not self.is_enabled():
            return self.not_configured()

        try:
            message = self.build_message(to, content, reply_to)
            async with self._client() as client:
                response = await client.post("/emails", json=message)
            if response.is_error:
                error = _error_message(response)
                logger.error(f"Failed to send email to {to}: {error}")
                return self.failure(error)
            message_id = (response.json() or {}).get("id")
        except httpx.HTTPError as e:
            logger.error(f"Email service error: {e}")
            return self.failure(str(e) or e.__class__.__name__)
        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            return self.failure(str(e))

        logger.info(f"Email sent to {to}: {message_id}")
        return self.ok(message_id=message_id)

    async def send_bulk(self, emails: Sequence[OutgoingEmail]) -> BulkEmailResult:
        """
        Send many emails through the batch endpoint, up to 100 per request.

        A batch is accepted or rejected as a whole; the result counts messages
        and keeps the first error of each failed batch.
        """
        if not self.is_enabled():
            return BulkEmailResult(sent=0, failed=len(emails), errors=[self.config_error])
        if not emails:
            return BulkEmailResult()

        result = BulkEmailResult()
        async with self._client() as client:
            for start in range(0, len(emails), BATCH_SIZE):
                batch = emails[start:start + BATCH_SIZE]
                try:
                    body = [self.build_message(email.to, email.content) for email in batch]
                    response = await client.post("/emails/batch", json=body)
                    if response.is_error:
                        result.failed += len(batch)
                        result.errors.append(_error_message(response))
                        continue
                except Exception as e:
                    logger.error(f"Batch email request failed: {e}")
                    result.failed += len(batch)
                    result.errors.append(str(e) or e.__class__.__name__)
                    continue
                result.sent += len(batch)

        logger.info(f"Bulk email: {result.sent} sent, {result.failed} failed")
        return result

    # --- Default layout ---

    def default_html(self, content: EmailContent, footer: Optional[str]) -> str:
        esc = html.escape
        primary = ""
        if content.primary_action_url and content.primary_action_label:
            primary = (
                f'<a href="{esc(content.primary_action_url)}" style="display: inline-block; '
                "background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; "
                "padding: 14px 28px; border-radius: 8px; text-decoration: none; font-weight: 600; "
                f'font-size: 16px; margin-right: 10px;">{esc(content.primary_action_label)}</a>'
            )
        secondary = ""
        if content.secondary_action_url and content.secondary_action_label:
            secondary = (
                f'<a href="{esc(content.secondary_action_url)}" style="display: inline-block; '
                "background: #f3f4f6; color: #374151; padding: 14px 28px; border-radius: 8px; "
                f'text-decoration: none; font-weight: 600; font-size: 16px;">{esc(content.secondary_action_label)}</a>'
            )
        buttons = (
            f'<div style="text-align: center; margin: 30px 0;">\n      {primary}\n      {secondary}\n    </div>'
            if primary or secondary
            else ""
        )
        footer_line = (
            '<p style="font-size: 13px; color: #9ca3af; font-style: italic; margin: 0 0 8px 0;">'
            f'"{esc(footer)}"</p>'
            if footer
            else ""
        )

        return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; border-radius: 12px 12px 0 0; text-align: center;">
    <h1 style="color: white; margin: 0; font-size: 24px;">{esc(content.title)}</h1>
  </div>

  <div style="background: #f9fafb; padding: 30px; border-radius: 0 0 12px 12px;">
    <p style="font-size: 16px; margin-bottom: 20px;">{esc(content.body)}</p>
    {buttons}
  </div>

  <div style="text-align: center; margin-top: 20px;">
    {footer_line}
    <p style="font-size: 12px; color: #9ca3af; margin: 0;">
      Sent via <a href="{self.site_url}" style="color: #667eea; text-decoration: none;">{self.site_domain}</a>
    </p>
  </div>
</body>
</html>"""

    def default_text(self, content: EmailContent, footer: Optional[str]) -> str:
        lines: List[str] = [content.title, "", content.body, ""]
        if content.primary_action_url:
            lines.append(f"{content.primary_action_label or 'Click here'}: {content.primary_action_url}")
        if content.secondary_action_url:
            lines.append(f"{content.secondary_action_label or 'Alternative'}: {content.secondary_action_url}")
        lines.extend(["", "---"])
        if footer:
            lines.extend([f'"{footer}"', ""])
        lines.append(f"Sent via {self.site_domain} ({self.site_url})")
        return "\n".join(lines)
