# dalat_notifications/config.py
from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger("dalat_notifications.settings")


def _dotenv_enabled() -> bool:
    value = os.getenv("DALAT_LOAD_DOTENV")
    if value is None:
        return True
    return value.strip().lower() not in {"0", "false", "no", "off"}


# Load environment variables from a local .env for dev/test (never override process env).
if _dotenv_enabled():
    load_dotenv(override=False)


def _env_str(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _env_int(name: str, default: int) -> int:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    value = _env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except Exception:
        return default


def _normalize_url(url: str) -> str:
    return url.rstrip("/")


def _mask(secret: str | None) -> str:
    if not secret:
        return "Not set"
    if len(secret) <= 8:
        return "*****"
    return secret[:4] + "*****" + secret[-4:]


@dataclass(frozen=True)
class NotificationSettings:
    app_base_url: str
    site_domain: str
    email_from_name: str
    resend_api_key: str | None
    resend_api_url: str
    vapid_public_key: str | None
    vapid_private_key: str | None
    vapid_contact: str
    supabase_url: str | None
    supabase_service_role_key: str | None
    request_timeout_s: float
    quiet_hours_timezone: str
    scheduled_batch_size: int

    @property
    def email_configured(self) -> bool:
        return bool(self.resend_api_key)

    @property
    def push_configured(self) -> bool:
        return bool(self.vapid_public_key and self.vapid_private_key and self.vapid_contact)

    @property
    def store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @property
    def email_from(self) -> str:
        return f"{self.email_from_name} <events@{self.site_domain}>"

    def validate(self) -> None:
        # Missing credentials are not errors: the affected channel reports failures instead.
        if self.request_timeout_s <= 0:
            raise RuntimeError("NOTIFY_REQUEST_TIMEOUT_S must be > 0.")
        if self.scheduled_batch_size <= 0:
            raise RuntimeError("SCHEDULED_BATCH_SIZE must be > 0.")
        if not self.app_base_url.startswith(("http://", "https://")):
            raise RuntimeError(f"NEXT_PUBLIC_APP_URL must be an absolute URL (got '{self.app_base_url}')")
        try:
            ZoneInfo(self.quiet_hours_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise RuntimeError(f"Invalid QUIET_HOURS_TIMEZONE: '{self.quiet_hours_timezone}'") from e

    def describe(self) -> dict[str, Any]:
        """Configuration summary with secrets masked, for logs and the CLI."""
        return {
            "app_base_url": self.app_base_url,
            "email_from": self.email_from,
            "resend_api_key": _mask(self.resend_api_key),
            "vapid_public_key": _mask(self.vapid_public_key),
            "vapid_private_key": _mask(self.vapid_private_key),
            "vapid_contact": self.vapid_contact,
            "supabase_url": self.supabase_url or "Not set",
            "supabase_service_role_key": _mask(self.supabase_service_role_key),
            "request_timeout_s": self.request_timeout_s,
            "quiet_hours_timezone": self.quiet_hours_timezone,
            "channels": {
                "in_app": self.store_configured,
                "push": self.push_configured and self.store_configured,
                "email": self.email_configured,
            },
        }


def load_settings() -> NotificationSettings:
    app_base_url = _normalize_url(_env_str("NEXT_PUBLIC_APP_URL", "https://dalat.app") or "https://dalat.app")
    site_domain = (_env_str("SITE_DOMAIN", "dalat.app") or "dalat.app").strip()

    supabase_url = _env_str("NEXT_PUBLIC_SUPABASE_URL") or _env_str("SUPABASE_URL")
    if supabase_url:
        supabase_url = _normalize_url(supabase_url)

    settings = NotificationSettings(
        app_base_url=app_base_url,
        site_domain=site_domain,
        email_from_name=_env_str("EMAIL_FROM_NAME", "Dalat Events") or "Dalat Events",
        resend_api_key=_env_str("RESEND_API_KEY"),
        resend_api_url=_normalize_url(_env_str("RESEND_API_URL", "https://api.resend.com") or "https://api.resend.com"),
        vapid_public_key=_env_str("NEXT_PUBLIC_VAPID_PUBLIC_KEY") or _env_str("VAPID_PUBLIC_KEY"),
        vapid_private_key=_env_str("VAPID_PRIVATE_KEY"),
        vapid_contact=_env_str("VAPID_CONTACT", f"mailto:hello@{site_domain}") or f"mailto:hello@{site_domain}",
        supabase_url=supabase_url,
        supabase_service_role_key=_env_str("SUPABASE_SERVICE_ROLE_KEY"),
        request_timeout_s=_env_float("NOTIFY_REQUEST_TIMEOUT_S", default=15.0),
        quiet_hours_timezone=_env_str("QUIET_HOURS_TIMEZONE", "Asia/Ho_Chi_Minh") or "Asia/Ho_Chi_Minh",
        scheduled_batch_size=_env_int("SCHEDULED_BATCH_SIZE", default=50),
    )
    settings.validate()

    if not settings.store_configured:
        logger.warning("Supabase URL or service role key not set; in-app and push channels will report failures")
    if not settings.email_configured:
        logger.warning("RESEND_API_KEY not set; email channel will report failures")
    if not settings.push_configured:
        logger.warning("VAPID keys not set; push channel will report failures")
    return settings
