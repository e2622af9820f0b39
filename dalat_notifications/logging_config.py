# ======================================================================
# FILE: dalat_notifications/logging_config.py
# Console logging for the notification core: pretty text for developers,
# JSON lines for production, secret redaction in messages and extras.
# ======================================================================
from __future__ import annotations

import json
import logging
import os
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

LOGS_AS_JSON = os.getenv("LOGS_AS_JSON", "").lower() in ("1", "true", "yes", "on")

# Extra keys whose values are masked before a record is written
_SECRET_FIELD_HINTS = ("api_key", "apikey", "authorization", "auth", "secret", "password", "token", "p256dh", "private_key")

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}

# Fields shown inline by the pretty formatter, in this order
_CONTEXT_FIELDS = ("user_id", "notification_type", "channel")

_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "postgrest", "gotrue", "supabase")

_REDACTED = "***REDACTED***"

# Applied in order. Bearer runs before the key/value rule, which would otherwise
# treat "Bearer" itself as the secret.
_REDACTION_RULES: List[Tuple[Pattern[str], Callable[[re.Match], str]]] = [
    (
        re.compile(r"(Bearer\s+)[A-Za-z0-9._\-~+/=]+", re.IGNORECASE),
        lambda m: m.group(1) + _REDACTED,
    ),
    (
        re.compile(
            r"(\b(?:api[_-]?key|authorization|secret|password|token|service[_-]?role[_-]?key|private[_-]?key)\b"
            r"\s*[:=]\s*([\"']?))[^\"'\s;,]+",
            re.IGNORECASE,
        ),
        lambda m: m.group(1) + _REDACTED + m.group(2),
    ),
    (
        re.compile(r"\b(re_[A-Za-z0-9]{3})[A-Za-z0-9_]+"),
        lambda m: m.group(1) + _REDACTED,
    ),
    (
        re.compile(r"(/invite/)[A-Za-z0-9_\-]{6,}"),
        lambda m: m.group(1) + "***",
    ),
]


def sanitize_log_message(message: str) -> str:
    """Strip bearer tokens, API keys, key/value secrets and invite tokens from a message."""
    if not isinstance(message, str) or not message:
        return message
    for pattern, replace in _REDACTION_RULES:
        message = pattern.sub(replace, message)
    return message


def _mask(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return "***" if len(value) <= 8 else f"{value[:4]}***{value[-4:]}"


def _is_secret_field(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in _SECRET_FIELD_HINTS)


def _scrub(fields: Dict[str, Any]) -> Dict[str, Any]:
    scrubbed: Dict[str, Any] = {}
    for name, value in fields.items():
        if _is_secret_field(name):
            scrubbed[name] = _mask(value)
        elif isinstance(value, dict):
            scrubbed[name] = _scrub(value)
        else:
            scrubbed[name] = value
    return scrubbed


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {name: value for name, value in vars(record).items() if name not in _RECORD_ATTRS}


class ProductionJSONFormatter(logging.Formatter):
    """One JSON object per line, with extras under ``extra`` and secrets masked."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": sanitize_log_message(record.getMessage()),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        extras = _record_extras(record)
        if extras:
            entry["extra"] = _scrub(extras)
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": sanitize_log_message(str(exc_value)),
                "trace": traceback.format_exception(exc_type, exc_value, exc_tb),
            }
        return json.dumps(entry, ensure_ascii=False, default=str)


_ANSI_BY_LEVEL = {
    logging.DEBUG: "\x1b[2m",
    logging.INFO: "\x1b[36m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;41m",
}

# Matched against the logger name suffix; first hit wins
_ICON_BY_LOGGER = (
    (".channels.push", "📲"),
    (".channels.email", "✉️"),
    (".channels.in_app", "🔔"),
    (".scheduler", "⏰"),
    (".notifier", "📣"),
    (".store", "🗄️"),
)
_ICON_BY_LEVEL = {logging.WARNING: "⚠️", logging.ERROR: "❌", logging.CRITICAL: "🚨"}


def _icon_for(record: logging.LogRecord) -> str:
    if record.levelno >= logging.WARNING:
        return _ICON_BY_LEVEL.get(record.levelno, "❌")
    for suffix, icon in _ICON_BY_LOGGER:
        if record.name.endswith(suffix):
            return icon
    return "·"


class PrettyConsoleFormatter(logging.Formatter):
    """Developer console output.

    ``12:04:05.123  INFO ✉️ dalat_notifications.channels.email - Email sent | user_id=u1 channel=email``
    """

    def __init__(self, no_color: Optional[bool] = None):
        super().__init__()
        if no_color is None:
            no_color = bool(os.getenv("NO_COLOR")) or not sys.stderr.isatty()
        self.no_color = no_color

    def _level(self, record: logging.LogRecord) -> str:
        label = f"{record.levelname:>5}"
        if self.no_color:
            return label
        return f"{_ANSI_BY_LEVEL.get(record.levelno, '')}{label}\x1b[0m"

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S") + f".{int(record.msecs):03d}"
        line = f"{clock} {self._level(record)} {_icon_for(record)} {record.name} - {sanitize_log_message(record.getMessage())}"
        context = [f"{name}={getattr(record, name)}" for name in _CONTEXT_FIELDS if getattr(record, name, None) is not None]
        if context:
            line += " | " + " ".join(context)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


_configured = False


def setup_logging(*, level: str = "INFO", as_json: Optional[bool] = None) -> None:
    """Install one stderr handler on the root logger. Later calls are no-ops."""
    global _configured
    if _configured:
        return
    _configured = True

    json_lines = LOGS_AS_JSON if as_json is None else as_json
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProductionJSONFormatter() if json_lines else PrettyConsoleFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(logging.getLevelName(level.upper()) if level.upper() in logging.getLevelNamesMapping() else logging.INFO)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(__name__).debug("Logging configured", extra={"format": "jsonl" if json_lines else "pretty"})


def reset_logging_state() -> None:
    """Allow ``setup_logging`` to run again (tests)."""
    global _configured
    _configured = False
