#!/usr/bin/env python
"""
Dalat Notifications CLI

Configuration checks and one-shot scheduled-notification runs, for operators
and job runners.

Usage:
    python -m dalat_notifications.cli --check-config
    python -m dalat_notifications.cli --process-scheduled [--limit N]
    python -m dalat_notifications.cli --version
"""

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from . import __version__
from .config import load_settings
from .logging_config import setup_logging
from .notifier import Notifier
from .scheduler import ScheduledNotificationProcessor


def show_version() -> None:
    print(f"dalat-notifications {__version__}")


def check_config() -> int:
    """
    Print the effective configuration with secrets masked.

    Returns:
        0 if at least one channel can deliver, 1 otherwise
    """
    print("🔍 Checking notification configuration...\n")
    try:
        settings = load_settings()
    except RuntimeError as e:
        print(f"❌ Invalid configuration: {e}")
        return 1

    summary = settings.describe()
    print(json.dumps(summary, indent=2, ensure_ascii=False))

    channels = summary["channels"]
    print("")
    for name, enabled in channels.items():
        print(f"   {'✅' if enabled else '⚠️ '} {name}")

    if not any(channels.values()):
        print("\n❌ No channel is configured; every notification would fail.")
        return 1
    print("\n✨ Configuration OK")
    return 0


async def process_scheduled(limit: Optional[int] = None) -> int:
    """
    Run one pass over due scheduled notifications.

    Returns:
        0 when nothing failed, 1 otherwise
    """
    try:
        settings = load_settings()
    except RuntimeError as e:
        print(f"❌ Invalid configuration: {e}")
        return 1
    if not settings.store_configured:
        print("❌ Supabase URL or service role key not set")
        return 1

    notifier = Notifier.from_settings(settings)
    processor = ScheduledNotificationProcessor(
        notifier.store, notifier, batch_size=settings.scheduled_batch_size
    )
    summary = await processor.process_due(limit=limit)

    print(f"⏰ Processed: {summary.processed}, Failed: {summary.failed}, Skipped: {summary.skipped}")
    for error in summary.errors:
        print(f"   - {error}")
    return 0 if summary.failed == 0 and not summary.errors else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Dalat Events notification tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m dalat_notifications.cli --check-config
  python -m dalat_notifications.cli --process-scheduled --limit 20

For a job runner (every minute):
  python -m dalat_notifications.cli --process-scheduled || echo "FAILED"

Environment Variables:
  NEXT_PUBLIC_SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY   persistence
  NEXT_PUBLIC_VAPID_PUBLIC_KEY, VAPID_PRIVATE_KEY       web push
  RESEND_API_KEY                                        email
        """,
    )
    parser.add_argument("--check-config", action="store_true", help="Show configuration and channel status")
    parser.add_argument(
        "--process-scheduled", action="store_true", help="Send scheduled notifications that are due"
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum rows for --process-scheduled")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--version", "-v", action="store_true", help="Show version information")

    args = parser.parse_args(argv)

    if args.version:
        show_version()
        return 0

    if not (args.check_config or args.process_scheduled):
        parser.print_help()
        return 0

    setup_logging(level=args.log_level)

    if args.check_config:
        return check_config()
    return asyncio.run(process_scheduled(args.limit))


if __name__ == "__main__":
    sys.exit(main())
