# dalat_notifications/scheduler.py
"""
Delivery of deferred notifications.

``Notifier.notify`` with ``scheduled_for`` stores the payload in
``scheduled_notifications``. An external job runner (cron, a worker, or the
CLI) calls ``ScheduledNotificationProcessor.process_due`` periodically; each
pass claims due rows and sends them.

Row lifecycle:
    pending -> sent              (claimed; stays sent when delivery succeeds)
    pending -> sent -> failed    (claimed, then delivery failed)
    pending -> cancelled         (Notifier.cancel_scheduled)

The table only allows pending, sent, cancelled and failed, so the claim is a
conditional update straight to sent (only while still pending). Two
overlapping passes never send the same row twice, and a pass that dies
mid-delivery leaves the row sent rather than sending it again. Failed rows
are not retried here; requeueing them is up to the job runner.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .errors import NotificationError, StoreError
from .notifier import Notifier
from .store import NotificationStore
from .types import NotifyResult, ScheduledNotification, payload_from_dict

logger = logging.getLogger("dalat_notifications.scheduler")

DEFAULT_BATCH_SIZE = 50


@dataclass
class ProcessSummary:
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.processed + self.failed + self.skipped


def _failure_message(result: NotifyResult) -> str:
    errors = [f"{r.channel.value}: {r.error}" for r in result.channels if not r.success and r.error]
    return "; ".join(errors) or "Notification failed to send"


class ScheduledNotificationProcessor:
    """
    Sends scheduled notifications that are due.

    Args:
        store: Holds ``scheduled_notifications``
        notifier: Used to deliver each payload
        batch_size: Default number of rows per pass
        clock: Returns the current instant; injectable for tests
    """

    def __init__(
        self,
        store: NotificationStore,
        notifier: Notifier,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.notifier = notifier
        self.batch_size = batch_size
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _now_iso(self) -> str:
        return self.clock().astimezone(timezone.utc).isoformat()

    async def process_due(self, limit: Optional[int] = None) -> ProcessSummary:
        """Claim and send every pending row due now, up to ``limit`` rows."""
        summary = ProcessSummary()
        try:
            due = await self.store.fetch_due_scheduled(self._now_iso(), limit or self.batch_size)
        except StoreError as e:
            logger.error(f"Error fetching scheduled notifications: {e}")
            summary.errors.append(str(e))
            return summary

        if not due:
            return summary

        logger.info(f"Processing {len(due)} scheduled notification(s)")
        for scheduled in due:
            await self._process_one(scheduled, summary)

        logger.info(f"Processed: {summary.processed}, Failed: {summary.failed}, Skipped: {summary.skipped}")
        return summary

    async def _process_one(self, scheduled: ScheduledNotification, summary: ProcessSummary) -> None:
        try:
            claimed = await self.store.claim_scheduled(scheduled.id, self._now_iso())
        except StoreError as e:
            logger.error(f"Error claiming scheduled notification {scheduled.id}: {e}")
            summary.errors.append(str(e))
            summary.failed += 1
            return
        if not claimed:
            # Another pass got there first, or the row was cancelled meanwhile
            summary.skipped += 1
            return

        try:
            payload = payload_from_dict({"type": scheduled.type, "user_id": scheduled.user_id, **scheduled.payload})
            result = await self.notifier.notify(payload)
        except (NotificationError, TypeError, ValueError) as e:
            # Unknown type or a payload missing required fields
            await self._finish(scheduled, summary, sent=False, error=str(e))
            return

        if result.success:
            await self._finish(scheduled, summary, sent=True)
        else:
            await self._finish(scheduled, summary, sent=False, error=_failure_message(result))

    async def _finish(
        self, scheduled: ScheduledNotification, summary: ProcessSummary, *, sent: bool, error: Optional[str] = None
    ) -> None:
        if sent:
            fields = {"status": "sent", "sent_at": self._now_iso()}
            summary.processed += 1
        else:
            fields = {"status": "failed", "error_message": error}
            summary.failed += 1
            summary.errors.append(f"{scheduled.id}: {error}")
            logger.warning(f"Scheduled notification {scheduled.id} failed: {error}")

        try:
            await self.store.update_scheduled(scheduled.id, fields)
        except StoreError as e:
            logger.error(f"Error updating scheduled notification {scheduled.id} to {fields['status']}: {e}")
