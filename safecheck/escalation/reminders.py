"""Owner reminder sweep: texts the owner when a check-in comes due.

At ``scheduled_time`` the owner gets one SMS carrying the verification link
and code. A reminder is claimed in storage before it is sent, so overlapping
or repeated sweeps send it at most once; a send that fails after the claim
is logged and not retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from safecheck.checkins.models import CheckIn
from safecheck.checkins.store import CheckInStore
from safecheck.notifications import NotificationDispatcher
from safecheck.verification.service import VerificationService

logger = logging.getLogger(__name__)


@dataclass
class SentReminder:
    id: str
    title: str
    owner_id: str
    phone: str
    delivered: bool
    error: str = ""


@dataclass
class ReminderSummary:
    timestamp: float
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    reminders: list[SentReminder] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReminderScanner:
    """Sends each due check-in's owner reminder exactly once at most."""

    def __init__(
        self,
        store: CheckInStore,
        dispatcher: NotificationDispatcher,
        verification: VerificationService,
        batch_limit: int | None = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.verification = verification
        self.batch_limit = batch_limit or None

    async def run_once(self, now: float | None = None) -> ReminderSummary:
        now = time.time() if now is None else now
        loop = asyncio.get_running_loop()

        due = await loop.run_in_executor(None, self.store.list_due_reminders, now, self.batch_limit)
        summary = ReminderSummary(timestamp=now)
        for check_in in due:
            summary.processed += 1
            await self._process(check_in, now, summary)

        if summary.processed:
            logger.info(
                "Reminder sweep: processed=%d sent=%d skipped=%d failed=%d",
                summary.processed, summary.sent, summary.skipped, summary.failed,
            )
        return summary

    async def _process(self, check_in: CheckIn, now: float, summary: ReminderSummary) -> None:
        loop = asyncio.get_running_loop()
        try:
            claimed = await loop.run_in_executor(
                None, self.store.mark_reminder_sent, check_in.id, now,
            )
        except Exception:
            logger.exception("Failed to claim reminder for check-in %s", check_in.id)
            summary.failed += 1
            return
        if not claimed:
            logger.debug("Reminder for check-in %s already handled", check_in.id)
            summary.skipped += 1
            return

        phone = check_in.reminder_phone or ""
        try:
            link = await loop.run_in_executor(
                None, self.verification.verification_link, check_in.id,
            )
            outcome = await self.dispatcher.send_reminder(check_in, phone, link)
        except Exception as exc:
            logger.exception("Reminder for check-in %s raised", check_in.id)
            summary.failed += 1
            summary.reminders.append(SentReminder(
                check_in.id, check_in.title, check_in.owner_id, phone,
                delivered=False, error=f"{type(exc).__name__}: {exc}",
            ))
            return

        if outcome.delivered:
            summary.sent += 1
        else:
            summary.failed += 1
        summary.reminders.append(SentReminder(
            check_in.id, check_in.title, check_in.owner_id, phone,
            delivered=outcome.delivered, error=outcome.error,
        ))
