"""Escalation sweep: finds overdue check-ins and alerts their contacts.

One ``run_once(now)`` call is one sweep. It is stateless and safe to repeat:
escalated check-ins leave the deadline index, so a retried or overlapping
sweep only ever touches records that are still scheduled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any

from safecheck.checkins.models import CheckIn, CheckInStatus
from safecheck.checkins.store import CheckInStore
from safecheck.contacts.store import ContactStore
from safecheck.errors import ConflictError
from safecheck.notifications import DispatchResult, NotificationDispatcher, Recipient

logger = logging.getLogger(__name__)


@dataclass
class EscalatedCheckIn:
    id: str
    title: str
    owner_id: str
    scheduled_time: float
    escalation_deadline: float
    escalated_at: float | None
    notified: bool = False
    sent: int = 0
    failed: int = 0


@dataclass
class SweepSummary:
    """Outcome of one sweep.

    ``processed`` counts overdue entries looked at. ``skipped`` are those
    another path resolved first (not an error). ``failed`` counts items whose
    transition or dispatch raised; an escalated item whose dispatch raised is
    counted in both ``escalated`` and ``failed``.
    """

    timestamp: float
    processed: int = 0
    escalated: int = 0
    skipped: int = 0
    failed: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    escalated_check_ins: list[EscalatedCheckIn] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class EscalationScanner:
    """Moves overdue scheduled check-ins to escalated and notifies contacts."""

    def __init__(
        self,
        store: CheckInStore,
        contacts: ContactStore,
        dispatcher: NotificationDispatcher,
        batch_limit: int | None = None,
    ) -> None:
        self.store = store
        self.contacts = contacts
        self.dispatcher = dispatcher
        self.batch_limit = batch_limit or None

    async def run_once(self, now: float | None = None) -> SweepSummary:
        """Escalate everything whose deadline is <= now.

        Only a failure of the overdue query itself propagates; per-item
        failures are logged and counted.
        """
        now = time.time() if now is None else now
        loop = asyncio.get_running_loop()

        overdue = await loop.run_in_executor(None, self.store.list_overdue, now, self.batch_limit)
        summary = SweepSummary(timestamp=now)
        if overdue:
            logger.info("Sweep at %.0f: %d overdue check-ins", now, len(overdue))

        for check_in in overdue:
            summary.processed += 1
            await self._process(check_in, now, summary)

        if summary.processed:
            logger.info(
                "Sweep done: processed=%d escalated=%d skipped=%d failed=%d",
                summary.processed, summary.escalated, summary.skipped, summary.failed,
            )
        return summary

    async def _process(self, check_in: CheckIn, now: float, summary: SweepSummary) -> None:
        loop = asyncio.get_running_loop()
        try:
            escalated = await loop.run_in_executor(
                None,
                self.store.transition,
                check_in.id,
                CheckInStatus.SCHEDULED,
                CheckInStatus.ESCALATED,
                {"escalated_at": now},
            )
        except ConflictError as exc:
            logger.info("Check-in %s already %s; skipping", check_in.id, exc.current_status)
            summary.skipped += 1
            return
        except Exception:
            logger.exception("Failed to escalate check-in %s", check_in.id)
            summary.failed += 1
            return

        summary.escalated += 1
        item = EscalatedCheckIn(
            id=escalated.id,
            title=escalated.title,
            owner_id=escalated.owner_id,
            scheduled_time=escalated.scheduled_time,
            escalation_deadline=escalated.escalation_deadline,
            escalated_at=escalated.escalated_at,
        )
        summary.escalated_check_ins.append(item)
        logger.warning("Check-in %s (%s) escalated", escalated.id, escalated.title)

        try:
            recipients = await loop.run_in_executor(None, self.resolve_recipients, escalated)
            result: DispatchResult = await self.dispatcher.notify(escalated, recipients)
        except Exception:
            logger.exception("Failed to notify contacts for check-in %s", escalated.id)
            summary.failed += 1
            return

        item.notified = True
        item.sent = result.sent
        item.failed = result.failed
        summary.notifications_sent += result.sent
        summary.notifications_failed += result.failed

    def resolve_recipients(self, check_in: CheckIn) -> list[Recipient]:
        """Inline contacts plus saved contacts, in the check-in's order."""
        ids = [ref.contact_id for ref in check_in.contacts if ref.contact_id]
        saved = self.contacts.get_many(check_in.owner_id, ids)

        recipients: list[Recipient] = []
        seen: set[str] = set()
        for ref in check_in.contacts:
            if ref.contact_id is None:
                recipients.append(Recipient(name=ref.name, phone=ref.phone, email=ref.email))
                continue
            if ref.contact_id in seen:
                continue
            seen.add(ref.contact_id)
            contact = saved.get(ref.contact_id)
            if contact is None:
                logger.warning(
                    "Check-in %s references missing contact %s", check_in.id, ref.contact_id,
                )
                continue
            recipients.append(Recipient(
                name=contact.name,
                phone=contact.phone,
                email=contact.email,
                contact_id=contact.id,
            ))
        return recipients
