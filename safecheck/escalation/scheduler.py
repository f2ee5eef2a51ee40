"""Sweep scheduler: runs the escalation and reminder sweeps at a fixed interval.

A plain asyncio loop: one tick on start, then one every ``interval``
seconds. A tick escalates overdue check-ins first, then sends due owner
reminders, so a check-in already past its deadline gets no reminder. A
failed sweep is logged and the next tick retries, which is all the
at-least-once contract of the sweep needs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from .reminders import ReminderScanner, ReminderSummary
from .scanner import EscalationScanner, SweepSummary

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Drives EscalationScanner.run_once (and ReminderScanner.run_once) on a timer."""

    def __init__(
        self,
        scanner: EscalationScanner,
        interval: float = 300.0,
        reminders: ReminderScanner | None = None,
    ) -> None:
        self.scanner = scanner
        self.reminders = reminders
        self.interval = interval
        self.last_summary: SweepSummary | None = None
        self.last_error: str | None = None
        self.last_reminder_summary: ReminderSummary | None = None
        self.last_reminder_error: str | None = None
        self.last_run_at: float | None = None
        self.runs = 0
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="escalation-sweep")
        logger.info("Escalation scheduler started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Escalation scheduler stopped")

    async def run_now(self, now: float | None = None) -> SweepSummary:
        """Run one tick immediately and record it (manual trigger).

        Reminders still go out when the escalation sweep fails; the
        escalation error is re-raised afterwards.
        """
        now = time.time() if now is None else now
        self.last_run_at = time.time()
        self.runs += 1
        try:
            summary = await self.scanner.run_once(now)
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            await self._run_reminders(now)
            raise
        self.last_summary = summary
        self.last_error = None
        await self._run_reminders(now)
        return summary

    async def _run_reminders(self, now: float) -> None:
        if self.reminders is None:
            return
        try:
            self.last_reminder_summary = await self.reminders.run_once(now)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Reminder sweep failed; retrying next interval")
            self.last_reminder_error = f"{type(exc).__name__}: {exc}"
        else:
            self.last_reminder_error = None

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.run_now()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Escalation sweep failed; retrying next interval")
            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "interval_seconds": self.interval,
            "runs": self.runs,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
            "reminders_enabled": self.reminders is not None,
            "last_reminder_error": self.last_reminder_error,
            "last_reminder_summary": (
                self.last_reminder_summary.to_dict() if self.last_reminder_summary else None
            ),
        }
