"""Tests for the owner reminder sweep."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from safecheck.checkins.models import CheckInStatus
from safecheck.escalation.reminders import ReminderScanner
from safecheck.escalation.scanner import EscalationScanner
from safecheck.escalation.scheduler import SweepScheduler

T0 = 1_700_000_000.0
PHONE = "+15559990000"


@pytest.fixture
def reminders(store, dispatcher, verification) -> ReminderScanner:
    return ReminderScanner(store, dispatcher, verification)


class TestReminderSweep:
    def test_sends_link_and_code_at_scheduled_time(self, reminders, verification, store, transport, make_checkin):
        c = make_checkin(reminder_phone=PHONE)

        summary = asyncio.run(reminders.run_once(T0))

        assert summary.processed == 1
        assert summary.sent == 1
        assert transport.sms[0][0] == PHONE
        assert verification.verification_link(c.id) in transport.sms[0][1]
        assert "4821" in transport.sms[0][1]
        assert store.get_by_id(c.id).reminder_sent_at == T0
        assert store.get_by_id(c.id).status is CheckInStatus.SCHEDULED

    def test_not_before_scheduled_time(self, reminders, transport, make_checkin):
        make_checkin(reminder_phone=PHONE)
        assert asyncio.run(reminders.run_once(T0 - 1)).processed == 0
        assert transport.sms == []

    def test_repeated_sweeps_send_once(self, reminders, transport, make_checkin):
        make_checkin(reminder_phone=PHONE)
        asyncio.run(reminders.run_once(T0))
        second = asyncio.run(reminders.run_once(T0 + 60))
        assert second.processed == 0
        assert len(transport.sms) == 1

    def test_overlapping_sweeps_send_once(self, reminders, transport, make_checkin):
        make_checkin(reminder_phone=PHONE)

        async def both():
            return await asyncio.gather(reminders.run_once(T0), reminders.run_once(T0))

        first, second = asyncio.run(both())
        assert first.sent + second.sent == 1
        assert len(transport.sms) == 1

    @pytest.mark.parametrize("resolved", ["acknowledged", "cancelled", "escalated"])
    def test_resolved_check_ins_get_nothing(self, resolved, reminders, store, transport, make_checkin):
        c = make_checkin(reminder_phone=PHONE)
        store.transition(c.id, "scheduled", resolved)
        assert asyncio.run(reminders.run_once(T0 + 10)).processed == 0
        assert transport.sms == []

    def test_without_reminder_phone(self, reminders, transport, make_checkin):
        make_checkin()
        assert asyncio.run(reminders.run_once(T0)).processed == 0
        assert transport.sms == []

    def test_failed_send_is_not_retried(self, reminders, store, transport, make_checkin):
        c = make_checkin(reminder_phone=PHONE)
        transport.fail.add(PHONE)

        summary = asyncio.run(reminders.run_once(T0))
        assert summary.failed == 1
        assert summary.reminders[0].delivered is False

        assert asyncio.run(reminders.run_once(T0 + 60)).processed == 0
        assert len(transport.sms) == 1
        assert store.get_by_id(c.id).reminder_sent_at == T0

    def test_lost_claim_is_skipped(self, store, dispatcher, verification, transport, make_checkin):
        c = make_checkin(reminder_phone=PHONE)
        stale = store.list_due_reminders(T0)
        store.mark_reminder_sent(c.id, T0)

        racing_store = MagicMock(wraps=store)
        racing_store.list_due_reminders.return_value = stale
        summary = asyncio.run(ReminderScanner(racing_store, dispatcher, verification).run_once(T0))

        assert summary.skipped == 1
        assert summary.sent == 0
        assert transport.sms == []

    def test_query_failure_propagates(self, dispatcher, verification):
        broken = MagicMock()
        broken.list_due_reminders.side_effect = RuntimeError("db unavailable")
        with pytest.raises(RuntimeError, match="db unavailable"):
            asyncio.run(ReminderScanner(broken, dispatcher, verification).run_once(T0))


class TestSchedulerWithReminders:
    def test_overdue_check_in_is_escalated_not_reminded(self, scanner, reminders, store, transport, make_checkin):
        overdue = make_checkin(reminder_phone=PHONE, escalation_deadline=T0 + 10)
        due = make_checkin(reminder_phone=PHONE, escalation_deadline=T0 + 3600)
        scheduler = SweepScheduler(scanner, interval=60, reminders=reminders)

        summary = asyncio.run(scheduler.run_now(T0 + 10))

        assert summary.escalated == 1
        assert store.get_by_id(overdue.id).reminder_sent_at is None
        assert store.get_by_id(due.id).reminder_sent_at == T0 + 10
        assert [r.id for r in scheduler.last_reminder_summary.reminders] == [due.id]
        status = scheduler.status()
        assert status["reminders_enabled"] is True
        assert status["last_reminder_summary"]["sent"] == 1

    def test_reminders_run_when_escalation_fails(self, contacts, dispatcher, reminders, transport, make_checkin):
        make_checkin(reminder_phone=PHONE)
        broken = MagicMock()
        broken.list_overdue.side_effect = RuntimeError("db unavailable")
        scheduler = SweepScheduler(
            EscalationScanner(broken, contacts, dispatcher), reminders=reminders,
        )

        with pytest.raises(RuntimeError):
            asyncio.run(scheduler.run_now(T0))

        assert scheduler.last_reminder_summary.sent == 1
        assert transport.sms[0][0] == PHONE
