"""Shared test fixtures."""

from __future__ import annotations

import pytest

from safecheck.checkins.models import CheckIn, ContactRef
from safecheck.checkins.service import CheckInService
from safecheck.checkins.store import CheckInStore
from safecheck.contacts.store import ContactStore
from safecheck.escalation.scanner import EscalationScanner
from safecheck.notifications import NotificationDispatcher
from safecheck.notifications.transports import TransportResult
from safecheck.verification.service import VerificationService

T0 = 1_700_000_000.0


class FakeTransport:
    """Records every send; targets listed in ``fail`` are reported as failed."""

    def __init__(self) -> None:
        self.sms: list[tuple[str, str]] = []
        self.emails: list[tuple[str, str, str]] = []
        self.fail: set[str] = set()
        self.raise_for: set[str] = set()
        self.closed = False

    async def send_sms(self, phone: str, text: str) -> TransportResult:
        if phone in self.raise_for:
            raise RuntimeError("transport exploded")
        self.sms.append((phone, text))
        if phone in self.fail:
            return TransportResult(delivered=False, error="carrier rejected")
        return TransportResult(delivered=True, message_id=f"sms-{len(self.sms)}")

    async def send_email(self, email: str, subject: str, body: str) -> TransportResult:
        if email in self.raise_for:
            raise RuntimeError("transport exploded")
        self.emails.append((email, subject, body))
        if email in self.fail:
            return TransportResult(delivered=False, error="mailbox unavailable")
        return TransportResult(delivered=True)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "safecheck.db"


@pytest.fixture
def store(db_path) -> CheckInStore:
    """CheckInStore backed by a temp SQLite file."""
    return CheckInStore(db_path=db_path)


@pytest.fixture
def contacts(db_path) -> ContactStore:
    return ContactStore(db_path=db_path)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def dispatcher(transport) -> NotificationDispatcher:
    return NotificationDispatcher(transport)


@pytest.fixture
def verification(store) -> VerificationService:
    return VerificationService(
        store, secret="test-secret", code_length=4, link_base_url="https://example.test/verify",
    )


@pytest.fixture
def scanner(store, contacts, dispatcher) -> EscalationScanner:
    return EscalationScanner(store, contacts, dispatcher)


@pytest.fixture
def service(store, contacts, verification, dispatcher) -> CheckInService:
    return CheckInService(store, contacts, verification, dispatcher)


@pytest.fixture
def make_checkin(store):
    """Insert a scheduled check-in created at T0 with a one-hour deadline."""

    def _make(**overrides) -> CheckIn:
        fields = {
            "owner_id": "owner-1",
            "title": "Evening hike",
            "scheduled_time": T0,
            "escalation_deadline": T0 + 3600,
            "verification_code": "4821",
            "contacts": [
                ContactRef(name="Alice", phone="+15550000001"),
                ContactRef(name="Bob", email="bob@example.com"),
            ],
        }
        fields.update(overrides)
        return store.create(CheckIn(**fields))

    return _make
