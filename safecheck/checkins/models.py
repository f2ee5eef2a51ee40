"""Check-in record, status state machine, and contact references."""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class CheckInStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACKNOWLEDGED = "acknowledged"
    ESCALATED = "escalated"
    CANCELLED = "cancelled"


# scheduled is the only state with outgoing edges
ALLOWED_TRANSITIONS: dict[CheckInStatus, frozenset[CheckInStatus]] = {
    CheckInStatus.SCHEDULED: frozenset({
        CheckInStatus.ACKNOWLEDGED,
        CheckInStatus.ESCALATED,
        CheckInStatus.CANCELLED,
    }),
    CheckInStatus.ACKNOWLEDGED: frozenset(),
    CheckInStatus.ESCALATED: frozenset(),
    CheckInStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)

# Timestamp column stamped by each transition target
TIMESTAMP_FIELDS = {
    CheckInStatus.ACKNOWLEDGED: "acknowledged_at",
    CheckInStatus.ESCALATED: "escalated_at",
    CheckInStatus.CANCELLED: "cancelled_at",
}


def can_transition(current: CheckInStatus | str, new: CheckInStatus | str) -> bool:
    return CheckInStatus(new) in ALLOWED_TRANSITIONS[CheckInStatus(current)]


@dataclass
class ContactRef:
    """One entry of a check-in's contact list.

    Either points at a saved contact (``contact_id``) or carries ad-hoc
    contact data inline (name plus phone and/or email).
    """

    contact_id: str | None = None
    name: str = ""
    phone: str | None = None
    email: str | None = None

    @property
    def is_reference(self) -> bool:
        return self.contact_id is not None

    def to_dict(self) -> dict[str, Any]:
        if self.contact_id is not None:
            return {"contact_id": self.contact_id}
        return {"name": self.name, "phone": self.phone, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContactRef":
        if data.get("contact_id"):
            return cls(contact_id=data["contact_id"])
        return cls(
            name=data.get("name", ""),
            phone=data.get("phone") or None,
            email=data.get("email") or None,
        )


@dataclass
class CheckIn:
    """A scheduled safety confirmation with a deadline and a verification code."""

    owner_id: str
    title: str
    scheduled_time: float
    escalation_deadline: float
    verification_code: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: CheckInStatus = CheckInStatus.SCHEDULED
    contacts: list[ContactRef] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    acknowledged_at: float | None = None
    escalated_at: float | None = None
    cancelled_at: float | None = None
    owner_name: str = ""
    reminder_phone: str | None = None
    reminder_sent_at: float | None = None

    @property
    def display_name(self) -> str:
        return self.owner_name or self.owner_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_row(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["contacts"] = json.dumps([c.to_dict() for c in self.contacts])
        return d

    def to_dict(self, include_code: bool = False) -> dict[str, Any]:
        """API representation; the verification code is hidden by default."""
        d = asdict(self)
        d["status"] = self.status.value
        d["contacts"] = [c.to_dict() for c in self.contacts]
        if not include_code:
            d.pop("verification_code")
        return d

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CheckIn":
        contacts = row.get("contacts", "[]")
        if isinstance(contacts, str):
            contacts = json.loads(contacts)
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            title=row.get("title", ""),
            scheduled_time=row["scheduled_time"],
            escalation_deadline=row["escalation_deadline"],
            verification_code=row["verification_code"],
            status=CheckInStatus(row["status"]),
            contacts=[ContactRef.from_dict(c) for c in contacts],
            created_at=row.get("created_at", 0.0),
            updated_at=row.get("updated_at", 0.0),
            acknowledged_at=row.get("acknowledged_at"),
            escalated_at=row.get("escalated_at"),
            cancelled_at=row.get("cancelled_at"),
            owner_name=row.get("owner_name") or "",
            reminder_phone=row.get("reminder_phone"),
            reminder_sent_at=row.get("reminder_sent_at"),
        )
