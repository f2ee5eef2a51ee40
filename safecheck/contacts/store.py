"""Emergency contact storage: SQLite-backed, scoped per owner.

Phone numbers are normalised to E.164 on the way in; at least one of phone
or email is required.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from safecheck.db import reader, resolve_path, transaction
from safecheck.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_phone(phone: str) -> str:
    """Normalise a phone number to E.164 (10-digit numbers are treated as US)."""
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


def is_valid_phone(phone: str) -> bool:
    return bool(_E164.match(phone)) and len(re.sub(r"\D", "", phone)) >= 10


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email))


def validate_channels(phone: str | None, email: str | None) -> tuple[str | None, str | None]:
    """Check and normalise a phone/email pair. Raises ValidationError."""
    phone = phone.strip() if phone else None
    email = email.strip() if email else None
    if not phone and not email:
        raise ValidationError("A contact needs a phone number or an email address")
    if phone:
        phone = normalize_phone(phone)
        if not is_valid_phone(phone):
            raise ValidationError("Invalid phone number format")
    if email and not is_valid_email(email):
        raise ValidationError("Invalid email address format")
    return phone, email


@dataclass
class Contact:
    """A person notified when one of the owner's check-ins escalates."""

    owner_id: str
    name: str
    phone: str | None = None
    email: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Contact":
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row.get("name", ""),
            phone=row.get("phone"),
            email=row.get("email"),
            created_at=row.get("created_at", 0.0),
        )


class ContactStore:
    """SQLite-backed contact book."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = resolve_path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        with transaction(self._db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS contacts (
                    owner_id    TEXT NOT NULL,
                    id          TEXT NOT NULL,
                    name        TEXT NOT NULL DEFAULT '',
                    phone       TEXT,
                    email       TEXT,
                    created_at  REAL NOT NULL,
                    PRIMARY KEY (owner_id, id)
                )
            """)

    def create(self, contact: Contact) -> Contact:
        """Validate, normalise and insert a contact."""
        contact.phone, contact.email = validate_channels(contact.phone, contact.email)
        contact.created_at = time.time()
        with transaction(self._db_path) as conn:
            conn.execute("""
                INSERT INTO contacts (owner_id, id, name, phone, email, created_at)
                VALUES (:owner_id, :id, :name, :phone, :email, :created_at)
            """, contact.to_dict())
        return contact

    def get(self, owner_id: str, contact_id: str) -> Contact:
        with reader(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM contacts WHERE owner_id = ? AND id = ?",
                (owner_id, contact_id),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return Contact.from_row(dict(row))

    def get_many(self, owner_id: str, contact_ids: list[str]) -> dict[str, Contact]:
        """Fetch several of an owner's contacts; missing ids are simply absent."""
        if not contact_ids:
            return {}
        placeholders = ", ".join("?" for _ in contact_ids)
        with reader(self._db_path) as conn:
            rows = conn.execute(
                f"SELECT * FROM contacts WHERE owner_id = ? AND id IN ({placeholders})",
                (owner_id, *contact_ids),
            ).fetchall()
        return {r["id"]: Contact.from_row(dict(r)) for r in rows}

    def list_for_owner(self, owner_id: str) -> list[Contact]:
        with reader(self._db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM contacts WHERE owner_id = ? ORDER BY name, created_at",
                (owner_id,),
            ).fetchall()
        return [Contact.from_row(dict(r)) for r in rows]

    def delete(self, owner_id: str, contact_id: str) -> bool:
        with transaction(self._db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM contacts WHERE owner_id = ? AND id = ?",
                (owner_id, contact_id),
            )
        return cursor.rowcount > 0

    def close(self) -> None:
        """No-op: connections are created per-call."""
        pass
