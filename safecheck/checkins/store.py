"""Check-in storage: SQLite-backed records with conditional status writes.

``transition()`` is the single synchronisation primitive for every status
change: an ``UPDATE ... WHERE id = ? AND status = ?`` whose row count decides
the winner, committed together with the StatusIndex update.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

from safecheck.checkins.index import StatusIndex
from safecheck.checkins.models import (
    TIMESTAMP_FIELDS,
    CheckIn,
    CheckInStatus,
    can_transition,
)
from safecheck.db import reader, resolve_path, transaction
from safecheck.errors import AlreadyExistsError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class CheckInStore:
    """SQLite-backed check-in storage with a deadline index."""

    def __init__(self, db_path: Path | str | None = None, index: StatusIndex | None = None) -> None:
        self._db_path = resolve_path(db_path)
        self.index = index or StatusIndex()
        self._init_db()

    def _init_db(self) -> None:
        with transaction(self._db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checkins (
                    id                  TEXT PRIMARY KEY,
                    owner_id            TEXT NOT NULL,
                    title               TEXT NOT NULL DEFAULT '',
                    scheduled_time      REAL NOT NULL,
                    escalation_deadline REAL NOT NULL,
                    status              TEXT NOT NULL,
                    verification_code   TEXT NOT NULL,
                    contacts            TEXT NOT NULL DEFAULT '[]',
                    created_at          REAL NOT NULL,
                    updated_at          REAL NOT NULL,
                    acknowledged_at     REAL,
                    escalated_at        REAL,
                    cancelled_at        REAL,
                    owner_name          TEXT NOT NULL DEFAULT '',
                    reminder_phone      TEXT,
                    reminder_sent_at    REAL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_checkins_owner
                ON checkins (owner_id, created_at)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_checkins_reminder_due
                ON checkins (scheduled_time, id)
                WHERE status = 'scheduled'
                  AND reminder_phone IS NOT NULL
                  AND reminder_sent_at IS NULL
            """)
            self.index.init_schema(conn)

    # ── Writes ────────────────────────────────────────────────────────────

    def create(self, check_in: CheckIn) -> CheckIn:
        """Insert a new scheduled check-in and index its deadline."""
        check_in.status = CheckInStatus.SCHEDULED
        check_in.created_at = time.time()
        check_in.updated_at = check_in.created_at
        check_in.acknowledged_at = check_in.escalated_at = check_in.cancelled_at = None
        check_in.reminder_sent_at = None
        try:
            with transaction(self._db_path) as conn:
                conn.execute("""
                    INSERT INTO checkins (id, owner_id, title, scheduled_time,
                                          escalation_deadline, status, verification_code,
                                          contacts, created_at, updated_at,
                                          acknowledged_at, escalated_at, cancelled_at,
                                          owner_name, reminder_phone, reminder_sent_at)
                    VALUES (:id, :owner_id, :title, :scheduled_time,
                            :escalation_deadline, :status, :verification_code,
                            :contacts, :created_at, :updated_at,
                            :acknowledged_at, :escalated_at, :cancelled_at,
                            :owner_name, :reminder_phone, :reminder_sent_at)
                """, check_in.to_row())
                self.index.insert(conn, check_in.id, check_in.escalation_deadline)
        except sqlite3.IntegrityError as exc:
            raise AlreadyExistsError(f"Check-in {check_in.id} already exists") from exc
        logger.info("Check-in %s created for owner %s", check_in.id, check_in.owner_id)
        return check_in

    def transition(
        self,
        check_in_id: str,
        expected_status: CheckInStatus | str,
        new_status: CheckInStatus | str,
        timestamp_fields: dict[str, float] | None = None,
    ) -> CheckIn:
        """Move a check-in from ``expected_status`` to ``new_status`` atomically.

        Raises ConflictError (with the actual status) when the record is no
        longer in ``expected_status``; nothing is written in that case.
        Raises NotFoundError for an unknown id.
        """
        expected = CheckInStatus(expected_status)
        new = CheckInStatus(new_status)
        if not can_transition(expected, new):
            raise ValidationError(f"Transition {expected.value} -> {new.value} is not allowed")

        fields = dict(timestamp_fields or {})
        stamp_field = TIMESTAMP_FIELDS[new]
        # each target stamps only its own column
        foreign = set(fields) - {stamp_field}
        if foreign:
            raise ValidationError(
                f"Transition to {new.value} may only set {stamp_field}, got {sorted(foreign)}"
            )
        fields.setdefault(stamp_field, time.time())

        params: dict[str, Any] = dict(fields)
        params.update(
            id=check_in_id,
            expected=expected.value,
            new=new.value,
            updated_at=fields[stamp_field],
        )
        set_clause = ", ".join(f"{k} = :{k}" for k in fields)

        with transaction(self._db_path) as conn:
            cursor = conn.execute(
                f"UPDATE checkins SET status = :new, updated_at = :updated_at, {set_clause} "
                "WHERE id = :id AND status = :expected",
                params,
            )
            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT status FROM checkins WHERE id = ?", (check_in_id,)
                ).fetchone()
                if row is None:
                    raise NotFoundError(f"Check-in {check_in_id} not found")
                raise ConflictError(
                    f"Check-in {check_in_id} is {row['status']}, expected {expected.value}",
                    current_status=row["status"],
                )
            if expected is CheckInStatus.SCHEDULED:
                self.index.remove(conn, check_in_id)
            row = conn.execute("SELECT * FROM checkins WHERE id = ?", (check_in_id,)).fetchone()

        logger.info("Check-in %s: %s -> %s", check_in_id, expected.value, new.value)
        return CheckIn.from_row(dict(row))

    def mark_reminder_sent(self, check_in_id: str, sent_at: float | None = None) -> bool:
        """Claim the owner reminder for sending.

        Conditional on the check-in still being scheduled with no reminder
        sent; returns False when another sweep claimed it first or the
        check-in has been resolved.
        """
        sent_at = time.time() if sent_at is None else sent_at
        with transaction(self._db_path) as conn:
            cursor = conn.execute(
                "UPDATE checkins SET reminder_sent_at = ?, updated_at = ? "
                "WHERE id = ? AND status = ? AND reminder_sent_at IS NULL",
                (sent_at, sent_at, check_in_id, CheckInStatus.SCHEDULED.value),
            )
            return cursor.rowcount == 1

    # ── Reads ─────────────────────────────────────────────────────────────

    def get_by_owner_and_id(self, owner_id: str, check_in_id: str) -> CheckIn:
        with reader(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM checkins WHERE owner_id = ? AND id = ?",
                (owner_id, check_in_id),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Check-in {check_in_id} not found")
        return CheckIn.from_row(dict(row))

    def get_by_id(self, check_in_id: str) -> CheckIn:
        """Identity-less lookup (public verification path), served by the primary key."""
        with reader(self._db_path) as conn:
            row = conn.execute(
                "SELECT * FROM checkins WHERE id = ?", (check_in_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Check-in {check_in_id} not found")
        return CheckIn.from_row(dict(row))

    def list_overdue(self, now_cutoff: float, limit: int | None = None) -> list[CheckIn]:
        """Scheduled check-ins with deadline <= now_cutoff, oldest deadline first."""
        with reader(self._db_path) as conn:
            entries = self.index.overdue(conn, now_cutoff, limit)
            if not entries:
                return []
            ids = [checkin_id for checkin_id, _ in entries]
            placeholders = ", ".join("?" for _ in ids)
            rows = conn.execute(
                f"SELECT * FROM checkins WHERE id IN ({placeholders})", ids
            ).fetchall()
        by_id = {r["id"]: CheckIn.from_row(dict(r)) for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def list_due_reminders(self, now_cutoff: float, limit: int | None = None) -> list[CheckIn]:
        """Scheduled check-ins whose owner reminder is due and not yet sent."""
        sql = (
            "SELECT * FROM checkins "
            "WHERE status = 'scheduled' AND reminder_phone IS NOT NULL "
            "AND reminder_sent_at IS NULL AND scheduled_time <= ? "
            "ORDER BY scheduled_time, id"
        )
        params: tuple = (now_cutoff,)
        if limit:
            sql += " LIMIT ?"
            params = (now_cutoff, limit)
        with reader(self._db_path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [CheckIn.from_row(dict(r)) for r in rows]

    def list_for_owner(
        self,
        owner_id: str,
        status: CheckInStatus | str | None = None,
    ) -> list[CheckIn]:
        with reader(self._db_path) as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM checkins WHERE owner_id = ? AND status = ? "
                    "ORDER BY scheduled_time",
                    (owner_id, CheckInStatus(status).value),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM checkins WHERE owner_id = ? ORDER BY scheduled_time",
                    (owner_id,),
                ).fetchall()
        return [CheckIn.from_row(dict(r)) for r in rows]

    def is_indexed(self, check_in_id: str) -> bool:
        with reader(self._db_path) as conn:
            return self.index.contains(conn, check_in_id)

    def stats(self) -> dict[str, Any]:
        """Counts by status plus current index size."""
        by_status = {s.value: 0 for s in CheckInStatus}
        with reader(self._db_path) as conn:
            for row in conn.execute("SELECT status, COUNT(*) AS n FROM checkins GROUP BY status"):
                by_status[row["status"]] = row["n"]
            indexed = self.index.count(conn)
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "indexed": indexed,
        }

    def close(self) -> None:
        """No-op: connections are created per-call."""
        pass
