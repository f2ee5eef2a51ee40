"""Deadline-ordered index over check-ins currently in the "scheduled" state.

The escalation sweep reads overdue entries from here instead of scanning the
check-in table, so a sweep costs O(overdue) rather than O(all check-ins).

Every method takes the caller's open connection: membership changes must
commit in the same transaction as the status write they mirror.
"""

from __future__ import annotations

import sqlite3

TABLE = "scheduled_index"


class StatusIndex:
    """Secondary index keyed by escalation deadline, scheduled records only."""

    def init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {TABLE} (
                checkin_id  TEXT PRIMARY KEY,
                deadline    REAL NOT NULL
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{TABLE}_deadline
            ON {TABLE} (deadline, checkin_id)
        """)

    def insert(self, conn: sqlite3.Connection, checkin_id: str, deadline: float) -> None:
        conn.execute(
            f"INSERT INTO {TABLE} (checkin_id, deadline) VALUES (?, ?)",
            (checkin_id, deadline),
        )

    def remove(self, conn: sqlite3.Connection, checkin_id: str) -> bool:
        cursor = conn.execute(f"DELETE FROM {TABLE} WHERE checkin_id = ?", (checkin_id,))
        return cursor.rowcount > 0

    def overdue(
        self,
        conn: sqlite3.Connection,
        cutoff: float,
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        """Entries with deadline <= cutoff, oldest deadline first."""
        sql = (
            f"SELECT checkin_id, deadline FROM {TABLE} "
            "WHERE deadline <= ? ORDER BY deadline, checkin_id"
        )
        params: tuple = (cutoff,)
        if limit:
            sql += " LIMIT ?"
            params = (cutoff, limit)
        rows = conn.execute(sql, params).fetchall()
        return [(r["checkin_id"], r["deadline"]) for r in rows]

    def contains(self, conn: sqlite3.Connection, checkin_id: str) -> bool:
        row = conn.execute(
            f"SELECT 1 FROM {TABLE} WHERE checkin_id = ?", (checkin_id,)
        ).fetchone()
        return row is not None

    def count(self, conn: sqlite3.Connection) -> int:
        return conn.execute(f"SELECT COUNT(*) FROM {TABLE}").fetchone()[0]
