from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Protocol

from noor_progress.db_converters import _row_to_child, _row_to_streak
from noor_progress.db_models import Child, StreakState
from noor_progress.errors import NotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class ChildMixin:
    def create_child(
        self: DbProtocol,
        family_id: int,
        name: str,
        timezone: str | None,
        created_at: datetime,
        islamic_level: int = 1,
    ) -> Child:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO children(family_id, name, timezone, islamic_level, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (family_id, name, timezone, max(1, int(islamic_level)), created_at.isoformat()),
            )
            row = conn.execute("SELECT * FROM children WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_child(row)

    def get_child(self: DbProtocol, child_id: int) -> Child:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM children WHERE id = ?", (child_id,)).fetchone()
        if row is None:
            raise NotFound(f"child {child_id} not found")
        return _row_to_child(row)

    def list_children(self: DbProtocol, family_id: int | None = None) -> list[Child]:
        with self._connect() as conn:
            if family_id is None:
                rows = conn.execute("SELECT * FROM children ORDER BY id ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM children WHERE family_id = ? ORDER BY id ASC",
                    (family_id,),
                ).fetchall()
        return [_row_to_child(r) for r in rows]

    def store_streak(self: DbProtocol, child_id: int, current: int, longest: int, now: datetime) -> StreakState:
        """Overwrite the current streak and raise the longest streak, never lowering it."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE children
                SET current_streak = ?,
                    longest_streak = MAX(longest_streak, ?, ?),
                    streak_updated_at = ?
                WHERE id = ?
                """,
                (current, longest, current, now.isoformat(), child_id),
            )
            if cur.rowcount == 0:
                raise NotFound(f"child {child_id} not found")
            row = conn.execute(
                "SELECT id, current_streak, longest_streak, streak_updated_at FROM children WHERE id = ?",
                (child_id,),
            ).fetchone()
        assert row is not None
        return _row_to_streak(row)
