from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Protocol

from noor_progress.db_converters import _row_to_activity
from noor_progress.db_models import Activity
from noor_progress.errors import NotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self) -> AbstractContextManager[sqlite3.Connection]: ...


class LedgerMixin:
    def append_activity(
        self: DbProtocol,
        child_id: int,
        activity_type: str,
        points_value: int,
        occurred_at: datetime,
        dedup_key: str,
        recorded_at: datetime,
        name: str | None = None,
    ) -> Activity | None:
        """Append a fact and credit its points in one transaction.

        Returns ``None`` when the child already has an activity with this
        dedup key; nothing is written in that case.
        """
        with self._transaction() as conn:
            exists = conn.execute("SELECT 1 FROM children WHERE id = ?", (child_id,)).fetchone()
            if exists is None:
                raise NotFound(f"child {child_id} not found")
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO activities(
                    child_id, activity_type, name, points_value, occurred_at, dedup_key, recorded_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    child_id,
                    activity_type,
                    name,
                    points_value,
                    occurred_at.isoformat(),
                    dedup_key,
                    recorded_at.isoformat(),
                ),
            )
            if cur.rowcount == 0:
                return None
            conn.execute(
                "UPDATE children SET total_points = total_points + ? WHERE id = ?",
                (points_value, child_id),
            )
            row = conn.execute("SELECT * FROM activities WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_activity(row)

    def get_activity_by_dedup_key(self: DbProtocol, child_id: int, dedup_key: str) -> Activity | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM activities WHERE child_id = ? AND dedup_key = ?",
                (child_id, dedup_key),
            ).fetchone()
        return _row_to_activity(row) if row else None

    def list_activities(
        self: DbProtocol,
        child_id: int,
        types: tuple[str, ...] | None = None,
    ) -> list[Activity]:
        conditions = ["child_id = ?"]
        params: list[Any] = [child_id]
        if types:
            conditions.append(f"activity_type IN ({', '.join('?' for _ in types)})")
            params.extend(types)
        query = f"SELECT * FROM activities WHERE {' AND '.join(conditions)} ORDER BY occurred_at ASC, id ASC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_activity(r) for r in rows]

    def count_activities_by_type(self: DbProtocol, child_id: int) -> dict[str, int]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT activity_type, COUNT(*) AS c
                FROM activities
                WHERE child_id = ?
                GROUP BY activity_type
                """,
                (child_id,),
            ).fetchall()
        return {str(r["activity_type"]): int(r["c"]) for r in rows}

    def balance_components(self: DbProtocol, child_id: int) -> dict[str, int]:
        """Stored balance and the ledger figures it must equal, read in one transaction."""
        with self._transaction() as conn:
            child = conn.execute("SELECT total_points FROM children WHERE id = ?", (child_id,)).fetchone()
            if child is None:
                raise NotFound(f"child {child_id} not found")
            activity = conn.execute(
                "SELECT COALESCE(SUM(points_value), 0) AS total FROM activities WHERE child_id = ?",
                (child_id,),
            ).fetchone()
            goals = conn.execute(
                """
                SELECT COALESCE(SUM(reward_points), 0) AS total
                FROM goals
                WHERE child_id = ? AND completed_at IS NOT NULL
                """,
                (child_id,),
            ).fetchone()
            claims = conn.execute(
                """
                SELECT COALESCE(SUM(points_spent), 0) AS total
                FROM reward_claims
                WHERE child_id = ? AND status = 'approved'
                """,
                (child_id,),
            ).fetchone()
        return {
            "stored": int(child["total_points"]),
            "activity_points": int(activity["total"]),
            "goal_rewards": int(goals["total"]),
            "claims_spent": int(claims["total"]),
        }
