from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Protocol

from noor_progress.db_converters import _row_to_goal
from noor_progress.db_models import Goal, GoalUpdate
from noor_progress.errors import InvalidTransition, NotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _transaction(self) -> AbstractContextManager[sqlite3.Connection]: ...


def _complete_if_reached(conn: sqlite3.Connection, goal_id: int, now: datetime) -> int:
    """Compare-and-set ``completed_at`` and credit the reward in the caller's transaction.

    Returns the points credited, zero when the goal was not reached or was
    already completed by someone else.
    """
    cur = conn.execute(
        """
        UPDATE goals
        SET completed_at = ?, updated_at = ?
        WHERE id = ? AND completed_at IS NULL AND current_value >= target_value
        """,
        (now.isoformat(), now.isoformat(), goal_id),
    )
    if cur.rowcount == 0:
        return 0
    row = conn.execute("SELECT child_id, reward_points FROM goals WHERE id = ?", (goal_id,)).fetchone()
    reward = int(row["reward_points"])
    conn.execute(
        "UPDATE children SET total_points = total_points + ? WHERE id = ?",
        (reward, row["child_id"]),
    )
    return reward


class GoalMixin:
    def create_goal(
        self: DbProtocol,
        child_id: int,
        goal_type: str,
        title: str,
        target_value: int,
        reward_points: int,
        created_at: datetime,
        deadline: date | None = None,
        created_by: str | None = None,
    ) -> Goal:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO goals(
                    child_id, goal_type, title, target_value, current_value, reward_points,
                    deadline, completed_at, created_by, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, 0, ?, ?, NULL, ?, ?, ?)
                """,
                (
                    child_id,
                    goal_type,
                    title,
                    target_value,
                    reward_points,
                    deadline.isoformat() if deadline else None,
                    created_by,
                    created_at.isoformat(),
                    created_at.isoformat(),
                ),
            )
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_goal(row)

    def get_goal(self: DbProtocol, goal_id: int) -> Goal:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
        if row is None:
            raise NotFound(f"goal {goal_id} not found")
        return _row_to_goal(row)

    def list_goals(self: DbProtocol, child_id: int, active_only: bool = False) -> list[Goal]:
        with self._connect() as conn:
            if active_only:
                rows = conn.execute(
                    "SELECT * FROM goals WHERE child_id = ? AND completed_at IS NULL ORDER BY id ASC",
                    (child_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM goals WHERE child_id = ? ORDER BY id ASC",
                    (child_id,),
                ).fetchall()
        return [_row_to_goal(r) for r in rows]

    def count_completed_goals(self: DbProtocol, child_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS c FROM goals WHERE child_id = ? AND completed_at IS NOT NULL",
                (child_id,),
            ).fetchone()
        return int(row["c"]) if row else 0

    def advance_goal(self: DbProtocol, goal_id: int, mark_key: str, amount: int, now: datetime) -> GoalUpdate | None:
        """Apply one progress credit identified by ``mark_key``.

        A mark is applied at most once per goal, so redelivering the same
        activity is a no-op. Returns ``None`` when nothing changed.
        """
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
            if row is None:
                raise NotFound(f"goal {goal_id} not found")
            before = _row_to_goal(row)
            if before.completed_at is not None:
                return None
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO goal_progress_marks(goal_id, mark_key, amount, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (goal_id, mark_key, amount, now.isoformat()),
            )
            if cur.rowcount == 0:
                return None
            conn.execute(
                """
                UPDATE goals
                SET current_value = MIN(target_value, current_value + ?), updated_at = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (amount, now.isoformat(), goal_id),
            )
            credited = _complete_if_reached(conn, goal_id, now)
            after = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
        assert after is not None
        return GoalUpdate(
            goal=_row_to_goal(after),
            previous_value=before.current_value,
            completed_now=after["completed_at"] is not None,
            credited_points=credited,
        )

    def set_goal_value(
        self: DbProtocol,
        goal_id: int,
        now: datetime,
        value: int | None = None,
        delta: int | None = None,
    ) -> GoalUpdate:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
            if row is None:
                raise NotFound(f"goal {goal_id} not found")
            before = _row_to_goal(row)
            if value is None:
                value = before.current_value + (delta or 0)
            if before.completed_at is not None:
                raise InvalidTransition(f"goal {goal_id} is already completed")
            if value < before.current_value:
                raise InvalidTransition(
                    f"goal {goal_id} progress cannot decrease ({before.current_value} -> {value})"
                )
            conn.execute(
                """
                UPDATE goals
                SET current_value = MIN(target_value, ?), updated_at = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (value, now.isoformat(), goal_id),
            )
            credited = _complete_if_reached(conn, goal_id, now)
            after = conn.execute("SELECT * FROM goals WHERE id = ?", (goal_id,)).fetchone()
        assert after is not None
        return GoalUpdate(
            goal=_row_to_goal(after),
            previous_value=before.current_value,
            completed_now=after["completed_at"] is not None,
            credited_points=credited,
        )
