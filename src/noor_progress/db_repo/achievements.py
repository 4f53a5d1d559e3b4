from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Protocol

from noor_progress.db_converters import _row_to_child_achievement, _row_to_definition
from noor_progress.db_models import AchievementDefinition, ChildAchievement
from noor_progress.errors import NotFound


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...


class AchievementMixin:
    def sync_achievement_definitions(self: DbProtocol, definitions: list[dict[str, Any]]) -> int:
        """Upsert catalog entries by key. Definitions are never deleted, earned rows keep pointing at them."""
        with self._connect() as conn:
            for item in definitions:
                conn.execute(
                    """
                    INSERT INTO achievement_definitions(
                        key, name, description, category, difficulty_level, metric, target_value
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        name=excluded.name,
                        description=excluded.description,
                        category=excluded.category,
                        difficulty_level=excluded.difficulty_level,
                        metric=excluded.metric,
                        target_value=excluded.target_value
                    """,
                    (
                        item["key"],
                        item["name"],
                        item.get("description", ""),
                        item.get("category", "general"),
                        int(item.get("difficulty_level", 1)),
                        item["metric"],
                        int(item["target_value"]),
                    ),
                )
        return len(definitions)

    def list_achievement_definitions(self: DbProtocol) -> list[AchievementDefinition]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM achievement_definitions ORDER BY id ASC").fetchall()
        return [_row_to_definition(r) for r in rows]

    def get_child_achievement(self: DbProtocol, achievement_id: int) -> ChildAchievement:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM child_achievements WHERE id = ?", (achievement_id,)).fetchone()
        if row is None:
            raise NotFound(f"achievement {achievement_id} not found")
        return _row_to_child_achievement(row)

    def list_child_achievements(self: DbProtocol, child_id: int) -> list[ChildAchievement]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM child_achievements WHERE child_id = ? ORDER BY definition_id ASC",
                (child_id,),
            ).fetchall()
        return [_row_to_child_achievement(r) for r in rows]

    def record_achievement_progress(
        self: DbProtocol,
        child_id: int,
        definition_id: int,
        progress_percentage: int,
        now: datetime,
    ) -> ChildAchievement:
        pct = max(0, min(100, int(progress_percentage)))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO child_achievements(child_id, definition_id, progress_percentage, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(child_id, definition_id) DO UPDATE SET
                    progress_percentage=excluded.progress_percentage,
                    updated_at=excluded.updated_at
                WHERE child_achievements.earned_at IS NULL
                """,
                (child_id, definition_id, pct, now.isoformat()),
            )
            row = conn.execute(
                "SELECT * FROM child_achievements WHERE child_id = ? AND definition_id = ?",
                (child_id, definition_id),
            ).fetchone()
        assert row is not None
        return _row_to_child_achievement(row)

    def mark_achievement_earned(self: DbProtocol, achievement_id: int, now: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE child_achievements
                SET earned_at = ?, progress_percentage = 100, celebration_viewed = 0, updated_at = ?
                WHERE id = ? AND earned_at IS NULL
                """,
                (now.isoformat(), now.isoformat(), achievement_id),
            )
        return cur.rowcount > 0

    def mark_celebration_viewed(self: DbProtocol, achievement_id: int, now: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE child_achievements
                SET celebration_viewed = 1, updated_at = ?
                WHERE id = ? AND earned_at IS NOT NULL AND celebration_viewed = 0
                """,
                (now.isoformat(), achievement_id),
            )
        return cur.rowcount > 0
