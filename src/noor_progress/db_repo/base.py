from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

BUSY_TIMEOUT_SECONDS = 30.0


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the first statement.

        Everything executed inside commits together or not at all; an
        exception raised in the block rolls the whole unit back.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE children (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        family_id INTEGER NOT NULL,
                        name TEXT NOT NULL,
                        timezone TEXT,
                        islamic_level INTEGER NOT NULL DEFAULT 1,
                        total_points INTEGER NOT NULL DEFAULT 0 CHECK(total_points >= 0),
                        current_streak INTEGER NOT NULL DEFAULT 0 CHECK(current_streak >= 0),
                        longest_streak INTEGER NOT NULL DEFAULT 0 CHECK(longest_streak >= 0),
                        streak_updated_at TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_children_family ON children(family_id);

                    CREATE TABLE activities (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        child_id INTEGER NOT NULL REFERENCES children(id),
                        activity_type TEXT NOT NULL,
                        name TEXT,
                        points_value INTEGER NOT NULL CHECK(points_value >= 0),
                        occurred_at TEXT NOT NULL,
                        dedup_key TEXT NOT NULL,
                        recorded_at TEXT NOT NULL,
                        UNIQUE(child_id, dedup_key)
                    );

                    CREATE INDEX idx_activities_child_type ON activities(child_id, activity_type);
                """,
                2: """
                    CREATE TABLE goals (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        child_id INTEGER NOT NULL REFERENCES children(id),
                        goal_type TEXT NOT NULL,
                        title TEXT NOT NULL,
                        target_value INTEGER NOT NULL CHECK(target_value > 0),
                        current_value INTEGER NOT NULL DEFAULT 0,
                        reward_points INTEGER NOT NULL DEFAULT 0 CHECK(reward_points >= 0),
                        deadline TEXT,
                        completed_at TEXT,
                        created_by TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        CHECK(current_value >= 0 AND current_value <= target_value)
                    );

                    CREATE INDEX idx_goals_child ON goals(child_id, completed_at);

                    CREATE TABLE goal_progress_marks (
                        goal_id INTEGER NOT NULL REFERENCES goals(id),
                        mark_key TEXT NOT NULL,
                        amount INTEGER NOT NULL,
                        created_at TEXT NOT NULL,
                        PRIMARY KEY(goal_id, mark_key)
                    );
                """,
                3: """
                    CREATE TABLE achievement_definitions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        key TEXT NOT NULL UNIQUE,
                        name TEXT NOT NULL,
                        description TEXT,
                        category TEXT,
                        difficulty_level INTEGER NOT NULL DEFAULT 1,
                        metric TEXT NOT NULL,
                        target_value INTEGER NOT NULL CHECK(target_value > 0)
                    );

                    CREATE TABLE child_achievements (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        child_id INTEGER NOT NULL REFERENCES children(id),
                        definition_id INTEGER NOT NULL REFERENCES achievement_definitions(id),
                        progress_percentage INTEGER NOT NULL DEFAULT 0
                            CHECK(progress_percentage BETWEEN 0 AND 100),
                        earned_at TEXT,
                        celebration_viewed INTEGER NOT NULL DEFAULT 0,
                        updated_at TEXT NOT NULL,
                        UNIQUE(child_id, definition_id)
                    );
                """,
                4: """
                    CREATE TABLE rewards (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        family_id INTEGER NOT NULL,
                        name TEXT NOT NULL,
                        points_required INTEGER NOT NULL CHECK(points_required > 0),
                        category TEXT,
                        is_active INTEGER NOT NULL DEFAULT 1,
                        created_by TEXT,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE reward_claims (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        child_id INTEGER NOT NULL REFERENCES children(id),
                        reward_id INTEGER NOT NULL REFERENCES rewards(id),
                        status TEXT NOT NULL DEFAULT 'pending'
                            CHECK(status IN ('pending', 'approved', 'denied')),
                        claimed_at TEXT NOT NULL,
                        decided_at TEXT,
                        approved_at TEXT,
                        decided_by TEXT,
                        points_spent INTEGER,
                        notes TEXT
                    );

                    CREATE INDEX idx_reward_claims_child_status ON reward_claims(child_id, status);
                """,
                5: """
                    CREATE TABLE IF NOT EXISTS app_config (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        updated_by TEXT
                    );

                    CREATE TABLE IF NOT EXISTS admin_audit_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        actor TEXT,
                        action TEXT NOT NULL,
                        target TEXT NOT NULL,
                        payload_json TEXT,
                        created_at TEXT NOT NULL
                    );
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )
