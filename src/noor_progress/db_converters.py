from __future__ import annotations

import sqlite3
from datetime import date, datetime

from noor_progress.db_models import (
    AchievementDefinition,
    Activity,
    Child,
    ChildAchievement,
    Goal,
    Reward,
    RewardClaim,
    StreakState,
)


def _dt_or_none(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_child(row: sqlite3.Row) -> Child:
    return Child(
        id=int(row["id"]),
        family_id=int(row["family_id"]),
        name=row["name"],
        timezone=row["timezone"],
        islamic_level=int(row["islamic_level"] or 1),
        total_points=int(row["total_points"]),
        current_streak=int(row["current_streak"]),
        longest_streak=int(row["longest_streak"]),
        streak_updated_at=_dt_or_none(row["streak_updated_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_streak(row: sqlite3.Row) -> StreakState:
    return StreakState(
        child_id=int(row["id"]),
        current_streak=int(row["current_streak"]),
        longest_streak=int(row["longest_streak"]),
        updated_at=_dt_or_none(row["streak_updated_at"]),
    )


def _row_to_activity(row: sqlite3.Row) -> Activity:
    return Activity(
        id=int(row["id"]),
        child_id=int(row["child_id"]),
        activity_type=row["activity_type"],
        name=row["name"],
        points_value=int(row["points_value"]),
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
        dedup_key=row["dedup_key"],
        recorded_at=datetime.fromisoformat(row["recorded_at"]),
    )


def _row_to_goal(row: sqlite3.Row) -> Goal:
    return Goal(
        id=int(row["id"]),
        child_id=int(row["child_id"]),
        goal_type=row["goal_type"],
        title=row["title"],
        target_value=int(row["target_value"]),
        current_value=int(row["current_value"]),
        reward_points=int(row["reward_points"]),
        deadline=date.fromisoformat(row["deadline"]) if row["deadline"] else None,
        completed_at=_dt_or_none(row["completed_at"]),
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_definition(row: sqlite3.Row) -> AchievementDefinition:
    return AchievementDefinition(
        id=int(row["id"]),
        key=row["key"],
        name=row["name"],
        description=row["description"] or "",
        category=row["category"] or "general",
        difficulty_level=int(row["difficulty_level"]),
        metric=row["metric"],
        target_value=int(row["target_value"]),
    )


def _row_to_child_achievement(row: sqlite3.Row) -> ChildAchievement:
    return ChildAchievement(
        id=int(row["id"]),
        child_id=int(row["child_id"]),
        definition_id=int(row["definition_id"]),
        progress_percentage=int(row["progress_percentage"]),
        earned_at=_dt_or_none(row["earned_at"]),
        celebration_viewed=bool(row["celebration_viewed"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_reward(row: sqlite3.Row) -> Reward:
    return Reward(
        id=int(row["id"]),
        family_id=int(row["family_id"]),
        name=row["name"],
        points_required=int(row["points_required"]),
        category=row["category"],
        is_active=bool(row["is_active"]),
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_claim(row: sqlite3.Row) -> RewardClaim:
    return RewardClaim(
        id=int(row["id"]),
        child_id=int(row["child_id"]),
        reward_id=int(row["reward_id"]),
        status=row["status"],
        claimed_at=datetime.fromisoformat(row["claimed_at"]),
        decided_at=_dt_or_none(row["decided_at"]),
        approved_at=_dt_or_none(row["approved_at"]),
        decided_by=row["decided_by"],
        points_spent=int(row["points_spent"]) if row["points_spent"] is not None else None,
        notes=row["notes"],
    )
