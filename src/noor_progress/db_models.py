from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(frozen=True)
class Child:
    id: int
    family_id: int
    name: str
    timezone: str | None
    islamic_level: int
    total_points: int
    current_streak: int
    longest_streak: int
    streak_updated_at: datetime | None
    created_at: datetime


@dataclass(frozen=True)
class Activity:
    id: int
    child_id: int
    activity_type: str
    name: str | None
    points_value: int
    occurred_at: datetime
    dedup_key: str
    recorded_at: datetime


@dataclass(frozen=True)
class Goal:
    id: int
    child_id: int
    goal_type: str
    title: str
    target_value: int
    current_value: int
    reward_points: int
    deadline: date | None
    completed_at: datetime | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class AchievementDefinition:
    id: int
    key: str
    name: str
    description: str
    category: str
    difficulty_level: int
    metric: str
    target_value: int


@dataclass(frozen=True)
class ChildAchievement:
    id: int
    child_id: int
    definition_id: int
    progress_percentage: int
    earned_at: datetime | None
    celebration_viewed: bool
    updated_at: datetime


@dataclass(frozen=True)
class Reward:
    id: int
    family_id: int
    name: str
    points_required: int
    category: str | None
    is_active: bool
    created_by: str | None
    created_at: datetime


@dataclass(frozen=True)
class RewardClaim:
    id: int
    child_id: int
    reward_id: int
    status: str
    claimed_at: datetime
    decided_at: datetime | None
    approved_at: datetime | None
    decided_by: str | None
    points_spent: int | None
    notes: str | None


@dataclass(frozen=True)
class StreakState:
    child_id: int
    current_streak: int
    longest_streak: int
    updated_at: datetime | None


@dataclass(frozen=True)
class GoalUpdate:
    goal: Goal
    previous_value: int
    completed_now: bool
    credited_points: int
