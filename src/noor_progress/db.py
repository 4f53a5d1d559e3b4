from __future__ import annotations

from noor_progress.db_models import (
    AchievementDefinition,
    Activity,
    Child,
    ChildAchievement,
    Goal,
    GoalUpdate,
    Reward,
    RewardClaim,
    StreakState,
)
from noor_progress.db_repo import (
    AchievementMixin,
    BaseDatabase,
    ChildMixin,
    GoalMixin,
    LedgerMixin,
    RewardMixin,
    SystemMixin,
)

__all__ = [
    "Database",
    "AchievementDefinition",
    "Activity",
    "Child",
    "ChildAchievement",
    "Goal",
    "GoalUpdate",
    "Reward",
    "RewardClaim",
    "StreakState",
]


class Database(
    ChildMixin,
    LedgerMixin,
    GoalMixin,
    AchievementMixin,
    RewardMixin,
    SystemMixin,
    BaseDatabase,
):
    pass
