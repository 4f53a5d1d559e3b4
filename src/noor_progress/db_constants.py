from __future__ import annotations

from typing import Any

ACTIVITY_TYPES = ("prayer", "quran", "good_deed", "story", "dua", "charity")

PRAYER_NAMES = ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")

GOAL_TYPES = ("prayer_streak", "story_reading", "quran_memorization", "good_deeds", "points")

CLAIM_STATUSES = ("pending", "approved", "denied")

ACTOR_ROLES = ("parent", "child")

ACHIEVEMENT_METRICS = (
    "total_points",
    "current_streak",
    "longest_streak",
    "goals_completed",
    "activities_total",
) + tuple(f"activities.{t}" for t in ACTIVITY_TYPES)

APP_CONFIG_DEFAULTS: dict[str, Any] = {
    "feature.achievements_enabled": True,
    "job.reconcile_enabled": True,
    "job.streak_refresh_enabled": True,
    "streak.qualifying_types": "prayer",
    "goal.apply_after_deadline": False,
}

JOB_CONFIG_KEYS = {
    "reconcile": "job.reconcile_enabled",
    "streak_refresh": "job.streak_refresh_enabled",
}

# Used when no catalog file is configured.
DEFAULT_ACHIEVEMENT_CATALOG: list[dict[str, Any]] = [
    {
        "key": "first_prayer",
        "name": "First Prayer",
        "description": "Log your very first prayer",
        "category": "prayer",
        "difficulty_level": 1,
        "requirement": {"metric": "activities.prayer", "value": 1},
    },
    {
        "key": "first_story",
        "name": "Story Seeker",
        "description": "Finish your first story",
        "category": "learning",
        "difficulty_level": 1,
        "requirement": {"metric": "activities.story", "value": 1},
    },
    {
        "key": "points_100",
        "name": "Rising Star",
        "description": "Collect 100 points",
        "category": "points",
        "difficulty_level": 2,
        "requirement": {"metric": "total_points", "value": 100},
    },
    {
        "key": "week_warrior",
        "name": "Week Warrior",
        "description": "Keep a 7 day prayer streak",
        "category": "streak",
        "difficulty_level": 2,
        "requirement": {"metric": "longest_streak", "value": 7},
    },
    {
        "key": "goal_getter",
        "name": "Goal Getter",
        "description": "Complete your first goal",
        "category": "goals",
        "difficulty_level": 2,
        "requirement": {"metric": "goals_completed", "value": 1},
    },
    {
        "key": "prayer_warrior",
        "name": "Prayer Warrior",
        "description": "Log 100 prayers",
        "category": "prayer",
        "difficulty_level": 3,
        "requirement": {"metric": "activities.prayer", "value": 100},
    },
    {
        "key": "month_of_devotion",
        "name": "Month of Devotion",
        "description": "Keep a 30 day prayer streak",
        "category": "streak",
        "difficulty_level": 4,
        "requirement": {"metric": "longest_streak", "value": 30},
    },
]
