from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from noor_progress.db import AchievementDefinition, ChildAchievement, Database
from noor_progress.db_constants import ACHIEVEMENT_METRICS, ACTIVITY_TYPES, DEFAULT_ACHIEVEMENT_CATALOG
from noor_progress.errors import InvalidTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewlyEarned:
    achievement: ChildAchievement
    definition: AchievementDefinition


def _normalize_entry(item: Any) -> dict[str, Any] | None:
    if not isinstance(item, dict):
        return None
    key = str(item.get("key", "")).strip()
    name = str(item.get("name", "")).strip()
    requirement = item.get("requirement")
    if not key or not name or not isinstance(requirement, dict):
        return None
    metric = str(requirement.get("metric", "")).strip()
    if metric not in ACHIEVEMENT_METRICS:
        return None
    try:
        target = int(requirement.get("value", 0))
        difficulty = int(item.get("difficulty_level", 1))
    except (TypeError, ValueError):
        return None
    if target <= 0:
        return None
    return {
        "key": key,
        "name": name,
        "description": str(item.get("description", "")).strip(),
        "category": str(item.get("category", "general")).strip() or "general",
        "difficulty_level": max(1, difficulty),
        "metric": metric,
        "target_value": target,
    }


def load_catalog(path: Path | None) -> list[dict[str, Any]]:
    """Read achievement definitions from a YAML file.

    Falls back to the built-in catalog when the file is missing. Entries
    with an unknown metric or a non-positive target are skipped.
    """
    raw_items: Any
    if path is None or not path.exists():
        raw_items = DEFAULT_ACHIEVEMENT_CATALOG
    else:
        raw = yaml.safe_load(path.read_text()) or {}
        raw_items = raw.get("achievements", []) if isinstance(raw, dict) else raw

    entries: list[dict[str, Any]] = []
    for item in raw_items if isinstance(raw_items, list) else []:
        entry = _normalize_entry(item)
        if entry is None:
            logger.warning("achievement catalog: skipping invalid entry %r", item)
            continue
        entries.append(entry)
    return entries


def ensure_catalog(db: Database, path: Path | None = None) -> list[AchievementDefinition]:
    definitions = db.list_achievement_definitions()
    if definitions and path is None:
        return definitions
    db.sync_achievement_definitions(load_catalog(path))
    return db.list_achievement_definitions()


def aggregate_stats(db: Database, child_id: int) -> dict[str, int]:
    child = db.get_child(child_id)
    by_type = db.count_activities_by_type(child_id)
    stats = {
        "total_points": child.total_points,
        "current_streak": child.current_streak,
        "longest_streak": child.longest_streak,
        "goals_completed": db.count_completed_goals(child_id),
        "activities_total": sum(by_type.values()),
    }
    for activity_type in ACTIVITY_TYPES:
        stats[f"activities.{activity_type}"] = by_type.get(activity_type, 0)
    return stats


def progress_percentage(definition: AchievementDefinition, stats: dict[str, int]) -> int:
    current = max(0, stats.get(definition.metric, 0))
    return min(100, (current * 100) // definition.target_value)


def strictness_key(definition: AchievementDefinition) -> tuple[int, int, int]:
    return definition.difficulty_level, definition.target_value, definition.id


def evaluate(db: Database, child_id: int, now: datetime) -> list[NewlyEarned]:
    """Refresh progress for every unearned achievement and earn the satisfied ones.

    An achievement is returned only by the call whose compare-and-set on
    ``earned_at`` succeeded, so re-running never re-emits it.
    """
    if not db.is_feature_enabled("achievements"):
        return []
    definitions = ensure_catalog(db)
    stats = aggregate_stats(db, child_id)
    newly: list[NewlyEarned] = []
    for definition in definitions:
        pct = progress_percentage(definition, stats)
        record = db.record_achievement_progress(child_id, definition.id, pct, now)
        if record.earned_at is not None or pct < 100:
            continue
        if db.mark_achievement_earned(record.id, now):
            logger.info("achievement earned child=%s key=%s", child_id, definition.key)
            newly.append(NewlyEarned(achievement=db.get_child_achievement(record.id), definition=definition))
    newly.sort(key=lambda item: strictness_key(item.definition))
    return newly


def acknowledge(db: Database, achievement_id: int, now: datetime) -> ChildAchievement:
    """Flip ``celebration_viewed`` once. A second acknowledgement is a terminal-state error."""
    achievement = db.get_child_achievement(achievement_id)
    if achievement.earned_at is None:
        raise InvalidTransition(f"achievement {achievement_id} has not been earned")
    if not db.mark_celebration_viewed(achievement_id, now):
        raise InvalidTransition(f"achievement {achievement_id} was already acknowledged")
    logger.info("achievement acknowledged child=%s id=%s", achievement.child_id, achievement_id)
    return db.get_child_achievement(achievement_id)
