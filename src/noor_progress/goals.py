from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from noor_progress.db import Activity, Database, Goal, GoalUpdate
from noor_progress.db_constants import ACTIVITY_TYPES, GOAL_TYPES
from noor_progress.errors import InvalidTransition, NotFound, TimezoneUnresolved
from noor_progress.time_utils import local_day

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoalRule:
    activity_types: tuple[str, ...]
    per_day: bool = False
    use_points: bool = False


GOAL_RULES: dict[str, GoalRule] = {
    "prayer_streak": GoalRule(activity_types=("prayer",), per_day=True),
    "story_reading": GoalRule(activity_types=("story",)),
    "quran_memorization": GoalRule(activity_types=("quran",)),
    "good_deeds": GoalRule(activity_types=("good_deed", "charity")),
    "points": GoalRule(activity_types=ACTIVITY_TYPES, use_points=True),
}


def goal_status(goal: Goal, today: date) -> str:
    if goal.completed_at is not None:
        return "completed"
    if goal.deadline is not None and today > goal.deadline:
        return "expired"
    return "active"


def progress_credit(
    goal: Goal,
    activity: Activity,
    tz_name: str | None,
    apply_after_deadline: bool = False,
) -> tuple[str, int] | None:
    """The ``(mark_key, amount)`` an activity contributes to a goal, if any.

    Per-day rules key the mark by the child-local day so several prayers on
    one day count once; other rules key it by the activity dedup key.
    """
    rule = GOAL_RULES.get(goal.goal_type)
    if rule is None or activity.activity_type not in rule.activity_types:
        return None
    amount = activity.points_value if rule.use_points else 1
    if amount <= 0:
        return None

    day: date | None = None
    if rule.per_day or (goal.deadline is not None and not apply_after_deadline):
        try:
            day = local_day(activity.occurred_at, tz_name)
        except TimezoneUnresolved:
            logger.warning("goal %s: activity %s has no resolvable day, not counted", goal.id, activity.id)
            return None
    if day is not None and goal.deadline is not None and not apply_after_deadline and day > goal.deadline:
        return None

    if rule.per_day:
        assert day is not None
        return f"day:{day.isoformat()}", amount
    return f"activity:{activity.dedup_key}", amount


def apply_activity(db: Database, child_id: int, activity: Activity, now: datetime) -> list[GoalUpdate]:
    child = db.get_child(child_id)
    after_deadline = bool(db.get_app_config_value("goal.apply_after_deadline"))
    updates: list[GoalUpdate] = []
    for goal in db.list_goals(child_id, active_only=True):
        credit = progress_credit(goal, activity, child.timezone, apply_after_deadline=after_deadline)
        if credit is None:
            continue
        mark_key, amount = credit
        update = db.advance_goal(goal.id, mark_key, amount, now)
        if update is None:
            continue
        if update.completed_now:
            logger.info(
                "goal completed child=%s goal=%s reward=%s",
                child_id,
                goal.id,
                update.credited_points,
            )
        updates.append(update)
    return updates


def create_goal(
    db: Database,
    child_id: int,
    goal_type: str,
    title: str,
    target_value: int,
    reward_points: int,
    now: datetime,
    deadline: date | None = None,
    created_by: str | None = None,
) -> Goal:
    if goal_type not in GOAL_TYPES:
        raise ValueError(f"unknown goal type {goal_type!r}")
    if target_value <= 0:
        raise ValueError("target_value must be positive")
    if reward_points < 0:
        raise ValueError("reward_points must not be negative")
    db.get_child(child_id)
    return db.create_goal(
        child_id=child_id,
        goal_type=goal_type,
        title=title.strip() or goal_type,
        target_value=int(target_value),
        reward_points=int(reward_points),
        created_at=now,
        deadline=deadline,
        created_by=created_by,
    )


def update_goal(
    db: Database,
    child_id: int,
    goal_id: int,
    now: datetime,
    delta: int | None = None,
    explicit_value: int | None = None,
) -> GoalUpdate:
    """Parent correction of a goal's progress.

    Exactly one of ``delta`` or ``explicit_value`` is given. Progress never
    goes down; reaching the target completes the goal and credits its reward
    once.
    """
    if (delta is None) == (explicit_value is None):
        raise ValueError("pass exactly one of delta or explicit_value")
    goal = db.get_goal(goal_id)
    if goal.child_id != child_id:
        raise NotFound(f"goal {goal_id} not found for child {child_id}")
    if goal.completed_at is not None:
        raise InvalidTransition(f"goal {goal_id} is already completed")

    if delta is not None and delta < 0:
        raise InvalidTransition("goal progress cannot decrease")

    update = db.set_goal_value(goal_id, now, value=explicit_value, delta=delta)
    if update.completed_now:
        logger.info("goal completed by correction child=%s goal=%s reward=%s", child_id, goal_id, update.credited_points)
    return update
