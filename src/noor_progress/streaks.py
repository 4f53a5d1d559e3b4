from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from noor_progress.db import Activity, Database, StreakState
from noor_progress.errors import TimezoneUnresolved
from noor_progress.time_utils import last_n_days, local_day, local_today

logger = logging.getLogger(__name__)

STREAK_MILESTONES = (7, 14, 30, 50, 100)

STREAK_LEVELS = (
    (100, "Legendary"),
    (50, "Master"),
    (30, "Expert"),
    (14, "Dedicated"),
    (7, "Committed"),
    (0, "Beginner"),
)


@dataclass(frozen=True)
class StreakResult:
    current: int
    longest: int


@dataclass(frozen=True)
class DayPlacement:
    counts: dict[date, int]
    unresolved: int


@dataclass(frozen=True)
class DayProgress:
    day: date
    completed: bool
    activities: int


def place_in_days(activities: Iterable[Activity], tz_name: str | None) -> DayPlacement:
    """Count activities per child-local calendar day.

    Activities that cannot be placed are counted as unresolved and never
    credit a day.
    """
    counts: dict[date, int] = {}
    unresolved = 0
    for activity in activities:
        try:
            day = local_day(activity.occurred_at, tz_name)
        except TimezoneUnresolved:
            unresolved += 1
            continue
        counts[day] = counts.get(day, 0) + 1
    return DayPlacement(counts=counts, unresolved=unresolved)


def compute_streak(days: Iterable[date], today: date) -> StreakResult:
    complete = {d for d in days if d <= today}
    if not complete:
        return StreakResult(current=0, longest=0)

    yesterday = today - timedelta(days=1)
    if today in complete:
        cursor = today
    elif yesterday in complete:
        cursor = yesterday
    else:
        cursor = None

    current = 0
    while cursor is not None and cursor in complete:
        current += 1
        cursor -= timedelta(days=1)

    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(complete):
        if previous is not None and day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return StreakResult(current=current, longest=max(longest, current))


def streak_level(current: int) -> str:
    for threshold, name in STREAK_LEVELS:
        if current >= threshold:
            return name
    return STREAK_LEVELS[-1][1]


def next_milestone(current: int) -> int:
    for milestone in STREAK_MILESTONES:
        if milestone > current:
            return milestone
    return (current // 100 + 1) * 100


def weekly_progress(counts: dict[date, int], today: date) -> list[DayProgress]:
    return [
        DayProgress(day=day, completed=counts.get(day, 0) > 0, activities=counts.get(day, 0))
        for day in last_n_days(today, 7)
    ]


def recompute_streak(db: Database, child_id: int, now: datetime) -> StreakState:
    """Re-derive the child's streak from the ledger and store it.

    Safe to call any number of times: the result depends only on the ledger
    and ``now``.
    """
    child = db.get_child(child_id)
    types = db.get_streak_qualifying_types()
    placement = place_in_days(db.list_activities(child_id, types=types), child.timezone)
    if placement.unresolved:
        logger.warning(
            "streak: %s activities for child %s could not be placed in a day (tz=%r)",
            placement.unresolved,
            child_id,
            child.timezone,
        )
    result = compute_streak(placement.counts.keys(), local_today(now, child.timezone))
    state = db.store_streak(child_id, result.current, result.longest, now)
    logger.debug("streak recomputed child=%s current=%s longest=%s", child_id, state.current_streak, state.longest_streak)
    return state
