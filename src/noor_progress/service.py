from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from noor_progress import achievements, claims, goals
from noor_progress.achievements import NewlyEarned
from noor_progress.claims import ClaimDecision
from noor_progress.db import (
    AchievementDefinition,
    Activity,
    Child,
    ChildAchievement,
    Database,
    Goal,
    GoalUpdate,
    RewardClaim,
    StreakState,
)
from noor_progress.db_constants import ACTIVITY_TYPES, PRAYER_NAMES
from noor_progress.errors import InconsistentState, TimezoneUnresolved
from noor_progress.streaks import (
    DayProgress,
    next_milestone,
    place_in_days,
    recompute_streak,
    streak_level,
    weekly_progress,
)
from noor_progress.time_utils import DEFAULT_TZ, last_n_days, local_day, local_today, now_utc, resolve_zone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivityEffects:
    streak: StreakState
    goal_updates: list[GoalUpdate]
    newly_earned: list[NewlyEarned]


@dataclass(frozen=True)
class RecordOutcome:
    accepted: bool
    activity: Activity | None
    balance: int
    streak: StreakState | None = None
    goal_updates: tuple[GoalUpdate, ...] = ()
    newly_earned: tuple[NewlyEarned, ...] = ()


@dataclass(frozen=True)
class GoalView:
    goal: Goal
    status: str
    progress_ratio: float


@dataclass(frozen=True)
class AchievementView:
    definition: AchievementDefinition
    achievement: ChildAchievement | None

    @property
    def progress_percentage(self) -> int:
        return self.achievement.progress_percentage if self.achievement else 0

    @property
    def earned(self) -> bool:
        return self.achievement is not None and self.achievement.earned_at is not None


@dataclass(frozen=True)
class ProgressSnapshot:
    child_id: int
    total_points: int
    current_streak: int
    longest_streak: int
    streak_level: str
    next_milestone: int
    today_completed: bool
    weekly_progress: list[DayProgress]
    weekly_points: int
    prayer_completion: dict[str, int]
    goals: list[GoalView]
    achievements: list[AchievementView]
    pending_claims: int


@dataclass(frozen=True)
class BalanceBreakdown:
    child_id: int
    stored: int
    activity_points: int
    goal_rewards: int
    claims_spent: int

    @property
    def expected(self) -> int:
        return self.activity_points + self.goal_rewards - self.claims_spent


def make_dedup_key(activity_type: str, day: date, name: str | None = None) -> str:
    """One-per-day key, e.g. ``prayer:fajr:2025-03-01`` or ``story:2025-03-01``."""
    if name:
        return f"{activity_type}:{name.strip().lower()}:{day.isoformat()}"
    return f"{activity_type}:{day.isoformat()}"


def create_child(
    db: Database,
    family_id: int,
    name: str,
    now: datetime,
    timezone: str | None = None,
    islamic_level: int = 1,
) -> Child:
    tz_name = timezone or DEFAULT_TZ
    resolve_zone(tz_name)
    if not name.strip():
        raise ValueError("child name is required")
    if islamic_level < 1:
        raise ValueError("islamic_level must be at least 1")
    return db.create_child(
        family_id=family_id,
        name=name.strip(),
        timezone=tz_name,
        created_at=now,
        islamic_level=int(islamic_level),
    )


def on_activity_recorded(
    db: Database,
    activity: Activity,
    now: datetime,
    evaluate_achievements: bool = True,
) -> ActivityEffects:
    """Derived updates after a new ledger fact: streak, then goals, then achievements.

    Every step is idempotent, so replaying it for the same activity changes
    nothing.
    """
    streak = recompute_streak(db, activity.child_id, now)
    updates = goals.apply_activity(db, activity.child_id, activity, now)
    newly: list[NewlyEarned] = []
    if evaluate_achievements:
        newly = achievements.evaluate(db, activity.child_id, now)
    return ActivityEffects(streak=streak, goal_updates=updates, newly_earned=newly)


def record_activity(
    db: Database,
    child_id: int,
    activity_type: str,
    points_value: int,
    occurred_at: datetime,
    dedup_key: str,
    now: datetime | None = None,
    name: str | None = None,
    evaluate_achievements: bool = True,
) -> RecordOutcome:
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"unknown activity type {activity_type!r}")
    if points_value < 0:
        raise ValueError("points_value must not be negative")
    key = (dedup_key or "").strip()
    if not key:
        raise ValueError("dedup_key is required")
    now = now or now_utc()

    activity = db.append_activity(
        child_id=child_id,
        activity_type=activity_type,
        points_value=int(points_value),
        occurred_at=occurred_at,
        dedup_key=key,
        recorded_at=now,
        name=name,
    )
    if activity is None:
        logger.info("duplicate activity ignored child=%s key=%s", child_id, key)
        return RecordOutcome(
            accepted=False,
            activity=db.get_activity_by_dedup_key(child_id, key),
            balance=db.get_child(child_id).total_points,
        )

    logger.info(
        "activity recorded child=%s type=%s points=%s key=%s",
        child_id,
        activity_type,
        activity.points_value,
        key,
    )
    effects = on_activity_recorded(db, activity, now, evaluate_achievements=evaluate_achievements)
    return RecordOutcome(
        accepted=True,
        activity=activity,
        balance=db.get_child(child_id).total_points,
        streak=effects.streak,
        goal_updates=tuple(effects.goal_updates),
        newly_earned=tuple(effects.newly_earned),
    )


def _prayer_completion(activities: list[Activity], tz_name: str, week: list[date]) -> dict[str, int]:
    window = set(week)
    seen: dict[str, set[date]] = {name: set() for name in PRAYER_NAMES}
    lookup = {name.lower(): name for name in PRAYER_NAMES}
    for activity in activities:
        prayer = lookup.get((activity.name or "").strip().lower())
        if prayer is None:
            continue
        try:
            day = local_day(activity.occurred_at, tz_name)
        except TimezoneUnresolved:
            continue
        if day in window:
            seen[prayer].add(day)
    return {name: round(len(days) * 100 / len(week)) for name, days in seen.items()}


def get_progress_snapshot(db: Database, child_id: int, now: datetime) -> ProgressSnapshot:
    """Read-only view for the child dashboard. Nothing is re-evaluated here."""
    child = db.get_child(child_id)
    today = local_today(now, child.timezone)
    week = last_n_days(today, 7)

    qualifying = db.get_streak_qualifying_types()
    all_activities = db.list_activities(child_id)
    streak_counts = place_in_days(
        [a for a in all_activities if a.activity_type in qualifying],
        child.timezone,
    ).counts

    weekly_points = 0
    for activity in all_activities:
        try:
            day = local_day(activity.occurred_at, child.timezone)
        except TimezoneUnresolved:
            continue
        if week[0] <= day <= week[-1]:
            weekly_points += activity.points_value

    goal_views = [
        GoalView(
            goal=goal,
            status=goals.goal_status(goal, today),
            progress_ratio=min(1.0, goal.current_value / goal.target_value) if goal.target_value else 0.0,
        )
        for goal in db.list_goals(child_id)
    ]

    earned_by_def = {a.definition_id: a for a in db.list_child_achievements(child_id)}
    achievement_views = [
        AchievementView(definition=definition, achievement=earned_by_def.get(definition.id))
        for definition in db.list_achievement_definitions()
    ]

    pending = sum(
        1 for claim in db.list_claims(child.family_id, status="pending") if claim.child_id == child_id
    )

    return ProgressSnapshot(
        child_id=child_id,
        total_points=child.total_points,
        current_streak=child.current_streak,
        longest_streak=child.longest_streak,
        streak_level=streak_level(child.current_streak),
        next_milestone=next_milestone(child.current_streak),
        today_completed=streak_counts.get(today, 0) > 0,
        weekly_progress=weekly_progress(streak_counts, today),
        weekly_points=weekly_points,
        prayer_completion=_prayer_completion(all_activities, child.timezone, week),
        goals=goal_views,
        achievements=achievement_views,
        pending_claims=pending,
    )


def update_goal(
    db: Database,
    child_id: int,
    goal_id: int,
    *,
    now: datetime,
    delta: int | None = None,
    explicit_value: int | None = None,
) -> GoalUpdate:
    return goals.update_goal(db, child_id, goal_id, now, delta=delta, explicit_value=explicit_value)


def claim_reward(
    db: Database,
    child_id: int,
    reward_id: int,
    now: datetime,
    notes: str | None = None,
) -> RewardClaim:
    return claims.claim_reward(db, child_id, reward_id, now, notes=notes)


def decide_claim(db: Database, claim_id: int, decision: str, decider_id: str, now: datetime) -> ClaimDecision:
    return claims.decide_claim(db, claim_id, decision, decider_id, now)


def acknowledge_achievement(db: Database, achievement_id: int, now: datetime) -> ChildAchievement:
    return achievements.acknowledge(db, achievement_id, now)


def balance_breakdown(db: Database, child_id: int) -> BalanceBreakdown:
    parts = db.balance_components(child_id)
    return BalanceBreakdown(child_id=child_id, **parts)


def reconcile_balance(db: Database, child_id: int) -> BalanceBreakdown:
    """Check the stored balance against the ledger.

    The stored value is never rewritten here; a mismatch is reported and
    left for a person to investigate.
    """
    breakdown = balance_breakdown(db, child_id)
    if breakdown.stored != breakdown.expected:
        logger.error(
            "balance mismatch child=%s stored=%s expected=%s (activities=%s goals=%s claims=%s)",
            child_id,
            breakdown.stored,
            breakdown.expected,
            breakdown.activity_points,
            breakdown.goal_rewards,
            breakdown.claims_spent,
        )
        raise InconsistentState(child_id, breakdown.stored, breakdown.expected)
    return breakdown
