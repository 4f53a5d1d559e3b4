from __future__ import annotations

import threading
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from noor_progress import goals
from noor_progress.db import Database
from noor_progress.errors import InvalidTransition, NotFound
from noor_progress.service import record_activity


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Asia/Riyadh"))


def _db_with_child(tmp_path) -> tuple[Database, int]:
    db = Database(tmp_path / "progress.db")
    db.set_app_config({"feature.achievements_enabled": False}, actor="test")
    child = db.create_child(1, "Aisha", "Asia/Riyadh", _dt(2025, 3, 1))
    return db, child.id


def test_prayer_goal_counts_days_not_prayers(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "prayer_streak", "Pray 3 days", 3, 50, _dt(2025, 3, 1))
    now = _dt(2025, 3, 12, 22)

    record_activity(db, child_id, "prayer", 10, _dt(2025, 3, 10, 5), "prayer:fajr:2025-03-10", now=now, name="Fajr")
    record_activity(db, child_id, "prayer", 10, _dt(2025, 3, 10, 13), "prayer:dhuhr:2025-03-10", now=now, name="Dhuhr")
    assert db.get_goal(goal.id).current_value == 1

    record_activity(db, child_id, "prayer", 10, _dt(2025, 3, 11), "prayer:fajr:2025-03-11", now=now, name="Fajr")
    outcome = record_activity(db, child_id, "prayer", 10, _dt(2025, 3, 12), "prayer:fajr:2025-03-12", now=now, name="Fajr")

    assert len(outcome.goal_updates) == 1
    update = outcome.goal_updates[0]
    assert update.completed_now is True
    assert update.credited_points == 50
    assert update.goal.current_value == 3
    assert outcome.balance == 40 + 50


def test_completed_goal_stops_counting(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "story_reading", "Two stories", 2, 20, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10, 20)
    for n in range(4):
        record_activity(db, child_id, "story", 5, _dt(2025, 3, 10), f"story:{n}", now=now)

    stored = db.get_goal(goal.id)
    assert stored.current_value == 2
    assert stored.completed_at is not None
    assert db.get_child(child_id).total_points == 4 * 5 + 20


def test_same_mark_applies_once(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "good_deeds", "Five deeds", 5, 0, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10)
    assert db.advance_goal(goal.id, "activity:deed-1", 1, now) is not None
    assert db.advance_goal(goal.id, "activity:deed-1", 1, now) is None
    assert db.get_goal(goal.id).current_value == 1


def test_points_goal_sums_activity_points(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "points", "Earn 100", 100, 25, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10, 20)
    record_activity(db, child_id, "quran", 60, _dt(2025, 3, 10), "quran:1", now=now)
    record_activity(db, child_id, "charity", 60, _dt(2025, 3, 10), "charity:1", now=now)
    stored = db.get_goal(goal.id)
    assert stored.current_value == 100
    assert stored.completed_at is not None
    assert db.get_child(child_id).total_points == 120 + 25


def test_deadline_excludes_late_activity(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(
        db, child_id, "quran_memorization", "Surah", 3, 10, _dt(2025, 3, 1), deadline=date(2025, 3, 5)
    )
    now = _dt(2025, 3, 6, 20)
    record_activity(db, child_id, "quran", 5, _dt(2025, 3, 5, 23), "quran:on-time", now=now)
    record_activity(db, child_id, "quran", 5, _dt(2025, 3, 6, 1), "quran:late", now=now)
    stored = db.get_goal(goal.id)
    assert stored.current_value == 1
    assert goals.goal_status(stored, date(2025, 3, 6)) == "expired"
    assert goals.goal_status(stored, date(2025, 3, 5)) == "active"


def test_deadline_can_be_relaxed(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    db.set_app_config({"goal.apply_after_deadline": True}, actor="test")
    goal = goals.create_goal(
        db, child_id, "quran_memorization", "Surah", 3, 10, _dt(2025, 3, 1), deadline=date(2025, 3, 5)
    )
    record_activity(db, child_id, "quran", 5, _dt(2025, 3, 8), "quran:late", now=_dt(2025, 3, 8, 20))
    assert db.get_goal(goal.id).current_value == 1


def test_unrelated_activity_types_are_ignored(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "story_reading", "Stories", 3, 0, _dt(2025, 3, 1))
    outcome = record_activity(db, child_id, "dua", 5, _dt(2025, 3, 10), "dua:1", now=_dt(2025, 3, 10, 20))
    assert outcome.goal_updates == ()
    assert db.get_goal(goal.id).current_value == 0


def test_update_goal_is_monotonic(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "good_deeds", "Deeds", 5, 30, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10)

    update = goals.update_goal(db, child_id, goal.id, now, delta=2)
    assert update.previous_value == 0
    assert update.goal.current_value == 2
    assert update.completed_now is False

    with pytest.raises(InvalidTransition):
        goals.update_goal(db, child_id, goal.id, now, explicit_value=1)
    with pytest.raises(InvalidTransition):
        goals.update_goal(db, child_id, goal.id, now, delta=-1)
    assert db.get_goal(goal.id).current_value == 2


def test_update_goal_caps_and_completes_once(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "good_deeds", "Deeds", 5, 30, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10)

    update = goals.update_goal(db, child_id, goal.id, now, explicit_value=12)
    assert update.goal.current_value == 5
    assert update.completed_now is True
    assert update.credited_points == 30
    assert db.get_child(child_id).total_points == 30

    with pytest.raises(InvalidTransition):
        goals.update_goal(db, child_id, goal.id, now, delta=1)
    assert db.get_child(child_id).total_points == 30


def test_update_goal_argument_rules(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "good_deeds", "Deeds", 5, 0, _dt(2025, 3, 1))
    other = db.create_child(2, "Omar", "Asia/Riyadh", _dt(2025, 3, 1))
    now = _dt(2025, 3, 10)
    with pytest.raises(ValueError):
        goals.update_goal(db, child_id, goal.id, now)
    with pytest.raises(ValueError):
        goals.update_goal(db, child_id, goal.id, now, delta=1, explicit_value=2)
    with pytest.raises(NotFound):
        goals.update_goal(db, other.id, goal.id, now, delta=1)
    with pytest.raises(NotFound):
        goals.update_goal(db, child_id, 999, now, delta=1)


def test_concurrent_completion_credits_once(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    goal = goals.create_goal(db, child_id, "good_deeds", "One deed", 1, 40, _dt(2025, 3, 1))
    now = _dt(2025, 3, 10)
    credited: list[int] = []
    lock = threading.Lock()

    def bump() -> None:
        try:
            update = goals.update_goal(db, child_id, goal.id, now, delta=1)
        except InvalidTransition:
            return
        with lock:
            credited.append(update.credited_points)

    threads = [threading.Thread(target=bump) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(credited) == 40
    assert db.get_child(child_id).total_points == 40
    assert db.count_completed_goals(child_id) == 1


def test_create_goal_validation(tmp_path) -> None:
    db, child_id = _db_with_child(tmp_path)
    now = _dt(2025, 3, 1)
    with pytest.raises(ValueError):
        goals.create_goal(db, child_id, "homework", "x", 3, 0, now)
    with pytest.raises(ValueError):
        goals.create_goal(db, child_id, "story_reading", "x", 0, 0, now)
    with pytest.raises(ValueError):
        goals.create_goal(db, child_id, "story_reading", "x", 3, -1, now)
    with pytest.raises(NotFound):
        goals.create_goal(db, 999, "story_reading", "x", 3, 0, now)
