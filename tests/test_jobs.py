from __future__ import annotations

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from noor_progress.config import Settings
from noor_progress.db import Database
from noor_progress.jobs_runner import run_job


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Asia/Riyadh"))


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        database_path=tmp_path / "progress.db",
        tz="UTC",
        api_host="127.0.0.1",
        api_port=8080,
        api_token=None,
        achievements_catalog_path=tmp_path / "achievements.yaml",
        log_level="INFO",
        api_docs=True,
    )


def test_streak_refresh_resets_lapsed_children(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    active = db.create_child(1, "Aisha", "Asia/Riyadh", _dt(2025, 3, 1))
    lapsed = db.create_child(1, "Omar", "Asia/Riyadh", _dt(2025, 3, 1))
    for day in (8, 9):
        db.append_activity(lapsed.id, "prayer", 10, _dt(2025, 3, day), f"l{day}", _dt(2025, 3, day))
    for day in (8, 9, 10, 11):
        db.append_activity(active.id, "prayer", 10, _dt(2025, 3, day), f"a{day}", _dt(2025, 3, day))
    db.store_streak(lapsed.id, 2, 2, _dt(2025, 3, 9, 20))

    summary = run_job("streak_refresh", db, _settings(tmp_path), now=_dt(2025, 3, 11, 23))
    assert summary.ran is True
    assert summary.children == 2
    assert summary.resets == [lapsed.id]
    assert db.get_child(active.id).current_streak == 4
    assert db.get_child(lapsed.id).current_streak == 0
    assert db.get_child(lapsed.id).longest_streak == 2


def test_reconcile_job_collects_mismatches(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    ok = db.create_child(1, "Aisha", "UTC", _dt(2025, 3, 1))
    drifted = db.create_child(1, "Omar", "UTC", _dt(2025, 3, 1))
    db.append_activity(ok.id, "dua", 5, _dt(2025, 3, 2), "d1", _dt(2025, 3, 2))
    db.append_activity(drifted.id, "dua", 5, _dt(2025, 3, 2), "d1", _dt(2025, 3, 2))
    with db._connect() as conn:
        conn.execute("UPDATE children SET total_points = 7 WHERE id = ?", (drifted.id,))

    summary = run_job("reconcile", db, _settings(tmp_path), now=_dt(2025, 3, 3))
    assert summary.mismatches == [drifted.id]
    assert db.get_child(drifted.id).total_points == 7
    assert db.list_admin_audit()[0]["action"] == "job.reconcile.mismatch"


def test_disabled_job_does_nothing(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    db.create_child(1, "Aisha", "UTC", _dt(2025, 3, 1))
    db.set_app_config({"job.reconcile_enabled": False}, actor="test")
    summary = run_job("reconcile", db, _settings(tmp_path))
    assert summary.ran is False
    assert summary.children == 0


def test_unknown_job_exits(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    with pytest.raises(SystemExit):
        run_job("sunday_summary", db, _settings(tmp_path))
