from __future__ import annotations

from noor_progress.db import Database
from noor_progress.db_constants import APP_CONFIG_DEFAULTS


def test_app_config_defaults_present(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    cfg = db.get_app_config()
    for key in APP_CONFIG_DEFAULTS:
        assert key in cfg


def test_feature_and_job_toggle(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    db.set_app_config(
        {
            "feature.achievements_enabled": False,
            "job.streak_refresh_enabled": False,
        },
        actor="test",
    )
    assert db.is_feature_enabled("achievements") is False
    assert db.is_job_enabled("streak_refresh") is False
    assert db.is_job_enabled("reconcile") is True


def test_unknown_keys_are_ignored(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    cfg = db.set_app_config({"economy.fun_rate.build": 30}, actor="test")
    assert "economy.fun_rate.build" not in cfg
    assert db.list_admin_audit() == []


def test_qualifying_types_parse_and_filter(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    assert db.get_streak_qualifying_types() == ("prayer",)
    db.set_app_config({"streak.qualifying_types": ["Prayer", "quran", "homework"]}, actor="test")
    assert db.get_streak_qualifying_types() == ("prayer", "quran")
    db.set_app_config({"streak.qualifying_types": "homework"}, actor="test")
    assert db.get_streak_qualifying_types() == ("prayer",)


def test_config_changes_are_audited(tmp_path) -> None:
    db = Database(tmp_path / "progress.db")
    db.set_app_config({"goal.apply_after_deadline": True}, actor="parent-1", note="holiday")
    rows = db.list_admin_audit()
    assert rows[0]["actor"] == "parent-1"
    assert rows[0]["target"] == "goal.apply_after_deadline"
    assert '"holiday"' in rows[0]["payload_json"]
