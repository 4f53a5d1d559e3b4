from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from noor_progress.config import Settings
from noor_progress.db import Database
from noor_progress.errors import InconsistentState
from noor_progress.service import reconcile_balance
from noor_progress.streaks import recompute_streak
from noor_progress.time_utils import now_utc

logger = logging.getLogger(__name__)

JOB_NAMES = ("reconcile", "streak_refresh")


@dataclass
class JobSummary:
    job: str
    ran: bool = False
    children: int = 0
    mismatches: list[int] = field(default_factory=list)
    resets: list[int] = field(default_factory=list)


def run_reconcile(db: Database, now: datetime) -> JobSummary:
    summary = JobSummary(job="reconcile", ran=True)
    for child in db.list_children():
        summary.children += 1
        try:
            reconcile_balance(db, child.id)
        except InconsistentState:
            # Already logged; the stored balance stays as it is for manual review.
            summary.mismatches.append(child.id)
    if summary.mismatches:
        db.add_audit_entry(
            "system",
            "job.reconcile.mismatch",
            "children",
            {"child_ids": summary.mismatches},
            now,
        )
    logger.info("reconcile checked %s children, %s mismatches", summary.children, len(summary.mismatches))
    return summary


def run_streak_refresh(db: Database, now: datetime) -> JobSummary:
    """Recompute every streak so children who missed yesterday drop to zero."""
    summary = JobSummary(job="streak_refresh", ran=True)
    for child in db.list_children():
        summary.children += 1
        state = recompute_streak(db, child.id, now)
        if child.current_streak and state.current_streak == 0:
            summary.resets.append(child.id)
    logger.info("streak refresh: %s children, %s reset", summary.children, len(summary.resets))
    return summary


def run_job(job_name: str, db: Database, settings: Settings, now: datetime | None = None) -> JobSummary:
    if job_name not in JOB_NAMES:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: {', '.join(JOB_NAMES)}")
    if not db.is_job_enabled(job_name):
        logger.info("job disabled: %s", job_name)
        return JobSummary(job=job_name)
    now = now or now_utc()
    logger.info("running job %s (db=%s)", job_name, settings.database_path)
    if job_name == "reconcile":
        return run_reconcile(db, now)
    return run_streak_refresh(db, now)
