from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from noor_progress.config import load_settings
from noor_progress.db import Database
from noor_progress.jobs_runner import JOB_NAMES, run_job
from noor_progress.logging_setup import setup_logging


def main() -> None:
    if len(sys.argv) != 2:
        raise SystemExit(f"Usage: python jobs.py <{'|'.join(JOB_NAMES)}>")

    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    summary = run_job(sys.argv[1], db, settings)
    if summary.mismatches:
        raise SystemExit(f"balance mismatch for children: {summary.mismatches}")


if __name__ == "__main__":
    main()
