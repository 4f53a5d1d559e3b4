from __future__ import annotations

import logging

import uvicorn

from noor_progress.achievements import ensure_catalog
from noor_progress.api import build_api_app
from noor_progress.config import load_settings
from noor_progress.db import Database
from noor_progress.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def run_api() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    db = Database(settings.database_path)
    definitions = ensure_catalog(db, settings.achievements_catalog_path)
    logger.info("loaded %s achievement definitions", len(definitions))
    app = build_api_app(db, settings)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
