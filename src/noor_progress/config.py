from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from noor_progress.time_utils import DEFAULT_TZ


@dataclass(frozen=True)
class Settings:
    database_path: Path
    tz: str
    api_host: str
    api_port: int
    api_token: str | None
    achievements_catalog_path: Path
    log_level: str
    api_docs: bool


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: Path = Path(".env")) -> Settings:
    _load_env_file(env_file)

    api_port_raw = os.getenv("API_PORT", "8080")
    try:
        api_port = int(api_port_raw)
    except ValueError:
        api_port = 8080

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/progress.db")),
        tz=os.getenv("TZ", DEFAULT_TZ) or DEFAULT_TZ,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=api_port,
        api_token=os.getenv("API_TOKEN") or None,
        achievements_catalog_path=Path(os.getenv("ACHIEVEMENTS_CATALOG", "./achievements.yaml")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        api_docs=_parse_bool(os.getenv("API_DOCS"), default=True),
    )
