from __future__ import annotations

from pathlib import Path

from noor_progress.config import load_settings

ENV_KEYS = (
    "DATABASE_PATH",
    "TZ",
    "API_HOST",
    "API_PORT",
    "API_TOKEN",
    "ACHIEVEMENTS_CATALOG",
    "LOG_LEVEL",
    "API_DOCS",
)


def _clear(monkeypatch) -> None:
    # setenv first so teardown also removes values loaded from .env files
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults(monkeypatch, tmp_path) -> None:
    _clear(monkeypatch)
    settings = load_settings(tmp_path / ".env")
    assert settings.database_path == Path("./data/progress.db")
    assert settings.tz == "UTC"
    assert settings.api_port == 8080
    assert settings.api_token is None
    assert settings.achievements_catalog_path == Path("./achievements.yaml")
    assert settings.log_level == "INFO"
    assert settings.api_docs is True


def test_env_file_does_not_override_environment(monkeypatch, tmp_path) -> None:
    _clear(monkeypatch)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local overrides\n"
        "DATABASE_PATH='/var/lib/noor/progress.db'\n"
        "API_PORT=not-a-port\n"
        "API_TOKEN=\"from-file\"\n"
        "API_DOCS=0\n"
    )
    monkeypatch.setenv("API_TOKEN", "from-env")
    settings = load_settings(env_file)
    assert settings.database_path == Path("/var/lib/noor/progress.db")
    assert settings.api_port == 8080
    assert settings.api_token == "from-env"
    assert settings.api_docs is False
