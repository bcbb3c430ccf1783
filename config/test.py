from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from config.base import CommonSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.test"


class TestSettings(CommonSettings):
    # The test suite builds its own engine; this only has to be importable.
    DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"
    APP_ENV: str = "test"
    SECRET_KEY: str | None = "test-secret-key"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )
