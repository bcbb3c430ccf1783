from __future__ import annotations

from pathlib import Path
from pydantic_settings import SettingsConfigDict

from config.base import CommonSettings

ROOT = Path(__file__).resolve().parents[1]
ENV_FILE = ROOT / "env" / ".env.production"


class ProdSettings(CommonSettings):
    DATABASE_URL: str | None = None
    APP_ENV: str = "production"
    # Required: tokens signed with a default key could be forged
    SECRET_KEY: str
    LOG_LEVEL: str = "WARNING"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
    )
