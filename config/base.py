from __future__ import annotations

from pydantic_settings import BaseSettings


class CommonSettings(BaseSettings):
    """Fields shared by every environment."""

    SECRET_KEY: str | None = None
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Cycle event coordinator timings, in seconds
    EVENT_DEBOUNCE_SECONDS: float = 0.2
    EVENT_DUPLICATE_WINDOW_SECONDS: float = 0.5
