"""Application configuration read from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    APP_TITLE: str = "Task Scheduling Service"
    LOG_LEVEL: str = "INFO"
    SEED_DEMO_DATA: bool = False
    SUBMISSION_HISTORY: int = 100


@lru_cache
def get_settings() -> Settings:
    return Settings(
        APP_TITLE=os.getenv("APP_TITLE", "Task Scheduling Service"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        SEED_DEMO_DATA=os.getenv("SEED_DEMO_DATA", "").strip().lower() in _TRUTHY,
        SUBMISSION_HISTORY=int(os.getenv("SUBMISSION_HISTORY", "100")),
    )


settings = get_settings()
