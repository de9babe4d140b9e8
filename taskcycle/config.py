"""
TaskCycle — Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (one level up from taskcycle/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite
    DATABASE_PATH: str = "data/tasks.db"

    # Operator bot (only needed for `main.py serve`)
    TELEGRAM_BOT_TOKEN: str = ""
    OPERATOR_CHAT_IDS: list[int] = []

    # Daily reset job, always UTC
    RESET_HOUR: int = 0
    RESET_MINUTE: int = 5
    RESET_PAGE_SIZE: int = 500

    LOG_LEVEL: str = "INFO"

    @field_validator("OPERATOR_CHAT_IDS", mode="before")
    @classmethod
    def parse_chat_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(cid.strip()) for cid in v.split(",") if cid.strip()]
        return []

    @field_validator("RESET_HOUR", mode="before")
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"RESET_HOUR out of range: {hour}")
        return hour

    @field_validator("RESET_MINUTE", mode="before")
    @classmethod
    def parse_minute(cls, v: str | int) -> int:
        minute = int(v)
        if not 0 <= minute <= 59:
            raise ValueError(f"RESET_MINUTE out of range: {minute}")
        return minute

    @field_validator("RESET_PAGE_SIZE", mode="before")
    @classmethod
    def parse_page_size(cls, v: str | int) -> int:
        size = int(v)
        if size < 1:
            raise ValueError("RESET_PAGE_SIZE must be at least 1")
        return size

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()


def _load_settings() -> Settings:
    """Load settings from environment."""
    return Settings(
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/tasks.db"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        OPERATOR_CHAT_IDS=os.getenv("OPERATOR_CHAT_IDS", ""),
        RESET_HOUR=os.getenv("RESET_HOUR", "0"),
        RESET_MINUTE=os.getenv("RESET_MINUTE", "5"),
        RESET_PAGE_SIZE=os.getenv("RESET_PAGE_SIZE", "500"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )


# Singleton — imported by all other modules as:
#   from taskcycle.config import settings
settings = _load_settings()
