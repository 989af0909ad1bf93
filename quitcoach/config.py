"""
QuitCoach — Centralized configuration.

Loads all settings from .env and validates required keys.
Core modules never read this directly; the bot wires these values into
the planner and the storage adapters.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from quitcoach/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_TRUE_STRINGS = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # Security: only these chats may log events and receive nudges
    ALLOWED_USER_IDS: list[int] = []

    # SQLite
    DATABASE_PATH: str = "data/quitcoach.db"

    # Latest coaching tip, read by widgets and other processes
    TIP_FILE_PATH: str = "data/latest_tip.json"

    TIMEZONE: str = "Europe/Rome"

    # Master switch for scheduled nudges; /coach still works when off
    COACHING_ENABLED: bool = True

    # Coaching rate limits
    MAX_NOTIFICATIONS_PER_DAY: int = 3
    QUIET_HOURS_ENABLED: bool = True
    QUIET_HOURS_START: int = 22
    QUIET_HOURS_END: int = 6
    MIN_INTERVAL_MINUTES: int = 120

    # How often the background job runs an evaluation
    EVALUATION_INTERVAL_MINUTES: int = 30

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("COACHING_ENABLED", "QUIET_HOURS_ENABLED", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in _TRUE_STRINGS

    @field_validator(
        "MAX_NOTIFICATIONS_PER_DAY",
        "QUIET_HOURS_START",
        "QUIET_HOURS_END",
        "MIN_INTERVAL_MINUTES",
        "EVALUATION_INTERVAL_MINUTES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/quitcoach.db"),
        TIP_FILE_PATH=os.getenv("TIP_FILE_PATH", "data/latest_tip.json"),
        TIMEZONE=os.getenv("TIMEZONE", "Europe/Rome"),
        COACHING_ENABLED=os.getenv("COACHING_ENABLED", "true"),
        MAX_NOTIFICATIONS_PER_DAY=os.getenv("MAX_NOTIFICATIONS_PER_DAY", "3"),
        QUIET_HOURS_ENABLED=os.getenv("QUIET_HOURS_ENABLED", "true"),
        QUIET_HOURS_START=os.getenv("QUIET_HOURS_START", "22"),
        QUIET_HOURS_END=os.getenv("QUIET_HOURS_END", "6"),
        MIN_INTERVAL_MINUTES=os.getenv("MIN_INTERVAL_MINUTES", "120"),
        EVALUATION_INTERVAL_MINUTES=os.getenv("EVALUATION_INTERVAL_MINUTES", "30"),
    )


# Singleton — imported by the bot and storage modules as:
#   from quitcoach.config import settings
settings = _load_settings()
