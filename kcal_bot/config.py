"""Configuration utilities for the kcal bot."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


load_dotenv()

DEFAULT_DATABASE = "kcal_bot.db"


def _parse_admin_ids(raw: str) -> tuple[int, ...]:
    """Parse a comma separated list of Telegram user ids; blanks are skipped."""

    admin_ids = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if not item.isascii() or not item.isdigit():
            raise RuntimeError(f"KCAL_BOT_ADMINS must list numeric user ids, got {item!r}")
        admin_ids.append(int(item))
    return tuple(admin_ids)


def _delay_from_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc
    if not value >= 0:
        raise RuntimeError(f"{name} must not be negative, got {raw!r}")
    return value


def _log_level_from_env(name: str, default: str) -> str:
    level = (os.getenv(name) or default).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise RuntimeError(f"{name} is not a logging level: {level!r}")
    return level


@dataclass(slots=True)
class Settings:
    """Runtime configuration pulled from the environment."""

    telegram_token: str
    database_path: str = DEFAULT_DATABASE
    admin_ids: tuple[int, ...] = ()
    shutdown_delay: float = 1.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        # BOT_TOKEN is the name older deployments used.
        token = os.getenv("TELEGRAM_TOKEN") or os.getenv("BOT_TOKEN")
        if not token:
            raise RuntimeError("TELEGRAM_TOKEN environment variable is required")

        return cls(
            telegram_token=token,
            database_path=os.getenv("KCAL_BOT_DB") or DEFAULT_DATABASE,
            admin_ids=_parse_admin_ids(os.getenv("KCAL_BOT_ADMINS", "")),
            shutdown_delay=_delay_from_env("KCAL_BOT_SHUTDOWN_DELAY", 1.0),
            log_level=_log_level_from_env("KCAL_BOT_LOG_LEVEL", "INFO"),
        )


settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return global settings singleton, loading from the environment on first use."""

    global settings
    if settings is None:
        settings = Settings.from_env()
    return settings
