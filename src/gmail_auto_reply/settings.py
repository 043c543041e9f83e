"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from . import constants
from .errors import ConfigurationError


def _number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str = ""
    gemini_model: str = constants.GEMINI_MODEL
    poll_interval: float = constants.POLL_INTERVAL
    reaper_interval: float = constants.REAPER_INTERVAL
    dedup_ttl: float = constants.DEDUP_TTL
    sender_cooldown: float = constants.SENDER_COOLDOWN
    rate_window: float = constants.RATE_WINDOW
    call_timeout: float = constants.CALL_TIMEOUT
    db_path: Path = constants.DB_PATH


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from environment variables.

    Values from ``env_file`` (default ``~/.gmail-auto-reply/.env``, then a
    ``.env`` in the working directory) never override variables that are
    already set.
    """
    load_dotenv(env_file or constants.ENV_PATH)
    load_dotenv()

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", constants.GEMINI_MODEL),
        poll_interval=_number("AUTO_REPLY_POLL_INTERVAL", constants.POLL_INTERVAL),
        reaper_interval=_number("AUTO_REPLY_REAPER_INTERVAL", constants.REAPER_INTERVAL),
        dedup_ttl=_number("AUTO_REPLY_DEDUP_TTL", constants.DEDUP_TTL),
        # Production value; local testing typically sets this to a few seconds.
        sender_cooldown=_number("AUTO_REPLY_COOLDOWN_SECONDS", constants.SENDER_COOLDOWN),
        rate_window=_number("AUTO_REPLY_RATE_WINDOW", constants.RATE_WINDOW),
        call_timeout=_number("AUTO_REPLY_CALL_TIMEOUT", constants.CALL_TIMEOUT),
        db_path=Path(os.getenv("AUTO_REPLY_DB_PATH") or constants.DB_PATH),
    )
