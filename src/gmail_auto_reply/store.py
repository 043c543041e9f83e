"""SQLite persistence for per-user settings and the auto-reply history."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path

from .constants import DB_PATH, HISTORY_LIMIT
from .errors import ConfigurationError
from .models import AutoReplyConfig, AutoReplyRecord

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS auto_reply_config (
    user_email TEXT PRIMARY KEY,
    enabled INTEGER,
    categories_json TEXT,
    min_confidence REAL,
    max_replies_per_hour INTEGER,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS global_settings (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS auto_reply_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT,
    user_email TEXT,
    recipient TEXT,
    subject TEXT
);
"""

_GLOBAL_ENABLED_KEY = "global_auto_reply_enabled"
_CURSOR_KEY = "history_cursor"


def validate_config(config: AutoReplyConfig) -> AutoReplyConfig:
    """Raise ConfigurationError for settings the pipeline cannot honour."""
    if not 0.0 <= config.min_confidence <= 1.0:
        raise ConfigurationError(f"min_confidence must be within [0, 1], got {config.min_confidence}")
    if config.max_replies_per_hour < 1:
        raise ConfigurationError(
            f"max_replies_per_hour must be at least 1, got {config.max_replies_per_hour}"
        )
    if not config.allowed_categories:
        raise ConfigurationError("at least one category must be allowed")
    return config


class AutoReplyStore:
    """Persistent SQLite store for settings and sent-reply records.

    The worker thread and the CLI thread may share one instance, so every
    statement runs under a lock on a connection opened with
    ``check_same_thread=False``.
    """

    def __init__(self, db_path: Path | None = None, history_limit: int = HISTORY_LIMIT) -> None:
        self.db_path = db_path or DB_PATH
        self.db_path = Path(self.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.executescript(_CREATE_TABLES_SQL)

    # --- per-user config ---

    def get(self, user_email: str) -> AutoReplyConfig:
        """Return the stored config. Raises ConfigurationError if missing or unreadable."""
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM auto_reply_config WHERE user_email = ?", (user_email.lower(),)
            ).fetchone()
        if row is None:
            raise ConfigurationError(f"No auto-reply config for {user_email}")
        try:
            config = AutoReplyConfig(
                enabled=bool(row["enabled"]),
                allowed_categories=tuple(json.loads(row["categories_json"])),
                min_confidence=float(row["min_confidence"]),
                max_replies_per_hour=int(row["max_replies_per_hour"]),
                updated_at=row["updated_at"] or "",
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Corrupted auto-reply config for {user_email}: {exc}") from exc
        return validate_config(config)

    def get_or_default(self, user_email: str) -> AutoReplyConfig:
        try:
            return self.get(user_email)
        except ConfigurationError:
            return AutoReplyConfig()

    def set(self, user_email: str, config: AutoReplyConfig) -> AutoReplyConfig:
        """Create or replace the config for ``user_email``."""
        validate_config(config)
        updated_at = datetime.now().isoformat()
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO auto_reply_config "
                "(user_email, enabled, categories_json, min_confidence, max_replies_per_hour, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    user_email.lower(),
                    int(config.enabled),
                    json.dumps(list(config.allowed_categories)),
                    config.min_confidence,
                    config.max_replies_per_hour,
                    updated_at,
                ),
            )
        return AutoReplyConfig(
            enabled=config.enabled,
            allowed_categories=tuple(config.allowed_categories),
            min_confidence=config.min_confidence,
            max_replies_per_hour=config.max_replies_per_hour,
            updated_at=updated_at,
        )

    # --- global settings ---

    def _get_setting(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM global_settings WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def _set_setting(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO global_settings (key, value) VALUES (?, ?)", (key, value)
            )

    def is_globally_enabled(self) -> bool:
        return self._get_setting(_GLOBAL_ENABLED_KEY) == "1"

    def set_global_enabled(self, enabled: bool) -> None:
        self._set_setting(_GLOBAL_ENABLED_KEY, "1" if enabled else "0")

    def load_cursor(self) -> int | None:
        """History cursor saved by the last CLI run, or None if never saved."""
        value = self._get_setting(_CURSOR_KEY)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.warning("Ignoring unreadable saved history cursor %r", value)
            return None

    def save_cursor(self, cursor: int) -> None:
        self._set_setting(_CURSOR_KEY, str(int(cursor)))

    # --- reply history ---

    def append(
        self, user_email: str, recipient: str, subject: str, timestamp: datetime | None = None
    ) -> None:
        """Record a sent reply, dropping the oldest rows beyond the limit."""
        ts = (timestamp or datetime.now()).isoformat()
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO auto_reply_history (timestamp, user_email, recipient, subject) "
                "VALUES (?, ?, ?, ?)",
                (ts, user_email, recipient, subject),
            )
            self._conn.execute(
                "DELETE FROM auto_reply_history WHERE id NOT IN "
                "(SELECT id FROM auto_reply_history ORDER BY id DESC LIMIT ?)",
                (self.history_limit,),
            )

    def history(self, limit: int | None = None) -> list[AutoReplyRecord]:
        """Return records newest first."""
        sql = "SELECT * FROM auto_reply_history ORDER BY id DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [
            AutoReplyRecord(
                id=r["id"],
                timestamp=r["timestamp"],
                user_email=r["user_email"],
                recipient=r["recipient"],
                subject=r["subject"],
            )
            for r in rows
        ]

    def stats(self, now: datetime | None = None) -> dict:
        """Count sent replies per time bucket."""
        now = now or datetime.now()
        today = datetime(now.year, now.month, now.day)
        yesterday = today - timedelta(days=1)
        week_ago = today - timedelta(days=7)
        month_ago = today - timedelta(days=30)

        counts = {"today": 0, "yesterday": 0, "this_week": 0, "this_month": 0, "total": 0}
        for record in self.history():
            counts["total"] += 1
            try:
                sent = datetime.fromisoformat(record.timestamp)
            except ValueError:
                continue
            if sent >= today:
                counts["today"] += 1
            elif sent >= yesterday:
                counts["yesterday"] += 1
            if sent >= week_ago:
                counts["this_week"] += 1
            if sent >= month_ago:
                counts["this_month"] += 1
        return counts

    def reset_history(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM auto_reply_history")

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> AutoReplyStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
