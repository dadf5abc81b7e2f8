"""SQLite persistence shared by the token, connection and identity stores."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from email_markdown.exceptions import StoreError

logger = logging.getLogger(__name__)

PREFERENCES_PARTITION = "preferences"

SCHEMA = """
CREATE TABLE IF NOT EXISTS tokens (
    provider TEXT NOT NULL,
    user_email TEXT NOT NULL,
    encrypted_access_token TEXT NOT NULL DEFAULT '',
    encrypted_refresh_token TEXT NOT NULL DEFAULT '',
    access_token_expiry TEXT NOT NULL,
    scopes TEXT NOT NULL DEFAULT '',
    provider_user_id TEXT,
    provider_tenant_id TEXT,
    is_valid INTEGER NOT NULL DEFAULT 1,
    last_error TEXT,
    refresh_failure_count INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (provider, user_email)
);

CREATE TABLE IF NOT EXISTS storage_connections (
    user_email TEXT NOT NULL,
    provider TEXT NOT NULL,
    root_folder TEXT NOT NULL,
    drive_id TEXT,
    folder_id TEXT,
    consent_granted_at TEXT,
    last_successful_sync TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (user_email, provider)
);

CREATE TABLE IF NOT EXISTS identity_links (
    primary_email TEXT NOT NULL,
    linked_email TEXT NOT NULL,
    provider TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (primary_email, linked_email)
);

CREATE TABLE IF NOT EXISTS user_preferences (
    partition TEXT NOT NULL,
    email TEXT NOT NULL,
    root_folder TEXT NOT NULL,
    storage_provider TEXT,
    delivery_method TEXT NOT NULL,
    provider_user_id TEXT,
    provider_tenant_id TEXT,
    drive_id TEXT,
    folder_id TEXT,
    consent_granted_at TEXT,
    last_successful_sync TEXT,
    PRIMARY KEY (partition, email)
);
"""


def normalize_email(email: str) -> str:
    return email.strip().lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """Opens short-lived connections to one SQLite file.

    Each ``connect()`` block is one transaction: committed on normal exit,
    rolled back on any exception. The schema is created on first use.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._schema_ready = False

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Failed to open database at {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            if not self._schema_ready:
                conn.executescript(SCHEMA)
                self._schema_ready = True
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
