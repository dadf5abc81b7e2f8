"""Storage connection and legacy preference persistence."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable

from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.accounts.models import StorageConnection, UserPreferences
from email_markdown.db import (
    PREFERENCES_PARTITION,
    Database,
    from_iso,
    normalize_email,
    to_iso,
    utcnow,
)


def _row_to_connection(row: sqlite3.Row) -> StorageConnection:
    return StorageConnection(
        user_email=row["user_email"],
        provider=row["provider"],
        root_folder=row["root_folder"],
        drive_id=row["drive_id"],
        folder_id=row["folder_id"],
        consent_granted_at=from_iso(row["consent_granted_at"]),
        last_successful_sync=from_iso(row["last_successful_sync"]),
        is_active=bool(row["is_active"]),
    )


class ConnectionStore:
    """CRUD for ``storage_connections`` plus identity-group lookups.

    Args:
        db: Database holding the ``storage_connections`` table.
        identities: Resolves linked addresses for
            :meth:`get_all_connections_for_user`.
        clock: Returns the current aware UTC time.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        db: Database,
        identities: IdentityLinkGraph,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.db = db
        self.identities = identities
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def save_connection(self, connection: StorageConnection) -> StorageConnection:
        connection.user_email = normalize_email(connection.user_email)
        connection.provider = connection.provider.lower()
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO storage_connections
                   (user_email, provider, root_folder, drive_id, folder_id,
                    consent_granted_at, last_successful_sync, is_active)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT (user_email, provider) DO UPDATE SET
                    root_folder = excluded.root_folder,
                    drive_id = excluded.drive_id,
                    folder_id = excluded.folder_id,
                    consent_granted_at = excluded.consent_granted_at,
                    last_successful_sync = excluded.last_successful_sync,
                    is_active = excluded.is_active""",
                (
                    connection.user_email,
                    connection.provider,
                    connection.root_folder,
                    connection.drive_id,
                    connection.folder_id,
                    to_iso(connection.consent_granted_at),
                    to_iso(connection.last_successful_sync),
                    int(connection.is_active),
                ),
            )
        self.logger.info(f"Saved {connection.provider} connection for {connection.user_email}")
        return connection

    def get_connection(self, email: str, provider: str) -> StorageConnection | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM storage_connections WHERE user_email = ? AND provider = ?",
                (normalize_email(email), provider.lower()),
            ).fetchone()
        return _row_to_connection(row) if row else None

    def list_connections(self, email: str, active_only: bool = True) -> list[StorageConnection]:
        query = "SELECT * FROM storage_connections WHERE user_email = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY provider"
        with self.db.connect() as conn:
            rows = conn.execute(query, (normalize_email(email),)).fetchall()
        return [_row_to_connection(row) for row in rows]

    def delete_connection(self, email: str, provider: str) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM storage_connections WHERE user_email = ? AND provider = ?",
                (normalize_email(email), provider.lower()),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            self.logger.info(f"Deleted {provider} connection for {email}")
        return deleted

    def deactivate_connection(self, email: str, provider: str) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "UPDATE storage_connections SET is_active = 0 WHERE user_email = ? AND provider = ?",
                (normalize_email(email), provider.lower()),
            )
            updated = cursor.rowcount > 0
        if updated:
            self.logger.info(f"Deactivated {provider} connection for {email}")
        return updated

    def mark_synced(self, email: str, provider: str, when: datetime | None = None) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """UPDATE storage_connections SET last_successful_sync = ?
                   WHERE user_email = ? AND provider = ?""",
                (to_iso(when or self._clock()), normalize_email(email), provider.lower()),
            )

    def get_all_connections_for_user(self, email: str) -> list[StorageConnection]:
        """Active connections across the identity group, first seen per provider wins."""
        by_provider: dict[str, StorageConnection] = {}
        for identity in self.identities.get_identity_group(email):
            for connection in self.list_connections(identity):
                by_provider.setdefault(connection.provider, connection)
        self.logger.debug(
            f"Resolved {len(by_provider)} connection(s) for {email}: {sorted(by_provider)}"
        )
        return list(by_provider.values())


class PreferencesStore:
    """Legacy ``user_preferences`` records under a fixed partition."""

    def __init__(self, db: Database, logger: logging.Logger | None = None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def get_preferences(self, email: str) -> UserPreferences | None:
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_preferences WHERE partition = ? AND email = ?",
                (PREFERENCES_PARTITION, normalize_email(email)),
            ).fetchone()
        if row is None:
            return None
        return UserPreferences(
            email=row["email"],
            root_folder=row["root_folder"],
            storage_provider=row["storage_provider"],
            delivery_method=row["delivery_method"],
            provider_user_id=row["provider_user_id"],
            provider_tenant_id=row["provider_tenant_id"],
            drive_id=row["drive_id"],
            folder_id=row["folder_id"],
            consent_granted_at=from_iso(row["consent_granted_at"]),
            last_successful_sync=from_iso(row["last_successful_sync"]),
        )

    def save_preferences(self, prefs: UserPreferences) -> UserPreferences:
        prefs.email = normalize_email(prefs.email)
        with self.db.connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO user_preferences
                   (partition, email, root_folder, storage_provider, delivery_method,
                    provider_user_id, provider_tenant_id, drive_id, folder_id,
                    consent_granted_at, last_successful_sync)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    PREFERENCES_PARTITION,
                    prefs.email,
                    prefs.root_folder,
                    prefs.storage_provider,
                    prefs.delivery_method,
                    prefs.provider_user_id,
                    prefs.provider_tenant_id,
                    prefs.drive_id,
                    prefs.folder_id,
                    to_iso(prefs.consent_granted_at),
                    to_iso(prefs.last_successful_sync),
                ),
            )
        return prefs

    def delete_preferences(self, email: str) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM user_preferences WHERE partition = ? AND email = ?",
                (PREFERENCES_PARTITION, normalize_email(email)),
            )
            return cursor.rowcount > 0
