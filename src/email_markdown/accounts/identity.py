"""Symmetric links between email addresses belonging to one person."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from email_markdown.accounts.models import IdentityLink
from email_markdown.db import Database, from_iso, normalize_email, to_iso, utcnow


class IdentityLinkGraph:
    """Stores direct edges between linked addresses.

    Every link is written in both directions. Group resolution follows one
    hop only: if A is linked to B and B to C, A's group is ``[A, B]``.
    """

    def __init__(
        self,
        db: Database,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.db = db
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def link_identities(self, primary_email: str, linked_email: str, provider: str) -> None:
        primary = normalize_email(primary_email)
        linked = normalize_email(linked_email)
        if primary == linked:
            self.logger.debug(f"Not linking {primary} to itself")
            return

        created_at = to_iso(self._clock())
        with self.db.connect() as conn:
            for a, b in ((primary, linked), (linked, primary)):
                conn.execute(
                    """INSERT INTO identity_links (primary_email, linked_email, provider, created_at)
                       VALUES (?, ?, ?, ?)
                       ON CONFLICT (primary_email, linked_email) DO UPDATE SET
                        provider = excluded.provider""",
                    (a, b, provider.lower(), created_at),
                )
        self.logger.info(f"Linked {primary} <-> {linked} via {provider}")

    def get_linked_identities(self, email: str) -> list[IdentityLink]:
        with self.db.connect() as conn:
            rows = conn.execute(
                """SELECT primary_email, linked_email, provider, created_at
                   FROM identity_links WHERE primary_email = ?
                   ORDER BY created_at, linked_email""",
                (normalize_email(email),),
            ).fetchall()
        return [
            IdentityLink(
                primary_email=row["primary_email"],
                linked_email=row["linked_email"],
                provider=row["provider"],
                created_at=from_iso(row["created_at"]),
            )
            for row in rows
        ]

    def get_identity_group(self, email: str) -> list[str]:
        """The email itself followed by its direct links."""
        email = normalize_email(email)
        group = [email]
        for link in self.get_linked_identities(email):
            if link.linked_email not in group:
                group.append(link.linked_email)
        return group

    def unlink_identities(self, primary_email: str, linked_email: str) -> None:
        primary = normalize_email(primary_email)
        linked = normalize_email(linked_email)
        with self.db.connect() as conn:
            conn.execute(
                """DELETE FROM identity_links
                   WHERE (primary_email = ? AND linked_email = ?)
                      OR (primary_email = ? AND linked_email = ?)""",
                (primary, linked, linked, primary),
            )
        self.logger.info(f"Unlinked {primary} <-> {linked}")
