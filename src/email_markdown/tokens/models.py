"""Data models for the tokens module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class StoredToken:
    """Encrypted OAuth tokens for one (provider, user) pair.

    ``is_valid`` goes false once ``refresh_failure_count`` reaches the
    store's failure limit and stays false until the user re-authorizes.
    """

    provider: str
    user_email: str
    encrypted_access_token: str
    encrypted_refresh_token: str
    access_token_expiry: datetime
    scopes: str = ""
    provider_user_id: str | None = None
    provider_tenant_id: str | None = None
    is_valid: bool = True
    last_error: str | None = None
    refresh_failure_count: int = 0
    version: int = 0

    def to_status(self) -> dict:
        """Non-secret view suitable for status endpoints."""
        return {
            "provider": self.provider,
            "user_email": self.user_email,
            "is_valid": self.is_valid,
            "access_token_expiry": self.access_token_expiry.isoformat(),
            "scopes": self.scopes,
            "refresh_failure_count": self.refresh_failure_count,
            "last_error": self.last_error,
        }
