"""Data models for the accounts module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from email_markdown.config import DEFAULT_ROOT_FOLDER


@dataclass
class StorageConnection:
    """One user's link to one storage provider."""

    user_email: str
    provider: str
    root_folder: str = DEFAULT_ROOT_FOLDER
    drive_id: str | None = None
    folder_id: str | None = None
    consent_granted_at: datetime | None = None
    last_successful_sync: datetime | None = None
    is_active: bool = True


@dataclass
class IdentityLink:
    primary_email: str
    linked_email: str
    provider: str
    created_at: datetime


@dataclass
class UserPreferences:
    """Legacy single-provider record, kept for accounts registered before connections."""

    email: str
    root_folder: str = DEFAULT_ROOT_FOLDER
    storage_provider: str | None = None
    delivery_method: str = "email"
    provider_user_id: str | None = None
    provider_tenant_id: str | None = None
    drive_id: str | None = None
    folder_id: str | None = None
    consent_granted_at: datetime | None = None
    last_successful_sync: datetime | None = None
