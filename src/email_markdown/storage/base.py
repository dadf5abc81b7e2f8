"""Storage provider contract and shared result types."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from email_markdown.db import utcnow
from email_markdown.tokens.providers import OAuthProvider


class StorageProviderType(str, Enum):
    ONEDRIVE = "onedrive"
    GOOGLE_DRIVE = "googledrive"


@dataclass
class DeliveryOutcome:
    """Result of saving one file to one provider."""

    success: bool
    file_path: str | None = None
    file_id: str | None = None
    web_url: str | None = None
    error_message: str | None = None
    requires_reauth: bool = False

    @classmethod
    def succeeded(
        cls,
        file_path: str,
        file_id: str | None = None,
        web_url: str | None = None,
    ) -> DeliveryOutcome:
        return cls(success=True, file_path=file_path, file_id=file_id, web_url=web_url)

    @classmethod
    def failed(cls, error_message: str, requires_reauth: bool = False) -> DeliveryOutcome:
        return cls(success=False, error_message=error_message, requires_reauth=requires_reauth)


@dataclass
class FolderInfo:
    id: str
    name: str
    path: str
    has_children: bool = False


def build_dated_path(root_folder: str, now: datetime | None = None) -> str:
    """``{root}/{yyyy}/{mm}/{dd}`` for the given (default: current UTC) time."""
    now = now or utcnow()
    root = (root_folder or "").rstrip("/")
    return f"{root}/{now:%Y}/{now:%m}/{now:%d}"


def is_reauth_status(status_code: int) -> bool:
    return status_code in (401, 403)


def extract_error_message(body: bytes | str | None) -> str | None:
    """Pull ``error.message`` out of a JSON error body, if present."""
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return data.get("error_description") or error
    return None


class StorageProvider(ABC):
    """Abstract interface for a cloud storage destination."""

    @property
    @abstractmethod
    def provider_type(self) -> StorageProviderType:
        ...

    @property
    @abstractmethod
    def token_provider(self) -> OAuthProvider:
        """OAuth provider whose token this storage backend uses."""
        ...

    @abstractmethod
    def save_file(
        self,
        user_email: str,
        root_folder: str,
        file_name: str,
        content: bytes,
    ) -> DeliveryOutcome:
        """Save under ``{root}/{yyyy}/{mm}/{dd}/{file_name}``, replacing any existing file."""
        ...

    @abstractmethod
    def validate_connection(self, user_email: str) -> bool:
        """Check that the stored token still grants access."""
        ...

    @abstractmethod
    def list_folders(self, user_email: str, parent_path: str = "/") -> list[FolderInfo]:
        """List the folders directly under ``parent_path``."""
        ...
