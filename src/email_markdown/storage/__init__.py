"""Cloud storage destinations for converted documents."""

from email_markdown.storage.base import (
    DeliveryOutcome,
    FolderInfo,
    StorageProvider,
    StorageProviderType,
    build_dated_path,
)
from email_markdown.storage.google_drive import GoogleDriveStorageProvider
from email_markdown.storage.onedrive import OneDriveStorageProvider
from email_markdown.storage.router import StorageProviderRouter, resolve_provider_type

__all__ = [
    "DeliveryOutcome",
    "FolderInfo",
    "GoogleDriveStorageProvider",
    "OneDriveStorageProvider",
    "StorageProvider",
    "StorageProviderRouter",
    "StorageProviderType",
    "build_dated_path",
    "resolve_provider_type",
]
