"""Google Drive storage via the Drive v3 API."""

from __future__ import annotations

import logging
from typing import Any

from google.oauth2.credentials import Credentials
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaInMemoryUpload

from email_markdown.storage.base import (
    DeliveryOutcome,
    FolderInfo,
    StorageProvider,
    StorageProviderType,
    build_dated_path,
    extract_error_message,
    is_reauth_status,
)
from email_markdown.tokens.providers import OAuthProvider
from email_markdown.tokens.store import TokenStore

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
MARKDOWN_MIME_TYPE = "text/markdown"
ROOT_FOLDER_ID = "root"


def _escape_query(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _web_url(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def _http_error_message(e: HttpError) -> str:
    return extract_error_message(e.content) or f"Drive request failed with status {e.resp.status}"


class GoogleDriveStorageProvider(StorageProvider):
    """Saves files to the user's Google Drive.

    Drive addresses folders by id, so the dated folder chain is resolved one
    segment at a time from ``root``, creating missing folders as it goes.

    Args:
        tokens: Source of Google access tokens.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(self, tokens: TokenStore, logger: logging.Logger | None = None):
        self.tokens = tokens
        self.logger = logger or logging.getLogger(__name__)

    @property
    def provider_type(self) -> StorageProviderType:
        return StorageProviderType.GOOGLE_DRIVE

    @property
    def token_provider(self) -> OAuthProvider:
        return OAuthProvider.GOOGLE

    def _service(self, access_token: str) -> Any:
        from googleapiclient.discovery import build

        credentials = Credentials(token=access_token)
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    # ---- StorageProvider ----

    def save_file(
        self,
        user_email: str,
        root_folder: str,
        file_name: str,
        content: bytes,
    ) -> DeliveryOutcome:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            self.logger.warning(f"No valid Google token for {user_email}")
            return DeliveryOutcome.failed("No valid token available", requires_reauth=True)

        folder_path = build_dated_path(root_folder)
        full_path = f"{folder_path}/{file_name}"
        self.logger.info(f"Saving to Google Drive for {user_email}: {full_path}")

        try:
            service = self._service(access_token)
            folder_id = self._ensure_folder_path(service, folder_path)
            media = MediaInMemoryUpload(content, mimetype=MARKDOWN_MIME_TYPE, resumable=False)

            existing_id = self._find_child(service, folder_id, file_name)
            if existing_id:
                result = service.files().update(
                    fileId=existing_id,
                    media_body=media,
                    fields="id,name,webViewLink",
                ).execute()
            else:
                result = service.files().create(
                    body={"name": file_name, "parents": [folder_id], "mimeType": MARKDOWN_MIME_TYPE},
                    media_body=media,
                    fields="id,name,webViewLink",
                ).execute()
        except HttpError as e:
            status = e.resp.status
            message = _http_error_message(e)
            self.logger.error(f"Google Drive rejected upload for {user_email} ({status}): {message}")
            return DeliveryOutcome.failed(message, requires_reauth=is_reauth_status(status))
        except Exception as e:
            self.logger.error(f"Google Drive upload failed for {user_email}: {e}")
            return DeliveryOutcome.failed(f"Google Drive upload failed: {e}")

        file_id = result["id"]
        self.logger.info(f"Saved {full_path} to Google Drive (id={file_id})")
        return DeliveryOutcome.succeeded(
            file_path=full_path,
            file_id=file_id,
            web_url=result.get("webViewLink") or _web_url(file_id),
        )

    def validate_connection(self, user_email: str) -> bool:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            return False
        try:
            self._service(access_token).about().get(fields="user").execute()
        except Exception as e:
            self.logger.error(f"Google Drive validation failed for {user_email}: {e}")
            return False
        return True

    def list_folders(self, user_email: str, parent_path: str = "/") -> list[FolderInfo]:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            return []

        parent = (parent_path or "/").rstrip("/")
        try:
            service = self._service(access_token)
            parent_id = self._resolve_folder_path(service, parent) if parent else ROOT_FOLDER_ID
            if parent_id is None:
                return []
            result = service.files().list(
                q=(
                    f"'{_escape_query(parent_id)}' in parents and "
                    f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
                ),
                fields="files(id,name)",
                spaces="drive",
            ).execute()
        except Exception as e:
            self.logger.error(f"Failed to list Google Drive folders for {user_email}: {e}")
            return []

        # Drive does not report child counts; assume a folder may have children.
        return [
            FolderInfo(id=f["id"], name=f["name"], path=f"{parent}/{f['name']}", has_children=True)
            for f in result.get("files", [])
        ]

    # ---- Folder resolution ----

    def _find_child(
        self,
        service: Any,
        parent_id: str,
        name: str,
        folders_only: bool = False,
    ) -> str | None:
        query = f"name='{_escape_query(name)}' and '{_escape_query(parent_id)}' in parents and trashed=false"
        if folders_only:
            query += f" and mimeType='{FOLDER_MIME_TYPE}'"
        result = service.files().list(q=query, fields="files(id,name)", spaces="drive").execute()
        files = result.get("files", [])
        return files[0]["id"] if files else None

    def _resolve_folder_path(self, service: Any, path: str) -> str | None:
        parent_id = ROOT_FOLDER_ID
        for segment in (s for s in path.split("/") if s):
            parent_id = self._find_child(service, parent_id, segment, folders_only=True)
            if parent_id is None:
                return None
        return parent_id

    def _ensure_folder_path(self, service: Any, path: str) -> str:
        parent_id = ROOT_FOLDER_ID
        for segment in (s for s in path.split("/") if s):
            folder_id = self._find_child(service, parent_id, segment, folders_only=True)
            if folder_id is None:
                created = service.files().create(
                    body={"name": segment, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                    fields="id",
                ).execute()
                folder_id = created["id"]
                self.logger.debug(f"Created Drive folder {segment} ({folder_id})")
            parent_id = folder_id
        return parent_id
