"""OneDrive storage via the Microsoft Graph REST API."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

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

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


def _graph_path(path: str) -> str:
    path = "/" + path.strip("/")
    return quote(path, safe="/")


class OneDriveStorageProvider(StorageProvider):
    """Saves files to the signed-in user's OneDrive.

    Uploads are path-based PUTs, so Graph creates intermediate folders and
    replaces an existing file of the same name.

    Args:
        tokens: Source of delegated Microsoft access tokens.
        timeout: Seconds allowed per Graph request.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        tokens: TokenStore,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        self.tokens = tokens
        self.timeout = timeout
        self._transport = transport
        self.logger = logger or logging.getLogger(__name__)

    @property
    def provider_type(self) -> StorageProviderType:
        return StorageProviderType.ONEDRIVE

    @property
    def token_provider(self) -> OAuthProvider:
        return OAuthProvider.MICROSOFT

    def _client(self, access_token: str) -> httpx.Client:
        return httpx.Client(
            base_url=GRAPH_BASE_URL,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def save_file(
        self,
        user_email: str,
        root_folder: str,
        file_name: str,
        content: bytes,
    ) -> DeliveryOutcome:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            self.logger.warning(f"No valid Microsoft token for {user_email}")
            return DeliveryOutcome.failed("No valid token available", requires_reauth=True)

        full_path = f"{build_dated_path(root_folder)}/{file_name}"
        self.logger.info(f"Saving to OneDrive for {user_email}: {full_path}")

        try:
            with self._client(access_token) as client:
                response = client.put(
                    f"/me/drive/root:{_graph_path(full_path)}:/content",
                    params={"@microsoft.graph.conflictBehavior": "replace"},
                    content=content,
                    headers={"Content-Type": "text/markdown"},
                )
        except httpx.HTTPError as e:
            self.logger.error(f"OneDrive upload failed for {user_email}: {e}")
            return DeliveryOutcome.failed(f"OneDrive request failed: {e}")

        if response.status_code >= 400:
            message = (
                extract_error_message(response.content)
                or f"Upload failed with status {response.status_code}"
            )
            reauth = is_reauth_status(response.status_code)
            self.logger.error(f"OneDrive rejected upload for {user_email} ({response.status_code}): {message}")
            return DeliveryOutcome.failed(message, requires_reauth=reauth)

        item = response.json()
        self.logger.info(f"Saved {full_path} to OneDrive (id={item.get('id')})")
        return DeliveryOutcome.succeeded(
            file_path=full_path,
            file_id=item.get("id"),
            web_url=item.get("webUrl"),
        )

    def validate_connection(self, user_email: str) -> bool:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            return False
        try:
            with self._client(access_token) as client:
                response = client.get("/me/drive", params={"$select": "id"})
        except httpx.HTTPError as e:
            self.logger.error(f"OneDrive validation failed for {user_email}: {e}")
            return False
        return response.is_success

    def list_folders(self, user_email: str, parent_path: str = "/") -> list[FolderInfo]:
        access_token = self.tokens.get_valid_access_token(self.token_provider, user_email)
        if access_token is None:
            return []

        parent = (parent_path or "/").rstrip("/")
        url = (
            f"/me/drive/root:{_graph_path(parent)}:/children" if parent
            else "/me/drive/root/children"
        )
        try:
            with self._client(access_token) as client:
                response = client.get(url, params={"$select": "id,name,folder"})
                response.raise_for_status()
                items = response.json().get("value", [])
        except httpx.HTTPError as e:
            self.logger.error(f"Failed to list OneDrive folders for {user_email}: {e}")
            return []

        return [
            FolderInfo(
                id=item["id"],
                name=item["name"],
                path=f"{parent}/{item['name']}",
                has_children=item["folder"].get("childCount", 0) > 0,
            )
            for item in items
            if "folder" in item
        ]
