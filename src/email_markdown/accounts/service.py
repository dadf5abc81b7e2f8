"""Registration, status and disconnect flows for subscriber accounts."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from email_markdown.accounts.connections import ConnectionStore, PreferencesStore
from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.accounts.models import StorageConnection, UserPreferences
from email_markdown.config import DEFAULT_ROOT_FOLDER
from email_markdown.db import normalize_email, utcnow
from email_markdown.exceptions import TokenError
from email_markdown.storage.router import StorageProviderRouter
from email_markdown.tokens.store import TokenStore


class AccountService:
    """Ties token storage, connections, preferences and identity links together.

    Args:
        tokens: Token store for the provider's OAuth tokens.
        connections: Storage connection store.
        preferences: Legacy preferences store.
        identities: Identity link graph.
        router: Storage provider router used for validation.
        default_root_folder: Root folder when registration names none.
        clock: Returns the current aware UTC time.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        tokens: TokenStore,
        connections: ConnectionStore,
        preferences: PreferencesStore,
        identities: IdentityLinkGraph,
        router: StorageProviderRouter,
        default_root_folder: str = DEFAULT_ROOT_FOLDER,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.tokens = tokens
        self.connections = connections
        self.preferences = preferences
        self.identities = identities
        self.router = router
        self.default_root_folder = default_root_folder
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def register(
        self,
        provider: str,
        email: str,
        access_token: str,
        refresh_token: str | None,
        expires_in: int = 3600,
        root_folder: str | None = None,
        folder_id: str | None = None,
        drive_id: str | None = None,
        delivery_method: str = "storage",
        link_to: str | None = None,
    ) -> StorageConnection:
        """Store tokens obtained by the browser and record the storage connection.

        When ``link_to`` names an already-registered address, the two
        addresses are linked so mail forwarded from either reaches both
        sets of connections.
        """
        email = normalize_email(email)
        storage_provider = self.router.get_provider(provider)
        token_provider = storage_provider.token_provider

        self.logger.info(f"Processing {provider} registration for {email}")
        if not self.tokens.store_tokens_directly(
            token_provider, email, access_token, refresh_token, expires_in,
        ):
            raise TokenError(f"Failed to store {token_provider.value} tokens for {email}")

        now = self._clock()
        root = root_folder or self.default_root_folder
        connection = self.connections.save_connection(StorageConnection(
            user_email=email,
            provider=storage_provider.provider_type.value,
            root_folder=root,
            drive_id=drive_id,
            folder_id=folder_id,
            consent_granted_at=now,
        ))

        token = self.tokens.get_token(token_provider, email)
        self.preferences.save_preferences(UserPreferences(
            email=email,
            root_folder=root,
            storage_provider=token_provider.value,
            delivery_method=delivery_method,
            provider_user_id=token.provider_user_id if token else None,
            provider_tenant_id=token.provider_tenant_id if token else None,
            drive_id=drive_id,
            folder_id=folder_id,
            consent_granted_at=now,
        ))

        if link_to and normalize_email(link_to) != email:
            self.identities.link_identities(link_to, email, token_provider.value)

        self.logger.info(f"Registered {connection.provider} for {email} at {root}")
        return connection

    def status(self, email: str) -> dict:
        prefs = self.preferences.get_preferences(email)
        connections = self.connections.list_connections(email, active_only=False)
        return {
            "email": normalize_email(email),
            "is_registered": prefs is not None or bool(connections),
            "delivery_method": prefs.delivery_method if prefs else None,
            "linked_identities": self.identities.get_identity_group(email)[1:],
            "connections": [
                {
                    "provider": c.provider,
                    "root_folder": c.root_folder,
                    "is_active": c.is_active,
                    "consent_granted_at": c.consent_granted_at.isoformat() if c.consent_granted_at else None,
                    "last_successful_sync": c.last_successful_sync.isoformat() if c.last_successful_sync else None,
                }
                for c in connections
            ],
        }

    def validate(self, email: str) -> dict[str, bool]:
        """Check every active connection's token against its provider."""
        results = {}
        for connection in self.connections.list_connections(email):
            provider = self.router.get_provider(connection.provider)
            results[connection.provider] = provider.validate_connection(email)
        return results

    def disconnect(self, email: str, provider: str, delete_preferences: bool = False) -> None:
        """Revoke the provider's tokens and remove its connection."""
        storage_provider = self.router.get_provider(provider)
        self.tokens.revoke_tokens(storage_provider.token_provider, email)
        self.connections.delete_connection(email, storage_provider.provider_type.value)
        if delete_preferences:
            self.preferences.delete_preferences(email)
        self.logger.info(f"Disconnected {storage_provider.provider_type.value} for {normalize_email(email)}")
