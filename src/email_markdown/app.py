"""Wires the pipeline's components from Settings."""

from __future__ import annotations

import logging

from email_markdown.accounts.connections import ConnectionStore, PreferencesStore
from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.accounts.service import AccountService
from email_markdown.config import Settings
from email_markdown.conversion.converter import MarkdownConverter
from email_markdown.conversion.sanitizer import HtmlSanitizer
from email_markdown.db import Database
from email_markdown.delivery.email_sender import EmailSender, SendGridEmailSender
from email_markdown.delivery.orchestrator import DeliveryOrchestrator
from email_markdown.storage.google_drive import GoogleDriveStorageProvider
from email_markdown.storage.onedrive import OneDriveStorageProvider
from email_markdown.storage.router import StorageProviderRouter
from email_markdown.tokens.encryption import TokenCipher
from email_markdown.tokens.providers import ClientCredentials
from email_markdown.tokens.store import TokenStore

logger = logging.getLogger(__name__)


def build_token_store(settings: Settings, db: Database) -> TokenStore:
    credentials = {
        name: ClientCredentials(client_id, secret)
        for name, (client_id, secret) in settings.client_credentials().items()
        if client_id
    }
    return TokenStore(
        db,
        TokenCipher(settings.encryption_keys),
        credentials,
        timeout=settings.oauth_timeout,
    )


def build_router(settings: Settings, tokens: TokenStore) -> StorageProviderRouter:
    return StorageProviderRouter([
        OneDriveStorageProvider(tokens, timeout=settings.provider_timeout),
        GoogleDriveStorageProvider(tokens),
    ])


def build_email_sender(settings: Settings) -> EmailSender | None:
    if not settings.sendgrid_api_key:
        logger.warning("SENDGRID_API_KEY not set; email replies are disabled")
        return None
    return SendGridEmailSender(
        settings.sendgrid_api_key,
        settings.sender_email,
        sender_name=settings.sender_name,
    )


def build_orchestrator(settings: Settings | None = None) -> DeliveryOrchestrator:
    """Build a DeliveryOrchestrator from settings (default: the environment)."""
    settings = settings or Settings.from_env()
    db = Database(settings.db_path)
    tokens = build_token_store(settings, db)
    identities = IdentityLinkGraph(db)

    sanitizer = HtmlSanitizer(
        dominance_ratio=settings.dominance_ratio,
        content_loss_ratio=settings.content_loss_ratio,
    )
    converter = MarkdownConverter(
        sanitizer=sanitizer,
        pandoc_path=settings.pandoc_path,
        pandoc_timeout=settings.pandoc_timeout,
    )
    return DeliveryOrchestrator(
        converter=converter,
        router=build_router(settings, tokens),
        connections=ConnectionStore(db, identities),
        preferences=PreferencesStore(db),
        email_sender=build_email_sender(settings),
        max_parallel_saves=settings.max_parallel_saves,
    )


def build_account_service(settings: Settings | None = None) -> AccountService:
    settings = settings or Settings.from_env()
    db = Database(settings.db_path)
    tokens = build_token_store(settings, db)
    identities = IdentityLinkGraph(db)
    return AccountService(
        tokens=tokens,
        connections=ConnectionStore(db, identities),
        preferences=PreferencesStore(db),
        identities=identities,
        router=build_router(settings, tokens),
        default_root_folder=settings.default_root_folder,
    )
