"""Inbound email processing: convert, fan out to storage, reply."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from email.utils import parseaddr
from typing import Callable

from email_markdown.accounts.connections import ConnectionStore, PreferencesStore
from email_markdown.accounts.models import StorageConnection, UserPreferences
from email_markdown.config import DEFAULT_ROOT_FOLDER
from email_markdown.conversion.converter import MarkdownConverter
from email_markdown.conversion.forwarded import (
    extract_forwarded_metadata,
    is_forwarded_email,
    strip_forwarding_prefix,
)
from email_markdown.db import normalize_email, utcnow
from email_markdown.delivery.email_sender import EmailSender
from email_markdown.delivery.filename import generate_file_name
from email_markdown.delivery.models import ConvertedDocument, ProcessingSummary, ProviderResult
from email_markdown.delivery.notification import compose_notification_body
from email_markdown.storage.base import DeliveryOutcome
from email_markdown.storage.router import StorageProviderRouter

STORAGE_METHODS = ("onedrive", "storage", "both")
EMAIL_METHODS = ("email", "both")


def parse_sender(from_header: str | None) -> tuple[str, str]:
    """Split ``"Name <email>"`` or a bare address into (name, email).

    The name falls back to the address's local part, then ``"Unknown"``.
    """
    name, address = parseaddr(from_header or "")
    if not address and from_header and "@" in from_header:
        address = from_header.strip().strip("<>")
    name = name.strip().strip('"').strip()
    if not name:
        name = address.split("@")[0] if address else "Unknown"
    return name or "Unknown", address.strip()


class DeliveryOrchestrator:
    """Processes one inbound email end to end.

    Args:
        converter: HTML to Markdown converter.
        router: Resolves storage providers by name.
        connections: Storage connections, resolved across linked identities.
        preferences: Legacy preferences (delivery method, single provider).
        email_sender: Reply channel; None disables replies.
        max_parallel_saves: Upper bound on concurrent provider saves.
        clock: Returns the current aware UTC time.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        converter: MarkdownConverter,
        router: StorageProviderRouter,
        connections: ConnectionStore,
        preferences: PreferencesStore,
        email_sender: EmailSender | None = None,
        max_parallel_saves: int = 4,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.converter = converter
        self.router = router
        self.connections = connections
        self.preferences = preferences
        self.email_sender = email_sender
        self.max_parallel_saves = max(1, max_parallel_saves)
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # ---- Sync methods ----

    def process_inbound_email(
        self,
        from_header: str,
        subject: str | None,
        html: str | None,
    ) -> ProcessingSummary:
        """Convert an inbound email and deliver it per the forwarder's settings."""
        forwarder_name, forwarder_email = parse_sender(from_header)
        forwarder_email = normalize_email(forwarder_email)
        subject = subject or "No Subject"
        html = html or ""

        document = self.build_document(forwarder_name, forwarder_email, subject, html)
        self.logger.info(f"Processing email from {forwarder_email} - Subject: {document.subject}")

        prefs = self.preferences.get_preferences(forwarder_email)
        if prefs is None:
            self.logger.warning(f"No user preferences found for {forwarder_email}")
            prefs = UserPreferences(email=forwarder_email)
        method = prefs.delivery_method or "email"

        results: list[ProviderResult] = []
        if method in STORAGE_METHODS:
            results = self._deliver_to_storage(forwarder_email, prefs, document)

        failed = [r for r in results if not r.outcome.success]
        email_sent = False
        if method in EMAIL_METHODS or failed:
            email_sent = self._send_reply(forwarder_name, forwarder_email, method, document, results)

        any_storage_success = any(r.outcome.success for r in results)
        if method == "email":
            success = email_sent
        elif method in ("onedrive", "storage"):
            success = any_storage_success
        else:
            success = email_sent or any_storage_success

        summary = ProcessingSummary(
            success=success,
            delivery_method=method,
            email_sent=email_sent,
            file_name=document.file_name,
            results=results,
        )
        log = self.logger.info if success else self.logger.error
        log(f"{forwarder_email}: {summary.message}")
        return summary

    def build_document(
        self,
        forwarder_name: str,
        forwarder_email: str,
        subject: str,
        html: str,
    ) -> ConvertedDocument:
        """Convert the email, attributing forwarded mail to its original sender."""
        display_name, display_email = forwarder_name, forwarder_email
        received_at = self._clock()

        if is_forwarded_email(subject):
            subject = strip_forwarding_prefix(subject)
            metadata = extract_forwarded_metadata(html, log=self.logger)
            if metadata is not None:
                if metadata.sender_email:
                    display_email = metadata.sender_email
                    display_name = metadata.sender_name or metadata.sender_email.split("@")[0]
                if metadata.sent_date is not None:
                    received_at = metadata.sent_date

        content = self.converter.convert_to_markdown_bytes(
            subject, display_name, display_email, received_at, html,
        )
        return ConvertedDocument(
            content=content,
            file_name=generate_file_name(received_at, display_name, subject),
            subject=subject,
            sender_name=display_name,
            sender_email=display_email,
            received_at=received_at,
        )

    # ---- Async methods ----

    async def aprocess_inbound_email(
        self,
        from_header: str,
        subject: str | None,
        html: str | None,
    ) -> ProcessingSummary:
        return await asyncio.to_thread(self.process_inbound_email, from_header, subject, html)

    # ---- Storage fan-out ----

    def _deliver_to_storage(
        self,
        forwarder_email: str,
        prefs: UserPreferences,
        document: ConvertedDocument,
    ) -> list[ProviderResult]:
        try:
            connections = self.connections.get_all_connections_for_user(forwarder_email)
        except Exception as e:
            self.logger.error(f"Failed to retrieve storage connections for {forwarder_email}: {e}")
            connections = []

        if connections:
            workers = min(self.max_parallel_saves, len(connections))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                return list(pool.map(lambda c: self._save_connection(c, document), connections))

        if prefs.storage_provider:
            return [self._save_legacy(prefs, document)]

        self.logger.warning(f"No storage connections configured for {forwarder_email}")
        return []

    def _save(self, provider_name: str, user_email: str, root_folder: str, document: ConvertedDocument) -> DeliveryOutcome:
        try:
            provider = self.router.get_provider(provider_name)
            outcome = provider.save_file(user_email, root_folder, document.file_name, document.content)
        except Exception as e:
            self.logger.error(f"Exception saving to {provider_name} for {user_email}: {e}")
            return DeliveryOutcome.failed(str(e))

        if outcome.success:
            self.logger.info(f"File saved to {provider_name}: {outcome.file_path}")
        elif outcome.requires_reauth:
            self.logger.warning(f"Re-authentication required for {provider_name}: {outcome.error_message}")
        else:
            self.logger.error(f"Failed to save to {provider_name}: {outcome.error_message}")
        return outcome

    def _save_connection(self, connection: StorageConnection, document: ConvertedDocument) -> ProviderResult:
        outcome = self._save(
            connection.provider,
            connection.user_email,
            connection.root_folder or DEFAULT_ROOT_FOLDER,
            document,
        )
        if outcome.success:
            try:
                self.connections.mark_synced(connection.user_email, connection.provider, self._clock())
            except Exception as e:
                self.logger.warning(f"Could not record sync time for {connection.provider}: {e}")
        return ProviderResult(connection.provider, connection.user_email, outcome)

    def _save_legacy(self, prefs: UserPreferences, document: ConvertedDocument) -> ProviderResult:
        outcome = self._save(
            prefs.storage_provider,
            prefs.email,
            prefs.root_folder or DEFAULT_ROOT_FOLDER,
            document,
        )
        if outcome.success:
            prefs.last_successful_sync = self._clock()
            try:
                self.preferences.save_preferences(prefs)
            except Exception as e:
                self.logger.warning(f"Could not record sync time in preferences: {e}")
        return ProviderResult(prefs.storage_provider, prefs.email, outcome)

    # ---- Reply ----

    def _send_reply(
        self,
        to_name: str,
        to_email: str,
        method: str,
        document: ConvertedDocument,
        results: list[ProviderResult],
    ) -> bool:
        if self.email_sender is None:
            self.logger.warning("No email sender configured; reply not sent")
            return False

        body = compose_notification_body(method, results)
        try:
            sent = self.email_sender.send_with_attachment(
                to_email,
                to_name,
                f"Re: {document.subject}",
                body,
                document.file_name,
                document.content,
            )
        except Exception as e:
            self.logger.error(f"Failed to send reply to {to_email}: {e}")
            return False

        if sent:
            self.logger.info(f"Markdown sent via email to {to_email}")
        else:
            self.logger.error(f"Email send to {to_email} was not accepted")
        return sent
