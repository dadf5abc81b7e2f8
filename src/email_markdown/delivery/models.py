"""Data models for the delivery module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from email_markdown.storage.base import DeliveryOutcome


@dataclass
class ConvertedDocument:
    """A converted email ready to be stored or attached."""

    content: bytes
    file_name: str
    subject: str
    sender_name: str
    sender_email: str
    received_at: datetime


@dataclass
class ProviderResult:
    provider: str
    user_email: str
    outcome: DeliveryOutcome


@dataclass
class ProcessingSummary:
    """Overall result of one inbound email, returned to the webhook caller."""

    success: bool
    delivery_method: str
    email_sent: bool = False
    file_name: str | None = None
    results: list[ProviderResult] = field(default_factory=list)

    @property
    def succeeded_providers(self) -> list[str]:
        return [r.provider for r in self.results if r.outcome.success]

    @property
    def failed_providers(self) -> list[str]:
        return [r.provider for r in self.results if not r.outcome.success]

    @property
    def reauth_providers(self) -> list[str]:
        return [
            r.provider for r in self.results
            if not r.outcome.success and r.outcome.requires_reauth
        ]

    @property
    def message(self) -> str:
        if not self.success:
            message = "Failed to process email - no delivery methods succeeded."
        else:
            message = "Email processed successfully."
        if self.succeeded_providers:
            message += f" Saved to: {', '.join(self.succeeded_providers)}."
        if self.failed_providers:
            message += f" Failed: {', '.join(self.failed_providers)}."
        if not self.success and self.reauth_providers:
            message += f" Re-authentication required: {', '.join(self.reauth_providers)}."
        return message
