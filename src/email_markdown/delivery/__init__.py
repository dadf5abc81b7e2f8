"""Inbound email processing and delivery."""

from email_markdown.delivery.email_sender import EmailSender, SendGridEmailSender
from email_markdown.delivery.filename import generate_file_name
from email_markdown.delivery.models import ConvertedDocument, ProcessingSummary, ProviderResult
from email_markdown.delivery.notification import compose_notification_body
from email_markdown.delivery.orchestrator import DeliveryOrchestrator, parse_sender

__all__ = [
    "ConvertedDocument",
    "DeliveryOrchestrator",
    "EmailSender",
    "ProcessingSummary",
    "ProviderResult",
    "SendGridEmailSender",
    "compose_notification_body",
    "generate_file_name",
    "parse_sender",
]
