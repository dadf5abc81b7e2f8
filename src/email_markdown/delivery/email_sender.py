"""Outbound email with a Markdown attachment."""

from __future__ import annotations

import base64
import logging
import time
from abc import ABC, abstractmethod

import httpx

from email_markdown.exceptions import EmailSendError

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailSender(ABC):
    """Abstract interface for the reply channel."""

    @abstractmethod
    def send_with_attachment(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body: str,
        file_name: str,
        content: bytes,
    ) -> bool:
        """Send ``body`` with ``content`` attached as ``file_name``; True on success."""
        ...


class SendGridEmailSender(EmailSender):
    """Sends mail through the SendGrid v3 API.

    Rate-limited requests (HTTP 429) are retried with exponential backoff
    (1s, 2s, ...) up to ``max_retries`` attempts in total.

    Args:
        api_key: SendGrid API key.
        sender_email: From address.
        sender_name: From display name.
        max_retries: Total attempts, including the first.
        timeout: Seconds allowed per request.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str = "Email to Markdown",
        max_retries: int = 3,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        if not api_key:
            raise EmailSendError(
                "SendGrid API key is required. "
                "Pass it directly or set SENDGRID_API_KEY in your environment."
            )
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.max_retries = max_retries
        self.timeout = timeout
        self._transport = transport
        self.logger = logger or logging.getLogger(__name__)

    def build_payload(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body: str,
        file_name: str,
        content: bytes,
    ) -> dict:
        return {
            "personalizations": [{"to": [{"email": to_email, "name": to_name}]}],
            "from": {"email": self.sender_email, "name": self.sender_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": body},
                {"type": "text/html", "value": body},
            ],
            "attachments": [
                {
                    "content": base64.b64encode(content).decode("ascii"),
                    "filename": file_name,
                    "type": "text/markdown",
                    "disposition": "attachment",
                }
            ],
        }

    def send_with_attachment(
        self,
        to_email: str,
        to_name: str,
        subject: str,
        body: str,
        file_name: str,
        content: bytes,
    ) -> bool:
        payload = self.build_payload(to_email, to_name, subject, body, file_name, content)
        headers = {"Authorization": f"Bearer {self.api_key}"}

        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(self.max_retries):
                try:
                    response = client.post(SENDGRID_SEND_URL, json=payload, headers=headers)
                except httpx.HTTPError as e:
                    self.logger.error(f"SendGrid request to {to_email} failed: {e}")
                    return False

                if response.status_code == 429 and attempt < self.max_retries - 1:
                    wait = 2 ** attempt
                    self.logger.warning(f"Rate limited (429), retrying in {wait}s (attempt {attempt + 1})")
                    time.sleep(wait)
                    continue

                if response.is_success:
                    self.logger.info(f"SendGrid accepted mail to {to_email} ({response.status_code})")
                    return True

                self.logger.error(f"SendGrid failed: {response.status_code} - {response.text}")
                return False
        return False
