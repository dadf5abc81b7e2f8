"""Data models for the conversion module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class ForwardedMetadata:
    """Original sender details recovered from a forwarding header."""

    sender_name: str = ""
    sender_email: str = ""
    sent_date: datetime | None = None
