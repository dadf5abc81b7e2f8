"""File names for converted documents."""

from __future__ import annotations

import re
from datetime import datetime

MAX_FIELD_LENGTH = 50

_INVALID_CHARS_RE = re.compile(r"[^\w\-.]")


def sanitize_file_name_part(value: str, max_length: int = MAX_FIELD_LENGTH) -> str:
    """Keep word characters, ``-`` and ``.``; truncate to ``max_length``."""
    return _INVALID_CHARS_RE.sub("", value or "")[:max_length]


def generate_file_name(date: datetime, sender_name: str, subject: str) -> str:
    """``{yyyy-MM-dd}-{sender}-{subject}.md``.

    >>> generate_file_name(datetime(2026, 1, 28), "Jane/Doe", "Re: Project Update?!")
    '2026-01-28-JaneDoe-ReProjectUpdate.md'
    """
    sender = sanitize_file_name_part(sender_name)
    title = sanitize_file_name_part(subject)
    return f"{date:%Y-%m-%d}-{sender}-{title}.md"
