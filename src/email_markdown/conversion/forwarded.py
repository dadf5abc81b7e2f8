"""Detect forwarded emails and recover the original sender from the header block."""

from __future__ import annotations

import html as html_module
import logging
import re
from datetime import datetime

import dateutil.parser as parser
from bs4 import BeautifulSoup

from email_markdown.conversion.models import ForwardedMetadata

logger = logging.getLogger(__name__)

OUTLOOK_REFERENCE_SELECTOR = 'div[class*="ms-outlook-mobile-reference-message"]'

MAX_HEADER_LENGTH = 500
MAX_FROM_OFFSET = 100

_FORWARD_SUBJECT_RE = re.compile(r"^(?:FW|Fwd|FWD):", re.IGNORECASE)
_PREFIX_RUN_RE = re.compile(r"^(\s*(?:FW|Fwd|RE|Re)\s*:\s*)+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")

_FROM_NAMED_RE = re.compile(r"From:\s*([^<>:\n\r]+?)\s*<\s*([^<>\s]+@[^<>\s]+)\s*>", re.IGNORECASE)
_FROM_BARE_RE = re.compile(r"From:\s*([\w.\-+]+@[\w.\-]+\.\w+)", re.IGNORECASE)
_DATE_RE = re.compile(
    r"(?:Date|Sent):\s*(.+?)(?=\s*(?:To:|Subject:|Cc:|$))",
    re.IGNORECASE | re.DOTALL,
)

# Tried in order before falling back to dateutil's generic parser.
DATE_FORMATS = [
    "%A, %B %d, %Y %I:%M %p",
    "%B %d, %Y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%Y-%m-%d %H:%M:%S",
    "%a, %d %b %Y %H:%M:%S",
]


def is_forwarded_email(subject: str | None) -> bool:
    """True when the subject starts with FW:, Fwd: or FWD:."""
    if not subject or not subject.strip():
        return False
    return bool(_FORWARD_SUBJECT_RE.match(subject.lstrip()))


def strip_forwarding_prefix(subject: str | None) -> str:
    """Remove any leading run of FW:/Fwd:/RE:/Re: tokens."""
    if not subject or not subject.strip():
        return subject or ""
    return _PREFIX_RUN_RE.sub("", subject).strip()


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_forwarding_header_block(text: str | None) -> bool:
    """Heuristic test for a From/Sent/To/Subject metadata block.

    From: and Subject: are mandatory, at least three of the four markers
    must be present, the block must be short, and From: must appear near
    the start.
    """
    if not text or not text.strip():
        return False

    normalized = normalize_whitespace(text)
    lowered = normalized.lower()

    if "from:" not in lowered or "subject:" not in lowered:
        return False

    has_date = "date:" in lowered or "sent:" in lowered
    has_to = "to:" in lowered
    marker_count = 2 + int(has_date) + int(has_to)
    if marker_count < 3:
        return False

    if len(normalized) > MAX_HEADER_LENGTH:
        return False

    return lowered.index("from:") <= MAX_FROM_OFFSET


def parse_header_date(value: str) -> datetime | None:
    """Parse a Date:/Sent: value, trying known email formats first."""
    value = normalize_whitespace(value)
    if not value:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    try:
        return parser.parse(value, fuzzy=True)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Unparseable forwarded date {value!r}: {e}")
        return None


def metadata_from_text(text: str) -> ForwardedMetadata | None:
    """Pull sender name, email and sent date out of flattened header text."""
    if not text or not text.strip():
        return None

    text = normalize_whitespace(text)
    sender_name: str | None = None
    sender_email: str | None = None
    sent_date: datetime | None = None

    match = _FROM_NAMED_RE.search(text)
    if match:
        sender_name = match.group(1).strip().strip('"').strip()
        sender_email = match.group(2).strip()
    else:
        match = _FROM_BARE_RE.search(text)
        if match:
            sender_email = match.group(1).strip()
            sender_name = sender_email.split("@")[0]

    match = _DATE_RE.search(text)
    if match:
        sent_date = parse_header_date(match.group(1))

    if sender_email is None and sent_date is None:
        return None

    return ForwardedMetadata(
        sender_name=sender_name or "",
        sender_email=sender_email or "",
        sent_date=sent_date,
    )


def _metadata_from_dom(soup: BeautifulSoup) -> ForwardedMetadata | None:
    outlook_header = soup.select_one(OUTLOOK_REFERENCE_SELECTOR)
    if outlook_header is not None:
        metadata = metadata_from_text(outlook_header.get_text(" "))
        if metadata is not None:
            return metadata

    for element in soup.find_all(True):
        if element.name in ("html", "body"):
            continue
        text = element.get_text(" ")
        if "from:" not in text.lower():
            continue
        if is_forwarding_header_block(text):
            metadata = metadata_from_text(text)
            if metadata is not None:
                return metadata
    return None


def extract_forwarded_metadata(
    html: str | None,
    log: logging.Logger | None = None,
) -> ForwardedMetadata | None:
    """Recover the original sender of a forwarded email.

    Searches known forwarding-header containers and header-shaped elements
    first, then falls back to regex extraction over the flattened HTML.
    Returns None if neither an email address nor a date could be found.
    """
    log = log or logger
    if not html or not html.strip():
        return None

    try:
        soup = BeautifulSoup(html, "html.parser")
        metadata = _metadata_from_dom(soup)
    except Exception as e:
        log.warning(f"DOM metadata extraction failed: {e}")
        metadata = None

    if metadata is not None:
        log.info(f"Extracted forwarded metadata from header element (date={metadata.sent_date})")
        return metadata

    plain = html_module.unescape(_TAG_RE.sub(" ", html))
    metadata = metadata_from_text(plain)
    if metadata is None:
        log.warning("Could not extract forwarded email metadata")
    else:
        log.info(f"Extracted forwarded metadata from flattened text (date={metadata.sent_date})")
    return metadata
