"""Email HTML cleaning, Markdown conversion and forwarded-header parsing."""

from email_markdown.conversion.converter import MarkdownConverter
from email_markdown.conversion.forwarded import (
    extract_forwarded_metadata,
    is_forwarded_email,
    is_forwarding_header_block,
    strip_forwarding_prefix,
)
from email_markdown.conversion.models import ForwardedMetadata
from email_markdown.conversion.postprocess import postprocess_markdown
from email_markdown.conversion.sanitizer import HtmlSanitizer

__all__ = [
    "ForwardedMetadata",
    "HtmlSanitizer",
    "MarkdownConverter",
    "extract_forwarded_metadata",
    "is_forwarded_email",
    "is_forwarding_header_block",
    "postprocess_markdown",
    "strip_forwarding_prefix",
]
