"""Deterministic cleanup of converter output."""

from __future__ import annotations

import re

_FLAGS_M = re.MULTILINE

_DIV_FENCE_RE = re.compile(r"^:::.*$", _FLAGS_M)
_ATTRIBUTE_BLOCK_RE = re.compile(r"\{[^}]*(?:outlook-id|target|rel|width|height)[^}]*\}")
_LONE_BACKSLASH_RE = re.compile(r"^\\[ \t]*$", _FLAGS_M)
_TRAILING_BACKSLASH_RE = re.compile(r"([^\\\n])\\[ \t]*\n")

_BOLD_HEADER_RE = re.compile(
    r"\*\*From:\*\*[^\n]*\n\*\*(?:Sent|Date):\*\*[^\n]*\n"
    r"\*\*To:\*\*[^\n]*\n\*\*Subject:\*\*[^\n]*\n?",
    re.IGNORECASE,
)
_PLAIN_HEADER_RE = re.compile(
    r"From:[^\n]*\n(?:Sent|Date):[^\n]*\nTo:[^\n]*\nSubject:[^\n]*\n?",
    re.IGNORECASE,
)

_EXCESS_NEWLINES_RE = re.compile(r"\n{4,}")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")

_EMPTY_LINK_RE = re.compile(r"\[\s*\]\(\s*\)")
_SELF_LINK_RE = re.compile(r"\[([^\]]+)\]\(\1\)")
_URL_LINK_RE = re.compile(r"\[(https?://[^\]]+?)/?\]\((https?://[^)]+?/?)\)")
_MAILTO_LINK_RE = re.compile(r"\[([^\]@]+@[^\]]+)\]\(mailto:\1\)")

_EMPTY_EMPHASIS_RES = [
    re.compile(r"(?<!\S)\*\*[ \t]*\*\*(?!\S)"),
    re.compile(r"(?<!\S)\*[ \t]+\*(?!\S)"),
    re.compile(r"(?<!\S)__[ \t]*__(?!\S)"),
    re.compile(r"(?<!\S)_[ \t]+_(?!\S)"),
]

_SPACE_RUN_RE = re.compile(r"(?<=\S) {2,}")
_HEADING_RE = re.compile(r"(^|\n)(#{1,6})[ \t]*([^\n]+)")
_LONE_QUOTE_RE = re.compile(r"^>[ \t]*$", _FLAGS_M)
_QUOTE_RUN_RE = re.compile(r"(\n>[ \t]*){3,}")
_STACKED_RULES_RE = re.compile(r"^---[ \t]*\n(?:(?:[ \t]*\n)*---[ \t]*(?:\n|$))+", _FLAGS_M)
_BLANK_LINE_RE = re.compile(r"^[ \t]+$", _FLAGS_M)
_MULTI_BLANK_RE = re.compile(r"\n{3,}")


def _collapse_url_link(match: re.Match) -> str:
    text, url = match.group(1), match.group(2)
    if text.rstrip("/").lower() == url.rstrip("/").lower():
        return url
    return match.group(0)


def postprocess_markdown(markdown: str) -> str:
    """Remove converter artifacts and normalize spacing.

    Converter-specific debris goes first, then any forwarding header lines
    that survived HTML cleaning, then link, emphasis and whitespace
    normalization.
    """
    if not markdown:
        return ""

    markdown = _DIV_FENCE_RE.sub("", markdown)
    markdown = _ATTRIBUTE_BLOCK_RE.sub("", markdown)
    markdown = _LONE_BACKSLASH_RE.sub("", markdown)
    markdown = _TRAILING_BACKSLASH_RE.sub(r"\1\n", markdown)

    markdown = _BOLD_HEADER_RE.sub("", markdown)
    markdown = _PLAIN_HEADER_RE.sub("", markdown)

    markdown = _EXCESS_NEWLINES_RE.sub("\n\n\n", markdown)
    markdown = _TRAILING_SPACE_RE.sub("\n", markdown)
    markdown = markdown.strip()

    markdown = _EMPTY_LINK_RE.sub("", markdown)
    markdown = _SELF_LINK_RE.sub(lambda m: m.group(1), markdown)
    markdown = _URL_LINK_RE.sub(_collapse_url_link, markdown)
    markdown = _MAILTO_LINK_RE.sub(lambda m: m.group(1), markdown)

    for pattern in _EMPTY_EMPHASIS_RES:
        markdown = pattern.sub("", markdown)

    markdown = _SPACE_RUN_RE.sub(" ", markdown)
    markdown = _HEADING_RE.sub(r"\1\2 \3", markdown)

    markdown = _LONE_QUOTE_RE.sub("", markdown)
    markdown = _QUOTE_RUN_RE.sub("\n>\n", markdown)
    markdown = _STACKED_RULES_RE.sub("---\n", markdown)

    markdown = _BLANK_LINE_RE.sub("", markdown)
    markdown = _MULTI_BLANK_RE.sub("\n\n", markdown)
    return markdown
