"""Strip email client cruft from HTML before Markdown conversion."""

from __future__ import annotations

import logging
import re
from typing import Callable

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from email_markdown.conversion.forwarded import (
    OUTLOOK_REFERENCE_SELECTOR,
    is_forwarding_header_block,
    normalize_whitespace,
)

_NOISE_TAGS = ["style", "script", "noscript"]
_TRACKING_SRC_MARKERS = ("track", "pixel", "beacon", "open.", "/o/", "mailtrack")
_PIXEL_DIMENSIONS = {"0", "1"}
_HIDDEN_STYLE_RE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)

_HEADER_LABELS = ("from:", "sent:", "to:", "subject:", "date:")
_LINE_LABELS = _HEADER_LABELS + ("cc:",)
_BANNER_RE = re.compile(r"-{3,}\s*(?:forwarded|original)\s+message\s*-{3,}")
_FORWARD_BANNER_RE = re.compile(r"-{3,}\s*forwarded\s+message\s*-{3,}", re.IGNORECASE)
_GMAIL_QUOTE_SELECTOR = 'div[class*="gmail_quote"]'
# Set on Gmail quote containers that wrap a forwarded message rather than
# reply history; dropped again with the other attributes.
_FORWARDED_QUOTE_ATTR = "data-forwarded-quote"
_LABEL_STOP_TAGS = {"b", "strong", "div", "p"}
_BLOCK_TAGS = {
    "p", "div", "table", "blockquote", "ul", "ol", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6", "section", "article",
}
_BOUNDARY_TAGS = {"div", "tr", "blockquote", "table"}
_ROOT_NAMES = {"html", "body", "[document]"}

_SIGNATURE_ID_RE = re.compile("signature", re.IGNORECASE)
_SIGNATURE_TEXT_RE = re.compile(r"sent from my|get outlook for", re.IGNORECASE)
_MAX_SIGNATURE_TEXT_NODES = 500

_ALLOWED_ATTRIBUTES = {"href", "src", "alt"}
_TABLE_TAGS = ["table", "tbody", "thead", "tfoot", "tr", "td", "th"]
_EMPTY_CANDIDATE_TAGS = ["p", "div", "span"]

_PARA = r"[^<]*(?:<[^>]+>[^<]*)*?</p>\s*"
_DIV = r"(?:</[^>]+>)*[^<]*(?:<[^>]+>[^<]*)*?</div>\s*"

# Evaluated in order over the serialized markup; the first pattern that
# changes the document wins.
FORWARDING_HEADER_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(
        r"<p[^>]*>\s*<b>From:</b>" + _PARA
        + r"<p[^>]*>\s*<b>(?:Date|Sent):</b>" + _PARA
        + r"<p[^>]*>\s*<b>To:</b>" + _PARA
        + r"<p[^>]*>\s*<b>Subject:</b>[^<]*(?:<[^>]+>[^<]*)*?</p>",
        re.IGNORECASE | re.DOTALL,
    ), "bold labels in paragraphs"),
    (re.compile(
        r"<b>From:</b>[^<\r\n]*<br[^>]*>\s*"
        r"<b>(?:Date|Sent):</b>[^<\r\n]*<br[^>]*>\s*"
        r"<b>To:</b>[^<\r\n]*<br[^>]*>\s*"
        r"<b>Subject:</b>[^<\r\n]*(?:<br[^>]*>)?",
        re.IGNORECASE | re.DOTALL,
    ), "bold labels separated by line breaks"),
    (re.compile(
        r"<p[^>]*>\s*<strong>From:</strong>" + _PARA
        + r"<p[^>]*>\s*<strong>(?:Date|Sent):</strong>" + _PARA
        + r"<p[^>]*>\s*<strong>To:</strong>" + _PARA
        + r"<p[^>]*>\s*<strong>Subject:</strong>[^<]*(?:<[^>]+>[^<]*)*?</p>",
        re.IGNORECASE | re.DOTALL,
    ), "strong labels in paragraphs"),
    (re.compile(
        r"<p[^>]*>\s*From:" + _PARA
        + r"<p[^>]*>\s*(?:Date|Sent):" + _PARA
        + r"<p[^>]*>\s*To:" + _PARA
        + r"<p[^>]*>\s*Subject:[^<]*(?:<[^>]+>[^<]*)*?</p>",
        re.IGNORECASE | re.DOTALL,
    ), "plain labels in paragraphs"),
    (re.compile(
        r"<div[^>]*>\s*(?:<[^>]+>)*From:" + _DIV
        + r"<div[^>]*>\s*(?:<[^>]+>)*(?:Date|Sent):" + _DIV
        + r"<div[^>]*>\s*(?:<[^>]+>)*To:" + _DIV
        + r"<div[^>]*>\s*(?:<[^>]+>)*Subject:(?:</[^>]+>)*[^<]*(?:<[^>]+>[^<]*)*?</div>",
        re.IGNORECASE | re.DOTALL,
    ), "labels in sibling divs"),
    (re.compile(
        r"<blockquote[^>]*>[\s\S]*?From:[^\n]*\n[^\n]*(?:Date|Sent):[^\n]*\n"
        r"[^\n]*To:[^\n]*\n[^\n]*Subject:[^\n]*",
        re.IGNORECASE,
    ), "Apple Mail blockquote"),
    (re.compile(
        r"<table[^>]*>[\s\S]*?From:[\s\S]*?(?:Date|Sent):[\s\S]*?To:"
        r"[\s\S]*?Subject:[\s\S]*?</table>",
        re.IGNORECASE,
    ), "table layout"),
    (re.compile(
        r"-{5,}\s*Forwarded\s+message\s*-{5,}[^<]*(?:<br[^>]*>[^<]*)*"
        r"(?:From|Date|Subject|To):[^<]*(?:<br[^>]*>[^<]*)*",
        re.IGNORECASE,
    ), "Gmail forwarded message banner"),
]


def strip_forwarding_header_patterns(markup: str) -> tuple[str, str | None]:
    """Apply the first header pattern that changes the markup.

    Returns the new markup and the description of the pattern that matched,
    or the original markup and None.
    """
    for pattern, description in FORWARDING_HEADER_PATTERNS:
        result = pattern.sub("", markup)
        if result != markup:
            return result, description
    return markup, None


def _text(node) -> str:
    if isinstance(node, NavigableString):
        return str(node)
    return node.get_text()


def _split_lines(node: Tag) -> list[list]:
    """Group a node's children into lines ending at ``<br>``; blocks stand alone."""
    lines: list[list] = []
    current: list = []
    for child in node.children:
        if isinstance(child, Tag) and child.name in _BLOCK_TAGS:
            if current:
                lines.append(current)
                current = []
            lines.append([child])
            continue
        current.append(child)
        if isinstance(child, Tag) and child.name == "br":
            lines.append(current)
            current = []
    if current:
        lines.append(current)
    return lines


def _is_attached(node: Tag, soup: BeautifulSoup) -> bool:
    parent = node
    while parent is not None:
        if parent is soup:
            return True
        parent = parent.parent
    return False


def _is_gmail_quote(node: Tag) -> bool:
    return node.name == "div" and any("gmail_quote" in cls for cls in node.get("class") or [])


def _mark_forwarded_quotes(node: Tag) -> None:
    for element in [node, *node.parents]:
        if isinstance(element, Tag) and _is_gmail_quote(element):
            element[_FORWARDED_QUOTE_ATTR] = "true"


def _is_tracking_pixel(img: Tag) -> bool:
    width = str(img.get("width", "")).strip()
    height = str(img.get("height", "")).strip()
    if width in _PIXEL_DIMENSIONS and height in _PIXEL_DIMENSIONS:
        return True
    src = str(img.get("src", "")).lower()
    return any(marker in src for marker in _TRACKING_SRC_MARKERS)


class HtmlSanitizer:
    """Email HTML cleaner.

    Runs a fixed sequence of cleaning steps over one parsed tree. A step that
    raises is logged and skipped; the tree as left by earlier steps is passed
    on, so ``sanitize`` never raises.

    Args:
        dominance_ratio: Share of a container's text the header must make up
            before the whole container is removed with it.
        content_loss_ratio: Final/initial text length below which a
            content-loss warning is logged.
        min_length_for_loss_check: Initial text length under which the
            content-loss check is skipped.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        dominance_ratio: float = 0.6,
        content_loss_ratio: float = 0.1,
        min_length_for_loss_check: int = 100,
        logger: logging.Logger | None = None,
    ):
        self.dominance_ratio = dominance_ratio
        self.content_loss_ratio = content_loss_ratio
        self.min_length_for_loss_check = min_length_for_loss_check
        self.logger = logger or logging.getLogger(__name__)

    def sanitize(self, html: str | None) -> str:
        """Return cleaned HTML for the given email body."""
        if not html or not html.strip():
            return html or ""

        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as e:
            self.logger.warning(f"Could not parse HTML, returning it unchanged: {e}")
            return html

        initial_length = len(soup.get_text())

        steps: list[tuple[str, Callable[[BeautifulSoup], BeautifulSoup]]] = [
            ("remove noise", self._remove_noise),
            ("remove forwarding headers", self._remove_forwarding_headers),
            ("remove signatures", self._remove_signatures),
            ("remove quoted replies", self._remove_quoted_replies),
            ("strip attributes", self._strip_attributes),
            ("unwrap tables", self._unwrap_tables),
            ("collapse empty elements", self._collapse_empty),
        ]
        for name, step in steps:
            try:
                soup = step(soup)
            except Exception as e:
                self.logger.warning(f"Sanitizer step '{name}' failed, continuing: {e}")

        final_length = len(soup.get_text())
        if (
            initial_length > self.min_length_for_loss_check
            and final_length < initial_length * self.content_loss_ratio
        ):
            removed = 100 - (final_length * 100 // initial_length)
            self.logger.warning(
                f"Sanitizer removed {removed}% of text "
                f"(initial {initial_length}, final {final_length})"
            )

        return str(soup)

    # ---- Step 1: noise ----

    def _remove_noise(self, soup: BeautifulSoup) -> BeautifulSoup:
        doomed: list[Tag] = list(soup.find_all(_NOISE_TAGS))
        doomed.extend(img for img in soup.find_all("img") if _is_tracking_pixel(img))
        doomed.extend(
            el for el in soup.find_all(style=True)
            if _HIDDEN_STYLE_RE.search(str(el.get("style", "")))
        )
        doomed.extend(soup.find_all(lambda tag: ":" in tag.name))

        for element in doomed:
            element.extract()

        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        return soup

    # ---- Step 2: forwarding headers ----

    def _remove_forwarding_headers(self, soup: BeautifulSoup) -> BeautifulSoup:
        for quote in soup.select(_GMAIL_QUOTE_SELECTOR):
            if _FORWARD_BANNER_RE.search(quote.get_text(" ")):
                _mark_forwarded_quotes(quote)

        removed = self._strip_outlook_reference_labels(soup)
        removed += self._remove_header_blocks(soup)
        if removed:
            self.logger.info(f"Removed {removed} forwarding header element(s)")

        markup = str(soup)
        cleaned, description = strip_forwarding_header_patterns(markup)
        if description is not None:
            self.logger.info(f"Removed forwarding header via pattern: {description}")
            soup = BeautifulSoup(cleaned, "html.parser")
        return soup

    def _strip_outlook_reference_labels(self, soup: BeautifulSoup) -> int:
        # The reference container also holds the forwarded body, so only the
        # label lines are stripped.
        removed = 0
        for container in soup.select(OUTLOOK_REFERENCE_SELECTOR):
            for bold in container.find_all(["b", "strong"]):
                label = bold.get_text().strip().lower()
                if not label.startswith(_HEADER_LABELS):
                    continue
                sibling = bold.next_sibling
                while sibling is not None:
                    following = sibling.next_sibling
                    if isinstance(sibling, Tag) and sibling.name in _LABEL_STOP_TAGS:
                        break
                    if isinstance(sibling, Tag) and sibling.name in _BLOCK_TAGS:
                        break
                    sibling.extract()
                    if isinstance(sibling, Tag) and sibling.name == "br":
                        break
                    sibling = following
                bold.extract()
                removed += 1
        return removed

    def _remove_header_blocks(self, soup: BeautifulSoup) -> int:
        candidates = [
            el for el in soup.find_all(True)
            if el.name not in _ROOT_NAMES and is_forwarding_header_block(el.get_text(" "))
        ]
        # Innermost matches only; an outer match is the same header plus more.
        innermost = [
            el for el in candidates
            if not any(
                other is not el and any(parent is el for parent in other.parents)
                for other in candidates
            )
        ]

        removed = 0
        for node in innermost:
            if not _is_attached(node, soup):
                continue
            _mark_forwarded_quotes(node)
            if self._trim_header_children(node):
                removed += 1
                continue
            container = self._find_header_container(node)
            self.logger.info(
                f"Removing forwarding header container <{container.name}> "
                f"({len(container.get_text().strip())} chars)"
            )
            container.extract()
            removed += 1
        return removed

    def _trim_header_children(self, node: Tag) -> bool:
        """Remove only the header lines when body content follows them.

        Returns False when the node holds nothing but the header.
        """
        lines = _split_lines(node)
        texts = [normalize_whitespace("".join(_text(c) for c in line)).lower() for line in lines]

        start = next((i for i, text in enumerate(texts) if "from:" in text), None)
        if start is None:
            return False
        end = start
        for index in range(start + 1, len(lines)):
            if not texts[index].startswith(_LINE_LABELS):
                break
            end = index

        if not any("subject:" in text for text in texts[start:end + 1]):
            return False
        if not any(texts[end + 1:]):
            return False
        if start > 0 and _BANNER_RE.search(texts[start - 1]):
            start -= 1

        for line in lines[start:end + 1]:
            for child in line:
                child.extract()
        self.logger.info(f"Trimmed forwarding header lines from <{node.name}>")
        return True

    def _find_header_container(self, node: Tag) -> Tag:
        """Smallest ancestor dominated by the header text, or the node itself."""
        header_length = len(node.get_text().strip())
        current = node
        best: Tag | None = None

        while current.parent is not None:
            parent = current.parent
            if parent.name in _ROOT_NAMES:
                break

            parent_length = len(parent.get_text().strip())
            if parent_length > header_length * 1.5 and parent_length > 600:
                break

            if parent_length and header_length / parent_length > self.dominance_ratio:
                if self._has_other_block_content(parent, current):
                    break
                best = parent

            if current.name in _BOUNDARY_TAGS and best is not None:
                break
            current = parent

        return best or node

    @staticmethod
    def _has_other_block_content(parent: Tag, keep: Tag) -> bool:
        for child in parent.children:
            if child is keep or not isinstance(child, Tag):
                continue
            if child.name in _BLOCK_TAGS and child.get_text().strip():
                return True
        return False

    # ---- Step 3: signatures ----

    def _remove_signatures(self, soup: BeautifulSoup) -> BeautifulSoup:
        for element in soup.find_all(id=_SIGNATURE_ID_RE):
            element.extract()
            self.logger.info("Removed signature container")

        text_nodes = soup.find_all(string=True)[:_MAX_SIGNATURE_TEXT_NODES]
        for text_node in text_nodes:
            if not _SIGNATURE_TEXT_RE.search(str(text_node)):
                continue
            parent = text_node.parent
            text_node.extract()
            if (
                parent is not None
                and parent.name not in _ROOT_NAMES
                and not parent.get_text().strip()
            ):
                parent.extract()
        return soup

    # ---- Step 4: quoted replies ----

    def _remove_quoted_replies(self, soup: BeautifulSoup) -> BeautifulSoup:
        for quote in soup.select(_GMAIL_QUOTE_SELECTOR):
            if quote.has_attr(_FORWARDED_QUOTE_ATTR):
                quote.unwrap()
                self.logger.info("Kept forwarded message inside Gmail quote container")
                continue
            quote.extract()
            self.logger.info("Removed Gmail quote container")
        for div in soup.find_all("div", id="appendonsend"):
            div.extract()
            self.logger.info("Removed appendonsend container")
        return soup

    # ---- Step 5: attributes ----

    def _strip_attributes(self, soup: BeautifulSoup) -> BeautifulSoup:
        for element in soup.find_all(True):
            element.attrs = {
                key: value for key, value in element.attrs.items()
                if key in _ALLOWED_ATTRIBUTES
            }
        return soup

    # ---- Step 6: tables ----

    def _unwrap_tables(self, soup: BeautifulSoup) -> BeautifulSoup:
        for tag_name in _TABLE_TAGS:
            for element in soup.find_all(tag_name):
                if tag_name in ("td", "th"):
                    element.insert_before(soup.new_tag("br"))
                element.unwrap()
        return soup

    # ---- Step 7: empty containers ----

    def _collapse_empty(self, soup: BeautifulSoup) -> BeautifulSoup:
        for tag_name in _EMPTY_CANDIDATE_TAGS:
            for element in soup.find_all(tag_name):
                text = element.get_text().replace("\xa0", "").strip()
                if not text and element.find("img") is None:
                    element.extract()

        for text_node in soup.find_all(string=True):
            if type(text_node) is NavigableString and "\xa0" in text_node:
                text_node.replace_with(str(text_node).replace("\xa0", " "))
        return soup
