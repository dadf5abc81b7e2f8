"""HTML to Markdown conversion with pandoc, markdownify and plain-text tiers."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import tempfile
from datetime import datetime
from pathlib import Path

from bs4 import BeautifulSoup
from markdownify import ATX, markdownify

from email_markdown.conversion.postprocess import postprocess_markdown
from email_markdown.conversion.sanitizer import HtmlSanitizer
from email_markdown.exceptions import ConversionError

PANDOC_ARGS = [
    "-f", "html",
    "-t", "markdown-raw_html-native_divs-native_spans",
    "--wrap=none",
]

MARKDOWN_TEMPLATE = """# {subject}

**From:** {sender_name} ({sender_email})
**Received:** {received}

---

{body}"""

_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")


def extract_text(html: str) -> str:
    """Strip all markup and collapse whitespace."""
    try:
        text = BeautifulSoup(html, "html.parser").get_text(" ")
    except Exception:
        text = _TAG_RE.sub(" ", html)
    return _WHITESPACE_RE.sub(" ", text).strip()


class MarkdownConverter:
    """Converts sanitized email HTML to Markdown.

    pandoc is tried first; if the binary is missing, fails, times out or
    produces nothing, markdownify takes over, and if that raises the plain
    text of the document is returned.

    Args:
        sanitizer: Cleaner applied before conversion.
        pandoc_path: pandoc executable name or path.
        pandoc_timeout: Seconds to wait for pandoc.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        sanitizer: HtmlSanitizer | None = None,
        pandoc_path: str = "pandoc",
        pandoc_timeout: float = 30.0,
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.sanitizer = sanitizer or HtmlSanitizer(logger=self.logger)
        self.pandoc_path = pandoc_path
        self.pandoc_timeout = pandoc_timeout

    def convert(self, html: str | None) -> str:
        """Convert an HTML email body to Markdown."""
        if not html or not html.strip():
            return ""

        try:
            cleaned = self.sanitizer.sanitize(html)
        except Exception as e:
            self.logger.warning(f"HTML cleanup failed, using original: {e}")
            cleaned = html

        try:
            markdown = self.convert_with_pandoc(cleaned)
            if markdown.strip():
                self.logger.info(f"pandoc conversion succeeded ({len(markdown)} chars)")
                return postprocess_markdown(markdown).strip()
            self.logger.warning("pandoc returned empty output")
        except ConversionError as e:
            self.logger.warning(f"pandoc conversion failed: {e}")

        self.logger.info("Falling back to markdownify")
        try:
            markdown = self.convert_with_markdownify(cleaned)
            return postprocess_markdown(markdown).strip()
        except Exception as e:
            self.logger.error(f"markdownify conversion failed: {e}")
            return extract_text(cleaned)

    def convert_with_pandoc(self, html: str) -> str:
        """Run pandoc over the HTML via temporary files."""
        fd, input_path = tempfile.mkstemp(suffix=".html")
        output_path = input_path[: -len(".html")] + ".md"
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(html)

            result = subprocess.run(
                [self.pandoc_path, *PANDOC_ARGS, input_path, "-o", output_path],
                capture_output=True,
                text=True,
                timeout=self.pandoc_timeout,
            )
            if result.returncode != 0:
                raise ConversionError(
                    f"pandoc exited with code {result.returncode}: {result.stderr.strip()}"
                )
            return Path(output_path).read_text(encoding="utf-8")
        except subprocess.TimeoutExpired as e:
            raise ConversionError(f"pandoc timed out after {self.pandoc_timeout}s") from e
        except FileNotFoundError as e:
            raise ConversionError(f"pandoc not found: {self.pandoc_path}") from e
        except OSError as e:
            raise ConversionError(f"pandoc could not run: {e}") from e
        finally:
            Path(input_path).unlink(missing_ok=True)
            Path(output_path).unlink(missing_ok=True)

    @staticmethod
    def convert_with_markdownify(html: str) -> str:
        return markdownify(
            html,
            heading_style=ATX,
            bullets="-",
            autolinks=True,
            strip=["script", "style"],
        )

    def convert_to_markdown_bytes(
        self,
        subject: str,
        sender_name: str,
        sender_email: str,
        received_at: datetime,
        html: str | None,
    ) -> bytes:
        """Render the full Markdown document for an email as UTF-8 bytes.

        Never raises; a body that cannot be converted at all is replaced by
        its plain text.
        """
        try:
            body = self.convert(html)
        except Exception as e:
            self.logger.error(f"Conversion failed, using plain text: {e}")
            body = extract_text(html or "")

        document = MARKDOWN_TEMPLATE.format(
            subject=subject,
            sender_name=sender_name,
            sender_email=sender_email,
            received=received_at.strftime("%Y-%m-%d %H:%M:%S"),
            body=body,
        )
        return document.encode("utf-8")
