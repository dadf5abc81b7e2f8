"""Tests for the HTML sanitizer."""

import logging
from unittest.mock import patch

import pytest
from bs4 import BeautifulSoup

from email_markdown.conversion.sanitizer import HtmlSanitizer, strip_forwarding_header_patterns


def _text(html):
    return BeautifulSoup(html, "html.parser").get_text()


@pytest.fixture
def sanitizer():
    return HtmlSanitizer()


HEADER_THEN_BODY = """
<html><body>
<div>
  <p>From: Jane Doe &lt;jane@example.com&gt;<br>
  Sent: Monday, January 5, 2026 10:00 AM<br>
  To: Bob Smith &lt;bob@example.com&gt;<br>
  Subject: Project update</p>
  <p>The quarterly numbers look great and the launch is on track for March.</p>
</div>
</body></html>
"""


def test_forwarding_header_removed_body_kept(sanitizer):
    result = _text(sanitizer.sanitize(HEADER_THEN_BODY))
    assert "Subject:" not in result
    assert "From:" not in result
    assert "The quarterly numbers look great" in result


def test_header_lines_trimmed_from_shared_paragraph(sanitizer):
    html = (
        "<p>From: Jane Doe &lt;jane@example.com&gt;<br>"
        "Date: Mon, 5 Jan 2026 10:00:00<br>"
        "To: bob@example.com<br>"
        "Subject: Hello<br><br>"
        "Short body that follows the header.</p>"
    )
    result = _text(sanitizer.sanitize(html))
    assert "Subject:" not in result
    assert "Short body that follows the header." in result


def test_gmail_forward_banner_removed(sanitizer):
    html = (
        "<div>---------- Forwarded message ---------<br>"
        "From: Jane &lt;jane@example.com&gt;<br>"
        "Date: Mon, Jan 5, 2026 at 10:00 AM<br>"
        "Subject: Hello<br>"
        "To: bob@example.com<br></div>"
        "<p>Body paragraph that must survive the cleanup.</p>"
    )
    result = _text(sanitizer.sanitize(html))
    assert "Forwarded message" not in result
    assert "Body paragraph that must survive the cleanup." in result


GMAIL_FORWARD = (
    '<div dir="ltr">FYI, see below.<br><br>'
    '<div class="gmail_quote"><div dir="ltr" class="gmail_attr">'
    "---------- Forwarded message ---------<br>"
    "From: <strong>Jane Doe</strong> &lt;jane@example.com&gt;<br>"
    "Date: Mon, Jan 5, 2026 at 10:30 AM<br>"
    "Subject: Budget<br>"
    "To: Bob &lt;bob@example.com&gt;<br></div><br><br>"
    '<div dir="ltr">Hello team, the budget for next quarter is attached and must survive.</div>'
    "</div></div>"
)


def test_gmail_forward_inside_quote_keeps_body(sanitizer):
    result = _text(sanitizer.sanitize(GMAIL_FORWARD))
    assert "Forwarded message" not in result
    assert "Subject:" not in result
    assert "From:" not in result
    assert "Hello team, the budget for next quarter is attached and must survive." in result
    assert "FYI, see below." in result


def test_sanitize_is_idempotent(sanitizer):
    once = sanitizer.sanitize(HEADER_THEN_BODY)
    twice = sanitizer.sanitize(once)
    assert len(_text(twice)) == len(_text(once))


def test_tracking_pixel_removed_normal_image_kept(sanitizer):
    html = (
        "<p>Hello there</p>"
        '<img width="1" height="1" src="https://x.com/track.gif">'
        '<img width="600" height="400" src="https://x.com/photo.jpg" alt="photo">'
    )
    result = sanitizer.sanitize(html)
    assert "track.gif" not in result
    assert 'src="https://x.com/photo.jpg"' in result
    assert 'alt="photo"' in result
    assert "width" not in result
    assert "height" not in result


def test_noise_elements_removed(sanitizer):
    html = (
        "<style>p { color: red; }</style>"
        "<script>alert(1)</script>"
        "<!-- tracking comment -->"
        '<div style="display: none">hidden preheader</div>'
        "<o:p>office markup</o:p>"
        "<p>Visible text</p>"
    )
    result = sanitizer.sanitize(html)
    assert "color: red" not in result
    assert "alert" not in result
    assert "tracking comment" not in result
    assert "hidden preheader" not in result
    assert "office markup" not in result
    assert "Visible text" in result


def test_signatures_removed(sanitizer):
    html = (
        "<p>Real content here</p>"
        '<div id="Signature">Jane Doe<br>Head of Things</div>'
        "<p>Sent from my iPhone</p>"
    )
    result = _text(sanitizer.sanitize(html))
    assert "Real content here" in result
    assert "Head of Things" not in result
    assert "Sent from my" not in result


def test_quoted_replies_removed(sanitizer):
    html = (
        "<p>New message</p>"
        '<div class="gmail_quote">On Monday someone wrote: old stuff</div>'
        '<div id="appendonsend"></div>'
    )
    result = _text(sanitizer.sanitize(html))
    assert "New message" in result
    assert "old stuff" not in result


def test_gmail_reply_quote_removed(sanitizer):
    html = (
        '<div dir="ltr">Sounds good, thanks!</div><br>'
        '<div class="gmail_quote"><div dir="ltr" class="gmail_attr">'
        "On Mon, Jan 5, 2026 at 10:30 AM Jane Doe &lt;jane@example.com&gt; wrote:<br></div>"
        '<blockquote class="gmail_quote">Can you review the budget before Friday?</blockquote>'
        "</div>"
    )
    result = _text(sanitizer.sanitize(html))
    assert "Sounds good, thanks!" in result
    assert "wrote:" not in result
    assert "review the budget" not in result


def test_tables_unwrapped_with_line_breaks(sanitizer):
    html = "<table><tr><td>left cell</td><td>right cell</td></tr></table>"
    result = sanitizer.sanitize(html)
    assert "<table" not in result
    assert "<td" not in result
    assert result.index("left cell") < result.index("right cell")
    assert "<br/>" in result


def test_empty_containers_collapsed(sanitizer):
    html = "<div>&nbsp;</div><p> </p><span></span><div><img src='a.png'></div><p>kept\xa0text</p>"
    result = sanitizer.sanitize(html)
    soup = BeautifulSoup(result, "html.parser")
    assert len(soup.find_all("p")) == 1
    assert soup.find("img") is not None
    assert "kept text" in result


def test_failing_step_is_skipped(sanitizer):
    with patch.object(HtmlSanitizer, "_remove_signatures", side_effect=RuntimeError("boom")):
        result = sanitizer.sanitize("<script>x</script><p>Body</p>")
    assert "Body" in result
    assert "<script" not in result


def test_empty_input(sanitizer):
    assert sanitizer.sanitize("") == ""
    assert sanitizer.sanitize(None) == ""


def test_content_loss_warning(caplog):
    sanitizer = HtmlSanitizer(logger=logging.getLogger("test.sanitizer"))
    html = '<div class="gmail_quote">' + "quoted history " * 20 + "</div><p>ok</p>"
    with caplog.at_level(logging.WARNING, logger="test.sanitizer"):
        result = sanitizer.sanitize(html)
    assert "ok" in result
    assert any("removed" in r.message for r in caplog.records)


def test_pattern_fallback_first_match_wins():
    markup = (
        "<p><b>From:</b> Jane</p><p><b>Sent:</b> today</p>"
        "<p><b>To:</b> Bob</p><p><b>Subject:</b> Hi</p><p>Body</p>"
    )
    cleaned, description = strip_forwarding_header_patterns(markup)
    assert description == "bold labels in paragraphs"
    assert "From:" not in cleaned
    assert "<p>Body</p>" in cleaned


def test_pattern_fallback_no_match():
    cleaned, description = strip_forwarding_header_patterns("<p>Nothing here</p>")
    assert description is None
    assert cleaned == "<p>Nothing here</p>"
