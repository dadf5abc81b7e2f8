"""Tests for forwarded email detection and metadata extraction."""

from datetime import datetime

import pytest

from email_markdown.conversion.forwarded import (
    extract_forwarded_metadata,
    is_forwarded_email,
    is_forwarding_header_block,
    parse_header_date,
    strip_forwarding_prefix,
)


@pytest.mark.parametrize("subject", ["FW: Hello", "Fwd: Hello", "FWD: Hello", "  fw: Hello", "fwd:Hello"])
def test_is_forwarded_email(subject):
    assert is_forwarded_email(subject) is True


@pytest.mark.parametrize("subject", ["RE: Hello", "Hello FW:", "", None, "Forward thinking"])
def test_is_not_forwarded_email(subject):
    assert is_forwarded_email(subject) is False


def test_strip_forwarding_prefix_repeated():
    assert strip_forwarding_prefix("FW: RE: Fwd : Quarterly report") == "Quarterly report"
    assert strip_forwarding_prefix("re:fw:  Hi") == "Hi"
    assert strip_forwarding_prefix("Plain subject") == "Plain subject"


def test_header_block_heuristic():
    header = "From: Jane <jane@example.com> Sent: Monday To: Bob Subject: Hi"
    assert is_forwarding_header_block(header)
    # From and Subject alone are not enough.
    assert not is_forwarding_header_block("From: Jane Subject: Hi")
    assert not is_forwarding_header_block("Sent: Monday To: Bob Subject: Hi")
    assert not is_forwarding_header_block(header + " " + "x" * 500)
    assert not is_forwarding_header_block("y" * 120 + " " + header)


def test_parse_header_date_known_formats():
    assert parse_header_date("Monday, January 5, 2026 10:30 AM") == datetime(2026, 1, 5, 10, 30)
    assert parse_header_date("2026-01-05 08:15:00") == datetime(2026, 1, 5, 8, 15)
    assert parse_header_date("nothing useful") is None


def test_extract_named_sender_and_date():
    html = (
        "<div><p>Hi, see below.</p>"
        "<div>From: Jane Doe &lt;jane@example.com&gt;<br>"
        "Sent: Monday, January 5, 2026 10:30 AM<br>"
        "To: Bob &lt;bob@example.com&gt;<br>"
        "Subject: Budget</div></div>"
    )
    metadata = extract_forwarded_metadata(html)
    assert metadata is not None
    assert metadata.sender_name == "Jane Doe"
    assert metadata.sender_email == "jane@example.com"
    assert metadata.sent_date == datetime(2026, 1, 5, 10, 30)


def test_extract_bare_sender_uses_local_part():
    html = "<p>From: jane.doe@example.com<br>Date: 2026-01-05 08:15:00<br>To: bob@example.com<br>Subject: Hi</p>"
    metadata = extract_forwarded_metadata(html)
    assert metadata.sender_email == "jane.doe@example.com"
    assert metadata.sender_name == "jane.doe"


def test_extract_from_outlook_reference_container():
    html = (
        '<div class="ms-outlook-mobile-reference-message">'
        "<b>From:</b> Jane Doe &lt;jane@example.com&gt;<br>"
        "<b>Date:</b> Monday, January 5, 2026 10:30 AM<br>"
        "<b>To:</b> bob@example.com<br>"
        "<b>Subject:</b> Budget<br>"
        "<p>" + "Forwarded body text. " * 40 + "</p></div>"
    )
    metadata = extract_forwarded_metadata(html)
    assert metadata.sender_email == "jane@example.com"
    assert metadata.sent_date == datetime(2026, 1, 5, 10, 30)


def test_extract_returns_none_without_header():
    assert extract_forwarded_metadata("<p>Nothing forwarded here.</p>") is None
    assert extract_forwarded_metadata("") is None
