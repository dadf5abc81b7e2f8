"""Tests for inbound email processing and delivery fan-out."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from email_markdown.accounts.connections import ConnectionStore, PreferencesStore
from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.accounts.models import StorageConnection, UserPreferences
from email_markdown.conversion.converter import MarkdownConverter
from email_markdown.db import Database
from email_markdown.delivery.email_sender import EmailSender
from email_markdown.delivery.orchestrator import DeliveryOrchestrator, parse_sender
from email_markdown.storage.base import DeliveryOutcome, StorageProviderType
from email_markdown.storage.router import StorageProviderRouter

NOW = datetime(2026, 1, 28, 12, 0, tzinfo=timezone.utc)
FORWARDER = "Bob Smith <Bob@Example.com>"
BOB = "bob@example.com"
HTML = "<p>Weekly <b>notes</b> for the team.</p>"


def _provider(provider_type, outcome=None):
    provider = MagicMock()
    provider.provider_type = provider_type
    provider.save_file.return_value = outcome or DeliveryOutcome.succeeded(f"/{provider_type.value}/a.md")
    return provider


@pytest.fixture
def db(tmp_path):
    return Database(tmp_path / "pipeline.db")


@pytest.fixture
def identities(db):
    return IdentityLinkGraph(db, clock=lambda: NOW)


@pytest.fixture
def connections(db, identities):
    return ConnectionStore(db, identities, clock=lambda: NOW)


@pytest.fixture
def preferences(db):
    return PreferencesStore(db)


@pytest.fixture
def onedrive():
    return _provider(StorageProviderType.ONEDRIVE)


@pytest.fixture
def google():
    return _provider(StorageProviderType.GOOGLE_DRIVE)


@pytest.fixture
def sender():
    sender = MagicMock(spec=EmailSender)
    sender.send_with_attachment.return_value = True
    return sender


@pytest.fixture
def orchestrator(connections, preferences, onedrive, google, sender):
    return DeliveryOrchestrator(
        converter=MarkdownConverter(pandoc_path="pandoc-binary-that-does-not-exist"),
        router=StorageProviderRouter([onedrive, google]),
        connections=connections,
        preferences=preferences,
        email_sender=sender,
        clock=lambda: NOW,
    )


def _register(connections, preferences, method, *providers, email=BOB):
    preferences.save_preferences(UserPreferences(email=email, delivery_method=method))
    for provider in providers:
        connections.save_connection(StorageConnection(email, provider, root_folder=f"/{provider}-root"))


# ---- parse_sender ----


@pytest.mark.parametrize("header,expected", [
    ("Jane Doe <jane@example.com>", ("Jane Doe", "jane@example.com")),
    ('"Doe, Jane" <jane@example.com>', ("Doe, Jane", "jane@example.com")),
    ("jane@example.com", ("jane", "jane@example.com")),
    ("<jane@example.com>", ("jane", "jane@example.com")),
    ("", ("Unknown", "")),
    (None, ("Unknown", "")),
])
def test_parse_sender(header, expected):
    assert parse_sender(header) == expected


# ---- Delivery methods ----


def test_email_method_only_replies(orchestrator, connections, preferences, onedrive, sender):
    _register(connections, preferences, "email", "onedrive")

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    assert summary.email_sent is True
    assert summary.results == []
    assert summary.file_name == "2026-01-28-BobSmith-WeeklyNotes.md"
    onedrive.save_file.assert_not_called()

    to_email, to_name, subject, body, file_name, content = sender.send_with_attachment.call_args.args
    assert (to_email, to_name, subject, file_name) == (BOB, "Bob Smith", "Re: Weekly Notes", summary.file_name)
    text = content.decode("utf-8")
    assert text.startswith("# Weekly Notes\n\n**From:** Bob Smith (bob@example.com)\n**Received:** 2026-01-28 12:00:00")
    assert "Weekly **notes** for the team." in text


def test_unregistered_sender_defaults_to_email(orchestrator, sender):
    summary = orchestrator.process_inbound_email("stranger@example.com", None, HTML)
    assert summary.delivery_method == "email"
    assert summary.success is True
    assert sender.send_with_attachment.call_args.args[2] == "Re: No Subject"


def test_storage_method_all_saved_sends_no_email(orchestrator, connections, preferences, onedrive, google, sender):
    _register(connections, preferences, "storage", "onedrive", "googledrive")

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    assert summary.email_sent is False
    assert sorted(summary.succeeded_providers) == ["googledrive", "onedrive"]
    sender.send_with_attachment.assert_not_called()
    onedrive.save_file.assert_called_once()
    assert onedrive.save_file.call_args.args[:3] == (BOB, "/onedrive-root", summary.file_name)
    assert connections.get_connection(BOB, "onedrive").last_successful_sync == NOW


def test_partial_failure_falls_back_to_email(orchestrator, connections, preferences, google, sender):
    _register(connections, preferences, "storage", "onedrive", "googledrive")
    google.save_file.return_value = DeliveryOutcome.failed("No valid token available", requires_reauth=True)

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    assert summary.email_sent is True
    assert summary.succeeded_providers == ["onedrive"]
    assert summary.reauth_providers == ["googledrive"]
    assert summary.message == "Email processed successfully. Saved to: onedrive. Failed: googledrive."

    body = sender.send_with_attachment.call_args.args[3]
    assert "- googledrive: No valid token available (re-authentication required)" in body
    assert "- onedrive: /onedrive/a.md" in body
    assert connections.get_connection(BOB, "googledrive").last_successful_sync is None


def test_storage_method_all_failed_is_failure_even_if_email_sent(
    orchestrator, connections, preferences, onedrive, sender,
):
    _register(connections, preferences, "onedrive", "onedrive")
    onedrive.save_file.return_value = DeliveryOutcome.failed("Upload failed with status 500")

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.email_sent is True
    assert summary.success is False
    assert summary.message == "Failed to process email - no delivery methods succeeded. Failed: onedrive."


def test_both_method_succeeds_on_email_alone(orchestrator, connections, preferences, onedrive, sender):
    _register(connections, preferences, "both", "onedrive")
    onedrive.save_file.side_effect = RuntimeError("provider exploded")

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    assert summary.results[0].outcome.error_message == "provider exploded"
    assert "- onedrive: provider exploded" in sender.send_with_attachment.call_args.args[3]


def test_both_method_reply_mentions_saved_providers(orchestrator, connections, preferences, sender):
    _register(connections, preferences, "both", "onedrive")
    orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)
    assert "also been saved to your onedrive" in sender.send_with_attachment.call_args.args[3]


def test_email_failure_without_sender(connections, preferences, onedrive, google):
    orchestrator = DeliveryOrchestrator(
        converter=MarkdownConverter(pandoc_path="pandoc-binary-that-does-not-exist"),
        router=StorageProviderRouter([onedrive, google]),
        connections=connections,
        preferences=preferences,
        clock=lambda: NOW,
    )
    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)
    assert summary.success is False
    assert summary.email_sent is False


def test_sender_exception_counts_as_not_sent(orchestrator, sender):
    sender.send_with_attachment.side_effect = RuntimeError("smtp down")
    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)
    assert summary.email_sent is False
    assert summary.success is False


# ---- Connection resolution ----


def test_linked_identity_connections_are_used(orchestrator, connections, preferences, identities, google):
    _register(connections, preferences, "storage")
    connections.save_connection(StorageConnection("bob@gmail.com", "googledrive", root_folder="/Personal"))
    identities.link_identities(BOB, "bob@gmail.com", "google")

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.succeeded_providers == ["googledrive"]
    args = google.save_file.call_args.args
    assert args[:2] == ("bob@gmail.com", "/Personal")


def test_legacy_preferences_used_without_connections(orchestrator, preferences, onedrive):
    preferences.save_preferences(UserPreferences(
        email=BOB, root_folder="/Legacy", storage_provider="microsoft", delivery_method="storage",
    ))

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    assert summary.results[0].provider == "microsoft"
    assert onedrive.save_file.call_args.args[:2] == (BOB, "/Legacy")
    assert preferences.get_preferences(BOB).last_successful_sync == NOW


def test_connection_lookup_failure_uses_legacy(orchestrator, connections, preferences, onedrive):
    preferences.save_preferences(UserPreferences(email=BOB, storage_provider="onedrive", delivery_method="storage"))
    connections.get_all_connections_for_user = MagicMock(side_effect=RuntimeError("db locked"))

    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)

    assert summary.success is True
    onedrive.save_file.assert_called_once()


def test_storage_method_without_any_destination(orchestrator, preferences, sender):
    preferences.save_preferences(UserPreferences(email=BOB, delivery_method="storage"))
    summary = orchestrator.process_inbound_email(FORWARDER, "Weekly Notes", HTML)
    assert summary.results == []
    assert summary.success is False
    sender.send_with_attachment.assert_not_called()


# ---- Forwarded mail ----


def test_forwarded_email_attributed_to_original_sender(orchestrator, sender):
    html = (
        "<p>FYI</p>"
        "<div>From: Jane Doe &lt;jane@example.com&gt;<br>"
        "Sent: Monday, January 5, 2026 10:30 AM<br>"
        "To: Bob &lt;bob@example.com&gt;<br>"
        "Subject: Budget</div>"
        "<p>The budget is attached.</p>"
    )
    summary = orchestrator.process_inbound_email(FORWARDER, "FW: Budget", html)

    assert summary.file_name == "2026-01-05-JaneDoe-Budget.md"
    to_email, to_name, subject, _, _, content = sender.send_with_attachment.call_args.args
    assert (to_email, to_name, subject) == (BOB, "Bob Smith", "Re: Budget")
    text = content.decode("utf-8")
    assert text.startswith("# Budget\n\n**From:** Jane Doe (jane@example.com)\n**Received:** 2026-01-05 10:30:00")
    assert "The budget is attached." in text


def test_gmail_forward_keeps_forwarded_body(orchestrator, connections, preferences, onedrive, sender):
    _register(connections, preferences, "storage", "onedrive")
    html = (
        '<div dir="ltr"><br><br><div class="gmail_quote"><div dir="ltr" class="gmail_attr">'
        "---------- Forwarded message ---------<br>"
        "From: <strong>Jane Doe</strong> &lt;jane@example.com&gt;<br>"
        "Date: Mon, Jan 5, 2026 at 10:30 AM<br>"
        "Subject: Budget<br>"
        "To: Bob &lt;bob@example.com&gt;<br></div><br><br>"
        '<div dir="ltr">Hello team, the budget for next quarter is attached.</div>'
        "</div></div>"
    )
    summary = orchestrator.process_inbound_email(FORWARDER, "Fwd: Budget", html)

    assert summary.success is True
    assert summary.file_name == "2026-01-05-JaneDoe-Budget.md"
    sender.send_with_attachment.assert_not_called()
    text = onedrive.save_file.call_args.args[3].decode("utf-8")
    assert text.startswith("# Budget\n\n**From:** Jane Doe (jane@example.com)\n**Received:** 2026-01-05 10:30:00")
    assert "Hello team, the budget for next quarter is attached." in text
    assert "Forwarded message" not in text


def test_forwarded_without_header_keeps_forwarder(orchestrator):
    summary = orchestrator.process_inbound_email(FORWARDER, "Fwd: Notes", "<p>No header here.</p>")
    assert summary.file_name == "2026-01-28-BobSmith-Notes.md"


# ---- Async ----


def test_async_wrapper(orchestrator):
    summary = asyncio.run(orchestrator.aprocess_inbound_email(FORWARDER, "Weekly Notes", HTML))
    assert summary.success is True
