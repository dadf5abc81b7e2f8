"""Tests for identity links."""

from datetime import datetime, timedelta, timezone

import pytest

from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.db import Database

NOW = datetime(2026, 1, 28, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def graph(tmp_path):
    return IdentityLinkGraph(Database(tmp_path / "accounts.db"), clock=lambda: NOW)


def test_links_are_symmetric(graph):
    graph.link_identities("Work@Example.com", "me@gmail.com", "Google")

    forward = graph.get_linked_identities("work@example.com")
    backward = graph.get_linked_identities("ME@gmail.com")
    assert [(l.primary_email, l.linked_email, l.provider) for l in forward] == [
        ("work@example.com", "me@gmail.com", "google"),
    ]
    assert [(l.primary_email, l.linked_email) for l in backward] == [("me@gmail.com", "work@example.com")]
    assert forward[0].created_at == NOW


def test_self_link_is_ignored(graph):
    graph.link_identities("a@example.com", " A@example.com ", "microsoft")
    assert graph.get_linked_identities("a@example.com") == []
    assert graph.get_identity_group("a@example.com") == ["a@example.com"]


def test_relinking_is_idempotent(graph):
    graph.link_identities("a@example.com", "b@example.com", "microsoft")
    graph.link_identities("b@example.com", "a@example.com", "google")
    links = graph.get_linked_identities("a@example.com")
    assert len(links) == 1
    assert links[0].provider == "google"


def test_group_follows_one_hop_only(graph):
    graph.link_identities("a@example.com", "b@example.com", "microsoft")
    graph.link_identities("b@example.com", "c@example.com", "google")

    assert graph.get_identity_group("a@example.com") == ["a@example.com", "b@example.com"]
    assert graph.get_identity_group("b@example.com") == ["b@example.com", "a@example.com", "c@example.com"]
    assert graph.get_identity_group("unknown@example.com") == ["unknown@example.com"]


def test_group_ordered_by_link_time(tmp_path):
    times = iter([NOW, NOW - timedelta(days=1)])
    graph = IdentityLinkGraph(Database(tmp_path / "accounts.db"), clock=lambda: next(times))
    graph.link_identities("a@example.com", "newer@example.com", "google")
    graph.link_identities("a@example.com", "older@example.com", "google")
    assert graph.get_identity_group("a@example.com") == ["a@example.com", "older@example.com", "newer@example.com"]


def test_unlink_removes_both_directions(graph):
    graph.link_identities("a@example.com", "b@example.com", "microsoft")
    graph.unlink_identities("B@example.com", "a@example.com")
    assert graph.get_linked_identities("a@example.com") == []
    assert graph.get_linked_identities("b@example.com") == []
