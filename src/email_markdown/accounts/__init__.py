"""Subscriber accounts: connections, legacy preferences and identity links."""

from email_markdown.accounts.connections import ConnectionStore, PreferencesStore
from email_markdown.accounts.identity import IdentityLinkGraph
from email_markdown.accounts.models import IdentityLink, StorageConnection, UserPreferences
from email_markdown.accounts.service import AccountService

__all__ = [
    "AccountService",
    "ConnectionStore",
    "IdentityLink",
    "IdentityLinkGraph",
    "PreferencesStore",
    "StorageConnection",
    "UserPreferences",
]
