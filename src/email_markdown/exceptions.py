"""Unified exception hierarchy for email-markdown."""


class EmailMarkdownError(Exception):
    """Base exception for all email-markdown errors."""


# Configuration
class ConfigurationError(EmailMarkdownError):
    """Missing or invalid configuration."""


# Conversion
class ConversionError(EmailMarkdownError):
    """Failed to convert HTML to Markdown."""


# Tokens
class TokenError(EmailMarkdownError):
    """Base exception for OAuth token operations."""


class TokenExchangeError(TokenError):
    """Authorization code exchange was rejected by the provider."""


class TokenRefreshError(TokenError):
    """Refresh token exchange was rejected by the provider."""


class ConcurrencyConflictError(TokenError):
    """A stored record changed since it was read."""


# Storage
class StorageError(EmailMarkdownError):
    """Base exception for storage provider operations."""


class UnknownProviderError(StorageError, ConfigurationError):
    """No storage provider is registered under the requested name."""


# Persistence
class StoreError(EmailMarkdownError):
    """Failed to read or write the local account database."""


# Delivery
class DeliveryError(EmailMarkdownError):
    """Base exception for delivery operations."""


class EmailSendError(DeliveryError):
    """Failed to send a notification email."""
