"""Tests for exception hierarchy."""

from email_markdown.exceptions import (
    ConcurrencyConflictError,
    ConfigurationError,
    ConversionError,
    DeliveryError,
    EmailMarkdownError,
    EmailSendError,
    StorageError,
    StoreError,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
    UnknownProviderError,
)


def test_all_inherit_from_base():
    for exc_class in [
        ConfigurationError,
        ConversionError,
        TokenError, TokenExchangeError, TokenRefreshError, ConcurrencyConflictError,
        StorageError, UnknownProviderError,
        StoreError,
        DeliveryError, EmailSendError,
    ]:
        assert issubclass(exc_class, EmailMarkdownError)


def test_token_hierarchy():
    assert issubclass(TokenExchangeError, TokenError)
    assert issubclass(TokenRefreshError, TokenError)
    assert issubclass(ConcurrencyConflictError, TokenError)


def test_unknown_provider_is_a_configuration_error():
    assert issubclass(UnknownProviderError, StorageError)
    assert issubclass(UnknownProviderError, ConfigurationError)


def test_exception_message():
    e = EmailSendError("test error")
    assert str(e) == "test error"
