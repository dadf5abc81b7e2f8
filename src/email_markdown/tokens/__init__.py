"""OAuth token storage, encryption and refresh."""

from email_markdown.tokens.claims import decode_jwt_claims
from email_markdown.tokens.encryption import TokenCipher
from email_markdown.tokens.models import StoredToken
from email_markdown.tokens.providers import (
    PROVIDER_ENDPOINTS,
    ClientCredentials,
    OAuthProvider,
    ProviderEndpoint,
)
from email_markdown.tokens.store import TokenStore

__all__ = [
    "PROVIDER_ENDPOINTS",
    "ClientCredentials",
    "OAuthProvider",
    "ProviderEndpoint",
    "StoredToken",
    "TokenCipher",
    "TokenStore",
    "decode_jwt_claims",
]
