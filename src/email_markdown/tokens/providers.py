"""OAuth provider identities and their token endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from email_markdown.exceptions import ConfigurationError


class OAuthProvider(str, Enum):
    MICROSOFT = "microsoft"
    GOOGLE = "google"

    @classmethod
    def parse(cls, value: OAuthProvider | str) -> OAuthProvider:
        """Resolve a provider name, accepting storage-side aliases."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        try:
            return cls(_ALIASES.get(key, key))
        except ValueError as e:
            raise ConfigurationError(f"Unknown OAuth provider: {value!r}") from e


_ALIASES = {
    "onedrive": "microsoft",
    "googledrive": "google",
}


@dataclass(frozen=True)
class ProviderEndpoint:
    token_endpoint: str
    scopes: str
    send_scope_on_refresh: bool


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str = ""


PROVIDER_ENDPOINTS: dict[OAuthProvider, ProviderEndpoint] = {
    OAuthProvider.MICROSOFT: ProviderEndpoint(
        token_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        scopes="openid profile User.Read Files.ReadWrite offline_access",
        send_scope_on_refresh=True,
    ),
    OAuthProvider.GOOGLE: ProviderEndpoint(
        token_endpoint="https://oauth2.googleapis.com/token",
        scopes="openid profile email https://www.googleapis.com/auth/drive.file",
        send_scope_on_refresh=False,
    ),
}
