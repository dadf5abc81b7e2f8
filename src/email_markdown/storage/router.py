"""Maps provider names to storage implementations."""

from __future__ import annotations

from email_markdown.exceptions import UnknownProviderError
from email_markdown.storage.base import StorageProvider, StorageProviderType

PROVIDER_ALIASES: dict[str, StorageProviderType] = {
    "onedrive": StorageProviderType.ONEDRIVE,
    "microsoft": StorageProviderType.ONEDRIVE,
    "googledrive": StorageProviderType.GOOGLE_DRIVE,
    "google": StorageProviderType.GOOGLE_DRIVE,
}


def resolve_provider_type(name: StorageProviderType | str) -> StorageProviderType:
    if isinstance(name, StorageProviderType):
        return name
    key = (name or "").strip().lower()
    try:
        return PROVIDER_ALIASES[key]
    except KeyError:
        raise UnknownProviderError(f"Unknown storage provider: {name!r}") from None


class StorageProviderRouter:
    """Looks up the storage provider for a connection's provider name."""

    def __init__(self, providers: list[StorageProvider] | dict[StorageProviderType, StorageProvider]):
        if isinstance(providers, dict):
            providers = list(providers.values())
        self._providers = {p.provider_type: p for p in providers}

    def get_provider(self, name: StorageProviderType | str) -> StorageProvider:
        provider_type = resolve_provider_type(name)
        provider = self._providers.get(provider_type)
        if provider is None:
            raise UnknownProviderError(f"No storage provider registered for {provider_type.value}")
        return provider

    def supported_providers(self) -> list[StorageProviderType]:
        return list(self._providers)
