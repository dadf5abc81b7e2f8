"""Encrypted OAuth token storage with refresh lifecycle."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Callable

import httpx

from email_markdown.db import Database, from_iso, normalize_email, to_iso, utcnow
from email_markdown.exceptions import (
    ConcurrencyConflictError,
    ConfigurationError,
    TokenError,
    TokenExchangeError,
    TokenRefreshError,
)
from email_markdown.tokens.claims import decode_jwt_claims, provider_identity
from email_markdown.tokens.encryption import TokenCipher
from email_markdown.tokens.models import StoredToken
from email_markdown.tokens.providers import (
    PROVIDER_ENDPOINTS,
    ClientCredentials,
    OAuthProvider,
)

DEFAULT_EXPIRES_IN = 3600
MAX_REFRESH_FAILURES = 3

_COLUMNS = (
    "provider, user_email, encrypted_access_token, encrypted_refresh_token, "
    "access_token_expiry, scopes, provider_user_id, provider_tenant_id, "
    "is_valid, last_error, refresh_failure_count, version"
)


def _row_to_token(row: sqlite3.Row) -> StoredToken:
    return StoredToken(
        provider=row["provider"],
        user_email=row["user_email"],
        encrypted_access_token=row["encrypted_access_token"],
        encrypted_refresh_token=row["encrypted_refresh_token"],
        access_token_expiry=from_iso(row["access_token_expiry"]),
        scopes=row["scopes"],
        provider_user_id=row["provider_user_id"],
        provider_tenant_id=row["provider_tenant_id"],
        is_valid=bool(row["is_valid"]),
        last_error=row["last_error"],
        refresh_failure_count=row["refresh_failure_count"],
        version=row["version"],
    )


class TokenStore:
    """Holds encrypted access/refresh tokens and keeps access tokens fresh.

    Args:
        db: Database holding the ``tokens`` table.
        cipher: Encrypts tokens before they are written.
        credentials: Client id/secret per provider.
        timeout: Seconds allowed for each token endpoint request.
        expiry_buffer: Access tokens expiring within this window are refreshed.
        max_refresh_failures: Consecutive refresh failures that invalidate a token.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        clock: Returns the current aware UTC time.
        logger: Logger to report to; defaults to the module logger.
    """

    def __init__(
        self,
        db: Database,
        cipher: TokenCipher,
        credentials: dict[OAuthProvider, ClientCredentials],
        timeout: float = 15.0,
        expiry_buffer: timedelta = timedelta(minutes=5),
        max_refresh_failures: int = MAX_REFRESH_FAILURES,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ):
        self.db = db
        self.cipher = cipher
        self.credentials = {OAuthProvider.parse(k): v for k, v in credentials.items()}
        self.timeout = timeout
        self.expiry_buffer = expiry_buffer
        self.max_refresh_failures = max_refresh_failures
        self._transport = transport
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    # ---- Sync methods ----

    def get_valid_access_token(self, provider: OAuthProvider | str, email: str) -> str | None:
        """Return a usable access token, refreshing it if it is about to expire.

        Returns None when nothing is stored, the token has been invalidated,
        the stored tokens cannot be decrypted, or the refresh fails.
        """
        provider = OAuthProvider.parse(provider)
        email = normalize_email(email)

        token = self._load(provider, email)
        if token is None:
            self.logger.info(f"No {provider.value} token stored for {email}")
            return None
        if not token.is_valid:
            self.logger.warning(f"{provider.value} token for {email} is invalid; re-authorization required")
            return None

        if token.access_token_expiry > self._clock() + self.expiry_buffer:
            access_token = self.cipher.decrypt(token.encrypted_access_token)
            if not access_token:
                self.logger.warning(f"Stored {provider.value} access token for {email} is unreadable")
                return None
            return access_token

        return self._refresh(token, provider)

    def exchange_code_for_tokens(
        self,
        provider: OAuthProvider | str,
        email: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> bool:
        """Redeem an authorization code (PKCE) and store the resulting tokens."""
        provider = OAuthProvider.parse(provider)
        email = normalize_email(email)
        endpoint = PROVIDER_ENDPOINTS[provider]
        creds = self._credentials_for(provider)

        data = {
            "client_id": creds.client_id,
            "scope": endpoint.scopes,
            "code": code,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
            "code_verifier": code_verifier,
        }
        if creds.client_secret:
            data["client_secret"] = creds.client_secret

        try:
            payload = self._post_token_request(endpoint.token_endpoint, data, TokenExchangeError)
        except TokenExchangeError as e:
            self.logger.error(f"{provider.value} code exchange failed for {email}: {e}")
            return False

        access_token = payload.get("access_token")
        if not access_token:
            self.logger.error(f"{provider.value} code exchange for {email} returned no access token")
            return False

        claims = decode_jwt_claims(payload.get("id_token") or access_token)
        user_id, tenant_id = provider_identity(claims)
        self._upsert(StoredToken(
            provider=provider.value,
            user_email=email,
            encrypted_access_token=self.cipher.encrypt(access_token),
            encrypted_refresh_token=self.cipher.encrypt(payload.get("refresh_token", "")),
            access_token_expiry=self._expiry_from(payload),
            scopes=payload.get("scope", endpoint.scopes),
            provider_user_id=user_id,
            provider_tenant_id=tenant_id,
        ))
        self.logger.info(f"Stored {provider.value} tokens for {email} from code exchange")
        return True

    def store_tokens_directly(
        self,
        provider: OAuthProvider | str,
        email: str,
        access_token: str,
        refresh_token: str | None,
        expires_in: int = DEFAULT_EXPIRES_IN,
        scopes: str | None = None,
    ) -> bool:
        """Store tokens obtained client-side (e.g. by a single-page app)."""
        provider = OAuthProvider.parse(provider)
        email = normalize_email(email)
        if not access_token:
            self.logger.warning(f"Refusing to store empty {provider.value} access token for {email}")
            return False

        user_id, tenant_id = provider_identity(decode_jwt_claims(access_token))
        self._upsert(StoredToken(
            provider=provider.value,
            user_email=email,
            encrypted_access_token=self.cipher.encrypt(access_token),
            encrypted_refresh_token=self.cipher.encrypt(refresh_token or ""),
            access_token_expiry=self._clock() + timedelta(seconds=expires_in),
            scopes=scopes or PROVIDER_ENDPOINTS[provider].scopes,
            provider_user_id=user_id,
            provider_tenant_id=tenant_id,
        ))
        self.logger.info(f"Stored {provider.value} tokens for {email}")
        return True

    def revoke_tokens(self, provider: OAuthProvider | str, email: str) -> None:
        """Delete stored tokens; a missing record is not an error."""
        provider = OAuthProvider.parse(provider)
        email = normalize_email(email)
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM tokens WHERE provider = ? AND user_email = ?",
                (provider.value, email),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            self.logger.info(f"Revoked {provider.value} tokens for {email}")
        else:
            self.logger.info(f"No {provider.value} tokens to revoke for {email}")

    def get_token_status(self, provider: OAuthProvider | str, email: str) -> dict | None:
        token = self._load(OAuthProvider.parse(provider), normalize_email(email))
        return token.to_status() if token else None

    def get_token(self, provider: OAuthProvider | str, email: str) -> StoredToken | None:
        return self._load(OAuthProvider.parse(provider), normalize_email(email))

    # ---- Async methods ----

    async def aget_valid_access_token(self, provider: OAuthProvider | str, email: str) -> str | None:
        return await asyncio.to_thread(self.get_valid_access_token, provider, email)

    async def aexchange_code_for_tokens(
        self,
        provider: OAuthProvider | str,
        email: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> bool:
        return await asyncio.to_thread(
            self.exchange_code_for_tokens, provider, email, code, code_verifier, redirect_uri,
        )

    # ---- Refresh ----

    def _refresh(self, token: StoredToken, provider: OAuthProvider) -> str | None:
        refresh_token = self.cipher.decrypt(token.encrypted_refresh_token)
        if not refresh_token:
            self.logger.warning(f"No usable {provider.value} refresh token for {token.user_email}")
            return None

        endpoint = PROVIDER_ENDPOINTS[provider]
        creds = self._credentials_for(provider)
        data = {
            "client_id": creds.client_id,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        if creds.client_secret:
            data["client_secret"] = creds.client_secret
        if endpoint.send_scope_on_refresh:
            data["scope"] = endpoint.scopes

        try:
            payload = self._post_token_request(endpoint.token_endpoint, data, TokenRefreshError)
            access_token = payload.get("access_token")
            if not access_token:
                raise TokenRefreshError("Token endpoint returned no access_token")
        except TokenRefreshError as e:
            self._record_refresh_failure(token, str(e))
            return None

        token.encrypted_access_token = self.cipher.encrypt(access_token)
        if payload.get("refresh_token"):
            token.encrypted_refresh_token = self.cipher.encrypt(payload["refresh_token"])
        token.access_token_expiry = self._expiry_from(payload)
        token.refresh_failure_count = 0
        token.last_error = None
        token.is_valid = True

        try:
            self._update(token)
        except ConcurrencyConflictError as e:
            self.logger.warning(f"Refreshed token not persisted: {e}")

        self.logger.info(f"Refreshed {provider.value} access token for {token.user_email}")
        return access_token

    def _record_refresh_failure(self, token: StoredToken, error: str) -> None:
        token.refresh_failure_count += 1
        token.last_error = error
        if token.refresh_failure_count >= self.max_refresh_failures:
            token.is_valid = False
            self.logger.error(
                f"{token.provider} token for {token.user_email} invalidated after "
                f"{token.refresh_failure_count} failed refreshes"
            )
        else:
            self.logger.warning(
                f"{token.provider} refresh failed for {token.user_email} "
                f"(attempt {token.refresh_failure_count}): {error}"
            )
        try:
            self._update(token)
        except ConcurrencyConflictError as e:
            self.logger.warning(f"Refresh failure not persisted: {e}")

    def _post_token_request(
        self,
        url: str,
        data: dict[str, str],
        error_cls: type[TokenError],
    ) -> dict:
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, data=data)
        except httpx.HTTPError as e:
            raise error_cls(f"Token request failed: {e}") from e

        if response.status_code >= 400:
            raise error_cls(f"HTTP {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError as e:
            raise error_cls(f"Token endpoint returned invalid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise error_cls("Token endpoint returned an unexpected payload")
        return payload

    def _expiry_from(self, payload: dict) -> datetime:
        try:
            expires_in = int(payload.get("expires_in", DEFAULT_EXPIRES_IN))
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN
        return self._clock() + timedelta(seconds=expires_in)

    def _credentials_for(self, provider: OAuthProvider) -> ClientCredentials:
        creds = self.credentials.get(provider)
        if creds is None or not creds.client_id:
            raise ConfigurationError(f"No OAuth client id configured for {provider.value}")
        return creds

    # ---- Persistence ----

    def _load(self, provider: OAuthProvider, email: str) -> StoredToken | None:
        with self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM tokens WHERE provider = ? AND user_email = ?",
                (provider.value, email),
            ).fetchone()
        return _row_to_token(row) if row else None

    def _upsert(self, token: StoredToken) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO tokens
                   (provider, user_email, encrypted_access_token, encrypted_refresh_token,
                    access_token_expiry, scopes, provider_user_id, provider_tenant_id,
                    is_valid, last_error, refresh_failure_count, version, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, NULL, 0, 1, ?)
                   ON CONFLICT (provider, user_email) DO UPDATE SET
                    encrypted_access_token = excluded.encrypted_access_token,
                    encrypted_refresh_token = excluded.encrypted_refresh_token,
                    access_token_expiry = excluded.access_token_expiry,
                    scopes = excluded.scopes,
                    provider_user_id = excluded.provider_user_id,
                    provider_tenant_id = excluded.provider_tenant_id,
                    is_valid = 1,
                    last_error = NULL,
                    refresh_failure_count = 0,
                    version = tokens.version + 1,
                    updated_at = excluded.updated_at""",
                (
                    token.provider,
                    token.user_email,
                    token.encrypted_access_token,
                    token.encrypted_refresh_token,
                    to_iso(token.access_token_expiry),
                    token.scopes,
                    token.provider_user_id,
                    token.provider_tenant_id,
                    to_iso(self._clock()),
                ),
            )

    def _update(self, token: StoredToken) -> None:
        """Write back a loaded token, rejecting the write if it changed meanwhile."""
        with self.db.connect() as conn:
            cursor = conn.execute(
                """UPDATE tokens SET
                    encrypted_access_token = ?,
                    encrypted_refresh_token = ?,
                    access_token_expiry = ?,
                    is_valid = ?,
                    last_error = ?,
                    refresh_failure_count = ?,
                    version = version + 1,
                    updated_at = ?
                   WHERE provider = ? AND user_email = ? AND version = ?""",
                (
                    token.encrypted_access_token,
                    token.encrypted_refresh_token,
                    to_iso(token.access_token_expiry),
                    int(token.is_valid),
                    token.last_error,
                    token.refresh_failure_count,
                    to_iso(self._clock()),
                    token.provider,
                    token.user_email,
                    token.version,
                ),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise ConcurrencyConflictError(
                f"{token.provider} token for {token.user_email} changed since version {token.version}"
            )
        token.version += 1
