"""Tolerant JWT payload decoding (no signature verification)."""

from __future__ import annotations

import base64
import binascii
import json
import logging

logger = logging.getLogger(__name__)


def decode_jwt_claims(token: str | None) -> dict:
    """Return the payload claims of a JWT, or {} if it cannot be read."""
    if not token:
        return {}
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return {}

    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Could not decode token claims: {e}")
        return {}
    return claims if isinstance(claims, dict) else {}


def provider_identity(claims: dict) -> tuple[str | None, str | None]:
    """Extract (user id, tenant id); Microsoft uses oid, Google uses sub."""
    user_id = claims.get("oid") or claims.get("sub")
    tenant_id = claims.get("tid")
    return (str(user_id) if user_id else None, str(tenant_id) if tenant_id else None)
