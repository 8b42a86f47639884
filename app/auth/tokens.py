"""HS256 bearer credentials shared with the auth service.

The auth service owns login and refresh. This module only needs to verify the
access tokens it hands out and, for local tooling and tests, mint equivalent
ones with the shared secret.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from app.core.exceptions import AuthenticationError

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(f"{data}{padding}".encode("ascii"))


def _segment(payload: dict[str, Any]) -> str:
    return _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))


def _signature(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(digest)


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    family_id: int
    role: str
    permissions_version: int
    expires_at: int
    raw: dict[str, Any]


def issue_access_token(
    user_id: int,
    family_id: int,
    role: str,
    secret: str,
    permissions_version: int = 1,
    ttl: timedelta = timedelta(minutes=15),
) -> str:
    """Mint an access token in the auth service's format."""
    if not secret:
        raise AuthenticationError("JWT secret must be configured.")
    now = datetime.now(timezone.utc)
    body = {
        "sub": str(user_id),
        "family_id": family_id,
        "role": role,
        "permissions_version": permissions_version,
        "token_use": "access",
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    signing_input = f"{_segment(_HEADER)}.{_segment(body)}"
    return f"{signing_input}.{_signature(signing_input, secret)}"


def verify_access_token(token: str, secret: str) -> AccessClaims:
    """Check signature, expiry and token use, then return typed claims."""
    if not secret:
        raise AuthenticationError("JWT secret must be configured.")
    try:
        header_segment, payload_segment, signature_segment = token.split(".")
    except ValueError as exc:
        raise AuthenticationError("Invalid token format.") from exc

    signing_input = f"{header_segment}.{payload_segment}"
    if not hmac.compare_digest(_signature(signing_input, secret), signature_segment):
        raise AuthenticationError("Invalid token signature.")

    try:
        claims = json.loads(_b64url_decode(payload_segment).decode("utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise AuthenticationError("Invalid token payload.") from exc

    if claims.get("token_use", "access") != "access":
        raise AuthenticationError("Refresh tokens cannot be used for API calls.")
    exp = claims.get("exp")
    if exp is None:
        raise AuthenticationError("Token is missing exp claim.")
    if int(exp) < int(datetime.now(timezone.utc).timestamp()):
        raise AuthenticationError("Token has expired.")

    try:
        return AccessClaims(
            user_id=int(claims["sub"]),
            family_id=int(claims["family_id"]),
            role=str(claims["role"]).lower(),
            permissions_version=int(claims.get("permissions_version", 1)),
            expires_at=int(exp),
            raw=claims,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationError("Token claims are missing family/user context.") from exc
