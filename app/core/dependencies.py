"""Dependency providers for API handlers."""

from __future__ import annotations

from dataclasses import dataclass

from app.auth.tokens import verify_access_token
from app.core.config import Config, get_config
from app.core.exceptions import AuthenticationError


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    role: str
    family_id: int


def get_settings() -> Config:
    """Return validated application configuration."""
    return get_config()


def get_current_user(token: str, settings: Config | None = None) -> CurrentUser:
    """Resolve the acting family member from a bearer token."""
    cfg = settings or get_settings()
    claims = verify_access_token(token=token, secret=cfg.JWT_SECRET)
    if claims.permissions_version != cfg.JWT_PERMISSIONS_VERSION:
        raise AuthenticationError("Token permissions are stale; refresh required.")
    return CurrentUser(user_id=claims.user_id, role=claims.role, family_id=claims.family_id)
