"""Bearer-token authorization for the workflow board routes."""

from __future__ import annotations

from fastapi import status

from app.api.v1._errors import to_http_exception
from app.auth.rbac import require_scopes
from app.core.config import get_config
from app.core.dependencies import CurrentUser, get_current_user
from app.core.exceptions import AuthenticationError, HomeBoardException
from app.schemas.common import ErrorEnvelope


def _extract_bearer_token(authorization: str | None) -> str:
    if authorization is None or not authorization.strip():
        raise AuthenticationError("Sign in to use the workflow board.")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Workflow board requests need a Bearer access token.")
    return token.strip()


def authorize(authorization: str | None, scopes: list[str]) -> CurrentUser:
    """Resolve the caller's household membership and check its workflow scopes."""
    token = _extract_bearer_token(authorization)
    user = get_current_user(token=token, settings=get_config())
    require_scopes(user.role, scopes)
    return user


def map_auth_error(exc: Exception) -> tuple[int, dict]:
    """Status code and error envelope for a failed ``authorize`` call.

    Domain errors share the route error mapping; anything else counts as an
    unverifiable credential.
    """
    if isinstance(exc, HomeBoardException):
        http_exc = to_http_exception(exc)
        return http_exc.status_code, http_exc.detail
    envelope = ErrorEnvelope(error_code="unauthorized", detail="Access token could not be verified.")
    return status.HTTP_401_UNAUTHORIZED, envelope.model_dump()
