"""Translate domain exceptions into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    HomeBoardException,
    NotFoundError,
    ValidationError,
)
from app.schemas.common import ErrorEnvelope

_STATUS_BY_TYPE: tuple[tuple[type[HomeBoardException], int], ...] = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
)


def to_http_exception(exc: HomeBoardException) -> HTTPException:
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for exc_type, mapped in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            code = mapped
            break
    return HTTPException(status_code=code, detail=ErrorEnvelope(error_code=exc.error_code, detail=str(exc)).model_dump())
