"""Custom exceptions for the HomeBoard workflow service."""


class HomeBoardException(Exception):
    """Base exception for the HomeBoard application."""

    error_code = "error"


class ValidationError(HomeBoardException):
    """Raised when validation fails."""

    error_code = "validation_error"


class NotFoundError(HomeBoardException):
    """Raised when a resource is not found."""

    error_code = "not_found"


class ConflictError(HomeBoardException):
    """Raised when a request conflicts with current state."""

    error_code = "conflict"


class DatabaseError(HomeBoardException):
    """Raised when a database operation fails."""

    error_code = "database_error"


class ServiceError(HomeBoardException):
    """Raised when a service operation fails."""

    error_code = "service_error"


class ConfigurationError(HomeBoardException):
    """Raised when configuration is invalid."""

    error_code = "configuration_error"


class AuthenticationError(HomeBoardException):
    """Raised when authentication fails."""

    error_code = "authentication_error"


class AuthorizationError(HomeBoardException):
    """Raised when an authenticated caller lacks permission."""

    error_code = "authorization_error"


class InvalidStage(ValidationError):
    """Stage id is unknown or belongs to another family."""

    error_code = "invalid_stage"


class InvalidPosition(ValidationError):
    """Submitted stage positions are duplicated, partial or non-contiguous."""

    error_code = "invalid_position"


class InvalidPatch(ValidationError):
    """Assignment patch carries an unusable value."""

    error_code = "invalid_patch"


class OrderNotFound(NotFoundError):
    """Order has no assignment in the caller's family."""

    error_code = "order_not_found"


class StageInUse(ConflictError):
    """Stage still has assignments and cannot be removed."""

    error_code = "stage_in_use"


class BulkUpdateFailed(ServiceError):
    """One or more items of a bulk update failed; earlier items may have been applied."""

    error_code = "bulk_update_failed"


class NetworkFailure(ServiceError):
    """Transport-level failure talking to a remote service."""

    error_code = "network_failure"


class Unauthorized(AuthenticationError):
    """Credential was rejected upstream."""

    error_code = "unauthorized"


ERRORS_BY_CODE: dict[str, type[HomeBoardException]] = {
    cls.error_code: cls
    for cls in (
        HomeBoardException,
        ValidationError,
        NotFoundError,
        ConflictError,
        DatabaseError,
        ServiceError,
        AuthenticationError,
        AuthorizationError,
        InvalidStage,
        InvalidPosition,
        InvalidPatch,
        OrderNotFound,
        StageInUse,
        BulkUpdateFailed,
        NetworkFailure,
        Unauthorized,
    )
}
