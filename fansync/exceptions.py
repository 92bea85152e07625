import enum
from http import HTTPStatus
from typing import Any


class ErrorType(enum.Enum):
    ENTITY_ALREADY_EXISTS = "entity_already_exists"
    ENTITY_NOT_FOUND = "entity_not_found"
    FORBIDDEN = "forbidden"
    INTERNAL_ERROR = "internal_error"
    INVALID_DATA = "invalid_data"
    INVALID_STATE = "invalid_state"
    RATE_LIMITED = "rate_limited"
    REMOTE_AUTH_EXPIRED = "remote_auth_expired"
    REMOTE_AUTH_REVOKED = "remote_auth_revoked"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    THIRD_PARTY_REQUEST = "third_party_request"
    UNHANDLED_EXCEPTION = "unhandled_exception"
    UNAUTHORIZED_USER = "unauthorized_user"
    UNSPECIFIED = "unspecified"


class BaseError(Exception):
    extra: dict[str, Any]

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNSPECIFIED,
        status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR,
        **kwargs: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.extra = {}

        action = kwargs.get("action")
        if action:
            self.extra["action"] = action
        account_id = kwargs.get("account_id")
        if account_id is not None:
            self.extra["account_id"] = account_id

    def __str__(self) -> str:
        return f"error: {self.error_type.value}; description: {self.message}"


class AuthError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.UNAUTHORIZED_USER,
        status_code: HTTPStatus = HTTPStatus.UNAUTHORIZED,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class EntityNotFoundError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.ENTITY_NOT_FOUND,
        status_code: HTTPStatus = HTTPStatus.NOT_FOUND,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class InvalidDataError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INVALID_DATA,
        status_code: HTTPStatus = HTTPStatus.BAD_REQUEST,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class InvalidStateError(BaseError):
    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INVALID_STATE,
        status_code: HTTPStatus = HTTPStatus.CONFLICT,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)


class RemoteAPIError(BaseError):
    """Failure talking to the creator platform.

    ``remote_status`` is the HTTP status the platform answered with, or ``None``
    when no response was received. Callers branch on the exception class and on
    ``remote_status``, never on the message text.
    """

    def __init__(
        self,
        message: str,
        remote_status: int | None = None,
        error_type: ErrorType = ErrorType.THIRD_PARTY_REQUEST,
        status_code: HTTPStatus = HTTPStatus.BAD_GATEWAY,
        oauth_error: str | None = None,
        retry_after: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, error_type, status_code, **kwargs)
        self.remote_status = remote_status
        self.oauth_error = oauth_error
        self.retry_after = retry_after
        if remote_status is not None:
            self.extra["remote_status"] = remote_status


class RateLimitedError(RemoteAPIError):
    def __init__(self, message: str, retry_after: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            remote_status=HTTPStatus.TOO_MANY_REQUESTS,
            error_type=ErrorType.RATE_LIMITED,
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            retry_after=retry_after,
            **kwargs,
        )


class TransientRemoteError(RemoteAPIError):
    """Timeouts, connection failures, 5xx answers and malformed bodies."""

    def __init__(self, message: str, remote_status: int | None = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            remote_status=remote_status,
            error_type=ErrorType.REMOTE_UNAVAILABLE,
            status_code=HTTPStatus.BAD_GATEWAY,
            **kwargs,
        )


class AuthExpiredError(RemoteAPIError):
    def __init__(self, message: str, remote_status: int | None = HTTPStatus.UNAUTHORIZED, **kwargs: Any) -> None:
        super().__init__(
            message,
            remote_status=remote_status,
            error_type=ErrorType.REMOTE_AUTH_EXPIRED,
            status_code=HTTPStatus.BAD_GATEWAY,
            **kwargs,
        )


class PermanentAuthError(RemoteAPIError):
    """The platform revoked the account's grant; a human has to reconnect it."""

    def __init__(self, message: str, remote_status: int | None = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            remote_status=remote_status,
            error_type=ErrorType.REMOTE_AUTH_REVOKED,
            status_code=HTTPStatus.CONFLICT,
            **kwargs,
        )


class RemoteRequestError(RemoteAPIError):
    """Any other 4xx answer."""

    def __init__(self, message: str, remote_status: int | None = None, **kwargs: Any) -> None:
        super().__init__(
            message,
            remote_status=remote_status,
            error_type=ErrorType.THIRD_PARTY_REQUEST,
            status_code=HTTPStatus.BAD_GATEWAY,
            **kwargs,
        )
