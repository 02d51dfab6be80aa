"""Exceptions for Stromer API."""

from enum import StrEnum


class AuthErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    PROTOCOL_ERROR = "protocol_error"
    NETWORK_ERROR = "network_error"


class AuthStep(StrEnum):
    LOGIN_PAGE = "login_page"
    LOGIN_SUBMIT = "login_submit"
    AUTHORIZE = "authorize"
    TOKEN_EXCHANGE = "token_exchange"


class RefreshErrorKind(StrEnum):
    NO_REFRESH_TOKEN = "no_refresh_token"
    REFRESH_FAILED = "refresh_failed"


class StromerException(Exception):
    """Base class for exceptions in this module."""


class StromerAuthException(StromerException):
    """Login flow failed."""

    error_code: int | None = None

    def __init__(
        self,
        message: str,
        kind: AuthErrorKind,
        step: AuthStep | None = None,
        error_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.step = step
        self.error_code = error_code


class StromerRefreshException(StromerException):
    """Refresh token grant failed."""

    def __init__(
        self,
        message: str,
        kind: RefreshErrorKind = RefreshErrorKind.REFRESH_FAILED,
        error_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.error_code = error_code


class StromerApiException(StromerException):
    """Resource call failed."""

    def __init__(self, endpoint: str, status: int | None = None) -> None:
        if status is None:
            message = f"API call to {endpoint} failed"
        else:
            message = f"API call to {endpoint} failed with status {status}"
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


class StromerTimeoutException(StromerException):
    """Request exceeded its time limit."""

    def __init__(self, endpoint: str, timeout: float) -> None:
        super().__init__(f"Request to {endpoint} timed out after {timeout} seconds")
        self.endpoint = endpoint
        self.timeout = timeout
