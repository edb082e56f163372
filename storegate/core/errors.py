"""Authentication error kinds and the result type returned by auth steps.

Every verification, lookup and handshake step returns either ``Ok(value)``
or ``Err(kind, message)``. Callers propagate failures by early return;
only the HTTP boundary turns an ``Err`` into an ``HTTPException``.
"""

import enum
from dataclasses import dataclass

from fastapi import HTTPException, status


class AuthError(str, enum.Enum):
    """Failure kinds of the request-verification core."""

    # Session-token flow
    MISSING_TOKEN = "missing_token"
    INVALID_TOKEN = "invalid_token"
    INVALID_SESSION = "invalid_session"
    # App-proxy flow
    INVALID_PROXY_SIGNATURE = "invalid_proxy_signature"
    MISSING_SHOP_PARAMETER = "missing_shop_parameter"
    # Webhook flow
    INVALID_WEBHOOK_SIGNATURE = "invalid_webhook_signature"
    MISSING_WEBHOOK_HEADER = "missing_webhook_header"
    # Tenant lookup
    SHOP_NOT_FOUND = "shop_not_found"
    NO_VALID_SESSION = "no_valid_session"
    # Handshake
    TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    # Store write
    TRANSACTION_FAILED = "transaction_failed"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[AuthError, int] = {
    AuthError.MISSING_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthError.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    AuthError.INVALID_SESSION: status.HTTP_401_UNAUTHORIZED,
    AuthError.INVALID_PROXY_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    AuthError.MISSING_SHOP_PARAMETER: status.HTTP_400_BAD_REQUEST,
    AuthError.INVALID_WEBHOOK_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    AuthError.MISSING_WEBHOOK_HEADER: status.HTTP_401_UNAUTHORIZED,
    AuthError.SHOP_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthError.NO_VALID_SESSION: status.HTTP_404_NOT_FOUND,
    AuthError.TOKEN_EXCHANGE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthError.PROFILE_FETCH_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthError.TRANSACTION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class MissingSecretError(RuntimeError):
    """A signing secret required by a verification path is not configured."""


class AuthHTTPException(HTTPException):
    """HTTPException carrying the auth error kind for the response body."""

    def __init__(
        self,
        kind: AuthError,
        detail: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=kind.status_code, detail=detail, headers=headers)
        self.code = kind.value


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Successful step result."""

    value: T


@dataclass(frozen=True, slots=True)
class Err:
    """Failed step result."""

    kind: AuthError
    message: str = ""

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def to_http_exception(self) -> AuthHTTPException:
        """Build the HTTP error sent to the client for this failure."""
        headers = None
        if self.kind in _BEARER_ERRORS:
            headers = {"WWW-Authenticate": "Bearer"}
        return AuthHTTPException(self.kind, self.message or self.kind.value, headers=headers)


_BEARER_ERRORS = frozenset(
    {AuthError.MISSING_TOKEN, AuthError.INVALID_TOKEN, AuthError.INVALID_SESSION}
)


type Result[T] = Ok[T] | Err
