import enum
from dataclasses import dataclass
from typing import NoReturn

from fastapi import HTTPException, status


class ConfigurationError(ValueError):
    """Raised while loading settings. Fatal at startup."""


class AuthErrorKind(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    MISSING_TOKEN = "missing_token"
    MALFORMED_TOKEN = "malformed_token"
    EXPIRED_TOKEN = "expired_token"
    WRONG_TOKEN_TYPE = "wrong_token_type"
    INVALID_REFRESH = "invalid_refresh"
    TOKEN_NOT_FOUND = "token_not_found"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class AuthFailure:
    """
    Failed outcome of an authentication operation.

    Core operations return this instead of raising, the routers turn it into
    an HTTP response with `raise_for_failure`.
    """

    kind: AuthErrorKind
    detail: str = ""


# Client-facing messages. Credential failures never say which half was wrong.
FAILURE_MESSAGES = {
    AuthErrorKind.INVALID_CREDENTIALS: "Incorrect username or password",
    AuthErrorKind.MISSING_TOKEN: "No access token was provided.",
    AuthErrorKind.MALFORMED_TOKEN: "Invalid or tampered access token.",
    AuthErrorKind.EXPIRED_TOKEN: "Access token expired. Request a new access token.",
    AuthErrorKind.WRONG_TOKEN_TYPE: "A refresh token cannot authorize a request.",
    AuthErrorKind.INVALID_REFRESH: "Could not refresh the access token.",
    AuthErrorKind.TOKEN_NOT_FOUND: "No active session for this user.",
    AuthErrorKind.STORAGE_FAILURE: "Could not complete authentication.",
}


def raise_for_failure(failure: AuthFailure) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=FAILURE_MESSAGES[failure.kind],
        headers={"WWW-Authenticate": "Bearer"},
    )
