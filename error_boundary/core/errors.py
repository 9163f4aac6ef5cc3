from __future__ import annotations

import dataclasses
import enum
import re
import traceback
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any

import jwt
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException


INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
INVALID_TOKEN = "INVALID_TOKEN"
VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclasses.dataclass(slots=True)
class AppError(Exception):
    """Business error whose message is safe to show to clients."""

    code: str
    message: str
    status_code: int = 400
    is_operational: bool = True


@dataclasses.dataclass(slots=True)
class TokenError(AppError):
    """Credential could not be verified (expired, malformed, wrong key)."""

    code: str = INVALID_TOKEN
    message: str = "Invalid token"
    status_code: int = 401


def generate_error(message: str, status_code: int, code: str) -> AppError:
    return AppError(code=code, message=message, status_code=status_code)


class ErrorKind(enum.Enum):
    TOKEN = "token"
    OPERATIONAL = "operational"
    UNKNOWN = "unknown"


_TOKEN_ERRORS = (jwt.InvalidTokenError, TokenError)
_HTTP_ERRORS = (StarletteHTTPException, RequestValidationError)


def _field(error: Any, *names: str) -> Any:
    """Read the first present attribute (or mapping key) among names."""

    for name in names:
        if isinstance(error, Mapping):
            if name in error:
                return error[name]
        elif hasattr(error, name):
            return getattr(error, name)
    return None


def classify(error: Any) -> ErrorKind:
    if isinstance(error, _TOKEN_ERRORS):
        return ErrorKind.TOKEN
    if isinstance(error, _HTTP_ERRORS):
        return ErrorKind.OPERATIONAL
    # Untrusted unless explicitly marked trusted.
    if _field(error, "is_operational", "isOperational") is True:
        return ErrorKind.OPERATIONAL
    return ErrorKind.UNKNOWN


def coerce_status(value: Any) -> int:
    """Return value as an HTTP status, or 500 when unset or not a status."""

    if isinstance(value, bool):
        return 500
    try:
        status = int(value)
    except (TypeError, ValueError):
        return 500
    if not 100 <= status <= 599:
        return 500
    return status


def default_code(status_code: int) -> str:
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "HTTP_ERROR"
    return re.sub(r"[^A-Z0-9]+", "_", phrase.upper()).strip("_")


def _format_stack(error: Any) -> str | None:
    if isinstance(error, BaseException):
        return "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )
    stack = _field(error, "stack")
    return stack if isinstance(stack, str) else None


def _message_of(error: Any) -> str:
    if isinstance(error, RequestValidationError):
        return "Request validation failed"
    if isinstance(error, StarletteHTTPException):
        if isinstance(error.detail, str) and error.detail:
            return error.detail
        return default_code(error.status_code).replace("_", " ").capitalize()
    message = _field(error, "message")
    if isinstance(message, str) and message:
        return message
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return str(error)


@dataclasses.dataclass(frozen=True, slots=True)
class ErrorRecord:
    """Canonical shape of an error crossing the HTTP boundary."""

    message: str
    status_code: int | None = None
    code: str | None = None
    is_operational: bool = False
    stack: str | None = None

    @classmethod
    def from_error(cls, error: Any) -> ErrorRecord:
        # Every field is copied by name so message and stack always survive.
        if isinstance(error, RequestValidationError):
            status: Any = 422
            code: Any = VALIDATION_ERROR
        else:
            status = _field(error, "status_code", "statusCode", "status")
            code = _field(error, "code")
        return cls(
            message=_message_of(error),
            status_code=status if status else None,
            code=code if isinstance(code, str) and code else None,
            is_operational=classify(error) is ErrorKind.OPERATIONAL,
            stack=_format_stack(error),
        )

    @classmethod
    def invalid_token(cls) -> ErrorRecord:
        return cls(
            message="Invalid token",
            status_code=401,
            code=INVALID_TOKEN,
            is_operational=True,
        )

    def with_defaults(self) -> ErrorRecord:
        status = coerce_status(self.status_code)
        code = self.code
        if not code:
            code = default_code(status) if self.is_operational else INTERNAL_SERVER_ERROR
        return dataclasses.replace(self, status_code=status, code=code)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)
