"""
API error taxonomy and store-error translation.

Handlers raise the ApiError subclasses below; main.py renders every error
as {"error": <message>} so raw store / driver errors never reach clients.
"""
import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from instaclone.config import settings

logger = logging.getLogger(__name__)

ERROR_MESSAGES: dict[int, str] = {
    400: "Invalid request.",
    401: "Authentication required. Please sign in.",
    403: "You do not have permission to do that.",
    404: "The requested resource could not be found.",
    409: "That already exists.",
    413: "The file is too large.",
    415: "Unsupported file type.",
    429: "Too many requests. Please try again shortly.",
    500: "Something went wrong on our side. Please try again shortly.",
    502: "Could not reach the server.",
    503: "The service is temporarily unavailable.",
    504: "The request timed out.",
}


def get_error_message(status_code: int, custom_message: Optional[str] = None) -> str:
    if custom_message:
        return custom_message
    return ERROR_MESSAGES.get(status_code, ERROR_MESSAGES[500])


class ApiError(HTTPException):
    """Base for every user-facing error; `detail` is the message shown."""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None, headers: Optional[dict] = None):
        code = self.status_code_default
        super().__init__(
            status_code=code,
            detail=get_error_message(code, message),
            headers=headers,
        )

    @property
    def message(self) -> str:
        return self.detail


class BadRequest(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class Unauthenticated(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND


class Conflict(ApiError):
    status_code_default = status.HTTP_409_CONFLICT


class PayloadTooLarge(ApiError):
    status_code_default = 413


class UnsupportedMediaType(ApiError):
    status_code_default = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE


class ServerError(ApiError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR


# ─────────────────────────── Store errors ─────────────────────────────────

# Postgres SQLSTATE and MySQL errno for the constraint kinds we care about
_CONSTRAINT_CODES = {
    "23505": "unique",
    "23514": "check",
    "23503": "foreign_key",
    1062: "unique",
    3819: "check",
    1451: "foreign_key",
    1452: "foreign_key",
}

_CONSTRAINT_PATTERNS = (
    ("duplicate", "unique"),
    ("unique constraint", "unique"),
    ("check constraint", "check"),
    ("foreign key", "foreign_key"),
)


def _driver_code(orig) -> object:
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return args[0]
    return None


def classify_store_error(exc: BaseException) -> Optional[str]:
    """
    Name the constraint an IntegrityError tripped.

    Returns "unique", "check", "foreign_key" or None when the error is not an
    integrity violation (or cannot be identified).
    """
    if not isinstance(exc, IntegrityError):
        return None
    kind = _CONSTRAINT_CODES.get(_driver_code(exc.orig))
    if kind:
        return kind
    text = str(exc.orig).lower()
    for pattern, kind in _CONSTRAINT_PATTERNS:
        if pattern in text:
            return kind
    return None


def store_error_message(exc: Optional[BaseException]) -> str:
    """Translate a store error into a message that is safe to return."""
    if exc is None:
        return ERROR_MESSAGES[500]
    kind = classify_store_error(exc)
    if kind == "unique":
        return ERROR_MESSAGES[409]
    if kind == "foreign_key":
        return "Related data exists, so this cannot be processed."
    if kind == "check":
        return ERROR_MESSAGES[400]
    if isinstance(exc, OperationalError):
        return ERROR_MESSAGES[503]
    return ERROR_MESSAGES[500]


def log_error(exc: BaseException, context: str = "Unknown") -> None:
    """Log a failure with its operation context; full traceback in development."""
    if settings.environment == "development":
        logger.error("[Error] %s: %s", context, exc, exc_info=exc)
    else:
        logger.error("[Error] %s: %s", context, exc)


def server_error_from(exc: SQLAlchemyError, context: str) -> ServerError:
    """Log a failed primary read/write and build the 500 to raise for it."""
    log_error(exc, context)
    return ServerError(store_error_message(exc))
