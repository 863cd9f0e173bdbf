"""
Centralized error handling for service/API failures.

Services raise the domain errors below; routes stay thin and the exception handler
registered in main.py maps them to HTTP responses through ERROR_RULES.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class TheftWatchError(Exception):
    """Base for errors surfaced to the caller."""

    code = "error"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TheftWatchError):
    code = "validation_error"


class AuthorizationError(TheftWatchError):
    code = "authorization_error"


class ConflictError(TheftWatchError):
    code = "conflict"


class NotFoundError(TheftWatchError):
    code = "not_found"


class TransientStoreError(TheftWatchError):
    """Store unavailable or timed out. Callers may retry or fall back to a cached view."""

    code = "store_unavailable"
    retryable = True


# ---------------------------------------------------------------------------
# Constants: status codes per error category
# ---------------------------------------------------------------------------

STATUS_UNPROCESSABLE = 422
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_SERVICE_UNAVAILABLE = 503
STATUS_INTERNAL_ERROR = 500

# (exception type, status_code). First match wins; add new categories here.
ERROR_RULES: list[tuple[type[TheftWatchError], int]] = [
    (ValidationError, STATUS_UNPROCESSABLE),
    (AuthorizationError, STATUS_FORBIDDEN),
    (NotFoundError, STATUS_NOT_FOUND),
    (ConflictError, STATUS_CONFLICT),
    (TransientStoreError, STATUS_SERVICE_UNAVAILABLE),
]


def status_for(exc: TheftWatchError) -> int:
    for exc_type, status_code in ERROR_RULES:
        if isinstance(exc, exc_type):
            return status_code
    return STATUS_INTERNAL_ERROR


async def theftwatch_error_handler(request: Request, exc: TheftWatchError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= STATUS_INTERNAL_ERROR:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.code, "retryable": exc.retryable},
    )


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """
    Wrap a read path so store outages surface as TransientStoreError.
    Only connection-level failures are translated; programming errors propagate unchanged.
    """
    try:
        yield
    except OperationalError as e:
        logger.warning("Store unavailable during %s: %s", operation, e)
        raise TransientStoreError(f"Store unavailable during {operation}; retry shortly.") from e
    except DBAPIError as e:
        if not e.connection_invalidated:
            raise
        logger.warning("Store connection lost during %s: %s", operation, e)
        raise TransientStoreError(f"Store connection lost during {operation}; retry shortly.") from e
