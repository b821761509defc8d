"""Error taxonomy and normalized HTTP handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from scorekeeper.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class TransientStorageError(AppError):
    """Storage round-trip failed in a way that may succeed on retry."""
    code = "storage_unavailable"
    status_code = 503


class InvalidActivityTypeError(ValidationError):
    code = "invalid_activity_type"


class InvalidThresholdError(ValidationError):
    code = "invalid_threshold"


class IdempotencyConflictError(AppError):
    """A concurrent claim already exists. Callers convert this into a no-op."""
    code = "idempotency_conflict"
    status_code = 409


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _error_response(request_id: str, status_code: int, code: str, message: str) -> JSONResponse:
    """Normalized error envelope; the request id is echoed in body and header."""
    response = JSONResponse(
        status_code=status_code,
        content={
            "error": {"code": code, "message": message, "request_id": request_id},
            "detail": message,
        },
    )
    response.headers["x-request-id"] = request_id
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _request_id_for(request)
    logging.getLogger("scorekeeper").log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _error_response(rid, exc.status_code, exc.code, exc.message)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _request_id_for(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logging.getLogger("scorekeeper").warning(
        "http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code}
    )
    return _error_response(rid, exc.status_code, code, str(exc.detail or "HTTP error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id_for(request)
    logging.getLogger("scorekeeper").error(
        "unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"}
    )
    return _error_response(rid, 500, "internal_error", "Unexpected error")
