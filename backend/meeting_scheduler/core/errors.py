# meeting_scheduler/core/errors.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from meeting_scheduler.logging_utils import get_logger

log = get_logger(__name__)


class ErrorBody(BaseModel):
    error: str
    details: Optional[Any] = None


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class BadRequestError(ApiError):
    status_code = HTTP_400_BAD_REQUEST


class UnauthorizedError(ApiError):
    status_code = HTTP_401_UNAUTHORIZED


class ForbiddenError(ApiError):
    status_code = HTTP_403_FORBIDDEN


class NotFoundError(ApiError):
    status_code = HTTP_404_NOT_FOUND


class ServerError(ApiError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str, details: Any = None) -> JSONResponse:
    payload = ErrorBody(error=message, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=payload)


@contextmanager
def operation_guard(failure_message: str) -> Iterator[None]:
    """
    Wrap one meeting operation.

    ApiErrors pass through untouched; anything else (store or verifier
    failures) becomes a 500 carrying the original error text.
    """
    try:
        yield
    except ApiError:
        raise
    except Exception as exc:
        log.exception(failure_message, extra={"error_type": type(exc).__name__})
        raise ServerError(failure_message, details=str(exc)) from exc


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    extra = {"path": request.url.path, "status": exc.status_code, "error": exc.message}
    if exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        log.error("request failed", extra=extra)
    else:
        log.warning("request rejected", extra=extra)
    return error_response(exc.status_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Normalize routing errors (404/405) into the {error} envelope
    log.warning("HTTPException", extra={"path": request.url.path, "status": exc.status_code})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def validation_details(errors: Iterable[Any]) -> list[dict[str, Any]]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = validation_details(exc.errors())
    log.warning("ValidationError", extra={"path": request.url.path, "details": details})
    return error_response(HTTP_400_BAD_REQUEST, "Invalid request body", details)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("Unhandled exception", extra={"path": request.url.path}, exc_info=exc)
    return error_response(HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred", str(exc))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
