"""API error types and the handlers that render them as JSON envelopes."""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

from finance_tracker.config import get_settings

logger = structlog.get_logger(__name__)


class FinanceAPIError(Exception):
    """Base error carrying the HTTP status it should be reported with."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(FinanceAPIError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(FinanceAPIError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(FinanceAPIError):
    status_code = status.HTTP_409_CONFLICT


class ForbiddenError(FinanceAPIError):
    status_code = status.HTTP_403_FORBIDDEN


class ServiceUnavailableError(FinanceAPIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class GeminiError(ServiceUnavailableError):
    """Gemini was unreachable or returned something we could not use."""


class EndpointExecutionError(FinanceAPIError):
    """The voice agent could not run the endpoint the LLM picked."""


def _envelope(message: str, **extra) -> dict:
    body = {"success": False, "message": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


async def finance_error_handler(request: Request, exc: FinanceAPIError):
    return JSONResponse(status_code=exc.status_code, content=_envelope(exc.message))


async def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part != "body"),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope("Validation Error", errors=errors),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("integrity_error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope("Duplicate or conflicting record"),
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    detail = str(exc) if get_settings().is_development else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope("Internal Server Error", error=detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FinanceAPIError, finance_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
