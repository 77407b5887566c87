from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from taskhub.api.schemas import failure
from taskhub.logging import get_logger
from taskhub.service.errors import ServiceError

logger = get_logger(__name__)

# Stable error codes for errors raised outside the pipeline
_STATUS_TO_CODE = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "NOT_FOUND",
    409: "CONFLICT",
}

_STATUS_TO_MESSAGE = {
    401: "Authentication required",
    403: "Access denied",
    404: "Resource not found",
    405: "Resource not found",
    409: "Resource conflict",
}


def _error_code_for_status(status_code: int) -> str:
    if status_code >= 500:
        return "INTERNAL_SERVER_ERROR"
    return _STATUS_TO_CODE.get(status_code, "VALIDATION_ERROR")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str | None = None,
) -> JSONResponse:
    envelope = failure(code or _error_code_for_status(status_code), message, details)
    return JSONResponse(status_code=status_code, content=envelope.to_wire())


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so every failure leaves in the standard envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            detail=exc.detail,
        )
        if exc.status_code >= 500:
            return _error_response(
                exc.status_code, type(exc).default_message, code=exc.error_code
            )
        return _error_response(exc.status_code, exc.message, exc.detail, code=exc.error_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg", "invalid value"),
                "type": err.get("type"),
            }
            for err in exc.errors()
        ]
        logger.warning(
            "request_validation_error",
            path=request.url.path,
            method=request.method,
            errors=details,
        )
        message = (
            f"{details[0]['field']}: {details[0]['message']}"
            if details
            else "Request validation failed"
        )
        return _error_response(400, message, details, code="VALIDATION_ERROR")

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        status_code = exc.status_code
        if status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=status_code,
                detail=exc.detail,
            )
            return _error_response(status_code, "An unexpected error occurred")
        logger.warning(
            "http_client_error",
            path=request.url.path,
            method=request.method,
            status_code=status_code,
            detail=exc.detail,
        )
        message = _STATUS_TO_MESSAGE.get(status_code)
        if message is None:
            message = exc.detail if isinstance(exc.detail, str) else "Request validation failed"
        return _error_response(status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, "An unexpected error occurred")
