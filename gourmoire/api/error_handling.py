from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gourmoire.api.schemas import ErrorBody
from gourmoire.logging import get_logger
from gourmoire.service.errors import ErrorCode, ServiceError

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.TOKEN_INVALID,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.NOT_FOUND,
    500: ErrorCode.INTERNAL_ERROR,
}


def _error_code_for_status(status_code: int) -> ErrorCode:
    return _STATUS_TO_CODE.get(status_code, ErrorCode.INTERNAL_ERROR)


def _error_response(
    status_code: int, message: str, code: ErrorCode | str | None = None
) -> JSONResponse:
    error_code = code or _error_code_for_status(status_code)
    if isinstance(error_code, ErrorCode):
        error_code = error_code.value
    body = ErrorBody(message=message, code=error_code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{success: false, message, code}``."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code.value,
            message=exc.message,
            detail=exc.detail,
        )
        if exc.status_code >= 500:
            return _error_response(exc.status_code, "Internal server error", exc.error_code)
        return _error_response(exc.status_code, exc.message, exc.error_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_validation_failed",
            path=request.url.path,
            method=request.method,
            errors=[
                {"loc": list(err.get("loc", ())), "type": err.get("type")}
                for err in exc.errors()
            ],
        )
        return _error_response(400, "Invalid request body", ErrorCode.VALIDATION_ERROR)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            logger.warning(
                "endpoint_not_found",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
            )
            return _error_response(404, "Endpoint not found", ErrorCode.NOT_FOUND)
        message = exc.detail if isinstance(exc.detail, str) else "http error"
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "http_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            message=message,
        )
        return _error_response(exc.status_code, message)

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
        return _error_response(500, "Internal server error", ErrorCode.INTERNAL_ERROR)
