"""
Request context and error rendering for the gateway.

Every request gets a request id (taken from ``X-Request-ID`` when the
caller sends one) that is echoed back, attached to every log record and
included in every error body.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from gateway.core.errors import AppError, CompletionError, ErrorCode, ErrorResponse
from gateway.core.logging import get_logger, request_id_ctx, stream_id_ctx, user_id_ctx

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_HTTP_ERROR_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
    429: ErrorCode.RATE_LIMITED,
}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind the request id to the log context and echo it on the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        request_id_token = request_id_ctx.set(request_id)
        user_id_token = user_id_ctx.set(None)  # bound by require_user
        stream_id_token = stream_id_ctx.set(None)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            streaming = response.headers.get("content-type", "").startswith("text/event-stream")
            logger.info(
                # for SSE this is time to headers; the stream itself logs its own end
                "Stream opened" if streaming else "Request completed",
                data={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            return response
        finally:
            request_id_ctx.reset(request_id_token)
            user_id_ctx.reset(user_id_token)
            stream_id_ctx.reset(stream_id_token)


def _error_response(status_code: int, code: ErrorCode, message: str, **kwargs) -> JSONResponse:
    request_id = request_id_ctx.get()
    body = ErrorResponse(code=code, message=message, request_id=request_id, **kwargs)
    return JSONResponse(
        status_code=status_code,
        content=body.to_dict(),
        headers={REQUEST_ID_HEADER: request_id} if request_id else {},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": {code, message, request_id}}``."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(
            422,
            ErrorCode.VALIDATION_ERROR,
            "Validation error",
            details={"errors": exc.errors()},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _error_response(
            exc.status_code,
            _HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            str(exc.detail) if exc.detail else "HTTP error",
        )

    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        data = {"code": exc.code.value, "status": exc.status_code}
        if isinstance(exc, CompletionError):
            data["kind"] = exc.kind
        if exc.details:
            data["details"] = exc.details
        if exc.status_code >= 500:
            logger.error(f"Request failed: {exc.message}", data=data)
        else:
            logger.warning(f"Request rejected: {exc.message}", data=data)
        return _error_response(exc.status_code, exc.code, exc.message, details=exc.details)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            data={"path": request.url.path, "method": request.method},
        )
        return _error_response(500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")
