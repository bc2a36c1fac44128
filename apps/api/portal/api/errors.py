from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from portal.context import get_correlation_id
from portal.core.errors import PortalError
from portal.resources.schemas import ErrorEnvelope


logger = logging.getLogger("portal.request")

_HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
}


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    body = ErrorEnvelope(error=code, message=message, correlation_id=correlation_id)
    headers = {"x-correlation-id": correlation_id} if correlation_id else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Request validation failed"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in {"body", "query", "path"}]
    field_name = ".".join(location) or "request"
    return f"'{field_name}': {first.get('msg', 'invalid value')}"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PortalError)
    async def handle_portal_error(request: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("http.upstream_failure", extra={"path": request.url.path, "error": exc.message})
        return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(
            request,
            status_code=400,
            code="validation_failed",
            message=_validation_message(exc),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            message = f"Cannot {request.method} {request.url.path}"
        else:
            message = str(exc.detail)
        return error_response(
            request,
            status_code=exc.status_code,
            code=_HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            message=message,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "http.unhandled_exception",
            exc_info=exc,
            extra={"method": request.method, "path": request.url.path, "error": str(exc)},
        )
        return error_response(
            request,
            status_code=500,
            code="internal_error",
            message="Something went wrong",
        )
