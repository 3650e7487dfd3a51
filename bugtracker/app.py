"""
FastAPI application entry point for the bug tracker service.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware

from bugtracker.config import Settings, get_settings
from bugtracker.errors import ApiError
from bugtracker.logging_config import setup_logging
from bugtracker.routes import router
from bugtracker.schemas import ErrorResponse, field_errors

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "%s %s %d %.2fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


def _error_response(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    logger.info(
        "%d - %s - %s - %s", exc.status_code, exc.message, request.url.path, request.method
    )
    return _error_response(
        exc.status_code,
        ErrorResponse(message=exc.message),
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = field_errors(exc.errors())
    logger.info(
        "400 - Validation Error - %s - %s - %s",
        request.url.path,
        request.method,
        ", ".join(error.field for error in errors),
    )
    return _error_response(400, ErrorResponse(message="Validation Error", errors=errors))


async def handle_http_error(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        message = f"Not Found - {request.url.path}"
    else:
        message = str(exc.detail)
    logger.info("%d - %s - %s", exc.status_code, message, request.method)
    response = _error_response(exc.status_code, ErrorResponse(message=message))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "500 - %s - %s - %s", exc, request.url.path, request.method
    )
    return _error_response(500, ErrorResponse(message="Server Error"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(title="Bug Tracker API", version="0.1.0")
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
