"""
FastAPI application factory.

Every error response has the body ``{"errors": [...]}``.
"""

import logging
import time
from typing import Any, Awaitable, Callable, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from bindplane_manager.logging_config import API_LOGGER
from bindplane_manager.store import DependencyError, StoreError
from bindplane_manager.version import __version__

from .routes import create_routes

logger = logging.getLogger(__name__)
access_logger = logging.getLogger(API_LOGGER)

API_PREFIX = "/v1"


def _error_response(status_code: int, errors: List[str], headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": errors}, headers=headers)


def _validation_messages(exc: RequestValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        messages.append(f"{location}: {error.get('msg', '')}" if location else error.get("msg", ""))
    return messages


def create_app(manager: Any) -> FastAPI:
    """Build the API application with routes mounted under ``/v1``."""
    app = FastAPI(title="BindPlane Manager API", version=__version__)
    app.state.manager = manager

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        if isinstance(detail, dict):
            return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)
        if isinstance(detail, list):
            return _error_response(exc.status_code, [str(d) for d in detail], exc.headers)
        return _error_response(exc.status_code, [str(detail)], exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error_response(400, _validation_messages(exc))

    @app.exception_handler(DependencyError)
    async def dependency_exception_handler(request: Request, exc: DependencyError) -> JSONResponse:
        return _error_response(409, [str(exc)])

    @app.exception_handler(StoreError)
    async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
        logger.error(f"Store error handling {request.method} {request.url.path}: {exc}")
        return _error_response(500, [str(exc)])

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 2)
        access_logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={"duration_ms": duration_ms},
        )
        return response

    app.include_router(create_routes(manager), prefix=API_PREFIX)
    return app
