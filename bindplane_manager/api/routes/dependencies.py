"""
Shared dependencies for route modules.

- Manager and store access through ``app.state``
- HTTP Basic authentication against the configured username and password
- A cancel event set when the client disconnects
"""

import asyncio
import logging
import os
import secrets
import threading
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials

logger = logging.getLogger(__name__)

AUTH_MODE_ENV = "BINDPLANE_AUTH_MODE"

_basic = HTTPBasic(auto_error=False)

DISCONNECT_POLL_SECONDS = 0.1
# nginx convention for a request the client abandoned
CLIENT_CLOSED_REQUEST = 499


def get_manager(request: Request) -> Any:
    """
    Get manager instance from app state.

    Raises:
        HTTPException: If manager not available
    """
    if not hasattr(request.app.state, "manager"):
        raise HTTPException(status_code=500, detail="Manager not initialized")
    return request.app.state.manager


def get_store(manager: Any = Depends(get_manager)) -> Any:
    return manager.store


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="invalid username or password",
        headers={"WWW-Authenticate": "Basic"},
    )


def _get_auth_dependency_runtime(
    request: Request,
    credentials: Optional[HTTPBasicCredentials] = Depends(_basic),
) -> str:
    """
    Check basic auth credentials, returning the username.

    ``BINDPLANE_AUTH_MODE`` is read at call time so tests can set it after import.
    """
    if os.getenv(AUTH_MODE_ENV, "production") == "development":
        return "development"

    if credentials is None:
        raise _unauthorized()

    config = get_manager(request).config.server
    username_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), config.username.encode("utf-8")
    )
    password_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"), config.password.encode("utf-8")
    )
    if not (username_ok and password_ok):
        logger.warning(f"Rejected credentials for user {credentials.username!r}")
        raise _unauthorized()
    return credentials.username


def get_auth_dependency():
    """Depends() wrapper for the runtime auth check."""
    return Depends(_get_auth_dependency_runtime)


auth_dependency = get_auth_dependency()


async def watch_disconnect(request: Request, cancel: threading.Event) -> None:
    """Set ``cancel`` once the client has gone away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.debug(f"Client disconnected from {request.url.path}")
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def request_cancel(request: Request) -> AsyncIterator[threading.Event]:
    """
    Cancel event for work done on behalf of this request.

    Handlers pass it to configuration rendering, which stops between
    resource lookups once the client disconnects.
    """
    cancel = threading.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        yield cancel
    finally:
        watcher.cancel()
