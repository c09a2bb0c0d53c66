"""
System routes - version and agent install commands.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from bindplane_manager.version import Version

from ..install_command import InstallCommandParameters, normalize_platform
from .dependencies import auth_dependency, get_manager
from .models import InstallCommandResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/version", response_model=Version)
async def get_version(
    manager: Any = Depends(get_manager),
    _user: str = auth_dependency,
) -> Version:
    return manager.version


@router.get(
    "/agent-versions/{version}/install-command", response_model=InstallCommandResponse
)
async def get_install_command(
    version: str,
    platform: str = "",
    labels: str = "",
    secret_key: str = Query("", alias="secret-key"),
    remote_url: str = Query("", alias="remote-url"),
    manager: Any = Depends(get_manager),
    _user: str = auth_dependency,
) -> InstallCommandResponse:
    """
    Build the command that installs an agent connected to this server.

    An empty ``secret-key`` or ``remote-url`` falls back to the server
    configuration.
    """
    config = manager.config
    normalized = normalize_platform(platform)
    if normalized is None:
        raise HTTPException(status_code=400, detail=f"unknown platform: {platform}")

    params = InstallCommandParameters(
        platform=normalized,
        version=version,
        labels=labels,
        secret_key=secret_key or config.server.secret_key,
        remote_url=remote_url or f"{config.remote_url()}/v1/opamp",
        server_url=config.server_url(),
    )
    return InstallCommandResponse(command=params.install_command())
