"""
REST API routes for the BindPlane manager.

Route modules by domain:
- agents: listing, deletion, labels, configuration, restart and upgrade
- resources: list, get and delete per resource kind
- apply: batch apply and delete
- system: version and agent install commands
"""

import logging
from typing import Any

from fastapi import APIRouter

from . import agents
from . import apply
from . import resources
from . import system

logger = logging.getLogger(__name__)

__all__ = ["create_routes", "agents", "apply", "resources", "system"]


def create_routes(manager: Any) -> APIRouter:
    """
    Create API routes.

    Routes reach the manager through ``app.state.manager``.

    Args:
        manager: BindPlaneManager instance

    Returns:
        Configured APIRouter with all routes
    """
    router = APIRouter()
    router.include_router(system.router, prefix="", tags=["system"])
    router.include_router(agents.router, prefix="", tags=["agents"])
    router.include_router(resources.router, prefix="", tags=["resources"])
    router.include_router(apply.router, prefix="", tags=["apply"])
    logger.info(f"Created {len(router.routes)} API routes for {type(manager).__name__}")
    return router
