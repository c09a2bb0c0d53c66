"""REST API for the BindPlane manager."""

from .app import API_PREFIX, create_app

__all__ = ["API_PREFIX", "create_app"]
