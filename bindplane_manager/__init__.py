"""BindPlane manager - control plane for OpenTelemetry collector agents."""

from .version import __version__

__all__ = ["__version__"]
