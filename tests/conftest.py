"""
Pytest configuration and fixtures for BindPlane manager tests.
"""

import os


def pytest_configure(config):
    """
    Set environment variables before any test modules are imported.
    This runs very early in the pytest lifecycle.
    """
    os.environ["BINDPLANE_AUTH_MODE"] = "development"
    os.environ.pop("BINDPLANE_COMMIT", None)
    os.environ.pop("BINDPLANE_TAG", None)
