#!/usr/bin/env python3
"""
Setup script for the BindPlane manager and its client SDK.
"""

from setuptools import setup, find_packages

# Metadata and dependencies are in pyproject.toml
# This file exists for compatibility with older pip versions

setup(
    packages=find_packages(
        include=["bindplane_manager", "bindplane_manager.*", "bindplane_manager_sdk"]
    ),
)
