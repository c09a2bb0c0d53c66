"""Configuration loading for the BindPlane manager."""

from .settings import (
    BindPlaneConfig,
    ClientConfig,
    CommandConfig,
    CommonConfig,
    ServerConfig,
    apply_env,
    apply_flags,
    config_key,
    default_config,
    env_name,
    flag_name,
    load_config,
)

__all__ = [
    "BindPlaneConfig",
    "ClientConfig",
    "CommandConfig",
    "CommonConfig",
    "ServerConfig",
    "apply_env",
    "apply_flags",
    "config_key",
    "default_config",
    "env_name",
    "flag_name",
    "load_config",
]
