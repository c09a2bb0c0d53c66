"""
BindPlane manager configuration.

Configuration is loaded from a YAML file with camel-case keys, then overridden
by ``BINDPLANE_CONFIG_*`` environment variables and finally by command line
flags. Every knob has three spellings derived from its kebab-case flag name:

    --server-url  <->  serverURL  <->  BINDPLANE_CONFIG_SERVER_URL
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

BINDPLANE_DIRECTORY_NAME = ".bindplane"
BINDPLANE_LOG_NAME = "bindplane.log"
STORAGE_FILE_NAME = "storage.json"
DOWNLOADS_DIRECTORY_NAME = "downloads"
RESOURCES_DIRECTORY_NAME = "resources"

ENV_PREFIX = "BINDPLANE_CONFIG_"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = "3001"
DEFAULT_AGENTS_SERVICE_URL = "https://api.github.com/repos/observiq/observiq-otel-collector"

EnvName = Literal["development", "test", "production"]
LogOutput = Literal["file", "stdout"]


def default_home_path() -> Path:
    return Path.home() / BINDPLANE_DIRECTORY_NAME


# Knob naming


def config_key(flag: str) -> str:
    """Convert a kebab-case flag (``server-url``) to its config key (``serverURL``)."""
    flag = flag.lstrip("-").replace("-url", "URL")
    parts = flag.split("-")
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:])


def flag_name(key: str) -> str:
    """Convert a config key (``serverURL``) to its kebab-case flag (``--server-url``)."""
    key = key.replace("URL", "-url")
    key = re.sub(r"(?<!^)(?<!-)([A-Z])", r"-\1", key).lower()
    return f"--{key.strip('-')}"


def env_name(key: str) -> str:
    """Convert a config key (``serverURL``) to its environment variable name."""
    return ENV_PREFIX + flag_name(key)[2:].replace("-", "_").upper()


class CommonConfig(BaseModel):
    """Settings shared by the server and its clients."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    env: EnvName = Field("production", description="One of development, test, production")
    host: str = Field(DEFAULT_HOST, description="Host the server binds to")
    port: str = Field(DEFAULT_PORT, description="Port the REST server listens on")
    server_url: str = Field("", alias="serverURL", description="URL clients use to reach the server")
    username: str = Field("admin", description="Basic auth username")
    password: str = Field("admin", description="Basic auth password")
    tls_cert: str = Field("", alias="tlsCert", description="TLS certificate file")
    tls_key: str = Field("", alias="tlsKey", description="TLS private key file")
    tls_ca: List[str] = Field(default_factory=list, alias="tlsCa", description="CA files")
    tls_skip_verify: bool = Field(
        False, alias="tlsSkipVerify", description="Skip server certificate verification"
    )
    log_file_path: str = Field("", alias="logFilePath", description="Full path of the log file")
    log_output: LogOutput = Field("file", alias="logOutput", description="file or stdout")

    @field_validator("port", mode="before")
    @classmethod
    def _port_as_string(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("tls_ca", mode="before")
    @classmethod
    def _split_tls_ca(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [item for item in (s.strip() for s in v.split(",")) if item]
        return v

    @model_validator(mode="after")
    def _tls_pair(self):
        if bool(self.tls_cert) != bool(self.tls_key):
            raise ValueError("tlsCert and tlsKey must be specified together")
        return self

    def enable_tls(self) -> bool:
        return bool(self.tls_cert and self.tls_key)

    def server_scheme(self) -> str:
        return "https" if self.enable_tls() else "http"

    def websocket_scheme(self) -> str:
        return "wss" if self.enable_tls() else "ws"

    def bindplane_url(self) -> str:
        if self.server_url:
            return self.server_url
        if not self.host and not self.port:
            return ""
        return f"{self.server_scheme()}://{self.host}:{self.port}"

    def log_file(self, home: Path) -> Path:
        if self.log_file_path:
            return Path(self.log_file_path)
        return home / BINDPLANE_LOG_NAME


class ServerConfig(CommonConfig):
    """Server-only settings."""

    store_type: Literal["map"] = Field("map", alias="storeType", description="Resource store")
    storage_file_path: str = Field(
        "", alias="storageFilePath", description="JSON file the store persists to"
    )
    secret_key: str = Field("", alias="secretKey", description="Secret agents connect with")
    remote_url: str = Field("", alias="remoteURL", description="URL agents connect to")
    offline: bool = Field(False, description="Do not contact the agents service")
    agents_service_url: str = Field(
        DEFAULT_AGENTS_SERVICE_URL, alias="agentsServiceURL", description="Agent release service"
    )
    downloads_folder_path: str = Field(
        "", alias="downloadsFolderPath", description="Agent download cache"
    )
    disable_downloads_cache: bool = Field(False, alias="disableDownloadsCache")
    resources_directory: str = Field(
        "", alias="resourcesDirectory", description="Directory of resources applied at startup"
    )
    sessions_secret: str = Field("", alias="sessionsSecret", description="Cookie signing secret")

    def bind_address(self) -> str:
        return f"{self.host}:{self.port}"

    def websocket_url(self) -> str:
        if self.remote_url:
            return self.remote_url
        if not self.host and not self.port:
            return ""
        return f"{self.websocket_scheme()}://{self.host}:{self.port}"


class ClientConfig(CommonConfig):
    """Client settings."""

    pass


class CommandConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    output: Literal["table", "json", "yaml", "raw"] = Field("table", description="Output format")


class BindPlaneConfig(BaseModel):
    """Complete configuration: server, client and command sections."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    command: CommandConfig = Field(default_factory=CommandConfig)

    home_path: str = Field("", exclude=True)

    @field_validator("server", "client", "command", mode="before")
    @classmethod
    def _null_section(cls, v):
        return {} if v is None else v

    @classmethod
    def from_file(cls, path: str, home: Optional[Path] = None) -> "BindPlaneConfig":
        """Load configuration from a YAML file. A missing file yields the defaults."""
        config_path = Path(path)
        data: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"{path} must contain a mapping")
        config = cls.model_validate(data)
        config.home_path = str(home or default_home_path())
        return config

    def save(self, path: str) -> None:
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def home(self) -> Path:
        return Path(self.home_path) if self.home_path else default_home_path()

    # Derived values

    def server_url(self) -> str:
        return self.server.bindplane_url()

    def remote_url(self) -> str:
        return self.server.websocket_url()

    def bind_address(self) -> str:
        return self.server.bind_address()

    def log_file(self) -> Path:
        return self.server.log_file(self.home())

    def storage_file(self) -> Path:
        if self.server.storage_file_path:
            return Path(self.server.storage_file_path)
        return self.home() / STORAGE_FILE_NAME

    def downloads_folder(self) -> Path:
        if self.server.downloads_folder_path:
            return Path(self.server.downloads_folder_path)
        return self.home() / DOWNLOADS_DIRECTORY_NAME


def default_config(home: Optional[Path] = None) -> BindPlaneConfig:
    config = BindPlaneConfig()
    config.home_path = str(home or default_home_path())
    return config


# Knobs shared by the server and client sections
COMMON_KEYS = tuple(
    field.alias or name for name, field in CommonConfig.model_fields.items()
)

# Knobs only the server section has
SERVER_KEYS = tuple(
    field.alias or name
    for name, field in ServerConfig.model_fields.items()
    if name not in CommonConfig.model_fields
)

COMMAND_KEYS = ("output",)


def _override(config: BindPlaneConfig, values: Mapping[str, Any]) -> BindPlaneConfig:
    data = config.to_dict()
    for key, value in values.items():
        if key in COMMON_KEYS:
            data["server"][key] = value
            data["client"][key] = value
        elif key in SERVER_KEYS:
            data["server"][key] = value
        elif key in COMMAND_KEYS:
            data["command"][key] = value
    result = BindPlaneConfig.model_validate(data)
    result.home_path = config.home_path
    return result


def apply_env(
    config: BindPlaneConfig, environ: Optional[Mapping[str, str]] = None
) -> BindPlaneConfig:
    """Return a copy of ``config`` overridden by ``BINDPLANE_CONFIG_*`` variables."""
    environ = os.environ if environ is None else environ
    values = {}
    for key in COMMON_KEYS + SERVER_KEYS + COMMAND_KEYS:
        name = env_name(key)
        if name in environ:
            values[key] = environ[name]
    return _override(config, values)


def apply_flags(config: BindPlaneConfig, args: Mapping[str, Any]) -> BindPlaneConfig:
    """
    Return a copy of ``config`` overridden by parsed command line flags.

    ``args`` maps argparse destinations (``server_url``) or flag names
    (``server-url``) to values. ``None`` means the flag was not given.
    """
    values = {}
    for dest, value in args.items():
        if value is None:
            continue
        values[config_key(dest.replace("_", "-"))] = value
    return _override(config, values)


def load_config(
    path: str,
    args: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> BindPlaneConfig:
    """Load the file, then apply environment and flags. Flags win over env, env over file."""
    config = BindPlaneConfig.from_file(path, home)
    config = apply_env(config, environ)
    if args:
        config = apply_flags(config, args)
    return config
