"""
Agent install command generation.

Builds the one-line command an operator runs on a host to install a
collector that connects back to this server.
"""

import platform as host_platform
from dataclasses import dataclass
from typing import Optional

LINUX_ARM64 = "linux-arm64"
LINUX_AMD64 = "linux-amd64"
LINUX_ARM = "linux-arm"
DARWIN_ARM64 = "darwin-arm64"
DARWIN_AMD64 = "darwin-amd64"
WINDOWS_AMD64 = "windows-amd64"

PLATFORM_ALIASES = {
    "windows": WINDOWS_AMD64,
    "linux": LINUX_AMD64,
    "darwin": DARWIN_ARM64,
    "macos": DARWIN_ARM64,
    "macos-arm64": DARWIN_ARM64,
    "macos-amd64": DARWIN_AMD64,
    LINUX_ARM64: LINUX_ARM64,
    LINUX_AMD64: LINUX_AMD64,
    LINUX_ARM: LINUX_ARM,
    DARWIN_ARM64: DARWIN_ARM64,
    DARWIN_AMD64: DARWIN_AMD64,
    WINDOWS_AMD64: WINDOWS_AMD64,
}

RELEASES_URL = "https://github.com/observiq/observiq-otel-collector/releases"

_MACHINE_ARCH = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "arm": "arm",
}


def _host_platform() -> str:
    system = host_platform.system().lower()
    machine = host_platform.machine().lower()
    return f"{system}-{_MACHINE_ARCH.get(machine, machine)}"


def normalize_platform(name: str) -> Optional[str]:
    """Resolve a platform alias. An empty name means the server's own platform."""
    return PLATFORM_ALIASES.get(name or _host_platform())


@dataclass
class InstallCommandParameters:
    platform: str
    version: str
    labels: str = ""
    secret_key: str = ""
    remote_url: str = ""
    server_url: str = ""

    def _setarg(self, name: str, value: str) -> str:
        if not value:
            return ""
        if self.platform == WINDOWS_AMD64:
            return f" {name}={value}"
        return f" {name} {value}"

    def version_no_v(self) -> str:
        if self.version == "latest":
            return self.version
        return self.version[1:] if self.version.startswith("v") else self.version

    def version_with_v(self) -> str:
        if self.version == "latest":
            return self.version
        return f"v{self.version_no_v()}"

    def args(self) -> str:
        if self.platform == WINDOWS_AMD64:
            return (
                self._setarg("ENABLEMANAGEMENT", "1")
                + self._setarg("OPAMPENDPOINT", self.remote_url)
                + self._setarg("OPAMPSECRETKEY", self.secret_key)
                + self._setarg("OPAMPLABELS", self.labels)
            )
        args = (
            self._setarg("-e", self.remote_url)
            + self._setarg("-s", self.secret_key)
            + self._setarg("-k", self.labels)
        )
        if self.version != "latest":
            args += self._setarg("-v", self.version_no_v())
        return args

    def installer_filename(self) -> str:
        if self.platform == WINDOWS_AMD64:
            return "observiq-otel-collector.msi"
        if self.platform in (DARWIN_AMD64, DARWIN_ARM64):
            return "install_macos.sh"
        return "install_unix.sh"

    def installer_url(self) -> str:
        if self.version == "latest":
            return f"{RELEASES_URL}/latest/download/{self.installer_filename()}"
        return f"{RELEASES_URL}/download/{self.version_with_v()}/{self.installer_filename()}"

    def install_command(self) -> str:
        if self.platform == WINDOWS_AMD64:
            return f'msiexec /i "{self.installer_url()}" /quiet{self.args()}'
        return (
            f'sudo sh -c "$(curl -fsSlL {self.installer_url()})" '
            f"{self.installer_filename()}{self.args()}"
        )
