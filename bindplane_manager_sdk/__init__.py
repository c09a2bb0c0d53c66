"""
BindPlane manager SDK - Python client for the BindPlane manager REST API.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

DEFAULT_TIMEOUT = 20

# resource path for each kind handled by the generic resource methods
RESOURCE_PATHS = {
    "Configuration": "configurations",
    "Source": "sources",
    "SourceType": "source-types",
    "Processor": "processors",
    "ProcessorType": "processor-types",
    "Destination": "destinations",
    "DestinationType": "destination-types",
}


class BindPlaneError(Exception):
    """Base exception for the BindPlane SDK."""

    pass


class AuthenticationError(BindPlaneError):
    """The server rejected the configured credentials."""

    pass


class APIError(BindPlaneError):
    """API request errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[str]] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []
        self.response = response


def _quote(value: str) -> str:
    return quote(value, safe="")


class BindPlaneClient:
    """Client for the BindPlane manager API."""

    def __init__(
        self,
        server_url: str = "http://127.0.0.1:3001",
        username: str = "admin",
        password: str = "admin",
        timeout: float = DEFAULT_TIMEOUT,
        verify: Any = True,
    ):
        """
        Initialize the client.

        Args:
            server_url: Base URL of the server, without the ``/v1`` prefix
            username: Basic auth username
            password: Basic auth password
            timeout: Per-request timeout in seconds
            verify: TLS verification, passed to requests (bool or CA bundle path)
        """
        self.base_url = f"{server_url.rstrip('/')}/v1"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = (username, password)
        self.session.verify = verify

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Make an authenticated request, raising on error responses."""
        kwargs.setdefault("timeout", self.timeout)
        response = self.session.request(method, f"{self.base_url}{endpoint}", **kwargs)

        if response.status_code == 401:
            raise AuthenticationError("Authentication failed. Check username and password.")
        if response.status_code >= 400:
            body: Optional[Dict[str, Any]] = None
            try:
                body = response.json()
            except ValueError:
                pass
            errors = list((body or {}).get("errors") or [])
            message = "; ".join(errors) if errors else f"API error: {response.status_code}"
            raise APIError(message, response.status_code, errors, body)

        return response

    # Agents

    def agents(
        self,
        selector: str = "",
        query: str = "",
        offset: int = 0,
        limit: int = 0,
        sort: str = "",
    ) -> List[Dict[str, Any]]:
        params = {k: v for k, v in dict(selector=selector, query=query, sort=sort).items() if v}
        if offset:
            params["offset"] = str(offset)
        if limit:
            params["limit"] = str(limit)
        return self._request("GET", "/agents", params=params).json().get("agents", [])

    def agent(self, agent_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/agents/{_quote(agent_id)}").json()["agent"]

    def delete_agents(self, ids: List[str]) -> List[Dict[str, Any]]:
        """Delete agents by id, returning the deleted agents."""
        response = self._request("DELETE", "/agents", json={"ids": ids})
        return response.json().get("agents", [])

    def agent_labels(self, agent_id: str) -> Dict[str, str]:
        response = self._request("GET", f"/agents/{_quote(agent_id)}/labels")
        return response.json().get("labels", {})

    def apply_agent_labels(
        self, agent_id: str, labels: Dict[str, str], overwrite: bool = False
    ) -> Dict[str, str]:
        """
        Merge labels into an agent's labels.

        Raises:
            APIError: 409 when labels conflict and ``overwrite`` is False; the
                agent's current labels are in ``response["labels"]``
        """
        response = self._request(
            "PATCH",
            f"/agents/{_quote(agent_id)}/labels",
            params={"overwrite": "true" if overwrite else "false"},
            json={"labels": labels},
        )
        return response.json().get("labels", {})

    def bulk_apply_agent_labels(
        self, ids: List[str], labels: Dict[str, str], overwrite: bool = False
    ) -> List[str]:
        """Apply labels to several agents, returning per-agent errors."""
        response = self._request(
            "PATCH", "/agents/labels", json={"ids": ids, "labels": labels, "overwrite": overwrite}
        )
        return response.json().get("errors", [])

    def agent_configuration(self, agent_id: str) -> Dict[str, Any]:
        response = self._request("GET", f"/agents/{_quote(agent_id)}/configuration")
        return response.json()

    def agent_restart(self, agent_id: str) -> None:
        self._request("PUT", f"/agents/{_quote(agent_id)}/restart")

    def agent_update(self, agent_id: str, version: str) -> None:
        """Request that an agent upgrade to ``version``."""
        self._request("POST", f"/agents/{_quote(agent_id)}/version", json={"version": version})

    def agent_install_command(
        self,
        version: str = "latest",
        platform: str = "",
        labels: str = "",
        secret_key: str = "",
        remote_url: str = "",
    ) -> str:
        params = {
            "platform": platform,
            "labels": labels,
            "secret-key": secret_key,
            "remote-url": remote_url,
        }
        response = self._request(
            "GET",
            f"/agent-versions/{_quote(version)}/install-command",
            params={k: v for k, v in params.items() if v},
        )
        return response.json()["command"]

    # Configurations

    def configurations(self, selector: str = "", query: str = "") -> List[Dict[str, Any]]:
        params = {k: v for k, v in dict(selector=selector, query=query).items() if v}
        response = self._request("GET", "/configurations", params=params)
        return response.json().get("configurations", [])

    def configuration(self, name: str) -> Dict[str, Any]:
        return self._request("GET", f"/configurations/{_quote(name)}").json()["configuration"]

    def raw_configuration(self, name: str) -> str:
        """The rendered collector document of a configuration."""
        return self._request("GET", f"/configurations/{_quote(name)}").json().get("raw", "")

    def delete_configuration(self, name: str) -> None:
        self._request("DELETE", f"/configurations/{_quote(name)}")

    def duplicate_configuration(self, name: str, new_name: str) -> List[Dict[str, Any]]:
        response = self._request(
            "POST", f"/configurations/{_quote(name)}/duplicate", json={"name": new_name}
        )
        return response.json().get("updates", [])

    # Other resources

    def resources(self, kind: str) -> List[Dict[str, Any]]:
        """
        List resources of a kind.

        Args:
            kind: Resource kind, e.g. ``SourceType``
        """
        path = RESOURCE_PATHS[kind]
        data = self._request("GET", f"/{path}").json()
        return next(iter(data.values()), []) if data else []

    def resource(self, kind: str, name: str) -> Dict[str, Any]:
        path = RESOURCE_PATHS[kind]
        data = self._request("GET", f"/{path}/{_quote(name)}").json()
        if kind == "Configuration":
            return data["configuration"]
        return next(iter(data.values()))

    def delete_resource(self, kind: str, name: str) -> None:
        """
        Delete a resource by kind and name.

        Raises:
            APIError: 404 when missing, 409 when other resources depend on it
        """
        self._request("DELETE", f"/{RESOURCE_PATHS[kind]}/{_quote(name)}")

    def sources(self) -> List[Dict[str, Any]]:
        return self.resources("Source")

    def source_types(self) -> List[Dict[str, Any]]:
        return self.resources("SourceType")

    def processors(self) -> List[Dict[str, Any]]:
        return self.resources("Processor")

    def processor_types(self) -> List[Dict[str, Any]]:
        return self.resources("ProcessorType")

    def destinations(self) -> List[Dict[str, Any]]:
        return self.resources("Destination")

    def destination_types(self) -> List[Dict[str, Any]]:
        return self.resources("DestinationType")

    # Batch operations

    def apply(self, resources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Apply resource documents, returning one status per resource."""
        response = self._request("POST", "/apply", json={"resources": resources})
        return response.json().get("updates", [])

    def delete(self, resources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Delete resources by kind and name, returning one status per deleted or refused resource."""
        response = self._request("POST", "/delete", json={"resources": resources})
        return response.json().get("updates", [])

    # System

    def version(self) -> Dict[str, str]:
        return self._request("GET", "/version").json()
