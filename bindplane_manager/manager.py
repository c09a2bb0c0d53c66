"""
BindPlane manager service.

Owns the configuration, the resource store and the REST application, and
exposes the agent hooks used by the agent management transport.
"""

import asyncio
import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from fastapi import FastAPI

from .api import create_app
from .config import BindPlaneConfig
from .logging_config import LogContext, log_agent_event
from .models import Agent, AgentStatus, labels_from_map, labels_from_merge, labels_from_selector
from .models.labels import (
    LABEL_BINDPLANE_AGENT_ARCH,
    LABEL_BINDPLANE_AGENT_HOST,
    LABEL_BINDPLANE_AGENT_ID,
    LABEL_BINDPLANE_AGENT_NAME,
    LABEL_BINDPLANE_AGENT_OS,
    LABEL_BINDPLANE_AGENT_TYPE,
    LABEL_BINDPLANE_AGENT_VERSION,
)
from .otel import NOOP_CONFIG
from .store import MapStore, Store
from .version import get_version

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 20

# Keyword attributes accepted by agent_connected
AGENT_ATTRIBUTES = (
    "name",
    "type",
    "architecture",
    "host_name",
    "home",
    "platform",
    "operating_system",
    "mac_address",
    "remote_address",
    "secret_key",
)


@dataclass
class AgentOperation:
    """An operation queued for an agent, delivered on its next contact."""

    action: str
    agent_id: str
    version: str = ""
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _reserved_labels(agent: Agent):
    labels, _ = labels_from_map(
        {
            LABEL_BINDPLANE_AGENT_ID: agent.id,
            LABEL_BINDPLANE_AGENT_NAME: agent.name,
            LABEL_BINDPLANE_AGENT_TYPE: agent.type,
            LABEL_BINDPLANE_AGENT_VERSION: agent.version,
            LABEL_BINDPLANE_AGENT_HOST: agent.host_name,
            LABEL_BINDPLANE_AGENT_OS: agent.platform,
            LABEL_BINDPLANE_AGENT_ARCH: agent.architecture,
        }
    )
    # invalid values reported by agents are dropped
    return labels


def _reported_labels(labels: Union[str, Mapping[str, str], None]):
    if not labels:
        return {}
    if isinstance(labels, str):
        parsed, err = labels_from_selector(labels)
        if err is not None:
            logger.warning(f"Ignoring unparseable agent labels {labels!r}: {err}")
            return {}
        return parsed
    parsed, _ = labels_from_map(labels)
    return parsed


class BindPlaneManager:
    """Main manager class that coordinates the store, REST API and agent hooks."""

    def __init__(self, config: BindPlaneConfig, store: Optional[Store] = None):
        """
        Initialize manager with configuration.

        Args:
            config: Configuration object
            store: Resource store, a MapStore persisting to the configured storage file by default
        """
        self.config = config
        self.store: Store = store or MapStore(config.storage_file())
        self.version = get_version()

        self._operations: Dict[str, List[AgentOperation]] = {}
        self._operations_lock = threading.Lock()

        self._running = False
        self._shutdown_event: Optional[asyncio.Event] = None
        self._start_time: Optional[datetime] = None

        self.app: FastAPI = create_app(self)

    # Resources

    def seed(self) -> None:
        """Apply the resources found in the configured resources directory."""
        directory = self.config.server.resources_directory
        if not directory:
            return
        seeder = getattr(self.store, "seed", None)
        if seeder is None:
            logger.warning(f"Store {type(self.store).__name__} cannot be seeded")
            return
        seeder(directory)

    # Agent hooks

    def agent_connected(
        self,
        agent_id: str,
        version: str,
        labels: Union[str, Mapping[str, str], None] = None,
        **attributes: Any,
    ) -> Agent:
        """
        Record an agent connection.

        Args:
            agent_id: Agent identifier
            version: Version the agent reports
            labels: Labels the agent reports, as a mapping or ``k=v,k=v`` string
            **attributes: Agent fields such as name, platform or host_name
        """
        unknown = set(attributes) - set(AGENT_ATTRIBUTES)
        if unknown:
            raise TypeError(f"unknown agent attributes: {', '.join(sorted(unknown))}")
        reported = _reported_labels(labels)

        def update(agent: Agent) -> None:
            for name, value in attributes.items():
                setattr(agent, name, value or "")
            agent.connect(version)
            merged = labels_from_merge(agent.labels, reported)
            agent.labels = labels_from_merge(merged, _reserved_labels(agent))

        with LogContext(logger, agent_id=agent_id):
            agent = self.store.upsert_agent(agent_id, update)
        log_agent_event(agent_id, "connected", version=version)
        return agent

    def agent_disconnected(self, agent_id: str) -> Optional[Agent]:
        if self.store.agent(agent_id) is None:
            logger.warning(f"Disconnect from unknown agent {agent_id}")
            return None
        agent = self.store.upsert_agent(agent_id, lambda a: a.disconnect())
        log_agent_event(agent_id, "disconnected")
        return agent

    def agent_configuration_document(self, agent_id: str) -> str:
        """
        Render the collector document for an agent.

        Agents without a matching configuration receive the NOOP document.

        Raises:
            UnknownResourceError: the configuration references a missing resource
        """
        configuration = self.store.agent_configuration(agent_id)
        if configuration is None:
            logger.debug(f"No configuration for agent {agent_id}, sending NOOP configuration")
            return NOOP_CONFIG
        return configuration.render(self.store)

    def agent_configuring(self, agent_id: str) -> Agent:
        """Mark that a new configuration was sent to the agent."""
        return self.store.upsert_agent(agent_id, lambda a: a.configure())

    def agent_configuration_applied(self, agent_id: str, error_message: str = "") -> Agent:
        """Record the agent's report on the last configuration it received."""

        def update(agent: Agent) -> None:
            if agent.status == AgentStatus.CONFIGURING:
                agent.ack(error_message)
            elif error_message:
                agent.fail(error_message)
            elif agent.status == AgentStatus.ERROR:
                agent.recover()

        agent = self.store.upsert_agent(agent_id, update)
        if error_message:
            log_agent_event(agent_id, "configuration failed", level="WARNING", error=error_message)
        return agent

    def cleanup_disconnected_agents(self, max_age: timedelta) -> List[Agent]:
        since = datetime.now(timezone.utc) - max_age
        removed = self.store.cleanup_disconnected_agents(since)
        for agent in removed:
            log_agent_event(agent.id, "removed", disconnected_at=agent.disconnected_at)
        return removed

    # Queued operations

    def _queue(self, operation: AgentOperation) -> None:
        with self._operations_lock:
            self._operations.setdefault(operation.agent_id, []).append(operation)
        log_agent_event(operation.agent_id, f"{operation.action} requested", version=operation.version)

    def update_agent_version(self, agent_id: str, version: str) -> None:
        self._queue(AgentOperation(action="update", agent_id=agent_id, version=version))

    def restart_agent(self, agent_id: str) -> None:
        self._queue(AgentOperation(action="restart", agent_id=agent_id))

    def pending_operations(self, agent_id: str) -> List[AgentOperation]:
        """Remove and return the operations queued for an agent."""
        with self._operations_lock:
            return self._operations.pop(agent_id, [])

    # Lifecycle

    def get_status(self) -> Dict[str, Any]:
        uptime = None
        if self._start_time:
            uptime = int((datetime.now(timezone.utc) - self._start_time).total_seconds())
        return {
            "running": self._running,
            "uptime_seconds": uptime,
            "start_time": self._start_time.isoformat() if self._start_time else None,
            "agents": self.store.agents_count(),
        }

    async def _serve(self) -> None:
        import uvicorn

        server_config = self.config.server
        uvicorn_config = uvicorn.Config(
            self.app,
            host=server_config.host,
            port=int(server_config.port),
            ssl_certfile=server_config.tls_cert or None,
            ssl_keyfile=server_config.tls_key or None,
            log_level="info",
            timeout_graceful_shutdown=SHUTDOWN_TIMEOUT_SECONDS,
        )
        server = uvicorn.Server(uvicorn_config)

        logger.info(f"Starting API server on {self.config.server_url()}")
        serve_task = asyncio.create_task(server.serve())
        assert self._shutdown_event is not None
        shutdown_task = asyncio.create_task(self._shutdown_event.wait())
        await asyncio.wait({serve_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
        shutdown_task.cancel()
        if serve_task.done():
            serve_task.result()
            return

        logger.info("Stopping API server")
        server.should_exit = True
        try:
            await asyncio.wait_for(serve_task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"API server did not stop within {SHUTDOWN_TIMEOUT_SECONDS}s")
            server.force_exit = True

    async def start(self) -> None:
        logger.info("Starting BindPlane manager...")
        self._running = True
        self._start_time = datetime.now(timezone.utc)
        self.seed()

    async def stop(self) -> None:
        logger.info("Stopping BindPlane manager...")
        self._running = False
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        logger.info("BindPlane manager stopped")

    async def run(self) -> None:
        """Run the manager until shutdown signal."""
        self._shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            assert self._shutdown_event is not None
            self._shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()
            await self._serve()
        finally:
            await self.stop()
