"""
Tests for the BindPlane manager agent hooks and lifecycle.
"""

from datetime import datetime, timedelta, timezone

import pytest
import yaml

from bindplane_manager.manager import BindPlaneManager
from bindplane_manager.models import AgentStatus, parse_resource
from bindplane_manager.otel import NOOP_CONFIG


class TestAgentConnected:
    """Tests for agent_connected."""

    def test_reserved_labels(self, manager):
        agent = manager.agent_connected(
            "a1",
            "v1.2.0",
            labels={"env": "prod", "bindplane/agent-id": "spoofed"},
            name="web-01",
            platform="linux",
            host_name="host-1",
            architecture="amd64",
        )
        assert agent.status == AgentStatus.CONNECTED
        assert dict(agent.labels) == {
            "env": "prod",
            "bindplane/agent-id": "a1",
            "bindplane/agent-name": "web-01",
            "bindplane/agent-version": "v1.2.0",
            "bindplane/agent-host": "host-1",
            "bindplane/agent-os": "linux",
            "bindplane/agent-arch": "amd64",
        }

    def test_existing_labels_survive_reconnect(self, manager, store):
        manager.agent_connected("a1", "v1", labels={"env": "prod"})
        store.upsert_agent("a1", lambda a: a.labels.update({"tier": "web"}))

        agent = manager.agent_connected("a1", "v2", labels="env=stage")
        assert agent.labels["tier"] == "web"
        assert agent.labels["env"] == "stage"
        assert agent.labels["bindplane/agent-version"] == "v2"

    def test_unparseable_labels_ignored(self, manager):
        agent = manager.agent_connected("a1", "v1", labels="env!=prod")
        assert "env" not in agent.labels
        assert agent.status == AgentStatus.CONNECTED

    def test_unknown_attribute(self, manager, store):
        with pytest.raises(TypeError, match="unknown agent attributes: colour"):
            manager.agent_connected("a1", "v1", colour="blue")
        assert store.agent("a1") is None

    def test_disconnected(self, manager):
        assert manager.agent_disconnected("missing") is None
        manager.agent_connected("a1", "v1")
        agent = manager.agent_disconnected("a1")
        assert agent.status == AgentStatus.DISCONNECTED
        assert agent.disconnected_at is not None


class TestAgentConfiguration:
    """Tests for configuration delivery hooks."""

    def test_noop_without_configuration(self, manager):
        manager.agent_connected("a1", "v1")
        assert manager.agent_configuration_document("a1") == NOOP_CONFIG

    def test_rendered_configuration(self, manager, store, make_document):
        store.apply_resources(
            [
                parse_resource(
                    make_document(
                        "Configuration",
                        "mac",
                        {"sources": [{"type": "MacOS"}], "destinations": [{"type": "gc"}]},
                    )
                )
            ]
        )
        manager.agent_connected("a1", "v1")
        document = yaml.safe_load(manager.agent_configuration_document("a1"))
        assert "logs/MacOS__source0__gc__destination0" in document["service"]["pipelines"]

    def test_configuring_then_applied(self, manager):
        manager.agent_connected("a1", "v1")
        assert manager.agent_configuring("a1").status == AgentStatus.CONFIGURING
        assert manager.agent_configuration_applied("a1").status == AgentStatus.CONNECTED

    def test_applied_with_error_then_recovered(self, manager):
        manager.agent_connected("a1", "v1")
        manager.agent_configuring("a1")
        agent = manager.agent_configuration_applied("a1", "bad exporter")
        assert agent.status == AgentStatus.ERROR
        assert agent.error_message == "bad exporter"

        agent = manager.agent_configuration_applied("a1")
        assert agent.status == AgentStatus.CONNECTED
        assert agent.error_message == ""

    def test_error_reported_while_connected(self, manager):
        manager.agent_connected("a1", "v1")
        agent = manager.agent_configuration_applied("a1", "component failed")
        assert agent.status == AgentStatus.ERROR


class TestCleanupAndOperations:
    """Tests for disconnected agent cleanup and queued operations."""

    def test_cleanup(self, manager, store):
        manager.agent_connected("a1", "v1")
        manager.agent_connected("a2", "v1")
        manager.agent_disconnected("a1")
        store.upsert_agent(
            "a1",
            lambda a: setattr(a, "disconnected_at", datetime.now(timezone.utc) - timedelta(hours=2)),
        )

        removed = manager.cleanup_disconnected_agents(timedelta(hours=1))
        assert [a.id for a in removed] == ["a1"]
        assert store.agent("a1") is None
        assert store.agent("a2") is not None

    def test_operations_queue_per_agent(self, manager):
        manager.restart_agent("a1")
        manager.update_agent_version("a1", "v2")
        manager.restart_agent("a2")

        assert [op.action for op in manager.pending_operations("a1")] == ["restart", "update"]
        assert manager.pending_operations("a1") == []
        assert len(manager.pending_operations("a2")) == 1


class TestLifecycle:
    """Tests for start, stop and status."""

    def test_status_before_start(self, manager):
        status = manager.get_status()
        assert status["running"] is False
        assert status["uptime_seconds"] is None
        assert status["agents"] == 0

    @pytest.mark.asyncio
    async def test_start_seeds_resources(self, manager, tmp_path, make_document):
        resources = tmp_path / "resources"
        resources.mkdir()
        (resources / "sources.yaml").write_text(
            yaml.safe_dump(make_document("Source", "mac", {"type": "MacOS"}))
        )
        manager.config.server.resources_directory = str(resources)

        await manager.start()
        assert manager.get_status()["running"] is True
        assert manager.store.source("mac") is not None

        await manager.stop()
        assert manager.get_status()["running"] is False

    def test_default_store_path(self, config):
        manager = BindPlaneManager(config)
        assert manager.store.storage_path == config.storage_file()
