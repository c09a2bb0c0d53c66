"""
Tests for the in-memory resource and agent store.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from bindplane_manager.models import AgentStatus, Kind, Labels, UpdateStatus, parse_resource
from bindplane_manager.models.selector import selector_from_string
from bindplane_manager.store import DependencyError, MapStore, StoreError, parse_query


@pytest.fixture
def apply(store, make_document):
    """Apply a single document and return its status."""

    def _apply(kind, name, spec=None, labels=None):
        return store.apply_resources([parse_resource(make_document(kind, name, spec, labels))])[0]

    return _apply


def connect(store, agent_id, labels=None, name=""):
    def update(agent):
        agent.name = name or agent_id
        if labels:
            agent.labels = Labels(labels)
        agent.connect("v1")

    return store.upsert_agent(agent_id, update)


class TestApply:
    """Tests for apply_resources statuses."""

    def test_created_unchanged_configured(self, apply, store):
        created = apply("Source", "mac", {"type": "MacOS"})
        assert created.status == UpdateStatus.CREATED
        resource_id = store.source("mac").id()
        assert resource_id

        unchanged = apply("Source", "mac", {"type": "MacOS"})
        assert unchanged.status == UpdateStatus.UNCHANGED

        configured = apply(
            "Source", "mac", {"type": "MacOS", "parameters": [{"name": "start_at", "value": "beginning"}]}
        )
        assert configured.status == UpdateStatus.CONFIGURED
        assert store.source("mac").id() == resource_id
        assert configured.resource["metadata"]["id"] == resource_id

    def test_invalid_parameter_override(self, apply, store):
        status = apply(
            "Source", "mac", {"type": "MacOS", "parameters": [{"name": "start_at", "value": "middle"}]}
        )
        assert status.status == UpdateStatus.INVALID
        assert "parameter value for 'start_at' must be one of [beginning end]" in status.reason
        assert store.source("mac") is None

    def test_unknown_type_is_invalid(self, apply):
        status = apply("Source", "win", {"type": "Windows"})
        assert status.status == UpdateStatus.INVALID
        assert "unknown SourceType: Windows" in status.reason

    def test_profile_is_not_stored(self, apply):
        status = apply("Profile", "local", {})
        assert status.status == UpdateStatus.INVALID
        assert status.reason == "Profile is not a valid resource kind for apply"

    def test_batch_is_not_atomic(self, store, make_document):
        statuses = store.apply_resources(
            [
                parse_resource(make_document("Source", "ok", {"type": "MacOS"})),
                parse_resource(make_document("Source", "bad", {"type": "Nope"})),
            ]
        )
        assert [s.status for s in statuses] == [UpdateStatus.CREATED, UpdateStatus.INVALID]
        assert store.source("ok") is not None

    def test_returned_resources_are_copies(self, apply, store):
        apply("Source", "mac", {"type": "MacOS"})
        copy = store.source("mac")
        copy.spec.type = "changed"
        assert store.source("mac").spec.type == "MacOS"


class TestDelete:
    """Tests for deleting resources and dependency checks."""

    def test_delete_type_in_use_by_configuration(self, apply, store, make_document):
        apply("Configuration", "c", {"sources": [{"type": "MacOS"}], "destinations": [{"type": "gc"}]})

        with pytest.raises(DependencyError) as exc_info:
            store.delete_source_type("MacOS")
        assert exc_info.value.dependencies == [(Kind.CONFIGURATION, "c")]
        assert str(exc_info.value) == (
            "SourceType MacOS is in use. Dependent resources:\nConfiguration c\n"
        )

        statuses = store.delete_resources([parse_resource(make_document("SourceType", "MacOS"))])
        assert statuses[0].status == UpdateStatus.IN_USE
        assert "MacOS" in statuses[0].reason
        assert store.source_type("MacOS") is not None

    def test_delete_type_in_use_by_source(self, apply, store):
        apply("Source", "mac", {"type": "MacOS"})
        with pytest.raises(DependencyError) as exc_info:
            store.delete_resource(Kind.SOURCE_TYPE, "MacOS")
        assert exc_info.value.dependencies == [(Kind.SOURCE, "mac")]

    def test_delete_processor_referenced_by_source(self, apply, store):
        apply("Processor", "batcher", {"type": "batch"})
        apply("Source", "mac", {"type": "MacOS", "processors": [{"name": "batcher"}]})
        with pytest.raises(DependencyError):
            store.delete_processor("batcher")
        with pytest.raises(DependencyError):
            store.delete_processor_type("batch")

    def test_delete_named_source_referenced_by_configuration(self, apply, store):
        apply("Source", "mac", {"type": "MacOS"})
        apply("Configuration", "c", {"sources": [{"name": "mac"}], "destinations": [{"type": "gc"}]})
        with pytest.raises(DependencyError):
            store.delete_source("mac")

        assert store.delete_configuration("c").name() == "c"
        assert store.delete_source("mac").name() == "mac"
        assert store.delete_source_type("MacOS").name() == "MacOS"

    def test_labels_are_not_references(self, apply, store):
        apply("Source", "s1", {"type": "MacOS"})
        apply(
            "Configuration",
            "c",
            {"sources": [{"type": "MacOS"}], "destinations": [{"type": "gc"}]},
            labels={"source": "s1"},
        )
        assert store.dependent_resources(Kind.SOURCE, "s1") == []
        assert store.delete_source("s1").name() == "s1"

    def test_type_references_are_case_sensitive(self, apply, store):
        assert apply("SourceType", "macos").status == UpdateStatus.CREATED
        apply("Configuration", "c", {"sources": [{"type": "MacOS"}], "destinations": [{"type": "gc"}]})
        assert store.delete_source_type("macos").name() == "macos"
        with pytest.raises(DependencyError):
            store.delete_source_type("MacOS")

    def test_delete_missing(self, store, make_document):
        assert store.delete_source("missing") is None
        assert store.delete_resources([parse_resource(make_document("Source", "missing"))]) == []

    def test_delete_resources(self, apply, store, make_document):
        apply("Configuration", "c", {"raw": "receivers: {}"})
        statuses = store.delete_resources([parse_resource(make_document("Configuration", "c"))])
        assert statuses[0].status == UpdateStatus.DELETED
        assert store.configuration("c") is None


class TestAgents:
    """Tests for agent storage."""

    def test_upsert_creates_and_updates(self, store):
        agent = connect(store, "a1", {"env": "prod"})
        assert agent.status == AgentStatus.CONNECTED
        assert store.agent("a1").labels == {"env": "prod"}
        assert store.agents_count() == 1

    def test_failed_updater_stores_nothing(self, store):
        connect(store, "a1", {"env": "prod"})

        def fail(agent):
            agent.labels = {"env": "dev"}
            raise ValueError("abandon")

        with pytest.raises(ValueError):
            store.upsert_agent("a1", fail)
        assert store.agent("a1").labels == {"env": "prod"}

    def test_list_filters_and_pages(self, store):
        connect(store, "a1", {"env": "prod"}, name="c")
        connect(store, "a2", {"env": "prod"}, name="a")
        connect(store, "a3", {"env": "dev"}, name="b")

        assert [a.id for a in store.agents()] == ["a2", "a3", "a1"]
        assert [a.id for a in store.agents(selector=selector_from_string("env=prod"))] == ["a2", "a1"]
        assert [a.id for a in store.agents(query="env:dev")] == ["a3"]
        assert [a.id for a in store.agents(offset=1, limit=1)] == ["a3"]
        assert [a.id for a in store.agents(sort="-name")] == ["a1", "a3", "a2"]
        assert store.agents_count(selector=selector_from_string("env=prod")) == 2

    def test_delete_agents(self, store):
        connect(store, "a1")
        deleted = store.delete_agents(["a1", "missing"])
        assert [a.id for a in deleted] == ["a1"]
        assert deleted[0].status == AgentStatus.DELETED
        assert store.agent("a1") is None

    def test_cleanup_disconnected_agents(self, store):
        connect(store, "a1")
        connect(store, "a2")
        store.upsert_agent("a1", lambda a: a.disconnect())

        removed = store.cleanup_disconnected_agents(datetime.now(timezone.utc) + timedelta(seconds=1))
        assert [a.id for a in removed] == ["a1"]
        assert store.agent("a2") is not None


class TestAgentConfiguration:
    """Tests for choosing an agent's configuration."""

    def test_selector_match(self, apply, store):
        apply("Configuration", "b-config", {"raw": "a: b", "selector": {"matchLabels": {"env": "prod"}}})
        apply("Configuration", "a-config", {"raw": "a: b", "selector": {"matchLabels": {"env": "dev"}}})
        connect(store, "a1", {"env": "prod"})
        assert store.agent_configuration("a1").name() == "b-config"

    def test_first_match_by_name(self, apply, store):
        apply("Configuration", "b-config", {"raw": "a: b"})
        apply("Configuration", "a-config", {"raw": "a: b"})
        connect(store, "a1")
        assert store.agent_configuration("a1").name() == "a-config"

    def test_configuration_label_wins(self, apply, store):
        apply("Configuration", "a-config", {"raw": "a: b"})
        apply("Configuration", "z-config", {"raw": "a: b", "selector": {"matchLabels": {"x": "y"}}})
        connect(store, "a1", {"configuration": "z-config"})
        assert store.agent_configuration("a1").name() == "z-config"

    def test_no_agent(self, store):
        assert store.agent_configuration("missing") is None

    def test_agents_for_configuration(self, apply, store):
        apply("Configuration", "c", {"raw": "a: b", "selector": {"matchLabels": {"env": "prod"}}})
        connect(store, "a2", {"env": "prod"})
        connect(store, "a1", {"env": "prod"})
        connect(store, "a3", {"env": "dev"})
        assert store.agents_for_configuration(store.configuration("c")) == ["a1", "a2"]


class TestPersistence:
    """Tests for JSON persistence."""

    def test_round_trip(self, tmp_path, type_documents):
        path = tmp_path / "storage.json"
        store = MapStore(path)
        store.apply_resources([parse_resource(d) for d in type_documents])
        store.upsert_agent("a1", lambda a: setattr(a, "secret_key", "s3cret"))

        data = json.loads(path.read_text())
        assert len(data["resources"]) == len(type_documents)
        assert data["agents"][0]["secretKey"] == "s3cret"
        assert not path.with_suffix(".tmp").exists()

        reloaded = MapStore(path)
        assert reloaded.source_type("MacOS").id() == store.source_type("MacOS").id()
        assert reloaded.agent("a1").secret_key == "s3cret"

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json")
        with pytest.raises(StoreError):
            MapStore(path)

    def test_save_failure_marks_errors(self, tmp_path, type_documents):
        store = MapStore(tmp_path / "storage.json")
        with patch("builtins.open", side_effect=OSError("disk full")):
            statuses = store.apply_resources([parse_resource(type_documents[0])])
        assert statuses[0].status == UpdateStatus.ERROR
        assert "disk full" in statuses[0].reason

    def test_save_failure_rolls_back(self, tmp_path, type_documents):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = MapStore(blocker / "storage.json")

        for _ in range(2):
            statuses = store.apply_resources([parse_resource(type_documents[0])])
            assert statuses[0].status == UpdateStatus.ERROR
            assert "failed to save store" in statuses[0].reason
            assert store.source_type("MacOS") is None

    def test_save_failure_keeps_previous_version(self, tmp_path, type_documents, make_document):
        store = MapStore(tmp_path / "storage.json")
        store.apply_resources([parse_resource(d) for d in type_documents])
        config = make_document(
            "Configuration", "c", {"sources": [{"type": "MacOS"}], "destinations": [{"type": "gc"}]}
        )
        store.apply_resources([parse_resource(config)])

        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store.storage_path = blocker / "storage.json"

        config["spec"]["destinations"] = [
            {"type": "otlp", "parameters": [{"name": "endpoint", "value": "x"}]}
        ]
        statuses = store.apply_resources([parse_resource(config)])
        assert statuses[0].status == UpdateStatus.ERROR
        assert store.configuration("c").spec.destinations[0].type == "gc"
        assert store.configuration_index().search(parse_query("destinationType:gc")) != []
        assert store.configuration_index().search(parse_query("destinationType:otlp")) == []

        with pytest.raises(StoreError):
            store.delete_configuration("c")
        with pytest.raises(StoreError):
            store.delete_resources([parse_resource(make_document("Configuration", "c"))])
        assert store.configuration("c") is not None
        with pytest.raises(DependencyError):
            store.delete_source_type("MacOS")


class TestSeed:
    """Tests for seeding resources from a directory."""

    def test_seed_applies_types_first(self, tmp_path, make_document, type_documents):
        import yaml

        (tmp_path / "nested").mkdir()
        (tmp_path / "a-sources.yaml").write_text(
            yaml.safe_dump(make_document("Source", "mac", {"type": "MacOS"}))
        )
        (tmp_path / "nested" / "types.yml").write_text(yaml.safe_dump_all(type_documents))

        store = MapStore()
        statuses = store.seed(tmp_path)
        assert len(statuses) == len(type_documents) + 1
        assert all(s.status == UpdateStatus.CREATED for s in statuses)
        assert store.source("mac") is not None

    def test_seed_missing_directory(self, tmp_path):
        assert MapStore().seed(tmp_path / "missing") == []
