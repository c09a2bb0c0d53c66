"""
Tests for configuration validation and rendering.
"""

import threading

import pytest
import yaml

from bindplane_manager.models import (
    ConfigurationType,
    RenderCancelledError,
    UnknownResourceError,
    new_raw_configuration,
    parse_resource,
)
from bindplane_manager.otel import NOOP_CONFIG


@pytest.fixture
def configuration(make_document):
    def build(name="c", sources=None, destinations=None, raw="", labels=None, match_labels=None):
        spec = {"sources": sources or [], "destinations": destinations or []}
        if raw:
            spec["raw"] = raw
        if match_labels is not None:
            spec["selector"] = {"matchLabels": match_labels}
        return parse_resource(make_document("Configuration", name, spec, labels))

    return build


class TestRawConfiguration:
    """Tests for raw passthrough configurations."""

    def test_raw_passthrough(self, store, configuration):
        raw = "receivers:\n  hostmetrics:\n    collection_interval: 1m"
        c = configuration("cfg1", raw=raw)
        assert c.config_type() == ConfigurationType.RAW
        assert c.validate_with_store(store) is None
        assert c.render(store) == raw

    def test_raw_with_sources_is_invalid(self, store, configuration):
        c = configuration(raw="receivers: {}", sources=[{"type": "MacOS"}])
        err = c.validate_with_store(store)
        assert "configuration must specify raw or sources and destinations" in err.messages

    def test_raw_must_be_yaml(self, configuration):
        c = configuration(raw="receivers: [")
        assert "unable to parse spec.raw as yaml" in str(c.validate())

    def test_empty_configuration_is_invalid(self, configuration):
        assert "configuration must specify raw or sources and destinations" in str(
            configuration().validate()
        )

    def test_new_raw_configuration(self):
        c = new_raw_configuration("raw", "receivers: {}")
        assert c.kind == "Configuration"
        assert c.spec.raw == "receivers: {}"


class TestModularRendering:
    """Tests for composing sources and destinations into pipelines."""

    def test_single_source_single_destination(self, store, configuration):
        c = configuration("c2", sources=[{"type": "MacOS"}], destinations=[{"type": "gc"}])
        assert c.validate_with_store(store) is None

        document = yaml.safe_load(c.render(store))
        assert list(document["service"]["pipelines"]) == ["logs/MacOS__source0__gc__destination0"]
        assert list(document["receivers"]) == ["plugin/MacOS__source0__macos"]
        assert list(document["exporters"]) == ["googlecloud/gc__destination0"]
        assert document["service"]["pipelines"]["logs/MacOS__source0__gc__destination0"] == {
            "receivers": ["plugin/MacOS__source0__macos"],
            "processors": [],
            "exporters": ["googlecloud/gc__destination0"],
        }

    def test_two_sources_two_destinations(self, store, configuration):
        otlp = {"type": "otlp", "parameters": [{"name": "endpoint", "value": "collector:4317"}]}
        c = configuration(
            sources=[{"type": "MacOS"}, {"type": "MacOS"}], destinations=[otlp, dict(otlp)]
        )
        document = yaml.safe_load(c.render(store))
        pipelines = document["service"]["pipelines"]

        logs = [name for name in pipelines if name.startswith("logs/")]
        metrics = [name for name in pipelines if name.startswith("metrics/")]
        assert len(logs) == 4
        assert len(metrics) == 4
        assert "logs/MacOS__source1__otlp__destination0" in pipelines
        assert set(document["receivers"]) == {
            "plugin/MacOS__source0__macos",
            "plugin/MacOS__source1__macos",
            "hostmetrics/MacOS__source0",
            "hostmetrics/MacOS__source1",
        }
        assert set(document["exporters"]) == {"otlp/otlp__destination0", "otlp/otlp__destination1"}
        assert document["exporters"]["otlp/otlp__destination1"] == {"endpoint": "collector:4317"}

    def test_cross_join_skips_unsupported_types(self, store, configuration):
        otlp = {"type": "otlp", "parameters": [{"name": "endpoint", "value": "x:4317"}]}
        c = configuration(sources=[{"type": "MacOS"}], destinations=[{"type": "gc"}, otlp])
        pipelines = yaml.safe_load(c.render(store))["service"]["pipelines"]
        assert sorted(pipelines) == [
            "logs/MacOS__source0__gc__destination0",
            "logs/MacOS__source0__otlp__destination1",
            "metrics/MacOS__source0__otlp__destination1",
        ]

    def test_source_processors_follow_receivers(self, store, configuration):
        c = configuration(
            sources=[{"type": "MacOS", "processors": [{"type": "batch"}]}],
            destinations=[{"type": "gc"}],
        )
        document = yaml.safe_load(c.render(store))
        pipeline = document["service"]["pipelines"]["logs/MacOS__source0__gc__destination0"]
        assert pipeline["processors"] == ["batch/batch__MacOS__source0__processor0"]

    def test_only_sources_renders_noop(self, store, configuration):
        c = configuration(sources=[{"type": "MacOS"}])
        assert c.render(store) == NOOP_CONFIG

    def test_no_shared_telemetry_renders_noop(self, store, configuration, make_document):
        traces_only = make_document(
            "DestinationType", "jaeger", {"traces": {"exporters": "- jaeger:\n"}}
        )
        store.apply_resources([parse_resource(traces_only)])
        c = configuration(sources=[{"type": "MacOS"}], destinations=[{"type": "jaeger"}])
        assert c.render(store) == NOOP_CONFIG

    def test_unknown_type(self, store, configuration):
        c = configuration(sources=[{"type": "Windows"}], destinations=[{"type": "gc"}])
        with pytest.raises(UnknownResourceError) as exc_info:
            c.render(store)
        assert str(exc_info.value) == "unknown SourceType: Windows"

    def test_unknown_named_source(self, store, configuration):
        c = configuration(sources=[{"name": "missing"}], destinations=[{"type": "gc"}])
        with pytest.raises(UnknownResourceError, match="unknown Source: missing"):
            c.render(store)

    def test_template_errors_go_to_handler(self, store, configuration):
        c = configuration(sources=[{"type": "MacOS"}], destinations=[{"type": "otlp"}])
        document, err = c.render_with_errors(store)
        assert document == NOOP_CONFIG
        assert err is not None
        assert "endpoint" in str(err)

    def test_cancelled_render(self, store, configuration):
        c = configuration(sources=[{"type": "MacOS"}], destinations=[{"type": "gc"}])
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(RenderCancelledError):
            c.render(store, cancel=cancel)


class TestStoredReferences:
    """Tests for configurations referring to stored resources."""

    def test_named_source_with_override(self, store, configuration, make_document):
        source = make_document(
            "Source",
            "mac",
            {
                "type": "MacOS",
                "parameters": [
                    {"name": "start_at", "value": "beginning"},
                    {"name": "enable_system_log", "value": True},
                ],
            },
        )
        statuses = store.apply_resources([parse_resource(source)])
        assert statuses[0].status.value == "created"

        c = configuration(
            sources=[{"name": "mac", "parameters": [{"name": "start_at", "value": "end"}]}],
            destinations=[{"type": "gc"}],
        )
        document = yaml.safe_load(c.render(store))
        body = document["receivers"]["plugin/MacOS__mac__macos"]
        assert body["parameters"] == [
            {"name": "start_at", "value": "end"},
            {"name": "enable_system_log", "value": True},
        ]
        assert "logs/MacOS__mac__gc__destination0" in document["service"]["pipelines"]

    def test_invalid_parameter_override(self, store, configuration):
        c = configuration(
            sources=[{"type": "MacOS", "parameters": [{"name": "start_at", "value": "middle"}]}],
            destinations=[{"type": "gc"}],
        )
        err = c.validate_with_store(store)
        assert "parameter value for 'start_at' must be one of [beginning end]" in err.messages

    def test_undefined_parameter(self, store, configuration):
        c = configuration(
            sources=[{"type": "MacOS", "parameters": [{"name": "nope", "value": 1}]}],
            destinations=[{"type": "gc"}],
        )
        assert "parameter nope not defined in type MacOS" in c.validate_with_store(store).messages

    def test_reference_needs_name_or_type(self, store, configuration):
        c = configuration(sources=[{}], destinations=[{"type": "gc"}])
        assert "all Source must have either a name or type" in c.validate_with_store(store).messages


class TestSelection:
    """Tests for agent matching."""

    def test_is_for_agent(self, configuration):
        from bindplane_manager.models import Agent

        c = configuration(raw="receivers: {}", match_labels={"env": "prod"})
        assert c.is_for_agent(Agent(id="a1", labels={"env": "prod"}))
        assert not c.is_for_agent(Agent(id="a2", labels={"env": "dev"}))

    def test_empty_selector_matches_every_agent(self, configuration):
        from bindplane_manager.models import Agent

        c = configuration(raw="receivers: {}")
        assert c.is_for_agent(Agent(id="a1"))
