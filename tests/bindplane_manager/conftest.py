"""
Shared fixtures for BindPlane manager tests.
"""

import copy

import pytest
from fastapi.testclient import TestClient

from bindplane_manager.config import default_config
from bindplane_manager.manager import BindPlaneManager
from bindplane_manager.models import API_VERSION, parse_resource
from bindplane_manager.store import MapStore

MACOS_SOURCE_TYPE = {
    "apiVersion": API_VERSION,
    "kind": "SourceType",
    "metadata": {"name": "MacOS", "displayName": "Mac OS"},
    "spec": {
        "version": "0.0.1",
        "supportedPlatforms": ["macos"],
        "parameters": [
            {
                "name": "start_at",
                "label": "Start At",
                "type": "enum",
                "validValues": ["beginning", "end"],
                "default": "end",
            },
            {"name": "enable_system_log", "type": "bool", "default": False},
        ],
        "logs": {
            "receivers": (
                "- plugin/macos:\n"
                "    plugin:\n"
                "      name: macos\n"
                "    parameters:\n"
                "      - name: start_at\n"
                "        value: {{ start_at }}\n"
                "      - name: enable_system_log\n"
                "        value: {{ enable_system_log | lower }}\n"
            ),
        },
        "metrics": {
            "receivers": (
                "- hostmetrics:\n"
                "    collection_interval: 1m\n"
                "    scrapers:\n"
                "      load:\n"
            ),
        },
    },
}

# logs only
GOOGLECLOUD_DESTINATION_TYPE = {
    "apiVersion": API_VERSION,
    "kind": "DestinationType",
    "metadata": {"name": "gc"},
    "spec": {
        "parameters": [{"name": "project", "type": "string", "default": ""}],
        "logs": {"exporters": "- googlecloud:\n    project: \"{{ project }}\"\n"},
    },
}

OTLP_DESTINATION_TYPE = {
    "apiVersion": API_VERSION,
    "kind": "DestinationType",
    "metadata": {"name": "otlp"},
    "spec": {
        "parameters": [{"name": "endpoint", "type": "string", "required": True}],
        "logs+metrics": {"exporters": "- otlp:\n    endpoint: {{ endpoint }}\n"},
    },
}

BATCH_PROCESSOR_TYPE = {
    "apiVersion": API_VERSION,
    "kind": "ProcessorType",
    "metadata": {"name": "batch"},
    "spec": {
        "parameters": [{"name": "send_batch_size", "type": "int", "default": 8192}],
        "logs+metrics+traces": {
            "processors": "- batch:\n    send_batch_size: {{ send_batch_size }}\n"
        },
    },
}


def resource_document(kind, name, spec=None, labels=None):
    """Build a resource document dict."""
    metadata = {"name": name}
    if labels:
        metadata["labels"] = labels
    return {"apiVersion": API_VERSION, "kind": kind, "metadata": metadata, "spec": spec or {}}


@pytest.fixture
def type_documents():
    """Resource type documents used across tests."""
    return copy.deepcopy(
        [MACOS_SOURCE_TYPE, GOOGLECLOUD_DESTINATION_TYPE, OTLP_DESTINATION_TYPE, BATCH_PROCESSOR_TYPE]
    )


@pytest.fixture
def make_document():
    """Factory for resource documents."""
    return resource_document


@pytest.fixture
def store(type_documents):
    """MapStore seeded with the MacOS, gc, otlp and batch types."""
    map_store = MapStore()
    statuses = map_store.apply_resources([parse_resource(d) for d in type_documents])
    assert [s.status.value for s in statuses] == ["created"] * len(type_documents)
    return map_store


@pytest.fixture
def config(tmp_path):
    """Default configuration rooted in a temporary home."""
    config = default_config(home=tmp_path)
    config.server.secret_key = "secret"
    return config


@pytest.fixture
def manager(config, store):
    """Manager backed by the seeded store."""
    return BindPlaneManager(config, store=store)


@pytest.fixture
def client(manager):
    """Test client for the manager API."""
    return TestClient(manager.app)
