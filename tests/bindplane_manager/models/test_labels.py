"""
Tests for label validation, merging and conflict detection.
"""

import pytest

from bindplane_manager.models import (
    Labels,
    MultiError,
    labels_conflict,
    labels_from_map,
    labels_from_merge,
    labels_from_selector,
)
from bindplane_manager.models.labels import label_value_errors, qualified_name_errors


class TestLabelsFromMap:
    """Tests for labels_from_map."""

    def test_valid_labels(self):
        labels, err = labels_from_map({"env": "prod", "app.kubernetes.io/name": "web", "empty": ""})
        assert err is None
        assert labels == {"env": "prod", "app.kubernetes.io/name": "web", "empty": ""}

    def test_none_is_empty(self):
        labels, err = labels_from_map(None)
        assert err is None
        assert labels == {}

    def test_invalid_entries_are_dropped_and_reported(self):
        labels, err = labels_from_map({"env": "prod", "bad key": "x", "ok": "bad value!"})
        assert labels == {"env": "prod"}
        assert isinstance(err, MultiError)
        assert len(err.errors) == 2
        assert any(m.startswith("bad key is not a valid label name") for m in err.messages)
        assert any(m.startswith("bad value! is not a valid label value") for m in err.messages)

    def test_value_too_long(self):
        _, err = labels_from_map({"env": "a" * 64})
        assert err is not None
        assert "must be no more than 63 characters" in str(err)

    @pytest.mark.parametrize(
        "name",
        ["env", "my.name", "123-abc", "bindplane/agent-id", "example.com/MyName"],
    )
    def test_valid_names(self, name):
        assert qualified_name_errors(name) == []

    @pytest.mark.parametrize(
        "name",
        ["", "-env", "env-", "a/b/c", "/env", "Example.com/name", "has space"],
    )
    def test_invalid_names(self, name):
        assert qualified_name_errors(name) != []

    def test_empty_value_is_valid(self):
        assert label_value_errors("") == []


class TestLabelsFromSelector:
    """Tests for parsing k=v,k=v strings into labels."""

    def test_equality_terms(self):
        labels, err = labels_from_selector("env=prod, app==web")
        assert err is None
        assert labels == {"env": "prod", "app": "web"}

    def test_empty_string(self):
        labels, err = labels_from_selector("  ")
        assert err is None
        assert labels == {}

    def test_rejects_non_equality(self):
        labels, err = labels_from_selector("env!=prod")
        assert labels == {}
        assert "can't understand 'env!=prod'" in str(err)

    def test_rejects_bare_key(self):
        _, err = labels_from_selector("env")
        assert err is not None


class TestMergeAndConflict:
    """Tests for merge and conflict helpers."""

    def test_merge_is_right_biased(self):
        merged = labels_from_merge({"env": "prod", "app": "web"}, {"env": "dev"})
        assert merged == {"env": "dev", "app": "web"}
        assert isinstance(merged, Labels)

    def test_merge_drops_empty_values(self):
        merged = labels_from_merge({"env": "prod", "app": "web"}, {"app": ""})
        assert merged == {"env": "prod"}

    def test_conflict_on_differing_value(self):
        assert labels_conflict({"env": "prod"}, {"env": "dev"})

    def test_no_conflict_on_same_or_disjoint(self):
        assert not labels_conflict({"env": "prod"}, {"env": "prod", "app": "web"})

    def test_empty_value_is_not_a_conflict(self):
        assert not labels_conflict({"env": "prod"}, {"env": ""})

    def test_labels_conflicts_method(self):
        assert Labels({"env": "prod"}).conflicts({"env": "dev"})


class TestLabels:
    """Tests for the Labels mapping."""

    def test_custom_and_bindplane(self):
        labels = Labels({"env": "prod", "bindplane/agent-os": "linux"})
        assert labels.custom() == {"env": "prod"}
        assert labels.bindplane() == {"bindplane/agent-os": "linux"}

    def test_str_is_sorted(self):
        assert str(Labels({"b": "2", "a": "1"})) == "a=1,b=2"
