"""
Tests for the in-memory search index and query parsing.
"""

import pytest

from bindplane_manager.models import Agent
from bindplane_manager.store import InMemoryIndex, field_search, parse_query


@pytest.fixture
def index():
    index = InMemoryIndex("agents")
    index.upsert(Agent(id="a1", name="web-01", platform="linux", labels={"env": "prod"}))
    index.upsert(Agent(id="a2", name="web-02", platform="windows", labels={"env": "dev"}))
    index.upsert(Agent(id="a3", name="db-01", platform="linux", labels={"team": "data"}))
    return index


class TestParseQuery:
    """Tests for query tokenization."""

    def test_tokens(self):
        query = parse_query('env:prod -platform:linux "web 01"')
        assert [(t.operator, t.name, t.value) for t in query.tokens] == [
            ("", "env", "prod"),
            ("-", "platform", "linux"),
            ("", "", "web 01"),
        ]

    def test_trailing_space_adds_empty_token(self):
        query = parse_query("env:prod ")
        assert len(query.tokens) == 2
        assert query.last_token().empty()

    def test_equals_separator_and_case(self):
        token = parse_query("Env=PROD").tokens[0]
        assert (token.name, token.value) == ("env", "prod")


class TestSearch:
    """Tests for matching documents."""

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("env:prod", ["a1"]),
            ("platform:linux", ["a1", "a3"]),
            ("platform:LINUX -env:prod", ["a3"]),
            ("team:", ["a3"]),
            ("web", ["a1", "a2"]),
            ("-web", ["a3"]),
            ("nothing-matches", []),
            ("", []),
        ],
    )
    def test_search(self, index, query, expected):
        assert index.search(parse_query(query)) == expected

    def test_matches(self, index):
        assert index.matches(parse_query("env:prod"), "a1")
        assert not index.matches(parse_query("env:prod"), "a2")
        assert not index.matches(parse_query("env:prod"), "missing")

    def test_remove(self, index):
        index.remove(Agent(id="a1"))
        assert index.search(parse_query("env:prod")) == []
        assert len(index) == 2

    def test_upsert_replaces(self, index):
        index.upsert(Agent(id="a1", name="web-01", labels={"env": "stage"}))
        assert index.search(parse_query("env:prod")) == []
        assert index.search(parse_query("env:stage")) == ["a1"]

    def test_select(self, index):
        assert index.select({"env": "dev"}) == ["a2"]
        assert index.select({}) == ["a1", "a2", "a3"]

    def test_field_search(self, index):
        assert field_search(index, "name", "db-01") == ["a3"]
        assert field_search(index, "platform", "linux") == ["a1", "a3"]

    def test_field_search_is_exact_and_ignores_labels(self, index):
        assert field_search(index, "name", "DB-01") == []
        assert field_search(index, "name", "db") == []
        assert field_search(index, "env", "prod") == []
        # the query engine still matches the same token
        assert index.search(parse_query("env:prod")) == ["a1"]


class TestSuggestions:
    """Tests for query completion."""

    def test_name_suggestions(self, index):
        labels = [s.label for s in index.suggestions(parse_query("pla"))]
        assert labels == ["platform:"]

    def test_value_suggestions(self, index):
        suggestions = index.suggestions(parse_query("env:"))
        assert [s.label for s in suggestions] == ["dev", "prod"]
        assert suggestions[0].query == "env:dev "

    def test_suggestion_replaces_last_token(self, index):
        suggestions = index.suggestions(parse_query("team:data platform:w"))
        assert [s.query for s in suggestions] == ["team:data platform:windows "]

    def test_no_tokens(self, index):
        assert index.suggestions(parse_query("")) == []
