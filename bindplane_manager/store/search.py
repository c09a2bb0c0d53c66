"""
In-memory search index for agents and configurations.

Indexed objects report their fields and labels through an indexer callback.
Queries are whitespace separated tokens:

    name:value   field or label ``name`` equals ``value``
    name:        field or label ``name`` exists
    value        ``value`` appears in any field or label
    -token       negates the token

Matching is case-insensitive.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Protocol, Set

SCORE_EXACT = 100
SCORE_PREFIX = 50


class Indexed(Protocol):
    def index_id(self) -> str: ...

    def index_fields(self, index) -> None: ...

    def index_labels(self, index) -> None: ...


@dataclass
class QueryToken:
    original: str = ""
    operator: str = ""
    name: str = ""
    value: str = ""

    def is_negated(self) -> bool:
        return self.operator == "-"

    def empty(self) -> bool:
        return not self.name and not self.value


@dataclass
class Query:
    original: str
    tokens: List[QueryToken] = field(default_factory=list)

    def last_token(self) -> Optional[QueryToken]:
        return self.tokens[-1] if self.tokens else None

    def apply_suggestion(self, suggestion: "Suggestion") -> str:
        """Replace the last token of the query with ``suggestion``."""
        parts = [token.original for token in self.tokens[:-1]]
        parts.append(suggestion.query)
        result = " ".join(parts)
        if not suggestion.query.endswith(":"):
            result += " "
        return result


@dataclass
class Suggestion:
    label: str
    query: str
    score: int = 0

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "query": self.query}


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _parse_operator(token: str):
    if token[:1] in ("+", "-"):
        return token[0], token[1:]
    return "", token


def _parse_token(token: str) -> QueryToken:
    stripped = _strip_quotes(token).lower()
    if ":" in stripped:
        name, _, value = stripped.partition(":")
    elif "=" in stripped:
        name, _, value = stripped.partition("=")
    else:
        operator, value = _parse_operator(stripped)
        return QueryToken(original=token, operator=operator, value=_strip_quotes(value))
    operator, name = _parse_operator(name)
    return QueryToken(
        original=token, operator=operator, name=_strip_quotes(name), value=_strip_quotes(value)
    )


def parse_query(query: str) -> Query:
    """Split on spaces outside double quotes. A trailing space adds an empty token."""
    tokens: List[QueryToken] = []
    start = 0
    inside_quotes = False
    skip = False
    for i, c in enumerate(query):
        if skip:
            skip = False
            continue
        if c == " " and not inside_quotes:
            if i > start:
                tokens.append(_parse_token(query[start:i]))
            start = i + 1
        elif c == "\\":
            skip = True
        elif c == '"':
            inside_quotes = not inside_quotes

    remainder = query[start:]
    if remainder:
        tokens.append(_parse_token(remainder))
    elif tokens:
        tokens.append(QueryToken())
    return Query(original=query, tokens=tokens)


class _Document:
    def __init__(self, indexed: Indexed):
        self.id = indexed.index_id()
        self.fields: Dict[str, List[str]] = {}
        self.exact_fields: Dict[str, List[str]] = {}
        self.labels: Dict[str, str] = {}
        self.names: Dict[str, str] = {}
        self.values: Dict[str, Dict[str, str]] = {}
        indexed.index_fields(self._add_field)
        indexed.index_labels(self._add_label)
        self.text = "\n".join(
            [v for values in self.fields.values() for v in values]
            + [item for pair in self.labels.items() for item in pair]
        )

    def _remember(self, name: str, value: str) -> None:
        self.names[name.lower()] = name
        self.values.setdefault(name.lower(), {})[value.lower()] = value

    def _add_field(self, name: str, value: str) -> None:
        if not value:
            return
        self._remember(name, value)
        self.fields.setdefault(name.lower(), []).append(value.lower())
        self.exact_fields.setdefault(name, []).append(value)

    def _add_label(self, name: str, value: str) -> None:
        self._remember(name, value)
        self.labels[name.lower()] = value.lower()

    def matches(self, token: QueryToken) -> bool:
        if not token.name:
            result = token.value in self.text
        elif not token.value:
            result = token.name in self.labels or token.name in self.fields
        else:
            result = self.labels.get(token.name) == token.value or token.value in self.fields.get(
                token.name, []
            )
        return result != token.is_negated()

    def has_field(self, name: str, value: str) -> bool:
        """Case-sensitive field equality. Labels are not consulted."""
        return value in self.exact_fields.get(name, [])


class InMemoryIndex:
    """A thread-safe index of documents keyed by ``index_id``."""

    def __init__(self, name: str):
        self.name = name
        self._documents: Dict[str, _Document] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def upsert(self, indexed: Indexed) -> None:
        document = _Document(indexed)
        with self._lock:
            self._documents[document.id] = document

    def remove(self, indexed: Indexed) -> None:
        with self._lock:
            self._documents.pop(indexed.index_id(), None)

    def search(self, query: Query) -> List[str]:
        """Return the ids of documents matching every token, sorted."""
        with self._lock:
            ids: Optional[Set[str]] = None
            for token in query.tokens:
                if token.empty():
                    continue
                candidates = self._documents.keys() if ids is None else ids
                ids = {
                    doc_id for doc_id in candidates if self._documents[doc_id].matches(token)
                }
            if ids is None:
                return []
            return sorted(ids)

    def matches(self, query: Query, index_id: str) -> bool:
        with self._lock:
            document = self._documents.get(index_id)
            if document is None:
                return False
            return all(document.matches(t) for t in query.tokens if not t.empty())

    def with_field(self, name: str, value: str) -> List[str]:
        """Ids of documents with a field exactly equal to ``value``."""
        with self._lock:
            return sorted(doc.id for doc in self._documents.values() if doc.has_field(name, value))

    def select(self, labels: Mapping[str, str]) -> List[str]:
        """Ids of documents whose labels include every ``labels`` entry."""
        wanted = {k.lower(): v.lower() for k, v in labels.items()}
        with self._lock:
            return sorted(
                doc.id
                for doc in self._documents.values()
                if all(doc.labels.get(k) == v for k, v in wanted.items())
            )

    def suggestions(self, query: Query) -> List[Suggestion]:
        """Suggest field names, or values for the field named by the last token."""
        token = query.last_token()
        if token is None:
            return []
        with self._lock:
            if not token.name:
                raw = self._name_suggestions(token)
            else:
                raw = self._value_suggestions(token)
        results = [Suggestion(s.label, query.apply_suggestion(s), s.score) for s in raw]
        results.sort(key=lambda s: (-s.score, s.label.lower()))
        return results

    def _name_suggestions(self, token: QueryToken) -> List[Suggestion]:
        names: Dict[str, str] = {}
        for document in self._documents.values():
            names.update(document.names)
        results = []
        for key, name in names.items():
            if not key.startswith(token.value):
                continue
            score = SCORE_EXACT if key == token.value else SCORE_PREFIX
            text = f"{token.operator}{name}:"
            results.append(Suggestion(text, text, score))
        return results

    def _value_suggestions(self, token: QueryToken) -> List[Suggestion]:
        values: Dict[str, str] = {}
        name = token.name
        for document in self._documents.values():
            values.update(document.values.get(token.name, {}))
            name = document.names.get(token.name, name)
        results = []
        for key, value in values.items():
            if not key.startswith(token.value):
                continue
            score = SCORE_EXACT if key == token.value else SCORE_PREFIX
            quoted = f'"{value}"' if " " in value else value
            results.append(Suggestion(value, f"{token.operator}{name}:{quoted}", score))
        return results


def field_search(index: InMemoryIndex, name: str, value: str) -> List[str]:
    """Ids of documents referencing ``value`` in field ``name``, matched exactly."""
    return index.with_field(name, value)
