"""
Label selectors.

Selector expressions use the Kubernetes grammar::

    expr := term (',' term)*
    term := key ('=' | '==' | '!=') value
          | key ' in ' '(' value (',' value)* ')'
          | key ' notin ' '(' value (',' value)* ')'
          | key
          | '!' key
"""

import re
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .labels import label_value_errors, labels_from_map, qualified_name_errors
from .validation import Errors


class Operator(str, Enum):
    """Selector requirement operators."""

    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


class SelectorError(ValueError):
    """Raised when a selector expression cannot be parsed."""

    pass


class Requirement:
    """A single ``key op values`` term of a selector."""

    def __init__(self, key: str, operator: Operator, values: Optional[List[str]] = None):
        self.key = key
        self.operator = operator
        self.values = list(values or [])

    def matches(self, labels: Mapping[str, str]) -> bool:
        op = self.operator
        if op in (Operator.EQUALS, Operator.DOUBLE_EQUALS, Operator.IN):
            return self.key in labels and labels[self.key] in self.values
        if op in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return self.key not in labels or labels[self.key] not in self.values
        if op == Operator.EXISTS:
            return self.key in labels
        return self.key not in labels

    def __str__(self) -> str:
        op = self.operator
        if op == Operator.EXISTS:
            return self.key
        if op == Operator.DOES_NOT_EXIST:
            return f"!{self.key}"
        if op in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {op.value} ({','.join(sorted(self.values))})"
        return f"{self.key}{op.value}{self.values[0]}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Requirement):
            return NotImplemented
        return (
            self.key == other.key
            and self.operator == other.operator
            and sorted(self.values) == sorted(other.values)
        )

    def __repr__(self) -> str:
        return f"Requirement({str(self)!r})"


class Selector:
    """
    A predicate over labels.

    A selector built from an empty expression or an empty map matches every
    set of labels. ``empty_selector()`` matches nothing.
    """

    def __init__(self, requirements: Optional[List[Requirement]] = None, nothing: bool = False):
        self.requirements = sorted(requirements or [], key=lambda r: r.key)
        self.nothing = nothing

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        if self.nothing:
            return False
        labels = labels or {}
        return all(r.matches(labels) for r in self.requirements)

    def empty(self) -> bool:
        """True if the selector has no requirements (matches everything)."""
        return not self.nothing and not self.requirements

    def match_labels(self) -> Tuple[Optional[Dict[str, str]], bool]:
        """
        Return the equality-only subset of the selector.

        ``complete`` is False when any non-equality requirement was dropped.
        The nothing selector returns ``(None, False)``.
        """
        if self.nothing:
            return None, False
        complete = True
        labels: Dict[str, str] = {}
        for r in self.requirements:
            if r.operator in (Operator.EQUALS, Operator.DOUBLE_EQUALS):
                if r.values:
                    labels[r.key] = r.values[0]
            else:
                complete = False
        return labels, complete

    def __str__(self) -> str:
        if self.nothing:
            return ""
        return ",".join(str(r) for r in self.requirements)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Selector):
            return NotImplemented
        return self.nothing == other.nothing and self.requirements == other.requirements

    def __repr__(self) -> str:
        if self.nothing:
            return "Selector(<nothing>)"
        return f"Selector({str(self)!r})"


def everything_selector() -> Selector:
    return Selector()


def empty_selector() -> Selector:
    """The selector that matches nothing."""
    return Selector(nothing=True)


_SET_RE = re.compile(r"^(?P<key>\S+)\s+(?P<op>in|notin)\s*\((?P<values>[^)]*)\)$")


def _split_terms(expr: str) -> List[str]:
    """Split on commas that are not inside a parenthesized value list."""
    terms: List[str] = []
    depth = 0
    current = ""
    for ch in expr:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unexpected ')' in selector: '{expr}'")
        if ch == "," and depth == 0:
            terms.append(current)
            current = ""
            continue
        current += ch
    if depth != 0:
        raise SelectorError(f"unbalanced parentheses in selector: '{expr}'")
    terms.append(current)
    return terms


def _check_key(key: str) -> None:
    errs = qualified_name_errors(key)
    if errs:
        raise SelectorError(f"invalid label key \"{key}\": {'; '.join(errs)}")


def _check_value(value: str) -> None:
    errs = label_value_errors(value)
    if errs:
        raise SelectorError(f"invalid label value: \"{value}\": {'; '.join(errs)}")


def _parse_term(term: str, expr: str) -> Requirement:
    term = term.strip()
    if not term:
        raise SelectorError(f"found empty requirement in selector: '{expr}'")

    match = _SET_RE.match(term)
    if match:
        key = match.group("key")
        _check_key(key)
        values = [v.strip() for v in match.group("values").split(",")]
        if values == [""]:
            raise SelectorError(f"for '{match.group('op')}' operator, values set can't be empty")
        for value in values:
            _check_value(value)
        op = Operator.IN if match.group("op") == "in" else Operator.NOT_IN
        return Requirement(key, op, values)

    for symbol, op in (
        ("!=", Operator.NOT_EQUALS),
        ("==", Operator.DOUBLE_EQUALS),
        ("=", Operator.EQUALS),
    ):
        if symbol in term:
            key, _, value = term.partition(symbol)
            key, value = key.strip(), value.strip()
            _check_key(key)
            _check_value(value)
            return Requirement(key, op, [value])

    if term.startswith("!"):
        key = term[1:].strip()
        _check_key(key)
        return Requirement(key, Operator.DOES_NOT_EXIST)

    if re.search(r"\s", term):
        raise SelectorError(f"unable to parse requirement: '{term}' in selector: '{expr}'")
    _check_key(term)
    return Requirement(term, Operator.EXISTS)


def selector_from_string(expr: str) -> Selector:
    """
    Parse a selector expression.

    Raises:
        SelectorError: the expression is not valid
    """
    expr = (expr or "").strip()
    if not expr:
        return everything_selector()
    return Selector([_parse_term(term, expr) for term in _split_terms(expr)])


def selector_from_map(m: Optional[Mapping[str, str]]) -> Selector:
    """
    Build an equality selector from a literal match map.

    Raises:
        SelectorError: any key or value is not valid
    """
    labels, err = labels_from_map(m)
    if err is not None:
        raise SelectorError(str(err))
    return Selector([Requirement(k, Operator.EQUALS, [v]) for k, v in labels.items()])


class AgentSelector(BaseModel):
    """Binds a resource to the agents whose labels match ``matchLabels``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    match_labels: Dict[str, str] = Field(
        default_factory=dict, alias="matchLabels", description="Required agent labels"
    )

    @field_validator("match_labels", mode="before")
    @classmethod
    def _null_match_labels(cls, v):
        return {} if v is None else v

    def selector(self) -> Selector:
        """Return the selector, or the nothing selector if the map is invalid."""
        try:
            return selector_from_map(self.match_labels)
        except SelectorError:
            return empty_selector()

    def validate_selector(self, errors: Errors) -> None:
        try:
            selector_from_map(self.match_labels)
        except SelectorError as e:
            errors.add(f"selector is invalid: {e}")
