"""
Labels attached to resources and agents.

Label names and values follow the Kubernetes label grammar. Names may carry
an optional DNS-subdomain prefix (``prefix/name``); the ``bindplane/`` prefix
is reserved for labels owned by the system.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

from .validation import Errors, MultiError

LABEL_BINDPLANE_AGENT_ID = "bindplane/agent-id"
LABEL_BINDPLANE_AGENT_NAME = "bindplane/agent-name"
LABEL_BINDPLANE_AGENT_TYPE = "bindplane/agent-type"
LABEL_BINDPLANE_AGENT_VERSION = "bindplane/agent-version"
LABEL_BINDPLANE_AGENT_HOST = "bindplane/agent-host"
LABEL_BINDPLANE_AGENT_OS = "bindplane/agent-os"
LABEL_BINDPLANE_AGENT_ARCH = "bindplane/agent-arch"

BINDPLANE_PREFIX = "bindplane/"

QUALIFIED_NAME_MAX_LENGTH = 63
LABEL_VALUE_MAX_LENGTH = 63
DNS_SUBDOMAIN_MAX_LENGTH = 253

_NAME_FMT = r"([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]"
_NAME_RE = re.compile(f"^{_NAME_FMT}$")
_VALUE_RE = re.compile(f"^({_NAME_FMT})?$")
_DNS_LABEL_FMT = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS_SUBDOMAIN_RE = re.compile(rf"^{_DNS_LABEL_FMT}(\.{_DNS_LABEL_FMT})*$")

_NAME_HINT = (
    "name part must consist of alphanumeric characters, '-', '_' or '.', and must start "
    "and end with an alphanumeric character (e.g. 'MyName',  or 'my.name',  or '123-abc', "
    f"regex used for validation is '{_NAME_FMT}')"
)
_VALUE_HINT = (
    "a valid label must be an empty string or consist of alphanumeric characters, '-', '_' "
    "or '.', and must start and end with an alphanumeric character (e.g. 'MyValue',  or "
    f"'my_value',  or '12345', regex used for validation is '({_NAME_FMT})?')"
)
_PREFIX_HINT = (
    "prefix part a lowercase RFC 1123 subdomain must consist of lower case alphanumeric "
    "characters, '-' or '.', and must start and end with an alphanumeric character "
    "(e.g. 'example.com')"
)


def qualified_name_errors(name: str) -> List[str]:
    """Return the reasons ``name`` is not a valid label name (empty when valid)."""
    errs: List[str] = []
    parts = name.split("/")
    if len(parts) == 1:
        local = parts[0]
    elif len(parts) == 2:
        prefix, local = parts
        if not prefix:
            errs.append("prefix part must be non-empty")
        else:
            if len(prefix) > DNS_SUBDOMAIN_MAX_LENGTH:
                errs.append(
                    f"prefix part must be no more than {DNS_SUBDOMAIN_MAX_LENGTH} characters"
                )
            if not _DNS_SUBDOMAIN_RE.match(prefix):
                errs.append(_PREFIX_HINT)
    else:
        return [
            "a qualified name must consist of alphanumeric characters, '-', '_' or '.', "
            "and must start and end with an alphanumeric character with an optional "
            "DNS subdomain prefix and '/' (e.g. 'example.com/MyName')"
        ]

    if not local:
        errs.append("name part must be non-empty")
    elif len(local) > QUALIFIED_NAME_MAX_LENGTH:
        errs.append(f"name part must be no more than {QUALIFIED_NAME_MAX_LENGTH} characters")
    if local and not _NAME_RE.match(local):
        errs.append(_NAME_HINT)
    return errs


def label_value_errors(value: str) -> List[str]:
    """Return the reasons ``value`` is not a valid label value (empty when valid)."""
    errs: List[str] = []
    if len(value) > LABEL_VALUE_MAX_LENGTH:
        errs.append(f"must be no more than {LABEL_VALUE_MAX_LENGTH} characters")
    if not _VALUE_RE.match(value):
        errs.append(_VALUE_HINT)
    return errs


class Labels(Dict[str, str]):
    """
    A validated ``name -> value`` mapping.

    Serializes as a plain mapping; ``None`` decodes to an empty mapping so a
    resource never carries null labels.
    """

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls._coerce,
            core_schema.nullable_schema(
                core_schema.dict_schema(core_schema.str_schema(), core_schema.str_schema())
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda labels: dict(labels or {})
            ),
        )

    @classmethod
    def _coerce(cls, value: Optional[Mapping[str, str]]) -> "Labels":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls(value)

    def as_map(self) -> Dict[str, str]:
        """Return a plain dict copy of the labels."""
        return dict(self)

    def conflicts(self, other: Mapping[str, str]) -> bool:
        """True if any common key carries a different value."""
        return labels_conflict(self, other)

    def custom(self) -> "Labels":
        """Labels outside the reserved ``bindplane/`` prefix."""
        return self._filtered(False)

    def bindplane(self) -> "Labels":
        """Labels inside the reserved ``bindplane/`` prefix."""
        return self._filtered(True)

    def _filtered(self, has_prefix: bool) -> "Labels":
        return Labels(
            {k: v for k, v in self.items() if k.startswith(BINDPLANE_PREFIX) == has_prefix}
        )

    def validate(self, errors: Errors) -> None:
        _, err = labels_from_map(self)
        errors.add(err)

    def __str__(self) -> str:
        return ",".join(f"{k}={self[k]}" for k in sorted(self))


def make_labels() -> Labels:
    return Labels()


def labels_from_map(m: Optional[Mapping[str, str]]) -> Tuple[Labels, Optional[MultiError]]:
    """
    Validate every entry of ``m``.

    Returns the labels made of the valid entries along with an error naming
    each rejected entry. Callers may ignore the error to accept the valid
    subset.
    """
    errors = Errors()
    valid = Labels()
    for name, value in (m or {}).items():
        name_errs = qualified_name_errors(name)
        if name_errs:
            errors.add(f"{name} is not a valid label name: {'; '.join(name_errs)}")
            continue
        value_errs = label_value_errors(value)
        if value_errs:
            errors.add(f"{value} is not a valid label value: {'; '.join(value_errs)}")
            continue
        valid[name] = value
    return valid, errors.result()


def labels_from_validated_map(m: Optional[Mapping[str, str]]) -> Labels:
    return Labels(m or {})


def labels_from_selector(selector: str) -> Tuple[Labels, Optional[Exception]]:
    """
    Parse ``k1=v1,k2=v2`` into labels.

    Only equality terms are accepted.
    """
    labels = Labels()
    selector = selector.strip()
    if not selector:
        return labels, None
    for term in selector.split(","):
        term = term.strip()
        if "!=" in term:
            return Labels(), ValueError(f"invalid selector: '{selector}'; can't understand '{term}'")
        if "==" in term:
            key, _, value = term.partition("==")
        elif "=" in term:
            key, _, value = term.partition("=")
        else:
            return Labels(), ValueError(f"invalid selector: '{selector}'; can't understand '{term}'")
        labels[key.strip()] = value.strip()
    return labels_from_map(labels)


def labels_from_merge(base: Mapping[str, str], other: Mapping[str, str]) -> Labels:
    """Right-biased union. Keys whose resulting value is empty are dropped."""
    merged = dict(base or {})
    merged.update(other or {})
    return Labels({k: v for k, v in merged.items() if v != ""})


def labels_conflict(a: Mapping[str, str], b: Mapping[str, str]) -> bool:
    """True if any key present in both maps has differing non-empty values."""
    for key, value in a.items():
        other = b.get(key, "")
        if value and other and other != value:
            return True
    return False
