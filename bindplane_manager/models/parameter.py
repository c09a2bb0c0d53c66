"""
Parameter definitions for resource types.

A ResourceType declares typed parameters; Sources, Processors and
Destinations supply values that must typecheck against those definitions.
"""

import keyword
import re
from enum import Enum
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .validation import Errors, ValidationError

STRING_TYPE = "string"
INT_TYPE = "int"
BOOL_TYPE = "bool"
STRINGS_TYPE = "strings"
ENUM_TYPE = "enum"
ENUMS_TYPE = "enums"
MAP_TYPE = "map"
YAML_TYPE = "yaml"

PARAMETER_TYPES = (
    STRING_TYPE,
    INT_TYPE,
    BOOL_TYPE,
    STRINGS_TYPE,
    ENUM_TYPE,
    ENUMS_TYPE,
    MAP_TYPE,
    YAML_TYPE,
)

# strconv.ParseBool compatible spellings
_BOOL_STRINGS = {"1", "t", "T", "TRUE", "true", "True", "0", "f", "F", "FALSE", "false", "False"}
_INT_RE = re.compile(r"^[+-]?[0-9]+$")


class ParameterField(str, Enum):
    """Role of the value being checked, reported in error messages."""

    PARAMETER = "parameter"
    DEFAULT = "default"
    RELEVANT_IF = "relevantIf"


def format_values(values: List[str]) -> str:
    """Format a list the way value errors report it: ``[a b c]``."""
    return "[" + " ".join(str(v) for v in values) + "]"


def is_identifier(name: str) -> bool:
    """True if ``name`` can be referenced as a template variable."""
    return name.isidentifier() and not keyword.iskeyword(name)


class RelevantIfCondition(BaseModel):
    """Makes a parameter relevant only when another parameter has a value."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field("", description="Name of the sibling parameter")
    operator: str = Field("", description="Comparison operator, e.g. 'equals'")
    value: Any = Field(None, description="Value compared against the sibling parameter")


class Parameter(BaseModel):
    """A named value supplied for a parameter."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field("", description="Parameter name")
    value: Any = Field(None, description="Parameter value")


class ParameterDefinition(BaseModel):
    """A typed parameter declared by a ResourceType."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field("", description="Identifier usable in templates")
    label: str = Field("", description="Human readable label")
    description: str = Field("", description="Parameter description")
    required: bool = Field(False, description="Whether a value must be supplied")
    type: str = Field("", description="One of string, int, bool, strings, enum, enums, map, yaml")
    valid_values: Optional[List[str]] = Field(
        None, alias="validValues", description="Allowed values for enum and enums"
    )
    default: Any = Field(None, description="Default value")
    relevant_if: Optional[List[RelevantIfCondition]] = Field(
        None, alias="relevantIf", description="Conditions making this parameter relevant"
    )
    hidden: bool = Field(False, description="Hide from user interfaces")
    advanced_config: bool = Field(
        False, alias="advancedConfig", description="Show under advanced configuration"
    )

    def validate_value(self, value: Any) -> Optional[Exception]:
        """Check a supplied value against this definition."""
        return self.validate_value_type(ParameterField.PARAMETER, value)

    def validate_definition(self, errors: Errors) -> None:
        errors.add(self._validate_name())
        errors.add(self._validate_type())
        errors.add(self._validate_valid_values())
        errors.add(self._validate_default())

    def _validate_name(self) -> Optional[Exception]:
        if not self.name:
            return ValidationError("missing name for parameter")
        if not is_identifier(self.name):
            return ValidationError(f"invalid name '{self.name}' for parameter")
        return None

    def _validate_type(self) -> Optional[Exception]:
        if not self.type:
            return ValidationError(f"missing type for '{self.name}'")
        if self.type not in PARAMETER_TYPES:
            return ValidationError(f"invalid type '{self.type}' for '{self.name}'")
        return None

    def _validate_valid_values(self) -> Optional[Exception]:
        if self.type in (ENUM_TYPE, ENUMS_TYPE):
            if not self.valid_values:
                return ValidationError(
                    "parameter of type 'enum' or 'enums' must have 'validValues' specified"
                )
        elif self.type in PARAMETER_TYPES and self.valid_values:
            return ValidationError(
                f"validValues is undefined for parameter of type '{self.type}'"
            )
        return None

    def _validate_default(self) -> Optional[Exception]:
        if self.default is None:
            return None
        return self.validate_value_type(ParameterField.DEFAULT, self.default)

    def validate_value_type(self, field: ParameterField, value: Any) -> Optional[Exception]:
        """Dispatch on the declared type. Returns the error, or None if the value fits."""
        validators = {
            STRING_TYPE: self._validate_string,
            INT_TYPE: self._validate_int,
            BOOL_TYPE: self._validate_bool,
            STRINGS_TYPE: self._validate_strings,
            ENUM_TYPE: self._validate_enum,
            ENUMS_TYPE: self._validate_enums,
            MAP_TYPE: self._validate_map,
            YAML_TYPE: self._validate_yaml,
        }
        validator = validators.get(self.type)
        if validator is None:
            return ValidationError("invalid type for parameter")
        return validator(ParameterField(field).value, value)

    def _validate_string(self, field: str, value: Any) -> Optional[Exception]:
        if not isinstance(value, str):
            return ValidationError(f"{field} value for '{self.name}' must be a string")
        return None

    def _validate_int(self, field: str, value: Any) -> Optional[Exception]:
        ok = False
        if isinstance(value, bool):
            ok = False
        elif isinstance(value, int):
            ok = True
        elif isinstance(value, float):
            ok = value.is_integer()
        elif isinstance(value, str):
            ok = _INT_RE.match(value) is not None
        if not ok:
            return ValidationError(f"{field} value for '{self.name}' must be an integer")
        return None

    def _validate_bool(self, field: str, value: Any) -> Optional[Exception]:
        if isinstance(value, bool) or (isinstance(value, str) and value in _BOOL_STRINGS):
            return None
        return ValidationError(f"{field} value for '{self.name}' must be a bool")

    def _validate_strings(self, field: str, value: Any) -> Optional[Exception]:
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return None
        return ValidationError(f"{field} value for '{self.name}' must be an array of strings")

    def _validate_enum(self, field: str, value: Any) -> Optional[Exception]:
        if not isinstance(value, str):
            return ValidationError(f"{field} value for enumerated parameter '{self.name}'.")
        valid = self.valid_values or []
        if value in valid:
            return None
        return ValidationError(
            f"{field} value for '{self.name}' must be one of {format_values(valid)}"
        )

    def _validate_enums(self, field: str, value: Any) -> Optional[Exception]:
        if not isinstance(value, (list, tuple)):
            return ValidationError(f"{field} value for enums parameter '{self.name}'")
        valid = self.valid_values or []
        errors = Errors()
        for item in value:
            if item not in valid:
                errors.add(
                    f"{field} value for '{self.name}' must be one of {format_values(valid)}"
                )
        return errors.result()

    def _validate_map(self, field: str, value: Any) -> Optional[Exception]:
        if not isinstance(value, dict):
            return ValidationError(
                f"expected type map for parameter {self.name} but got {type(value).__name__}"
            )
        for key, item in value.items():
            if not isinstance(item, (str, int, float, bool)):
                return ValidationError(f"expected type string for value for key {key} in map")
        return None

    def _validate_yaml(self, field: str, value: Any) -> Optional[Exception]:
        if not isinstance(value, str):
            return ValidationError(f"expected a string for parameter {self.name}")
        try:
            yaml.safe_load(value)
        except yaml.YAMLError as e:
            return ValidationError(f"{field} value for '{self.name}' is not valid yaml: {e}")
        return None


def placeholder_value(definition: ParameterDefinition) -> Any:
    """A type-appropriate stand-in value used when test-rendering templates."""
    if definition.type == BOOL_TYPE:
        return False
    if definition.type == INT_TYPE:
        return 0
    if definition.type in (STRINGS_TYPE, ENUMS_TYPE):
        return []
    if definition.type == MAP_TYPE:
        return {}
    if definition.type == ENUM_TYPE and definition.valid_values:
        return definition.valid_values[0]
    return ""


