from __future__ import annotations

"""Schema-driven parameter validation.

Capability descriptors declare their parameters as a JSON-schema object
(``required`` plus ``properties``). Each property schema is checked with a
``jsonschema`` Draft 7 validator, so ``type``, ``items``, nested
``properties``, ``enum``, ``format``, bounds and patterns all apply.

The gateway layer on top fixes the order and stops at the first violation:

1. every name in ``required`` is present and not ``None``;
2. each declared property present in the parameters, in declaration order,
   is validated against its own schema and the first error is reported;
3. in strict mode, undeclared properties are rejected.

Undeclared properties are accepted by default. ``bool`` is never a number,
``3.0`` is not an integer, and declared types jsonschema does not know are
not checked.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Union

from jsonschema import Draft7Validator, FormatChecker, validators
from jsonschema.exceptions import ValidationError

_TYPE_NAMES = {
    bool: "boolean",
    int: "integer",
    float: "number",
    str: "string",
    list: "array",
    tuple: "array",
    dict: "object",
    type(None): "null",
}

_KNOWN_TYPES = frozenset(("string", "number", "integer", "boolean", "object", "array", "null"))


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation run.

    ``field`` is a dotted/indexed path to the offending value
    (e.g. ``operations[1].type``); an empty string denotes the parameter
    object itself.
    """

    valid: bool
    error: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def fail(cls, field: str, error: str) -> "ValidationResult":
        return cls(valid=False, error=error, field=field)


def type_name(value: Any) -> str:
    """Return the schema type name for a Python value."""
    for py_type, name in _TYPE_NAMES.items():
        if type(value) is py_type:
            return name
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _is_integer(checker: Any, instance: Any) -> bool:
    return isinstance(instance, int) and not isinstance(instance, bool)


def _declared_type(
    validator: Any, types: Union[str, Iterable[str]], instance: Any, schema: Any
) -> Iterator[ValidationError]:
    declared = [types] if isinstance(types, str) else list(types)
    known = [t for t in declared if t in _KNOWN_TYPES]
    if known and not any(validator.is_type(instance, t) for t in known):
        yield ValidationError(f"{instance!r} is not of type {', '.join(repr(t) for t in known)}")


ParameterValidator = validators.extend(
    Draft7Validator,
    validators={"type": _declared_type},
    type_checker=Draft7Validator.TYPE_CHECKER.redefine("integer", _is_integer),
)


def field_path(prefix: str, path: Iterable[Any]) -> str:
    """Render a jsonschema path as ``name.child[0].leaf``."""
    out = prefix
    for part in path:
        if isinstance(part, int):
            out = f"{out}[{part}]"
        else:
            out = f"{out}.{part}" if out else str(part)
    return out


def _describe(error: ValidationError, prefix: str) -> ValidationResult:
    field = field_path(prefix, error.absolute_path)
    kind = error.validator
    if kind == "required":
        missing = next((n for n in error.validator_value if n not in error.instance), None)
        field = field_path(field, [missing]) if missing is not None else field
        return ValidationResult.fail(field, f"Missing required parameter: {field}")
    if kind == "type":
        declared = error.validator_value
        expected = declared if isinstance(declared, str) else " or ".join(declared)
        return ValidationResult.fail(
            field, f"Invalid type for parameter {field}: expected {expected}, got {type_name(error.instance)}"
        )
    if kind == "enum":
        allowed = ", ".join(str(v) for v in error.validator_value)
        return ValidationResult.fail(field, f"Invalid value for parameter {field}: expected one of [{allowed}]")
    if kind == "format":
        return ValidationResult.fail(field, f"Invalid format for parameter {field}: expected {error.validator_value}")
    return ValidationResult.fail(field, f"Invalid value for parameter {field}: {error.message}")


class SchemaValidator:
    """Validate parameter objects against capability parameter schemas."""

    def __init__(self, *, strict: bool = False) -> None:
        self._strict = strict
        self._format_checker = FormatChecker()

    @property
    def strict(self) -> bool:
        return self._strict

    def validate(self, schema: Mapping[str, Any], params: Any) -> ValidationResult:
        if not isinstance(params, Mapping):
            return ValidationResult.fail("", f"Parameters must be an object, got {type_name(params)}")
        schema = schema or {}

        for name in schema.get("required") or ():
            if params.get(name) is None:
                return ValidationResult.fail(name, f"Missing required parameter: {name}")

        properties: Dict[str, Any] = dict(schema.get("properties") or {})
        for name, prop_schema in properties.items():
            if params.get(name) is None:
                continue
            validator = ParameterValidator(prop_schema or {}, format_checker=self._format_checker)
            error = next(validator.iter_errors(params[name]), None)
            if error is not None:
                return _describe(error, name)

        if self._strict:
            closed = ParameterValidator({"properties": {n: {} for n in properties}, "additionalProperties": False})
            if next(closed.iter_errors(dict(params)), None) is not None:
                name = next(n for n in params if n not in properties)
                return ValidationResult.fail(name, f"Unknown parameter: {name}")
        return ValidationResult.ok()


def validate(schema: Mapping[str, Any], params: Any, *, strict: bool = False) -> ValidationResult:
    """Validate ``params`` against ``schema``; see ``SchemaValidator``."""
    return SchemaValidator(strict=strict).validate(schema, params)
