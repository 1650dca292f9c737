"""Parameter validation against capability parameter schemas."""

from .validator import ParameterValidator, SchemaValidator, ValidationResult, field_path, type_name, validate

__all__ = [
    "ParameterValidator",
    "SchemaValidator",
    "ValidationResult",
    "field_path",
    "type_name",
    "validate",
]
