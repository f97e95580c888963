"""
Schema Validation - OpenAPI v3 schema and naming validation utilities.

Used to check custom type descriptors before they are submitted to the API
and to check objects against the schema of their type.
"""

import re
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError, ValidationError

# Kubernetes-style name pattern: lowercase alphanumeric, hyphens, max 63 chars
NAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
MAX_NAME_LENGTH = 63
# DNS subdomain, e.g. the API group 'example.reconkit.io'
GROUP_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")
MAX_GROUP_LENGTH = 253


def validate_name_format(value: str, field_name: str) -> str:
    """Validate that a name follows Kubernetes naming conventions."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_NAME_LENGTH:
        raise ValueError(f"{field_name} cannot exceed {MAX_NAME_LENGTH} characters")
    if not NAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} must consist of lowercase alphanumeric characters or '-', "
            f"must start and end with an alphanumeric character"
        )
    return value


def validate_group_format(value: str, field_name: str) -> str:
    """Validate that an API group is a DNS subdomain."""
    if not value:
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > MAX_GROUP_LENGTH:
        raise ValueError(f"{field_name} cannot exceed {MAX_GROUP_LENGTH} characters")
    if not GROUP_PATTERN.match(value):
        raise ValueError(f"{field_name} must be a lowercase DNS subdomain")
    return value


def validate_openapi_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate the OpenAPI v3 schema of a custom type.

    The API server only accepts schemas whose root describes an object, so
    that is checked on top of the schema itself being well formed.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        # OpenAPI 3.0 schemas are checked as JSON Schema Draft 7
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"
    if schema.get("type") != "object":
        return False, "Invalid schema: the root must be of type 'object'"
    return True, None


def _error_path(error: ValidationError) -> str:
    path = ""
    for part in error.absolute_path:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path.lstrip(".") or "(root)"


def validate_object_against_schema(
    obj: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate an object against the schema of its custom type.

    Errors are reported with their path in the object, e.g.
    ``spec.replicas: 0 is less than the minimum of 1``.

    Returns:
        Tuple of (is_valid, error_message)
    """
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    errors = sorted(validator.iter_errors(obj), key=_error_path)
    if not errors:
        return True, None
    return False, "; ".join(f"{_error_path(e)}: {e.message}" for e in errors)
