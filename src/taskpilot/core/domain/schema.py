"""
Parameter schemas for capabilities.

Capabilities declare their accepted input either as a JSON-Schema object
(``{"type": "object", "properties": {...}, "required": [...]}``) or as a
compact field map::

    {
        "artist_id": {"type": "string", "required": True},
        "method": {"type": "string", "enum": ["paypal", "check"]},
    }

Both are normalized to the JSON-Schema form at registration time and
validated with jsonschema before any implementation is called.
"""

import copy
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

_JSON_TYPES = {"string", "integer", "number", "boolean", "object", "array", "null"}


def _normalize_field(spec: dict[str, Any]) -> dict[str, Any]:
    field = {k: v for k, v in spec.items() if k not in ("required", "default")}
    if "default" in spec:
        field["default"] = spec["default"]

    # Compact nested objects: "properties" given as a field map
    properties = field.get("properties")
    if field.get("type") == "object" and isinstance(properties, dict):
        nested = normalize_schema(properties)
        field["properties"] = nested["properties"]
        if nested.get("required"):
            field["required"] = nested["required"]
    return field


def _is_object_schema(schema: dict[str, Any]) -> bool:
    return schema.get("type") == "object" and (
        "properties" in schema or "required" in schema or len(schema) == 1
    )


def normalize_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    """
    Return a JSON-Schema object for ``schema``.

    Accepts None (no parameters), an object schema (returned as a deep copy)
    or a compact field map.
    """
    if not schema:
        return {"type": "object", "properties": {}, "required": []}

    if _is_object_schema(schema):
        normalized = copy.deepcopy(schema)
        normalized.setdefault("properties", {})
        normalized.setdefault("required", [])
        return normalized

    properties: dict[str, Any] = {}
    required: list[str] = []
    for name, spec in schema.items():
        if not isinstance(spec, dict):
            # Shorthand: {"query": "string"}
            spec = {"type": spec}
        properties[name] = _normalize_field(spec)
        if spec.get("required"):
            required.append(name)

    return {"type": "object", "properties": properties, "required": required}


def check_schema(schema: dict[str, Any]) -> list[str]:
    """Return problems with a normalized schema itself (empty when usable)."""
    problems: list[str] = []
    try:
        Draft7Validator.check_schema(schema)
    except SchemaError as e:
        problems.append(f"Malformed schema: {e.message}")
        return problems

    for name, prop in schema.get("properties", {}).items():
        prop_type = prop.get("type") if isinstance(prop, dict) else None
        types = prop_type if isinstance(prop_type, list) else [prop_type]
        for t in types:
            if t is not None and t not in _JSON_TYPES:
                problems.append(f"Field '{name}' has unknown type '{t}'")

    for name in schema.get("required", []):
        if name not in schema.get("properties", {}):
            problems.append(f"Required field '{name}' is not declared in properties")
    return problems


def _format_path(path) -> str:
    parts = [str(p) for p in path]
    return ".".join(parts) if parts else "<root>"


def validate_parameters(schema: dict[str, Any], params: Any) -> list[str]:
    """
    Validate ``params`` against a normalized schema.

    Returns:
        Sorted list of violation messages; empty when the params are valid.
    """
    if not isinstance(params, dict):
        return [f"Parameters must be an object, got {type(params).__name__}"]

    validator = Draft7Validator(schema)
    violations = []
    for error in validator.iter_errors(params):
        location = _format_path(error.absolute_path)
        violations.append(f"{location}: {error.message}")
    return sorted(violations)
