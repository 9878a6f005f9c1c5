from __future__ import annotations

from typing import Any

from .errors import configuration_error, invalid_request_error


def python_type_to_json_schema(schema: Any) -> dict[str, Any]:
    try:
        from pydantic import TypeAdapter
    except ModuleNotFoundError as e:  # pragma: no cover
        raise configuration_error("pydantic is required for python-type tool parameters") from e

    try:
        return TypeAdapter(schema).json_schema()
    except Exception:
        pass

    try:
        return TypeAdapter(type(schema)).json_schema()
    except Exception as e:
        raise invalid_request_error(
            "tool.parameters must be a JSON Schema object or a Python type supported by pydantic TypeAdapter"
        ) from e


def normalize_json_schema(schema: Any) -> dict[str, Any]:
    if isinstance(schema, dict):
        if schema.get("type") not in (None, "object"):
            raise invalid_request_error("tool.parameters must describe an object")
        return schema
    return python_type_to_json_schema(schema)
