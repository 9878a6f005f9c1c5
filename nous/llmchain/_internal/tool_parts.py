from __future__ import annotations

import json
from typing import Any

from ..types import Part, Tool
from .errors import invalid_request_error
from .json_schema import normalize_json_schema


def tool_result_to_string(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, separators=(",", ":"))


def tool_arguments_to_json(arguments: Any) -> str:
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, ensure_ascii=False, separators=(",", ":"))


def parse_tool_call_arguments(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except Exception:
        return value


def require_tool_call_meta(part: Part) -> tuple[str | None, str, Any]:
    tool_call_id = part.meta.get("tool_call_id")
    if tool_call_id is not None and not isinstance(tool_call_id, str):
        raise invalid_request_error("tool_call.meta.tool_call_id must be a string")
    name = part.meta.get("name")
    if not isinstance(name, str) or not name.strip():
        raise invalid_request_error("tool_call.meta.name must be a non-empty string")
    return (tool_call_id, name.strip(), part.meta.get("arguments"))


def require_tool_result_meta(part: Part) -> tuple[str | None, str, Any, bool | None]:
    tool_call_id = part.meta.get("tool_call_id")
    if tool_call_id is not None and not isinstance(tool_call_id, str):
        raise invalid_request_error("tool_result.meta.tool_call_id must be a string")
    name = part.meta.get("name")
    if not isinstance(name, str) or not name.strip():
        raise invalid_request_error("tool_result.meta.name must be a non-empty string")
    is_error = part.meta.get("is_error")
    if is_error is not None and not isinstance(is_error, bool):
        raise invalid_request_error("tool_result.meta.is_error must be a bool")
    return (tool_call_id, name.strip(), part.meta.get("result"), is_error)


def tool_declaration(tool: Tool) -> tuple[str, str | None, dict[str, Any]]:
    """Validated (name, description, JSON Schema parameters) for a tool."""
    name = tool.name.strip()
    if not name:
        raise invalid_request_error("tool.name must be non-empty")
    description = tool.description.strip() if isinstance(tool.description, str) and tool.description.strip() else None
    params = normalize_json_schema(tool.parameters) if tool.parameters is not None else {"type": "object"}
    return name, description, params
