from __future__ import annotations

from typing import Any

_CLAUDE: dict[str, Any] = {
    "completion": True,
    "chat": True,
    "vision": True,
    "tool_use": True,
    "streaming": True,
    "context_window": 200_000,
}

MODELS: list[dict[str, Any]] = [
    {"name": "claude-sonnet-4-5-20250929", **_CLAUDE, "max_output_tokens": 64_000},
    {"name": "claude-sonnet-4-20250514", **_CLAUDE, "max_output_tokens": 64_000},
    {"name": "claude-opus-4-20250514", **_CLAUDE, "max_output_tokens": 32_000},
    {"name": "claude-opus-4-1-20250805", **_CLAUDE, "max_output_tokens": 32_000},
    {"name": "claude-3-7-sonnet-20250219", **_CLAUDE, "max_output_tokens": 64_000},
    {"name": "claude-3-5-sonnet-20241022", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "claude-3-5-haiku-20241022", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "claude-3-opus-20240229", **_CLAUDE, "max_output_tokens": 4096},
    {"name": "claude-3-haiku-20240307", **_CLAUDE, "max_output_tokens": 4096},
]
