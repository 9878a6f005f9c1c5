from __future__ import annotations

from typing import Any

_GPT: dict[str, Any] = {
    "completion": True,
    "chat": True,
    "vision": True,
    "tool_use": True,
    "streaming": True,
}

MODELS: list[dict[str, Any]] = [
    {"name": "gpt-4o", **_GPT, "context_window": 128_000, "max_output_tokens": 16_384},
    {"name": "gpt-4o-mini", **_GPT, "context_window": 128_000, "max_output_tokens": 16_384},
    {"name": "gpt-4.1", **_GPT, "context_window": 1_047_576, "max_output_tokens": 32_768},
    {"name": "gpt-4.1-mini", **_GPT, "context_window": 1_047_576, "max_output_tokens": 32_768},
    {"name": "gpt-4.1-nano", **_GPT, "context_window": 1_047_576, "max_output_tokens": 32_768},
    {"name": "gpt-4-turbo", **_GPT, "context_window": 128_000, "max_output_tokens": 4096},
    {
        "name": "gpt-3.5-turbo",
        "completion": True,
        "chat": True,
        "tool_use": True,
        "streaming": True,
        "context_window": 16_385,
        "max_output_tokens": 4096,
    },
    {
        "name": "o3-mini",
        "completion": True,
        "chat": True,
        "tool_use": True,
        "streaming": True,
        "context_window": 200_000,
        "max_output_tokens": 100_000,
    },
    {
        "name": "gpt-3.5-turbo-instruct",
        "completion": True,
        "streaming": True,
        "context_window": 4096,
        "max_output_tokens": 4096,
    },
    {"name": "text-embedding-3-small", "embeddings": True, "context_window": 8191},
    {"name": "text-embedding-3-large", "embeddings": True, "context_window": 8191},
    {"name": "text-embedding-ada-002", "embeddings": True, "context_window": 8191},
]
