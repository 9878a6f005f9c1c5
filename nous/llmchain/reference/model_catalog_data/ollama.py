from __future__ import annotations

from typing import Any

# Keyed by the untagged model name; the adapter falls back from "llama3.2:3b" to "llama3.2".

_TEXT: dict[str, Any] = {"completion": True, "chat": True, "streaming": True}

MODELS: list[dict[str, Any]] = [
    {"name": "llama3.2", **_TEXT, "tool_use": True, "context_window": 128_000},
    {"name": "llama3.1", **_TEXT, "tool_use": True, "context_window": 128_000},
    {"name": "llama3.2-vision", **_TEXT, "vision": True, "context_window": 128_000},
    {"name": "llava", **_TEXT, "vision": True, "context_window": 4096},
    {"name": "mistral", **_TEXT, "tool_use": True, "context_window": 32_768},
    {"name": "qwen2.5", **_TEXT, "tool_use": True, "context_window": 32_768},
    {"name": "gemma2", **_TEXT, "context_window": 8192},
    {"name": "phi3", **_TEXT, "context_window": 128_000},
    {"name": "deepseek-r1", **_TEXT, "context_window": 128_000},
    {"name": "nomic-embed-text", "embeddings": True, "context_window": 8192},
    {"name": "mxbai-embed-large", "embeddings": True, "context_window": 512},
    {"name": "all-minilm", "embeddings": True, "context_window": 512},
]
