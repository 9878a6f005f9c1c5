from __future__ import annotations

from typing import Any

# Cross-region profiles are matched through their `<vendor>.<model>` key, so one row
# covers both the direct id and every `us.`/`eu.`/`ap.` profile (or ARN) of it.

_CLAUDE: dict[str, Any] = {
    "completion": True,
    "chat": True,
    "vision": True,
    "tool_use": True,
    "streaming": True,
    "context_window": 200_000,
}

_TEXT: dict[str, Any] = {"completion": True, "chat": True, "streaming": True}

MODELS: list[dict[str, Any]] = [
    {"name": "anthropic.claude-sonnet-4-20250514-v1:0", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "anthropic.claude-sonnet-4-5-20250929-v1:0", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "anthropic.claude-3-5-sonnet-20241022-v2:0", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "anthropic.claude-3-5-sonnet-20240620-v1:0", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "anthropic.claude-3-opus-20240229-v1:0", **_CLAUDE, "max_output_tokens": 8192},
    {"name": "anthropic.claude-3-sonnet-20240229-v1:0", **_CLAUDE, "max_output_tokens": 4096},
    {"name": "anthropic.claude-3-haiku-20240307-v1:0", **_CLAUDE, "max_output_tokens": 4096},
    {
        "name": "meta.llama3-2-90b-instruct-v1:0",
        **_TEXT,
        "vision": True,
        "context_window": 128_000,
        "max_output_tokens": 4096,
    },
    {
        "name": "meta.llama3-2-11b-instruct-v1:0",
        **_TEXT,
        "vision": True,
        "context_window": 128_000,
        "max_output_tokens": 4096,
    },
    {"name": "meta.llama3-2-3b-instruct-v1:0", **_TEXT, "context_window": 128_000, "max_output_tokens": 2048},
    {"name": "meta.llama3-2-1b-instruct-v1:0", **_TEXT, "context_window": 128_000, "max_output_tokens": 2048},
    {"name": "meta.llama3-1-70b-instruct-v1:0", **_TEXT, "context_window": 128_000, "max_output_tokens": 4096},
    {"name": "meta.llama3-1-8b-instruct-v1:0", **_TEXT, "context_window": 128_000, "max_output_tokens": 2048},
    {"name": "amazon.titan-text-premier-v1:0", **_TEXT, "context_window": 32_000, "max_output_tokens": 8192},
    {"name": "amazon.titan-text-express-v1", **_TEXT, "context_window": 8_000, "max_output_tokens": 8192},
    {"name": "amazon.titan-text-lite-v1", **_TEXT, "context_window": 8_000, "max_output_tokens": 4096},
    {"name": "amazon.titan-embed-text-v2:0", "embeddings": True},
    {"name": "amazon.titan-embed-text-v1", "embeddings": True},
    {
        "name": "cohere.command-r-plus-v1:0",
        **_TEXT,
        "tool_use": True,
        "context_window": 128_000,
        "max_output_tokens": 4096,
    },
    {
        "name": "cohere.command-r-v1:0",
        **_TEXT,
        "tool_use": True,
        "context_window": 128_000,
        "max_output_tokens": 4096,
    },
    {"name": "cohere.embed-english-v3", "embeddings": True},
    {"name": "cohere.embed-multilingual-v3", "embeddings": True},
    {"name": "cohere.embed-v4:0", "embeddings": True},
    {
        "name": "mistral.mistral-large-2407-v1:0",
        **_TEXT,
        "tool_use": True,
        "context_window": 128_000,
        "max_output_tokens": 8192,
    },
    {"name": "mistral.mistral-small-2402-v1:0", **_TEXT, "context_window": 128_000, "max_output_tokens": 8192},
    {
        "name": "mistral.pixtral-large-2502-v1:0",
        **_TEXT,
        "vision": True,
        "tool_use": True,
        "context_window": 128_000,
        "max_output_tokens": 8192,
    },
]
