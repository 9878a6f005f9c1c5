from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


_ENV_PRIORITY = (".env.local", ".env.production", ".env.development", ".env.test")

_ENV_PREFIX = "NOUS_LLMCHAIN_"

_DEFAULT_TIMEOUT_MS = 120_000

_DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"

_DEFAULT_AWS_REGION = "us-east-1"


def get_prefixed_env(name: str) -> str | None:
    return os.environ.get(f"{_ENV_PREFIX}{name}")


def _parse_env_line(line: str) -> tuple[str, str] | None:
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].lstrip()
    if "=" not in stripped:
        return None
    key, value = stripped.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if (value.startswith("'") and value.endswith("'")) or (
        value.startswith('"') and value.endswith('"')
    ):
        value = value[1:-1]
    return key, value


def load_env_files(root: str | Path | None = None) -> list[Path]:
    """
    Load env files by priority:
    `.env.local > .env.production > .env.development > .env.test`.

    Implementation: apply higher priority first without overriding existing env.
    """
    base = Path(root) if root is not None else Path.cwd()
    loaded: list[Path] = []
    for name in _ENV_PRIORITY:
        path = base / name
        if not path.is_file():
            continue
        loaded.append(path)
        for line in path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(line)
            if parsed is None:
                continue
            key, value = parsed
            os.environ.setdefault(key, value)
    return loaded


@dataclass(frozen=True, slots=True)
class ProviderKeys:
    openai_api_key: str | None
    anthropic_api_key: str | None
    bedrock_api_key: str | None


def _key(name: str) -> str | None:
    return get_prefixed_env(name) or os.environ.get(name)


def get_provider_keys() -> ProviderKeys:
    return ProviderKeys(
        openai_api_key=_key("OPENAI_API_KEY"),
        anthropic_api_key=_key("ANTHROPIC_API_KEY"),
        bedrock_api_key=_key("AWS_BEARER_TOKEN_BEDROCK"),
    )


def get_default_timeout_ms() -> int:
    raw = get_prefixed_env("TIMEOUT_MS")
    if raw is None:
        return _DEFAULT_TIMEOUT_MS
    try:
        value = int(raw)
    except ValueError:
        return _DEFAULT_TIMEOUT_MS
    return max(1, value)


def get_aws_region() -> str:
    return (
        get_prefixed_env("AWS_REGION")
        or os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
        or _DEFAULT_AWS_REGION
    )


def get_ollama_base_url() -> str:
    raw = get_prefixed_env("OLLAMA_BASE_URL") or os.environ.get("OLLAMA_HOST")
    if not raw:
        return _DEFAULT_OLLAMA_BASE_URL
    raw = raw.strip()
    if "://" not in raw:
        raw = f"http://{raw}"
    return raw.rstrip("/")


@dataclass(frozen=True, slots=True)
class OverrideSources:
    path: str | None
    inline: str | None


def get_override_sources() -> OverrideSources:
    path = get_prefixed_env("CAPABILITY_OVERRIDES")
    inline = get_prefixed_env("CAPABILITY_OVERRIDES_INLINE")
    return OverrideSources(
        path=path.strip() if isinstance(path, str) and path.strip() else None,
        inline=inline if isinstance(inline, str) and inline.strip() else None,
    )
