from __future__ import annotations

import functools
import json
import logging
import os
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Literal, Mapping

from ._internal.config import get_override_sources
from ._internal.errors import (
    configuration_error,
    invalid_request_error,
    unknown_model_error,
    unsupported_operation_error,
)
from .types import ChatRequest, CompletionRequest, EmbeddingRequest

logger = logging.getLogger(__name__)

CAPABILITY_FLAGS = ("completion", "chat", "embeddings", "vision", "tool_use", "streaming")
CAPABILITY_LIMITS = ("context_window", "max_output_tokens")

CROSS_REGION_PREFIXES = frozenset({"us", "eu", "ap", "apac", "global"})

_REGION_PREFIX: dict[str, str] = {
    "us-east-1": "us",
    "us-west-2": "us",
    "eu-central-1": "eu",
    "eu-west-1": "eu",
    "eu-west-2": "eu",
    "ap-northeast-1": "ap",
    "ap-southeast-1": "ap",
    "ap-southeast-2": "ap",
}

ModelKind = Literal["direct", "cross_region", "custom"]


@dataclass(frozen=True, slots=True)
class CapabilityRecord:
    name: str
    completion: bool = False
    chat: bool = False
    embeddings: bool = False
    vision: bool = False
    tool_use: bool = False
    streaming: bool = False
    context_window: int | None = None
    max_output_tokens: int | None = None
    source: str = "builtin"

    def supports(self, flag: str) -> bool:
        if flag not in CAPABILITY_FLAGS:
            raise ValueError(f"unknown capability flag: {flag}")
        return bool(getattr(self, flag))

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def region_prefix(region: str) -> str:
    return _REGION_PREFIX.get(region, region)


@dataclass(frozen=True, slots=True)
class ModelIdentifier:
    """
    A parsed model identifier.

    - `direct`: a plain model id (`gpt-4o`, `anthropic.claude-3-haiku-20240307-v1:0`),
      or a `foundation-model/` ARN.
    - `cross_region`: a Bedrock inference profile, either as an ARN
      (`arn:aws:bedrock:<region>:<account>:inference-profile/<prefix>.<vendor>.<model>`)
      or in short form (`<prefix>.<vendor>.<model>`).
    - `custom`: any other Bedrock ARN (custom, provisioned or imported models).
    """

    raw: str
    kind: ModelKind
    region: str | None = None
    prefix: str | None = None
    vendor: str | None = None
    model: str | None = None

    @staticmethod
    def parse(raw: str) -> "ModelIdentifier":
        if not isinstance(raw, str) or not raw.strip():
            raise invalid_request_error("model identifier must be a non-empty string")
        value = raw.strip()
        if value.startswith("arn:"):
            return _parse_arn(value)
        head, sep, rest = value.partition(".")
        if sep and head in CROSS_REGION_PREFIXES:
            vendor, sep2, model = rest.partition(".")
            if sep2 and vendor and model:
                return ModelIdentifier(raw=value, kind="cross_region", prefix=head, vendor=vendor, model=model)
        return ModelIdentifier(raw=value, kind="direct")

    @staticmethod
    def cross_region(region: str, vendor: str, model: str) -> "ModelIdentifier":
        prefix = region_prefix(region)
        arn = f"arn:aws:bedrock:{region}::inference-profile/{prefix}.{vendor}.{model}"
        return ModelIdentifier(raw=arn, kind="cross_region", region=region, prefix=prefix, vendor=vendor, model=model)

    def lookup_keys(self) -> list[str]:
        """
        Keys tried against each registry layer, most specific first.
        """
        keys = [self.raw]
        normalized = normalize_arn(self.raw)
        if normalized is not None:
            keys.append(normalized)
        if self.kind == "cross_region" and self.vendor and self.model:
            if self.prefix:
                keys.append(f"{self.prefix}.{self.vendor}.{self.model}")
            keys.append(f"{self.vendor}.{self.model}")
            keys.append(self.model)
        elif self.kind == "direct" and self.model:
            keys.append(self.model)
        out: list[str] = []
        for k in keys:
            if k not in out:
                out.append(k)
        return out


def _parse_arn(value: str) -> ModelIdentifier:
    parts = value.split(":", 5)
    if len(parts) != 6 or parts[2] != "bedrock":
        return ModelIdentifier(raw=value, kind="custom")
    region = parts[3] or None
    resource = parts[5]
    if resource.startswith("inference-profile/"):
        info = resource[len("inference-profile/") :].split(".", 2)
        if len(info) == 3 and all(info):
            return ModelIdentifier(
                raw=value,
                kind="cross_region",
                region=region,
                prefix=info[0],
                vendor=info[1],
                model=info[2],
            )
    if resource.startswith("foundation-model/"):
        model = resource[len("foundation-model/") :]
        if model:
            return ModelIdentifier(raw=value, kind="direct", region=region, model=model)
    return ModelIdentifier(raw=value, kind="custom", region=region)


def normalize_arn(value: str) -> str | None:
    """Blank the account segment of a Bedrock ARN; None for anything else."""
    parts = value.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn" or parts[2] != "bedrock":
        return None
    parts[4] = ""
    return ":".join(parts)


def _storage_key(name: str) -> str:
    normalized = normalize_arn(name)
    return normalized if normalized is not None else name


def record_from_mapping(obj: Mapping[str, Any], *, source: str, name: str | None = None) -> CapabilityRecord:
    if not isinstance(obj, Mapping):
        raise configuration_error(f"{source}: capability entry must be a table/object")
    entry_name = obj.get("name", name)
    if name is not None and entry_name != name:
        raise configuration_error(f"{source}: entry name {entry_name!r} does not match key {name!r}")
    if not isinstance(entry_name, str) or not entry_name.strip():
        raise configuration_error(f"{source}: capability entry requires a non-empty 'name'")
    values: dict[str, Any] = {}
    for key, value in obj.items():
        if key == "name":
            continue
        if key in CAPABILITY_FLAGS:
            if not isinstance(value, bool):
                raise configuration_error(f"{source}: {entry_name}.{key} must be a boolean")
            values[key] = value
            continue
        if key in CAPABILITY_LIMITS:
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise configuration_error(f"{source}: {entry_name}.{key} must be a positive integer")
            values[key] = value
            continue
        raise configuration_error(f"{source}: unknown capability field {entry_name}.{key}")
    return CapabilityRecord(name=entry_name.strip(), source=source, **values)


def parse_overrides(text: str, *, source: str, fmt: Literal["toml", "json"] | None = None) -> list[CapabilityRecord]:
    """
    Parse override records from TOML or JSON text.

    TOML accepts `[[model]]` entries (each with `name`) and `[models."<id>"]` tables.
    JSON accepts a list of entries or an object with `model` and/or `models` keys
    shaped the same way.
    """
    if fmt is None:
        fmt = _sniff_format(text)
    if fmt == "json":
        try:
            data: Any = json.loads(text)
        except json.JSONDecodeError as e:
            raise configuration_error(f"{source}: invalid JSON overrides: {e}") from e
    elif fmt == "toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise configuration_error(f"{source}: invalid TOML overrides: {e}") from e
    else:
        raise configuration_error(f"unknown overrides format: {fmt}")

    if isinstance(data, list):
        data = {"model": data}
    if not isinstance(data, dict):
        raise configuration_error(f"{source}: overrides must be a table/object")
    unknown = set(data) - {"model", "models"}
    if unknown:
        raise configuration_error(f"{source}: unknown top-level keys: {sorted(unknown)}")

    records: list[CapabilityRecord] = []
    entries = data.get("model", [])
    if not isinstance(entries, list):
        raise configuration_error(f"{source}: 'model' must be an array of entries")
    for entry in entries:
        records.append(record_from_mapping(entry, source=source))
    table = data.get("models", {})
    if not isinstance(table, dict):
        raise configuration_error(f"{source}: 'models' must be a table keyed by model id")
    for key, entry in table.items():
        records.append(record_from_mapping(entry, source=source, name=key))
    return records


def _sniff_format(text: str) -> Literal["toml", "json"]:
    stripped = text.lstrip()
    if stripped.startswith("{"):
        return "json"
    if stripped.startswith("[") and not stripped.startswith("[["):
        rest = stripped[1:].lstrip()
        if not rest or rest[0] in "{]":
            return "json"
    return "toml"


def builtin_records() -> list[CapabilityRecord]:
    from .reference.model_catalog import MODEL_CATALOG

    out: list[CapabilityRecord] = []
    for rows in MODEL_CATALOG.values():
        for row in rows:
            out.append(record_from_mapping(row, source="builtin"))
    return out


class CapabilityRegistry:
    """
    Two-layer capability lookup.

    Override layers are searched newest-first, then the built-in table. An override
    record replaces the built-in record for its identifier as a whole; flags it does
    not name are false. Built-in records are never mutated.
    """

    def __init__(self, builtins: Iterable[CapabilityRecord] | None = None) -> None:
        records = builtin_records() if builtins is None else list(builtins)
        table: dict[str, CapabilityRecord] = {}
        for rec in records:
            table[_storage_key(rec.name)] = rec
        self._builtins: Mapping[str, CapabilityRecord] = MappingProxyType(table)
        self._layers: list[tuple[str, Mapping[str, CapabilityRecord]]] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "CapabilityRegistry":
        self._frozen = True
        return self

    def load_overrides(
        self,
        source: str | os.PathLike[str],
        *,
        label: str | None = None,
        fmt: Literal["toml", "json"] | None = None,
    ) -> int:
        """
        Load one override layer.

        A path-like `source` is read from disk (format from its suffix); a `str` is
        parsed as inline TOML/JSON text. Returns the number of records loaded.
        """
        if isinstance(source, os.PathLike):
            path = Path(source)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise configuration_error(f"cannot read overrides file {path}: {e}") from e
            if fmt is None and path.suffix.lower() in {".json", ".toml"}:
                fmt = "json" if path.suffix.lower() == ".json" else "toml"
            name = label or str(path)
        elif isinstance(source, str):
            text = source
            name = label or "inline"
        else:
            raise configuration_error("overrides source must be a path or inline text")
        return self.add_overrides(parse_overrides(text, source=name, fmt=fmt), label=name)

    def load_overrides_file(self, path: str | os.PathLike[str], *, label: str | None = None) -> int:
        return self.load_overrides(Path(path), label=label)

    def add_overrides(self, records: Iterable[CapabilityRecord], *, label: str = "inline") -> int:
        if self._frozen:
            raise configuration_error("capability registry is frozen")
        layer: dict[str, CapabilityRecord] = {}
        for rec in records:
            if rec.source != label:
                rec = CapabilityRecord(**{**rec.to_dict(), "source": label})
            layer[_storage_key(rec.name)] = rec
        self._layers.append((label, MappingProxyType(layer)))
        logger.info("loaded %d capability override(s) from %s", len(layer), label)
        return len(layer)

    def get(self, model_id: str | ModelIdentifier) -> CapabilityRecord | None:
        ident = model_id if isinstance(model_id, ModelIdentifier) else ModelIdentifier.parse(model_id)
        keys = [_storage_key(k) for k in ident.lookup_keys()]
        for _, layer in reversed(self._layers):
            for key in keys:
                rec = layer.get(key)
                if rec is not None:
                    return rec
        for key in keys:
            rec = self._builtins.get(key)
            if rec is not None:
                return rec
        return None

    def capabilities_of(self, model_id: str | ModelIdentifier) -> CapabilityRecord:
        rec = self.get(model_id)
        if rec is None:
            raw = model_id.raw if isinstance(model_id, ModelIdentifier) else model_id
            raise unknown_model_error(raw)
        return rec

    def provenance(self, model_id: str | ModelIdentifier) -> str:
        return self.capabilities_of(model_id).source

    def known_models(self) -> list[str]:
        names = set(self._builtins)
        for _, layer in self._layers:
            names.update(layer)
        return sorted(names)

    def override_sources(self) -> list[str]:
        return [label for label, _ in self._layers]


def default_registry(*, order: Iterable[Literal["file", "inline"]] = ("file", "inline")) -> CapabilityRegistry:
    """
    Built-ins plus the override sources named by env, loaded in `order` and frozen.

    Later sources win: with the default order an inline override shadows the file.
    """
    registry = CapabilityRegistry()
    sources = get_override_sources()
    for kind in order:
        if kind == "file" and sources.path:
            registry.load_overrides_file(sources.path)
        elif kind == "inline" and sources.inline:
            registry.load_overrides(sources.inline, label="env:inline")
    return registry.freeze()


@functools.lru_cache(maxsize=1)
def shared_registry() -> CapabilityRegistry:
    """Process-wide registry used by adapters built without an explicit one."""
    return default_registry()


def require_operation(record: CapabilityRecord, flag: str, operation: str) -> None:
    if not record.supports(flag):
        raise unsupported_operation_error(f"{record.name} does not support {operation} ({record.source})")


def check_chat_request(record: CapabilityRecord, request: ChatRequest) -> None:
    require_operation(record, "chat", "chat")
    if request.has_images():
        require_operation(record, "vision", "image input")
    if request.tools:
        require_operation(record, "tool_use", "tool use")
    _check_output_limit(record, request.params.max_output_tokens)


def check_completion_request(record: CapabilityRecord, request: CompletionRequest) -> None:
    require_operation(record, "completion", "completion")
    _check_output_limit(record, request.params.max_output_tokens)


def check_embedding_request(record: CapabilityRecord, request: EmbeddingRequest) -> None:
    require_operation(record, "embeddings", "embeddings")
    if not request.inputs:
        raise invalid_request_error("embedding request requires at least one input")


def _check_output_limit(record: CapabilityRecord, max_output_tokens: int | None) -> None:
    if max_output_tokens is None:
        return
    if max_output_tokens <= 0:
        raise invalid_request_error("max_output_tokens must be positive")
    if record.max_output_tokens is not None and max_output_tokens > record.max_output_tokens:
        raise invalid_request_error(
            f"max_output_tokens {max_output_tokens} exceeds {record.name} limit {record.max_output_tokens}"
        )
