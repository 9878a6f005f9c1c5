from __future__ import annotations

import copy
from typing import Any

from ..capabilities import CAPABILITY_FLAGS, CapabilityRegistry

from .model_catalog import MODEL_CATALOG


def get_model_catalog() -> dict[str, list[dict[str, Any]]]:
    return copy.deepcopy(MODEL_CATALOG)


def get_supported_backends() -> list[str]:
    return list(MODEL_CATALOG.keys())


def get_supported_models(registry: CapabilityRegistry | None = None) -> list[dict[str, Any]]:
    """
    Return a JSON-friendly table of all built-in models and their effective capabilities.

    When `registry` is given, each row reflects the record that registry would answer
    with (override layers included) and names its source.
    """
    reg = registry if registry is not None else CapabilityRegistry()
    out: list[dict[str, Any]] = []
    for backend, rows in MODEL_CATALOG.items():
        for row in rows:
            name = row["name"]
            rec = reg.capabilities_of(name)
            out.append(
                {
                    "backend": backend,
                    "model_id": name,
                    "model": f"{backend}:{name}",
                    "operations": [f for f in CAPABILITY_FLAGS if getattr(rec, f)],
                    "context_window": rec.context_window,
                    "max_output_tokens": rec.max_output_tokens,
                    "source": rec.source,
                }
            )
    return out


def get_supported_models_for_backend(backend: str, registry: CapabilityRegistry | None = None) -> list[dict[str, Any]]:
    """
    Return built-in models for a single backend (same rows as `get_supported_models()`).
    """
    b = backend.strip().lower()
    return [row for row in get_supported_models(registry) if row["backend"] == b]
