from __future__ import annotations

from .catalog import (
    get_model_catalog,
    get_supported_backends,
    get_supported_models,
    get_supported_models_for_backend,
)

__all__ = [
    "get_model_catalog",
    "get_supported_backends",
    "get_supported_models",
    "get_supported_models_for_backend",
]
