from __future__ import annotations

# Built-in capability rows per backend.
#
# Rows list only the flags a model has; absent flags are false.

from typing import Any

from .model_catalog_data.anthropic import MODELS as ANTHROPIC_MODELS
from .model_catalog_data.bedrock import MODELS as BEDROCK_MODELS
from .model_catalog_data.ollama import MODELS as OLLAMA_MODELS
from .model_catalog_data.openai import MODELS as OPENAI_MODELS


MODEL_CATALOG: dict[str, list[dict[str, Any]]] = {
    "openai": OPENAI_MODELS,
    "anthropic": ANTHROPIC_MODELS,
    "bedrock": BEDROCK_MODELS,
    "ollama": OLLAMA_MODELS,
}
