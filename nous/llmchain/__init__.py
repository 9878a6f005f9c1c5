from __future__ import annotations

from ._internal.errors import ErrorInfo, LLMChainError
from .capabilities import CapabilityRecord, CapabilityRegistry, ModelIdentifier, default_registry
from .chain import Chain, ChainEngine, ChainResult, ChainRun, History, RetryPolicy, RunState, load_chain
from .client import Client, ClientBuilder
from .evaluator import EvalResult, ParallelEvaluator
from .types import (
    ChatRequest,
    ChatResponse,
    CompletionRequest,
    CompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    GenerateParams,
    Message,
    Part,
    Tool,
    ToolChoice,
    Usage,
)

__all__ = [
    "CapabilityRecord",
    "CapabilityRegistry",
    "Chain",
    "ChainEngine",
    "ChainResult",
    "ChainRun",
    "ChatRequest",
    "ChatResponse",
    "Client",
    "ClientBuilder",
    "CompletionRequest",
    "CompletionResponse",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "ErrorInfo",
    "EvalResult",
    "GenerateParams",
    "History",
    "LLMChainError",
    "Message",
    "ModelIdentifier",
    "ParallelEvaluator",
    "Part",
    "RetryPolicy",
    "RunState",
    "Tool",
    "ToolChoice",
    "Usage",
    "default_registry",
    "load_chain",
]
