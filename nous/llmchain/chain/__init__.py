from __future__ import annotations

from .condition import Condition, evaluate_condition
from .context import SYSTEM_VARIABLES, ExecutionContext
from .engine import ChainEngine, ChainResult, ChainRun, Interaction, ResponseTransform, RetryPolicy, RunState
from .history import History, HistoryEntry
from .models import Chain, Step, chain_from_dict, dump_chain, load_chain, loads_chain
from .template import referenced_names, render

__all__ = [
    "Chain",
    "ChainEngine",
    "ChainResult",
    "ChainRun",
    "Condition",
    "ExecutionContext",
    "History",
    "HistoryEntry",
    "Interaction",
    "ResponseTransform",
    "RetryPolicy",
    "RunState",
    "SYSTEM_VARIABLES",
    "Step",
    "chain_from_dict",
    "dump_chain",
    "evaluate_condition",
    "load_chain",
    "loads_chain",
    "referenced_names",
    "render",
]
