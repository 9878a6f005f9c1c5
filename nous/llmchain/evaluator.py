from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from ._internal.errors import LLMChainError, invalid_request_error
from .client import Client
from .types import ChatRequest, ChatResponse, CompletionRequest, CompletionResponse, Message, Tool

logger = logging.getLogger(__name__)

ScoringFn = Callable[[str], float]


@dataclass(frozen=True, slots=True)
class EvalResult:
    label: str
    text: str
    score: float
    time_ms: int
    response: ChatResponse | CompletionResponse | None = None


class ParallelEvaluator:
    """
    Sends one request to several clients concurrently and scores the answers.

        ev = ParallelEvaluator([("fast", a), ("big", b)]).scoring(lambda t: len(t) / 100)
        best = await ev.select_chat("Summarize ...")

    A client that fails is logged and left out of the results.
    """

    def __init__(self, backends: Sequence[tuple[str, Client]], *, include_timing: bool = True) -> None:
        if not backends:
            raise invalid_request_error("ParallelEvaluator needs at least one backend")
        labels = [label for label, _ in backends]
        if len(set(labels)) != len(labels):
            raise invalid_request_error("backend labels must be unique")
        self._backends = list(backends)
        self._scoring: list[ScoringFn] = []
        self._include_timing = include_timing

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self._backends]

    def scoring(self, fn: ScoringFn) -> "ParallelEvaluator":
        self._scoring.append(fn)
        return self

    def score(self, text: str) -> float:
        return float(sum(fn(text) for fn in self._scoring))

    async def evaluate_chat(
        self,
        request: ChatRequest | list[Message] | str,
        *,
        tools: list[Tool] | None = None,
    ) -> list[EvalResult]:
        if isinstance(request, str):
            request = ChatRequest(messages=[Message.user(request)])
        elif isinstance(request, list):
            request = ChatRequest(messages=request)
        if tools is not None:
            request = ChatRequest(
                messages=request.messages,
                params=request.params,
                tools=tools,
                tool_choice=request.tool_choice,
            )
        req = request
        return await self._evaluate(lambda c: c.achat(req), lambda r: r.text())

    async def evaluate_completion(self, request: CompletionRequest | str) -> list[EvalResult]:
        if isinstance(request, str):
            request = CompletionRequest(prompt=request)
        req = request
        return await self._evaluate(lambda c: c.acomplete(req), lambda r: r.text)

    @staticmethod
    def best(results: Sequence[EvalResult]) -> EvalResult | None:
        """Highest score; on a tie the earliest result wins."""
        best: EvalResult | None = None
        for r in results:
            if best is None or r.score > best.score:
                best = r
        return best

    async def select_chat(
        self,
        request: ChatRequest | list[Message] | str,
        *,
        tools: list[Tool] | None = None,
    ) -> EvalResult | None:
        return self.best(await self.evaluate_chat(request, tools=tools))

    async def select_completion(self, request: CompletionRequest | str) -> EvalResult | None:
        return self.best(await self.evaluate_completion(request))

    async def _evaluate(
        self,
        call: Callable[[Client], Awaitable[Any]],
        text_of: Callable[[Any], str],
    ) -> list[EvalResult]:
        async def one(label: str, client: Client) -> EvalResult | None:
            start = time.perf_counter()
            try:
                resp = await call(client)
            except LLMChainError as e:
                logger.warning("evaluator backend %s (%s) failed: %s", label, client.describe(), e.info.message)
                return None
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            text = text_of(resp)
            return EvalResult(
                label=label,
                text=text,
                score=self.score(text),
                time_ms=elapsed_ms if self._include_timing else 0,
                response=resp,
            )

        results = await asyncio.gather(*(one(label, client) for label, client in self._backends))
        out = [r for r in results if r is not None]
        logger.debug("evaluator: %d of %d backend(s) answered", len(out), len(self._backends))
        return out
