from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Mapping, TypeVar
from uuid import uuid4

from .._internal.config import load_env_files
from .._internal.errors import (
    ErrorInfo,
    LLMChainError,
    cancelled_error,
    configuration_error,
    invalid_request_error,
    with_context,
)
from ..capabilities import CapabilityRegistry, shared_registry
from ..client import Client, ClientBuilder
from ..types import ChatRequest, CompletionRequest, GenerateParams, Message
from .condition import evaluate_condition
from .context import ExecutionContext
from .history import History, Origin
from .models import Chain, Step
from .template import render

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class RunState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    AWAITING_INTERACTION = "awaiting_interaction"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry for retryable dispatch failures. The default makes a single attempt."""

    max_attempts: int = 1
    backoff_s: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise invalid_request_error("max_attempts must be >= 1")
        if self.backoff_s < 0:
            raise invalid_request_error("backoff_s must be >= 0")

    def delay(self, attempt: int) -> float:
        return self.backoff_s * (2 ** (attempt - 1))


@dataclass(frozen=True, slots=True)
class Interaction:
    token: str
    step_id: str
    prompt: str


@dataclass(frozen=True, slots=True)
class ChainResult:
    state: RunState
    outputs: dict[str, str]
    skipped: tuple[str, ...]
    failure: ErrorInfo | None = None
    final: str | None = None


ClientSource = Mapping[str, Client] | Callable[[str], Client]
ResponseTransform = Callable[[str], str]


class ChainEngine:
    """
    Runs a `Chain` step by step.

    `clients` maps provider strings (`"openai:gpt-4o-mini"`) to clients, or is a
    callable returning one; without it, clients are built from the provider string
    with env credentials. With `interactive=True`, steps marked interactive pause
    the run before dispatch. `transforms` maps step ids to functions applied to
    backend responses before they are bound; interactive and replayed responses
    are recorded as given.
    """

    def __init__(
        self,
        chain: Chain,
        clients: ClientSource | None = None,
        *,
        retry: RetryPolicy | None = None,
        interactive: bool = False,
        registry: CapabilityRegistry | None = None,
        transforms: Mapping[str, ResponseTransform] | None = None,
    ) -> None:
        self.chain = chain.validate()
        transforms = dict(transforms or {})
        known = {s.id for s in self.chain.steps}
        for step_id, fn in transforms.items():
            if step_id not in known:
                raise configuration_error(f"transform given for unknown step {step_id!r}")
            if not callable(fn):
                raise configuration_error(f"transform for step {step_id!r} is not callable")
        if clients is None and registry is None:
            # override sources are parsed at construction
            load_env_files()
            registry = shared_registry()
        self.retry = retry or RetryPolicy()
        self.interactive = interactive
        self._clients = clients
        self._registry = registry
        self._transforms = transforms
        self._built: dict[str, Client] = {}

    def client_for(self, step: Step) -> Client:
        provider = self.chain.provider_for(step)
        if provider is None:
            raise configuration_error(f"step {step.id!r} has no provider and chain has no default_provider")
        if callable(self._clients):
            return self._clients(provider)
        if self._clients is not None:
            client = self._clients.get(provider)
            if client is None:
                raise configuration_error(f"no client configured for provider {provider!r}")
            return client
        client = self._built.get(provider)
        if client is None:
            builder = ClientBuilder.from_model_string(provider)
            if self._registry is not None:
                builder = builder.registry(self._registry)
            client = builder.build()
            self._built[provider] = client
        return client

    def transform(self, step: Step, text: str) -> str:
        fn = self._transforms.get(step.id)
        if fn is None:
            return text
        try:
            out = fn(text)
        except LLMChainError:
            raise
        except Exception as e:
            raise invalid_request_error(f"response transform for step {step.id!r} failed: {e}") from e
        if not isinstance(out, str):
            raise invalid_request_error(f"response transform for step {step.id!r} must return str")
        return out

    def start(
        self,
        inputs: Mapping[str, str] | str | None = None,
        *,
        replay: History | None = None,
        history_path: str | Path | None = None,
    ) -> "ChainRun":
        if inputs is None:
            if replay is None:
                raise invalid_request_error("inputs are required")
            inputs = replay.inputs
        if isinstance(inputs, str):
            inputs = {self.chain.input_var: inputs}
        for name in self.chain.input_names():
            if name not in inputs:
                raise invalid_request_error(f"missing chain input: {name}")
        if replay is not None and replay.chain_name != self.chain.name:
            raise invalid_request_error(
                f"history belongs to chain {replay.chain_name!r}, not {self.chain.name!r}"
            )
        if replay is not None and dict(inputs) != replay.inputs:
            changed = sorted(k for k in set(inputs) | set(replay.inputs) if inputs.get(k) != replay.inputs.get(k))
            raise invalid_request_error(f"replay inputs differ from the recorded run: {', '.join(changed)}")
        return ChainRun(self, dict(inputs), replay=replay, history_path=history_path)

    async def run(
        self,
        inputs: Mapping[str, str] | str | None = None,
        *,
        replay: History | None = None,
        history_path: str | Path | None = None,
    ) -> ChainResult:
        """Start a run and advance it until it completes, fails or pauses."""
        run = self.start(inputs, replay=replay, history_path=history_path)
        await run.advance()
        return run.result()

    def run_sync(
        self,
        inputs: Mapping[str, str] | str | None = None,
        *,
        replay: History | None = None,
        history_path: str | Path | None = None,
    ) -> ChainResult:
        return asyncio.run(self.run(inputs, replay=replay, history_path=history_path))


def _current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class ChainRun:
    """
    One execution of a chain.

    States: PENDING -> RUNNING -> COMPLETED | FAILED, with RUNNING <->
    AWAITING_INTERACTION for interactive steps. Each recorded step binds its id in
    `context` and is appended to `history`, which is flushed after every step.
    """

    def __init__(
        self,
        engine: ChainEngine,
        inputs: dict[str, str],
        *,
        replay: History | None = None,
        history_path: str | Path | None = None,
    ) -> None:
        self.engine = engine
        self.chain = engine.chain
        self.state = RunState.PENDING
        self.context = ExecutionContext(inputs)
        self.history = History(self.chain.name, inputs, path=history_path)
        self.skipped: list[str] = []
        self.failure: LLMChainError | None = None
        self.pending: Interaction | None = None
        self._replay = replay
        self._index = 0
        self._cancelled = False
        self._busy = False
        self._inflight: asyncio.Task | None = None

    @property
    def current_step(self) -> Step | None:
        if self._index >= len(self.chain.steps):
            return None
        return self.chain.steps[self._index]

    async def advance(self) -> RunState:
        """
        Run steps in order until the run completes, fails or pauses for interaction.
        """
        if self.state.terminal:
            return self.state
        if self.state == RunState.AWAITING_INTERACTION:
            raise invalid_request_error("run is awaiting interaction; call resume()")
        if self._busy:
            raise invalid_request_error("run is already advancing")
        self._busy = True
        self.state = RunState.RUNNING
        try:
            return await self._advance()
        finally:
            self._busy = False

    async def resume(
        self,
        token: str,
        *,
        response: str | None = None,
        dispatch: bool = False,
        prompt: str | None = None,
        skip: bool = False,
    ) -> RunState:
        """
        Continue a run paused at an interactive step.

        Exactly one of: `response` (record it without dispatch), `dispatch=True`
        (send the rendered prompt, or `prompt` when given) or `skip=True` (leave the
        step unbound). Then advance.
        """
        if self.state != RunState.AWAITING_INTERACTION or self.pending is None:
            raise invalid_request_error("run is not awaiting interaction")
        if token != self.pending.token:
            raise invalid_request_error("unknown or expired resume token")
        if sum((response is not None, dispatch, skip)) != 1:
            raise invalid_request_error("resume requires exactly one of response, dispatch or skip")
        if prompt is not None and not dispatch:
            raise invalid_request_error("prompt is only used with dispatch=True")
        if self._busy:
            raise invalid_request_error("run is already advancing")

        interaction = self.pending
        self.pending = None
        self.state = RunState.RUNNING
        step = self.chain.steps[self._index]
        self._busy = True
        try:
            if skip:
                self._skip(step, reason="skipped interactively")
            elif response is not None:
                self._record(step, interaction.prompt, response, origin="interactive")
            else:
                used = prompt if prompt is not None else interaction.prompt
                text = await self._dispatch(step, used)
                if self._cancelled:
                    return self.state
                self._record(step, used, text, origin="backend")
            self._index += 1
            return await self._advance()
        except LLMChainError as e:
            self._fail(with_context(e, step_id=step.id))
            return self.state
        except asyncio.CancelledError:
            if self._cancelled and not _current_task_cancelling():
                return self.state
            self.cancel()
            raise
        finally:
            self._busy = False

    def cancel(self) -> bool:
        """
        Fail the run with `Cancelled` and flush history. An in-flight dispatch is
        abandoned and its result never recorded. Returns False if already terminal.
        """
        if self.state.terminal:
            return False
        self._cancelled = True
        step = self.current_step
        self.pending = None
        self._fail(with_context(cancelled_error(), step_id=step.id if step else None))
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        return True

    def result(self) -> ChainResult:
        inputs = set(self.history.inputs)
        outputs = {k: v for k, v in self.context.snapshot().items() if k not in inputs}
        entries = self.history.entries
        return ChainResult(
            state=self.state,
            outputs=outputs,
            skipped=tuple(self.skipped),
            failure=self.failure.info if self.failure is not None else None,
            final=entries[-1].response if entries else None,
        )

    async def _advance(self) -> RunState:
        steps = self.chain.steps
        try:
            while self._index < len(steps):
                if self._cancelled:
                    return self.state
                step = steps[self._index]
                if not evaluate_condition(step.condition, self.context):
                    self._skip(step, reason="condition not met")
                    self._index += 1
                    continue
                if self._restore(step):
                    self._index += 1
                    continue

                prompt = render(step.template, self.context)
                if self.engine.interactive and self.chain.is_interactive(step):
                    self.pending = Interaction(token=uuid4().hex, step_id=step.id, prompt=prompt)
                    self.state = RunState.AWAITING_INTERACTION
                    self._flush()
                    logger.info("chain %s paused at step %s", self.chain.name, step.id)
                    return self.state

                text = await self._dispatch(step, prompt)
                if self._cancelled:
                    return self.state
                self._record(step, prompt, text, origin="backend")
                self._index += 1
        except LLMChainError as e:
            step = self.current_step
            self._fail(with_context(e, step_id=step.id if step else None))
            return self.state
        except asyncio.CancelledError:
            if self._cancelled and not _current_task_cancelling():
                return self.state
            self.cancel()
            raise

        self.state = RunState.COMPLETED
        self._flush()
        logger.info("chain %s completed (%d step(s) recorded)", self.chain.name, len(self.history))
        return self.state

    async def _dispatch(self, step: Step, prompt: str) -> str:
        client = self.engine.client_for(step)
        params = GenerateParams(temperature=step.temperature, max_output_tokens=step.max_tokens)
        retry = self.engine.retry
        attempt = 0
        while True:
            attempt += 1
            logger.debug("step %s -> %s (%s, attempt %d)", step.id, client.describe(), step.mode, attempt)
            try:
                if step.mode == "completion":
                    coro = client.acomplete(CompletionRequest(prompt=prompt, params=params))
                else:
                    coro = client.achat(ChatRequest(messages=[Message.user(prompt)], params=params))
                resp = await self._await_inflight(coro)
            except LLMChainError as e:
                err = with_context(e, step_id=step.id, backend=client.describe())
                if not err.retryable or attempt >= retry.max_attempts:
                    raise err from e
                delay = retry.delay(attempt)
                logger.warning(
                    "step %s failed on %s (%s), retrying in %.2fs",
                    step.id,
                    client.describe(),
                    err.info.message,
                    delay,
                )
                if delay > 0:
                    await self._await_inflight(asyncio.sleep(delay))
            else:
                text = resp.text if step.mode == "completion" else resp.text()
                return self.engine.transform(step, text)

    async def _await_inflight(self, coro: Awaitable[_T]) -> _T:
        # cancel() cancels whatever is stored here, including retry backoff.
        self._inflight = asyncio.ensure_future(coro)
        try:
            return await self._inflight
        finally:
            self._inflight = None

    def _restore(self, step: Step) -> bool:
        if self._replay is None:
            return False
        entry = self._replay.get(step.id)
        if entry is None:
            return False
        logger.debug("step %s restored from history", step.id)
        self._record(step, entry.prompt, entry.response, origin="replay")
        return True

    def _record(self, step: Step, prompt: str, response: str, *, origin: Origin) -> None:
        self.context.bind(step.id, response)
        self.history.record(step.id, prompt, response, origin=origin)
        self._flush()
        logger.info("chain %s step %s recorded (%s)", self.chain.name, step.id, origin)

    def _skip(self, step: Step, *, reason: str) -> None:
        self.skipped.append(step.id)
        logger.info("chain %s step %s skipped: %s", self.chain.name, step.id, reason)

    def _fail(self, err: LLMChainError) -> None:
        self.failure = err
        self.state = RunState.FAILED
        self._flush()
        logger.warning(
            "chain %s failed at step %s: %s (%s)",
            self.chain.name,
            err.info.step_id,
            err.info.type,
            err.info.message,
        )

    def _flush(self) -> None:
        self.history.flush()
