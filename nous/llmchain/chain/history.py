from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Literal, Mapping

from .._internal.errors import configuration_error, invalid_request_error
from .context import ExecutionContext

Origin = Literal["backend", "interactive", "replay"]

_ORIGINS = {"backend", "interactive", "replay"}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    step_id: str
    prompt: str
    response: str
    timestamp: str
    origin: Origin = "backend"

    def to_json(self) -> dict[str, Any]:
        return {"kind": "step", **asdict(self)}


class History:
    """
    Ordered record of one chain run: a header (chain name, inputs, start time) and
    one entry per recorded step.

    Stored as JSON Lines. `flush()` appends entries written since the last flush,
    so a run can be persisted step by step and survive a crash or cancel.
    """

    def __init__(
        self,
        chain_name: str,
        inputs: Mapping[str, str],
        *,
        started_at: str | None = None,
        path: str | Path | None = None,
    ) -> None:
        self.chain_name = chain_name
        self.inputs = dict(inputs)
        self.started_at = started_at or utc_now()
        self.path = Path(path) if path is not None else None
        self._entries: list[HistoryEntry] = []
        self._flushed = 0
        self._header_written = False

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))

    def step_ids(self) -> list[str]:
        return [e.step_id for e in self._entries]

    def get(self, step_id: str) -> HistoryEntry | None:
        for e in self._entries:
            if e.step_id == step_id:
                return e
        return None

    def record(
        self,
        step_id: str,
        prompt: str,
        response: str,
        *,
        origin: Origin = "backend",
        timestamp: str | None = None,
    ) -> HistoryEntry:
        if origin not in _ORIGINS:
            raise invalid_request_error(f"unknown history origin: {origin}")
        if self.get(step_id) is not None:
            raise invalid_request_error(f"step already recorded: {step_id}")
        entry = HistoryEntry(
            step_id=step_id,
            prompt=prompt,
            response=response,
            timestamp=timestamp or utc_now(),
            origin=origin,
        )
        self._entries.append(entry)
        return entry

    def header(self) -> dict[str, Any]:
        return {"kind": "run", "chain": self.chain_name, "inputs": dict(self.inputs), "started_at": self.started_at}

    def flush(self, path: str | Path | None = None) -> None:
        """Append unflushed entries; the first flush (re)creates the file with its header."""
        if path is not None and (self.path is None or Path(path) != self.path):
            self.path = Path(path)
            self._header_written = False
            self._flushed = 0
        if self.path is None:
            return
        if not self._header_written:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(_dumps(self.header()))
                for e in self._entries:
                    f.write(_dumps(e.to_json()))
            self._header_written = True
            self._flushed = len(self._entries)
            return
        pending = self._entries[self._flushed :]
        if not pending:
            return
        with open(self.path, "a", encoding="utf-8") as f:
            for e in pending:
                f.write(_dumps(e.to_json()))
        self._flushed = len(self._entries)

    def to_jsonl(self) -> str:
        return _dumps(self.header()) + "".join(_dumps(e.to_json()) for e in self._entries)

    def replay(self) -> ExecutionContext:
        """Rebuild the run's context from the inputs and recorded responses, without dispatch."""
        ctx = ExecutionContext(self.inputs)
        for e in self._entries:
            ctx.bind(e.step_id, e.response)
        return ctx

    @classmethod
    def loads(cls, text: str, *, source: str = "history") -> "History":
        lines = [ln for ln in text.splitlines() if ln.strip()]
        if not lines:
            raise configuration_error(f"{source}: empty history")
        records: list[dict[str, Any]] = []
        for n, line in enumerate(lines, start=1):
            try:
                obj = json.loads(line)
            except json.JSONDecodeError as e:
                raise configuration_error(f"{source}:{n}: invalid JSON: {e}") from e
            if not isinstance(obj, dict):
                raise configuration_error(f"{source}:{n}: expected an object")
            records.append(obj)

        head = records[0]
        if head.get("kind") != "run" or not isinstance(head.get("chain"), str):
            raise configuration_error(f"{source}:1: missing run header")
        inputs = head.get("inputs") or {}
        if not isinstance(inputs, dict) or not all(isinstance(v, str) for v in inputs.values()):
            raise configuration_error(f"{source}:1: inputs must map names to strings")
        hist = cls(head["chain"], inputs, started_at=head.get("started_at"))
        for n, obj in enumerate(records[1:], start=2):
            if obj.get("kind") != "step":
                raise configuration_error(f"{source}:{n}: expected a step record")
            fields = ("step_id", "prompt", "response", "timestamp")
            if not all(isinstance(obj.get(k), str) for k in fields):
                raise configuration_error(f"{source}:{n}: step record requires {', '.join(fields)}")
            origin = obj.get("origin", "backend")
            if origin not in _ORIGINS:
                raise configuration_error(f"{source}:{n}: unknown origin {origin!r}")
            hist.record(obj["step_id"], obj["prompt"], obj["response"], origin=origin, timestamp=obj["timestamp"])
        return hist

    @classmethod
    def load(cls, path: str | Path) -> "History":
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise configuration_error(f"cannot read history {p}: {e}") from e
        return cls.loads(text, source=str(p))


def _dumps(obj: dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":")) + "\n"
