from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml

from .._internal.errors import LLMChainError, configuration_error
from .condition import Condition
from .context import SYS_PREFIX, SYSTEM_VARIABLES
from .template import referenced_names

StepMode = Literal["chat", "completion"]

_STEP_KEYS = {"id", "template", "provider", "mode", "temperature", "max_tokens", "condition", "interactive"}
_CHAIN_KEYS = {"name", "description", "default_provider", "input_var", "inputs", "interactive_steps", "steps"}


@dataclass(frozen=True, slots=True)
class Step:
    id: str
    template: str
    provider: str | None = None
    mode: StepMode = "chat"
    temperature: float | None = None
    max_tokens: int | None = None
    condition: str | None = None
    interactive: bool = False

    def parsed_condition(self) -> Condition | None:
        if self.condition is None or not self.condition.strip():
            return None
        return Condition.parse(self.condition)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "template": self.template}
        if self.provider is not None:
            out["provider"] = self.provider
        if self.mode != "chat":
            out["mode"] = self.mode
        if self.temperature is not None:
            out["temperature"] = self.temperature
        if self.max_tokens is not None:
            out["max_tokens"] = self.max_tokens
        if self.condition is not None:
            out["condition"] = self.condition
        if self.interactive:
            out["interactive"] = True
        return out


@dataclass(frozen=True, slots=True)
class Chain:
    name: str
    steps: tuple[Step, ...]
    description: str | None = None
    default_provider: str | None = None
    input_var: str = "input"
    inputs: tuple[str, ...] = ()
    interactive_steps: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "interactive_steps", tuple(self.interactive_steps))

    def input_names(self) -> tuple[str, ...]:
        names = [self.input_var]
        names.extend(n for n in self.inputs if n != self.input_var)
        return tuple(names)

    def step(self, step_id: str) -> Step:
        for s in self.steps:
            if s.id == step_id:
                return s
        raise configuration_error(f"chain {self.name!r} has no step {step_id!r}")

    def index_of(self, step_id: str) -> int:
        for i, s in enumerate(self.steps):
            if s.id == step_id:
                return i
        raise configuration_error(f"chain {self.name!r} has no step {step_id!r}")

    def provider_for(self, step: Step) -> str | None:
        return step.provider or self.default_provider

    def is_interactive(self, step: Step) -> bool:
        return step.interactive or step.id in self.interactive_steps

    def validate(self) -> "Chain":
        """
        Check step ids and references.

        Step ids must be unique and must not shadow inputs or `sys.*`. Templates and
        conditions may reference inputs, `sys.*` names and ids of earlier steps only.
        """
        if not self.name or not self.name.strip():
            raise configuration_error("chain name must not be empty")
        if not self.steps:
            raise configuration_error(f"chain {self.name!r} has no steps")
        known: set[str] = set(self.input_names())
        seen: set[str] = set()
        all_ids = {s.id for s in self.steps}
        for s in self.steps:
            where = f"chain {self.name!r} step {s.id!r}"
            if not s.id or not s.id.strip():
                raise configuration_error(f"chain {self.name!r} has a step without id")
            if s.id in seen:
                raise configuration_error(f"{where}: duplicate step id")
            if not s.id.isidentifier():
                raise configuration_error(f"{where}: step id must be a valid identifier")
            if s.id == SYS_PREFIX.rstrip(".") or s.id in self.input_names():
                raise configuration_error(f"{where}: step id shadows a reserved or input name")
            if s.mode not in ("chat", "completion"):
                raise configuration_error(f"{where}: unknown mode {s.mode!r}")
            if s.max_tokens is not None and s.max_tokens <= 0:
                raise configuration_error(f"{where}: max_tokens must be positive")
            provider = self.provider_for(s)
            if provider is not None and ":" not in provider:
                raise configuration_error(f'{where}: provider must be "backend:model", got {provider!r}')

            try:
                names = referenced_names(s.template)
                cond = s.parsed_condition()
            except LLMChainError as e:
                raise configuration_error(f"{where}: {e.info.message}") from e
            if cond is not None:
                names.append(cond.name)
            for name in names:
                if name in known or name in SYSTEM_VARIABLES:
                    continue
                if name in all_ids:
                    raise configuration_error(f"{where}: references later step {name!r}")
                raise configuration_error(f"{where}: references unknown variable {name!r}")
            seen.add(s.id)
            known.add(s.id)
        for step_id in self.interactive_steps:
            if step_id not in all_ids:
                raise configuration_error(f"chain {self.name!r}: interactive step {step_id!r} does not exist")
        return self

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        if self.default_provider is not None:
            out["default_provider"] = self.default_provider
        if self.input_var != "input":
            out["input_var"] = self.input_var
        if self.inputs:
            out["inputs"] = list(self.inputs)
        if self.interactive_steps:
            out["interactive_steps"] = list(self.interactive_steps)
        out["steps"] = [s.to_dict() for s in self.steps]
        return out


def _step_from_dict(obj: Any, index: int) -> Step:
    if not isinstance(obj, Mapping):
        raise configuration_error(f"steps[{index}] must be a mapping")
    unknown = set(obj) - _STEP_KEYS
    if unknown:
        raise configuration_error(f"steps[{index}]: unknown keys {sorted(unknown)}")
    step_id = obj.get("id")
    template = obj.get("template")
    if not isinstance(step_id, str) or not step_id.strip():
        raise configuration_error(f"steps[{index}]: 'id' must be a non-empty string")
    if not isinstance(template, str):
        raise configuration_error(f"steps[{index}]: 'template' must be a string")
    mode = obj.get("mode", "chat")
    if mode not in ("chat", "completion"):
        raise configuration_error(f"steps[{index}]: mode must be 'chat' or 'completion'")
    temperature = obj.get("temperature")
    if temperature is not None and (isinstance(temperature, bool) or not isinstance(temperature, (int, float))):
        raise configuration_error(f"steps[{index}]: temperature must be a number")
    max_tokens = obj.get("max_tokens")
    if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int)):
        raise configuration_error(f"steps[{index}]: max_tokens must be an integer")
    condition = obj.get("condition")
    if condition is not None and not isinstance(condition, str):
        raise configuration_error(f"steps[{index}]: condition must be a string")
    provider = obj.get("provider")
    if provider is not None and not isinstance(provider, str):
        raise configuration_error(f"steps[{index}]: provider must be a string")
    return Step(
        id=step_id.strip(),
        template=template,
        provider=provider,
        mode=mode,
        temperature=float(temperature) if temperature is not None else None,
        max_tokens=max_tokens,
        condition=condition,
        interactive=bool(obj.get("interactive", False)),
    )


def chain_from_dict(data: Mapping[str, Any]) -> Chain:
    if not isinstance(data, Mapping):
        raise configuration_error("chain definition must be a mapping")
    unknown = set(data) - _CHAIN_KEYS
    if unknown:
        raise configuration_error(f"chain definition: unknown keys {sorted(unknown)}")
    steps = data.get("steps")
    if not isinstance(steps, list):
        raise configuration_error("chain definition requires a 'steps' list")
    name = data.get("name")
    if not isinstance(name, str):
        raise configuration_error("chain definition requires a 'name'")
    chain = Chain(
        name=name,
        description=data.get("description"),
        default_provider=data.get("default_provider"),
        input_var=data.get("input_var") or "input",
        inputs=tuple(data.get("inputs") or ()),
        interactive_steps=tuple(data.get("interactive_steps") or ()),
        steps=tuple(_step_from_dict(s, i) for i, s in enumerate(steps)),
    )
    return chain.validate()


def load_chain(path: str | Path) -> Chain:
    """Load a chain definition from a YAML or JSON file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise configuration_error(f"chain file not found: {p}")
    except OSError as e:
        raise configuration_error(f"cannot read chain file {p}: {e}") from e
    return loads_chain(text, fmt="json" if p.suffix.lower() == ".json" else "yaml")


def loads_chain(text: str, *, fmt: Literal["yaml", "json"] = "yaml") -> Chain:
    if fmt == "json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise configuration_error(f"invalid chain JSON: {e}") from e
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise configuration_error(f"invalid chain YAML: {e}") from e
    return chain_from_dict(data)


def dump_chain(chain: Chain, path: str | Path) -> None:
    p = Path(path)
    data = chain.to_dict()
    if p.suffix.lower() == ".json":
        p.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    else:
        p.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
