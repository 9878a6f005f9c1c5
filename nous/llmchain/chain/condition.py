from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from .._internal.errors import invalid_request_error
from .context import ExecutionContext

Operator = Literal["eq", "ne", "contains", "truthy"]

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


@dataclass(frozen=True, slots=True)
class Condition:
    """
    A parsed step condition.

    Grammar: `[!] name = value`, `[!] name != value`, `[!] name contains value` or
    `[!] name` (true when the bound value is non-empty). Values may be quoted.
    Comparisons are exact and case-sensitive against the bound value.
    """

    name: str
    operator: Operator
    value: str = ""
    negated: bool = False
    source: str = ""

    @staticmethod
    def parse(text: str) -> "Condition":
        raw = text.strip()
        if not raw:
            raise invalid_request_error("condition must not be empty")
        body = raw
        negated = False
        if body.startswith("!") and not body.startswith("!="):
            negated = True
            body = body[1:].strip()

        m = re.match(r"^(.*?)\s+contains\s+(.*)$", body)
        if m and _NAME.match(m.group(1).strip()):
            name, op, value = m.group(1), "contains", m.group(2)
        elif "!=" in body:
            name, value = body.split("!=", 1)
            op = "ne"
        elif "=" in body:
            name, value = body.split("=", 1)
            if value.startswith("="):
                value = value[1:]
            op = "eq"
        else:
            name, op, value = body, "truthy", ""

        name = name.strip()
        if not _NAME.match(name):
            raise invalid_request_error(f"malformed condition: {text!r}")
        return Condition(name=name, operator=op, value=_unquote(value.strip()), negated=negated, source=raw)

    def evaluate(self, context: ExecutionContext) -> bool:
        actual = context.resolve(self.name)
        if self.operator == "eq":
            result = actual == self.value
        elif self.operator == "ne":
            result = actual != self.value
        elif self.operator == "contains":
            result = self.value in actual
        else:
            result = bool(actual)
        return not result if self.negated else result


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def evaluate_condition(condition: str | Condition | None, context: ExecutionContext) -> bool:
    """Empty or missing conditions always hold."""
    if condition is None:
        return True
    if isinstance(condition, str):
        if not condition.strip():
            return True
        condition = Condition.parse(condition)
    return condition.evaluate(context)
