from __future__ import annotations

import getpass
import os
import platform
import socket
from datetime import datetime, timezone
from typing import Callable, Iterator, Mapping

from .._internal.errors import invalid_request_error, unresolved_variable_error

SYS_PREFIX = "sys."


def _user() -> str:
    for name in ("USER", "USERNAME", "LOGNAME"):
        value = os.environ.get(name)
        if value:
            return value
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


SYSTEM_VARIABLES: dict[str, Callable[[], str]] = {
    "sys.date": lambda: datetime.now().strftime("%Y-%m-%d"),
    "sys.time": lambda: datetime.now().strftime("%H:%M:%S"),
    "sys.datetime": lambda: datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    "sys.timestamp": lambda: str(int(datetime.now(timezone.utc).timestamp())),
    "sys.os": lambda: platform.system().lower() or "unknown",
    "sys.arch": lambda: platform.machine() or "unknown",
    "sys.user": _user,
    "sys.hostname": _hostname,
}


class ExecutionContext(Mapping[str, str]):
    """
    Append-only variable bindings for one chain run.

    Holds the input bindings and one binding per recorded step. `sys.*` names are
    never stored; they resolve on every lookup.
    """

    def __init__(self, bindings: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = {}
        for name, value in (bindings or {}).items():
            self.bind(name, value)

    def bind(self, name: str, value: str) -> None:
        if not isinstance(name, str) or not name.strip():
            raise invalid_request_error("variable name must be a non-empty string")
        if name == SYS_PREFIX.rstrip(".") or name.startswith(SYS_PREFIX):
            raise invalid_request_error(f"cannot bind reserved name: {name}")
        if name in self._values:
            raise invalid_request_error(f"variable already bound: {name}")
        if not isinstance(value, str):
            raise invalid_request_error(f"variable {name} must be bound to a string")
        self._values[name] = value

    def resolve(self, name: str) -> str:
        if name in self._values:
            return self._values[name]
        factory = SYSTEM_VARIABLES.get(name)
        if factory is not None:
            return factory()
        raise unresolved_variable_error(name)

    def is_bound(self, name: str) -> bool:
        return name in self._values or name in SYSTEM_VARIABLES

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._values!r})"
