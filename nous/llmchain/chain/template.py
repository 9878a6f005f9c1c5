from __future__ import annotations

import functools

from jinja2 import Environment, StrictUndefined, Template, TemplateSyntaxError, UndefinedError, meta, nodes

from .._internal.errors import invalid_request_error, unresolved_variable_error
from .context import SYS_PREFIX, SYSTEM_VARIABLES, ExecutionContext

_SYS = SYS_PREFIX.rstrip(".")

# Only `{{ }}` is markup; block and comment delimiters are set to strings that
# never occur in prompt text.
_env = Environment(
    variable_start_string="{{",
    variable_end_string="}}",
    block_start_string="\x00{%",
    block_end_string="%}\x00",
    comment_start_string="\x00{#",
    comment_end_string="#}\x00",
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)


class _SystemNamespace:
    """`sys.*` values, computed when the template reads them."""

    __slots__ = ()

    def __getattr__(self, name: str) -> str:
        factory = SYSTEM_VARIABLES.get(f"{SYS_PREFIX}{name}")
        if factory is None:
            raise AttributeError(name)
        return factory()


@functools.lru_cache(maxsize=256)
def _compile(template: str) -> Template:
    try:
        return _env.from_string(template)
    except TemplateSyntaxError as e:
        raise invalid_request_error(f"invalid template: {e.message} (line {e.lineno})") from e


def render(template: str, context: ExecutionContext) -> str:
    """
    Substitute every `{{ name }}` against `context`.

    Substituted values are inserted verbatim and never scanned again, so a value
    that itself contains `{{x}}` stays literal. An unbound name raises
    `UnresolvedVariable`.
    """
    if "{{" not in template:
        return template
    for name in referenced_names(template):
        if not context.is_bound(name):
            raise unresolved_variable_error(name)
    try:
        return _compile(template).render({**context.snapshot(), _SYS: _SystemNamespace()})
    except UndefinedError as e:
        raise unresolved_variable_error(str(e)) from e


def referenced_names(template: str) -> list[str]:
    """Names referenced by `template`, in order of first appearance."""
    if "{{" not in template:
        return []
    try:
        ast = _env.parse(template)
    except TemplateSyntaxError as e:
        raise invalid_request_error(f"invalid template: {e.message} (line {e.lineno})") from e
    undeclared = meta.find_undeclared_variables(ast)
    names: list[str] = []
    sys_nodes: set[int] = set()
    for node in ast.find_all((nodes.Getattr, nodes.Name)):
        if isinstance(node, nodes.Getattr):
            if isinstance(node.node, nodes.Name) and node.node.name == _SYS:
                sys_nodes.add(id(node.node))
                name = f"{SYS_PREFIX}{node.attr}"
            else:
                continue
        elif id(node) in sys_nodes or node.name not in undeclared:
            continue
        else:
            name = node.name
        if name not in names:
            names.append(name)
    return names
