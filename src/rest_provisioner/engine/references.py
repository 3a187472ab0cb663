"""``${...}`` placeholder resolution and reference discovery.

Two placeholder forms are understood:

- ``${name.path}``: a reference to another resource. ``${name.id}`` is the
  remote identifier of ``name``; any other path is looked up in its observed
  attributes (dot-separated for nested values).
- ``${key}``: a trigger value of the imperative resource being rendered.

A string made of exactly one placeholder renders to the raw referenced value
(which may be a dict, list, number...). Placeholders embedded in longer
strings render via ``str()``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from rest_provisioner.engine.errors import TemplateError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from rest_provisioner.core.state import State

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def _iter_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for k, v in value.items():
            yield from _iter_strings(k)
            yield from _iter_strings(v)
    elif isinstance(value, list | tuple):
        for v in value:
            yield from _iter_strings(v)


def placeholders(value: Any) -> list[str]:
    """Collect every placeholder expression in *value*, in order of appearance."""
    found: list[str] = []
    for s in _iter_strings(value):
        for expr in _PLACEHOLDER.findall(s):
            expr = expr.strip()
            if expr not in found:
                found.append(expr)
    return found


def resource_refs(value: Any) -> list[str]:
    """Names of resources referenced through ``${name.path}`` placeholders."""
    names: list[str] = []
    for expr in placeholders(value):
        if "." in expr:
            name = expr.split(".", 1)[0]
            if name not in names:
                names.append(name)
    return names


def trigger_refs(value: Any) -> list[str]:
    """Trigger keys referenced through bare ``${key}`` placeholders."""
    return [expr for expr in placeholders(value) if "." not in expr]


def identifier_refs(value: Any, identifiers: Mapping[str, str]) -> list[str]:
    """Names whose remote identifier appears as a whole identifier inside *value*.

    ``projects/p/agents/1`` matches ``projects/p/agents/1`` and
    ``projects/p/agents/1/flows/main`` but not ``projects/p/agents/12``.
    """
    strings = list(_iter_strings(value))
    return [
        name
        for name, identifier in identifiers.items()
        if identifier and any(_identifier_pattern(identifier).search(s) for s in strings)
    ]


def is_sub_resource(identifier: str, parent: str) -> bool:
    """Whether *identifier* names a resource nested below *parent*."""
    return bool(parent) and identifier.startswith(parent.rstrip("/") + "/")


def _identifier_pattern(identifier: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w.-]){re.escape(identifier)}(?![\w.-])")


def render(value: Any, lookup: Callable[[str], Any]) -> Any:
    """Substitute placeholders in *value* recursively.

    Raises:
        TemplateError: If *lookup* cannot resolve a placeholder.
    """
    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value)
        if whole is not None:
            return lookup(whole.group(1).strip())
        return _PLACEHOLDER.sub(lambda m: _stringify(lookup(m.group(1).strip())), value)
    if isinstance(value, dict):
        return {render(k, lookup): render(v, lookup) for k, v in value.items()}
    if isinstance(value, list):
        return [render(v, lookup) for v in value]
    return value


def try_render(value: Any, lookup: Callable[[str], Any]) -> tuple[Any, bool]:
    """Render what can be resolved now; keep unresolved placeholders verbatim.

    Returns the rendered value and whether every placeholder was resolved.
    Used at plan time, where references to resources not yet created are only
    known after apply.
    """
    complete = True

    def _partial(expr: str) -> Any:
        nonlocal complete
        try:
            return lookup(expr)
        except TemplateError:
            complete = False
            return f"${{{expr}}}"

    return render(value, _partial), complete


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_path(data: Any, path: list[str]) -> Any:
    """Walk *path* through nested dicts and lists. Raises KeyError when absent."""
    current = data
    for segment in path:
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            raise KeyError(segment)
    return current


def state_lookup(
    state: State,
    *,
    triggers: Mapping[str, Any] | None = None,
    allow_resources: bool = True,
) -> Callable[[str], Any]:
    """Build a placeholder lookup backed by *state* (and optional *triggers*)."""

    def _lookup(expr: str) -> Any:
        if "." not in expr:
            if triggers is None or expr not in triggers:
                raise TemplateError(f"Unknown trigger value '${{{expr}}}'")
            return triggers[expr]

        if not allow_resources:
            raise TemplateError(
                f"Resource reference '${{{expr}}}' is not allowed here; use a trigger value"
            )
        name, path = expr.split(".", 1)
        record = state.get(name)
        if record is None:
            raise TemplateError(f"'${{{expr}}}' refers to '{name}', which is not created yet")
        if path == "id":
            return record.identifier
        try:
            return resolve_path(record.attributes, path.split("."))
        except KeyError as exc:
            raise TemplateError(f"'${{{expr}}}': '{name}' has no attribute '{path}'") from exc

    return _lookup
