"""Plan and apply output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from rest_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from rest_provisioner.engine.types import DriftDetected, Plan, ResourceChange


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "delete": _ActionStyle("red", "-", "Destroying", "Destroy complete"),
    "imperative-apply": _ActionStyle("cyan", ">", "Running", "Call complete"),
    "imperative-undo": _ActionStyle("magenta", "<", "Undoing", "Undo complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "delete": "will be destroyed",
    "imperative-apply": "will run its apply call",
    "imperative-undo": "will run its destroy call",
    "no-op": "is up-to-date",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if isinstance(value, str):
        if value.startswith("${") and value.endswith("}"):
            return "(known after apply)"
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key → formatted value`` pairs from a change."""
    if change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    if change.action in (Action.IMPERATIVE_APPLY, Action.IMPERATIVE_UNDO) and change.triggers:
        return {f"triggers.{k}": _format_value(v) for k, v in change.triggers.items()}
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    action_val = change.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    desc = _ACTION_DESC[action_val]
    if change.drifted:
        desc += " (drifted)"
    lines = [
        style(f"  # {change.address} {desc}", bold=True, **sc),
        style(f'  {symbol} resource "{change.kind}" "{change.address}" {{', **sc),
        *[
            style(f"      {symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_changes(changes: list[ResourceChange], *, color: bool = True) -> str:
    """Render a list of changes as Terraform-style diff blocks."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_drift(drift: list[DriftDetected], *, color: bool = True) -> str:
    """Render drift warnings, one per line."""
    style = styler(color)
    return "\n".join(
        style(f"Warning: drift detected on {d.address} ({d.kind}): {d.reason}", fg="yellow")
        for d in drift
    )


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with drift warnings and per-change diff blocks."""
    body = format_changes(plan.changes, color=color)
    if plan.drift:
        return f"{format_drift(plan.drift, color=color)}\n\n{body}"
    return body


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_SUMMARY_KEYS = ("create", "update", "delete", "imperative-apply", "imperative-undo")
_PLAN_VERBS = ("to add", "to change", "to destroy", "to run", "to undo")
_APPLY_VERBS = ("added", "changed", "destroyed", "run", "undone")
_SUMMARY_COLORS = ("green", "yellow", "red", "cyan", "magenta")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, N verb`` part of a summary line.

    The imperative counts are only shown when non-zero.
    """
    style = styler(color)
    parts = []
    for key, verb, fg in zip(_SUMMARY_KEYS, verbs, _SUMMARY_COLORS, strict=True):
        n = summary.get(key, 0)
        if key.startswith("imperative") and not n:
            continue
        parts.append(style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}")
    return ", ".join(parts)


def changes_summary(changes: list[ResourceChange]) -> dict[str, int]:
    """Count changes by action type (excluding no-ops)."""
    summary: dict[str, int] = dict.fromkeys(_SUMMARY_KEYS, 0)
    for c in changes:
        if c.action != Action.NOOP:
            summary[c.action.value] += 1
    return summary


def format_plan_summary(
    summary: dict[str, int], *, color: bool = True, header: str = "Plan"
) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    return f"{header}: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``"""
    style = styler(color)
    head = style("Apply complete!", fg="green", bold=True)
    return f"{head} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."
