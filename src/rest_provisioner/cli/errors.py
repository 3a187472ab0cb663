"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def _partial_parts(summary: dict[str, int]) -> list[str]:
    return [
        f"{n} {verb}"
        for n, verb in (
            (summary["create"], "added"),
            (summary["update"], "changed"),
            (summary["delete"], "destroyed"),
            (summary["imperative-apply"], "run"),
            (summary["imperative-undo"], "undone"),
        )
        if n
    ]


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from rest_provisioner.config.loader import ConfigError
    from rest_provisioner.engine.errors import (
        ApplyCanceled,
        ApplyError,
        CyclicDependencyError,
        RemoteCallError,
        SchemaUnsupportedError,
        StalePlanError,
        StateLockError,
        StatePersistenceError,
        ValidationError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, SchemaUnsupportedError):
        _err(f"Unsupported attributes: {exc}", fg=fg)
    elif isinstance(exc, CyclicDependencyError):
        _err(f"Dependency cycle: {' -> '.join(exc.cycle)}", fg=fg)
    elif isinstance(exc, StalePlanError):
        _err(f"Plan is stale: {exc}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"State locked: {exc}", fg=fg)
    elif isinstance(exc, StatePersistenceError):
        _err(f"State error: {exc}", fg=fg)
    elif isinstance(exc, ApplyError):
        _err(f"Apply failed: {exc}", fg=fg)
        parts = _partial_parts(exc.result.summary())
        if parts:
            _err(f"  Partial result: {', '.join(parts)}.", fg=fg)
        _err("  Re-run plan to compute the remaining changes.", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
        parts = _partial_parts(exc.result.summary())
        if parts:
            _err(f"  Partial result: {', '.join(parts)}.", fg=fg)
    elif isinstance(exc, RemoteCallError):
        _err(f"Remote call failed: {exc}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
