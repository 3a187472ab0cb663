"""Command-line entry point: ``rest-provisioner plan|apply|destroy|...``."""

from __future__ import annotations

import logging
import os
import sys

import typer

from rest_provisioner import __version__

app = typer.Typer(
    name="rest-provisioner",
    no_args_is_help=True,
    add_completion=False,
)

LOG_ENV_VAR = "RP_LOG"

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_LEVELS_BY_VERBOSITY = {1: logging.INFO, 2: logging.DEBUG}
_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"rest-provisioner {__version__}")
        raise typer.Exit


def _log_level(verbose: int) -> int | None:
    """Level for the ``rest_provisioner`` logger, or None to leave logging alone.

    ``RP_LOG`` beats ``-v``. An unrecognised ``RP_LOG`` value means INFO.
    """
    name = os.environ.get(LOG_ENV_VAR, "").strip().upper()
    if name:
        if name not in _LEVEL_NAMES:
            print(
                f"WARNING: {LOG_ENV_VAR}={name!r} is not one of "
                f"{', '.join(_LEVEL_NAMES)}; using INFO",
                file=sys.stderr,
            )
            return logging.INFO
        return logging.getLevelName(name)
    if verbose <= 0:
        return None
    return _LEVELS_BY_VERBOSITY.get(verbose, logging.DEBUG)


def _configure_logging(verbose: int) -> None:
    level = _log_level(verbose)
    if level is None:
        return
    # Third-party loggers (httpx, httpcore) stay at WARNING.
    logging.basicConfig(level=logging.WARNING, format=_LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("rest_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help=f"Log progress to stderr (-v info, -vv debug). {LOG_ENV_VAR} overrides.",
    ),
) -> None:
    """Reconcile resources behind a REST API with a declarative YAML config."""
    _ = version
    _configure_logging(verbose)


# Commands attach themselves to ``app`` on import.
from rest_provisioner.cli import commands as _commands  # noqa: E402, F401
