"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import SecretStr

from rest_provisioner.config.loader import ConfigError, load_config
from rest_provisioner.config.registry import build_registry
from rest_provisioner.config.schema import Config, KindConfig, ProviderConfig
from rest_provisioner.core.provider import RestProvider, TokenAuth
from rest_provisioner.core.state import State
from rest_provisioner.engine.engine import ProgressCallback, ReconcileEngine
from rest_provisioner.engine.lock import StateLock
from rest_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    import threading
    from pathlib import Path

    from rest_provisioner.core.state import RemoteRecord
    from rest_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "KindConfig",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_resource",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def _engine_from_config(config: Config) -> ReconcileEngine:
    """Build a ``ReconcileEngine`` from a ``Config`` instance."""
    if not config.provider.host:
        raise ConfigError("provider.host is required (set in YAML or RP_HOST env var)")
    auth = None
    if config.provider.token:
        auth = TokenAuth(
            token=SecretStr(config.provider.token),
            header=config.provider.token_header,
            scheme=config.provider.token_scheme,
        )
    provider = RestProvider(
        host=config.provider.host, auth=auth, verify_ssl=config.provider.verify_ssl
    )
    return ReconcileEngine(
        provider=provider,
        state_path=config.state_path,
        registry=build_registry(config.kinds),
        timeout=config.provider.timeout,
        parallelism=config.provider.parallelism,
    )


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Plan changes for the given configuration."""
    engine = _engine_from_config(config)
    return engine.plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = _engine_from_config(config)
    return engine.apply(plan_obj, progress=progress, cancel=cancel)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy, refresh=refresh)
    return apply(plan_obj, config)


def import_resource(
    config: Config, name: str, identifier: str, *, kind: str | None = None
) -> RemoteRecord:
    """Track an existing remote resource under *name* without creating it.

    When *kind* is omitted it is taken from the declared resource of that name.
    """
    if kind is None:
        declared = next((r for r in config.resources if r.name == name), None)
        if declared is None:
            raise ConfigError(f"Resource '{name}' is not declared; pass its kind explicitly")
        kind = declared.resource_type
    engine = _engine_from_config(config)
    return engine.import_resource(name, kind, identifier)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Refresh state from the live API (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist state to disk."""
    with StateLock(config.state_path):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Detect drift between state file and the live API."""
    changes, _ = refresh(config)
    return changes


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    old_attrs = {addr: rec.attributes.copy() for addr, rec in old_state.resources.items()}
    changes: list[ResourceChange] = []
    for addr, rec in new_state.resources.items():
        old = old_attrs.get(addr)
        if old is None:
            continue
        if old != rec.attributes:
            all_keys = sorted(set(old) | set(rec.attributes))
            diff = {
                k: {"from": old.get(k), "to": rec.attributes.get(k)}
                for k in all_keys
                if old.get(k) != rec.attributes.get(k)
            }
            changes.append(
                ResourceChange(
                    address=addr,
                    kind=rec.kind,
                    action=Action.UPDATE,
                    prior=old,
                    planned=dict(rec.attributes),
                    diff=diff,
                )
            )
    for addr in sorted(set(old_attrs) - set(new_state.resources)):
        changes.append(
            ResourceChange(
                address=addr,
                kind=old_state.resources[addr].kind,
                action=Action.DELETE,
                prior=old_attrs[addr],
                drifted=True,
            )
        )
    return changes
