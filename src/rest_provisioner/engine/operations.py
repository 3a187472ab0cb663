"""Apply operations.

Apply runs a graph of operations: each operation knows how to apply itself
and lists dependencies on other operations. The engine executes them one at
a time, persisting state after each one that changes it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from rest_provisioner.core.state import RemoteRecord
from rest_provisioner.engine.references import render, state_lookup

if TYPE_CHECKING:
    from rest_provisioner.core.state import State
    from rest_provisioner.engine.handlers import EngineContext
    from rest_provisioner.engine.registry import ResourceTypeRegistry
    from rest_provisioner.engine.types import ResourceChange


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange | None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        """Execute this operation.

        Returns:
            True if state should be persisted (serial bump + write).
        """


@dataclass
class BarrierOperation:
    """A no-op node used to enforce ordering between operation phases."""

    key: str
    deps: list[str] = field(default_factory=list)
    change: ResourceChange | None = None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        _ = ctx, state, registry
        return False


def _desired_object(change: ResourceChange, reg: Any, *, action: str) -> Any:
    if change.desired is None:
        raise ValueError(f"Missing desired config for {action}: {change.address}")

    desired_obj = reg.model.model_validate(change.desired)
    if desired_obj.address != change.address:
        raise ValueError(
            f"Desired address mismatch for {action}: {change.address} != {desired_obj.address}"
        )
    return desired_obj


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.kind)
        desired_obj = _desired_object(self.change, reg, action="create")

        lookup = state_lookup(state)
        payload = render(dict(desired_obj.attributes), lookup)
        observed = reg.handler.create(ctx, desired_obj, payload, lookup=lookup)

        record = RemoteRecord(
            address=self.change.address,
            kind=self.change.kind,
            identifier=observed.identifier,
            dependencies=list(desired_obj.depends_on),
        )
        record.set_attributes(dict(observed.attributes))
        state.put(self.change.address, record)
        return True


@dataclass
class UpdateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.kind)
        desired_obj = _desired_object(self.change, reg, action="update")

        prior = state.get(self.change.address)
        if prior is None:
            raise ValueError(f"Missing state for update operation: {self.change.address}")

        # Re-render at apply time: values unknown at plan time may exist now.
        lookup = state_lookup(state)
        mask = self.change.field_mask or []
        payload = {k: render(desired_obj.attributes[k], lookup) for k in mask}
        echoed = reg.handler.update(ctx, prior, payload)

        prior.set_attributes({**prior.attributes, **payload, **echoed})
        prior.dependencies = list(desired_obj.depends_on)
        return True


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        prior = state.get(self.change.address)
        if prior is None:
            raise ValueError(f"Missing state for delete operation: {self.change.address}")

        # Drifted records are already gone remotely; only the state entry goes.
        if not self.change.drifted:
            registry.handler_for(self.change.kind).delete(ctx, prior)
        state.remove(self.change.address)
        return True


@dataclass
class ImperativeApplyOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.kind)
        handler = reg.handler
        desired_obj = _desired_object(self.change, reg, action="imperative apply")

        lookup = state_lookup(state)
        triggers = handler.resolve_triggers(desired_obj, lookup)
        path = handler.run_apply(ctx, desired_obj, triggers, lookup=lookup)

        record = RemoteRecord(
            address=self.change.address,
            kind=self.change.kind,
            identifier=path,
            triggers=triggers,
            dependencies=list(desired_obj.depends_on),
        )
        record.set_attributes({"destroy": handler.record_destroy(desired_obj)})
        state.put(self.change.address, record)
        return True


@dataclass
class ImperativeUndoOperation:
    """Undo a recorded imperative apply using the recorded trigger values.

    With ``change=None`` this is the first half of a replacement; the apply
    that follows writes a fresh record.
    """

    key: str
    change: ResourceChange | None
    address: str = ""
    kind: str = ""
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        address = self.change.address if self.change is not None else self.address
        kind = self.change.kind if self.change is not None else self.kind
        prior = state.get(address)
        if prior is None:
            raise ValueError(f"Missing state for imperative undo operation: {address}")

        handler = registry.get(kind).handler
        handler.run_undo(ctx, prior.attributes.get("destroy"), prior.triggers)
        state.remove(address)
        return True
