"""Plan/apply engine."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from rest_provisioner import __version__
from rest_provisioner.core.state import RemoteRecord, State, compute_state_digest
from rest_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DuplicateAddressError,
    RemoteCallError,
    ResourceNotFoundError,
    SchemaUnsupportedError,
    StalePlanError,
    StatePersistenceError,
    TemplateError,
    ValidationError,
)
from rest_provisioner.engine.graph import DependencyGraph
from rest_provisioner.engine.handlers import EngineContext
from rest_provisioner.engine.lock import StateLock
from rest_provisioner.engine.operations import (
    BarrierOperation,
    CreateOperation,
    DeleteOperation,
    ImperativeApplyOperation,
    ImperativeUndoOperation,
    UpdateOperation,
)
from rest_provisioner.engine.references import (
    identifier_refs,
    is_sub_resource,
    placeholders,
    resolve_path,
    resource_refs,
    state_lookup,
    try_render,
)
from rest_provisioner.engine.types import (
    Action,
    ApplyResult,
    DriftDetected,
    Plan,
    PlanMetadata,
    ResourceChange,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence
    from pathlib import Path

    from rest_provisioner.core.provider import RestProvider
    from rest_provisioner.engine.operations import Operation
    from rest_provisioner.engine.registry import ResourceTypeRegistry
    from rest_provisioner.resources.base import Resource


def _values_differ(desired: Any, prior: Any) -> bool:
    """Check whether a desired value differs from the observed value.

    For dict values, only keys present in *desired* are compared: keys the
    remote system adds on its own are not drift. Everything else uses strict
    equality.
    """
    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(_values_differ(v, prior.get(k)) for k, v in desired.items())
    return desired != prior


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _desired_dump(resource: Resource) -> dict[str, Any]:
    return resource.model_dump(exclude_none=True, exclude={"address"})


def _compute_config_digest(resources: Sequence[Resource]) -> str:
    items: list[dict[str, Any]] = []
    for r in resources:
        planned = _desired_dump(r)
        planned.pop("depends_on", None)
        items.append({"address": r.address, "kind": r.resource_type, "planned": planned})
    items.sort(key=lambda x: x["address"])
    return _sha256_hex(_canonical_json(items))


class ReconcileEngine:
    """Terraform-like plan/apply engine for resources behind a REST API."""

    def __init__(
        self,
        *,
        provider: RestProvider,
        state_path: Path,
        registry: ResourceTypeRegistry,
        timeout: float = 30.0,
        parallelism: int = 8,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self._provider = provider
        self._state_path = state_path
        self._registry = registry
        self._timeout = timeout
        self._parallelism = parallelism

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider, timeout=self._timeout)

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> State:
        if self._state_path.exists():
            return self._load_state()
        # If no state exists, bootstrap from the plan metadata (saved-plan semantics).
        return State(lineage=plan.metadata.state_lineage, serial=plan.metadata.state_serial)

    # ------------------------------------------------------------------
    # Remote reads
    # ------------------------------------------------------------------

    def _describe_all(self, state: State) -> dict[str, dict[str, Any] | None]:
        """Describe every tracked declarative record concurrently.

        All queries are joined before returning. ``None`` marks a record the
        remote system no longer knows (NotFound).
        """
        ctx = self._ctx()
        targets: list[tuple[str, RemoteRecord]] = []
        for address, record in state.resources.items():
            if not self._registry.externally_managed(record.kind):
                targets.append((address, record))
        if not targets:
            return {}

        logger.debug("Describing %d resources", len(targets))
        results: dict[str, dict[str, Any] | None] = {}
        failures: list[tuple[str, RemoteCallError]] = []
        workers = min(self._parallelism, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="describe") as pool:
            futures = {
                address: pool.submit(
                    self._registry.handler_for(record.kind).describe, ctx, record.identifier
                )
                for address, record in targets
            }
            for address, future in futures.items():
                try:
                    results[address] = future.result()
                except RemoteCallError as exc:
                    failures.append((address, exc))

        if failures:
            address, exc = failures[0]
            raise RemoteCallError(f"Describe failed for '{address}': {exc}") from exc
        return results

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from remote")
        changed = False
        for address, attrs in self._describe_all(state).items():
            record = state.resources[address]
            if attrs is None:
                logger.warning("Drift: %s no longer exists remotely", address)
                state.remove(address)
                changed = True
                continue
            if attrs != record.attributes:
                record.set_attributes(attrs)
                changed = True
        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from the remote API. Returns (pre_refresh, post_refresh)."""
        with StateLock(self._state_path):
            state = self._load_state()
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                state.serial += 1
                state.save(self._state_path)
            return snapshot, state

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _handler_refs(self, resource: Resource) -> list[str]:
        handler = self._registry.get(resource.resource_type).handler
        return resource_refs(handler.template_values())

    def _validate(self, desired_by_addr: dict[str, Resource], state: State) -> None:
        ctx = self._ctx()
        errors: list[str] = []
        unsupported: dict[str, list[str]] = {}
        known = set(desired_by_addr) | set(state.resources)

        for r in desired_by_addr.values():
            handler = self._registry.get(r.resource_type).handler
            errors.extend(handler.validate(ctx, r))

            fields = handler.unsupported_fields(r)
            if fields:
                unsupported[r.address] = fields

            errors.extend(
                f"Resource '{r.address}' depends on unknown resource '{dep}'"
                for dep in r.depends_on
                if dep not in known
            )
            errors.extend(
                f"Resource '{r.address}' references undeclared resource '{ref}'"
                for ref in [*r.reference_names(), *self._handler_refs(r)]
                if ref != r.address and ref not in desired_by_addr
            )

            prior = state.get(r.address)
            if prior is not None and prior.kind != r.resource_type:
                errors.append(
                    f"Resource '{r.address}' changed kind from '{prior.kind}' to "
                    f"'{r.resource_type}'; remove it first, then declare it again"
                )

        if errors:
            raise ValidationError(errors)
        if unsupported:
            raise SchemaUnsupportedError(unsupported)

    def _resolve_deps(
        self, desired_by_addr: dict[str, Resource], state: State
    ) -> dict[str, list[str]]:
        """Build dependency map: explicit ``depends_on`` + inferred edges.

        Inferred edges come from ``${name...}`` placeholders (in attributes,
        triggers, calls and kind-level templates) and from payload values that
        contain another tracked resource's remote identifier.

        Returns addr -> full dep list without mutating the Resource objects.
        """
        identifiers = {
            addr: record.identifier
            for addr, record in state.resources.items()
            if addr in desired_by_addr
        }
        dep_map: dict[str, list[str]] = {}
        for addr, r in desired_by_addr.items():
            deps = list(r.depends_on)
            inferred = [
                *r.reference_names(),
                *self._handler_refs(r),
                *identifier_refs(r.template_values(), identifiers),
            ]
            for ref in inferred:
                if ref != addr and ref not in deps:
                    deps.append(ref)
            dep_map[addr] = deps
        return dep_map

    @staticmethod
    def _plan_lookup(
        state: State, pending: dict[str, dict[str, Any] | None]
    ) -> Callable[[str], Any]:
        """State lookup that sees the planned outcome of earlier changes.

        *pending* maps an address about to change to its planned attributes:
        ``None`` when the whole resource is only known after apply (create,
        imperative re-apply), otherwise the fields an update will write.
        """
        base = state_lookup(state)

        def _lookup(expr: str) -> Any:
            if "." not in expr:
                return base(expr)
            name, path = expr.split(".", 1)
            if name not in pending:
                return base(expr)
            planned = pending[name]
            if planned is None:
                raise TemplateError(f"'${{{expr}}}' is known after apply")
            segments = path.split(".")
            if path == "id" or segments[0] not in planned:
                return base(expr)
            value = planned[segments[0]]
            if placeholders(value):
                raise TemplateError(f"'${{{expr}}}' is known after apply")
            try:
                return resolve_path(value, segments[1:])
            except KeyError as exc:
                raise TemplateError(f"'${{{expr}}}' is known after apply") from exc

        return _lookup

    def _classify_declarative(
        self,
        resource: Any,
        desired_dump: dict[str, Any],
        prior: RemoteRecord | None,
        observed: dict[str, Any] | None,
        lookup: Callable[[str], Any],
    ) -> ResourceChange:
        addr = resource.address
        planned: dict[str, Any] = {}
        unknown: set[str] = set()
        for key, value in resource.attributes.items():
            planned[key], complete = try_render(value, lookup)
            if not complete:
                unknown.add(key)

        if prior is None or observed is None:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                kind=resource.resource_type,
                action=Action.CREATE,
                desired=desired_dump,
                planned=planned,
                drifted=prior is not None,
            )

        diff = {
            k: {"from": observed.get(k), "to": v}
            for k, v in planned.items()
            if k in unknown or _values_differ(v, observed.get(k))
        }
        if not diff:
            logger.debug("Classified %s as no-op", addr)
            return ResourceChange(
                address=addr,
                kind=resource.resource_type,
                action=Action.NOOP,
                desired=desired_dump,
                prior=dict(observed),
                planned=planned,
            )

        mask = list(diff)
        logger.debug("Classified %s as update (mask=%s)", addr, ",".join(mask))
        return ResourceChange(
            address=addr,
            kind=resource.resource_type,
            action=Action.UPDATE,
            desired=desired_dump,
            prior=dict(observed),
            planned={k: planned[k] for k in mask},
            diff=diff,
            field_mask=mask,
        )

    def _classify_imperative(
        self,
        resource: Any,
        desired_dump: dict[str, Any],
        prior: RemoteRecord | None,
        lookup: Callable[[str], Any],
    ) -> ResourceChange:
        addr = resource.address
        triggers, complete = try_render(dict(resource.triggers), lookup)

        if prior is None:
            logger.debug("Classified %s as imperative apply", addr)
            return ResourceChange(
                address=addr,
                kind=resource.resource_type,
                action=Action.IMPERATIVE_APPLY,
                desired=desired_dump,
                planned={"triggers": triggers},
                triggers=triggers,
            )

        if complete and triggers == prior.triggers:
            return ResourceChange(
                address=addr,
                kind=resource.resource_type,
                action=Action.NOOP,
                desired=desired_dump,
                prior={"triggers": dict(prior.triggers)},
                triggers=dict(prior.triggers),
            )

        # Trigger values changed: undo with the recorded values, then re-apply.
        keys = list(dict.fromkeys([*prior.triggers, *triggers]))
        diff = {
            k: {"from": prior.triggers.get(k), "to": triggers.get(k)}
            for k in keys
            if prior.triggers.get(k) != triggers.get(k)
        }
        logger.debug("Classified %s as imperative re-apply", addr)
        return ResourceChange(
            address=addr,
            kind=resource.resource_type,
            action=Action.IMPERATIVE_APPLY,
            desired=desired_dump,
            prior={"triggers": dict(prior.triggers)},
            planned={"triggers": triggers},
            diff=diff or None,
            triggers=triggers,
        )

    def _plan_deletes(
        self,
        state: State,
        addrs: set[str],
        observed: dict[str, dict[str, Any] | None],
        deps: dict[str, list[str]],
    ) -> list[ResourceChange]:
        """Plan delete/undo changes for the given addresses in reverse dependency order."""
        changes: list[ResourceChange] = []
        for addr in self._delete_order(state, addrs, deps):
            record = state.resources[addr]
            if self._registry.externally_managed(record.kind):
                changes.append(
                    ResourceChange(
                        address=addr,
                        kind=record.kind,
                        action=Action.IMPERATIVE_UNDO,
                        prior={"triggers": dict(record.triggers)},
                        triggers=dict(record.triggers),
                    )
                )
                continue
            drifted = addr in observed and observed[addr] is None
            changes.append(
                ResourceChange(
                    address=addr,
                    kind=record.kind,
                    action=Action.DELETE,
                    prior=dict(record.attributes),
                    drifted=drifted,
                )
            )
        return changes

    @staticmethod
    def _tracked_dependencies(
        state: State, config_deps: dict[str, list[str]]
    ) -> dict[str, list[str]]:
        """Current dependencies of every tracked record.

        Declared resources use their freshly resolved dependencies, others the
        recorded ones. A record nested below another record's identifier
        always depends on it.
        """
        deps: dict[str, list[str]] = {}
        for addr, record in state.resources.items():
            current = list(config_deps.get(addr, record.dependencies))
            for other, parent in state.resources.items():
                if (
                    other != addr
                    and other not in current
                    and is_sub_resource(record.identifier, parent.identifier)
                ):
                    current.append(other)
            deps[addr] = current
        return deps

    @staticmethod
    def _delete_order(
        state: State, delete_set: set[str], deps: dict[str, list[str]]
    ) -> list[str]:
        nodes = [addr for addr in state.resources if addr in delete_set]
        return DependencyGraph(nodes, deps).reverse_topological_order()

    def plan(
        self, resources: Sequence[Resource], *, destroy: bool = False, refresh: bool = True
    ) -> Plan:
        """Compute the actions converging remote state toward *resources*.

        Planning is read-only: it never writes state or mutates the remote
        system. With ``destroy=True`` every tracked resource is planned for
        deletion (or undo, for imperative resources).
        """
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(resources), destroy, refresh
        )
        with StateLock(self._state_path):
            state = self._load_state()

        desired_by_addr: dict[str, Resource] = {}
        if not destroy:
            for r in resources:
                if r.address in desired_by_addr:
                    raise DuplicateAddressError(r.address)
                self._registry.get(r.resource_type)
                desired_by_addr[r.address] = r
            self._validate(desired_by_addr, state)

        # Order (and detect cycles) before any remote call.
        dep_map = self._resolve_deps(desired_by_addr, state)
        desired_addrs = list(desired_by_addr)
        order = DependencyGraph(desired_addrs, dep_map).topological_order()
        if destroy:
            # Teardown still honours the dependencies the config declares.
            registered = set(self._registry.kinds())
            declared = {
                r.address: r
                for r in resources
                if r.address in state.resources and r.resource_type in registered
            }
            config_deps = self._resolve_deps(declared, state)
        else:
            config_deps = dep_map
        tracked_deps = self._tracked_dependencies(state, config_deps)
        delete_set = set(state.resources) - set(desired_addrs)
        self._delete_order(state, delete_set, tracked_deps)

        if refresh:
            observed = self._describe_all(state)
        else:
            observed = {
                addr: dict(record.attributes)
                for addr, record in state.resources.items()
                if not self._registry.externally_managed(record.kind)
            }

        drift = [
            DriftDetected(
                address=addr,
                kind=state.resources[addr].kind,
                reason="resource no longer exists remotely",
            )
            for addr, attrs in observed.items()
            if attrs is None
        ]
        for d in drift:
            logger.warning("Drift detected on %s: %s", d.address, d.reason)

        changes: list[ResourceChange] = []
        pending: dict[str, dict[str, Any] | None] = {}
        for addr in order:
            resource = desired_by_addr[addr]
            desired_dump = _desired_dump(resource)
            desired_dump["depends_on"] = dep_map[addr]
            lookup = self._plan_lookup(state, pending)
            prior = state.get(addr)
            if resource.externally_managed:
                change = self._classify_imperative(resource, desired_dump, prior, lookup)
            else:
                change = self._classify_declarative(
                    resource, desired_dump, prior, observed.get(addr), lookup
                )
            if change.action == Action.CREATE or (
                change.action == Action.IMPERATIVE_APPLY and prior is not None
            ):
                pending[addr] = None
            elif change.action == Action.UPDATE:
                pending[addr] = dict(change.planned or {})
            changes.append(change)
        changes.extend(self._plan_deletes(state, delete_set, observed, tracked_deps))

        metadata = PlanMetadata(
            created_at=datetime.now(UTC),
            destroy=destroy,
            refresh=refresh,
            state_lineage=state.lineage,
            state_serial=state.serial,
            state_digest=compute_state_digest(state),
            config_digest=_compute_config_digest([] if destroy else resources),
            engine_version=__version__,
        )
        plan = Plan(metadata=metadata, changes=changes, drift=drift)
        logger.info("Plan: %s", plan.summary())
        return plan

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_resource(self, name: str, kind: str, identifier: str) -> RemoteRecord:
        """Track an existing remote resource under *name* without creating it."""
        if not _NAME_RE.match(name):
            raise ValidationError([f"Invalid resource name '{name}'"])
        reg = self._registry.get(kind)
        if reg.model.externally_managed:
            raise ValidationError([f"Resources of kind '{kind}' cannot be imported"])

        with StateLock(self._state_path):
            state = self._load_state()
            if state.get(name) is not None:
                raise ValidationError([f"Resource '{name}' is already tracked in state"])

            attrs = reg.handler.describe(self._ctx(), identifier)
            if attrs is None:
                raise ResourceNotFoundError(identifier)

            record = RemoteRecord(address=name, kind=kind, identifier=identifier)
            record.set_attributes(attrs)
            state.put(name, record)
            state.serial += 1
            state.save(self._state_path)
            logger.info("Imported %s (%s) as %s", identifier, kind, name)
            return record

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def _operation_order(self, plan: Plan, state: State) -> list[Operation]:
        """Compute a deterministic operation order using an operation graph."""
        ops = self._build_apply_operations(plan, state)
        dep_map = {k: op.deps for k, op in ops.items()}
        order = DependencyGraph(ops.keys(), dep_map).topological_order()
        return [ops[k] for k in order]

    def _build_apply_operations(self, plan: Plan, state: State) -> dict[str, Operation]:
        ops: dict[str, Operation] = {}
        create_update_set: set[str] = set()
        delete_set: set[str] = set()

        for c in plan.changes:
            op: Operation
            if c.action in (Action.CREATE, Action.DELETE) and self._registry.externally_managed(
                c.kind
            ):
                raise ValueError(
                    f"{c.address} is externally managed and cannot be {c.action.value}d"
                )
            match c.action:
                case Action.NOOP:
                    continue
                case Action.CREATE:
                    op = CreateOperation(key=c.address, change=c)
                    create_update_set.add(c.address)
                case Action.UPDATE:
                    op = UpdateOperation(key=c.address, change=c)
                    create_update_set.add(c.address)
                case Action.IMPERATIVE_APPLY:
                    op = ImperativeApplyOperation(key=c.address, change=c)
                    create_update_set.add(c.address)
                    if state.get(c.address) is not None:
                        undo_key = f"{c.address}#replace"
                        ops[undo_key] = ImperativeUndoOperation(
                            key=undo_key, change=None, address=c.address, kind=c.kind
                        )
                        op.deps.append(undo_key)
                case Action.DELETE:
                    op = DeleteOperation(key=c.address, change=c)
                    delete_set.add(c.address)
                case Action.IMPERATIVE_UNDO:
                    op = ImperativeUndoOperation(key=c.address, change=c)
                    delete_set.add(c.address)
                case _:
                    raise ValueError(f"Unknown action: {c.action}")

            if op.key in ops:
                raise ValueError(f"Duplicate operation key in plan: {op.key}")
            ops[op.key] = op

        # create/update/apply: dependencies must run before dependents
        for addr in create_update_set:
            op = ops[addr]
            assert op.change is not None
            if op.change.desired is None:
                raise ValueError(f"Missing desired config for create/update: {addr}")
            deps = op.change.desired.get("depends_on") or []
            if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
                raise ValueError(f"Invalid depends_on for {addr}: expected list[str]")
            op.deps.extend([d for d in deps if d in create_update_set])

        # deletes/undos: the plan already lists dependents before their dependencies
        delete_keys = [c.address for c in plan.changes if c.address in delete_set]
        for addr in delete_keys:
            if state.get(addr) is None:
                raise ValueError(f"Missing state for delete operation: {addr}")
        for earlier, later in zip(delete_keys, delete_keys[1:], strict=False):
            ops[later].deps.append(earlier)

        # Ensure create/update runs before deletes (Terraform-like default ordering).
        if create_update_set and delete_set:
            barrier_key = "__engine__.apply_barrier"
            if barrier_key in ops:
                raise ValueError(f"Barrier operation key conflicts with plan: {barrier_key}")

            ops[barrier_key] = BarrierOperation(key=barrier_key, deps=sorted(create_update_set))
            for addr in delete_set:
                ops[addr].deps.append(barrier_key)

        return ops

    @staticmethod
    def _sync_dependencies(plan: Plan, state: State) -> bool:
        """Record the planned dependencies of unchanged resources."""
        changed = False
        for c in plan.changes:
            if c.action != Action.NOOP or c.desired is None:
                continue
            record = state.get(c.address)
            deps = c.desired.get("depends_on") or []
            if record is not None and record.dependencies != deps:
                logger.debug("Recording dependencies of %s: %s", c.address, deps)
                record.dependencies = list(deps)
                changed = True
        return changed

    def apply(
        self,
        plan: Plan,
        *,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        """Execute *plan* one operation at a time, stopping on the first failure.

        State is persisted after every successful operation, so on failure or
        cancellation it reflects exactly the operations that completed.
        *cancel* is checked between operations, never mid-operation.
        """
        with StateLock(self._state_path):
            state = self._load_state_for_apply(plan)

            # Stale plan detection
            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            ctx = self._ctx()
            applied: list[ResourceChange] = []
            ordered_ops = self._operation_order(plan, state)
            if self._sync_dependencies(plan, state):
                state.serial += 1
                state.save(self._state_path)
            logger.info("Applying %d operations", len(ordered_ops))

            op: Operation | None = None
            try:
                for op in ordered_ops:
                    if cancel is not None and cancel.is_set():
                        logger.info("Apply canceled before %s", op.key)
                        raise ApplyCanceled("Apply canceled", applied=applied)
                    logger.debug("Applying %s: %s", op.key, type(op).__name__)
                    if progress and op.change is not None:
                        progress(op.change, "start")
                    did_change = op.run(ctx=ctx, state=state, registry=self._registry)
                    if not did_change:
                        continue

                    state.serial += 1
                    state.save(self._state_path)
                    if op.change is not None:
                        applied.append(op.change)
                        if progress:
                            progress(op.change, "done")
            except (ApplyCanceled, StatePersistenceError):
                raise
            except KeyboardInterrupt as e:  # pragma: no cover
                raise ApplyCanceled("Apply canceled", applied=applied) from e
            except Exception as e:
                assert op is not None
                if op.change is not None:
                    address, action = op.change.address, op.change.action.value
                else:
                    address = getattr(op, "address", "") or op.key
                    action = Action.IMPERATIVE_UNDO.value
                logger.error("Apply failed on %s (%s): %s", address, action, e)
                raise ApplyError(
                    applied=applied, address=address, action=action, message=str(e)
                ) from e

            logger.info("Apply complete: %d changes", len(applied))
            return ApplyResult(applied=applied)
