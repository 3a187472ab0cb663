"""Handler for imperative escape-hatch resources."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rest_provisioner.engine.errors import TemplateError
from rest_provisioner.engine.handlers import ResourceHandler
from rest_provisioner.engine.references import render, resource_refs, trigger_refs
from rest_provisioner.resources.imperative import ImperativeCall

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from rest_provisioner.engine.handlers import EngineContext
    from rest_provisioner.resources.imperative import ImperativeResource

logger = logging.getLogger(__name__)


def _with_triggers(
    triggers: Mapping[str, Any], lookup: Callable[[str], Any] | None
) -> Callable[[str], Any]:
    def _lookup(expr: str) -> Any:
        if "." not in expr:
            if expr not in triggers:
                raise TemplateError(f"Unknown trigger value '${{{expr}}}'")
            return triggers[expr]
        if lookup is None:
            raise TemplateError(
                f"Resource reference '${{{expr}}}' is not allowed here; use a trigger value"
            )
        return lookup(expr)

    return _lookup


class ImperativeHandler(ResourceHandler["ImperativeResource"]):
    """Runs the ``apply``/``destroy`` calls of imperative resources.

    Imperative targets are externally managed: there is nothing to describe,
    create or delete. The engine records the resolved trigger values and the
    ``destroy`` call at apply time so teardown undoes exactly what was applied.
    """

    def validate(self, ctx: EngineContext, desired: ImperativeResource) -> list[str]:
        _ = ctx
        errors: list[str] = []
        known = set(desired.triggers)
        for label, call in (("apply", desired.apply), ("destroy", desired.destroy)):
            if call is None:
                continue
            values = call.template_values()
            missing = [t for t in trigger_refs(values) if t not in known]
            if missing:
                errors.append(
                    f"Resource '{desired.address}' {label} call uses undefined "
                    f"trigger(s): {', '.join(missing)}"
                )
            if label == "destroy" and resource_refs(values):
                errors.append(
                    f"Resource '{desired.address}' destroy call may only use trigger "
                    f"values, found: {', '.join(resource_refs(values))}"
                )
        if trigger_refs(desired.triggers):
            errors.append(f"Resource '{desired.address}' triggers may not reference triggers")
        return errors

    def resolve_triggers(
        self, desired: ImperativeResource, lookup: Callable[[str], Any]
    ) -> dict[str, Any]:
        return render(dict(desired.triggers), lookup)

    def _run(
        self,
        ctx: EngineContext,
        call: ImperativeCall,
        lookup: Callable[[str], Any],
    ) -> tuple[str, Any]:
        path = render(call.path, lookup)
        headers = render(dict(call.headers), lookup)
        body = render(call.body, lookup)
        logger.info("Imperative call: %s %s", call.method, path)
        result = ctx.provider.call(
            call.method,
            path,
            timeout=ctx.timeout,
            headers=headers or None,
            body=body,
            expected_status=list(call.expected_status),
        )
        return path, result

    def run_apply(
        self,
        ctx: EngineContext,
        desired: ImperativeResource,
        triggers: Mapping[str, Any],
        *,
        lookup: Callable[[str], Any],
    ) -> str:
        """Run the apply call. Returns the rendered call path."""
        path, _ = self._run(ctx, desired.apply, _with_triggers(triggers, lookup))
        return path

    @staticmethod
    def record_destroy(desired: ImperativeResource) -> dict[str, Any] | None:
        """Serialized destroy call kept in state for teardown."""
        if desired.destroy is None:
            return None
        return desired.destroy.model_dump(mode="json")

    def run_undo(
        self,
        ctx: EngineContext,
        recorded: dict[str, Any] | None,
        triggers: Mapping[str, Any],
    ) -> None:
        """Run the recorded destroy call using only the recorded triggers."""
        if recorded is None:
            logger.debug("No destroy call recorded; forgetting resource")
            return
        call = ImperativeCall.model_validate(recorded)
        self._run(ctx, call, _with_triggers(triggers, None))
