"""Resource kind registry for handler dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rest_provisioner.engine.errors import UnknownResourceTypeError

if TYPE_CHECKING:
    from rest_provisioner.engine.handlers import ResourceHandler
    from rest_provisioner.resources.base import Resource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceTypeRegistration:
    kind: str
    model: type[Resource]
    handler: ResourceHandler[Any]


class ResourceTypeRegistry:
    """Registry mapping kind -> (model, handler).

    *fallback* serves tracked records whose kind is no longer configured, so
    they can still be described and deleted by identifier.
    """

    def __init__(self, *, fallback: ResourceHandler[Any] | None = None) -> None:
        self._registrations: dict[str, ResourceTypeRegistration] = {}
        self._fallback = fallback

    def register(self, kind: str, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        if not kind:
            raise ValueError("Resource kind must be a non-empty string")

        if kind in self._registrations:
            raise ValueError(f"Resource kind already registered: {kind}")

        self._registrations[kind] = ResourceTypeRegistration(
            kind=kind,
            model=model,
            handler=handler,
        )

    def get(self, kind: str) -> ResourceTypeRegistration:
        try:
            return self._registrations[kind]
        except KeyError as e:
            raise UnknownResourceTypeError(kind) from e

    def handler_for(self, kind: str) -> ResourceHandler[Any]:
        """Handler for a tracked record of *kind*, falling back when unregistered."""
        reg = self._registrations.get(kind)
        if reg is not None:
            return reg.handler
        if self._fallback is None:
            raise UnknownResourceTypeError(kind)
        logger.debug("Kind '%s' is not configured; using the fallback handler", kind)
        return self._fallback

    def externally_managed(self, kind: str) -> bool:
        """Whether resources of *kind* are never created or deleted."""
        reg = self._registrations.get(kind)
        return reg is not None and reg.model.externally_managed

    def kinds(self) -> list[str]:
        return list(self._registrations)
