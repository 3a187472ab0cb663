"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from rest_provisioner.core.provider import RestProvider
    from rest_provisioner.core.state import RemoteRecord
    from rest_provisioner.resources.base import Resource

R = TypeVar("R", bound="Resource")


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers.

    ``timeout`` bounds every remote call made on behalf of the engine.
    """

    provider: RestProvider
    timeout: float


@dataclass(frozen=True)
class Observed:
    """Result of a create/describe: remote identifier plus observed attributes."""

    identifier: str
    attributes: dict[str, Any]


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers are responsible for translating resources into provider API
    calls. Subclass and override the CRUD methods. Validation is optional.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Single-resource validation. No cross-resource context needed.

        Return list of error messages (empty = valid).
        """
        _ = ctx, desired
        return []

    def unsupported_fields(self, desired: R) -> list[str]:
        """Desired attributes with no declarative representation."""
        _ = desired
        return []

    def describe(self, ctx: EngineContext, identifier: str) -> dict[str, Any] | None:
        """Read the resource. Return None if it no longer exists (NotFound)."""
        raise NotImplementedError

    def template_values(self) -> Any:
        """Handler-level templates (e.g. a collection path) that may reference resources."""
        return None

    def create(
        self,
        ctx: EngineContext,
        desired: R,
        payload: dict[str, Any],
        *,
        lookup: Callable[[str], Any],
    ) -> Observed:
        """Create the resource from the rendered *payload*.

        *lookup* resolves placeholders in handler-level templates.
        """
        raise NotImplementedError

    def update(
        self, ctx: EngineContext, prior: RemoteRecord, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """Send only the changed fields in *payload*. Return echoed attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: RemoteRecord) -> None:
        """Delete the resource."""
        raise NotImplementedError
