"""Generic handler for declarative resources living in a REST collection."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rest_provisioner.engine.errors import RemoteCallError
from rest_provisioner.engine.handlers import Observed, ResourceHandler
from rest_provisioner.engine.references import render

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rest_provisioner.core.state import RemoteRecord
    from rest_provisioner.engine.handlers import EngineContext
    from rest_provisioner.resources.declarative import DeclarativeResource

logger = logging.getLogger(__name__)


def _get_path(data: dict[str, Any], path: str) -> Any:
    current: Any = data
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return None
        current = current[segment]
    return current


class RestResourceHandler(ResourceHandler["DeclarativeResource"]):
    """CRUD handler for one kind of REST resource.

    - create: ``POST {collection}`` with the attributes as body; the remote
      identifier is read from ``id_field`` in the response
    - describe: ``GET {identifier}``
    - update: ``{update_method} {identifier}?{mask_param}=a,b`` with only the
      changed fields
    - delete: ``DELETE {identifier}``
    """

    def __init__(
        self,
        collection: str,
        *,
        fields: Iterable[str] | None = None,
        id_field: str = "name",
        update_method: str = "PATCH",
        mask_param: str | None = "updateMask",
    ) -> None:
        self.collection = collection
        self.fields = frozenset(fields) if fields is not None else None
        self.id_field = id_field
        self.update_method = update_method
        self.mask_param = mask_param

    def template_values(self) -> Any:
        return self.collection

    def unsupported_fields(self, desired: DeclarativeResource) -> list[str]:
        if self.fields is None:
            return []
        return [k for k in desired.attributes if k not in self.fields]

    def describe(self, ctx: EngineContext, identifier: str) -> dict[str, Any] | None:
        return ctx.provider.describe(identifier, timeout=ctx.timeout)

    def create(
        self,
        ctx: EngineContext,
        desired: DeclarativeResource,
        payload: dict[str, Any],
        *,
        lookup: Callable[[str], Any],
    ) -> Observed:
        collection = render(self.collection, lookup)
        data = ctx.provider.create(collection, payload, timeout=ctx.timeout)
        identifier = _get_path(data, self.id_field)
        if not isinstance(identifier, str) or not identifier:
            raise RemoteCallError(
                f"Create response for '{desired.name}' carries no '{self.id_field}' identifier",
                method="POST",
                url=collection,
            )
        logger.debug("Created %s as %s", desired.name, identifier)
        return Observed(identifier=identifier, attributes=data)

    def update(
        self, ctx: EngineContext, prior: RemoteRecord, payload: dict[str, Any]
    ) -> dict[str, Any]:
        return ctx.provider.update(
            prior.identifier,
            payload,
            field_mask=list(payload),
            timeout=ctx.timeout,
            method=self.update_method,
            mask_param=self.mask_param,
        )

    def delete(self, ctx: EngineContext, prior: RemoteRecord) -> None:
        ctx.provider.delete(prior.identifier, timeout=ctx.timeout)
