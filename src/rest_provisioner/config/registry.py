"""Resource kind registry factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_provisioner.engine.imperative_handler import ImperativeHandler
from rest_provisioner.engine.registry import ResourceTypeRegistry
from rest_provisioner.engine.rest_handler import RestResourceHandler
from rest_provisioner.resources.declarative import DeclarativeResource
from rest_provisioner.resources.imperative import IMPERATIVE_KIND, ImperativeResource

if TYPE_CHECKING:
    from rest_provisioner.config.schema import KindConfig


def build_registry(kinds: list[KindConfig]) -> ResourceTypeRegistry:
    """Create a fresh registry with the imperative kind plus every configured kind."""
    # Tracked records of kinds dropped from the config are still described and
    # deleted through their full identifier.
    registry = ResourceTypeRegistry(fallback=RestResourceHandler(""))

    registry.register(IMPERATIVE_KIND, ImperativeResource, ImperativeHandler())

    for k in kinds:
        handler = RestResourceHandler(
            k.collection,
            fields=k.fields,
            id_field=k.id_field,
            update_method=k.update_method,
            mask_param=k.mask_param,
        )
        registry.register(k.name, DeclarativeResource, handler)

    return registry
