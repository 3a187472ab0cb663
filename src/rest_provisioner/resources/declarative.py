"""Declarative resource model."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from rest_provisioner.resources.base import Resource


class DeclarativeResource(Resource):
    """A resource fully described by its attributes.

    ``kind`` selects the registered collection the resource lives in;
    ``attributes`` is the request body sent on create and the source of the
    field mask sent on update.
    """

    type: Literal["declarative"] = "declarative"
    kind: str = Field(min_length=1)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def resource_type(self) -> str:
        return self.kind

    def template_values(self) -> Any:
        return self.attributes
