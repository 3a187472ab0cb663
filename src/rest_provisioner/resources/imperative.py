"""Imperative escape-hatch resource model."""

from __future__ import annotations

from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rest_provisioner.resources.base import Resource

IMPERATIVE_KIND = "imperative"

_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})


class ImperativeCall(BaseModel):
    """A raw HTTP call against the provider API.

    ``path``, ``headers`` and ``body`` are templates. The call succeeds when
    the response status is one of ``expected_status``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: str = "POST"
    path: str = Field(min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    expected_status: list[int] = Field(default_factory=lambda: [200], min_length=1)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, v: str) -> str:
        method = v.upper()
        if method not in _METHODS:
            raise ValueError(f"unsupported HTTP method {v!r}")
        return method

    def template_values(self) -> dict[str, Any]:
        return {"path": self.path, "headers": self.headers, "body": self.body}


class ImperativeResource(Resource):
    """A setting the declarative schema cannot express.

    The target is externally managed (typically a default sub-resource the
    remote system creates on its own), so it is never created or deleted.
    Instead ``apply`` runs with resolved ``triggers`` substituted, and
    ``destroy`` undoes it on teardown using the trigger values recorded at
    apply time.
    """

    externally_managed: ClassVar[bool] = True

    type: Literal["imperative"] = "imperative"
    triggers: dict[str, Any] = Field(default_factory=dict)
    apply: ImperativeCall
    destroy: ImperativeCall | None = None

    @property
    def resource_type(self) -> str:
        return IMPERATIVE_KIND

    def template_values(self) -> Any:
        return {
            "triggers": self.triggers,
            "apply": self.apply.template_values(),
            "destroy": self.destroy.template_values() if self.destroy else None,
        }
