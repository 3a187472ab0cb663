"""Base resource class."""

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from rest_provisioner.engine.references import resource_refs


class Resource(BaseModel):
    """Base class for all desired-state resources.

    Resources are pure data - they define the desired state.
    Handlers know how to reconcile them against the remote API.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    externally_managed: ClassVar[bool] = False

    name: str = Field(pattern=r"^[A-Za-z0-9_-]+$")
    description: str = ""

    # Lifecycle
    depends_on: list[str] = []

    @property
    def resource_type(self) -> str:
        """Kind used for handler dispatch."""
        raise NotImplementedError

    def template_values(self) -> Any:
        """Values that may carry ``${...}`` placeholders."""
        return None

    def reference_names(self) -> list[str]:
        """Names of other resources referenced via ``${name.path}`` placeholders."""
        return [n for n in resource_refs(self.template_values()) if n != self.name]

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource: its logical name."""
        return self.name
