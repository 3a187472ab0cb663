"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, Discriminator, Field, Tag
from pydantic_settings import BaseSettings, SettingsConfigDict

from rest_provisioner.resources.declarative import DeclarativeResource
from rest_provisioner.resources.imperative import ImperativeResource


class ProviderConfig(BaseSettings):
    """REST provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``RP_`` prefix.  Constructor kwargs take precedence.

    ``token`` is typically provided via the ``RP_TOKEN`` environment
    variable rather than YAML to avoid committing secrets to version control.
    """

    model_config = SettingsConfigDict(env_prefix="RP_")

    host: str | None = None
    token: str | None = None
    token_header: str = "Authorization"
    token_scheme: str = "Bearer"
    timeout: float = Field(default=30.0, gt=0)
    verify_ssl: bool = True
    parallelism: int = Field(default=8, ge=1)


class KindConfig(BaseModel):
    """A declarative resource kind: where it lives and which fields it accepts."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=r"^[A-Za-z0-9_-]+$")
    collection: str = Field(min_length=1)
    fields: list[str] | None = None
    id_field: str = "name"
    update_method: Literal["PATCH", "PUT", "POST"] = "PATCH"
    mask_param: str | None = "updateMask"


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _resource_tag(v: Any) -> str | None:
    """Entries without an explicit ``type`` are declarative."""
    if isinstance(v, dict):
        return v.get("type", "declarative")
    return getattr(v, "type", None)


_ResourceEntry = Annotated[
    Annotated[DeclarativeResource, Tag("declarative")]
    | Annotated[ImperativeResource, Tag("imperative")],
    Discriminator(_resource_tag),
]


class Config(BaseModel):
    """Provisioning configuration; validates YAML structure directly."""

    provider: ProviderConfig
    state_path: Path = Path(".rp-state.json")
    kinds: Annotated[list[KindConfig], BeforeValidator(_none_to_list)] = []
    resources: Annotated[list[_ResourceEntry], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()
