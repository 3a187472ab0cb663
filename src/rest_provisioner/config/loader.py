"""YAML configuration file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor

from rest_provisioner.config.schema import Config
from rest_provisioner.resources.imperative import IMPERATIVE_KIND

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from rest_provisioner.resources.base import Resource


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "host": "RP_HOST",
    "token": "RP_TOKEN",
    "token_header": "RP_TOKEN_HEADER",
    "token_scheme": "RP_TOKEN_SCHEME",
    "timeout": "RP_TIMEOUT",
    "verify_ssl": "RP_VERIFY_SSL",
    "parallelism": "RP_PARALLELISM",
}

_PROVIDER_BOOL_FIELDS: frozenset[str] = frozenset({"verify_ssl"})


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve provider fields from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved: dict[str, Any] = {}
    for field, env_key in _PROVIDER_ENV_MAP.items():
        val = raw_provider.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            if field in _PROVIDER_BOOL_FIELDS and isinstance(val, str):
                if val.lower() not in SafeConstructor.bool_values:
                    raise ConfigError(f"Invalid boolean for {env_key}: {val!r}")
                val = SafeConstructor.bool_values[val.lower()]
            resolved[field] = val

    return resolved


def _validate_unique_names(resources: list[Resource]) -> list[str]:
    """Check that no two resources share the same logical name."""
    seen: set[str] = set()
    errors: list[str] = []
    for r in resources:
        if r.name in seen:
            errors.append(f"Duplicate resource name '{r.name}'")
        seen.add(r.name)
    return errors


def _validate_kinds(config: Config) -> list[str]:
    """Check kind declarations and that every declarative resource uses one."""
    errors: list[str] = []
    declared: set[str] = set()
    for k in config.kinds:
        if k.name == IMPERATIVE_KIND:
            errors.append(f"Kind name '{IMPERATIVE_KIND}' is reserved")
        elif k.name in declared:
            errors.append(f"Duplicate kind '{k.name}'")
        declared.add(k.name)
    for r in config.resources:
        if r.resource_type != IMPERATIVE_KIND and r.resource_type not in declared:
            errors.append(f"Resource '{r.name}' uses undeclared kind '{r.resource_type}'")
    return errors


def load_config(path: Path | str) -> Config:
    """Load a YAML configuration file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    errors = _validate_unique_names(config.resources) + _validate_kinds(config)
    if errors:
        raise ConfigError("\n".join(errors))

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
