"""State management for tracking reconciled resources."""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from rest_provisioner.engine.errors import StatePersistenceError

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes/digests. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's stored attributes."""
    payload = _canonical_json(attrs)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RemoteRecord(BaseModel):
    """A tracked remote resource in the state file.

    Attributes:
        address: Logical resource name (e.g., "welcome_agent")
        kind: Resource kind (e.g., "agent"), or "imperative"
        identifier: Opaque remote identifier (e.g., "projects/p/agents/123")
        attributes: Attribute values as last read from the remote system
        attributes_hash: SHA256 hash for change detection
        dependencies: Addresses this resource depends on
        triggers: Resolved trigger values used by the last imperative apply
        refreshed_at: When the attributes were last read remotely
        created_at: When the resource was created or imported
        updated_at: When the resource was last updated
    """

    address: str
    kind: str
    identifier: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    triggers: dict[str, Any] = Field(default_factory=dict)
    refreshed_at: datetime = Field(default_factory=_now)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    def set_attributes(self, attrs: dict[str, Any]) -> None:
        """Replace observed attributes and bump timestamps."""
        now = _now()
        self.attributes = attrs
        self.attributes_hash = compute_attributes_hash(attrs)
        self.refreshed_at = now
        self.updated_at = now


class State(BaseModel):
    """Terraform-style state file mapping logical names to remote records.

    Attributes:
        version: State file format version
        serial: Incremented on every persisted change
        lineage: Identity of this state history (stale-plan detection)
        resources: Mapping of logical names to remote records
    """

    version: int = 1
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, RemoteRecord] = Field(default_factory=dict)

    def get(self, address: str) -> RemoteRecord | None:
        return self.resources.get(address)

    def put(self, address: str, record: RemoteRecord) -> None:
        self.resources[address] = record

    def remove(self, address: str) -> RemoteRecord | None:
        return self.resources.pop(address, None)

    def all(self) -> dict[str, RemoteRecord]:
        return dict(self.resources)

    def save(self, path: Path) -> None:
        """Save state to a JSON file.

        - Writes atomically (temp file + rename)
        - Writes a `.backup` copy of the previous state when overwriting

        Raises:
            StatePersistenceError: If the file cannot be written.
        """
        data = self.model_dump(mode="json")
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"
        backup_path = Path(str(path) + ".backup")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Avoid TOCTOU race between exists() and read_bytes().
            with contextlib.suppress(FileNotFoundError):
                backup_path.write_bytes(path.read_bytes())

            fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
            tmp_file = Path(tmp_path)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                tmp_file.replace(path)
            finally:
                with contextlib.suppress(FileNotFoundError):
                    tmp_file.unlink()
        except OSError as exc:
            raise StatePersistenceError(f"Failed to write state {path}: {exc}") from exc
        logger.debug("State saved: serial=%d path=%s", self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        """Load state from a JSON file.

        Raises:
            StatePersistenceError: If the file is unreadable or malformed.
        """
        try:
            state = cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, PydanticValidationError) as exc:
            raise StatePersistenceError(f"Failed to load state {path}: {exc}") from exc
        logger.debug("State loaded from %s", path)
        return state

    @classmethod
    def load_or_create(cls, path: Path) -> "State":
        """Load existing state or create a new, empty one."""
        if path.exists():
            return cls.load(path)
        logger.debug("Created new state for %s", path)
        return cls()


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content (excluding timestamps).

    Used for stale-plan detection. Timestamps are left out so a refresh that
    only touches `refreshed_at` does not invalidate a saved plan.
    """
    resources = []
    for address, record in sorted(state.resources.items(), key=lambda kv: kv[0]):
        resources.append(
            {
                "address": address,
                "kind": record.kind,
                "identifier": record.identifier,
                "attributes_hash": record.attributes_hash,
                "dependencies": sorted(record.dependencies),
                "triggers": record.triggers,
            }
        )

    digestable = {
        "version": state.version,
        "lineage": state.lineage,
        "serial": state.serial,
        "resources": resources,
    }
    payload = _canonical_json(digestable)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
