"""Engine error types."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource kind has no registration/handler."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown resource kind: {kind}")
        self.kind = kind


class DuplicateAddressError(EngineError):
    """Raised when multiple desired resources share the same name."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource name: {address}")
        self.address = address


class CyclicDependencyError(EngineError):
    """Raised when dependencies contain a cycle.

    ``cycle`` lists the addresses along the cycle, starting and ending with
    the same address (e.g. ``["a", "b", "a"]``).
    """

    def __init__(self, cycle: list[str]) -> None:
        msg = "Dependency cycle detected"
        if cycle:
            msg += f": {' -> '.join(cycle)}"
        super().__init__(msg)
        self.cycle = cycle


class SchemaUnsupportedError(EngineError):
    """Raised when desired attributes have no declarative representation."""

    def __init__(self, unsupported: dict[str, list[str]]) -> None:
        self.unsupported = unsupported
        lines = [
            f"  - {address}: {', '.join(fields)}" for address, fields in sorted(unsupported.items())
        ]
        msg = (
            "Attributes not supported by the declarative schema:\n"
            + "\n".join(lines)
            + "\nExpress these settings with an imperative resource instead."
        )
        super().__init__(msg)


class RemoteCallError(EngineError):
    """Raised when a call against the remote API fails or times out."""

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        parts = [message]
        if method and url:
            parts.append(f"({method} {url})")
        if status_code is not None:
            parts.append(f"status={status_code}")
        super().__init__(" ".join(parts))


class ResourceNotFoundError(EngineError):
    """Raised when an identifier to import does not exist remotely."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Remote resource not found: {identifier}")
        self.identifier = identifier


class TemplateError(EngineError):
    """Raised when a ``${...}`` placeholder cannot be resolved."""


class StatePersistenceError(EngineError):
    """Raised when the state file cannot be read or written.

    Fatal: no action is taken against the remote system without durable state.
    """


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class ValidationError(EngineError):
    """One or more resources failed plan validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class ApplyError(EngineError):
    """Raised when an apply fails mid-way through.

    Carries the partial result (what was applied before the failure) so
    callers can inspect progress.  The original exception is chained via
    ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, action: str, message: str) -> None:
        from rest_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied)
        self.address = address
        self.action = action
        super().__init__(f"Apply failed on {address} ({action}): {message}")


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled between operations (e.g., Ctrl-C)."""

    def __init__(self, message: str, *, applied: list[Any] | None = None) -> None:
        from rest_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied or [])
        super().__init__(message)
