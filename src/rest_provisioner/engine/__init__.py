"""Plan and apply engine for REST resources."""

from rest_provisioner.engine.engine import ReconcileEngine
from rest_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    CyclicDependencyError,
    DuplicateAddressError,
    EngineError,
    RemoteCallError,
    ResourceNotFoundError,
    SchemaUnsupportedError,
    StalePlanError,
    StateLockError,
    StatePersistenceError,
    TemplateError,
    UnknownResourceTypeError,
    ValidationError,
)
from rest_provisioner.engine.handlers import EngineContext, Observed, ResourceHandler
from rest_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from rest_provisioner.engine.types import (
    Action,
    ApplyResult,
    DriftDetected,
    Plan,
    PlanMetadata,
    ResourceChange,
)

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "CyclicDependencyError",
    "DriftDetected",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "Observed",
    "Plan",
    "PlanMetadata",
    "ReconcileEngine",
    "RemoteCallError",
    "ResourceChange",
    "ResourceHandler",
    "ResourceNotFoundError",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "SchemaUnsupportedError",
    "StalePlanError",
    "StateLockError",
    "StatePersistenceError",
    "TemplateError",
    "UnknownResourceTypeError",
    "ValidationError",
]
