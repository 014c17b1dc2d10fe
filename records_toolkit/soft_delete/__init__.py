"""
Soft Delete Module - cascade soft delete and restore for the tenant graph.

Provides the soft delete mixin, the entity graph tables, per-kind validation
rules, the cascade engines and the transaction coordinator around them.
"""

from .cascade import CascadeContext, CascadeEngine
from .exceptions import (
    AlreadyDeletedException,
    NotDeletedException,
    PurgeError,
    RetentionPolicyViolation,
    SoftDeleteError,
    UnknownEntityKindError,
)
from .graph import EntityKind, ReferenceMode, describe, parse_kind
from .mixins import SoftDeleteMixin, register_soft_delete_listeners
from .models import (
    CascadeIssue,
    CascadeResult,
    DeleteOptions,
    DeleteResult,
    DeletionReport,
    RestoreOptions,
    RestoreResult,
    ValidationOutcome,
)
from .registry import KindCapabilities, KindRegistry, build_registry
from .services import SoftDeleteService

__all__ = [
    # Mixins
    "SoftDeleteMixin",
    "register_soft_delete_listeners",
    # Graph
    "EntityKind",
    "ReferenceMode",
    "describe",
    "parse_kind",
    "KindCapabilities",
    "KindRegistry",
    "build_registry",
    # Engines and services
    "CascadeContext",
    "CascadeEngine",
    "SoftDeleteService",
    # Models
    "CascadeIssue",
    "CascadeResult",
    "DeleteOptions",
    "DeleteResult",
    "DeletionReport",
    "RestoreOptions",
    "RestoreResult",
    "ValidationOutcome",
    # Exceptions
    "SoftDeleteError",
    "AlreadyDeletedException",
    "NotDeletedException",
    "RetentionPolicyViolation",
    "UnknownEntityKindError",
    "PurgeError",
]
