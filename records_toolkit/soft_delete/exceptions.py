"""Exceptions for soft delete operations."""

from typing import Optional


class SoftDeleteError(Exception):
    """Base exception for soft delete operations."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class AlreadyDeletedException(SoftDeleteError):
    """Raised when attempting to delete an already deleted entity."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id} is already deleted and cannot be deleted again",
            entity_id=entity_id,
        )


class NotDeletedException(SoftDeleteError):
    """Raised when attempting to restore a non-deleted entity."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id} is not deleted and cannot be restored",
            entity_id=entity_id,
        )


class UnknownEntityKindError(SoftDeleteError):
    """Raised when a kind name does not map to a registered entity kind."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown entity kind '{kind}'")


class RetentionPolicyViolation(SoftDeleteError):
    """Raised when an operation violates retention policy."""

    def __init__(self, message: str):
        super().__init__(message)


class PurgeError(SoftDeleteError):
    """Raised when a retention sweep fails and has been rolled back."""

    def __init__(self, message: str, kind: Optional[str] = None):
        self.kind = kind
        super().__init__(message)
