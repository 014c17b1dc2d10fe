"""
SQLAlchemy mixins for soft delete functionality.

The mixin is the lifecycle primitive every cascade-participating kind shares:
it carries the deletion fields, the mark/restore mutators and the
delete-aware query helpers used by both cascade engines and the purge sweep.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, event
from sqlalchemy.orm import Mapped, Query, Session, declared_attr, mapped_column

from .exceptions import AlreadyDeletedException, NotDeletedException

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every datetime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SoftDeleteMixin:
    """
    Mixin to add soft delete functionality to SQLAlchemy models.

    Provides:
    - Soft delete fields (is_deleted, deleted_at, deleted_by)
    - mark_deleted() / restore() mutators
    - Query helpers for live, deleted and all records

    Usage:
        class Material(Base, SoftDeleteMixin):
            __tablename__ = 'materials'
            id = mapped_column(String(36), primary_key=True)
    """

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    @declared_attr.directive
    def __table_args__(cls: Any) -> Any:
        """Deletion fields must be set together or cleared together."""
        table_name = getattr(cls, "__tablename__", cls.__name__.lower())
        return (
            CheckConstraint(
                "(is_deleted = false AND deleted_at IS NULL AND deleted_by IS NULL) OR "
                "(is_deleted = true AND deleted_at IS NOT NULL "
                "AND deleted_by IS NOT NULL)",
                name=f"ck_{table_name}_deletion_consistency",
            ),
        )

    def mark_deleted(self, actor: str, session: Optional[Session] = None) -> None:
        """
        Soft delete this record.

        Args:
            actor: ID of the principal performing the deletion
            session: Optional session the record should be attached to

        Raises:
            AlreadyDeletedException: If record is already deleted
            ValueError: If actor is empty
        """
        if self.is_deleted:
            raise AlreadyDeletedException(str(getattr(self, "id", "unknown")))

        if not actor or not str(actor).strip():
            raise ValueError("Actor is required for deletion")

        self.is_deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = str(actor).strip()

        if session is not None:
            session.add(self)

    def restore(self, session: Optional[Session] = None) -> None:
        """
        Restore a soft-deleted record.

        Raises:
            NotDeletedException: If record is not deleted
        """
        if not self.is_deleted:
            raise NotDeletedException(str(getattr(self, "id", "unknown")))

        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None

        if session is not None:
            session.add(self)

    @classmethod
    def query_active(cls, session: Session) -> Query[Any]:
        """Return query for live (non-deleted) records only."""
        return session.query(cls).filter(cls.is_deleted.is_(False))

    @classmethod
    def query_deleted(cls, session: Session) -> Query[Any]:
        """Return query for deleted records only."""
        return session.query(cls).filter(cls.is_deleted.is_(True))

    @classmethod
    def query_all(cls, session: Session) -> Query[Any]:
        """Return query for all records including deleted."""
        return session.query(cls)

    @classmethod
    def get_including_deleted(cls, session: Session, entity_id: Any) -> Any:
        """Load one record by primary key whether or not it is deleted."""
        return cls.query_all(session).filter(cls.id == entity_id).one_or_none()  # type: ignore[attr-defined]

    def to_dict(self, include_deleted_fields: bool = True) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Args:
            include_deleted_fields: Whether to include soft delete fields
        """
        result: Dict[str, Any] = {}

        table = getattr(self, "__table__", None)
        if table is None:
            return result

        for column in table.columns:
            if hasattr(self, column.name):
                value = getattr(self, column.name)
                if isinstance(value, datetime):
                    value = value.isoformat()
                result[column.name] = value

        if not include_deleted_fields:
            for field in ["is_deleted", "deleted_at", "deleted_by"]:
                result.pop(field, None)

        return result


def prevent_hard_delete(mapper: Any, connection: Any, target: Any) -> None:
    """
    Prevent ORM hard deletes on models with SoftDeleteMixin.

    Connected to SQLAlchemy's before_delete event. Bulk deletes issued by the
    retention sweep do not pass through the unit of work and are unaffected.
    """
    if isinstance(target, SoftDeleteMixin):
        raise RuntimeError(
            f"Hard delete attempted on {target.__class__.__name__}. "
            "Use mark_deleted() or the cascade engine instead."
        )


def register_soft_delete_listeners(base_class: Type[Any]) -> None:
    """
    Register SQLAlchemy event listeners for soft delete functionality.

    Args:
        base_class: The declarative base class
    """
    for mapper in base_class.registry.mappers:
        if issubclass(mapper.class_, SoftDeleteMixin):
            if not event.contains(mapper.class_, "before_delete", prevent_hard_delete):
                event.listen(mapper.class_, "before_delete", prevent_hard_delete)
                logger.debug(
                    f"Hard delete guard registered for {mapper.class_.__name__}"
                )
