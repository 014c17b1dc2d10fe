"""
ORM models for the tenant-scoped entity graph.

Every kind uses SoftDeleteMixin. Ownership links that would create foreign
key cycles (creator and manager references) are plain indexed columns and
are resolved through the kind registry instead of the database.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .soft_delete.mixins import SoftDeleteMixin, utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Declarative base for all record models."""


class PrincipalRole(str, Enum):
    """Roles a principal can hold within a tenant."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class WorkItemVariant(str, Enum):
    PROJECT = "project"
    ROUTINE = "routine"
    ASSIGNED = "assigned"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )


class Tenant(Base, SoftDeleteMixin, TimestampMixin):
    """Root organizational entity. Never purged automatically."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_platform: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Department(Base, SoftDeleteMixin, TimestampMixin):
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    manager_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )


class Principal(Base, SoftDeleteMixin, TimestampMixin):
    """A user account within a tenant."""

    __tablename__ = "principals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=PrincipalRole.USER.value, nullable=False
    )
    is_hod: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_platform_user: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class WorkItem(Base, SoftDeleteMixin, TimestampMixin):
    """A task. ``materials`` holds line items referencing materials by value."""

    __tablename__ = "work_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    variant: Mapped[str] = mapped_column(
        String(20), default=WorkItemVariant.PROJECT.value, nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default="to_do", nullable=False)
    vendor_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    materials: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False
    )


class Material(Base, SoftDeleteMixin, TimestampMixin):
    __tablename__ = "materials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="other", nullable=False)
    price: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


class ExternalParty(Base, SoftDeleteMixin, TimestampMixin):
    """A vendor referenced by work items."""

    __tablename__ = "external_parties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class Annotation(Base, SoftDeleteMixin, TimestampMixin):
    """A comment on a work item, optionally replying to another annotation."""

    __tablename__ = "annotations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True
    )
    work_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_items.id"), nullable=False, index=True
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("annotations.id"), nullable=True, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    depth: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ActivityRecord(Base, SoftDeleteMixin, TimestampMixin):
    __tablename__ = "activity_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True
    )
    work_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_items.id"), nullable=False, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    materials: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False
    )


class Notice(Base, SoftDeleteMixin, TimestampMixin):
    """A notification delivered to a principal."""

    __tablename__ = "notices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True, index=True
    )
    recipient_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class Attachment(Base, SoftDeleteMixin, TimestampMixin):
    """File metadata. The blob itself lives in an external store."""

    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("departments.id"), nullable=True
    )
    work_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("work_items.id"), nullable=False, index=True
    )
    created_by_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, index=True
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
