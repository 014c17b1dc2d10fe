"""
Retention policies for soft-deleted records.

A policy says how long a soft-deleted record of a kind is kept before the
purge sweep erases it. Tenants are exempt and can never be given a purgeable
policy.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..config import RecordsConfig, get_config
from ..soft_delete.graph import EntityKind
from ..soft_delete.mixins import utcnow

# Children first, so owners are erased after whatever pointed at them.
PURGE_ORDER = (
    EntityKind.NOTICE,
    EntityKind.ATTACHMENT,
    EntityKind.ANNOTATION,
    EntityKind.ACTIVITY_RECORD,
    EntityKind.WORK_ITEM,
    EntityKind.MATERIAL,
    EntityKind.EXTERNAL_PARTY,
    EntityKind.PRINCIPAL,
    EntityKind.DEPARTMENT,
)


class RetentionCategory(str, Enum):
    """Categories for data retention policies."""

    SHORT = "short"  # Transient data, about a month
    MEDIUM = "medium"  # Reference and history data, about a quarter
    LONG = "long"  # Structural data, six months to a year
    EXEMPT = "exempt"  # Never purged automatically


DEFAULT_CATEGORIES: Dict[EntityKind, RetentionCategory] = {
    EntityKind.NOTICE: RetentionCategory.SHORT,
    EntityKind.ATTACHMENT: RetentionCategory.SHORT,
    EntityKind.MATERIAL: RetentionCategory.MEDIUM,
    EntityKind.EXTERNAL_PARTY: RetentionCategory.MEDIUM,
    EntityKind.ACTIVITY_RECORD: RetentionCategory.MEDIUM,
    EntityKind.ANNOTATION: RetentionCategory.MEDIUM,
    EntityKind.WORK_ITEM: RetentionCategory.LONG,
    EntityKind.PRINCIPAL: RetentionCategory.LONG,
    EntityKind.DEPARTMENT: RetentionCategory.LONG,
    EntityKind.TENANT: RetentionCategory.EXEMPT,
}


class RetentionPolicy(BaseModel):
    """Defines how long soft-deleted records of one kind are kept."""

    model_config = ConfigDict(frozen=True)

    kind: EntityKind = Field(..., description="Kind this policy applies to")
    category: RetentionCategory = Field(..., description="Retention category")
    retention_days: Optional[int] = Field(
        None, description="Days to retain after soft deletion", gt=0
    )
    purge_allowed: bool = Field(True, description="Whether records are ever purged")

    @model_validator(mode="after")
    def validate_purge_allowed(self) -> "RetentionPolicy":
        """Tenants and exempt categories are never purgeable."""
        if not self.purge_allowed:
            return self
        if self.kind == EntityKind.TENANT:
            raise ValueError("Tenants are never purged automatically")
        if self.category == RetentionCategory.EXEMPT:
            raise ValueError("Exempt records cannot be purgeable")
        if self.retention_days is None:
            raise ValueError("A purgeable policy needs retention_days")
        return self

    def cutoff(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Records deleted at or before this instant are due for purging."""
        if not self.purge_allowed or self.retention_days is None:
            return None
        return (now or utcnow()) - timedelta(days=self.retention_days)

    def can_purge(
        self, deleted_at: Optional[datetime], now: Optional[datetime] = None
    ) -> bool:
        """
        Check if a record deleted at ``deleted_at`` can be permanently purged.

        Args:
            deleted_at: When the record was soft deleted
            now: Reference time (defaults to the current UTC time)

        Returns:
            True if the retention window has elapsed
        """
        cutoff = self.cutoff(now)
        if cutoff is None or deleted_at is None:
            return False
        return deleted_at <= cutoff


def build_policies(
    config: Optional[RecordsConfig] = None,
) -> Dict[EntityKind, RetentionPolicy]:
    """Build one policy per kind from the configured retention windows."""
    config = config or get_config()
    policies: Dict[EntityKind, RetentionPolicy] = {}
    for kind in EntityKind:
        days = config.retention_days(kind)
        policies[kind] = RetentionPolicy(
            kind=kind,
            category=DEFAULT_CATEGORIES[kind],
            retention_days=days,
            purge_allowed=days is not None,
        )
    return policies
