"""
Data models for cascade soft delete operations.

These models define the options accepted by the cascade engines, the
structured issues they report, their results, and deletion reporting.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CascadeIssue(BaseModel):
    """A structured error or warning produced while walking a subtree.

    Extra keys (counts, conflicting ids, parent references) are allowed so
    callers can build confirmation dialogs from them.
    """

    model_config = ConfigDict(extra="allow")

    code: str = Field(..., description="Machine readable issue code", min_length=1)
    message: str = Field(..., description="Human readable description")
    field: Optional[str] = Field(None, description="Field the issue relates to")
    kind: Optional[str] = Field(None, description="Entity kind the issue relates to")
    entity_id: Optional[str] = Field(None, description="Entity the issue relates to")
    overridable: bool = Field(
        False, description="Soft error that the force option may override"
    )

    def as_override_warning(self) -> "CascadeIssue":
        """Re-emit a forced soft error as a warning."""
        data = self.model_dump()
        data["overridden"] = True
        return CascadeIssue(**data)


class ValidationOutcome(BaseModel):
    """Result of a per-kind pre-deletion or pre-restoration check."""

    errors: List[CascadeIssue] = Field(default_factory=list)
    warnings: List[CascadeIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, **extra: Any) -> None:
        self.errors.append(CascadeIssue(code=code, message=message, **extra))

    def warn(self, code: str, message: str, **extra: Any) -> None:
        self.warnings.append(CascadeIssue(code=code, message=message, **extra))

    def blocking_errors(self, force: bool = False) -> List[CascadeIssue]:
        """Errors that still block once ``force`` has been applied."""
        if not force:
            return list(self.errors)
        return [issue for issue in self.errors if not issue.overridable]

    def overridden_errors(self, force: bool = False) -> List[CascadeIssue]:
        if not force:
            return []
        return [issue for issue in self.errors if issue.overridable]


class DeleteOptions(BaseModel):
    """Options for a cascade delete invocation."""

    skip_validation: bool = Field(
        False, description="Skip the per-kind pre-deletion checks"
    )
    force: bool = Field(
        False, description="Proceed past overridable (soft) validation errors"
    )
    max_depth: int = Field(10, description="Maximum traversal depth", ge=1, le=100)


class RestoreOptions(BaseModel):
    """Options for a cascade restore invocation."""

    skip_validation: bool = Field(
        False, description="Skip the per-kind pre-restoration checks"
    )
    validate_parents: bool = Field(
        True, description="Refuse to restore under a soft-deleted owner"
    )
    max_depth: int = Field(10, description="Maximum traversal depth", ge=1, le=100)


class CascadeResult(BaseModel):
    """Common shape of cascade delete and restore results."""

    success: bool = False
    kind: str
    entity_id: str
    warnings: List[CascadeIssue] = Field(default_factory=list)
    errors: List[CascadeIssue] = Field(default_factory=list)
    visited_count: int = Field(0, description="Nodes visited by the traversal")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class DeleteResult(CascadeResult):
    """Result of a cascade delete."""

    deleted_count: int = 0


class RestoreResult(CascadeResult):
    """Result of a cascade restore."""

    restored_count: int = 0


class DeletionReport(BaseModel):
    """Summary of soft-deleted records in a period, for operators."""

    start_date: datetime = Field(..., description="Report period start")
    end_date: datetime = Field(..., description="Report period end")
    total_deletions: int = Field(0, description="Total records deleted")
    by_kind: Dict[str, int] = Field(
        default_factory=dict, description="Deletions by entity kind"
    )
    by_actor: Dict[str, int] = Field(
        default_factory=dict, description="Deletions by actor"
    )

    @field_validator("end_date")
    @classmethod
    def validate_period(cls, v: datetime, info: Any) -> datetime:
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError("Report end date must not precede its start date")
        return v

    def add_deletion(self, kind: str, actor: Optional[str]) -> None:
        """Add a deletion to the report statistics."""
        self.total_deletions += 1
        self.by_kind[kind] = self.by_kind.get(kind, 0) + 1
        actor_key = actor or "unknown"
        self.by_actor[actor_key] = self.by_actor.get(actor_key, 0) + 1
