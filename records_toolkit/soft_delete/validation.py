"""
Per-kind validation rules.

Each kind gets a rules object with two checks: one run before the record is
soft deleted (impact warnings, protected records) and one run before it is
restored (uniqueness among live siblings, structural invariants). Ancestor
gating is not done here; the restore engine handles it from the graph tables.
"""

from typing import Any, Iterable, Optional, Sequence, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import RecordsConfig
from ..entities import (
    ActivityRecord,
    Annotation,
    Attachment,
    Department,
    ExternalParty,
    Material,
    Notice,
    Principal,
    PrincipalRole,
    Tenant,
    WorkItem,
)
from .graph import CASCADE_RELATIONSHIPS, EntityKind
from .mixins import utcnow
from .models import ValidationOutcome

MANAGER_ROLES = {PrincipalRole.SUPER_ADMIN.value, PrincipalRole.ADMIN.value}


def count_live(session: Session, model: Type[Any], **filters: Any) -> int:
    """Count live rows of ``model`` matching equality filters."""
    query = session.query(func.count(model.id)).filter(model.is_deleted.is_(False))
    for name, value in filters.items():
        query = query.filter(getattr(model, name) == value)
    return int(query.scalar() or 0)


def find_live_conflict(
    session: Session,
    record: Any,
    key_field: str,
    scope_fields: Sequence[str] = (),
) -> Optional[Any]:
    """Find a live sibling sharing ``key_field`` within the scope, if any."""
    model = type(record)
    value = getattr(record, key_field)
    if value is None:
        return None
    query = model.query_active(session).filter(
        getattr(model, key_field) == value, model.id != record.id
    )
    for scope in scope_fields:
        query = query.filter(getattr(model, scope) == getattr(record, scope))
    return query.first()


def count_line_item_usage(
    records: Iterable[Any], field: str, item_key: str, referenced_id: str
) -> int:
    """Count line items in ``records`` pointing at ``referenced_id``."""
    total = 0
    for record in records:
        for item in getattr(record, field) or []:
            if isinstance(item, dict) and item.get(item_key) == referenced_id:
                total += 1
    return total


class EntityRules:
    """Default rules: nothing blocks, nothing warns."""

    kind: EntityKind
    model: Type[Any]

    def __init__(self, config: RecordsConfig):
        self.config = config

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        return ValidationOutcome()

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        return ValidationOutcome()

    def _issue_context(self, record: Any) -> dict:
        return {"kind": self.kind.value, "entity_id": str(record.id)}

    def _check_unique(
        self,
        session: Session,
        record: Any,
        outcome: ValidationOutcome,
        key_field: str,
        scope_fields: Sequence[str] = ("tenant_id",),
    ) -> None:
        conflict = find_live_conflict(session, record, key_field, scope_fields)
        if conflict is not None:
            label = self.kind.value.replace("_", " ")
            outcome.error(
                f"DUPLICATE_{key_field.upper()}",
                f"Another {label} with {key_field} "
                f"'{getattr(record, key_field)}' already exists",
                field=key_field,
                conflict_id=str(conflict.id),
                **self._issue_context(record),
            )


class TenantRules(EntityRules):
    kind = EntityKind.TENANT
    model = Tenant

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()

        if record.is_platform:
            outcome.error(
                "PLATFORM_TENANT_DELETE_FORBIDDEN",
                "The platform tenant cannot be deleted",
                **self._issue_context(record),
            )
            return outcome

        owned = sum(
            count_live(session, _MODELS[edge.child_kind], tenant_id=record.id)
            for edge in CASCADE_RELATIONSHIPS[EntityKind.TENANT]
        )
        if owned > self.config.tenant_cascade_warning_threshold:
            outcome.warn(
                "MASSIVE_CASCADE_OPERATION",
                f"This will cascade delete {owned} records",
                count=owned,
                **self._issue_context(record),
            )
        return outcome

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        if record.is_platform:
            outcome.error(
                "PLATFORM_TENANT_RESTORE_INVALID",
                "The platform tenant cannot be deleted, so it cannot be restored",
                field="is_platform",
                **self._issue_context(record),
            )
        for key in ("name", "email", "phone"):
            self._check_unique(session, record, outcome, key, scope_fields=())
        return outcome


class DepartmentRules(EntityRules):
    kind = EntityKind.DEPARTMENT
    model = Department

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        checks = (
            (
                Principal,
                "principals",
                "LARGE_PRINCIPAL_COUNT",
                self.config.department_principal_warning_threshold,
            ),
            (
                WorkItem,
                "work items",
                "LARGE_WORK_ITEM_COUNT",
                self.config.department_work_item_warning_threshold,
            ),
            (
                Material,
                "materials",
                "LARGE_MATERIAL_COUNT",
                self.config.department_material_warning_threshold,
            ),
        )
        for model, label, code, threshold in checks:
            count = count_live(session, model, department_id=record.id)
            if count > threshold:
                outcome.warn(
                    code,
                    f"This will cascade delete {count} {label}",
                    count=count,
                    **self._issue_context(record),
                )
        return outcome

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        context = self._issue_context(record)

        self._check_unique(session, record, outcome, "name")

        if record.manager_id is None:
            outcome.warn(
                "MANAGER_NOT_ASSIGNED",
                "Department has no manager assigned",
                field="manager_id",
                **context,
            )
            return outcome

        manager = Principal.get_including_deleted(session, record.manager_id)
        if manager is None:
            outcome.error(
                "MANAGER_NOT_FOUND",
                "Department manager not found",
                field="manager_id",
                **context,
            )
            return outcome

        if manager.is_deleted:
            if manager.department_id == record.id:
                # Restored further down this same cascade.
                outcome.warn(
                    "MANAGER_RESTORED_WITH_DEPARTMENT",
                    "Department manager will be restored with the department",
                    field="manager_id",
                    manager_id=str(manager.id),
                    **context,
                )
            else:
                outcome.error(
                    "MANAGER_DELETED",
                    "Cannot restore department because its manager is deleted",
                    field="manager_id",
                    manager_id=str(manager.id),
                    **context,
                )

        if manager.tenant_id != record.tenant_id:
            outcome.error(
                "MANAGER_WRONG_TENANT",
                "Manager must belong to the same tenant",
                field="manager_id",
                manager_id=str(manager.id),
                **context,
            )

        if manager.role not in MANAGER_ROLES or not manager.is_hod:
            outcome.error(
                "MANAGER_INVALID_ROLE",
                "Manager must be a super admin or admin flagged as head of department",
                field="manager_id",
                manager_id=str(manager.id),
                current_role=manager.role,
                is_hod=manager.is_hod,
                **context,
            )
        return outcome


class PrincipalRules(EntityRules):
    kind = EntityKind.PRINCIPAL
    model = Principal

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        context = self._issue_context(record)

        if record.is_platform_user:
            outcome.error(
                "PLATFORM_PRINCIPAL_DELETE_FORBIDDEN",
                "Platform principals cannot be deleted",
                **context,
            )

        tenant = Tenant.get_including_deleted(session, record.tenant_id)
        tenant_live = tenant is not None and not tenant.is_deleted
        if tenant_live and record.role == PrincipalRole.SUPER_ADMIN.value:
            others = (
                Principal.query_active(session)
                .filter(
                    Principal.tenant_id == record.tenant_id,
                    Principal.role == PrincipalRole.SUPER_ADMIN.value,
                    Principal.id != record.id,
                )
                .count()
            )
            if others == 0:
                outcome.error(
                    "LAST_SUPER_ADMIN",
                    "Cannot delete the last super admin of the tenant",
                    field="role",
                    **context,
                )

        if record.is_hod and record.department_id is not None:
            department = Department.get_including_deleted(
                session, record.department_id
            )
            if department is not None and not department.is_deleted:
                others = (
                    Principal.query_active(session)
                    .filter(
                        Principal.department_id == record.department_id,
                        Principal.is_hod.is_(True),
                        Principal.id != record.id,
                    )
                    .count()
                )
                if others == 0:
                    outcome.error(
                        "LAST_HOD",
                        "Deleting this principal leaves the department without a head",
                        field="is_hod",
                        overridable=True,
                        department_id=str(record.department_id),
                        **context,
                    )
        return outcome

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        self._check_unique(session, record, outcome, "email")

        if record.is_platform_user:
            tenant = Tenant.get_including_deleted(session, record.tenant_id)
            if tenant is not None and not tenant.is_platform:
                outcome.error(
                    "PLATFORM_PRINCIPAL_NON_PLATFORM_TENANT",
                    "Cannot restore a platform principal into a non-platform tenant",
                    field="is_platform_user",
                    tenant_id=str(record.tenant_id),
                    **self._issue_context(record),
                )
        return outcome


class WorkItemRules(EntityRules):
    kind = EntityKind.WORK_ITEM
    model = WorkItem

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        attachments = count_live(session, Attachment, work_item_id=record.id)
        if attachments:
            outcome.warn(
                "ATTACHMENTS_SCHEDULED_FOR_PURGE",
                f"{attachments} attachments will be purged "
                f"{self.config.attachment_retention_days} days after deletion",
                count=attachments,
                **self._issue_context(record),
            )
        return outcome


class MaterialRules(EntityRules):
    kind = EntityKind.MATERIAL
    model = Material

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        usage = 0
        for model in (WorkItem, ActivityRecord):
            records = model.query_active(session).filter(
                model.tenant_id == record.tenant_id
            )
            usage += count_line_item_usage(
                records, "materials", "material_id", record.id
            )
        if usage:
            outcome.warn(
                "MATERIAL_IN_USE",
                f"Material is used in {usage} items",
                count=usage,
                **self._issue_context(record),
            )
        return outcome


class ExternalPartyRules(EntityRules):
    kind = EntityKind.EXTERNAL_PARTY
    model = ExternalParty

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        usage = count_live(session, WorkItem, vendor_id=record.id)
        if usage:
            outcome.warn(
                "EXTERNAL_PARTY_IN_USE",
                f"External party is used in {usage} items",
                count=usage,
                **self._issue_context(record),
            )
        return outcome

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        for key in ("name", "email", "phone"):
            self._check_unique(session, record, outcome, key)
        if record.rating is not None:
            outcome.warn(
                "RATING_OUTDATED",
                "Rating may be outdated after the deletion period",
                field="rating",
                rating=record.rating,
                **self._issue_context(record),
            )
        return outcome


class AnnotationRules(EntityRules):
    kind = EntityKind.ANNOTATION
    model = Annotation

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        replies = count_live(session, Annotation, parent_id=record.id)
        if replies:
            outcome.warn(
                "REPLIES_CASCADE",
                f"This will cascade delete {replies} replies",
                count=replies,
                **self._issue_context(record),
            )
        return outcome


class ActivityRecordRules(EntityRules):
    kind = EntityKind.ACTIVITY_RECORD
    model = ActivityRecord


class NoticeRules(EntityRules):
    kind = EntityKind.NOTICE
    model = Notice

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        outcome.warn(
            "AUTO_CLEANUP",
            f"Notice will be purged {self.config.notice_retention_days} days "
            "after deletion",
            **self._issue_context(record),
        )
        return outcome

    def validate_restoration(
        self, session: Session, record: Any
    ) -> ValidationOutcome:
        outcome = ValidationOutcome()
        if record.expires_at is not None and record.expires_at <= utcnow():
            outcome.warn(
                "NOTICE_EXPIRED",
                "Notice has already expired",
                field="expires_at",
                **self._issue_context(record),
            )
        return outcome


class AttachmentRules(EntityRules):
    kind = EntityKind.ATTACHMENT
    model = Attachment

    def validate_deletion(self, session: Session, record: Any) -> ValidationOutcome:
        outcome = ValidationOutcome()
        outcome.warn(
            "BLOB_RELEASE_ON_PURGE",
            f"Stored file is released {self.config.attachment_retention_days} days "
            "after deletion",
            storage_key=record.storage_key,
            **self._issue_context(record),
        )
        return outcome


RULE_CLASSES = (
    TenantRules,
    DepartmentRules,
    PrincipalRules,
    WorkItemRules,
    MaterialRules,
    ExternalPartyRules,
    AnnotationRules,
    ActivityRecordRules,
    NoticeRules,
    AttachmentRules,
)

_MODELS = {rules.kind: rules.model for rules in RULE_CLASSES}
