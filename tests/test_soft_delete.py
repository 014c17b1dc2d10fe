"""
Tests for the soft delete primitive and its models.

Covers the mixin lifecycle, query helpers, the hard-delete guard, the
deletion consistency constraint and the pydantic result models.
"""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from records_toolkit.entities import Material, Tenant
from records_toolkit.soft_delete import (
    AlreadyDeletedException,
    CascadeIssue,
    DeleteOptions,
    DeleteResult,
    DeletionReport,
    NotDeletedException,
    RestoreOptions,
    ValidationOutcome,
)
from records_toolkit.soft_delete.mixins import utcnow


@pytest.fixture
def tenant(factory, db_session):
    tenant = factory.tenant()
    db_session.commit()
    return tenant


@pytest.fixture
def test_entity(factory, db_session, tenant):
    """Create a test entity."""
    material = factory.material(tenant, name="Cement")
    db_session.commit()
    return material


class TestSoftDeleteMixin:
    """Test the SoftDeleteMixin functionality."""

    def test_mark_deleted_basic(self, db_session, test_entity):
        test_entity.mark_deleted("admin-1", db_session)
        db_session.commit()

        assert test_entity.is_deleted is True
        assert test_entity.deleted_at is not None
        assert test_entity.deleted_by == "admin-1"
        assert test_entity.deleted_at <= utcnow()

    def test_mark_deleted_already_deleted(self, db_session, test_entity):
        """Deleting an already deleted entity raises."""
        test_entity.mark_deleted("user1")

        with pytest.raises(AlreadyDeletedException) as exc:
            test_entity.mark_deleted("user2")

        assert str(test_entity.id) in str(exc.value)
        assert exc.value.entity_id == str(test_entity.id)

    def test_mark_deleted_requires_actor(self, test_entity):
        with pytest.raises(ValueError) as exc:
            test_entity.mark_deleted("   ")
        assert "Actor is required" in str(exc.value)
        assert test_entity.is_deleted is False

    def test_restore_basic(self, db_session, test_entity):
        test_entity.mark_deleted("user1", db_session)
        db_session.commit()

        test_entity.restore(db_session)
        db_session.commit()

        assert test_entity.is_deleted is False
        assert test_entity.deleted_at is None
        assert test_entity.deleted_by is None

    def test_restore_not_deleted(self, test_entity):
        with pytest.raises(NotDeletedException) as exc:
            test_entity.restore()

        assert str(test_entity.id) in str(exc.value)

    def test_query_methods(self, db_session, factory, tenant):
        """Test query helper methods."""
        active1 = factory.material(tenant, name="Active 1")
        active2 = factory.material(tenant, name="Active 2")
        deleted1 = factory.material(tenant, name="Deleted 1")
        deleted2 = factory.material(tenant, name="Deleted 2")
        db_session.commit()

        deleted1.mark_deleted("user1")
        deleted2.mark_deleted("user1")
        db_session.commit()

        active_results = Material.query_active(db_session).all()
        assert {m.id for m in active_results} == {active1.id, active2.id}

        deleted_results = Material.query_deleted(db_session).all()
        assert {m.id for m in deleted_results} == {deleted1.id, deleted2.id}

        assert Material.query_all(db_session).count() == 4

    def test_get_including_deleted(self, db_session, test_entity):
        test_entity.mark_deleted("user1")
        db_session.commit()

        found = Material.get_including_deleted(db_session, test_entity.id)
        assert found is test_entity
        assert Material.get_including_deleted(db_session, "missing") is None

    def test_to_dict(self, db_session, test_entity):
        test_entity.mark_deleted("user1")
        db_session.commit()

        data = test_entity.to_dict()
        assert data["name"] == "Cement"
        assert data["is_deleted"] is True
        assert isinstance(data["deleted_at"], str)

        trimmed = test_entity.to_dict(include_deleted_fields=False)
        assert "deleted_at" not in trimmed
        assert "is_deleted" not in trimmed


class TestDatabaseGuards:
    """Test the hard-delete guard and the consistency constraint."""

    def test_hard_delete_rejected(self, db_session, test_entity):
        db_session.delete(test_entity)
        with pytest.raises(RuntimeError) as exc:
            db_session.flush()
        assert "Hard delete attempted on Material" in str(exc.value)
        db_session.rollback()

    def test_inconsistent_deletion_fields_rejected(self, db_session, tenant):
        db_session.add(
            Material(tenant_id=tenant.id, name="Broken", is_deleted=True)
        )
        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_bulk_delete_bypasses_guard(self, db_session, test_entity):
        removed = (
            db_session.query(Material)
            .filter(Material.id == test_entity.id)
            .delete(synchronize_session=False)
        )
        db_session.commit()
        assert removed == 1


class TestValidationOutcome:
    def test_valid_and_blocking(self):
        outcome = ValidationOutcome()
        assert outcome.valid

        outcome.error("LAST_HOD", "Leaves no head", overridable=True)
        outcome.error("LAST_SUPER_ADMIN", "Last super admin")
        outcome.warn("MATERIAL_IN_USE", "Used in 2 items", count=2)

        assert not outcome.valid
        assert len(outcome.blocking_errors()) == 2
        assert [i.code for i in outcome.blocking_errors(force=True)] == [
            "LAST_SUPER_ADMIN"
        ]
        assert [i.code for i in outcome.overridden_errors(force=True)] == ["LAST_HOD"]
        assert outcome.overridden_errors(force=False) == []

    def test_issue_extra_fields(self):
        issue = CascadeIssue(code="MATERIAL_IN_USE", message="Used", count=5)
        assert issue.model_dump()["count"] == 5

        warning = CascadeIssue(
            code="LAST_HOD", message="No head", overridable=True
        ).as_override_warning()
        assert warning.model_dump()["overridden"] is True
        assert warning.code == "LAST_HOD"


class TestOptionsAndResults:
    def test_option_defaults(self):
        assert DeleteOptions().max_depth == 10
        assert DeleteOptions().force is False
        assert RestoreOptions().validate_parents is True

    def test_max_depth_bounds(self):
        with pytest.raises(ValidationError):
            DeleteOptions(max_depth=0)
        with pytest.raises(ValidationError):
            RestoreOptions(max_depth=101)

    def test_result_to_dict(self):
        result = DeleteResult(
            success=True,
            kind="department",
            entity_id="d1",
            deleted_count=3,
            warnings=[CascadeIssue(code="X", message="y")],
        )
        data = result.to_dict()
        assert data["deleted_count"] == 3
        assert data["warnings"][0]["code"] == "X"
        assert data["errors"] == []


class TestDeletionReport:
    def test_add_deletion(self):
        now = datetime(2026, 1, 31)
        report = DeletionReport(start_date=now - timedelta(days=30), end_date=now)
        report.add_deletion("notice", "admin-1")
        report.add_deletion("notice", None)
        report.add_deletion("material", "admin-1")

        assert report.total_deletions == 3
        assert report.by_kind == {"notice": 2, "material": 1}
        assert report.by_actor == {"admin-1": 2, "unknown": 1}

    def test_period_validation(self):
        now = datetime(2026, 1, 31)
        with pytest.raises(ValidationError):
            DeletionReport(start_date=now, end_date=now - timedelta(days=1))


def test_tenant_uses_mixin(db_session, tenant):
    assert Tenant.query_active(db_session).count() == 1
