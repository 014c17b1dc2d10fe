"""Tests for SoftDeleteService transaction handling."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from records_toolkit.entities import Department, Notice, Principal, WorkItem
from records_toolkit.soft_delete import (
    CascadeEngine,
    DeleteOptions,
    SoftDeleteService,
    UnknownEntityKindError,
)
from records_toolkit.soft_delete.mixins import utcnow


@pytest.fixture
def service(session_factory, records_config):
    return SoftDeleteService(session_factory, config=records_config)


@pytest.fixture
def seeded(factory, db_session):
    tenant = factory.tenant()
    department = factory.department(tenant)
    principal = factory.principal(tenant, department)
    work_item = factory.work_item(tenant, department, creator=principal)
    factory.annotation(work_item)
    db_session.commit()
    return {
        "tenant_id": tenant.id,
        "department_id": department.id,
        "principal_id": principal.id,
        "work_item_id": work_item.id,
    }


class TestCascadeDelete:
    def test_success_commits(self, service, session_factory, seeded):
        result = service.cascade_delete(
            "department", seeded["department_id"], actor="admin-1"
        )

        assert result.success is True
        assert result.deleted_count == 4

        with session_factory() as session:
            department = Department.get_including_deleted(
                session, seeded["department_id"]
            )
            assert department.is_deleted is True
            assert department.deleted_by == "admin-1"
            assert Principal.query_active(session).count() == 0

    def test_failure_rolls_back(self, service, session_factory, seeded):
        result = service.cascade_delete(
            "department",
            seeded["department_id"],
            actor="admin",
            options=DeleteOptions(max_depth=2),
        )

        assert result.success is False
        assert result.deleted_count == 0
        assert [e.code for e in result.errors] == ["MAX_DEPTH_EXCEEDED"]

        with session_factory() as session:
            assert Department.query_deleted(session).count() == 0
            assert WorkItem.query_deleted(session).count() == 0

    def test_exception_rolls_back_and_reraises(self, session_factory, seeded):
        engine = CascadeEngine()
        engine.cascade_delete = Mock(side_effect=RuntimeError("connection lost"))
        service = SoftDeleteService(session_factory, engine=engine)

        with pytest.raises(RuntimeError, match="connection lost"):
            service.cascade_delete("notice", "n1", actor="admin")
        engine.cascade_delete.assert_called_once()

    def test_exception_leaves_no_partial_writes(
        self, session_factory, records_config, seeded
    ):
        engine = CascadeEngine(config=records_config)
        rules = engine.registry.get("work_item").rules
        rules.validate_deletion = Mock(side_effect=RuntimeError("boom"))
        service = SoftDeleteService(session_factory, engine=engine)

        with pytest.raises(RuntimeError):
            service.cascade_delete("department", seeded["department_id"], "admin")

        with session_factory() as session:
            assert Department.query_deleted(session).count() == 0
            assert Principal.query_deleted(session).count() == 0

    def test_unknown_kind_before_session(self):
        session_factory = Mock()
        service = SoftDeleteService(session_factory)

        with pytest.raises(UnknownEntityKindError):
            service.cascade_delete("invoice", "x", actor="admin")
        session_factory.assert_not_called()

    def test_default_max_depth_from_config(self, session_factory, seeded):
        from records_toolkit.config import RecordsConfig

        service = SoftDeleteService(
            session_factory, config=RecordsConfig(cascade_max_depth=1)
        )
        result = service.cascade_delete("department", seeded["department_id"], "admin")
        assert result.success is False
        assert result.errors[0].model_dump()["max_depth"] == 1


class TestCascadeRestore:
    def test_round_trip(self, service, session_factory, seeded):
        deleted = service.cascade_delete("department", seeded["department_id"], "admin")
        restored = service.cascade_restore("department", seeded["department_id"])

        assert restored.success is True
        assert restored.restored_count == deleted.deleted_count

        with session_factory() as session:
            assert Department.query_deleted(session).count() == 0
            assert WorkItem.query_active(session).count() == 1

    def test_blocked_restore_rolls_back(self, service, session_factory, seeded):
        service.cascade_delete("department", seeded["department_id"], "admin")

        result = service.cascade_restore("work_item", seeded["work_item_id"])
        assert result.success is False
        assert result.errors[0].code == "ANCESTOR_DELETED"

        with session_factory() as session:
            assert WorkItem.query_active(session).count() == 0


class TestQueries:
    def test_get_deleted_entities(self, service, factory, db_session):
        tenant = factory.tenant()
        first = factory.notice(tenant)
        second = factory.notice(tenant)
        factory.notice(tenant)
        factory.soft_deleted(first, days_ago=2, actor="alice")
        factory.soft_deleted(second, days_ago=1, actor="bob")
        db_session.commit()

        records = service.get_deleted_entities("notice")
        assert [r.id for r in records] == [second.id, first.id]

        by_alice = service.get_deleted_entities("notice", deleted_by="alice")
        assert [r.id for r in by_alice] == [first.id]
        assert by_alice[0].deleted_by == "alice"

        assert len(service.get_deleted_entities("notice", limit=1)) == 1

    def test_generate_deletion_report(self, service, factory, db_session):
        tenant = factory.tenant()
        factory.soft_deleted(factory.notice(tenant), days_ago=1, actor="alice")
        factory.soft_deleted(factory.notice(tenant), days_ago=2, actor="bob")
        factory.soft_deleted(factory.material(tenant), days_ago=3, actor="alice")
        factory.soft_deleted(factory.notice(tenant), days_ago=40, actor="alice")
        db_session.commit()

        now = utcnow()
        report = service.generate_deletion_report(now - timedelta(days=30), now)

        assert report.total_deletions == 3
        assert report.by_kind == {"notice": 2, "material": 1}
        assert report.by_actor == {"alice": 2, "bob": 1}

        notices_only = service.generate_deletion_report(
            now - timedelta(days=30), now, kinds=["notice"]
        )
        assert notices_only.total_deletions == 2
        assert Notice.query_all(db_session).count() == 3
