"""Pytest configuration for Records Toolkit."""

from datetime import timedelta
from typing import Any, Optional

import pytest

from records_toolkit.config import RecordsConfig, set_config
from records_toolkit.database import create_db_engine, create_session_factory, init_db
from records_toolkit.entities import (
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
from records_toolkit.soft_delete.mixins import utcnow


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Add custom markers
    config.addinivalue_line("markers", "cascade: mark test as cascade engine test")
    config.addinivalue_line("markers", "retention: mark test as retention sweep test")


class RecordFactory:
    """Creates committed-ready records in a session with sensible defaults."""

    def __init__(self, session):
        self.session = session
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _add(self, record: Any) -> Any:
        self.session.add(record)
        self.session.flush()
        return record

    def tenant(self, **kwargs: Any) -> Tenant:
        n = self._next()
        kwargs.setdefault("name", f"Tenant {n}")
        kwargs.setdefault("email", f"tenant{n}@example.com")
        return self._add(Tenant(**kwargs))

    def department(self, tenant: Tenant, **kwargs: Any) -> Department:
        kwargs.setdefault("name", f"Department {self._next()}")
        return self._add(Department(tenant_id=tenant.id, **kwargs))

    def principal(
        self, tenant: Tenant, department: Optional[Department] = None, **kwargs: Any
    ) -> Principal:
        n = self._next()
        kwargs.setdefault("email", f"user{n}@example.com")
        kwargs.setdefault("first_name", "User")
        kwargs.setdefault("last_name", str(n))
        kwargs.setdefault("role", PrincipalRole.USER.value)
        return self._add(
            Principal(
                tenant_id=tenant.id,
                department_id=department.id if department else None,
                **kwargs,
            )
        )

    def work_item(
        self,
        tenant: Tenant,
        department: Optional[Department] = None,
        creator: Optional[Principal] = None,
        **kwargs: Any,
    ) -> WorkItem:
        kwargs.setdefault("title", f"Work item {self._next()}")
        return self._add(
            WorkItem(
                tenant_id=tenant.id,
                department_id=department.id if department else None,
                created_by_id=creator.id if creator else None,
                **kwargs,
            )
        )

    def material(
        self, tenant: Tenant, department: Optional[Department] = None, **kwargs: Any
    ) -> Material:
        kwargs.setdefault("name", f"Material {self._next()}")
        return self._add(
            Material(
                tenant_id=tenant.id,
                department_id=department.id if department else None,
                **kwargs,
            )
        )

    def external_party(self, tenant: Tenant, **kwargs: Any) -> ExternalParty:
        n = self._next()
        kwargs.setdefault("name", f"Vendor {n}")
        kwargs.setdefault("email", f"vendor{n}@example.com")
        return self._add(ExternalParty(tenant_id=tenant.id, **kwargs))

    def annotation(
        self,
        work_item: WorkItem,
        parent: Optional[Annotation] = None,
        author: Optional[Principal] = None,
        **kwargs: Any,
    ) -> Annotation:
        kwargs.setdefault("body", f"Comment {self._next()}")
        return self._add(
            Annotation(
                tenant_id=work_item.tenant_id,
                department_id=work_item.department_id,
                work_item_id=work_item.id,
                parent_id=parent.id if parent else None,
                created_by_id=author.id if author else None,
                depth=(parent.depth + 1) if parent else 0,
                **kwargs,
            )
        )

    def activity_record(
        self, work_item: WorkItem, author: Optional[Principal] = None, **kwargs: Any
    ) -> ActivityRecord:
        kwargs.setdefault("summary", f"Activity {self._next()}")
        return self._add(
            ActivityRecord(
                tenant_id=work_item.tenant_id,
                department_id=work_item.department_id,
                work_item_id=work_item.id,
                created_by_id=author.id if author else None,
                **kwargs,
            )
        )

    def notice(
        self, tenant: Tenant, department: Optional[Department] = None, **kwargs: Any
    ) -> Notice:
        kwargs.setdefault("title", f"Notice {self._next()}")
        return self._add(
            Notice(
                tenant_id=tenant.id,
                department_id=department.id if department else None,
                **kwargs,
            )
        )

    def attachment(self, work_item: WorkItem, **kwargs: Any) -> Attachment:
        n = self._next()
        kwargs.setdefault("filename", f"file{n}.pdf")
        kwargs.setdefault("storage_key", f"attachments/file{n}.pdf")
        return self._add(
            Attachment(
                tenant_id=work_item.tenant_id,
                department_id=work_item.department_id,
                work_item_id=work_item.id,
                **kwargs,
            )
        )

    def soft_deleted(self, record: Any, days_ago: float, actor: str = "admin") -> Any:
        """Mark a record deleted as if it happened ``days_ago`` days ago."""
        record.is_deleted = True
        record.deleted_at = utcnow() - timedelta(days=days_ago)
        record.deleted_by = actor
        self.session.flush()
        return record


@pytest.fixture(autouse=True)
def records_config():
    """Isolated global configuration for every test."""
    config = RecordsConfig(environment="test")
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Create a database session for seeding and assertions."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def factory(db_session):
    return RecordFactory(db_session)


@pytest.fixture
def fk_session_factory():
    """In-memory SQLite that enforces foreign keys like a server database."""
    engine = create_db_engine("sqlite:///:memory:", enforce_foreign_keys=True)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def fk_session(fk_session_factory):
    session = fk_session_factory()
    yield session
    session.close()


@pytest.fixture
def fk_factory(fk_session):
    return RecordFactory(fk_session)
