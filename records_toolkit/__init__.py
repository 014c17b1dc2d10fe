"""
Records Toolkit - cascade soft delete, restore and retention for multi-tenant data.

Every record in a tenant's graph (departments, principals, work items,
materials, external parties, annotations, activity records, notices and
attachments) is deleted softly. Deleting a record cascades to everything it
owns, restoring it brings the owned records back, and a scheduled sweep
erases soft-deleted records for good once their retention window expires.

Key Features
------------
* **Cascade Delete/Restore**: Depth-bounded, cycle-safe traversal of the entity graph
* **Validation Rules**: Per-kind checks with structured errors and advisory warnings
* **Transactions**: Every cascade commits fully or not at all
* **Reference Pruning**: Dangling line items and vendor links are cleaned up
* **Retention Sweep**: Interval-scheduled, all-or-nothing permanent purge

Quick Start
-----------
>>> from records_toolkit import SoftDeleteService, setup_database
>>>
>>> SessionLocal = setup_database(create_schema=True)
>>> service = SoftDeleteService(SessionLocal)
>>> result = service.cascade_delete("department", dept_id, actor=admin_id)
>>> result.deleted_count
6
>>>
>>> result = service.cascade_restore("department", dept_id)
>>> [w.code for w in result.warnings]
['MANAGER_NOT_ASSIGNED']
"""

__version__ = "1.0.0"

from .config import RecordsConfig, configure, get_config, set_config

# The soft_delete package must load before the entity models that use its mixin
from .soft_delete import (  # isort: skip
    CascadeEngine,
    DeleteOptions,
    EntityKind,
    RestoreOptions,
    SoftDeleteMixin,
    SoftDeleteService,
)

from .database import create_db_engine, create_session_factory, init_db, setup_database
from .entities import (
    ActivityRecord,
    Annotation,
    Attachment,
    Base,
    Department,
    ExternalParty,
    Material,
    Notice,
    Principal,
    Tenant,
    WorkItem,
)
from .retention import PurgeScheduler, PurgeService

__all__ = [
    # Soft Delete
    "SoftDeleteMixin",
    "SoftDeleteService",
    "CascadeEngine",
    "DeleteOptions",
    "RestoreOptions",
    "EntityKind",
    # Retention
    "PurgeService",
    "PurgeScheduler",
    # Models
    "Base",
    "Tenant",
    "Department",
    "Principal",
    "WorkItem",
    "Material",
    "ExternalParty",
    "Annotation",
    "ActivityRecord",
    "Notice",
    "Attachment",
    # Database
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "setup_database",
    # Configuration
    "RecordsConfig",
    "get_config",
    "set_config",
    "configure",
]
