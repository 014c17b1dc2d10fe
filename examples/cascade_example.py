#!/usr/bin/env python3
"""
Cascade Example - Records Toolkit

This is a demonstration file prioritizing readability over production
readiness. It runs against an in-memory SQLite database.

Demonstrates:
- Cascade soft delete of a department and everything it owns
- Reference pruning when a material is deleted
- Restore gating on soft-deleted owners
- Previewing and running the retention sweep
"""

from datetime import timedelta

from records_toolkit import (
    PurgeService,
    RecordsConfig,
    SoftDeleteService,
    create_db_engine,
    create_session_factory,
    init_db,
    set_config,
)
from records_toolkit.entities import (
    Annotation,
    Department,
    Material,
    Principal,
    PrincipalRole,
    Tenant,
    WorkItem,
)
from records_toolkit.soft_delete.mixins import utcnow


def demonstrate_cascade() -> None:
    """Walk through delete, restore and purge."""
    print("🗑️  Cascade Soft Delete Example\n")

    set_config(RecordsConfig(environment="development"))
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    Session = create_session_factory(engine)
    service = SoftDeleteService(Session)

    # 1. Create test data
    print("1️⃣ Creating Test Data:")
    with Session() as session:
        tenant = Tenant(name="Acme Builders", email="ops@acme.example")
        session.add(tenant)
        session.flush()

        site = Department(tenant_id=tenant.id, name="North Site")
        session.add(site)
        session.flush()

        lead = Principal(
            tenant_id=tenant.id,
            department_id=site.id,
            email="lead@acme.example",
            first_name="Robin",
            last_name="Lee",
            role=PrincipalRole.ADMIN.value,
            is_hod=True,
        )
        cement = Material(tenant_id=tenant.id, name="Cement")
        session.add_all([lead, cement])
        session.flush()

        site.manager_id = lead.id
        pour = WorkItem(
            tenant_id=tenant.id,
            department_id=site.id,
            created_by_id=lead.id,
            title="Pour foundation",
            materials=[{"material_id": cement.id, "quantity": 40}],
        )
        session.add(pour)
        session.flush()
        session.add(
            Annotation(
                tenant_id=tenant.id,
                department_id=site.id,
                work_item_id=pour.id,
                body="Forms inspected",
            )
        )
        session.commit()
        site_id, cement_id, pour_id = site.id, cement.id, pour.id

    print("  ✓ Tenant, department, principal, material, work item, annotation\n")

    # 2. Reference pruning
    print("2️⃣ Deleting a Material Referenced by a Work Item:")
    result = service.cascade_delete("material", cement_id, actor="admin")
    for warning in result.warnings:
        print(f"  ⚠ {warning.code}: {warning.message}")
    with Session() as session:
        print(f"  Line items left on work item: {session.get(WorkItem, pour_id).materials}\n")

    # 3. Cascade delete
    print("3️⃣ Cascade Deleting the Department:")
    result = service.cascade_delete("department", site_id, actor="admin")
    print(f"  ✓ Success: {result.success}, records deleted: {result.deleted_count}")
    for warning in result.warnings:
        print(f"  ⚠ {warning.code}: {warning.message}")

    # 4. Restore gating
    print("\n4️⃣ Restoring the Work Item Alone:")
    result = service.cascade_restore("work_item", pour_id)
    for error in result.errors:
        print(f"  ✗ {error.code}: {error.message}")

    print("\n5️⃣ Restoring the Department:")
    result = service.cascade_restore("department", site_id)
    print(f"  ✓ Success: {result.success}, records restored: {result.restored_count}")

    # 6. Retention sweep
    print("\n6️⃣ Retention Sweep:")
    service.cascade_delete("department", site_id, actor="admin")
    purge_service = PurgeService(Session)
    preview = purge_service.preview(now=utcnow() + timedelta(days=400))
    print(f"  Due in 400 days: {preview.total_purged} records")
    report = purge_service.purge(now=utcnow() + timedelta(days=400))
    for kind_result in report.results:
        if kind_result.purged:
            print(f"    - {kind_result.kind}: {kind_result.purged} purged")

    with Session() as session:
        remaining = session.query(Tenant).count()
    print(f"  Tenants kept: {remaining}")

    print("\n✅ Cascade example completed!")


if __name__ == "__main__":
    demonstrate_cascade()
