"""
Entity graph model.

Static tables describing which kinds own which (cascade edges), which
fields point at a record's owners (ancestor gating on restore), and which
links are reference-only (pruned, never cascaded). Both cascade engines
consult these tables; nothing else hard-codes traversal order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

from .exceptions import UnknownEntityKindError


class EntityKind(str, Enum):
    """Entity kinds participating in the tenant graph."""

    TENANT = "tenant"
    DEPARTMENT = "department"
    PRINCIPAL = "principal"
    WORK_ITEM = "work_item"
    MATERIAL = "material"
    EXTERNAL_PARTY = "external_party"
    ANNOTATION = "annotation"
    ACTIVITY_RECORD = "activity_record"
    NOTICE = "notice"
    ATTACHMENT = "attachment"


ROOT_KIND = EntityKind.TENANT


class ReferenceMode(str, Enum):
    """How a reference-only link is stored on the referencing record."""

    LINE_ITEMS = "line_items"  # JSON list of dicts carrying the referenced id
    SCALAR = "scalar"  # single id column


@dataclass(frozen=True)
class CascadeEdge:
    """A cascade-owned child relationship: child_kind.link_field -> parent id."""

    child_kind: EntityKind
    link_field: str


@dataclass(frozen=True)
class ReferenceEdge:
    """A reference-only link from source_kind.field to the owning kind's id."""

    source_kind: EntityKind
    field: str
    mode: ReferenceMode
    item_key: str = ""


CASCADE_RELATIONSHIPS: Dict[EntityKind, Tuple[CascadeEdge, ...]] = {
    EntityKind.TENANT: (
        CascadeEdge(EntityKind.DEPARTMENT, "tenant_id"),
        CascadeEdge(EntityKind.PRINCIPAL, "tenant_id"),
        CascadeEdge(EntityKind.WORK_ITEM, "tenant_id"),
        CascadeEdge(EntityKind.MATERIAL, "tenant_id"),
        CascadeEdge(EntityKind.EXTERNAL_PARTY, "tenant_id"),
        CascadeEdge(EntityKind.NOTICE, "tenant_id"),
    ),
    EntityKind.DEPARTMENT: (
        CascadeEdge(EntityKind.PRINCIPAL, "department_id"),
        CascadeEdge(EntityKind.WORK_ITEM, "department_id"),
        CascadeEdge(EntityKind.MATERIAL, "department_id"),
        CascadeEdge(EntityKind.NOTICE, "department_id"),
    ),
    EntityKind.WORK_ITEM: (
        CascadeEdge(EntityKind.ANNOTATION, "work_item_id"),
        CascadeEdge(EntityKind.ACTIVITY_RECORD, "work_item_id"),
        CascadeEdge(EntityKind.ATTACHMENT, "work_item_id"),
    ),
    EntityKind.PRINCIPAL: (
        CascadeEdge(EntityKind.WORK_ITEM, "created_by_id"),
        CascadeEdge(EntityKind.ANNOTATION, "created_by_id"),
        CascadeEdge(EntityKind.ACTIVITY_RECORD, "created_by_id"),
    ),
    EntityKind.ANNOTATION: (CascadeEdge(EntityKind.ANNOTATION, "parent_id"),),
}

# Fields naming a record's structural owners, checked before restoring it.
PARENT_FIELDS: Dict[EntityKind, Dict[str, EntityKind]] = {
    EntityKind.TENANT: {},
    EntityKind.DEPARTMENT: {"tenant_id": EntityKind.TENANT},
    EntityKind.PRINCIPAL: {
        "tenant_id": EntityKind.TENANT,
        "department_id": EntityKind.DEPARTMENT,
    },
    EntityKind.WORK_ITEM: {
        "tenant_id": EntityKind.TENANT,
        "department_id": EntityKind.DEPARTMENT,
    },
    EntityKind.MATERIAL: {
        "tenant_id": EntityKind.TENANT,
        "department_id": EntityKind.DEPARTMENT,
    },
    EntityKind.EXTERNAL_PARTY: {"tenant_id": EntityKind.TENANT},
    EntityKind.ANNOTATION: {
        "tenant_id": EntityKind.TENANT,
        "work_item_id": EntityKind.WORK_ITEM,
        "parent_id": EntityKind.ANNOTATION,
    },
    EntityKind.ACTIVITY_RECORD: {
        "tenant_id": EntityKind.TENANT,
        "work_item_id": EntityKind.WORK_ITEM,
    },
    EntityKind.NOTICE: {
        "tenant_id": EntityKind.TENANT,
        "department_id": EntityKind.DEPARTMENT,
    },
    EntityKind.ATTACHMENT: {
        "tenant_id": EntityKind.TENANT,
        "work_item_id": EntityKind.WORK_ITEM,
    },
}

REFERENCE_RELATIONSHIPS: Dict[EntityKind, Tuple[ReferenceEdge, ...]] = {
    EntityKind.MATERIAL: (
        ReferenceEdge(
            EntityKind.WORK_ITEM, "materials", ReferenceMode.LINE_ITEMS, "material_id"
        ),
        ReferenceEdge(
            EntityKind.ACTIVITY_RECORD,
            "materials",
            ReferenceMode.LINE_ITEMS,
            "material_id",
        ),
    ),
    EntityKind.EXTERNAL_PARTY: (
        ReferenceEdge(EntityKind.WORK_ITEM, "vendor_id", ReferenceMode.SCALAR),
    ),
}


def parse_kind(value: Union[str, EntityKind]) -> EntityKind:
    """Resolve a kind name (or enum member) to an EntityKind."""
    if isinstance(value, EntityKind):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    try:
        return EntityKind(normalized)
    except ValueError:
        raise UnknownEntityKindError(str(value)) from None


def children_of(kind: EntityKind) -> Tuple[CascadeEdge, ...]:
    return CASCADE_RELATIONSHIPS.get(kind, ())


def parent_fields_of(kind: EntityKind) -> Dict[str, EntityKind]:
    return PARENT_FIELDS.get(kind, {})


def references_to(kind: EntityKind) -> Tuple[ReferenceEdge, ...]:
    return REFERENCE_RELATIONSHIPS.get(kind, ())


def describe() -> Dict[str, Any]:
    """Return the graph tables as plain data."""
    cascade: Dict[str, List[Dict[str, str]]] = {
        kind.value: [
            {"child": edge.child_kind.value, "field": edge.link_field}
            for edge in edges
        ]
        for kind, edges in CASCADE_RELATIONSHIPS.items()
    }
    parents = {
        kind.value: {field: parent.value for field, parent in fields.items()}
        for kind, fields in PARENT_FIELDS.items()
    }
    references = {
        kind.value: [
            {
                "source": edge.source_kind.value,
                "field": edge.field,
                "mode": edge.mode.value,
            }
            for edge in edges
        ]
        for kind, edges in REFERENCE_RELATIONSHIPS.items()
    }
    return {
        "root": ROOT_KIND.value,
        "cascade": cascade,
        "parents": parents,
        "references": references,
    }
