"""
Cascade delete and restore engines.

Both engines walk the entity graph depth-first from the target record,
parent before children, inside the caller's session. Every invocation gets
its own CascadeContext holding the visited set, the depth limit and the
aggregated warnings/errors, so concurrent calls never share traversal state.

The engines never commit. A result with ``success=False`` means the caller
must roll back; SoftDeleteService does that for you.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple, Union

from sqlalchemy.orm import Session

from ..config import RecordsConfig, get_config
from .graph import EntityKind, ReferenceEdge, ReferenceMode
from .models import (
    CascadeIssue,
    DeleteOptions,
    DeleteResult,
    RestoreOptions,
    RestoreResult,
)
from .registry import KindCapabilities, KindRegistry, build_registry

logger = logging.getLogger(__name__)


@dataclass
class CascadeContext:
    """Per-invocation traversal state."""

    session: Session
    operation: str
    max_depth: int
    actor: Optional[str] = None
    visited: Set[Tuple[EntityKind, str]] = field(default_factory=set)
    warnings: List[CascadeIssue] = field(default_factory=list)
    errors: List[CascadeIssue] = field(default_factory=list)
    count: int = 0
    current: Optional[Tuple[EntityKind, str, int]] = None

    def log_extra(self, kind: EntityKind, entity_id: str, depth: int) -> dict:
        return {
            "operation": self.operation,
            "kind": kind.value,
            "entity_id": entity_id,
            "depth": depth,
            "actor": self.actor,
        }

    def fail(self, issue: CascadeIssue) -> bool:
        self.errors.append(issue)
        return False


class CascadeEngine:
    """Recursive, depth- and cycle-bounded cascade soft delete/restore."""

    def __init__(
        self,
        registry: Optional[KindRegistry] = None,
        config: Optional[RecordsConfig] = None,
    ):
        self.config = config or get_config()
        self.registry = registry or build_registry(self.config)

    # ------------------------------------------------------------------ delete

    def cascade_delete(
        self,
        kind: Union[str, EntityKind],
        entity_id: Any,
        actor: str,
        session: Session,
        options: Optional[DeleteOptions] = None,
    ) -> DeleteResult:
        """
        Soft delete a record and everything it owns.

        Args:
            kind: Entity kind of the target
            entity_id: ID of the target
            actor: ID of the principal performing the deletion
            session: Session/transaction the whole traversal runs in
            options: Delete options (defaults use the configured max depth)

        Returns:
            DeleteResult; ``deleted_count`` is 0 unless ``success`` is True

        Raises:
            UnknownEntityKindError: If ``kind`` is not a registered kind
            ValueError: If ``actor`` is empty
        """
        capabilities = self.registry.get(kind)
        if not actor or not str(actor).strip():
            raise ValueError("Actor is required for cascade deletion")
        options = options or DeleteOptions(max_depth=self.config.cascade_max_depth)

        context = CascadeContext(
            session=session,
            operation="delete",
            max_depth=options.max_depth,
            actor=str(actor).strip(),
        )
        try:
            completed = self._delete_node(
                context, options, capabilities.kind, str(entity_id), 0
            )
        except Exception:
            self._log_failure(context)
            raise

        success = completed and not context.errors
        return DeleteResult(
            success=success,
            kind=capabilities.kind.value,
            entity_id=str(entity_id),
            deleted_count=context.count if success else 0,
            warnings=context.warnings,
            errors=context.errors,
            visited_count=len(context.visited),
        )

    def _delete_node(
        self,
        context: CascadeContext,
        options: DeleteOptions,
        kind: EntityKind,
        entity_id: str,
        depth: int,
    ) -> bool:
        if depth >= context.max_depth:
            logger.warning(
                f"Maximum cascade depth reached at {kind.value} {entity_id}",
                extra=context.log_extra(kind, entity_id, depth),
            )
            return context.fail(self._max_depth_issue(context, kind, entity_id))

        key = (kind, entity_id)
        if key in context.visited:
            logger.debug(
                f"Skipping already visited {kind.value} {entity_id}",
                extra=context.log_extra(kind, entity_id, depth),
            )
            return True
        context.visited.add(key)
        context.current = (kind, entity_id, depth)

        capabilities = self.registry.get(kind)
        record = capabilities.model.get_including_deleted(context.session, entity_id)
        if record is None:
            return context.fail(self._not_found_issue(kind, entity_id))

        if record.is_deleted:
            context.warnings.append(
                CascadeIssue(
                    code="ALREADY_DELETED",
                    message=f"{self._label(kind)} is already deleted",
                    kind=kind.value,
                    entity_id=entity_id,
                )
            )
        else:
            if not options.skip_validation:
                outcome = capabilities.validate_deletion(context.session, record)
                context.warnings.extend(outcome.warnings)
                blocking = outcome.blocking_errors(force=options.force)
                if blocking:
                    context.errors.extend(blocking)
                    logger.info(
                        f"Deletion of {kind.value} {entity_id} blocked by validation",
                        extra=context.log_extra(kind, entity_id, depth),
                    )
                    return False
                context.warnings.extend(
                    issue.as_override_warning()
                    for issue in outcome.overridden_errors(force=options.force)
                )

            record.mark_deleted(context.actor, context.session)
            # Later checks in this traversal query the database
            context.session.flush()
            context.count += 1
            logger.info(
                f"Cascade deleted {kind.value} {entity_id}",
                extra=context.log_extra(kind, entity_id, depth),
            )

            for reference in capabilities.references:
                self._prune_references(context, capabilities, reference, record)

        for edge in capabilities.children:
            child_model = self.registry.model_for(edge.child_kind)
            children = (
                child_model.query_active(context.session)
                .filter(getattr(child_model, edge.link_field) == entity_id)
                .all()
            )
            for child in children:
                if not self._delete_node(
                    context, options, edge.child_kind, str(child.id), depth + 1
                ):
                    return False

        return True

    def _prune_references(
        self,
        context: CascadeContext,
        capabilities: KindCapabilities,
        reference: ReferenceEdge,
        record: Any,
    ) -> None:
        source = self.registry.model_for(reference.source_kind)
        column = getattr(source, reference.field)
        query = source.query_active(context.session).filter(
            source.tenant_id == record.tenant_id
        )
        if reference.mode is ReferenceMode.SCALAR:
            query = query.filter(column == record.id)

        touched = 0
        removed = 0
        for referencing in query.all():
            if reference.mode is ReferenceMode.SCALAR:
                setattr(referencing, reference.field, None)
                touched += 1
                removed += 1
                continue

            items = list(getattr(referencing, reference.field) or [])
            kept = [
                item
                for item in items
                if not (
                    isinstance(item, dict)
                    and item.get(reference.item_key) == record.id
                )
            ]
            if len(kept) != len(items):
                setattr(referencing, reference.field, kept)
                touched += 1
                removed += len(items) - len(kept)

        if touched:
            context.warnings.append(
                CascadeIssue(
                    code="REFERENCES_PRUNED",
                    message=(
                        f"Removed {removed} references to this "
                        f"{self._label(capabilities.kind).lower()} from {touched} "
                        f"{reference.source_kind.value} records. This is not "
                        "reversed on restore."
                    ),
                    field=reference.field,
                    kind=capabilities.kind.value,
                    entity_id=str(record.id),
                    source_kind=reference.source_kind.value,
                    count=removed,
                )
            )
            context.session.flush()
            logger.info(
                f"Pruned {removed} {reference.source_kind.value}.{reference.field} "
                f"references to {capabilities.kind.value} {record.id}",
                extra={"kind": capabilities.kind.value, "entity_id": str(record.id)},
            )

    # ----------------------------------------------------------------- restore

    def cascade_restore(
        self,
        kind: Union[str, EntityKind],
        entity_id: Any,
        session: Session,
        options: Optional[RestoreOptions] = None,
    ) -> RestoreResult:
        """
        Restore a soft-deleted record and its soft-deleted descendants.

        Each node is refused while any of its owners is still soft deleted
        (unless ``validate_parents`` is False), or while its own restoration
        checks fail. Any refusal fails the whole call.

        Returns:
            RestoreResult; ``restored_count`` is 0 unless ``success`` is True
        """
        capabilities = self.registry.get(kind)
        options = options or RestoreOptions(max_depth=self.config.cascade_max_depth)

        context = CascadeContext(
            session=session, operation="restore", max_depth=options.max_depth
        )
        try:
            completed = self._restore_node(
                context, options, capabilities.kind, str(entity_id), 0
            )
        except Exception:
            self._log_failure(context)
            raise

        success = completed and not context.errors
        return RestoreResult(
            success=success,
            kind=capabilities.kind.value,
            entity_id=str(entity_id),
            restored_count=context.count if success else 0,
            warnings=context.warnings,
            errors=context.errors,
            visited_count=len(context.visited),
        )

    def _restore_node(
        self,
        context: CascadeContext,
        options: RestoreOptions,
        kind: EntityKind,
        entity_id: str,
        depth: int,
    ) -> bool:
        if depth >= context.max_depth:
            logger.warning(
                f"Maximum cascade depth reached at {kind.value} {entity_id}",
                extra=context.log_extra(kind, entity_id, depth),
            )
            return context.fail(self._max_depth_issue(context, kind, entity_id))

        key = (kind, entity_id)
        if key in context.visited:
            return True
        context.visited.add(key)
        context.current = (kind, entity_id, depth)

        capabilities = self.registry.get(kind)
        record = capabilities.model.get_including_deleted(context.session, entity_id)
        if record is None:
            return context.fail(self._not_found_issue(kind, entity_id))

        if not record.is_deleted:
            context.warnings.append(
                CascadeIssue(
                    code="NOT_DELETED",
                    message=f"{self._label(kind)} is not deleted",
                    kind=kind.value,
                    entity_id=entity_id,
                )
            )
        else:
            if options.validate_parents:
                ancestor_issues = self._deleted_ancestors(context, capabilities, record)
                if ancestor_issues:
                    context.errors.extend(ancestor_issues)
                    logger.info(
                        f"Restore of {kind.value} {entity_id} blocked by its owners",
                        extra=context.log_extra(kind, entity_id, depth),
                    )
                    return False

            if not options.skip_validation:
                outcome = capabilities.validate_restoration(context.session, record)
                context.warnings.extend(outcome.warnings)
                if not outcome.valid:
                    context.errors.extend(outcome.errors)
                    logger.info(
                        f"Restore of {kind.value} {entity_id} blocked by validation",
                        extra=context.log_extra(kind, entity_id, depth),
                    )
                    return False

            record.restore(context.session)
            context.session.flush()
            context.count += 1
            logger.info(
                f"Cascade restored {kind.value} {entity_id}",
                extra=context.log_extra(kind, entity_id, depth),
            )

            if capabilities.references:
                sources = ", ".join(
                    f"{edge.source_kind.value}.{edge.field}"
                    for edge in capabilities.references
                )
                context.warnings.append(
                    CascadeIssue(
                        code="MANUAL_REATTACHMENT_REQUIRED",
                        message=(
                            f"References removed from {sources} when this "
                            f"{self._label(kind).lower()} was deleted are not "
                            "restored and must be reattached manually"
                        ),
                        kind=kind.value,
                        entity_id=entity_id,
                    )
                )

        for edge in capabilities.children:
            child_model = self.registry.model_for(edge.child_kind)
            children = (
                child_model.query_deleted(context.session)
                .filter(getattr(child_model, edge.link_field) == entity_id)
                .all()
            )
            children = self._parents_first(edge.child_kind, children)
            for child in children:
                if not self._restore_node(
                    context, options, edge.child_kind, str(child.id), depth + 1
                ):
                    return False

        return True

    def _parents_first(self, kind: EntityKind, records: List[Any]) -> List[Any]:
        """Order self-referencing records so a reply never precedes its parent."""
        self_fields = [
            field_name
            for field_name, parent_kind in self.registry.get(kind).parent_fields.items()
            if parent_kind is kind
        ]
        if not self_fields:
            return records
        ids = {record.id for record in records}
        return sorted(
            records,
            key=lambda record: any(
                getattr(record, field_name) in ids for field_name in self_fields
            ),
        )

    def _deleted_ancestors(
        self, context: CascadeContext, capabilities: KindCapabilities, record: Any
    ) -> List[CascadeIssue]:
        issues: List[CascadeIssue] = []
        for field_name, parent_kind in capabilities.parent_fields.items():
            parent_id = getattr(record, field_name, None)
            if parent_id is None:
                continue
            parent_model = self.registry.model_for(parent_kind)
            parent = parent_model.get_including_deleted(context.session, parent_id)
            if parent is None:
                issues.append(
                    CascadeIssue(
                        code="ANCESTOR_NOT_FOUND",
                        message=(
                            f"Cannot restore {capabilities.kind.value} because its "
                            f"{parent_kind.value} {parent_id} no longer exists"
                        ),
                        field=field_name,
                        kind=capabilities.kind.value,
                        entity_id=str(record.id),
                        parent_kind=parent_kind.value,
                        parent_id=str(parent_id),
                    )
                )
            elif parent.is_deleted:
                issues.append(
                    CascadeIssue(
                        code="ANCESTOR_DELETED",
                        message=(
                            f"Cannot restore {capabilities.kind.value} because parent "
                            f"{parent_kind.value} {parent_id} is soft-deleted"
                        ),
                        field=field_name,
                        kind=capabilities.kind.value,
                        entity_id=str(record.id),
                        parent_kind=parent_kind.value,
                        parent_id=str(parent_id),
                    )
                )
        return issues

    # ----------------------------------------------------------------- helpers

    @staticmethod
    def _label(kind: EntityKind) -> str:
        return kind.value.replace("_", " ").capitalize()

    def _not_found_issue(self, kind: EntityKind, entity_id: str) -> CascadeIssue:
        return CascadeIssue(
            code="ENTITY_NOT_FOUND",
            message=f"{self._label(kind)} {entity_id} not found",
            kind=kind.value,
            entity_id=entity_id,
        )

    @staticmethod
    def _max_depth_issue(
        context: CascadeContext, kind: EntityKind, entity_id: str
    ) -> CascadeIssue:
        return CascadeIssue(
            code="MAX_DEPTH_EXCEEDED",
            message=f"Maximum cascade depth of {context.max_depth} exceeded",
            kind=kind.value,
            entity_id=entity_id,
            max_depth=context.max_depth,
        )

    @staticmethod
    def _log_failure(context: CascadeContext) -> None:
        kind, entity_id, depth = context.current or (None, None, None)
        logger.exception(
            f"Cascade {context.operation} failed",
            extra={
                "operation": context.operation,
                "kind": kind.value if kind is not None else None,
                "entity_id": entity_id,
                "depth": depth,
                "actor": context.actor,
                "visited": len(context.visited),
            },
        )
