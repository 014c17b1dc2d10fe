"""
Service layer for cascade soft delete operations.

SoftDeleteService owns the transaction boundary around the cascade engines:
one session per call, committed only when the traversal succeeds and rolled
back otherwise, so a cascade is never left half applied.
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..config import RecordsConfig, get_config
from .cascade import CascadeEngine
from .graph import EntityKind
from .models import (
    DeleteOptions,
    DeleteResult,
    DeletionReport,
    RestoreOptions,
    RestoreResult,
)

logger = logging.getLogger(__name__)


class SoftDeleteService:
    """
    Transaction coordinator for cascade delete and restore.

    Example:
        >>> service = SoftDeleteService(SessionLocal)
        >>> result = service.cascade_delete("department", dept_id, actor=admin_id)
        >>> if not result.success:
        ...     print([issue.code for issue in result.errors])
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine: Optional[CascadeEngine] = None,
        config: Optional[RecordsConfig] = None,
    ):
        """
        Initialize the service.

        Args:
            session_factory: Callable returning a new SQLAlchemy session
            engine: Cascade engine (built from the registry when omitted)
            config: Toolkit configuration (global config when omitted)
        """
        self.session_factory = session_factory
        self.config = config or get_config()
        self.engine = engine or CascadeEngine(config=self.config)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a session that is rolled back on error and always closed."""
        session = self.session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def cascade_delete(
        self,
        kind: Union[str, EntityKind],
        entity_id: Any,
        actor: str,
        options: Optional[DeleteOptions] = None,
    ) -> DeleteResult:
        """
        Cascade soft delete a record in its own transaction.

        Raises:
            UnknownEntityKindError: Before any session is opened
            ValueError: If ``actor`` is empty
        """
        capabilities = self.engine.registry.get(kind)
        if options is None:
            options = DeleteOptions(max_depth=self.config.cascade_max_depth)

        started = time.perf_counter()
        with self.session_scope() as session:
            try:
                result = self.engine.cascade_delete(
                    capabilities.kind, entity_id, actor, session, options
                )
            except Exception:
                logger.exception(
                    f"Cascade delete of {capabilities.kind.value} {entity_id} failed",
                    extra={
                        "kind": capabilities.kind.value,
                        "entity_id": str(entity_id),
                        "actor": actor,
                    },
                )
                raise
            self._finish(session, result)

        logger.info(
            f"Cascade delete of {capabilities.kind.value} {entity_id} "
            f"{'committed' if result.success else 'rolled back'}: "
            f"{result.deleted_count} deleted, {len(result.warnings)} warnings, "
            f"{len(result.errors)} errors in {time.perf_counter() - started:.3f}s",
            extra={
                "kind": capabilities.kind.value,
                "entity_id": str(entity_id),
                "actor": actor,
                "count": result.deleted_count,
            },
        )
        return result

    def cascade_restore(
        self,
        kind: Union[str, EntityKind],
        entity_id: Any,
        options: Optional[RestoreOptions] = None,
    ) -> RestoreResult:
        """
        Cascade restore a record in its own transaction.

        Raises:
            UnknownEntityKindError: Before any session is opened
        """
        capabilities = self.engine.registry.get(kind)
        if options is None:
            options = RestoreOptions(max_depth=self.config.cascade_max_depth)

        started = time.perf_counter()
        with self.session_scope() as session:
            try:
                result = self.engine.cascade_restore(
                    capabilities.kind, entity_id, session, options
                )
            except Exception:
                logger.exception(
                    f"Cascade restore of {capabilities.kind.value} {entity_id} failed",
                    extra={
                        "kind": capabilities.kind.value,
                        "entity_id": str(entity_id),
                    },
                )
                raise
            self._finish(session, result)

        logger.info(
            f"Cascade restore of {capabilities.kind.value} {entity_id} "
            f"{'committed' if result.success else 'rolled back'}: "
            f"{result.restored_count} restored, {len(result.warnings)} warnings, "
            f"{len(result.errors)} errors in {time.perf_counter() - started:.3f}s",
            extra={
                "kind": capabilities.kind.value,
                "entity_id": str(entity_id),
                "count": result.restored_count,
            },
        )
        return result

    @staticmethod
    def _finish(session: Session, result: Union[DeleteResult, RestoreResult]) -> None:
        if result.success:
            session.commit()
        else:
            session.rollback()

    def get_deleted_entities(
        self,
        kind: Union[str, EntityKind],
        deleted_by: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Any]:
        """
        List soft-deleted records of a kind, newest deletion first.

        Returned objects are detached; read their attributes, don't modify them.
        """
        model = self.engine.registry.model_for(kind)
        with self.session_scope() as session:
            query = model.query_deleted(session)
            if deleted_by:
                query = query.filter(model.deleted_by == deleted_by)
            records = (
                query.order_by(model.deleted_at.desc()).limit(limit).offset(offset).all()
            )
            session.expunge_all()
        return records

    def generate_deletion_report(
        self,
        start_date: datetime,
        end_date: datetime,
        kinds: Optional[Sequence[Union[str, EntityKind]]] = None,
    ) -> DeletionReport:
        """
        Summarize records currently soft deleted within a period.

        Args:
            start_date: Report period start
            end_date: Report period end
            kinds: Optional kinds to include (all kinds when omitted)

        Returns:
            Deletion report with counts by kind and actor
        """
        report = DeletionReport(start_date=start_date, end_date=end_date)

        if kinds:
            selected = [self.engine.registry.get(kind) for kind in kinds]
        else:
            selected = list(self.engine.registry)

        with self.session_scope() as session:
            for capabilities in selected:
                model = capabilities.model
                rows = (
                    model.query_deleted(session)
                    .filter(
                        model.deleted_at >= start_date,
                        model.deleted_at <= end_date,
                    )
                    .with_entities(model.deleted_by)
                    .all()
                )
                for (deleted_by,) in rows:
                    report.add_deletion(capabilities.kind.value, deleted_by)

        return report
