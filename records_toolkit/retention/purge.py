"""
Retention sweep.

Permanently erases soft-deleted records whose retention window has elapsed.
The whole multi-kind sweep runs in one transaction and either fully commits
or fully rolls back. Tenants are never selected.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..config import RecordsConfig, get_config
from ..soft_delete.exceptions import PurgeError, RetentionPolicyViolation
from ..soft_delete.graph import EntityKind
from ..soft_delete.mixins import utcnow
from ..soft_delete.registry import KindRegistry, build_registry
from .blobs import BlobStore, NullBlobStore
from .policies import PURGE_ORDER, RetentionPolicy, build_policies

logger = logging.getLogger(__name__)

# Keeps IN lists under SQLite's bound parameter limit
CHUNK_SIZE = 500


def _chunks(values: Sequence[str], size: int = CHUNK_SIZE) -> List[Sequence[str]]:
    return [values[i : i + size] for i in range(0, len(values), size)]


class KindPurgeResult(BaseModel):
    """Outcome of the sweep for one kind."""

    kind: str
    cutoff: Optional[datetime] = None
    purged: int = Field(0, description="Rows permanently erased")
    deferred: int = Field(
        0, description="Expired rows kept because other rows still reference them"
    )
    blobs_released: int = 0
    blobs_missing: int = 0
    blobs_failed: int = 0


class PurgeReport(BaseModel):
    """Outcome of one retention sweep."""

    as_of: datetime
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    dry_run: bool = False
    success: bool = False
    error: Optional[str] = None
    results: List[KindPurgeResult] = Field(default_factory=list)

    @property
    def total_purged(self) -> int:
        return sum(result.purged for result in self.results)

    @property
    def total_deferred(self) -> int:
        return sum(result.deferred for result in self.results)

    @property
    def blobs_released(self) -> int:
        return sum(result.blobs_released for result in self.results)

    @property
    def blobs_failed(self) -> int:
        return sum(result.blobs_failed for result in self.results)

    def result_for(self, kind: Any) -> Optional[KindPurgeResult]:
        name = getattr(kind, "value", kind)
        return next((r for r in self.results if r.kind == name), None)

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["total_purged"] = self.total_purged
        data["total_deferred"] = self.total_deferred
        data["blobs_released"] = self.blobs_released
        data["blobs_failed"] = self.blobs_failed
        return data


class PurgeService:
    """
    Runs the retention sweep against a session factory.

    Example:
        >>> store = LocalDirectoryBlobStore("/srv/blobs")
        >>> service = PurgeService(SessionLocal, blob_store=store)
        >>> report = service.purge()
        >>> report.total_purged
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        policies: Optional[Dict[EntityKind, RetentionPolicy]] = None,
        blob_store: Optional[BlobStore] = None,
        registry: Optional[KindRegistry] = None,
        config: Optional[RecordsConfig] = None,
    ):
        self.session_factory = session_factory
        self.config = config or get_config()
        self.policies = policies or build_policies(self.config)
        self.blob_store = blob_store or NullBlobStore()
        self.registry = registry or build_registry(self.config)

        tenant_policy = self.policies.get(EntityKind.TENANT)
        if tenant_policy is not None and tenant_policy.purge_allowed:
            raise RetentionPolicyViolation("Tenants are never purged automatically")

        # kind -> [(referencing kind, column)] for every foreign key pointing at it
        self._inbound: Dict[EntityKind, List[Tuple[EntityKind, str]]] = {}
        table_kinds = {
            capabilities.model.__table__.name: capabilities.kind
            for capabilities in self.registry
        }
        for capabilities in self.registry:
            for foreign_key in capabilities.model.__table__.foreign_keys:
                target = table_kinds.get(foreign_key.column.table.name)
                if target is not None:
                    self._inbound.setdefault(target, []).append(
                        (capabilities.kind, foreign_key.parent.name)
                    )

    def purge(self, now: Optional[datetime] = None) -> PurgeReport:
        """
        Permanently erase every expired soft-deleted record.

        Args:
            now: Reference time for cutoffs (defaults to the current UTC time)

        Returns:
            Report with per-kind counts

        Raises:
            PurgeError: If any kind fails; nothing from the sweep is kept
        """
        return self._sweep(now, dry_run=False)

    def preview(self, now: Optional[datetime] = None) -> PurgeReport:
        """
        Count what a sweep would erase without changing anything.

        Deferral is judged against the current rows, so owners whose expired
        children would be erased in the same sweep show up as deferred here.
        """
        return self._sweep(now, dry_run=True)

    def _sweep(self, now: Optional[datetime], dry_run: bool) -> PurgeReport:
        as_of = now or utcnow()
        report = PurgeReport(as_of=as_of, started_at=utcnow(), dry_run=dry_run)
        started = time.perf_counter()
        current: Optional[EntityKind] = None

        session = self.session_factory()
        try:
            for kind in PURGE_ORDER:
                policy = self.policies.get(kind)
                if policy is None or not policy.purge_allowed:
                    continue
                current = kind
                report.results.append(
                    self._purge_kind(session, kind, policy, as_of, dry_run)
                )
            current = None

            if dry_run:
                session.rollback()
            else:
                session.commit()
        except Exception as exc:
            session.rollback()
            kind_name = current.value if current is not None else None
            logger.exception(
                f"Retention sweep failed at {kind_name} and was rolled back",
                extra={"kind": kind_name, "dry_run": dry_run},
            )
            raise PurgeError(
                f"Retention sweep failed at {kind_name}: {exc}", kind=kind_name
            ) from exc
        finally:
            session.close()

        report.success = True
        report.finished_at = utcnow()
        report.duration_seconds = time.perf_counter() - started
        logger.info(
            f"Retention sweep {'preview ' if dry_run else ''}finished: "
            f"{report.total_purged} purged, {report.total_deferred} deferred, "
            f"{report.blobs_failed} blob failures in {report.duration_seconds:.3f}s",
            extra={
                "dry_run": dry_run,
                "count": report.total_purged,
                "duration": report.duration_seconds,
            },
        )
        return report

    def _purge_kind(
        self,
        session: Session,
        kind: EntityKind,
        policy: RetentionPolicy,
        now: datetime,
        dry_run: bool,
    ) -> KindPurgeResult:
        model = self.registry.model_for(kind)
        cutoff = policy.cutoff(now)
        result = KindPurgeResult(kind=kind.value, cutoff=cutoff)

        candidate_ids = [
            entity_id
            for (entity_id,) in model.query_deleted(session)
            .filter(model.deleted_at <= cutoff)
            .with_entities(model.id)
            .all()
        ]
        if not candidate_ids:
            return result

        deferred = self._deferred_ids(session, kind, candidate_ids)
        expired = [entity_id for entity_id in candidate_ids if entity_id not in deferred]
        result.deferred = len(candidate_ids) - len(expired)
        if result.deferred:
            logger.info(
                f"Deferring {result.deferred} expired {kind.value} records "
                "still referenced by other rows",
                extra={"kind": kind.value, "count": result.deferred},
            )

        if dry_run:
            result.purged = len(expired)
            return result

        if kind is EntityKind.ATTACHMENT:
            self._release_blobs(session, model, expired, result)

        for chunk in _chunks(expired):
            result.purged += (
                session.query(model)
                .filter(model.id.in_(chunk))
                .delete(synchronize_session=False)
            )
        session.flush()

        logger.info(
            f"Purged {result.purged} {kind.value} records deleted before {cutoff}",
            extra={"kind": kind.value, "count": result.purged},
        )
        return result

    def _deferred_ids(
        self, session: Session, kind: EntityKind, candidate_ids: List[str]
    ) -> Set[str]:
        """
        Candidates that must survive this sweep.

        A candidate is kept while any row that is not erased here points at
        it. Rows of the same kind pointing at each other are resolved to a
        fixed point, so a kept reply keeps its whole parent chain.
        """
        candidates = set(candidate_ids)
        deferred: Set[str] = set()
        # referencing candidate -> candidates it points at
        internal: Dict[str, Set[str]] = {}
        for source_kind, field_name in self._inbound.get(kind, []):
            source = self.registry.model_for(source_kind)
            column = getattr(source, field_name)
            for chunk in _chunks(candidate_ids):
                rows = (
                    source.query_all(session)
                    .filter(column.in_(chunk))
                    .with_entities(source.id, column)
                    .all()
                )
                for source_id, value in rows:
                    if source_kind is kind and source_id in candidates:
                        internal.setdefault(source_id, set()).add(value)
                    else:
                        deferred.add(value)

        changed = True
        while changed:
            changed = False
            for source_id, targets in internal.items():
                if source_id in deferred and not targets <= deferred:
                    deferred |= targets
                    changed = True
        return deferred

    def _release_blobs(
        self,
        session: Session,
        model: Any,
        attachment_ids: List[str],
        result: KindPurgeResult,
    ) -> None:
        for chunk in _chunks(attachment_ids):
            rows = (
                session.query(model.id, model.storage_key)
                .filter(model.id.in_(chunk))
                .all()
            )
            for attachment_id, storage_key in rows:
                try:
                    released = self.blob_store.delete(storage_key)
                except Exception:
                    result.blobs_failed += 1
                    logger.exception(
                        f"Failed to release blob {storage_key}",
                        extra={"kind": "attachment", "entity_id": attachment_id},
                    )
                    continue
                if released:
                    result.blobs_released += 1
                else:
                    result.blobs_missing += 1
