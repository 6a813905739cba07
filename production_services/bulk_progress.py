"""
BulkProgressService -- progress updates for many articles at once.

Responsibility:
    Applies a list of progress updates, running different articles in
    parallel on a thread pool while keeping each article's updates in
    submission order.  One failed item never stops the others.

Architecture position:
    Services -- built on ProductionFloorService, which provides the
    per-item transaction and per-article lock.

Invariants enforced:
    - Items for the same article run sequentially, in submission order.
    - Each item is its own transaction: a failure rolls back that item only.
    - Batches run one after another; ``batch_size`` bounds how many items
      are in flight.

Failure modes:
    - Typed kernel errors are captured per item in ``BulkItemError``.
    - Any other exception (e.g. the database is unreachable) propagates
      once the running batch has drained.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from uuid import UUID

from production_config.schema import ProductionConfig
from production_engines.quantity_update import QualityFields
from production_kernel.domain.audit import OperationMetadata
from production_kernel.exceptions import AuditSinkError, ProductionKernelError
from production_kernel.logging_config import get_logger
from production_services.article_lifecycle import ArticleOperationResult
from production_services.floor_service import ProductionFloorService

logger = get_logger("services.bulk_progress")


@dataclass(frozen=True)
class BulkProgressItem:
    """One requested progress update."""

    article_id: UUID
    floor: str
    completed_delta: int
    quality: QualityFields | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class BulkItemError:
    """A rejected item, identified by its position in the request."""

    index: int
    article_id: UUID
    floor: str
    code: str
    message: str


@dataclass(frozen=True)
class BulkProgressResult:
    total: int
    updated: int
    failed: int
    errors: tuple[BulkItemError, ...] = ()
    audit_warnings: tuple[AuditSinkError, ...] = ()
    results: tuple[ArticleOperationResult, ...] = field(default=(), repr=False)
    duration_ms: float = 0.0

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0


class BulkProgressService:
    """
    Concurrent, per-article-serialized progress updates.

    Non-goals:
        - Does NOT retry failed items.
        - Does NOT make the whole request atomic.
    """

    def __init__(
        self,
        floor_service: ProductionFloorService,
        batch_size: int = 50,
        max_workers: int = 4,
    ):
        if batch_size <= 0 or max_workers <= 0:
            raise ValueError("batch_size and max_workers must be positive")
        self._floor_service = floor_service
        self._batch_size = batch_size
        self._max_workers = max_workers

    @classmethod
    def from_config(
        cls,
        floor_service: ProductionFloorService,
        config: ProductionConfig,
    ) -> BulkProgressService:
        return cls(
            floor_service,
            batch_size=config.bulk.batch_size,
            max_workers=config.bulk.max_workers,
        )

    def _run_group(
        self,
        group: list[tuple[int, BulkProgressItem]],
        metadata: OperationMetadata,
    ) -> list[tuple[int, ArticleOperationResult | BulkItemError]]:
        outcomes: list[tuple[int, ArticleOperationResult | BulkItemError]] = []
        for index, item in group:
            item_metadata = OperationMetadata(
                actor=metadata.actor,
                remarks=item.remarks or metadata.remarks,
                correlation_id=metadata.correlation_id,
            )
            try:
                result = self._floor_service.update_progress(
                    item.article_id,
                    item.floor,
                    item.completed_delta,
                    item_metadata,
                    item.quality,
                )
            except ProductionKernelError as exc:
                logger.info(
                    "bulk_item_failed",
                    extra={
                        "index": index,
                        "article_id": str(item.article_id),
                        "code": exc.code,
                    },
                )
                outcomes.append(
                    (
                        index,
                        BulkItemError(
                            index=index,
                            article_id=item.article_id,
                            floor=item.floor,
                            code=exc.code,
                            message=str(exc),
                        ),
                    )
                )
            else:
                outcomes.append((index, result))
        return outcomes

    def apply(
        self,
        items: list[BulkProgressItem],
        metadata: OperationMetadata | None = None,
    ) -> BulkProgressResult:
        """
        Apply every item.

        Postconditions:
            ``updated + failed == total``; ``errors`` is ordered by item
            index.
        """
        metadata = metadata or OperationMetadata()
        start = time.monotonic()
        outcomes: list[tuple[int, ArticleOperationResult | BulkItemError]] = []

        indexed = list(enumerate(items))
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            for offset in range(0, len(indexed), self._batch_size):
                batch = indexed[offset : offset + self._batch_size]
                groups: OrderedDict[UUID, list[tuple[int, BulkProgressItem]]] = OrderedDict()
                for index, item in batch:
                    groups.setdefault(item.article_id, []).append((index, item))

                futures = [
                    pool.submit(self._run_group, group, metadata)
                    for group in groups.values()
                ]
                for future in futures:
                    outcomes.extend(future.result())

        outcomes.sort(key=lambda pair: pair[0])
        errors = tuple(o for _, o in outcomes if isinstance(o, BulkItemError))
        results = tuple(o for _, o in outcomes if isinstance(o, ArticleOperationResult))
        warnings = tuple(w for r in results for w in r.audit_warnings)
        duration_ms = round((time.monotonic() - start) * 1000, 2)

        logger.info(
            "bulk_progress_completed",
            extra={
                "total": len(items),
                "updated": len(results),
                "failed": len(errors),
                "duration_ms": duration_ms,
            },
        )
        return BulkProgressResult(
            total=len(items),
            updated=len(results),
            failed=len(errors),
            errors=errors,
            audit_warnings=warnings,
            results=results,
            duration_ms=duration_ms,
        )
