"""
production_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure floor engines
    (production_engines/) with database sessions, article locks and the
    article log.  This is the only layer that holds sessions or reads the
    wall clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        production_services/ -> production_engines/  (allowed)
        production_services/ -> production_kernel/   (allowed)
        production_engines/  -> production_services/ (FORBIDDEN)
        production_kernel/   -> production_services/ (FORBIDDEN)

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from production_kernel.logging_config import get_logger

logger = get_logger("services")

from production_services.article_lifecycle import (  # noqa: E402
    ArticleLifecycleController,
    ArticleOperationResult,
    RepairTransferSummary,
    TransferSummary,
)
from production_services.bulk_progress import (  # noqa: E402
    BulkItemError,
    BulkProgressItem,
    BulkProgressResult,
    BulkProgressService,
)
from production_services.floor_service import ProductionFloorService  # noqa: E402
from production_services.order_service import OrderService  # noqa: E402

__all__ = [
    "ArticleLifecycleController",
    "ArticleOperationResult",
    "BulkItemError",
    "BulkProgressItem",
    "BulkProgressResult",
    "BulkProgressService",
    "OrderService",
    "ProductionFloorService",
    "RepairTransferSummary",
    "TransferSummary",
]
