"""
Pure domain layer.

This module contains floor vocabulary, the article working copy, and the
audit vocabulary with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time (except the Clock port)
"""

from production_kernel.domain.article_state import (
    ArticleState,
    ArticleStatus,
    FloorQuantityRecord,
    RepairStatus,
)
from production_kernel.domain.audit import (
    ArticleAction,
    AuditEntry,
    AuditSink,
    FloorEvent,
    InMemoryAuditSink,
    OperationMetadata,
)
from production_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from production_kernel.domain.floors import (
    ALL_FLOORS,
    DEFAULT_FLOOR_POLICY,
    DEFAULT_FLOOR_SEQUENCE,
    INSPECTION_FLOORS,
    Floor,
    FloorPolicy,
    FloorSequenceProvider,
    LinkingType,
    LinkingTypeSequenceProvider,
    OverrideSequenceProvider,
    StoredSequenceProvider,
    map_process_to_floor,
    normalize_floor,
    validate_sequence,
)

__all__ = [
    "ALL_FLOORS",
    "ArticleAction",
    "ArticleState",
    "ArticleStatus",
    "AuditEntry",
    "AuditSink",
    "Clock",
    "DEFAULT_FLOOR_POLICY",
    "DEFAULT_FLOOR_SEQUENCE",
    "DeterministicClock",
    "Floor",
    "FloorEvent",
    "FloorPolicy",
    "FloorQuantityRecord",
    "FloorSequenceProvider",
    "INSPECTION_FLOORS",
    "InMemoryAuditSink",
    "LinkingType",
    "LinkingTypeSequenceProvider",
    "OperationMetadata",
    "OverrideSequenceProvider",
    "RepairStatus",
    "StoredSequenceProvider",
    "SystemClock",
    "map_process_to_floor",
    "normalize_floor",
    "validate_sequence",
]
