"""
Module: production_engines
Responsibility:
    Package entrypoint re-exporting the floor progression engines.  This is
    the canonical import surface for ``production_services``.

Architecture position:
    Engines -- calculation layer over ``ArticleState``, zero I/O.
    May only import ``production_kernel.domain``, ``production_kernel.exceptions``
    and ``production_kernel.logging_config``.
    MUST NOT import ``production_services`` or the ORM.

Invariants enforced:
    - Engines never read the clock; timestamps are passed in.
    - Engines validate before mutating, so a rejected request leaves the
      state untouched.

Audit relevance:
    Every engine entry point is wrapped by ``@traced_engine`` (see
    ``production_engines.tracer``) and emits a PRODUCTION_ENGINE_TRACE record.
"""

from production_engines.floor_lifecycle import FloorLifecycle
from production_engines.propagation import (
    PropagationMode,
    TransferPropagator,
    TransferPush,
)
from production_engines.quality_inspection import (
    InspectionOutcome,
    InspectionRequest,
    QualityInspectionEngine,
)
from production_engines.quantity_update import QualityFields, QuantityUpdateEngine
from production_engines.repair_loopback import RepairLoopbackEngine, RepairOutcome
from production_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "FloorLifecycle",
    "InspectionOutcome",
    "InspectionRequest",
    "PropagationMode",
    "QualityFields",
    "QualityInspectionEngine",
    "QuantityUpdateEngine",
    "RepairLoopbackEngine",
    "RepairOutcome",
    "TransferPropagator",
    "TransferPush",
    "compute_input_fingerprint",
    "traced_engine",
]
