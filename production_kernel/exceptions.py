"""
Typed Exception Hierarchy for the Production Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Floor bookkeeping errors must be handled precisely.  A caller that needs to
tell "the floor has no completed work" apart from "the quantity exceeds what
the floor received" must never parse message strings.

Every exception in this module:
  1. Is a TYPED class (catch by type, not message)
  2. Carries a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (article id, floor, quantities)

Example:
    try:
        controller.update_progress(article_id, "Linking", 50)
    except ExceedsReceivedError as e:
        api_response(code=e.code, floor=e.floor, received=e.received)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProductionKernelError (base)
    |
    +-- NotFoundError
    |   +-- ArticleNotFoundError
    |   +-- OrderNotFoundError
    |   +-- FloorNotInSequenceError
    |
    +-- ValidationError
    |   +-- QuantityError
    |   |   +-- InvalidQuantityError
    |   |   +-- ExceedsReceivedError
    |   |
    |   +-- FloorError
    |   |   +-- UnknownFloorError
    |   |   +-- InvalidFloorSequenceError
    |   |   +-- FloorNotReachableError
    |   |   +-- NoCompletedWorkError
    |   |   +-- NoNextFloorError
    |   |   +-- InvalidTargetFloorError
    |   |   +-- ArticleNotOnFloorError
    |   |
    |   +-- InspectionError
    |   |   +-- NoInspectionWorkAvailableError
    |   |   +-- InvalidM2ShiftError
    |   |   +-- InvalidDefectQuantityError
    |   |   +-- GradedExceedsReceivedError
    |   |   +-- QualityNotCategorizedError
    |   |   +-- RepairReviewPendingError
    |   |
    |   +-- RepairError
    |       +-- InvalidRepairSourceError
    |       +-- InvalidRepairQuantityError
    |
    +-- AuditError
    |   +-- AuditSinkError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |   +-- ArticleLockTimeoutError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
SOFT vs HARD FAILURES
===============================================================================

ValidationError and NotFoundError are HARD: they are raised before any
counter is mutated and the operation has no effect.

AuditSinkError is SOFT: the state change already happened.  Operations
return it inside their result's ``audit_warnings`` instead of raising it.
"""

from typing import Any


class ProductionKernelError(Exception):
    """Base exception for all production kernel errors."""

    code: str = "PRODUCTION_KERNEL_ERROR"


# =============================================================================
# Not-found errors
# =============================================================================


class NotFoundError(ProductionKernelError):
    """Base for lookups that matched nothing."""

    code: str = "NOT_FOUND"


class ArticleNotFoundError(NotFoundError):
    """The article id does not exist."""

    code: str = "ARTICLE_NOT_FOUND"

    def __init__(self, article_id: str):
        self.article_id = article_id
        super().__init__(f"Article not found: {article_id}")


class OrderNotFoundError(NotFoundError):
    """The production order id does not exist."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Production order not found: {order_id}")


class FloorNotInSequenceError(NotFoundError):
    """The floor is valid but not part of this article's floor sequence."""

    code: str = "FLOOR_NOT_IN_SEQUENCE"

    def __init__(self, floor: str, sequence: tuple[str, ...] | list[str]):
        self.floor = floor
        self.sequence = list(sequence)
        super().__init__(
            f"Floor '{floor}' is not in the article's floor sequence: "
            f"{' -> '.join(self.sequence)}"
        )


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(ProductionKernelError):
    """Base for requests rejected before any mutation."""

    code: str = "VALIDATION_ERROR"


class QuantityError(ValidationError):
    """Base for quantity validation errors."""

    code: str = "QUANTITY_ERROR"


class InvalidQuantityError(QuantityError):
    """A quantity is zero, negative, or otherwise unusable."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: Any, reason: str = "must be positive"):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}: {value} ({reason})")


class ExceedsReceivedError(QuantityError):
    """Completed quantity would exceed the quantity the floor received."""

    code: str = "EXCEEDS_RECEIVED"

    def __init__(self, floor: str, received: int, requested_total: int):
        self.floor = floor
        self.received = received
        self.requested_total = requested_total
        super().__init__(
            f"Completed quantity on {floor} would be {requested_total}, "
            f"exceeding received quantity {received}"
        )


class FloorError(ValidationError):
    """Base for floor routing errors."""

    code: str = "FLOOR_ERROR"


class UnknownFloorError(FloorError):
    """A floor name matched neither a canonical name nor an alias."""

    code: str = "UNKNOWN_FLOOR"

    def __init__(self, floor: str):
        self.floor = floor
        super().__init__(f"Unknown floor: {floor!r}")


class InvalidFloorSequenceError(FloorError):
    """A floor sequence is empty or repeats a floor."""

    code: str = "INVALID_FLOOR_SEQUENCE"

    def __init__(self, sequence: list[str], reason: str):
        self.sequence = list(sequence)
        self.reason = reason
        super().__init__(f"Invalid floor sequence {self.sequence}: {reason}")


class FloorNotReachableError(FloorError):
    """Update targets a floor ahead of the article with no work on it."""

    code: str = "FLOOR_NOT_REACHABLE"

    def __init__(self, floor: str, current_floor: str):
        self.floor = floor
        self.current_floor = current_floor
        super().__init__(
            f"Cannot update {floor}: article is on {current_floor} "
            f"and no work exists on {floor}"
        )


class NoCompletedWorkError(FloorError):
    """A manual transfer was requested from a floor with nothing completed."""

    code: str = "NO_COMPLETED_WORK"

    def __init__(self, floor: str):
        self.floor = floor
        super().__init__(f"No completed work on {floor} to transfer")


class NoNextFloorError(FloorError):
    """A manual transfer was requested from the last floor in the sequence."""

    code: str = "NO_NEXT_FLOOR"

    def __init__(self, floor: str):
        self.floor = floor
        super().__init__(f"No floor follows {floor}")


class InvalidTargetFloorError(FloorError):
    """Requested target floor is not usable for this operation."""

    code: str = "INVALID_TARGET_FLOOR"

    def __init__(self, floor: str, reason: str):
        self.floor = floor
        self.reason = reason
        super().__init__(f"Invalid target floor {floor!r}: {reason}")


class ArticleNotOnFloorError(FloorError):
    """Operation requires the article to be on a specific floor."""

    code: str = "ARTICLE_NOT_ON_FLOOR"

    def __init__(self, required_floor: str, current_floor: str):
        self.required_floor = required_floor
        self.current_floor = current_floor
        super().__init__(
            f"Article must be on {required_floor} (currently on {current_floor})"
        )


class InspectionError(ValidationError):
    """Base for quality inspection errors."""

    code: str = "INSPECTION_ERROR"


class NoInspectionWorkAvailableError(InspectionError):
    """No inspection floor has any received work."""

    code: str = "NO_INSPECTION_WORK_AVAILABLE"

    def __init__(self, article_id: str):
        self.article_id = article_id
        super().__init__(
            f"No inspection floor has received work for article {article_id}"
        )


class InvalidM2ShiftError(InspectionError):
    """An M2 regrade does not balance or exceeds the M2 balance."""

    code: str = "INVALID_M2_SHIFT"

    def __init__(self, floor: str, reason: str):
        self.floor = floor
        self.reason = reason
        super().__init__(f"Invalid M2 shift on {floor}: {reason}")


class InvalidDefectQuantityError(InspectionError):
    """Knitting defect quantity outside [0, completed]."""

    code: str = "INVALID_DEFECT_QUANTITY"

    def __init__(self, floor: str, value: int, completed: int):
        self.floor = floor
        self.value = value
        self.completed = completed
        super().__init__(
            f"Defect quantity on {floor} must be between 0 and {completed}, got {value}"
        )


class GradedExceedsReceivedError(InspectionError):
    """M1-M4 grades on an inspection floor would add up to more than received."""

    code: str = "GRADED_EXCEEDS_RECEIVED"

    def __init__(self, floor: str, received: int, graded_total: int):
        self.floor = floor
        self.received = received
        self.graded_total = graded_total
        super().__init__(
            f"Graded quantity on {floor} would be {graded_total}, "
            f"exceeding received quantity {received}"
        )


class QualityNotCategorizedError(InspectionError):
    """Final confirmation requested before any quality grade was recorded."""

    code: str = "QUALITY_NOT_CATEGORIZED"

    def __init__(self, floor: str):
        self.floor = floor
        super().__init__(f"No quality grades recorded on {floor}")


class RepairReviewPendingError(InspectionError):
    """Final confirmation requested while M2 stock is still under review."""

    code: str = "REPAIR_REVIEW_PENDING"

    def __init__(self, floor: str, m2_quantity: int):
        self.floor = floor
        self.m2_quantity = m2_quantity
        super().__init__(
            f"{m2_quantity} M2 items on {floor} must be reviewed before confirmation"
        )


class RepairError(ValidationError):
    """Base for repair loopback errors."""

    code: str = "REPAIR_ERROR"


class InvalidRepairSourceError(RepairError):
    """Repair source is not an inspection floor that can send work back."""

    code: str = "INVALID_REPAIR_SOURCE"

    def __init__(self, floor: str, reason: str):
        self.floor = floor
        self.reason = reason
        super().__init__(f"Invalid repair source {floor!r}: {reason}")


class InvalidRepairQuantityError(RepairError):
    """Repair quantity outside (0, m2_quantity]."""

    code: str = "INVALID_REPAIR_QUANTITY"

    def __init__(self, floor: str, requested: int, available: int):
        self.floor = floor
        self.requested = requested
        self.available = available
        super().__init__(
            f"Repair quantity on {floor} must be between 1 and {available}, "
            f"got {requested}"
        )


# =============================================================================
# Audit errors
# =============================================================================


class AuditError(ProductionKernelError):
    """Base for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditSinkError(AuditError):
    """The audit sink failed to record an entry. Soft failure."""

    code: str = "AUDIT_SINK_ERROR"

    def __init__(self, action: str, article_id: str, reason: str):
        self.action = action
        self.article_id = article_id
        self.reason = reason
        super().__init__(
            f"Audit entry {action} for article {article_id} not recorded: {reason}"
        )


class AuditChainBrokenError(AuditError):
    """Hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, seq: int, expected_hash: str, actual_hash: str):
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# =============================================================================
# Concurrency errors
# =============================================================================


class ConcurrencyError(ProductionKernelError):
    """Base for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Article row changed underneath the current transaction."""

    code: str = "OPTIMISTIC_LOCK_FAILED"

    def __init__(self, article_id: str, expected_version: int):
        self.article_id = article_id
        self.expected_version = expected_version
        super().__init__(
            f"Article {article_id} was modified concurrently "
            f"(expected version {expected_version})"
        )


class ArticleLockTimeoutError(ConcurrencyError):
    """The per-article lock could not be acquired in time."""

    code: str = "ARTICLE_LOCK_TIMEOUT"

    def __init__(self, article_id: str, timeout: float):
        self.article_id = article_id
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout}s waiting for article {article_id}"
        )


# =============================================================================
# Immutability errors
# =============================================================================


class ImmutabilityError(ProductionKernelError):
    """Base for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted modification of an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )
