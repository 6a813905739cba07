"""
Tests for ArticleLifecycleController against an in-memory database.

Covers:
- End-to-end floor scenarios (advance, overproduction, quality fold-in)
- Manual transfer, repair loopback, M2 regrade, defects, final confirmation
- All-or-nothing: rejected operations leave the stored article untouched
- Version bump, order floor mirror, audit entries, structured logs
"""

from uuid import uuid4

import pytest
from sqlalchemy import update

from production_engines.floor_lifecycle import FloorLifecycle
from production_engines.propagation import PropagationMode
from production_engines.quality_inspection import InspectionRequest
from production_engines.quantity_update import QualityFields
from production_kernel.domain.article_state import ArticleStatus, RepairStatus
from production_kernel.domain.audit import ArticleAction, OperationMetadata
from production_kernel.domain.floors import Floor
from production_kernel.exceptions import (
    ArticleNotFoundError,
    ArticleNotOnFloorError,
    ExceedsReceivedError,
    FloorNotInSequenceError,
    FloorNotReachableError,
    GradedExceedsReceivedError,
    InvalidDefectQuantityError,
    InvalidQuantityError,
    InvalidRepairQuantityError,
    InvalidRepairSourceError,
    InvalidTargetFloorError,
    NoCompletedWorkError,
    NoNextFloorError,
    OptimisticLockError,
    QualityNotCategorizedError,
    RepairReviewPendingError,
    UnknownFloorError,
)
from production_kernel.models.article import Article
from production_kernel.models.production_order import ProductionOrder
from production_kernel.selectors.article_selector import ArticleSelector
from production_services.article_lifecycle import ArticleLifecycleController

TWO_FLOORS = [Floor.KNITTING, Floor.LINKING]
WITH_CHECKING = [Floor.KNITTING, Floor.CHECKING, Floor.WASHING]
WITH_FINAL = [Floor.KNITTING, Floor.FINAL_CHECKING, Floor.WAREHOUSE]
FOUR_FLOORS = [Floor.KNITTING, Floor.LINKING, Floor.CHECKING, Floor.WASHING]


class TestUpdateProgress:
    """Additive progress, propagation and advancement."""

    def test_completing_knitting_advances_to_linking(self, controller, make_article, metadata):
        """Knitting.received=1000, +1000 advances the article to Linking."""
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)

        result = controller.update_progress(article_id, Floor.KNITTING, 1000, metadata)

        state = result.article
        assert state.current_floor == Floor.LINKING
        assert state.record(Floor.LINKING).received == 1000
        assert state.record(Floor.KNITTING).transferred == 1000
        assert state.status == ArticleStatus.IN_PROGRESS
        assert state.quantity_from_previous_floor == 1000
        assert result.actions() == (
            ArticleAction.QUANTITY_UPDATED,
            ArticleAction.STATUS_CHANGED,
            ArticleAction.PROGRESS_UPDATED,
            ArticleAction.TRANSFERRED,
            ArticleAction.FLOOR_ADVANCED,
        )

    def test_overproduction_flows_downstream_in_full(self, controller, make_article, audit_sink):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)

        controller.update_progress(article_id, Floor.KNITTING, 700)
        result = controller.update_progress(article_id, Floor.KNITTING, 500)

        knitting = result.article.record(Floor.KNITTING)
        assert knitting.completed == 1200
        assert knitting.remaining == 0
        assert result.article.record(Floor.LINKING).received == 1200
        assert result.article.current_floor == Floor.LINKING
        transferred = audit_sink.for_action(ArticleAction.TRANSFERRED)
        assert sum(e.quantity for e in transferred) == 1200

    def test_partial_progress_is_forwarded_without_advancing(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)

        result = controller.update_progress(article_id, Floor.KNITTING, 300)

        assert result.article.current_floor == Floor.KNITTING
        assert result.article.record(Floor.LINKING).received == 300
        assert result.article.progress == 15

    def test_downstream_floor_accepts_forwarded_work(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 300)

        result = controller.update_progress(article_id, Floor.LINKING, 200)

        assert result.article.record(Floor.LINKING).completed == 200
        assert result.article.current_floor == Floor.KNITTING

    def test_terminal_floor_completes_article(self, controller, make_article, audit_sink):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 100)

        result = controller.update_progress(article_id, Floor.LINKING, 100)

        assert result.article.status == ArticleStatus.COMPLETED
        assert result.article.completed_at is not None
        assert result.article.progress == 100
        assert len(audit_sink.for_action(ArticleAction.ARTICLE_COMPLETED)) == 1

    def test_floor_spellings_are_normalized(self, controller, make_article):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        result = controller.update_progress(article_id, "  KNITTING ", 10)

        assert result.article.record(Floor.KNITTING).completed == 10

    def test_deployment_aliases(self, session, make_article, audit_sink):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        aliased = ArticleLifecycleController(
            session, audit_sink=audit_sink, aliases={"knit": Floor.KNITTING}
        )

        result = aliased.update_progress(article_id, "Knit", 10)

        assert result.article.record(Floor.KNITTING).completed == 10

    def test_generic_quality_fields_on_inspection_floor(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 100)

        result = controller.update_progress(
            article_id,
            Floor.CHECKING,
            40,
            quality=QualityFields(m1=40, m2=3),
        )

        checking = result.article.record(Floor.CHECKING)
        assert checking.completed == 40
        assert checking.m1_quantity == 40
        assert checking.m2_quantity == 3
        assert checking.m1_transferred == 40
        assert result.article.record(Floor.WASHING).received == 40

    @pytest.mark.parametrize(
        "floor, delta, error",
        [
            (Floor.KNITTING, 0, InvalidQuantityError),
            (Floor.KNITTING, -10, InvalidQuantityError),
            (Floor.LINKING, 5, FloorNotReachableError),
            (Floor.DISPATCH, 5, FloorNotInSequenceError),
            ("Dyeing", 5, UnknownFloorError),
        ],
    )
    def test_rejected_updates_change_nothing(
        self, controller, make_article, audit_sink, session, floor, delta, error
    ):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        entries_before = len(audit_sink.entries)

        with pytest.raises(error):
            controller.update_progress(article_id, floor, delta)

        stored = session.get(Article, article_id)
        assert stored.version == 1
        assert stored.status == ArticleStatus.PENDING.value
        assert all(row.completed == 0 for row in stored.floor_quantities)
        assert len(audit_sink.entries) == entries_before

    def test_exceeding_received_rejected(self, controller, make_article):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 30)

        with pytest.raises(ExceedsReceivedError):
            controller.update_progress(article_id, Floor.LINKING, 31)

    def test_unknown_article(self, controller, engine):
        with pytest.raises(ArticleNotFoundError):
            controller.update_progress(uuid4(), Floor.KNITTING, 1)


class TestPersistence:
    """Write-back, version and order mirror."""

    def test_version_bumped_per_operation(self, controller, make_article, session):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        controller.update_progress(article_id, Floor.KNITTING, 10)
        controller.update_progress(article_id, Floor.KNITTING, 10)

        assert session.get(Article, article_id).version == 3

    def test_counters_written_back(self, controller, make_article, session):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        controller.update_progress(article_id, Floor.KNITTING, 100)

        state = ArticleSelector(session).get_state(article_id)
        assert state.current_floor == Floor.LINKING
        assert state.record(Floor.KNITTING).completed == 100
        assert state.record(Floor.LINKING).received == 100

    def test_order_mirrors_most_advanced_floor(self, controller, make_article, session):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        controller.update_progress(article_id, Floor.KNITTING, 100)

        order_id = session.get(Article, article_id).order_id
        assert session.get(ProductionOrder, order_id).current_floor == Floor.LINKING

    def test_lost_update_raises_optimistic_lock_error(
        self, controller, make_article, session, monkeypatch
    ):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        table = Article.__table__
        original = controller._check_invariants

        def concurrent_writer(state):
            original(state)
            session.execute(
                update(table)
                .where(table.c.id == article_id)
                .values(version=table.c.version + 1)
            )

        monkeypatch.setattr(controller, "_check_invariants", concurrent_writer)

        with pytest.raises(OptimisticLockError) as exc_info:
            controller.update_progress(article_id, Floor.KNITTING, 10)

        assert exc_info.value.expected_version == 1


class TestTransferFloor:
    """Manual forwarding of completed backlog."""

    def test_backlog_is_forwarded(self, controller, make_article, session):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)
        knitting = session.get(Article, article_id).floor_quantities[0]
        knitting.completed = 400
        session.flush()

        summary = controller.transfer_floor(article_id, Floor.KNITTING)

        assert (summary.from_floor, summary.to_floor, summary.quantity) == (
            Floor.KNITTING,
            Floor.LINKING,
            400,
        )
        assert summary.article.record(Floor.LINKING).received == 400
        assert summary.article.status == ArticleStatus.IN_PROGRESS

    def test_already_forwarded_work_moves_nothing(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 200)

        summary = controller.transfer_floor(article_id, Floor.KNITTING)

        assert summary.quantity == 0
        assert summary.article.record(Floor.LINKING).received == 200

    def test_no_completed_work(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)

        with pytest.raises(NoCompletedWorkError):
            controller.transfer_floor(article_id, Floor.KNITTING)

    def test_no_next_floor(self, controller, make_article):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 100)
        controller.update_progress(article_id, Floor.LINKING, 40)

        with pytest.raises(NoNextFloorError):
            controller.transfer_floor(article_id, Floor.LINKING)

    def test_floor_not_in_sequence(self, controller, make_article):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        with pytest.raises(FloorNotInSequenceError):
            controller.transfer_floor(article_id, Floor.WAREHOUSE)


class TestQualityInspect:
    """Inspection through the controller."""

    def test_m1_fold_in_pushes_only_m1(self, controller, make_article):
        """Checking received=1000 completed=200; m1=800 pushes 800 forward."""
        article_id = make_article(planned=1000, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 1000)
        controller.update_progress(article_id, Floor.CHECKING, 200)

        result = controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.CHECKING, m1=800)
        )

        checking = result.article.record(Floor.CHECKING)
        assert checking.completed == 1000
        assert checking.remaining == 0
        assert checking.m1_quantity == 800
        assert checking.m1_transferred == 800
        assert result.article.record(Floor.WASHING).received == 800
        assert result.article.current_floor == Floor.WASHING
        assert ArticleAction.M1_TRANSFERRED in result.actions()

    def test_automatic_floor_selection(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 100)

        result = controller.quality_inspect(article_id, InspectionRequest(m1=60, m2=5))

        assert result.entries[0].from_floor == Floor.CHECKING
        assert result.article.record(Floor.CHECKING).repair_status == RepairStatus.IN_REVIEW

    def test_floor_alias_accepted(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 100)

        result = controller.quality_inspect(article_id, InspectionRequest(floor="checking", m1=10))

        assert result.article.record(Floor.CHECKING).m1_quantity == 10

    def test_forwarded_m1_completes_inspection_floor(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 100)

        result = controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.CHECKING, m1=30)
        )

        assert result.article.record(Floor.WASHING).received == 30
        assert result.article.current_floor == Floor.WASHING

    def test_non_inspection_floor_rejected(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)

        with pytest.raises(InvalidTargetFloorError):
            controller.quality_inspect(
                article_id, InspectionRequest(floor=Floor.WASHING, m1=1)
            )

    def test_unknown_floor_rejected_as_invalid_target(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_CHECKING)

        with pytest.raises(InvalidTargetFloorError) as exc_info:
            controller.quality_inspect(article_id, InspectionRequest(floor="Dyeing", m1=1))

        assert isinstance(exc_info.value.__cause__, UnknownFloorError)


class TestGradedTotalBound:
    """Grades on an inspection floor never exceed what it received."""

    def _at_checking(self, controller, make_article):
        """Planned 100, Knitting and Linking complete; Checking received 100."""
        article_id = make_article(planned=100, sequence=FOUR_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 100)
        controller.update_progress(article_id, Floor.LINKING, 100)
        return article_id

    def test_oversized_inspection_rejected(self, controller, make_article):
        article_id = self._at_checking(controller, make_article)
        before = controller.get_article(article_id)

        with pytest.raises(GradedExceedsReceivedError):
            controller.quality_inspect(
                article_id, InspectionRequest(floor=Floor.CHECKING, m1=100, m2=500)
            )

        assert controller.get_article(article_id) == before
        with pytest.raises(InvalidRepairQuantityError):
            controller.repair_transfer(Floor.CHECKING, article_id, quantity=500)
        assert controller.get_article(article_id).record(Floor.LINKING).received == 100

    def test_oversized_generic_grades_rejected(self, controller, make_article):
        article_id = self._at_checking(controller, make_article)
        before = controller.get_article(article_id)

        with pytest.raises(GradedExceedsReceivedError):
            controller.update_progress(
                article_id, Floor.CHECKING, 10, quality=QualityFields(m1=10, m2=900)
            )

        assert controller.get_article(article_id) == before
        with pytest.raises(InvalidRepairQuantityError):
            controller.repair_transfer(Floor.CHECKING, article_id)

    def test_repair_bounded_by_received_after_grading(self, controller, make_article):
        article_id = self._at_checking(controller, make_article)
        controller.update_progress(
            article_id, Floor.CHECKING, 90, quality=QualityFields(m1=90, m2=10)
        )

        summary = controller.repair_transfer(Floor.CHECKING, article_id)

        checking = summary.article.record(Floor.CHECKING)
        assert checking.graded_total <= checking.received
        assert summary.article.record(Floor.LINKING).received == 110
        assert summary.article.record(Floor.LINKING).repair_received == 10

    def test_generic_m2_sets_review_status(self, controller, make_article):
        article_id = self._at_checking(controller, make_article)

        result = controller.update_progress(
            article_id, Floor.CHECKING, 40, quality=QualityFields(m1=40, m2=3)
        )

        assert result.article.record(Floor.CHECKING).repair_status == RepairStatus.IN_REVIEW


class TestRepairTransfer:
    """Repair loopback through the controller."""

    def _graded_article(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 1000)
        controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.CHECKING, m1=900, m2=60)
        )
        return article_id

    def test_oversized_request_mutates_nothing(self, controller, make_article, session):
        article_id = self._graded_article(controller, make_article)
        before = controller.get_article(article_id)

        with pytest.raises(InvalidRepairQuantityError):
            controller.repair_transfer(Floor.CHECKING, article_id, quantity=61)

        assert controller.get_article(article_id) == before

    def test_repair_returns_stock_to_previous_floor(self, controller, make_article, metadata):
        article_id = self._graded_article(controller, make_article)

        summary = controller.repair_transfer(
            Floor.CHECKING, article_id, quantity=25, metadata=metadata
        )

        assert summary.to_floor == Floor.KNITTING
        assert summary.quantity == 25
        assert summary.m2_remaining == 35
        knitting = summary.article.record(Floor.KNITTING)
        assert knitting.received == 1025
        assert knitting.repair_received == 25
        checking = summary.article.record(Floor.CHECKING)
        assert checking.completed == 900
        assert checking.m2_transferred == 25
        assert checking.repair_remarks == metadata.remarks

    def test_repaired_work_reenters_flow(self, controller, make_article):
        article_id = self._graded_article(controller, make_article)
        controller.repair_transfer(Floor.CHECKING, article_id)

        result = controller.update_progress(article_id, Floor.KNITTING, 60)

        assert result.article.record(Floor.CHECKING).received == 1060

    @pytest.mark.parametrize("floor", [Floor.WASHING, "Dyeing"])
    def test_invalid_source(self, controller, make_article, floor):
        article_id = self._graded_article(controller, make_article)

        with pytest.raises(InvalidRepairSourceError):
            controller.repair_transfer(floor, article_id, quantity=1)


class TestShiftM2:

    def test_shifted_m1_moves_forward(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=WITH_CHECKING)
        controller.update_progress(article_id, Floor.KNITTING, 1000)
        controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.CHECKING, m1=900, m2=60)
        )

        result = controller.shift_m2_items(
            article_id, Floor.CHECKING, from_m2=60, to_m1=50, to_m3=10
        )

        checking = result.article.record(Floor.CHECKING)
        assert checking.m2_quantity == 0
        assert checking.m1_quantity == 950
        assert checking.m3_quantity == 10
        assert checking.repair_status == RepairStatus.NOT_REQUIRED
        assert result.article.record(Floor.WASHING).received == 950


class TestKnittingDefects:

    def test_defects_recorded_and_progress_adjusted(self, controller, make_article, session):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 500)

        result = controller.update_knitting_defects(article_id, 20)

        assert result.article.record(Floor.KNITTING).m4_quantity == 20
        assert result.article.progress == 24
        status = ArticleSelector(session).floor_status(article_id, Floor.KNITTING)
        assert status.good_quantity == 480

    def test_defects_beyond_completed_rejected(self, controller, make_article):
        article_id = make_article(planned=1000, sequence=TWO_FLOORS)
        controller.update_progress(article_id, Floor.KNITTING, 10)

        with pytest.raises(InvalidDefectQuantityError):
            controller.update_knitting_defects(article_id, 11)


class TestFinalQuality:
    """Final confirmation on the final inspection floor."""

    def _on_final_checking(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_FINAL)
        controller.update_progress(article_id, Floor.KNITTING, 100)
        return article_id

    def test_requires_article_on_final_checking(self, controller, make_article):
        article_id = make_article(planned=100, sequence=WITH_FINAL)

        with pytest.raises(ArticleNotOnFloorError):
            controller.confirm_final_quality(article_id)

    def test_requires_recorded_grades(self, controller, make_article):
        article_id = self._on_final_checking(controller, make_article)

        with pytest.raises(QualityNotCategorizedError):
            controller.confirm_final_quality(article_id)

    def test_pending_repair_blocks_confirmation_not_rejection(
        self, controller, make_article, audit_sink
    ):
        article_id = self._on_final_checking(controller, make_article)
        controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.FINAL_CHECKING, m2=5, m3=2)
        )

        with pytest.raises(RepairReviewPendingError):
            controller.confirm_final_quality(article_id)

        result = controller.confirm_final_quality(article_id, confirmed=False)
        assert result.article.final_quality_confirmed is False
        assert result.actions() == (ArticleAction.FINAL_QUALITY_REJECTED,)

    def test_confirmation_after_review(self, controller, make_article):
        article_id = self._on_final_checking(controller, make_article)
        controller.quality_inspect(
            article_id, InspectionRequest(floor=Floor.FINAL_CHECKING, m2=5, m3=2)
        )
        controller.shift_m2_items(article_id, Floor.FINAL_CHECKING, from_m2=5, to_m3=5)

        result = controller.confirm_final_quality(article_id, metadata=OperationMetadata(actor="qa"))

        assert result.article.final_quality_confirmed is True
        assert result.entries[0].action == ArticleAction.FINAL_QUALITY_CONFIRMED
        assert result.entries[0].actor == "qa"


class TestAuditAndLogging:

    def test_entries_stamped_with_actor_and_clock(
        self, controller, make_article, audit_sink, deterministic_clock, metadata
    ):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        controller.update_progress(article_id, Floor.KNITTING, 10, metadata)

        entry = audit_sink.for_action(ArticleAction.QUANTITY_UPDATED)[0]
        assert entry.actor == metadata.actor
        assert entry.remarks == metadata.remarks
        assert entry.timestamp == deterministic_clock.now()
        assert entry.article_id == article_id

    def test_operation_log_carries_context(self, controller, make_article, captured_logs):
        article_id = make_article(planned=100, sequence=TWO_FLOORS)

        controller.update_progress(
            article_id,
            Floor.KNITTING,
            10,
            OperationMetadata(actor="op-7", correlation_id="req-42"),
        )

        applied = [r for r in captured_logs() if r["message"] == "article_operation_applied"]
        assert len(applied) == 1
        assert applied[0]["operation"] == "update_progress"
        assert applied[0]["article_id"] == str(article_id)
        assert applied[0]["correlation_id"] == "req-42"
        assert applied[0]["actor_id"] == "op-7"


class TestPropagationModes:
    """Fixed-point settles every complete floor; single pass advances once."""

    def _knitting_and_linking_done(self, session, make_article):
        article_id = make_article(
            planned=100, sequence=[Floor.KNITTING, Floor.LINKING, Floor.CHECKING]
        )
        knitting, linking, _ = session.get(Article, article_id).floor_quantities
        knitting.completed = knitting.transferred = 100
        linking.received = linking.completed = 100
        session.flush()
        return article_id

    def _controller(self, session, audit_sink, mode):
        return ArticleLifecycleController(
            session, audit_sink=audit_sink, lifecycle=FloorLifecycle(mode=mode)
        )

    def test_fixed_point_advances_through_complete_floors(self, session, make_article, audit_sink):
        article_id = self._knitting_and_linking_done(session, make_article)
        controller = self._controller(session, audit_sink, PropagationMode.FIXED_POINT)

        summary = controller.transfer_floor(article_id, Floor.LINKING)

        assert summary.quantity == 100
        assert summary.article.current_floor == Floor.CHECKING
        assert summary.article.quantity_from_previous_floor == 100

    def test_single_pass_advances_one_floor(self, session, make_article, audit_sink):
        article_id = self._knitting_and_linking_done(session, make_article)
        controller = self._controller(session, audit_sink, PropagationMode.SINGLE_PASS)

        summary = controller.transfer_floor(article_id, Floor.LINKING)

        assert summary.quantity == 100
        assert summary.article.current_floor == Floor.LINKING
        assert summary.article.record(Floor.CHECKING).received == 100
