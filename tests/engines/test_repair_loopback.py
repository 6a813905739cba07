"""
Tests for RepairLoopbackEngine.
"""

import pytest

from production_engines.repair_loopback import RepairLoopbackEngine
from production_kernel.domain.article_state import RepairStatus
from production_kernel.domain.audit import ArticleAction
from production_kernel.domain.floors import Floor
from production_kernel.exceptions import (
    InvalidRepairQuantityError,
    InvalidRepairSourceError,
    InvalidTargetFloorError,
)

SEQUENCE = [Floor.KNITTING, Floor.LINKING, Floor.CHECKING, Floor.WASHING]


def _graded(state_factory, **checking):
    counters = {
        "received": 1000,
        "completed": 900,
        "transferred": 900,
        "m1_quantity": 900,
        "m1_transferred": 900,
        "m2_quantity": 60,
        "repair_status": RepairStatus.IN_REVIEW,
    }
    counters.update(checking)
    return state_factory(
        SEQUENCE,
        current_floor=Floor.WASHING,
        floors={
            Floor.KNITTING: {"completed": 1000, "transferred": 1000},
            Floor.LINKING: {"received": 1000, "completed": 1000, "transferred": 1000},
            Floor.CHECKING: counters,
        },
    )


class TestRepairTransfer:

    def setup_method(self):
        self.engine = RepairLoopbackEngine()

    def test_defaults_send_all_m2_to_previous_floor(self, state_factory):
        state = _graded(state_factory)

        outcome = self.engine.transfer(state, floor=Floor.CHECKING)

        source = state.record(Floor.CHECKING)
        target = state.record(Floor.LINKING)
        assert outcome.to_floor == Floor.LINKING
        assert outcome.quantity == 60
        assert source.m2_quantity == 0
        assert source.m2_transferred == 60
        assert source.repair_status == RepairStatus.NOT_REQUIRED
        assert target.received == 1060
        assert target.repair_received == 60
        assert outcome.event.action == ArticleAction.REPAIR_TRANSFERRED

    def test_partial_transfer_to_explicit_target(self, state_factory):
        state = _graded(state_factory)

        outcome = self.engine.transfer(
            state,
            floor=Floor.CHECKING,
            quantity=25,
            target_floor=Floor.KNITTING,
            remarks="relink seams",
        )

        source = state.record(Floor.CHECKING)
        assert outcome.to_floor == Floor.KNITTING
        assert source.m2_quantity == 35
        assert source.repair_status == RepairStatus.IN_REVIEW
        assert source.repair_remarks == "relink seams"
        assert state.record(Floor.KNITTING).repair_received == 25

    def test_source_completed_and_transferred_untouched(self, state_factory):
        state = _graded(state_factory)

        self.engine.transfer(state, floor=Floor.CHECKING, quantity=10)

        source = state.record(Floor.CHECKING)
        assert source.completed == 900
        assert source.transferred == 900

    def test_m2_transferred_accumulates(self, state_factory):
        state = _graded(state_factory)

        self.engine.transfer(state, floor=Floor.CHECKING, quantity=10)
        self.engine.transfer(state, floor=Floor.CHECKING, quantity=20)

        assert state.record(Floor.CHECKING).m2_transferred == 30

    @pytest.mark.parametrize("quantity", [0, -3, 61])
    def test_quantity_out_of_bounds_mutates_nothing(self, state_factory, quantity):
        state = _graded(state_factory)
        before = state.copy()

        with pytest.raises(InvalidRepairQuantityError) as exc_info:
            self.engine.transfer(state, floor=Floor.CHECKING, quantity=quantity)

        assert exc_info.value.available == 60
        assert state == before

    def test_no_m2_balance_rejected(self, state_factory):
        state = _graded(state_factory, m2_quantity=0)

        with pytest.raises(InvalidRepairQuantityError):
            self.engine.transfer(state, floor=Floor.CHECKING)

    def test_production_floor_is_not_a_repair_source(self, state_factory):
        state = _graded(state_factory)

        with pytest.raises(InvalidRepairSourceError):
            self.engine.transfer(state, floor=Floor.WASHING, quantity=1)

    def test_inspection_floor_outside_sequence_rejected(self, state_factory):
        state = _graded(state_factory)

        with pytest.raises(InvalidRepairSourceError):
            self.engine.transfer(state, floor=Floor.FINAL_CHECKING, quantity=1)

    def test_first_floor_inspection_has_nowhere_to_send(self, state_factory):
        state = state_factory([Floor.CHECKING, Floor.WASHING])
        state.record(Floor.CHECKING).m2_quantity = 5

        with pytest.raises(InvalidRepairSourceError):
            self.engine.transfer(state, floor=Floor.CHECKING)

    @pytest.mark.parametrize("target", [Floor.CHECKING, Floor.WASHING])
    def test_target_must_precede_source(self, state_factory, target):
        state = _graded(state_factory)

        with pytest.raises(InvalidTargetFloorError):
            self.engine.transfer(state, floor=Floor.CHECKING, target_floor=target)

        assert state.record(Floor.CHECKING).m2_quantity == 60

    def test_target_outside_sequence_rejected(self, state_factory):
        state = _graded(state_factory)

        with pytest.raises(InvalidTargetFloorError):
            self.engine.transfer(state, floor=Floor.CHECKING, target_floor=Floor.BOARDING)
