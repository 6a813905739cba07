"""
Tests for the engine tracer decorator and input fingerprints.
"""

import pytest

from production_engines.propagation import PropagationMode
from production_engines.tracer import compute_input_fingerprint, traced_engine


@traced_engine("sample", "2.1", fingerprint_fields=("floor", "quantity"))
def _sample(*, floor, quantity, fail=False):
    if fail:
        raise ValueError("rejected by sample")
    return quantity * 2


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "PRODUCTION_ENGINE_TRACE"]


class TestFingerprint:

    def test_fingerprint_is_deterministic(self):
        a = compute_input_fingerprint(("floor", "quantity"), {"floor": "Knitting", "quantity": 5})
        b = compute_input_fingerprint(("floor", "quantity"), {"quantity": 5, "floor": "Knitting"})

        assert a == b
        assert len(a) == 16

    def test_fingerprint_changes_with_input(self):
        a = compute_input_fingerprint(("quantity",), {"quantity": 5})
        b = compute_input_fingerprint(("quantity",), {"quantity": 6})

        assert a != b

    def test_missing_field_recorded_as_null(self):
        assert compute_input_fingerprint(("floor",), {}) == compute_input_fingerprint(
            ("floor",), {"floor": None}
        )

    def test_enum_fingerprints_by_value(self):
        assert compute_input_fingerprint(
            ("mode",), {"mode": PropagationMode.SINGLE_PASS}
        ) == compute_input_fingerprint(("mode",), {"mode": "single_pass"})


class TestTracedEngine:

    def test_successful_call_emits_ok_trace(self, captured_logs):
        assert _sample(floor="Linking", quantity=4) == 8

        traces = _traces(captured_logs)
        assert len(traces) == 1
        trace = traces[0]
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["outcome"] == "ok"
        assert trace["logger"] == "production_kernel.engines.tracer"
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("floor", "quantity"), {"floor": "Linking", "quantity": 4}
        )

    def test_failed_call_emits_rejected_trace_and_reraises(self, captured_logs):
        with pytest.raises(ValueError, match="rejected by sample"):
            _sample(floor="Linking", quantity=4, fail=True)

        traces = _traces(captured_logs)
        assert [t["outcome"] for t in traces] == ["rejected"]
