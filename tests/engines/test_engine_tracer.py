"""
Tests for the engine tracer decorator.

Every traced call emits one APPRAISAL_ENGINE_TRACE record whose input
fingerprint depends only on the fingerprinted argument values.
"""

from decimal import Decimal

from appraisal_engines.scoring import ScoreCalculator
from appraisal_engines.tracer import (
    TRACE_TYPE,
    compute_input_fingerprint,
    traced_engine,
)
from appraisal_kernel.domain.dtos import RatingConfigInfo
from appraisal_kernel.domain.lifecycle import CalculationMethod


@traced_engine("sample", "2.1", fingerprint_fields=("a", "b"))
def _sample(a, b, c=None):
    return a + b


def _traces(records):
    return [r for r in records if r.get("trace_type") == TRACE_TYPE]


class TestTracedEngine:

    def test_emits_trace_record(self, captured_logs):
        assert _sample(1, 2) == 3

        traces = _traces(captured_logs())
        assert len(traces) == 1
        trace = traces[0]
        assert trace["message"] == TRACE_TYPE
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert len(trace["input_fingerprint"]) == 16
        assert trace["duration_ms"] >= 0

    def test_positional_and_keyword_calls_match(self, captured_logs):
        _sample(1, 2)
        _sample(b=2, a=1)

        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_unfingerprinted_argument_ignored(self, captured_logs):
        _sample(1, 2, c="x")
        _sample(1, 2, c="y")

        first, second = _traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_different_inputs_differ(self):
        assert compute_input_fingerprint(("a",), {"a": 1}) != compute_input_fingerprint(
            ("a",), {"a": 2},
        )

    def test_mapping_order_irrelevant(self):
        assert compute_input_fingerprint(("m",), {"m": {"x": 1, "y": 2}}) == (
            compute_input_fingerprint(("m",), {"m": {"y": 2, "x": 1}})
        )

    def test_scoring_compute_is_traced(self, captured_logs):
        config = RatingConfigInfo(
            id=None, name="mgr", calculation_method=CalculationMethod.MANAGER_ONLY,
        )
        ScoreCalculator().compute(None, Decimal("4"), None, config)

        traces = _traces(captured_logs())
        assert [t["engine_name"] for t in traces] == ["scoring"]
        assert traces[0]["function"] == "ScoreCalculator.compute"
