"""Tests for the engine tracer (jobwork_engines.tracer)."""

from jobwork_engines.totals import calculate_totals
from jobwork_engines.tracer import compute_input_fingerprint, traced_engine
from tests.builders import dispatch, make_voucher, receive


class TestFingerprint:
    def test_deterministic(self):
        args = {"vendor_id": "vendor-a", "limits": {"b": 2, "a": 1}}
        first = compute_input_fingerprint(("vendor_id", "limits"), args)
        second = compute_input_fingerprint(("vendor_id", "limits"), dict(args))
        assert first == second
        assert len(first) == 16

    def test_changes_with_ledger(self):
        short = make_voucher(dispatch(100))
        longer = make_voucher(dispatch(100), receive("vendor-a", 100))
        assert compute_input_fingerprint(("voucher",), {"voucher": short}) != (
            compute_input_fingerprint(("voucher",), {"voucher": longer})
        )

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("x",), {}) == (
            compute_input_fingerprint(("x",), {"x": None})
        )


class TestTracedEngine:
    def test_emits_trace_record(self, captured_logs):
        calculate_totals(make_voucher(dispatch(100)))

        traces = [r for r in captured_logs() if r["message"] == "JOBWORK_ENGINE_TRACE"]
        assert traces
        trace = traces[-1]
        assert trace["engine_name"] == "totals"
        assert trace["engine_version"] == "1.0"
        assert trace["function"] == "calculate_totals"
        assert len(trace["input_fingerprint"]) == 16

    def test_keyword_and_positional_fingerprints_match(self, captured_logs):
        @traced_engine("adder", "0.1", fingerprint_fields=("a", "b"))
        def adder(a, b=0):
            return a + b

        assert adder(1, 2) == 3
        assert adder(a=1, b=2) == 3

        traces = [r for r in captured_logs() if r.get("engine_name") == "adder"]
        assert len(traces) == 2
        assert traces[0]["input_fingerprint"] == traces[1]["input_fingerprint"]

    def test_preserves_metadata(self):
        assert calculate_totals.__name__ == "calculate_totals"
        assert "seven totals" in calculate_totals.__doc__
