"""Tests for the engine trace decorator."""

from datetime import datetime, timezone
from decimal import Decimal

from rental_engines.exception_classifier import classify_exception
from rental_engines.late_fee import assess
from rental_engines.tracer import compute_input_fingerprint
from rental_kernel.domain.return_state import ReturnState


def _engine_traces(records):
    return [r for r in records if r.get("trace_type") == "RETURN_ENGINE_TRACE"]


class TestFingerprint:
    def test_stable_for_identical_inputs(self):
        args = {"fee": Decimal("30.00"), "state": ReturnState.CLOSED_OUT}
        assert compute_input_fingerprint(("fee", "state"), args) == compute_input_fingerprint(
            ("fee", "state"), dict(args),
        )

    def test_changes_with_inputs(self):
        a = compute_input_fingerprint(("fee",), {"fee": Decimal("30.00")})
        b = compute_input_fingerprint(("fee",), {"fee": Decimal("31.00")})
        assert a != b
        assert len(a) == 16

    def test_missing_fields_are_allowed(self):
        assert compute_input_fingerprint(("absent",), {})


class TestTracedEngine:
    def test_trace_emitted_per_call(self, captured_logs):
        classify_exception(1)
        (trace,) = _engine_traces(captured_logs())
        assert trace["engine_name"] == "exception_classifier"
        assert trace["engine_version"] == "1.0"
        assert trace["logger"] == "rental_kernel.engines.tracer"

    def test_positional_and_keyword_calls_share_fingerprint(self, captured_logs):
        end = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
        returned = datetime(2024, 6, 1, 11, 40, tzinfo=timezone.utc)
        assess(end, returned, 30, Decimal("15"))
        assess(
            scheduled_end=end, returned_at=returned, grace_minutes=30, hourly_rate=Decimal("15"),
        )
        first, second = _engine_traces(captured_logs())
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_decorated_function_keeps_its_name(self):
        assert classify_exception.__name__ == "classify_exception"
