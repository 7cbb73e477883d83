"""
Tests for the late-return fee engine.

Tests cover:
- calculate: grace period, whole-hour rounding, input validation
- assess: on time / grace / late messages
- approve: approval vs override, reason policy, negative fees
- late_fee_status / effective_fee precedence
- Property tests for grace and monotonicity
"""

import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from rental_engines import late_fee
from rental_kernel.domain.late_fee import LateFeeStatus
from rental_kernel.exceptions import (
    NegativeFeeError,
    OverrideReasonTooShortError,
    ValidationError,
)

END = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)
WAIVE_REASON = "Customer called ahead, traffic accident, waived per manager"

rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2)
graces = st.integers(min_value=0, max_value=240)


# =========================================================================
# calculate
# =========================================================================


class TestCalculate:
    def test_on_time_is_free(self):
        assert late_fee.calculate(0, 30, Decimal("25")) == Decimal("0.00")

    def test_early_return_is_free(self):
        assert late_fee.calculate(-45, 30, Decimal("25")) == Decimal("0.00")

    def test_grace_boundary_is_free(self):
        assert late_fee.calculate(30, 30, Decimal("25")) == Decimal("0.00")

    def test_one_minute_past_grace_bills_an_hour(self):
        assert late_fee.calculate(31, 30, Decimal("25")) == Decimal("25.00")

    def test_hundred_minutes_at_fifteen(self):
        assert late_fee.calculate(100, 30, Decimal("15")) == Decimal("30.00")

    def test_zero_grace(self):
        assert late_fee.calculate(60, 0, Decimal("10")) == Decimal("10.00")
        assert late_fee.calculate(61, 0, Decimal("10")) == Decimal("20.00")

    def test_fee_is_quantized_to_cents(self):
        assert late_fee.calculate(90, 0, "12.345") == Decimal("24.69")

    def test_negative_grace_raises(self):
        with pytest.raises(ValidationError):
            late_fee.calculate(100, -1, Decimal("15"))

    def test_negative_rate_raises(self):
        with pytest.raises(ValidationError):
            late_fee.calculate(100, 30, Decimal("-15"))


class TestCalculateProperties:
    @given(grace=graces, rate=rates, data=st.data())
    @settings(max_examples=200)
    def test_within_grace_is_free(self, grace, rate, data):
        minutes = data.draw(st.integers(min_value=-600, max_value=grace))
        assert late_fee.calculate(minutes, grace, rate) == Decimal("0.00")

    @given(grace=graces, rate=rates, extra=st.integers(min_value=1, max_value=10_000))
    @settings(max_examples=200)
    def test_past_grace_bills_started_hours(self, grace, rate, extra):
        minutes = grace + extra
        expected = late_fee.to_money(math.ceil(extra / 60) * rate)
        assert late_fee.calculate(minutes, grace, rate) == expected

    @given(
        grace=graces,
        rate=rates,
        a=st.integers(min_value=0, max_value=5_000),
        b=st.integers(min_value=0, max_value=5_000),
    )
    def test_non_decreasing_in_minutes_late(self, grace, rate, a, b):
        low, high = sorted((a, b))
        assert late_fee.calculate(low, grace, rate) <= late_fee.calculate(high, grace, rate)


# =========================================================================
# assess
# =========================================================================


class TestAssess:
    def test_returned_within_grace(self):
        result = late_fee.assess(END, END + timedelta(minutes=25), 30, Decimal("25"))
        assert result.fee == Decimal("0.00")
        assert result.is_late is False
        assert result.in_grace_period is True
        assert result.minutes_late == 25
        assert result.message == "Within 30-minute grace period"

    def test_returned_hundred_minutes_late(self):
        result = late_fee.assess(END, END + timedelta(minutes=100), 30, Decimal("15"))
        assert result.fee == Decimal("30.00")
        assert result.is_late is True
        assert result.hours_billed == 2
        assert result.message == "2 hours late - CAD 30.00 fee"

    def test_single_hour_message_is_singular(self):
        result = late_fee.assess(END, END + timedelta(minutes=45), 30, Decimal("25"), "USD")
        assert result.message == "1 hour late - USD 25.00 fee"

    def test_early_return_is_on_time(self):
        result = late_fee.assess(END, END - timedelta(hours=2), 30, Decimal("25"))
        assert result.message == "On time"
        assert result.minutes_late == 0

    def test_partial_minutes_are_truncated(self):
        assert late_fee.minutes_late(END, END + timedelta(seconds=89)) == 1

    def test_summary(self):
        assert late_fee.summary(30, 25) == "30-minute grace period, then CAD 25.00/hour"


# =========================================================================
# approve
# =========================================================================


class TestApprove:
    def test_approving_calculated_fee_needs_no_reason(self):
        approval = late_fee.approve(Decimal("30.00"), Decimal("30.00"), "")
        assert approval.status == LateFeeStatus.APPROVED
        assert approval.approved_fee == Decimal("30.00")
        assert approval.is_override is False

    def test_override_with_reason(self):
        approval = late_fee.approve(Decimal("30.00"), Decimal("0.00"), WAIVE_REASON)
        assert approval.status == LateFeeStatus.OVERRIDDEN
        assert approval.approved_fee == Decimal("0.00")
        assert approval.override_reason == WAIVE_REASON
        assert approval.is_override is True

    def test_override_reason_is_stripped(self):
        approval = late_fee.approve(Decimal("30"), Decimal("10"), "   goodwill gesture   ")
        assert approval.override_reason == "goodwill gesture"

    @pytest.mark.parametrize("reason", [None, "", "short", "   padded   "])
    def test_override_without_long_reason_raises(self, reason):
        with pytest.raises(OverrideReasonTooShortError) as exc_info:
            late_fee.approve(Decimal("30.00"), Decimal("31.00"), reason)
        assert exc_info.value.min_length == 10

    def test_min_reason_length_is_configurable(self):
        approval = late_fee.approve(Decimal("30"), Decimal("0"), "ok", min_reason_length=2)
        assert approval.status == LateFeeStatus.OVERRIDDEN

    def test_negative_proposed_fee_raises(self):
        with pytest.raises(NegativeFeeError):
            late_fee.approve(Decimal("30.00"), Decimal("-1.00"), WAIVE_REASON)

    def test_negative_calculated_fee_raises(self):
        with pytest.raises(NegativeFeeError):
            late_fee.approve(Decimal("-30.00"), Decimal("0.00"), WAIVE_REASON)

    @given(fee=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=2))
    def test_matching_amount_always_approves(self, fee):
        assert late_fee.approve(fee, fee, "").status == LateFeeStatus.APPROVED

    @given(fee=st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=2))
    def test_changed_amount_with_short_reason_always_raises(self, fee):
        with pytest.raises(ValidationError):
            late_fee.approve(fee, fee + 1, "short")


# =========================================================================
# status and effective fee
# =========================================================================


class TestStatusAndEffectiveFee:
    APPROVED_AT = END + timedelta(hours=3)

    def test_no_fee(self):
        assert late_fee.late_fee_status(Decimal("0")) == LateFeeStatus.NO_FEE

    def test_pending_until_approved(self):
        assert late_fee.late_fee_status(Decimal("30")) == LateFeeStatus.PENDING_APPROVAL

    def test_approved(self):
        status = late_fee.late_fee_status(Decimal("30"), self.APPROVED_AT)
        assert status == LateFeeStatus.APPROVED

    def test_override_equal_to_calculated_counts_as_approved(self):
        status = late_fee.late_fee_status(Decimal("30"), self.APPROVED_AT, Decimal("30.00"))
        assert status == LateFeeStatus.APPROVED

    def test_overridden(self):
        status = late_fee.late_fee_status(Decimal("30"), self.APPROVED_AT, Decimal("0"))
        assert status == LateFeeStatus.OVERRIDDEN

    def test_effective_fee_precedence(self):
        assert late_fee.effective_fee(Decimal("30")) == Decimal("30.00")
        assert late_fee.effective_fee(Decimal("30"), Decimal("25")) == Decimal("25.00")
        assert late_fee.effective_fee(Decimal("30"), Decimal("25"), Decimal("0")) == Decimal("0.00")
