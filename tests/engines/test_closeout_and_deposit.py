"""
Tests for the closeout checklist and deposit settlement engines.

Tests cover:
- build_closeout_checklist: state items, damage check, late fee gate
- plan_settlement: release, full and partial withhold, no deposit
- suggest_settlement: auto-release vs manual review
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from rental_engines.closeout import build_closeout_checklist, can_close_out
from rental_engines.deposit import DEFAULT_RELEASE_REASON, plan_settlement, suggest_settlement
from rental_kernel.domain.booking import DepositAction, DepositStatus
from rental_kernel.domain.late_fee import LateFeeStatus
from rental_kernel.domain.return_ops import DepositDecision
from rental_kernel.domain.return_state import ReturnState
from rental_kernel.exceptions import (
    InvalidDepositAmountError,
    MissingFieldError,
    OverrideReasonTooShortError,
)

BOOKING_ID = uuid4()
STAFF_ID = uuid4()


# =========================================================================
# Closeout checklist
# =========================================================================


class TestCloseoutChecklist:
    def test_normal_return_ready_after_issues_review(self):
        checklist = build_closeout_checklist(
            ReturnState.ISSUES_REVIEWED, False, LateFeeStatus.NO_FEE,
        )
        assert checklist.can_close_out is True
        assert [i.key for i in checklist.items] == ["intake", "evidence", "issues"]
        assert checklist.missing == ()

    def test_blocked_at_evidence_done(self):
        checklist = build_closeout_checklist(
            ReturnState.EVIDENCE_DONE, False, LateFeeStatus.NO_FEE,
        )
        assert checklist.can_close_out is False
        assert checklist.missing == ("Issues & damages reviewed",)

    def test_pending_late_fee_blocks(self):
        checklist = build_closeout_checklist(
            ReturnState.ISSUES_REVIEWED, True, LateFeeStatus.PENDING_APPROVAL,
        )
        assert checklist.can_close_out is False
        assert "Late fee approved" in checklist.missing

    @pytest.mark.parametrize("status", [LateFeeStatus.APPROVED, LateFeeStatus.OVERRIDDEN])
    def test_decided_late_fee_allows(self, status):
        assert can_close_out(ReturnState.ISSUES_REVIEWED, True, status)

    def test_exception_return_has_damage_check_item(self):
        checklist = build_closeout_checklist(
            ReturnState.ISSUES_REVIEWED, True, LateFeeStatus.NO_FEE, damage_count=1,
        )
        keys = [i.key for i in checklist.items]
        assert "damage_check" in keys
        assert checklist.can_close_out is True

    def test_damage_check_pending_before_review(self):
        checklist = build_closeout_checklist(
            ReturnState.EVIDENCE_DONE, True, LateFeeStatus.NO_FEE,
        )
        item = next(i for i in checklist.items if i.key == "damage_check")
        assert item.complete is False


# =========================================================================
# Deposit settlement
# =========================================================================


class TestPlanSettlement:
    def test_release_full_deposit(self):
        plan = plan_settlement(BOOKING_ID, Decimal("500"), DepositAction.RELEASE, created_by=STAFF_ID)
        assert plan.deposit_status == DepositStatus.RELEASED
        assert plan.released_amount == Decimal("500.00")
        assert plan.withheld_amount == Decimal("0.00")
        (entry,) = plan.entries
        assert entry.action == DepositAction.RELEASE
        assert entry.reason == DEFAULT_RELEASE_REASON
        assert entry.created_by == STAFF_ID

    def test_partial_withhold_releases_remainder(self):
        plan = plan_settlement(
            BOOKING_ID,
            Decimal("500"),
            DepositAction.WITHHOLD,
            withhold_amount=Decimal("120.50"),
            reason="Scratch on rear bumper",
        )
        assert plan.deposit_status == DepositStatus.PARTIALLY_WITHHELD
        assert [e.action for e in plan.entries] == [
            DepositAction.WITHHOLD, DepositAction.PARTIAL_RELEASE,
        ]
        assert [e.amount for e in plan.entries] == [Decimal("120.50"), Decimal("379.50")]
        assert sum(e.amount for e in plan.entries) == Decimal("500.00")

    def test_full_withhold(self):
        plan = plan_settlement(
            BOOKING_ID, Decimal("500"), DepositAction.WITHHOLD,
            withhold_amount="500", reason="Windshield replacement",
        )
        assert plan.deposit_status == DepositStatus.WITHHELD
        assert len(plan.entries) == 1
        assert plan.released_amount == Decimal("0.00")

    def test_no_deposit_needs_nothing(self):
        plan = plan_settlement(BOOKING_ID, Decimal("0"), DepositAction.RELEASE)
        assert plan.deposit_status == DepositStatus.NOT_REQUIRED
        assert plan.entries == ()

    @pytest.mark.parametrize("amount", ["0", "-5", "500.01"])
    def test_withhold_out_of_range_raises(self, amount):
        with pytest.raises(InvalidDepositAmountError):
            plan_settlement(
                BOOKING_ID, Decimal("500"), DepositAction.WITHHOLD,
                withhold_amount=amount, reason="Scratch on rear bumper",
            )

    def test_withhold_needs_amount(self):
        with pytest.raises(MissingFieldError):
            plan_settlement(BOOKING_ID, Decimal("500"), DepositAction.WITHHOLD, reason="x" * 20)

    def test_withhold_needs_reason(self):
        with pytest.raises(OverrideReasonTooShortError):
            plan_settlement(
                BOOKING_ID, Decimal("500"), DepositAction.WITHHOLD,
                withhold_amount="50", reason="dent",
            )


class TestSuggestSettlement:
    def test_no_damage_auto_releases(self):
        assert suggest_settlement(Decimal("500"), 0).decision == DepositDecision.AUTO_RELEASE

    def test_open_damage_needs_review(self):
        suggestion = suggest_settlement(Decimal("500"), 2, Decimal("400"))
        assert suggestion.decision == DepositDecision.MANUAL_REVIEW
        assert "2 open damage report(s)" in suggestion.reason

    def test_no_deposit(self):
        assert suggest_settlement(Decimal("0"), 3).decision == DepositDecision.NOT_REQUIRED
