"""Tests for per-step input checks and derived completion."""

from decimal import Decimal

import pytest

from rental_engines.completion import derive_completion, effective_state, step_complete
from rental_engines.step_checks import (
    check_evidence,
    check_intake,
    check_issues,
    fuel_photo_required,
    missing_items,
)
from rental_kernel.domain.booking import (
    BookingStatus,
    DepositStatus,
    InspectionMetrics,
    PhotoPhase,
    PhotoType,
)
from rental_kernel.domain.return_ops import ReturnCompletion
from rental_kernel.domain.return_state import ReturnState, ReturnStepId
from rental_kernel.exceptions import (
    InsufficientEvidenceError,
    InvalidFuelLevelError,
    MissingFieldError,
    OdometerRegressionError,
    ReviewNotAcknowledgedError,
    ValidationError,
)
from tests.factories import build_booking

FOUR_SIDES = [PhotoType.FRONT, PhotoType.BACK, PhotoType.LEFT, PhotoType.RIGHT]


class TestCheckIntake:
    def test_valid_readings(self):
        check_intake(45_210, 75, pickup_odometer=45_000)

    def test_fuel_is_optional(self):
        check_intake(10, None)

    def test_missing_odometer(self):
        with pytest.raises(MissingFieldError) as exc_info:
            check_intake(None, 50)
        assert exc_info.value.field_name == "odometer"

    def test_negative_odometer(self):
        with pytest.raises(ValidationError):
            check_intake(-1, 50)

    @pytest.mark.parametrize("fuel", [-1, 101])
    def test_fuel_out_of_range(self, fuel):
        with pytest.raises(InvalidFuelLevelError):
            check_intake(100, fuel)

    def test_odometer_cannot_go_backwards(self):
        with pytest.raises(OdometerRegressionError) as exc_info:
            check_intake(44_999, 50, pickup_odometer=45_000)
        assert exc_info.value.pickup_odometer == 45_000


class TestCheckEvidence:
    def test_normal_return_needs_no_photos(self):
        check_evidence([], is_exception=False, min_photos=4)

    def test_exception_return_needs_floor(self):
        with pytest.raises(InsufficientEvidenceError) as exc_info:
            check_evidence(FOUR_SIDES[:3], is_exception=True, min_photos=4)
        assert exc_info.value.photo_count == 3
        assert exc_info.value.required == 4

    def test_reshooting_a_slot_does_not_count_twice(self):
        with pytest.raises(InsufficientEvidenceError):
            check_evidence([PhotoType.FRONT] * 4, is_exception=True, min_photos=4)

    def test_exception_return_with_floor_met(self):
        check_evidence(FOUR_SIDES, is_exception=True, min_photos=4)

    def test_low_fuel_requires_gauge_photo_even_for_normal_returns(self):
        with pytest.raises(InsufficientEvidenceError) as exc_info:
            check_evidence([], False, 4, fuel_level=40, pickup_fuel_level=100)
        assert exc_info.value.missing_types == ("fuel_gauge",)

    def test_gauge_photo_satisfies_fuel_rule(self):
        check_evidence([PhotoType.FUEL_GAUGE], False, 4, fuel_level=40, pickup_fuel_level=100)

    @pytest.mark.parametrize("returned,pickup,expected", [
        (40, 100, True),
        (100, 100, False),
        (None, 100, False),
        (40, None, False),
    ])
    def test_fuel_photo_required(self, returned, pickup, expected):
        assert fuel_photo_required(returned, pickup) is expected


class TestCheckIssues:
    def test_acknowledged(self):
        check_issues(True)

    def test_not_acknowledged(self):
        with pytest.raises(ReviewNotAcknowledgedError):
            check_issues(False)


class TestDeriveCompletion:
    def _metrics(self, booking, odometer=12_000, fuel=80):
        return InspectionMetrics(
            booking_id=booking.id, phase=PhotoPhase.RETURN, odometer=odometer, fuel_level=fuel,
        )

    def test_fresh_booking_has_nothing_complete(self):
        booking = build_booking()
        completion = derive_completion(booking, None, 0, 0)
        assert completion.intake.odometer_recorded is False
        assert completion.issues.reviewed is False
        assert completion.closeout_completed is False
        assert completion.deposit_processed is False

    def test_flags_follow_records_and_state(self):
        booking = build_booking(return_state=ReturnState.ISSUES_REVIEWED)
        completion = derive_completion(booking, self._metrics(booking), 5, 1)
        assert completion.intake.odometer_recorded
        assert completion.intake.fuel_recorded
        assert completion.evidence.photos_complete
        assert completion.evidence.photo_count == 5
        assert completion.issues.reviewed
        assert completion.issues.damages_recorded
        assert completion.closeout_completed is False

    def test_completed_booking_counts_as_closed_out(self):
        booking = build_booking(status=BookingStatus.COMPLETED)
        completion = derive_completion(booking, None, 0, 0)
        assert completion.closeout_completed
        assert completion.issues.reviewed

    def test_settled_deposit_status_counts_as_processed(self):
        booking = build_booking(deposit_status=DepositStatus.RELEASED)
        assert derive_completion(booking, None, 0, 0).deposit_processed

    def test_state_is_authoritative_over_flags(self):
        booking = build_booking(return_state=ReturnState.INTAKE_DONE)
        completion = derive_completion(booking, None, 0, 0)
        assert step_complete(ReturnStepId.INTAKE, completion, booking.return_state)
        assert not step_complete(ReturnStepId.EVIDENCE, completion, booking.return_state)

    def test_flags_used_without_state(self):
        booking = build_booking()
        completion = derive_completion(booking, self._metrics(booking), 0, 0)
        assert step_complete(ReturnStepId.INTAKE, completion)
        assert not step_complete(ReturnStepId.DEPOSIT, completion)


class TestEffectiveState:
    def test_no_records_means_not_started(self):
        completion = derive_completion(build_booking(), None, 0, 0)
        assert effective_state(completion) == ReturnState.NOT_STARTED

    def test_recorded_metrics_mean_intake_done(self):
        booking = build_booking()
        metrics = InspectionMetrics(
            booking_id=booking.id, phase=PhotoPhase.RETURN, odometer=12_000,
        )
        completion = derive_completion(booking, metrics, 0, 0)
        assert effective_state(completion) == ReturnState.INTAKE_DONE

    def test_furthest_flag_wins(self):
        booking = build_booking(status=BookingStatus.COMPLETED)
        assert effective_state(derive_completion(booking, None, 0, 0)) == ReturnState.CLOSED_OUT

        settled = build_booking(
            status=BookingStatus.COMPLETED, deposit_status=DepositStatus.RELEASED,
        )
        assert effective_state(derive_completion(settled, None, 0, 0)) == (
            ReturnState.DEPOSIT_SETTLED
        )


class TestMissingItems:
    def test_intake_items(self):
        assert missing_items(ReturnStepId.INTAKE, ReturnCompletion()) == [
            "Odometer reading", "Fuel level",
        ]

    @pytest.mark.parametrize("step,label", [
        (ReturnStepId.EVIDENCE, "Return photos"),
        (ReturnStepId.ISSUES, "Issues review"),
        (ReturnStepId.CLOSEOUT, "Return completion"),
        (ReturnStepId.DEPOSIT, "Deposit decision"),
    ])
    def test_single_item_steps(self, step, label):
        assert missing_items(step, ReturnCompletion()) == [label]
