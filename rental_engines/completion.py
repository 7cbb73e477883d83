"""
rental_engines.completion -- Derived per-step completion flags.

Responsibility:
    Recompute ``ReturnCompletion`` from the booking and its side records
    after every fetch.  Completion is never stored.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - When a return_state exists it is authoritative for step completion;
      the flags only feed "missing items" messages.
    - Without a stored return_state the furthest step whose flag is set
      decides the effective state.
    - "Issues reviewed" is derived from the state (or a completed
      booking), never from a separate session flag.
"""

from __future__ import annotations

from rental_kernel.domain.booking import Booking, BookingStatus, DepositStatus, InspectionMetrics
from rental_kernel.domain.return_ops import (
    EvidenceCompletion,
    IntakeCompletion,
    IssuesCompletion,
    ReturnCompletion,
)
from rental_kernel.domain.return_state import (
    RETURN_STEPS,
    ReturnState,
    ReturnStepId,
    is_state_at_least,
    next_state,
)
from rental_engines.exception_classifier import DEFAULT_EXCEPTION_MIN_PHOTOS
from rental_engines.transition_guard import is_step_complete

_SETTLED_DEPOSIT_STATUSES = frozenset({
    DepositStatus.RELEASED,
    DepositStatus.PARTIALLY_WITHHELD,
    DepositStatus.WITHHELD,
})


def derive_completion(
    booking: Booking,
    return_metrics: InspectionMetrics | None,
    return_photo_count: int,
    damage_count: int,
    deposit_entry_count: int = 0,
    min_photos: int = DEFAULT_EXCEPTION_MIN_PHOTOS,
) -> ReturnCompletion:
    """Build completion flags from source records."""
    state = booking.return_state
    completed = booking.status == BookingStatus.COMPLETED
    return ReturnCompletion(
        intake=IntakeCompletion(
            time_recorded=booking.actual_return_at is not None,
            odometer_recorded=return_metrics is not None and return_metrics.odometer is not None,
            fuel_recorded=return_metrics is not None and return_metrics.fuel_level is not None,
        ),
        evidence=EvidenceCompletion(
            photos_complete=return_photo_count >= min_photos,
            photo_count=return_photo_count,
        ),
        issues=IssuesCompletion(
            reviewed=is_state_at_least(state, ReturnState.ISSUES_REVIEWED) or completed,
            damages_recorded=damage_count > 0,
        ),
        closeout_completed=is_state_at_least(state, ReturnState.CLOSED_OUT) or completed,
        deposit_processed=(
            is_state_at_least(state, ReturnState.DEPOSIT_SETTLED)
            or booking.deposit_status in _SETTLED_DEPOSIT_STATUSES
            or deposit_entry_count > 0
        ),
    )


def step_complete(
    step_id: ReturnStepId,
    completion: ReturnCompletion,
    return_state: ReturnState | None = None,
) -> bool:
    """Step completion, from the state when known, else from the flags.

    The flag fallback serves rows written before return_state existed.
    """
    if return_state is not None:
        return is_step_complete(step_id, return_state)

    if step_id == ReturnStepId.INTAKE:
        return completion.intake.odometer_recorded or completion.intake.fuel_recorded
    if step_id == ReturnStepId.EVIDENCE:
        return completion.evidence.photos_complete
    if step_id == ReturnStepId.ISSUES:
        return completion.issues.reviewed
    if step_id == ReturnStepId.CLOSEOUT:
        return completion.closeout_completed
    if step_id == ReturnStepId.DEPOSIT:
        return completion.deposit_processed
    return False


def effective_state(completion: ReturnCompletion) -> ReturnState:
    """State implied by the flags, for bookings with no stored return_state.

    Steps only complete in order, so the furthest flagged step implies
    every earlier one.
    """
    for step in reversed(RETURN_STEPS):
        if step_complete(step.id, completion):
            return next_state(step.id)
    return ReturnState.NOT_STARTED
