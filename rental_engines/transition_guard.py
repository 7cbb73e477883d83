"""
rental_engines.transition_guard -- Step gating for the return workflow.

Responsibility:
    Decide which return steps an operator may open, which are complete,
    which step is current, and whether a booking status change is allowed
    given how far the return has progressed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rental_kernel/domain/ types.

Invariants enforced:
    - Monotonic gating: a step is accessible iff its prerequisite state
      has been reached.
    - Completion is rank-based: a step is complete iff the current state
      is at or past the state the step produces.
    - ``active -> completed`` is blocked before ``closed_out`` unless a
      bypass reason of the minimum length is given.

Failure modes:
    - None.  Every function here is total: unknown step ids are treated
      as inaccessible and incomplete rather than raising.
"""

from __future__ import annotations

from rental_kernel.domain.booking import BookingStatus
from rental_kernel.domain.return_ops import StatusChangeDecision
from rental_kernel.domain.return_state import (
    RETURN_STEPS,
    STEP_SUCCESSORS,
    STEPS_BY_ID,
    ReturnState,
    ReturnStepId,
    is_state_at_least,
)


def _resolve_step(step_id: ReturnStepId | str) -> ReturnStepId | None:
    try:
        return ReturnStepId(step_id)
    except ValueError:
        return None


def can_access_step(step_id: ReturnStepId | str, current_state: ReturnState) -> bool:
    """True iff the step's prerequisite state has been reached."""
    resolved = _resolve_step(step_id)
    if resolved is None:
        return False
    return is_state_at_least(current_state, STEPS_BY_ID[resolved].prerequisite_state)


def is_step_complete(step_id: ReturnStepId | str, current_state: ReturnState) -> bool:
    """True iff the current state is at or past the state the step produces."""
    resolved = _resolve_step(step_id)
    if resolved is None:
        return False
    return is_state_at_least(current_state, STEPS_BY_ID[resolved].produces_state)


def get_current_step(current_state: ReturnState) -> ReturnStepId:
    """First incomplete step, or the deposit step once every step is done."""
    for step in RETURN_STEPS:
        if not is_state_at_least(current_state, step.produces_state):
            return step.id
    return ReturnStepId.DEPOSIT


def next_accessible_step(step_id: ReturnStepId | str) -> ReturnStepId | None:
    """Successor of ``step_id`` in the step graph, or None after the last step."""
    resolved = _resolve_step(step_id)
    if resolved is None:
        return None
    return STEP_SUCCESSORS[resolved]


def accessible_steps(current_state: ReturnState) -> tuple[ReturnStepId, ...]:
    return tuple(s.id for s in RETURN_STEPS if can_access_step(s.id, current_state))


def completed_steps(current_state: ReturnState) -> tuple[ReturnStepId, ...]:
    return tuple(s.id for s in RETURN_STEPS if is_step_complete(s.id, current_state))


def validate_status_change(
    current_status: BookingStatus,
    new_status: BookingStatus,
    return_state: ReturnState,
    bypass_reason: str | None = None,
    min_reason_length: int = 10,
) -> StatusChangeDecision:
    """Check a booking status change against return progress.

    Only ``active -> completed`` is gated.  It needs the return to have
    reached ``closed_out``, or a bypass reason of at least
    ``min_reason_length`` characters after stripping whitespace.

    Args:
        current_status: Booking status before the change.
        new_status: Requested status.
        return_state: Current return state.
        bypass_reason: Optional justification for skipping the workflow.
        min_reason_length: Minimum stripped length of the bypass reason.

    Returns:
        StatusChangeDecision with ``allowed`` and ``bypassed`` set.
    """
    if not (
        current_status == BookingStatus.ACTIVE
        and new_status == BookingStatus.COMPLETED
    ):
        return StatusChangeDecision(allowed=True)

    if is_state_at_least(return_state, ReturnState.CLOSED_OUT):
        return StatusChangeDecision(allowed=True)

    reason = (bypass_reason or "").strip()
    if len(reason) >= min_reason_length:
        return StatusChangeDecision(
            allowed=True,
            bypassed=True,
            reason=f"Workflow bypassed: {reason}",
        )

    return StatusChangeDecision(
        allowed=False,
        reason=(
            "Cannot complete booking: return workflow not finished "
            f"(current state: {return_state.value}). "
            f"Provide a bypass reason of at least {min_reason_length} characters."
        ),
    )
