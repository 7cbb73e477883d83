"""
rental_engines.closeout -- Closeout checklist and gate.

Responsibility:
    Build the checklist shown before closing out a return and decide
    whether closeout may proceed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Closeout requires ``return_state >= issues_reviewed``.
    - When a late fee applies it must be approved or overridden first.
    - Exception returns carry an extra "damage check" item.
"""

from __future__ import annotations

from rental_kernel.domain.late_fee import TERMINAL_LATE_FEE_STATUSES, LateFeeStatus
from rental_kernel.domain.return_ops import ChecklistItem, CloseoutChecklist
from rental_kernel.domain.return_state import ReturnState, is_state_at_least
from rental_engines.tracer import traced_engine


@traced_engine(
    "closeout", "1.0",
    fingerprint_fields=("return_state", "is_exception", "late_fee_status", "damage_count"),
)
def build_closeout_checklist(
    return_state: ReturnState,
    is_exception: bool,
    late_fee_status: LateFeeStatus,
    damage_count: int = 0,
) -> CloseoutChecklist:
    """Checklist items and the resulting closeout gate."""
    intake_done = is_state_at_least(return_state, ReturnState.INTAKE_DONE)
    evidence_done = is_state_at_least(return_state, ReturnState.EVIDENCE_DONE)
    issues_done = is_state_at_least(return_state, ReturnState.ISSUES_REVIEWED)

    items = [
        ChecklistItem(key="intake", label="Return intake recorded", complete=intake_done),
        ChecklistItem(key="evidence", label="Evidence photos captured", complete=evidence_done),
        ChecklistItem(key="issues", label="Issues & damages reviewed", complete=issues_done),
    ]

    if is_exception:
        damage_checked = issues_done or damage_count > 0
        items.append(
            ChecklistItem(
                key="damage_check",
                label="Damage check completed",
                complete=damage_checked,
                description=(
                    "Damage status confirmed" if damage_checked
                    else "Review issues step to confirm damage status"
                ),
            )
        )

    fee_applies = late_fee_status != LateFeeStatus.NO_FEE
    if fee_applies:
        fee_approved = late_fee_status in TERMINAL_LATE_FEE_STATUSES
        items.append(
            ChecklistItem(
                key="late_fee",
                label="Late fee approved",
                complete=fee_approved,
                description=(
                    "Late fee has been approved" if fee_approved
                    else "Approve the late fee before completing"
                ),
            )
        )

    can_close = issues_done and all(i.complete for i in items if i.required)
    return CloseoutChecklist(items=tuple(items), can_close_out=can_close)


def can_close_out(
    return_state: ReturnState,
    is_exception: bool,
    late_fee_status: LateFeeStatus,
    damage_count: int = 0,
) -> bool:
    return build_closeout_checklist(
        return_state, is_exception, late_fee_status, damage_count,
    ).can_close_out
