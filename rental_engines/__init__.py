"""
Module: rental_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    return engines.  Canonical import surface for rental_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import rental_kernel.domain / rental_kernel.exceptions (and
    sibling engine modules).  MUST NOT import rental_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are
      passed in by callers.
    - Decimal-only arithmetic for fees and deposits.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from rental_engines import can_access_step, calculate_late_fee
"""

from rental_engines.closeout import build_closeout_checklist, can_close_out
from rental_engines.completion import derive_completion, effective_state, step_complete
from rental_engines.deposit import plan_settlement, suggest_settlement
from rental_engines.exception_classifier import classify_exception, evidence_photo_floor
from rental_engines.late_fee import (
    approve as approve_late_fee,
    assess as assess_late_return,
    calculate as calculate_late_fee,
    effective_fee,
    late_fee_status,
)
from rental_engines.step_checks import (
    check_evidence,
    check_intake,
    check_issues,
    missing_items,
)
from rental_engines.transition_guard import (
    can_access_step,
    get_current_step,
    is_step_complete,
    next_accessible_step,
    validate_status_change,
)

__all__ = [
    "approve_late_fee",
    "assess_late_return",
    "build_closeout_checklist",
    "calculate_late_fee",
    "can_access_step",
    "can_close_out",
    "check_evidence",
    "check_intake",
    "check_issues",
    "classify_exception",
    "derive_completion",
    "effective_state",
    "effective_fee",
    "evidence_photo_floor",
    "get_current_step",
    "is_step_complete",
    "late_fee_status",
    "missing_items",
    "next_accessible_step",
    "plan_settlement",
    "step_complete",
    "suggest_settlement",
    "validate_status_change",
]
