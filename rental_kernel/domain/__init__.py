"""
Pure domain layer.

This module contains pure data transfer objects and domain constants
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock
- I/O

All domain objects are immutable and deterministic.
"""

from rental_kernel.domain.booking import (
    Booking,
    BookingStatus,
    ConditionPhoto,
    DamageReport,
    DamageSeverity,
    DamageStatus,
    DepositAction,
    DepositLedgerEntry,
    DepositStatus,
    InspectionMetrics,
    PhotoPhase,
    PhotoType,
    ReturnAuditRecord,
)
from rental_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rental_kernel.domain.late_fee import (
    LateFeeApproval,
    LateFeeStatus,
    LateReturnAssessment,
)
from rental_kernel.domain.return_state import (
    RETURN_STEPS,
    STATE_ORDER,
    ReturnState,
    ReturnStep,
    ReturnStepId,
    parse_return_state,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "ConditionPhoto",
    "DamageReport",
    "DamageSeverity",
    "DamageStatus",
    "DepositAction",
    "DepositLedgerEntry",
    "DepositStatus",
    "InspectionMetrics",
    "PhotoPhase",
    "PhotoType",
    "ReturnAuditRecord",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LateFeeApproval",
    "LateFeeStatus",
    "LateReturnAssessment",
    "RETURN_STEPS",
    "STATE_ORDER",
    "ReturnState",
    "ReturnStep",
    "ReturnStepId",
    "parse_return_state",
]
