"""
Return operations result types (``rental_kernel.domain.return_ops``).

Responsibility
--------------
Frozen results produced by the pure return engines and the orchestrator:
exception classification, derived step completion, closeout checklist,
deposit settlement plan, booking status-change decision, and the
per-action ``StepResult`` returned to the UI.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from rental_kernel.domain.booking import Booking, DepositLedgerEntry, DepositStatus
from rental_kernel.domain.late_fee import LateFeeApproval, LateFeeStatus, LateReturnAssessment
from rental_kernel.domain.return_state import ReturnState, ReturnStepId


# =========================================================================
# Exception classification
# =========================================================================


class ExceptionReason(str, Enum):
    DAMAGE_REPORTED = "damage_reported"
    DAMAGE_COST = "damage_cost"
    LATE_FEE = "late_fee"
    PREVIOUSLY_FLAGGED = "previously_flagged"


@dataclass(frozen=True)
class ExceptionClassification:
    """Normal vs exception return, with the signals that decided it."""

    is_exception: bool
    reasons: tuple[ExceptionReason, ...] = ()

    @property
    def summary(self) -> str:
        if not self.is_exception:
            return "normal"
        return ", ".join(r.value for r in self.reasons)


# =========================================================================
# Derived completion (never stored)
# =========================================================================


@dataclass(frozen=True)
class IntakeCompletion:
    time_recorded: bool = False
    odometer_recorded: bool = False
    fuel_recorded: bool = False


@dataclass(frozen=True)
class EvidenceCompletion:
    photos_complete: bool = False
    photo_count: int = 0


@dataclass(frozen=True)
class IssuesCompletion:
    reviewed: bool = False
    damages_recorded: bool = False


@dataclass(frozen=True)
class ReturnCompletion:
    """Per-step completion flags recomputed from source records."""

    intake: IntakeCompletion = field(default_factory=IntakeCompletion)
    evidence: EvidenceCompletion = field(default_factory=EvidenceCompletion)
    issues: IssuesCompletion = field(default_factory=IssuesCompletion)
    closeout_completed: bool = False
    deposit_processed: bool = False


# =========================================================================
# Closeout checklist
# =========================================================================


@dataclass(frozen=True)
class ChecklistItem:
    key: str
    label: str
    complete: bool
    required: bool = True
    description: str = ""


@dataclass(frozen=True)
class CloseoutChecklist:
    items: tuple[ChecklistItem, ...]
    can_close_out: bool

    @property
    def missing(self) -> tuple[str, ...]:
        return tuple(i.label for i in self.items if i.required and not i.complete)


# =========================================================================
# Deposit settlement
# =========================================================================


class DepositDecision(str, Enum):
    AUTO_RELEASE = "auto_release"
    MANUAL_REVIEW = "manual_review"
    NOT_REQUIRED = "not_required"


@dataclass(frozen=True)
class DepositSettlementPlan:
    deposit_status: DepositStatus
    entries: tuple[DepositLedgerEntry, ...] = ()
    released_amount: Decimal = Decimal("0")
    withheld_amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class DepositSuggestion:
    decision: DepositDecision
    reason: str


# =========================================================================
# Booking status change
# =========================================================================


@dataclass(frozen=True)
class StatusChangeDecision:
    allowed: bool
    reason: str = ""
    bypassed: bool = False


# =========================================================================
# Orchestrator results
# =========================================================================


@dataclass(frozen=True)
class LateFeeView:
    assessment: LateReturnAssessment
    status: LateFeeStatus
    effective_fee: Decimal
    override_reason: str | None = None
    locked: bool = False


@dataclass(frozen=True)
class ReturnView:
    """Everything the return screen needs, recomputed after each fetch."""

    booking: Booking
    return_state: ReturnState
    current_step: ReturnStepId
    active_step: ReturnStepId
    completion: ReturnCompletion
    classification: ExceptionClassification
    late_fee: LateFeeView
    checklist: CloseoutChecklist
    accessible_steps: tuple[ReturnStepId, ...]
    completed_steps: tuple[ReturnStepId, ...]
    damage_count: int = 0
    return_photo_count: int = 0


@dataclass(frozen=True)
class StepResult:
    """Result of one orchestrator action.

    Errors never escape the orchestrator; they come back here with a
    machine-readable ``error_code`` and ``retryable`` set for storage
    failures.
    """

    success: bool
    step_id: ReturnStepId | None = None
    new_state: ReturnState | None = None
    active_step: ReturnStepId | None = None
    already_complete: bool = False
    error_code: str | None = None
    message: str = ""
    retryable: bool = False
    late_fee: LateFeeApproval | None = None
    details: dict[str, Any] = field(default_factory=dict)
