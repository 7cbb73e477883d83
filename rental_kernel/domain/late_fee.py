"""
Late-fee domain types (``rental_kernel.domain.late_fee``).

Responsibility
--------------
Value objects for the late-return fee: the lateness assessment, the
approval lifecycle status, and the approval record.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Lifecycle: ``no_fee`` | ``pending_approval`` -> ``approved`` |
  ``overridden``.  Approved and overridden are terminal for the step.
* An ``overridden`` approval always carries a non-empty reason.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class LateFeeStatus(str, Enum):
    """Late-fee approval lifecycle states."""

    NO_FEE = "no_fee"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    OVERRIDDEN = "overridden"


TERMINAL_LATE_FEE_STATUSES: frozenset[LateFeeStatus] = frozenset({
    LateFeeStatus.APPROVED,
    LateFeeStatus.OVERRIDDEN,
})


@dataclass(frozen=True)
class LateReturnAssessment:
    """How late a return was and what that costs."""

    is_late: bool
    in_grace_period: bool
    minutes_late: int
    hours_billed: int
    fee: Decimal
    message: str


@dataclass(frozen=True)
class LateFeeApproval:
    """Outcome of approving (or overriding) a calculated late fee."""

    calculated_fee: Decimal
    approved_fee: Decimal
    status: LateFeeStatus
    override_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None

    @property
    def is_override(self) -> bool:
        return self.status == LateFeeStatus.OVERRIDDEN
