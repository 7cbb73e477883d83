"""
rental_engines.late_fee -- Late-return fee calculation and approval.

Responsibility:
    Compute the late-return fee from minutes late, a grace period, and an
    hourly rate; validate staff approval or override of that fee; and
    derive the fee's approval status and effective amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  No clock access: callers
    pass both timestamps in.

Invariants enforced:
    - Returns within the grace period cost nothing.
    - Billable time is rounded UP to whole hours.
    - All amounts are quantized to cents (ROUND_HALF_UP).
    - An override that differs from the calculated fee needs a stripped
      reason of at least ``min_reason_length`` characters.
    - Precedence for the effective fee: override > persisted > calculated.

Failure modes:
    - ValidationError on negative grace period or hourly rate.
    - NegativeFeeError on a negative proposed or calculated fee.
    - OverrideReasonTooShortError when an override lacks a reason.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from rental_kernel.domain.late_fee import (
    LateFeeApproval,
    LateFeeStatus,
    LateReturnAssessment,
)
from rental_kernel.exceptions import (
    NegativeFeeError,
    OverrideReasonTooShortError,
    ValidationError,
)
from rental_engines.tracer import traced_engine

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | str) -> Decimal:
    """Quantize a value to cents."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def billable_hours(minutes_late: int, grace_minutes: int) -> int:
    """Whole hours billed after the grace period (rounded up)."""
    if minutes_late <= 0 or minutes_late <= grace_minutes:
        return 0
    return math.ceil((minutes_late - grace_minutes) / 60)


def calculate(
    minutes_late: int,
    grace_minutes: int,
    hourly_rate: Decimal | int | str,
) -> Decimal:
    """Late fee for a return ``minutes_late`` minutes past schedule.

    Args:
        minutes_late: Whole minutes past the scheduled end (may be <= 0).
        grace_minutes: Minutes of lateness that are never billed.
        hourly_rate: Fee per started hour after the grace period.

    Returns:
        Fee in cents precision; ``0.00`` when on time or within grace.

    Raises:
        ValidationError: If ``grace_minutes`` or ``hourly_rate`` is negative.
    """
    rate = Decimal(str(hourly_rate))
    if grace_minutes < 0:
        raise ValidationError(f"Grace period cannot be negative: {grace_minutes}")
    if rate < 0:
        raise ValidationError(f"Hourly rate cannot be negative: {rate}")
    return to_money(billable_hours(minutes_late, grace_minutes) * rate)


def minutes_late(scheduled_end: datetime, returned_at: datetime) -> int:
    """Whole minutes between scheduled end and return, never negative."""
    seconds = (returned_at - scheduled_end).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 60)


@traced_engine(
    "late_fee", "1.0",
    fingerprint_fields=("scheduled_end", "returned_at", "grace_minutes", "hourly_rate"),
)
def assess(
    scheduled_end: datetime,
    returned_at: datetime,
    grace_minutes: int,
    hourly_rate: Decimal | int | str,
    currency: str = "CAD",
) -> LateReturnAssessment:
    """Full lateness assessment with a display message."""
    late = minutes_late(scheduled_end, returned_at)
    fee = calculate(late, grace_minutes, hourly_rate)

    if late <= 0:
        return LateReturnAssessment(
            is_late=False,
            in_grace_period=False,
            minutes_late=0,
            hours_billed=0,
            fee=ZERO,
            message="On time",
        )

    if late <= grace_minutes:
        return LateReturnAssessment(
            is_late=False,
            in_grace_period=True,
            minutes_late=late,
            hours_billed=0,
            fee=ZERO,
            message=f"Within {grace_minutes}-minute grace period",
        )

    hours = billable_hours(late, grace_minutes)
    plural = "" if hours == 1 else "s"
    return LateReturnAssessment(
        is_late=True,
        in_grace_period=False,
        minutes_late=late,
        hours_billed=hours,
        fee=fee,
        message=f"{hours} hour{plural} late - {currency} {fee} fee",
    )


def summary(grace_minutes: int, hourly_rate: Decimal | int | str, currency: str = "CAD") -> str:
    """One-line policy summary for receipts and the closeout screen."""
    return f"{grace_minutes}-minute grace period, then {currency} {to_money(hourly_rate)}/hour"


@traced_engine("late_fee", "1.0", fingerprint_fields=("calculated_fee", "proposed_fee"))
def approve(
    calculated_fee: Decimal | int | str,
    proposed_fee: Decimal | int | str,
    reason: str | None,
    min_reason_length: int = 10,
) -> LateFeeApproval:
    """Validate staff approval of a late fee.

    Approving the calculated amount needs no reason.  Any other amount is
    an override and needs ``reason.strip()`` of at least
    ``min_reason_length`` characters.

    Args:
        calculated_fee: Fee produced by ``calculate``.
        proposed_fee: Amount staff want to charge.
        reason: Override justification (ignored when amounts match).
        min_reason_length: Minimum stripped reason length.

    Returns:
        LateFeeApproval with status ``approved`` or ``overridden``.  The
        actor and timestamp are left for the caller to stamp.

    Raises:
        NegativeFeeError: If either amount is negative.
        OverrideReasonTooShortError: If an override reason is too short.
    """
    calculated = to_money(calculated_fee)
    proposed = to_money(proposed_fee)
    if calculated < 0:
        raise NegativeFeeError(str(calculated))
    if proposed < 0:
        raise NegativeFeeError(str(proposed))

    if proposed == calculated:
        return LateFeeApproval(
            calculated_fee=calculated,
            approved_fee=proposed,
            status=LateFeeStatus.APPROVED,
        )

    cleaned = (reason or "").strip()
    if len(cleaned) < min_reason_length:
        raise OverrideReasonTooShortError(len(cleaned), min_reason_length)

    return LateFeeApproval(
        calculated_fee=calculated,
        approved_fee=proposed,
        status=LateFeeStatus.OVERRIDDEN,
        override_reason=cleaned,
    )


def late_fee_status(
    calculated_fee: Decimal | int | str,
    approved_at: datetime | None = None,
    override_amount: Decimal | int | str | None = None,
) -> LateFeeStatus:
    """Approval lifecycle status of a booking's late fee."""
    calculated = to_money(calculated_fee)
    if approved_at is None:
        if calculated > 0:
            return LateFeeStatus.PENDING_APPROVAL
        return LateFeeStatus.NO_FEE
    if override_amount is not None and to_money(override_amount) != calculated:
        return LateFeeStatus.OVERRIDDEN
    return LateFeeStatus.APPROVED


def effective_fee(
    calculated_fee: Decimal | int | str,
    persisted_fee: Decimal | int | str | None = None,
    override_amount: Decimal | int | str | None = None,
) -> Decimal:
    """Fee actually charged: override, else persisted, else calculated."""
    if override_amount is not None:
        return to_money(override_amount)
    if persisted_fee is not None:
        return to_money(persisted_fee)
    return to_money(calculated_fee)
