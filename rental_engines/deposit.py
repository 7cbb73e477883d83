"""
rental_engines.deposit -- Security deposit settlement planning.

Responsibility:
    Turn a release or withhold decision into deposit ledger entries and
    the resulting deposit status, and suggest a decision from open damage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Ledger entries always sum to the deposit held.
    - A withhold is ``0 < amount <= deposit`` and needs a reason of the
      minimum length; any remainder is released in the same plan.
    - No deposit means no entries and status ``not_required``.

Failure modes:
    - InvalidDepositAmountError on an out-of-range withhold.
    - OverrideReasonTooShortError on a missing or short withhold reason.
    - ValidationError on an unsupported action.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from rental_kernel.domain.booking import DepositAction, DepositLedgerEntry, DepositStatus
from rental_kernel.domain.return_ops import (
    DepositDecision,
    DepositSettlementPlan,
    DepositSuggestion,
)
from rental_kernel.exceptions import (
    InvalidDepositAmountError,
    MissingFieldError,
    OverrideReasonTooShortError,
    ValidationError,
)
from rental_engines.late_fee import ZERO, to_money
from rental_engines.tracer import traced_engine

DEFAULT_RELEASE_REASON = "Vehicle returned in good condition - no damages"


@traced_engine(
    "deposit", "1.0",
    fingerprint_fields=("deposit_amount", "action", "withhold_amount"),
)
def plan_settlement(
    booking_id: UUID,
    deposit_amount: Decimal | int | str,
    action: DepositAction,
    withhold_amount: Decimal | int | str | None = None,
    reason: str | None = None,
    min_reason_length: int = 10,
    default_release_reason: str = DEFAULT_RELEASE_REASON,
    created_by: UUID | None = None,
) -> DepositSettlementPlan:
    """Plan the ledger entries for a deposit decision.

    Args:
        booking_id: Booking the deposit belongs to.
        deposit_amount: Deposit currently held.
        action: ``release`` or ``withhold``.
        withhold_amount: Amount kept when withholding.
        reason: Ledger reason; required for a withhold.
        min_reason_length: Minimum stripped length of a withhold reason.
        default_release_reason: Reason used for a release without one.
        created_by: Staff user stamped on each entry.

    Returns:
        DepositSettlementPlan with entries and the new deposit status.
    """
    held = to_money(deposit_amount)
    if held <= 0:
        return DepositSettlementPlan(deposit_status=DepositStatus.NOT_REQUIRED)

    if action == DepositAction.RELEASE:
        entry = DepositLedgerEntry(
            booking_id=booking_id,
            action=DepositAction.RELEASE,
            amount=held,
            reason=(reason or "").strip() or default_release_reason,
            created_by=created_by,
        )
        return DepositSettlementPlan(
            deposit_status=DepositStatus.RELEASED,
            entries=(entry,),
            released_amount=held,
            withheld_amount=ZERO,
        )

    if action != DepositAction.WITHHOLD:
        raise ValidationError(f"Unsupported deposit action: {action}")

    if withhold_amount is None:
        raise MissingFieldError("withhold_amount")
    withheld = to_money(withhold_amount)
    if withheld <= 0 or withheld > held:
        raise InvalidDepositAmountError(str(withheld), str(held))

    cleaned = (reason or "").strip()
    if len(cleaned) < min_reason_length:
        raise OverrideReasonTooShortError(len(cleaned), min_reason_length)

    remainder = held - withheld
    entries = [
        DepositLedgerEntry(
            booking_id=booking_id,
            action=DepositAction.WITHHOLD,
            amount=withheld,
            reason=cleaned,
            created_by=created_by,
        )
    ]
    if remainder > 0:
        entries.append(
            DepositLedgerEntry(
                booking_id=booking_id,
                action=DepositAction.PARTIAL_RELEASE,
                amount=remainder,
                reason=f"Remainder after withholding {withheld}",
                created_by=created_by,
            )
        )

    return DepositSettlementPlan(
        deposit_status=(
            DepositStatus.WITHHELD if remainder == 0 else DepositStatus.PARTIALLY_WITHHELD
        ),
        entries=tuple(entries),
        released_amount=remainder,
        withheld_amount=withheld,
    )


def suggest_settlement(
    deposit_amount: Decimal | int | str,
    open_damage_count: int,
    open_damage_cost: Decimal | int | str = ZERO,
) -> DepositSuggestion:
    """Auto-release when nothing is open against the vehicle."""
    if to_money(deposit_amount) <= 0:
        return DepositSuggestion(
            decision=DepositDecision.NOT_REQUIRED,
            reason="No deposit held",
        )
    if open_damage_count > 0:
        return DepositSuggestion(
            decision=DepositDecision.MANUAL_REVIEW,
            reason=(
                f"{open_damage_count} open damage report(s), "
                f"estimated {to_money(open_damage_cost)}"
            ),
        )
    return DepositSuggestion(
        decision=DepositDecision.AUTO_RELEASE,
        reason="No open damage reports",
    )
