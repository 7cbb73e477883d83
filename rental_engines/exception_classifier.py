"""
rental_engines.exception_classifier -- Normal vs exception returns.

Responsibility:
    Classify a return as "exception" when damage was recorded, damage
    carries a cost, or a late fee applies, and derive the evidence photo
    floor from that classification.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - One-way ratchet: once ``previously_exception`` is true the result
      stays true, even if the damage that triggered it is removed.
    - Exception returns have a non-zero photo floor; normal returns have
      none.
"""

from __future__ import annotations

from decimal import Decimal

from rental_kernel.domain.return_ops import ExceptionClassification, ExceptionReason
from rental_engines.tracer import traced_engine

DEFAULT_EXCEPTION_MIN_PHOTOS = 4


@traced_engine(
    "exception_classifier", "1.0",
    fingerprint_fields=("damage_count", "damage_cost", "late_fee", "previously_exception"),
)
def classify_exception(
    damage_count: int,
    damage_cost: Decimal | int = Decimal("0"),
    late_fee: Decimal | int = Decimal("0"),
    previously_exception: bool = False,
) -> ExceptionClassification:
    """Classify a return.

    Args:
        damage_count: Number of damage reports recorded for the booking.
        damage_cost: Sum of estimated damage costs.
        late_fee: Calculated (or approved) late fee.
        previously_exception: True if this return was already flagged.

    Returns:
        ExceptionClassification with every reason that applies.
    """
    reasons: list[ExceptionReason] = []
    if damage_count > 0:
        reasons.append(ExceptionReason.DAMAGE_REPORTED)
    if Decimal(damage_cost) > 0:
        reasons.append(ExceptionReason.DAMAGE_COST)
    if Decimal(late_fee) > 0:
        reasons.append(ExceptionReason.LATE_FEE)
    if previously_exception:
        reasons.append(ExceptionReason.PREVIOUSLY_FLAGGED)
    return ExceptionClassification(is_exception=bool(reasons), reasons=tuple(reasons))


def evidence_photo_floor(
    is_exception: bool, minimum: int = DEFAULT_EXCEPTION_MIN_PHOTOS,
) -> int:
    """Minimum return photos before the evidence step can complete."""
    return minimum if is_exception else 0
