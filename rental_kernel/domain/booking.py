"""
Booking domain types (``rental_kernel.domain.booking``).

Responsibility
--------------
Typed, immutable value objects for the booking and the side records the
return workflow reads: damage reports, condition photos, inspection
metrics, deposit ledger entries, and return audit records.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  ORM models
convert to these via ``to_dto()``; validation happens there, once, at the
read boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from rental_kernel.domain.return_state import ReturnState


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DepositStatus(str, Enum):
    """Security deposit disposition."""

    HELD = "held"
    RELEASED = "released"
    PARTIALLY_WITHHELD = "partially_withheld"
    WITHHELD = "withheld"
    NOT_REQUIRED = "not_required"


class DepositAction(str, Enum):
    """Deposit ledger actions."""

    RELEASE = "release"
    WITHHOLD = "withhold"
    PARTIAL_RELEASE = "partial_release"


class DamageSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


class DamageStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PhotoPhase(str, Enum):
    PICKUP = "pickup"
    RETURN = "return"


class PhotoType(str, Enum):
    """Condition photo slots."""

    FRONT = "front"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"
    ODOMETER_FUEL = "odometer_fuel"
    FUEL_GAUGE = "fuel_gauge"
    FRONT_SEAT = "front_seat"
    BACK_SEAT = "back_seat"


RETURN_PHOTO_LABELS: dict[PhotoType, str] = {
    PhotoType.FRONT: "Front",
    PhotoType.BACK: "Rear",
    PhotoType.LEFT: "Driver Side",
    PhotoType.RIGHT: "Passenger Side",
    PhotoType.ODOMETER_FUEL: "Odometer",
    PhotoType.FUEL_GAUGE: "Fuel Gauge",
    PhotoType.FRONT_SEAT: "Front Seat",
    PhotoType.BACK_SEAT: "Back Seat",
}


@dataclass(frozen=True)
class Booking:
    """Immutable snapshot of the booking fields the return workflow uses."""

    id: UUID
    status: BookingStatus
    return_state: ReturnState
    start_at: datetime
    end_at: datetime
    deposit_amount: Decimal = Decimal("0")
    deposit_status: DepositStatus | None = None
    actual_return_at: datetime | None = None
    return_started_at: datetime | None = None
    late_return_fee: Decimal | None = None
    late_return_fee_override: Decimal | None = None
    late_return_override_reason: str | None = None
    late_fee_approved_at: datetime | None = None
    late_fee_approved_by: UUID | None = None
    return_is_exception: bool = False
    return_exception_reason: str | None = None
    return_intake_completed_at: datetime | None = None
    return_evidence_completed_at: datetime | None = None
    return_issues_reviewed_at: datetime | None = None
    return_closed_out_at: datetime | None = None
    return_deposit_settled_at: datetime | None = None
    # False for rows written before return_state existed (stored NULL)
    state_recorded: bool = True

    @property
    def has_deposit(self) -> bool:
        return self.deposit_amount > 0

    @property
    def is_completed(self) -> bool:
        return self.status == BookingStatus.COMPLETED


@dataclass(frozen=True)
class DamageReport:
    id: UUID
    booking_id: UUID
    location_on_vehicle: str
    description: str
    severity: DamageSeverity
    estimated_cost: Decimal | None = None
    status: DamageStatus = DamageStatus.OPEN
    reported_at: datetime | None = None


@dataclass(frozen=True)
class ConditionPhoto:
    id: UUID
    booking_id: UUID
    phase: PhotoPhase
    photo_type: PhotoType
    storage_key: str
    captured_at: datetime | None = None


@dataclass(frozen=True)
class InspectionMetrics:
    booking_id: UUID
    phase: PhotoPhase
    odometer: int | None = None
    fuel_level: int | None = None
    recorded_at: datetime | None = None
    notes: str | None = None


@dataclass(frozen=True)
class DepositLedgerEntry:
    booking_id: UUID
    action: DepositAction
    amount: Decimal
    reason: str
    created_by: UUID | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class ReturnAuditRecord:
    """One append-only audit line for a return action."""

    booking_id: UUID
    action: str
    actor_id: UUID
    occurred_at: datetime
    from_state: str | None = None
    to_state: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
