"""
Module: rental_kernel.models.return_records
Responsibility: ORM persistence for the side records a return produces or
    reads: damage reports, condition photos, inspection metrics, and
    deposit ledger entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One inspection metrics row per (booking, phase).
    - Deposit ledger amounts are strictly positive.
    - Damage estimated cost, when given, is non-negative.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString, as_utc

if TYPE_CHECKING:
    from rental_kernel.domain.booking import (
        ConditionPhoto,
        DamageReport,
        DepositLedgerEntry,
        InspectionMetrics,
    )


class DamageReportModel(Base):
    """Damage recorded against a booking."""

    __tablename__ = "damage_reports"

    __table_args__ = (
        CheckConstraint(
            "severity IN ('minor', 'moderate', 'severe')",
            name="ck_damage_reports_valid_severity",
        ),
        CheckConstraint(
            "estimated_cost IS NULL OR estimated_cost >= 0",
            name="ck_damage_reports_cost_non_negative",
        ),
        Index("ix_damage_reports_booking", "booking_id", "reported_at"),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    location_on_vehicle: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    reported_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> DamageReport:
        from rental_kernel.domain.booking import (
            DamageReport as DamageReportDTO,
            DamageSeverity,
            DamageStatus,
        )

        return DamageReportDTO(
            id=self.id,
            booking_id=self.booking_id,
            location_on_vehicle=self.location_on_vehicle,
            description=self.description,
            severity=DamageSeverity(self.severity),
            estimated_cost=(
                Decimal(str(self.estimated_cost))
                if self.estimated_cost is not None else None
            ),
            status=DamageStatus(self.status),
            reported_at=as_utc(self.reported_at),
        )


class ConditionPhotoModel(Base):
    """Pickup or return condition photo stored in object storage."""

    __tablename__ = "condition_photos"

    __table_args__ = (
        CheckConstraint(
            "phase IN ('pickup', 'return')",
            name="ck_condition_photos_valid_phase",
        ),
        Index("ix_condition_photos_booking_phase", "booking_id", "phase"),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    phase: Mapped[str] = mapped_column(String(20), nullable=False)
    photo_type: Mapped[str] = mapped_column(String(30), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    captured_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> ConditionPhoto:
        from rental_kernel.domain.booking import (
            ConditionPhoto as ConditionPhotoDTO,
            PhotoPhase,
            PhotoType,
        )

        return ConditionPhotoDTO(
            id=self.id,
            booking_id=self.booking_id,
            phase=PhotoPhase(self.phase),
            photo_type=PhotoType(self.photo_type),
            storage_key=self.storage_key,
            captured_at=as_utc(self.captured_at),
        )


class InspectionMetricsModel(Base):
    """Odometer and fuel readings for one phase of a booking."""

    __tablename__ = "inspection_metrics"

    __table_args__ = (
        UniqueConstraint("booking_id", "phase", name="uq_inspection_metrics_phase"),
        CheckConstraint(
            "fuel_level IS NULL OR (fuel_level >= 0 AND fuel_level <= 100)",
            name="ck_inspection_metrics_fuel_range",
        ),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    phase: Mapped[str] = mapped_column(String(20), nullable=False)
    odometer: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fuel_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> InspectionMetrics:
        from rental_kernel.domain.booking import (
            InspectionMetrics as InspectionMetricsDTO,
            PhotoPhase,
        )

        return InspectionMetricsDTO(
            booking_id=self.booking_id,
            phase=PhotoPhase(self.phase),
            odometer=self.odometer,
            fuel_level=self.fuel_level,
            recorded_at=as_utc(self.recorded_at),
            notes=self.notes,
        )


class DepositLedgerModel(Base):
    """Append-only deposit release/withhold entries."""

    __tablename__ = "deposit_ledger"

    __table_args__ = (
        CheckConstraint(
            "action IN ('release', 'withhold', 'partial_release')",
            name="ck_deposit_ledger_valid_action",
        ),
        CheckConstraint("amount > 0", name="ck_deposit_ledger_amount_positive"),
        Index("ix_deposit_ledger_booking", "booking_id", "created_at"),
    )

    booking_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bookings.id"), nullable=False,
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self) -> DepositLedgerEntry:
        from rental_kernel.domain.booking import (
            DepositAction,
            DepositLedgerEntry as DepositLedgerEntryDTO,
        )

        return DepositLedgerEntryDTO(
            booking_id=self.booking_id,
            action=DepositAction(self.action),
            amount=Decimal(str(self.amount)),
            reason=self.reason,
            created_by=self.created_by,
            created_at=as_utc(self.created_at),
        )

    @classmethod
    def from_dto(cls, dto: DepositLedgerEntry, created_at: datetime) -> DepositLedgerModel:
        return cls(
            booking_id=dto.booking_id,
            action=dto.action.value,
            amount=dto.amount,
            reason=dto.reason,
            created_by=dto.created_by,
            created_at=dto.created_at or created_at,
        )
