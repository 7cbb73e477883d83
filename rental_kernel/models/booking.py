"""
Module: rental_kernel.models.booking
Responsibility: ORM persistence for the booking fields the return workflow
    reads and writes.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``to_dto()`` is the read boundary: unknown status/state/deposit
      strings and negative amounts raise InvalidBookingRecordError, so the
      engines only ever see a well-typed Booking.
    - Legacy return_state names are mapped on read (see
      ``parse_return_state``).

Failure modes:
    - InvalidBookingRecordError from ``to_dto()`` on a malformed row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString, as_utc
from rental_kernel.exceptions import InvalidBookingRecordError

if TYPE_CHECKING:
    from rental_kernel.domain.booking import Booking


class BookingModel(Base):
    """Persistent booking row (return-workflow columns only)."""

    __tablename__ = "bookings"

    __table_args__ = (
        CheckConstraint(
            "deposit_amount >= 0",
            name="ck_bookings_deposit_non_negative",
        ),
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    return_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    actual_return_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0"),
    )
    deposit_status: Mapped[str | None] = mapped_column(String(30), nullable=True)

    late_return_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    late_return_fee_override: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True,
    )
    late_return_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    late_fee_approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    late_fee_approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    return_is_exception: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    return_exception_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    return_intake_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_intake_completed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    return_evidence_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_evidence_completed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    return_issues_reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_issues_reviewed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    return_closed_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_closed_out_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    return_deposit_settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    return_deposit_settled_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    updated_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id} status={self.status} "
            f"return_state={self.return_state}>"
        )

    def _invalid(self, field_name: str, value: object) -> InvalidBookingRecordError:
        return InvalidBookingRecordError(str(self.id), field_name, str(value))

    def _amount(self, field_name: str, value: Decimal | None) -> Decimal | None:
        if value is None:
            return None
        amount = Decimal(str(value))
        if amount < 0:
            raise self._invalid(field_name, value)
        return amount

    def to_dto(self) -> Booking:
        """Convert ORM model to frozen domain DTO, validating every field."""
        from rental_kernel.domain.booking import (
            Booking as BookingDTO,
            BookingStatus,
            DepositStatus,
        )
        from rental_kernel.domain.return_state import parse_return_state

        try:
            status = BookingStatus(self.status)
        except ValueError:
            raise self._invalid("status", self.status) from None
        try:
            return_state = parse_return_state(self.return_state)
        except ValueError:
            raise self._invalid("return_state", self.return_state) from None
        try:
            deposit_status = (
                DepositStatus(self.deposit_status) if self.deposit_status else None
            )
        except ValueError:
            raise self._invalid("deposit_status", self.deposit_status) from None

        return BookingDTO(
            id=self.id,
            status=status,
            return_state=return_state,
            start_at=as_utc(self.start_at),
            end_at=as_utc(self.end_at),
            deposit_amount=self._amount("deposit_amount", self.deposit_amount) or Decimal("0"),
            deposit_status=deposit_status,
            actual_return_at=as_utc(self.actual_return_at),
            return_started_at=as_utc(self.return_started_at),
            late_return_fee=self._amount("late_return_fee", self.late_return_fee),
            late_return_fee_override=self._amount(
                "late_return_fee_override", self.late_return_fee_override,
            ),
            late_return_override_reason=self.late_return_override_reason,
            late_fee_approved_at=as_utc(self.late_fee_approved_at),
            late_fee_approved_by=self.late_fee_approved_by,
            return_is_exception=bool(self.return_is_exception),
            return_exception_reason=self.return_exception_reason,
            return_intake_completed_at=as_utc(self.return_intake_completed_at),
            return_evidence_completed_at=as_utc(self.return_evidence_completed_at),
            return_issues_reviewed_at=as_utc(self.return_issues_reviewed_at),
            return_closed_out_at=as_utc(self.return_closed_out_at),
            return_deposit_settled_at=as_utc(self.return_deposit_settled_at),
            state_recorded=self.return_state not in (None, ""),
        )

    @classmethod
    def from_dto(cls, dto: Booking) -> BookingModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.id,
            status=dto.status.value,
            return_state=dto.return_state.value if dto.state_recorded else None,
            start_at=dto.start_at,
            end_at=dto.end_at,
            deposit_amount=dto.deposit_amount,
            deposit_status=dto.deposit_status.value if dto.deposit_status else None,
            actual_return_at=dto.actual_return_at,
            return_started_at=dto.return_started_at,
            late_return_fee=dto.late_return_fee,
            late_return_fee_override=dto.late_return_fee_override,
            late_return_override_reason=dto.late_return_override_reason,
            late_fee_approved_at=dto.late_fee_approved_at,
            late_fee_approved_by=dto.late_fee_approved_by,
            return_is_exception=dto.return_is_exception,
            return_exception_reason=dto.return_exception_reason,
            return_intake_completed_at=dto.return_intake_completed_at,
            return_evidence_completed_at=dto.return_evidence_completed_at,
            return_issues_reviewed_at=dto.return_issues_reviewed_at,
            return_closed_out_at=dto.return_closed_out_at,
            return_deposit_settled_at=dto.return_deposit_settled_at,
        )
