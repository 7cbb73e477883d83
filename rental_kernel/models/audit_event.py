"""
Module: rental_kernel.models.audit_event
Responsibility: ORM persistence for the append-only return audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit rows are append-only: any UPDATE or DELETE through the ORM
      raises ImmutabilityViolationError.
    - Every return action (step completion, late-fee approval, damage
      report, photo upload, admin override) writes one row in the same
      transaction as the change it describes.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import Base, UUIDString, as_utc
from rental_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from rental_kernel.domain.booking import ReturnAuditRecord


class ReturnAuditAction(str, Enum):
    """Types of auditable return actions."""

    RETURN_STARTED = "return_started"
    STEP_COMPLETED = "step_completed"
    LATE_FEE_APPROVED = "late_fee_approved"
    LATE_FEE_OVERRIDDEN = "late_fee_overridden"
    DAMAGE_REPORTED = "damage_reported"
    DAMAGE_REMOVED = "damage_removed"
    PHOTO_UPLOADED = "photo_uploaded"
    ADMIN_STATE_OVERRIDE = "admin_state_override"


class ReturnAuditEventModel(Base):
    """One audit line for a return action."""

    __tablename__ = "return_audit_events"

    __table_args__ = (
        Index("ix_return_audit_events_booking", "booking_id", "occurred_at"),
    )

    booking_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ReturnAuditEvent {self.booking_id} {self.action}>"

    def to_dto(self) -> ReturnAuditRecord:
        from rental_kernel.domain.booking import ReturnAuditRecord as ReturnAuditRecordDTO

        return ReturnAuditRecordDTO(
            booking_id=self.booking_id,
            action=self.action,
            actor_id=self.actor_id,
            occurred_at=as_utc(self.occurred_at),
            from_state=self.from_state,
            to_state=self.to_state,
            payload=dict(self.payload or {}),
        )


@event.listens_for(ReturnAuditEventModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to return audit records."""
    raise ImmutabilityViolationError(
        entity_type="ReturnAuditEvent",
        entity_id=str(target.id),
        reason="Return audit events are append-only -- cannot modify",
    )


@event.listens_for(ReturnAuditEventModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of return audit records."""
    raise ImmutabilityViolationError(
        entity_type="ReturnAuditEvent",
        entity_id=str(target.id),
        reason="Return audit events are append-only -- cannot delete",
    )
