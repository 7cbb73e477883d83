"""
rental_kernel.services.return_store -- Record store for the return workflow.

Responsibility:
    Reads bookings and their side records as typed DTOs, and writes each
    return action as ONE transaction: booking fields, return_state, side
    records (inspection metrics, deposit ledger, damage reports, photos),
    and the audit event commit or roll back together.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Atomic step writes: a failure anywhere in the unit leaves every
      record unchanged.
    - Compare-and-set on return_state: a write that names an expected
      state fails with InvalidStateTransitionError if the stored state
      has moved on.
    - DTOs are built inside the session, so server-side values are
      loaded before the session closes.

Failure modes:
    - BookingNotFoundError if the booking does not exist.
    - InvalidBookingRecordError if a stored row fails read validation.
    - RecordReadError / RecordWriteError wrapping any SQLAlchemyError.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generator, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from rental_kernel.domain.booking import (
    Booking,
    ConditionPhoto,
    DamageReport,
    DamageStatus,
    DepositLedgerEntry,
    InspectionMetrics,
    PhotoPhase,
    ReturnAuditRecord,
)
from rental_kernel.domain.return_state import ReturnState, parse_return_state
from rental_kernel.exceptions import (
    BookingNotFoundError,
    InvalidStateTransitionError,
    RecordReadError,
    RecordWriteError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.models.audit_event import ReturnAuditEventModel
from rental_kernel.models.booking import BookingModel
from rental_kernel.models.return_records import (
    ConditionPhotoModel,
    DamageReportModel,
    DepositLedgerModel,
    InspectionMetricsModel,
)

logger = get_logger("services.return_store")


@dataclass(frozen=True)
class ReturnSnapshot:
    """Booking plus every side record the return screen derives from."""

    booking: Booking
    damage_reports: tuple[DamageReport, ...] = ()
    return_photos: tuple[ConditionPhoto, ...] = ()
    pickup_metrics: InspectionMetrics | None = None
    return_metrics: InspectionMetrics | None = None
    deposit_entries: tuple[DepositLedgerEntry, ...] = ()

    @property
    def open_damage_reports(self) -> tuple[DamageReport, ...]:
        return tuple(d for d in self.damage_reports if d.status == DamageStatus.OPEN)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


class ReturnRecordStore:
    """SQLAlchemy-backed record store.

    Every public method opens and closes its own session, so callers never
    hold a transaction across steps.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _reading(self, entity_type: str) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.warning(
                "storage_read_failed",
                extra={"entity_type": entity_type, "detail": str(exc)},
            )
            raise RecordReadError(entity_type, str(exc)) from exc
        finally:
            session.close()

    @contextmanager
    def _writing(self, entity_type: str, entity_id: UUID) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning(
                "storage_write_failed",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "detail": str(exc),
                },
            )
            raise RecordWriteError(entity_type, str(entity_id), str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _load_booking_model(session: Session, booking_id: UUID) -> BookingModel:
        model = session.get(BookingModel, booking_id)
        if model is None:
            raise BookingNotFoundError(str(booking_id))
        return model

    @staticmethod
    def _append_audit(session: Session, record: ReturnAuditRecord) -> None:
        session.add(
            ReturnAuditEventModel(
                booking_id=record.booking_id,
                action=record.action,
                actor_id=record.actor_id,
                from_state=record.from_state,
                to_state=record.to_state,
                payload=dict(record.payload),
                occurred_at=record.occurred_at,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: UUID) -> Booking:
        with self._reading("booking") as session:
            return self._load_booking_model(session, booking_id).to_dto()

    def list_damage_reports(
        self, booking_id: UUID, include_closed: bool = False,
    ) -> list[DamageReport]:
        with self._reading("damage_report") as session:
            stmt = (
                select(DamageReportModel)
                .where(DamageReportModel.booking_id == booking_id)
                .order_by(DamageReportModel.reported_at)
            )
            if not include_closed:
                stmt = stmt.where(DamageReportModel.status == DamageStatus.OPEN.value)
            return [m.to_dto() for m in session.scalars(stmt)]

    def list_photos(
        self, booking_id: UUID, phase: PhotoPhase | None = None,
    ) -> list[ConditionPhoto]:
        with self._reading("condition_photo") as session:
            stmt = (
                select(ConditionPhotoModel)
                .where(ConditionPhotoModel.booking_id == booking_id)
                .order_by(ConditionPhotoModel.captured_at)
            )
            if phase is not None:
                stmt = stmt.where(ConditionPhotoModel.phase == phase.value)
            return [m.to_dto() for m in session.scalars(stmt)]

    def get_inspection_metrics(
        self, booking_id: UUID, phase: PhotoPhase,
    ) -> InspectionMetrics | None:
        with self._reading("inspection_metrics") as session:
            model = self._find_metrics(session, booking_id, phase)
            return model.to_dto() if model is not None else None

    def list_deposit_entries(self, booking_id: UUID) -> list[DepositLedgerEntry]:
        with self._reading("deposit_ledger") as session:
            stmt = (
                select(DepositLedgerModel)
                .where(DepositLedgerModel.booking_id == booking_id)
                .order_by(DepositLedgerModel.created_at)
            )
            return [m.to_dto() for m in session.scalars(stmt)]

    def list_audit_events(self, booking_id: UUID) -> list[ReturnAuditRecord]:
        with self._reading("return_audit_event") as session:
            stmt = (
                select(ReturnAuditEventModel)
                .where(ReturnAuditEventModel.booking_id == booking_id)
                .order_by(ReturnAuditEventModel.occurred_at)
            )
            return [m.to_dto() for m in session.scalars(stmt)]

    def load_snapshot(self, booking_id: UUID) -> ReturnSnapshot:
        """Read the booking and all side records in one session."""
        with self._reading("booking") as session:
            booking = self._load_booking_model(session, booking_id).to_dto()
            damages = session.scalars(
                select(DamageReportModel)
                .where(DamageReportModel.booking_id == booking_id)
                .order_by(DamageReportModel.reported_at)
            )
            photos = session.scalars(
                select(ConditionPhotoModel)
                .where(
                    ConditionPhotoModel.booking_id == booking_id,
                    ConditionPhotoModel.phase == PhotoPhase.RETURN.value,
                )
                .order_by(ConditionPhotoModel.captured_at)
            )
            ledger = session.scalars(
                select(DepositLedgerModel)
                .where(DepositLedgerModel.booking_id == booking_id)
                .order_by(DepositLedgerModel.created_at)
            )
            pickup = self._find_metrics(session, booking_id, PhotoPhase.PICKUP)
            returned = self._find_metrics(session, booking_id, PhotoPhase.RETURN)
            return ReturnSnapshot(
                booking=booking,
                damage_reports=tuple(m.to_dto() for m in damages),
                return_photos=tuple(m.to_dto() for m in photos),
                pickup_metrics=pickup.to_dto() if pickup is not None else None,
                return_metrics=returned.to_dto() if returned is not None else None,
                deposit_entries=tuple(m.to_dto() for m in ledger),
            )

    @staticmethod
    def _find_metrics(
        session: Session, booking_id: UUID, phase: PhotoPhase,
    ) -> InspectionMetricsModel | None:
        return session.scalars(
            select(InspectionMetricsModel).where(
                InspectionMetricsModel.booking_id == booking_id,
                InspectionMetricsModel.phase == phase.value,
            )
        ).first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_booking(self, booking: Booking) -> Booking:
        with self._writing("booking", booking.id) as session:
            model = BookingModel.from_dto(booking)
            session.add(model)
            session.flush()
            return model.to_dto()

    def record_inspection_metrics(
        self, metrics: InspectionMetrics, recorded_by: UUID | None = None,
    ) -> InspectionMetrics:
        """Insert or replace the metrics row for a booking phase."""
        with self._writing("inspection_metrics", metrics.booking_id) as session:
            model = self._upsert_metrics(session, metrics, recorded_by)
            session.flush()
            return model.to_dto()

    def update_booking(
        self,
        booking_id: UUID,
        changes: dict[str, Any],
        audit: ReturnAuditRecord,
        *,
        expected_state: ReturnState | None = None,
        metrics: InspectionMetrics | None = None,
        ledger_entries: Iterable[DepositLedgerEntry] = (),
    ) -> Booking:
        """Apply one return action atomically.

        Args:
            booking_id: Booking to update.
            changes: Column name -> new value.  Enums are stored by value.
            audit: Audit line written in the same transaction.
            expected_state: If given, the stored return_state must equal it.
            metrics: Inspection metrics to upsert with the change.
            ledger_entries: Deposit ledger entries to append.

        Returns:
            The booking as committed.
        """
        with self._writing("booking", booking_id) as session:
            model = self._load_booking_model(session, booking_id)
            if expected_state is not None:
                stored = parse_return_state(model.return_state)
                if stored != expected_state:
                    raise InvalidStateTransitionError(
                        stored.value, str(changes.get("return_state", expected_state.value)),
                    )
            for column, value in changes.items():
                setattr(model, column, _column_value(value))
            if metrics is not None:
                self._upsert_metrics(session, metrics, audit.actor_id)
            for entry in ledger_entries:
                session.add(DepositLedgerModel.from_dto(entry, audit.occurred_at))
            self._append_audit(session, audit)
            session.flush()
            return model.to_dto()

    def add_damage_report(
        self, report: DamageReport, audit: ReturnAuditRecord,
    ) -> DamageReport:
        with self._writing("damage_report", report.id) as session:
            self._load_booking_model(session, report.booking_id)
            model = DamageReportModel(
                id=report.id,
                booking_id=report.booking_id,
                location_on_vehicle=report.location_on_vehicle,
                description=report.description,
                severity=report.severity.value,
                estimated_cost=report.estimated_cost,
                status=report.status.value,
                reported_by=audit.actor_id,
                reported_at=report.reported_at or audit.occurred_at,
            )
            session.add(model)
            self._append_audit(session, audit)
            session.flush()
            return model.to_dto()

    def remove_damage_report(
        self, booking_id: UUID, report_id: UUID, audit: ReturnAuditRecord,
    ) -> bool:
        """Delete a damage report.  Returns False if it did not exist."""
        with self._writing("damage_report", report_id) as session:
            model = session.get(DamageReportModel, report_id)
            if model is None or model.booking_id != booking_id:
                return False
            session.delete(model)
            self._append_audit(session, audit)
            return True

    def add_photo(self, photo: ConditionPhoto, audit: ReturnAuditRecord) -> ConditionPhoto:
        with self._writing("condition_photo", photo.id) as session:
            self._load_booking_model(session, photo.booking_id)
            model = ConditionPhotoModel(
                id=photo.id,
                booking_id=photo.booking_id,
                phase=photo.phase.value,
                photo_type=photo.photo_type.value,
                storage_key=photo.storage_key,
                captured_by=audit.actor_id,
                captured_at=photo.captured_at or audit.occurred_at,
            )
            session.add(model)
            self._append_audit(session, audit)
            session.flush()
            return model.to_dto()

    @classmethod
    def _upsert_metrics(
        cls,
        session: Session,
        metrics: InspectionMetrics,
        recorded_by: UUID | None,
    ) -> InspectionMetricsModel:
        model = cls._find_metrics(session, metrics.booking_id, metrics.phase)
        if model is None:
            model = InspectionMetricsModel(
                booking_id=metrics.booking_id,
                phase=metrics.phase.value,
            )
            session.add(model)
        model.odometer = metrics.odometer
        model.fuel_level = metrics.fuel_level
        model.notes = metrics.notes
        model.recorded_by = recorded_by
        model.recorded_at = metrics.recorded_at
        return model
