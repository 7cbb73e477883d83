"""
rental_services.return_orchestrator -- Vehicle return workflow coordinator.

Responsibility:
    Sequences the five return steps for one staff operator: loads the
    booking and its side records, derives completion and the exception
    classification, gates each step, validates the step's local
    preconditions, and persists the step as one atomic write with its
    audit event.  Thin coordinator -- fee arithmetic, gating, checklist
    and deposit rules are delegated to the pure engines.

Architecture position:
    Services layer.  May import from rental_engines/ (pure engines),
    rental_kernel/ (domain, services), and rental_config/.

Invariants enforced:
    - A step is completed only from its prerequisite state, and the write
      compares-and-sets return_state so the state advances one rank.
    - The exception classification is latched per return session: once a
      return is an exception it stays one, even if the damage that caused
      it is removed.
    - Late-fee edits are locked once the return is closed out.
    - Closeout moves the booking to ``completed``; deposit settlement
      keeps it there.
    - A failed write leaves state, side records, and session focus as
      they were.

Failure modes:
    Mutating actions never raise.  Validation and precondition failures
    return ``StepResult(success=False, retryable=False)``; storage
    failures return ``retryable=True``.  ``open_return`` and the checklist
    readers raise StorageError since there is no action to retry.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable
from uuid import UUID, uuid4

from rental_config import ReturnPolicy
from rental_engines import late_fee as late_fee_engine
from rental_engines.closeout import build_closeout_checklist
from rental_engines.completion import derive_completion, effective_state
from rental_engines.deposit import plan_settlement, suggest_settlement
from rental_engines.exception_classifier import classify_exception
from rental_engines.step_checks import check_evidence, check_intake, check_issues
from rental_engines.transition_guard import (
    accessible_steps,
    can_access_step,
    completed_steps,
    get_current_step,
    is_step_complete,
    next_accessible_step,
    validate_status_change,
)
from rental_kernel.domain.booking import (
    BookingStatus,
    ConditionPhoto,
    DamageReport,
    DamageSeverity,
    DepositAction,
    InspectionMetrics,
    PhotoPhase,
    PhotoType,
    ReturnAuditRecord,
)
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.late_fee import LateFeeStatus
from rental_kernel.domain.return_ops import (
    CloseoutChecklist,
    DepositDecision,
    ExceptionClassification,
    LateFeeView,
    ReturnCompletion,
    ReturnView,
    StepResult,
)
from rental_kernel.domain.return_state import (
    STEPS_BY_ID,
    TERMINAL_STATE,
    ReturnState,
    ReturnStepId,
    is_state_at_least,
    next_state,
    parse_return_state,
)
from rental_kernel.exceptions import (
    CloseoutBlockedError,
    DamageReportNotFoundError,
    InvalidFieldError,
    InvalidPhotoTypeError,
    LateFeeLockedError,
    MissingFieldError,
    NegativeFeeError,
    OverrideReasonTooShortError,
    RentalKernelError,
    StepNotAccessibleError,
    StorageError,
    ValidationError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.models.audit_event import ReturnAuditAction
from rental_kernel.services.return_store import ReturnRecordStore, ReturnSnapshot
from rental_services.change_feed import (
    BookingReadCache,
    ChangeEvent,
    ChangeFeed,
    ChangeOperation,
    InMemoryChangeFeed,
)
from rental_services.identity import IdentityProvider, require_user
from rental_services.photo_storage import ObjectStorage, photo_key

logger = get_logger("services.return_orchestrator")

# Trace message and outcome codes for structured logging
TRACE_TYPE_RETURN_ACTION = "RETURN_ACTION"
OUTCOME_SUCCESS = "success"
OUTCOME_ALREADY_COMPLETE = "already_complete"
OUTCOME_REJECTED = "rejected"
OUTCOME_STORAGE_FAILED = "storage_failed"

# Money columns are Numeric(12, 2)
MAX_AMOUNT = Decimal("10000000000")
MAX_WHOLE_NUMBER = 2**31 - 1

# Completion stamp columns per step
_STEP_STAMPS: dict[ReturnStepId, tuple[str, str]] = {
    ReturnStepId.INTAKE: ("return_intake_completed_at", "return_intake_completed_by"),
    ReturnStepId.EVIDENCE: ("return_evidence_completed_at", "return_evidence_completed_by"),
    ReturnStepId.ISSUES: ("return_issues_reviewed_at", "return_issues_reviewed_by"),
    ReturnStepId.CLOSEOUT: ("return_closed_out_at", "return_closed_out_by"),
    ReturnStepId.DEPOSIT: ("return_deposit_settled_at", "return_deposit_settled_by"),
}


def _emit_return_trace(
    action: str,
    booking_id: UUID,
    outcome: str,
    duration_ms: float,
    from_state: ReturnState | None = None,
    to_state: ReturnState | None = None,
    reason: str = "",
) -> None:
    """Emit one structured record per orchestrator action."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_RETURN_ACTION,
        "action": action,
        "booking_id": str(booking_id),
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if from_state is not None:
        record["from_state"] = from_state.value
    if to_state is not None:
        record["to_state"] = to_state.value
    logger.info("return_action", extra=record)


# ---------------------------------------------------------------------------
# Payload coercion
# ---------------------------------------------------------------------------


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _decimal_field(name: str, value: Any, expected: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidFieldError(name, str(value), expected)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidFieldError(name, str(value), expected) from None
    if not number.is_finite():
        raise InvalidFieldError(name, str(value), expected)
    return number


def _int_field(name: str, value: Any) -> int | None:
    """Whole number from form input.  Blank input is None."""
    if _blank(value):
        return None
    number = _decimal_field(name, value, "a whole number")
    if number != number.to_integral_value() or abs(number) > MAX_WHOLE_NUMBER:
        raise InvalidFieldError(name, str(value), "a whole number")
    return int(number)


def _money_field(name: str, value: Any) -> Decimal | None:
    """Amount in cents from form input.  Blank input is None."""
    if _blank(value):
        return None
    amount = _decimal_field(name, value, "an amount")
    if abs(amount) >= MAX_AMOUNT:
        raise InvalidFieldError(name, str(value), f"an amount below {MAX_AMOUNT}")
    return late_fee_engine.to_money(amount)


def _text_field(name: str, value: Any) -> str | None:
    """Stripped text.  Blank input is None."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFieldError(name, str(value), "text")
    return value.strip() or None


def _datetime_field(name: str, value: Any) -> datetime | None:
    """Aware datetime from a datetime or ISO 8601 string.  Naive means UTC."""
    if _blank(value):
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            raise InvalidFieldError(name, value, "an ISO 8601 timestamp") from None
    if not isinstance(value, datetime):
        raise InvalidFieldError(name, str(value), "an ISO 8601 timestamp")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class _StepWrite:
    """Everything one step persists besides return_state and its stamps."""

    changes: dict[str, Any]
    metrics: InspectionMetrics | None = None
    ledger_entries: tuple = ()
    payload: dict[str, Any] | None = None


@dataclass
class ReturnSession:
    """Per-booking operator session state (not persisted)."""

    booking_id: UUID
    exception_latched: bool
    active_step: ReturnStepId


class ReturnOrchestrator:
    """Coordinates the return workflow for bookings."""

    def __init__(
        self,
        store: ReturnRecordStore,
        identity: IdentityProvider,
        storage: ObjectStorage,
        policy: ReturnPolicy | None = None,
        clock: Clock | None = None,
        change_feed: ChangeFeed | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._storage = storage
        self._policy = policy or ReturnPolicy()
        self._clock = clock or SystemClock()
        self._feed = change_feed or InMemoryChangeFeed()
        self._snapshots: BookingReadCache[ReturnSnapshot] = BookingReadCache(self._feed)
        self._sessions: dict[UUID, ReturnSession] = {}
        self._step_handlers: dict[
            ReturnStepId,
            Callable[[ReturnSnapshot, ReturnView, dict[str, Any], UUID, datetime], _StepWrite],
        ] = {
            ReturnStepId.INTAKE: self._intake_write,
            ReturnStepId.EVIDENCE: self._evidence_write,
            ReturnStepId.ISSUES: self._issues_write,
            ReturnStepId.CLOSEOUT: self._closeout_write,
            ReturnStepId.DEPOSIT: self._deposit_write,
        }

    @property
    def policy(self) -> ReturnPolicy:
        return self._policy

    def session_for(self, booking_id: UUID) -> ReturnSession | None:
        return self._sessions.get(booking_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _load_snapshot(self, booking_id: UUID, fresh: bool = False) -> ReturnSnapshot:
        if not fresh:
            cached = self._snapshots.get(booking_id)
            if cached is not None:
                return cached
        snapshot = self._store.load_snapshot(booking_id)
        self._snapshots.put(booking_id, snapshot)
        return snapshot

    def _completion(self, snapshot: ReturnSnapshot) -> ReturnCompletion:
        return derive_completion(
            snapshot.booking,
            snapshot.return_metrics,
            len({p.photo_type for p in snapshot.return_photos}),
            len(snapshot.open_damage_reports),
            len(snapshot.deposit_entries),
            self._policy.exception_min_photos,
        )

    def _state_of(self, snapshot: ReturnSnapshot) -> ReturnState:
        """Stored return_state, or the state the side records imply when none is stored."""
        if snapshot.booking.state_recorded:
            return snapshot.booking.return_state
        return effective_state(self._completion(snapshot))

    def _session(self, snapshot: ReturnSnapshot) -> ReturnSession:
        booking = snapshot.booking
        session = self._sessions.get(booking.id)
        if session is None:
            session = ReturnSession(
                booking_id=booking.id,
                exception_latched=booking.return_is_exception,
                active_step=get_current_step(self._state_of(snapshot)),
            )
            self._sessions[booking.id] = session
        return session

    def _build_view(self, snapshot: ReturnSnapshot) -> ReturnView:
        booking = snapshot.booking
        completion = self._completion(snapshot)
        state = booking.return_state if booking.state_recorded else effective_state(completion)
        session = self._session(snapshot)
        policy = self._policy

        returned_at = booking.actual_return_at or self._clock.now()
        assessment = late_fee_engine.assess(
            booking.end_at,
            returned_at,
            policy.grace_minutes,
            policy.hourly_rate,
            policy.currency,
        )
        fee_status = late_fee_engine.late_fee_status(
            assessment.fee,
            booking.late_fee_approved_at,
            booking.late_return_fee_override,
        )
        fee_view = LateFeeView(
            assessment=assessment,
            status=fee_status,
            effective_fee=late_fee_engine.effective_fee(
                assessment.fee,
                booking.late_return_fee,
                booking.late_return_fee_override,
            ),
            override_reason=booking.late_return_override_reason,
            locked=is_state_at_least(state, ReturnState.CLOSED_OUT),
        )

        open_damages = snapshot.open_damage_reports
        damage_cost = sum(
            (d.estimated_cost for d in open_damages if d.estimated_cost is not None),
            Decimal("0"),
        )
        classification = classify_exception(
            len(open_damages),
            damage_cost,
            assessment.fee,
            previously_exception=session.exception_latched,
        )
        session.exception_latched = classification.is_exception

        photo_types = {p.photo_type for p in snapshot.return_photos}
        checklist = build_closeout_checklist(
            state, classification.is_exception, fee_status, len(open_damages),
        )

        return ReturnView(
            booking=booking,
            return_state=state,
            current_step=get_current_step(state),
            active_step=session.active_step,
            completion=completion,
            classification=classification,
            late_fee=fee_view,
            checklist=checklist,
            accessible_steps=accessible_steps(state),
            completed_steps=completed_steps(state),
            damage_count=len(open_damages),
            return_photo_count=len(photo_types),
        )

    def open_return(self, booking_id: UUID) -> ReturnView:
        """Load a return and focus the first incomplete step.

        Raises:
            StorageError: If the booking cannot be read.
        """
        snapshot = self._load_snapshot(booking_id)
        session = self._session(snapshot)
        session.active_step = get_current_step(self._state_of(snapshot))
        view = self._build_view(snapshot)
        logger.info(
            "return_opened",
            extra={
                "booking_id": str(booking_id),
                "return_state": view.return_state.value,
                "current_step": view.current_step.value,
                "is_exception": view.classification.is_exception,
            },
        )
        return view

    def closeout_checklist(self, booking_id: UUID) -> CloseoutChecklist:
        return self._build_view(self._load_snapshot(booking_id)).checklist

    def can_close_out(self, booking_id: UUID) -> bool:
        return self.closeout_checklist(booking_id).can_close_out

    def classification(self, booking_id: UUID) -> ExceptionClassification:
        return self._build_view(self._load_snapshot(booking_id)).classification

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    def _failure(
        self,
        exc: RentalKernelError,
        action: str,
        booking_id: UUID,
        started: float,
        step_id: ReturnStepId | None = None,
    ) -> StepResult:
        retryable = isinstance(exc, StorageError)
        outcome = OUTCOME_STORAGE_FAILED if retryable else OUTCOME_REJECTED
        if retryable:
            logger.warning(
                "return_storage_failed",
                extra={"action": action, "booking_id": str(booking_id)},
                exc_info=exc,
            )
        else:
            logger.info(
                "return_action_rejected",
                extra={
                    "action": action,
                    "booking_id": str(booking_id),
                    "error_code": exc.code,
                },
            )
        _emit_return_trace(
            action,
            booking_id,
            outcome,
            (time.monotonic() - started) * 1000,
            reason=str(exc),
        )
        session = self._sessions.get(booking_id)
        return StepResult(
            success=False,
            step_id=step_id,
            active_step=session.active_step if session else None,
            error_code=exc.code,
            message=str(exc),
            retryable=retryable,
            details={k: v for k, v in vars(exc).items() if not k.startswith("_")},
        )

    def _publish(
        self, table: str, record_id: UUID, booking_id: UUID, operation: ChangeOperation,
    ) -> None:
        self._feed.publish(
            ChangeEvent(
                table=table,
                record_id=record_id,
                booking_id=booking_id,
                operation=operation,
            )
        )

    def _audit(
        self,
        booking_id: UUID,
        action: ReturnAuditAction,
        actor_id: UUID,
        now: datetime,
        from_state: ReturnState | None = None,
        to_state: ReturnState | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ReturnAuditRecord:
        return ReturnAuditRecord(
            booking_id=booking_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=now,
            from_state=from_state.value if from_state else None,
            to_state=to_state.value if to_state else None,
            payload=payload or {},
        )

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    def start_return(self, booking_id: UUID) -> StepResult:
        """Stamp return_started_at once."""
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            snapshot = self._load_snapshot(booking_id, fresh=True)
            booking = snapshot.booking
            state = self._state_of(snapshot)
            if booking.return_started_at is not None:
                return StepResult(
                    success=True,
                    new_state=state,
                    already_complete=True,
                    active_step=self._session(snapshot).active_step,
                    message="Return already started",
                )
            now = self._clock.now()
            self._store.update_booking(
                booking_id,
                {"return_started_at": now, "updated_by": actor},
                self._audit(booking_id, ReturnAuditAction.RETURN_STARTED, actor, now),
            )
            self._publish("bookings", booking_id, booking_id, ChangeOperation.UPDATE)
            _emit_return_trace(
                "start_return", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000,
                from_state=state,
            )
            return StepResult(success=True, new_state=state)
        except RentalKernelError as exc:
            return self._failure(exc, "start_return", booking_id, started)

    def complete_step(
        self,
        booking_id: UUID,
        step_id: ReturnStepId | str,
        payload: dict[str, Any] | None = None,
    ) -> StepResult:
        """Complete one return step.

        Args:
            booking_id: Booking being returned.
            step_id: Step to complete.
            payload: Step input.  Intake: ``odometer``, ``fuel_level``,
                ``returned_at``, ``notes``.  Issues: ``acknowledged``.
                Deposit: ``action``, ``withhold_amount``, ``reason``.

        Returns:
            StepResult.  On success ``new_state`` is the state produced by
            the step and ``active_step`` the step focused next.
        """
        started = time.monotonic()
        payload = payload or {}
        action = f"complete_step:{step_id}"
        resolved: ReturnStepId | None = None
        try:
            try:
                resolved = ReturnStepId(step_id)
            except ValueError:
                raise ValidationError(f"Unknown return step: {step_id}") from None

            actor = require_user(self._identity)
            with LogContext.bind(
                booking_id=str(booking_id), actor_id=str(actor), step=resolved.value,
            ):
                return self._complete_step(booking_id, resolved, payload, actor, started)
        except RentalKernelError as exc:
            return self._failure(exc, action, booking_id, started, step_id=resolved)

    def _complete_step(
        self,
        booking_id: UUID,
        step_id: ReturnStepId,
        payload: dict[str, Any],
        actor: UUID,
        started: float,
    ) -> StepResult:
        snapshot = self._load_snapshot(booking_id, fresh=True)
        view = self._build_view(snapshot)
        session = self._session(snapshot)
        state = view.return_state

        if is_step_complete(step_id, state):
            _emit_return_trace(
                f"complete_step:{step_id.value}", booking_id, OUTCOME_ALREADY_COMPLETE,
                (time.monotonic() - started) * 1000, from_state=state,
            )
            return StepResult(
                success=True,
                step_id=step_id,
                new_state=state,
                active_step=session.active_step,
                already_complete=True,
                message=f"Step '{step_id.value}' is already complete",
            )

        if not can_access_step(step_id, state):
            raise StepNotAccessibleError(
                step_id.value, state.value, STEPS_BY_ID[step_id].prerequisite_state.value,
            )

        now = self._clock.now()
        write = self._step_handlers[step_id](snapshot, view, payload, actor, now)

        new_state = next_state(step_id)
        at_column, by_column = _STEP_STAMPS[step_id]
        changes = dict(write.changes)
        changes.update({
            "return_state": new_state,
            at_column: now,
            by_column: actor,
            "updated_by": actor,
        })
        audit = self._audit(
            booking_id,
            ReturnAuditAction.STEP_COMPLETED,
            actor,
            now,
            from_state=state,
            to_state=new_state,
            payload={"step": step_id.value, **(write.payload or {})},
        )
        self._store.update_booking(
            booking_id,
            changes,
            audit,
            expected_state=snapshot.booking.return_state,
            metrics=write.metrics,
            ledger_entries=write.ledger_entries,
        )
        self._publish("bookings", booking_id, booking_id, ChangeOperation.UPDATE)

        session.active_step = next_accessible_step(step_id) or step_id
        if new_state == TERMINAL_STATE:
            self._sessions.pop(booking_id, None)
        logger.info(
            "return_step_completed",
            extra={
                "booking_id": str(booking_id),
                "step_id": step_id.value,
                "from_state": state.value,
                "to_state": new_state.value,
            },
        )
        _emit_return_trace(
            f"complete_step:{step_id.value}", booking_id, OUTCOME_SUCCESS,
            (time.monotonic() - started) * 1000,
            from_state=state, to_state=new_state,
        )
        return StepResult(
            success=True,
            step_id=step_id,
            new_state=new_state,
            active_step=session.active_step,
        )

    # ------------------------------------------------------------------
    # Step writes
    # ------------------------------------------------------------------

    def _intake_write(
        self,
        snapshot: ReturnSnapshot,
        view: ReturnView,
        payload: dict[str, Any],
        actor: UUID,
        now: datetime,
    ) -> _StepWrite:
        odometer = _int_field("odometer", payload.get("odometer"))
        fuel_level = _int_field("fuel_level", payload.get("fuel_level"))
        pickup = snapshot.pickup_metrics
        check_intake(odometer, fuel_level, pickup.odometer if pickup else None)

        returned_at = _datetime_field("returned_at", payload.get("returned_at")) or now
        if returned_at < snapshot.booking.start_at:
            raise InvalidFieldError(
                "returned_at", returned_at.isoformat(), "no earlier than the rental start",
            )
        if returned_at > now:
            raise InvalidFieldError("returned_at", returned_at.isoformat(), "not in the future")
        return _StepWrite(
            changes={"actual_return_at": returned_at},
            metrics=InspectionMetrics(
                booking_id=snapshot.booking.id,
                phase=PhotoPhase.RETURN,
                odometer=odometer,
                fuel_level=fuel_level,
                recorded_at=now,
                notes=_text_field("notes", payload.get("notes")),
            ),
            payload={"odometer": odometer, "fuel_level": fuel_level},
        )

    def _evidence_write(
        self,
        snapshot: ReturnSnapshot,
        view: ReturnView,
        payload: dict[str, Any],
        actor: UUID,
        now: datetime,
    ) -> _StepWrite:
        returned = snapshot.return_metrics
        pickup = snapshot.pickup_metrics
        check_evidence(
            (p.photo_type for p in snapshot.return_photos),
            view.classification.is_exception,
            self._policy.exception_min_photos,
            returned.fuel_level if returned else None,
            pickup.fuel_level if pickup else None,
        )
        return _StepWrite(
            changes={},
            payload={"photo_count": view.return_photo_count},
        )

    def _issues_write(
        self,
        snapshot: ReturnSnapshot,
        view: ReturnView,
        payload: dict[str, Any],
        actor: UUID,
        now: datetime,
    ) -> _StepWrite:
        check_issues(bool(payload.get("acknowledged", False)))
        classification = view.classification
        return _StepWrite(
            changes={
                "return_is_exception": classification.is_exception,
                "return_exception_reason": (
                    classification.summary if classification.is_exception else None
                ),
            },
            payload={
                "is_exception": classification.is_exception,
                "damage_count": view.damage_count,
            },
        )

    def _closeout_write(
        self,
        snapshot: ReturnSnapshot,
        view: ReturnView,
        payload: dict[str, Any],
        actor: UUID,
        now: datetime,
    ) -> _StepWrite:
        if not view.checklist.can_close_out:
            logger.info(
                "closeout_blocked",
                extra={
                    "booking_id": str(snapshot.booking.id),
                    "missing_items": list(view.checklist.missing),
                },
            )
            raise CloseoutBlockedError(str(snapshot.booking.id), view.checklist.missing)

        fee = view.late_fee
        return _StepWrite(
            changes={
                "status": BookingStatus.COMPLETED,
                "late_return_fee": fee.effective_fee,
            },
            payload={
                "late_fee": str(fee.effective_fee),
                "late_fee_status": fee.status.value,
            },
        )

    def _deposit_write(
        self,
        snapshot: ReturnSnapshot,
        view: ReturnView,
        payload: dict[str, Any],
        actor: UUID,
        now: datetime,
    ) -> _StepWrite:
        booking = snapshot.booking
        raw_action = payload.get("action")
        if raw_action is None:
            open_damages = snapshot.open_damage_reports
            suggestion = suggest_settlement(
                booking.deposit_amount,
                len(open_damages),
                sum(
                    (d.estimated_cost for d in open_damages if d.estimated_cost is not None),
                    Decimal("0"),
                ),
            )
            if suggestion.decision == DepositDecision.MANUAL_REVIEW:
                raise MissingFieldError("action")
            raw_action = DepositAction.RELEASE
        try:
            action = DepositAction(raw_action)
        except ValueError:
            raise ValidationError(f"Unsupported deposit action: {raw_action}") from None

        plan = plan_settlement(
            booking.id,
            booking.deposit_amount,
            action,
            withhold_amount=_money_field("withhold_amount", payload.get("withhold_amount")),
            reason=_text_field("reason", payload.get("reason")),
            min_reason_length=self._policy.override_reason_min_length,
            default_release_reason=self._policy.default_release_reason,
            created_by=actor,
        )
        return _StepWrite(
            changes={
                "status": BookingStatus.COMPLETED,
                "deposit_status": plan.deposit_status,
            },
            ledger_entries=tuple(replace(e, created_at=now) for e in plan.entries),
            payload={
                "deposit_status": plan.deposit_status.value,
                "released": str(plan.released_amount),
                "withheld": str(plan.withheld_amount),
            },
        )

    # ------------------------------------------------------------------
    # Late fee
    # ------------------------------------------------------------------

    def approve_late_fee(
        self,
        booking_id: UUID,
        proposed_fee: Decimal | int | str,
        reason: str | None = None,
    ) -> StepResult:
        """Approve the calculated late fee, or override it with a reason."""
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            proposed = _money_field("proposed_fee", proposed_fee)
            if proposed is None:
                raise MissingFieldError("proposed_fee")

            snapshot = self._load_snapshot(booking_id, fresh=True)
            view = self._build_view(snapshot)
            state = view.return_state

            if is_state_at_least(state, ReturnState.CLOSED_OUT):
                raise LateFeeLockedError(str(booking_id), state.value)
            if not can_access_step(ReturnStepId.CLOSEOUT, state):
                raise StepNotAccessibleError(
                    ReturnStepId.CLOSEOUT.value,
                    state.value,
                    ReturnState.ISSUES_REVIEWED.value,
                )

            now = self._clock.now()
            approval = late_fee_engine.approve(
                view.late_fee.assessment.fee,
                proposed,
                _text_field("reason", reason),
                self._policy.override_reason_min_length,
            )
            approval = replace(approval, approved_by=actor, approved_at=now)
            overridden = approval.status == LateFeeStatus.OVERRIDDEN

            self._store.update_booking(
                booking_id,
                {
                    "late_return_fee": approval.approved_fee,
                    "late_return_fee_override": approval.approved_fee if overridden else None,
                    "late_return_override_reason": approval.override_reason,
                    "late_fee_approved_at": now,
                    "late_fee_approved_by": actor,
                    "updated_by": actor,
                },
                self._audit(
                    booking_id,
                    (
                        ReturnAuditAction.LATE_FEE_OVERRIDDEN if overridden
                        else ReturnAuditAction.LATE_FEE_APPROVED
                    ),
                    actor,
                    now,
                    from_state=state,
                    payload={
                        "calculated_fee": str(approval.calculated_fee),
                        "approved_fee": str(approval.approved_fee),
                        "reason": approval.override_reason,
                    },
                ),
                expected_state=snapshot.booking.return_state,
            )
            self._publish("bookings", booking_id, booking_id, ChangeOperation.UPDATE)

            logger.info(
                "late_fee_approved",
                extra={
                    "booking_id": str(booking_id),
                    "calculated_fee": approval.calculated_fee,
                    "approved_fee": approval.approved_fee,
                    "status": approval.status.value,
                },
            )
            _emit_return_trace(
                "approve_late_fee", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000, from_state=state,
            )
            return StepResult(
                success=True,
                step_id=ReturnStepId.CLOSEOUT,
                new_state=state,
                active_step=self._session(snapshot).active_step,
                late_fee=approval,
            )
        except RentalKernelError as exc:
            return self._failure(
                exc, "approve_late_fee", booking_id, started, step_id=ReturnStepId.CLOSEOUT,
            )

    # ------------------------------------------------------------------
    # Damage and photos
    # ------------------------------------------------------------------

    def report_damage(
        self,
        booking_id: UUID,
        location_on_vehicle: str,
        description: str,
        severity: DamageSeverity | str,
        estimated_cost: Decimal | int | str | None = None,
    ) -> StepResult:
        """Record damage.  The return is latched as an exception."""
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            location = _text_field("location_on_vehicle", location_on_vehicle)
            if location is None:
                raise MissingFieldError("location_on_vehicle")
            summary = _text_field("description", description)
            if summary is None:
                raise MissingFieldError("description")
            try:
                parsed_severity = DamageSeverity(severity)
            except ValueError:
                raise ValidationError(f"Unknown damage severity: {severity}") from None
            cost = _money_field("estimated_cost", estimated_cost)
            if cost is not None and cost < 0:
                raise NegativeFeeError(str(cost))

            snapshot = self._load_snapshot(booking_id, fresh=True)
            now = self._clock.now()
            report = self._store.add_damage_report(
                DamageReport(
                    id=uuid4(),
                    booking_id=booking_id,
                    location_on_vehicle=location,
                    description=summary,
                    severity=parsed_severity,
                    estimated_cost=cost,
                    reported_at=now,
                ),
                self._audit(
                    booking_id,
                    ReturnAuditAction.DAMAGE_REPORTED,
                    actor,
                    now,
                    payload={
                        "location": location,
                        "severity": parsed_severity.value,
                        "estimated_cost": str(cost) if cost is not None else None,
                    },
                ),
            )
            self._publish("damage_reports", report.id, booking_id, ChangeOperation.INSERT)
            session = self._session(snapshot)
            session.exception_latched = True

            logger.info(
                "damage_reported",
                extra={
                    "booking_id": str(booking_id),
                    "damage_report_id": str(report.id),
                    "severity": parsed_severity.value,
                },
            )
            _emit_return_trace(
                "report_damage", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000,
            )
            return StepResult(
                success=True,
                step_id=ReturnStepId.ISSUES,
                active_step=session.active_step,
                details={"damage_report_id": report.id, "is_exception": True},
            )
        except RentalKernelError as exc:
            return self._failure(exc, "report_damage", booking_id, started)

    def remove_damage_report(self, booking_id: UUID, report_id: UUID) -> StepResult:
        """Delete a damage report.  The exception latch is not released."""
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            now = self._clock.now()
            removed = self._store.remove_damage_report(
                booking_id,
                report_id,
                self._audit(
                    booking_id,
                    ReturnAuditAction.DAMAGE_REMOVED,
                    actor,
                    now,
                    payload={"damage_report_id": str(report_id)},
                ),
            )
            if not removed:
                raise DamageReportNotFoundError(str(booking_id), str(report_id))
            self._publish("damage_reports", report_id, booking_id, ChangeOperation.DELETE)
            _emit_return_trace(
                "remove_damage_report", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000,
            )
            session = self._sessions.get(booking_id)
            return StepResult(
                success=True,
                step_id=ReturnStepId.ISSUES,
                active_step=session.active_step if session else None,
                details={"damage_report_id": report_id},
            )
        except RentalKernelError as exc:
            return self._failure(exc, "remove_damage_report", booking_id, started)

    def upload_return_photo(
        self,
        booking_id: UUID,
        photo_type: PhotoType | str,
        content: bytes,
        content_type: str = "image/jpeg",
    ) -> StepResult:
        """Store a return photo and record it against the booking."""
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            try:
                parsed_type = PhotoType(photo_type)
            except ValueError:
                raise InvalidPhotoTypeError(str(photo_type)) from None
            if not content:
                raise MissingFieldError("content")

            snapshot = self._load_snapshot(booking_id, fresh=True)
            state = self._state_of(snapshot)
            if not can_access_step(ReturnStepId.EVIDENCE, state):
                raise StepNotAccessibleError(
                    ReturnStepId.EVIDENCE.value, state.value, ReturnState.INTAKE_DONE.value,
                )

            now = self._clock.now()
            key = photo_key(booking_id, PhotoPhase.RETURN, parsed_type, now, content_type)
            self._storage.put(key, content, content_type)
            try:
                photo = self._store.add_photo(
                    ConditionPhoto(
                        id=uuid4(),
                        booking_id=booking_id,
                        phase=PhotoPhase.RETURN,
                        photo_type=parsed_type,
                        storage_key=key,
                        captured_at=now,
                    ),
                    self._audit(
                        booking_id,
                        ReturnAuditAction.PHOTO_UPLOADED,
                        actor,
                        now,
                        payload={"photo_type": parsed_type.value, "storage_key": key},
                    ),
                )
            except StorageError:
                self._storage.delete(key)
                raise
            self._publish("condition_photos", photo.id, booking_id, ChangeOperation.INSERT)
            _emit_return_trace(
                "upload_return_photo", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000,
            )
            return StepResult(
                success=True,
                step_id=ReturnStepId.EVIDENCE,
                active_step=self._session(snapshot).active_step,
                details={"storage_key": key, "photo_id": photo.id},
            )
        except RentalKernelError as exc:
            return self._failure(
                exc, "upload_return_photo", booking_id, started, step_id=ReturnStepId.EVIDENCE,
            )

    # ------------------------------------------------------------------
    # Admin and navigation
    # ------------------------------------------------------------------

    def admin_override_state(
        self,
        booking_id: UUID,
        target_state: ReturnState | str,
        reason: str,
    ) -> StepResult:
        """Set return_state outside the normal flow (reset or skip).

        Moving below ``closed_out`` reopens a completed booking; moving to
        ``deposit_settled`` completes it.
        """
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            try:
                target = parse_return_state(target_state)
            except ValueError:
                raise ValidationError(f"Unknown return state: {target_state}") from None
            cleaned = _text_field("reason", reason) or ""
            min_length = self._policy.override_reason_min_length
            if len(cleaned) < min_length:
                raise OverrideReasonTooShortError(len(cleaned), min_length)

            snapshot = self._load_snapshot(booking_id, fresh=True)
            booking = snapshot.booking
            current = self._state_of(snapshot)

            changes: dict[str, Any] = {"return_state": target, "updated_by": actor}
            if target == ReturnState.DEPOSIT_SETTLED:
                changes["status"] = BookingStatus.COMPLETED
            elif (
                not is_state_at_least(target, ReturnState.CLOSED_OUT)
                and booking.status == BookingStatus.COMPLETED
            ):
                changes["status"] = BookingStatus.ACTIVE

            now = self._clock.now()
            self._store.update_booking(
                booking_id,
                changes,
                self._audit(
                    booking_id,
                    ReturnAuditAction.ADMIN_STATE_OVERRIDE,
                    actor,
                    now,
                    from_state=current,
                    to_state=target,
                    payload={"reason": cleaned},
                ),
            )
            self._publish("bookings", booking_id, booking_id, ChangeOperation.UPDATE)
            session = self._session(snapshot)
            session.active_step = get_current_step(target)
            if target == TERMINAL_STATE:
                self._sessions.pop(booking_id, None)

            logger.warning(
                "return_state_overridden",
                extra={
                    "booking_id": str(booking_id),
                    "from_state": current.value,
                    "to_state": target.value,
                    "reason": cleaned,
                },
            )
            _emit_return_trace(
                "admin_override_state", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000,
                from_state=current, to_state=target, reason=cleaned,
            )
            return StepResult(
                success=True,
                new_state=target,
                active_step=session.active_step,
            )
        except RentalKernelError as exc:
            return self._failure(exc, "admin_override_state", booking_id, started)

    def change_booking_status(
        self,
        booking_id: UUID,
        new_status: BookingStatus | str,
        bypass_reason: str | None = None,
    ) -> StepResult:
        """Change booking status, blocking completion before closeout.

        A sufficiently long ``bypass_reason`` completes an active booking
        without the workflow; the bypass is audited.
        """
        started = time.monotonic()
        try:
            actor = require_user(self._identity)
            try:
                target = BookingStatus(new_status)
            except ValueError:
                raise ValidationError(f"Unknown booking status: {new_status}") from None

            snapshot = self._load_snapshot(booking_id, fresh=True)
            booking = snapshot.booking
            state = self._state_of(snapshot)
            decision = validate_status_change(
                booking.status,
                target,
                state,
                _text_field("bypass_reason", bypass_reason),
                self._policy.override_reason_min_length,
            )
            if not decision.allowed:
                raise CloseoutBlockedError(str(booking_id), (decision.reason,))

            now = self._clock.now()
            self._store.update_booking(
                booking_id,
                {"status": target, "updated_by": actor},
                self._audit(
                    booking_id,
                    ReturnAuditAction.ADMIN_STATE_OVERRIDE,
                    actor,
                    now,
                    from_state=state,
                    to_state=state,
                    payload={
                        "status_from": booking.status.value,
                        "status_to": target.value,
                        "bypassed": decision.bypassed,
                        "reason": decision.reason,
                    },
                ),
            )
            self._publish("bookings", booking_id, booking_id, ChangeOperation.UPDATE)
            _emit_return_trace(
                "change_booking_status", booking_id, OUTCOME_SUCCESS,
                (time.monotonic() - started) * 1000, reason=decision.reason,
            )
            return StepResult(
                success=True,
                new_state=state,
                message=decision.reason,
                details={"status": target.value, "bypassed": decision.bypassed},
            )
        except RentalKernelError as exc:
            return self._failure(exc, "change_booking_status", booking_id, started)

    def set_focus(self, booking_id: UUID, step_id: ReturnStepId | str) -> StepResult:
        """Move the operator to a step.  Inaccessible steps are refused."""
        started = time.monotonic()
        try:
            try:
                resolved = ReturnStepId(step_id)
            except ValueError:
                raise ValidationError(f"Unknown return step: {step_id}") from None
            snapshot = self._load_snapshot(booking_id)
            state = self._state_of(snapshot)
            if not can_access_step(resolved, state):
                raise StepNotAccessibleError(
                    resolved.value, state.value, STEPS_BY_ID[resolved].prerequisite_state.value,
                )
            session = self._session(snapshot)
            session.active_step = resolved
            return StepResult(
                success=True,
                step_id=resolved,
                new_state=state,
                active_step=resolved,
                already_complete=is_step_complete(resolved, state),
            )
        except RentalKernelError as exc:
            return self._failure(exc, "set_focus", booking_id, started)
