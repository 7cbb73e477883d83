"""
rental_engines.step_checks -- Local preconditions of each return step.

Responsibility:
    Validate the operator's input for a step before any write, and list
    human-readable missing items per step for the sidebar.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Exception returns need at least ``min_photos`` return photos.
    - A fuel gauge photo is required whenever return fuel is lower than
      pickup fuel, for normal and exception returns alike.
    - Odometer never goes backwards between pickup and return.

Failure modes:
    - MissingFieldError, OdometerRegressionError, InvalidFuelLevelError,
      InsufficientEvidenceError, ReviewNotAcknowledgedError.  All are
      ValidationError subclasses.
"""

from __future__ import annotations

from typing import Iterable

from rental_kernel.domain.booking import PhotoType
from rental_kernel.domain.return_ops import ReturnCompletion
from rental_kernel.domain.return_state import ReturnStepId
from rental_kernel.exceptions import (
    InsufficientEvidenceError,
    InvalidFuelLevelError,
    MissingFieldError,
    OdometerRegressionError,
    ReviewNotAcknowledgedError,
    ValidationError,
)
from rental_engines.exception_classifier import evidence_photo_floor


def check_intake(
    odometer: int | None,
    fuel_level: int | None,
    pickup_odometer: int | None = None,
) -> None:
    """Validate return intake readings."""
    if odometer is None:
        raise MissingFieldError("odometer")
    if odometer < 0:
        raise ValidationError(f"Odometer reading cannot be negative: {odometer}")
    if fuel_level is not None and not 0 <= fuel_level <= 100:
        raise InvalidFuelLevelError(fuel_level)
    if pickup_odometer is not None and odometer < pickup_odometer:
        raise OdometerRegressionError(odometer, pickup_odometer)


def fuel_photo_required(fuel_level: int | None, pickup_fuel_level: int | None) -> bool:
    """True when the car came back with less fuel than it left with."""
    if fuel_level is None or pickup_fuel_level is None:
        return False
    return fuel_level < pickup_fuel_level


def check_evidence(
    photo_types: Iterable[PhotoType],
    is_exception: bool,
    min_photos: int,
    fuel_level: int | None = None,
    pickup_fuel_level: int | None = None,
) -> None:
    """Validate the return photo set.

    Photos are counted by distinct slot, so re-shooting a slot does not
    raise the count.
    """
    captured = set(photo_types)
    required = evidence_photo_floor(is_exception, min_photos)

    missing: tuple[str, ...] = ()
    if fuel_photo_required(fuel_level, pickup_fuel_level) and PhotoType.FUEL_GAUGE not in captured:
        missing = (PhotoType.FUEL_GAUGE.value,)

    if len(captured) < required or missing:
        raise InsufficientEvidenceError(len(captured), required, missing)


def check_issues(acknowledged: bool) -> None:
    """The operator must confirm the issues review."""
    if not acknowledged:
        raise ReviewNotAcknowledgedError()


def missing_items(step_id: ReturnStepId, completion: ReturnCompletion) -> list[str]:
    """Human-readable items still missing for a step."""
    missing: list[str] = []
    if step_id == ReturnStepId.INTAKE:
        if not completion.intake.odometer_recorded:
            missing.append("Odometer reading")
        if not completion.intake.fuel_recorded:
            missing.append("Fuel level")
    elif step_id == ReturnStepId.EVIDENCE:
        if not completion.evidence.photos_complete:
            missing.append("Return photos")
    elif step_id == ReturnStepId.ISSUES:
        if not completion.issues.reviewed:
            missing.append("Issues review")
    elif step_id == ReturnStepId.CLOSEOUT:
        if not completion.closeout_completed:
            missing.append("Return completion")
    elif step_id == ReturnStepId.DEPOSIT:
        if not completion.deposit_processed:
            missing.append("Deposit decision")
    return missing
