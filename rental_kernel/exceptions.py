"""
Typed Exception Hierarchy for the Rental Return Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The return workflow surfaces three very different failure classes to the
operator:

  - a form value is wrong (fix the input and try again)
  - the step is not reachable yet (finish the earlier step first)
  - the record store failed (retry the same action)

Callers must be able to tell these apart without parsing messages.  Every
exception therefore carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, UI-safe)
  3. Structured DATA as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        orchestrator_internal_step(...)
    except Exception as e:
        if "odometer" in str(e):  # FRAGILE - message might change
            highlight_odometer_field()

Example - RIGHT way (what this module enables):
    except OdometerRegressionError as e:
        highlight_field("odometer", minimum=e.pickup_odometer)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalKernelError:

    RentalKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingFieldError
    |   +-- InvalidFieldError
    |   +-- NegativeFeeError
    |   +-- OverrideReasonTooShortError
    |   +-- OdometerRegressionError
    |   +-- InvalidFuelLevelError
    |   +-- InsufficientEvidenceError
    |   +-- ReviewNotAcknowledgedError
    |   +-- InvalidDepositAmountError
    |   +-- InvalidPhotoTypeError
    |   +-- DamageReportNotFoundError
    |
    +-- PreconditionError
    |   +-- StepNotAccessibleError
    |   +-- InvalidStateTransitionError
    |   +-- CloseoutBlockedError
    |   +-- LateFeeLockedError
    |   +-- NotAuthenticatedError
    |
    +-- StorageError
    |   +-- BookingNotFoundError
    |   +-- RecordReadError
    |   +-- RecordWriteError
    |   +-- InvalidBookingRecordError
    |   +-- PhotoUploadError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | MISSING_FIELD                 | Required input not provided
                | NEGATIVE_FEE                  | Fee amount below zero
                | OVERRIDE_REASON_TOO_SHORT     | Reason shorter than policy minimum
                | ODOMETER_REGRESSION           | Return odometer < pickup odometer
                | INVALID_FUEL_LEVEL            | Fuel level outside 0..100
                | INSUFFICIENT_EVIDENCE         | Photo floor or fuel photo missing
                | REVIEW_NOT_ACKNOWLEDGED       | Issues review not confirmed
                | INVALID_DEPOSIT_AMOUNT        | Withhold amount out of range
                | INVALID_PHOTO_TYPE            | Unknown photo slot
                | DAMAGE_REPORT_NOT_FOUND       | Damage report not on this booking
----------------|-------------------------------|---------------------------------------
Precondition    | STEP_NOT_ACCESSIBLE           | Prerequisite state not reached
                | INVALID_STATE_TRANSITION      | Not a one-rank-forward transition
                | CLOSEOUT_BLOCKED              | Checklist incomplete
                | LATE_FEE_LOCKED               | Fee edit after closeout
                | NOT_AUTHENTICATED             | No current staff user
----------------|-------------------------------|---------------------------------------
Storage         | BOOKING_NOT_FOUND             | Booking ID doesn't exist
                | RECORD_READ_FAILED            | Record store read failed
                | RECORD_WRITE_FAILED           | Record store write failed
                | INVALID_BOOKING_RECORD        | Stored row fails boundary validation
                | PHOTO_UPLOAD_FAILED           | Object storage write failed
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Audit row update/delete attempted

===============================================================================
HANDLING PATTERNS
===============================================================================

The return orchestrator is the boundary.  Validation and precondition
errors become inline messages; storage errors become retryable
notifications.  Nothing in this hierarchy propagates past the
orchestrator to the UI layer.

    try:
        ...
    except StorageError as e:
        return StepResult.failed(e, retryable=True)
    except RentalKernelError as e:
        return StepResult.failed(e, retryable=False)
"""


class RentalKernelError(Exception):
    """
    Base exception for all rental kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_KERNEL_ERROR"


# Validation errors


class ValidationError(RentalKernelError):
    """Base exception for invalid operator input."""

    code: str = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """A required field was not provided."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"{field_name} is required")


class InvalidFieldError(ValidationError):
    """A field was provided but cannot be read as the expected type or range."""

    code: str = "INVALID_FIELD"

    def __init__(self, field_name: str, value: str, expected: str):
        self.field_name = field_name
        self.value = value
        self.expected = expected
        super().__init__(f"{field_name} must be {expected}, got {value!r}")


class NegativeFeeError(ValidationError):
    """A fee amount was negative."""

    code: str = "NEGATIVE_FEE"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Fee amount cannot be negative: {amount}")


class OverrideReasonTooShortError(ValidationError):
    """An override reason was missing or shorter than the policy minimum."""

    code: str = "OVERRIDE_REASON_TOO_SHORT"

    def __init__(self, actual_length: int, min_length: int):
        self.actual_length = actual_length
        self.min_length = min_length
        super().__init__(
            f"Reason must be at least {min_length} characters "
            f"(got {actual_length})"
        )


class OdometerRegressionError(ValidationError):
    """Return odometer reading is lower than the pickup reading."""

    code: str = "ODOMETER_REGRESSION"

    def __init__(self, odometer: int, pickup_odometer: int):
        self.odometer = odometer
        self.pickup_odometer = pickup_odometer
        super().__init__(
            f"Odometer reading {odometer} is lower than pickup reading "
            f"{pickup_odometer}"
        )


class InvalidFuelLevelError(ValidationError):
    """Fuel level is outside the 0..100 percent range."""

    code: str = "INVALID_FUEL_LEVEL"

    def __init__(self, fuel_level: int):
        self.fuel_level = fuel_level
        super().__init__(f"Fuel level must be between 0 and 100, got {fuel_level}")


class InsufficientEvidenceError(ValidationError):
    """Evidence step lacks required photographs."""

    code: str = "INSUFFICIENT_EVIDENCE"

    def __init__(self, photo_count: int, required: int, missing_types: tuple[str, ...] = ()):
        self.photo_count = photo_count
        self.required = required
        self.missing_types = missing_types
        detail = f"{photo_count} of {required} required photos captured"
        if missing_types:
            detail += f"; missing: {', '.join(missing_types)}"
        super().__init__(detail)


class ReviewNotAcknowledgedError(ValidationError):
    """The operator did not confirm the issues review."""

    code: str = "REVIEW_NOT_ACKNOWLEDGED"

    def __init__(self):
        super().__init__("Confirm that all issues and damages have been reviewed")


class InvalidDepositAmountError(ValidationError):
    """Withhold amount is zero, negative, or exceeds the deposit held."""

    code: str = "INVALID_DEPOSIT_AMOUNT"

    def __init__(self, amount: str, deposit_amount: str):
        self.amount = amount
        self.deposit_amount = deposit_amount
        super().__init__(
            f"Invalid withhold amount {amount} for deposit of {deposit_amount}"
        )


class InvalidPhotoTypeError(ValidationError):
    """Photo type is not one of the known condition photo slots."""

    code: str = "INVALID_PHOTO_TYPE"

    def __init__(self, photo_type: str):
        self.photo_type = photo_type
        super().__init__(f"Unknown photo type: {photo_type}")


class DamageReportNotFoundError(ValidationError):
    """Damage report does not exist on the booking."""

    code: str = "DAMAGE_REPORT_NOT_FOUND"

    def __init__(self, booking_id: str, report_id: str):
        self.booking_id = booking_id
        self.report_id = report_id
        super().__init__(f"Damage report {report_id} not found on booking {booking_id}")


# Precondition errors


class PreconditionError(RentalKernelError):
    """Base exception for actions attempted out of order."""

    code: str = "PRECONDITION_ERROR"


class StepNotAccessibleError(PreconditionError):
    """The step's prerequisite state has not been reached."""

    code: str = "STEP_NOT_ACCESSIBLE"

    def __init__(self, step_id: str, current_state: str, required_state: str):
        self.step_id = step_id
        self.current_state = current_state
        self.required_state = required_state
        super().__init__(
            f"Step '{step_id}' requires state '{required_state}' "
            f"(current: '{current_state}'). Complete previous steps first."
        )


class InvalidStateTransitionError(PreconditionError):
    """Attempted return-state change is not a valid forward transition."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: cannot go from '{from_state}' to '{to_state}'")


class CloseoutBlockedError(PreconditionError):
    """Closeout checklist has incomplete required items."""

    code: str = "CLOSEOUT_BLOCKED"

    def __init__(self, booking_id: str, missing_items: tuple[str, ...]):
        self.booking_id = booking_id
        self.missing_items = missing_items
        super().__init__(
            f"Cannot close out booking {booking_id}: "
            f"{', '.join(missing_items) or 'prerequisites incomplete'}"
        )


class LateFeeLockedError(PreconditionError):
    """Late fee can no longer be edited through the normal flow."""

    code: str = "LATE_FEE_LOCKED"

    def __init__(self, booking_id: str, return_state: str):
        self.booking_id = booking_id
        self.return_state = return_state
        super().__init__(
            f"Late fee for booking {booking_id} is locked in state '{return_state}'"
        )


class NotAuthenticatedError(PreconditionError):
    """No staff user is available to stamp the action."""

    code: str = "NOT_AUTHENTICATED"

    def __init__(self):
        super().__init__("Not authenticated")


# Storage errors


class StorageError(RentalKernelError):
    """Base exception for record store and object storage failures."""

    code: str = "STORAGE_ERROR"


class BookingNotFoundError(StorageError):
    """Booking with given ID was not found."""

    code: str = "BOOKING_NOT_FOUND"

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class RecordReadError(StorageError):
    """The record store failed while reading."""

    code: str = "RECORD_READ_FAILED"

    def __init__(self, entity_type: str, detail: str):
        self.entity_type = entity_type
        self.detail = detail
        super().__init__(f"Failed to read {entity_type}: {detail}")


class RecordWriteError(StorageError):
    """The record store failed while writing."""

    code: str = "RECORD_WRITE_FAILED"

    def __init__(self, entity_type: str, entity_id: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(f"Failed to write {entity_type} {entity_id}: {detail}")


class InvalidBookingRecordError(StorageError):
    """A stored booking row failed validation at the read boundary."""

    code: str = "INVALID_BOOKING_RECORD"

    def __init__(self, booking_id: str, field_name: str, value: str):
        self.booking_id = booking_id
        self.field_name = field_name
        self.value = value
        super().__init__(
            f"Booking {booking_id} has invalid {field_name}: {value!r}"
        )


class PhotoUploadError(StorageError):
    """Object storage rejected or failed a photo upload."""

    code: str = "PHOTO_UPLOAD_FAILED"

    def __init__(self, key: str, detail: str):
        self.key = key
        self.detail = detail
        super().__init__(f"Failed to store photo {key}: {detail}")


# Immutability errors


class ImmutabilityError(RentalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
