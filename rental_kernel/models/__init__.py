"""SQLAlchemy ORM models for the return workflow."""

from rental_kernel.models.audit_event import ReturnAuditAction, ReturnAuditEventModel
from rental_kernel.models.booking import BookingModel
from rental_kernel.models.return_records import (
    ConditionPhotoModel,
    DamageReportModel,
    DepositLedgerModel,
    InspectionMetricsModel,
)


def import_all_models() -> None:
    """Ensure every model is registered on ``Base.metadata``.

    Importing this package already does that; the function exists so
    callers can make the dependency explicit.
    """


__all__ = [
    "BookingModel",
    "ConditionPhotoModel",
    "DamageReportModel",
    "DepositLedgerModel",
    "InspectionMetricsModel",
    "ReturnAuditAction",
    "ReturnAuditEventModel",
    "import_all_models",
]
