"""
Return policy schema (``rental_config.schema``).

Responsibility
--------------
Frozen dataclass describing the tunable parameters of the return
workflow: late-fee grace period and rate, the exception photo floor, the
override reason policy, and deposit/photo defaults.

Architecture position
---------------------
**Config layer** -- pure data definitions.  No I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ReturnPolicy:
    """Active return policy."""

    name: str = "default"
    version: int = 1
    grace_minutes: int = 30
    hourly_rate: Decimal = Decimal("25.00")
    currency: str = "CAD"
    exception_min_photos: int = 4
    override_reason_min_length: int = 10
    default_release_reason: str = "Vehicle returned in good condition - no damages"
    photo_bucket: str = "condition-photos"
    checksum: str = ""
