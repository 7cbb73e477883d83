"""
Return policy loader (``rental_config.loader``).

Responsibility
--------------
Loads a return-policy YAML file and parses it into a validated
``ReturnPolicy``.  Runtime callers go through
``rental_config.get_active_policy()``; this module is its plumbing.

Invariants enforced
-------------------
* Unknown keys are rejected so typos never fall back to defaults.
* Every numeric field is range-checked; money is parsed as Decimal.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from rental_config.schema import ReturnPolicy

_KNOWN_KEYS = frozenset(f.name for f in fields(ReturnPolicy)) - {"checksum"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _non_negative_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"{key} must be >= 0, got {value}")
    return value


def parse_policy(data: dict[str, Any]) -> ReturnPolicy:
    """
    Parse a policy dict (the ``return_policy`` section) into a ReturnPolicy.

    Raises:
        ValueError: on unknown keys or invalid values.
    """
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown return policy keys: {', '.join(sorted(unknown))}")

    defaults = ReturnPolicy()

    try:
        hourly_rate = Decimal(str(data.get("hourly_rate", defaults.hourly_rate)))
    except InvalidOperation:
        raise ValueError(f"hourly_rate is not a number: {data.get('hourly_rate')!r}") from None
    if hourly_rate < 0:
        raise ValueError(f"hourly_rate must be >= 0, got {hourly_rate}")

    currency = str(data.get("currency", defaults.currency))
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError(f"currency must be a 3-letter code, got {currency!r}")

    min_length = _non_negative_int(
        data, "override_reason_min_length", defaults.override_reason_min_length,
    )
    if min_length < 1:
        raise ValueError("override_reason_min_length must be at least 1")

    return ReturnPolicy(
        name=str(data.get("name", defaults.name)),
        version=_non_negative_int(data, "version", defaults.version),
        grace_minutes=_non_negative_int(data, "grace_minutes", defaults.grace_minutes),
        hourly_rate=hourly_rate.quantize(Decimal("0.01")),
        currency=currency.upper(),
        exception_min_photos=_non_negative_int(
            data, "exception_min_photos", defaults.exception_min_photos,
        ),
        override_reason_min_length=min_length,
        default_release_reason=str(
            data.get("default_release_reason", defaults.default_release_reason)
        ),
        photo_bucket=str(data.get("photo_bucket", defaults.photo_bucket)),
        checksum=compute_checksum(data),
    )
