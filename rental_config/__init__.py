"""
rental_config -- single public entrypoint for return-policy configuration.

Responsibility:
    Provides the ONLY way to obtain the return policy at runtime through
    ``get_active_policy()``.  No other component reads policy files
    directly.

Architecture position:
    Configuration -- sits above ``rental_kernel`` and ``rental_engines``
    and below ``rental_services``.  The kernel and engines MUST NEVER
    import from ``rental_config``; services pass policy values into them
    as plain arguments.

Invariants enforced:
    - Single entrypoint: runtime policy flows through ``get_active_policy()``.
    - Validation before use: unknown keys and out-of-range values raise.
    - Deterministic checksum over the loaded section.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``ValueError`` -- the file lacks a ``return_policy`` section or a
      value is invalid.

Audit relevance:
    Every successful load emits a ``RETURN_POLICY_TRACE`` log entry with
    the policy name, version, checksum, and the fee parameters in force.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from rental_config.loader import load_yaml_file, parse_policy
from rental_config.schema import ReturnPolicy

_logger = logging.getLogger("rental_kernel.config")

DEFAULT_POLICY_PATH = Path(__file__).parent / "policies" / "default.yaml"


def get_active_policy(path: Path | None = None) -> ReturnPolicy:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a policy YAML file.  Defaults to
            rental_config/policies/default.yaml.

    Returns:
        Validated, frozen ReturnPolicy.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is missing ``return_policy`` or invalid.
    """
    policy_path = path or DEFAULT_POLICY_PATH
    raw = load_yaml_file(policy_path)
    section = raw.get("return_policy")
    if not isinstance(section, dict):
        raise ValueError(f"{policy_path} has no 'return_policy' section")

    policy = parse_policy(section)
    _emit_trace(policy, str(policy_path))
    return policy


def load_policy_from_dict(data: dict[str, Any]) -> ReturnPolicy:
    """Build a policy from an in-memory ``return_policy`` section (tests)."""
    policy = parse_policy(data)
    _emit_trace(policy, "<dict>")
    return policy


def _emit_trace(policy: ReturnPolicy, source: str) -> None:
    _logger.info(
        "RETURN_POLICY_TRACE",
        extra={
            "trace_type": "RETURN_POLICY_TRACE",
            "policy_name": policy.name,
            "policy_version": policy.version,
            "checksum": policy.checksum,
            "source": source,
            "grace_minutes": policy.grace_minutes,
            "hourly_rate": str(policy.hourly_rate),
            "currency": policy.currency,
        },
    )


__all__ = [
    "DEFAULT_POLICY_PATH",
    "ReturnPolicy",
    "get_active_policy",
    "load_policy_from_dict",
]
