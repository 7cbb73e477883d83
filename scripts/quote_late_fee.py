#!/usr/bin/env python3
"""
Quote the late-return fee for a scheduled end and an actual return time.

Uses the active return policy (grace period, hourly rate, currency) unless
overridden on the command line.  Prints the assessment; with --json the
assessment is printed as one JSON object.

Usage:
    python3 scripts/quote_late_fee.py 2024-06-01T10:00 2024-06-01T11:40
    python3 scripts/quote_late_fee.py 2024-06-01T10:00 2024-06-01T11:40 --rate 15
    python3 scripts/quote_late_fee.py END RETURNED --policy path/to/policy.yaml --json
"""

import argparse
import json
import logging
import sys
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from rental_config import get_active_policy  # noqa: E402
from rental_engines import late_fee  # noqa: E402
from rental_kernel.exceptions import ValidationError  # noqa: E402
from rental_kernel.logging_config import configure_logging  # noqa: E402


def _parse_time(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO timestamp: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_rate(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None


def main() -> int:
    parser = argparse.ArgumentParser(description="Quote a late-return fee")
    parser.add_argument("scheduled_end", type=_parse_time, help="Scheduled end (ISO 8601)")
    parser.add_argument("returned_at", type=_parse_time, help="Actual return (ISO 8601)")
    parser.add_argument("--policy", type=Path, default=None, help="Return policy YAML file")
    parser.add_argument("--grace", type=int, default=None, help="Override grace minutes")
    parser.add_argument("--rate", type=_parse_rate, default=None, help="Override hourly rate")
    parser.add_argument("--json", action="store_true", help="Print JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Emit trace logs")
    args = parser.parse_args()

    configure_logging(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        policy = get_active_policy(args.policy)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    grace = policy.grace_minutes if args.grace is None else args.grace
    rate = policy.hourly_rate if args.rate is None else args.rate

    try:
        assessment = late_fee.assess(
            args.scheduled_end, args.returned_at, grace, rate, policy.currency,
        )
    except ValidationError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps({
            "is_late": assessment.is_late,
            "in_grace_period": assessment.in_grace_period,
            "minutes_late": assessment.minutes_late,
            "hours_billed": assessment.hours_billed,
            "fee": str(assessment.fee),
            "currency": policy.currency,
            "message": assessment.message,
        }))
    else:
        print(f"  Policy:  {late_fee.summary(grace, rate, policy.currency)}")
        print(f"  Late by: {assessment.minutes_late} min")
        print(f"  Fee:     {policy.currency} {assessment.fee}")
        print(f"  {assessment.message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
