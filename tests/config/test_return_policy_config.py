"""Tests for return policy loading (rental_config)."""

from decimal import Decimal

import pytest
import yaml

from rental_config import (
    DEFAULT_POLICY_PATH,
    ReturnPolicy,
    get_active_policy,
    load_policy_from_dict,
)
from rental_config.loader import compute_checksum


def _write_policy(tmp_path, section):
    path = tmp_path / "policy.yaml"
    path.write_text(yaml.safe_dump({"return_policy": section}))
    return path


class TestDefaultPolicy:
    def test_shipped_policy_matches_defaults(self):
        policy = get_active_policy()
        defaults = ReturnPolicy()
        assert policy.grace_minutes == defaults.grace_minutes == 30
        assert policy.hourly_rate == Decimal("25.00")
        assert policy.currency == "CAD"
        assert policy.exception_min_photos == 4
        assert policy.override_reason_min_length == 10
        assert policy.photo_bucket == "condition-photos"
        assert len(policy.checksum) == 64

    def test_default_path_exists(self):
        assert DEFAULT_POLICY_PATH.is_file()

    def test_load_emits_trace(self, captured_logs):
        get_active_policy()
        traces = [r for r in captured_logs() if r["message"] == "RETURN_POLICY_TRACE"]
        assert traces[0]["policy_name"] == "default"
        assert traces[0]["hourly_rate"] == "25.00"
        assert traces[0]["source"].endswith("default.yaml")


class TestCustomPolicy:
    def test_overrides(self, tmp_path):
        path = _write_policy(tmp_path, {"grace_minutes": 15, "hourly_rate": "15", "currency": "usd"})
        policy = get_active_policy(path)
        assert policy.grace_minutes == 15
        assert policy.hourly_rate == Decimal("15.00")
        assert policy.currency == "USD"

    def test_missing_section(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("other: 1\n")
        with pytest.raises(ValueError, match="return_policy"):
            get_active_policy(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_policy(tmp_path / "absent.yaml")

    @pytest.mark.parametrize("section", [
        {"grace_minuets": 30},
        {"grace_minutes": -5},
        {"grace_minutes": "thirty"},
        {"grace_minutes": True},
        {"hourly_rate": "-1"},
        {"hourly_rate": "cheap"},
        {"currency": "dollars"},
        {"override_reason_min_length": 0},
    ])
    def test_invalid_values(self, section):
        with pytest.raises(ValueError):
            load_policy_from_dict(section)

    def test_checksum_is_deterministic(self):
        data = {"grace_minutes": 20, "hourly_rate": "30.00"}
        assert compute_checksum(data) == compute_checksum(dict(reversed(list(data.items()))))
        assert load_policy_from_dict(data).checksum == compute_checksum(data)
