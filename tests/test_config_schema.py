"""Tests for detection threshold loading."""

from decimal import Decimal

import pytest
from monitor_agent.config_schema import DetectionThresholds, load_thresholds
from pydantic import ValidationError


class TestLoadThresholds:
    def test_none_gives_defaults(self):
        thresholds = load_thresholds(None)
        assert thresholds == DetectionThresholds()
        assert thresholds.inventory.variance_ratio == Decimal("0.05")
        assert thresholds.inventory.min_units == Decimal("10")
        assert thresholds.inventory.horizon_days == 7
        assert thresholds.sales_pattern.deviation_multiplier == Decimal("2.0")

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_thresholds(tmp_path / "absent.yaml") == DetectionThresholds()

    def test_partial_override(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("price:\n  variance_ratio: 0.1\n")
        thresholds = load_thresholds(path)
        assert thresholds.price.variance_ratio == Decimal("0.1")
        assert thresholds.inventory.min_units == Decimal("10")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("")
        assert load_thresholds(path) == DetectionThresholds()

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_thresholds(path)

    def test_invalid_ratio_rejected(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("inventory:\n  variance_ratio: 1.5\n")
        with pytest.raises(ValidationError):
            load_thresholds(path)

    def test_short_lookback_rejected(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("sales_pattern:\n  lookback_days: 1\n")
        with pytest.raises(ValidationError):
            load_thresholds(path)
