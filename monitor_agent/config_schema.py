"""Detection threshold schema.

Analyzer thresholds default to the values the dashboard has always used
and can be overridden from a YAML file, validated at startup so a bad
number fails loudly instead of silently muting a detector.

Example ``thresholds.yaml``::

    inventory:
      variance_ratio: 0.05
      min_units: 10
      horizon_days: 7
    price:
      variance_ratio: 0.05
    sales_pattern:
      lookback_days: 7
      deviation_multiplier: 2.0

Usage:
    from monitor_agent.config_schema import load_thresholds
    thresholds = load_thresholds("config/thresholds.yaml")
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("monitor.config")


class InventoryThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    variance_ratio: Decimal = Field(default=Decimal("0.05"), gt=0, lt=1)
    min_units: Decimal = Field(default=Decimal("10"), ge=0)
    horizon_days: int = Field(default=7, ge=1)


class PriceThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    variance_ratio: Decimal = Field(default=Decimal("0.05"), gt=0, lt=1)


class SalesPatternThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    lookback_days: int = Field(default=7, ge=2)
    deviation_multiplier: Decimal = Field(default=Decimal("2.0"), gt=0)


class DetectionThresholds(BaseModel):
    """All analyzer thresholds."""

    model_config = ConfigDict(frozen=True)

    inventory: InventoryThresholds = Field(default_factory=InventoryThresholds)
    price: PriceThresholds = Field(default_factory=PriceThresholds)
    sales_pattern: SalesPatternThresholds = Field(default_factory=SalesPatternThresholds)


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_thresholds(path: str | Path | None) -> DetectionThresholds:
    """Load thresholds from YAML, or defaults when no file is configured.

    Raises:
        ValueError: If the file holds invalid thresholds.
    """
    if path is None:
        return DetectionThresholds()

    path = Path(path)
    if not path.exists():
        logger.warning("Thresholds file not found at %s, using defaults", path)
        return DetectionThresholds()

    raw = _load_yaml(path)
    if not isinstance(raw, dict):
        raise ValueError(f"Thresholds file {path} must contain a mapping")

    thresholds = DetectionThresholds(**raw)
    logger.info(
        "Loaded detection thresholds from %s (inventory=%s, price=%s, sales x%s)",
        path,
        thresholds.inventory.variance_ratio,
        thresholds.price.variance_ratio,
        thresholds.sales_pattern.deviation_multiplier,
    )
    return thresholds
