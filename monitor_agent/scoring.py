"""Severity and confidence scoring.

Pure functions shared by the analyzers. Both are step functions over
fixed thresholds:

    severity    discrepancy > 1000 critical, > 500 high, > 100 medium, else low
    confidence  discrepancy / expected > 50% -> 95, > 30% -> 90, > 10% -> 85, else 80
"""

from __future__ import annotations

from decimal import Decimal

from .models import Severity

Number = int | float | Decimal

# (exclusive lower bound, tier), highest first
SEVERITY_THRESHOLDS: tuple[tuple[Decimal, Severity], ...] = (
    (Decimal("1000"), Severity.CRITICAL),
    (Decimal("500"), Severity.HIGH),
    (Decimal("100"), Severity.MEDIUM),
)

CONFIDENCE_THRESHOLDS: tuple[tuple[Decimal, int], ...] = (
    (Decimal("0.5"), 95),
    (Decimal("0.3"), 90),
    (Decimal("0.1"), 85),
)

BASELINE_CONFIDENCE = 80


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def severity_from_discrepancy(amount: Number) -> Severity:
    """Map a discrepancy magnitude to a severity tier (monotonic)."""
    magnitude = abs(_dec(amount))
    for bound, tier in SEVERITY_THRESHOLDS:
        if magnitude > bound:
            return tier
    return Severity.LOW


def confidence_from_ratio(discrepancy: Number, expected: Number) -> int:
    """Confidence (0-100) from the discrepancy relative to the expected value.

    An expected value of zero has no meaningful ratio and scores the baseline.
    """
    expected_dec = abs(_dec(expected))
    if expected_dec == 0:
        return BASELINE_CONFIDENCE
    ratio = abs(_dec(discrepancy)) / expected_dec
    for bound, score in CONFIDENCE_THRESHOLDS:
        if ratio > bound:
            return score
    return BASELINE_CONFIDENCE
