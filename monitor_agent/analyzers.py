"""Anomaly analyzers.

Three independent detectors run over the same frozen scan snapshot:

    Inventory discrepancy
        predicted = max(stock - avg_qty_per_sale * horizon_days, 0)
        flag when |predicted - stock| > max(5% of predicted, 10 units)

    Price anomaly
        flag the first sale whose unit price differs from the catalog
        selling price by more than 5% (one finding per product per scan)

    Sales pattern
        avg_daily = sale events in the last 7 days / 7
        yesterday = sale events in the last 24 hours
        flag when avg_daily > 0 and |avg_daily - yesterday| > 2 x avg_daily

Detection is a pure threshold check: every product that crosses a
threshold produces a finding. Analyzers never write to the store.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol

from .config_schema import (
    DetectionThresholds,
    InventoryThresholds,
    PriceThresholds,
    SalesPatternThresholds,
)
from .models import Issue, IssueInput, IssueKind, Product, SaleEvent, Severity
from .scoring import confidence_from_ratio, severity_from_discrepancy

logger = logging.getLogger("monitor.analyzers")

CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Snapshot and findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanSnapshot:
    """Immutable view of the store taken at the start of a scan."""

    products: tuple[Product, ...]
    sale_events: tuple[SaleEvent, ...]
    open_issues: tuple[Issue, ...]
    taken_at: datetime

    def events_by_product(self) -> dict[str, list[SaleEvent]]:
        """Group sale events by product, preserving fetch order (newest first)."""
        grouped: dict[str, list[SaleEvent]] = defaultdict(list)
        for event in self.sale_events:
            grouped[event.product_id].append(event)
        return grouped

    @property
    def active_products(self) -> list[Product]:
        return [p for p in self.products if p.is_active]


@dataclass(frozen=True)
class Finding:
    """A threshold crossing reported by one analyzer."""

    kind: IssueKind
    product_id: str
    expected_value: Decimal
    actual_value: Decimal
    severity: Severity
    confidence: int
    description: str

    @property
    def discrepancy(self) -> Decimal:
        return abs(self.expected_value - self.actual_value)

    def to_issue_input(self) -> IssueInput:
        """Build the store payload. Raises pydantic's ValidationError on bad data."""
        return IssueInput(
            kind=self.kind,
            severity=self.severity,
            product_id=self.product_id,
            expected_value=self.expected_value,
            actual_value=self.actual_value,
            confidence=self.confidence,
            description=self.description,
        )


class Analyzer(Protocol):
    name: str

    def analyze(self, snapshot: ScanSnapshot) -> list[Finding]: ...


# ---------------------------------------------------------------------------
# Inventory discrepancy
# ---------------------------------------------------------------------------


class InventoryDiscrepancyAnalyzer:
    """Compare recorded stock against a velocity-based prediction."""

    name = "inventory"

    def __init__(self, thresholds: InventoryThresholds | None = None):
        self.thresholds = thresholds or InventoryThresholds()

    def predict_stock(self, product: Product, events: list[SaleEvent]) -> Decimal:
        """Project stock forward by the average quantity per sale over the horizon."""
        if not events:
            return Decimal(product.current_stock)
        avg_qty = Decimal(sum(e.quantity for e in events)) / Decimal(len(events))
        projected = Decimal(product.current_stock) - avg_qty * self.thresholds.horizon_days
        return max(projected, Decimal("0")).quantize(CENT)

    def threshold_for(self, predicted: Decimal) -> Decimal:
        return max(predicted * self.thresholds.variance_ratio, self.thresholds.min_units)

    def analyze(self, snapshot: ScanSnapshot) -> list[Finding]:
        by_product = snapshot.events_by_product()
        findings: list[Finding] = []

        for product in snapshot.active_products:
            predicted = self.predict_stock(product, by_product.get(product.id, []))
            actual = Decimal(product.current_stock)
            discrepancy = abs(predicted - actual)

            if discrepancy <= self.threshold_for(predicted):
                continue

            findings.append(
                Finding(
                    kind=IssueKind.INVENTORY_DISCREPANCY,
                    product_id=product.id,
                    expected_value=predicted,
                    actual_value=actual,
                    severity=severity_from_discrepancy(discrepancy),
                    confidence=confidence_from_ratio(discrepancy, predicted),
                    description=(
                        f"Detected inventory discrepancy for {product.name} ({product.sku}). "
                        f"Expected {predicted:f} units, found {actual} units."
                    ),
                )
            )

        logger.debug("Inventory analyzer: %d findings", len(findings))
        return findings


# ---------------------------------------------------------------------------
# Price anomaly
# ---------------------------------------------------------------------------


class PriceAnomalyAnalyzer:
    """Compare recorded unit prices against the current catalog price."""

    name = "price"

    def __init__(self, thresholds: PriceThresholds | None = None):
        self.thresholds = thresholds or PriceThresholds()

    def variance_ratio(self, catalog_price: Decimal, unit_price: Decimal) -> Decimal:
        return abs(catalog_price - unit_price) / catalog_price

    def analyze(self, snapshot: ScanSnapshot) -> list[Finding]:
        by_product = snapshot.events_by_product()
        findings: list[Finding] = []

        for product in snapshot.active_products:
            events = by_product.get(product.id)
            if not events:
                continue
            catalog_price = product.selling_price
            if catalog_price <= 0:
                continue  # No reference price to compare against

            for event in events:
                if self.variance_ratio(catalog_price, event.unit_price) <= self.thresholds.variance_ratio:
                    continue
                variance = abs(catalog_price - event.unit_price)
                findings.append(
                    Finding(
                        kind=IssueKind.PRICE_ANOMALY,
                        product_id=product.id,
                        expected_value=catalog_price,
                        actual_value=event.unit_price,
                        # Flat tier; price findings are not magnitude-scaled.
                        severity=Severity.MEDIUM,
                        confidence=confidence_from_ratio(variance, catalog_price),
                        description=(
                            f"Detected price anomaly for {product.name} ({product.sku}). "
                            f"Expected price ${catalog_price:,.2f}, "
                            f"sale {event.id} recorded ${event.unit_price:,.2f}."
                        ),
                    )
                )
                break  # One finding per product per scan

        logger.debug("Price analyzer: %d findings", len(findings))
        return findings


# ---------------------------------------------------------------------------
# Sales pattern
# ---------------------------------------------------------------------------


class SalesPatternAnalyzer:
    """Compare the most recent day's sale count with the trailing daily average."""

    name = "sales_pattern"

    def __init__(self, thresholds: SalesPatternThresholds | None = None):
        self.thresholds = thresholds or SalesPatternThresholds()

    def daily_counts(
        self, events: list[SaleEvent], now: datetime
    ) -> tuple[Decimal, int]:
        """Return (average daily count over the lookback, count in the last 24h)."""
        lookback_start = now - timedelta(days=self.thresholds.lookback_days)
        day_start = now - timedelta(days=1)

        # Both windows are (start, now]
        in_window = sum(1 for e in events if lookback_start < e.timestamp <= now)
        yesterday = sum(1 for e in events if day_start < e.timestamp <= now)

        avg_daily = Decimal(in_window) / Decimal(self.thresholds.lookback_days)
        return avg_daily, yesterday

    def analyze(self, snapshot: ScanSnapshot) -> list[Finding]:
        by_product = snapshot.events_by_product()
        findings: list[Finding] = []

        for product in snapshot.active_products:
            events = by_product.get(product.id)
            if not events:
                continue

            avg_daily, yesterday = self.daily_counts(events, snapshot.taken_at)
            if avg_daily <= 0:
                continue

            deviation = abs(avg_daily - yesterday)
            if deviation <= avg_daily * self.thresholds.deviation_multiplier:
                continue

            expected = avg_daily.quantize(CENT)
            findings.append(
                Finding(
                    kind=IssueKind.SALES_PATTERN,
                    product_id=product.id,
                    expected_value=expected,
                    actual_value=Decimal(yesterday),
                    severity=Severity.LOW,
                    confidence=confidence_from_ratio(deviation, avg_daily),
                    description=(
                        f"Detected unusual sales pattern for {product.name} ({product.sku}). "
                        f"Average daily sales: {expected:f}, last 24 hours: {yesterday}."
                    ),
                )
            )

        logger.debug("Sales pattern analyzer: %d findings", len(findings))
        return findings


def build_analyzers(thresholds: DetectionThresholds | None = None) -> list[Analyzer]:
    """Create the analyzers in their reporting order."""
    thresholds = thresholds or DetectionThresholds()
    return [
        InventoryDiscrepancyAnalyzer(thresholds.inventory),
        PriceAnomalyAnalyzer(thresholds.price),
        SalesPatternAnalyzer(thresholds.sales_pattern),
    ]
