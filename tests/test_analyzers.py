"""Tests for the anomaly analyzers.

Covers the three detectors against hand-built snapshots, including the
dashboard's reference scenarios (inventory, price, sales pattern).
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from monitor_agent.analyzers import (
    Finding,
    InventoryDiscrepancyAnalyzer,
    PriceAnomalyAnalyzer,
    SalesPatternAnalyzer,
    ScanSnapshot,
    build_analyzers,
)
from monitor_agent.config_schema import DetectionThresholds, PriceThresholds
from monitor_agent.models import IssueKind, Product, SaleEvent, Severity
from pydantic import ValidationError

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_product(
    product_id: str = "p-1",
    stock: int = 200,
    price: str = "20.00",
    cost: str = "12.00",
    active: bool = True,
) -> Product:
    return Product(
        id=product_id,
        sku=f"SKU-{product_id}",
        name=f"Product {product_id}",
        cost_price=Decimal(cost),
        selling_price=Decimal(price),
        current_stock=stock,
        is_active=active,
    )


def _make_event(
    n: int,
    product_id: str = "p-1",
    quantity: int = 1,
    unit_price: str = "20.00",
    hours_ago: float = 48,
) -> SaleEvent:
    price = Decimal(unit_price)
    return SaleEvent(
        id=f"tx-{product_id}-{n}",
        product_id=product_id,
        quantity=quantity,
        unit_price=price,
        total_amount=price * quantity,
        location="Store 1",
        timestamp=NOW - timedelta(hours=hours_ago),
    )


def _snapshot(products, events=()) -> ScanSnapshot:
    return ScanSnapshot(
        products=tuple(products),
        sale_events=tuple(events),
        open_issues=(),
        taken_at=NOW,
    )


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class TestInventoryDiscrepancyAnalyzer:
    def test_scenario_a_flags_velocity_gap(self):
        product = _make_product(stock=200)
        events = [_make_event(i, quantity=10) for i in range(5)]

        findings = InventoryDiscrepancyAnalyzer().analyze(_snapshot([product], events))

        assert len(findings) == 1
        f = findings[0]
        assert f.kind == IssueKind.INVENTORY_DISCREPANCY
        assert f.expected_value == Decimal("130")
        assert f.actual_value == Decimal("200")
        assert f.discrepancy == Decimal("70")
        assert f.severity == Severity.LOW
        # 70 / 130 is above 50%
        assert f.confidence == 95
        assert "SKU-p-1" in f.description

    def test_no_events_predicts_current_stock(self):
        analyzer = InventoryDiscrepancyAnalyzer()
        product = _make_product(stock=80)
        assert analyzer.predict_stock(product, []) == Decimal("80")
        assert analyzer.analyze(_snapshot([product])) == []

    def test_prediction_never_negative(self):
        analyzer = InventoryDiscrepancyAnalyzer()
        product = _make_product(stock=5)
        events = [_make_event(0, quantity=50)]
        assert analyzer.predict_stock(product, events) == Decimal("0")

    def test_within_minimum_threshold_not_flagged(self):
        # avg qty 1 -> predicted 193, discrepancy 7 <= max(9.65, 10)
        product = _make_product(stock=200)
        events = [_make_event(i, quantity=1) for i in range(3)]
        assert InventoryDiscrepancyAnalyzer().analyze(_snapshot([product], events)) == []

    def test_relative_threshold_dominates_for_large_stock(self):
        analyzer = InventoryDiscrepancyAnalyzer()
        assert analyzer.threshold_for(Decimal("1000")) == Decimal("50.00")
        assert analyzer.threshold_for(Decimal("100")) == Decimal("10")

    def test_large_gap_is_critical(self):
        product = _make_product(stock=5000)
        events = [_make_event(0, quantity=200)]
        findings = InventoryDiscrepancyAnalyzer().analyze(_snapshot([product], events))
        assert findings[0].discrepancy == Decimal("1400")
        assert findings[0].severity == Severity.CRITICAL

    def test_inactive_products_skipped(self):
        product = _make_product(stock=200, active=False)
        events = [_make_event(i, quantity=10) for i in range(5)]
        assert InventoryDiscrepancyAnalyzer().analyze(_snapshot([product], events)) == []

    def test_every_qualifying_product_is_flagged(self):
        products = [_make_product(f"p-{i}", stock=200) for i in range(20)]
        events = [_make_event(0, product_id=f"p-{i}", quantity=10) for i in range(20)]
        findings = InventoryDiscrepancyAnalyzer().analyze(_snapshot(products, events))
        assert len(findings) == 20


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------


class TestPriceAnomalyAnalyzer:
    def test_scenario_b_flags_overcharge(self):
        product = _make_product(price="20.00")
        events = [_make_event(0, unit_price="25.00")]

        findings = PriceAnomalyAnalyzer().analyze(_snapshot([product], events))

        assert len(findings) == 1
        f = findings[0]
        assert f.kind == IssueKind.PRICE_ANOMALY
        assert f.expected_value == Decimal("20.00")
        assert f.actual_value == Decimal("25.00")
        assert f.severity == Severity.MEDIUM
        assert f.confidence == 85

    def test_within_tolerance_not_flagged(self):
        product = _make_product(price="20.00")
        events = [_make_event(0, unit_price="20.90")]
        assert PriceAnomalyAnalyzer().analyze(_snapshot([product], events)) == []

    def test_one_finding_per_product(self):
        product = _make_product(price="20.00")
        events = [
            _make_event(0, unit_price="30.00", hours_ago=1),
            _make_event(1, unit_price="10.00", hours_ago=2),
        ]
        findings = PriceAnomalyAnalyzer().analyze(_snapshot([product], events))
        assert len(findings) == 1
        # Events arrive newest first; the first deviating one wins
        assert findings[0].actual_value == Decimal("30.00")

    def test_unpriced_product_skipped(self):
        product = _make_product(price="0")
        events = [_make_event(0, unit_price="5.00")]
        assert PriceAnomalyAnalyzer().analyze(_snapshot([product], events)) == []

    def test_product_without_sales_skipped(self):
        assert PriceAnomalyAnalyzer().analyze(_snapshot([_make_product()])) == []

    def test_custom_threshold(self):
        analyzer = PriceAnomalyAnalyzer(PriceThresholds(variance_ratio=Decimal("0.3")))
        product = _make_product(price="20.00")
        events = [_make_event(0, unit_price="25.00")]
        assert analyzer.analyze(_snapshot([product], events)) == []


# ---------------------------------------------------------------------------
# Sales pattern
# ---------------------------------------------------------------------------


class TestSalesPatternAnalyzer:
    def _spike_events(self) -> list[SaleEvent]:
        # 10 sales in the last day, 4 earlier in the week: avg 14/7 = 2/day
        recent = [_make_event(i, hours_ago=2 + i) for i in range(10)]
        older = [_make_event(10 + i, hours_ago=48 + 24 * i) for i in range(4)]
        return recent + older

    def test_scenario_c_flags_spike(self):
        product = _make_product()
        findings = SalesPatternAnalyzer().analyze(_snapshot([product], self._spike_events()))

        assert len(findings) == 1
        f = findings[0]
        assert f.kind == IssueKind.SALES_PATTERN
        assert f.expected_value == Decimal("2.00")
        assert f.actual_value == Decimal("10")
        assert f.severity == Severity.LOW
        assert f.confidence == 95

    def test_daily_counts(self):
        avg, yesterday = SalesPatternAnalyzer().daily_counts(self._spike_events(), NOW)
        assert avg == Decimal("2")
        assert yesterday == 10

    def test_steady_sales_not_flagged(self):
        product = _make_product()
        events = [_make_event(i, hours_ago=12 + 24 * i) for i in range(7)]
        assert SalesPatternAnalyzer().analyze(_snapshot([product], events)) == []

    def test_events_outside_lookback_ignored(self):
        product = _make_product()
        events = [_make_event(i, hours_ago=24 * 10 + i) for i in range(5)]
        assert SalesPatternAnalyzer().analyze(_snapshot([product], events)) == []

    def test_window_bounds_agree_at_now(self):
        # Windows are (start, now]: a sale at scan time counts in both
        events = [
            _make_event(0, hours_ago=0),
            _make_event(1, hours_ago=24),
            _make_event(2, hours_ago=24 * 7),
        ]
        avg, yesterday = SalesPatternAnalyzer().daily_counts(events, NOW)
        assert avg == Decimal(2) / Decimal(7)
        assert yesterday == 1

    def test_drop_to_zero_is_not_flagged(self):
        # |avg - 0| can never exceed 2 x avg
        product = _make_product()
        events = [_make_event(i, hours_ago=30 + i) for i in range(14)]
        assert SalesPatternAnalyzer().analyze(_snapshot([product], events)) == []


# ---------------------------------------------------------------------------
# Findings and wiring
# ---------------------------------------------------------------------------


class TestFinding:
    def test_to_issue_input(self):
        finding = Finding(
            kind=IssueKind.PRICE_ANOMALY,
            product_id="p-1",
            expected_value=Decimal("20"),
            actual_value=Decimal("25"),
            severity=Severity.MEDIUM,
            confidence=85,
            description="price",
        )
        payload = finding.to_issue_input()
        assert payload.discrepancy == Decimal("5")
        assert payload.kind == IssueKind.PRICE_ANOMALY

    def test_invalid_finding_raises(self):
        finding = Finding(
            kind=IssueKind.PRICE_ANOMALY,
            product_id="",
            expected_value=Decimal("20"),
            actual_value=Decimal("25"),
            severity=Severity.MEDIUM,
            confidence=85,
            description="price",
        )
        with pytest.raises(ValidationError):
            finding.to_issue_input()


class TestBuildAnalyzers:
    def test_order_and_thresholds(self):
        thresholds = DetectionThresholds(price=PriceThresholds(variance_ratio=Decimal("0.2")))
        analyzers = build_analyzers(thresholds)
        assert [a.name for a in analyzers] == ["inventory", "price", "sales_pattern"]
        assert analyzers[1].thresholds.variance_ratio == Decimal("0.2")

    def test_analyzers_do_not_mutate_snapshot(self):
        product = _make_product(stock=200)
        events = [_make_event(i, quantity=10) for i in range(5)]
        snapshot = _snapshot([product], events)
        for analyzer in build_analyzers():
            analyzer.analyze(snapshot)
        assert snapshot.products == (product,)
        assert len(snapshot.sale_events) == 5
