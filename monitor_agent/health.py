"""Store health scoring.

Health score (0-100) starts at 100 and subtracts fixed penalties:

    each unresolved critical issue     -15
    each unresolved high issue          -8
    each active low-stock product       -2
    sales activity in the last 24h      -10 when 1-5 sales, -20 when none

The result is floored at 0. ``build_health_report`` adds the per-component
healthy/warning/critical breakdown shown on the dashboard's health panel.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from .models import Issue, Product, SaleEvent, Severity

BASELINE_SCORE = 100
CRITICAL_ISSUE_PENALTY = 15
HIGH_ISSUE_PENALTY = 8
LOW_STOCK_PENALTY = 2
SLOW_ACTIVITY_PENALTY = 10
NO_ACTIVITY_PENALTY = 20

# More than this many sales in 24h counts as adequate volume
ADEQUATE_DAILY_SALES = 5
DEFAULT_LOW_STOCK_THRESHOLD = 50

ACTIVITY_WINDOW = timedelta(hours=24)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {
            HealthStatus.HEALTHY: 0,
            HealthStatus.WARNING: 1,
            HealthStatus.CRITICAL: 2,
        }[self]


@dataclass(frozen=True)
class HealthComponent:
    name: str
    status: HealthStatus
    value: str
    description: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "value": self.value,
            "description": self.description,
        }


@dataclass(frozen=True)
class HealthReport:
    score: int
    overall: HealthStatus
    components: list[HealthComponent]

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "overall": self.overall.value,
            "components": [c.to_dict() for c in self.components],
        }


@dataclass(frozen=True)
class MonitoringStats:
    """Issue totals for the monitor page."""

    total_issues: int
    open_issues: int
    resolved_issues: int
    resolution_rate: float

    def to_dict(self) -> dict:
        return {
            "total_issues": self.total_issues,
            "open_issues": self.open_issues,
            "resolved_issues": self.resolved_issues,
            "resolution_rate": self.resolution_rate,
        }


def _low_stock(products: Sequence[Product], threshold: int) -> list[Product]:
    return [p for p in products if p.is_active and p.current_stock < threshold]


def _recent_sales(sale_events: Sequence[SaleEvent], now: datetime) -> int:
    cutoff = now - ACTIVITY_WINDOW
    return sum(1 for e in sale_events if e.timestamp > cutoff)


def compute_health_score(
    issues: Sequence[Issue],
    products: Sequence[Product],
    sale_events: Sequence[SaleEvent],
    *,
    now: datetime | None = None,
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
) -> int:
    """Compute the 0-100 store health score."""
    now = now or datetime.now(UTC)

    open_issues = [i for i in issues if i.is_open]
    critical = sum(1 for i in open_issues if i.severity == Severity.CRITICAL)
    high = sum(1 for i in open_issues if i.severity == Severity.HIGH)
    low_stock = len(_low_stock(products, low_stock_threshold))
    recent = _recent_sales(sale_events, now)

    score = BASELINE_SCORE
    score -= critical * CRITICAL_ISSUE_PENALTY
    score -= high * HIGH_ISSUE_PENALTY
    score -= low_stock * LOW_STOCK_PENALTY
    if recent == 0:
        score -= NO_ACTIVITY_PENALTY
    elif recent <= ADEQUATE_DAILY_SALES:
        score -= SLOW_ACTIVITY_PENALTY

    return max(0, score)


def build_health_report(
    issues: Sequence[Issue],
    products: Sequence[Product],
    sale_events: Sequence[SaleEvent],
    *,
    now: datetime | None = None,
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
) -> HealthReport:
    """Health score plus component statuses; overall status is the worst component."""
    now = now or datetime.now(UTC)
    score = compute_health_score(
        issues, products, sale_events, now=now, low_stock_threshold=low_stock_threshold
    )

    unresolved = sum(1 for i in issues if i.is_open)
    if unresolved == 0:
        issue_status = HealthStatus.HEALTHY
    elif unresolved < 5:
        issue_status = HealthStatus.WARNING
    else:
        issue_status = HealthStatus.CRITICAL

    low_stock = len(_low_stock(products, low_stock_threshold))
    if low_stock == 0:
        stock_status = HealthStatus.HEALTHY
    elif low_stock < 10:
        stock_status = HealthStatus.WARNING
    else:
        stock_status = HealthStatus.CRITICAL

    recent = _recent_sales(sale_events, now)
    if recent > ADEQUATE_DAILY_SALES:
        activity_status = HealthStatus.HEALTHY
    elif recent > 0:
        activity_status = HealthStatus.WARNING
    else:
        activity_status = HealthStatus.CRITICAL

    components = [
        HealthComponent(
            name="Open Issues",
            status=issue_status,
            value=f"{unresolved} open",
            description=(
                "No unresolved issues" if unresolved == 0
                else f"{unresolved} issues need attention"
            ),
        ),
        HealthComponent(
            name="Inventory",
            status=stock_status,
            value=f"{low_stock} low stock",
            description=(
                "All products well stocked" if low_stock == 0
                else f"{low_stock} products need restocking"
            ),
        ),
        HealthComponent(
            name="Activity",
            status=activity_status,
            value=f"{recent} today",
            description=f"{recent} transactions in the last 24 hours",
        ),
    ]
    overall = max((c.status for c in components), key=lambda s: s.rank)
    return HealthReport(score=score, overall=overall, components=components)


def monitoring_stats(issues: Sequence[Issue]) -> MonitoringStats:
    total = len(issues)
    resolved = sum(1 for i in issues if not i.is_open)
    rate = round(resolved / total * 100, 1) if total else 95.0
    return MonitoringStats(
        total_issues=total,
        open_issues=total - resolved,
        resolved_issues=resolved,
        resolution_rate=rate,
    )
