"""Insight Generator.

Turns aggregate product, sale and issue data into at most six short
statements for the monitoring dashboard. Categories are evaluated in a
fixed priority order and the list stops at the cap:

    1. average order value (with an upsell note when below target)
    2. top product by revenue
    3. active products below the low-stock floor
    4. most frequent issue kind, with a remediation hint
    5. busiest hour of day
    6. inactive products (when fewer than 80% are active)
    7. high-margin products (> 50%) as promotion candidates

Output depends only on the inputs; ties are broken by id/name so the
same data always gives the same list.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from .models import Issue, IssueKind, Product, SaleEvent

MAX_INSIGHTS = 6

DEFAULT_LOW_STOCK_THRESHOLD = 50
DEFAULT_UPSELL_THRESHOLD = Decimal("50.00")

# Below this share of active products, suggest reactivation
ACTIVE_SHARE_FLOOR = Decimal("0.8")
HIGH_MARGIN = Decimal("0.5")

BUSINESS_HOURS = range(9, 18)


@dataclass(frozen=True)
class InsightContext:
    products: Sequence[Product]
    sale_events: Sequence[SaleEvent]
    issues: Sequence[Issue]
    low_stock_threshold: int
    upsell_threshold: Decimal


def _average_order_value(ctx: InsightContext) -> str | None:
    if not ctx.sale_events:
        return None
    total = sum((e.total_amount for e in ctx.sale_events), Decimal("0"))
    aov = total / len(ctx.sale_events)
    if aov < ctx.upsell_threshold:
        return (
            f"Average order value is ${aov:,.2f}, below the ${ctx.upsell_threshold:,.2f} target. "
            f"Consider bundles or upselling at checkout to lift basket size."
        )
    return (
        f"Average order value is ${aov:,.2f}. "
        f"Consider upselling strategies for orders below this threshold."
    )


def _top_revenue_product(ctx: InsightContext) -> str | None:
    if not ctx.sale_events:
        return None
    revenue: dict[str, Decimal] = defaultdict(Decimal)
    for event in ctx.sale_events:
        revenue[event.product_id] += event.total_amount
    product_id, amount = min(revenue.items(), key=lambda kv: (-kv[1], kv[0]))
    names = {p.id: p.name for p in ctx.products}
    name = names.get(product_id, "Unknown product")
    return (
        f"{name} is your top performer with ${amount:,.2f} in revenue. "
        f"Consider increasing inventory."
    )


def _low_stock(ctx: InsightContext) -> str | None:
    low = [p for p in ctx.products if p.is_active and p.current_stock < ctx.low_stock_threshold]
    if not low:
        return None
    noun = "product has" if len(low) == 1 else "products have"
    return f"{len(low)} {noun} low stock levels. Consider restocking to avoid stockouts."


def _most_common_issue(ctx: InsightContext) -> str | None:
    if not ctx.issues:
        return None
    counts = Counter(issue.kind for issue in ctx.issues)
    order = list(IssueKind)
    kind, count = min(counts.items(), key=lambda kv: (-kv[1], order.index(kv[0])))
    return (
        f'Most common issue type is "{kind.display_name.lower()}" with {count} '
        f"occurrence{'s' if count != 1 else ''}. {kind.remediation_hint}."
    )


def _peak_hour(ctx: InsightContext) -> str | None:
    if not ctx.sale_events:
        return None
    by_hour = Counter(e.timestamp.hour for e in ctx.sale_events)
    hour, _ = min(by_hour.items(), key=lambda kv: (-kv[1], kv[0]))
    if hour in BUSINESS_HOURS:
        return (
            f"Sales peak around {hour:02d}:00. Ensure adequate staffing and inventory "
            f"for high-demand products during peak hours."
        )
    return (
        f"Sales peak around {hour:02d}:00, outside regular business hours. "
        f"Schedule restocks and maintenance away from that window."
    )


def _inactive_products(ctx: InsightContext) -> str | None:
    total = len(ctx.products)
    if total == 0:
        return None
    active = sum(1 for p in ctx.products if p.is_active)
    if Decimal(active) >= Decimal(total) * ACTIVE_SHARE_FLOOR:
        return None
    return (
        f"{total - active} products are inactive. "
        f"Review and reactivate profitable items to increase revenue potential."
    )


def _high_margin_products(ctx: InsightContext) -> str | None:
    high = [p for p in ctx.products if p.margin_pct > HIGH_MARGIN]
    if not high:
        return None
    return (
        f"{len(high)} products have high profit margins (>50%). "
        f"These are excellent candidates for promotional campaigns."
    )


INSIGHT_RULES: tuple[Callable[[InsightContext], str | None], ...] = (
    _average_order_value,
    _top_revenue_product,
    _low_stock,
    _most_common_issue,
    _peak_hour,
    _inactive_products,
    _high_margin_products,
)


def generate_insights(
    products: Sequence[Product],
    sale_events: Sequence[SaleEvent],
    issues: Sequence[Issue],
    *,
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    upsell_threshold: Decimal = DEFAULT_UPSELL_THRESHOLD,
) -> list[str]:
    """Generate up to six insights in category priority order."""
    ctx = InsightContext(
        products=products,
        sale_events=sale_events,
        issues=issues,
        low_stock_threshold=low_stock_threshold,
        upsell_threshold=upsell_threshold,
    )
    insights: list[str] = []
    for rule in INSIGHT_RULES:
        if len(insights) >= MAX_INSIGHTS:
            break
        text = rule(ctx)
        if text:
            insights.append(text)
    return insights
