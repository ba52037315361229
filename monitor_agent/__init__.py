"""Inventory monitoring engine.

Scans products and recent sales for inventory, price and sales-pattern
anomalies, records them as issues, and manages their open/resolved
lifecycle for the admin dashboard.

Usage:
    from monitor_agent import MonitoringEngine, InMemoryDataPort

    engine = MonitoringEngine(InMemoryDataPort(products, sale_events))
    result = await engine.run_scan()
    print(f"{result.new_issues} new issues, accuracy {result.accuracy}%")

Dashboard summaries:
    from monitor_agent import generate_insights, build_health_report

    insights = generate_insights(products, sale_events, issues)
    report = build_health_report(issues, products, sale_events)
"""

__version__ = "0.1.0"

from .analyzers import (
    Finding,
    InventoryDiscrepancyAnalyzer,
    PriceAnomalyAnalyzer,
    SalesPatternAnalyzer,
    ScanSnapshot,
)
from .data_port import (
    DataAccessPort,
    InMemoryDataPort,
    SupabaseDataPort,
    create_data_port,
)
from .engine import MonitoringEngine, accuracy_estimate
from .errors import (
    ConcurrencyConflict,
    DataAccessError,
    IssueNotFound,
    MonitorError,
    ScanCancelled,
    ScanTimeout,
    ValidationError,
)
from .health import build_health_report, compute_health_score, monitoring_stats
from .insights import generate_insights
from .lifecycle import IssueLifecycleManager
from .models import (
    AdminResolver,
    Issue,
    IssueKind,
    PolicyResolver,
    Product,
    SaleEvent,
    ScanCycleResult,
    Severity,
)
from .scan_scheduler import ScanScheduler
from .scoring import confidence_from_ratio, severity_from_discrepancy

__all__ = [
    "AdminResolver",
    "ConcurrencyConflict",
    "DataAccessError",
    "DataAccessPort",
    "Finding",
    "InMemoryDataPort",
    "InventoryDiscrepancyAnalyzer",
    "Issue",
    "IssueKind",
    "IssueLifecycleManager",
    "IssueNotFound",
    "MonitorError",
    "MonitoringEngine",
    "PolicyResolver",
    "PriceAnomalyAnalyzer",
    "Product",
    "SaleEvent",
    "SalesPatternAnalyzer",
    "ScanCancelled",
    "ScanCycleResult",
    "ScanScheduler",
    "ScanSnapshot",
    "ScanTimeout",
    "Severity",
    "SupabaseDataPort",
    "ValidationError",
    "accuracy_estimate",
    "build_health_report",
    "compute_health_score",
    "confidence_from_ratio",
    "create_data_port",
    "generate_insights",
    "monitoring_stats",
    "severity_from_discrepancy",
]
