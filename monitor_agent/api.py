"""Monitoring API.

FastAPI application exposing the monitoring engine to the admin dashboard.

Endpoints:
    GET  /health                              - liveness + engine state
    POST /api/v1/scans                        - run a scan cycle now
    GET  /api/v1/scans/latest                 - last completed cycle
    GET  /api/v1/issues                       - list issues (?status=open|resolved|all)
    POST /api/v1/issues/{issue_id}/resolve    - resolve an issue as an admin
    GET  /api/v1/insights                     - dashboard insights
    GET  /api/v1/health-score                 - store health score and components
    GET  /api/v1/stats                        - issue and cycle totals
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api_models import (
    ErrorResponse,
    HealthResponse,
    HealthScoreResponse,
    InsightsResponse,
    IssueListResponse,
    IssueStatusFilter,
    ResolveRequest,
    StatsResponse,
)
from .data_port import DataAccessPort
from .engine import MonitoringEngine
from .errors import (
    ConcurrencyConflict,
    DataAccessError,
    IssueNotFound,
    MonitorError,
    ScanCancelled,
    ScanTimeout,
    ValidationError,
)
from .health import build_health_report, monitoring_stats
from .insights import generate_insights
from .models import Issue, ScanCycleResult
from .scan_scheduler import ScanScheduler
from .settings import MonitorSettings, get_settings

logger = logging.getLogger("monitor.api")

# (HTTP status, error code) per engine error, most specific first
_ERROR_MAP: tuple[tuple[type[MonitorError], int, str], ...] = (
    (IssueNotFound, 404, "ISSUE_NOT_FOUND"),
    (ConcurrencyConflict, 409, "SCAN_IN_PROGRESS"),
    (ScanCancelled, 409, "SCAN_CANCELLED"),
    (ScanTimeout, 504, "SCAN_TIMEOUT"),
    (ValidationError, 422, "INVALID_ISSUE"),
    (DataAccessError, 502, "DATA_ACCESS_ERROR"),
)


@dataclass
class AppState:
    """Shared state created during app startup."""

    settings: MonitorSettings
    engine: MonitoringEngine
    scheduler: ScanScheduler

    @property
    def port(self) -> DataAccessPort:
        return self.engine.port


def create_app(
    settings: MonitorSettings | None = None,
    *,
    port: DataAccessPort | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    engine = MonitoringEngine.from_settings(settings, port=port)
    scheduler = ScanScheduler(engine, interval_seconds=settings.scan_interval_seconds)
    state = AppState(settings=settings, engine=engine, scheduler=scheduler)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.scheduler_enabled:
            scheduler.start()
        yield
        scheduler.stop()

    app = FastAPI(
        title="Inventory Monitoring Engine",
        version=__version__,
        description="Anomaly detection and issue lifecycle for the admin dashboard.",
        lifespan=lifespan,
    )
    app.state.monitor = state

    origins = ["*"] if settings.monitor_dev_mode else ["http://localhost:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------

    @app.exception_handler(MonitorError)
    async def monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
        for error_type, status_code, code in _ERROR_MAP:
            if isinstance(exc, error_type):
                break
        else:
            status_code, code = 500, "MONITOR_ERROR"
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc)
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                code=code,
                message=str(exc),
                detail=type(exc).__name__ if settings.monitor_dev_mode else None,
            ).model_dump(),
        )

    # -----------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check - no auth required."""
        return HealthResponse(
            version=__version__,
            scanning=engine.is_scanning,
            scheduler_running=scheduler.is_running,
            dev_mode=settings.monitor_dev_mode,
        )

    @app.post("/api/v1/scans", response_model=ScanCycleResult)
    async def run_scan() -> ScanCycleResult:
        """Run a manual scan cycle. Fails with 409 if one is already running."""
        return await engine.run_scan()

    @app.get("/api/v1/scans/latest", response_model=ScanCycleResult)
    async def latest_scan() -> ScanCycleResult:
        if engine.last_result is None:
            raise HTTPException(status_code=404, detail="No scan cycle has completed yet")
        return engine.last_result

    @app.get("/api/v1/issues", response_model=IssueListResponse)
    def list_issues(
        status: IssueStatusFilter = Query(default=IssueStatusFilter.OPEN),
    ) -> IssueListResponse:
        issues = state.port.list_issues()
        if status == IssueStatusFilter.OPEN:
            issues = [i for i in issues if i.is_open]
        elif status == IssueStatusFilter.RESOLVED:
            issues = [i for i in issues if not i.is_open]
        return IssueListResponse(issues=issues, total=len(issues))

    @app.post("/api/v1/issues/{issue_id}/resolve", response_model=Issue)
    def resolve_issue(issue_id: str, body: ResolveRequest) -> Issue:
        """Resolve an issue. Resolving twice returns the issue unchanged."""
        return engine.lifecycle.resolve(issue_id, body.admin_id)

    @app.get("/api/v1/insights", response_model=InsightsResponse)
    def insights() -> InsightsResponse:
        products = state.port.get_all_products()
        events = state.port.get_recent_sale_events(settings.sale_event_window)
        issues = state.port.list_issues()
        return InsightsResponse(
            insights=generate_insights(
                products,
                events,
                issues,
                low_stock_threshold=settings.low_stock_threshold,
                upsell_threshold=settings.upsell_threshold,
            )
        )

    @app.get("/api/v1/health-score", response_model=HealthScoreResponse)
    def health_score() -> HealthScoreResponse:
        report = build_health_report(
            state.port.list_issues(),
            state.port.get_all_products(),
            state.port.get_recent_sale_events(settings.sale_event_window),
            low_stock_threshold=settings.low_stock_threshold,
        )
        return HealthScoreResponse(**report.to_dict())

    @app.get("/api/v1/stats", response_model=StatsResponse)
    def stats() -> StatsResponse:
        issue_stats = monitoring_stats(state.port.list_issues())
        return StatsResponse(
            **issue_stats.to_dict(),
            completed_cycles=engine.completed_cycles,
            failed_cycles=engine.failed_cycles,
        )

    return app
