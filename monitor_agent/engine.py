"""Scan orchestrator.

One scan cycle:

    1. fetch   active products, recent sale events, open issues (concurrently)
    2. analyze run the three analyzers over the frozen snapshot (concurrently)
    3. commit  create issues from findings, then auto-resolve aged low issues
               (serially, single writer)

Only one cycle runs at a time per engine; a second request while one is in
flight fails fast with ConcurrencyConflict. Fetch and analysis run under the
cycle deadline and nothing is written until they finish, so a timeout, a
cancellation or a fetch failure leaves the store untouched. Once the commit
has started it runs to completion, and the cycle holds the scan lock until
it does, even if the caller cancels.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from .analyzers import Analyzer, Finding, ScanSnapshot, build_analyzers
from .config_schema import DetectionThresholds, load_thresholds
from .data_port import DataAccessPort, create_data_port
from .errors import ConcurrencyConflict, ScanCancelled, ScanTimeout
from .lifecycle import AutoResolveOutcome, CreationOutcome, IssueLifecycleManager
from .models import ScanCycleResult, ScanTrigger
from .settings import MonitorSettings

logger = logging.getLogger("monitor.engine")

DEFAULT_SALE_EVENT_WINDOW = 200
DEFAULT_DEADLINE_SECONDS = 30.0

# Reported when a cycle neither created nor resolved anything
BASELINE_ACCURACY = 95.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def accuracy_estimate(new_count: int, resolved_count: int) -> float:
    """Cycle accuracy: min(95, 80 + resolved / (resolved + new) * 15)."""
    total = new_count + resolved_count
    if total == 0:
        return BASELINE_ACCURACY
    return round(min(95.0, 80.0 + (resolved_count / total) * 15.0), 2)


@dataclass
class _CommitOutcome:
    creation: CreationOutcome
    resolution: AutoResolveOutcome


class MonitoringEngine:
    """Run scan cycles against a data port.

    Usage:
        engine = MonitoringEngine(port)
        result = await engine.run_scan()
        print(f"{result.new_issues} new, {result.auto_resolved} auto-resolved")
    """

    def __init__(
        self,
        port: DataAccessPort,
        *,
        thresholds: DetectionThresholds | None = None,
        lifecycle: IssueLifecycleManager | None = None,
        sale_event_window: int = DEFAULT_SALE_EVENT_WINDOW,
        deadline_seconds: float = DEFAULT_DEADLINE_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.port = port
        self.analyzers: list[Analyzer] = build_analyzers(thresholds)
        self.lifecycle = lifecycle or IssueLifecycleManager(port, clock=clock)
        self.sale_event_window = sale_event_window
        self.deadline_seconds = deadline_seconds
        self.clock = clock

        self._lock = asyncio.Lock()
        self.last_result: ScanCycleResult | None = None
        self.completed_cycles = 0
        self.failed_cycles = 0

    @classmethod
    def from_settings(
        cls,
        settings: MonitorSettings,
        port: DataAccessPort | None = None,
    ) -> MonitoringEngine:
        """Build an engine (and, unless given, its data port) from settings."""
        if port is None:
            port = create_data_port(settings.supabase_url, settings.supabase_service_key)
        lifecycle = IssueLifecycleManager(
            port,
            batch_size=settings.auto_resolve_batch_size,
            min_age=timedelta(hours=settings.auto_resolve_min_age_hours),
        )
        return cls(
            port,
            thresholds=load_thresholds(settings.thresholds_path),
            lifecycle=lifecycle,
            sale_event_window=settings.sale_event_window,
            deadline_seconds=settings.scan_deadline_seconds,
        )

    @property
    def is_scanning(self) -> bool:
        return self._lock.locked()

    async def run_scan(
        self,
        *,
        cancel_event: asyncio.Event | None = None,
        trigger: ScanTrigger = ScanTrigger.MANUAL,
    ) -> ScanCycleResult:
        """Run one scan cycle.

        Args:
            cancel_event: Checked between phases; when set, the cycle stops
                before writing anything.
            trigger: Whether the cycle was requested manually or by the scheduler.

        Raises:
            ConcurrencyConflict: If a cycle is already running.
            DataAccessError: If fetching the snapshot fails.
            ScanTimeout: If fetch and analysis exceed the deadline.
            ScanCancelled: If ``cancel_event`` was set before the commit phase.
        """
        if self._lock.locked():
            raise ConcurrencyConflict("A scan cycle is already running")

        async with self._lock:
            try:
                result = await self._run_cycle(cancel_event, trigger)
            except BaseException:
                self.failed_cycles += 1
                raise
            self.completed_cycles += 1
            self.last_result = result
            return result

    # -----------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------

    async def _run_cycle(
        self,
        cancel_event: asyncio.Event | None,
        trigger: ScanTrigger,
    ) -> ScanCycleResult:
        started_at = self.clock()
        t0 = time.monotonic()
        logger.info("Scan cycle started (%s)", trigger.value)

        try:
            async with asyncio.timeout(self.deadline_seconds):
                snapshot = await self._fetch_snapshot(started_at)
                self._check_cancelled(cancel_event, "fetch")
                findings = await self._analyze(snapshot)
                self._check_cancelled(cancel_event, "analysis")
        except TimeoutError as exc:
            logger.error("Scan cycle exceeded %.1fs deadline; nothing written", self.deadline_seconds)
            raise ScanTimeout(self.deadline_seconds) from exc

        commit = await self._await_commit(
            asyncio.ensure_future(asyncio.to_thread(self._commit, snapshot, findings))
        )

        result = ScanCycleResult(
            new_issues=len(commit.creation.created),
            auto_resolved=len(commit.resolution.resolved),
            accuracy=accuracy_estimate(
                len(commit.creation.created), len(commit.resolution.resolved)
            ),
            skipped_findings=commit.creation.skipped,
            failed_resolutions=commit.resolution.failed,
            trigger=trigger,
            started_at=started_at,
            finished_at=self.clock(),
        )
        logger.info(
            "Scan cycle finished in %dms: %d findings, %d new, %d skipped, %d auto-resolved",
            int((time.monotonic() - t0) * 1000),
            len(findings),
            result.new_issues,
            result.skipped_findings,
            result.auto_resolved,
        )
        return result

    async def _fetch_snapshot(self, taken_at: datetime) -> ScanSnapshot:
        products, events, open_issues = await asyncio.gather(
            asyncio.to_thread(self.port.get_active_products),
            asyncio.to_thread(self.port.get_recent_sale_events, self.sale_event_window),
            asyncio.to_thread(self.port.get_open_issues),
        )
        logger.debug(
            "Snapshot: %d products, %d sale events, %d open issues",
            len(products),
            len(events),
            len(open_issues),
        )
        return ScanSnapshot(
            products=tuple(products),
            sale_events=tuple(events),
            open_issues=tuple(open_issues),
            taken_at=taken_at,
        )

    async def _analyze(self, snapshot: ScanSnapshot) -> list[Finding]:
        results = await asyncio.gather(
            *(asyncio.to_thread(analyzer.analyze, snapshot) for analyzer in self.analyzers)
        )
        findings: list[Finding] = []
        for analyzer, found in zip(self.analyzers, results):
            logger.debug("%s analyzer: %d findings", analyzer.name, len(found))
            findings.extend(found)
        return findings

    async def _await_commit(self, future: asyncio.Future) -> _CommitOutcome:
        """Wait for the commit thread; if cancelled, keep the scan lock until it finishes."""
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            logger.warning("Scan cycle cancelled during commit; waiting for writes to finish")
            while not future.done():
                try:
                    await asyncio.wait({future})
                except asyncio.CancelledError:
                    continue
            raise

    def _commit(self, snapshot: ScanSnapshot, findings: list[Finding]) -> _CommitOutcome:
        creation = self.lifecycle.create_issues(findings, created_at=snapshot.taken_at)
        resolution = self.lifecycle.auto_resolve(snapshot.open_issues, snapshot.taken_at)
        return _CommitOutcome(creation=creation, resolution=resolution)

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None, phase: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Scan cycle cancelled after %s phase; nothing written", phase)
            raise ScanCancelled(f"Scan cancelled after {phase} phase")
