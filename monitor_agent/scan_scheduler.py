"""Scan Scheduler.

In-process scheduler that runs a scan cycle on a fixed interval.
Uses asyncio tasks - no external dependencies (no Celery, no Redis).

Scheduled cycles are skipped entirely when another cycle (usually a manual
one) is already in flight, and they cannot be cancelled by callers; only
stop() ends the loop.

Usage:
    scheduler = ScanScheduler(engine, interval_seconds=300)
    scheduler.start()  # Non-blocking - spawns background task
    scheduler.stop()
"""

from __future__ import annotations

import asyncio
import logging

from .engine import MonitoringEngine
from .errors import ConcurrencyConflict, MonitorError
from .models import ScanCycleResult, ScanTrigger

logger = logging.getLogger("monitor.scheduler")


class ScanScheduler:
    """Background scheduler for periodic scan cycles."""

    def __init__(self, engine: MonitoringEngine, *, interval_seconds: int = 300):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None
        self.runs = 0
        self.skipped = 0
        self.failures = 0

    def start(self) -> None:
        """Start the scheduler as a background task."""
        if self._task and not self._task.done():
            logger.warning("Scan scheduler already running")
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Scan scheduler started (interval=%ds)", self.interval_seconds)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._task and not self._task.done():
            self._task.cancel()
            logger.info("Scan scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self) -> None:
        """Main scheduler loop."""
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Scan scheduler error")
            await asyncio.sleep(self.interval_seconds)

    async def tick(self) -> ScanCycleResult | None:
        """Run one scheduled cycle unless a cycle is already in flight."""
        if self.engine.is_scanning:
            self.skipped += 1
            logger.info("Scheduled scan skipped: a scan cycle is already running")
            return None

        try:
            # Shielded: stop() ends the loop but lets an in-flight cycle finish.
            result = await asyncio.shield(self.engine.run_scan(trigger=ScanTrigger.SCHEDULED))
        except ConcurrencyConflict:
            self.skipped += 1
            logger.info("Scheduled scan skipped: lost the race to another cycle")
            return None
        except MonitorError as exc:
            self.failures += 1
            logger.error("Scheduled scan failed: %s", exc)
            return None

        self.runs += 1
        return result
