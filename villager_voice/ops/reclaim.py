"""
Reclamation scheduling for the artifact store.

The sweep runs independently of request handling: either on a fixed
interval as a background asyncio task, or opportunistically (at most
once per interval) when something pokes ``maybe_run``. Failures are
contained here and never reach the caller.
"""

import asyncio
import time
from typing import Optional

import structlog

from ..persist.artifact_store import DEFAULT_MAX_AGE_S, ArtifactStore, SweepReport

logger = structlog.get_logger(__name__)


class Reclaimer:
    """
    Runs TTL sweeps over an artifact store.
    
    Usage:
        >>> reclaimer = Reclaimer(store, max_age_s=3600, interval_s=300)
        >>> await reclaimer.start()     # periodic background sweeps
        >>> reclaimer.maybe_run()       # or opportunistic, rate limited
        >>> await reclaimer.stop()
    """
    
    def __init__(
        self,
        store: ArtifactStore,
        max_age_s: float = DEFAULT_MAX_AGE_S,
        interval_s: float = 300.0,
    ):
        """
        Initialize reclaimer.
        
        Args:
            store: Artifact store to sweep
            max_age_s: Retention window for untouched artifacts
            interval_s: Minimum seconds between sweeps
        """
        self.store = store
        self.max_age_s = max_age_s
        self.interval_s = interval_s
        
        self.last_run: Optional[float] = None
        self.last_report: Optional[SweepReport] = None
        self._task: Optional[asyncio.Task] = None
    
    def run_once(self) -> SweepReport:
        """
        Sweep now.
        
        Never raises: an unexpected failure is logged and reported as an
        empty pass.
        
        Returns:
            SweepReport of this pass
        """
        self.last_run = time.monotonic()
        try:
            report = self.store.sweep(self.max_age_s)
        except Exception as e:
            logger.error("sweep_failed", error=str(e))
            report = SweepReport()
        
        if report.removed or report.failed:
            logger.info(
                "sweep_done",
                scanned=report.scanned,
                removed=len(report.removed),
                failed=len(report.failed),
            )
        self.last_report = report
        return report
    
    def is_due(self) -> bool:
        if self.last_run is None:
            return True
        return time.monotonic() - self.last_run >= self.interval_s
    
    def maybe_run(self) -> Optional[SweepReport]:
        """Sweep only if the interval has elapsed since the last pass."""
        if not self.is_due():
            return None
        return self.run_once()
    
    async def _loop(self) -> None:
        while True:
            await asyncio.to_thread(self.run_once)
            await asyncio.sleep(self.interval_s)
    
    async def start(self) -> None:
        """Start periodic sweeps on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
    
    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
    
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
