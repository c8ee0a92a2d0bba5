"""
In-process periodic runner for the reconciliation and abandonment jobs.

Used when the app runs as a long-lived server (SCHEDULER_ENABLED=true). On
Vercel the same jobs are triggered by the cron entrypoints in api/cron/.
Jobs stop at batch boundaries; a transition in flight is never interrupted.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PeriodicJob:
    name: str
    interval_seconds: float
    run: Callable[[asyncio.Event], Awaitable[object]]


class PeriodicJobRunner:
    """Runs each job in its own task until `stop()` is called."""

    def __init__(self, jobs: list[PeriodicJob]):
        self.jobs = jobs
        self.stop_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self.stop_event.clear()
        self._tasks = [
            asyncio.create_task(self._loop(job), name=f"job:{job.name}") for job in self.jobs
        ]
        logger.info(f"Scheduler started with jobs: {', '.join(job.name for job in self.jobs)}")

    async def stop(self, timeout: float = 30.0) -> None:
        """Ask jobs to stop and wait for the current batch to finish."""
        self.stop_event.set()
        if not self._tasks:
            return
        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            logger.warning(f"Scheduler task {task.get_name()} did not stop in time, cancelling")
            task.cancel()
        self._tasks = []
        logger.info("Scheduler stopped")

    async def _loop(self, job: PeriodicJob) -> None:
        while not self.stop_event.is_set():
            try:
                await job.run(self.stop_event)
            except Exception as e:
                logger.error(f"Scheduled job {job.name} failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=job.interval_seconds)
            except asyncio.TimeoutError:
                pass


def build_default_runner(db, reconcile_interval: float, abandon_interval: float) -> PeriodicJobRunner:
    """Reconciliation and abandonment, sharing one gateway client."""
    from core.jobs.abandonment import AbandonmentJob
    from core.jobs.reconciliation import ReconciliationJob

    async def reconcile(stop_event: asyncio.Event) -> None:
        await ReconciliationJob(db, stop_event=stop_event).run_once()

    async def abandon(stop_event: asyncio.Event) -> None:
        await AbandonmentJob(db).run_once()

    return PeriodicJobRunner(
        [
            PeriodicJob("reconcile_pending", reconcile_interval, reconcile),
            PeriodicJob("cancel_abandoned", abandon_interval, abandon),
        ]
    )


_runner: Optional[PeriodicJobRunner] = None


def get_runner() -> Optional[PeriodicJobRunner]:
    return _runner


def set_runner(runner: Optional[PeriodicJobRunner]) -> None:
    global _runner
    _runner = runner
