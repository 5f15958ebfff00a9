"""
Interval Scheduler

Runs async callbacks every N minutes until stopped. A failing run is
logged and the job keeps its schedule; the next tick is the retry.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger("domain_sync.scheduler")


@dataclass
class ScheduledJob:
    """A callback and its interval."""
    name: str
    interval_minutes: float
    callback: Callable[[], Awaitable]
    run_immediately: bool = False
    runs: int = 0
    failures: int = 0
    last_error: Optional[str] = field(default=None, repr=False)


class IntervalScheduler:
    """
    Minimal asyncio interval scheduler.

    Example:
        scheduler = IntervalScheduler()
        scheduler.add_job("nameservers", 60, reconciler.refresh_nameservers)
        scheduler.add_job("content-filter", 15, reconciler.refresh_content_filter_status)
        scheduler.install_signal_handlers()
        await scheduler.run()
    """

    def __init__(self):
        self.jobs: List[ScheduledJob] = []
        self._shutdown_event: asyncio.Event = asyncio.Event()

    def add_job(
        self,
        name: str,
        interval_minutes: float,
        callback: Callable[[], Awaitable],
        run_immediately: bool = False,
    ) -> Optional[ScheduledJob]:
        """
        Register a job; an interval of 0 or less disables it.

        Returns:
            The job, or None when disabled
        """
        if not interval_minutes or interval_minutes <= 0:
            logger.info(f"Job {name} disabled")
            return None
        job = ScheduledJob(name, interval_minutes, callback, run_immediately)
        self.jobs.append(job)
        logger.info(f"Job {name} scheduled every {interval_minutes:g} minute(s)")
        return job

    async def run_job(self, job: ScheduledJob) -> None:
        """Run one job once, logging instead of raising on failure."""
        job.runs += 1
        try:
            result = await job.callback()
            logger.info(f"Job {job.name} finished: {result}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            job.last_error = str(e)
            logger.exception(f"Job {job.name} failed: {e}")

    async def _job_loop(self, job: ScheduledJob) -> None:
        if job.run_immediately:
            await self.run_job(job)
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=job.interval_minutes * 60)
            except asyncio.TimeoutError:
                await self.run_job(job)

    async def run(self) -> None:
        """Run all jobs until stop() is called."""
        if not self.jobs:
            logger.warning("No jobs scheduled")
            return

        self._shutdown_event.clear()
        logger.info(f"Scheduler started with {len(self.jobs)} job(s)")
        await asyncio.gather(*(self._job_loop(job) for job in self.jobs))
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        """Stop after the jobs currently running finish."""
        self._shutdown_event.set()

    def signal_handler(self, sig: signal.Signals) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig.name}")
        self.stop()

    def install_signal_handlers(self) -> None:
        """Stop on SIGTERM and SIGINT (must be called from the running loop)."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self.signal_handler(s))
