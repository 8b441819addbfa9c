"""APScheduler-based periodic price refresh.

One interval job calls ``PriceSyncService.refresh_all`` so the cache stays
warm without waiting for API traffic. Failed cycles are logged and recorded;
they never stop the scheduler.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from pricesync.services.price_service import PriceSyncService


logger = structlog.get_logger(__name__)

REFRESH_JOB_ID = "refresh_prices"


@dataclass
class RefreshCycle:
    """Result of the most recent refresh cycle."""

    started_at: datetime
    duration_seconds: float = 0.0
    successful: int = 0
    failed: int = 0
    error: Optional[str] = None


class RefreshScheduler:
    """Runs the full price refresh on a fixed interval."""

    def __init__(self, service: "PriceSyncService", interval_minutes: int):
        """Initialize the scheduler.

        Args:
            service: Service whose ``refresh_all`` is called each cycle
            interval_minutes: Minutes between cycles (must be > 0)
        """
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be > 0")
        self.service = service
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.last_cycle: Optional[RefreshCycle] = None
        self.logger = logger.bind(service="refresh_scheduler")

    def start(self) -> Optional[Job]:
        """Start the scheduler and register the refresh job."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return self.scheduler.get_job(REFRESH_JOB_ID)

        self.scheduler.start()
        job = self.scheduler.add_job(
            func=self.run_cycle,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone="UTC"),
            id=REFRESH_JOB_ID,
            name="Refresh tracked prices",
            replace_existing=True,
            max_instances=1,  # never overlap two full refreshes
            coalesce=True,
        )
        self.logger.info(
            "scheduler_started",
            interval_minutes=self.interval_minutes,
            next_run=job.next_run_time.isoformat() if job.next_run_time else None,
        )
        return job

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running cycle."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    async def run_cycle(self) -> RefreshCycle:
        """Refresh every tracked product once and record the result."""
        cycle = RefreshCycle(started_at=datetime.now(timezone.utc))
        self.logger.info("refresh_cycle_started")
        try:
            result = await self.service.refresh_all()
            cycle.successful = result.summary.successful
            cycle.failed = result.summary.failed
        except Exception as e:
            cycle.error = str(e)
            self.logger.error("refresh_cycle_failed", error=str(e), exc_info=True)
        finally:
            cycle.duration_seconds = round(
                (datetime.now(timezone.utc) - cycle.started_at).total_seconds(), 2
            )
            self.last_cycle = cycle

        if cycle.error is None:
            self.logger.info(
                "refresh_cycle_completed",
                duration_seconds=cycle.duration_seconds,
                successful=cycle.successful,
                failed=cycle.failed,
            )
        return cycle

    def get_jobs_status(self) -> dict:
        """Next run time and last cycle of the refresh job."""
        job = self.scheduler.get_job(REFRESH_JOB_ID)
        status = {
            "running": self.scheduler.running,
            "interval_minutes": self.interval_minutes,
            "next_run": job.next_run_time.isoformat() if job and job.next_run_time else None,
            "last_cycle": None,
        }
        if self.last_cycle:
            status["last_cycle"] = {
                "started_at": self.last_cycle.started_at.isoformat(),
                "duration_seconds": self.last_cycle.duration_seconds,
                "successful": self.last_cycle.successful,
                "failed": self.last_cycle.failed,
                "error": self.last_cycle.error,
            }
        return status

    def is_running(self) -> bool:
        return self.scheduler.running
