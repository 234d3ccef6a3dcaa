import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from knowledge_search.core.base import ErrorLevel
from knowledge_search.core.decorators import with_error_handling
from knowledge_search.core.logging import get_logger
from knowledge_search.services.rate_limiter import RateLimiter

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_MINUTES = 5


class MaintenanceJobs:
    """Background housekeeping for in-process search state."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        sweep_interval_minutes: int = DEFAULT_SWEEP_INTERVAL_MINUTES,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.rate_limiter = rate_limiter
        self.sweep_interval_minutes = sweep_interval_minutes
        self.scheduler = scheduler or AsyncIOScheduler()
        self._setup_jobs()

    def _setup_jobs(self):
        self.scheduler.add_job(
            self.sweep_rate_limits,
            "interval",
            minutes=self.sweep_interval_minutes,
            id="rate_limit_sweep",
            max_instances=1,
            coalesce=True,
        )

    async def start(self):
        self.scheduler.start()
        logger.info(
            "Maintenance jobs started",
            extra={"sweep_interval_minutes": self.sweep_interval_minutes},
        )

    async def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            # AsyncIOScheduler applies the shutdown on the next loop iteration
            await asyncio.sleep(0)
        logger.info("Maintenance jobs shutdown complete")

    @with_error_handling(error_level=ErrorLevel.WARNING, reraise=False)
    async def sweep_rate_limits(self) -> int:
        """Drop rate-limit buckets whose window has long expired."""
        removed = self.rate_limiter.sweep()
        if removed > 0:
            logger.info(f"Swept {removed} expired rate-limit buckets", extra={"remaining": len(self.rate_limiter)})
        return removed

    def get_job_status(self) -> dict:
        """Get status of all scheduled jobs."""
        jobs = self.scheduler.get_jobs()
        return {
            "scheduler_running": self.scheduler.running,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                    "func": job.func.__name__,
                }
                for job in jobs
            ],
        }
