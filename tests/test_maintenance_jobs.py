from knowledge_search.domain.models import RateLimitRule
from knowledge_search.services.maintenance_jobs import MaintenanceJobs
from knowledge_search.services.rate_limiter import RateLimiter


def test_sweep_job_is_registered(clock):
    jobs = MaintenanceJobs(RateLimiter(clock=clock), sweep_interval_minutes=10)

    status = jobs.get_job_status()

    assert status["scheduler_running"] is False
    assert [job["id"] for job in status["jobs"]] == ["rate_limit_sweep"]
    assert status["jobs"][0]["func"] == "sweep_rate_limits"


async def test_sweep_removes_expired_buckets(clock):
    limiter = RateLimiter({"search": RateLimitRule(limit=5)}, clock=clock)
    limiter.check_limit("alice", "search")
    clock.advance(120)

    assert await MaintenanceJobs(limiter).sweep_rate_limits() == 1
    assert len(limiter) == 0


async def test_start_and_shutdown(clock):
    jobs = MaintenanceJobs(RateLimiter(clock=clock))

    await jobs.start()
    assert jobs.get_job_status()["scheduler_running"] is True
    assert jobs.get_job_status()["jobs"][0]["next_run"] is not None

    await jobs.shutdown()
    assert jobs.scheduler.running is False
    assert jobs.get_job_status()["scheduler_running"] is False

    await jobs.shutdown()
