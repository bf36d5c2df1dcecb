"""
Scheduler wiring: job registration and manual runs.
"""
from notifier.scheduler import get_scheduled_jobs, run_job_now, scheduler, setup_scheduler


def test_three_interval_jobs_are_registered():
    setup_scheduler()
    try:
        jobs = {job["id"]: job for job in get_scheduled_jobs()}
        assert set(jobs) == {"abandoned_carts", "review_requests", "campaigns"}
        assert "interval" in jobs["abandoned_carts"]["trigger"]
        assert not scheduler.running
    finally:
        scheduler.remove_all_jobs()


def test_unknown_job_is_rejected():
    result = run_job_now("nightly_backup")
    assert not result["success"]
    assert "abandoned_carts" in result["error"]
