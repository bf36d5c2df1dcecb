"""
Scheduler for the periodic notification jobs

Uses APScheduler to run the abandoned-cart, review-request and campaign scans.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import asyncio
import time
from typing import Optional

from notifier.connectors.whatsapp import get_whatsapp_client
from notifier.models.base import get_db
from notifier.services.notification_service import NotificationDispatcher
from notifier.services.reminder_service import (
    CampaignRunner,
    process_abandoned_carts,
    process_review_requests,
    process_scheduled_campaigns,
)
from notifier.config import get_settings
from notifier.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()

# Campaign execution lives outside this service; register a runner to take over due campaigns
_campaign_runner: Optional[CampaignRunner] = None


def set_campaign_runner(runner: Optional[CampaignRunner]) -> None:
    global _campaign_runner
    _campaign_runner = runner


# Job Functions

async def check_abandoned_carts():
    """Send due abandoned-cart reminders (every 30 minutes)"""
    start = time.time()
    db = next(get_db())
    try:
        log.info("Checking for abandoned carts...")
        dispatcher = NotificationDispatcher(db, get_whatsapp_client())
        counts = await process_abandoned_carts(db, dispatcher)
        log.info(
            f"Abandoned cart check completed in {time.time() - start:.1f}s: "
            f"{counts['sent']} sent, {counts['skipped']} skipped, {counts['failed']} failed "
            f"across {counts['shops']} shops"
        )
    except Exception as e:
        log.error(f"Abandoned cart check error: {str(e)}")
    finally:
        db.close()


async def check_review_requests():
    """Ask for reviews on delivered orders (daily)"""
    db = next(get_db())
    try:
        log.info("Checking for review requests...")
        dispatcher = NotificationDispatcher(db, get_whatsapp_client())
        counts = await process_review_requests(db, dispatcher)
        log.info(f"Review requests: {counts['sent']} sent, {counts['skipped']} skipped, {counts['failed']} failed")
    except Exception as e:
        log.error(f"Review request check error: {str(e)}")
    finally:
        db.close()


async def check_scheduled_campaigns():
    """Hand due campaigns to the campaign runner (every 5 minutes)"""
    db = next(get_db())
    try:
        counts = await process_scheduled_campaigns(db, runner=_campaign_runner)
        if counts['due']:
            log.info(f"Scheduled campaigns: {counts['started']} started, {counts['failed']} failed")
    except Exception as e:
        log.error(f"Scheduled campaign check error: {str(e)}")
    finally:
        db.close()


JOBS = {
    'abandoned_carts': check_abandoned_carts,
    'review_requests': check_review_requests,
    'campaigns': check_scheduled_campaigns,
}


def setup_scheduler():
    """
    Configure the scheduler.

    Frequencies:
    - Abandoned carts:  every abandoned_cart_interval_minutes (30)
    - Review requests:  every review_request_interval_hours (24)
    - Campaigns:        every campaign_interval_minutes (5)

    max_instances=1 keeps a slow tick from overlapping the next one.
    """
    scheduler.add_job(
        check_abandoned_carts,
        trigger=IntervalTrigger(minutes=settings.abandoned_cart_interval_minutes),
        id='abandoned_carts',
        name='Abandoned Cart Reminders',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    scheduler.add_job(
        check_review_requests,
        trigger=IntervalTrigger(hours=settings.review_request_interval_hours),
        id='review_requests',
        name='Review Requests',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    scheduler.add_job(
        check_scheduled_campaigns,
        trigger=IntervalTrigger(minutes=settings.campaign_interval_minutes),
        id='campaigns',
        name='Scheduled Campaigns',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )


def start_scheduler():
    """Start the scheduler (needs a running event loop)"""
    setup_scheduler()
    scheduler.start()
    log.info("Notification scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        log.info("Notification scheduler stopped")


def run_job_now(job_name: str) -> dict:
    """
    Manually run one job outside the schedule

    Args:
        job_name: abandoned_carts, review_requests or campaigns

    Returns:
        Dict with success flag and message or error
    """
    if job_name not in JOBS:
        return {
            'success': False,
            'error': f'Unknown job: {job_name}. Valid options: {", ".join(JOBS.keys())}'
        }

    try:
        log.info(f"Manually triggering {job_name}...")
        asyncio.run(JOBS[job_name]())
        return {
            'success': True,
            'message': f'{job_name} completed'
        }

    except Exception as e:
        log.error(f"Error running {job_name}: {str(e)}")
        return {
            'success': False,
            'error': str(e)
        }


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        next_run = getattr(job, 'next_run_time', None)  # unset until the scheduler starts

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs


async def _run_forever():
    start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


# CLI for manual runs

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m notifier.scheduler <command> [job_name]")
        print("\nCommands:")
        print("  start          Start the scheduler")
        print("  run <job>      Run one job now")
        print("\nJobs:")
        print(f"  {', '.join(JOBS.keys())}")
        sys.exit(1)

    command = sys.argv[1]

    if command == "start":
        print("Starting scheduler...")
        try:
            asyncio.run(_run_forever())
        except (KeyboardInterrupt, SystemExit):
            print("\nShutting down scheduler...")

    elif command == "run":
        if len(sys.argv) < 3:
            print("Error: Please specify a job name")
            print("Usage: python -m notifier.scheduler run <job_name>")
            sys.exit(1)

        result = run_job_now(sys.argv[2])

        if result['success']:
            print(f"✓ {result['message']}")
        else:
            print(f"✗ Error: {result['error']}")
            sys.exit(1)

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
