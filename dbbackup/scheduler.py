"""
APScheduler configuration and job scheduling for dbbackup.

Manages:
- The cron-scheduled backup job (backup, then retention cleanup)
- Manual "run now" triggers
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.pool import ThreadPoolExecutor


BACKUP_JOB_ID = 'db_backup'

logger = logging.getLogger(__name__)

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def init_scheduler(app):
    """
    Initialize APScheduler with the cron-driven backup job.

    Args:
        app: Flask app instance holding the orchestrator in
            app.extensions['dbbackup']

    Returns:
        The BackgroundScheduler (not started)
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    jobstores = {
        'default': MemoryJobStore()
    }

    # One worker: backup cycles never overlap
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    timezone_name = app.config.get('SCHEDULER_TIMEZONE', 'UTC')

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=timezone_name
    )

    cron_expr = app.config['BACKUP_CRON']
    scheduler.add_job(
        func=run_scheduled_backup,
        trigger=CronTrigger.from_crontab(cron_expr, timezone=timezone_name),
        id=BACKUP_JOB_ID,
        name='Database Backup',
        replace_existing=True
    )

    app.logger.info(
        f"[db-backup] Schedule: {cron_expr}, Retention: {app.config['BACKUP_RETENTION_DAYS']} days"
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after init_scheduler().
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def run_scheduled_backup():
    """
    Run one backup cycle followed by a retention sweep.

    This is the scheduler's job function. Cleanup only runs after a
    successful upload. Failures stop here and are logged.
    """
    global flask_app

    orchestrator = flask_app.extensions['dbbackup']
    log = flask_app.logger

    with flask_app.app_context():
        try:
            log.info('[db-backup] Starting backup job...')
            uri = orchestrator.run_backup()
            result = orchestrator.cleanup_old_backups()
            log.info(
                f"[db-backup] Backup job completed: {uri} "
                f"({len(result.deleted)} old backups removed, {result.failure_count} failures)"
            )
        except Exception as e:
            log.error(f"[db-backup] Backup failed: {type(e).__name__}: {e}")


def trigger_backup_now() -> str:
    """
    Queue an immediate backup run.

    Returns:
        ID of the one-off scheduler job

    Raises:
        RuntimeError: If the scheduler is not initialized
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    # Small delay so the request returns before the job starts
    now = datetime.now(timezone.utc)
    job_id = f"manual_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"
    scheduler.add_job(
        func=run_scheduled_backup,
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=job_id,
        name='Manual: Database Backup',
        replace_existing=True
    )

    logger.info(f"Manually triggered backup ({job_id})")
    return job_id


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    global scheduler

    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_scheduler_running() -> bool:
    global scheduler
    return scheduler is not None and scheduler.running
