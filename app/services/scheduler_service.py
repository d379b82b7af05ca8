"""
Brand Studio - Background Scheduler
Runs the social publisher, YouTube fetch, subscriber sync and inbox jobs in-process
Uses APScheduler for in-process job scheduling
"""
import logging
import requests
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

SOCIAL_INTERVAL_MINUTES = 5
SUBSCRIBER_SYNC_SCHEDULE = '0 3 * * *'


def cron_trigger(expression: str) -> CronTrigger:
    """Five-field crontab expression to a trigger; ValueError when invalid"""
    if not expression or len(expression.split()) != 5:
        raise ValueError(f'Invalid cron expression: {expression!r}')
    return CronTrigger.from_crontab(expression)


def next_run_time(expression: str) -> Optional[datetime]:
    trigger = cron_trigger(expression)
    return trigger.get_next_fire_time(None, datetime.now(trigger.timezone))


# ==========================================
# JOBS
# ==========================================

def run_social_publish(app):
    """Publish every scheduled social post that is due"""
    with app.app_context():
        from app.services.social_service import publish_scheduled_posts

        result = publish_scheduled_posts()
        if result['total']:
            logger.info(f"Social publish: {result['published']} published, {result['failed']} failed")


def run_youtube_fetch(app):
    with app.app_context():
        from app.services.youtube_service import get_youtube_service, YouTubeError

        service = get_youtube_service()
        if not service.is_configured():
            logger.info("YouTube fetch skipped: YOUTUBE_API_KEY not set")
            return
        try:
            videos = service.fetch_videos()
            logger.info(f"YouTube fetch stored {len(videos)} videos")
        except (YouTubeError, requests.RequestException) as e:
            logger.error(f"YouTube fetch failed: {e}")


def run_subscriber_sync(app):
    with app.app_context():
        from app.services.sender_service import get_sender_service, sync_message

        sender = get_sender_service()
        if not sender.is_configured():
            logger.info("Subscriber sync skipped: SENDER_API_KEY not set")
            return
        result = sender.sync_subscribers()
        logger.info(sync_message(result))
        for error in result['errors']:
            logger.warning(f"Subscriber sync: {error}")


def run_email_job(app):
    """Sync the inbox and/or analyze unread threads, as configured"""
    with app.app_context():
        from app.database import db
        from app.services.ai_service import AIServiceError
        from app.services.gmail_service import (
            GmailError, analyze_unread_emails, get_cron_config, sync_emails
        )

        config = get_cron_config()
        if not config.is_enabled:
            return

        try:
            if config.sync_emails:
                result = sync_emails()
                logger.info(f"Email job fetched {result['total']} messages ({result['new']} new, {result['synced']} updated)")
            if config.analyze_emails and config.ai_integration_id:
                result = analyze_unread_emails(config.ai_integration_id)
                logger.info(f"Email job analyzed {result['threadsAnalyzed']} threads")
        except (GmailError, AIServiceError, requests.RequestException) as e:
            db.session.rollback()
            logger.error(f"Email job failed: {e}")

        config.last_run = datetime.utcnow()
        db.session.commit()


JOBS = {
    'social': {'id': 'social_publish', 'name': 'Publish Scheduled Social Posts', 'func': run_social_publish},
    'youtube': {'id': 'youtube_fetch', 'name': 'Fetch YouTube Videos', 'func': run_youtube_fetch},
    'subscribers': {'id': 'subscriber_sync', 'name': 'Sync Sender.net Subscribers', 'func': run_subscriber_sync},
    'email': {'id': 'email_sync', 'name': 'Email Sync and Analysis', 'func': run_email_job},
}


def job_schedule(name: str) -> str:
    """Current schedule of a job as shown to admins; needs an app context"""
    if name == 'social':
        return f'*/{SOCIAL_INTERVAL_MINUTES} * * * *'
    if name == 'subscribers':
        return SUBSCRIBER_SYNC_SCHEDULE
    if name == 'youtube':
        from app.services.youtube_service import get_site_config
        return get_site_config().cron_schedule
    if name == 'email':
        from app.services.gmail_service import get_cron_config
        return get_cron_config().schedule
    raise KeyError(name)


def _trigger_for(name: str):
    if name == 'social':
        return IntervalTrigger(minutes=SOCIAL_INTERVAL_MINUTES)
    return cron_trigger(job_schedule(name))


def _add_job(name: str, app):
    job = JOBS[name]
    scheduler.add_job(
        func=job['func'],
        trigger=_trigger_for(name),
        id=job['id'],
        name=job['name'],
        replace_existing=True,
        kwargs={'app': app}
    )


# ==========================================
# LIFECYCLE
# ==========================================

def init_scheduler(app, paused: bool = False, jobs=None):
    """Initialize the background scheduler with the Flask app context (all jobs unless jobs is given)"""
    global scheduler

    if scheduler is not None:
        logger.info("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        job_defaults={
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 3600
        }
    )
    scheduler.app = app

    with app.app_context():
        for name in (JOBS if jobs is None else jobs):
            try:
                _add_job(name, app)
            except ValueError as e:
                logger.error(f"Could not schedule {name} job: {e}")

    scheduler.start(paused=paused)
    logger.info(f"Background scheduler started with {len(scheduler.get_jobs())} jobs")
    return scheduler


def shutdown_scheduler():
    global scheduler
    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=False)
        scheduler = None


def _job(name: str):
    if scheduler is None:
        return None
    return scheduler.get_job(JOBS[name]['id'])


def job_status(name: str) -> Dict:
    job = _job(name)
    next_run = getattr(job, 'next_run_time', None) if job else None
    return {
        'id': JOBS[name]['id'],
        'name': JOBS[name]['name'],
        'running': job is not None and scheduler.running,
        'schedule': job_schedule(name),
        'nextRun': next_run.isoformat() if next_run else None
    }


def get_scheduler_status() -> Dict:
    """Scheduler state plus per-job status; needs an app context"""
    if scheduler is None:
        state = 'not_initialized'
    else:
        state = 'running' if scheduler.running else 'stopped'
    return {
        'status': state,
        'jobs': {name: job_status(name) for name in JOBS}
    }


def start_job(name: str, app=None) -> Dict:
    if name not in JOBS:
        raise KeyError(name)
    if scheduler is None:
        from flask import current_app
        init_scheduler(app or current_app._get_current_object(), jobs=[name])
    else:
        _add_job(name, app or scheduler.app)
    logger.info(f"Started {name} job")
    return job_status(name)


def stop_job(name: str) -> Dict:
    job = _job(name)
    if job is not None:
        job.remove()
        logger.info(f"Stopped {name} job")
    return job_status(name)


def restart_job(name: str, app=None) -> Dict:
    stop_job(name)
    return start_job(name, app)


def reschedule_job(name: str, expression: str) -> Optional[Dict]:
    """
    Apply a new cron expression to a running job.

    Raises ValueError for an invalid expression. Returns None when the job
    is not scheduled; the stored expression is used on its next start.
    """
    trigger = cron_trigger(expression)
    job = _job(name)
    if job is None:
        return None
    scheduler.reschedule_job(job.id, trigger=trigger)
    logger.info(f"Rescheduled {name} job to '{expression}'")
    return job_status(name)


def run_job_now(job_id: str) -> Dict:
    """Manually trigger a job to run immediately"""
    if scheduler is None:
        return {'error': 'Scheduler not initialized'}

    job = scheduler.get_job(job_id)
    if job:
        job.modify(next_run_time=datetime.now())
        return {'success': True, 'message': f'Job {job_id} triggered'}
    return {'error': f'Job {job_id} not found'}
