"""Runs the background jobs and records each run against its ScheduledJob."""
import time
from datetime import timedelta

from flask import current_app

from ..models import JobExecutionLog, db
from ..repository import jobs as jobs_repo
from ..utils import utc_now_naive

STATUS_SUCCESS = 'success'
STATUS_FAILED = 'failed'
STATUS_SKIPPED = 'skipped'
LOG_COUNTERS = ('articles_fetched', 'articles_relevant', 'posts_created', 'posts_published')


def job_result(status=STATUS_SUCCESS, message='', **counters):
    return dict(counters, status=status, message=message)


def api_enabled(api_name):
    api_config = jobs_repo.get_api_config_by_name(api_name)
    return api_config is None or bool(api_config.is_active)


def record_api_call(api_name, error=None):
    """Track usage and failures for an ApiConfig row; unknown names are ignored."""
    api_config = jobs_repo.get_api_config_by_name(api_name)
    if api_config is None:
        return None
    now = utc_now_naive()
    if api_config.last_fetch_at is None or api_config.last_fetch_at.date() != now.date():
        api_config.current_day_calls = 0
    api_config.current_day_calls = (api_config.current_day_calls or 0) + 1
    api_config.last_fetch_at = now
    if api_config.fetch_interval_hours:
        api_config.next_fetch_at = now + timedelta(hours=api_config.fetch_interval_hours)
    if error:
        api_config.consecutive_failures = (api_config.consecutive_failures or 0) + 1
        api_config.last_error = str(error)[:1000]
    else:
        api_config.consecutive_failures = 0
    return api_config


def run_job(job_name, handler, triggered_by='cron'):
    """Run ``handler`` and write a JobExecutionLog plus the job's run counters.

    Paused jobs and handlers that report ``skipped`` leave no log behind.
    """
    job = jobs_repo.get_job_by_name(job_name)
    if job is not None and not job.is_active:
        current_app.logger.info('Job %s is paused; skipping run.', job_name)
        return job_result(STATUS_SKIPPED, 'Job is paused.', duration_ms=0)

    started_at = utc_now_naive()
    started = time.monotonic()
    try:
        result = handler()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception('Job %s failed.', job_name)
        result = job_result(STATUS_FAILED, str(exc)[:500] or exc.__class__.__name__)
    duration_ms = int((time.monotonic() - started) * 1000)
    result['duration_ms'] = duration_ms
    if result['status'] == STATUS_SKIPPED:
        current_app.logger.info('Job %s skipped: %s', job_name, result['message'])
        return result

    finished_at = utc_now_naive()
    succeeded = result['status'] == STATUS_SUCCESS
    log = JobExecutionLog(
        job_id=job.id if job is not None else None,
        job_name=job_name,
        started_at=started_at,
        completed_at=finished_at,
        status=result['status'],
        duration_ms=duration_ms,
        error_message=None if succeeded else result['message'],
        triggered_by=triggered_by,
        **{key: result.get(key, 0) for key in LOG_COUNTERS},
    )
    if job is not None:
        job.total_runs = (job.total_runs or 0) + 1
        if succeeded:
            job.successful_runs = (job.successful_runs or 0) + 1
        else:
            job.failed_runs = (job.failed_runs or 0) + 1
        job.last_run_at = finished_at
        job.last_run_status = result['status']
        job.last_run_message = result['message']
        job.last_run_duration_ms = duration_ms
        if job.interval_hours:
            job.next_run_at = finished_at + timedelta(hours=job.interval_hours)
    jobs_repo.add_execution_log(log)
    current_app.logger.info('Job %s finished with status %s in %sms.', job_name, result['status'], duration_ms)
    return result
