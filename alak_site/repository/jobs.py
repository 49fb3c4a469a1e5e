from ..models import ApiConfig, JobExecutionLog, ScheduledJob, db


def get_all_jobs():
    return ScheduledJob.query.order_by(ScheduledJob.job_name).all()


def get_job(job_id):
    return db.session.get(ScheduledJob, job_id)


def toggle_job_active(job, commit=True):
    job.is_active = not job.is_active
    if commit:
        db.session.commit()
    return job


def get_api_configs():
    return ApiConfig.query.order_by(ApiConfig.api_name).all()


def get_api_config(config_id):
    return db.session.get(ApiConfig, config_id)


def toggle_api_active(api_config, commit=True):
    api_config.is_active = not api_config.is_active
    if commit:
        db.session.commit()
    return api_config


def get_execution_logs(limit=50):
    return JobExecutionLog.query.order_by(
        JobExecutionLog.started_at.desc(),
        JobExecutionLog.id.desc(),
    ).limit(limit).all()


def get_logs_by_job(job_id, limit=20):
    return JobExecutionLog.query.filter_by(job_id=job_id).order_by(
        JobExecutionLog.started_at.desc(),
        JobExecutionLog.id.desc(),
    ).limit(limit).all()


def get_job_by_name(job_name):
    return ScheduledJob.query.filter_by(job_name=job_name).first()


def get_api_config_by_name(api_name):
    return ApiConfig.query.filter_by(api_name=api_name).first()


def add_execution_log(log, commit=True):
    db.session.add(log)
    if commit:
        db.session.commit()
    return log
