"""The content pipeline's jobs, addressable by ScheduledJob name or cron URL key."""
from .blog_generator import generate_pending_posts
from .jobs import run_job
from .market_data import fetch_and_store_prices
from .news_ingest import fetch_and_store_news

# ScheduledJob name -> (handler, handler takes force)
JOB_HANDLERS = {
    'fetch_oil_prices': (fetch_and_store_prices, True),
    'fetch_industry_news': (fetch_and_store_news, True),
    'generate_blog_posts': (generate_pending_posts, False),
}
CRON_JOB_KEYS = {
    'fetch-prices': 'fetch_oil_prices',
    'fetch-news': 'fetch_industry_news',
    'generate-posts': 'generate_blog_posts',
}


def run_named_job(job_name, force=False, triggered_by='cron'):
    """Run a pipeline job by name. Raises KeyError for names with no handler."""
    handler, takes_force = JOB_HANDLERS[job_name]
    kwargs = {'force': force} if takes_force else {}
    return run_job(job_name, lambda: handler(**kwargs), triggered_by=triggered_by)
