import os
import tempfile
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_vercel_runtime():
    return bool(os.environ.get('VERCEL') or os.environ.get('VERCEL_ENV'))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RENDER')
        or _is_vercel_runtime()
    )


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    vercel_env = (os.environ.get('VERCEL_ENV') or '').strip().lower()
    railway_env = (os.environ.get('RAILWAY_ENVIRONMENT') or '').strip().lower()
    return 'production' in (flask_env, vercel_env, railway_env)


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    if _is_vercel_runtime():
        return 'sqlite:////tmp/alak.db'
    return 'sqlite:///' + os.path.join(basedir, 'alak.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    options = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    parsed = urlparse(database_url)
    if parsed.scheme.startswith('postgresql'):
        connect_timeout_seconds = max(1, _as_int(os.environ.get('DB_CONNECT_TIMEOUT_SECONDS'), 5))
        statement_timeout_ms = max(1000, _as_int(os.environ.get('DB_STATEMENT_TIMEOUT_MS'), 8000))
        options['connect_args'] = {
            'connect_timeout': connect_timeout_seconds,
            'options': f'-c statement_timeout={statement_timeout_ms}',
        }
    return options


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    COMPANY_NAME = (os.environ.get('COMPANY_NAME') or 'Alak Oil and Gas').strip()
    ADMIN_EMAIL = (os.environ.get('ADMIN_EMAIL') or 'admin@alakoilandgas.com').strip().lower()

    UPLOAD_FOLDER = (os.environ.get('UPLOAD_FOLDER') or '').strip() or (
        os.path.join(tempfile.gettempdir(), 'uploads') if _is_vercel_runtime() else os.path.join(basedir, 'uploads')
    )
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024
    AVATAR_MAX_BYTES = _as_int(os.environ.get('AVATAR_MAX_BYTES'), 2 * 1024 * 1024)
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_IMAGE_MIME_TYPES = {
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp',
    }

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(
        os.environ.get('SESSION_COOKIE_SECURE'),
        ((os.environ.get('PREFERRED_URL_SCHEME') or '').lower() == 'https') or _is_production_runtime(),
    )
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = 'Lax'
    REMEMBER_COOKIE_SECURE = SESSION_COOKIE_SECURE
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    PREFERRED_URL_SCHEME = os.environ.get('PREFERRED_URL_SCHEME') or ('https' if SESSION_COOKIE_SECURE else 'http')
    APP_BASE_URL = (os.environ.get('APP_BASE_URL') or '').rstrip('/')
    ASSET_VERSION = (os.environ.get('ASSET_VERSION') or '').strip()
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(os.environ.get('HSTS_MAX_AGE'), 31536000)
    HSTS_INCLUDE_SUBDOMAINS = _as_bool(os.environ.get('HSTS_INCLUDE_SUBDOMAINS'), True)
    HSTS_PRELOAD = _as_bool(os.environ.get('HSTS_PRELOAD'), False)
    CSRF_EXEMPT_ENDPOINTS = ('api.contact_submit',)

    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)
    MAIL_FROM = (os.environ.get('MAIL_FROM') or SMTP_USERNAME or 'no-reply@localhost').strip()
    INQUIRY_NOTIFICATION_EMAILS = os.environ.get('INQUIRY_NOTIFICATION_EMAILS') or ''
    INQUIRY_ACK_EMAILS_ENABLED = _as_bool(os.environ.get('INQUIRY_ACK_EMAILS_ENABLED'), False)
    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    CONTACT_FORM_LIMIT = _as_int(os.environ.get('CONTACT_FORM_LIMIT'), 10)
    CONTACT_FORM_WINDOW_SECONDS = _as_int(os.environ.get('CONTACT_FORM_WINDOW_SECONDS'), 3600)
    ADMIN_LOGIN_LIMIT = _as_int(os.environ.get('ADMIN_LOGIN_LIMIT'), 5)
    ADMIN_LOGIN_WINDOW_SECONDS = _as_int(os.environ.get('ADMIN_LOGIN_WINDOW_SECONDS'), 300)

    INQUIRIES_PER_PAGE = _as_int(os.environ.get('INQUIRIES_PER_PAGE'), 15)
    AUDIT_LOGS_PER_PAGE = _as_int(os.environ.get('AUDIT_LOGS_PER_PAGE'), 20)
    BLOG_POSTS_PER_PAGE = _as_int(os.environ.get('BLOG_POSTS_PER_PAGE'), 9)
    PDF_MAX_ROWS = _as_int(os.environ.get('PDF_MAX_ROWS'), 30)

    CRON_SECRET = (os.environ.get('CRON_SECRET') or '').strip()
    OILPRICEAPI_KEY = (os.environ.get('OILPRICEAPI_KEY') or '').strip()
    MARKETSTACK_API_KEY = (os.environ.get('MARKETSTACK_API_KEY') or '').strip()
    NEWSDATA_API_KEY = (os.environ.get('NEWSDATA_API_KEY') or '').strip()
    PRICE_FETCH_INTERVAL_HOURS = _as_int(os.environ.get('PRICE_FETCH_INTERVAL_HOURS'), 13)
    NEWS_FETCH_INTERVAL_HOURS = _as_int(os.environ.get('NEWS_FETCH_INTERVAL_HOURS'), 13)
    NEWS_MAX_ARTICLES_PER_FETCH = _as_int(os.environ.get('NEWS_MAX_ARTICLES_PER_FETCH'), 50)
    EXTERNAL_API_TIMEOUT_SECONDS = _as_int(os.environ.get('EXTERNAL_API_TIMEOUT_SECONDS'), 15)
    PASSWORD_RESET_MAX_AGE_SECONDS = _as_int(os.environ.get('PASSWORD_RESET_MAX_AGE_SECONDS'), 3600)
    PASSWORD_RESET_LIMIT = _as_int(os.environ.get('PASSWORD_RESET_LIMIT'), 5)
    PASSWORD_RESET_WINDOW_SECONDS = _as_int(os.environ.get('PASSWORD_RESET_WINDOW_SECONDS'), 3600)

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
