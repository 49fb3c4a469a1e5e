import json
import os
import secrets
from datetime import timedelta

from flask import current_app
from slugify import slugify

from .models import (
    ROLE_SUPER_ADMIN,
    AdminProfile,
    ApiConfig,
    BlogCategory,
    OilPrice,
    ScheduledJob,
    SiteSetting,
    User,
    db,
)
from .services.settings_store import category_for_key, is_public_key
from .utils import humanize_key, utc_now_naive

DEFAULT_SETTINGS = {
    'company_name': 'Alak Oil and Gas',
    'company_tagline': 'Reliable crude oil and refined petroleum supply across West Africa',
    'company_description': (
        'Alak Oil and Gas is an indigenous marketer of crude oil and refined petroleum products, '
        'connecting verified buyers and sellers with transparent documentation and logistics.'
    ),
    'company_email': 'info@alakoilandgas.com',
    'company_founded_year': '2015',
    'rc_number': 'RC 1234567',
    'tin_number': '12345678-0001',
    'head_office_city': 'Lagos',
    'head_office_address': 'Victoria Island, Lagos, Nigeria',
    'head_office_phone': '+234 800 000 0000',
    'commercial_office_city': 'Port Harcourt',
    'commercial_office_address': 'Trans Amadi, Port Harcourt, Nigeria',
    'commercial_office_email': 'sales@alakoilandgas.com',
    'social_facebook': '',
    'social_twitter': '',
    'social_linkedin': 'https://www.linkedin.com',
    'social_instagram': '',
    'show_social_links': 'true',
    'show_compliance_bar': 'true',
    'show_rc_number': 'true',
    'show_tin_number': 'true',
    'site_meta_title': 'Alak Oil and Gas | Crude Oil and Petroleum Products',
    'site_meta_description': 'Crude oil trading and refined petroleum product supply: PMS, AGO and Jet A-1.',
    'notification_inquiry_emails': '',
}

DEFAULT_CATEGORIES = (
    ('Market Analysis', 'Weekly views on crude benchmarks and product cracks.', '#1f6feb', 'chart-line'),
    ('Industry News', 'Regulatory and upstream developments.', '#d29922', 'newspaper'),
    ('Company Updates', 'Announcements from the Alak team.', '#2da44e', 'building'),
    ('Oil Prices', 'Daily benchmark price recaps.', '#cf222e', 'gauge'),
)

DEFAULT_JOBS = (
    ('fetch_oil_prices', 'price_fetch', 'Fetch daily benchmark prices.', 24),
    ('fetch_industry_news', 'news_fetch', 'Pull oil and gas headlines and score relevance.', 6),
    ('generate_blog_posts', 'auto_post', 'Write blog posts from price snapshots and approved articles.', 12),
)

DEFAULT_APIS = (
    ('oil_price_api', 'OilPriceAPI', 'https://api.oilpriceapi.com/v1/prices/latest', 100, 24),
    ('newsdata', 'NewsData.io', 'https://newsdata.io/api/1/news', 200, 6),
    ('marketstack', 'MarketStack', 'https://api.marketstack.com/v1/eod/latest', 30, 24),
)


def seed_admin_user():
    email = current_app.config.get('ADMIN_EMAIL') or 'admin@alakoilandgas.com'
    env_password = os.environ.get('ADMIN_PASSWORD') or ''
    admin = User.query.filter_by(email=email).first()
    if admin is not None:
        # Keep the admin password in sync with the environment on startup.
        if env_password and not admin.check_password(env_password):
            admin.set_password(env_password)
        if admin.profile is None:
            db.session.add(AdminProfile(user_id=admin.id, email=email, full_name='Site Administrator', role=ROLE_SUPER_ADMIN))
        return admin

    if not env_password:
        env_password = secrets.token_urlsafe(16)
        current_app.logger.warning(
            'ADMIN_PASSWORD not set. Seeded admin with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
        )
    admin = User(email=email)
    admin.set_password(env_password)
    db.session.add(admin)
    db.session.flush()
    db.session.add(AdminProfile(
        user_id=admin.id,
        email=email,
        full_name='Site Administrator',
        role=ROLE_SUPER_ADMIN,
        job_title='Administrator',
    ))
    return admin


def seed_settings():
    existing = {row.key for row in SiteSetting.query.all()}
    company_name = current_app.config.get('COMPANY_NAME')
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        if key == 'company_name' and company_name:
            value = company_name
        db.session.add(SiteSetting(
            key=key,
            value=json.dumps(value, ensure_ascii=False),
            label=humanize_key(key),
            category=category_for_key(key),
            is_public=is_public_key(key),
        ))


def seed_blog_categories():
    if BlogCategory.query.first() is not None:
        return
    for index, (name, description, color, icon) in enumerate(DEFAULT_CATEGORIES):
        db.session.add(BlogCategory(
            name=name,
            slug=slugify(name),
            description=description,
            color=color,
            icon=icon,
            sort_order=index,
        ))


def seed_jobs():
    now = utc_now_naive()
    existing_jobs = {row.job_name for row in ScheduledJob.query.all()}
    for name, job_type, description, hours in DEFAULT_JOBS:
        if name in existing_jobs:
            continue
        db.session.add(ScheduledJob(
            job_name=name,
            job_type=job_type,
            description=description,
            interval_hours=hours,
            next_run_at=now + timedelta(hours=hours),
        ))
    existing_apis = {row.api_name for row in ApiConfig.query.all()}
    for name, provider, endpoint, per_day, hours in DEFAULT_APIS:
        if name in existing_apis:
            continue
        db.session.add(ApiConfig(
            api_name=name,
            api_provider=provider,
            api_endpoint=endpoint,
            rate_limit_per_day=per_day,
            fetch_interval_hours=hours,
        ))


def seed_oil_prices():
    if OilPrice.query.first() is not None:
        return
    db.session.add(OilPrice(
        price_date=utc_now_naive().date(),
        brent_price=82.4,
        brent_change=0.6,
        brent_change_percent=0.73,
        wti_price=78.1,
        wti_change=0.4,
        wti_change_percent=0.51,
        bonny_light_price=83.9,
        bonny_light_change=0.7,
        bonny_light_change_percent=0.84,
        natural_gas_price=2.9,
        natural_gas_change=-0.05,
        natural_gas_change_percent=-1.7,
        market_trend='neutral',
        source='seed',
        auto_posted=True,
    ))


def seed_database():
    try:
        seed_admin_user()
        seed_settings()
        seed_blog_categories()
        seed_jobs()
        if current_app.config.get('SEED_SAMPLE_PRICES', True):
            seed_oil_prices()
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Database seeding failed.')
        raise
