import json

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

from .utils import load_json_list, utc_now_naive

db = SQLAlchemy()

# Inquiry pipeline
INQUIRY_STATUS_PENDING = 'pending'
INQUIRY_STATUS_CONTACTED = 'contacted'
INQUIRY_STATUS_QUALIFIED = 'qualified'
INQUIRY_STATUS_NEGOTIATING = 'negotiating'
INQUIRY_STATUS_CLOSED_WON = 'closed_won'
INQUIRY_STATUS_CLOSED_LOST = 'closed_lost'
INQUIRY_STATUSES = (
    INQUIRY_STATUS_PENDING,
    INQUIRY_STATUS_CONTACTED,
    INQUIRY_STATUS_QUALIFIED,
    INQUIRY_STATUS_NEGOTIATING,
    INQUIRY_STATUS_CLOSED_WON,
    INQUIRY_STATUS_CLOSED_LOST,
)
INQUIRY_STATUS_LABELS = {
    INQUIRY_STATUS_PENDING: 'Pending',
    INQUIRY_STATUS_CONTACTED: 'Contacted',
    INQUIRY_STATUS_QUALIFIED: 'Qualified',
    INQUIRY_STATUS_NEGOTIATING: 'Negotiating',
    INQUIRY_STATUS_CLOSED_WON: 'Closed Won',
    INQUIRY_STATUS_CLOSED_LOST: 'Closed Lost',
}

INQUIRY_CATEGORY_LABELS = {
    'verified-buyer': 'Verified Buyer',
    'verified-seller': 'Verified Seller',
    'strategic-partner': 'Strategic Partner',
}
INQUIRY_CATEGORIES = tuple(INQUIRY_CATEGORY_LABELS)

PRODUCT_TYPE_LABELS = {
    'crude-oil': 'Crude Oil',
    'pms': 'PMS (Gasoline)',
    'ago': 'AGO (Diesel)',
    'jet-fuel': 'Jet Fuel (ATK)',
    'multiple': 'Multiple Products',
}
PRODUCT_TYPES = tuple(PRODUCT_TYPE_LABELS)

VOLUME_UNITS = ('BBLs', 'MT', 'Liters')
INQUIRY_SOURCE_DEFAULT = 'website'

INQUIRY_LOG_STATUS_CHANGE = 'status_change'
INQUIRY_LOG_NOTE_ADDED = 'note_added'
INQUIRY_LOG_ASSIGNED = 'assigned'
INQUIRY_LOG_ACTIONS = (
    INQUIRY_LOG_STATUS_CHANGE,
    INQUIRY_LOG_NOTE_ADDED,
    INQUIRY_LOG_ASSIGNED,
)

# Admin roles, strictly ordered
ROLE_VIEWER = 'viewer'
ROLE_EDITOR = 'editor'
ROLE_ADMIN = 'admin'
ROLE_SUPER_ADMIN = 'super_admin'
ROLE_HIERARCHY = {
    ROLE_VIEWER: 1,
    ROLE_EDITOR: 2,
    ROLE_ADMIN: 3,
    ROLE_SUPER_ADMIN: 4,
}
ADMIN_ROLES = tuple(sorted(ROLE_HIERARCHY, key=ROLE_HIERARCHY.get))
ROLE_LABELS = {
    ROLE_VIEWER: 'Viewer',
    ROLE_EDITOR: 'Editor',
    ROLE_ADMIN: 'Admin',
    ROLE_SUPER_ADMIN: 'Super Admin',
}

AUDIT_ACTIONS = (
    'login',
    'logout',
    'create',
    'update',
    'delete',
    'view',
    'export',
    'settings_change',
    'password_change',
    'role_change',
)

# Blog
POST_STATUS_DRAFT = 'draft'
POST_STATUS_SCHEDULED = 'scheduled'
POST_STATUS_PUBLISHED = 'published'
POST_STATUS_ARCHIVED = 'archived'
POST_STATUSES = (
    POST_STATUS_DRAFT,
    POST_STATUS_SCHEDULED,
    POST_STATUS_PUBLISHED,
    POST_STATUS_ARCHIVED,
)
MARKET_TRENDS = ('bullish', 'bearish', 'neutral', 'volatile')

# News review gate
NEWS_STATUS_PENDING = 'pending'
NEWS_STATUS_APPROVED = 'approved'
NEWS_STATUS_REJECTED = 'rejected'
NEWS_STATUS_POSTED = 'posted'
NEWS_STATUS_SKIPPED = 'skipped'
NEWS_STATUSES = (
    NEWS_STATUS_PENDING,
    NEWS_STATUS_APPROVED,
    NEWS_STATUS_REJECTED,
    NEWS_STATUS_POSTED,
    NEWS_STATUS_SKIPPED,
)
NEWS_SENTIMENTS = ('positive', 'negative', 'neutral', 'mixed')

JOB_STATUSES = ('running', 'success', 'failed', 'pending', 'idle')

SETTING_CATEGORIES = (
    'general',
    'seo',
    'contact',
    'social',
    'branding',
    'compliance',
    'analytics',
    'features',
)

NOTIFICATION_TYPES = ('info', 'success', 'warning', 'error')
NOTIFICATION_CATEGORIES = ('inquiry', 'security', 'system', 'update')


def normalize_choice(value, choices, default=None):
    candidate = (value or '').strip()
    if candidate in choices:
        return candidate
    lowered = candidate.lower()
    for choice in choices:
        if choice.lower() == lowered:
            return choice
    return default


def normalize_admin_role(value, default=ROLE_VIEWER):
    return normalize_choice(value, ADMIN_ROLES, default=default)


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    profile = db.relationship('AdminProfile', backref='user', uselist=False, lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class AdminProfile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_VIEWER, index=True)
    phone = db.Column(db.String(50))
    job_title = db.Column(db.String(120))
    department = db.Column(db.String(120))
    avatar_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    last_login_at = db.Column(db.DateTime)
    created_by = db.Column(db.Integer, db.ForeignKey('admin_profile.id'))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def role_key(self):
        return normalize_admin_role(self.role)

    @property
    def role_label(self):
        return ROLE_LABELS[self.role_key]

    @property
    def initials(self):
        parts = (self.full_name or '').split()
        return ''.join(part[0] for part in parts[:2]).upper() or '?'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role_key,
            'phone': self.phone,
            'job_title': self.job_title,
            'department': self.department,
            'avatar_url': self.avatar_url,
            'is_active': self.is_active,
            'last_login_at': self.last_login_at.isoformat() if self.last_login_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Inquiry(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, index=True)
    phone = db.Column(db.String(50), nullable=False)
    company_name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(40), nullable=False, index=True)
    product_type = db.Column(db.String(40), nullable=False, index=True)
    estimated_volume = db.Column(db.String(60), nullable=False)
    volume_unit = db.Column(db.String(20), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(30), nullable=False, default=INQUIRY_STATUS_PENDING, index=True)
    assigned_to = db.Column(db.Integer, db.ForeignKey('admin_profile.id'), index=True)
    notes = db.Column(db.Text)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(300))
    source = db.Column(db.String(60), default=INQUIRY_SOURCE_DEFAULT)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    assignee = db.relationship('AdminProfile', foreign_keys=[assigned_to], lazy=True)
    logs = db.relationship(
        'InquiryLog',
        backref='inquiry',
        lazy=True,
        order_by='InquiryLog.created_at.desc()',
    )

    __table_args__ = (
        db.Index('ix_inquiry_status_created', 'status', 'created_at'),
    )

    @property
    def status_label(self):
        return INQUIRY_STATUS_LABELS.get(self.status, self.status)

    @property
    def category_label(self):
        return INQUIRY_CATEGORY_LABELS.get(self.category, self.category)

    @property
    def product_label(self):
        return PRODUCT_TYPE_LABELS.get(self.product_type, self.product_type)

    @property
    def volume_display(self):
        return f'{self.estimated_volume} {self.volume_unit}'.strip()

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'company_name': self.company_name,
            'category': self.category,
            'product_type': self.product_type,
            'estimated_volume': self.estimated_volume,
            'volume_unit': self.volume_unit,
            'message': self.message,
            'status': self.status,
            'assigned_to': self.assigned_to,
            'notes': self.notes,
            'source': self.source,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class InquiryLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    inquiry_id = db.Column(db.Integer, db.ForeignKey('inquiry.id'), nullable=False, index=True)
    action = db.Column(db.String(30), nullable=False, index=True)
    old_status = db.Column(db.String(30))
    new_status = db.Column(db.String(30))
    notes = db.Column(db.Text)
    performed_by = db.Column(db.Integer, db.ForeignKey('admin_profile.id'), index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    performer = db.relationship('AdminProfile', foreign_keys=[performed_by], lazy=True)

    __table_args__ = (
        db.Index('ix_inquiry_log_inquiry_created', 'inquiry_id', 'created_at'),
    )


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(30), nullable=False, index=True)
    resource_type = db.Column(db.String(60), index=True)
    resource_id = db.Column(db.String(80), index=True)
    resource_name = db.Column(db.String(300))
    user_id = db.Column(db.Integer, db.ForeignKey('admin_profile.id'), index=True)
    user_email = db.Column(db.String(200))
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(300))
    old_data = db.Column(db.Text)
    new_data = db.Column(db.Text)
    metadata_json = db.Column(db.Text, nullable=False, default='{}')
    is_sensitive = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.DateTime, default=utc_now_naive, index=True)
    actor = db.relationship('AdminProfile', foreign_keys=[user_id], lazy=True)

    __table_args__ = (
        db.Index('ix_audit_log_action_timestamp', 'action', 'timestamp'),
        db.Index('ix_audit_log_resource_timestamp', 'resource_type', 'timestamp'),
    )

    @property
    def meta(self):
        try:
            value = json.loads(self.metadata_json or '{}')
        except (TypeError, ValueError):
            return {}
        return value if isinstance(value, dict) else {}


class BlogCategory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text)
    color = db.Column(db.String(20))
    icon = db.Column(db.String(60))
    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    auto_post_enabled = db.Column(db.Boolean, nullable=False, default=False)
    auto_post_min_relevance = db.Column(db.Float, default=0.7)
    auto_post_requires_review = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    posts = db.relationship('BlogPost', backref='category', lazy=True)


class BlogPost(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    slug = db.Column(db.String(300), unique=True, nullable=False)
    excerpt = db.Column(db.Text)
    content = db.Column(db.Text, nullable=False)
    featured_image = db.Column(db.String(500))
    featured_image_alt = db.Column(db.String(300))
    category_id = db.Column(db.Integer, db.ForeignKey('blog_category.id'), index=True)
    status = db.Column(db.String(20), nullable=False, default=POST_STATUS_DRAFT, index=True)
    published_at = db.Column(db.DateTime, index=True)
    scheduled_for = db.Column(db.DateTime, index=True)
    author_id = db.Column(db.Integer, db.ForeignKey('admin_profile.id'))
    author_name = db.Column(db.String(200))
    author_role = db.Column(db.String(120))
    meta_title = db.Column(db.String(300))
    meta_description = db.Column(db.String(500))
    canonical_url = db.Column(db.String(500))
    tags_json = db.Column(db.Text, nullable=False, default='[]')
    is_auto_generated = db.Column(db.Boolean, nullable=False, default=False)
    auto_source = db.Column(db.String(120))
    source_reference_id = db.Column(db.String(120))
    analysis_summary = db.Column(db.Text)
    market_outlook = db.Column(db.String(20))
    key_factors_json = db.Column(db.Text, nullable=False, default='[]')
    view_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def tags(self):
        return load_json_list(self.tags_json)

    @tags.setter
    def tags(self, values):
        self.tags_json = json.dumps(list(values or []), ensure_ascii=False)

    @property
    def key_factors(self):
        return load_json_list(self.key_factors_json)

    @key_factors.setter
    def key_factors(self, values):
        self.key_factors_json = json.dumps(list(values or []), ensure_ascii=False)


class NewsArticle(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(200), unique=True)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text)
    content = db.Column(db.Text)
    source_name = db.Column(db.String(200))
    source_url = db.Column(db.String(1000))
    image_url = db.Column(db.String(1000))
    published_at = db.Column(db.DateTime, index=True)
    fetched_at = db.Column(db.DateTime, default=utc_now_naive)
    category = db.Column(db.String(80))
    country = db.Column(db.String(80))
    language = db.Column(db.String(20))
    keywords = db.Column(db.Text)
    relevance_score = db.Column(db.Float, nullable=False, default=0.0, index=True)
    relevance_keywords = db.Column(db.Text)
    sentiment = db.Column(db.String(20))
    target_category_id = db.Column(db.Integer, db.ForeignKey('blog_category.id', ondelete='SET NULL'))
    auto_post_status = db.Column(db.String(20), nullable=False, default=NEWS_STATUS_PENDING, index=True)
    blog_post_id = db.Column(db.Integer, db.ForeignKey('blog_post.id', ondelete='SET NULL'))
    reviewed_by = db.Column(db.Integer, db.ForeignKey('admin_profile.id'))
    reviewed_at = db.Column(db.DateTime)
    review_notes = db.Column(db.Text)
    auto_posted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    target_category = db.relationship('BlogCategory', lazy=True)
    reviewer = db.relationship('AdminProfile', lazy=True)

    @property
    def relevance_band(self):
        score = self.relevance_score or 0.0
        if score >= 0.8:
            return 'high'
        if score >= 0.6:
            return 'medium'
        return 'low'


class ScheduledJob(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(120), unique=True, nullable=False)
    job_type = db.Column(db.String(60), nullable=False)
    description = db.Column(db.Text)
    interval_hours = db.Column(db.Integer)
    cron_expression = db.Column(db.String(120))
    timezone = db.Column(db.String(60), default='UTC')
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_run_at = db.Column(db.DateTime)
    last_run_status = db.Column(db.String(20), default='idle')
    last_run_message = db.Column(db.Text)
    last_run_duration_ms = db.Column(db.Integer)
    next_run_at = db.Column(db.DateTime)
    total_runs = db.Column(db.Integer, nullable=False, default=0)
    successful_runs = db.Column(db.Integer, nullable=False, default=0)
    failed_runs = db.Column(db.Integer, nullable=False, default=0)
    config_json = db.Column(db.Text, nullable=False, default='{}')
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def success_rate(self):
        if not self.total_runs:
            return 0.0
        return round((self.successful_runs or 0) / self.total_runs * 100, 1)


class ApiConfig(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    api_name = db.Column(db.String(120), unique=True, nullable=False)
    api_provider = db.Column(db.String(120), nullable=False)
    api_endpoint = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    rate_limit_per_minute = db.Column(db.Integer)
    rate_limit_per_hour = db.Column(db.Integer)
    rate_limit_per_day = db.Column(db.Integer)
    current_minute_calls = db.Column(db.Integer, nullable=False, default=0)
    current_hour_calls = db.Column(db.Integer, nullable=False, default=0)
    current_day_calls = db.Column(db.Integer, nullable=False, default=0)
    consecutive_failures = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text)
    last_fetch_at = db.Column(db.DateTime)
    next_fetch_at = db.Column(db.DateTime)
    fetch_interval_hours = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    @property
    def daily_usage_pct(self):
        if not self.rate_limit_per_day:
            return 0
        return min(100, int(round((self.current_day_calls or 0) / self.rate_limit_per_day * 100)))


class JobExecutionLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('scheduled_job.id'), index=True)
    job_name = db.Column(db.String(120), nullable=False)
    started_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    completed_at = db.Column(db.DateTime)
    status = db.Column(db.String(20), nullable=False, default='running')
    duration_ms = db.Column(db.Integer)
    error_message = db.Column(db.Text)
    triggered_by = db.Column(db.String(60), default='scheduler')
    articles_fetched = db.Column(db.Integer, default=0)
    articles_relevant = db.Column(db.Integer, default=0)
    posts_created = db.Column(db.Integer, default=0)
    posts_published = db.Column(db.Integer, default=0)
    job = db.relationship('ScheduledJob', backref=db.backref('execution_logs', lazy=True), lazy=True)


class OilPrice(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    price_date = db.Column(db.Date, unique=True, nullable=False, index=True)
    brent_price = db.Column(db.Float)
    brent_change = db.Column(db.Float)
    brent_change_percent = db.Column(db.Float)
    wti_price = db.Column(db.Float)
    wti_change = db.Column(db.Float)
    wti_change_percent = db.Column(db.Float)
    dubai_crude_price = db.Column(db.Float)
    dubai_crude_change = db.Column(db.Float)
    dubai_crude_change_percent = db.Column(db.Float)
    murban_price = db.Column(db.Float)
    murban_change = db.Column(db.Float)
    murban_change_percent = db.Column(db.Float)
    bonny_light_price = db.Column(db.Float)
    bonny_light_change = db.Column(db.Float)
    bonny_light_change_percent = db.Column(db.Float)
    natural_gas_price = db.Column(db.Float)
    natural_gas_change = db.Column(db.Float)
    natural_gas_change_percent = db.Column(db.Float)
    gasoline_price = db.Column(db.Float)
    diesel_price = db.Column(db.Float)
    jet_fuel_price = db.Column(db.Float)
    market_trend = db.Column(db.String(20))
    trend_factors = db.Column(db.Text)
    source = db.Column(db.String(120))
    fetched_at = db.Column(db.DateTime)
    auto_posted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    auto_posted_at = db.Column(db.DateTime)
    auto_post_id = db.Column(db.Integer, db.ForeignKey('blog_post.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    BENCHMARKS = (
        ('brent', 'Brent Crude'),
        ('wti', 'WTI Crude'),
        ('dubai_crude', 'Dubai Crude'),
        ('murban', 'Murban'),
        ('bonny_light', 'Bonny Light'),
        ('natural_gas', 'Natural Gas'),
    )

    def benchmark_rows(self):
        rows = []
        for key, label in self.BENCHMARKS:
            rows.append({
                'key': key,
                'label': label,
                'price': getattr(self, f'{key}_price'),
                'change': getattr(self, f'{key}_change'),
                'change_percent': getattr(self, f'{key}_change_percent'),
            })
        return rows

    @property
    def trend_factor_list(self):
        return load_json_list(self.trend_factors)

    def to_dict(self):
        payload = {
            'price_date': self.price_date.isoformat() if self.price_date else None,
            'market_trend': self.market_trend,
            'source': self.source,
            'gasoline_price': self.gasoline_price,
            'diesel_price': self.diesel_price,
            'jet_fuel_price': self.jet_fuel_price,
        }
        for row in self.benchmark_rows():
            payload[f"{row['key']}_price"] = row['price']
            payload[f"{row['key']}_change"] = row['change']
            payload[f"{row['key']}_change_percent"] = row['change_percent']
        return payload


class SiteSetting(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False, default='""')
    label = db.Column(db.String(200))
    description = db.Column(db.Text)
    category = db.Column(db.String(30), nullable=False, default='general', index=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_sensitive = db.Column(db.Boolean, nullable=False, default=False)
    updated_by = db.Column(db.Integer, db.ForeignKey('admin_profile.id'))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('admin_profile.id'), index=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), nullable=False, default='info')
    category = db.Column(db.String(20), nullable=False, default='system', index=True)
    read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    action_url = db.Column(db.String(500))
    metadata_json = db.Column(db.Text, nullable=False, default='{}')
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class AuthRateLimitBucket(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(80), nullable=False, index=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    reset_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('scope', 'ip', name='uq_auth_rate_limit_scope_ip'),
        db.Index('ix_auth_rate_limit_scope_reset_at', 'scope', 'reset_at'),
    )


def run_scheduled_publication_cycle(now=None):
    now = now or utc_now_naive()
    due_posts = BlogPost.query.filter(
        BlogPost.status == POST_STATUS_SCHEDULED,
        BlogPost.scheduled_for.isnot(None),
        BlogPost.scheduled_for <= now,
    ).all()
    for post in due_posts:
        post.status = POST_STATUS_PUBLISHED
        post.published_at = post.scheduled_for
        post.scheduled_for = None
        post.updated_at = now
    if due_posts:
        db.session.commit()
    return len(due_posts)
