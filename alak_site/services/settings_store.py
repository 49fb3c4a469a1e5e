"""Flat string view over SiteSetting rows plus diff-based saving.

Values are stored as JSON. Reads collapse them to strings; writes upsert only
the keys whose submitted value differs from the snapshot the editor loaded.
"""
import json

from ..repository import settings as settings_repo
from ..utils import clean_text, humanize_key

CATEGORY_PREFIXES = (
    (('site_', 'seo_'), 'seo'),
    (('company_', 'head_office_', 'commercial_office_'), 'contact'),
    (('social_', 'show_social_'), 'social'),
    (('brand_', 'logo_'), 'branding'),
    (('rc_', 'tin_', 'show_compliance_', 'show_rc_', 'show_tin_'), 'compliance'),
    (('smtp_', 'email_', 'security_', 'notification_'), 'features'),
    (('analytics_',), 'analytics'),
)

SETTING_VALUE_MAX_LENGTH = 2000

PUBLIC_KEYS = frozenset({
    'company_name',
    'company_tagline',
    'company_description',
    'company_email',
    'company_founded_year',
    'rc_number',
    'tin_number',
    'head_office_city',
    'head_office_address',
    'head_office_phone',
    'commercial_office_city',
    'commercial_office_address',
    'commercial_office_email',
    'social_facebook',
    'social_twitter',
    'social_linkedin',
    'social_instagram',
    'show_social_links',
    'show_compliance_bar',
    'show_rc_number',
    'show_tin_number',
})


def value_to_string(raw_value):
    """Collapse a stored JSON value into the string shown in forms."""
    try:
        value = json.loads(raw_value) if isinstance(raw_value, str) else raw_value
    except ValueError:
        return raw_value
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def load_settings_map(public_only=False):
    rows = settings_repo.get_public_settings() if public_only else settings_repo.get_all()
    return {row.key: value_to_string(row.value) for row in rows}


def category_for_key(key):
    for prefixes, category in CATEGORY_PREFIXES:
        if key.startswith(prefixes):
            return category
    return 'general'


def is_public_key(key):
    return key in PUBLIC_KEYS


def changed_settings(submitted, snapshot):
    """Keys from ``submitted`` whose value differs from ``snapshot``, in submission order.

    Values are compared exactly as submitted, so a value the editor left
    untouched never counts as a change even if cleaning would alter it.
    """
    changes = {}
    for key, value in submitted.items():
        text = '' if value is None else str(value)
        if snapshot.get(key) != text:
            changes[key] = clean_text(text, SETTING_VALUE_MAX_LENGTH)
    return changes


def save_settings(submitted, snapshot, updated_by=None):
    """Upsert changed keys one by one. Returns the mapping that was written.

    ``snapshot`` is the map the editor loaded, not the current table, so keys
    another editor saved in the meantime are left alone unless edited here.
    """
    changes = changed_settings(submitted, snapshot)
    for key, value in changes.items():
        settings_repo.upsert(
            key,
            value,
            label=humanize_key(key),
            category=category_for_key(key),
            is_public=is_public_key(key),
            updated_by=updated_by,
        )
    return changes


def is_feature_enabled(settings, key, default=True):
    value = settings.get(key)
    if value is None or value == '':
        return default
    return str(value).strip().lower() in {'true', '1'}
