"""Shared helpers used across route and service modules."""
import ipaddress
import json
import re
from datetime import date, datetime, time, timedelta, timezone

from flask import request

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]


def optional_text(value, max_length=255):
    """Trimmed text, or None when nothing is left."""
    cleaned = clean_text(value if isinstance(value, str) else None, max_length)
    return cleaned or None


def escape_like(value):
    """Escape SQL LIKE wildcard characters."""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def parse_int(value, default=0, min_value=None, max_value=None):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if min_value is not None and parsed < min_value:
        return min_value
    if max_value is not None and parsed > max_value:
        return max_value
    return parsed


def parse_positive_int(value):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed


def parse_date(value):
    raw = (value or '').strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def date_range_bounds(date_from, date_to):
    """Inclusive calendar dates to naive datetime bounds (end is exclusive)."""
    start = datetime.combine(date_from, time.min) if date_from else None
    end = datetime.combine(date_to, time.min) + timedelta(days=1) if date_to else None
    return start, end


def split_list(value, max_items=20, max_length=80):
    """Split comma or newline separated input into an ordered, de-duplicated list."""
    items = []
    seen = set()
    for raw in re.split(r'[,\n]', value or ''):
        item = raw.strip()[:max_length]
        if item and item.lower() not in seen:
            items.append(item)
            seen.add(item.lower())
        if len(items) >= max_items:
            break
    return items


def load_json_list(raw_value):
    if not raw_value:
        return []
    try:
        parsed = json.loads(raw_value)
    except (TypeError, ValueError):
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def normalized_ip(value):
    candidate = (value or '').split(',', 1)[0].strip()
    if not candidate:
        return ''
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ''


def get_request_ip():
    # request.remote_addr is proxy-aware when ProxyFix is enabled by app config.
    remote_ip = normalized_ip(request.remote_addr)
    return remote_ip or 'unknown'


def get_user_agent(max_length=300):
    return clean_text(request.headers.get('User-Agent', ''), max_length)


def humanize_key(value):
    return ' '.join(part.capitalize() for part in (value or '').replace('-', '_').split('_') if part)
