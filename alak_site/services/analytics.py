from collections import Counter, OrderedDict
from datetime import timedelta

from ..models import (
    INQUIRY_CATEGORY_LABELS,
    INQUIRY_STATUSES,
    PRODUCT_TYPE_LABELS,
)
from ..utils import utc_now_naive


def count_by(items, attribute, default=None):
    counts = Counter()
    for item in items:
        value = getattr(item, attribute, None) or default
        if value:
            counts[value] += 1
    return OrderedDict(counts.most_common())


def status_counts(items):
    counts = OrderedDict((status, 0) for status in INQUIRY_STATUSES)
    for item in items:
        if item.status in counts:
            counts[item.status] += 1
    return counts


def conversion_rate(won, lost):
    closed = won + lost
    if not closed:
        return 0.0
    return won / closed * 100


def daily_trend(items, days=14, today=None):
    today = today or utc_now_naive().date()
    trend = OrderedDict()
    for offset in range(days - 1, -1, -1):
        trend[today - timedelta(days=offset)] = 0
    for item in items:
        if item.created_at is None:
            continue
        day = item.created_at.date()
        if day in trend:
            trend[day] += 1
    peak = max(trend.values()) if trend else 0
    return [
        {
            'date': day,
            'count': count,
            'pct': int(round(count / peak * 100)) if peak else 0,
        }
        for day, count in trend.items()
    ]


def performance_stats(items):
    counts = status_counts(items)
    won = counts['closed_won']
    lost = counts['closed_lost']
    return {
        'total': len(items),
        'pending': counts['pending'],
        'contacted': counts['contacted'],
        'qualified': counts['qualified'],
        'negotiating': counts['negotiating'],
        'closed_won': won,
        'closed_lost': lost,
        'conversion_rate': conversion_rate(won, lost),
    }


def funnel(stats):
    """Cumulative pipeline stages with their share of all inquiries."""
    total = stats['total']
    closed = stats['closed_won'] + stats['closed_lost']
    stages = [
        ('Total', total),
        ('Contacted', stats['contacted'] + stats['qualified'] + closed),
        ('Qualified', stats['qualified'] + closed),
        ('Closed', closed),
        ('Won', stats['closed_won']),
    ]
    return [
        {
            'stage': stage,
            'value': value,
            'pct': round(value / total * 100, 1) if total else 0.0,
        }
        for stage, value in stages
    ]


def inquiry_analytics(items, days=14, today=None):
    counts = status_counts(items)
    by_product = count_by(items, 'product_type')
    by_category = count_by(items, 'category')
    return {
        'total': len(items),
        'by_status': counts,
        'by_product': OrderedDict((PRODUCT_TYPE_LABELS.get(key, key), value) for key, value in by_product.items()),
        'by_category': OrderedDict((INQUIRY_CATEGORY_LABELS.get(key, key), value) for key, value in by_category.items()),
        'by_source': count_by(items, 'source', default='direct'),
        'daily_trend': daily_trend(items, days=days, today=today),
        'conversion_rate': conversion_rate(counts['closed_won'], counts['closed_lost']),
    }
