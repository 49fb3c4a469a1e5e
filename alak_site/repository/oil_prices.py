from datetime import timedelta

from ..models import OilPrice, db
from ..utils import utc_now_naive


def get_latest():
    return OilPrice.query.order_by(OilPrice.price_date.desc()).first()


def get_history(days=30, today=None):
    """Snapshots from the last ``days`` calendar days, oldest first."""
    today = today or utc_now_naive().date()
    cutoff = today - timedelta(days=max(1, days) - 1)
    return OilPrice.query.filter(OilPrice.price_date >= cutoff).order_by(OilPrice.price_date.asc()).all()


def get_by_date(price_date):
    return OilPrice.query.filter_by(price_date=price_date).first()


def get_previous(before_date):
    return OilPrice.query.filter(OilPrice.price_date < before_date).order_by(OilPrice.price_date.desc()).first()


def get_latest_fetched_at():
    row = OilPrice.query.filter(OilPrice.fetched_at.isnot(None)).order_by(OilPrice.fetched_at.desc()).first()
    return row.fetched_at if row else None


def get_unposted(limit=5):
    return OilPrice.query.filter_by(auto_posted=False).order_by(OilPrice.price_date.desc()).limit(limit).all()


def unlink_blog_post(post_id, commit=False):
    updated = OilPrice.query.filter_by(auto_post_id=post_id).update(
        {OilPrice.auto_post_id: None}, synchronize_session=False
    )
    if commit:
        db.session.commit()
    return updated
