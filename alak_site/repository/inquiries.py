from sqlalchemy import func, or_

from ..models import Inquiry, InquiryLog, INQUIRY_STATUSES, db
from ..utils import date_range_bounds, escape_like

EDITABLE_FIELDS = (
    'full_name',
    'email',
    'phone',
    'company_name',
    'category',
    'product_type',
    'estimated_volume',
    'volume_unit',
    'message',
    'status',
    'assigned_to',
    'notes',
    'source',
)


def _newest_first(query):
    return query.order_by(Inquiry.created_at.desc(), Inquiry.id.desc())


def create(data, commit=True):
    inquiry = Inquiry(**data)
    db.session.add(inquiry)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return inquiry


def get_all():
    return _newest_first(Inquiry.query).all()


def get_by_id(inquiry_id):
    return db.session.get(Inquiry, inquiry_id)


def update(inquiry, changes, commit=True):
    for field, value in changes.items():
        if field not in EDITABLE_FIELDS:
            raise KeyError(f'Inquiry field is not editable: {field}')
        setattr(inquiry, field, value)
    if commit:
        db.session.commit()
    return inquiry


def update_status(inquiry, status, commit=True):
    return update(inquiry, {'status': status}, commit=commit)


def delete(inquiry, commit=True):
    InquiryLog.query.filter_by(inquiry_id=inquiry.id).delete(synchronize_session=False)
    db.session.delete(inquiry)
    if commit:
        db.session.commit()


def get_by_status(status):
    return _newest_first(Inquiry.query.filter_by(status=status)).all()


def get_by_category(category):
    return _newest_first(Inquiry.query.filter_by(category=category)).all()


def get_by_date_range(date_from=None, date_to=None):
    return _newest_first(filtered_query(date_from=date_from, date_to=date_to)).all()


def filtered_query(status=None, search=None, product_type=None, category=None, date_from=None, date_to=None):
    query = Inquiry.query
    if status:
        query = query.filter(Inquiry.status == status)
    if product_type:
        query = query.filter(Inquiry.product_type == product_type)
    if category:
        query = query.filter(Inquiry.category == category)
    start, end = date_range_bounds(date_from, date_to)
    if start:
        query = query.filter(Inquiry.created_at >= start)
    if end:
        query = query.filter(Inquiry.created_at < end)
    if search:
        pattern = f'%{escape_like(search.lower())}%'
        query = query.filter(
            or_(
                func.lower(Inquiry.full_name).like(pattern, escape='\\'),
                func.lower(Inquiry.email).like(pattern, escape='\\'),
                func.lower(Inquiry.company_name).like(pattern, escape='\\'),
                func.lower(Inquiry.phone).like(pattern, escape='\\'),
            )
        )
    return query


def search(status=None, text=None):
    return _newest_first(filtered_query(status=status, search=text)).all()


def paginate(page=1, per_page=15, status=None, search=None):
    query = _newest_first(filtered_query(status=status, search=search))
    return query.paginate(page=page, per_page=per_page, error_out=False)


def get_stats():
    rows = db.session.query(Inquiry.status, func.count(Inquiry.id)).group_by(Inquiry.status).all()
    counts = {status: 0 for status in INQUIRY_STATUSES}
    for status, count in rows:
        counts[status] = count
    counts['total'] = sum(count for _, count in rows)
    return counts


def get_recent(limit=5):
    return _newest_first(Inquiry.query).limit(limit).all()


def get_adjacent_ids(inquiry):
    """Return (previous_id, next_id) in list order: previous is newer, next is older."""
    newer = Inquiry.query.filter(
        or_(
            Inquiry.created_at > inquiry.created_at,
            (Inquiry.created_at == inquiry.created_at) & (Inquiry.id > inquiry.id),
        )
    ).order_by(Inquiry.created_at.asc(), Inquiry.id.asc()).first()
    older = Inquiry.query.filter(
        or_(
            Inquiry.created_at < inquiry.created_at,
            (Inquiry.created_at == inquiry.created_at) & (Inquiry.id < inquiry.id),
        )
    ).order_by(Inquiry.created_at.desc(), Inquiry.id.desc()).first()
    return (newer.id if newer else None), (older.id if older else None)


def get_filtered(**filters):
    return _newest_first(filtered_query(**filters)).all()
