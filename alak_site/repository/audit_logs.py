import json

from ..models import AuditLog, db
from ..utils import date_range_bounds


def filtered_query(action=None, resource_type=None, user_id=None, date_from=None, date_to=None):
    query = AuditLog.query
    if action:
        query = query.filter(AuditLog.action == action)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    start, end = date_range_bounds(date_from, date_to)
    if start:
        query = query.filter(AuditLog.timestamp >= start)
    if end:
        query = query.filter(AuditLog.timestamp < end)
    return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())


def get_all(action=None, resource_type=None, user_id=None, date_from=None, date_to=None, limit=50, offset=0):
    query = filtered_query(action, resource_type, user_id, date_from, date_to)
    count = query.order_by(None).count()
    rows = query.offset(max(0, offset)).limit(max(1, limit)).all()
    return rows, count


def paginate(page=1, per_page=20, **filters):
    return filtered_query(**filters).paginate(page=page, per_page=per_page, error_out=False)


def get_resource_types():
    rows = db.session.query(AuditLog.resource_type).filter(
        AuditLog.resource_type.isnot(None),
    ).distinct().order_by(AuditLog.resource_type).all()
    return [row[0] for row in rows]


def create(
    action,
    resource_type=None,
    resource_id=None,
    resource_name=None,
    *,
    user_id=None,
    user_email=None,
    ip_address=None,
    user_agent=None,
    old_data=None,
    new_data=None,
    metadata=None,
    is_sensitive=False,
    commit=True,
):
    entry = AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        resource_name=(resource_name or '')[:300] or None,
        user_id=user_id,
        user_email=user_email,
        ip_address=ip_address,
        user_agent=user_agent,
        old_data=json.dumps(old_data, ensure_ascii=False, default=str) if old_data is not None else None,
        new_data=json.dumps(new_data, ensure_ascii=False, default=str) if new_data is not None else None,
        metadata_json=json.dumps(metadata if isinstance(metadata, dict) else {}, ensure_ascii=False, default=str),
        is_sensitive=bool(is_sensitive),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry
