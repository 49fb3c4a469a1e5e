import json

from sqlalchemy import or_

from ..models import Notification, NOTIFICATION_CATEGORIES, NOTIFICATION_TYPES, db


def visible_to(profile_id):
    """Notifications addressed to the profile plus system-wide ones."""
    return Notification.query.filter(
        or_(Notification.user_id == profile_id, Notification.user_id.is_(None)),
    )


def get_all(profile_id, category=None, read=None, limit=50, offset=0):
    query = visible_to(profile_id)
    if category:
        query = query.filter(Notification.category == category)
    if read is not None:
        query = query.filter(Notification.read.is_(bool(read)))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()


def get_unread_count(profile_id):
    return visible_to(profile_id).filter(Notification.read.is_(False)).count()


def get_for_profile(profile_id, notification_id):
    return visible_to(profile_id).filter(Notification.id == notification_id).first()


def mark_as_read(notification, commit=True):
    notification.read = True
    if commit:
        db.session.commit()
    return notification


def mark_all_as_read(profile_id, commit=True):
    updated = visible_to(profile_id).filter(Notification.read.is_(False)).update(
        {Notification.read: True},
        synchronize_session=False,
    )
    if commit:
        db.session.commit()
    return updated


def delete(notification, commit=True):
    db.session.delete(notification)
    if commit:
        db.session.commit()


def delete_all(profile_id, commit=True):
    removed = visible_to(profile_id).delete(synchronize_session=False)
    if commit:
        db.session.commit()
    return removed


def create(title, message, type='info', category='system', user_id=None, action_url=None, metadata=None, commit=True):
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f'Unknown notification type: {type}')
    if category not in NOTIFICATION_CATEGORIES:
        raise ValueError(f'Unknown notification category: {category}')
    notification = Notification(
        title=title[:200],
        message=message,
        type=type,
        category=category,
        user_id=user_id,
        action_url=action_url,
        metadata_json=json.dumps(metadata if isinstance(metadata, dict) else {}, ensure_ascii=False),
    )
    db.session.add(notification)
    if commit:
        db.session.commit()
    return notification
