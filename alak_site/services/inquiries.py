"""Inquiry intake and the status / assignment / note workflow.

Any of the six pipeline statuses can follow any other. Each effective status
change and each note append writes exactly one InquiryLog row in the same
transaction as the inquiry update.
"""
from flask import current_app, url_for

from ..models import (
    INQUIRY_LOG_ASSIGNED,
    INQUIRY_LOG_NOTE_ADDED,
    INQUIRY_LOG_STATUS_CHANGE,
    INQUIRY_SOURCE_DEFAULT,
    INQUIRY_STATUS_LABELS,
    INQUIRY_STATUS_PENDING,
    INQUIRY_STATUSES,
    db,
)
from ..notifications import send_inquiry_acknowledgement, send_inquiry_notification
from ..repository import inquiries, inquiry_logs, notifications
from ..utils import clean_text, utc_now_naive

NOTE_MAX_LENGTH = 4000


def submit_inquiry(cleaned, ip_address=None, user_agent=None, source=None):
    """Persist a validated contact submission as a pending inquiry."""
    data = dict(cleaned)
    data.update(
        status=INQUIRY_STATUS_PENDING,
        ip_address=ip_address,
        user_agent=user_agent,
        source=clean_text(source, 60) or INQUIRY_SOURCE_DEFAULT,
    )
    inquiry = inquiries.create(data)
    current_app.logger.info('Inquiry saved (id=%s, category=%s, product=%s)', inquiry.id, inquiry.category, inquiry.product_type)

    try:
        notifications.create(
            title='New inquiry received',
            message=f'{inquiry.full_name} ({inquiry.company_name}) sent a {inquiry.category_label} inquiry for {inquiry.product_label}.',
            type='info',
            category='inquiry',
            action_url=url_for('admin.inquiry_view', id=inquiry.id),
            metadata={'inquiry_id': inquiry.id},
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to create inquiry notification (id=%s).', inquiry.id)

    sent = send_inquiry_notification(inquiry)
    current_app.logger.info('Inquiry email notification result: %s', sent)
    send_inquiry_acknowledgement(inquiry)
    return inquiry


def change_status(inquiry, new_status, actor=None, note=None):
    """Move ``inquiry`` to ``new_status``. Returns False when nothing changed."""
    if new_status not in INQUIRY_STATUSES:
        raise ValueError(f'Unknown inquiry status: {new_status}')
    old_status = inquiry.status
    if new_status == old_status:
        return False

    inquiries.update_status(inquiry, new_status, commit=False)
    inquiry_logs.create(
        inquiry.id,
        INQUIRY_LOG_STATUS_CHANGE,
        old_status=old_status,
        new_status=new_status,
        notes=clean_text(note, NOTE_MAX_LENGTH) or None,
        performed_by=getattr(actor, 'id', None),
        commit=False,
    )
    db.session.commit()
    return True


def assign(inquiry, assignee, actor=None):
    """Set or clear ``assigned_to``. Returns False when the assignee is unchanged."""
    new_id = getattr(assignee, 'id', None)
    if inquiry.assigned_to == new_id:
        return False

    inquiries.update(inquiry, {'assigned_to': new_id}, commit=False)
    inquiry_logs.create(
        inquiry.id,
        INQUIRY_LOG_ASSIGNED,
        notes=f'Assigned to {assignee.full_name}' if assignee else 'Unassigned',
        performed_by=getattr(actor, 'id', None),
        commit=False,
    )
    db.session.commit()
    return True


def format_note(note, now=None):
    now = now or utc_now_naive()
    return f"[{now.strftime('%Y-%m-%d %H:%M')} UTC]\n{note}"


def add_note(inquiry, note, actor=None, now=None):
    text = clean_text(note, NOTE_MAX_LENGTH)
    if not text:
        raise ValueError('Note cannot be empty.')
    entry = format_note(text, now=now)
    combined = f'{inquiry.notes}\n\n{entry}' if inquiry.notes else entry

    inquiries.update(inquiry, {'notes': combined}, commit=False)
    inquiry_logs.create(
        inquiry.id,
        INQUIRY_LOG_NOTE_ADDED,
        notes=text,
        performed_by=getattr(actor, 'id', None),
        commit=False,
    )
    db.session.commit()
    return entry


def delete_inquiry(inquiry):
    snapshot = {
        'id': inquiry.id,
        'full_name': inquiry.full_name,
        'company_name': inquiry.company_name,
        'status': inquiry.status,
    }
    inquiries.delete(inquiry)
    return snapshot


def status_options():
    return [(status, INQUIRY_STATUS_LABELS[status]) for status in INQUIRY_STATUSES]
