from ..models import InquiryLog, INQUIRY_LOG_ACTIONS, db


def get_by_inquiry_id(inquiry_id):
    return InquiryLog.query.filter_by(inquiry_id=inquiry_id).order_by(
        InquiryLog.created_at.desc(),
        InquiryLog.id.desc(),
    ).all()


def create(inquiry_id, action, old_status=None, new_status=None, notes=None, performed_by=None, commit=True):
    if action not in INQUIRY_LOG_ACTIONS:
        raise ValueError(f'Unknown inquiry log action: {action}')
    entry = InquiryLog(
        inquiry_id=inquiry_id,
        action=action,
        old_status=old_status,
        new_status=new_status,
        notes=notes,
        performed_by=performed_by,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry
