from flask import current_app, has_request_context

from .auth import get_admin_profile
from .models import AUDIT_ACTIONS, db
from .repository import audit_logs
from .utils import get_request_ip, get_user_agent


def record_audit_event(
    action,
    resource_type=None,
    resource_id=None,
    resource_name=None,
    *,
    old_data=None,
    new_data=None,
    metadata=None,
    is_sensitive=False,
    actor=None,
):
    """Write one audit row for the current actor. Never raises into the caller."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f'Unknown audit action: {action}')
    actor = actor or (get_admin_profile() if has_request_context() else None)
    try:
        return audit_logs.create(
            action,
            resource_type,
            resource_id,
            resource_name,
            user_id=getattr(actor, 'id', None),
            user_email=getattr(actor, 'email', None),
            ip_address=get_request_ip() if has_request_context() else None,
            user_agent=get_user_agent() if has_request_context() else None,
            old_data=old_data,
            new_data=new_data,
            metadata=metadata,
            is_sensitive=is_sensitive,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to persist audit event (action=%s, resource=%s).', action, resource_type)
        return None
