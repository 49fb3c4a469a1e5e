"""Resolve the logged-in user to an admin profile and gate views by role."""
from functools import wraps

from flask import abort, current_app, g, jsonify
from flask_login import current_user

from .models import AdminProfile, ROLE_HIERARCHY, normalize_admin_role


def get_admin_profile():
    """Active AdminProfile for the current user, or None."""
    if not current_user or not current_user.is_authenticated:
        return None
    cached = getattr(g, '_admin_profile', None)
    if cached is not None and cached.user_id == current_user.id:
        return cached
    profile = AdminProfile.query.filter_by(user_id=current_user.id, is_active=True).first()
    g._admin_profile = profile
    return profile


def role_rank(role):
    return ROLE_HIERARCHY.get(normalize_admin_role(role, default=''), 0)


def has_min_role(profile, min_role):
    if profile is None or not profile.is_active:
        return False
    return role_rank(profile.role) >= ROLE_HIERARCHY[min_role]


def can_assign_role(profile, target_role):
    """Only super admins hand out roles, and never above their own rank."""
    if not has_min_role(profile, 'super_admin'):
        return False
    return role_rank(target_role) > 0 and role_rank(target_role) <= role_rank(profile.role)


def role_required(min_role):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return current_app.login_manager.unauthorized()
            profile = get_admin_profile()
            if not has_min_role(profile, min_role):
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


def api_profile_required(min_role='viewer'):
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Unauthorized'}), 401
            profile = get_admin_profile()
            if profile is None:
                return jsonify({'error': 'Profile not found'}), 404
            if not has_min_role(profile, min_role):
                return jsonify({'error': 'Forbidden'}), 403
            return view(*args, **kwargs)
        return wrapped
    return decorator
