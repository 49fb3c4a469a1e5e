"""Signed, expiring password reset links.

The token carries the tail of the user's password hash, so it stops working
as soon as the password changes.
"""
import secrets

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer

from .models import User, db

RESET_SALT = 'admin-password-reset'
HASH_TAIL_LENGTH = 16


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=RESET_SALT)


def make_reset_token(user):
    return _serializer().dumps({'uid': user.id, 'pw': user.password_hash[-HASH_TAIL_LENGTH:]})


def load_reset_user(token):
    """The user a token was issued for, or None if it is invalid, expired or used."""
    max_age = current_app.config.get('PASSWORD_RESET_MAX_AGE_SECONDS', 3600)
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get('uid'), int):
        return None
    user = db.session.get(User, payload['uid'])
    if user is None:
        return None
    expected = user.password_hash[-HASH_TAIL_LENGTH:]
    if not secrets.compare_digest(str(payload.get('pw', '')).encode('utf-8'), expected.encode('utf-8')):
        return None
    return user
