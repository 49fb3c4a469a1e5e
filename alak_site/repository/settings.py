import json

from ..models import SiteSetting, db


def get_all():
    return SiteSetting.query.order_by(SiteSetting.category, SiteSetting.key).all()


def get_by_category(category):
    return SiteSetting.query.filter_by(category=category).order_by(SiteSetting.key).all()


def get_by_key(key):
    return SiteSetting.query.filter_by(key=key).first()


def get_public_settings():
    return SiteSetting.query.filter_by(is_public=True).order_by(SiteSetting.key).all()


def update(key, value, updated_by=None, commit=True):
    setting = get_by_key(key)
    if setting is None:
        return None
    setting.value = json.dumps(value, ensure_ascii=False)
    setting.updated_by = updated_by
    if commit:
        db.session.commit()
    return setting


def upsert(key, value, label=None, category='general', is_public=False, updated_by=None, commit=True):
    setting = get_by_key(key)
    if setting is None:
        setting = SiteSetting(key=key)
        db.session.add(setting)
    setting.value = json.dumps(value, ensure_ascii=False)
    setting.label = label or setting.label
    setting.category = category
    setting.is_public = bool(is_public)
    setting.updated_by = updated_by
    if commit:
        db.session.commit()
    return setting
