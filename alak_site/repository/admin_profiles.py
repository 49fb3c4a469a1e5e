from ..models import AdminProfile, db


def get_all(include_inactive=False):
    query = AdminProfile.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(AdminProfile.full_name).all()


def get_by_id(profile_id):
    return db.session.get(AdminProfile, profile_id)


def get_by_user_id(user_id):
    return AdminProfile.query.filter_by(user_id=user_id).first()


def update(profile, changes, commit=True):
    for field, value in changes.items():
        setattr(profile, field, value)
    if commit:
        db.session.commit()
    return profile
