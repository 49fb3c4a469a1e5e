import re
import uuid

from sqlalchemy import event

from alak_site import create_app
from alak_site.models import AdminProfile, AuthRateLimitBucket, Inquiry, User, db

CSRF_TOKEN_RE = re.compile(r'name="_csrf_token" value="([^"]+)"')
ADMIN_EMAIL = "admin@alakoilandgas.com"
ADMIN_PASSWORD = "admin123"

VALID_INQUIRY_FORM = {
    "full_name": "Ada Okafor",
    "email": "ada@example.com",
    "phone": "+2348012345678",
    "company_name": "Okafor Energy Ltd",
    "category": "verified-buyer",
    "product_type": "ago",
    "estimated_volume": "50000",
    "volume_unit": "Liters",
    "message": "We need monthly AGO deliveries to our Lagos depot.",
    "agree_to_terms": "y",
}

VALID_INQUIRY_JSON = {
    "fullName": "Tunde Bello",
    "email": "tunde@example.com",
    "phone": "+2348098765432",
    "companyName": "Bello Refining",
    "category": "verified-seller",
    "productType": "crude-oil",
    "estimatedVolume": "1000000",
    "volumeUnit": "BBLs",
    "message": "We have Bonny Light cargoes available for Q3 lifting.",
    "agreeToTerms": True,
}


def extract_csrf_token(html):
    match = CSRF_TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"site_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    monkeypatch.setenv("ADMIN_PASSWORD", ADMIN_PASSWORD)

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "UPLOAD_FOLDER": str(upload_path),
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "LOG_JSON": False,
        "INQUIRY_NOTIFICATION_EMAILS": "",
        "SMTP_HOST": "",
        "MAILGUN_API_KEY": "",
    }
    if overrides:
        config.update(overrides)

    app = create_app(config)
    with app.app_context():
        AuthRateLimitBucket.query.delete()
        db.session.commit()
    return app


def get_csrf(client, path="/admin/login"):
    token = extract_csrf_token(client.get(path).get_data(as_text=True))
    assert token
    return token


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    csrf_token = get_csrf(client, "/admin/login")
    return client.post(
        "/admin/login",
        data={
            "_csrf_token": csrf_token,
            "email": email,
            "password": password,
        },
        follow_redirects=False,
    )


def admin_login(client):
    response = login(client)
    assert response.status_code in (302, 303)
    return get_csrf(client, "/admin/")


def create_admin(app, email, role, password="password1234", is_active=True):
    with app.app_context():
        user = User(email=email)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        profile = AdminProfile(
            user_id=user.id,
            email=email,
            full_name=email.split("@")[0].title(),
            role=role,
            is_active=is_active,
        )
        db.session.add(profile)
        db.session.commit()
        return profile.id


def create_inquiry(app, **overrides):
    data = {
        "full_name": "Chidi Eze",
        "email": "chidi@example.com",
        "phone": "+2348011112222",
        "company_name": "Eze Logistics",
        "category": "verified-buyer",
        "product_type": "pms",
        "estimated_volume": "33000",
        "volume_unit": "Liters",
        "message": "Looking for PMS supply to Abuja.",
    }
    data.update(overrides)
    with app.app_context():
        inquiry = Inquiry(**data)
        db.session.add(inquiry)
        db.session.commit()
        return inquiry.id


def enforce_sqlite_foreign_keys(app):
    """Turn on SQLite foreign key checks so deletes behave as they do on PostgreSQL."""
    with app.app_context():
        engine = db.engine

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        engine.dispose()
