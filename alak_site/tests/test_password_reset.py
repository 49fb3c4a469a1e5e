import json

from alak_site.models import AuditLog, User
from alak_site.routes import admin as admin_routes

from .support import ADMIN_EMAIL, ADMIN_PASSWORD, build_test_app, create_admin, get_csrf, login

NEW_PASSWORD = "fresh-password-2026"


def capture_reset_mail(monkeypatch):
    sent = []

    def fake_send(user, reset_url):
        sent.append((user.email, reset_url))
        return True

    monkeypatch.setattr(admin_routes, "send_password_reset", fake_send)
    return sent


def request_reset(client, email):
    csrf_token = get_csrf(client, "/admin/forgot-password")
    return client.post(
        "/admin/forgot-password",
        data={"_csrf_token": csrf_token, "email": email},
        follow_redirects=True,
    )


def reset_path(url):
    return url.split("localhost", 1)[1]


def test_login_page_links_to_password_reset(client):
    assert "/admin/forgot-password" in client.get("/admin/login").get_data(as_text=True)


def test_unknown_and_inactive_emails_get_the_same_answer(app, client, monkeypatch):
    sent = capture_reset_mail(monkeypatch)
    create_admin(app, "former@alakoilandgas.com", "editor", is_active=False)

    for email in ("nobody@example.com", "former@alakoilandgas.com"):
        response = request_reset(client, email)
        assert response.status_code == 200
        assert "If that email belongs to an active admin, a reset link is on its way." in response.get_data(as_text=True)
    assert sent == []


def test_reset_link_changes_password_once(app, client, monkeypatch):
    sent = capture_reset_mail(monkeypatch)
    request_reset(client, ADMIN_EMAIL.upper())
    assert len(sent) == 1
    assert sent[0][0] == ADMIN_EMAIL
    path = reset_path(sent[0][1])
    assert path.startswith("/admin/reset-password/")

    assert client.get(path).status_code == 200
    csrf_token = get_csrf(client, path)
    mismatch = client.post(
        path,
        data={"_csrf_token": csrf_token, "new_password": NEW_PASSWORD, "confirm_password": "something-else"},
    )
    assert mismatch.status_code == 400
    assert "Passwords do not match." in mismatch.get_data(as_text=True)

    response = client.post(
        path,
        data={"_csrf_token": csrf_token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD},
    )
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/admin/login")

    with app.app_context():
        assert User.query.filter_by(email=ADMIN_EMAIL).one().check_password(NEW_PASSWORD)
        audit = AuditLog.query.filter_by(action="password_change").one()
        assert audit.is_sensitive is True
        assert json.loads(audit.metadata_json) == {"source": "reset_link"}

    reused = client.get(path, follow_redirects=True)
    assert "This reset link is invalid or has expired." in reused.get_data(as_text=True)

    assert login(client, ADMIN_EMAIL, ADMIN_PASSWORD).status_code == 200
    assert login(client, ADMIN_EMAIL, NEW_PASSWORD).headers["Location"].endswith("/admin/")


def test_tampered_or_expired_reset_token_is_rejected(app, client, monkeypatch):
    sent = capture_reset_mail(monkeypatch)
    request_reset(client, ADMIN_EMAIL)
    path = reset_path(sent[0][1])

    tampered = client.get(path[:-2] + ("aa" if not path.endswith("aa") else "bb"))
    assert tampered.status_code == 302
    assert tampered.headers["Location"].endswith("/admin/forgot-password")

    app.config["PASSWORD_RESET_MAX_AGE_SECONDS"] = -1
    expired = client.get(path)
    assert expired.status_code == 302
    assert expired.headers["Location"].endswith("/admin/forgot-password")


def test_reset_requests_are_rate_limited(tmp_path, monkeypatch):
    app = build_test_app(tmp_path, monkeypatch, overrides={"PASSWORD_RESET_LIMIT": 2})
    client = app.test_client()
    capture_reset_mail(monkeypatch)

    for _ in range(2):
        assert request_reset(client, "nobody@example.com").status_code == 200
    limited = request_reset(client, "nobody@example.com")
    assert limited.status_code == 429
    assert "Too many reset requests." in limited.get_data(as_text=True)
