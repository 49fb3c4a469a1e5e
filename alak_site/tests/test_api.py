import io
import json

from PIL import Image

from alak_site.models import AuditLog, OilPrice, User, db
from alak_site.uploads import format_size, stored_upload_path, upload_url

from .support import ADMIN_EMAIL, admin_login, build_test_app, create_admin, create_inquiry, login


def png_bytes(size=(8, 8)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(200, 120, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_profile_requires_authentication(client):
    response = client.get("/api/profile")
    assert response.status_code == 401
    assert response.get_json() == {"error": "Unauthorized"}


def test_profile_get_and_patch(app, client):
    csrf_token = admin_login(client)
    headers = {"X-CSRF-Token": csrf_token}

    payload = client.get("/api/profile").get_json()
    assert payload["profile"]["email"] == ADMIN_EMAIL
    assert payload["profile"]["role"] == "super_admin"

    missing = client.patch("/api/profile", json={"phone": "+2348000000000"}, headers=headers)
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "Full name is required"}

    response = client.patch(
        "/api/profile",
        json={"full_name": "  Ngozi Adeyemi ", "department": "Trading", "role": "viewer"},
        headers=headers,
    )
    assert response.status_code == 200
    profile = response.get_json()["profile"]
    assert profile["full_name"] == "Ngozi Adeyemi"
    assert profile["department"] == "Trading"
    assert profile["role"] == "super_admin"

    with app.app_context():
        audit = AuditLog.query.filter_by(action="update", resource_type="admin_profile").one()
        assert json.loads(audit.metadata_json) == {"source": "profile_settings"}
        assert json.loads(audit.new_data)["full_name"] == "Ngozi Adeyemi"


def test_profile_patch_requires_csrf_header(client):
    admin_login(client)
    response = client.patch("/api/profile", json={"full_name": "No Token"})
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_profile_missing_returns_404(app, client):
    with app.app_context():
        user = User(email="orphan@alakoilandgas.com")
        user.set_password("password1234")
        db.session.add(user)
        db.session.commit()
        user_id = user.id
    # Users without a profile cannot sign in to the admin, so log them in directly.
    with client.session_transaction() as session:
        session["_user_id"] = str(user_id)
        session["_fresh"] = True
    response = client.get("/api/profile")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Profile not found"}


def test_avatar_upload_and_delete(app, client):
    csrf_token = admin_login(client)
    headers = {"X-CSRF-Token": csrf_token}

    response = client.post(
        "/api/profile/avatar",
        data={"file": (io.BytesIO(png_bytes()), "me.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    avatar_url = response.get_json()["avatar_url"]
    assert avatar_url.startswith("/admin/uploads/avatars/")

    served = client.get(avatar_url)
    assert served.status_code == 200
    assert served.mimetype == "image/png"

    removed = client.delete("/api/profile/avatar", headers=headers)
    assert removed.status_code == 200
    assert removed.get_json() == {"avatar_url": None}
    assert client.get(avatar_url).status_code == 404


def test_avatar_rejects_bad_type_and_size(tmp_path, monkeypatch):
    app = build_test_app(tmp_path, monkeypatch, {"AVATAR_MAX_BYTES": 16})
    client = app.test_client()
    headers = {"X-CSRF-Token": admin_login(client)}

    wrong_type = client.post(
        "/api/profile/avatar",
        data={"file": (io.BytesIO(b"%PDF-1.4 not an image"), "cv.pdf", "application/pdf")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert wrong_type.status_code == 400
    assert wrong_type.get_json()["error"].startswith("Invalid file type")

    too_large = client.post(
        "/api/profile/avatar",
        data={"file": (io.BytesIO(png_bytes((64, 64))), "big.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert too_large.status_code == 400
    assert too_large.get_json()["error"] == "File too large. Maximum size is 16 bytes."

    fake = client.post(
        "/api/profile/avatar",
        data={"file": (io.BytesIO(b"not really a png"), "fake.png", "image/png")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert fake.status_code == 400

    missing = client.post("/api/profile/avatar", data={}, headers=headers)
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "No file provided."}


def test_contact_listing_requires_admin(app, client):
    create_inquiry(app)
    assert client.get("/api/contact").status_code == 401

    create_admin(app, "editor@alakoilandgas.com", "editor")
    login(client, "editor@alakoilandgas.com", "password1234")
    forbidden = client.get("/api/contact")
    assert forbidden.status_code == 403
    assert forbidden.get_json() == {"error": "Forbidden"}

    admin_client = app.test_client()
    admin_login(admin_client)
    payload = admin_client.get("/api/contact").get_json()
    assert payload["total"] == 1
    assert payload["inquiries"][0]["email"] == "chidi@example.com"


def test_latest_oil_price(app, client):
    response = client.get("/api/oil-prices/latest")
    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "public, max-age=300"
    payload = response.get_json()
    assert payload["bonny_light_price"] == 83.9
    assert payload["market_trend"] == "neutral"


def test_latest_oil_price_missing(tmp_path, monkeypatch):
    app = build_test_app(tmp_path, monkeypatch, {"SEED_SAMPLE_PRICES": False})
    with app.app_context():
        assert OilPrice.query.count() == 0
    response = app.test_client().get("/api/oil-prices/latest")
    assert response.status_code == 404
    assert response.get_json() == {"error": "No price data available"}


def test_upload_url_helpers(app):
    with app.test_request_context("/"):
        url = upload_url("avatars/abc.png")
        assert url == "/admin/uploads/avatars/abc.png"
        assert stored_upload_path(url) == "avatars/abc.png"
        assert stored_upload_path("https://cdn.example.com/abc.png") is None
        assert stored_upload_path(None) is None

    assert format_size(5 * 1024 * 1024) == "5MB"
    assert format_size(512 * 1024) == "512KB"
    assert format_size(16) == "16 bytes"
