import re
from datetime import timedelta

from alak_site.models import AuditLog, Inquiry, InquiryLog, Notification, db
from alak_site.services import inquiries as inquiry_service
from alak_site.utils import utc_now_naive

from .support import (
    VALID_INQUIRY_FORM,
    VALID_INQUIRY_JSON,
    admin_login,
    build_test_app,
    create_admin,
    create_inquiry,
    get_csrf,
    login,
)


def submit_contact_form(client, **overrides):
    csrf_token = get_csrf(client, "/contact")
    data = dict(VALID_INQUIRY_FORM, _csrf_token=csrf_token)
    data.update(overrides)
    return client.post("/contact", data=data, follow_redirects=False)


def test_contact_form_creates_one_pending_inquiry(app, client):
    response = submit_contact_form(client)
    assert response.status_code in (302, 303)
    assert response.headers["Location"].endswith("/contact")

    with app.app_context():
        rows = Inquiry.query.all()
        assert len(rows) == 1
        inquiry = rows[0]
        assert inquiry.status == "pending"
        assert inquiry.email == "ada@example.com"
        assert inquiry.product_type == "ago"
        assert inquiry.source == "website"
        assert inquiry.ip_address == "127.0.0.1"
        assert Notification.query.filter_by(category="inquiry").count() == 1

    followed = client.get("/contact")
    assert "Thank you! Your inquiry has been received" in followed.get_data(as_text=True)


def test_contact_form_requires_terms_and_valid_fields(app, client):
    data = dict(VALID_INQUIRY_FORM)
    data.pop("agree_to_terms")
    csrf_token = get_csrf(client, "/contact")
    response = client.post("/contact", data=dict(data, _csrf_token=csrf_token))
    assert response.status_code == 400
    assert "You must agree to the terms and conditions." in response.get_data(as_text=True)

    response = submit_contact_form(client, email="not-an-email", message="short")
    assert response.status_code == 400
    html = response.get_data(as_text=True)
    assert "Invalid email address." in html
    assert "Message must be at least 10 characters." in html

    with app.app_context():
        assert Inquiry.query.count() == 0


def test_contact_api_creates_inquiry(app, client):
    response = client.post("/api/contact", json=VALID_INQUIRY_JSON)
    assert response.status_code == 201
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["message"] == "Inquiry submitted successfully"

    with app.app_context():
        inquiry = db.session.get(Inquiry, payload["inquiryId"])
        assert inquiry.status == "pending"
        assert inquiry.company_name == "Bello Refining"
        assert inquiry.volume_unit == "BBLs"
        assert Inquiry.query.count() == 1


def test_contact_api_validation_errors(app, client):
    response = client.post("/api/contact", json=dict(VALID_INQUIRY_JSON, agreeToTerms=False, phone="123"))
    assert response.status_code == 400
    payload = response.get_json()
    assert payload["error"] == "Validation failed"
    assert "agree_to_terms" in payload["details"]
    assert payload["details"]["phone"] == "Please enter a valid phone number."

    response = client.post("/api/contact", json=dict(VALID_INQUIRY_JSON, productType="kerosene"))
    assert response.status_code == 400
    assert "product_type" in response.get_json()["details"]

    response = client.post("/api/contact", data="not json", content_type="text/plain")
    assert response.status_code == 400

    with app.app_context():
        assert Inquiry.query.count() == 0


def test_contact_submissions_are_rate_limited(tmp_path, monkeypatch):
    app = build_test_app(tmp_path, monkeypatch, {"CONTACT_FORM_LIMIT": 2})
    client = app.test_client()

    assert client.post("/api/contact", json=VALID_INQUIRY_JSON).status_code == 201
    assert client.post("/api/contact", json=VALID_INQUIRY_JSON).status_code == 201
    limited = client.post("/api/contact", json=VALID_INQUIRY_JSON)
    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) > 0

    response = submit_contact_form(client)
    assert response.status_code in (302, 303)
    with app.app_context():
        assert Inquiry.query.count() == 2


def test_status_change_writes_one_log_and_audit(app, client):
    inquiry_id = create_inquiry(app)
    csrf_token = admin_login(client)

    response = client.post(
        f"/admin/inquiries/{inquiry_id}/status",
        data={"_csrf_token": csrf_token, "status": "contacted", "note": "Called the buyer"},
    )
    assert response.status_code in (302, 303)

    with app.app_context():
        inquiry = db.session.get(Inquiry, inquiry_id)
        assert inquiry.status == "contacted"
        logs = InquiryLog.query.filter_by(inquiry_id=inquiry_id).all()
        assert len(logs) == 1
        assert logs[0].action == "status_change"
        assert (logs[0].old_status, logs[0].new_status) == ("pending", "contacted")
        assert logs[0].notes == "Called the buyer"
        assert logs[0].performed_by is not None
        audit = AuditLog.query.filter_by(resource_type="inquiry", action="update").one()
        assert audit.resource_id == str(inquiry_id)

    # Same status again is a no-op.
    client.post(f"/admin/inquiries/{inquiry_id}/status", data={"_csrf_token": csrf_token, "status": "contacted"})
    # Any status may follow any other, including moving back.
    client.post(f"/admin/inquiries/{inquiry_id}/status", data={"_csrf_token": csrf_token, "status": "closed_won"})
    client.post(f"/admin/inquiries/{inquiry_id}/status", data={"_csrf_token": csrf_token, "status": "pending"})
    client.post(f"/admin/inquiries/{inquiry_id}/status", data={"_csrf_token": csrf_token, "status": "archived"})

    with app.app_context():
        assert db.session.get(Inquiry, inquiry_id).status == "pending"
        assert InquiryLog.query.filter_by(inquiry_id=inquiry_id, action="status_change").count() == 3


def test_notes_append_with_timestamp_and_log(app, client):
    inquiry_id = create_inquiry(app)
    csrf_token = admin_login(client)

    client.post(f"/admin/inquiries/{inquiry_id}/notes", data={"_csrf_token": csrf_token, "note": "First call done"})
    client.post(f"/admin/inquiries/{inquiry_id}/notes", data={"_csrf_token": csrf_token, "note": "Sent price sheet"})
    empty = client.post(
        f"/admin/inquiries/{inquiry_id}/notes",
        data={"_csrf_token": csrf_token, "note": "   "},
        follow_redirects=True,
    )
    assert "Note cannot be empty." in empty.get_data(as_text=True)

    with app.app_context():
        inquiry = db.session.get(Inquiry, inquiry_id)
        assert re.match(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2} UTC\]\nFirst call done", inquiry.notes)
        assert inquiry.notes.index("First call done") < inquiry.notes.index("Sent price sheet")
        assert "\n\n[" in inquiry.notes
        assert InquiryLog.query.filter_by(inquiry_id=inquiry_id, action="note_added").count() == 2


def test_format_note_prefixes_utc_timestamp():
    now = utc_now_naive().replace(year=2026, month=3, day=4, hour=5, minute=6)
    assert inquiry_service.format_note("Hello", now=now) == "[2026-03-04 05:06 UTC]\nHello"


def test_assignment_is_logged_separately(app, client):
    inquiry_id = create_inquiry(app)
    editor_id = create_admin(app, "editor@alakoilandgas.com", "editor")
    csrf_token = admin_login(client)

    client.post(f"/admin/inquiries/{inquiry_id}/assign", data={"_csrf_token": csrf_token, "assignee_id": str(editor_id)})
    with app.app_context():
        inquiry = db.session.get(Inquiry, inquiry_id)
        assert inquiry.assigned_to == editor_id
        assert inquiry.status == "pending"
        log = InquiryLog.query.filter_by(inquiry_id=inquiry_id).one()
        assert log.action == "assigned"

    client.post(f"/admin/inquiries/{inquiry_id}/assign", data={"_csrf_token": csrf_token, "assignee_id": ""})
    with app.app_context():
        assert db.session.get(Inquiry, inquiry_id).assigned_to is None
        assert InquiryLog.query.filter_by(inquiry_id=inquiry_id, action="assigned").count() == 2


def test_delete_removes_inquiry_and_logs(app, client):
    inquiry_id = create_inquiry(app)
    csrf_token = admin_login(client)
    client.post(f"/admin/inquiries/{inquiry_id}/status", data={"_csrf_token": csrf_token, "status": "qualified"})

    response = client.post(f"/admin/inquiries/{inquiry_id}/delete", data={"_csrf_token": csrf_token})
    assert response.status_code in (302, 303)
    with app.app_context():
        assert db.session.get(Inquiry, inquiry_id) is None
        assert InquiryLog.query.filter_by(inquiry_id=inquiry_id).count() == 0
        assert AuditLog.query.filter_by(action="delete", resource_type="inquiry").count() == 1

    missing = client.get(f"/admin/inquiries/{inquiry_id}")
    assert missing.status_code == 404
    assert "Inquiry not found" in missing.get_data(as_text=True)


def test_inquiry_list_paginates_fifteen_per_page(app, client):
    base = utc_now_naive()
    for index in range(37):
        create_inquiry(app, full_name=f"Buyer {index:02d}", created_at=base - timedelta(minutes=index))
    admin_login(client)

    first = client.get("/admin/inquiries").get_data(as_text=True)
    assert first.count('class="inquiry-row"') == 15
    assert "Buyer 00" in first
    assert "Page 1 of 3" in first

    last = client.get("/admin/inquiries?page=3").get_data(as_text=True)
    assert last.count('class="inquiry-row"') == 7
    assert "Buyer 36" in last
    assert '<button class="btn" type="button" disabled data-pager="next">Next</button>' in last


def test_inquiry_list_filters_by_status_and_search(app, client):
    create_inquiry(app, full_name="Pending Person", email="pending@example.com")
    create_inquiry(app, full_name="Won Person", email="won@example.com", status="closed_won")
    admin_login(client)

    html = client.get("/admin/inquiries?status=closed_won").get_data(as_text=True)
    assert "Won Person" in html
    assert "Pending Person" not in html

    html = client.get("/admin/inquiries?q=pending@").get_data(as_text=True)
    assert "Pending Person" in html
    assert "Won Person" not in html


def test_inquiry_detail_links_to_neighbours(app, client):
    base = utc_now_naive()
    older = create_inquiry(app, full_name="Older", created_at=base - timedelta(hours=2))
    middle = create_inquiry(app, full_name="Middle", created_at=base - timedelta(hours=1))
    newer = create_inquiry(app, full_name="Newer", created_at=base)
    admin_login(client)

    html = client.get(f"/admin/inquiries/{middle}").get_data(as_text=True)
    assert f'href="/admin/inquiries/{newer}">Previous</a>' in html
    assert f'href="/admin/inquiries/{older}">Next</a>' in html

    html = client.get(f"/admin/inquiries/{older}").get_data(as_text=True)
    assert '<button class="btn" disabled>Next</button>' in html


def test_viewer_cannot_change_inquiries(app, client):
    inquiry_id = create_inquiry(app)
    create_admin(app, "viewer@alakoilandgas.com", "viewer")
    assert login(client, "viewer@alakoilandgas.com", "password1234").status_code in (302, 303)
    csrf_token = get_csrf(client, "/admin/")
    assert client.get(f"/admin/inquiries/{inquiry_id}").status_code == 200
    response = client.post(
        f"/admin/inquiries/{inquiry_id}/status",
        data={"_csrf_token": csrf_token, "status": "contacted"},
    )
    assert response.status_code == 403
    with app.app_context():
        assert db.session.get(Inquiry, inquiry_id).status == "pending"
