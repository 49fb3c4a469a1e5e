import json
from datetime import date, datetime, timedelta

from alak_site.models import AuditLog, Inquiry
from alak_site.reports import build_pdf_report, inquiries_csv, performance_csv, report_filename
from alak_site.services.analytics import conversion_rate, daily_trend, funnel, inquiry_analytics, performance_stats
from alak_site.utils import utc_now_naive

from .support import admin_login, create_admin, create_inquiry, login


def make_inquiry(status, created_at=None, **overrides):
    data = {
        "full_name": "Chidi Eze",
        "email": "chidi@example.com",
        "phone": "+2348011112222",
        "company_name": "Eze Logistics",
        "category": "verified-buyer",
        "product_type": "pms",
        "estimated_volume": "33000",
        "volume_unit": "Liters",
        "message": "Looking for PMS supply.",
        "status": status,
        "source": "website",
        "created_at": created_at or datetime(2026, 5, 10, 9, 30),
    }
    data.update(overrides)
    return Inquiry(**data)


def test_conversion_rate_ignores_open_inquiries():
    assert conversion_rate(0, 0) == 0.0
    assert conversion_rate(3, 1) == 75.0
    assert conversion_rate(0, 4) == 0.0


def test_funnel_stages_are_cumulative():
    items = [
        make_inquiry("pending"),
        make_inquiry("contacted"),
        make_inquiry("qualified"),
        make_inquiry("negotiating"),
        make_inquiry("closed_won"),
        make_inquiry("closed_won"),
        make_inquiry("closed_lost"),
        make_inquiry("pending"),
    ]
    stats = performance_stats(items)
    assert stats["total"] == 8
    assert stats["conversion_rate"] == 2 / 3 * 100

    stages = {row["stage"]: row for row in funnel(stats)}
    assert stages["Total"]["value"] == 8
    assert stages["Contacted"]["value"] == 5
    assert stages["Qualified"]["value"] == 4
    assert stages["Closed"]["value"] == 3
    assert stages["Won"]["value"] == 2
    assert stages["Won"]["pct"] == 25.0


def test_funnel_handles_empty_set():
    rows = funnel(performance_stats([]))
    assert [row["value"] for row in rows] == [0, 0, 0, 0, 0]
    assert all(row["pct"] == 0.0 for row in rows)


def test_daily_trend_buckets_by_day():
    today = date(2026, 5, 14)
    items = [
        make_inquiry("pending", created_at=datetime(2026, 5, 14, 8)),
        make_inquiry("pending", created_at=datetime(2026, 5, 14, 17)),
        make_inquiry("pending", created_at=datetime(2026, 5, 12, 11)),
        make_inquiry("pending", created_at=datetime(2026, 4, 1, 11)),
    ]
    trend = daily_trend(items, days=7, today=today)
    assert len(trend) == 7
    assert trend[0]["date"] == date(2026, 5, 8)
    assert trend[-1] == {"date": today, "count": 2, "pct": 100}
    assert trend[-3]["count"] == 1
    assert trend[-3]["pct"] == 50
    assert sum(row["count"] for row in trend) == 3


def test_inquiry_analytics_groups_by_labels():
    items = [
        make_inquiry("closed_won", product_type="crude-oil", category="verified-seller"),
        make_inquiry("closed_lost", product_type="crude-oil"),
        make_inquiry("pending", source=None),
    ]
    result = inquiry_analytics(items, today=date(2026, 5, 14))
    assert result["total"] == 3
    assert result["by_product"] == {"Crude Oil": 2, "PMS (Gasoline)": 1}
    assert result["by_category"]["Verified Buyer"] == 2
    assert result["by_source"] == {"website": 2, "direct": 1}
    assert result["conversion_rate"] == 50.0
    assert result["by_status"]["negotiating"] == 0


def test_report_filename_and_csv_shapes():
    assert report_filename("inquiries", "csv", date(2026, 5, 14)) == "inquiries-report-2026-05-14.csv"

    body = inquiries_csv([make_inquiry("pending", id=7, company_name="Acme, Ltd")])
    lines = body.strip().split("\n")
    assert lines[0] == "ID,Full Name,Company,Email,Phone,Category,Product,Volume,Status,Source,Created At"
    assert '"Acme, Ltd"' in lines[1]
    assert lines[1].startswith("7,Chidi Eze,")

    summary = performance_csv([make_inquiry("closed_won"), make_inquiry("closed_lost")], datetime(2026, 5, 14, 12, 0))
    assert "Conversion Rate,50.00%" in summary
    assert "Report Generated,2026-05-14 12:00" in summary


def test_inquiries_csv_has_one_line_per_row_and_escapes_quotes():
    items = [
        make_inquiry("pending", id=1),
        make_inquiry("contacted", id=2, full_name='Ngozi "Ngo" Obi'),
        make_inquiry("qualified", id=3, company_name="Delta, Gas & Power"),
        make_inquiry("closed_won", id=4),
    ]
    lines = inquiries_csv(items).strip().split("\n")
    assert len(lines) == len(items) + 1
    assert lines[2].startswith('2,"Ngozi ""Ngo"" Obi",')
    assert '"Delta, Gas & Power"' in lines[3]


def test_pdf_report_is_a_pdf():
    body = build_pdf_report(
        "inquiries",
        generated_at=datetime(2026, 5, 14, 12, 0),
        company_name="Alak Oil and Gas",
        inquiries=[make_inquiry("pending", id=index) for index in range(1, 45)],
        max_rows=30,
    )
    assert body.startswith(b"%PDF")


def test_reports_export_csv_and_audit(app, client):
    create_inquiry(app, full_name="Lagos Buyer", status="closed_won")
    create_inquiry(app, full_name="Abuja Buyer", product_type="ago")
    admin_login(client)

    response = client.get("/admin/reports/export?report=inquiries&format=csv&product_type=ago")
    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    today = utc_now_naive().date().strftime("%Y-%m-%d")
    assert f'filename="inquiries-report-{today}.csv"' in response.headers["Content-Disposition"]
    lines = response.get_data(as_text=True).strip().split("\n")
    assert len(lines) == 2
    assert "Abuja Buyer" in lines[1]

    with app.app_context():
        audit = AuditLog.query.filter_by(action="export", resource_type="report").one()
        assert audit.resource_id == "inquiries"
        meta = json.loads(audit.metadata_json)
        assert meta["format"] == "csv"
        assert meta["rows"] == 1
        assert meta["filters"] == {"product_type": "ago"}


def test_reports_export_pdf_and_performance(app, client):
    create_inquiry(app, status="closed_won")
    create_inquiry(app, status="closed_lost")
    admin_login(client)

    pdf = client.get("/admin/reports/export?report=performance&format=pdf")
    assert pdf.status_code == 200
    assert pdf.mimetype == "application/pdf"
    assert pdf.get_data().startswith(b"%PDF")

    csv_body = client.get("/admin/reports/export?report=performance&format=csv").get_data(as_text=True)
    assert "Total Inquiries,2" in csv_body
    assert "Conversion Rate,50.00%" in csv_body

    activity = client.get("/admin/reports/export?report=activity&format=csv").get_data(as_text=True)
    assert activity.startswith("Timestamp,User,Action,Resource Type,Resource ID,Resource Name")
    assert ",login," in activity


def test_reports_export_rejects_unknown_values(client):
    admin_login(client)
    assert client.get("/admin/reports/export?report=inquiries&format=xlsx").status_code == 404
    assert client.get("/admin/reports/export?report=salary&format=csv").status_code == 404


def test_reports_date_filter(app, client):
    now = utc_now_naive()
    create_inquiry(app, full_name="Old Lead", created_at=now - timedelta(days=40))
    create_inquiry(app, full_name="Fresh Lead", created_at=now)
    admin_login(client)

    date_from = (now - timedelta(days=7)).date().isoformat()
    body = client.get(f"/admin/reports/export?report=inquiries&format=csv&date_from={date_from}").get_data(as_text=True)
    assert "Fresh Lead" in body
    assert "Old Lead" not in body


def test_viewer_can_open_reports_and_analytics(app, client):
    create_inquiry(app)
    create_admin(app, "viewer@alakoilandgas.com", "viewer")
    login(client, "viewer@alakoilandgas.com", "password1234")

    page = client.get("/admin/reports?report=performance")
    assert page.status_code == 200
    assert "Performance Report" in page.get_data(as_text=True)
    assert client.get("/admin/analytics").status_code == 200
    assert client.get("/admin/pricing?days=7").status_code == 200
    assert client.get("/admin/reports/export?report=inquiries&format=csv").status_code == 200
