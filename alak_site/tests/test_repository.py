from datetime import timedelta

import pytest

from alak_site.models import BlogPost, Inquiry, InquiryLog, Notification, SiteSetting, User, db
from alak_site.repository import admin_profiles, blog, inquiries, inquiry_logs, oil_prices
from alak_site.repository import settings as settings_repo
from alak_site.services import inquiries as inquiry_service
from alak_site.utils import escape_like, split_list, utc_now_naive

from .support import ADMIN_EMAIL, create_inquiry


def test_inquiry_lookups(app):
    now = utc_now_naive()
    create_inquiry(app, full_name="Old Seller", category="verified-seller", created_at=now - timedelta(days=30))
    create_inquiry(app, full_name="New Buyer", status="qualified", phone="+2347000000001", created_at=now)
    create_inquiry(app, full_name="100% Partner", category="strategic-partner", created_at=now - timedelta(days=1))

    with app.app_context():
        assert [row.full_name for row in inquiries.get_all()] == ["New Buyer", "100% Partner", "Old Seller"]
        assert [row.full_name for row in inquiries.get_by_status("qualified")] == ["New Buyer"]
        assert [row.full_name for row in inquiries.get_by_category("verified-seller")] == ["Old Seller"]
        recent = inquiries.get_by_date_range(date_from=(now - timedelta(days=7)).date())
        assert {row.full_name for row in recent} == {"New Buyer", "100% Partner"}
        assert [row.full_name for row in inquiries.search(text="7000000001")] == ["New Buyer"]
        assert [row.full_name for row in inquiries.search(text="100%")] == ["100% Partner"]
        assert inquiries.search(status="pending", text="buyer") == []

        stats = inquiries.get_stats()
        assert stats["total"] == 3
        assert stats["pending"] == 2
        assert stats["qualified"] == 1


def test_submit_inquiry_defaults(app):
    with app.test_request_context("/api/contact", method="POST"):
        inquiry = inquiry_service.submit_inquiry(
            {
                "full_name": "Ada Okafor",
                "email": "ada@example.com",
                "phone": "+2348012345678",
                "company_name": "Okafor Energy",
                "category": "verified-buyer",
                "product_type": "jet-fuel",
                "estimated_volume": "40",
                "volume_unit": "MT",
                "message": "Need Jet A-1 at Lagos airport.",
            },
            ip_address="203.0.113.9",
        )
        assert inquiry.status == "pending"
        assert inquiry.source == "website"
        assert inquiry.ip_address == "203.0.113.9"
        assert inquiry.volume_display == "40 MT"
        assert InquiryLog.query.filter_by(inquiry_id=inquiry.id).count() == 0
        notification = Notification.query.filter_by(category="inquiry").one()
        assert notification.action_url == f"/admin/inquiries/{inquiry.id}"


def test_change_status_rejects_unknown_values(app):
    inquiry_id = create_inquiry(app)
    with app.app_context():
        inquiry = db.session.get(Inquiry, inquiry_id)
        with pytest.raises(ValueError):
            inquiry_service.change_status(inquiry, "archived")
        assert inquiry_service.change_status(inquiry, "pending") is False
        assert inquiry_service.change_status(inquiry, "negotiating") is True
        logs = inquiry_logs.get_by_inquiry_id(inquiry_id)
        assert len(logs) == 1
        assert logs[0].new_status == "negotiating"


def test_profile_and_settings_lookups(app):
    with app.app_context():
        user = User.query.filter_by(email=ADMIN_EMAIL).one()
        profile = admin_profiles.get_by_user_id(user.id)
        assert profile.role == "super_admin"
        assert admin_profiles.get_by_id(profile.id) is profile

        compliance_keys = {row.key for row in settings_repo.get_by_category("compliance")}
        assert {"rc_number", "tin_number", "show_rc_number"} <= compliance_keys
        assert all(row.is_public for row in settings_repo.get_public_settings())
        assert "notification_inquiry_emails" not in {row.key for row in settings_repo.get_public_settings()}

        settings_repo.update("company_email", "sales@alakoilandgas.com", updated_by=profile.id)
        assert SiteSetting.query.filter_by(key="company_email").one().value == '"sales@alakoilandgas.com"'
        assert settings_repo.update("missing_key", "x") is None


def test_blog_helpers(app):
    with app.app_context():
        category = blog.get_all_categories()[0]
        post = BlogPost(title="Draft", slug="draft", content="<p>x</p>", category_id=category.id)
        blog.save_post(post)
        assert blog.get_post(post.id) is post
        assert blog.get_post_by_slug("draft") is None
        assert blog.get_post_by_slug("draft", published_only=False) is post
        assert blog.slug_taken("draft")
        assert not blog.slug_taken("draft", exclude_id=post.id)

        blog.publish_post(post)
        assert post.status == "published"
        assert post.published_at is not None
        assert blog.get_published() == [post]
        assert blog.count_by_status()["published"] == 1


def test_oil_price_history_window(app):
    with app.app_context():
        latest = oil_prices.get_latest()
        assert latest.bonny_light_price == 83.9
        assert [row["label"] for row in latest.benchmark_rows()][0] == "Brent Crude"
        assert oil_prices.get_history(days=7) == [latest]


def test_text_helpers():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
    assert split_list("a, b\nA,, c", max_items=2) == ["a", "b"]
    assert split_list("") == []
