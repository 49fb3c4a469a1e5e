import json
from datetime import date, timedelta

import pytest

from alak_site.models import (
    ApiConfig,
    BlogCategory,
    BlogPost,
    JobExecutionLog,
    NewsArticle,
    OilPrice,
    ScheduledJob,
    db,
)
from alak_site.services import blog_generator, market_data, news_ingest
from alak_site.services.external import ExternalApiError
from alak_site.utils import utc_now_naive

from .support import admin_login, build_test_app

CRON_SECRET = "cron-test-secret"
CRON_HEADERS = {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture()
def pipeline_app(tmp_path, monkeypatch):
    return build_test_app(
        tmp_path,
        monkeypatch,
        overrides={
            "CRON_SECRET": CRON_SECRET,
            "OILPRICEAPI_KEY": "opa-key",
            "MARKETSTACK_API_KEY": "",
            "NEWSDATA_API_KEY": "nd-key",
        },
    )


@pytest.fixture()
def pipeline_client(pipeline_app):
    return pipeline_app.test_client()


def oilprice_payload(brent=85.0, wti=80.5, gas=3.1):
    return {
        "status": "success",
        "data": {"brent_crude_price": brent, "wti_crude_price": wti, "natural_gas_price": gas},
    }


def add_price(app, price_date, **values):
    with app.app_context():
        row = OilPrice(price_date=price_date, source="test", **values)
        db.session.add(row)
        db.session.commit()
        return row.id


def test_cron_rejects_missing_or_wrong_secret(pipeline_client):
    assert pipeline_client.get("/api/cron/fetch-prices").status_code == 401
    wrong = pipeline_client.get("/api/cron/fetch-prices", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 401
    assert wrong.get_json() == {"error": "Unauthorized"}
    unknown = pipeline_client.get("/api/cron/rebuild-everything", headers=CRON_HEADERS)
    assert unknown.status_code == 404


def test_cron_disabled_without_configured_secret(client):
    response = client.get("/api/cron/fetch-prices", headers={"Authorization": "Bearer "})
    assert response.status_code == 401


def test_fetch_prices_stores_snapshot_and_logs_run(pipeline_app, pipeline_client, monkeypatch):
    calls = []

    def fake_fetch(url, params=None, headers=None):
        calls.append((url, headers))
        return oilprice_payload()

    monkeypatch.setattr(market_data, "fetch_json", fake_fetch)
    yesterday = utc_now_naive().date() - timedelta(days=1)
    add_price(pipeline_app, yesterday, brent_price=80.0, wti_price=78.0, natural_gas_price=3.1)

    response = pipeline_client.get("/api/cron/fetch-prices", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "success"
    assert body["job"] == "fetch_oil_prices"
    assert body["brent_price"] == 85.0
    assert body["market_trend"] == "bullish"
    assert calls == [(market_data.OILPRICEAPI_URL, {"Authorization": "Token opa-key"})]

    with pipeline_app.app_context():
        today = OilPrice.query.filter_by(price_date=utc_now_naive().date()).one()
        assert today.source == "oilpriceapi"
        assert today.dubai_crude_price == 83.5
        assert today.murban_price == 84.0
        assert today.bonny_light_price == 86.5
        assert today.brent_change == 5.0
        assert today.brent_change_percent == 6.25
        assert today.natural_gas_change == 0.0
        assert today.auto_posted is False
        assert today.trend_factor_list[0] == "Overall bullish market sentiment"
        assert "Brent crude up 6.25%" in today.trend_factor_list

        log = JobExecutionLog.query.filter_by(job_name="fetch_oil_prices").one()
        assert log.status == "success"
        assert log.triggered_by == "cron"
        job = ScheduledJob.query.filter_by(job_name="fetch_oil_prices").one()
        assert (job.total_runs, job.successful_runs, job.failed_runs) == (1, 1, 0)
        assert job.last_run_status == "success"
        assert job.next_run_at > job.last_run_at
        api = ApiConfig.query.filter_by(api_name="oil_price_api").one()
        assert api.current_day_calls == 1
        assert api.consecutive_failures == 0

    again = pipeline_client.get("/api/cron/fetch-prices", headers=CRON_HEADERS).get_json()
    assert again["status"] == "skipped"
    assert len(calls) == 1
    with pipeline_app.app_context():
        assert JobExecutionLog.query.filter_by(job_name="fetch_oil_prices").count() == 1

    forced = pipeline_client.get("/api/cron/fetch-prices?force=1", headers=CRON_HEADERS).get_json()
    assert forced["status"] == "success"
    with pipeline_app.app_context():
        assert OilPrice.query.filter_by(price_date=utc_now_naive().date()).count() == 1


def test_fetch_prices_failure_is_logged_and_counted(pipeline_app, pipeline_client, monkeypatch):
    def failing_fetch(url, params=None, headers=None):
        raise ExternalApiError("HTTP 503 from api.oilpriceapi.com")

    monkeypatch.setattr(market_data, "fetch_json", failing_fetch)
    response = pipeline_client.get("/api/cron/fetch-prices", headers=CRON_HEADERS)
    assert response.status_code == 500
    body = response.get_json()
    assert body["success"] is False
    assert "503" in body["message"]

    with pipeline_app.app_context():
        log = JobExecutionLog.query.filter_by(job_name="fetch_oil_prices").one()
        assert log.status == "failed"
        assert "503" in log.error_message
        job = ScheduledJob.query.filter_by(job_name="fetch_oil_prices").one()
        assert (job.total_runs, job.failed_runs) == (1, 1)
        api = ApiConfig.query.filter_by(api_name="oil_price_api").one()
        assert api.consecutive_failures == 1
        assert "503" in api.last_error


def test_fetch_prices_skips_when_provider_disabled(pipeline_app, pipeline_client, monkeypatch):
    monkeypatch.setattr(market_data, "fetch_json", lambda *args, **kwargs: pytest.fail("provider called"))
    with pipeline_app.app_context():
        ApiConfig.query.filter_by(api_name="oil_price_api").one().is_active = False
        db.session.commit()

    body = pipeline_client.get("/api/cron/fetch-prices", headers=CRON_HEADERS).get_json()
    assert body["status"] == "skipped"
    assert body["message"] == "OilPriceAPI is disabled."


def test_fetch_news_scores_dedupes_and_auto_approves(pipeline_app, pipeline_client, monkeypatch):
    seen_params = []

    def fake_fetch(url, params=None, headers=None):
        seen_params.append(params)
        return {
            "status": "success",
            "results": [
                {
                    "article_id": "nd-1",
                    "title": "Brent crude oil price climbs as OPEC trims supply",
                    "description": "Crude oil futures rose as OPEC cut output.",
                    "link": "https://news.example.com/brent",
                    "source_name": "Energy Wire",
                    "pubDate": "2026-05-14 08:30:00",
                    "country": ["nigeria"],
                    "category": ["business"],
                    "language": "english",
                },
                {"article_id": "nd-2", "title": "Crude oil and LNG cargoes rerouted", "description": ""},
                {"article_id": "nd-3", "title": "Local football results", "description": "The league table after the weekend."},
            ],
        }

    monkeypatch.setattr(news_ingest, "fetch_json", fake_fetch)
    with pipeline_app.app_context():
        db.session.add(NewsArticle(
            external_id="nd-2",
            title="Already stored",
            relevance_score=0.9,
            fetched_at=utc_now_naive() - timedelta(days=1),
        ))
        category = BlogCategory.query.filter_by(slug="oil-prices").one()
        category.auto_post_enabled = True
        category.auto_post_requires_review = False
        category.auto_post_min_relevance = 0.4
        db.session.commit()
        category_id = category.id

    response = pipeline_client.get("/api/cron/fetch-news", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.get_json()
    assert body["articles_fetched"] == 3
    assert body["articles_relevant"] == 1
    assert body["auto_approved"] == 1
    assert seen_params[0]["apikey"] == "nd-key"
    assert seen_params[0]["language"] == "en"

    with pipeline_app.app_context():
        assert NewsArticle.query.count() == 2
        article = NewsArticle.query.filter_by(external_id="nd-1").one()
        assert article.relevance_score == 0.5
        assert article.sentiment == "mixed"
        assert article.target_category_id == category_id
        assert article.auto_post_status == "approved"
        assert article.country == "nigeria"
        assert article.published_at.hour == 8
        assert "brent" in json.loads(article.relevance_keywords)
        log = JobExecutionLog.query.filter_by(job_name="fetch_industry_news").one()
        assert (log.articles_fetched, log.articles_relevant) == (3, 1)


def test_paused_job_is_skipped_without_log(pipeline_app, pipeline_client, monkeypatch):
    monkeypatch.setattr(news_ingest, "fetch_json", lambda *args, **kwargs: pytest.fail("provider called"))
    with pipeline_app.app_context():
        ScheduledJob.query.filter_by(job_name="fetch_industry_news").one().is_active = False
        db.session.commit()

    response = pipeline_client.get("/api/cron/fetch-news", headers=CRON_HEADERS)
    assert response.status_code == 200
    assert response.get_json()["status"] == "skipped"
    with pipeline_app.app_context():
        assert JobExecutionLog.query.count() == 0
        assert ScheduledJob.query.filter_by(job_name="fetch_industry_news").one().total_runs == 0


def test_generate_posts_from_prices_and_approved_articles(pipeline_app, pipeline_client):
    yesterday = utc_now_naive().date() - timedelta(days=1)
    price_id = add_price(
        pipeline_app,
        yesterday,
        brent_price=84.2,
        brent_change=2.85,
        brent_change_percent=3.5,
        wti_price=80.1,
        market_trend="bullish",
        trend_factors=json.dumps(["Overall bullish market sentiment", "Brent crude up 3.5%"]),
    )
    with pipeline_app.app_context():
        oil_prices = BlogCategory.query.filter_by(slug="oil-prices").one()
        oil_prices.auto_post_enabled = True
        industry = BlogCategory.query.filter_by(slug="industry-news").one()
        published_article = NewsArticle(
            external_id="nd-10",
            title="OPEC meets",
            description="<script>alert(1)</script> Ministers weigh output.",
            source_name="Gulf Times",
            source_url="https://gulf.example.com/opec",
            relevance_score=0.8,
            relevance_keywords=json.dumps(["opec", "crude oil"]),
            sentiment="neutral",
            target_category_id=oil_prices.id,
            auto_post_status="approved",
        )
        draft_article = NewsArticle(
            external_id="nd-11",
            title="Refinery maintenance season tightens diesel supply in West Africa",
            description="Diesel margins widen.",
            relevance_score=0.6,
            target_category_id=industry.id,
            auto_post_status="approved",
        )
        pending_article = NewsArticle(external_id="nd-12", title="Pending item", relevance_score=0.9)
        db.session.add_all([published_article, draft_article, pending_article])
        db.session.commit()

    response = pipeline_client.get("/api/cron/generate-posts", headers=CRON_HEADERS)
    assert response.status_code == 200
    body = response.get_json()
    assert (body["posts_created"], body["posts_published"], body["errors"]) == (3, 2, 0)

    with pipeline_app.app_context():
        price = db.session.get(OilPrice, price_id)
        assert price.auto_posted is True
        price_post = db.session.get(BlogPost, price.auto_post_id)
        expected_date = f"{yesterday:%B} {yesterday.day}, {yesterday.year}"
        assert price_post.title == f"Oil Prices Surge as Brent Moves 3.5% - {expected_date}"
        assert price_post.status == "published"
        assert price_post.auto_source == "oil_price"
        assert price_post.source_reference_id == str(price_id)
        assert price_post.category.slug == "oil-prices"
        assert price_post.excerpt.startswith(f"{expected_date} - Brent crude trading at $84.20/bbl (+3.50%).")
        assert "bullish market" in price_post.tags
        assert price_post.key_factors == ["Overall bullish market sentiment", "Brent crude up 3.5%"]
        assert "<td>Brent Crude</td><td>$84.20</td><td>+3.50%</td>" in price_post.content

        article = NewsArticle.query.filter_by(external_id="nd-10").one()
        assert article.auto_post_status == "posted"
        assert article.auto_posted_at is not None
        news_post = db.session.get(BlogPost, article.blog_post_id)
        assert news_post.title == "Energy Markets: OPEC meets"
        assert news_post.status == "published"
        assert news_post.is_auto_generated is True
        assert news_post.author_name == "Alak Market Intelligence"
        assert "<script>" not in news_post.content
        assert "&lt;script&gt;" in news_post.content
        assert news_post.tags == ["industry news", "opec", "crude oil", "neutral", "gulf-times"]

        draft = db.session.get(BlogPost, NewsArticle.query.filter_by(external_id="nd-11").one().blog_post_id)
        assert draft.status == "draft"
        assert draft.published_at is None
        assert NewsArticle.query.filter_by(external_id="nd-12").one().auto_post_status == "pending"

        log = JobExecutionLog.query.filter_by(job_name="generate_blog_posts").one()
        assert (log.posts_created, log.posts_published) == (3, 2)

    rerun = pipeline_client.get("/api/cron/generate-posts", headers=CRON_HEADERS).get_json()
    assert rerun["posts_created"] == 0


def test_admin_can_run_job_now(pipeline_app, pipeline_client):
    csrf_token = admin_login(pipeline_client)
    with pipeline_app.app_context():
        job_id = ScheduledJob.query.filter_by(job_name="generate_blog_posts").one().id

    response = pipeline_client.post(
        f"/admin/jobs/{job_id}/run",
        data={"_csrf_token": csrf_token},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert "Job generate_blog_posts: Created 0 post(s), 0 published." in response.get_data(as_text=True)
    with pipeline_app.app_context():
        log = JobExecutionLog.query.filter_by(job_name="generate_blog_posts").one()
        assert log.triggered_by == "manual"


def test_unique_slug_appends_counter(pipeline_app):
    with pipeline_app.app_context():
        db.session.add(BlogPost(title="Daily Update", slug="daily-update", content="<p>x</p>"))
        db.session.add(BlogPost(title="Daily Update", slug="daily-update-1", content="<p>x</p>"))
        db.session.commit()
        assert blog_generator.unique_slug("Daily Update") == "daily-update-2"
        assert blog_generator.unique_slug("Fresh Title") == "fresh-title"


def test_scoring_and_sentiment_rules():
    score, matched = news_ingest.score_relevance(" ".join(kw for _, group in news_ingest.KEYWORD_WEIGHTS for kw in group))
    assert score == 1.0
    assert matched[0] == "crude oil"
    assert news_ingest.score_relevance("Weekend weather forecast") == (0.0, [])

    assert news_ingest.analyze_sentiment("Prices surge and rally to a record high") == "positive"
    assert news_ingest.analyze_sentiment("Prices plunge and crash in a crisis") == "negative"
    assert news_ingest.analyze_sentiment("Gains offset by a decline") == "mixed"
    assert news_ingest.analyze_sentiment("Ministers meet on Tuesday") == "neutral"


def test_trend_and_title_thresholds():
    assert market_data.analyze_trend({"brent": 2.5, "wti": -2.5})[0] == "volatile"
    assert market_data.analyze_trend({"brent": -0.8})[0] == "bearish"
    assert market_data.analyze_trend({})[0] == "neutral"
    assert market_data.price_change(82.0, 80.0) == (2.0, 2.5)
    assert market_data.price_change(82.0, None) == (None, None)

    day = date(2026, 5, 14)
    assert blog_generator.price_post_title(OilPrice(price_date=day, brent_change_percent=-4.2)) == (
        "Oil Prices Drop as Brent Moves 4.2% - May 14, 2026"
    )
    assert blog_generator.price_post_title(OilPrice(price_date=day, brent_change_percent=1.5)) == (
        "Oil Markets Rise: Daily Price Update - May 14, 2026"
    )
    assert blog_generator.price_post_title(OilPrice(price_date=day, brent_change_percent=0.2)) == (
        "Oil Market Recap: Prices Hold Steady - May 14, 2026"
    )
