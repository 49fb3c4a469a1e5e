"""Oil and gas headlines from NewsData.io, scored for relevance.

Articles scoring below ``MIN_SAVED_RELEVANCE`` are dropped. The rest land in
the review queue as ``pending``, unless their target category allows posting
without review and the score clears the category's threshold, in which case
they are approved straight away.
"""
import json
from datetime import datetime, timedelta, timezone

from flask import current_app

from ..models import NEWS_STATUS_APPROVED, NEWS_STATUS_PENDING, NewsArticle, db
from ..repository import blog as blog_repo
from ..repository import news as news_repo
from ..utils import clean_text, utc_now_naive
from .external import ExternalApiError, fetch_json
from .jobs import STATUS_SKIPPED, STATUS_SUCCESS, api_enabled, job_result, record_api_call

NEWSDATA_URL = 'https://newsdata.io/api/1/news'
NEWSDATA_NAME = 'newsdata'
SEARCH_TERMS = ('oil', 'crude', 'petroleum', 'natural gas', 'opec', 'energy', 'refinery', 'lng')
MIN_SAVED_RELEVANCE = 0.3

KEYWORD_WEIGHTS = (
    (10, (
        'crude oil', 'brent', 'wti', 'opec', 'oil price', 'petroleum', 'natural gas', 'lng', 'lpg',
        'refinery', 'oil production', 'oil supply', 'oil demand', 'energy sector', 'oil drilling',
        'offshore drilling', 'oil reserves', 'bonny light', 'dubai crude', 'murban', 'fuel prices',
        'gasoline', 'diesel', 'jet fuel', 'petrochemical', 'oil trading', 'energy market',
        'oil futures', 'commodity',
    )),
    (5, (
        'energy', 'saudi arabia', 'russia oil', 'middle east oil', 'nigeria oil', 'uae oil',
        'iraq oil', 'iran oil', 'oil company', 'exxon', 'chevron', 'shell', 'bp', 'totalenergies',
        'eni', 'equinor', 'conocophillips', 'pipeline', 'oil tanker', 'shipping', 'trade',
        'sanctions', 'carbon', 'emissions', 'climate energy',
    )),
    (2, (
        'investment', 'stock market', 'economy', 'inflation', 'dollar', 'currency', 'trade war',
        'geopolitical', 'regulation', 'government', 'policy', 'minister',
    )),
)
POSITIVE_WORDS = (
    'surge', 'rise', 'gain', 'rally', 'increase', 'growth', 'bullish', 'optimistic', 'boost',
    'record high', 'recovery', 'strong', 'positive', 'upward', 'climb', 'soar',
)
NEGATIVE_WORDS = (
    'drop', 'fall', 'decline', 'plunge', 'crash', 'slump', 'bearish', 'pessimistic', 'cut',
    'record low', 'crisis', 'weak', 'negative', 'downward', 'sink', 'tumble',
)
# First matching rule wins; unmatched articles go to industry news.
CATEGORY_RULES = (
    ('oil-prices', {'oil price', 'brent', 'wti', 'crude oil', 'fuel prices'}),
    ('market-analysis', {'oil trading', 'oil futures', 'commodity', 'energy market'}),
    ('geopolitics', {'opec', 'sanctions', 'saudi arabia', 'russia oil', 'middle east oil', 'iran oil'}),
    ('sustainability', {'carbon', 'emissions', 'climate energy'}),
    ('company-insights', {'exxon', 'chevron', 'shell', 'bp', 'totalenergies', 'eni'}),
)
DEFAULT_CATEGORY_SLUG = 'industry-news'


def score_relevance(text):
    """Relevance in [0, 1] and the matched keywords, in weight order."""
    haystack = (text or '').lower()
    score = 0
    matched = []
    for weight, keywords in KEYWORD_WEIGHTS:
        for keyword in keywords:
            if keyword in haystack and keyword not in matched:
                score += weight
                matched.append(keyword)
    return round(min(score, 100) / 100, 2), matched


def analyze_sentiment(text):
    haystack = (text or '').lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in haystack)
    negative = sum(1 for word in NEGATIVE_WORDS if word in haystack)
    if positive > negative + 1:
        return 'positive'
    if negative > positive + 1:
        return 'negative'
    if positive and negative:
        return 'mixed'
    return 'neutral'


def pick_category(keywords, categories_by_slug):
    found = set(keywords)
    for slug, triggers in CATEGORY_RULES:
        if found & triggers and slug in categories_by_slug:
            return categories_by_slug[slug]
    return categories_by_slug.get(DEFAULT_CATEGORY_SLUG)


def initial_status(relevance, category):
    if (
        category is not None
        and category.auto_post_enabled
        and not category.auto_post_requires_review
        and relevance >= (category.auto_post_min_relevance or 0.0)
    ):
        return NEWS_STATUS_APPROVED
    return NEWS_STATUS_PENDING


def _parse_published(value):
    raw = (value or '').strip()
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _first(values):
    if isinstance(values, list) and values:
        return clean_text(str(values[0]), 80) or None
    return None


def build_article(item, categories_by_slug, fetched_at):
    """A NewsArticle for one NewsData result, or None when it is not relevant enough."""
    keywords = [str(value) for value in (item.get('keywords') or []) if value]
    title = clean_text(item.get('title'), 500)
    if not title:
        return None
    description = item.get('description') or ''
    content = item.get('content') or ''
    relevance, matched = score_relevance(' '.join([title, description, content] + keywords))
    if relevance < MIN_SAVED_RELEVANCE:
        return None
    category = pick_category(matched, categories_by_slug)
    return NewsArticle(
        external_id=clean_text(item.get('article_id'), 200) or None,
        title=title,
        description=description or None,
        content=content or None,
        source_name=clean_text(item.get('source_name') or item.get('source_id'), 200) or None,
        source_url=clean_text(item.get('link'), 1000) or None,
        image_url=clean_text(item.get('image_url'), 1000) or None,
        published_at=_parse_published(item.get('pubDate')),
        fetched_at=fetched_at,
        category=_first(item.get('category')),
        country=_first(item.get('country')),
        language=clean_text(item.get('language'), 20) or None,
        keywords=json.dumps(keywords, ensure_ascii=False),
        relevance_score=relevance,
        relevance_keywords=json.dumps(matched, ensure_ascii=False),
        sentiment=analyze_sentiment(f'{title} {description}'),
        target_category_id=category.id if category is not None else None,
        auto_post_status=initial_status(relevance, category),
    )


def fetch_headlines():
    api_key = current_app.config.get('NEWSDATA_API_KEY') or ''
    if not api_key:
        raise ExternalApiError('NewsData API key is not configured.')
    params = {
        'apikey': api_key,
        'q': ' OR '.join(SEARCH_TERMS),
        'language': 'en',
        'category': 'business,top',
        'size': str(current_app.config.get('NEWS_MAX_ARTICLES_PER_FETCH', 50)),
    }
    try:
        payload = fetch_json(NEWSDATA_URL, params=params)
        if not isinstance(payload, dict) or payload.get('status') != 'success':
            raise ExternalApiError('NewsData returned a non-success status.')
    except ExternalApiError as exc:
        record_api_call(NEWSDATA_NAME, error=exc)
        db.session.commit()
        raise
    record_api_call(NEWSDATA_NAME)
    return [item for item in payload.get('results') or [] if isinstance(item, dict)]


def is_fetch_due(now=None):
    now = now or utc_now_naive()
    last_fetch = news_repo.get_latest_fetched_at()
    hours = current_app.config.get('NEWS_FETCH_INTERVAL_HOURS', 13)
    return last_fetch is None or now - last_fetch >= timedelta(hours=hours)


def fetch_and_store_news(force=False):
    """Job handler: save new relevant headlines, skipping ones already stored."""
    now = utc_now_naive()
    if not force and not is_fetch_due(now):
        return job_result(STATUS_SKIPPED, 'Not enough time since the last news fetch.')
    if not api_enabled(NEWSDATA_NAME):
        return job_result(STATUS_SKIPPED, 'NewsData API is disabled.')

    items = fetch_headlines()
    known = news_repo.get_existing_external_ids([item.get('article_id') for item in items])
    categories_by_slug = {category.slug: category for category in blog_repo.get_active_categories()}

    saved = []
    for item in items:
        if item.get('article_id') and item.get('article_id') in known:
            continue
        article = build_article(item, categories_by_slug, now)
        if article is None:
            continue
        if article.external_id:
            known.add(article.external_id)
        db.session.add(article)
        saved.append(article)
    db.session.commit()

    approved = sum(1 for article in saved if article.auto_post_status == NEWS_STATUS_APPROVED)
    current_app.logger.info('News fetch stored %s of %s articles (%s auto-approved).', len(saved), len(items), approved)
    return job_result(
        STATUS_SUCCESS,
        f'Saved {len(saved)} relevant article(s) from {len(items)} fetched.',
        articles_fetched=len(items),
        articles_relevant=len(saved),
        auto_approved=approved,
    )
