"""Turns price snapshots and approved news articles into blog posts."""
from flask import current_app
from markupsafe import Markup
from slugify import slugify

from ..models import (
    NEWS_STATUS_POSTED,
    POST_STATUS_DRAFT,
    POST_STATUS_PUBLISHED,
    BlogPost,
    db,
)
from ..repository import blog as blog_repo
from ..repository import news as news_repo
from ..repository import oil_prices as oil_prices_repo
from ..utils import load_json_list, utc_now_naive
from .jobs import STATUS_FAILED, STATUS_SUCCESS, job_result

AUTHOR_NAME = 'Alak Market Intelligence'
AUTHOR_ROLE = 'Market Analysis Team'
PRICE_CATEGORY_SLUG = 'oil-prices'
NEWS_TITLE_PREFIX = 'Energy Markets: '
NEWS_TITLE_MIN_LENGTH = 30

TREND_INTROS = {
    'bullish': 'Crude benchmarks closed higher as buyers kept control of the session.',
    'bearish': 'Crude benchmarks came under pressure with selling across the complex.',
    'volatile': 'Crude benchmarks traded in a choppy session and pulled in different directions.',
    'neutral': 'Crude benchmarks held a narrow range with little movement across the board.',
}
TREND_OUTLOOKS = {
    'bullish': 'Momentum favours further gains while supply stays tight. Buyers may want to lock in volumes early.',
    'bearish': 'Further softness is possible if demand indicators stay weak. Buyers may find better entry points ahead.',
    'volatile': 'Expect wide intraday swings until the market settles on a direction.',
    'neutral': 'Prices look range-bound in the near term with no strong catalyst in view.',
}
TREND_TAGS = {
    'bullish': ['bullish market'],
    'bearish': ['bearish market'],
    'volatile': ['market volatility'],
}


def unique_slug(text):
    base = slugify(text or '', max_length=200) or 'post'
    slug = base
    counter = 1
    while blog_repo.slug_taken(slug):
        slug = f'{base}-{counter}'
        counter += 1
    return slug


def date_label(value):
    return f'{value:%B} {value.day}, {value.year}'


def format_change(percent):
    if percent is None:
        return 'no prior close'
    if percent == 0:
        return 'unchanged'
    return f'{percent:+.2f}%'


def price_post_title(price):
    percent = price.brent_change_percent or 0.0
    label = date_label(price.price_date)
    if abs(percent) > 3:
        move = 'Surge' if percent > 0 else 'Drop'
        return f'Oil Prices {move} as Brent Moves {abs(percent):.1f}% - {label}'
    if abs(percent) > 1:
        move = 'Rise' if percent > 0 else 'Decline'
        return f'Oil Markets {move}: Daily Price Update - {label}'
    return f'Oil Market Recap: Prices Hold Steady - {label}'


def price_post_content(price):
    trend = price.market_trend or 'neutral'
    parts = [Markup('<p>{}</p>').format(TREND_INTROS.get(trend, TREND_INTROS['neutral']))]
    parts.append(Markup('<h2>Benchmark Prices</h2><table><thead><tr>'
                        '<th>Benchmark</th><th>Price (USD)</th><th>Change</th>'
                        '</tr></thead><tbody>'))
    for row in price.benchmark_rows():
        if row['price'] is None:
            continue
        parts.append(Markup('<tr><td>{}</td><td>${:.2f}</td><td>{}</td></tr>').format(
            row['label'], row['price'], format_change(row['change_percent']),
        ))
    parts.append(Markup('</tbody></table>'))
    factors = price.trend_factor_list
    if factors:
        parts.append(Markup('<h2>Market Drivers</h2><ul>'))
        parts.extend(Markup('<li>{}</li>').format(factor) for factor in factors)
        parts.append(Markup('</ul>'))
    parts.append(Markup('<h2>Outlook</h2><p>{}</p>').format(TREND_OUTLOOKS.get(trend, TREND_OUTLOOKS['neutral'])))
    return str(Markup('').join(parts))


def price_post_excerpt(price):
    label = date_label(price.price_date)
    if price.brent_price is None:
        return f'{label} - Daily crude benchmark recap.'
    return (
        f'{label} - Brent crude trading at ${price.brent_price:.2f}/bbl '
        f'({format_change(price.brent_change_percent)}). '
        f'{TREND_INTROS.get(price.market_trend or "neutral", TREND_INTROS["neutral"])}'
    )


def price_post_tags(price):
    tags = ['oil prices', 'market update', 'brent crude', 'wti']
    tags.extend(TREND_TAGS.get(price.market_trend, []))
    if price.bonny_light_price is not None:
        tags.append('bonny light')
    if price.dubai_crude_price is not None:
        tags.append('dubai crude')
    return tags


def create_price_post(price, now=None):
    now = now or utc_now_naive()
    category = blog_repo.get_category_by_slug(PRICE_CATEGORY_SLUG)
    title = price_post_title(price)
    excerpt = price_post_excerpt(price)
    post = BlogPost(
        title=title,
        slug=unique_slug(title),
        excerpt=excerpt,
        content=price_post_content(price),
        category_id=category.id if category is not None else None,
        status=POST_STATUS_PUBLISHED,
        published_at=now,
        author_name=AUTHOR_NAME,
        author_role=AUTHOR_ROLE,
        meta_title=title[:300],
        meta_description=excerpt[:500],
        is_auto_generated=True,
        auto_source='oil_price',
        source_reference_id=str(price.id),
        analysis_summary=excerpt,
        market_outlook=price.market_trend,
    )
    post.tags = price_post_tags(price)
    post.key_factors = price.trend_factor_list
    blog_repo.save_post(post, commit=False)
    db.session.flush()
    price.auto_posted = True
    price.auto_posted_at = now
    price.auto_post_id = post.id
    db.session.commit()
    return post


def news_post_title(article):
    title = (article.title or '').strip()
    if len(title) < NEWS_TITLE_MIN_LENGTH:
        title = f'{NEWS_TITLE_PREFIX}{title}'
    return title[:300]


def news_post_content(article):
    parts = []
    if article.description:
        parts.append(Markup('<p>{}</p>').format(article.description))
    if article.content and article.content != article.description:
        parts.append(Markup('<p>{}</p>').format(article.content))
    source = article.source_name or 'the original publisher'
    if article.source_url and article.source_url.startswith(('http://', 'https://')):
        parts.append(Markup('<p>Source: <a href="{}" rel="nofollow noopener">{}</a></p>').format(
            article.source_url, source,
        ))
    else:
        parts.append(Markup('<p>Source: {}</p>').format(source))
    return str(Markup('').join(parts))


def news_post_tags(article):
    tags = ['industry news']
    tags.extend(load_json_list(article.relevance_keywords)[:5])
    if article.sentiment:
        tags.append(article.sentiment)
    source_tag = slugify(article.source_name or '', max_length=60)
    if source_tag:
        tags.append(source_tag)
    return list(dict.fromkeys(tags))


def create_news_post(article, now=None):
    """Publish when the target category allows auto-posting; draft otherwise."""
    now = now or utc_now_naive()
    category = article.target_category
    publish = category is not None and category.auto_post_enabled
    title = news_post_title(article)
    summary = (article.description or article.title or '')[:2000]
    post = BlogPost(
        title=title,
        slug=unique_slug(title),
        excerpt=summary,
        content=news_post_content(article),
        category_id=category.id if category is not None else None,
        status=POST_STATUS_PUBLISHED if publish else POST_STATUS_DRAFT,
        published_at=now if publish else None,
        author_name=AUTHOR_NAME,
        author_role=AUTHOR_ROLE,
        meta_title=title,
        meta_description=summary[:500],
        is_auto_generated=True,
        auto_source='news_article',
        source_reference_id=str(article.id),
        analysis_summary=summary,
    )
    post.tags = news_post_tags(article)
    blog_repo.save_post(post, commit=False)
    db.session.flush()
    article.auto_post_status = NEWS_STATUS_POSTED
    article.blog_post_id = post.id
    article.auto_posted_at = now
    db.session.commit()
    return post


def generate_pending_posts(price_limit=5, news_limit=20):
    """Job handler: one post per unposted price snapshot and approved article."""
    now = utc_now_naive()
    created = published = errors = 0
    work = [(create_price_post, item) for item in oil_prices_repo.get_unposted(limit=price_limit)]
    work += [(create_news_post, item) for item in news_repo.get_ready_to_post(limit=news_limit)]
    for build, item in work:
        label = f'{item.__class__.__name__} {item.id}'
        try:
            post = build(item, now=now)
        except Exception:
            db.session.rollback()
            errors += 1
            current_app.logger.exception('Failed to generate a post for %s.', label)
            continue
        created += 1
        if post.status == POST_STATUS_PUBLISHED:
            published += 1

    message = f'Created {created} post(s), {published} published.'
    if errors:
        message += f' {errors} failed.'
    status = STATUS_FAILED if errors and not created else STATUS_SUCCESS
    return job_result(status, message, posts_created=created, posts_published=published, errors=errors)
