from sqlalchemy import func

from ..models import NEWS_STATUS_APPROVED, NEWS_STATUSES, NewsArticle, db


def get_all(status=None, min_relevance=None, limit=100):
    query = NewsArticle.query
    if status:
        query = query.filter(NewsArticle.auto_post_status == status)
    if min_relevance is not None:
        query = query.filter(NewsArticle.relevance_score >= min_relevance)
    return query.order_by(
        NewsArticle.relevance_score.desc(),
        NewsArticle.published_at.desc(),
        NewsArticle.id.desc(),
    ).limit(limit).all()


def get_by_id(article_id):
    return db.session.get(NewsArticle, article_id)


def get_stats():
    rows = db.session.query(
        NewsArticle.auto_post_status,
        func.count(NewsArticle.id),
    ).group_by(NewsArticle.auto_post_status).all()
    stats = {status: 0 for status in NEWS_STATUSES}
    stats.update(dict(rows))
    stats['total'] = sum(count for _, count in rows)
    return stats


def set_review(article, status, reviewer_id, notes, reviewed_at, commit=True):
    article.auto_post_status = status
    article.reviewed_by = reviewer_id
    article.review_notes = notes
    article.reviewed_at = reviewed_at
    if commit:
        db.session.commit()
    return article


def unlink_blog_post(post_id, commit=False):
    updated = NewsArticle.query.filter_by(blog_post_id=post_id).update(
        {NewsArticle.blog_post_id: None}, synchronize_session=False
    )
    if commit:
        db.session.commit()
    return updated


def unlink_category(category_id, commit=False):
    updated = NewsArticle.query.filter_by(target_category_id=category_id).update(
        {NewsArticle.target_category_id: None}, synchronize_session=False
    )
    if commit:
        db.session.commit()
    return updated


def get_existing_external_ids(external_ids):
    ids = [value for value in external_ids if value]
    if not ids:
        return set()
    rows = db.session.query(NewsArticle.external_id).filter(NewsArticle.external_id.in_(ids)).all()
    return {row[0] for row in rows}


def get_latest_fetched_at():
    return db.session.query(func.max(NewsArticle.fetched_at)).scalar()


def get_ready_to_post(limit=20):
    return NewsArticle.query.filter(
        NewsArticle.auto_post_status == NEWS_STATUS_APPROVED,
        NewsArticle.blog_post_id.is_(None),
    ).order_by(NewsArticle.relevance_score.desc(), NewsArticle.id.asc()).limit(limit).all()
