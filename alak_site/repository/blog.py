from sqlalchemy import func

from ..models import BlogCategory, BlogPost, POST_STATUS_PUBLISHED, db
from ..utils import escape_like, utc_now_naive


def get_all_posts(status=None):
    query = BlogPost.query
    if status:
        query = query.filter(BlogPost.status == status)
    return query.order_by(BlogPost.created_at.desc(), BlogPost.id.desc()).all()


def get_post(post_id):
    return db.session.get(BlogPost, post_id)


def get_post_by_slug(slug, published_only=True):
    query = BlogPost.query.filter_by(slug=slug)
    if published_only:
        query = query.filter_by(status=POST_STATUS_PUBLISHED)
    return query.first()


def slug_taken(slug, exclude_id=None):
    query = BlogPost.query.filter(BlogPost.slug == slug)
    if exclude_id:
        query = query.filter(BlogPost.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def published_query(category=None, search=None):
    query = BlogPost.query.filter(BlogPost.status == POST_STATUS_PUBLISHED)
    if category is not None:
        query = query.filter(BlogPost.category_id == category.id)
    if search:
        pattern = f'%{escape_like(search.lower())}%'
        query = query.filter(func.lower(BlogPost.title).like(pattern, escape='\\'))
    return query.order_by(BlogPost.published_at.desc(), BlogPost.id.desc())


def get_published(limit=20, category=None):
    return published_query(category=category).limit(limit).all()


def get_related(post, limit=3):
    if not post.category_id:
        return []
    return published_query().filter(
        BlogPost.category_id == post.category_id,
        BlogPost.id != post.id,
    ).limit(limit).all()


def count_by_status():
    rows = db.session.query(BlogPost.status, func.count(BlogPost.id)).group_by(BlogPost.status).all()
    return dict(rows)


def save_post(post, commit=True):
    db.session.add(post)
    if commit:
        db.session.commit()
    return post


def publish_post(post, commit=True):
    post.status = POST_STATUS_PUBLISHED
    post.published_at = post.published_at or utc_now_naive()
    post.scheduled_for = None
    if commit:
        db.session.commit()
    return post


def increment_views(post, commit=True):
    BlogPost.query.filter_by(id=post.id).update(
        {BlogPost.view_count: BlogPost.view_count + 1},
        synchronize_session=False,
    )
    if commit:
        db.session.commit()


def delete_post(post, commit=True):
    db.session.delete(post)
    if commit:
        db.session.commit()


def get_all_categories():
    return BlogCategory.query.order_by(BlogCategory.sort_order, BlogCategory.name).all()


def get_active_categories():
    return BlogCategory.query.filter_by(is_active=True).order_by(BlogCategory.sort_order, BlogCategory.name).all()


def get_category(category_id):
    return db.session.get(BlogCategory, category_id)


def get_category_by_slug(slug):
    return BlogCategory.query.filter_by(slug=slug).first()


def save_category(category, commit=True):
    db.session.add(category)
    if commit:
        db.session.commit()
    return category


def delete_category(category, commit=True):
    db.session.delete(category)
    if commit:
        db.session.commit()
