import os

import bleach
from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    send_from_directory,
    session,
    url_for,
)
from flask_login import current_user, login_user, logout_user
from slugify import slugify
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from ..audit import record_audit_event
from ..auth import can_assign_role, get_admin_profile, has_min_role, role_required
from ..forms import (
    AdminUserForm,
    BlogCategoryForm,
    BlogPostForm,
    PasswordChangeForm,
    PasswordResetForm,
    PasswordResetRequestForm,
    ProfileForm,
)
from ..models import (
    ADMIN_ROLES,
    AUDIT_ACTIONS,
    INQUIRY_CATEGORY_LABELS,
    INQUIRY_STATUSES,
    NEWS_STATUSES,
    NOTIFICATION_CATEGORIES,
    POST_STATUS_PUBLISHED,
    POST_STATUS_SCHEDULED,
    POST_STATUSES,
    PRODUCT_TYPE_LABELS,
    AdminProfile,
    BlogCategory,
    BlogPost,
    User,
    db,
    normalize_admin_role,
)
from ..notifications import send_password_reset
from ..password_reset import load_reset_user, make_reset_token
from ..rate_limit import ADMIN_LOGIN_SCOPE, PASSWORD_RESET_SCOPE, clear_attempts, is_rate_limited, register_attempt
from ..reports import (
    REPORT_TITLES,
    REPORT_TYPES,
    activity_csv,
    audit_logs_csv,
    build_pdf_report,
    inquiries_csv,
    performance_csv,
    report_filename,
)
from ..repository import admin_profiles, audit_logs, inquiries, inquiry_logs, jobs, news, notifications, oil_prices
from ..repository import blog as blog_repo
from ..services import inquiries as inquiry_service
from ..services.analytics import funnel, inquiry_analytics, performance_stats
from ..services.jobs import STATUS_FAILED
from ..services.news import InvalidTransition, review_article
from ..services.pipeline import JOB_HANDLERS, run_named_job
from ..services.settings_store import load_settings_map, save_settings
from ..repository import settings as settings_repo
from ..uploads import UploadError, remove_upload, resolve_upload_path, save_image, stored_upload_path, upload_url
from ..utils import (
    clean_text,
    get_request_ip,
    optional_text,
    parse_date,
    parse_int,
    parse_positive_int,
    split_list,
    utc_now_naive,
)

admin_bp = Blueprint('admin', __name__)
AUTH_DUMMY_HASH = generate_password_hash('alak-site::dummy-auth-check')
IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
PRICING_RANGES = (7, 14, 30)
ALLOWED_RICH_TEXT_TAGS = [
    'p', 'br', 'strong', 'em', 'b', 'i', 'u', 'blockquote', 'code', 'pre',
    'ul', 'ol', 'li', 'h2', 'h3', 'h4', 'h5', 'h6',
    'a', 'img', 'table', 'thead', 'tbody', 'tr', 'th', 'td', 'hr', 'div', 'span', 'figure', 'figcaption',
]
ALLOWED_RICH_TEXT_ATTRIBUTES = {
    '*': ['class'],
    'a': ['href', 'title', 'target', 'rel'],
    'img': ['src', 'alt', 'title', 'width', 'height'],
}
ALLOWED_RICH_TEXT_PROTOCOLS = ['http', 'https', 'mailto']


def sanitize_html(value, max_length=200000):
    html = (value or '').strip()
    cleaned = bleach.clean(
        html,
        tags=ALLOWED_RICH_TEXT_TAGS,
        attributes=ALLOWED_RICH_TEXT_ATTRIBUTES,
        protocols=ALLOWED_RICH_TEXT_PROTOCOLS,
        strip=True,
    )
    return cleaned[:max_length]


def csv_response(body, filename):
    response = Response(body, mimetype='text/csv')
    response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def inquiry_filters_from_request(args):
    status = args.get('status', '')
    product_type = args.get('product_type', '')
    category = args.get('category', '')
    return {
        'status': status if status in INQUIRY_STATUSES else None,
        'product_type': product_type if product_type in PRODUCT_TYPE_LABELS else None,
        'category': category if category in INQUIRY_CATEGORY_LABELS else None,
        'date_from': parse_date(args.get('date_from')),
        'date_to': parse_date(args.get('date_to')),
    }


@admin_bp.context_processor
def inject_admin_globals():
    profile = get_admin_profile()
    unread = 0
    if profile is not None:
        try:
            unread = notifications.get_unread_count(profile.id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Failed to count unread notifications.')
    return dict(
        admin_profile=profile,
        unread_notifications_count=unread,
        can=lambda min_role: has_min_role(profile, min_role),
    )


@admin_bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    full_path = resolve_upload_path(filename)
    if not full_path or not os.path.isfile(full_path):
        abort(404)
    extension = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
    if extension not in IMAGE_EXTENSIONS:
        abort(404)
    directory, name = os.path.split(full_path)
    return send_from_directory(directory, name, conditional=True, etag=True)


# Auth
@admin_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated and get_admin_profile() is not None:
        return redirect(url_for('admin.dashboard'))
    if request.method == 'POST':
        limit = current_app.config.get('ADMIN_LOGIN_LIMIT', 5)
        window = current_app.config.get('ADMIN_LOGIN_WINDOW_SECONDS', 300)
        limited, seconds = is_rate_limited(ADMIN_LOGIN_SCOPE, limit, window)
        if limited:
            current_app.logger.warning('Admin login rate limited (ip=%s).', get_request_ip())
            flash(f'Too many login attempts. Try again in {seconds} seconds.', 'danger')
            return render_template('admin/login.html'), 429

        email = clean_text(request.form.get('email'), 200).lower()
        password = request.form.get('password', '')
        user = User.query.filter_by(email=email).first()
        password_ok = False
        if user:
            password_ok = user.check_password(password)
        else:
            # Keep response timing closer for unknown emails.
            check_password_hash(AUTH_DUMMY_HASH, password or '')
        profile = user.profile if user else None
        if user and password_ok and profile is not None and profile.is_active:
            clear_attempts(ADMIN_LOGIN_SCOPE)
            session.clear()
            login_user(user)
            now = utc_now_naive()
            user.last_login_at = now
            profile.last_login_at = now
            db.session.commit()
            record_audit_event('login', 'admin_profile', str(profile.id), profile.full_name, actor=profile)
            current_app.logger.info('Admin login (profile=%s).', profile.id)
            return redirect(url_for('admin.dashboard'))

        attempts = register_attempt(ADMIN_LOGIN_SCOPE, window)
        remaining = max(0, limit - attempts)
        if user and password_ok:
            flash('Your account is not active. Contact a super admin.', 'danger')
        elif remaining == 0:
            flash('Too many failed attempts. Please wait 5 minutes and try again.', 'danger')
        else:
            flash(f'Invalid email or password. {remaining} attempt(s) remaining before temporary lock.', 'danger')
    return render_template('admin/login.html')


@admin_bp.route('/logout', methods=['POST'])
def logout():
    profile = get_admin_profile()
    if profile is not None:
        record_audit_event('logout', 'admin_profile', str(profile.id), profile.full_name, actor=profile)
    logout_user()
    session.clear()
    return redirect(url_for('admin.login'))


RESET_REQUESTED_MESSAGE = 'If that email belongs to an active admin, a reset link is on its way.'


@admin_bp.route('/forgot-password', methods=['GET', 'POST'])
def forgot_password():
    if current_user.is_authenticated and get_admin_profile() is not None:
        return redirect(url_for('admin.dashboard'))
    form = PasswordResetRequestForm()
    if request.method == 'POST':
        limit = current_app.config.get('PASSWORD_RESET_LIMIT', 5)
        window = current_app.config.get('PASSWORD_RESET_WINDOW_SECONDS', 3600)
        limited, seconds = is_rate_limited(PASSWORD_RESET_SCOPE, limit, window)
        if limited:
            current_app.logger.warning('Password reset rate limited (ip=%s).', get_request_ip())
            flash(f'Too many reset requests. Try again in {seconds} seconds.', 'danger')
            return render_template('admin/forgot_password.html', form=form), 429
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return render_template('admin/forgot_password.html', form=form), 400
        register_attempt(PASSWORD_RESET_SCOPE, window)

        email = clean_text(form.email.data, 200).lower()
        user = User.query.filter_by(email=email).first()
        profile = user.profile if user else None
        if user is not None and profile is not None and profile.is_active:
            reset_url = url_for('admin.reset_password', token=make_reset_token(user), _external=True)
            if not send_password_reset(user, reset_url):
                current_app.logger.warning('Password reset email not sent (profile=%s).', profile.id)
            current_app.logger.info('Password reset requested (profile=%s).', profile.id)
        flash(RESET_REQUESTED_MESSAGE, 'success')
        return redirect(url_for('admin.login'))
    return render_template('admin/forgot_password.html', form=form)


@admin_bp.route('/reset-password/<token>', methods=['GET', 'POST'])
def reset_password(token):
    user = load_reset_user(token)
    profile = user.profile if user else None
    if user is None or profile is None or not profile.is_active:
        flash('This reset link is invalid or has expired.', 'danger')
        return redirect(url_for('admin.forgot_password'))
    form = PasswordResetForm()
    if request.method == 'POST':
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return render_template('admin/reset_password.html', form=form, token=token), 400
        try:
            user.set_password(form.new_password.data)
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Failed to reset password (profile=%s).', profile.id)
            flash('Failed to reset password. Please try again.', 'danger')
            return redirect(url_for('admin.reset_password', token=token))
        record_audit_event(
            'password_change',
            'admin_profile',
            str(profile.id),
            profile.full_name,
            metadata={'source': 'reset_link'},
            is_sensitive=True,
            actor=profile,
        )
        clear_attempts(ADMIN_LOGIN_SCOPE)
        flash('Password updated. You can sign in now.', 'success')
        return redirect(url_for('admin.login'))
    return render_template('admin/reset_password.html', form=form, token=token)


# Dashboard
@admin_bp.route('/')
@role_required('viewer')
def dashboard():
    profile = get_admin_profile()
    return render_template(
        'admin/dashboard.html',
        stats=inquiries.get_stats(),
        recent_inquiries=inquiries.get_recent(5),
        latest_price=oil_prices.get_latest(),
        post_counts=blog_repo.count_by_status(),
        news_stats=news.get_stats(),
        unread_count=notifications.get_unread_count(profile.id),
    )


# Inquiries
@admin_bp.route('/inquiries')
@role_required('viewer')
def inquiry_list():
    status = request.args.get('status', '')
    status = status if status in INQUIRY_STATUSES else ''
    search = clean_text(request.args.get('q', ''), 120)
    page = parse_int(request.args.get('page'), default=1, min_value=1, max_value=10000)
    items = inquiries.paginate(
        page=page,
        per_page=current_app.config.get('INQUIRIES_PER_PAGE', 15),
        status=status or None,
        search=search or None,
    )
    return render_template(
        'admin/inquiries.html',
        items=items,
        stats=inquiries.get_stats(),
        current_status=status,
        search=search,
        status_options=inquiry_service.status_options(),
    )


@admin_bp.route('/inquiries/<int:id>')
@role_required('viewer')
def inquiry_view(id):
    inquiry = inquiries.get_by_id(id)
    if inquiry is None:
        return render_template('admin/inquiry_view.html', inquiry=None, missing_id=id), 404
    newer_id, older_id = inquiries.get_adjacent_ids(inquiry)
    return render_template(
        'admin/inquiry_view.html',
        inquiry=inquiry,
        logs=inquiry_logs.get_by_inquiry_id(inquiry.id),
        previous_id=newer_id,
        next_id=older_id,
        status_options=inquiry_service.status_options(),
        assignees=admin_profiles.get_all(),
    )


def _inquiry_or_404(id):
    inquiry = inquiries.get_by_id(id)
    if inquiry is None:
        abort(404)
    return inquiry


@admin_bp.route('/inquiries/<int:id>/status', methods=['POST'])
@role_required('editor')
def inquiry_status(id):
    inquiry = _inquiry_or_404(id)
    new_status = request.form.get('status', '')
    old_status = inquiry.status
    try:
        changed = inquiry_service.change_status(inquiry, new_status, actor=get_admin_profile(), note=request.form.get('note'))
    except ValueError:
        flash('Invalid status selected.', 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to update inquiry status (id=%s).', id)
        flash('Failed to update status. Please try again.', 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))

    if changed:
        record_audit_event(
            'update',
            'inquiry',
            str(inquiry.id),
            inquiry.full_name,
            old_data={'status': old_status},
            new_data={'status': new_status},
        )
        flash(f'Status updated to {inquiry.status_label}.', 'success')
    else:
        flash('Status unchanged.', 'info')
    return redirect(url_for('admin.inquiry_view', id=id))


@admin_bp.route('/inquiries/<int:id>/assign', methods=['POST'])
@role_required('editor')
def inquiry_assign(id):
    inquiry = _inquiry_or_404(id)
    raw_assignee = request.form.get('assignee_id', '')
    assignee = None
    if raw_assignee:
        assignee_id = parse_positive_int(raw_assignee)
        assignee = admin_profiles.get_by_id(assignee_id) if assignee_id else None
        if assignee is None or not assignee.is_active:
            flash('Selected team member does not exist.', 'danger')
            return redirect(url_for('admin.inquiry_view', id=id))
    try:
        changed = inquiry_service.assign(inquiry, assignee, actor=get_admin_profile())
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to assign inquiry (id=%s).', id)
        flash('Failed to update assignment. Please try again.', 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))
    if changed:
        flash(f'Assigned to {assignee.full_name}.' if assignee else 'Inquiry unassigned.', 'success')
    return redirect(url_for('admin.inquiry_view', id=id))


@admin_bp.route('/inquiries/<int:id>/notes', methods=['POST'])
@role_required('editor')
def inquiry_note(id):
    inquiry = _inquiry_or_404(id)
    try:
        inquiry_service.add_note(inquiry, request.form.get('note'), actor=get_admin_profile())
    except ValueError as exc:
        flash(str(exc), 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to add inquiry note (id=%s).', id)
        flash('Failed to save note. Please try again.', 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))
    flash('Note added.', 'success')
    return redirect(url_for('admin.inquiry_view', id=id))


@admin_bp.route('/inquiries/<int:id>/delete', methods=['POST'])
@role_required('admin')
def inquiry_delete(id):
    inquiry = _inquiry_or_404(id)
    try:
        snapshot = inquiry_service.delete_inquiry(inquiry)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to delete inquiry (id=%s).', id)
        flash('Failed to delete inquiry.', 'danger')
        return redirect(url_for('admin.inquiry_view', id=id))
    record_audit_event('delete', 'inquiry', str(id), snapshot['full_name'], old_data=snapshot)
    flash('Inquiry deleted.', 'success')
    return redirect(url_for('admin.inquiry_list'))


# Blog posts
def _category_choices():
    return [(0, 'No category')] + [(item.id, item.name) for item in blog_repo.get_all_categories()]


def _render_post_form(form, item):
    return render_template('admin/post_form.html', form=form, item=item)


def _populate_post_form(form, item):
    form.tags.data = ', '.join(item.tags)
    form.key_factors.data = '\n'.join(item.key_factors)
    form.category_id.data = item.category_id or 0
    form.market_outlook.data = item.market_outlook or ''


def _apply_post_form(form, item, profile):
    """Copy validated form data onto ``item``. Returns an error message or None."""
    title = clean_text(form.title.data, 300)
    slug = clean_text(form.slug.data, 300) or slugify(title, max_length=200)
    if not slug:
        return 'Unable to generate a valid post slug.'
    if blog_repo.slug_taken(slug, exclude_id=item.id):
        return 'Another post already uses this slug.'

    content = sanitize_html(form.content.data)
    if not content:
        return 'Content is required.'

    category_id = form.category_id.data or None
    if category_id and blog_repo.get_category(category_id) is None:
        return 'Selected category does not exist.'

    status = form.status.data
    if status == POST_STATUS_SCHEDULED:
        if not form.scheduled_for.data:
            return 'Choose a publish date for scheduled posts.'
        if form.scheduled_for.data <= utc_now_naive():
            return 'The scheduled publish date must be in the future.'

    item.title = title
    item.slug = slug
    item.excerpt = optional_text(form.excerpt.data, 2000)
    item.content = content
    item.category_id = category_id
    item.status = status
    item.scheduled_for = form.scheduled_for.data if status == POST_STATUS_SCHEDULED else None
    if status == POST_STATUS_PUBLISHED and not item.published_at:
        item.published_at = utc_now_naive()
    item.featured_image_alt = optional_text(form.featured_image_alt.data, 300)
    item.author_name = optional_text(form.author_name.data, 200) or item.author_name or profile.full_name
    item.author_role = optional_text(form.author_role.data, 120) or item.author_role or profile.job_title
    item.meta_title = optional_text(form.meta_title.data, 300)
    item.meta_description = optional_text(form.meta_description.data, 500)
    item.canonical_url = optional_text(form.canonical_url.data, 500)
    item.tags = split_list(form.tags.data)
    item.market_outlook = form.market_outlook.data or None
    item.analysis_summary = optional_text(form.analysis_summary.data, 5000)
    item.key_factors = split_list(form.key_factors.data, max_items=10, max_length=300)
    if item.author_id is None:
        item.author_id = profile.id

    image = request.files.get('featured_image')
    if image and image.filename:
        try:
            relative_path = save_image(image, 'posts')
        except UploadError as exc:
            return str(exc)
        previous = stored_upload_path(item.featured_image)
        item.featured_image = upload_url(relative_path)
        if previous:
            remove_upload(previous)
    return None


@admin_bp.route('/posts')
@role_required('viewer')
def posts():
    status = request.args.get('status', '')
    status = status if status in POST_STATUSES else ''
    return render_template(
        'admin/posts.html',
        items=blog_repo.get_all_posts(status=status or None),
        counts=blog_repo.count_by_status(),
        current_status=status,
        statuses=POST_STATUSES,
    )


@admin_bp.route('/posts/add', methods=['GET', 'POST'])
@role_required('editor')
def post_add():
    form = BlogPostForm()
    form.category_id.choices = _category_choices()
    if request.method == 'POST':
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return _render_post_form(form, None)
        profile = get_admin_profile()
        item = BlogPost()
        error = _apply_post_form(form, item, profile)
        if error:
            flash(error, 'danger')
            return _render_post_form(form, None)
        try:
            blog_repo.save_post(item)
        except IntegrityError:
            db.session.rollback()
            flash('Unable to create post due to duplicate data.', 'danger')
            return _render_post_form(form, None)
        record_audit_event('create', 'blog_post', str(item.id), item.title, new_data={'status': item.status, 'slug': item.slug})
        flash('Post created.', 'success')
        return redirect(url_for('admin.posts'))
    return _render_post_form(form, None)


@admin_bp.route('/posts/<int:id>/edit', methods=['GET', 'POST'])
@role_required('editor')
def post_edit(id):
    item = BlogPost.query.get_or_404(id)
    if request.method == 'POST':
        form = BlogPostForm()
        form.category_id.choices = _category_choices()
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return _render_post_form(form, item)
        old_data = {'title': item.title, 'status': item.status, 'slug': item.slug}
        error = _apply_post_form(form, item, get_admin_profile())
        if error:
            db.session.rollback()
            flash(error, 'danger')
            return _render_post_form(form, item)
        try:
            blog_repo.save_post(item)
        except IntegrityError:
            db.session.rollback()
            flash('Unable to update post due to duplicate data.', 'danger')
            return _render_post_form(form, item)
        record_audit_event(
            'update',
            'blog_post',
            str(item.id),
            item.title,
            old_data=old_data,
            new_data={'title': item.title, 'status': item.status, 'slug': item.slug},
        )
        flash('Post updated.', 'success')
        return redirect(url_for('admin.posts'))

    form = BlogPostForm(obj=item)
    form.category_id.choices = _category_choices()
    _populate_post_form(form, item)
    return _render_post_form(form, item)


@admin_bp.route('/posts/<int:id>/publish', methods=['POST'])
@role_required('editor')
def post_publish(id):
    item = BlogPost.query.get_or_404(id)
    old_status = item.status
    blog_repo.publish_post(item)
    record_audit_event('update', 'blog_post', str(item.id), item.title, old_data={'status': old_status}, new_data={'status': item.status})
    flash('Post published.', 'success')
    return redirect(url_for('admin.posts'))


@admin_bp.route('/posts/<int:id>/delete', methods=['POST'])
@role_required('editor')
def post_delete(id):
    item = BlogPost.query.get_or_404(id)
    snapshot = {'title': item.title, 'slug': item.slug, 'status': item.status}
    image_path = stored_upload_path(item.featured_image)
    try:
        news.unlink_blog_post(item.id)
        oil_prices.unlink_blog_post(item.id)
        blog_repo.delete_post(item)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to delete post (id=%s).', id)
        flash('Failed to delete post. Please try again.', 'danger')
        return redirect(url_for('admin.posts'))
    if image_path:
        remove_upload(image_path)
    record_audit_event('delete', 'blog_post', str(id), snapshot['title'], old_data=snapshot)
    flash('Post deleted.', 'success')
    return redirect(url_for('admin.posts'))


# Blog categories
@admin_bp.route('/categories')
@role_required('viewer')
def categories():
    items = blog_repo.get_all_categories()
    return render_template('admin/categories.html', items=items)


def _save_category_form(form, item):
    name = clean_text(form.name.data, 120)
    slug = slugify(name, max_length=120)
    if not slug:
        return 'Unable to generate a valid category slug.'
    existing = blog_repo.get_category_by_slug(slug)
    if existing is not None and existing.id != item.id:
        return 'A category with that name already exists.'
    item.name = name
    item.slug = slug
    item.description = optional_text(form.description.data, 1000)
    item.color = optional_text(form.color.data, 20)
    item.icon = optional_text(form.icon.data, 60)
    item.sort_order = form.sort_order.data or 0
    item.is_active = bool(form.is_active.data)
    item.auto_post_enabled = bool(form.auto_post_enabled.data)
    item.auto_post_min_relevance = form.auto_post_min_relevance.data if form.auto_post_min_relevance.data is not None else 0.7
    item.auto_post_requires_review = bool(form.auto_post_requires_review.data)
    return None


@admin_bp.route('/categories/add', methods=['GET', 'POST'])
@role_required('editor')
def category_add():
    form = BlogCategoryForm()
    if request.method == 'POST':
        item = BlogCategory()
        error = None if form.validate() else next(iter(form.errors.values()))[0]
        error = error or _save_category_form(form, item)
        if error:
            flash(error, 'danger')
            return render_template('admin/category_form.html', form=form, item=None)
        try:
            blog_repo.save_category(item)
        except IntegrityError:
            db.session.rollback()
            flash('Unable to create category due to duplicate data.', 'danger')
            return render_template('admin/category_form.html', form=form, item=None)
        record_audit_event('create', 'blog_category', str(item.id), item.name)
        flash('Category created.', 'success')
        return redirect(url_for('admin.categories'))
    return render_template('admin/category_form.html', form=form, item=None)


@admin_bp.route('/categories/<int:id>/edit', methods=['GET', 'POST'])
@role_required('editor')
def category_edit(id):
    item = BlogCategory.query.get_or_404(id)
    form = BlogCategoryForm() if request.method == 'POST' else BlogCategoryForm(obj=item)
    if request.method == 'POST':
        error = None if form.validate() else next(iter(form.errors.values()))[0]
        error = error or _save_category_form(form, item)
        if error:
            db.session.rollback()
            flash(error, 'danger')
            return render_template('admin/category_form.html', form=form, item=item)
        try:
            blog_repo.save_category(item)
        except IntegrityError:
            db.session.rollback()
            flash('Unable to update category due to duplicate data.', 'danger')
            return render_template('admin/category_form.html', form=form, item=item)
        record_audit_event('update', 'blog_category', str(item.id), item.name)
        flash('Category updated.', 'success')
        return redirect(url_for('admin.categories'))
    return render_template('admin/category_form.html', form=form, item=item)


@admin_bp.route('/categories/<int:id>/delete', methods=['POST'])
@role_required('editor')
def category_delete(id):
    item = BlogCategory.query.get_or_404(id)
    if item.posts:
        flash('Cannot delete a category that still has posts. Move or delete them first.', 'danger')
        return redirect(url_for('admin.categories'))
    name = item.name
    try:
        news.unlink_category(item.id)
        blog_repo.delete_category(item)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to delete category (id=%s).', id)
        flash('Failed to delete category. Please try again.', 'danger')
        return redirect(url_for('admin.categories'))
    record_audit_event('delete', 'blog_category', str(id), name)
    flash('Category deleted.', 'success')
    return redirect(url_for('admin.categories'))


# News review
@admin_bp.route('/news')
@role_required('viewer')
def news_list():
    status = request.args.get('status', '')
    status = status if status in NEWS_STATUSES else ''
    try:
        min_relevance = float(request.args.get('min_relevance', ''))
    except ValueError:
        min_relevance = None
    if min_relevance is not None:
        min_relevance = max(0.0, min(1.0, min_relevance))
    return render_template(
        'admin/news.html',
        items=news.get_all(status=status or None, min_relevance=min_relevance),
        stats=news.get_stats(),
        current_status=status,
        min_relevance=min_relevance,
        statuses=NEWS_STATUSES,
    )


@admin_bp.route('/news/<int:id>/review', methods=['POST'])
@role_required('editor')
def news_review(id):
    article = news.get_by_id(id)
    if article is None:
        abort(404)
    decision = request.form.get('decision', '')
    try:
        review_article(article, decision, reviewer=get_admin_profile(), notes=request.form.get('notes'))
    except InvalidTransition as exc:
        flash(str(exc), 'danger')
        return redirect(url_for('admin.news_list'))
    record_audit_event(
        'update',
        'news_article',
        str(article.id),
        article.title,
        new_data={'auto_post_status': article.auto_post_status},
    )
    flash(f'Article {article.auto_post_status}.', 'success')
    return redirect(url_for('admin.news_list', status=request.form.get('return_status', '')))


# Jobs
@admin_bp.route('/jobs')
@role_required('viewer')
def jobs_overview():
    return render_template(
        'admin/jobs.html',
        jobs=jobs.get_all_jobs(),
        api_configs=jobs.get_api_configs(),
        execution_logs=jobs.get_execution_logs(50),
    )


@admin_bp.route('/jobs/<int:id>/logs')
@role_required('viewer')
def job_logs(id):
    job = jobs.get_job(id)
    if job is None:
        abort(404)
    return render_template('admin/job_logs.html', job=job, logs=jobs.get_logs_by_job(job.id, 20))


@admin_bp.route('/jobs/<int:id>/toggle', methods=['POST'])
@role_required('admin')
def job_toggle(id):
    job = jobs.get_job(id)
    if job is None:
        abort(404)
    jobs.toggle_job_active(job)
    record_audit_event('update', 'scheduled_job', str(job.id), job.job_name, new_data={'is_active': job.is_active})
    flash(f"Job {job.job_name} {'enabled' if job.is_active else 'paused'}.", 'success')
    return redirect(url_for('admin.jobs_overview'))


@admin_bp.route('/jobs/<int:id>/run', methods=['POST'])
@role_required('admin')
def job_run(id):
    job = jobs.get_job(id)
    if job is None:
        abort(404)
    if job.job_name not in JOB_HANDLERS:
        flash(f'Job {job.job_name} cannot be run from here.', 'danger')
        return redirect(url_for('admin.jobs_overview'))
    result = run_named_job(job.job_name, force=True, triggered_by='manual')
    record_audit_event('update', 'scheduled_job', str(job.id), job.job_name, metadata={'action': 'run', 'status': result['status']})
    category = 'danger' if result['status'] == STATUS_FAILED else 'success'
    flash(f"Job {job.job_name}: {result['message']}", category)
    return redirect(url_for('admin.jobs_overview'))


@admin_bp.route('/apis/<int:id>/toggle', methods=['POST'])
@role_required('admin')
def api_toggle(id):
    api_config = jobs.get_api_config(id)
    if api_config is None:
        abort(404)
    jobs.toggle_api_active(api_config)
    record_audit_event('update', 'api_config', str(api_config.id), api_config.api_name, new_data={'is_active': api_config.is_active})
    flash(f"API {api_config.api_name} {'enabled' if api_config.is_active else 'disabled'}.", 'success')
    return redirect(url_for('admin.jobs_overview'))


# Pricing
@admin_bp.route('/pricing')
@role_required('viewer')
def pricing():
    days = parse_int(request.args.get('days'), default=30)
    if days not in PRICING_RANGES:
        days = 30
    return render_template(
        'admin/pricing.html',
        latest=oil_prices.get_latest(),
        history=oil_prices.get_history(days=days),
        days=days,
        ranges=PRICING_RANGES,
    )


# Analytics
@admin_bp.route('/analytics')
@role_required('viewer')
def analytics():
    date_from = parse_date(request.args.get('date_from'))
    date_to = parse_date(request.args.get('date_to'))
    items = inquiries.filtered_query(date_from=date_from, date_to=date_to).all()
    return render_template(
        'admin/analytics.html',
        analytics=inquiry_analytics(items),
        date_from=date_from,
        date_to=date_to,
    )


# Audit logs
def _audit_filters():
    action = request.args.get('action', '')
    return {
        'action': action if action in AUDIT_ACTIONS else None,
        'resource_type': clean_text(request.args.get('resource_type', ''), 60) or None,
        'user_id': parse_positive_int(request.args.get('user_id')),
        'date_from': parse_date(request.args.get('date_from')),
        'date_to': parse_date(request.args.get('date_to')),
    }


@admin_bp.route('/audit-logs')
@role_required('admin')
def audit_log_list():
    filters = _audit_filters()
    page = parse_int(request.args.get('page'), default=1, min_value=1, max_value=10000)
    items = audit_logs.paginate(page=page, per_page=current_app.config.get('AUDIT_LOGS_PER_PAGE', 20), **filters)
    return render_template(
        'admin/audit_logs.html',
        items=items,
        filters=filters,
        actions=AUDIT_ACTIONS,
        resource_types=audit_logs.get_resource_types(),
        profiles=admin_profiles.get_all(include_inactive=True),
    )


@admin_bp.route('/audit-logs/export')
@role_required('admin')
def audit_log_export():
    filters = _audit_filters()
    rows, count = audit_logs.get_all(limit=10000, **filters)
    filename = report_filename('audit-logs', 'csv', utc_now_naive().date())
    record_audit_event('export', 'audit_log', None, filename, metadata={'format': 'csv', 'rows': count})
    return csv_response(audit_logs_csv(rows), filename)


# Notifications
@admin_bp.route('/notifications')
@role_required('viewer')
def notification_list():
    profile = get_admin_profile()
    category = request.args.get('category', '')
    category = category if category in NOTIFICATION_CATEGORIES else ''
    read_filter = request.args.get('read', '')
    read = {'read': True, 'unread': False}.get(read_filter)
    return render_template(
        'admin/notifications.html',
        items=notifications.get_all(profile.id, category=category or None, read=read, limit=100),
        current_category=category,
        current_read=read_filter if read is not None else '',
        categories=NOTIFICATION_CATEGORIES,
    )


@admin_bp.route('/notifications/<int:id>/read', methods=['POST'])
@role_required('viewer')
def notification_read(id):
    item = notifications.get_for_profile(get_admin_profile().id, id)
    if item is None:
        abort(404)
    notifications.mark_as_read(item)
    if request.form.get('follow') and item.action_url and item.action_url.startswith('/'):
        return redirect(item.action_url)
    return redirect(url_for('admin.notification_list'))


@admin_bp.route('/notifications/read-all', methods=['POST'])
@role_required('viewer')
def notifications_read_all():
    updated = notifications.mark_all_as_read(get_admin_profile().id)
    flash(f'{updated} notification(s) marked as read.', 'success')
    return redirect(url_for('admin.notification_list'))


@admin_bp.route('/notifications/<int:id>/delete', methods=['POST'])
@role_required('viewer')
def notification_delete(id):
    item = notifications.get_for_profile(get_admin_profile().id, id)
    if item is None:
        abort(404)
    notifications.delete(item)
    flash('Notification deleted.', 'success')
    return redirect(url_for('admin.notification_list'))


@admin_bp.route('/notifications/delete-all', methods=['POST'])
@role_required('viewer')
def notifications_delete_all():
    removed = notifications.delete_all(get_admin_profile().id)
    flash(f'{removed} notification(s) deleted.', 'success')
    return redirect(url_for('admin.notification_list'))


# Settings
SETTING_FIELD_PREFIX = 'setting__'
SETTING_ORIGINAL_PREFIX = 'setting_orig__'


@admin_bp.route('/settings', methods=['GET', 'POST'])
@role_required('admin')
def settings():
    if request.method == 'POST':
        persisted = load_settings_map()
        snapshot = {}
        submitted = {}
        for field, value in request.form.items():
            if not field.startswith(SETTING_FIELD_PREFIX):
                continue
            key = field[len(SETTING_FIELD_PREFIX):]
            if key in persisted:
                submitted[key] = value
                snapshot[key] = request.form.get(f'{SETTING_ORIGINAL_PREFIX}{key}', persisted[key])

        new_key = slugify(request.form.get('new_key', ''), separator='_', max_length=100)
        if new_key:
            if new_key in persisted:
                flash(f'Setting "{new_key}" already exists.', 'danger')
                return redirect(url_for('admin.settings'))
            submitted[new_key] = request.form.get('new_value', '')

        try:
            changes = save_settings(submitted, snapshot, updated_by=get_admin_profile().id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Failed to save settings.')
            flash('Failed to save settings. Please try again.', 'danger')
            return redirect(url_for('admin.settings'))

        if not changes:
            flash('No changes to save.', 'info')
            return redirect(url_for('admin.settings'))
        record_audit_event(
            'settings_change',
            'site_settings',
            None,
            ', '.join(sorted(changes)),
            old_data={key: snapshot.get(key) for key in changes},
            new_data=changes,
        )
        flash(f'{len(changes)} setting(s) saved.', 'success')
        return redirect(url_for('admin.settings'))

    values = load_settings_map()
    grouped = {}
    for row in settings_repo.get_all():
        grouped.setdefault(row.category, []).append(row)
    return render_template(
        'admin/settings.html',
        grouped=grouped,
        values=values,
        field_prefix=SETTING_FIELD_PREFIX,
        original_prefix=SETTING_ORIGINAL_PREFIX,
    )


# Profile
@admin_bp.route('/profile', methods=['GET', 'POST'])
@role_required('viewer')
def profile():
    profile = get_admin_profile()
    form = ProfileForm() if request.method == 'POST' else ProfileForm(obj=profile)
    password_form = PasswordChangeForm(formdata=None)
    if request.method == 'POST':
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return render_template('admin/profile.html', form=form, password_form=password_form), 400
        changes = {
            'full_name': clean_text(form.full_name.data, 200),
            'phone': optional_text(form.phone.data, 50),
            'job_title': optional_text(form.job_title.data, 120),
            'department': optional_text(form.department.data, 120),
        }
        old_data = {field: getattr(profile, field) for field in changes}
        admin_profiles.update(profile, changes)
        record_audit_event(
            'update',
            'admin_profile',
            str(profile.id),
            profile.full_name,
            old_data=old_data,
            new_data=changes,
            metadata={'source': 'profile_settings'},
        )
        flash('Profile updated.', 'success')
        return redirect(url_for('admin.profile'))
    return render_template('admin/profile.html', form=form, password_form=password_form)


@admin_bp.route('/profile/password', methods=['POST'])
@role_required('viewer')
def profile_password():
    profile = get_admin_profile()
    form = PasswordChangeForm()
    if not form.validate():
        for messages in form.errors.values():
            flash(messages[0], 'danger')
        return redirect(url_for('admin.profile'))
    if not current_user.check_password(form.current_password.data):
        flash('Current password is incorrect.', 'danger')
        return redirect(url_for('admin.profile'))
    current_user.set_password(form.new_password.data)
    db.session.commit()
    record_audit_event('password_change', 'admin_profile', str(profile.id), profile.full_name, is_sensitive=True)
    flash('Password changed.', 'success')
    return redirect(url_for('admin.profile'))


@admin_bp.route('/profile/avatar', methods=['POST'])
@role_required('viewer')
def profile_avatar():
    profile = get_admin_profile()
    if request.form.get('remove'):
        previous = stored_upload_path(profile.avatar_url)
        admin_profiles.update(profile, {'avatar_url': None})
        if previous:
            remove_upload(previous)
        flash('Avatar removed.', 'success')
        return redirect(url_for('admin.profile'))
    try:
        relative_path = save_image(
            request.files.get('file'),
            'avatars',
            prefix=f'{profile.id}-',
            max_bytes=current_app.config.get('AVATAR_MAX_BYTES', 2 * 1024 * 1024),
        )
    except UploadError as exc:
        flash(str(exc), 'danger')
        return redirect(url_for('admin.profile'))
    previous = stored_upload_path(profile.avatar_url)
    admin_profiles.update(profile, {'avatar_url': upload_url(relative_path)})
    if previous:
        remove_upload(previous)
    flash('Avatar updated.', 'success')
    return redirect(url_for('admin.profile'))


# Admin users
@admin_bp.route('/users')
@role_required('super_admin')
def users():
    return render_template(
        'admin/users.html',
        items=admin_profiles.get_all(include_inactive=True),
        roles=ADMIN_ROLES,
    )


@admin_bp.route('/users/add', methods=['GET', 'POST'])
@role_required('super_admin')
def user_add():
    form = AdminUserForm()
    if request.method == 'POST':
        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return render_template('admin/user_form.html', form=form), 400
        actor = get_admin_profile()
        email = form.email.data.strip().lower()
        role = normalize_admin_role(form.role.data)
        if not can_assign_role(actor, role):
            flash('You cannot assign that role.', 'danger')
            return render_template('admin/user_form.html', form=form), 403
        if User.query.filter_by(email=email).first():
            flash('A user with that email already exists.', 'danger')
            return render_template('admin/user_form.html', form=form), 400

        user = User(email=email)
        user.set_password(form.password.data)
        db.session.add(user)
        db.session.flush()
        item = AdminProfile(
            user_id=user.id,
            email=email,
            full_name=clean_text(form.full_name.data, 200),
            role=role,
            created_by=actor.id,
        )
        db.session.add(item)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            flash('Unable to create user due to duplicate data.', 'danger')
            return render_template('admin/user_form.html', form=form), 400
        record_audit_event('create', 'admin_profile', str(item.id), item.full_name, new_data={'email': email, 'role': role})
        flash(f'Admin user "{item.full_name}" created.', 'success')
        return redirect(url_for('admin.users'))
    return render_template('admin/user_form.html', form=form)


@admin_bp.route('/users/<int:id>/role', methods=['POST'])
@role_required('super_admin')
def user_role(id):
    item = admin_profiles.get_by_id(id)
    if item is None:
        abort(404)
    actor = get_admin_profile()
    new_role = normalize_admin_role(request.form.get('role'), default='')
    if item.id == actor.id:
        flash('You cannot change your own role.', 'danger')
    elif not new_role or not can_assign_role(actor, new_role):
        flash('You cannot assign that role.', 'danger')
    elif new_role == item.role_key:
        flash('Role unchanged.', 'info')
    else:
        old_role = item.role_key
        admin_profiles.update(item, {'role': new_role})
        record_audit_event(
            'role_change',
            'admin_profile',
            str(item.id),
            item.full_name,
            old_data={'role': old_role},
            new_data={'role': new_role},
            is_sensitive=True,
        )
        flash(f'{item.full_name} is now {item.role_label}.', 'success')
    return redirect(url_for('admin.users'))


@admin_bp.route('/users/<int:id>/toggle-active', methods=['POST'])
@role_required('super_admin')
def user_toggle_active(id):
    item = admin_profiles.get_by_id(id)
    if item is None:
        abort(404)
    if item.id == get_admin_profile().id:
        flash('You cannot deactivate your own account.', 'danger')
        return redirect(url_for('admin.users'))
    admin_profiles.update(item, {'is_active': not item.is_active})
    record_audit_event('update', 'admin_profile', str(item.id), item.full_name, new_data={'is_active': item.is_active})
    flash(f"{item.full_name} {'activated' if item.is_active else 'deactivated'}.", 'success')
    return redirect(url_for('admin.users'))


# Reports
def _report_data(report_type, filters):
    items = []
    audit_rows = []
    if report_type in ('inquiries', 'performance'):
        items = inquiries.get_filtered(**filters)
    if report_type == 'activity':
        audit_rows, _ = audit_logs.get_all(
            date_from=filters['date_from'],
            date_to=filters['date_to'],
            limit=10000,
        )
    return items, audit_rows


@admin_bp.route('/reports')
@role_required('viewer')
def reports():
    report_type = request.args.get('report', 'inquiries')
    report_type = report_type if report_type in REPORT_TYPES else 'inquiries'
    filters = inquiry_filters_from_request(request.args)
    items, audit_rows = _report_data(report_type, filters)
    stats = performance_stats(items)
    return render_template(
        'admin/reports.html',
        report_type=report_type,
        report_titles=REPORT_TITLES,
        filters=filters,
        items=items[:50],
        total_items=len(items),
        audit_rows=audit_rows[:50],
        total_audit_rows=len(audit_rows),
        stats=stats,
        funnel=funnel(stats),
        status_options=inquiry_service.status_options(),
        product_labels=PRODUCT_TYPE_LABELS,
        category_labels=INQUIRY_CATEGORY_LABELS,
    )


@admin_bp.route('/reports/export')
@role_required('viewer')
def reports_export():
    report_type = request.args.get('report', '')
    export_format = request.args.get('format', 'csv')
    if report_type not in REPORT_TYPES or export_format not in ('csv', 'pdf'):
        abort(404)
    filters = inquiry_filters_from_request(request.args)
    items, audit_rows = _report_data(report_type, filters)
    now = utc_now_naive()
    filename = report_filename(report_type, export_format, now.date())

    if export_format == 'pdf':
        body = build_pdf_report(
            report_type,
            generated_at=now,
            company_name=current_app.config.get('COMPANY_NAME', ''),
            inquiries=items,
            audit_rows=audit_rows,
            max_rows=current_app.config.get('PDF_MAX_ROWS', 30),
        )
        response = Response(body, mimetype='application/pdf')
        response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
    elif report_type == 'inquiries':
        response = csv_response(inquiries_csv(items), filename)
    elif report_type == 'activity':
        response = csv_response(activity_csv(audit_rows), filename)
    else:
        response = csv_response(performance_csv(items, now), filename)

    record_audit_event(
        'export',
        'report',
        report_type,
        filename,
        metadata={
            'format': export_format,
            'rows': len(audit_rows) if report_type == 'activity' else len(items),
            'filters': {key: value for key, value in filters.items() if value},
        },
    )
    return response
