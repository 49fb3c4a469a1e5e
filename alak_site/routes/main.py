from html import escape as xml_escape

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from ..forms import InquiryForm
from ..models import db
from ..rate_limit import CONTACT_FORM_SCOPE, is_rate_limited, register_attempt
from ..repository import blog as blog_repo
from ..repository import oil_prices
from ..services.inquiries import submit_inquiry
from ..services.settings_store import is_feature_enabled, load_settings_map
from ..utils import clean_text, get_request_ip, get_user_agent, parse_int

main_bp = Blueprint('main', __name__)

SERVICE_LINES = (
    {
        'key': 'crude-oil',
        'title': 'Crude Oil Trading',
        'summary': 'Sourcing and offtake of Bonny Light, Brent-linked and other West African grades for verified refiners and traders.',
    },
    {
        'key': 'pms',
        'title': 'Premium Motor Spirit',
        'summary': 'Bulk PMS supply from vetted depots with documented quality and quantity inspection.',
    },
    {
        'key': 'ago',
        'title': 'Automotive Gas Oil',
        'summary': 'Diesel cargoes and truck-out volumes for industrial, marine and haulage customers.',
    },
    {
        'key': 'jet-fuel',
        'title': 'Aviation Turbine Kerosene',
        'summary': 'Jet A-1 supply to aviation fuel handlers under international specification.',
    },
)


def get_public_base_url():
    configured = (current_app.config.get('APP_BASE_URL') or '').strip()
    if configured.startswith('http://') or configured.startswith('https://'):
        return configured.rstrip('/')
    return request.url_root.rstrip('/')


def absolute_public_url(path):
    if path.startswith('http://') or path.startswith('https://'):
        return path
    if not path.startswith('/'):
        path = f'/{path}'
    return f"{get_public_base_url()}{path}"


def format_sitemap_lastmod(dt_value):
    if not dt_value:
        return None
    return dt_value.strftime('%Y-%m-%dT%H:%M:%SZ')


def build_sitemap_entry(path, lastmod=None, changefreq='weekly', priority='0.6'):
    lines = [
        '  <url>',
        f"    <loc>{xml_escape(absolute_public_url(path))}</loc>",
    ]
    formatted_lastmod = format_sitemap_lastmod(lastmod)
    if formatted_lastmod:
        lines.append(f"    <lastmod>{formatted_lastmod}</lastmod>")
    if changefreq:
        lines.append(f"    <changefreq>{changefreq}</changefreq>")
    if priority:
        lines.append(f"    <priority>{priority}</priority>")
    lines.append('  </url>')
    return '\n'.join(lines)


@main_bp.route('/')
def index():
    latest_price = oil_prices.get_latest()
    latest_posts = blog_repo.get_published(limit=3)
    return render_template(
        'index.html',
        latest_price=latest_price,
        latest_posts=latest_posts,
        service_lines=SERVICE_LINES,
    )


@main_bp.route('/about')
def about():
    return render_template('about.html')


@main_bp.route('/services')
def services():
    return render_template('services.html', service_lines=SERVICE_LINES)


@main_bp.route('/compliance')
def compliance():
    settings = load_settings_map(public_only=True)
    show_bar = is_feature_enabled(settings, 'show_compliance_bar')
    return render_template(
        'compliance.html',
        show_rc_number=show_bar and is_feature_enabled(settings, 'show_rc_number') and bool(settings.get('rc_number')),
        show_tin_number=show_bar and is_feature_enabled(settings, 'show_tin_number') and bool(settings.get('tin_number')),
    )


@main_bp.route('/contact', methods=['GET', 'POST'])
def contact():
    form = InquiryForm()
    if request.method == 'POST':
        limit = current_app.config.get('CONTACT_FORM_LIMIT', 10)
        window = current_app.config.get('CONTACT_FORM_WINDOW_SECONDS', 3600)
        limited, seconds = is_rate_limited(CONTACT_FORM_SCOPE, limit, window)
        if limited:
            current_app.logger.warning('Contact form rate limited (ip=%s, limit=%s, window=%ss).', get_request_ip(), limit, window)
            flash(f'Too many inquiries from this address. Please wait {seconds} seconds and try again.', 'danger')
            return redirect(url_for('main.contact'))
        register_attempt(CONTACT_FORM_SCOPE, window)

        if not form.validate():
            for messages in form.errors.values():
                flash(messages[0], 'danger')
            return render_template('contact.html', form=form), 400

        try:
            submit_inquiry(
                form.cleaned_data(),
                ip_address=get_request_ip(),
                user_agent=get_user_agent(),
                source=request.form.get('source'),
            )
        except Exception:
            db.session.rollback()
            current_app.logger.exception('Failed to save contact inquiry.')
            flash('We could not submit your inquiry right now. Please try again shortly.', 'danger')
            return render_template('contact.html', form=form), 500

        flash('Thank you! Your inquiry has been received and our team will contact you shortly.', 'success')
        return redirect(url_for('main.contact'))
    return render_template('contact.html', form=form)


@main_bp.route('/blog')
def blog():
    page = parse_int(request.args.get('page'), default=1, min_value=1, max_value=1000)
    category_slug = clean_text(request.args.get('category', ''), 120)
    search = clean_text(request.args.get('q', ''), 120)

    category = blog_repo.get_category_by_slug(category_slug) if category_slug else None
    posts = blog_repo.published_query(category=category, search=search).paginate(
        page=page,
        per_page=current_app.config.get('BLOG_POSTS_PER_PAGE', 9),
        error_out=False,
    )
    return render_template(
        'blog.html',
        posts=posts,
        categories=blog_repo.get_active_categories(),
        current_category=category_slug,
        search=search,
    )


@main_bp.route('/blog/<slug>')
def post(slug):
    post = blog_repo.get_post_by_slug(slug, published_only=True)
    if post is None:
        abort(404)
    try:
        blog_repo.increment_views(post)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to increment view count (post=%s).', post.id)
    db.session.refresh(post)
    return render_template('post.html', post=post, related_posts=blog_repo.get_related(post, limit=3))


@main_bp.route('/sitemap.xml')
def sitemap_xml():
    entries = [
        build_sitemap_entry(url_for('main.index'), changefreq='weekly', priority='1.0'),
        build_sitemap_entry(url_for('main.about'), changefreq='monthly', priority='0.6'),
        build_sitemap_entry(url_for('main.services'), changefreq='monthly', priority='0.9'),
        build_sitemap_entry(url_for('main.compliance'), changefreq='monthly', priority='0.5'),
        build_sitemap_entry(url_for('main.blog'), changefreq='daily', priority='0.8'),
        build_sitemap_entry(url_for('main.contact'), changefreq='monthly', priority='0.7'),
    ]
    for item in blog_repo.published_query().all():
        entries.append(
            build_sitemap_entry(
                url_for('main.post', slug=item.slug),
                lastmod=item.updated_at or item.published_at,
                changefreq='monthly',
                priority='0.6',
            )
        )

    xml_body = '\n'.join([
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        *entries,
        '</urlset>',
    ])
    response = current_app.response_class(xml_body, mimetype='application/xml')
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response


@main_bp.route('/robots.txt')
def robots_txt():
    sitemap_url = absolute_public_url(url_for('main.sitemap_xml'))
    body = '\n'.join([
        'User-agent: *',
        'Allow: /',
        'Disallow: /admin/',
        'Disallow: /api/',
        '',
        f'Sitemap: {sitemap_url}',
        '',
    ])
    response = current_app.response_class(body, mimetype='text/plain')
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response
