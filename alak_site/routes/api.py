"""JSON endpoints: public contact intake, the admin's own profile, price feed, cron jobs."""
import secrets

from flask import Blueprint, current_app, jsonify, request

from ..audit import record_audit_event
from ..auth import api_profile_required, get_admin_profile
from ..forms import InquiryForm, first_errors
from ..models import db
from ..rate_limit import CONTACT_FORM_SCOPE, is_rate_limited, register_attempt
from ..repository import admin_profiles, inquiries, oil_prices
from ..services.inquiries import submit_inquiry
from ..services.jobs import STATUS_FAILED
from ..services.pipeline import CRON_JOB_KEYS, run_named_job
from ..uploads import UploadError, remove_upload, save_image, stored_upload_path, upload_url
from ..utils import clean_text, get_request_ip, get_user_agent, optional_text

api_bp = Blueprint('api', __name__)

PROFILE_OPTIONAL_FIELDS = {
    'phone': 50,
    'job_title': 120,
    'department': 120,
    'avatar_url': 500,
}
AVATAR_SUBDIR = 'avatars'


@api_bp.route('/contact', methods=['POST'])
def contact_submit():
    limit = current_app.config.get('CONTACT_FORM_LIMIT', 10)
    window = current_app.config.get('CONTACT_FORM_WINDOW_SECONDS', 3600)
    limited, seconds = is_rate_limited(CONTACT_FORM_SCOPE, limit, window)
    if limited:
        current_app.logger.warning('Contact API rate limited (ip=%s, limit=%s, window=%ss).', get_request_ip(), limit, window)
        response = jsonify({'error': 'Too many requests. Please try again later.'})
        response.headers['Retry-After'] = str(seconds)
        return response, 429
    register_attempt(CONTACT_FORM_SCOPE, window)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'Validation failed', 'details': {'body': 'Expected a JSON object.'}}), 400

    form = InquiryForm.from_json(payload)
    if not form.validate():
        return jsonify({'error': 'Validation failed', 'details': first_errors(form)}), 400

    try:
        inquiry = submit_inquiry(
            form.cleaned_data(),
            ip_address=get_request_ip(),
            user_agent=get_user_agent(),
            source=payload.get('source') if isinstance(payload.get('source'), str) else None,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Contact API failed to save inquiry.')
        return jsonify({'error': 'Failed to submit inquiry. Please try again later.'}), 500

    return jsonify({
        'success': True,
        'message': 'Inquiry submitted successfully',
        'inquiryId': inquiry.id,
    }), 201


@api_bp.route('/contact', methods=['GET'])
@api_profile_required('admin')
def contact_list():
    rows = inquiries.get_all()
    return jsonify({'inquiries': [item.to_dict() for item in rows], 'total': len(rows)})


@api_bp.route('/profile', methods=['GET'])
@api_profile_required()
def profile_get():
    return jsonify({'profile': get_admin_profile().to_dict()})


@api_bp.route('/profile', methods=['PATCH'])
@api_profile_required()
def profile_update():
    profile = get_admin_profile()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'error': 'Expected a JSON object.'}), 400

    full_name = clean_text(payload.get('full_name') if isinstance(payload.get('full_name'), str) else '', 200)
    if not full_name:
        return jsonify({'error': 'Full name is required'}), 400

    changes = {'full_name': full_name}
    for field, max_length in PROFILE_OPTIONAL_FIELDS.items():
        if field in payload:
            changes[field] = optional_text(payload.get(field), max_length)

    old_data = {field: getattr(profile, field) for field in changes}
    try:
        admin_profiles.update(profile, changes)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to update profile (id=%s).', profile.id)
        return jsonify({'error': 'Failed to update profile'}), 500

    record_audit_event(
        'update',
        'admin_profile',
        str(profile.id),
        profile.full_name,
        old_data=old_data,
        new_data=changes,
        metadata={'source': 'profile_settings'},
        actor=profile,
    )
    return jsonify({'profile': profile.to_dict()})


@api_bp.route('/profile/avatar', methods=['POST'])
@api_profile_required()
def avatar_upload():
    profile = get_admin_profile()
    file = request.files.get('file')
    try:
        relative_path = save_image(
            file,
            AVATAR_SUBDIR,
            prefix=f'{profile.id}-',
            max_bytes=current_app.config.get('AVATAR_MAX_BYTES', 2 * 1024 * 1024),
        )
    except UploadError as exc:
        return jsonify({'error': str(exc)}), 400

    previous = stored_upload_path(profile.avatar_url)
    try:
        admin_profiles.update(profile, {'avatar_url': upload_url(relative_path)})
    except Exception:
        db.session.rollback()
        remove_upload(relative_path)
        current_app.logger.exception('Failed to store avatar (profile=%s).', profile.id)
        return jsonify({'error': 'Failed to upload avatar'}), 500
    if previous:
        remove_upload(previous)
    return jsonify({'avatar_url': profile.avatar_url}), 201


@api_bp.route('/profile/avatar', methods=['DELETE'])
@api_profile_required()
def avatar_delete():
    profile = get_admin_profile()
    previous = stored_upload_path(profile.avatar_url)
    try:
        admin_profiles.update(profile, {'avatar_url': None})
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to remove avatar (profile=%s).', profile.id)
        return jsonify({'error': 'Failed to remove avatar'}), 500
    if previous:
        remove_upload(previous)
    return jsonify({'avatar_url': None})


@api_bp.route('/oil-prices/latest')
def oil_prices_latest():
    latest = oil_prices.get_latest()
    if latest is None:
        return jsonify({'error': 'No price data available'}), 404
    response = jsonify(latest.to_dict())
    response.headers['Cache-Control'] = 'public, max-age=300'
    return response


def cron_authorized():
    secret = current_app.config.get('CRON_SECRET') or ''
    if not secret:
        return False
    header = request.headers.get('Authorization', '')
    return secrets.compare_digest(header.encode('utf-8'), f'Bearer {secret}'.encode('utf-8'))


@api_bp.route('/cron/<job_key>')
def cron_run(job_key):
    if not cron_authorized():
        current_app.logger.warning('Rejected cron call for %s (ip=%s).', job_key, get_request_ip())
        return jsonify({'error': 'Unauthorized'}), 401
    job_name = CRON_JOB_KEYS.get(job_key)
    if job_name is None:
        return jsonify({'error': 'Unknown job'}), 404
    result = run_named_job(job_name, force=request.args.get('force') == '1')
    body = dict(result, job=job_name, success=result['status'] != STATUS_FAILED)
    return jsonify(body), 500 if result['status'] == STATUS_FAILED else 200
