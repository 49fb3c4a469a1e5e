"""Image upload validation and storage under UPLOAD_FOLDER."""
import os
import uuid

from flask import current_app, url_for
from PIL import Image, UnidentifiedImageError
from werkzeug.utils import secure_filename

EXTENSION_MIME_TYPES = {
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'png': {'image/png'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
}
PIL_FORMATS = {'JPEG', 'PNG', 'GIF', 'WEBP'}


class UploadError(ValueError):
    pass


def format_size(num_bytes):
    if num_bytes >= 1024 * 1024:
        return f'{num_bytes // (1024 * 1024)}MB'
    if num_bytes >= 1024:
        return f'{num_bytes // 1024}KB'
    return f'{num_bytes} bytes'


def _stream_size(file):
    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    return size


def validate_image(file, max_bytes=None):
    """Raise UploadError unless ``file`` is a real, reasonably sized image."""
    if not file or not file.filename:
        raise UploadError('No file provided.')

    filename = secure_filename(file.filename)
    extension = filename.rsplit('.', 1)[1].lower() if '.' in filename else ''
    if not filename or len(filename) > 180 or extension not in EXTENSION_MIME_TYPES:
        raise UploadError('Invalid file type. Allowed: JPEG, PNG, GIF, WebP.')

    mime_type = (file.mimetype or '').split(';', 1)[0].lower()
    allowed_mimes = current_app.config.get('ALLOWED_IMAGE_MIME_TYPES', set())
    if mime_type not in allowed_mimes or mime_type not in EXTENSION_MIME_TYPES[extension]:
        raise UploadError('Invalid file type. Allowed: JPEG, PNG, GIF, WebP.')

    if max_bytes is not None and _stream_size(file) > max_bytes:
        raise UploadError(f'File too large. Maximum size is {format_size(max_bytes)}.')

    max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
    try:
        with Image.open(file.stream) as image:
            width, height = image.size
            if width < 1 or height < 1 or (width * height) > max_pixels:
                raise UploadError('Image dimensions are not allowed.')
            if image.format not in PIL_FORMATS:
                raise UploadError('Invalid file type. Allowed: JPEG, PNG, GIF, WebP.')
            image.verify()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
        raise UploadError('File is not a valid image.')
    finally:
        file.stream.seek(0)
    return filename


def save_image(file, subdir, prefix='', max_bytes=None):
    """Validate and store ``file``; returns the path relative to UPLOAD_FOLDER."""
    filename = validate_image(file, max_bytes=max_bytes)
    extension = filename.rsplit('.', 1)[1].lower()
    stored_name = f"{prefix}{uuid.uuid4().hex[:16]}.{extension}"
    target_dir = os.path.join(current_app.config['UPLOAD_FOLDER'], subdir)
    os.makedirs(target_dir, exist_ok=True)
    file.save(os.path.join(target_dir, stored_name))
    return f'{subdir}/{stored_name}'


def resolve_upload_path(relative_path):
    """Absolute path for a stored upload, or None when it escapes UPLOAD_FOLDER."""
    upload_root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    parts = [part for part in (relative_path or '').split('/') if part]
    if not parts or any(secure_filename(part) != part for part in parts):
        return None
    full_path = os.path.abspath(os.path.join(upload_root, *parts))
    try:
        if os.path.commonpath([upload_root, full_path]) != upload_root:
            return None
    except ValueError:
        return None
    return full_path


def remove_upload(relative_path):
    full_path = resolve_upload_path(relative_path)
    if full_path and os.path.isfile(full_path):
        os.remove(full_path)
        return True
    return False


def upload_url(relative_path):
    return url_for('admin.uploaded_file', filename=relative_path)


def stored_upload_path(public_url):
    """Relative upload path behind a URL issued by ``upload_url``, else None."""
    prefix = upload_url('_')[:-1]
    if public_url and public_url.startswith(prefix):
        return public_url[len(prefix):]
    return None
