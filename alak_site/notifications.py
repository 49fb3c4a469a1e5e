import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app, has_request_context, request


def _safe_header_value(value, max_length=240):
    # Strip CR/LF so user input cannot inject headers.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _split_recipients(raw):
    recipients = []
    seen = set()
    for item in (raw or '').split(','):
        cleaned = _safe_header_value(item, max_length=320)
        normalized = cleaned.lower()
        if cleaned and normalized not in seen:
            recipients.append(cleaned)
            seen.add(normalized)
    return recipients


def _resolve_base_url():
    configured = (current_app.config.get('APP_BASE_URL') or '').rstrip('/')
    if configured:
        return configured
    if has_request_context():
        return (request.host_url or '').rstrip('/')
    return ''


def _inquiry_admin_url(inquiry_id):
    return f"{_resolve_base_url()}/admin/inquiries/{inquiry_id}"


def _send_via_mailgun(subject, body, recipients, mail_from):
    """Send through the Mailgun HTTP API. Returns None when not configured."""
    api_key = (current_app.config.get('MAILGUN_API_KEY') or '').strip()
    domain = (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    if not api_key or not domain:
        return None

    url = f"https://api.mailgun.net/v3/{domain}/messages"
    data = urllib.parse.urlencode({
        'from': mail_from,
        'to': ', '.join(recipients),
        'subject': subject,
        'text': body,
    }).encode('utf-8')
    auth = base64.b64encode(f"api:{api_key}".encode()).decode()

    req = urllib.request.Request(url, data=data, method='POST')
    req.add_header('Authorization', f'Basic {auth}')
    try:
        with urllib.request.urlopen(req, timeout=15):  # nosec B310
            current_app.logger.info('Mailgun email sent.')
            return True
    except urllib.error.HTTPError as e:
        error_body = e.read().decode('utf-8', errors='replace')
        current_app.logger.error('Mailgun API error %s: %s', e.code, error_body)
        return False
    except Exception:
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(subject, body, recipients, mail_from):
    """Send through SMTP. Returns None when SMTP_HOST is not configured."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        return None

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = mail_from
    message['To'] = ', '.join(recipients)
    message.set_content(body)

    try:
        smtp_class = smtplib.SMTP_SSL if use_ssl else smtplib.SMTP
        with smtp_class(host=host, port=port, timeout=12) as smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
        return True
    except Exception:
        current_app.logger.exception('SMTP email delivery failed.')
        return False


def _send_email(subject, body, recipients):
    if not recipients:
        return False

    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    safe_subject = _safe_header_value(subject, max_length=240)

    result = _send_via_mailgun(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result
    result = _send_via_smtp(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result

    current_app.logger.info('No email provider configured (set MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP_HOST).')
    return False


def send_inquiry_notification(inquiry):
    recipients = _split_recipients(current_app.config.get('INQUIRY_NOTIFICATION_EMAILS'))
    if not recipients:
        return False

    company = _safe_header_value(inquiry.company_name, max_length=120)
    subject = f"[Website] New {inquiry.category_label} inquiry from {company}"
    body = "\n".join([
        "A new trade inquiry has been submitted.",
        "",
        f"Name: {inquiry.full_name}",
        f"Company: {inquiry.company_name}",
        f"Email: {inquiry.email}",
        f"Phone: {inquiry.phone}",
        f"Category: {inquiry.category_label}",
        f"Product: {inquiry.product_label}",
        f"Estimated volume: {inquiry.volume_display}",
        "",
        "Message:",
        inquiry.message or "",
        "",
        f"Review: {_inquiry_admin_url(inquiry.id)}",
    ])
    return _send_email(subject, body, recipients)


def send_inquiry_acknowledgement(inquiry):
    if not current_app.config.get('INQUIRY_ACK_EMAILS_ENABLED'):
        return False
    recipient = _safe_header_value(inquiry.email, max_length=320)
    if not recipient:
        return False

    company_name = current_app.config.get('COMPANY_NAME') or 'Alak Oil and Gas'
    subject = f"[{company_name}] We received your inquiry (ref #{inquiry.id})"
    body = "\n".join([
        f"Dear {inquiry.full_name},",
        "",
        f"Thank you for contacting {company_name}. Our trading desk has received your",
        f"inquiry for {inquiry.product_label} ({inquiry.volume_display}) and will be in touch shortly.",
        "",
        f"Reference: #{inquiry.id}",
        "",
        "If you did not submit this request, you can ignore this email.",
    ])
    return _send_email(subject, body, [recipient])


def send_password_reset(user, reset_url):
    recipient = _safe_header_value(user.email, max_length=320)
    if not recipient:
        return False

    company_name = current_app.config.get('COMPANY_NAME') or 'Alak Oil and Gas'
    minutes = int(current_app.config.get('PASSWORD_RESET_MAX_AGE_SECONDS', 3600)) // 60
    subject = f"[{company_name}] Reset your admin password"
    body = "\n".join([
        "A password reset was requested for your admin account.",
        "",
        f"Choose a new password here: {reset_url}",
        "",
        f"The link expires in {minutes} minutes and works once.",
        "If you did not ask for this, you can ignore this email.",
    ])
    return _send_email(subject, body, [recipient])
