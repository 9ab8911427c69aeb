import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app, has_request_context, request


def _safe_header_value(value, max_length=240):
    # Prevent header injection by stripping CR/LF and collapsing whitespace.
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
        try:
            return (request.host_url or '').rstrip('/')
        except RuntimeError:
            return ''
    return ''


def _dashboard_url():
    base = _resolve_base_url()
    if not base:
        return '/api/url-validation/admin/dashboard'
    return f"{base}/api/url-validation/admin/dashboard"


def _send_via_mailgun(subject, body, recipients, mail_from):
    """Send email via Mailgun HTTP API (no SMTP needed)."""
    api_key = (current_app.config.get('MAILGUN_API_KEY') or '').strip()
    domain = (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    if not api_key or not domain:
        return None  # Not configured, fall through to SMTP

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
            current_app.logger.info('Mailgun email sent successfully.')
            return True
    except urllib.error.HTTPError as e:
        error_body = e.read().decode('utf-8', errors='replace')
        current_app.logger.error(f'Mailgun API error {e.code}: {error_body}')
        return False
    except Exception:
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(subject, body, recipients, mail_from):
    """Send email via SMTP (traditional method)."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        current_app.logger.info('SMTP_HOST is not configured; skipping SMTP.')
        return None  # Not configured

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
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)

        with smtp:
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


def build_redirect_alert(results):
    count = len(results)
    noun = 'redirect' if count == 1 else 'redirects'
    subject = f"[Website] {count} support {noun} unhealthy"
    lines = [
        f"{count} monitored {noun} stopped responding correctly.",
        "",
    ]
    for result in results:
        checked = result.last_checked.isoformat() if result.last_checked else 'unknown'
        lines.extend([
            f"Path: {result.route}",
            f"Destination: {result.destination}",
            f"Status: {result.status if result.status is not None else 'no response'}",
            f"Error: {result.error or 'Not provided'}",
            f"Checked: {checked}",
            "",
        ])
    lines.append(f"Dashboard: {_dashboard_url()}")
    return subject, "\n".join(lines)


def send_redirect_health_alert(results):
    recipients = _split_recipients(current_app.config.get('REDIRECT_ALERT_EMAILS'))
    if not recipients or not results:
        return False
    subject, body = build_redirect_alert(results)
    return _send_email(subject, body, recipients)
