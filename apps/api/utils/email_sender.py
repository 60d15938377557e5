"""Email delivery for resident notifications.

Supports both:
- SendGrid API (production hosts often block outbound SMTP)
- SMTP (development, e.g. a Gmail app password)

SendGrid is used when SENDGRID_API_KEY is configured, otherwise SMTP when
SMTP_SERVER is configured.
"""
import json
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests
from flask import current_app

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


def _sender_identity():
    app = current_app
    from_email = app.config.get('FROM_EMAIL') or app.config.get('SMTP_USERNAME')
    app_name = app.config.get('APP_NAME', 'Barangay Bonbon Portal')
    if not from_email:
        raise RuntimeError("FROM_EMAIL is not configured")
    return from_email, app_name


def _send_via_smtp(to_email: str, subject: str, body: str) -> None:
    app = current_app
    smtp_server = app.config.get('SMTP_SERVER')
    smtp_port = app.config.get('SMTP_PORT', 587)
    smtp_username = app.config.get('SMTP_USERNAME')
    smtp_password = app.config.get('SMTP_PASSWORD')

    if not smtp_server:
        raise RuntimeError("SMTP_SERVER is not configured")
    if not smtp_username or not smtp_password:
        raise RuntimeError("SMTP_USERNAME and SMTP_PASSWORD are required for SMTP")
    from_email, app_name = _sender_identity()

    current_app.logger.info(f"Sending email to {to_email} via SMTP ({smtp_server}:{smtp_port})")

    msg = MIMEMultipart()
    msg['From'] = f"{app_name} <{from_email}>"
    msg['To'] = to_email
    msg['Subject'] = subject
    msg.attach(MIMEText(body, 'plain'))

    try:
        with smtplib.SMTP(smtp_server, smtp_port) as server:
            server.starttls()
            server.login(smtp_username, smtp_password)
            server.sendmail(from_email, to_email, msg.as_string())
    except smtplib.SMTPAuthenticationError as e:
        raise RuntimeError(f"SMTP authentication failed: {e}") from e
    except (smtplib.SMTPException, OSError) as e:
        raise RuntimeError(f"SMTP error: {e}") from e

    current_app.logger.info(f"Email sent to {to_email} via SMTP")


def _send_via_sendgrid(to_email: str, subject: str, body: str) -> None:
    api_key = current_app.config.get('SENDGRID_API_KEY')
    if not api_key:
        raise RuntimeError("SENDGRID_API_KEY is not configured")
    from_email, app_name = _sender_identity()

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": from_email, "name": app_name},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }

    current_app.logger.info(f"Sending email to {to_email} via SendGrid API")
    try:
        response = requests.post(SENDGRID_URL, headers=headers, json=payload, timeout=30)
    except requests.exceptions.RequestException as e:
        raise RuntimeError(f"SendGrid API request failed: {e}") from e

    # 202 Accepted on success
    if response.status_code not in (200, 201, 202):
        error_msg = f"SendGrid API error: {response.status_code}"
        try:
            error_msg += f" - {json.dumps(response.json())}"
        except ValueError:
            error_msg += f" - {response.text[:200]}"
        raise RuntimeError(error_msg)
    current_app.logger.info(f"Email sent to {to_email} via SendGrid")


def send_email(to_email: str, subject: str, body: str) -> None:
    """
    Send a plain-text email using the best available method.

    Raises:
        RuntimeError: no provider configured or the provider refused the message
    """
    if current_app.config.get('SENDGRID_API_KEY'):
        _send_via_sendgrid(to_email, subject, body)
        return
    if current_app.config.get('SMTP_SERVER'):
        _send_via_smtp(to_email, subject, body)
        return
    raise RuntimeError("No email provider configured (set SENDGRID_API_KEY or SMTP_SERVER)")
