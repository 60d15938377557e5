"""Outbound resident notifications for profile review events.

``NotificationGateway.send`` never raises. Callers commit their own state
first and treat a returned string as a warning to show the acting user.

Two transports are available:
- HttpNotificationTransport posts to the external email API, one endpoint per
  event (``<NOTIFICATION_API_URL>/send-approval`` etc.)
- EmailNotificationTransport renders the message here and sends it through
  utils.email_sender (SendGrid API or SMTP)
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import requests
from flask import current_app

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    APPROVAL = 'approval'
    REJECTION = 'rejection'
    UPDATE_REQUEST = 'update-request'
    UPDATE_APPROVAL = 'update-approval'
    UPDATE_REJECTION = 'update-rejection'
    PENDING = 'pending'

    @property
    def endpoint(self) -> str:
        return f"send-{self.value}"


class NotificationError(Exception):
    """Raised by transports; converted to a warning by the gateway."""
    pass


class HttpNotificationTransport:
    """POST ``{"userId": ..., <reason key>: ...}`` to the external email API."""

    def __init__(self, base_url: str, timeout: int = 15, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def deliver(self, event: NotificationEvent, user_id: int, payload: Dict[str, Any]) -> None:
        url = f"{self.base_url}/{event.endpoint}"
        body = {'userId': user_id}
        body.update({k: v for k, v in (payload or {}).items() if v is not None})
        try:
            response = self.session.post(url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"Notification API request failed: {e}") from e
        if response.status_code not in (200, 201, 202, 204):
            raise NotificationError(
                f"Notification API error: {response.status_code} - {response.text[:200]}"
            )


def render_notification(event: NotificationEvent, payload: Dict[str, Any], app_name: str, first_name: str | None = None) -> Tuple[str, str]:
    """Return (subject, body) for an event."""
    greeting = f"Hello {first_name}," if first_name else "Hello,"
    reason = payload.get('rejectionReason') or payload.get('updateReason') or 'Not specified.'

    if event is NotificationEvent.APPROVAL:
        subject = f"{app_name}: Resident Profile Approved"
        lines = ["Your resident profile has been approved.", "You are now a registered resident of the barangay."]
    elif event is NotificationEvent.REJECTION:
        subject = f"{app_name}: Resident Profile Rejected"
        lines = [
            "Your resident profile has been rejected.",
            f"Reason: {reason}",
            "Please log in, correct your profile and submit it again.",
        ]
    elif event is NotificationEvent.UPDATE_REQUEST:
        subject = f"{app_name}: Profile Update Requested"
        lines = [
            "An update to your resident profile has been requested.",
            f"Reason: {reason}",
            "The barangay office will review the request shortly.",
        ]
    elif event is NotificationEvent.UPDATE_APPROVAL:
        subject = f"{app_name}: Profile Update Approved"
        lines = ["Your profile update request has been approved.", "You may now edit and resubmit your profile."]
    elif event is NotificationEvent.UPDATE_REJECTION:
        subject = f"{app_name}: Profile Update Declined"
        lines = [
            "Your profile update request has been declined.",
            f"Reason: {reason}",
            "Your profile remains approved.",
        ]
    else:
        subject = f"{app_name}: Resident Profile Received"
        lines = [
            "We received your resident profile.",
            "Status: Pending",
            "We'll notify you once it has been reviewed.",
        ]

    body = "\n\n".join([greeting, "\n".join(lines), f"Thank you,\n{app_name} Team"])
    return subject, body


class EmailNotificationTransport:
    """Send the rendered message to the user's email address."""

    def __init__(self, send_email: Optional[Callable[[str, str, str], None]] = None):
        self._send_email = send_email

    def deliver(self, event: NotificationEvent, user_id: int, payload: Dict[str, Any]) -> None:
        from apps.api import db
        from apps.api.models.user import User
        from apps.api.utils.email_sender import send_email

        user = db.session.get(User, user_id)
        if not user or not user.email:
            raise NotificationError(f"No email address on file for user {user_id}")

        app_name = current_app.config.get('APP_NAME', 'Barangay Bonbon Portal')
        subject, body = render_notification(event, payload or {}, app_name, user.first_name)
        sender = self._send_email or send_email
        try:
            sender(user.email, subject, body)
        except NotificationError:
            raise
        except Exception as e:
            raise NotificationError(str(e)) from e


class NotificationGateway:
    def __init__(self, transport):
        self.transport = transport

    def send(self, event: NotificationEvent, user_id: int, payload: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Deliver a notification, best effort.

        Returns:
            None on success, otherwise a warning message for the caller
        """
        try:
            self.transport.deliver(event, user_id, payload or {})
        except Exception as e:
            logger.warning("Failed to send %s notification to user %s: %s", event.value, user_id, e)
            return f"Failed to send {event.value.replace('-', ' ')} email: {e}"
        logger.info("Sent %s notification to user %s", event.value, user_id)
        return None


def build_notification_gateway(config) -> NotificationGateway:
    """Pick the transport from app config."""
    base_url = (config.get('NOTIFICATION_API_URL') or '').strip()
    if base_url:
        return NotificationGateway(
            HttpNotificationTransport(base_url, timeout=config.get('NOTIFICATION_TIMEOUT', 15))
        )
    return NotificationGateway(EmailNotificationTransport())
