"""Notification transports and the best-effort gateway."""
import pytest
import requests

from apps.api.app import create_app
from apps.api.config import TestingConfig
from apps.api import db
from apps.api.models.user import User
from apps.api.utils.notification_gateway import (
    EmailNotificationTransport,
    HttpNotificationTransport,
    NotificationError,
    NotificationEvent,
    NotificationGateway,
    build_notification_gateway,
    render_notification,
)


class FakeResponse:
    def __init__(self, status_code=200, text='ok'):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json, timeout))
        if self.error:
            raise self.error
        return self.response


class TestHttpTransport:
    def test_posts_to_event_endpoint(self):
        session = FakeSession()
        transport = HttpNotificationTransport('https://mail.example/api/email/', timeout=5, session=session)

        transport.deliver(NotificationEvent.REJECTION, 7, {'rejectionReason': 'Blurry ID'})

        assert session.posts == [
            ('https://mail.example/api/email/send-rejection', {'userId': 7, 'rejectionReason': 'Blurry ID'}, 5)
        ]

    def test_update_request_uses_update_reason(self):
        session = FakeSession()
        transport = HttpNotificationTransport('https://mail.example/api/email', session=session)

        transport.deliver(NotificationEvent.UPDATE_REQUEST, 7, {'updateReason': 'Moved'})

        url, body, _ = session.posts[0]
        assert url.endswith('/send-update-request')
        assert body == {'userId': 7, 'updateReason': 'Moved'}

    def test_error_status_raises(self):
        transport = HttpNotificationTransport(
            'https://mail.example', session=FakeSession(FakeResponse(500, 'boom'))
        )

        with pytest.raises(NotificationError):
            transport.deliver(NotificationEvent.APPROVAL, 7, {})

    def test_connection_error_raises(self):
        transport = HttpNotificationTransport(
            'https://mail.example', session=FakeSession(error=requests.exceptions.ConnectionError('refused'))
        )

        with pytest.raises(NotificationError):
            transport.deliver(NotificationEvent.APPROVAL, 7, {})


class TestGateway:
    def test_success_returns_none(self):
        gateway = NotificationGateway(HttpNotificationTransport('https://mail.example', session=FakeSession()))

        assert gateway.send(NotificationEvent.APPROVAL, 7) is None

    def test_failure_returns_warning(self):
        transport = HttpNotificationTransport(
            'https://mail.example', session=FakeSession(FakeResponse(502, 'bad gateway'))
        )

        warning = NotificationGateway(transport).send(NotificationEvent.UPDATE_REJECTION, 7, {'rejectionReason': 'x'})

        assert warning.startswith('Failed to send update rejection email:')
        assert '502' in warning

    def test_transport_selection(self):
        http = build_notification_gateway({'NOTIFICATION_API_URL': 'https://mail.example'})
        email = build_notification_gateway({'NOTIFICATION_API_URL': ''})

        assert isinstance(http.transport, HttpNotificationTransport)
        assert isinstance(email.transport, EmailNotificationTransport)


@pytest.mark.parametrize(
    'event,subject_part,body_part',
    [
        (NotificationEvent.APPROVAL, 'Approved', 'has been approved'),
        (NotificationEvent.REJECTION, 'Rejected', 'Reason: Blurry ID'),
        (NotificationEvent.UPDATE_REQUEST, 'Update Requested', 'Reason: Blurry ID'),
        (NotificationEvent.UPDATE_APPROVAL, 'Update Approved', 'edit and resubmit'),
        (NotificationEvent.UPDATE_REJECTION, 'Update Declined', 'remains approved'),
        (NotificationEvent.PENDING, 'Received', 'Status: Pending'),
    ],
)
def test_render_notification(event, subject_part, body_part):
    payload = {'rejectionReason': 'Blurry ID', 'updateReason': 'Blurry ID'}

    subject, body = render_notification(event, payload, 'Bonbon Portal', 'Juan')

    assert subject.startswith('Bonbon Portal: ')
    assert subject_part in subject
    assert body_part in body
    assert body.startswith('Hello Juan,')


class TestEmailTransport:
    def _app(self):
        app = create_app(TestingConfig)
        with app.app_context():
            db.create_all()
            db.session.add(User(id=7, email='juan@example.com', first_name='Juan', role='resident'))
            db.session.commit()
        return app

    def test_sends_rendered_message(self):
        app = self._app()
        sent = []
        transport = EmailNotificationTransport(send_email=lambda to, subject, body: sent.append((to, subject, body)))

        with app.app_context():
            transport.deliver(NotificationEvent.REJECTION, 7, {'rejectionReason': 'Blurry ID'})

        assert len(sent) == 1
        to, subject, body = sent[0]
        assert to == 'juan@example.com'
        assert 'Rejected' in subject
        assert 'Reason: Blurry ID' in body

    def test_unknown_user_is_a_warning(self):
        app = self._app()
        gateway = NotificationGateway(EmailNotificationTransport(send_email=lambda *args: None))

        with app.app_context():
            warning = gateway.send(NotificationEvent.APPROVAL, 99)

        assert warning == 'Failed to send approval email: No email address on file for user 99'

    def test_sender_failure_is_a_warning(self):
        app = self._app()

        def broken(to, subject, body):
            raise RuntimeError('No email provider configured')

        gateway = NotificationGateway(EmailNotificationTransport(send_email=broken))

        with app.app_context():
            warning = gateway.send(NotificationEvent.PENDING, 7)

        assert warning == 'Failed to send pending email: No email provider configured'
