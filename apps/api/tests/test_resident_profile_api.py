"""
Integration tests for the resident profile flow.

Tests cover:
- Resident uploads and profile submission
- Admin listing, review actions and deletion
- Status conflicts and reason validation over HTTP
- Role enforcement on /api/admin
"""
import io

import pytest
from flask_jwt_extended import create_access_token
from PIL import Image

from apps.api.app import create_app
from apps.api.config import Config
from apps.api import db
from apps.api.models.user import User
from apps.api.utils import storage_handler
from apps.api.utils.notification_gateway import NotificationEvent


class ProfileTestConfig(Config):
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    TESTING = True
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    SUPABASE_URL = ''
    NOTIFICATION_API_URL = ''
    HOME_REGION_CODE = '100000000'
    HOME_PROVINCE_CODE = '104300000'
    HOME_CITY_CODE = '104305000'
    HOME_BARANGAY_CODE = '104305040'


ADMIN_ID = 1
RESIDENT_ID = 2


@pytest.fixture
def removed():
    return []


@pytest.fixture
def app(gateway, removed):
    app = create_app(ProfileTestConfig)
    with app.app_context():
        db.create_all()
        db.session.add(User(id=ADMIN_ID, email='captain@example.com', role='admin'))
        db.session.add(User(id=RESIDENT_ID, email='juan@example.com', first_name='Juan', role='resident'))
        db.session.add(User(id=3, email='maria@example.com', first_name='Maria', role='resident'))
        db.session.commit()

    app.extensions['profile_status_machine'].gateway = gateway
    store = app.extensions['profile_store']
    store.url_signer = lambda path: f'https://signed.example/{path}'
    store.file_remover = removed.append
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _auth(app, user_id, role):
    with app.app_context():
        token = create_access_token(identity=str(user_id), additional_claims={'role': role})
    return {'Authorization': f'Bearer {token}'}


def _submit(app, client, payload, user_id=RESIDENT_ID):
    return client.post('/api/residents/me/profile', json=payload, headers=_auth(app, user_id, 'resident'))


def _admin_post(app, client, resident_id, action, reason=None):
    body = {'reason': reason} if reason is not None else {}
    return client.post(
        f'/api/admin/residents/{resident_id}/{action}', json=body, headers=_auth(app, ADMIN_ID, 'admin')
    )


def test_full_review_flow(app, client, gateway, removed, profile_payload):
    # Resident submits
    resp = _submit(app, client, profile_payload(user_id=RESIDENT_ID))
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['result']['status'] == 3
    assert body['profile']['household_head'] == 'JUAN DELA CRUZ'
    assert body['profile']['profile_image_url'] == f'https://signed.example/{RESIDENT_ID}/profile_1.jpg'
    resident_id = body['result']['resident_id']
    assert gateway.sent[-1] == (NotificationEvent.PENDING, RESIDENT_ID, {})

    me = client.get('/api/residents/me', headers=_auth(app, RESIDENT_ID, 'resident')).get_json()
    assert me['status'] == 3
    assert me['can_submit'] is False

    # Admin sees it in the pending count
    listing = client.get('/api/admin/residents', headers=_auth(app, ADMIN_ID, 'admin')).get_json()
    assert listing['counts'] == {'pending': 1, 'rejected': 0, 'update_requested': 0}
    assert listing['pagination']['total'] == 1
    assert listing['residents'][0]['id'] == resident_id

    # Rejecting needs a reason
    resp = _admin_post(app, client, resident_id, 'reject', '  ')
    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'reason'

    # Approve, then approving again conflicts
    resp = _admin_post(app, client, resident_id, 'approve')
    assert resp.status_code == 200
    assert resp.get_json()['resident']['status'] == 1
    assert gateway.sent[-1] == (NotificationEvent.APPROVAL, RESIDENT_ID, {})

    resp = _admin_post(app, client, resident_id, 'approve')
    assert resp.status_code == 409
    assert resp.get_json()['code'] == 'INVALID_TRANSITION'
    assert resp.get_json()['current_status'] == 1

    # Approved profiles cannot be resubmitted directly
    assert _submit(app, client, profile_payload(user_id=RESIDENT_ID)).status_code == 409

    # Resident asks to update, admin accepts
    resp = client.post(
        '/api/residents/me/update-request', json={'reason': 'Moved to Zone 3'},
        headers=_auth(app, RESIDENT_ID, 'resident'),
    )
    assert resp.status_code == 200
    assert resp.get_json()['profile']['update_reason'] == 'Moved to Zone 3'
    assert gateway.sent[-1] == (NotificationEvent.UPDATE_REQUEST, RESIDENT_ID, {'updateReason': 'Moved to Zone 3'})

    resp = _admin_post(app, client, resident_id, 'accept-update')
    assert resp.get_json()['resident']['status'] == 5

    # Resubmission goes back to review
    payload = profile_payload(user_id=RESIDENT_ID)
    payload['household']['zone'] = 'Zone 3'
    resp = _submit(app, client, payload)
    assert resp.status_code == 200
    assert resp.get_json()['profile']['status'] == 3
    assert resp.get_json()['profile']['purok'] == 'Zone 3'

    # Delete removes the photo and the record
    resp = client.delete(f'/api/admin/residents/{resident_id}', headers=_auth(app, ADMIN_ID, 'admin'))
    assert resp.status_code == 200
    assert removed == [f'{RESIDENT_ID}/profile_1.jpg']
    resp = client.get(f'/api/admin/residents/{resident_id}', headers=_auth(app, ADMIN_ID, 'admin'))
    assert resp.status_code == 404


def test_reject_and_decline_update(app, client, gateway, profile_payload):
    resident_id = _submit(app, client, profile_payload(user_id=RESIDENT_ID)).get_json()['result']['resident_id']

    resp = _admin_post(app, client, resident_id, 'reject', 'Valid ID is blurry')
    assert resp.status_code == 200
    assert resp.get_json()['resident']['rejection_reason'] == 'Valid ID is blurry'

    assert _submit(app, client, profile_payload(user_id=RESIDENT_ID)).status_code == 200
    _admin_post(app, client, resident_id, 'approve')
    _admin_post(app, client, resident_id, 'request-update', 'Please update your census')

    resp = _admin_post(app, client, resident_id, 'decline-update', 'No changes needed')
    assert resp.status_code == 200
    assert resp.get_json()['resident']['status'] == 1
    assert gateway.sent[-1] == (
        NotificationEvent.UPDATE_REJECTION, RESIDENT_ID, {'rejectionReason': 'No changes needed'}
    )


def test_notification_failure_is_returned_as_warning(app, client, gateway, profile_payload):
    gateway.warning = 'Failed to send approval email: timeout'
    resident_id = _submit(app, client, profile_payload(user_id=RESIDENT_ID)).get_json()['result']['resident_id']

    resp = _admin_post(app, client, resident_id, 'approve')

    assert resp.status_code == 200
    assert resp.get_json()['warning'] == 'Failed to send approval email: timeout'
    assert resp.get_json()['resident']['status'] == 1


def test_listing_filters_and_sorts(app, client, profile_payload):
    first = profile_payload(user_id=RESIDENT_ID)
    second = profile_payload(user_id=3)
    second['household']['firstName'] = 'Maria'
    second['household']['lastName'] = 'Abad'
    _submit(app, client, first)
    maria_id = _submit(app, client, second, user_id=3).get_json()['result']['resident_id']
    _admin_post(app, client, maria_id, 'approve')
    headers = _auth(app, ADMIN_ID, 'admin')

    resp = client.get('/api/admin/residents?status=approved', headers=headers)
    assert [r['first_name'] for r in resp.get_json()['residents']] == ['MARIA']

    resp = client.get('/api/admin/residents?sort=name-asc', headers=headers)
    assert [r['first_name'] for r in resp.get_json()['residents']] == ['JUAN', 'MARIA']

    resp = client.get('/api/admin/residents?search=abad&status=1', headers=headers)
    assert resp.get_json()['pagination']['total'] == 1

    assert client.get('/api/admin/residents?sort=random', headers=headers).status_code == 400
    assert client.get('/api/admin/residents?status=archived', headers=headers).status_code == 400


def test_invalid_profile_is_rejected(app, client, profile_payload):
    payload = profile_payload(user_id=RESIDENT_ID, civil_status='Married')
    payload['spouse'] = None

    resp = _submit(app, client, payload)

    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'spouse'


def test_uploads_from_other_accounts_are_rejected(app, client, profile_payload):
    resp = _submit(app, client, profile_payload(user_id=3))

    assert resp.status_code == 400


def test_update_request_without_profile(app, client):
    resp = client.post(
        '/api/residents/me/update-request', json={'reason': 'x'}, headers=_auth(app, RESIDENT_ID, 'resident')
    )

    assert resp.status_code == 404


def test_admin_routes_require_admin_role(app, client):
    assert client.get('/api/admin/residents').status_code == 401

    resp = client.get('/api/admin/residents', headers=_auth(app, RESIDENT_ID, 'resident'))
    assert resp.status_code == 403
    assert resp.get_json()['code'] == 'ROLE_MISMATCH'

    resp = client.get('/api/admin/residents', headers={'Authorization': 'Bearer not-a-token'})
    assert resp.status_code == 401


def test_delete_unknown_resident(app, client):
    resp = client.delete('/api/admin/residents/999', headers=_auth(app, ADMIN_ID, 'admin'))

    assert resp.status_code == 404


@pytest.mark.parametrize('action,reason', [('reject', 123), ('request-update', ['Moved']), ('decline-update', {'x': 1})])
def test_non_string_reason_is_rejected(app, client, profile_payload, action, reason):
    resident_id = _submit(app, client, profile_payload(user_id=RESIDENT_ID)).get_json()['result']['resident_id']
    if action != 'reject':
        _admin_post(app, client, resident_id, 'approve')
    if action == 'decline-update':
        _admin_post(app, client, resident_id, 'request-update', 'Please update your census')

    resp = _admin_post(app, client, resident_id, action, reason)

    assert resp.status_code == 400
    assert resp.get_json()['field'] == 'reason'


def _worker(config, gateway):
    app = create_app(config)
    app.extensions['profile_status_machine'].gateway = gateway
    app.extensions['profile_store'].url_signer = lambda path: f'https://signed.example/{path}'
    return app


def test_listing_sees_writes_from_another_worker(tmp_path, gateway, profile_payload):
    class SharedDatabaseConfig(ProfileTestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'portal.db'}"

    writer = _worker(SharedDatabaseConfig, gateway)
    reader = _worker(SharedDatabaseConfig, gateway)
    with writer.app_context():
        db.create_all()
        db.session.add(User(id=ADMIN_ID, email='captain@example.com', role='admin'))
        db.session.add(User(id=RESIDENT_ID, email='juan@example.com', first_name='Juan', role='resident'))
        db.session.commit()
    writer_client = writer.test_client()
    reader_client = reader.test_client()
    headers = _auth(reader, ADMIN_ID, 'admin')

    resp = _submit(writer, writer_client, profile_payload(user_id=RESIDENT_ID))
    resident_id = resp.get_json()['result']['resident_id']
    listing = reader_client.get('/api/admin/residents', headers=headers).get_json()
    assert [r['status'] for r in listing['residents']] == [3]

    assert _admin_post(writer, writer_client, resident_id, 'approve').status_code == 200

    listing = reader_client.get('/api/admin/residents', headers=headers).get_json()
    assert [r['status'] for r in listing['residents']] == [1]
    assert listing['counts'] == {'pending': 0, 'rejected': 0, 'update_requested': 0}


class TestUploads:
    @pytest.fixture
    def uploads(self, monkeypatch):
        stored = []

        def fake_upload(data, bucket, storage_path, content_type='image/jpeg', upsert=False):
            stored.append((bucket, storage_path, data))
            return storage_path

        monkeypatch.setattr(storage_handler.supabase_storage, 'upload_bytes_to_path', fake_upload)
        return stored

    def _png(self, size=(120, 80)):
        buf = io.BytesIO()
        Image.new('RGB', size, (10, 120, 200)).save(buf, format='PNG')
        buf.seek(0)
        return buf

    def test_photo_upload_returns_user_scoped_path(self, app, client, uploads):
        resp = client.post(
            '/api/residents/me/uploads/photo',
            data={'file': (self._png(), 'me.png')},
            headers=_auth(app, RESIDENT_ID, 'resident'),
            content_type='multipart/form-data',
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body['bucket'] == 'householdhead'
        assert body['path'].startswith(f'{RESIDENT_ID}/profile_')
        assert body['path'].endswith('.jpg')
        bucket, path, data = uploads[0]
        # square crop and JPEG re-encode
        with Image.open(io.BytesIO(data)) as img:
            assert img.format == 'JPEG'
            assert img.width == img.height

    def test_spouse_id_goes_to_spouse_bucket(self, app, client, uploads):
        resp = client.post(
            '/api/residents/me/uploads/spouse-id',
            data={'file': (self._png(), 'id.png')},
            headers=_auth(app, RESIDENT_ID, 'resident'),
            content_type='multipart/form-data',
        )

        assert resp.status_code == 201
        assert resp.get_json()['bucket'] == 'spouseid'
        assert resp.get_json()['path'].startswith(f'{RESIDENT_ID}/spouse_valid_id_')

    def test_unknown_kind(self, app, client, uploads):
        resp = client.post(
            '/api/residents/me/uploads/selfie',
            data={'file': (self._png(), 'me.png')},
            headers=_auth(app, RESIDENT_ID, 'resident'),
            content_type='multipart/form-data',
        )

        assert resp.status_code == 404
        assert uploads == []

    def test_wrong_extension(self, app, client, uploads):
        resp = client.post(
            '/api/residents/me/uploads/valid-id',
            data={'file': (self._png(), 'id.pdf')},
            headers=_auth(app, RESIDENT_ID, 'resident'),
            content_type='multipart/form-data',
        )

        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Please upload a PNG or JPEG/JPG file.'
        assert uploads == []

    def test_bad_crop(self, app, client, uploads):
        resp = client.post(
            '/api/residents/me/uploads/photo',
            data={'file': (self._png(), 'me.png'), 'crop': '{"x": 0'},
            headers=_auth(app, RESIDENT_ID, 'resident'),
            content_type='multipart/form-data',
        )

        assert resp.status_code == 400
