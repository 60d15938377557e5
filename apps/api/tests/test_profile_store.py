"""Profile store decoding, signing and deletion."""
import json
from datetime import datetime

import pytest

from apps.api.utils.profile_store import UNKNOWN, ProfileStore
from apps.api.utils.profile_workflow import ProfileStatus, ResidentNotFoundError


def _household(first='JUAN', last='DELA CRUZ', **extra):
    data = {'firstName': first, 'lastName': last, 'gender': 'Male', 'dob': '1985-04-12',
            'address': 'PUROK 1', 'zone': 'Zone 1'}
    data.update(extra)
    return json.dumps(data)


def test_corrupt_household_degrades_only_that_record(backend):
    backend.add_row(1, status=ProfileStatus.PENDING, household=_household('ANA', 'SANTOS'))
    bad_id = backend.add_row(2, status=ProfileStatus.PENDING, household='{not json')
    backend.add_row(3, status=ProfileStatus.APPROVED, household=_household('BEN', 'REYES'))

    records = ProfileStore(backend).fetch_all()

    assert len(records) == 3
    bad = next(r for r in records if r['id'] == bad_id)
    assert bad['first_name'] == UNKNOWN
    assert bad['last_name'] == UNKNOWN
    assert bad['purok'] == UNKNOWN
    assert bad['household_head'] == 'Unknown Unknown'
    assert bad['household']['gender'] == UNKNOWN
    assert [r['first_name'] for r in records if r['id'] != bad_id] == ['ANA', 'BEN']


def test_household_that_is_not_an_object_uses_fallback(backend):
    resident_id = backend.add_row(1, household='[1, 2]')

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record['first_name'] == UNKNOWN


@pytest.mark.parametrize(
    'field,raw,expected',
    [
        ('spouse', '{broken', None),
        ('spouse', '"text"', None),
        ('household_composition', '{broken', []),
        ('household_composition', '{"firstName": "PEDRO"}', []),
        ('census', '{broken', {}),
        ('census', '[]', {}),
    ],
)
def test_other_blobs_fall_back_independently(backend, field, raw, expected):
    resident_id = backend.add_row(1, status=ProfileStatus.PENDING, household=_household(), **{field: raw})

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record[field] == expected
    assert record['first_name'] == 'JUAN'


def test_record_fields(backend):
    members = [{'firstName': 'PEDRO', 'relation': 'Son'}]
    resident_id = backend.add_row(
        7,
        status=ProfileStatus.REJECTED,
        reason='Blurry ID',
        updated_at=datetime(2024, 3, 5, 9, 30),
        household=_household(),
        household_composition=json.dumps(members),
        census=json.dumps({'ownsHouse': 'Yes'}),
        children_count=1,
        image_url='7/profile_1.jpg',
    )

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record['user_id'] == 7
    assert record['household_head'] == 'JUAN DELA CRUZ'
    assert record['status'] == 2
    assert record['status_label'] == 'Rejected'
    assert record['rejection_reason'] == 'Blurry ID'
    assert record['update_reason'] is None
    assert record['updated_at'] == '2024-03-05T09:30:00'
    assert record['household_composition'] == members
    assert record['children_count'] == 1
    assert record['image_url'] == '7/profile_1.jpg'
    assert record['profile_image_url'] is None


def test_update_request_reason_is_exposed_as_update_reason(backend):
    resident_id = backend.add_row(1, status=ProfileStatus.UPDATE_REQUESTED, reason='Moved', household=_household())

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record['update_reason'] == 'Moved'
    assert record['rejection_reason'] is None


def test_missing_status_record_reads_as_pending(backend):
    resident_id = backend.add_row(1, household=_household())

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record['status'] == int(ProfileStatus.PENDING)
    assert record['status_label'] == 'Pending'
    assert record['updated_at'] is None


def test_unrecognized_status_label(backend):
    resident_id = backend.add_row(1, status=9, household=_household())

    record = ProfileStore(backend).fetch_one(resident_id)

    assert record['status'] == 9
    assert record['status_label'] == UNKNOWN


def test_signed_image_url(backend):
    resident_id = backend.add_row(1, household=_household(), image_url='1/profile_1.jpg')
    store = ProfileStore(backend, url_signer=lambda path: f'https://signed.example/{path}')

    assert store.fetch_one(resident_id)['profile_image_url'] == 'https://signed.example/1/profile_1.jpg'


def test_signing_failure_yields_none(backend):
    def signer(path):
        raise RuntimeError('storage unavailable')

    backend.add_row(1, household=_household(), image_url='1/profile_1.jpg')
    backend.add_row(2, household=_household('ANA'), image_url='2/profile_1.jpg')
    store = ProfileStore(backend, url_signer=signer)

    records = store.fetch_all()

    assert [r['profile_image_url'] for r in records] == [None, None]


def test_fetch_for_user(backend):
    backend.add_row(5, household=_household('ANA'))

    store = ProfileStore(backend)

    assert store.fetch_for_user(5)['first_name'] == 'ANA'
    assert store.fetch_for_user(6) is None


def test_upsert_replaces_existing_profile(backend):
    store = ProfileStore(backend)
    first = store.upsert(5, {'household': {'firstName': 'ANA'}, 'spouse': None})
    second = store.upsert(5, {'household': {'firstName': 'ANNA'}})

    assert first['id'] == second['id']
    assert json.loads(backend.residents[first['id']]['household']) == {'firstName': 'ANNA'}


class TestDelete:
    def test_removes_photo_then_status_then_resident(self, backend):
        removed = []
        resident_id = backend.add_row(1, status=ProfileStatus.APPROVED, image_url='1/profile_1.jpg')
        store = ProfileStore(backend, file_remover=lambda path: removed.append(path))

        warnings = store.delete(resident_id)

        assert warnings == []
        assert removed == ['1/profile_1.jpg']
        assert backend.calls == [('delete_status', resident_id), ('delete_resident', resident_id)]
        assert store.fetch_one(resident_id) is None

    def test_photo_removal_failure_is_a_warning(self, backend):
        def remover(path):
            raise RuntimeError('bucket not found')

        resident_id = backend.add_row(1, status=ProfileStatus.APPROVED, image_url='1/profile_1.jpg')

        warnings = ProfileStore(backend, file_remover=remover).delete(resident_id)

        assert warnings == ['Failed to delete profile image: bucket not found']
        assert resident_id not in backend.residents
        assert resident_id not in backend.statuses

    def test_resident_without_photo(self, backend):
        removed = []
        resident_id = backend.add_row(1)

        ProfileStore(backend, file_remover=removed.append).delete(resident_id)

        assert removed == []
        assert resident_id not in backend.residents

    def test_unknown_resident(self, backend):
        with pytest.raises(ResidentNotFoundError):
            ProfileStore(backend).delete(99)
        assert backend.calls == []
