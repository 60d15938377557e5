"""Test setup helpers."""
from __future__ import annotations

import copy
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure project root is on sys.path for apps.api imports.
PROJECT_ROOT = Path(__file__).resolve().parents[3]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from apps.api.utils.profile_store import ChangePublisher, ProfileBackend  # noqa: E402


class InMemoryProfileBackend(ChangePublisher, ProfileBackend):
    """
    ProfileBackend over plain dicts; records every write in ``calls``.

    ``revision`` is bumped by every write and seeded row, standing in for the
    latest ``updated_at`` a database would report in ``data_version``.
    """

    def __init__(self):
        super().__init__()
        self.residents = {}
        self.statuses = {}
        self.calls = []
        self._next_id = 1
        self.revision = 0

    def _row(self, resident_id):
        row = copy.deepcopy(self.residents[resident_id])
        status = self.statuses.get(resident_id)
        row['status'] = copy.deepcopy(status) if status else None
        return row

    def add_row(self, user_id, status=None, reason=None, updated_at=None, **fields):
        """Seed a resident row directly (fields are stored as given, e.g. raw JSON text)."""
        resident_id = self._next_id
        self._next_id += 1
        row = {
            'id': resident_id,
            'user_id': user_id,
            'household': None,
            'spouse': None,
            'household_composition': None,
            'census': None,
            'children_count': 0,
            'number_of_household_members': 0,
            'image_url': None,
            'valid_id_url': None,
            'zone_cert_url': None,
            'spouse_valid_id_url': None,
            'created_at': None,
            'updated_at': None,
        }
        row.update(fields)
        self.residents[resident_id] = row
        self.revision += 1
        if status is not None:
            stamp = updated_at or datetime(2024, 1, 1)
            self.statuses[resident_id] = {
                'status': int(status),
                'rejection_reason': reason,
                'created_at': stamp,
                'updated_at': stamp,
            }
        return resident_id

    def data_version(self):
        return (len(self.residents), len(self.statuses), self.revision)

    def fetch_residents(self):
        return [self._row(rid) for rid in sorted(self.residents)]

    def fetch_resident(self, resident_id):
        return self._row(resident_id) if resident_id in self.residents else None

    def fetch_resident_by_user(self, user_id):
        for rid, row in self.residents.items():
            if row['user_id'] == user_id:
                return self._row(rid)
        return None

    def upsert_resident(self, user_id, values):
        self.calls.append(('upsert_resident', user_id))
        existing = self.fetch_resident_by_user(user_id)
        resident_id = existing['id'] if existing else self.add_row(user_id)
        self.residents[resident_id].update(values)
        self.revision += 1
        self.publish('residents', resident_id)
        return self._row(resident_id)

    def write_status(self, resident_id, status, updated_at, rejection_reason=None, set_reason=True):
        self.calls.append(('write_status', resident_id, int(status)))
        record = self.statuses.get(resident_id)
        if record is None:
            record = {'status': None, 'rejection_reason': None, 'created_at': updated_at, 'updated_at': None}
            self.statuses[resident_id] = record
        record['status'] = int(status)
        record['updated_at'] = updated_at
        if set_reason:
            record['rejection_reason'] = rejection_reason
        self.revision += 1
        self.publish('resident_profile_status', resident_id)
        return dict(record)

    def delete_status(self, resident_id):
        self.calls.append(('delete_status', resident_id))
        self.statuses.pop(resident_id, None)
        self.revision += 1
        self.publish('resident_profile_status', resident_id)

    def delete_resident(self, resident_id):
        self.calls.append(('delete_resident', resident_id))
        self.residents.pop(resident_id, None)
        self.revision += 1
        self.publish('residents', resident_id)


class RecordingGateway:
    """Notification gateway double: records sends, optionally returns a warning."""

    def __init__(self, warning=None):
        self.sent = []
        self.warning = warning

    def send(self, event, user_id, payload=None):
        self.sent.append((event, user_id, payload or {}))
        return self.warning


class StepClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self, start=datetime(2024, 6, 1, 8, 0, 0)):
        self.current = start

    def __call__(self):
        self.current = self.current + timedelta(minutes=1)
        return self.current


@pytest.fixture
def backend():
    return InMemoryProfileBackend()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def clock():
    return StepClock()


HOME_CODES = {
    'region': '100000000',
    'province': '104300000',
    'city': '104305000',
    'barangay': '104305040',
}


def build_profile_payload(user_id=1, civil_status='Single', members=None, children_count=0,
                          household_members=0, census=None):
    """A complete profile submission for a household in the home barangay."""
    household = {
        'firstName': 'Juan',
        'middleName': 'Santos',
        'lastName': 'Dela Cruz',
        'address': 'Purok 1, Bonbon',
        'region': HOME_CODES['region'],
        'province': HOME_CODES['province'],
        'city': HOME_CODES['city'],
        'barangay': HOME_CODES['barangay'],
        'zone': 'Zone 1',
        'zipCode': '9000',
        'dob': '1985-04-12',
        'age': '39',
        'gender': 'Male',
        'civilStatus': civil_status,
        'phoneNumber': '09171234567',
        'idType': 'PhilSys',
        'idNo': '1234-5678',
        'employmentType': 'Employed',
        'occupation': 'Fisherman',
        'education': 'High School',
        'pwdStatus': 'No',
        'hasZoneCertificate': False,
        'image_url': f'{user_id}/profile_1.jpg',
        'valid_id_url': f'{user_id}/valid_id_1.jpg',
    }
    spouse = None
    if civil_status == 'Married':
        spouse = {
            'firstName': 'Maria',
            'middleName': 'Reyes',
            'lastName': 'Dela Cruz',
            'address': 'Purok 1, Bonbon',
            'region': HOME_CODES['region'],
            'province': HOME_CODES['province'],
            'city': HOME_CODES['city'],
            'barangay': HOME_CODES['barangay'],
            'dob': '1987-09-03',
            'age': '37',
            'gender': 'Female',
            'civilStatus': 'Married',
            'phoneNumber': '09181234567',
            'idType': 'PhilSys',
            'idNo': '8765-4321',
            'education': 'College',
            'employmentType': 'Self-employed',
            'pwdStatus': 'No',
            'valid_id_url': f'{user_id}/spouse_valid_id_1.jpg',
        }
    if census is None:
        census = {
            'ownsHouse': 'Yes',
            'isRenting': 'No',
            'yearsInBarangay': '10',
            'isRegisteredVoter': 'Yes',
            'voterPrecinctNo': '0123A',
            'hasOwnComfortRoom': 'Yes',
            'hasOwnWaterSupply': 'Yes',
            'hasOwnElectricity': 'Yes',
        }
    return {
        'household': household,
        'spouse': spouse,
        'householdComposition': members or [],
        'childrenCount': children_count,
        'numberOfHouseholdMembers': household_members,
        'census': census,
    }


def build_member(relation='Son', first_name='Pedro', living_with_parents='Yes'):
    member = {
        'firstName': first_name,
        'lastName': 'Dela Cruz',
        'relation': relation,
        'gender': 'Male',
        'age': '12',
        'dob': '2012-02-02',
        'education': 'Elementary',
        'pwdStatus': 'No',
    }
    if relation in ('Son', 'Daughter'):
        member['isLivingWithParents'] = living_with_parents
    return member


@pytest.fixture
def profile_payload():
    return build_profile_payload


@pytest.fixture
def member():
    return build_member


@pytest.fixture
def home_codes():
    return dict(HOME_CODES)
