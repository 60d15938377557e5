"""
Resident profile storage.

``ProfileBackend`` is the narrow interface the rest of the API needs from the
database: fetch, upsert, status writes, delete, a data version and change
subscription. The app builds a ``SQLAlchemyProfileBackend`` and passes it
explicitly to ``ProfileStore`` and ``ProfileStatusMachine``; tests pass
in-memory fakes.

Backend rows are plain dicts:

    {'id', 'user_id', 'household', 'spouse', 'household_composition', 'census',
     'children_count', 'number_of_household_members', 'image_url',
     'valid_id_url', 'zone_cert_url', 'spouse_valid_id_url', 'created_at',
     'updated_at', 'status': {'status', 'rejection_reason', 'created_at',
     'updated_at'} | None}

with the four profile blobs as JSON text. ``ProfileStore`` decodes them one
field at a time, so a single corrupt value degrades that field of that
record instead of failing the whole listing.
"""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from apps.api.utils.profile_workflow import STATUS_LABELS, ProfileStatus, ResidentNotFoundError
from apps.api.utils.time import isoformat_or_none, utc_now

logger = logging.getLogger(__name__)

JSON_FIELDS = ('household', 'spouse', 'household_composition', 'census')

UNKNOWN = 'Unknown'
HOUSEHOLD_FALLBACK_KEYS = ('firstName', 'lastName', 'gender', 'dob', 'address', 'zone')

ChangeListener = Callable[[str, Optional[int]], None]


def household_fallback() -> Dict[str, str]:
    return {key: UNKNOWN for key in HOUSEHOLD_FALLBACK_KEYS}


class ProfileBackend(ABC):
    """Persistence operations used by the profile store and the status machine."""

    @abstractmethod
    def fetch_residents(self) -> List[dict]:
        ...

    @abstractmethod
    def fetch_resident(self, resident_id: int) -> Optional[dict]:
        ...

    @abstractmethod
    def fetch_resident_by_user(self, user_id: int) -> Optional[dict]:
        ...

    @abstractmethod
    def upsert_resident(self, user_id: int, values: Dict[str, Any]) -> dict:
        """Insert or replace the profile owned by ``user_id`` (JSON fields already encoded)."""

    @abstractmethod
    def write_status(
        self,
        resident_id: int,
        status: int,
        updated_at,
        rejection_reason: Optional[str] = None,
        set_reason: bool = True,
    ) -> dict:
        """
        Create or update the status record; status and updated_at are written
        in one commit. ``rejection_reason`` is only touched when ``set_reason``.
        """

    @abstractmethod
    def delete_status(self, resident_id: int) -> None:
        ...

    @abstractmethod
    def delete_resident(self, resident_id: int) -> None:
        ...

    @abstractmethod
    def data_version(self) -> tuple:
        """
        Cheap fingerprint of the profile tables. Any committed write, from
        this process or another, changes it.
        """

    @abstractmethod
    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener(table, resident_id)``; returns an unsubscribe callable."""


class ChangePublisher:
    """Listener registry shared by backend implementations."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, table: str, resident_id: Optional[int] = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(table, resident_id)
            except Exception:
                logger.exception("Change listener failed for %s (resident %s)", table, resident_id)


class SQLAlchemyProfileBackend(ChangePublisher, ProfileBackend):
    """Backend over the ``residents`` and ``resident_profile_status`` tables."""

    def __init__(self, db):
        super().__init__()
        self.db = db

    @staticmethod
    def _status_row(status) -> Optional[dict]:
        if status is None:
            return None
        return {
            'status': status.status,
            'rejection_reason': status.rejection_reason,
            'created_at': status.created_at,
            'updated_at': status.updated_at,
        }

    def _row(self, resident) -> dict:
        return {
            'id': resident.id,
            'user_id': resident.user_id,
            'household': resident.household,
            'spouse': resident.spouse,
            'household_composition': resident.household_composition,
            'census': resident.census,
            'children_count': resident.children_count,
            'number_of_household_members': resident.number_of_household_members,
            'image_url': resident.image_url,
            'valid_id_url': resident.valid_id_url,
            'zone_cert_url': resident.zone_cert_url,
            'spouse_valid_id_url': resident.spouse_valid_id_url,
            'created_at': resident.created_at,
            'updated_at': resident.updated_at,
            'status': self._status_row(resident.profile_status),
        }

    def data_version(self) -> tuple:
        from sqlalchemy import func
        from apps.api.models.resident import Resident, ResidentProfileStatus
        residents = self.db.session.query(func.count(Resident.id), func.max(Resident.updated_at)).one()
        statuses = self.db.session.query(
            func.count(ResidentProfileStatus.id), func.max(ResidentProfileStatus.updated_at)
        ).one()
        return tuple(residents) + tuple(statuses)

    def fetch_residents(self) -> List[dict]:
        from apps.api.models.resident import Resident
        residents = Resident.query.order_by(Resident.id).all()
        return [self._row(r) for r in residents]

    def fetch_resident(self, resident_id: int) -> Optional[dict]:
        from apps.api.models.resident import Resident
        resident = self.db.session.get(Resident, resident_id)
        return self._row(resident) if resident else None

    def fetch_resident_by_user(self, user_id: int) -> Optional[dict]:
        from apps.api.models.resident import Resident
        resident = Resident.query.filter_by(user_id=user_id).first()
        return self._row(resident) if resident else None

    def upsert_resident(self, user_id: int, values: Dict[str, Any]) -> dict:
        from apps.api.models.resident import Resident
        resident = Resident.query.filter_by(user_id=user_id).first()
        if resident is None:
            resident = Resident(user_id=user_id)
            self.db.session.add(resident)
        for key, value in values.items():
            setattr(resident, key, value)
        resident.updated_at = utc_now()
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        self.publish('residents', resident.id)
        return self._row(resident)

    def write_status(self, resident_id, status, updated_at, rejection_reason=None, set_reason=True) -> dict:
        from apps.api.models.resident import ResidentProfileStatus
        record = ResidentProfileStatus.query.filter_by(resident_id=resident_id).first()
        if record is None:
            record = ResidentProfileStatus(resident_id=resident_id, created_at=updated_at)
            self.db.session.add(record)
        record.status = int(status)
        record.updated_at = updated_at
        if set_reason:
            record.rejection_reason = rejection_reason
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        self.publish('resident_profile_status', resident_id)
        return self._status_row(record)

    def delete_status(self, resident_id: int) -> None:
        from apps.api.models.resident import ResidentProfileStatus
        try:
            ResidentProfileStatus.query.filter_by(resident_id=resident_id).delete()
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        self.publish('resident_profile_status', resident_id)

    def delete_resident(self, resident_id: int) -> None:
        from apps.api.models.resident import Resident
        try:
            Resident.query.filter_by(id=resident_id).delete()
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        self.publish('residents', resident_id)


def _decode(raw):
    if isinstance(raw, (dict, list)):
        return raw
    return json.loads(raw)


class ProfileStore:
    """
    Decoded view of resident profiles.

    Args:
        backend: ProfileBackend implementation
        file_remover: ``callable(path)`` deleting a household head photo
        url_signer: ``callable(path) -> url | None`` for household head photos
    """

    def __init__(self, backend: ProfileBackend, file_remover=None, url_signer=None):
        self.backend = backend
        self.file_remover = file_remover
        self.url_signer = url_signer

    def _decode_household(self, row: dict) -> dict:
        raw = row.get('household')
        if raw in (None, ''):
            return household_fallback()
        try:
            value = _decode(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Error parsing household for resident %s: %s", row.get('id'), e)
            return household_fallback()
        if not isinstance(value, dict):
            logger.warning("Household for resident %s is not an object", row.get('id'))
            return household_fallback()
        return value

    def _decode_spouse(self, row: dict) -> Optional[dict]:
        raw = row.get('spouse')
        if not raw:
            return None
        try:
            value = _decode(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Error parsing spouse for resident %s: %s", row.get('id'), e)
            return None
        return value if isinstance(value, dict) else None

    def _decode_composition(self, row: dict) -> list:
        raw = row.get('household_composition')
        if not raw:
            return []
        try:
            value = _decode(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Error parsing household_composition for resident %s: %s", row.get('id'), e)
            return []
        return value if isinstance(value, list) else []

    def _decode_census(self, row: dict) -> dict:
        raw = row.get('census')
        if not raw:
            return {}
        try:
            value = _decode(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Error parsing census for resident %s: %s", row.get('id'), e)
            return {}
        return value if isinstance(value, dict) else {}

    def _signed_image_url(self, row: dict) -> Optional[str]:
        path = row.get('image_url')
        if not path or self.url_signer is None:
            return None
        try:
            return self.url_signer(path)
        except Exception as e:
            logger.warning("Error generating signed URL for resident %s: %s", row.get('id'), e)
            return None

    def format_record(self, row: dict) -> dict:
        """Decode one backend row into the record shape served to clients."""
        household = self._decode_household(row)
        status_row = row.get('status') or {}
        status = status_row.get('status') or int(ProfileStatus.PENDING)
        reason = status_row.get('rejection_reason')
        try:
            status_label = STATUS_LABELS[ProfileStatus(int(status))]
        except (TypeError, ValueError, KeyError):
            logger.warning("Resident %s has unrecognized status %r", row.get('id'), status)
            status_label = UNKNOWN

        first_name = household.get('firstName') or UNKNOWN
        last_name = household.get('lastName') or UNKNOWN
        return {
            'id': row['id'],
            'user_id': row.get('user_id'),
            'first_name': first_name,
            'last_name': last_name,
            'gender': household.get('gender') or UNKNOWN,
            'dob': household.get('dob') or UNKNOWN,
            'address': household.get('address') or UNKNOWN,
            'purok': household.get('zone') or UNKNOWN,
            'household_head': f"{first_name} {last_name}",
            'status': status,
            'status_label': status_label,
            'update_reason': reason if status == ProfileStatus.UPDATE_REQUESTED else None,
            'rejection_reason': reason if status != ProfileStatus.UPDATE_REQUESTED else None,
            'created_at': isoformat_or_none(status_row.get('created_at')),
            'updated_at': isoformat_or_none(status_row.get('updated_at')),
            'household': household,
            'spouse': self._decode_spouse(row),
            'household_composition': self._decode_composition(row),
            'census': self._decode_census(row),
            'children_count': row.get('children_count') or 0,
            'number_of_household_members': row.get('number_of_household_members') or 0,
            'image_url': row.get('image_url'),
            'valid_id_url': row.get('valid_id_url'),
            'zone_cert_url': row.get('zone_cert_url'),
            'spouse_valid_id_url': row.get('spouse_valid_id_url'),
            'profile_image_url': self._signed_image_url(row),
        }

    def fetch_all(self) -> List[dict]:
        return [self.format_record(row) for row in self.backend.fetch_residents()]

    def fetch_one(self, resident_id: int) -> Optional[dict]:
        row = self.backend.fetch_resident(resident_id)
        return self.format_record(row) if row else None

    def fetch_for_user(self, user_id: int) -> Optional[dict]:
        row = self.backend.fetch_resident_by_user(user_id)
        return self.format_record(row) if row else None

    def upsert(self, user_id: int, profile: Dict[str, Any]) -> dict:
        """
        Write validated profile values (see validators.validate_resident_profile),
        keyed on ``user_id``. Returns the backend row.
        """
        values = dict(profile)
        for field in JSON_FIELDS:
            if field in values:
                values[field] = None if values[field] is None else json.dumps(values[field])
        return self.backend.upsert_resident(user_id, values)

    def delete(self, resident_id: int) -> List[str]:
        """
        Delete a resident: household head photo first (best effort), then the
        status record, then the resident row.

        Returns:
            Warnings for the caller (e.g. the photo could not be removed)

        Raises:
            ResidentNotFoundError: unknown resident id
        """
        row = self.backend.fetch_resident(resident_id)
        if row is None:
            raise ResidentNotFoundError(f"Resident {resident_id} not found")

        warnings = []
        image_path = row.get('image_url')
        if image_path and self.file_remover is not None:
            try:
                self.file_remover(image_path)
            except Exception as e:
                logger.warning("Error deleting image for resident %s: %s", resident_id, e)
                warnings.append(f"Failed to delete profile image: {e}")

        self.backend.delete_status(resident_id)
        self.backend.delete_resident(resident_id)
        logger.info("Deleted resident %s", resident_id)
        return warnings


def get_profile_store() -> ProfileStore:
    from flask import current_app
    return current_app.extensions['profile_store']
