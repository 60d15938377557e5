"""Officials rosters: validation and display order."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from apps.api.utils.validators import ValidationError, is_blank

MIN_YEAR = 1900
MAX_YEAR = 2100

LEADER_POSITIONS = ('punong barangay', 'sk chairman', 'sk chairperson', 'chairman', 'chairperson')


@dataclass(frozen=True)
class Roster:
    key: str
    label: str
    model_name: str
    bucket_config_key: str
    file_prefix: str

    @property
    def model(self):
        from apps.api import models
        return getattr(models, self.model_name)


ROSTERS = {
    'barangay': Roster('barangay', 'Barangay official', 'BarangayOfficial', 'BARANGAY_OFFICIALS_BUCKET', 'official'),
    'sk': Roster('sk', 'SK official', 'SKOfficial', 'SK_OFFICIALS_BUCKET', 'sk_official'),
}


def position_priority(position: Optional[str]) -> int:
    """1 leader, 2 secretary, 3 treasurer, 4 kagawad, 5 anything else."""
    pos = (position or '').strip().lower()
    if any(leader in pos for leader in LEADER_POSITIONS):
        return 1
    if 'secretary' in pos:
        return 2
    if 'treasurer' in pos:
        return 3
    if 'kagawad' in pos:
        return 4
    return 5


def surname(name: Optional[str]) -> str:
    parts = (name or '').split()
    return parts[-1].lower() if parts else ''


def display_sort_key(official) -> tuple:
    """
    Leader first, then position priority, current before former, most recent
    term first (start year for current, end year for former), then surname.
    """
    is_current = bool(official.is_current)
    recency = (official.start_year if is_current else official.end_year) or 0
    return (
        position_priority(official.position),
        0 if is_current else 1,
        -recency,
        surname(official.name),
        official.id or 0,
    )


def sort_officials(officials: List[Any]) -> List[Any]:
    return sorted(officials, key=display_sort_key)


def _parse_year(value, field: str) -> Optional[int]:
    if value in (None, ''):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(field, f"{field.replace('_', ' ').capitalize()} must be a year")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def validate_official(data: Dict[str, Any], partial: bool = False, existing=None) -> Dict[str, Any]:
    """
    Validate official form data and return column values.

    With ``partial`` (updates) missing keys keep the ``existing`` record's
    values; the combined record must still be valid.
    """
    if not isinstance(data, dict):
        raise ValidationError('official', 'Official data is required')

    def current(key, default=None):
        if key in data:
            return data.get(key)
        if partial and existing is not None:
            return getattr(existing, key)
        return default

    values = {}
    for field, label in (('name', 'Name'), ('position', 'Position'), ('official_type', 'Official type')):
        value = current(field)
        if is_blank(value):
            raise ValidationError(field, f"{label} is required.")
        values[field] = str(value).strip()

    is_current = _parse_bool(current('is_current', True))
    start_year = _parse_year(current('start_year'), 'start_year')
    end_year = _parse_year(current('end_year'), 'end_year')

    if start_year is None:
        raise ValidationError('start_year', 'Start year is required.')
    if start_year < MIN_YEAR or start_year > MAX_YEAR:
        raise ValidationError('start_year', f"Start year must be between {MIN_YEAR} and {MAX_YEAR}.")

    if is_current:
        end_year = None
    else:
        if end_year is None:
            raise ValidationError('end_year', 'End year is required for former officials.')
        if end_year < start_year:
            raise ValidationError('end_year', 'End year cannot be before start year.')
        if end_year > MAX_YEAR:
            raise ValidationError('end_year', f"End year must not be after {MAX_YEAR}.")

    values.update({'is_current': is_current, 'start_year': start_year, 'end_year': end_year})
    return values
