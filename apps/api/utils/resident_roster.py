"""
Cached resident roster for the admin review screens.

Every read compares the backend's data version (row counts and latest
``updated_at`` over the profile tables) with the version the cache was
built from, so writes from other workers, scripts or direct database edits
are picked up on the next read. In-process change events only mark the
cache dirty; the refetch happens on the next read, not in the writer's
request.

Fetches are numbered; a finished fetch is applied only if no newer fetch
has already been applied, so a slow fetch that started before a change can
never overwrite the result of a fetch that started after it.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from apps.api.utils.profile_workflow import ProfileStatus

logger = logging.getLogger(__name__)

SORT_OPTIONS = ('default', 'name-asc', 'name-desc', 'status-asc', 'status-desc', 'date-asc', 'date-desc')
MAX_PER_PAGE = 100


class ResidentRoster:
    """
    Args:
        store: ProfileStore providing ``fetch_all`` and ``backend.subscribe``
            and ``backend.data_version``
        max_age: seconds after which cached records are refetched on read
            (signed image URLs in the records expire)
        clock: monotonic clock, injectable for tests
    """

    def __init__(self, store, max_age: float = 1800, clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.max_age = max_age
        self.clock = clock
        self._lock = threading.Lock()
        self._records: Optional[List[dict]] = None
        self._loaded_at: Optional[float] = None
        self._version: Any = None
        self._issued = 0
        self._applied = 0
        self._dirty = True
        self._unsubscribe = store.backend.subscribe(self._on_change)

    def close(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, table: str, resident_id: Optional[int]) -> None:
        logger.debug("Roster change on %s (resident %s); marking dirty", table, resident_id)
        with self._lock:
            self._dirty = True

    def begin_fetch(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def apply(self, generation: int, records: List[dict], version: Any = None) -> bool:
        """Install ``records`` from fetch ``generation``; False if a newer fetch already won."""
        with self._lock:
            if generation <= self._applied:
                logger.info("Discarding stale roster fetch %s (applied %s)", generation, self._applied)
                return False
            self._applied = generation
            self._records = records
            self._version = version
            self._loaded_at = self.clock()
            self._dirty = generation < self._issued
            return True

    def refresh(self, version: Any = None) -> List[dict]:
        generation = self.begin_fetch()
        try:
            if version is None:
                version = self.store.backend.data_version()
            records = self.store.fetch_all()
        except Exception:
            with self._lock:
                self._dirty = True
            raise
        self.apply(generation, records, version)
        with self._lock:
            return list(self._records or [])

    def records(self) -> List[dict]:
        version = self.store.backend.data_version()
        with self._lock:
            changed = self._records is not None and self._version != version
            fresh = (
                self._records is not None
                and not self._dirty
                and not changed
                and self._loaded_at is not None
                and self.clock() - self._loaded_at < self.max_age
            )
            if fresh:
                return list(self._records)
        if changed:
            logger.debug("Roster data version changed to %s; refetching", version)
        return self.refresh(version)

    @property
    def applied_generation(self) -> int:
        return self._applied


def status_counts(records: List[dict]) -> Dict[str, int]:
    return {
        'pending': sum(1 for r in records if r['status'] == ProfileStatus.PENDING),
        'rejected': sum(1 for r in records if r['status'] == ProfileStatus.REJECTED),
        'update_requested': sum(1 for r in records if r['status'] == ProfileStatus.UPDATE_REQUESTED),
    }


def _timestamp(record: dict) -> str:
    # ISO strings sort chronologically; missing timestamps sort first
    return record.get('updated_at') or ''


def _last_name(record: dict) -> str:
    return (record.get('last_name') or '').lower()


def _full_name(record: dict) -> str:
    return f"{record.get('first_name') or ''} {record.get('last_name') or ''}".strip().lower()


def default_order(records: List[dict]) -> List[dict]:
    """Pending oldest first, then other non-approved statuses by time, then Approved by last name."""
    pending = sorted((r for r in records if r['status'] == ProfileStatus.PENDING), key=_timestamp)
    approved = sorted((r for r in records if r['status'] == ProfileStatus.APPROVED), key=_last_name)
    others = sorted(
        (r for r in records if r['status'] not in (ProfileStatus.PENDING, ProfileStatus.APPROVED)),
        key=_timestamp,
    )
    return pending + others + approved


def sort_records(records: List[dict], sort: str = 'default') -> List[dict]:
    if sort == 'name-asc':
        return sorted(records, key=_full_name)
    if sort == 'name-desc':
        return sorted(records, key=_full_name, reverse=True)
    if sort == 'status-asc':
        return sorted(records, key=lambda r: (r['status'], _full_name(r)))
    if sort == 'status-desc':
        return sorted(records, key=lambda r: (-r['status'], _full_name(r)))
    if sort == 'date-asc':
        return sorted(records, key=_timestamp)
    if sort == 'date-desc':
        return sorted(records, key=_timestamp, reverse=True)
    return default_order(records)


def filter_records(records: List[dict], search: str = '', status: Optional[int] = None) -> List[dict]:
    term = (search or '').strip().lower()
    result = records
    if term:
        result = [r for r in result if term in _full_name(r)]
    if status is not None:
        result = [r for r in result if r['status'] == status]
    return result


def paginate(records: List[dict], page: int = 1, per_page: int = 20) -> dict:
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    total = len(records)
    pages = max(1, (total + per_page - 1) // per_page)
    page = max(1, min(page, pages))
    start = (page - 1) * per_page
    return {
        'items': records[start:start + per_page],
        'page': page,
        'per_page': per_page,
        'total': total,
        'pages': pages,
    }


def get_resident_roster() -> ResidentRoster:
    from flask import current_app
    return current_app.extensions['resident_roster']
