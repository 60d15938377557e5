"""
Resident profile review workflow.

A profile moves through five statuses. The integer values are the ones
stored in ``resident_profile_status.status`` and must not be renumbered.

    (new) --submit--> PENDING --approve--> APPROVED --request_update--> UPDATE_REQUESTED
             PENDING --reject--> REJECTED --submit--> PENDING
    UPDATE_REQUESTED --accept_update--> UPDATE_APPROVED --submit--> PENDING
    UPDATE_REQUESTED --decline_update--> APPROVED
    UPDATE_REQUESTED --submit--> UPDATE_APPROVED

The transition table is pure data; ProfileStatusMachine applies it through
an injected profile store and notification gateway. The status write is the
commit point: a failed notification is reported as a warning and never
undoes the write. There is no concurrency token, so two admins acting on the
same resident race and the last write wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from apps.api.utils.notification_gateway import NotificationEvent
from apps.api.utils.time import utc_now
from apps.api.utils.validators import ValidationError, is_blank

logger = logging.getLogger(__name__)


class ProfileStatus(IntEnum):
    APPROVED = 1
    REJECTED = 2
    PENDING = 3
    UPDATE_REQUESTED = 4
    UPDATE_APPROVED = 5

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def coerce(cls, value) -> Optional['ProfileStatus']:
        """Map a stored value to a status; None stays None, unknown values raise ValueError."""
        if value is None:
            return None
        return cls(int(value))


STATUS_LABELS = {
    ProfileStatus.APPROVED: 'Approved',
    ProfileStatus.REJECTED: 'Rejected',
    ProfileStatus.PENDING: 'Pending',
    ProfileStatus.UPDATE_REQUESTED: 'Update Requested',
    ProfileStatus.UPDATE_APPROVED: 'Update Approved',
}


class ProfileAction(str, Enum):
    SUBMIT = 'submit'
    APPROVE = 'approve'
    REJECT = 'reject'
    REQUEST_UPDATE = 'request_update'
    ACCEPT_UPDATE = 'accept_update'
    DECLINE_UPDATE = 'decline_update'


class Actor(str, Enum):
    ADMIN = 'admin'
    RESIDENT = 'resident'


class ReasonPolicy(str, Enum):
    """What a transition does with the stored reason. REQUIRE stores a new non-empty one."""
    REQUIRE = 'require'
    CLEAR = 'clear'
    KEEP = 'keep'


class TransitionError(Exception):
    """Raised when an action is not allowed from the profile's current status."""

    def __init__(self, message: str, current: Optional[ProfileStatus] = None, action: Optional[ProfileAction] = None):
        super().__init__(message)
        self.message = message
        self.current = current
        self.action = action


class ResidentNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class Transition:
    source: Optional[ProfileStatus]
    action: ProfileAction
    target: ProfileStatus
    actors: FrozenSet[Actor]
    reason_policy: ReasonPolicy = ReasonPolicy.KEEP
    notification: Optional[NotificationEvent] = None


_ADMIN = frozenset({Actor.ADMIN})
_RESIDENT = frozenset({Actor.RESIDENT})

TRANSITIONS: Dict[Tuple[Optional[ProfileStatus], ProfileAction], Transition] = {
    (t.source, t.action): t
    for t in (
        Transition(None, ProfileAction.SUBMIT, ProfileStatus.PENDING, _RESIDENT,
                   notification=NotificationEvent.PENDING),
        Transition(ProfileStatus.PENDING, ProfileAction.APPROVE, ProfileStatus.APPROVED, _ADMIN,
                   notification=NotificationEvent.APPROVAL),
        Transition(ProfileStatus.PENDING, ProfileAction.REJECT, ProfileStatus.REJECTED, _ADMIN,
                   ReasonPolicy.REQUIRE, NotificationEvent.REJECTION),
        # Residents may ask to edit their approved profile; admins may ask on their behalf
        Transition(ProfileStatus.APPROVED, ProfileAction.REQUEST_UPDATE, ProfileStatus.UPDATE_REQUESTED,
                   _ADMIN | _RESIDENT, ReasonPolicy.REQUIRE, NotificationEvent.UPDATE_REQUEST),
        Transition(ProfileStatus.UPDATE_REQUESTED, ProfileAction.ACCEPT_UPDATE, ProfileStatus.UPDATE_APPROVED,
                   _ADMIN, ReasonPolicy.CLEAR, NotificationEvent.UPDATE_APPROVAL),
        Transition(ProfileStatus.UPDATE_REQUESTED, ProfileAction.DECLINE_UPDATE, ProfileStatus.APPROVED,
                   _ADMIN, ReasonPolicy.REQUIRE, NotificationEvent.UPDATE_REJECTION),
        # Resubmitting while an update is requested skips re-review. Kept as the
        # portal has always behaved until the barangay confirms the rule.
        Transition(ProfileStatus.UPDATE_REQUESTED, ProfileAction.SUBMIT, ProfileStatus.UPDATE_APPROVED,
                   _RESIDENT),
        Transition(ProfileStatus.UPDATE_APPROVED, ProfileAction.SUBMIT, ProfileStatus.PENDING, _RESIDENT,
                   notification=NotificationEvent.PENDING),
        Transition(ProfileStatus.REJECTED, ProfileAction.SUBMIT, ProfileStatus.PENDING, _RESIDENT,
                   notification=NotificationEvent.PENDING),
    )
}


def plan_transition(
    current: Optional[ProfileStatus],
    action: ProfileAction,
    actor: Actor,
    reason: Optional[str] = None,
) -> Transition:
    """
    Resolve (current status, action, actor) to a transition without side effects.

    Raises:
        TransitionError: the action is not allowed from ``current`` or by ``actor``
        ValidationError: the transition needs a reason and none was given
    """
    transition = TRANSITIONS.get((current, action))
    if transition is None:
        current_label = current.label if current is not None else 'no profile'
        raise TransitionError(
            f"Cannot {action.value.replace('_', ' ')} a profile with status {current_label}",
            current,
            action,
        )
    if actor not in transition.actors:
        raise TransitionError(
            f"{actor.value.title()} cannot {action.value.replace('_', ' ')} this profile",
            current,
            action,
        )
    missing_reason = not isinstance(reason, str) or is_blank(reason)
    if transition.reason_policy is ReasonPolicy.REQUIRE and missing_reason:
        raise ValidationError('reason', 'Please provide a reason')
    return transition


@dataclass
class TransitionResult:
    resident_id: int
    user_id: int
    previous_status: Optional[ProfileStatus]
    status: ProfileStatus
    rejection_reason: Optional[str]
    updated_at: object
    notification: Optional[NotificationEvent] = None
    warnings: list = field(default_factory=list)

    def to_dict(self):
        return {
            'resident_id': self.resident_id,
            'previous_status': int(self.previous_status) if self.previous_status is not None else None,
            'status': int(self.status),
            'status_label': self.status.label,
            'rejection_reason': self.rejection_reason,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'notification': self.notification.value if self.notification else None,
            'warnings': list(self.warnings),
        }


def _notification_payload(event: NotificationEvent, reason: Optional[str]) -> dict:
    if event in (NotificationEvent.REJECTION, NotificationEvent.UPDATE_REJECTION):
        return {'rejectionReason': reason}
    if event is NotificationEvent.UPDATE_REQUEST:
        return {'updateReason': reason}
    return {}


class ProfileStatusMachine:
    """
    Applies workflow transitions.

    Args:
        store: ProfileStore; its backend receives the status writes
        gateway: NotificationGateway (or anything with the same ``send``)
        clock: returns the timestamp written with each status change
    """

    def __init__(self, store, gateway, clock: Callable = utc_now):
        self.store = store
        self.backend = store.backend
        self.gateway = gateway
        self.clock = clock

    def _current_status(self, row: dict) -> Optional[ProfileStatus]:
        status_row = row.get('status')
        if not status_row:
            return None
        try:
            return ProfileStatus.coerce(status_row.get('status'))
        except (TypeError, ValueError):
            raise TransitionError(
                f"Resident {row.get('id')} has an unrecognized status: {status_row.get('status')!r}"
            )

    def _commit(self, row: dict, transition: Transition, reason: Optional[str]) -> TransitionResult:
        previous = self._current_status(row)
        now = self.clock()

        if transition.reason_policy is ReasonPolicy.REQUIRE:
            reason = reason.strip()
            status_row = self.backend.write_status(row['id'], int(transition.target), now, rejection_reason=reason)
        elif transition.reason_policy is ReasonPolicy.CLEAR:
            status_row = self.backend.write_status(row['id'], int(transition.target), now, rejection_reason=None)
        else:
            status_row = self.backend.write_status(row['id'], int(transition.target), now, set_reason=False)

        result = TransitionResult(
            resident_id=row['id'],
            user_id=row['user_id'],
            previous_status=previous,
            status=transition.target,
            rejection_reason=status_row.get('rejection_reason'),
            updated_at=status_row.get('updated_at') or now,
            notification=transition.notification,
        )
        logger.info(
            "Resident %s profile %s: %s -> %s",
            row['id'],
            transition.action.value,
            previous.label if previous is not None else 'new',
            transition.target.label,
        )

        if transition.notification is not None:
            warning = self.gateway.send(
                transition.notification,
                row['user_id'],
                _notification_payload(transition.notification, reason),
            )
            if warning:
                result.warnings.append(warning)
        return result

    def apply(self, resident_id: int, action: ProfileAction, actor: Actor, reason: Optional[str] = None) -> TransitionResult:
        """Apply a review action to an existing resident profile."""
        row = self.backend.fetch_resident(resident_id)
        if row is None:
            raise ResidentNotFoundError(f"Resident {resident_id} not found")
        # A resident row without a status record is listed as Pending, so review it as one
        current = self._current_status(row) or ProfileStatus.PENDING
        transition = plan_transition(current, action, actor, reason)
        return self._commit(row, transition, reason)

    def submit(self, user_id: int, values: dict) -> TransitionResult:
        """
        Create or replace the resident's profile, then move its status.

        The transition is planned before the profile is written so a resident
        whose status does not allow editing cannot overwrite their data.
        """
        existing = self.backend.fetch_resident_by_user(user_id)
        current = self._current_status(existing) if existing else None
        transition = plan_transition(current, ProfileAction.SUBMIT, Actor.RESIDENT)
        row = self.store.upsert(user_id, values)
        return self._commit(row, transition, None)

    def approve(self, resident_id: int) -> TransitionResult:
        return self.apply(resident_id, ProfileAction.APPROVE, Actor.ADMIN)

    def reject(self, resident_id: int, reason: str) -> TransitionResult:
        return self.apply(resident_id, ProfileAction.REJECT, Actor.ADMIN, reason)

    def request_update(self, resident_id: int, reason: str, actor: Actor = Actor.ADMIN) -> TransitionResult:
        return self.apply(resident_id, ProfileAction.REQUEST_UPDATE, actor, reason)

    def accept_update(self, resident_id: int) -> TransitionResult:
        return self.apply(resident_id, ProfileAction.ACCEPT_UPDATE, Actor.ADMIN)

    def decline_update(self, resident_id: int, reason: str) -> TransitionResult:
        return self.apply(resident_id, ProfileAction.DECLINE_UPDATE, Actor.ADMIN, reason)


def get_status_machine() -> ProfileStatusMachine:
    """Status machine bound to the current app's backend and gateway."""
    from flask import current_app
    return current_app.extensions['profile_status_machine']
