"""
Barangay Bonbon Portal - Admin Routes

Resident profile review: listing, detail, status actions and deletion.
Every route requires an admin JWT (see enforce_admin_role).
"""
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from apps.api import db
from apps.api.utils.auth import check_admin_request, get_current_user_id
from apps.api.utils.profile_store import get_profile_store
from apps.api.utils.profile_workflow import ProfileStatus, ResidentNotFoundError, get_status_machine
from apps.api.utils.resident_roster import (
    MAX_PER_PAGE,
    SORT_OPTIONS,
    filter_records,
    get_resident_roster,
    paginate,
    sort_records,
    status_counts,
)
from apps.api.utils.security import error_400, error_404, error_500

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')

STATUS_FILTERS = {
    'approved': ProfileStatus.APPROVED,
    'rejected': ProfileStatus.REJECTED,
    'pending': ProfileStatus.PENDING,
    'update-requested': ProfileStatus.UPDATE_REQUESTED,
    'update-approved': ProfileStatus.UPDATE_APPROVED,
}


@admin_bp.before_request
def enforce_admin_role():
    """Require JWT and admin role for all /api/admin routes."""
    return check_admin_request()


def _parse_status_filter(raw):
    """Accept a status number or a name such as ``pending`` / ``update-requested``."""
    if raw in (None, '', 'all'):
        return None
    value = str(raw).strip().lower().replace('_', '-').replace(' ', '-')
    if value in STATUS_FILTERS:
        return int(STATUS_FILTERS[value])
    try:
        return int(ProfileStatus(int(value)))
    except ValueError:
        return 'invalid'


def _action_response(message: str, result):
    payload = {
        'message': message,
        'result': result.to_dict(),
        'resident': get_profile_store().fetch_one(result.resident_id),
    }
    if result.warnings:
        payload['warning'] = '; '.join(result.warnings)
    return jsonify(payload), 200


def _reason():
    data = request.get_json(silent=True) or {}
    return data.get('reason')


def _run_action(resident_id: int, action_name: str, message: str, action):
    admin_id = get_current_user_id()
    try:
        result = action()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500(f'Failed to {action_name} resident profile', e)
    current_app.logger.info(
        "Admin %s: %s resident %s (%s -> %s)",
        admin_id,
        action_name,
        resident_id,
        result.previous_status.label if result.previous_status is not None else 'new',
        result.status.label,
    )
    return _action_response(message, result)


@admin_bp.route('/residents', methods=['GET'])
def list_residents():
    """
    Paginated resident listing.

    Query params: search, status, sort (default, name-asc, name-desc,
    status-asc, status-desc, date-asc, date-desc), page, per_page (max 100)
    """
    sort = (request.args.get('sort') or 'default').strip().lower()
    if sort not in SORT_OPTIONS:
        return error_400(f"Invalid sort option. Use one of: {', '.join(SORT_OPTIONS)}")

    status = _parse_status_filter(request.args.get('status'))
    if status == 'invalid':
        return error_400('Invalid status filter')

    page = request.args.get('page', 1, type=int) or 1
    per_page = request.args.get('per_page', 20, type=int) or 20
    per_page = min(per_page, MAX_PER_PAGE)

    try:
        records = get_resident_roster().records()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to fetch residents', e)

    filtered = filter_records(records, request.args.get('search', ''), status)
    page_data = paginate(sort_records(filtered, sort), page, per_page)

    return jsonify({
        'residents': page_data['items'],
        'pagination': {
            'page': page_data['page'],
            'per_page': page_data['per_page'],
            'total': page_data['total'],
            'pages': page_data['pages'],
        },
        'counts': status_counts(records),
    }), 200


@admin_bp.route('/residents/<int:resident_id>', methods=['GET'])
def get_resident(resident_id):
    resident = get_profile_store().fetch_one(resident_id)
    if resident is None:
        return error_404('Resident not found')
    return jsonify({'resident': resident}), 200


@admin_bp.route('/residents/<int:resident_id>/approve', methods=['POST'])
def approve_resident(resident_id):
    machine = get_status_machine()
    return _run_action(resident_id, 'approve', 'Profile approved', lambda: machine.approve(resident_id))


@admin_bp.route('/residents/<int:resident_id>/reject', methods=['POST'])
def reject_resident(resident_id):
    machine = get_status_machine()
    reason = _reason()
    return _run_action(resident_id, 'reject', 'Profile rejected', lambda: machine.reject(resident_id, reason))


@admin_bp.route('/residents/<int:resident_id>/request-update', methods=['POST'])
def request_resident_update(resident_id):
    machine = get_status_machine()
    reason = _reason()
    return _run_action(
        resident_id,
        'request update for',
        'Update requested',
        lambda: machine.request_update(resident_id, reason),
    )


@admin_bp.route('/residents/<int:resident_id>/accept-update', methods=['POST'])
def accept_resident_update(resident_id):
    machine = get_status_machine()
    return _run_action(
        resident_id, 'accept update for', 'Update request accepted', lambda: machine.accept_update(resident_id)
    )


@admin_bp.route('/residents/<int:resident_id>/decline-update', methods=['POST'])
def decline_resident_update(resident_id):
    machine = get_status_machine()
    reason = _reason()
    return _run_action(
        resident_id,
        'decline update for',
        'Update request declined',
        lambda: machine.decline_update(resident_id, reason),
    )


@admin_bp.route('/residents/<int:resident_id>', methods=['DELETE'])
def delete_resident(resident_id):
    """Delete a resident: photo (best effort), status record, then the resident row."""
    try:
        warnings = get_profile_store().delete(resident_id)
    except ResidentNotFoundError:
        return error_404('Resident not found')
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to delete resident', e)

    current_app.logger.info("Admin %s deleted resident %s", get_current_user_id(), resident_id)
    payload = {'message': 'Resident deleted successfully', 'resident_id': resident_id}
    if warnings:
        payload['warning'] = '; '.join(warnings)
    return jsonify(payload), 200
