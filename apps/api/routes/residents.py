"""
Barangay Bonbon Portal - Resident Routes

Endpoints used by a signed-in resident:
- View own profile and review status
- Upload profile files (photo, valid ID, zone certificate, spouse ID)
- Submit / resubmit the household profile
- Ask to update an approved profile
"""
import json

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import SQLAlchemyError

from apps.api import db, limiter
from apps.api.utils.auth import get_current_user_id
from apps.api.utils.image_processing import parse_crop_box
from apps.api.utils.profile_store import get_profile_store
from apps.api.utils.profile_workflow import (
    Actor,
    ProfileStatus,
    TRANSITIONS,
    ProfileAction,
    get_status_machine,
)
from apps.api.utils.security import error_400, error_401, error_404, error_500, error_503
from apps.api.utils.storage_handler import RESIDENT_UPLOAD_KINDS, StorageError, save_resident_upload
from apps.api.utils.validators import validate_resident_profile

residents_bp = Blueprint('residents', __name__, url_prefix='/api/residents')


def _home_codes():
    cfg = current_app.config
    return {
        'region': cfg.get('HOME_REGION_CODE'),
        'province': cfg.get('HOME_PROVINCE_CODE'),
        'city': cfg.get('HOME_CITY_CODE'),
        'barangay': cfg.get('HOME_BARANGAY_CODE'),
    }


def _can_submit(raw_status) -> bool:
    try:
        status = ProfileStatus.coerce(raw_status)
    except ValueError:
        return False
    return (status, ProfileAction.SUBMIT) in TRANSITIONS


def _transition_response(message: str, result, status_code: int = 200):
    profile = get_profile_store().fetch_one(result.resident_id)
    payload = {
        'message': message,
        'result': result.to_dict(),
        'profile': profile,
    }
    if result.warnings:
        payload['warning'] = '; '.join(result.warnings)
    return jsonify(payload), status_code


@residents_bp.route('/me', methods=['GET'])
@jwt_required()
def get_my_profile():
    """Current user's profile, status and whether the profile form is editable."""
    user_id = get_current_user_id()
    if user_id is None:
        return error_401('Invalid token identity')

    profile = get_profile_store().fetch_for_user(user_id)
    if profile is None:
        return jsonify({
            'profile': None,
            'status': None,
            'status_label': None,
            'can_submit': True,
            'can_request_update': False,
        }), 200

    return jsonify({
        'profile': profile,
        'status': profile['status'],
        'status_label': profile['status_label'],
        'can_submit': _can_submit(profile['status']),
        'can_request_update': profile['status'] == ProfileStatus.APPROVED,
    }), 200


@residents_bp.route('/me/uploads/<string:kind>', methods=['POST'])
@jwt_required()
@limiter.limit("60 per hour")
def upload_profile_file(kind):
    """
    Upload one profile file. The returned ``path`` is then sent in the
    profile payload (household.image_url, household.valid_id_url,
    household.zone_cert_url or spouse.valid_id_url).

    Form fields: file (required), crop (optional JSON {x, y, width, height})
    """
    user_id = get_current_user_id()
    if user_id is None:
        return error_401('Invalid token identity')
    if kind not in RESIDENT_UPLOAD_KINDS:
        return error_404(f"Unknown upload kind: {kind}")

    try:
        crop_raw = request.form.get('crop')
        crop_box = parse_crop_box(json.loads(crop_raw)) if crop_raw else None
    except ValueError:
        return error_400('Crop must be valid JSON')

    try:
        stored = save_resident_upload(user_id, kind, request.files.get('file'), crop_box)
    except StorageError as e:
        return error_503('Failed to upload file', e)

    current_app.logger.info("Resident user %s uploaded %s to %s/%s", user_id, kind, stored['bucket'], stored['path'])
    return jsonify({'message': 'File uploaded', **stored}), 201


@residents_bp.route('/me/profile', methods=['POST'])
@jwt_required()
@limiter.limit("30 per hour")
def submit_profile():
    """Submit or resubmit the household profile."""
    user_id = get_current_user_id()
    if user_id is None:
        return error_401('Invalid token identity')

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_400('Profile data is required')

    values = validate_resident_profile(payload, _home_codes(), path_prefix=f"{user_id}/")

    try:
        result = get_status_machine().submit(user_id, values)
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to save profile', e)

    created = result.previous_status is None
    message = 'Profile submitted successfully' if created else 'Profile updated successfully'
    return _transition_response(message, result, 201 if created else 200)


@residents_bp.route('/me/update-request', methods=['POST'])
@jwt_required()
@limiter.limit("10 per hour")
def request_profile_update():
    """Ask the barangay to allow edits to an approved profile."""
    user_id = get_current_user_id()
    if user_id is None:
        return error_401('Invalid token identity')

    data = request.get_json(silent=True) or {}
    profile = get_profile_store().fetch_for_user(user_id)
    if profile is None:
        return error_404('You have not submitted a profile yet')

    try:
        result = get_status_machine().request_update(profile['id'], data.get('reason'), actor=Actor.RESIDENT)
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to submit update request', e)

    return _transition_response('Update request submitted', result)

