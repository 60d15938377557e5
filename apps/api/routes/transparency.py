"""
Barangay Bonbon Portal - Transparency Routes

Public rosters of Barangay and SK officials plus the site footer settings.
Reads are public; writes require an admin JWT.

Official portraits are uploaded before the official's row is written, so a
saved ``image_url`` always points to a file that exists.
"""
import json

from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from apps.api import db
from apps.api.models.footer_config import FOOTER_CONFIG_ID, FooterConfig, default_footer
from apps.api.utils.auth import admin_required
from apps.api.utils.image_processing import parse_crop_box
from apps.api.utils.officials import ROSTERS, sort_officials, validate_official
from apps.api.utils.security import error_400, error_404, error_500, error_503
from apps.api.utils.storage_handler import StorageError, remove_file, save_official_image, sign_official_image
from apps.api.utils.time import utc_now
from apps.api.utils.validators import ValidationError, validate_email

transparency_bp = Blueprint('transparency', __name__, url_prefix='/api/transparency')


def _get_roster(key):
    roster = ROSTERS.get((key or '').lower())
    if roster is None:
        return None, error_404(f"Unknown roster: {key}")
    return roster, None


def _bucket(roster) -> str:
    return current_app.config[roster.bucket_config_key]


def _serialize(official, roster) -> dict:
    return official.to_dict(signed_image_url=sign_official_image(official.image_url, _bucket(roster)))


def _request_data() -> dict:
    if request.mimetype == 'multipart/form-data' or request.form:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _crop_box(data: dict):
    raw = data.get('crop')
    if not raw:
        return None
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError('crop', 'Crop must be valid JSON')
    return parse_crop_box(raw)


def _discard_upload(path: str, bucket: str) -> None:
    """Remove an uploaded portrait whose record could not be saved."""
    try:
        remove_file(path, bucket)
    except StorageError as e:
        current_app.logger.warning(f"Failed to remove orphaned upload {bucket}/{path}: {e}")


# ============================================
# OFFICIALS
# ============================================

@transparency_bp.route('/<string:roster_key>', methods=['GET'])
def list_officials(roster_key):
    roster, error = _get_roster(roster_key)
    if error:
        return error
    officials = sort_officials(roster.model.query.all())
    return jsonify({
        'roster': roster.key,
        'officials': [_serialize(o, roster) for o in officials],
    }), 200


@transparency_bp.route('/<string:roster_key>', methods=['POST'])
@admin_required
def create_official(roster_key):
    """Create an official. Accepts JSON or multipart (with an ``image`` file)."""
    roster, error = _get_roster(roster_key)
    if error:
        return error

    data = _request_data()
    values = validate_official(data)
    image = request.files.get('image')

    image_path = None
    if image is not None and image.filename:
        try:
            image_path = save_official_image(_bucket(roster), roster.file_prefix, image, _crop_box(data))
        except StorageError as e:
            return error_503('Failed to upload image', e)

    official = roster.model(**values, image_url=image_path)
    try:
        db.session.add(official)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        if image_path:
            _discard_upload(image_path, _bucket(roster))
        return error_500(f'Failed to create {roster.label.lower()}', e)

    current_app.logger.info(f"Created {roster.key} official {official.id}: {official.position} {official.name}")
    return jsonify({'message': f'{roster.label} added successfully', 'official': _serialize(official, roster)}), 201


@transparency_bp.route('/<string:roster_key>/<int:official_id>', methods=['PUT'])
@admin_required
def update_official(roster_key, official_id):
    roster, error = _get_roster(roster_key)
    if error:
        return error

    official = db.session.get(roster.model, official_id)
    if not official:
        return error_404(f'{roster.label} not found')

    data = _request_data()
    values = validate_official(data, partial=True, existing=official)
    image = request.files.get('image')

    old_image = official.image_url
    new_image = None
    if image is not None and image.filename:
        try:
            new_image = save_official_image(_bucket(roster), roster.file_prefix, image, _crop_box(data))
        except StorageError as e:
            return error_503('Failed to upload image', e)

    for key, value in values.items():
        setattr(official, key, value)
    if new_image:
        official.image_url = new_image
    official.updated_at = utc_now()

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        if new_image:
            _discard_upload(new_image, _bucket(roster))
        return error_500(f'Failed to update {roster.label.lower()}', e)

    warning = None
    if new_image and old_image and old_image != new_image:
        try:
            remove_file(old_image, _bucket(roster))
        except StorageError as e:
            current_app.logger.warning(f"Failed to remove old image for {roster.key} official {official_id}: {e}")
            warning = f"Failed to remove previous image: {e}"

    payload = {'message': f'{roster.label} updated successfully', 'official': _serialize(official, roster)}
    if warning:
        payload['warning'] = warning
    return jsonify(payload), 200


@transparency_bp.route('/<string:roster_key>/<int:official_id>', methods=['DELETE'])
@admin_required
def delete_official(roster_key, official_id):
    roster, error = _get_roster(roster_key)
    if error:
        return error

    official = db.session.get(roster.model, official_id)
    if not official:
        return error_404(f'{roster.label} not found')

    warning = None
    if official.image_url:
        try:
            remove_file(official.image_url, _bucket(roster))
        except StorageError as e:
            current_app.logger.warning(f"Failed to remove image for {roster.key} official {official_id}: {e}")
            warning = f"Failed to remove image: {e}"

    try:
        db.session.delete(official)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500(f'Failed to delete {roster.label.lower()}', e)

    payload = {'message': f'{roster.label} deleted successfully', 'id': official_id}
    if warning:
        payload['warning'] = warning
    return jsonify(payload), 200


# ============================================
# FOOTER
# ============================================

def _validate_footer(data: dict, current: dict) -> dict:
    result = dict(current)

    if 'left_info' in data:
        left = data.get('left_info') or {}
        if not isinstance(left, dict):
            raise ValidationError('left_info', 'Left info must be an object')
        left = {
            'address': str(left.get('address') or '').strip(),
            'telephone': str(left.get('telephone') or '').strip(),
            'email': str(left.get('email') or '').strip(),
        }
        if left['email']:
            left['email'] = validate_email(left['email'])
        result['left_info'] = left

    if 'center_info' in data:
        center = data.get('center_info') or []
        if not isinstance(center, list) or not all(isinstance(item, dict) for item in center):
            raise ValidationError('center_info', 'Center info must be a list of links')
        result['center_info'] = [
            {
                'imgUrl': str(item.get('imgUrl') or '').strip(),
                'name': str(item.get('name') or '').strip(),
                'link': str(item.get('link') or '').strip(),
            }
            for item in center
        ]

    if 'right_info' in data:
        right = data.get('right_info') or []
        if not isinstance(right, list):
            raise ValidationError('right_info', 'Right info must be a list')
        result['right_info'] = right

    if 'logosize' in data:
        try:
            logosize = int(data.get('logosize'))
        except (TypeError, ValueError):
            raise ValidationError('logosize', 'Logo size must be a whole number')
        if logosize <= 0:
            raise ValidationError('logosize', 'Logo size must be positive')
        result['logosize'] = logosize

    return result


@transparency_bp.route('/footer', methods=['GET'])
def get_footer():
    config = db.session.get(FooterConfig, FOOTER_CONFIG_ID)
    if config is None:
        footer = default_footer()
        footer['updated_at'] = None
        return jsonify({'footer': footer}), 200
    return jsonify({'footer': config.to_dict()}), 200


@transparency_bp.route('/footer', methods=['PUT'])
@admin_required
def update_footer():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return error_400('Footer configuration is required')

    config = db.session.get(FooterConfig, FOOTER_CONFIG_ID)
    current = config.to_dict() if config else default_footer()
    values = _validate_footer(data, current)

    if config is None:
        config = FooterConfig(id=FOOTER_CONFIG_ID)
        db.session.add(config)
    config.left_info = values['left_info']
    config.center_info = values['center_info']
    config.right_info = values['right_info']
    config.logosize = values['logosize']
    config.updated_at = utc_now()

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        return error_500('Failed to save footer configuration', e)

    current_app.logger.info("Footer configuration updated")
    return jsonify({'message': 'Footer configuration saved successfully', 'footer': config.to_dict()}), 200
