"""
Storage handler for resident documents and official portraits.

Wraps utils.supabase_storage with the portal's bucket layout:
- household head photo, valid ID and zone certificate -> HOUSEHOLD_HEAD_BUCKET
  under ``<user_id>/``
- spouse valid ID -> SPOUSE_ID_BUCKET under ``<user_id>/``
- official portraits -> the roster's bucket under ``public/``

Every upload returns the storage path only. Callers write that path into a
record after the upload has succeeded, never before.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from apps.api.utils import supabase_storage
from apps.api.utils.image_processing import compress_image
from apps.api.utils.security import validate_image_file
from apps.api.utils.validators import ValidationError

logger = logging.getLogger(__name__)

# kind -> (bucket config key, filename prefix, square crop)
RESIDENT_UPLOAD_KINDS = {
    'photo': ('HOUSEHOLD_HEAD_BUCKET', 'profile', True),
    'valid-id': ('HOUSEHOLD_HEAD_BUCKET', 'valid_id', False),
    'zone-cert': ('HOUSEHOLD_HEAD_BUCKET', 'zone_cert', False),
    'spouse-id': ('SPOUSE_ID_BUCKET', 'spouse_valid_id', False),
}


class StorageError(Exception):
    """Raised when a file cannot be stored, signed or removed."""
    pass


def _check_extension(file: FileStorage) -> None:
    filename = secure_filename(file.filename or '')
    ext = os.path.splitext(filename)[1].lower().lstrip('.')
    allowed = current_app.config.get('ALLOWED_IMAGE_EXTENSIONS', {'jpg', 'jpeg', 'png'})
    if not ext or ext not in allowed:
        raise ValidationError('file', 'Please upload a PNG or JPEG/JPG file.')


def _prepare_image(file: FileStorage, crop_box=None, square: bool = False) -> bytes:
    if file is None or not file.filename:
        raise ValidationError('file', 'No file provided')
    _check_extension(file)
    validate_image_file(file.stream)
    data = file.read()
    if not data:
        raise ValidationError('file', 'Uploaded file is empty')
    return compress_image(
        data,
        max_dimension=current_app.config.get('IMAGE_MAX_DIMENSION', 1024),
        max_size_kb=current_app.config.get('IMAGE_MAX_SIZE_KB', 500),
        crop_box=crop_box,
        square=square,
    )


def bucket_for_kind(kind: str) -> str:
    config_key = RESIDENT_UPLOAD_KINDS[kind][0]
    return current_app.config[config_key]


def save_resident_upload(user_id: int, kind: str, file: FileStorage, crop_box=None) -> dict:
    """
    Store one of a resident's profile files.

    Returns:
        {'kind', 'bucket', 'path'}; ``path`` goes into the profile payload
    """
    if kind not in RESIDENT_UPLOAD_KINDS:
        raise ValidationError('kind', f"Unknown upload kind: {kind}")
    config_key, prefix, square = RESIDENT_UPLOAD_KINDS[kind]
    bucket = current_app.config[config_key]

    content = _prepare_image(file, crop_box, square)
    path = f"{user_id}/{supabase_storage.generate_unique_filename('.jpg', prefix)}"
    try:
        supabase_storage.upload_bytes_to_path(content, bucket, path, 'image/jpeg')
    except supabase_storage.SupabaseStorageError as e:
        raise StorageError(str(e)) from e
    return {'kind': kind, 'bucket': bucket, 'path': path}


def save_official_image(bucket: str, file_prefix: str, file: FileStorage, crop_box=None) -> str:
    """Store an official's portrait and return its path."""
    content = _prepare_image(file, crop_box, square=crop_box is None)
    path = f"public/{supabase_storage.generate_unique_filename('.jpg', file_prefix)}"
    try:
        supabase_storage.upload_bytes_to_path(content, bucket, path, 'image/jpeg', upsert=True)
    except supabase_storage.SupabaseStorageError as e:
        raise StorageError(str(e)) from e
    return path


def remove_file(path: str, bucket: str) -> None:
    try:
        supabase_storage.delete_file(path, bucket)
    except supabase_storage.SupabaseStorageError as e:
        raise StorageError(str(e)) from e


def remove_household_image(path: str) -> None:
    """Remove a household head photo (used by admin resident deletion)."""
    remove_file(path, current_app.config['HOUSEHOLD_HEAD_BUCKET'])


def sign_resident_image(path: Optional[str]) -> Optional[str]:
    """Signed URL for a household head photo, or None if it cannot be produced."""
    if not path:
        return None
    try:
        return supabase_storage.get_signed_url(
            path,
            current_app.config['HOUSEHOLD_HEAD_BUCKET'],
            current_app.config.get('RESIDENT_SIGNED_URL_TTL', 7200),
        )
    except supabase_storage.SupabaseStorageError as e:
        logger.warning("Could not sign resident image %s: %s", path, e)
        return None


def sign_official_image(path: Optional[str], bucket: str) -> str:
    """Signed URL for an official's portrait, falling back to the placeholder."""
    placeholder = current_app.config.get('OFFICIAL_PLACEHOLDER_IMAGE')
    if not path:
        return placeholder
    try:
        return supabase_storage.get_signed_url(
            path, bucket, current_app.config.get('OFFICIAL_SIGNED_URL_TTL', 3600)
        )
    except supabase_storage.SupabaseStorageError as e:
        logger.warning("Could not sign official image %s: %s", path, e)
        return placeholder
