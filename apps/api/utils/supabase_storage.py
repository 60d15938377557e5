"""
Supabase Storage client for the portal.

Talks to the Supabase Storage REST API directly (no supabase package):
upload to a fixed path, signed URLs, and deletion. Every bucket used by the
portal is private, so files are only ever exposed through signed URLs.

Usage:
    from apps.api.utils.supabase_storage import (
        upload_bytes_to_path,
        get_signed_url,
        delete_file,
    )
"""
from __future__ import annotations

import os
import uuid
import logging
from typing import Optional, Tuple
from urllib.parse import urlparse, unquote

import requests
from flask import current_app

from apps.api.utils.time import utc_now

logger = logging.getLogger(__name__)


class SupabaseStorageError(Exception):
    """Custom exception for Supabase Storage operations."""
    pass


def _get_supabase_config() -> Tuple[str, str]:
    """Get Supabase URL and service key."""
    supabase_url = current_app.config.get('SUPABASE_URL') or os.getenv('SUPABASE_URL')
    supabase_key = (
        current_app.config.get('SUPABASE_SERVICE_KEY') or
        os.getenv('SUPABASE_SERVICE_KEY') or
        current_app.config.get('SUPABASE_KEY') or
        os.getenv('SUPABASE_KEY')
    )

    if not supabase_url or not supabase_key:
        raise SupabaseStorageError(
            "Supabase credentials not configured. "
            "Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables."
        )

    return supabase_url.rstrip('/'), supabase_key


def _timeout() -> int:
    return current_app.config.get('STORAGE_TIMEOUT', 30)


def normalize_storage_path(storage_path: str, bucket: str) -> str:
    """
    Reduce a stored reference to a path inside ``bucket``.

    Older rows hold full URLs such as ``.../object/public/skofficials/public/x.jpg``;
    newer rows hold the bare path.
    """
    if not storage_path:
        return storage_path
    path = storage_path.strip()
    if path.startswith('http://') or path.startswith('https://'):
        path = urlparse(path).path
    path = unquote(path).lstrip('/')

    for prefix in (
        'storage/v1/object/public/',
        'storage/v1/object/sign/',
        'storage/v1/object/',
        'object/public/',
        'object/sign/',
        'object/',
    ):
        if path.startswith(prefix):
            path = path[len(prefix):]
            break

    if path.startswith(f"{bucket}/"):
        path = path[len(bucket) + 1:]
    elif f"/{bucket}/" in path:
        path = path.split(f"/{bucket}/", 1)[1]

    return path


def _get_headers(service_key: str, content_type: Optional[str] = None) -> dict:
    """Get headers for Supabase REST API requests."""
    headers = {
        'Authorization': f'Bearer {service_key}',
        'apikey': service_key,
    }
    if content_type:
        headers['Content-Type'] = content_type
    return headers


def generate_unique_filename(extension: str = '.jpg', prefix: str = '') -> str:
    """
    Generate a unique filename.

    Args:
        extension: File extension including the dot
        prefix: Optional prefix for the filename

    Returns:
        Unique filename string, e.g. ``photo_20240101_120000_1a2b3c4d.jpg``
    """
    timestamp = utc_now().strftime('%Y%m%d_%H%M%S')
    unique_id = str(uuid.uuid4())[:8]
    ext = extension.lower()

    if prefix:
        return f"{prefix}_{timestamp}_{unique_id}{ext}"
    return f"{timestamp}_{unique_id}{ext}"


def upload_bytes_to_path(
    data: bytes,
    bucket: str,
    storage_path: str,
    content_type: str = 'image/jpeg',
    upsert: bool = False,
) -> str:
    """
    Upload raw bytes to a specific path in a bucket.

    Returns:
        storage_path

    Raises:
        SupabaseStorageError: credentials missing or the upload was refused
    """
    if not storage_path:
        raise SupabaseStorageError("Storage path is required")

    supabase_url, service_key = _get_supabase_config()
    upload_url = f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}"
    headers = _get_headers(service_key, content_type)
    headers['cache-control'] = '3600'
    if upsert:
        headers['x-upsert'] = 'true'

    try:
        response = requests.post(upload_url, headers=headers, data=data, timeout=_timeout())
    except requests.exceptions.RequestException as e:
        logger.error(f"Supabase Storage upload failed: {e}")
        raise SupabaseStorageError(f"Upload failed: {e}") from e

    if response.status_code not in (200, 201):
        raise SupabaseStorageError(f"Upload failed: {response.status_code} - {response.text[:200]}")

    logger.info(f"File uploaded to Supabase Storage: {bucket}/{storage_path}")
    return storage_path


def get_signed_url(storage_path: str, bucket: str, expires_in: int = 3600) -> str:
    """
    Get a signed (temporary) URL for a file.

    Args:
        storage_path: Path (or legacy URL) of the file
        bucket: Bucket name
        expires_in: URL lifetime in seconds

    Returns:
        Absolute signed URL
    """
    supabase_url, service_key = _get_supabase_config()
    storage_path = normalize_storage_path(storage_path, bucket)

    url = f"{supabase_url}/storage/v1/object/sign/{bucket}/{storage_path}"
    headers = _get_headers(service_key, 'application/json')

    try:
        response = requests.post(url, headers=headers, json={'expiresIn': expires_in}, timeout=_timeout())
    except requests.exceptions.RequestException as e:
        raise SupabaseStorageError(f"Failed to get signed URL: {e}") from e

    if response.status_code == 200:
        data = response.json()
        signed_url = data.get('signedURL') or data.get('signedUrl', '')
        if signed_url:
            if signed_url.startswith('http://') or signed_url.startswith('https://'):
                return signed_url
            # Supabase sometimes returns /object/sign/...; normalize to /storage/v1/object/sign/...
            if signed_url.startswith('/storage/'):
                return f"{supabase_url}{signed_url}"
            if signed_url.startswith('/object/'):
                return f"{supabase_url}/storage/v1{signed_url}"
            return f"{supabase_url}/storage/v1/{signed_url.lstrip('/')}"

    raise SupabaseStorageError(f"Failed to create signed URL: {response.status_code} - {response.text[:200]}")


def delete_file(storage_path: str, bucket: str) -> None:
    """
    Delete a file from a bucket.

    Raises:
        SupabaseStorageError: the delete request failed
    """
    supabase_url, service_key = _get_supabase_config()
    storage_path = normalize_storage_path(storage_path, bucket)

    url = f"{supabase_url}/storage/v1/object/{bucket}/{storage_path}"
    try:
        response = requests.delete(url, headers=_get_headers(service_key), timeout=_timeout())
    except requests.exceptions.RequestException as e:
        raise SupabaseStorageError(f"Delete failed: {e}") from e

    if response.status_code not in (200, 204):
        raise SupabaseStorageError(f"Delete returned {response.status_code}: {response.text[:200]}")
    logger.info(f"File deleted from Supabase Storage: {bucket}/{storage_path}")
