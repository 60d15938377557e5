"""Utility functions for the API."""

from .validators import (
    ValidationError,
    validate_email,
    validate_required_fields,
    validate_resident_profile,
)

from .auth import (
    admin_required,
    get_current_user_id,
)

from .storage_handler import (
    save_resident_upload,
    save_official_image,
    sign_resident_image,
    sign_official_image,
    StorageError,
)

from .time import utc_now

__all__ = [
    'ValidationError',
    'validate_email',
    'validate_required_fields',
    'validate_resident_profile',
    'admin_required',
    'get_current_user_id',
    'save_resident_upload',
    'save_official_image',
    'sign_resident_image',
    'sign_official_image',
    'StorageError',
    'utc_now',
]
