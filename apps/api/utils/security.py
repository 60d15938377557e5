"""Security utilities for the portal API.

This module provides:
- Standardized error responses (safe for production)
- Image content validation for uploads
"""
import logging
from typing import Optional, Set

from flask import jsonify, current_app
from PIL import Image, UnidentifiedImageError


# =============================================================================
# Standardized Error Responses
# =============================================================================

def safe_error_response(
    message: str,
    exception: Optional[Exception] = None,
    status_code: int = 500,
    code: str = None,
    log_level: str = 'error'
) -> tuple:
    """
    Create a standardized, safe error response.

    The full error is always logged server-side; exception details are only
    echoed to the client in debug mode.

    Args:
        message: Safe error message for clients
        exception: The caught exception (optional)
        status_code: HTTP status code
        code: Optional error code for client parsing
        log_level: Logging level ('error', 'warning', 'info')

    Returns:
        Tuple of (response, status_code)
    """
    response = {'error': message}

    if code:
        response['code'] = code

    logger = current_app.logger if current_app else logging.getLogger(__name__)
    log_message = f"{message}"
    if exception:
        log_message += f": {type(exception).__name__}: {exception}"

    log_func = getattr(logger, log_level, logger.error)
    log_func(log_message)

    if current_app and current_app.config.get('DEBUG') and exception:
        response['details'] = str(exception)
        response['exception_type'] = type(exception).__name__

    return jsonify(response), status_code


def error_400(message: str = "Bad request", exception: Exception = None, code: str = None):
    """Bad request error."""
    return safe_error_response(message, exception, 400, code, 'warning')


def error_401(message: str = "Unauthorized", exception: Exception = None, code: str = None):
    """Unauthorized error."""
    return safe_error_response(message, exception, 401, code, 'warning')


def error_404(message: str = "Not found", exception: Exception = None, code: str = None):
    """Not found error."""
    return safe_error_response(message, exception, 404, code, 'info')


def error_500(message: str = "Internal server error", exception: Exception = None, code: str = None):
    """Internal server error."""
    return safe_error_response(message, exception, 500, code, 'error')


def error_503(message: str = "Service unavailable", exception: Exception = None, code: str = None):
    """Upstream dependency (storage, database) unavailable."""
    return safe_error_response(message, exception, 503, code, 'error')


# =============================================================================
# Image Validation
# =============================================================================

# Pillow format name -> MIME type
ALLOWED_IMAGE_FORMATS = {
    'JPEG': 'image/jpeg',
    'PNG': 'image/png',
}

ALLOWED_IMAGE_MIMES: Set[str] = set(ALLOWED_IMAGE_FORMATS.values())


def validate_image_file(file) -> str:
    """
    Validate that an uploaded file really is a PNG or JPEG image.

    The check decodes the header with Pillow instead of trusting the
    client-supplied extension or Content-Type.

    Args:
        file: File-like object with read() and seek() methods

    Returns:
        Detected MIME type

    Raises:
        ValidationError: If the content is not an allowed image
    """
    from apps.api.utils.validators import ValidationError

    file.seek(0)
    try:
        with Image.open(file) as img:
            img_format = (img.format or '').upper()
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError('file', 'File is not a valid image') from exc
    finally:
        file.seek(0)

    mime = ALLOWED_IMAGE_FORMATS.get(img_format)
    if not mime:
        raise ValidationError(
            'file',
            f'Image type not allowed. Detected: {img_format or "unknown"}. '
            f'Allowed: {", ".join(sorted(ALLOWED_IMAGE_MIMES))}'
        )
    return mime
