"""JWT helpers: current user id, role checks and the admin guard."""
from functools import wraps

from flask import current_app, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import InvalidHeaderError, NoAuthorizationError
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

ADMIN_ROLES = {'admin'}


def get_current_user_id():
    """JWT identity as an int, or None when it is not numeric."""
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        current_app.logger.debug("Invalid JWT identity: %s", identity)
        return None


def current_role():
    claims = get_jwt() or {}
    return (claims.get('role') or '').lower()


def check_admin_request():
    """
    Verify the request carries an admin JWT.

    Returns None when allowed, otherwise an error response tuple. OPTIONS
    preflight requests are let through for CORS.
    """
    if request.method == 'OPTIONS':
        return None

    try:
        verify_jwt_in_request()
        role = current_role()
        if role not in ADMIN_ROLES:
            current_app.logger.warning(f"Admin access denied: role={role}")
            return jsonify({'error': 'Forbidden', 'code': 'ROLE_MISMATCH'}), 403
    except NoAuthorizationError:
        return jsonify({'error': 'Authorization required', 'code': 'NO_AUTH'}), 401
    except InvalidHeaderError as e:
        current_app.logger.warning(f"Invalid auth header: {e}")
        return jsonify({'error': 'Invalid authorization header', 'code': 'INVALID_HEADER'}), 401
    except ExpiredSignatureError:
        return jsonify({'error': 'Token has expired', 'code': 'TOKEN_EXPIRED'}), 401
    except InvalidTokenError as e:
        current_app.logger.warning(f"Invalid token: {e}")
        return jsonify({'error': 'Invalid token', 'code': 'INVALID_TOKEN'}), 401
    return None


def admin_required(fn):
    """Route decorator: 401 without a valid token, 403 for non-admin roles."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        denied = check_admin_request()
        if denied is not None:
            return denied
        return fn(*args, **kwargs)
    return wrapper
