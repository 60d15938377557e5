"""
Barangay Bonbon Portal - Flask API Application
Main application entry point
"""
import sys
import os
import json
from pathlib import Path
from dotenv import load_dotenv

# Determine project root (2 levels up from this file)
API_DIR = Path(__file__).parent.resolve()
PROJECT_ROOT = API_DIR.parent.parent.resolve()

# Load environment variables from .env file at project root
env_path = PROJECT_ROOT / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Add project root to path for absolute imports
sys.path.insert(0, str(PROJECT_ROOT))

from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded

from apps.api.config import Config, config_by_name
from apps.api import db, migrate, jwt, limiter


def init_profile_services(app):
    """
    Build the profile backend and the services that share it, and register
    them on ``app.extensions``:

    - profile_backend: SQLAlchemyProfileBackend
    - profile_store: ProfileStore (signs and removes household photos)
    - notification_gateway: HTTP or email transport per config
    - profile_status_machine: ProfileStatusMachine
    - resident_roster: ResidentRoster cache subscribed to backend changes
    """
    from apps.api.utils.notification_gateway import build_notification_gateway
    from apps.api.utils.profile_store import ProfileStore, SQLAlchemyProfileBackend
    from apps.api.utils.profile_workflow import ProfileStatusMachine
    from apps.api.utils.resident_roster import ResidentRoster
    from apps.api.utils.storage_handler import remove_household_image, sign_resident_image

    backend = SQLAlchemyProfileBackend(db)
    store = ProfileStore(backend, file_remover=remove_household_image, url_signer=sign_resident_image)
    gateway = build_notification_gateway(app.config)
    machine = ProfileStatusMachine(store, gateway)
    # Cached signed URLs must be refreshed before they expire
    roster = ResidentRoster(store, max_age=app.config.get('RESIDENT_SIGNED_URL_TTL', 7200) / 2)

    app.extensions['profile_backend'] = backend
    app.extensions['profile_store'] = store
    app.extensions['notification_gateway'] = gateway
    app.extensions['profile_status_machine'] = machine
    app.extensions['resident_roster'] = roster


def register_error_handlers(app):
    from apps.api.utils.profile_workflow import ResidentNotFoundError, TransitionError
    from apps.api.utils.validators import ValidationError

    @app.errorhandler(ValidationError)
    def validation_error(error):
        app.logger.info(f"Validation failed ({error.field}): {error.message}")
        return jsonify(error.to_dict()), 400

    @app.errorhandler(TransitionError)
    def transition_error(error):
        app.logger.warning(f"Rejected status transition: {error.message}")
        payload = {'error': error.message, 'code': 'INVALID_TRANSITION'}
        if error.current is not None:
            payload['current_status'] = int(error.current)
        return jsonify(payload), 409

    @app.errorhandler(ResidentNotFoundError)
    def resident_not_found(error):
        return jsonify({'error': 'Resident not found'}), 404

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(413)
    def payload_too_large(error):
        return jsonify({'error': 'Uploaded file is too large'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(401)
    def unauthorized(error):
        return jsonify({'error': 'Unauthorized'}), 401

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': 'Forbidden'}), 403

    # Flask-Limiter rate limit handler (ensure JSON, not HTML)
    @app.errorhandler(RateLimitExceeded)
    def ratelimit_handler(error):  # pragma: no cover
        payload = {'error': 'Rate limit exceeded'}
        desc = getattr(error, 'description', None)
        if desc:
            payload['details'] = str(desc)
        resp = jsonify(payload)
        resp.status_code = 429
        return resp


def create_app(config_class=None):
    """Application factory pattern"""
    if config_class is None:
        config_class = config_by_name.get(os.getenv('FLASK_ENV', ''), Config)
    app = Flask(__name__)
    app.config.from_object(config_class)

    db_url = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    if 'postgresql' in db_url:
        app.logger.info("Database: PostgreSQL (Supabase)")
    elif 'sqlite' in db_url:
        app.logger.info("Database: SQLite (local)")

    config_class.init_app(app)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # Flask-Limiter reads RATELIMIT_ENABLED itself
    limiter.init_app(app)
    if app.config.get('RATELIMIT_ENABLED', True):
        app.logger.info("Rate limiting enabled")
    else:
        app.logger.warning("Rate limiting is DISABLED - not recommended for production")

    # Security Headers Middleware
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'

        # HSTS - only in production (when not localhost)
        if not app.config.get('DEBUG'):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        csp_directives = [
            "default-src 'self'",
            "img-src 'self' data: blob: https:",
            "connect-src 'self' https://api.sendgrid.com",
            "frame-ancestors 'none'",
            "base-uri 'self'",
        ]
        response.headers['Content-Security-Policy'] = '; '.join(csp_directives)

        # Never leak raw exception details in non-debug environments.
        if not app.config.get('DEBUG') and response.status_code >= 400 and response.is_json:
            payload = response.get_json(silent=True)
            if isinstance(payload, dict) and 'details' in payload:
                payload.pop('details', None)
                response.set_data(json.dumps(payload))
                response.headers['Content-Type'] = 'application/json'

        return response

    # CORS configuration
    # NOTE: Cannot use wildcard ("*") with supports_credentials=True
    cors_origins = []
    is_production = (app.config.get('FLASK_ENV') == 'production') and not app.config.get('DEBUG')

    for key in ('WEB_URL', 'ADMIN_URL'):
        value = (app.config.get(key) or '').strip()
        if value:
            cors_origins.append(value)

    # Optional explicit allowlist: comma-separated origins.
    extra_origins = (os.getenv('CORS_ALLOWED_ORIGINS') or '').split(',')
    cors_origins.extend([o.strip() for o in extra_origins if o.strip()])

    if not is_production:
        cors_origins.extend([
            "http://localhost:3000",
            "http://localhost:3001",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:3001",
            "http://127.0.0.1:5173",
        ])

    # Remove duplicates
    cors_origins = list(dict.fromkeys(cors_origins))

    if is_production and not cors_origins:
        raise RuntimeError(
            "CORS configuration error: set WEB_URL/ADMIN_URL or CORS_ALLOWED_ORIGINS in production."
        )

    CORS(app,
         origins=cors_origins,
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         supports_credentials=True,
         expose_headers=["Content-Type", "Authorization"])

    init_profile_services(app)

    # Register blueprints
    from apps.api.routes import residents_bp, admin_bp, transparency_bp

    app.register_blueprint(residents_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(transparency_bp)

    # Health check endpoint
    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint for monitoring"""
        return jsonify({
            'status': 'ok',
            'service': 'Barangay Bonbon Portal API',
            'version': '1.0.0'
        }), 200

    register_error_handlers(app)

    return app


# Create app instance
app = create_app()

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config['DEBUG']
    )
