"""
Barangay Bonbon Portal - Configuration
Application configuration management
"""
import os
import logging
import tempfile
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

# Resolve base directory for both monorepo and API-only deployments.
# Monorepo layout: <repo>/apps/api/config.py -> BASE_DIR=<repo>
# API-only layout: /app/config.py -> BASE_DIR=/app
_THIS_DIR = Path(__file__).parent.resolve()
_MONOREPO_ROOT = _THIS_DIR.parent.parent
if (_MONOREPO_ROOT / 'apps' / 'api').exists():
    BASE_DIR = _MONOREPO_ROOT.resolve()
else:
    BASE_DIR = _THIS_DIR


def _require_env(name: str, default: str = None, allow_default_in_dev: bool = True) -> str:
    """
    Get environment variable, failing loudly in production if not set.

    Args:
        name: Environment variable name
        default: Default value (only used in development)
        allow_default_in_dev: Whether to allow default in development mode

    Returns:
        The environment variable value

    Raises:
        RuntimeError: If variable is not set in production
    """
    value = os.getenv(name)
    is_production = os.getenv('FLASK_ENV', 'development') == 'production'

    if value:
        return value

    if is_production:
        # Secrets have no production default
        if default is None or name in ('SECRET_KEY', 'JWT_SECRET_KEY'):
            raise RuntimeError(
                f"SECURITY ERROR: {name} environment variable is required in production. "
                f"Set it in your deployment environment."
            )
        logging.warning(f"Using default value for {name} in production - consider setting explicitly")
        return default

    if default is not None and allow_default_in_dev:
        logging.debug(f"Using default value for {name} in development")
        return default

    raise RuntimeError(f"{name} environment variable is required")


def get_database_url():
    """
    Get and process the database URL for proper connection handling.
    - Ensures SSL is enabled for PostgreSQL connections (required by Supabase)
    - Handles URL scheme conversion (postgres:// -> postgresql://)
    """
    url = os.getenv('DATABASE_URL')

    if not url:
        # Local fallback so the app can boot and serve /health without a database
        fallback = f"sqlite:///{Path(tempfile.gettempdir()) / 'bonbon_portal.db'}"
        logging.warning("DATABASE_URL not set; using fallback %s", fallback)
        return fallback

    # SQLAlchemy requires the postgresql:// scheme
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)

    if url.startswith('postgresql://'):
        try:
            parsed = urlparse(url)
            query_params = parse_qs(parsed.query)

            if 'sslmode' not in query_params:
                query_params['sslmode'] = ['require']

            new_query = urlencode(query_params, doseq=True)
            url = urlunparse((
                parsed.scheme,
                parsed.netloc,
                parsed.path,
                parsed.params,
                new_query,
                parsed.fragment
            ))
        except ValueError as e:
            # Special characters in the password can break urlparse
            logging.warning(f"Could not parse DATABASE_URL (special chars?): {e}")
            if 'sslmode=' not in url:
                separator = '&' if '?' in url else '?'
                url = f"{url}{separator}sslmode=require"

    return url


def get_engine_options():
    """
    Get SQLAlchemy engine options based on the database type.

    The Supabase transaction pooler (port 6543) is used without client-side
    pooling; direct connections keep a very small pool.
    """
    db_url = get_database_url()

    options = {
        'pool_pre_ping': True,
    }

    if db_url.startswith('postgresql://'):
        is_pooler = ':6543' in db_url or 'pooler.supabase.com' in db_url

        if is_pooler:
            # PgBouncer in transaction mode does not mix with client pooling
            from sqlalchemy.pool import NullPool
            options.update({
                'poolclass': NullPool,
                'connect_args': {
                    'connect_timeout': 30,
                    'keepalives': 1,
                    'keepalives_idle': 30,
                    'keepalives_interval': 10,
                    'keepalives_count': 5,
                    'options': '-c statement_timeout=60000',
                    'application_name': 'bonbon-portal-api',
                }
            })
        else:
            options.update({
                'pool_recycle': 180,
                'pool_timeout': 20,
                'pool_size': 1,
                'max_overflow': 2,
                'connect_args': {
                    'connect_timeout': 20,
                    'keepalives': 1,
                    'keepalives_idle': 20,
                    'keepalives_interval': 5,
                    'keepalives_count': 3,
                    'options': '-c statement_timeout=20000',
                }
            })

    if db_url.startswith('sqlite://'):
        from sqlalchemy.pool import NullPool
        options = {'poolclass': NullPool}

    return options


class Config:
    """Base configuration"""

    # Flask - SECRET_KEY is REQUIRED in production
    SECRET_KEY = _require_env('SECRET_KEY', 'dev-secret-key-for-local-development-only')
    DEBUG = os.getenv('DEBUG', 'False') == 'True'
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    # Database
    SQLALCHEMY_DATABASE_URI = get_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = DEBUG
    SQLALCHEMY_ENGINE_OPTIONS = get_engine_options()

    # Supabase Storage (profile photos, IDs, official portraits)
    SUPABASE_URL = os.getenv('SUPABASE_URL', '')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY', '')
    SUPABASE_SERVICE_KEY = os.getenv('SUPABASE_SERVICE_KEY', '')
    HOUSEHOLD_HEAD_BUCKET = os.getenv('HOUSEHOLD_HEAD_BUCKET', 'householdhead')
    SPOUSE_ID_BUCKET = os.getenv('SPOUSE_ID_BUCKET', 'spouseid')
    BARANGAY_OFFICIALS_BUCKET = os.getenv('BARANGAY_OFFICIALS_BUCKET', 'barangayofficials')
    SK_OFFICIALS_BUCKET = os.getenv('SK_OFFICIALS_BUCKET', 'skofficials')
    RESIDENT_SIGNED_URL_TTL = int(os.getenv('RESIDENT_SIGNED_URL_TTL', 7200))
    OFFICIAL_SIGNED_URL_TTL = int(os.getenv('OFFICIAL_SIGNED_URL_TTL', 3600))
    OFFICIAL_PLACEHOLDER_IMAGE = os.getenv('OFFICIAL_PLACEHOLDER_IMAGE', '/images/official-placeholder.png')
    STORAGE_TIMEOUT = int(os.getenv('STORAGE_TIMEOUT', 30))

    # Image processing for uploads
    IMAGE_MAX_DIMENSION = int(os.getenv('IMAGE_MAX_DIMENSION', 1024))
    IMAGE_MAX_SIZE_KB = int(os.getenv('IMAGE_MAX_SIZE_KB', 500))

    # JWT - JWT_SECRET_KEY is REQUIRED in production
    JWT_SECRET_KEY = _require_env('JWT_SECRET_KEY', 'jwt-dev-secret-for-local-development-only')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', 86400))
    )
    JWT_ALGORITHM = 'HS256'
    JWT_TOKEN_LOCATION = ['headers']

    # Rate Limiting Configuration
    RATELIMIT_ENABLED = os.getenv('RATELIMIT_ENABLED', 'True') == 'True'
    RATELIMIT_STORAGE_URI = os.getenv('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # File Uploads
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_FILE_SIZE', 10 * 1024 * 1024))  # 10MB
    ALLOWED_IMAGE_EXTENSIONS = set(
        os.getenv('ALLOWED_IMAGE_EXTENSIONS', 'jpg,jpeg,png').split(',')
    )

    # Notifications
    # When NOTIFICATION_API_URL is set, events are posted to the external email API
    # (e.g. https://example.vercel.app/api/email); otherwise email is sent directly.
    NOTIFICATION_API_URL = os.getenv('NOTIFICATION_API_URL', '')
    NOTIFICATION_TIMEOUT = int(os.getenv('NOTIFICATION_TIMEOUT', 15))

    # Email Configuration
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY', '')
    SMTP_SERVER = os.getenv('SMTP_SERVER', '')
    SMTP_PORT = int(os.getenv('SMTP_PORT', 587))
    SMTP_USERNAME = os.getenv('SMTP_USERNAME', '')
    SMTP_PASSWORD = os.getenv('SMTP_PASSWORD', '')
    FROM_EMAIL = os.getenv('FROM_EMAIL', '')

    # Application
    APP_NAME = os.getenv('APP_NAME', 'Barangay Bonbon Portal')
    WEB_URL = os.getenv('WEB_URL', 'http://localhost:3000')
    ADMIN_URL = os.getenv('ADMIN_URL', 'http://localhost:3001')

    # PSGC codes of the home barangay; its residents must pick a zone (purok)
    HOME_REGION_CODE = os.getenv('HOME_REGION_CODE', '100000000')
    HOME_PROVINCE_CODE = os.getenv('HOME_PROVINCE_CODE', '104300000')
    HOME_CITY_CODE = os.getenv('HOME_CITY_CODE', '104305000')
    HOME_BARANGAY_CODE = os.getenv('HOME_BARANGAY_CODE', '104305040')

    @staticmethod
    def init_app(app):
        """Initialize application configuration"""
        if app.config.get('FLASK_ENV') == 'production' and not app.config.get('SUPABASE_URL'):
            app.logger.warning("SUPABASE_URL is not set; file uploads and signed URLs will fail")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = 'test-secret'
    RATELIMIT_ENABLED = False
    NOTIFICATION_API_URL = ''


# Config selected by FLASK_ENV; unknown or unset values use Config
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}
