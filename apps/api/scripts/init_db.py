"""
Database initialization script for deployment.
Creates all tables from models, stamps the migration head, and seeds the
footer row and the first admin account.

Usage:
    python apps/api/scripts/init_db.py
    INIT_ADMIN_EMAIL=captain@example.com python apps/api/scripts/init_db.py
"""
import sys
import os
import time

# Ensure project root is importable
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '../../..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

LATEST_REVISION = '20261001_portal'


def wait_for_db(app, max_retries=5, retry_delay=10):
    """
    Wait for database to be available with retries.
    Supabase connections can sometimes be slow to establish.
    """
    from apps.api import db
    from sqlalchemy import text
    from sqlalchemy.exc import OperationalError

    for attempt in range(max_retries):
        try:
            with app.app_context():
                db.session.execute(text("SELECT 1"))
                db.session.commit()
                print("  Database connection successful!")
                return True
        except OperationalError as e:
            if attempt < max_retries - 1:
                print(f"  Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
                print(f"  Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
            else:
                print(f"  Database connection failed after {max_retries} attempts: {e}")
                raise
    return False


def seed_footer():
    """Create the singleton footer row with defaults if it is missing."""
    from apps.api import db
    from apps.api.models.footer_config import FOOTER_CONFIG_ID, FooterConfig, default_footer

    if db.session.get(FooterConfig, FOOTER_CONFIG_ID):
        print("  Footer configuration already exists, skipping.")
        return

    defaults = default_footer()
    db.session.add(FooterConfig(
        id=FOOTER_CONFIG_ID,
        left_info=defaults['left_info'],
        center_info=defaults['center_info'],
        right_info=defaults['right_info'],
        logosize=defaults['logosize'],
    ))
    db.session.commit()
    print("  Footer configuration seeded.")


def seed_admin(email=None):
    """Create (or promote) the admin account named by INIT_ADMIN_EMAIL."""
    from apps.api import db
    from apps.api.models.user import User
    from apps.api.utils.validators import validate_email

    email = email or os.getenv('INIT_ADMIN_EMAIL')
    if not email:
        print("  INIT_ADMIN_EMAIL not set, skipping admin seed.")
        return None

    email = validate_email(email)
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(
            email=email,
            first_name=os.getenv('INIT_ADMIN_FIRST_NAME', 'Barangay'),
            last_name=os.getenv('INIT_ADMIN_LAST_NAME', 'Administrator'),
            role='admin',
        )
        db.session.add(user)
        print(f"  Admin account created for {email}.")
    elif user.role != 'admin':
        user.role = 'admin'
        print(f"  Existing user {email} promoted to admin.")
    else:
        print(f"  Admin {email} already exists.")
    db.session.commit()
    return user


def stamp_migration_head():
    """Record the latest migration so `flask db upgrade` starts from here."""
    from apps.api import db
    from sqlalchemy import text

    with db.engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE IF NOT EXISTS alembic_version (version_num VARCHAR(32) NOT NULL, PRIMARY KEY (version_num))"
        ))
        conn.execute(text("DELETE FROM alembic_version"))
        conn.execute(text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {'rev': LATEST_REVISION})
    print(f"  Alembic version set to {LATEST_REVISION}.")


def init_database(app=None):
    """Initialize database - create tables if they don't exist and seed data"""
    from apps.api import db

    if app is None:
        from apps.api.app import create_app
        app = create_app()

    print("Connecting to database...")
    wait_for_db(app, max_retries=5, retry_delay=15)

    with app.app_context():
        # Register all models with SQLAlchemy
        import apps.api.models  # noqa: F401

        print("Creating missing tables...")
        db.create_all()
        stamp_migration_head()

        print("Seeding...")
        seed_footer()
        seed_admin()

        print("Database initialization complete!")


if __name__ == '__main__':
    init_database()
