"""API Routes - Import all blueprints here."""

from .residents import residents_bp
from .admin import admin_bp
from .transparency import transparency_bp

__all__ = [
    'residents_bp',
    'admin_bp',
    'transparency_bp',
]
