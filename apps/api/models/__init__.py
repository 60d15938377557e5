"""
Barangay Bonbon Portal - Database Models
Import all models here for Flask-Migrate to detect them
"""
from apps.api import db

# Base model will be imported by other models
Base = db.Model

# Import all models to register them with SQLAlchemy
from .user import User
from .resident import Resident, ResidentProfileStatus
from .official import BarangayOfficial, SKOfficial
from .footer_config import FooterConfig

__all__ = [
    'User',
    'Resident',
    'ResidentProfileStatus',
    'BarangayOfficial',
    'SKOfficial',
    'FooterConfig',
]
