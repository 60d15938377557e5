"""Barangay council and SK council rosters for the transparency pages."""
from apps.api.utils.time import utc_now, isoformat_or_none
from apps.api import db


class OfficialMixin:
    """Columns shared by both rosters."""

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    position = db.Column(db.String(100), nullable=False)
    official_type = db.Column(db.String(100), nullable=False)
    start_year = db.Column(db.Integer, nullable=True)
    end_year = db.Column(db.Integer, nullable=True)  # null while current
    is_current = db.Column(db.Boolean, nullable=False, default=True)
    image_url = db.Column(db.String(255), nullable=True)  # storage path
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f'<{type(self).__name__} {self.id} {self.position}: {self.name}>'

    def to_dict(self, signed_image_url=None):
        return {
            'id': self.id,
            'name': self.name,
            'position': self.position,
            'official_type': self.official_type,
            'start_year': self.start_year,
            'end_year': self.end_year,
            'is_current': bool(self.is_current),
            'image_url': self.image_url,
            'signed_image_url': signed_image_url,
            'created_at': isoformat_or_none(self.created_at),
            'updated_at': isoformat_or_none(self.updated_at),
        }


class BarangayOfficial(OfficialMixin, db.Model):
    __tablename__ = 'barangay_officials'


class SKOfficial(OfficialMixin, db.Model):
    __tablename__ = 'sk_officials'
