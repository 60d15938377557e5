"""Resident household profiles and their review status."""
from apps.api.utils.time import utc_now
from apps.api import db
from sqlalchemy import Index


class Resident(db.Model):
    """
    One household profile per resident account.

    The household, spouse, household_composition and census blobs are stored
    as JSON text exactly as submitted. They are decoded by the profile store,
    which tolerates corrupt values field by field.
    """
    __tablename__ = 'residents'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)

    household = db.Column(db.Text, nullable=True)
    spouse = db.Column(db.Text, nullable=True)
    household_composition = db.Column(db.Text, nullable=True)
    census = db.Column(db.Text, nullable=True)

    children_count = db.Column(db.Integer, nullable=False, default=0)
    number_of_household_members = db.Column(db.Integer, nullable=False, default=0)

    # Storage paths (never public URLs)
    image_url = db.Column(db.String(255), nullable=True)
    valid_id_url = db.Column(db.String(255), nullable=True)
    zone_cert_url = db.Column(db.String(255), nullable=True)
    spouse_valid_id_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    user = db.relationship('User', backref=db.backref('resident', uselist=False))
    profile_status = db.relationship(
        'ResidentProfileStatus',
        back_populates='resident',
        uselist=False,
    )

    def __repr__(self):
        return f'<Resident {self.id} user={self.user_id}>'


class ResidentProfileStatus(db.Model):
    """Review state of a resident profile (see utils.profile_workflow.ProfileStatus)."""
    __tablename__ = 'resident_profile_status'

    id = db.Column(db.Integer, primary_key=True)
    resident_id = db.Column(db.Integer, db.ForeignKey('residents.id'), unique=True, nullable=False)
    status = db.Column(db.Integer, nullable=False, default=3)
    rejection_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    resident = db.relationship('Resident', back_populates='profile_status')

    __table_args__ = (
        Index('idx_resident_profile_status_status', 'status'),
    )

    def __repr__(self):
        return f'<ResidentProfileStatus resident={self.resident_id} status={self.status}>'
