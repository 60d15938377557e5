"""Portal user accounts (residents and administrators)."""
from apps.api.utils.time import utc_now, isoformat_or_none
from apps.api import db


class User(db.Model):
    """
    Account record mirrored from the hosted auth service.

    Authentication happens upstream; the API only needs the email address for
    notifications and the role for authorization.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(20), nullable=False, default='resident')  # resident | admin
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    def __repr__(self):
        return f'<User {self.id} {self.email} role={self.role}>'

    @property
    def is_admin(self) -> bool:
        return (self.role or '').lower() == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'role': self.role,
            'created_at': isoformat_or_none(self.created_at),
        }
