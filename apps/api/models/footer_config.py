"""Singleton footer settings row shown on every public page."""
import copy

from apps.api.utils.time import utc_now, isoformat_or_none
from apps.api import db


FOOTER_CONFIG_ID = 1

DEFAULT_FOOTER = {
    'left_info': {'address': '', 'telephone': '', 'email': ''},
    'center_info': [{'imgUrl': '', 'name': '', 'link': ''}],
    'right_info': [],
    'logosize': 16,
}


def default_footer() -> dict:
    return copy.deepcopy(DEFAULT_FOOTER)


class FooterConfig(db.Model):
    __tablename__ = 'footer_config'

    id = db.Column(db.Integer, primary_key=True, default=FOOTER_CONFIG_ID)
    left_info = db.Column(db.JSON, nullable=True)
    center_info = db.Column(db.JSON, nullable=True)
    right_info = db.Column(db.JSON, nullable=True)
    logosize = db.Column(db.Integer, nullable=False, default=16)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def to_dict(self):
        defaults = default_footer()
        return {
            'left_info': self.left_info if self.left_info is not None else defaults['left_info'],
            'center_info': self.center_info if self.center_info is not None else defaults['center_info'],
            'right_info': self.right_info if self.right_info is not None else defaults['right_info'],
            'logosize': self.logosize or defaults['logosize'],
            'updated_at': isoformat_or_none(self.updated_at),
        }
