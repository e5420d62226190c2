from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.models.portfolio import PORTFOLIO_ROLES
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

INVITATION_STATUSES = ('pending', 'accepted', 'expired', 'revoked')


class InvitationToken(db.Model):
    """Single-use, time-limited invitation to join a portfolio"""
    __tablename__ = 'invitation_tokens'

    id = uuid_pk()
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    portfolio_id = db.Column(GUID, db.ForeignKey('portfolios.id', ondelete='CASCADE'), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.Enum(*PORTFOLIO_ROLES, name='invitation_role_enum'), nullable=False, default='member')
    property_access = db.Column(JSONType)

    status = db.Column(db.Enum(*INVITATION_STATUSES, name='invitation_status_enum'),
                       nullable=False, default='pending')
    invited_by = db.Column(GUID, db.ForeignKey('users.id'), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)
    used_by = db.Column(GUID, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=utcnow)

    inviter = db.relationship('User', foreign_keys=[invited_by])

    def to_dict(self, include_token=False):
        data = {
            'id': str(self.id),
            'portfolio_id': str(self.portfolio_id),
            'email': self.email,
            'role': self.role,
            'property_access': self.property_access,
            'status': self.status,
            'invited_by': str(self.invited_by),
            'expires_at': isoformat(self.expires_at),
            'used_at': isoformat(self.used_at),
            'used_by': str_or_none(self.used_by),
            'created_at': isoformat(self.created_at)
        }
        if include_token:
            data['token'] = self.token
        return data

    def __repr__(self):
        return f'<InvitationToken {self.email} {self.status}>'
