from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

PORTFOLIO_ROLES = ('owner', 'admin', 'member', 'viewer')


class Portfolio(db.Model):
    """A tenant: a set of properties shared by its members"""
    __tablename__ = 'portfolios'

    id = uuid_pk()
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    created_by = db.Column(GUID, db.ForeignKey('users.id'), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    members = db.relationship('PortfolioMember', backref='portfolio', lazy='dynamic',
                              cascade='all, delete-orphan')
    properties = db.relationship('Property', backref='portfolio', lazy='dynamic',
                                 cascade='all, delete-orphan')
    invitations = db.relationship('InvitationToken', backref='portfolio', lazy='dynamic',
                                  cascade='all, delete-orphan')
    audit_entries = db.relationship('PermissionAuditLog', backref='portfolio', lazy='dynamic',
                                    cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'created_by': str(self.created_by),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Portfolio {self.name}>'


class PortfolioMember(db.Model):
    """Membership of a user in a portfolio with a role and optional per-property access"""
    __tablename__ = 'portfolio_members'
    __table_args__ = (
        db.UniqueConstraint('portfolio_id', 'user_id', name='uq_portfolio_member'),
    )

    id = uuid_pk()
    portfolio_id = db.Column(GUID, db.ForeignKey('portfolios.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role = db.Column(db.Enum(*PORTFOLIO_ROLES, name='portfolio_role_enum'), nullable=False, default='member')

    # None means full access per role; otherwise {property_id: [permissions]}
    property_access = db.Column(JSONType)

    invited_by = db.Column(GUID, db.ForeignKey('users.id'))
    invited_at = db.Column(db.DateTime)
    accepted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self, include_user=False):
        data = {
            'id': str(self.id),
            'portfolio_id': str(self.portfolio_id),
            'user_id': str(self.user_id),
            'role': self.role,
            'property_access': self.property_access,
            'invited_by': str_or_none(self.invited_by),
            'invited_at': isoformat(self.invited_at),
            'accepted_at': isoformat(self.accepted_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_user and self.user:
            data['user'] = self.user.to_summary()
        return data

    def __repr__(self):
        return f'<PortfolioMember {self.user_id} {self.role}>'
