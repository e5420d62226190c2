from axori_api import db
from axori_api.models.types import JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat


class User(db.Model):
    """Application user, keyed to a Cognito identity"""
    __tablename__ = 'users'

    id = uuid_pk()

    # Authentication
    cognito_sub = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # Profile Info
    email = db.Column(db.String(255), unique=True, nullable=False)
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    onboarding_step = db.Column(db.String(50))
    onboarding_completed = db.Column(db.Boolean, default=False)

    # Forge access, e.g. ["developer"]
    admin_roles = db.Column(JSONType, default=list)

    is_active = db.Column(db.Boolean, default=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    memberships = db.relationship('PortfolioMember', foreign_keys='PortfolioMember.user_id',
                                  backref='user', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def full_name(self):
        name = ' '.join(part for part in (self.first_name, self.last_name) if part)
        return name or None

    @property
    def display_name(self):
        return self.full_name or self.email.split('@')[0]

    def to_summary(self):
        return {
            'id': str(self.id),
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
        }

    def to_dict(self):
        return {
            'id': str(self.id),
            'cognito_sub': self.cognito_sub,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'onboarding_step': self.onboarding_step,
            'onboarding_completed': self.onboarding_completed,
            'admin_roles': self.admin_roles or [],
            'is_active': self.is_active,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<User {self.email}>'
