from axori_api import db
from axori_api.models.types import GUID, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

MILESTONE_STATUSES = ('active', 'completed', 'archived')
FEATURE_STATUSES = ('active', 'deprecated', 'planned')
FEATURE_PREFIX = 'FEAT'


class ForgeFoundry(db.Model):
    """Top-level product area that groups features"""
    __tablename__ = 'forge_foundries'

    id = uuid_pk()
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    color = db.Column(db.String(20))
    icon = db.Column(db.String(50))
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    features = db.relationship('ForgeFeature', backref='foundry', lazy='dynamic')

    UPDATABLE_FIELDS = ('name', 'description', 'color', 'icon', 'sort_order')

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'icon': self.icon,
            'sort_order': self.sort_order,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeFoundry {self.name}>'


class ForgeFeature(db.Model):
    __tablename__ = 'forge_features'

    id = uuid_pk()
    identifier = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    foundry_id = db.Column(GUID, db.ForeignKey('forge_foundries.id', ondelete='SET NULL'), index=True)
    color = db.Column(db.String(20))
    icon = db.Column(db.String(50))
    status = db.Column(db.Enum(*FEATURE_STATUSES, name='forge_feature_status_enum'),
                       nullable=False, default='active')
    owner = db.Column(db.String(255))
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    projects = db.relationship('ForgeProject', backref='feature', lazy='dynamic')

    UPDATABLE_FIELDS = ('name', 'description', 'foundry_id', 'color', 'icon', 'status', 'owner', 'sort_order')

    def to_dict(self):
        return {
            'id': str(self.id),
            'identifier': self.identifier,
            'name': self.name,
            'description': self.description,
            'foundry_id': str_or_none(self.foundry_id),
            'color': self.color,
            'icon': self.icon,
            'status': self.status,
            'owner': self.owner,
            'sort_order': self.sort_order,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeFeature {self.identifier}>'


class ForgeMilestone(db.Model):
    __tablename__ = 'forge_milestones'

    id = uuid_pk()
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    target_date = db.Column(db.Date)
    status = db.Column(db.Enum(*MILESTONE_STATUSES, name='forge_milestone_status_enum'),
                       nullable=False, default='active')
    progress_percent = db.Column(db.Integer, default=0)
    color = db.Column(db.String(20))
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    projects = db.relationship('ForgeProject', backref='milestone', lazy='dynamic')
    tickets = db.relationship('ForgeTicket', backref='milestone', lazy='dynamic')

    UPDATABLE_FIELDS = ('name', 'description', 'target_date', 'status', 'progress_percent', 'color', 'sort_order')

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'target_date': isoformat(self.target_date),
            'status': self.status,
            'progress_percent': self.progress_percent or 0,
            'color': self.color,
            'sort_order': self.sort_order,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeMilestone {self.name}>'


class ForgeProject(db.Model):
    __tablename__ = 'forge_projects'

    id = uuid_pk()
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    color = db.Column(db.String(20))
    icon = db.Column(db.String(50))
    milestone_id = db.Column(GUID, db.ForeignKey('forge_milestones.id', ondelete='SET NULL'), index=True)
    feature_id = db.Column(GUID, db.ForeignKey('forge_features.id', ondelete='SET NULL'), index=True)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    tickets = db.relationship('ForgeTicket', backref='project', lazy='dynamic')

    UPDATABLE_FIELDS = ('name', 'description', 'color', 'icon', 'milestone_id', 'feature_id', 'sort_order')

    def to_dict(self):
        return {
            'id': str(self.id),
            'name': self.name,
            'description': self.description,
            'color': self.color,
            'icon': self.icon,
            'milestone_id': str_or_none(self.milestone_id),
            'feature_id': str_or_none(self.feature_id),
            'sort_order': self.sort_order,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeProject {self.name}>'
