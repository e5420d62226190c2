from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

REGISTRY_TYPES = ('component', 'hook', 'utility', 'api', 'table', 'integration')
REGISTRY_STATUSES = ('active', 'deprecated', 'planned')


class ForgeRegistryItem(db.Model):
    """Catalogued piece of the codebase (component, hook, table...)"""
    __tablename__ = 'forge_registry'
    __table_args__ = (
        db.UniqueConstraint('type', 'name', name='uq_forge_registry_type_name'),
    )

    id = uuid_pk()
    type = db.Column(db.Enum(*REGISTRY_TYPES, name='forge_registry_type_enum'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.Text)
    description = db.Column(db.Text)
    status = db.Column(db.Enum(*REGISTRY_STATUSES, name='forge_registry_status_enum'),
                       nullable=False, default='active')

    exports = db.Column(JSONType, default=list)
    dependencies = db.Column(JSONType, default=list)
    used_by = db.Column(JSONType, default=list)
    tags = db.Column(JSONType, default=list)
    related_tickets = db.Column(JSONType, default=list)

    deprecated_by = db.Column(GUID, db.ForeignKey('forge_registry.id', ondelete='SET NULL'))
    deprecation_notes = db.Column(db.Text)

    last_updated = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    UPDATABLE_FIELDS = (
        'type', 'name', 'file_path', 'description', 'status', 'exports', 'dependencies',
        'used_by', 'tags', 'related_tickets', 'deprecated_by', 'deprecation_notes'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'type': self.type,
            'name': self.name,
            'file_path': self.file_path,
            'description': self.description,
            'status': self.status,
            'exports': self.exports or [],
            'dependencies': self.dependencies or [],
            'used_by': self.used_by or [],
            'tags': self.tags or [],
            'related_tickets': self.related_tickets or [],
            'deprecated_by': str_or_none(self.deprecated_by),
            'deprecation_notes': self.deprecation_notes,
            'last_updated': isoformat(self.last_updated),
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<ForgeRegistryItem {self.type}:{self.name}>'
