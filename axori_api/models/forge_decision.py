from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none, to_float

DECISION_CATEGORIES = (
    'code_standards', 'architecture', 'testing', 'design', 'process', 'tooling', 'product', 'performance'
)
DECISION_PREFIX = 'DEC'


class ForgeDecision(db.Model):
    """Engineering decision that agents must follow"""
    __tablename__ = 'forge_decisions'

    id = uuid_pk()
    identifier = db.Column(db.String(20), unique=True, nullable=False, index=True)
    decision = db.Column(db.Text, nullable=False)
    context = db.Column(db.Text)
    category = db.Column(db.Enum(*DECISION_CATEGORIES, name='forge_decision_category_enum'), nullable=False)
    scope = db.Column(JSONType, default=list)
    active = db.Column(db.Boolean, nullable=False, default=True)

    supersedes = db.Column(GUID, db.ForeignKey('forge_decisions.id', ondelete='SET NULL'))
    created_from_ticket = db.Column(GUID, db.ForeignKey('forge_tickets.id', ondelete='SET NULL'))

    compliance_rate = db.Column(db.Numeric(5, 2))
    times_applied = db.Column(db.Integer, default=0)
    times_overridden = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    UPDATABLE_FIELDS = (
        'decision', 'context', 'category', 'scope', 'active', 'supersedes',
        'created_from_ticket', 'compliance_rate', 'times_applied', 'times_overridden'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'identifier': self.identifier,
            'decision': self.decision,
            'context': self.context,
            'category': self.category,
            'scope': self.scope or [],
            'active': self.active,
            'supersedes': str_or_none(self.supersedes),
            'created_from_ticket': str_or_none(self.created_from_ticket),
            'compliance_rate': to_float(self.compliance_rate),
            'times_applied': self.times_applied or 0,
            'times_overridden': self.times_overridden or 0,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeDecision {self.identifier}>'
