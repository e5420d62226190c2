from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

# Kanban column order
TICKET_STATUSES = (
    'backlog', 'design', 'planned', 'in_progress', 'in_review', 'testing', 'done', 'blocked'
)
TICKET_PRIORITIES = ('critical', 'high', 'medium', 'low')
TICKET_TYPES = ('feature', 'bug', 'chore', 'refactor', 'docs', 'spike', 'design')
TICKET_PHASES = (
    'ideation', 'design', 'planning', 'implementation', 'testing', 'deployment', 'documentation'
)
RELEASE_CLASSIFICATIONS = ('feature', 'enhancement', 'breaking_change', 'bug_fix', 'chore', 'docs')
AGENT_PROTOCOLS = (
    'opus_full_feature', 'opus_architecture', 'opus_planning',
    'sonnet_implementation', 'sonnet_bug_fix', 'sonnet_tests',
    'haiku_quick_edit', 'haiku_docs'
)
COMMENT_AUTHOR_TYPES = ('user', 'agent', 'system')

TICKET_PREFIX = 'FORGE'


class ForgeTicket(db.Model):
    """Engineering ticket on the Forge board"""
    __tablename__ = 'forge_tickets'

    id = uuid_pk()
    identifier = db.Column(db.String(20), unique=True, nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    status = db.Column(db.Enum(*TICKET_STATUSES, name='forge_ticket_status_enum'), nullable=False, default='backlog')
    priority = db.Column(db.Enum(*TICKET_PRIORITIES, name='forge_ticket_priority_enum'), default='medium')
    type = db.Column(db.Enum(*TICKET_TYPES, name='forge_ticket_type_enum'), default='feature')
    phase = db.Column(db.Enum(*TICKET_PHASES, name='forge_ticket_phase_enum'), default='ideation')
    release_classification = db.Column(db.Enum(*RELEASE_CLASSIFICATIONS, name='forge_release_classification_enum'))

    parent_id = db.Column(GUID, db.ForeignKey('forge_tickets.id', ondelete='SET NULL'))
    project_id = db.Column(GUID, db.ForeignKey('forge_projects.id', ondelete='SET NULL'), index=True)
    milestone_id = db.Column(GUID, db.ForeignKey('forge_milestones.id', ondelete='SET NULL'), index=True)

    # Position inside the Kanban column
    status_order = db.Column(db.Integer, nullable=False, default=0)
    estimate = db.Column(db.Integer)
    current_phase = db.Column(db.String(50))

    # Agent
    assigned_agent = db.Column(db.Enum(*AGENT_PROTOCOLS, name='forge_agent_protocol_enum'))
    agent_session_id = db.Column(db.String(100))
    last_execution_id = db.Column(GUID)

    # Delivery
    branch_name = db.Column(db.String(255))
    preview_url = db.Column(db.Text)
    pr_number = db.Column(db.Integer)
    pr_url = db.Column(db.Text)
    is_breaking_change = db.Column(db.Boolean, default=False)
    migration_notes = db.Column(db.Text)
    blocks_deploy = db.Column(db.Boolean, default=False)

    labels = db.Column(JSONType, default=list)

    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_by = db.Column(GUID, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    subtasks = db.relationship('ForgeSubtask', backref='ticket', lazy='dynamic', cascade='all, delete-orphan')
    comments = db.relationship('ForgeComment', backref='ticket', lazy='dynamic', cascade='all, delete-orphan')
    executions = db.relationship('ForgeAgentExecution', backref='ticket', lazy='dynamic',
                                 cascade='all, delete-orphan')

    UPDATABLE_FIELDS = (
        'title', 'description', 'status', 'priority', 'type', 'phase', 'release_classification',
        'parent_id', 'project_id', 'milestone_id', 'status_order', 'estimate', 'current_phase',
        'assigned_agent', 'branch_name', 'preview_url', 'pr_number', 'pr_url',
        'is_breaking_change', 'migration_notes', 'blocks_deploy', 'labels'
    )

    def to_summary(self):
        return {
            'id': str(self.id),
            'identifier': self.identifier,
            'title': self.title,
            'status': self.status
        }

    def to_dict(self):
        return {
            'id': str(self.id),
            'identifier': self.identifier,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'priority': self.priority,
            'type': self.type,
            'phase': self.phase,
            'release_classification': self.release_classification,
            'parent_id': str_or_none(self.parent_id),
            'project_id': str_or_none(self.project_id),
            'milestone_id': str_or_none(self.milestone_id),
            'status_order': self.status_order,
            'estimate': self.estimate,
            'current_phase': self.current_phase,
            'assigned_agent': self.assigned_agent,
            'agent_session_id': self.agent_session_id,
            'last_execution_id': str_or_none(self.last_execution_id),
            'branch_name': self.branch_name,
            'preview_url': self.preview_url,
            'pr_number': self.pr_number,
            'pr_url': self.pr_url,
            'is_breaking_change': self.is_breaking_change,
            'migration_notes': self.migration_notes,
            'blocks_deploy': self.blocks_deploy,
            'labels': self.labels or [],
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeTicket {self.identifier}>'


class ForgeSubtask(db.Model):
    __tablename__ = 'forge_subtasks'

    id = uuid_pk()
    ticket_id = db.Column(GUID, db.ForeignKey('forge_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    completed = db.Column(db.Boolean, default=False)
    completed_at = db.Column(db.DateTime)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'ticket_id': str(self.ticket_id),
            'title': self.title,
            'completed': self.completed,
            'completed_at': isoformat(self.completed_at),
            'sort_order': self.sort_order,
            'created_at': isoformat(self.created_at)
        }


class ForgeComment(db.Model):
    __tablename__ = 'forge_comments'

    id = uuid_pk()
    ticket_id = db.Column(GUID, db.ForeignKey('forge_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    author_type = db.Column(db.Enum(*COMMENT_AUTHOR_TYPES, name='forge_comment_author_enum'), default='user')
    author_name = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'ticket_id': str(self.ticket_id),
            'content': self.content,
            'author_type': self.author_type,
            'author_name': self.author_name,
            'created_at': isoformat(self.created_at)
        }
