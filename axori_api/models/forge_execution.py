from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.models.forge_ticket import AGENT_PROTOCOLS
from axori_api.utils.agent_protocols import PROTOCOLS
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

EXECUTION_STATUSES = ('pending', 'running', 'completed', 'failed', 'paused')

# (min, max) tokens an execution of each protocol is expected to consume
PROTOCOL_TOKEN_ESTIMATES = {protocol_id: protocol['estimated_tokens'] for protocol_id, protocol in PROTOCOLS.items()}


class ForgeAgentExecution(db.Model):
    """One run of an AI agent against a ticket"""
    __tablename__ = 'forge_agent_executions'

    id = uuid_pk()
    ticket_id = db.Column(GUID, db.ForeignKey('forge_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    protocol = db.Column(db.Enum(*AGENT_PROTOCOLS, name='forge_execution_protocol_enum'), nullable=False)
    status = db.Column(db.Enum(*EXECUTION_STATUSES, name='forge_execution_status_enum'),
                       nullable=False, default='pending', index=True)

    prompt = db.Column(db.Text, nullable=False)
    plan_output = db.Column(db.Text)
    execution_log = db.Column(db.Text)
    checkpoint_data = db.Column(JSONType)
    checkpoint_step = db.Column(db.Integer)

    branch_created = db.Column(db.String(255))
    files_changed = db.Column(JSONType, default=list)
    pr_url = db.Column(db.Text)

    tokens_used = db.Column(db.Integer, default=0)
    cost_cents = db.Column(db.Integer, default=0)
    duration_ms = db.Column(db.Integer)

    started_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_by = db.Column(GUID, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    token_usage = db.relationship('ForgeTokenUsage', backref='execution', lazy='dynamic',
                                  cascade='all, delete-orphan')

    REPORTABLE_FIELDS = (
        'status', 'plan_output', 'execution_log', 'checkpoint_data', 'checkpoint_step',
        'branch_created', 'files_changed', 'pr_url', 'tokens_used', 'cost_cents', 'duration_ms'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'ticket_id': str(self.ticket_id),
            'protocol': self.protocol,
            'status': self.status,
            'prompt': self.prompt,
            'plan_output': self.plan_output,
            'execution_log': self.execution_log,
            'checkpoint_data': self.checkpoint_data,
            'checkpoint_step': self.checkpoint_step,
            'branch_created': self.branch_created,
            'files_changed': self.files_changed or [],
            'pr_url': self.pr_url,
            'tokens_used': self.tokens_used or 0,
            'cost_cents': self.cost_cents or 0,
            'duration_ms': self.duration_ms,
            'started_at': isoformat(self.started_at),
            'completed_at': isoformat(self.completed_at),
            'created_by': str_or_none(self.created_by),
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<ForgeAgentExecution {self.protocol} {self.status}>'


class ForgeTokenUsage(db.Model):
    """Token consumption reported for one model call of an execution"""
    __tablename__ = 'forge_token_usage'

    id = uuid_pk()
    execution_id = db.Column(GUID, db.ForeignKey('forge_agent_executions.id', ondelete='CASCADE'),
                             nullable=False, index=True)
    model = db.Column(db.String(100), nullable=False)
    input_tokens = db.Column(db.Integer, nullable=False, default=0)
    output_tokens = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    @property
    def total_tokens(self):
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self):
        return {
            'id': str(self.id),
            'execution_id': str(self.execution_id),
            'model': self.model,
            'input_tokens': self.input_tokens,
            'output_tokens': self.output_tokens,
            'total_tokens': self.total_tokens,
            'cost_cents': self.cost_cents,
            'created_at': isoformat(self.created_at)
        }
