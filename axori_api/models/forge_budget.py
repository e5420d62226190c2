from axori_api import db
from axori_api.models.types import uuid_pk
from axori_api.utils.helpers import utcnow, isoformat

DEFAULT_DAILY_LIMIT_TOKENS = 500000
DEFAULT_DAILY_LIMIT_CENTS = 500
DEFAULT_AUTOPILOT_LIMIT_TOKENS = 100000


class ForgeTokenBudget(db.Model):
    """Daily token and spend limits, one row per day"""
    __tablename__ = 'forge_token_budgets'

    id = uuid_pk()
    date = db.Column(db.Date, unique=True, nullable=False, index=True)
    daily_limit_tokens = db.Column(db.Integer, nullable=False, default=DEFAULT_DAILY_LIMIT_TOKENS)
    daily_limit_cents = db.Column(db.Integer, nullable=False, default=DEFAULT_DAILY_LIMIT_CENTS)
    used_tokens = db.Column(db.Integer, nullable=False, default=0)
    used_cents = db.Column(db.Integer, nullable=False, default=0)
    autopilot_limit_tokens = db.Column(db.Integer, nullable=False, default=DEFAULT_AUTOPILOT_LIMIT_TOKENS)
    autopilot_used_tokens = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @property
    def remaining_tokens(self):
        return max(self.daily_limit_tokens - (self.used_tokens or 0), 0)

    @property
    def remaining_cents(self):
        return max(self.daily_limit_cents - (self.used_cents or 0), 0)

    def to_dict(self):
        return {
            'id': str(self.id),
            'date': isoformat(self.date),
            'daily_limit_tokens': self.daily_limit_tokens,
            'daily_limit_cents': self.daily_limit_cents,
            'used_tokens': self.used_tokens or 0,
            'used_cents': self.used_cents or 0,
            'autopilot_limit_tokens': self.autopilot_limit_tokens,
            'autopilot_used_tokens': self.autopilot_used_tokens or 0,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<ForgeTokenBudget {self.date}>'
