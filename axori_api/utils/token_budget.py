"""Daily Forge token budget bookkeeping"""
import logging

from axori_api import db
from axori_api.models.forge_budget import ForgeTokenBudget
from axori_api.models.forge_execution import PROTOCOL_TOKEN_ESTIMATES
from axori_api.utils.helpers import percent, utctoday

logger = logging.getLogger(__name__)


def get_or_create_budget(day=None):
    """Today's budget row, created with default limits when missing"""
    day = day or utctoday()
    budget = ForgeTokenBudget.query.filter_by(date=day).first()
    if budget is None:
        budget = ForgeTokenBudget(date=day, used_tokens=0, used_cents=0, autopilot_used_tokens=0)
        db.session.add(budget)
        db.session.flush()
    return budget


def budget_with_usage(budget):
    data = budget.to_dict()
    data.update({
        'token_percent_used': percent(budget.used_tokens or 0, budget.daily_limit_tokens),
        'cost_percent_used': percent(budget.used_cents or 0, budget.daily_limit_cents),
        'remaining_tokens': budget.remaining_tokens,
        'remaining_cents': budget.remaining_cents
    })
    return data


def can_afford(budget, protocol):
    """Whether the protocol's worst-case token estimate fits in what is left today"""
    _, estimated_max = PROTOCOL_TOKEN_ESTIMATES.get(protocol, (0, 0))
    return budget.remaining_tokens >= estimated_max and budget.remaining_cents > 0


def record_usage(tokens, cost_cents, autopilot=False, day=None):
    budget = get_or_create_budget(day)
    budget.used_tokens = (budget.used_tokens or 0) + tokens
    budget.used_cents = (budget.used_cents or 0) + cost_cents
    if autopilot:
        budget.autopilot_used_tokens = (budget.autopilot_used_tokens or 0) + tokens
    if budget.used_tokens >= budget.daily_limit_tokens:
        logger.warning(f"Forge daily token budget exhausted for {budget.date}")
    return budget
