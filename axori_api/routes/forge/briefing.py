from datetime import timedelta

from flask import Blueprint, jsonify
from sqlalchemy import case

from axori_api import db
from axori_api.models.forge_execution import ForgeAgentExecution
from axori_api.models.forge_ticket import ForgeTicket
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import utcnow, isoformat, percent
from axori_api.utils.token_budget import get_or_create_budget

bp = Blueprint('forge_briefing', __name__)

SECTION_LIMIT = 10
FOCUS_LIMIT = 5


def time_of_day(hour):
    if hour < 12:
        return 'morning'
    if hour < 18:
        return 'afternoon'
    return 'evening'


def ticket_item(ticket, **extra):
    data = ticket.to_summary()
    data['priority'] = ticket.priority
    data.update(extra)
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:board')
def get_briefing():
    """
    Morning briefing: overnight results, today's focus and budget
    ---
    tags:
      - Forge
    security:
      - Bearer: []
    responses:
      200:
        description: Greeting (UTC), overnight activity, focus tickets, budget and recent executions
    """
    now = utcnow()
    since = now - timedelta(hours=24)

    completed = ForgeTicket.query \
        .filter(ForgeTicket.status == 'done', ForgeTicket.completed_at >= since) \
        .order_by(ForgeTicket.completed_at.desc()).limit(SECTION_LIMIT).all()
    prs_ready = ForgeTicket.query \
        .filter(ForgeTicket.status == 'in_review', ForgeTicket.pr_url.isnot(None)) \
        .order_by(ForgeTicket.updated_at.desc()).limit(SECTION_LIMIT).all()
    blocked = ForgeTicket.query.filter(ForgeTicket.status == 'blocked') \
        .order_by(ForgeTicket.updated_at.desc()).limit(SECTION_LIMIT).all()

    priority_rank = case((ForgeTicket.priority == 'critical', 0), else_=1)
    focus = ForgeTicket.query \
        .filter(ForgeTicket.status.in_(('in_progress', 'planned')),
                ForgeTicket.priority.in_(('critical', 'high'))) \
        .order_by(priority_rank, ForgeTicket.updated_at.desc()).limit(FOCUS_LIMIT).all()

    budget = get_or_create_budget()
    db.session.commit()

    executions = ForgeAgentExecution.query.order_by(ForgeAgentExecution.created_at.desc()) \
        .limit(SECTION_LIMIT).all()

    return jsonify({
        'generated_at': isoformat(now),
        'greeting': {'time_of_day': time_of_day(now.hour), 'hour': now.hour},
        'overnight': {
            'completed_tickets': [ticket_item(t, completed_at=isoformat(t.completed_at)) for t in completed],
            'prs_ready': [ticket_item(t, pr_url=t.pr_url, pr_number=t.pr_number) for t in prs_ready],
            'needs_attention': [ticket_item(t, reason='Blocked') for t in blocked]
        },
        'todays_focus': {
            'tickets': [ticket_item(t) for t in focus],
            'blocked_count': ForgeTicket.query.filter_by(status='blocked').count()
        },
        'token_budget': {
            'used_tokens': budget.used_tokens or 0,
            'limit_tokens': budget.daily_limit_tokens,
            'used_cents': budget.used_cents or 0,
            'limit_cents': budget.daily_limit_cents,
            'percent_used': round(percent(budget.used_tokens or 0, budget.daily_limit_tokens))
        },
        'recent_executions': [{
            'id': str(e.id),
            'ticket_id': str(e.ticket_id),
            'protocol': e.protocol,
            'status': e.status,
            'completed_at': isoformat(e.completed_at)
        } for e in executions]
    }), 200
