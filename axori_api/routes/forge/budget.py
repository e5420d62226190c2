from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify
from sqlalchemy import func

from axori_api import db
from axori_api.models.forge_budget import ForgeTokenBudget
from axori_api.models.forge_execution import ForgeAgentExecution, ForgeTokenUsage
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import percent, utctoday
from axori_api.utils.token_budget import get_or_create_budget, budget_with_usage
from axori_api.utils.validation import get_json_body, parse_int

bp = Blueprint('forge_budget', __name__)

LIMIT_FIELDS = ('daily_limit_tokens', 'daily_limit_cents', 'autopilot_limit_tokens')


def usage_since(start):
    """Start of ``start`` as a datetime, for filtering timestamp columns"""
    return datetime.combine(start, datetime.min.time())


@bp.route('/today', methods=['GET'])
@require_admin_feature('forge:budget')
def get_today():
    budget = get_or_create_budget()
    db.session.commit()
    return jsonify(budget_with_usage(budget)), 200


@bp.route('/today', methods=['PUT'])
@require_admin_feature('forge:budget')
def update_today():
    data = get_json_body()
    budget = get_or_create_budget()
    for field in LIMIT_FIELDS:
        if field in data:
            setattr(budget, field, parse_int(data[field], field, minimum=0))
    db.session.commit()
    return jsonify(budget_with_usage(budget)), 200


@bp.route('/history', methods=['GET'])
@require_admin_feature('forge:budget')
def get_history():
    """
    Daily budget rows, oldest first
    ---
    tags:
      - Forge
    parameters:
      - in: query
        name: days
        schema:
          type: integer
          default: 30
    security:
      - Bearer: []
    responses:
      200:
        description: Rows plus totals and daily averages
    """
    days = parse_int(request.args.get('days'), 'days', minimum=1, maximum=365, default=30)
    start = utctoday() - timedelta(days=days - 1)
    budgets = ForgeTokenBudget.query.filter(ForgeTokenBudget.date >= start) \
        .order_by(ForgeTokenBudget.date.asc()).all()

    total_tokens = sum(b.used_tokens or 0 for b in budgets)
    total_cents = sum(b.used_cents or 0 for b in budgets)
    count = len(budgets)
    return jsonify({
        'history': [budget_with_usage(b) for b in budgets],
        'totals': {'tokens': total_tokens, 'cents': total_cents},
        'averages': {
            'tokens_per_day': round(total_tokens / count) if count else 0,
            'cents_per_day': round(total_cents / count) if count else 0
        },
        'days': days
    }), 200


@bp.route('/usage', methods=['GET'])
@require_admin_feature('forge:budget')
def get_usage_breakdown():
    """Token usage by model, by protocol and per day"""
    days = parse_int(request.args.get('days'), 'days', minimum=1, maximum=365, default=7)
    since = usage_since(utctoday() - timedelta(days=days - 1))

    by_model = db.session.query(
        ForgeTokenUsage.model,
        func.sum(ForgeTokenUsage.input_tokens + ForgeTokenUsage.output_tokens),
        func.sum(ForgeTokenUsage.cost_cents),
        func.count(ForgeTokenUsage.id)
    ).filter(ForgeTokenUsage.created_at >= since).group_by(ForgeTokenUsage.model).all()

    by_protocol = db.session.query(
        ForgeAgentExecution.protocol,
        func.sum(ForgeAgentExecution.tokens_used),
        func.sum(ForgeAgentExecution.cost_cents),
        func.count(ForgeAgentExecution.id)
    ).filter(
        ForgeAgentExecution.status == 'completed',
        ForgeAgentExecution.created_at >= since
    ).group_by(ForgeAgentExecution.protocol).all()

    daily = {}
    for usage in ForgeTokenUsage.query.filter(ForgeTokenUsage.created_at >= since).all():
        day = usage.created_at.date().isoformat()
        entry = daily.setdefault(day, {'date': day, 'tokens': 0, 'cents': 0})
        entry['tokens'] += usage.total_tokens
        entry['cents'] += usage.cost_cents or 0

    return jsonify({
        'by_model': [
            {'model': model, 'tokens': int(tokens or 0), 'cents': int(cents or 0), 'calls': calls}
            for model, tokens, cents, calls in by_model
        ],
        'by_protocol': [
            {'protocol': protocol, 'tokens': int(tokens or 0), 'cents': int(cents or 0), 'executions': runs}
            for protocol, tokens, cents, runs in by_protocol
        ],
        'daily': [daily[day] for day in sorted(daily)],
        'days': days
    }), 200


@bp.route('/recent', methods=['GET'])
@require_admin_feature('forge:budget')
def get_recent_usage():
    limit = parse_int(request.args.get('limit'), 'limit', minimum=1, maximum=500, default=50)
    usages = ForgeTokenUsage.query.order_by(ForgeTokenUsage.created_at.desc()).limit(limit).all()
    return jsonify([usage.to_dict() for usage in usages]), 200


@bp.route('/stats', methods=['GET'])
@require_admin_feature('forge:budget')
def get_budget_stats():
    today = get_or_create_budget()
    db.session.commit()

    month_start = utctoday().replace(day=1)
    month = db.session.query(
        func.coalesce(func.sum(ForgeTokenBudget.used_tokens), 0),
        func.coalesce(func.sum(ForgeTokenBudget.used_cents), 0)
    ).filter(ForgeTokenBudget.date >= month_start).one()

    completed = ForgeAgentExecution.query.filter_by(status='completed').count()
    failed = ForgeAgentExecution.query.filter_by(status='failed').count()

    return jsonify({
        'today': budget_with_usage(today),
        'month': {'tokens': int(month[0]), 'cents': int(month[1])},
        'executions': {
            'total': ForgeAgentExecution.query.count(),
            'completed': completed,
            'failed': failed,
            'running': ForgeAgentExecution.query.filter_by(status='running').count(),
            'success_rate': percent(completed, completed + failed)
        }
    }), 200
