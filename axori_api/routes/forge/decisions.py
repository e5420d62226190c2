from flask import Blueprint, request, jsonify
from sqlalchemy import or_, String, cast

from axori_api import db
from axori_api.models.forge_decision import ForgeDecision, DECISION_CATEGORIES, DECISION_PREFIX
from axori_api.models.forge_ticket import ForgeTicket
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.errors import ApiError
from axori_api.utils.decision_matching import match_decisions, format_decisions_for_prompt
from axori_api.utils.helpers import get_or_404, format_sequence_identifier, parse_sequence_number
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_decimal, parse_int, parse_optional_uuid,
    parse_string_list, parse_bool
)

bp = Blueprint('forge_decisions', __name__)


def next_decision_identifier():
    identifiers = db.session.query(ForgeDecision.identifier).all()
    highest = max((parse_sequence_number(row[0]) for row in identifiers), default=0)
    return format_sequence_identifier(DECISION_PREFIX, highest + 1)


def apply_decision_fields(decision, data):
    for field in ForgeDecision.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'category':
            value = validate_choice(value, DECISION_CATEGORIES, 'category')
        elif field == 'scope':
            value = parse_string_list(value, 'scope')
        elif field == 'active':
            value = bool(value)
        elif field in ('supersedes', 'created_from_ticket'):
            value = parse_optional_uuid(value, field)
        elif field == 'compliance_rate':
            value = parse_decimal(value, field, minimum=0)
            if value is not None and value > 100:
                raise ApiError('Validation failed', 400, {field: 'Must be at most 100'})
        elif field in ('times_applied', 'times_overridden'):
            value = parse_int(value, field, minimum=0, default=0)
        setattr(decision, field, value)


def ticket_from_args():
    ticket_id = request.args.get('ticket_id')
    if not ticket_id:
        return None
    return get_or_404(ForgeTicket, ticket_id, 'Ticket not found')


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_decisions():
    query = ForgeDecision.query
    if request.args.get('category'):
        query = query.filter_by(category=validate_choice(request.args['category'], DECISION_CATEGORIES, 'category'))
    if request.args.get('active') is not None:
        query = query.filter_by(active=parse_bool(request.args.get('active')))
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            ForgeDecision.decision.ilike(pattern),
            ForgeDecision.context.ilike(pattern),
            ForgeDecision.identifier.ilike(pattern),
            cast(ForgeDecision.scope, String).ilike(pattern)
        ))
    decisions = query.order_by(ForgeDecision.identifier).all()
    return jsonify([decision.to_dict() for decision in decisions]), 200


@bp.route('/match', methods=['GET'])
@require_admin_feature('forge:tickets')
def match_for_ticket():
    """
    Active decisions relevant to a ticket
    ---
    tags:
      - Forge
    parameters:
      - in: query
        name: ticket_id
        required: true
        schema:
          type: string
    security:
      - Bearer: []
    responses:
      200:
        description: Matched decisions
      400:
        description: ticket_id missing
      404:
        description: Ticket not found
    """
    ticket = ticket_from_args()
    if ticket is None:
        return jsonify({'error': 'ticket_id is required'}), 400
    decisions = match_decisions(ticket)
    return jsonify({'ticket_id': str(ticket.id), 'decisions': [d.to_dict() for d in decisions]}), 200


@bp.route('/prompt', methods=['GET'])
@require_admin_feature('forge:tickets')
def prompt_for_ticket():
    """Matched decisions rendered as an agent prompt section"""
    ticket = ticket_from_args()
    if ticket is None:
        return jsonify({'error': 'ticket_id is required'}), 400
    decisions = match_decisions(ticket)
    return jsonify({
        'ticket_id': str(ticket.id),
        'prompt': format_decisions_for_prompt(decisions),
        'decision_count': len(decisions)
    }), 200


@bp.route('/<decision_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_decision(decision_id):
    return jsonify(get_or_404(ForgeDecision, decision_id, 'Decision not found').to_dict()), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_decision():
    data = get_json_body()
    require_fields(data, 'decision', 'category')
    decision = ForgeDecision(identifier=next_decision_identifier(), active=True,
                             times_applied=0, times_overridden=0)
    apply_decision_fields(decision, data)
    db.session.add(decision)
    db.session.commit()
    return jsonify(decision.to_dict()), 201


@bp.route('/<decision_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_decision(decision_id):
    decision = get_or_404(ForgeDecision, decision_id, 'Decision not found')
    apply_decision_fields(decision, get_json_body())
    if not decision.decision:
        db.session.rollback()
        return jsonify({'error': 'Decision text cannot be empty'}), 400
    db.session.commit()
    return jsonify(decision.to_dict()), 200


@bp.route('/<decision_id>/toggle', methods=['PATCH'])
@require_admin_feature('forge:tickets')
def toggle_decision(decision_id):
    decision = get_or_404(ForgeDecision, decision_id, 'Decision not found')
    decision.active = not decision.active
    db.session.commit()
    return jsonify(decision.to_dict()), 200


@bp.route('/<decision_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_decision(decision_id):
    decision = get_or_404(ForgeDecision, decision_id, 'Decision not found')
    identifier = decision.identifier
    ForgeDecision.query.filter_by(supersedes=decision.id).update({'supersedes': None})
    db.session.delete(decision)
    db.session.commit()
    return jsonify({'message': f'Decision {identifier} deleted'}), 200
