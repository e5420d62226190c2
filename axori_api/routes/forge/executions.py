from flask import Blueprint, request, jsonify, current_app
from axori_api import db
from axori_api.models.forge_execution import (
    ForgeAgentExecution, ForgeTokenUsage, EXECUTION_STATUSES, PROTOCOL_TOKEN_ESTIMATES
)
from axori_api.models.forge_ticket import ForgeTicket, AGENT_PROTOCOLS
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404, utcnow
from axori_api.utils.token_budget import get_or_create_budget, can_afford, record_usage
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_int, parse_optional_uuid
)

bp = Blueprint('forge_executions', __name__)

FINISHED_STATUSES = ('completed', 'failed')
CANCEL_MARKER = '[CANCELLED BY USER]'


def release_ticket_agent(execution):
    ticket = execution.ticket
    if ticket is not None and ticket.last_execution_id == execution.id:
        ticket.assigned_agent = None
        ticket.agent_session_id = None


def execution_with_ticket(execution):
    data = execution.to_dict()
    data['ticket'] = execution.ticket.to_summary() if execution.ticket else None
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:agents')
def list_executions():
    query = ForgeAgentExecution.query
    ticket_id = parse_optional_uuid(request.args.get('ticket_id'), 'ticket_id')
    if ticket_id:
        query = query.filter_by(ticket_id=ticket_id)
    if request.args.get('status'):
        query = query.filter_by(status=validate_choice(request.args['status'], EXECUTION_STATUSES, 'status'))
    limit = parse_int(request.args.get('limit'), 'limit', minimum=1, maximum=200, default=50)

    executions = query.order_by(ForgeAgentExecution.created_at.desc()).limit(limit).all()
    return jsonify([execution_with_ticket(e) for e in executions]), 200


@bp.route('/<execution_id>', methods=['GET'])
@require_admin_feature('forge:agents')
def get_execution(execution_id):
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    data = execution_with_ticket(execution)
    data['token_usage'] = [u.to_dict() for u in execution.token_usage.order_by(ForgeTokenUsage.created_at)]
    return jsonify(data), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:agents')
def create_execution():
    """
    Queue an agent run for a ticket
    ---
    tags:
      - Forge
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - ticket_id
              - protocol
              - prompt
            properties:
              ticket_id:
                type: string
              protocol:
                type: string
              prompt:
                type: string
    responses:
      201:
        description: Execution queued as pending
      404:
        description: Ticket not found
      409:
        description: The ticket already has a running execution
      429:
        description: Today's token budget cannot cover this protocol
    """
    data = get_json_body()
    require_fields(data, 'ticket_id', 'protocol', 'prompt')
    protocol = validate_choice(data['protocol'], AGENT_PROTOCOLS, 'protocol')
    ticket = get_or_404(ForgeTicket, data['ticket_id'], 'Ticket not found')

    running = ForgeAgentExecution.query.filter_by(ticket_id=ticket.id, status='running').first()
    if running:
        return jsonify({'error': 'Ticket already has a running execution',
                        'execution_id': str(running.id)}), 409

    budget = get_or_create_budget()
    if not can_afford(budget, protocol):
        db.session.commit()
        _, estimated_max = PROTOCOL_TOKEN_ESTIMATES[protocol]
        current_app.logger.warning(f"Budget refused {protocol} for {ticket.identifier}")
        return jsonify({
            'error': 'Daily token budget exceeded',
            'remaining_tokens': budget.remaining_tokens,
            'remaining_cents': budget.remaining_cents,
            'estimated_tokens': estimated_max
        }), 429

    execution = ForgeAgentExecution(
        ticket_id=ticket.id,
        protocol=protocol,
        status='pending',
        prompt=data['prompt'],
        tokens_used=0,
        cost_cents=0,
        created_by=request.current_user['user_id']
    )
    db.session.add(execution)
    db.session.flush()

    ticket.assigned_agent = protocol
    ticket.agent_session_id = str(execution.id)
    ticket.last_execution_id = execution.id
    db.session.commit()
    current_app.logger.info(f"Queued {protocol} execution {execution.id} for {ticket.identifier}")
    return jsonify(execution.to_dict()), 201


@bp.route('/<execution_id>', methods=['PUT'])
@require_admin_feature('forge:agents')
def report_execution(execution_id):
    """Progress report from the worker running the agent"""
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    data = get_json_body()

    for field in ForgeAgentExecution.REPORTABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'status':
            value = validate_choice(value, EXECUTION_STATUSES, 'status')
        elif field in ('checkpoint_step', 'tokens_used', 'cost_cents', 'duration_ms'):
            value = parse_int(value, field, minimum=0)
        setattr(execution, field, value)

    status = data.get('status')
    if status == 'running' and execution.started_at is None:
        execution.started_at = utcnow()
    if status in FINISHED_STATUSES:
        execution.completed_at = utcnow()
        release_ticket_agent(execution)
        current_app.logger.info(f"Execution {execution.id} {status}")
    db.session.commit()
    return jsonify(execution.to_dict()), 200


@bp.route('/<execution_id>/pause', methods=['POST'])
@require_admin_feature('forge:agents')
def pause_execution(execution_id):
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    if execution.status != 'running':
        return jsonify({'error': f'Cannot pause an execution that is {execution.status}'}), 400
    execution.status = 'paused'
    db.session.commit()
    return jsonify(execution.to_dict()), 200


@bp.route('/<execution_id>/resume', methods=['POST'])
@require_admin_feature('forge:agents')
def resume_execution(execution_id):
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    if execution.status != 'paused':
        return jsonify({'error': f'Cannot resume an execution that is {execution.status}'}), 400
    execution.status = 'running'
    db.session.commit()
    return jsonify(execution.to_dict()), 200


@bp.route('/<execution_id>/cancel', methods=['POST'])
@require_admin_feature('forge:agents')
def cancel_execution(execution_id):
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    if execution.status in FINISHED_STATUSES:
        return jsonify({'error': f'Execution already {execution.status}'}), 400

    execution.status = 'failed'
    execution.completed_at = utcnow()
    execution.execution_log = f'{execution.execution_log}\n{CANCEL_MARKER}' if execution.execution_log \
        else CANCEL_MARKER
    release_ticket_agent(execution)
    db.session.commit()
    current_app.logger.info(f"Execution {execution.id} cancelled")
    return jsonify(execution.to_dict()), 200


@bp.route('/<execution_id>/log-tokens', methods=['POST'])
@require_admin_feature('forge:agents')
def log_tokens(execution_id):
    """
    Record one model call's token usage
    ---
    tags:
      - Forge
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - model
            properties:
              model:
                type: string
              input_tokens:
                type: integer
              output_tokens:
                type: integer
              cost_cents:
                type: integer
    responses:
      201:
        description: Usage recorded, execution totals and today's budget updated
    """
    execution = get_or_404(ForgeAgentExecution, execution_id, 'Execution not found')
    data = get_json_body()
    require_fields(data, 'model')

    usage = ForgeTokenUsage(
        execution_id=execution.id,
        model=data['model'],
        input_tokens=parse_int(data.get('input_tokens'), 'input_tokens', minimum=0, default=0),
        output_tokens=parse_int(data.get('output_tokens'), 'output_tokens', minimum=0, default=0),
        cost_cents=parse_int(data.get('cost_cents'), 'cost_cents', minimum=0, default=0)
    )
    db.session.add(usage)
    db.session.flush()

    usages = execution.token_usage.all()
    execution.tokens_used = sum(u.total_tokens for u in usages)
    execution.cost_cents = sum(u.cost_cents for u in usages)
    budget = record_usage(usage.total_tokens, usage.cost_cents)
    db.session.commit()

    return jsonify({
        'usage': usage.to_dict(),
        'execution': execution.to_dict(),
        'budget': {'used_tokens': budget.used_tokens, 'used_cents': budget.used_cents}
    }), 201
