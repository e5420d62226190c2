from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_

from axori_api import db
from axori_api.models.forge_ticket import (
    ForgeTicket, ForgeSubtask, ForgeComment,
    TICKET_STATUSES, TICKET_PRIORITIES, TICKET_TYPES, TICKET_PHASES, RELEASE_CLASSIFICATIONS,
    AGENT_PROTOCOLS, COMMENT_AUTHOR_TYPES, TICKET_PREFIX
)
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import (
    get_or_404, utcnow, format_sequence_identifier, parse_sequence_number
)
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_int, parse_optional_uuid,
    parse_string_list, parse_uuid
)

bp = Blueprint('forge_tickets', __name__)

TICKET_CHOICES = {
    'status': TICKET_STATUSES,
    'priority': TICKET_PRIORITIES,
    'type': TICKET_TYPES,
    'phase': TICKET_PHASES,
}

# Choice fields a client may reset to null
CLEARABLE_CHOICES = ('phase',)

IDENTIFIER_PREFIXES = (TICKET_PREFIX, 'AXO')


def next_ticket_identifier():
    identifiers = db.session.query(ForgeTicket.identifier) \
        .filter(ForgeTicket.identifier.like(f'{TICKET_PREFIX}-%')).all()
    highest = max((parse_sequence_number(row[0]) for row in identifiers), default=0)
    return format_sequence_identifier(TICKET_PREFIX, highest + 1)


def set_ticket_status(ticket, status):
    """Move a ticket, stamping started_at once and completed_at on done"""
    ticket.status = validate_choice(status, TICKET_STATUSES, 'status')
    if status == 'in_progress' and ticket.started_at is None:
        ticket.started_at = utcnow()
    if status == 'done':
        ticket.completed_at = utcnow()


def apply_ticket_fields(ticket, data):
    for field in ForgeTicket.UPDATABLE_FIELDS:
        if field not in data or field == 'status':
            continue
        value = data[field]
        if field in TICKET_CHOICES:
            if value is not None or field not in CLEARABLE_CHOICES:
                value = validate_choice(value, TICKET_CHOICES[field], field)
        elif field == 'release_classification' and value is not None:
            value = validate_choice(value, RELEASE_CLASSIFICATIONS, field)
        elif field == 'assigned_agent' and value is not None:
            value = validate_choice(value, AGENT_PROTOCOLS, field)
        elif field in ('parent_id', 'project_id', 'milestone_id'):
            value = parse_optional_uuid(value, field)
        elif field == 'estimate':
            value = parse_int(value, field, minimum=0, maximum=100)
        elif field in ('status_order', 'pr_number'):
            value = parse_int(value, field, minimum=0)
        elif field == 'labels':
            value = parse_string_list(value, field)
        elif field in ('is_breaking_change', 'blocks_deploy'):
            value = bool(value)
        setattr(ticket, field, value)
    if 'status' in data:
        set_ticket_status(ticket, data['status'])


def ticket_detail(ticket):
    data = ticket.to_dict()
    data['subtasks'] = [s.to_dict() for s in ticket.subtasks.order_by(ForgeSubtask.sort_order, ForgeSubtask.created_at)]
    data['comments'] = [c.to_dict() for c in ticket.comments.order_by(ForgeComment.created_at.desc())]
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_tickets():
    """
    List Forge tickets
    ---
    tags:
      - Forge
    parameters:
      - in: query
        name: status
        schema:
          type: string
      - in: query
        name: priority
        schema:
          type: string
      - in: query
        name: type
        schema:
          type: string
      - in: query
        name: milestone_id
        schema:
          type: string
      - in: query
        name: project_id
        schema:
          type: string
      - in: query
        name: parent_id
        schema:
          type: string
      - in: query
        name: search
        schema:
          type: string
        description: Matches title or identifier
      - in: query
        name: prefix
        schema:
          type: string
          enum: [FORGE, AXO]
    security:
      - Bearer: []
    responses:
      200:
        description: Tickets by board position, newest first within a position
      403:
        description: Missing forge:tickets:read
    """
    query = ForgeTicket.query
    for field, choices in TICKET_CHOICES.items():
        if field == 'phase':
            continue
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(ForgeTicket, field) == validate_choice(value, choices, field))
    for field in ('milestone_id', 'project_id', 'parent_id'):
        value = parse_optional_uuid(request.args.get(field), field)
        if value:
            query = query.filter(getattr(ForgeTicket, field) == value)

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(ForgeTicket.title.ilike(pattern), ForgeTicket.identifier.ilike(pattern)))
    prefix = request.args.get('prefix')
    if prefix:
        validate_choice(prefix, IDENTIFIER_PREFIXES, 'prefix')
        query = query.filter(ForgeTicket.identifier.like(f'{prefix}-%'))

    tickets = query.order_by(ForgeTicket.status_order.asc(), ForgeTicket.created_at.desc()).all()
    return jsonify([ticket.to_dict() for ticket in tickets]), 200


@bp.route('/board', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_board():
    """Tickets grouped into every Kanban column"""
    board = {status: [] for status in TICKET_STATUSES}
    tickets = ForgeTicket.query.order_by(ForgeTicket.status_order.asc(), ForgeTicket.created_at.desc()).all()
    for ticket in tickets:
        board[ticket.status].append(ticket.to_dict())
    return jsonify({
        'columns': [{'status': status, 'tickets': board[status], 'count': len(board[status])}
                    for status in TICKET_STATUSES],
        'total': len(tickets)
    }), 200


@bp.route('/<ticket_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_ticket(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    return jsonify(ticket_detail(ticket)), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_ticket():
    """
    Create a ticket with the next FORGE-NNN identifier
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
              - title
            properties:
              title:
                type: string
              description:
                type: string
              status:
                type: string
              priority:
                type: string
              type:
                type: string
              labels:
                type: array
                items:
                  type: string
    responses:
      201:
        description: Ticket created
      400:
        description: Validation failed
    """
    data = get_json_body()
    require_fields(data, 'title')

    ticket = ForgeTicket(identifier=next_ticket_identifier(),
                         created_by=request.current_user['user_id'], status='backlog', status_order=0)
    apply_ticket_fields(ticket, data)
    db.session.add(ticket)
    db.session.commit()
    current_app.logger.info(f"Created Forge ticket {ticket.identifier}")
    return jsonify(ticket.to_dict()), 201


@bp.route('/<ticket_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_ticket(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    data = get_json_body()
    apply_ticket_fields(ticket, data)
    if not ticket.title:
        db.session.rollback()
        return jsonify({'error': 'Title cannot be empty'}), 400
    db.session.commit()
    return jsonify(ticket.to_dict()), 200


@bp.route('/<ticket_id>/status', methods=['PATCH'])
@require_admin_feature('forge:tickets')
def move_ticket(ticket_id):
    """Drag and drop: change column and optionally position"""
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    data = get_json_body()
    require_fields(data, 'status')
    set_ticket_status(ticket, data['status'])
    if data.get('status_order') is not None:
        ticket.status_order = parse_int(data['status_order'], 'status_order', minimum=0)
    db.session.commit()
    return jsonify(ticket.to_dict()), 200


@bp.route('/reorder', methods=['POST'])
@require_admin_feature('forge:tickets')
def reorder_tickets():
    """
    Put the listed tickets in one column, in list order
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
              - status
              - ticket_ids
            properties:
              status:
                type: string
              ticket_ids:
                type: array
                items:
                  type: string
    responses:
      200:
        description: Column renumbered
      404:
        description: A listed ticket does not exist
    """
    data = get_json_body()
    require_fields(data, 'status')
    status = validate_choice(data['status'], TICKET_STATUSES, 'status')
    ticket_ids = data.get('ticket_ids')
    if not isinstance(ticket_ids, list):
        return jsonify({'error': 'ticket_ids must be a list'}), 400

    keys = [parse_uuid(ticket_id, 'ticket_id') for ticket_id in ticket_ids]
    tickets = {t.id: t for t in ForgeTicket.query.filter(ForgeTicket.id.in_(keys)).all()} if keys else {}
    missing = [str(key) for key in keys if key not in tickets]
    if missing:
        return jsonify({'error': 'Ticket not found', 'missing': missing}), 404

    for position, key in enumerate(keys):
        ticket = tickets[key]
        set_ticket_status(ticket, status)
        ticket.status_order = position
    db.session.commit()
    return jsonify({'status': status, 'tickets': [tickets[key].to_dict() for key in keys]}), 200


@bp.route('/<ticket_id>/assign-agent', methods=['POST'])
@require_admin_feature('forge:tickets')
def assign_agent(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    data = get_json_body()
    agent = data.get('agent', data.get('assigned_agent'))
    ticket.assigned_agent = validate_choice(agent, AGENT_PROTOCOLS, 'agent') if agent else None
    db.session.commit()
    return jsonify(ticket.to_dict()), 200


@bp.route('/<ticket_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_ticket(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    identifier = ticket.identifier
    ForgeTicket.query.filter_by(parent_id=ticket.id).update({'parent_id': None})
    db.session.delete(ticket)
    db.session.commit()
    current_app.logger.info(f"Deleted Forge ticket {identifier}")
    return jsonify({'message': f'Ticket {identifier} deleted'}), 200


# ---------------------------------------------------------------------------
# Subtasks and comments
# ---------------------------------------------------------------------------

def get_ticket_subtask(ticket, subtask_id):
    subtask = get_or_404(ForgeSubtask, subtask_id, 'Subtask not found')
    if subtask.ticket_id != ticket.id:
        return None
    return subtask


@bp.route('/<ticket_id>/subtasks', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_subtask(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    data = get_json_body()
    require_fields(data, 'title')
    sort_order = data.get('sort_order')
    if sort_order is None:
        sort_order = ticket.subtasks.count()
    subtask = ForgeSubtask(ticket_id=ticket.id, title=data['title'], completed=False,
                           sort_order=parse_int(sort_order, 'sort_order', minimum=0))
    db.session.add(subtask)
    db.session.commit()
    return jsonify(subtask.to_dict()), 201


@bp.route('/<ticket_id>/subtasks/<subtask_id>', methods=['PATCH'])
@require_admin_feature('forge:tickets')
def update_subtask(ticket_id, subtask_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    subtask = get_ticket_subtask(ticket, subtask_id)
    if subtask is None:
        return jsonify({'error': 'Subtask not found'}), 404

    data = get_json_body()
    if data.get('title'):
        subtask.title = data['title']
    if 'sort_order' in data:
        subtask.sort_order = parse_int(data['sort_order'], 'sort_order', minimum=0, default=0)
    if 'completed' in data:
        subtask.completed = bool(data['completed'])
        subtask.completed_at = utcnow() if subtask.completed else None
    db.session.commit()
    return jsonify(subtask.to_dict()), 200


@bp.route('/<ticket_id>/subtasks/<subtask_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_subtask(ticket_id, subtask_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    subtask = get_ticket_subtask(ticket, subtask_id)
    if subtask is None:
        return jsonify({'error': 'Subtask not found'}), 404
    db.session.delete(subtask)
    db.session.commit()
    return jsonify({'message': 'Subtask deleted'}), 200


@bp.route('/<ticket_id>/comments', methods=['POST'])
@require_admin_feature('forge:tickets')
def add_comment(ticket_id):
    ticket = get_or_404(ForgeTicket, ticket_id, 'Ticket not found')
    data = get_json_body()
    require_fields(data, 'content')
    author_type = validate_choice(data.get('author_type', 'user'), COMMENT_AUTHOR_TYPES, 'author_type')

    author_name = data.get('author_name')
    if not author_name:
        user = request.current_user.get('user')
        author_name = user.display_name if user else request.current_user.get('email')

    comment = ForgeComment(ticket_id=ticket.id, content=data['content'],
                           author_type=author_type, author_name=author_name)
    db.session.add(comment)
    db.session.commit()
    return jsonify(comment.to_dict()), 201
