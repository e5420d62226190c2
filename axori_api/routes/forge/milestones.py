from flask import Blueprint, jsonify
from sqlalchemy import func

from axori_api import db
from axori_api.models.forge_planning import ForgeMilestone, ForgeProject, MILESTONE_STATUSES
from axori_api.models.forge_ticket import ForgeTicket, TICKET_STATUSES
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_date, parse_int
)

bp = Blueprint('forge_milestones', __name__)


def apply_milestone_fields(milestone, data):
    for field in ForgeMilestone.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'status':
            value = validate_choice(value, MILESTONE_STATUSES, 'status')
        elif field == 'target_date':
            value = parse_date(value, field)
        elif field == 'progress_percent':
            value = parse_int(value, field, minimum=0, maximum=100, default=0)
        elif field == 'sort_order':
            value = parse_int(value, field, minimum=0, default=0)
        setattr(milestone, field, value)


def ticket_status_breakdown(milestone):
    rows = db.session.query(ForgeTicket.status, func.count(ForgeTicket.id)) \
        .filter(ForgeTicket.milestone_id == milestone.id).group_by(ForgeTicket.status).all()
    counts = dict(rows)
    return {status: counts.get(status, 0) for status in TICKET_STATUSES}


def milestone_summary(milestone):
    data = milestone.to_dict()
    data['ticket_count'] = milestone.tickets.count()
    data['done_count'] = milestone.tickets.filter(ForgeTicket.status == 'done').count()
    data['project_count'] = milestone.projects.count()
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_milestones():
    milestones = ForgeMilestone.query.order_by(ForgeMilestone.sort_order, ForgeMilestone.created_at).all()
    return jsonify([milestone_summary(m) for m in milestones]), 200


@bp.route('/<milestone_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_milestone(milestone_id):
    """Milestone with its projects and how its tickets are spread across the board"""
    milestone = get_or_404(ForgeMilestone, milestone_id, 'Milestone not found')
    data = milestone_summary(milestone)
    data['projects'] = [p.to_dict() for p in milestone.projects.order_by(ForgeProject.sort_order)]
    data['ticket_breakdown'] = ticket_status_breakdown(milestone)
    return jsonify(data), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_milestone():
    data = get_json_body()
    require_fields(data, 'name')
    milestone = ForgeMilestone(status='active', progress_percent=0, sort_order=0)
    apply_milestone_fields(milestone, data)
    db.session.add(milestone)
    db.session.commit()
    return jsonify(milestone.to_dict()), 201


@bp.route('/<milestone_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_milestone(milestone_id):
    milestone = get_or_404(ForgeMilestone, milestone_id, 'Milestone not found')
    apply_milestone_fields(milestone, get_json_body())
    if not milestone.name:
        db.session.rollback()
        return jsonify({'error': 'Name cannot be empty'}), 400
    db.session.commit()
    return jsonify(milestone.to_dict()), 200


@bp.route('/<milestone_id>/progress', methods=['PUT'])
@require_admin_feature('forge:tickets')
def recompute_progress(milestone_id):
    """Progress = done tickets / all tickets"""
    milestone = get_or_404(ForgeMilestone, milestone_id, 'Milestone not found')
    total = milestone.tickets.count()
    done = milestone.tickets.filter(ForgeTicket.status == 'done').count()
    milestone.progress_percent = round(done / total * 100) if total else 0
    db.session.commit()
    return jsonify(milestone_summary(milestone)), 200


@bp.route('/<milestone_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_milestone(milestone_id):
    milestone = get_or_404(ForgeMilestone, milestone_id, 'Milestone not found')
    ForgeTicket.query.filter_by(milestone_id=milestone.id).update({'milestone_id': None})
    ForgeProject.query.filter_by(milestone_id=milestone.id).update({'milestone_id': None})
    db.session.delete(milestone)
    db.session.commit()
    return jsonify({'message': 'Milestone deleted'}), 200
