from flask import Blueprint, request, jsonify
from axori_api import db
from axori_api.models.forge_planning import ForgeProject, ForgeMilestone, ForgeFeature
from axori_api.models.forge_ticket import ForgeTicket
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404
from axori_api.utils.validation import get_json_body, require_fields, parse_int, parse_optional_uuid

bp = Blueprint('forge_projects', __name__)


def apply_project_fields(project, data):
    for field in ForgeProject.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'milestone_id':
            value = parse_optional_uuid(value, field)
            if value is not None:
                get_or_404(ForgeMilestone, value, 'Milestone not found')
        elif field == 'feature_id':
            value = parse_optional_uuid(value, field)
            if value is not None:
                get_or_404(ForgeFeature, value, 'Feature not found')
        elif field == 'sort_order':
            value = parse_int(value, field, minimum=0, default=0)
        setattr(project, field, value)


def project_summary(project):
    data = project.to_dict()
    data['ticket_count'] = project.tickets.count()
    data['done_count'] = project.tickets.filter(ForgeTicket.status == 'done').count()
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_projects():
    query = ForgeProject.query
    milestone_id = parse_optional_uuid(request.args.get('milestone_id'), 'milestone_id')
    if milestone_id:
        query = query.filter_by(milestone_id=milestone_id)
    feature_id = parse_optional_uuid(request.args.get('feature_id'), 'feature_id')
    if feature_id:
        query = query.filter_by(feature_id=feature_id)
    projects = query.order_by(ForgeProject.sort_order, ForgeProject.created_at).all()
    return jsonify([project_summary(p) for p in projects]), 200


@bp.route('/<project_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_project(project_id):
    project = get_or_404(ForgeProject, project_id, 'Project not found')
    data = project_summary(project)
    data['tickets'] = [t.to_summary() for t in project.tickets.order_by(ForgeTicket.status_order)]
    return jsonify(data), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_project():
    data = get_json_body()
    require_fields(data, 'name')
    project = ForgeProject(sort_order=0)
    apply_project_fields(project, data)
    db.session.add(project)
    db.session.commit()
    return jsonify(project.to_dict()), 201


@bp.route('/<project_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_project(project_id):
    project = get_or_404(ForgeProject, project_id, 'Project not found')
    apply_project_fields(project, get_json_body())
    if not project.name:
        db.session.rollback()
        return jsonify({'error': 'Name cannot be empty'}), 400
    db.session.commit()
    return jsonify(project.to_dict()), 200


@bp.route('/<project_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_project(project_id):
    project = get_or_404(ForgeProject, project_id, 'Project not found')
    ForgeTicket.query.filter_by(project_id=project.id).update({'project_id': None})
    db.session.delete(project)
    db.session.commit()
    return jsonify({'message': 'Project deleted'}), 200
