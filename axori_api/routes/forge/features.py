from flask import Blueprint, request, jsonify, current_app
from sqlalchemy import or_

from axori_api import db
from axori_api.models.forge_planning import (
    ForgeFeature, ForgeFoundry, ForgeProject, FEATURE_STATUSES, FEATURE_PREFIX
)
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404, format_sequence_identifier, parse_sequence_number
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_int, parse_optional_uuid
)

bp = Blueprint('forge_features', __name__)


def next_feature_identifier():
    identifiers = db.session.query(ForgeFeature.identifier) \
        .filter(ForgeFeature.identifier.like(f'{FEATURE_PREFIX}-%')).all()
    highest = max((parse_sequence_number(row[0]) for row in identifiers), default=0)
    return format_sequence_identifier(FEATURE_PREFIX, highest + 1)


def apply_feature_fields(feature, data):
    for field in ForgeFeature.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'foundry_id':
            value = parse_optional_uuid(value, field)
            if value is not None:
                get_or_404(ForgeFoundry, value, 'Foundry not found')
        elif field == 'status':
            value = validate_choice(value, FEATURE_STATUSES, 'status')
        elif field == 'sort_order':
            value = parse_int(value, field, minimum=0, default=0)
        setattr(feature, field, value)


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_features():
    """
    List features
    ---
    tags:
      - Forge
    parameters:
      - in: query
        name: foundry_id
        schema:
          type: string
      - in: query
        name: status
        schema:
          type: string
          enum: [active, deprecated, planned]
      - in: query
        name: search
        schema:
          type: string
        description: Matches name or identifier
    security:
      - Bearer: []
    responses:
      200:
        description: Features ordered by sort order then name
    """
    query = ForgeFeature.query
    foundry_id = parse_optional_uuid(request.args.get('foundry_id'), 'foundry_id')
    if foundry_id:
        query = query.filter_by(foundry_id=foundry_id)
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=validate_choice(status, FEATURE_STATUSES, 'status'))
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(ForgeFeature.name.ilike(pattern), ForgeFeature.identifier.ilike(pattern)))
    features = query.order_by(ForgeFeature.sort_order, ForgeFeature.name).all()
    return jsonify([feature.to_dict() for feature in features]), 200


@bp.route('/<feature_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_feature(feature_id):
    feature = get_or_404(ForgeFeature, feature_id, 'Feature not found')
    data = feature.to_dict()
    data['foundry'] = feature.foundry.to_dict() if feature.foundry else None
    projects = feature.projects.order_by(ForgeProject.sort_order, ForgeProject.created_at).all()
    data['projects'] = [project.to_dict() for project in projects]
    return jsonify(data), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_feature():
    data = get_json_body()
    require_fields(data, 'name')
    feature = ForgeFeature(identifier=next_feature_identifier(), status='active', sort_order=0)
    apply_feature_fields(feature, data)
    db.session.add(feature)
    db.session.commit()
    current_app.logger.info(f"Created Forge feature {feature.identifier}")
    return jsonify(feature.to_dict()), 201


@bp.route('/<feature_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_feature(feature_id):
    feature = get_or_404(ForgeFeature, feature_id, 'Feature not found')
    apply_feature_fields(feature, get_json_body())
    if not feature.name:
        db.session.rollback()
        return jsonify({'error': 'Name cannot be empty'}), 400
    db.session.commit()
    return jsonify(feature.to_dict()), 200


@bp.route('/<feature_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_feature(feature_id):
    feature = get_or_404(ForgeFeature, feature_id, 'Feature not found')
    if feature.projects.count():
        return jsonify({
            'error': 'Cannot delete feature with existing projects. Remove or reassign projects first.'
        }), 400
    identifier = feature.identifier
    db.session.delete(feature)
    db.session.commit()
    return jsonify({'message': f'Feature {identifier} deleted'}), 200
