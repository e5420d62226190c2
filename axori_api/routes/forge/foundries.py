from flask import Blueprint, jsonify
from axori_api import db
from axori_api.models.forge_planning import ForgeFoundry, ForgeFeature
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404
from axori_api.utils.validation import get_json_body, require_fields, parse_int

bp = Blueprint('forge_foundries', __name__)


def apply_foundry_fields(foundry, data):
    for field in ForgeFoundry.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'sort_order':
            value = parse_int(value, field, minimum=0, default=0)
        setattr(foundry, field, value)


def foundry_with_features(foundry):
    data = foundry.to_dict()
    features = foundry.features.order_by(ForgeFeature.sort_order, ForgeFeature.name).all()
    data['features'] = [feature.to_dict() for feature in features]
    return data


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:tickets')
def list_foundries():
    foundries = ForgeFoundry.query.order_by(ForgeFoundry.sort_order, ForgeFoundry.name).all()
    return jsonify([foundry_with_features(f) for f in foundries]), 200


@bp.route('/<foundry_id>', methods=['GET'])
@require_admin_feature('forge:tickets')
def get_foundry(foundry_id):
    foundry = get_or_404(ForgeFoundry, foundry_id, 'Foundry not found')
    return jsonify(foundry_with_features(foundry)), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:tickets')
def create_foundry():
    data = get_json_body()
    require_fields(data, 'name')
    foundry = ForgeFoundry(sort_order=0)
    apply_foundry_fields(foundry, data)
    db.session.add(foundry)
    db.session.commit()
    return jsonify(foundry.to_dict()), 201


@bp.route('/<foundry_id>', methods=['PUT'])
@require_admin_feature('forge:tickets')
def update_foundry(foundry_id):
    foundry = get_or_404(ForgeFoundry, foundry_id, 'Foundry not found')
    apply_foundry_fields(foundry, get_json_body())
    if not foundry.name:
        db.session.rollback()
        return jsonify({'error': 'Name cannot be empty'}), 400
    db.session.commit()
    return jsonify(foundry.to_dict()), 200


@bp.route('/<foundry_id>', methods=['DELETE'])
@require_admin_feature('forge:tickets')
def delete_foundry(foundry_id):
    foundry = get_or_404(ForgeFoundry, foundry_id, 'Foundry not found')
    if foundry.features.count():
        return jsonify({
            'error': 'Cannot delete foundry with existing features. Delete or reassign features first.'
        }), 400
    db.session.delete(foundry)
    db.session.commit()
    return jsonify({'message': 'Foundry deleted'}), 200
