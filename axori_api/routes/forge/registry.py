from flask import Blueprint, request, jsonify
from sqlalchemy import or_

from axori_api import db
from axori_api.models.forge_registry import ForgeRegistryItem, REGISTRY_TYPES, REGISTRY_STATUSES
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.helpers import get_or_404
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_optional_uuid, parse_string_list
)

bp = Blueprint('forge_registry', __name__)

LIST_FIELDS = ('exports', 'dependencies', 'used_by', 'tags', 'related_tickets')


def apply_registry_fields(item, data):
    for field in ForgeRegistryItem.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'type':
            value = validate_choice(value, REGISTRY_TYPES, 'type')
        elif field == 'status':
            value = validate_choice(value, REGISTRY_STATUSES, 'status')
        elif field in LIST_FIELDS:
            value = parse_string_list(value, field)
        elif field == 'deprecated_by':
            value = parse_optional_uuid(value, field)
        setattr(item, field, value)


@bp.route('/', methods=['GET'])
@require_admin_feature('forge:registry')
def list_registry():
    """
    Catalogue of components, hooks, tables and integrations
    ---
    tags:
      - Forge
    parameters:
      - in: query
        name: type
        schema:
          type: string
          enum: [component, hook, utility, api, table, integration]
      - in: query
        name: status
        schema:
          type: string
          enum: [active, deprecated, planned]
      - in: query
        name: search
        schema:
          type: string
    security:
      - Bearer: []
    responses:
      200:
        description: Items, most recently updated first
    """
    query = ForgeRegistryItem.query
    if request.args.get('type'):
        query = query.filter_by(type=validate_choice(request.args['type'], REGISTRY_TYPES, 'type'))
    if request.args.get('status'):
        query = query.filter_by(status=validate_choice(request.args['status'], REGISTRY_STATUSES, 'status'))
    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f'%{search}%'
        query = query.filter(or_(
            ForgeRegistryItem.name.ilike(pattern),
            ForgeRegistryItem.description.ilike(pattern),
            ForgeRegistryItem.file_path.ilike(pattern)
        ))
    items = query.order_by(ForgeRegistryItem.last_updated.desc()).all()
    return jsonify([item.to_dict() for item in items]), 200


@bp.route('/<item_id>', methods=['GET'])
@require_admin_feature('forge:registry')
def get_registry_item(item_id):
    return jsonify(get_or_404(ForgeRegistryItem, item_id, 'Registry item not found').to_dict()), 200


@bp.route('/', methods=['POST'])
@require_admin_feature('forge:registry')
def create_registry_item():
    data = get_json_body()
    require_fields(data, 'type', 'name')
    item = ForgeRegistryItem(status='active')
    apply_registry_fields(item, data)
    db.session.add(item)
    db.session.commit()
    return jsonify(item.to_dict()), 201


@bp.route('/<item_id>', methods=['PUT'])
@require_admin_feature('forge:registry')
def update_registry_item(item_id):
    item = get_or_404(ForgeRegistryItem, item_id, 'Registry item not found')
    apply_registry_fields(item, get_json_body())
    if not item.name:
        db.session.rollback()
        return jsonify({'error': 'Name cannot be empty'}), 400
    db.session.commit()
    return jsonify(item.to_dict()), 200


@bp.route('/<item_id>/deprecate', methods=['POST'])
@require_admin_feature('forge:registry')
def deprecate_registry_item(item_id):
    """Mark an item deprecated, optionally pointing at its replacement"""
    item = get_or_404(ForgeRegistryItem, item_id, 'Registry item not found')
    data = request.get_json(silent=True) or {}

    replacement_id = parse_optional_uuid(data.get('deprecated_by'), 'deprecated_by')
    if replacement_id is not None:
        if replacement_id == item.id:
            return jsonify({'error': 'An item cannot replace itself'}), 400
        get_or_404(ForgeRegistryItem, replacement_id, 'Replacement item not found')
        item.deprecated_by = replacement_id
    if data.get('notes') or data.get('deprecation_notes'):
        item.deprecation_notes = data.get('notes') or data.get('deprecation_notes')
    item.status = 'deprecated'
    db.session.commit()
    return jsonify(item.to_dict()), 200


@bp.route('/<item_id>', methods=['DELETE'])
@require_admin_feature('forge:registry')
def delete_registry_item(item_id):
    item = get_or_404(ForgeRegistryItem, item_id, 'Registry item not found')
    ForgeRegistryItem.query.filter_by(deprecated_by=item.id).update({'deprecated_by': None})
    db.session.delete(item)
    db.session.commit()
    return jsonify({'message': 'Registry item deleted'}), 200
