from flask import Blueprint, jsonify

from axori_api.utils.agent_protocols import PROTOCOLS, SUGGESTION_REASONS, protocol_to_dict, suggest_protocol
from axori_api.utils.auth import require_admin_feature
from axori_api.utils.errors import ApiError, NotFoundError
from axori_api.utils.validation import get_json_body, require_fields, parse_string_list

bp = Blueprint('forge_agents', __name__)


@bp.route('/protocols', methods=['GET'])
@require_admin_feature('forge:agents')
def list_protocols():
    return jsonify([protocol_to_dict(protocol_id) for protocol_id in PROTOCOLS]), 200


@bp.route('/protocols/<protocol_id>', methods=['GET'])
@require_admin_feature('forge:agents')
def get_protocol(protocol_id):
    if protocol_id not in PROTOCOLS:
        raise NotFoundError('Protocol not found')
    return jsonify(protocol_to_dict(protocol_id)), 200


@bp.route('/suggest', methods=['POST'])
@require_admin_feature('forge:agents')
def suggest():
    """
    Suggest an agent protocol for a ticket's type, estimate and labels
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
              - type
            properties:
              type:
                type: string
              estimate:
                type: number
                nullable: true
              labels:
                type: array
                nullable: true
                items:
                  type: string
    responses:
      200:
        description: The suggested protocol and why it was picked
      400:
        description: Validation failed
    """
    data = get_json_body()
    require_fields(data, 'type')
    if not isinstance(data['type'], str):
        raise ApiError('Validation failed', 400, {'type': 'Must be a string'})
    estimate = data.get('estimate')
    if estimate is not None and (isinstance(estimate, bool) or not isinstance(estimate, (int, float))):
        raise ApiError('Validation failed', 400, {'estimate': 'Must be a number'})
    labels = parse_string_list(data.get('labels'), 'labels')

    protocol_id = suggest_protocol(data['type'], estimate, labels)
    return jsonify({
        'protocol_id': protocol_id,
        'protocol': protocol_to_dict(protocol_id),
        'reason': SUGGESTION_REASONS[protocol_id]
    }), 200
