from flask import Blueprint, jsonify
from axori_api.models.portfolio import Portfolio
from axori_api.models.property import Property
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.errors import ApiError
from axori_api.utils.helpers import get_or_404
from axori_api.utils.portfolio_access import get_membership
from axori_api.utils.permissions import (
    build_permission_check_result, build_property_permission_check_result,
    get_allowed_portfolio_actions, get_role_label, get_role_description
)
from axori_api.utils.validation import parse_uuid

bp = Blueprint('permissions', __name__)


def build_portfolio_permissions(user, portfolio):
    membership = get_membership(user.id, portfolio.id)
    if not membership:
        return jsonify({'error': 'You are not a member of this portfolio'}), 403
    return jsonify({
        'portfolio_id': str(portfolio.id),
        'user_id': str(user.id),
        'role': membership.role,
        'role_label': get_role_label(membership.role),
        'role_description': get_role_description(membership.role),
        'property_access': membership.property_access,
        'permissions': build_permission_check_result(membership.role, membership.property_access),
        'allowed_actions': get_allowed_portfolio_actions(membership.role)
    }), 200


@bp.route('/<portfolio_id>', methods=['GET'])
@require_auth
def get_portfolio_permissions(portfolio_id):
    """
    Effective permissions of the caller in a portfolio
    ---
    tags:
      - Permissions
    parameters:
      - in: path
        name: portfolio_id
        required: true
        schema:
          type: string
          format: uuid
    security:
      - Bearer: []
    responses:
      200:
        description: Role, property access and allowed actions
      400:
        description: Invalid portfolio id
      403:
        description: Not a member
      404:
        description: Portfolio not found
    """
    user = get_authenticated_user()
    portfolio = get_or_404(Portfolio, parse_uuid(portfolio_id, 'portfolio ID'), 'Portfolio not found')
    return build_portfolio_permissions(user, portfolio)


@bp.route('/<portfolio_id>/property/<property_id>', methods=['GET'])
@require_auth
def get_property_permissions(portfolio_id, property_id):
    """Effective permissions of the caller on one property"""
    user = get_authenticated_user()
    portfolio_key = parse_uuid(portfolio_id, 'portfolio ID')
    property = get_or_404(Property, parse_uuid(property_id, 'property ID'), 'Property not found')
    if property.portfolio_id != portfolio_key:
        raise ApiError('Property not found', 404)

    membership = get_membership(user.id, portfolio_key)
    if not membership:
        return jsonify({'error': 'You are not a member of this portfolio'}), 403

    result = build_property_permission_check_result(membership.role, membership.property_access, property.id)
    if not result['can_view']:
        return jsonify({'error': 'You do not have access to this property'}), 403

    return jsonify({
        'portfolio_id': str(portfolio_key),
        'property_id': str(property.id),
        'role': membership.role,
        'can_view': result['can_view'],
        'can_edit': result['can_edit'],
        'can_manage': result['can_manage'],
        'can_delete': result['can_delete'],
        'all': result['permissions']
    }), 200
