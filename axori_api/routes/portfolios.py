from flask import Blueprint, request, jsonify, current_app
from axori_api import db
from axori_api.models.user import User
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.models.audit_log import PermissionAuditLog
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.audit import log_role_change, log_access_revoked, log_permission_change
from axori_api.utils.helpers import get_or_404, utcnow, paginate_query
from axori_api.utils.portfolio_access import require_portfolio_permission, get_membership
from axori_api.utils.permissions import (
    validate_role_change, validate_member_removal, validate_invitation,
    validate_property_access_update, can_manage_role, denial_status
)
from axori_api.utils.validation import get_json_body, normalize_email, parse_uuid

bp = Blueprint('portfolios', __name__)


def permission_denied(error, code):
    return jsonify({'error': error, 'code': code}), denial_status(code)


def get_member_or_404(portfolio_id, member_id):
    member = get_or_404(PortfolioMember, member_id, 'Member not found')
    if member.portfolio_id != portfolio_id:
        return None
    return member


@bp.route('/', methods=['GET'])
@require_auth
def list_portfolios():
    """Portfolios the caller belongs to, with their role"""
    user = get_authenticated_user()
    memberships = user.memberships.order_by(PortfolioMember.created_at).all()
    return jsonify([
        dict(m.portfolio.to_dict(), role=m.role, member_count=m.portfolio.members.count())
        for m in memberships
    ]), 200


@bp.route('/<portfolio_id>', methods=['GET'])
@require_portfolio_permission('view_portfolio')
def get_portfolio(portfolio_id):
    """Get portfolio by ID"""
    portfolio = request.portfolio
    return jsonify(dict(
        portfolio.to_dict(),
        role=request.membership.role,
        member_count=portfolio.members.count(),
        property_count=portfolio.properties.filter_by(status='active').count()
    )), 200


@bp.route('/', methods=['POST'])
@require_auth
def create_portfolio():
    """
    Create a portfolio owned by the caller
    ---
    tags:
      - Portfolios
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - name
            properties:
              name:
                type: string
              description:
                type: string
    responses:
      201:
        description: Portfolio created
      400:
        description: Missing name
    """
    user = get_authenticated_user()
    data = get_json_body()
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Portfolio name is required'}), 400

    portfolio = Portfolio(name=name, description=data.get('description'), created_by=user.id)
    db.session.add(portfolio)
    db.session.flush()
    now = utcnow()
    db.session.add(PortfolioMember(
        portfolio_id=portfolio.id, user_id=user.id, role='owner', invited_at=now, accepted_at=now
    ))
    db.session.commit()
    return jsonify(dict(portfolio.to_dict(), role='owner')), 201


@bp.route('/<portfolio_id>', methods=['PUT'])
@require_portfolio_permission('edit_portfolio')
def update_portfolio(portfolio_id):
    """Update portfolio name/description"""
    portfolio = request.portfolio
    data = get_json_body()
    if 'name' in data:
        name = (data['name'] or '').strip()
        if not name:
            return jsonify({'error': 'Portfolio name cannot be empty'}), 400
        portfolio.name = name
    if 'description' in data:
        portfolio.description = data['description']
    db.session.commit()
    return jsonify(portfolio.to_dict()), 200


@bp.route('/<portfolio_id>', methods=['DELETE'])
@require_portfolio_permission('delete_portfolio')
def delete_portfolio(portfolio_id):
    """Delete a portfolio with its properties and memberships (owner only)"""
    portfolio = request.portfolio
    db.session.delete(portfolio)
    db.session.commit()
    current_app.logger.info(f"Portfolio {portfolio_id} deleted by {request.current_user['email']}")
    return jsonify({'message': 'Portfolio deleted'}), 200


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@bp.route('/<portfolio_id>/members', methods=['GET'])
@require_portfolio_permission('view_portfolio')
def list_members(portfolio_id):
    members = request.portfolio.members.order_by(PortfolioMember.created_at).all()
    return jsonify([member.to_dict(include_user=True) for member in members]), 200


@bp.route('/<portfolio_id>/members/<member_id>', methods=['GET'])
@require_portfolio_permission('view_portfolio')
def get_member(portfolio_id, member_id):
    member = get_member_or_404(request.portfolio.id, member_id)
    if member is None:
        return jsonify({'error': 'Member not found'}), 404
    return jsonify(member.to_dict(include_user=True)), 200


@bp.route('/<portfolio_id>/members', methods=['POST'])
@require_portfolio_permission('invite_members')
def add_member(portfolio_id):
    """Add an existing user directly by email"""
    actor = get_authenticated_user()
    data = get_json_body()
    email = normalize_email(data.get('email'))
    role = data.get('role', 'member')
    property_access = data.get('property_access')

    allowed, error, code = validate_invitation(request.membership.role, role, property_access)
    if not allowed:
        return permission_denied(error, code)

    user = User.query.filter_by(email=email).first()
    if not user:
        return jsonify({'error': 'No user with that email. Send an invitation instead.'}), 404
    if get_membership(user.id, request.portfolio.id):
        return jsonify({'error': 'User is already a member of this portfolio'}), 409

    now = utcnow()
    member = PortfolioMember(
        portfolio_id=request.portfolio.id,
        user_id=user.id,
        role=role,
        property_access=property_access,
        invited_by=actor.id,
        invited_at=now,
        accepted_at=now
    )
    db.session.add(member)
    log_permission_change(request.portfolio.id, user.id, 'member_added', actor.id,
                          new_value={'role': role, 'property_access': property_access})
    db.session.commit()
    return jsonify(member.to_dict(include_user=True)), 201


@bp.route('/<portfolio_id>/members/<member_id>', methods=['PUT'])
@require_portfolio_permission('change_member_roles')
def update_member(portfolio_id, member_id):
    """
    Change a member's role and/or property access
    ---
    tags:
      - Portfolios
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            properties:
              role:
                type: string
                enum: [admin, member, viewer]
              property_access:
                type: object
                nullable: true
    responses:
      200:
        description: Member updated
      403:
        description: Blocked by a security rule (code in body)
      404:
        description: Member not found
    """
    actor = get_authenticated_user()
    member = get_member_or_404(request.portfolio.id, member_id)
    if member is None:
        return jsonify({'error': 'Member not found'}), 404

    data = get_json_body()
    new_role = data.get('role', member.role)
    new_access = data['property_access'] if 'property_access' in data else member.property_access

    allowed, error, code = validate_role_change(
        actor.id, request.membership.role, member.user_id, member.role, new_role, new_access
    )
    if not allowed:
        return permission_denied(error, code)

    old_role, old_access = member.role, member.property_access
    member.role = new_role
    member.property_access = new_access
    log_role_change(request.portfolio.id, member.user_id, actor.id, old_role, new_role, old_access, new_access)
    db.session.commit()
    return jsonify(member.to_dict(include_user=True)), 200


@bp.route('/<portfolio_id>/members/<member_id>/property-access', methods=['PUT'])
@require_portfolio_permission('invite_members')
def update_member_property_access(portfolio_id, member_id):
    """Restrict or widen which properties a member can see"""
    actor = get_authenticated_user()
    member = get_member_or_404(request.portfolio.id, member_id)
    if member is None:
        return jsonify({'error': 'Member not found'}), 404

    data = get_json_body()
    if 'property_access' not in data:
        return jsonify({'error': 'property_access is required (null for full access)'}), 400
    new_access = data['property_access']

    allowed, error, code = validate_property_access_update(
        actor.id, request.membership.role, member.user_id, member.role, new_access
    )
    if not allowed:
        return permission_denied(error, code)

    old_access = member.property_access
    member.property_access = new_access
    log_permission_change(request.portfolio.id, member.user_id, 'property_access_change', actor.id,
                          old_value={'property_access': old_access},
                          new_value={'property_access': new_access})
    db.session.commit()
    return jsonify(member.to_dict(include_user=True)), 200


@bp.route('/<portfolio_id>/members/<member_id>', methods=['DELETE'])
@require_portfolio_permission('remove_members')
def remove_member(portfolio_id, member_id):
    actor = get_authenticated_user()
    member = get_member_or_404(request.portfolio.id, member_id)
    if member is None:
        return jsonify({'error': 'Member not found'}), 404

    allowed, error, code = validate_member_removal(actor.id, request.membership.role, member.user_id, member.role)
    if not allowed:
        return permission_denied(error, code)

    log_access_revoked(request.portfolio.id, member, actor.id)
    db.session.delete(member)
    db.session.commit()
    return jsonify({'message': 'Member removed'}), 200


@bp.route('/<portfolio_id>/permissions', methods=['GET'])
@require_portfolio_permission()
def get_my_role(portfolio_id):
    membership = request.membership
    return jsonify({
        'portfolio_id': str(request.portfolio.id),
        'role': membership.role,
        'property_access': membership.property_access,
        'assignable_roles': [r for r in ('admin', 'member', 'viewer') if can_manage_role(membership.role, r)]
    }), 200


@bp.route('/<portfolio_id>/leave', methods=['POST'])
@require_portfolio_permission()
def leave_portfolio(portfolio_id):
    membership = request.membership
    if membership.role == 'owner':
        return jsonify({
            'error': 'Owners cannot leave. Transfer ownership first or delete the portfolio.'
        }), 403
    log_access_revoked(request.portfolio.id, membership, membership.user_id)
    db.session.delete(membership)
    db.session.commit()
    return jsonify({'message': 'You have left the portfolio'}), 200


@bp.route('/<portfolio_id>/transfer-ownership', methods=['POST'])
@require_portfolio_permission(minimum_role='owner')
def transfer_ownership(portfolio_id):
    """
    Make another member the owner; the current owner becomes an admin
    ---
    tags:
      - Portfolios
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - new_owner_id
            properties:
              new_owner_id:
                type: string
                format: uuid
    responses:
      200:
        description: Ownership transferred
      400:
        description: New owner is not a member
      403:
        description: Caller is not the owner
    """
    actor = get_authenticated_user()
    data = get_json_body()
    if not data.get('new_owner_id'):
        return jsonify({'error': 'new_owner_id is required'}), 400
    new_owner_id = parse_uuid(data['new_owner_id'], 'new_owner_id')
    if new_owner_id == actor.id:
        return jsonify({'error': 'You already own this portfolio'}), 400

    new_owner = get_membership(new_owner_id, request.portfolio.id)
    if not new_owner:
        return jsonify({'error': 'New owner must already be a member of this portfolio'}), 400

    old_owner = request.membership
    previous_role = new_owner.role
    old_owner.role = 'admin'
    old_owner.property_access = None
    new_owner.role = 'owner'
    new_owner.property_access = None
    request.portfolio.created_by = new_owner_id

    log_role_change(request.portfolio.id, actor.id, actor.id, 'owner', 'admin')
    log_role_change(request.portfolio.id, new_owner_id, actor.id, previous_role, 'owner')
    db.session.commit()
    current_app.logger.info(f"Portfolio {portfolio_id} ownership transferred to {new_owner_id}")
    return jsonify({
        'message': 'Ownership transferred',
        'portfolio': request.portfolio.to_dict(),
        'previous_owner': old_owner.to_dict(),
        'new_owner': new_owner.to_dict()
    }), 200


@bp.route('/<portfolio_id>/audit-log', methods=['GET'])
@require_portfolio_permission('view_audit_log')
def get_audit_log(portfolio_id):
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', 50, type=int)
    query = PermissionAuditLog.query.filter_by(portfolio_id=request.portfolio.id) \
        .order_by(PermissionAuditLog.created_at.desc())
    action = request.args.get('action')
    if action:
        query = query.filter_by(action=action)
    pagination = paginate_query(query, page, per_page)
    return jsonify({
        'entries': [entry.to_dict() for entry in pagination.items],
        'total': pagination.total,
        'page': pagination.page,
        'per_page': pagination.per_page,
        'pages': pagination.pages
    }), 200
