from flask import Blueprint, request, jsonify, current_app
from axori_api import db
from axori_api.models.user import User
from axori_api.models.portfolio import PortfolioMember
from axori_api.models.invitation import InvitationToken
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.audit import log_invitation_sent, log_invitation_accepted, log_permission_change
from axori_api.utils.email import send_invitation_email, is_email_configured
from axori_api.utils.helpers import get_or_404, utcnow
from axori_api.utils.invitations import (
    generate_invitation_token, validate_invitation_token, expire_invitation_token,
    revoke_invitation_token, get_pending_invitations, get_existing_invitation
)
from axori_api.utils.portfolio_access import require_portfolio_permission, get_membership
from axori_api.utils.permissions import validate_invitation, denial_status
from axori_api.utils.validation import get_json_body, normalize_email

bp = Blueprint('portfolio_members', __name__)


def invitation_with_inviter(invitation):
    data = invitation.to_dict()
    data['inviter'] = invitation.inviter.to_summary() if invitation.inviter else None
    return data


def get_portfolio_invitation(portfolio_id, invitation_id):
    invitation = get_or_404(InvitationToken, invitation_id, 'Invitation not found')
    if invitation.portfolio_id != portfolio_id:
        return None
    return invitation


@bp.route('/<portfolio_id>/invitations', methods=['POST'])
@require_portfolio_permission('invite_members')
def create_invitation(portfolio_id):
    """
    Invite someone to the portfolio by email
    ---
    tags:
      - Invitations
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - email
            properties:
              email:
                type: string
              role:
                type: string
                enum: [admin, member, viewer]
                default: member
              property_access:
                type: object
                nullable: true
    responses:
      201:
        description: Invitation created; email_sent reports delivery
      403:
        description: Role cannot grant the requested access
      409:
        description: Already a member, or a pending invitation exists
    """
    actor = get_authenticated_user()
    portfolio = request.portfolio
    data = get_json_body()
    email = normalize_email(data.get('email'))
    role = data.get('role', 'member')
    property_access = data.get('property_access')

    allowed, error, code = validate_invitation(request.membership.role, role, property_access)
    if not allowed:
        return jsonify({'error': error, 'code': code}), denial_status(code)

    existing_user = User.query.filter_by(email=email).first()
    if existing_user and get_membership(existing_user.id, portfolio.id):
        return jsonify({'error': 'This user is already a member of the portfolio'}), 409

    existing = get_existing_invitation(portfolio.id, email)
    if existing:
        db.session.commit()
        return jsonify({
            'error': 'An invitation has already been sent to this email',
            'existing_invitation': existing.to_dict()
        }), 409

    token, invitation, expires_at = generate_invitation_token(
        portfolio.id, email, actor.id, role=role, property_access=property_access,
        expiration_days=current_app.config.get('INVITATION_EXPIRATION_DAYS', 7)
    )
    log_invitation_sent(portfolio.id, invitation, actor.id)
    db.session.commit()

    email_sent, email_error = send_invitation_email(
        email, token, portfolio.name, actor.display_name, role, expires_at
    )

    body = {
        'message': 'Invitation created',
        'invitation': invitation.to_dict(),
        'email_sent': email_sent,
        'email_configured': is_email_configured()
    }
    if email_error:
        body['email_error'] = email_error
    return jsonify(body), 201


@bp.route('/<portfolio_id>/invitations', methods=['GET'])
@require_portfolio_permission('invite_members')
def list_invitations(portfolio_id):
    invitations = get_pending_invitations(request.portfolio.id)
    return jsonify([invitation_with_inviter(invitation) for invitation in invitations]), 200


@bp.route('/<portfolio_id>/invitations/<invitation_id>', methods=['DELETE'])
@require_portfolio_permission('invite_members')
def revoke_invitation(portfolio_id, invitation_id):
    actor = get_authenticated_user()
    invitation = get_portfolio_invitation(request.portfolio.id, invitation_id)
    if invitation is None or not revoke_invitation_token(invitation.token):
        return jsonify({'error': 'Pending invitation not found'}), 404

    log_permission_change(request.portfolio.id, None, 'invitation_revoked', actor.id,
                          old_value={'invitation_id': str(invitation.id), 'email': invitation.email})
    db.session.commit()
    return jsonify({'message': 'Invitation revoked'}), 200


@bp.route('/<portfolio_id>/resend-invitation/<invitation_id>', methods=['POST'])
@require_portfolio_permission('invite_members')
def resend_invitation(portfolio_id, invitation_id):
    """Send the email again for a live pending invitation"""
    actor = get_authenticated_user()
    invitation = get_portfolio_invitation(request.portfolio.id, invitation_id)
    if invitation is None or invitation.status != 'pending' or invitation.expires_at < utcnow():
        return jsonify({'error': 'Pending invitation not found'}), 404

    email_sent, email_error = send_invitation_email(
        invitation.email, invitation.token, request.portfolio.name,
        actor.display_name, invitation.role, invitation.expires_at
    )
    if not email_sent:
        return jsonify({'error': 'Failed to send invitation email', 'email_error': email_error}), 502
    return jsonify({'message': 'Invitation resent', 'invitation': invitation.to_dict()}), 200


@bp.route('/accept-invitation', methods=['POST'])
@require_auth
def accept_invitation():
    """
    Redeem an invitation token and join the portfolio
    ---
    tags:
      - Invitations
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - token
            properties:
              token:
                type: string
    responses:
      200:
        description: Joined the portfolio
      400:
        description: Invalid, used, expired or revoked token
      409:
        description: Already a member, or the token was just used
    """
    user = get_authenticated_user()
    data = get_json_body()
    token = data.get('token')

    valid, error, invitation = validate_invitation_token(token)
    if not valid:
        return jsonify({'error': error}), 400

    if get_membership(user.id, invitation.portfolio_id):
        expire_invitation_token(token, user.id)
        db.session.commit()
        return jsonify({'error': 'You are already a member of this portfolio'}), 409

    if expire_invitation_token(token, user.id) is None:
        db.session.rollback()
        return jsonify({'error': 'This invitation has already been used'}), 409

    now = utcnow()
    membership = PortfolioMember(
        portfolio_id=invitation.portfolio_id,
        user_id=user.id,
        role=invitation.role,
        property_access=invitation.property_access,
        invited_by=invitation.invited_by,
        invited_at=invitation.created_at,
        accepted_at=now
    )
    db.session.add(membership)
    log_invitation_accepted(invitation.portfolio_id, user.id, invitation)
    db.session.commit()

    if invitation.email != user.email:
        current_app.logger.warning(
            f"Invitation {invitation.id} for {invitation.email} accepted by {user.email}"
        )
    current_app.logger.info(f"{user.email} joined portfolio {invitation.portfolio_id} as {invitation.role}")
    return jsonify({
        'message': 'Successfully joined the portfolio',
        'membership': membership.to_dict(),
        'portfolio': invitation.portfolio.to_dict()
    }), 200


@bp.route('/validate-invitation', methods=['GET'])
def check_invitation():
    """Public preview of an invitation for the accept page"""
    token = request.args.get('token')
    if not token:
        return jsonify({'error': 'Token is required'}), 400

    valid, error, invitation = validate_invitation_token(token)
    if not valid:
        return jsonify({'valid': False, 'error': error}), 200

    inviter = invitation.inviter
    return jsonify({
        'valid': True,
        'invitation': {
            'email': invitation.email,
            'role': invitation.role,
            'expires_at': invitation.expires_at.isoformat(),
            'created_at': invitation.created_at.isoformat() if invitation.created_at else None
        },
        'portfolio': {
            'id': str(invitation.portfolio.id),
            'name': invitation.portfolio.name
        },
        'inviter': {
            'name': inviter.display_name,
            'email': inviter.email
        } if inviter else None
    }), 200
