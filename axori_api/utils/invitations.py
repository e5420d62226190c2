"""
Invitation token issuance and validation.

Tokens are 256 bits from ``secrets.token_urlsafe(32)``. A token is usable
once: consuming or revoking it is a conditional ``UPDATE ... WHERE
status = 'pending'`` so two concurrent accepts cannot both succeed.
"""
import logging
import secrets
from datetime import timedelta

from axori_api import db
from axori_api.models.invitation import InvitationToken
from axori_api.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_DAYS = 7

STATUS_ERRORS = {
    'accepted': 'This invitation has already been used',
    'expired': 'This invitation has expired',
    'revoked': 'This invitation has been revoked',
}


def normalize_invitation_email(email):
    return (email or '').strip().lower()


def generate_invitation_token(portfolio_id, email, invited_by, role='member',
                              property_access=None, expiration_days=DEFAULT_EXPIRATION_DAYS):
    """Create a pending invitation; returns ``(token, invitation, expires_at)``.

    The caller commits the session.
    """
    token = secrets.token_urlsafe(32)
    expires_at = utcnow() + timedelta(days=expiration_days)
    invitation = InvitationToken(
        token=token,
        portfolio_id=portfolio_id,
        email=normalize_invitation_email(email),
        role=role,
        property_access=property_access,
        invited_by=invited_by,
        expires_at=expires_at,
        status='pending'
    )
    db.session.add(invitation)
    db.session.flush()
    logger.info(f"Issued invitation {invitation.id} for {invitation.email} to portfolio {portfolio_id}")
    return token, invitation, expires_at


def validate_invitation_token(token):
    """Return ``(valid, error, invitation)``; stale pending rows are marked expired"""
    if not token:
        return False, 'Invalid invitation token', None

    invitation = InvitationToken.query.filter_by(token=token).first()
    if not invitation:
        return False, 'Invalid invitation token', None

    if invitation.status != 'pending':
        return False, STATUS_ERRORS.get(invitation.status, 'Invalid invitation token'), invitation

    if invitation.expires_at < utcnow():
        invitation.status = 'expired'
        db.session.commit()
        return False, STATUS_ERRORS['expired'], invitation

    return True, None, invitation


def _transition_pending(token, values):
    updated = InvitationToken.query.filter_by(token=token, status='pending').update(
        values, synchronize_session=False
    )
    if not updated:
        return None
    invitation = InvitationToken.query.filter_by(token=token).first()
    db.session.refresh(invitation)
    return invitation


def expire_invitation_token(token, used_by):
    """Mark a pending token accepted; None when it was already consumed"""
    return _transition_pending(token, {
        'status': 'accepted',
        'used_at': utcnow(),
        'used_by': used_by
    })


def revoke_invitation_token(token):
    """Mark a pending token revoked; None when it is no longer pending"""
    return _transition_pending(token, {'status': 'revoked'})


def expire_stale_invitations(portfolio_id=None):
    query = InvitationToken.query.filter(
        InvitationToken.status == 'pending',
        InvitationToken.expires_at < utcnow()
    )
    if portfolio_id is not None:
        query = query.filter(InvitationToken.portfolio_id == portfolio_id)
    expired = query.update({'status': 'expired'}, synchronize_session=False)
    if expired:
        logger.info(f"Marked {expired} stale invitation(s) expired")
    return expired


def get_pending_invitations(portfolio_id):
    expire_stale_invitations(portfolio_id)
    db.session.commit()
    return InvitationToken.query.filter_by(portfolio_id=portfolio_id, status='pending') \
        .order_by(InvitationToken.created_at.desc()).all()


def get_existing_invitation(portfolio_id, email):
    """The live pending invitation for this address, if any"""
    expire_stale_invitations(portfolio_id)
    return InvitationToken.query.filter_by(
        portfolio_id=portfolio_id,
        email=normalize_invitation_email(email),
        status='pending'
    ).order_by(InvitationToken.created_at.desc()).first()
