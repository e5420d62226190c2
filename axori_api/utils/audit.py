"""Permission audit trail helpers. Entries join the caller's transaction."""
from axori_api import db
from axori_api.models.audit_log import PermissionAuditLog


def log_permission_change(portfolio_id, user_id, action, changed_by, old_value=None, new_value=None):
    entry = PermissionAuditLog(
        portfolio_id=portfolio_id,
        user_id=user_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by
    )
    db.session.add(entry)
    return entry


def log_role_change(portfolio_id, user_id, changed_by, old_role, new_role,
                    old_property_access=None, new_property_access=None):
    return log_permission_change(
        portfolio_id, user_id, 'role_change', changed_by,
        old_value={'role': old_role, 'property_access': old_property_access},
        new_value={'role': new_role, 'property_access': new_property_access}
    )


def log_invitation_sent(portfolio_id, invitation, changed_by):
    return log_permission_change(
        portfolio_id, None, 'invitation_sent', changed_by,
        new_value={
            'invitation_id': str(invitation.id),
            'email': invitation.email,
            'role': invitation.role,
            'property_access': invitation.property_access
        }
    )


def log_invitation_accepted(portfolio_id, user_id, invitation):
    return log_permission_change(
        portfolio_id, user_id, 'invitation_accepted', user_id,
        new_value={
            'invitation_id': str(invitation.id),
            'role': invitation.role,
            'property_access': invitation.property_access
        }
    )


def log_access_revoked(portfolio_id, member, changed_by):
    return log_permission_change(
        portfolio_id, member.user_id, 'access_revoked', changed_by,
        old_value={'role': member.role, 'property_access': member.property_access}
    )
