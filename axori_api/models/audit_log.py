from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat

AUDIT_ACTIONS = (
    'invitation_sent', 'invitation_accepted', 'invitation_revoked',
    'role_change', 'property_access_change', 'access_revoked', 'member_added'
)


class PermissionAuditLog(db.Model):
    """Append-only record of membership and permission changes"""
    __tablename__ = 'permission_audit_log'

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    portfolio_id = db.Column(GUID, db.ForeignKey('portfolios.id', ondelete='CASCADE'), nullable=False, index=True)
    action = db.Column(db.String(50), nullable=False)
    old_value = db.Column(JSONType)
    new_value = db.Column(JSONType)
    changed_by = db.Column(GUID, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': str(self.id),
            'user_id': str(self.user_id) if self.user_id else None,
            'portfolio_id': str(self.portfolio_id),
            'action': self.action,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'changed_by': str(self.changed_by),
            'created_at': isoformat(self.created_at)
        }

    def __repr__(self):
        return f'<PermissionAuditLog {self.action}>'
