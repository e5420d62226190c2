from axori_api import db
from axori_api.models.types import GUID, JSONType, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, str_or_none

COMMUNICATION_TYPES = (
    'email', 'phone_call', 'text_message', 'in_person', 'note', 'formal_notice', 'portal_message'
)
COMMUNICATION_DIRECTIONS = ('inbound', 'outbound', 'internal')
COMMUNICATION_CATEGORIES = (
    'maintenance', 'lease', 'payment', 'general', 'urgent', 'move_in_out',
    'inspection', 'violation', 'renewal'
)
COMMUNICATION_STATUSES = (
    'draft', 'sent', 'delivered', 'acknowledged', 'requires_response', 'resolved'
)
CONTACT_TYPES = (
    'tenant', 'property_manager', 'contractor', 'vendor', 'hoa_contact',
    'utility_company', 'emergency', 'other'
)
CONTACT_METHODS = ('email', 'phone', 'text', 'any')


class Communication(db.Model):
    """Logged interaction about a property (call, email, notice, note...)"""
    __tablename__ = 'property_communications'

    id = uuid_pk()
    property_id = db.Column(GUID, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True)

    type = db.Column(db.Enum(*COMMUNICATION_TYPES, name='communication_type_enum'), nullable=False)
    direction = db.Column(db.Enum(*COMMUNICATION_DIRECTIONS, name='communication_direction_enum'),
                          nullable=False, default='outbound')
    category = db.Column(db.Enum(*COMMUNICATION_CATEGORIES, name='communication_category_enum'),
                         nullable=False, default='general')
    status = db.Column(db.Enum(*COMMUNICATION_STATUSES, name='communication_status_enum'),
                       nullable=False, default='sent')

    subject = db.Column(db.String(255), nullable=False)
    summary = db.Column(db.Text)
    content = db.Column(db.Text)
    communication_date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    # Snapshot of who it was with, kept even if the contact is deleted
    contact_id = db.Column(GUID, db.ForeignKey('property_contacts.id', ondelete='SET NULL'))
    contact_name = db.Column(db.String(255))
    contact_email = db.Column(db.String(255))
    contact_phone = db.Column(db.String(50))
    contact_type = db.Column(db.String(50))

    transaction_id = db.Column(GUID, db.ForeignKey('property_transactions.id', ondelete='SET NULL'))
    delivery_method = db.Column(db.String(50))
    acknowledgment_required = db.Column(db.Boolean, default=False)
    acknowledged_at = db.Column(db.DateTime)

    attachment_urls = db.Column(JSONType, default=list)
    tags = db.Column(JSONType, default=list)
    is_pinned = db.Column(db.Boolean, default=False)

    created_by = db.Column(GUID, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    UPDATABLE_FIELDS = (
        'type', 'direction', 'category', 'status', 'subject', 'summary', 'content',
        'communication_date', 'contact_id', 'contact_name', 'contact_email', 'contact_phone',
        'contact_type', 'transaction_id', 'delivery_method', 'acknowledgment_required',
        'acknowledged_at', 'attachment_urls', 'tags', 'is_pinned'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'property_id': str(self.property_id),
            'type': self.type,
            'direction': self.direction,
            'category': self.category,
            'status': self.status,
            'subject': self.subject,
            'summary': self.summary,
            'content': self.content,
            'communication_date': isoformat(self.communication_date),
            'contact_id': str_or_none(self.contact_id),
            'contact_name': self.contact_name,
            'contact_email': self.contact_email,
            'contact_phone': self.contact_phone,
            'contact_type': self.contact_type,
            'transaction_id': str_or_none(self.transaction_id),
            'delivery_method': self.delivery_method,
            'acknowledgment_required': self.acknowledgment_required,
            'acknowledged_at': isoformat(self.acknowledged_at),
            'attachment_urls': self.attachment_urls or [],
            'tags': self.tags or [],
            'is_pinned': self.is_pinned,
            'created_by': str_or_none(self.created_by),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Communication {self.type} {self.subject}>'


class Contact(db.Model):
    """Person or company associated with a property"""
    __tablename__ = 'property_contacts'

    id = uuid_pk()
    property_id = db.Column(GUID, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255))
    type = db.Column(db.Enum(*CONTACT_TYPES, name='contact_type_enum'), nullable=False, default='other')
    role = db.Column(db.String(100))

    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    alternate_phone = db.Column(db.String(50))
    preferred_contact_method = db.Column(db.String(20))

    address = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(50))
    zip_code = db.Column(db.String(20))

    notes = db.Column(db.Text)
    hours_available = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True)
    is_primary = db.Column(db.Boolean, default=False)

    created_by = db.Column(GUID, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    UPDATABLE_FIELDS = (
        'name', 'company', 'type', 'role', 'email', 'phone', 'alternate_phone',
        'preferred_contact_method', 'address', 'city', 'state', 'zip_code', 'notes',
        'hours_available', 'is_active', 'is_primary'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'property_id': str(self.property_id),
            'name': self.name,
            'company': self.company,
            'type': self.type,
            'role': self.role,
            'email': self.email,
            'phone': self.phone,
            'alternate_phone': self.alternate_phone,
            'preferred_contact_method': self.preferred_contact_method,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'zip_code': self.zip_code,
            'notes': self.notes,
            'hours_available': self.hours_available,
            'is_active': self.is_active,
            'is_primary': self.is_primary,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Contact {self.name}>'


class CommunicationTemplate(db.Model):
    """Reusable message template owned by a user"""
    __tablename__ = 'communication_templates'

    id = uuid_pk()
    user_id = db.Column(GUID, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Enum(*COMMUNICATION_TYPES, name='template_type_enum'), nullable=False, default='email')
    category = db.Column(db.Enum(*COMMUNICATION_CATEGORIES, name='template_category_enum'),
                         nullable=False, default='general')
    subject = db.Column(db.String(255))
    body = db.Column(db.Text, nullable=False)
    variables = db.Column(JSONType, default=list)

    usage_count = db.Column(db.Integer, default=0)
    last_used_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    UPDATABLE_FIELDS = ('name', 'type', 'category', 'subject', 'body', 'variables')

    def to_dict(self):
        return {
            'id': str(self.id),
            'user_id': str(self.user_id),
            'name': self.name,
            'type': self.type,
            'category': self.category,
            'subject': self.subject,
            'body': self.body,
            'variables': self.variables or [],
            'usage_count': self.usage_count or 0,
            'last_used_at': isoformat(self.last_used_at),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<CommunicationTemplate {self.name}>'
