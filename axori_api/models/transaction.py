from axori_api import db
from axori_api.models.types import GUID, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, to_float, str_or_none

TRANSACTION_TYPES = ('income', 'expense', 'capital')

INCOME_CATEGORIES = (
    'rent', 'parking', 'laundry', 'pet_rent', 'storage',
    'utility_reimbursement', 'late_fees', 'application_fees'
)
EXPENSE_CATEGORIES = (
    'acquisition', 'property_tax', 'insurance', 'hoa', 'management', 'repairs',
    'maintenance', 'capex', 'utilities', 'legal', 'accounting', 'marketing',
    'travel', 'office', 'bank_fees', 'licenses'
)
TRANSACTION_CATEGORIES = INCOME_CATEGORIES + EXPENSE_CATEGORIES + ('other',)

REVIEW_STATUSES = ('pending', 'approved', 'flagged', 'excluded')
RECURRENCE_FREQUENCIES = ('monthly', 'quarterly', 'annual')


class PropertyTransaction(db.Model):
    """Income, expense or capital line item for a property"""
    __tablename__ = 'property_transactions'

    id = uuid_pk()
    property_id = db.Column(GUID, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True)

    type = db.Column(db.Enum(*TRANSACTION_TYPES, name='transaction_type_enum'), nullable=False)
    transaction_date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category = db.Column(db.Enum(*TRANSACTION_CATEGORIES, name='transaction_category_enum'), nullable=False)
    subcategory = db.Column(db.String(100))

    vendor = db.Column(db.String(255))
    payer = db.Column(db.String(255))
    description = db.Column(db.Text)

    is_recurring = db.Column(db.Boolean, default=False)
    recurrence_frequency = db.Column(db.String(20))
    is_tax_deductible = db.Column(db.Boolean, default=True)
    tax_category = db.Column(db.String(100))

    document_id = db.Column(GUID, db.ForeignKey('property_documents.id', ondelete='SET NULL'))
    source = db.Column(db.String(50), default='manual')
    notes = db.Column(db.Text)

    review_status = db.Column(db.Enum(*REVIEW_STATUSES, name='review_status_enum'), default='pending')
    is_excluded = db.Column(db.Boolean, default=False)
    reviewed_by = db.Column(GUID, db.ForeignKey('users.id'))
    reviewed_at = db.Column(db.DateTime)

    created_by = db.Column(GUID, db.ForeignKey('users.id'))
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': str(self.id),
            'property_id': str(self.property_id),
            'type': self.type,
            'transaction_date': isoformat(self.transaction_date),
            'amount': to_float(self.amount),
            'category': self.category,
            'subcategory': self.subcategory,
            'vendor': self.vendor,
            'payer': self.payer,
            'description': self.description,
            'is_recurring': self.is_recurring,
            'recurrence_frequency': self.recurrence_frequency,
            'is_tax_deductible': self.is_tax_deductible,
            'tax_category': self.tax_category,
            'document_id': str_or_none(self.document_id),
            'source': self.source,
            'notes': self.notes,
            'review_status': self.review_status,
            'is_excluded': self.is_excluded,
            'reviewed_by': str_or_none(self.reviewed_by),
            'reviewed_at': isoformat(self.reviewed_at),
            'created_by': str_or_none(self.created_by),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<PropertyTransaction {self.type} {self.amount}>'
