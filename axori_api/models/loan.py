from axori_api import db
from axori_api.models.types import GUID, uuid_pk
from axori_api.utils.helpers import utcnow, isoformat, to_float

LOAN_STATUSES = ('active', 'paid_off', 'refinanced')
LOAN_TYPES = ('conventional', 'fha', 'va', 'usda', 'dscr', 'portfolio', 'hard_money', 'heloc', 'seller_financed', 'other')


class Loan(db.Model):
    """Mortgage or other debt secured by a property"""
    __tablename__ = 'loans'

    id = uuid_pk()
    property_id = db.Column(GUID, db.ForeignKey('properties.id', ondelete='CASCADE'), nullable=False, index=True)

    status = db.Column(db.Enum(*LOAN_STATUSES, name='loan_status_enum'), nullable=False, default='active')
    is_primary = db.Column(db.Boolean, default=True)
    loan_position = db.Column(db.Integer, default=1)

    lender_name = db.Column(db.String(255), nullable=False)
    servicer_name = db.Column(db.String(255))
    loan_number = db.Column(db.String(100))
    loan_type = db.Column(db.String(50), default='conventional')

    original_loan_amount = db.Column(db.Numeric(14, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(8, 6), nullable=False)  # decimal fraction, 0.065 = 6.5%
    term_months = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date)
    maturity_date = db.Column(db.Date)

    current_balance = db.Column(db.Numeric(14, 2))
    monthly_principal_interest = db.Column(db.Numeric(12, 2))
    monthly_escrow = db.Column(db.Numeric(12, 2))
    monthly_pmi = db.Column(db.Numeric(12, 2))
    total_monthly_payment = db.Column(db.Numeric(12, 2))

    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    UPDATABLE_FIELDS = (
        'status', 'is_primary', 'loan_position', 'lender_name', 'servicer_name', 'loan_number',
        'loan_type', 'original_loan_amount', 'interest_rate', 'term_months', 'start_date',
        'maturity_date', 'current_balance', 'monthly_principal_interest', 'monthly_escrow',
        'monthly_pmi', 'total_monthly_payment', 'notes'
    )

    def to_dict(self):
        return {
            'id': str(self.id),
            'property_id': str(self.property_id),
            'status': self.status,
            'is_primary': self.is_primary,
            'loan_position': self.loan_position,
            'lender_name': self.lender_name,
            'servicer_name': self.servicer_name,
            'loan_number': self.loan_number,
            'loan_type': self.loan_type,
            'original_loan_amount': to_float(self.original_loan_amount),
            'interest_rate': to_float(self.interest_rate),
            'term_months': self.term_months,
            'start_date': isoformat(self.start_date),
            'maturity_date': isoformat(self.maturity_date),
            'current_balance': to_float(self.current_balance),
            'monthly_principal_interest': to_float(self.monthly_principal_interest),
            'monthly_escrow': to_float(self.monthly_escrow),
            'monthly_pmi': to_float(self.monthly_pmi),
            'total_monthly_payment': to_float(self.total_monthly_payment),
            'notes': self.notes,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }

    def __repr__(self):
        return f'<Loan {self.lender_name} {self.original_loan_amount}>'
