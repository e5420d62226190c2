from flask import Blueprint, request, jsonify
from axori_api import db
from axori_api.models.loan import Loan, LOAN_STATUSES
from axori_api.utils.finances import calculate_monthly_principal_interest
from axori_api.utils.helpers import get_or_404
from axori_api.utils.portfolio_access import require_property_permission
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_date, parse_decimal, parse_int
)

bp = Blueprint('loans', __name__)

MONEY_FIELDS = (
    'original_loan_amount', 'current_balance', 'monthly_principal_interest',
    'monthly_escrow', 'monthly_pmi', 'total_monthly_payment'
)

REQUIRED_FIELDS = ('lender_name', 'original_loan_amount', 'interest_rate', 'term_months')


def apply_loan_fields(loan, data):
    require_fields(data, *[field for field in REQUIRED_FIELDS if field in data])
    for field in Loan.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in MONEY_FIELDS:
            value = parse_decimal(value, field, minimum=0)
        elif field == 'interest_rate':
            value = parse_decimal(value, field, minimum=0)
            if value is not None and value >= 1:
                # Accept 6.5 as 6.5%
                value = value / 100
        elif field in ('term_months', 'loan_position'):
            value = parse_int(value, field, minimum=1)
        elif field in ('start_date', 'maturity_date'):
            value = parse_date(value, field)
        elif field == 'status':
            value = validate_choice(value, LOAN_STATUSES, 'status')
        elif field == 'is_primary':
            value = bool(value)
        setattr(loan, field, value)


def get_property_loan(property_id, loan_id):
    loan = get_or_404(Loan, loan_id, 'Loan not found')
    if loan.property_id != property_id:
        return None
    return loan


@bp.route('/', methods=['GET'])
@require_property_permission('view')
def list_loans(property_id):
    loans = Loan.query.filter_by(property_id=request.property.id) \
        .order_by(Loan.is_primary.desc(), Loan.loan_position, Loan.created_at).all()
    return jsonify([loan.to_dict() for loan in loans]), 200


@bp.route('/', methods=['POST'])
@require_property_permission('manage')
def create_loan(property_id):
    """Add a loan; monthly P&I is amortised when not supplied"""
    data = get_json_body()
    require_fields(data, *REQUIRED_FIELDS)

    loan = Loan(property_id=request.property.id)
    apply_loan_fields(loan, data)
    if loan.current_balance is None:
        loan.current_balance = loan.original_loan_amount
    if loan.monthly_principal_interest is None:
        loan.monthly_principal_interest = calculate_monthly_principal_interest(
            loan.original_loan_amount, loan.interest_rate * 100, loan.term_months
        )
    db.session.add(loan)
    db.session.commit()
    return jsonify(loan.to_dict()), 201


@bp.route('/<loan_id>', methods=['PUT'])
@require_property_permission('manage')
def update_loan(property_id, loan_id):
    loan = get_property_loan(request.property.id, loan_id)
    if loan is None:
        return jsonify({'error': 'Loan not found'}), 404
    apply_loan_fields(loan, get_json_body())
    db.session.commit()
    return jsonify(loan.to_dict()), 200


@bp.route('/<loan_id>', methods=['DELETE'])
@require_property_permission('manage')
def delete_loan(property_id, loan_id):
    loan = get_property_loan(request.property.id, loan_id)
    if loan is None:
        return jsonify({'error': 'Loan not found'}), 404
    db.session.delete(loan)
    db.session.commit()
    return jsonify({'message': 'Loan deleted'}), 200
