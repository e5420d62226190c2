"""Property financial calculations"""
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func

from axori_api import db
from axori_api.models.loan import Loan
from axori_api.models.transaction import PropertyTransaction
from axori_api.utils.helpers import utctoday

TWO_PLACES = Decimal('0.01')


def calculate_monthly_principal_interest(principal, annual_rate_percent, term_months):
    """Standard amortising payment: P*r*(1+r)^n / ((1+r)^n - 1)"""
    principal = Decimal(str(principal or 0))
    term_months = int(term_months or 0)
    if principal <= 0 or term_months <= 0:
        return Decimal('0.00')

    monthly_rate = Decimal(str(annual_rate_percent or 0)) / Decimal('1200')
    if monthly_rate == 0:
        return (principal / term_months).quantize(TWO_PLACES)

    growth = (1 + monthly_rate) ** term_months
    return (principal * monthly_rate * growth / (growth - 1)).quantize(TWO_PLACES)


def loan_monthly_payment(loan):
    if loan.total_monthly_payment is not None:
        return Decimal(loan.total_monthly_payment)
    principal_interest = loan.monthly_principal_interest
    if principal_interest is None:
        principal_interest = calculate_monthly_principal_interest(
            loan.current_balance or loan.original_loan_amount,
            Decimal(loan.interest_rate or 0) * 100,
            loan.term_months
        )
    return Decimal(principal_interest) + Decimal(loan.monthly_escrow or 0)


def active_loans(property_id):
    return Loan.query.filter_by(property_id=property_id, status='active').all()


def total_debt_service(loans):
    return sum((loan_monthly_payment(loan) for loan in loans if loan.status == 'active'), Decimal('0'))


def total_debt(loans):
    return sum((Decimal(loan.current_balance if loan.current_balance is not None else loan.original_loan_amount)
                for loan in loans if loan.status == 'active'), Decimal('0'))


def primary_loan_interest_rate(loans):
    """Primary active loan rate as a percentage"""
    active = [loan for loan in loans if loan.status == 'active']
    if not active:
        return None
    primary = next((loan for loan in active if loan.is_primary), active[0])
    return float(Decimal(primary.interest_rate) * 100)


def transaction_totals(property_id, start_date, end_date):
    """Sum non-excluded transactions by type within [start_date, end_date]"""
    rows = db.session.query(
        PropertyTransaction.type, func.sum(PropertyTransaction.amount)
    ).filter(
        PropertyTransaction.property_id == property_id,
        PropertyTransaction.transaction_date >= start_date,
        PropertyTransaction.transaction_date <= end_date,
        PropertyTransaction.is_excluded.is_(False),
        PropertyTransaction.review_status != 'excluded'
    ).group_by(PropertyTransaction.type).all()

    totals = {'income': Decimal('0'), 'expense': Decimal('0'), 'capital': Decimal('0')}
    for tx_type, amount in rows:
        totals[tx_type] = Decimal(str(amount or 0))
    return totals


def _money(value):
    return float(Decimal(value).quantize(TWO_PLACES))


def build_financial_summary(property, months=12, today=None):
    today = today or utctoday()
    start_date = today - timedelta(days=round(months * 30.44))
    totals = transaction_totals(property.id, start_date, today)
    loans = active_loans(property.id)

    monthly_income = totals['income'] / months
    monthly_expenses = totals['expense'] / months
    monthly_noi = monthly_income - monthly_expenses
    debt_service = total_debt_service(loans)
    cash_flow = monthly_noi - debt_service
    debt = total_debt(loans)

    equity = None
    if property.current_value is not None:
        equity = _money(Decimal(property.current_value) - debt)

    return {
        'property_id': str(property.id),
        'period_months': months,
        'period_start': start_date.isoformat(),
        'period_end': today.isoformat(),
        'gross_income': _money(totals['income']),
        'operating_expenses': _money(totals['expense']),
        'capital_expenditures': _money(totals['capital']),
        'monthly_gross_income': _money(monthly_income),
        'monthly_operating_expenses': _money(monthly_expenses),
        'monthly_noi': _money(monthly_noi),
        'monthly_debt_service': _money(debt_service),
        'monthly_cash_flow': _money(cash_flow),
        'annual_cash_flow': _money(cash_flow * 12),
        'total_debt': _money(debt),
        'equity': equity,
        'primary_interest_rate': primary_loan_interest_rate(loans),
        'active_loan_count': len(loans),
    }
