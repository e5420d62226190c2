from flask import Blueprint, request, jsonify
from axori_api import db
from axori_api.models.transaction import (
    PropertyTransaction, TRANSACTION_TYPES, TRANSACTION_CATEGORIES, REVIEW_STATUSES, RECURRENCE_FREQUENCIES
)
from axori_api.utils.auth import get_authenticated_user
from axori_api.utils.helpers import get_or_404, utcnow, paginate_query
from axori_api.utils.portfolio_access import require_property_permission
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_date, parse_decimal, parse_optional_uuid
)

bp = Blueprint('transactions', __name__)

TEXT_FIELDS = ('subcategory', 'vendor', 'payer', 'description', 'tax_category', 'source', 'notes')
BOOLEAN_FIELDS = ('is_recurring', 'is_tax_deductible')


def apply_transaction_fields(transaction, data, user):
    if 'type' in data:
        transaction.type = validate_choice(data['type'], TRANSACTION_TYPES, 'type')
    if 'category' in data:
        transaction.category = validate_choice(data['category'], TRANSACTION_CATEGORIES, 'category')
    if 'transaction_date' in data:
        transaction.transaction_date = parse_date(data['transaction_date'], 'transaction_date')
    if 'amount' in data:
        transaction.amount = parse_decimal(data['amount'], 'amount', minimum=0)
    if data.get('recurrence_frequency'):
        validate_choice(data['recurrence_frequency'], RECURRENCE_FREQUENCIES, 'recurrence_frequency')
    if 'recurrence_frequency' in data:
        transaction.recurrence_frequency = data['recurrence_frequency'] or None
    if 'document_id' in data:
        transaction.document_id = parse_optional_uuid(data['document_id'], 'document_id')
    for field in TEXT_FIELDS:
        if field in data:
            setattr(transaction, field, data[field])
    for field in BOOLEAN_FIELDS:
        if field in data:
            setattr(transaction, field, bool(data[field]))
    if 'review_status' in data:
        transaction.review_status = validate_choice(data['review_status'], REVIEW_STATUSES, 'review_status')
        transaction.is_excluded = transaction.review_status == 'excluded'
        transaction.reviewed_by = user.id
        transaction.reviewed_at = utcnow()


def get_property_transaction(property_id, transaction_id):
    transaction = get_or_404(PropertyTransaction, transaction_id, 'Transaction not found')
    if transaction.property_id != property_id:
        return None
    return transaction


@bp.route('/', methods=['GET'])
@require_property_permission('view')
def list_transactions(property_id):
    """
    List a property's transactions
    ---
    tags:
      - Transactions
    parameters:
      - in: query
        name: start_date
        schema:
          type: string
          format: date
      - in: query
        name: end_date
        schema:
          type: string
          format: date
      - in: query
        name: type
        schema:
          type: string
          enum: [income, expense, capital]
      - in: query
        name: category
        schema:
          type: string
      - in: query
        name: review_status
        schema:
          type: string
      - in: query
        name: page
        schema:
          type: integer
          default: 1
      - in: query
        name: page_size
        schema:
          type: integer
          default: 20
    security:
      - Bearer: []
    responses:
      200:
        description: Transactions newest first, with pagination
    """
    query = PropertyTransaction.query.filter_by(property_id=request.property.id)

    start_date = parse_date(request.args.get('start_date'), 'start_date')
    end_date = parse_date(request.args.get('end_date'), 'end_date')
    if start_date:
        query = query.filter(PropertyTransaction.transaction_date >= start_date)
    if end_date:
        query = query.filter(PropertyTransaction.transaction_date <= end_date)
    if request.args.get('type'):
        query = query.filter_by(type=validate_choice(request.args['type'], TRANSACTION_TYPES, 'type'))
    if request.args.get('category'):
        query = query.filter_by(category=request.args['category'])
    if request.args.get('review_status'):
        query = query.filter_by(review_status=request.args['review_status'])

    query = query.order_by(PropertyTransaction.transaction_date.desc(), PropertyTransaction.created_at.desc())
    pagination = paginate_query(query, request.args.get('page', 1, type=int),
                                request.args.get('page_size', 20, type=int))
    return jsonify({
        'transactions': [t.to_dict() for t in pagination.items],
        'pagination': {
            'page': pagination.page,
            'page_size': pagination.per_page,
            'total': pagination.total,
            'total_pages': pagination.pages
        }
    }), 200


@bp.route('/<transaction_id>', methods=['GET'])
@require_property_permission('view')
def get_transaction(property_id, transaction_id):
    transaction = get_property_transaction(request.property.id, transaction_id)
    if transaction is None:
        return jsonify({'error': 'Transaction not found'}), 404
    return jsonify(transaction.to_dict()), 200


@bp.route('/', methods=['POST'])
@require_property_permission('edit')
def create_transaction(property_id):
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'type', 'transaction_date', 'amount', 'category')

    transaction = PropertyTransaction(property_id=request.property.id, created_by=user.id)
    apply_transaction_fields(transaction, data, user)
    db.session.add(transaction)
    db.session.commit()
    return jsonify(transaction.to_dict()), 201


@bp.route('/<transaction_id>', methods=['PUT'])
@require_property_permission('edit')
def update_transaction(property_id, transaction_id):
    user = get_authenticated_user()
    transaction = get_property_transaction(request.property.id, transaction_id)
    if transaction is None:
        return jsonify({'error': 'Transaction not found'}), 404

    data = get_json_body()
    apply_transaction_fields(transaction, data, user)
    if transaction.amount is None or transaction.transaction_date is None:
        db.session.rollback()
        return jsonify({'error': 'amount and transaction_date cannot be cleared'}), 400
    db.session.commit()
    return jsonify(transaction.to_dict()), 200


@bp.route('/<transaction_id>', methods=['DELETE'])
@require_property_permission('edit')
def delete_transaction(property_id, transaction_id):
    transaction = get_property_transaction(request.property.id, transaction_id)
    if transaction is None:
        return jsonify({'error': 'Transaction not found'}), 404
    db.session.delete(transaction)
    db.session.commit()
    return jsonify({'message': 'Transaction deleted'}), 200
