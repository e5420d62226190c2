from flask import Blueprint, request, jsonify
from axori_api import db
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.models.property import Property, PROPERTY_STATUSES
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.finances import build_financial_summary
from axori_api.utils.helpers import get_or_404
from axori_api.utils.portfolio_access import (
    require_property_permission, get_membership, get_accessible_property_ids_for_user
)
from axori_api.utils.permissions import can_perform_portfolio_action
from axori_api.utils.validation import (
    get_json_body, require_fields, validate_choice, parse_decimal, parse_date, parse_int, parse_bool
)

bp = Blueprint('properties', __name__)

NUMERIC_FIELDS = ('latitude', 'longitude', 'purchase_price', 'current_value')


def apply_property_fields(property, data):
    for field in Property.UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in NUMERIC_FIELDS:
            value = parse_decimal(value, field)
        elif field == 'purchase_date':
            value = parse_date(value, field)
        setattr(property, field, value)


@bp.route('/', methods=['GET'])
@require_auth
def get_properties():
    """
    List properties the caller can see
    ---
    tags:
      - Properties
    parameters:
      - in: query
        name: portfolio_id
        schema:
          type: string
        description: Limit to one portfolio (defaults to all of the caller's portfolios)
      - in: query
        name: status
        schema:
          type: string
          enum: [draft, active, archived]
      - in: query
        name: include_archived
        schema:
          type: string
          default: 'false'
    security:
      - Bearer: []
    responses:
      200:
        description: Properties ordered by most recently updated
      403:
        description: Not a member of the requested portfolio
    """
    user = get_authenticated_user()
    portfolio_id = request.args.get('portfolio_id')
    status = request.args.get('status')
    include_archived = parse_bool(request.args.get('include_archived'))

    if portfolio_id:
        portfolio = get_or_404(Portfolio, portfolio_id, 'Portfolio not found')
        if not get_membership(user.id, portfolio.id):
            return jsonify({'error': 'You are not a member of this portfolio'}), 403
        portfolio_ids = [portfolio.id]
    else:
        portfolio_ids = [m.portfolio_id for m in user.memberships.all()]

    accessible_ids = []
    for pid in portfolio_ids:
        accessible_ids.extend(get_accessible_property_ids_for_user(user.id, pid))
    if not accessible_ids:
        return jsonify([]), 200

    query = Property.query.filter(Property.id.in_(accessible_ids))
    if status:
        validate_choice(status, PROPERTY_STATUSES, 'status')
        query = query.filter(Property.status == status)
    elif not include_archived:
        query = query.filter(Property.status != 'archived')

    properties = query.order_by(Property.updated_at.desc()).all()
    return jsonify([prop.to_dict() for prop in properties]), 200


@bp.route('/drafts/me', methods=['GET'])
@require_auth
def get_my_draft():
    """The caller's most recently touched draft in their first portfolio"""
    user = get_authenticated_user()
    membership = user.memberships.order_by(PortfolioMember.created_at).first()
    if not membership:
        return jsonify(None), 200
    draft = Property.query.filter_by(portfolio_id=membership.portfolio_id, user_id=user.id, status='draft') \
        .order_by(Property.updated_at.desc()).first()
    return jsonify(draft.to_dict() if draft else None), 200


@bp.route('/<property_id>', methods=['GET'])
@require_property_permission('view')
def get_property(property_id):
    """Get property by ID"""
    return jsonify(request.property.to_dict()), 200


@bp.route('/', methods=['POST'])
@require_auth
def create_property():
    """
    Create a property (starts as a draft)
    ---
    tags:
      - Properties
    security:
      - Bearer: []
    requestBody:
      required: true
      content:
        application/json:
          schema:
            type: object
            required:
              - portfolio_id
              - address
              - city
              - state
              - zip_code
            properties:
              portfolio_id:
                type: string
              address:
                type: string
              unit:
                type: string
              city:
                type: string
              state:
                type: string
              zip_code:
                type: string
              status:
                type: string
                enum: [draft, active]
              nickname:
                type: string
              property_type:
                type: string
              purchase_price:
                type: number
              purchase_date:
                type: string
                format: date
              current_value:
                type: number
    responses:
      201:
        description: Property created
      400:
        description: Validation failed
      403:
        description: Caller cannot add properties to this portfolio
    """
    user = get_authenticated_user()
    data = get_json_body()
    require_fields(data, 'portfolio_id', 'address', 'city', 'state', 'zip_code')

    portfolio = get_or_404(Portfolio, data['portfolio_id'], 'Portfolio not found')
    membership = get_membership(user.id, portfolio.id)
    if not membership or not can_perform_portfolio_action(membership.role, 'add_properties'):
        return jsonify({'error': 'You do not have permission to add properties to this portfolio'}), 403

    status = data.get('status', 'draft')
    validate_choice(status, ('draft', 'active'), 'status')

    property = Property(portfolio_id=portfolio.id, user_id=user.id, added_by=user.id, status=status)
    apply_property_fields(property, data)
    db.session.add(property)
    db.session.flush()

    # Restricted members keep access to what they add
    if membership.property_access is not None:
        access = dict(membership.property_access)
        access[str(property.id)] = ['view', 'edit']
        membership.property_access = access

    db.session.commit()
    return jsonify(property.to_dict()), 201


@bp.route('/<property_id>', methods=['PUT'])
@require_property_permission('edit')
def update_property(property_id):
    """Update property details"""
    property = request.property
    data = get_json_body()
    apply_property_fields(property, data)
    db.session.commit()
    return jsonify(property.to_dict()), 200


@bp.route('/<property_id>/complete', methods=['POST'])
@require_property_permission('edit')
def complete_property(property_id):
    """Finish onboarding: draft -> active"""
    property = request.property
    if property.status == 'archived':
        return jsonify({'error': 'Archived properties cannot be completed'}), 400
    property.status = 'active'
    db.session.commit()
    return jsonify(property.to_dict()), 200


@bp.route('/<property_id>', methods=['DELETE'])
@require_property_permission('delete')
def archive_property(property_id):
    """Soft delete: the property is archived, never removed"""
    property = request.property
    property.status = 'archived'
    db.session.commit()
    return jsonify({'message': 'Property archived', 'property': property.to_dict()}), 200


@bp.route('/<property_id>/financials', methods=['GET'])
@require_property_permission('view')
def get_financials(property_id):
    """Monthly income, expenses, NOI, debt service and cash flow"""
    months = parse_int(request.args.get('months'), 'months', minimum=1, maximum=120, default=12)
    return jsonify(build_financial_summary(request.property, months=months)), 200
