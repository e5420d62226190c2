from flask import Blueprint, request, jsonify, current_app
from axori_api import db
from axori_api.models.user import User
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.routes.permissions import build_portfolio_permissions
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.helpers import utcnow, get_or_404

bp = Blueprint('users', __name__)


def default_portfolio_name(user):
    if user.first_name or user.last_name:
        return f"{user.full_name}'s Portfolio"
    return f"{user.email.split('@')[0]}'s Portfolio"


def ensure_default_portfolio(user):
    """Every user owns at least one portfolio; create it when missing"""
    if user.memberships.count():
        return None
    portfolio = Portfolio(name=default_portfolio_name(user), description='Default portfolio', created_by=user.id)
    db.session.add(portfolio)
    db.session.flush()
    now = utcnow()
    db.session.add(PortfolioMember(
        portfolio_id=portfolio.id,
        user_id=user.id,
        role='owner',
        property_access=None,
        invited_at=now,
        accepted_at=now
    ))
    current_app.logger.info(f"Created default portfolio {portfolio.id} for {user.email}")
    return portfolio


def find_default_portfolio(user):
    owned = PortfolioMember.query.filter_by(user_id=user.id, role='owner') \
        .order_by(PortfolioMember.created_at).first()
    membership = owned or user.memberships.order_by(PortfolioMember.created_at).first()
    return membership.portfolio if membership else None


@bp.route('/sync', methods=['POST'])
@require_auth
def sync_user():
    """
    Create the user record for the authenticated Cognito identity
    ---
    tags:
      - Users
    security:
      - Bearer: []
    requestBody:
      content:
        application/json:
          schema:
            type: object
            properties:
              first_name:
                type: string
              last_name:
                type: string
    responses:
      200:
        description: User already existed
      201:
        description: User and default portfolio created
      400:
        description: Token has no email claim
      401:
        description: Unauthorized
    """
    identity = request.current_user
    existing = identity.get('user')
    if existing:
        return jsonify({'user': existing.to_dict(), 'created': False}), 200

    email = (identity.get('email') or '').strip().lower()
    if not email:
        return jsonify({'error': 'Token does not contain an email address'}), 400

    data = request.get_json(silent=True) or {}
    claims = identity.get('token_claims', {})
    user = User(
        cognito_sub=identity['cognito_sub'],
        email=email,
        first_name=(data.get('first_name') or claims.get('given_name') or '').strip() or None,
        last_name=(data.get('last_name') or claims.get('family_name') or '').strip() or None,
        admin_roles=[]
    )
    db.session.add(user)
    db.session.flush()
    portfolio = ensure_default_portfolio(user)
    db.session.commit()

    current_app.logger.info(f"Synced new user {user.email}")
    return jsonify({
        'user': user.to_dict(),
        'created': True,
        'default_portfolio_id': str(portfolio.id)
    }), 201


@bp.route('/me', methods=['GET'])
@require_auth
def get_me():
    """Get current authenticated user"""
    user = get_authenticated_user()
    if ensure_default_portfolio(user):
        db.session.commit()
    return jsonify(user.to_dict()), 200


@bp.route('/me', methods=['PUT'])
@require_auth
def update_me():
    """Update own profile"""
    user = get_authenticated_user()
    data = request.get_json(silent=True)
    if not data:
        return jsonify({'error': 'No data provided'}), 400

    for field in ('first_name', 'last_name'):
        if field in data:
            setattr(user, field, data[field].strip() if data[field] else None)
    if 'onboarding_step' in data:
        user.onboarding_step = data['onboarding_step']
    if 'onboarding_completed' in data:
        user.onboarding_completed = bool(data['onboarding_completed'])

    db.session.commit()
    return jsonify(user.to_dict()), 200


@bp.route('/me/portfolio', methods=['GET'])
@require_auth
def get_my_default_portfolio():
    """The portfolio the user owns, otherwise their first membership"""
    user = get_authenticated_user()
    if ensure_default_portfolio(user):
        db.session.commit()
    portfolio = find_default_portfolio(user)
    return jsonify(portfolio.to_dict()), 200


@bp.route('/me/portfolios', methods=['GET'])
@require_auth
def get_my_portfolios():
    """All portfolios the user belongs to, with their role"""
    user = get_authenticated_user()
    memberships = user.memberships.order_by(PortfolioMember.created_at).all()
    return jsonify([
        dict(m.portfolio.to_dict(),
             role=m.role,
             property_access=m.property_access,
             invited_at=m.invited_at.isoformat() if m.invited_at else None,
             accepted_at=m.accepted_at.isoformat() if m.accepted_at else None)
        for m in memberships
    ]), 200


@bp.route('/me/permissions/<portfolio_id>', methods=['GET'])
@require_auth
def get_my_permissions(portfolio_id):
    """Same payload as GET /api/permissions/<portfolio_id>"""
    user = get_authenticated_user()
    portfolio = get_or_404(Portfolio, portfolio_id, 'Portfolio not found')
    return build_portfolio_permissions(user, portfolio)
