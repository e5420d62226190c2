"""Database-backed portfolio access checks and route decorators"""
from functools import wraps

from flask import request, jsonify

from axori_api import db
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.models.property import Property
from axori_api.utils.auth import require_auth, get_authenticated_user
from axori_api.utils.errors import ApiError, NotFoundError, ForbiddenError
from axori_api.utils.helpers import get_or_404
from axori_api.utils.permissions import (
    can_perform_portfolio_action, is_role_at_least, has_property_permission,
    get_accessible_property_ids
)
from axori_api.utils.validation import parse_uuid


def get_membership(user_id, portfolio_id):
    if user_id is None:
        return None
    return PortfolioMember.query.filter_by(user_id=user_id, portfolio_id=portfolio_id).first()


def get_user_portfolio_ids(user_id):
    return [m.portfolio_id for m in PortfolioMember.query.filter_by(user_id=user_id).all()]


def get_accessible_property_ids_for_user(user_id, portfolio_id):
    """Ids of the properties this user may view in a portfolio"""
    membership = get_membership(user_id, portfolio_id)
    if not membership:
        return []
    query = Property.query.with_entities(Property.id).filter_by(portfolio_id=portfolio_id)
    all_ids = [row.id for row in query.all()]
    listed = get_accessible_property_ids(membership.property_access)
    if listed is None:
        return all_ids
    return [property_id for property_id in all_ids
            if has_property_permission(membership.role, membership.property_access, property_id, 'view')]


def check_property_access(user, property, permission):
    """Return the caller's membership, or raise 403 when the permission is missing"""
    membership = get_membership(user.id, property.portfolio_id)
    if not membership:
        raise ForbiddenError('You do not have access to this property')
    if not has_property_permission(membership.role, membership.property_access, property.id, permission):
        raise ForbiddenError(f'You do not have {permission} permission on this property')
    return membership


def load_property_for(user, property_id, permission='view'):
    """Fetch a property and verify access; for ids that arrive in the request body"""
    try:
        key = parse_uuid(property_id, 'property_id')
    except ApiError:
        raise NotFoundError('Property not found')
    property = db.session.get(Property, key)
    if property is None:
        raise NotFoundError('Property not found')
    check_property_access(user, property, permission)
    return property


def require_portfolio_permission(action=None, minimum_role=None):
    """Decorator for routes with a ``portfolio_id`` view arg.

    Sets ``request.portfolio`` and ``request.membership`` for the view.
    """
    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated_function(*args, **kwargs):
            user = get_authenticated_user()
            portfolio = get_or_404(Portfolio, kwargs.get('portfolio_id'), 'Portfolio not found')
            membership = get_membership(user.id, portfolio.id)
            if not membership:
                return jsonify({'error': 'You are not a member of this portfolio'}), 403
            if action and not can_perform_portfolio_action(membership.role, action):
                return jsonify({
                    'error': 'Insufficient permissions',
                    'required_action': action,
                    'role': membership.role
                }), 403
            if minimum_role and not is_role_at_least(membership.role, minimum_role):
                return jsonify({
                    'error': 'Insufficient permissions',
                    'required_role': minimum_role,
                    'role': membership.role
                }), 403

            request.portfolio = portfolio
            request.membership = membership
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_property_permission(permission='view'):
    """Decorator for routes with a ``property_id`` view arg; sets ``request.property``"""
    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated_function(*args, **kwargs):
            user = get_authenticated_user()
            property = get_or_404(Property, kwargs.get('property_id'), 'Property not found')
            request.membership = check_property_access(user, property, permission)
            request.property = property
            return f(*args, **kwargs)
        return decorated_function
    return decorator
