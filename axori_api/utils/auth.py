"""Authentication utilities and decorators"""
import base64
import time
from functools import wraps

import jwt
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import request, jsonify, current_app

from axori_api.utils.errors import ApiError

_jwks_cache = {'keys': None, 'fetched_at': 0.0}


def get_cognito_issuer():
    region = current_app.config.get('AWS_REGION')
    user_pool_id = current_app.config.get('COGNITO_USER_POOL_ID')
    if not user_pool_id:
        return None
    return f'https://cognito-idp.{region}.amazonaws.com/{user_pool_id}'


def get_cognito_public_keys():
    """Fetch Cognito public keys for JWT verification, cached per process"""
    issuer = get_cognito_issuer()
    if not issuer:
        current_app.logger.error("COGNITO_USER_POOL_ID not configured")
        return None

    max_age = current_app.config.get('JWKS_CACHE_SECONDS', 3600)
    if _jwks_cache['keys'] and time.time() - _jwks_cache['fetched_at'] < max_age:
        return _jwks_cache['keys']

    try:
        response = requests.get(f'{issuer}/.well-known/jwks.json', timeout=5)
        response.raise_for_status()
    except requests.RequestException as e:
        current_app.logger.error(f"Error fetching Cognito keys: {e}")
        return None

    _jwks_cache['keys'] = response.json()
    _jwks_cache['fetched_at'] = time.time()
    return _jwks_cache['keys']


def _b64url_to_int(value):
    padded = value + '=' * (-len(value) % 4)
    return int.from_bytes(base64.urlsafe_b64decode(padded), 'big')


def get_public_key_from_jwk(jwk_data):
    """Convert JWK to PEM format for PyJWT"""
    public_key = rsa.RSAPublicNumbers(
        _b64url_to_int(jwk_data['e']),
        _b64url_to_int(jwk_data['n'])
    ).public_key()
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )


def verify_cognito_token(token):
    """Verify and decode a Cognito JWT; returns the claims or None"""
    keys = get_cognito_public_keys()
    if not keys:
        current_app.logger.error("Failed to fetch Cognito public keys")
        return None

    try:
        kid = jwt.get_unverified_header(token).get('kid')
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Malformed token header: {e}")
        return None
    if not kid:
        current_app.logger.warning("Token missing 'kid' in header")
        return None

    key_data = next((k for k in keys.get('keys', []) if k.get('kid') == kid), None)
    if not key_data:
        current_app.logger.warning(f"Key with kid '{kid}' not found in JWKS")
        return None

    try:
        public_key_pem = get_public_key_from_jwk(key_data)
    except (KeyError, ValueError) as e:
        current_app.logger.error(f"Error converting JWK to PEM: {e}")
        return None

    expected_issuer = get_cognito_issuer()
    try:
        return jwt.decode(
            token,
            public_key_pem,
            algorithms=['RS256'],
            issuer=expected_issuer,
            options={"verify_exp": True, "verify_aud": False}
        )
    except jwt.ExpiredSignatureError:
        current_app.logger.warning("Token has expired")
    except jwt.InvalidIssuerError:
        current_app.logger.warning(f"Invalid issuer. Expected: {expected_issuer}")
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Invalid token: {e}")
    return None


def get_current_user():
    """Resolve the bearer token into the request identity"""
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    parts = auth_header.split(' ')
    token = parts[1] if len(parts) == 2 and parts[0].lower() == 'bearer' else auth_header
    claims = verify_cognito_token(token)
    if not claims:
        return None

    client_id = current_app.config.get('COGNITO_CLIENT_ID')
    token_client = claims.get('aud') or claims.get('client_id')
    if client_id and token_client and token_client != client_id:
        current_app.logger.warning(f"Token issued for another client: {token_client}")
        return None

    from axori_api.models.user import User
    user = User.query.filter_by(cognito_sub=claims.get('sub')).first()

    return {
        'cognito_sub': claims.get('sub'),
        'email': claims.get('email') or (user.email if user else None),
        'user': user,
        'user_id': user.id if user else None,
        'token_claims': claims
    }


def get_authenticated_user():
    """The synced ``User`` row for the current request"""
    user = request.current_user.get('user')
    if user is None:
        raise ApiError('User profile not found. Call /api/users/sync first.', 403)
    return user


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({'error': 'Unauthorized - Invalid or missing token'}), 401

        # Attach user to request context
        request.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def require_admin_feature(feature):
    """Decorator to require a Forge/admin feature; GET requests only need read access"""
    from axori_api.utils.permissions import has_feature_access

    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated_function(*args, **kwargs):
            user = request.current_user.get('user')
            roles = user.admin_roles if user else []
            needed = f'{feature}:read' if request.method == 'GET' else feature
            if not has_feature_access(roles, needed):
                return jsonify({'error': f'Forbidden - Requires {needed} access'}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
