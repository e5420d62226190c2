"""Shared pytest fixtures.

Fixture overview
----------------
app           - Flask app on in-memory sqlite with the Cognito key set replaced by a local RSA key
client        - test client for ``app``
make_token    - mint a signed Cognito-style JWT for a subject/email
make_user     - persist a synced ``User`` (optionally with Forge admin roles)
auth_headers  - Authorization header for a user
make_portfolio, add_member, make_property - tenant data builders
"""
import base64
import time
import uuid

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from axori_api import create_app, db
from axori_api.models.portfolio import Portfolio, PortfolioMember
from axori_api.models.property import Property
from axori_api.models.user import User
from axori_api.utils import auth
from axori_api.utils.helpers import utcnow
from config import TestingConfig

TEST_KID = 'test-kid'
TEST_ISSUER = 'https://cognito-idp.us-east-1.amazonaws.com/us-east-1_testpool'

# ── Signing key ──────────────────────────────────────────────────────────────

_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
PRIVATE_PEM = _private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption()
)


def _int_to_b64url(value):
    raw = value.to_bytes((value.bit_length() + 7) // 8, 'big')
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


_numbers = _private_key.public_key().public_numbers()
JWKS = {'keys': [{
    'kid': TEST_KID,
    'kty': 'RSA',
    'alg': 'RS256',
    'use': 'sig',
    'n': _int_to_b64url(_numbers.n),
    'e': _int_to_b64url(_numbers.e),
}]}


def mint_token(sub, email=None, expires_in=3600, issuer=TEST_ISSUER, client_id='test-client', kid=TEST_KID, **claims):
    payload = {
        'sub': sub,
        'iss': issuer,
        'iat': int(time.time()),
        'exp': int(time.time()) + expires_in,
        'token_use': 'id',
    }
    if email:
        payload['email'] = email
    if client_id:
        payload['aud'] = client_id
    payload.update(claims)
    return jwt.encode(payload, PRIVATE_PEM, algorithm='RS256', headers={'kid': kid})


# ── Application ──────────────────────────────────────────────────────────────

@pytest.fixture
def app(monkeypatch):
    monkeypatch.setattr(auth, 'get_cognito_public_keys', lambda: JWKS)
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_token():
    return mint_token


# ── Builders ─────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(app):
    def _make_user(email=None, admin_roles=None, first_name=None, last_name=None):
        email = email or f'user-{uuid.uuid4().hex[:8]}@example.com'
        user = User(
            cognito_sub=f'sub-{uuid.uuid4().hex}',
            email=email,
            first_name=first_name,
            last_name=last_name,
            admin_roles=admin_roles or []
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {'Authorization': f'Bearer {mint_token(user.cognito_sub, user.email)}'}
    return _auth_headers


@pytest.fixture
def add_member(app):
    def _add_member(portfolio, user, role='member', property_access=None, invited_by=None):
        membership = PortfolioMember(
            portfolio_id=portfolio.id,
            user_id=user.id,
            role=role,
            property_access=property_access,
            invited_by=invited_by.id if invited_by else None,
            accepted_at=utcnow()
        )
        db.session.add(membership)
        db.session.commit()
        return membership
    return _add_member


@pytest.fixture
def make_portfolio(app, add_member):
    def _make_portfolio(owner, name='Test Portfolio'):
        portfolio = Portfolio(name=name, created_by=owner.id)
        db.session.add(portfolio)
        db.session.commit()
        add_member(portfolio, owner, role='owner')
        return portfolio
    return _make_portfolio


@pytest.fixture
def make_property(app):
    def _make_property(portfolio, user, status='active', **fields):
        values = {
            'address': '123 Main St',
            'city': 'Austin',
            'state': 'TX',
            'zip_code': '78701',
        }
        values.update(fields)
        property = Property(portfolio_id=portfolio.id, user_id=user.id, added_by=user.id, status=status, **values)
        db.session.add(property)
        db.session.commit()
        return property
    return _make_property


@pytest.fixture
def owner(make_user):
    return make_user('owner@example.com', first_name='Olivia', last_name='Owner')


@pytest.fixture
def portfolio(owner, make_portfolio):
    return make_portfolio(owner)


@pytest.fixture
def developer(make_user):
    return make_user('dev@example.com', admin_roles=['developer'], first_name='Dana', last_name='Dev')
