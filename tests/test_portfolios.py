"""
Users, portfolios, memberships and permission endpoints.
"""
from axori_api.models.portfolio import PortfolioMember
from axori_api.models.user import User


class TestAuthentication:
    def test_missing_token(self, client):
        response = client.get('/api/users/me')
        assert response.status_code == 401
        assert response.get_json() == {'error': 'Unauthorized - Invalid or missing token'}

    def test_expired_token(self, client, owner, make_token):
        token = make_token(owner.cognito_sub, owner.email, expires_in=-60)
        response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_wrong_issuer(self, client, owner, make_token):
        token = make_token(owner.cognito_sub, owner.email, issuer='https://evil.example.com/pool')
        response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_unknown_key_id(self, client, owner, make_token):
        token = make_token(owner.cognito_sub, owner.email, kid='rotated-away')
        response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_token_for_another_client(self, client, owner, make_token):
        token = make_token(owner.cognito_sub, owner.email, client_id='someone-else')
        response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_unsynced_identity_is_forbidden(self, client, make_token):
        token = make_token('brand-new-sub', 'new@example.com')
        response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 403


class TestUsers:
    def test_sync_creates_user_and_default_portfolio(self, client, make_token):
        token = make_token('sub-123', 'Jane@Example.com', given_name='Jane', family_name='Doe')
        response = client.post('/api/users/sync', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 201
        body = response.get_json()
        assert body['created'] is True
        assert body['user']['email'] == 'jane@example.com'

        user = User.query.filter_by(cognito_sub='sub-123').one()
        membership = PortfolioMember.query.filter_by(user_id=user.id).one()
        assert membership.role == 'owner'
        assert str(membership.portfolio_id) == body['default_portfolio_id']

    def test_sync_is_idempotent(self, client, owner, auth_headers):
        response = client.post('/api/users/sync', headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.get_json()['created'] is False

    def test_update_profile(self, client, owner, auth_headers):
        response = client.put('/api/users/me', json={'first_name': 'Liv', 'onboarding_completed': True},
                              headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.get_json()['first_name'] == 'Liv'

    def test_my_portfolios(self, client, owner, portfolio, make_user, make_portfolio, add_member, auth_headers):
        other_owner = make_user()
        shared = make_portfolio(other_owner, name='Shared')
        add_member(shared, owner, role='viewer')

        response = client.get('/api/users/me/portfolios', headers=auth_headers(owner))
        roles = {p['name']: p['role'] for p in response.get_json()}
        assert roles == {'Test Portfolio': 'owner', 'Shared': 'viewer'}

    def test_default_portfolio_prefers_owned(self, client, owner, portfolio, auth_headers):
        response = client.get('/api/users/me/portfolio', headers=auth_headers(owner))
        assert response.get_json()['id'] == str(portfolio.id)


class TestPortfolios:
    def test_create_makes_caller_owner(self, client, owner, auth_headers):
        response = client.post('/api/portfolios/', json={'name': 'Rentals'}, headers=auth_headers(owner))
        assert response.status_code == 201
        assert response.get_json()['role'] == 'owner'

    def test_create_requires_name(self, client, owner, auth_headers):
        response = client.post('/api/portfolios/', json={'name': '  '}, headers=auth_headers(owner))
        assert response.status_code == 400

    def test_non_member_is_forbidden(self, client, portfolio, make_user, auth_headers):
        stranger = make_user()
        response = client.get(f'/api/portfolios/{portfolio.id}', headers=auth_headers(stranger))
        assert response.status_code == 403

    def test_malformed_id_is_not_found(self, client, owner, auth_headers):
        response = client.get('/api/portfolios/not-a-uuid', headers=auth_headers(owner))
        assert response.status_code == 404

    def test_admin_cannot_delete(self, client, portfolio, make_user, add_member, auth_headers):
        admin = make_user()
        add_member(portfolio, admin, role='admin')
        response = client.delete(f'/api/portfolios/{portfolio.id}', headers=auth_headers(admin))
        assert response.status_code == 403

    def test_owner_deletes(self, client, owner, portfolio, make_property, auth_headers):
        make_property(portfolio, owner)
        response = client.delete(f'/api/portfolios/{portfolio.id}', headers=auth_headers(owner))
        assert response.status_code == 200
        assert client.get(f'/api/portfolios/{portfolio.id}', headers=auth_headers(owner)).status_code == 404


class TestMembers:
    def test_add_existing_user(self, client, owner, portfolio, make_user, auth_headers):
        make_user('teammate@example.com')
        response = client.post(f'/api/portfolios/{portfolio.id}/members',
                               json={'email': 'teammate@example.com', 'role': 'member'},
                               headers=auth_headers(owner))
        assert response.status_code == 201
        assert response.get_json()['user']['email'] == 'teammate@example.com'

    def test_add_unknown_user(self, client, owner, portfolio, auth_headers):
        response = client.post(f'/api/portfolios/{portfolio.id}/members',
                               json={'email': 'nobody@example.com'}, headers=auth_headers(owner))
        assert response.status_code == 404

    def test_owner_changes_role(self, client, owner, portfolio, make_user, add_member, auth_headers):
        member = add_member(portfolio, make_user(), role='member')
        response = client.put(f'/api/portfolios/{portfolio.id}/members/{member.id}',
                              json={'role': 'admin'}, headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.get_json()['role'] == 'admin'

    def test_owner_cannot_demote_self(self, client, owner, portfolio, auth_headers):
        membership = PortfolioMember.query.filter_by(user_id=owner.id).one()
        response = client.put(f'/api/portfolios/{portfolio.id}/members/{membership.id}',
                              json={'role': 'admin'}, headers=auth_headers(owner))
        assert response.status_code == 403
        assert response.get_json()['code'] == 'SELF_PROMOTION_DENIED'

    def test_admin_cannot_change_roles(self, client, portfolio, make_user, add_member, auth_headers):
        admin = make_user()
        add_member(portfolio, admin, role='admin')
        member = add_member(portfolio, make_user(), role='member')
        response = client.put(f'/api/portfolios/{portfolio.id}/members/{member.id}',
                              json={'role': 'viewer'}, headers=auth_headers(admin))
        assert response.status_code == 403

    def test_role_must_be_a_string(self, client, owner, portfolio, make_user, add_member, auth_headers):
        member = add_member(portfolio, make_user(), role='member')
        response = client.put(f'/api/portfolios/{portfolio.id}/members/{member.id}',
                              json={'role': {'name': 'admin'}}, headers=auth_headers(owner))
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_ROLE'

        response = client.post(f'/api/portfolios/{portfolio.id}/members',
                               json={'email': member.user.email, 'role': ['viewer']}, headers=auth_headers(owner))
        assert response.status_code == 400

    def test_restrict_property_access(self, client, owner, portfolio, make_user, add_member, make_property,
                                      auth_headers):
        prop = make_property(portfolio, owner)
        member = add_member(portfolio, make_user(), role='member')
        response = client.put(f'/api/portfolios/{portfolio.id}/members/{member.id}/property-access',
                              json={'property_access': {str(prop.id): ['view']}}, headers=auth_headers(owner))
        assert response.status_code == 200
        assert response.get_json()['property_access'] == {str(prop.id): ['view']}

    def test_remove_member_and_audit(self, client, owner, portfolio, make_user, add_member, auth_headers):
        member = add_member(portfolio, make_user(), role='viewer')
        headers = auth_headers(owner)
        assert client.delete(f'/api/portfolios/{portfolio.id}/members/{member.id}',
                             headers=headers).status_code == 200

        log = client.get(f'/api/portfolios/{portfolio.id}/audit-log', headers=headers).get_json()
        assert log['total'] == 1
        assert log['entries'][0]['action'] == 'access_revoked'

    def test_owner_cannot_be_removed(self, client, owner, portfolio, make_user, add_member, auth_headers):
        admin = make_user()
        add_member(portfolio, admin, role='admin')
        owner_membership = PortfolioMember.query.filter_by(user_id=owner.id).one()
        response = client.delete(f'/api/portfolios/{portfolio.id}/members/{owner_membership.id}',
                                 headers=auth_headers(admin))
        assert response.status_code == 403
        assert response.get_json()['code'] == 'OWNER_PROTECTION'

    def test_owner_cannot_leave(self, client, owner, portfolio, auth_headers):
        assert client.post(f'/api/portfolios/{portfolio.id}/leave', headers=auth_headers(owner)).status_code == 403

    def test_member_leaves(self, client, portfolio, make_user, add_member, auth_headers):
        member = make_user()
        add_member(portfolio, member)
        assert client.post(f'/api/portfolios/{portfolio.id}/leave', headers=auth_headers(member)).status_code == 200
        assert PortfolioMember.query.filter_by(user_id=member.id).count() == 0

    def test_transfer_ownership(self, client, owner, portfolio, make_user, add_member, auth_headers):
        successor = make_user()
        add_member(portfolio, successor, role='admin')
        response = client.post(f'/api/portfolios/{portfolio.id}/transfer-ownership',
                               json={'new_owner_id': str(successor.id)}, headers=auth_headers(owner))
        assert response.status_code == 200
        body = response.get_json()
        assert body['previous_owner']['role'] == 'admin'
        assert body['new_owner']['role'] == 'owner'

    def test_transfer_to_non_member(self, client, owner, portfolio, make_user, auth_headers):
        outsider = make_user()
        response = client.post(f'/api/portfolios/{portfolio.id}/transfer-ownership',
                               json={'new_owner_id': str(outsider.id)}, headers=auth_headers(owner))
        assert response.status_code == 400


class TestPermissionEndpoints:
    def test_portfolio_permissions(self, client, portfolio, make_user, add_member, auth_headers):
        viewer = make_user()
        add_member(portfolio, viewer, role='viewer')
        body = client.get(f'/api/permissions/{portfolio.id}', headers=auth_headers(viewer)).get_json()
        assert body['role'] == 'viewer'
        assert body['permissions']['can_edit'] is False
        assert body['allowed_actions'] == ['view_portfolio']

    def test_property_permissions(self, client, owner, portfolio, make_user, add_member, make_property,
                                  auth_headers):
        prop = make_property(portfolio, owner)
        member = make_user()
        add_member(portfolio, member, role='member', property_access={str(prop.id): ['view']})
        body = client.get(f'/api/permissions/{portfolio.id}/property/{prop.id}',
                          headers=auth_headers(member)).get_json()
        assert body['can_view'] is True
        assert body['can_edit'] is False

    def test_bad_portfolio_id(self, client, owner, auth_headers):
        assert client.get('/api/permissions/xyz', headers=auth_headers(owner)).status_code == 400
