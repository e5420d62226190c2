"""
Invitation token lifecycle and the invite/accept endpoints.
"""
import uuid
from datetime import timedelta

import pytest
from botocore.exceptions import ClientError

from axori_api import db
from axori_api.models.audit_log import PermissionAuditLog
from axori_api.models.invitation import InvitationToken
from axori_api.models.portfolio import PortfolioMember
from axori_api.utils import email as email_utils
from axori_api.utils.helpers import utcnow
from axori_api.utils.invitations import (
    generate_invitation_token, validate_invitation_token, expire_invitation_token,
    revoke_invitation_token, get_pending_invitations
)


class TestInvitationTokens:
    def test_generated_token_is_pending_and_normalized(self, portfolio, owner):
        token, invitation, expires_at = generate_invitation_token(portfolio.id, '  New@Example.COM ', owner.id)
        db.session.commit()

        assert len(token) >= 43
        assert invitation.status == 'pending'
        assert invitation.email == 'new@example.com'
        assert expires_at > utcnow() + timedelta(days=6)

    def test_tokens_are_unique(self, portfolio, owner):
        first, _, _ = generate_invitation_token(portfolio.id, 'a@example.com', owner.id)
        second, _, _ = generate_invitation_token(portfolio.id, 'b@example.com', owner.id)
        assert first != second

    def test_unknown_token(self, app):
        assert validate_invitation_token('nope') == (False, 'Invalid invitation token', None)
        assert validate_invitation_token('')[0] is False

    def test_expired_token_is_marked_expired(self, portfolio, owner):
        token, invitation, _ = generate_invitation_token(portfolio.id, 'late@example.com', owner.id)
        invitation.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        valid, error, found = validate_invitation_token(token)
        assert not valid
        assert error == 'This invitation has expired'
        assert found.status == 'expired'

    def test_token_is_single_use(self, portfolio, owner, make_user):
        invitee = make_user('invitee@example.com')
        token, _, _ = generate_invitation_token(portfolio.id, invitee.email, owner.id)
        db.session.commit()

        assert expire_invitation_token(token, invitee.id) is not None
        assert expire_invitation_token(token, invitee.id) is None
        valid, error, _ = validate_invitation_token(token)
        assert not valid
        assert error == 'This invitation has already been used'

    def test_revoked_token(self, portfolio, owner):
        token, _, _ = generate_invitation_token(portfolio.id, 'gone@example.com', owner.id)
        db.session.commit()

        assert revoke_invitation_token(token).status == 'revoked'
        assert revoke_invitation_token(token) is None
        assert validate_invitation_token(token)[1] == 'This invitation has been revoked'

    def test_pending_list_excludes_stale(self, portfolio, owner):
        generate_invitation_token(portfolio.id, 'fresh@example.com', owner.id)
        _, stale, _ = generate_invitation_token(portfolio.id, 'stale@example.com', owner.id)
        stale.expires_at = utcnow() - timedelta(hours=1)
        db.session.commit()

        pending = get_pending_invitations(portfolio.id)
        assert [i.email for i in pending] == ['fresh@example.com']


class TestInvitationRoutes:
    def invite(self, client, headers, portfolio, **body):
        return client.post(f'/api/portfolio-members/{portfolio.id}/invitations', json=body, headers=headers)

    def test_owner_invites_and_invitee_accepts(self, client, portfolio, owner, make_user, auth_headers):
        response = self.invite(client, auth_headers(owner), portfolio, email='guest@example.com', role='viewer')
        assert response.status_code == 201
        body = response.get_json()
        assert body['invitation']['role'] == 'viewer'
        assert body['email_sent'] is False
        assert body['email_configured'] is False
        assert 'token' not in body['invitation']

        token = InvitationToken.query.filter_by(email='guest@example.com').one().token
        guest = make_user('guest@example.com')

        preview = client.get(f'/api/portfolio-members/validate-invitation?token={token}')
        assert preview.get_json()['valid'] is True
        assert preview.get_json()['portfolio']['name'] == portfolio.name

        accepted = client.post('/api/portfolio-members/accept-invitation', json={'token': token},
                               headers=auth_headers(guest))
        assert accepted.status_code == 200
        assert accepted.get_json()['message'] == 'Successfully joined the portfolio'
        membership = PortfolioMember.query.filter_by(portfolio_id=portfolio.id, user_id=guest.id).one()
        assert membership.role == 'viewer'
        assert membership.invited_by == owner.id

        actions = {entry.action for entry in PermissionAuditLog.query.filter_by(portfolio_id=portfolio.id)}
        assert {'invitation_sent', 'invitation_accepted'} <= actions

    def test_second_accept_fails(self, client, portfolio, owner, make_user, auth_headers):
        token, _, _ = generate_invitation_token(portfolio.id, 'twice@example.com', owner.id)
        db.session.commit()
        first = make_user('twice@example.com')
        second = make_user('other@example.com')

        assert client.post('/api/portfolio-members/accept-invitation', json={'token': token},
                           headers=auth_headers(first)).status_code == 200
        response = client.post('/api/portfolio-members/accept-invitation', json={'token': token},
                               headers=auth_headers(second))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'This invitation has already been used'

    def test_existing_member_cannot_accept(self, client, portfolio, owner, make_user, add_member, auth_headers):
        member = make_user('member@example.com')
        add_member(portfolio, member)
        token, _, _ = generate_invitation_token(portfolio.id, member.email, owner.id)
        db.session.commit()

        response = client.post('/api/portfolio-members/accept-invitation', json={'token': token},
                               headers=auth_headers(member))
        assert response.status_code == 409

    def test_duplicate_pending_invitation(self, client, portfolio, owner, auth_headers):
        headers = auth_headers(owner)
        assert self.invite(client, headers, portfolio, email='dup@example.com').status_code == 201
        response = self.invite(client, headers, portfolio, email='DUP@example.com')
        assert response.status_code == 409
        assert response.get_json()['existing_invitation']['email'] == 'dup@example.com'

    def test_member_cannot_invite(self, client, portfolio, make_user, add_member, auth_headers):
        member = make_user()
        add_member(portfolio, member, role='member')
        response = self.invite(client, auth_headers(member), portfolio, email='x@example.com')
        assert response.status_code == 403

    def test_admin_cannot_invite_admin(self, client, portfolio, make_user, add_member, auth_headers):
        admin = make_user()
        add_member(portfolio, admin, role='admin')
        response = self.invite(client, auth_headers(admin), portfolio, email='x@example.com', role='admin')
        assert response.status_code == 403
        assert response.get_json()['code'] == 'ROLE_ESCALATION_DENIED'

    def test_invalid_email(self, client, portfolio, owner, auth_headers):
        response = self.invite(client, auth_headers(owner), portfolio, email='not-an-email')
        assert response.status_code == 400

    def test_revoke_then_accept_fails(self, client, portfolio, owner, make_user, auth_headers):
        token, invitation, _ = generate_invitation_token(portfolio.id, 'rev@example.com', owner.id)
        db.session.commit()
        headers = auth_headers(owner)

        response = client.delete(f'/api/portfolio-members/{portfolio.id}/invitations/{invitation.id}',
                                 headers=headers)
        assert response.status_code == 200
        again = client.delete(f'/api/portfolio-members/{portfolio.id}/invitations/{invitation.id}',
                              headers=headers)
        assert again.status_code == 404

        guest = make_user('rev@example.com')
        response = client.post('/api/portfolio-members/accept-invitation', json={'token': token},
                               headers=auth_headers(guest))
        assert response.status_code == 400

    def test_validate_requires_token(self, client):
        assert client.get('/api/portfolio-members/validate-invitation').status_code == 400

    def test_validate_expired_token(self, client, portfolio, owner):
        token, invitation, _ = generate_invitation_token(portfolio.id, 'old@example.com', owner.id)
        invitation.expires_at = utcnow() - timedelta(days=1)
        db.session.commit()

        body = client.get(f'/api/portfolio-members/validate-invitation?token={token}').get_json()
        assert body == {'valid': False, 'error': 'This invitation has expired'}

    def test_list_pending(self, client, portfolio, owner, auth_headers):
        generate_invitation_token(portfolio.id, 'one@example.com', owner.id)
        db.session.commit()
        response = client.get(f'/api/portfolio-members/{portfolio.id}/invitations', headers=auth_headers(owner))
        assert response.status_code == 200
        invitations = response.get_json()
        assert len(invitations) == 1
        assert invitations[0]['inviter']['email'] == owner.email

    def test_malformed_role_is_rejected(self, client, portfolio, owner, auth_headers):
        response = self.invite(client, auth_headers(owner), portfolio, email='x@example.com', role=['admin'])
        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_ROLE'


class FakeSes:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send_email(self, **kwargs):
        if self.error:
            raise self.error
        self.sent.append(kwargs)
        return {'MessageId': 'message-1'}


@pytest.fixture
def ses(app, monkeypatch):
    app.config['SES_SENDER_EMAIL'] = 'invites@axori.test'
    fake = FakeSes()
    monkeypatch.setattr(email_utils, 'get_ses_client', lambda: fake)
    return fake


class TestInvitationEmail:
    def test_html_escapes_user_supplied_names(self, app):
        _, text, html = email_utils.render_invitation_email(
            '<script>alert(1)</script>', 'Eve & "Co"', 'viewer',
            'https://app.axori.test/invitation/accept?token=a&b', utcnow()
        )
        assert '<script>' not in html
        assert '&lt;script&gt;alert(1)&lt;/script&gt;' in html
        assert 'Eve &amp; &#34;Co&#34;' in html
        assert 'token=a&amp;b' in html
        assert '<script>alert(1)</script>' in text

    def test_sends_through_ses(self, app, ses):
        sent, error = email_utils.send_invitation_email(
            'guest@example.com', 'tok', 'Rentals', 'Olive Owner', 'member', utcnow() + timedelta(days=7)
        )
        assert (sent, error) == (True, None)
        message = ses.sent[0]
        assert message['Source'] == 'invites@axori.test'
        assert message['Destination'] == {'ToAddresses': ['guest@example.com']}
        assert 'token=tok' in message['Message']['Body']['Html']['Data']

    def test_ses_rejection_is_reported(self, app, ses):
        ses.error = ClientError({'Error': {'Code': 'MessageRejected', 'Message': 'Email address is not verified.'}},
                                'SendEmail')
        sent, error = email_utils.send_invitation_email(
            'guest@example.com', 'tok', 'Rentals', 'Olive Owner', 'member', utcnow()
        )
        assert (sent, error) == (False, 'Email address is not verified.')

    def test_invite_reports_delivery(self, client, portfolio, owner, auth_headers, ses):
        response = client.post(f'/api/portfolio-members/{portfolio.id}/invitations',
                               json={'email': 'sent@example.com'}, headers=auth_headers(owner))
        body = response.get_json()
        assert body['email_sent'] is True
        assert body['email_configured'] is True
        assert ses.sent[0]['Destination'] == {'ToAddresses': ['sent@example.com']}


class TestResendInvitation:
    def resend(self, client, headers, portfolio, invitation_id):
        return client.post(f'/api/portfolio-members/{portfolio.id}/resend-invitation/{invitation_id}',
                           headers=headers)

    def test_resend_pending(self, client, portfolio, owner, auth_headers, ses):
        _, invitation, _ = generate_invitation_token(portfolio.id, 'again@example.com', owner.id)
        db.session.commit()

        response = self.resend(client, auth_headers(owner), portfolio, invitation.id)
        assert response.status_code == 200
        assert response.get_json()['invitation']['id'] == str(invitation.id)
        assert len(ses.sent) == 1

    def test_resend_unknown_or_used(self, client, portfolio, owner, auth_headers, ses):
        headers = auth_headers(owner)
        token, invitation, _ = generate_invitation_token(portfolio.id, 'gone@example.com', owner.id)
        revoke_invitation_token(token)
        db.session.commit()

        assert self.resend(client, headers, portfolio, invitation.id).status_code == 404
        assert self.resend(client, headers, portfolio, uuid.uuid4()).status_code == 404
        assert ses.sent == []

    def test_resend_expired(self, client, portfolio, owner, auth_headers, ses):
        _, invitation, _ = generate_invitation_token(portfolio.id, 'late@example.com', owner.id)
        invitation.expires_at = utcnow() - timedelta(hours=1)
        db.session.commit()
        assert self.resend(client, auth_headers(owner), portfolio, invitation.id).status_code == 404

    def test_resend_delivery_failure(self, client, portfolio, owner, auth_headers, ses):
        _, invitation, _ = generate_invitation_token(portfolio.id, 'bounce@example.com', owner.id)
        db.session.commit()
        ses.error = ClientError({'Error': {'Code': 'Throttling', 'Message': 'Maximum sending rate exceeded.'}},
                                'SendEmail')

        response = self.resend(client, auth_headers(owner), portfolio, invitation.id)
        assert response.status_code == 502
        assert response.get_json() == {
            'error': 'Failed to send invitation email',
            'email_error': 'Maximum sending rate exceeded.'
        }

    def test_viewer_cannot_resend(self, client, portfolio, owner, make_user, add_member, auth_headers):
        _, invitation, _ = generate_invitation_token(portfolio.id, 'v@example.com', owner.id)
        db.session.commit()
        viewer = make_user()
        add_member(portfolio, viewer, role='viewer')
        assert self.resend(client, auth_headers(viewer), portfolio, invitation.id).status_code == 403
