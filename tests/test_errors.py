"""
JSON rendering of database constraint failures.
"""
import pytest

from axori_api import db
from axori_api.models.user import User


@pytest.fixture
def constraint_client(app):
    def insert_user():
        db.session.add(User(cognito_sub='sub-1', email='dup@example.com'))
        db.session.commit()
        return {'ok': True}, 201

    def insert_user_without_email():
        db.session.add(User(cognito_sub='sub-2', email=None))
        db.session.commit()
        return {'ok': True}, 201

    app.add_url_rule('/_constraints/user', 'insert_user', insert_user, methods=['POST'])
    app.add_url_rule('/_constraints/user-without-email', 'insert_user_without_email', insert_user_without_email,
                     methods=['POST'])
    return app.test_client()


class TestIntegrityErrors:
    def test_unique_violation_is_conflict(self, constraint_client):
        assert constraint_client.post('/_constraints/user').status_code == 201
        response = constraint_client.post('/_constraints/user')
        assert response.status_code == 409
        assert response.get_json() == {'error': 'Duplicate entry'}

    def test_not_null_violation_is_bad_request(self, constraint_client):
        response = constraint_client.post('/_constraints/user-without-email')
        assert response.status_code == 400
        assert response.get_json() == {'error': 'A required field is missing'}
