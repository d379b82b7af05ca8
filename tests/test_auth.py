"""
Brand Studio - Auth Tests
"""
from app.models.db_models import DBUser, UserRole
from app.routes.auth import validate_password


class TestPasswordRules:

    def test_validate_password(self):
        assert validate_password('Password1') == (True, None)
        assert validate_password('short1A')[0] is False
        assert validate_password('alllowercase1')[0] is False
        assert validate_password('ALLUPPERCASE1')[0] is False
        assert validate_password('NoNumbersHere')[0] is False
        assert validate_password('')[0] is False


class TestLogin:

    def test_login_sets_cookie(self, client, admin_user):
        response = client.post('/api/auth/login', json={'email': 'ADMIN@example.com', 'password': 'Admin-pass1'})

        assert response.status_code == 200
        assert response.get_json()['user']['email'] == 'admin@example.com'
        assert 'auth-token=' in response.headers.get('Set-Cookie', '')

    def test_login_wrong_password(self, client, admin_user):
        response = client.post('/api/auth/login', json={'email': 'admin@example.com', 'password': 'nope'})
        assert response.status_code == 401

    def test_login_missing_fields(self, client):
        response = client.post('/api/auth/login', json={'email': 'admin@example.com'})
        assert response.status_code == 400

    def test_me_requires_token(self, client):
        assert client.get('/api/auth/me').status_code == 401

    def test_me_with_bearer(self, client, auth_headers):
        response = client.get('/api/auth/me', headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()['user']['role'] == UserRole.ADMIN

    def test_invalid_token(self, client):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid token'


class TestBootstrap:

    def test_bootstrap_first_admin(self, client, app):
        response = client.post('/api/auth/bootstrap', json={
            'email': 'owner@example.com', 'password': 'Owner-pass1', 'name': 'Owner'
        })

        assert response.status_code == 201
        assert DBUser.query.filter_by(role=UserRole.ADMIN).count() == 1
        assert 'password' not in response.get_json()

    def test_bootstrap_generates_password(self, client, app):
        response = client.post('/api/auth/bootstrap', json={'email': 'owner@example.com'})

        data = response.get_json()
        assert response.status_code == 201
        assert validate_password(data['password'])[0]

    def test_bootstrap_refused_once_admin_exists(self, client, admin_user):
        response = client.post('/api/auth/bootstrap', json={'email': 'x@example.com', 'password': 'Owner-pass1'})
        assert response.status_code == 400


class TestRoles:

    def test_editor_cannot_manage_users(self, client, editor_headers):
        assert client.get('/api/users', headers=editor_headers).status_code == 403

    def test_admin_creates_editor(self, client, auth_headers):
        response = client.post('/api/users', headers=auth_headers, json={
            'email': 'new@example.com', 'name': 'New', 'password': 'Editor-pass1', 'role': 'editor'
        })
        assert response.status_code == 201
        assert response.get_json()['user']['role'] == UserRole.EDITOR

    def test_cron_secret_header(self, client, app):
        response = client.post('/api/social/publish', headers={'X-Cron-Secret': 'test-cron-secret'})

        assert response.status_code == 200
        assert response.get_json()['total'] == 0

    def test_wrong_cron_secret_needs_admin(self, client, app):
        response = client.post('/api/social/publish', headers={'X-Cron-Secret': 'guess'})
        assert response.status_code == 401
