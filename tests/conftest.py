"""
Brand Studio - Test Fixtures
"""
import pytest

from app import create_app
from app.database import db
from app.models.db_models import DBUser, UserRole
from app.routes.auth import generate_token


@pytest.fixture
def app(monkeypatch):
    # Integrations stay unconfigured unless a test opts in
    for var in ('SENDER_API_KEY', 'SENDER_LIST_ID', 'YOUTUBE_API_KEY', 'PUBLIC_API_BASE_URL', 'PUBLIC_API_KEY'):
        monkeypatch.delenv(var, raising=False)

    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_user(app):
    user = DBUser(email='admin@example.com', name='Admin', password='Admin-pass1', role=UserRole.ADMIN)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def editor_user(app):
    user = DBUser(email='editor@example.com', name='Editor', password='Editor-pass1')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def auth_headers(admin_user):
    return {'Authorization': f'Bearer {generate_token(admin_user)}'}


@pytest.fixture
def editor_headers(editor_user):
    return {'Authorization': f'Bearer {generate_token(editor_user)}'}
