"""
Pytest configuration and fixtures for S.C.O.T.A. testing
"""

import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

TEST_SECRET = 'test_jwt_secret_for_testing_only_0123456789'
ROTATED_SECRET = 'previous_jwt_secret_that_was_rotated_9876543210'

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'JWT_SECRET_KEY': TEST_SECRET,
    'LOG_DIR': tempfile.mkdtemp(prefix='scota-test-logs-'),
})

from app import create_app, db
from models import User, UserRole
import factory
from factory import Faker
from werkzeug.security import generate_password_hash


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing against a throwaway SQLite file"""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'JWT_SECRET_KEY': TEST_SECRET,
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


# Factory classes for test data generation
class UserFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        model = User
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@test.com")
    password_hash = factory.LazyFunction(lambda: generate_password_hash('testpass123'))
    first_name = Faker('first_name')
    last_name = Faker('last_name')
    role = UserRole.DRIVER
    is_active = True


class AdminUserFactory(UserFactory):
    role = UserRole.ADMIN
    username = factory.Sequence(lambda n: f"admin{n}")
    email = factory.Sequence(lambda n: f"admin{n}@test.com")


class SupervisorUserFactory(UserFactory):
    role = UserRole.SUPERVISOR
    username = factory.Sequence(lambda n: f"supervisor{n}")
    email = factory.Sequence(lambda n: f"supervisor{n}@test.com")


@pytest.fixture
def user_factory(app):
    return UserFactory


@pytest.fixture
def admin_user(app):
    return AdminUserFactory()


@pytest.fixture
def supervisor_user(app):
    return SupervisorUserFactory()


@pytest.fixture
def driver_user(app):
    return UserFactory()


@pytest.fixture
def other_driver(app):
    return UserFactory()


@pytest.fixture
def inactive_user(app):
    return UserFactory(is_active=False)


def _sign_token(user_id, secret=TEST_SECRET, expires_in=timedelta(minutes=15),
                token_type='access', **claims):
    """Sign a token the way the login flow does, with controllable expiry and key"""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user_id,
        'type': token_type,
        'jti': uuid.uuid4().hex,
        'iat': now - timedelta(hours=1),
        'exp': now + expires_in,
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm='HS256')


def _auth_header(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def make_token():
    """Signer for hand-crafted tokens (expired, rotated key, wrong type)"""
    return _sign_token


@pytest.fixture
def rotated_secret():
    return ROTATED_SECRET


@pytest.fixture
def bearer():
    """Build an Authorization header from a raw token"""
    return _auth_header


@pytest.fixture
def token_for():
    """Headers carrying a valid access token for a user"""
    def _token_for(user, **kwargs):
        return _auth_header(_sign_token(user.id, **kwargs))
    return _token_for
