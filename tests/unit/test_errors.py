"""
Unit tests for the error translator
"""

import logging

import pytest

from models import UserRole
from utils.errors import (
    AccessError,
    MissingCredentialError,
    InvalidCredentialError,
    ExpiredCredentialError,
    UnknownOrInactiveIdentityError,
    VerifierFaultError,
    UnauthenticatedError,
    InsufficientRoleError,
)

ERROR_TABLE = [
    (MissingCredentialError(), 401, 'TOKEN_REQUIRED'),
    (InvalidCredentialError(), 403, 'INVALID_TOKEN'),
    (ExpiredCredentialError(), 403, 'TOKEN_EXPIRED'),
    (UnknownOrInactiveIdentityError(), 401, 'USER_INVALID'),
    (VerifierFaultError(), 500, 'INTERNAL_ERROR'),
    (UnauthenticatedError(), 401, 'NOT_AUTHENTICATED'),
    (InsufficientRoleError([UserRole.ADMIN]), 403, 'INSUFFICIENT_PERMISSIONS'),
]


@pytest.fixture
def raising_client(app):
    """Client for an app with a route that raises whatever the test hands it"""
    state = {}

    def boom():
        raise state['error']

    app.add_url_rule('/_raise', 'raise_error', boom)

    client = app.test_client()

    def request_with(error):
        state['error'] = error
        return client.get('/_raise')

    return request_with


class TestAccessErrorMapping:
    """Each failure kind maps to exactly one status and code"""

    @pytest.mark.parametrize('error,status,code', ERROR_TABLE)
    def test_mapping(self, raising_client, error, status, code):
        response = raising_client(error)

        assert response.status_code == status
        body = response.get_json()
        assert body['success'] is False
        assert body['code'] == code
        assert body['error'] == error.message

    @pytest.mark.parametrize('error,status,code', [row for row in ERROR_TABLE if row[1] == 401])
    def test_unauthenticated_responses_challenge(self, raising_client, error, status, code):
        assert raising_client(error).headers['WWW-Authenticate'] == 'Bearer'

    def test_forbidden_responses_do_not_challenge(self, raising_client):
        assert 'WWW-Authenticate' not in raising_client(ExpiredCredentialError()).headers

    def test_insufficient_role_lists_required_roles(self, raising_client):
        error = InsufficientRoleError([UserRole.ADMIN, UserRole.SUPERVISOR])

        body = raising_client(error).get_json()

        assert body['required_roles'] == ['admin', 'supervisor']

    def test_detail_is_never_sent(self, raising_client):
        response = raising_client(InvalidCredentialError(detail='Signature verification failed'))

        assert 'Signature' not in response.get_data(as_text=True)

    def test_verifier_fault_is_logged_as_error(self, raising_client, caplog):
        with caplog.at_level(logging.INFO):
            raising_client(VerifierFaultError(detail='secret missing'))

        records = [r for r in caplog.records if 'secret missing' in r.getMessage()]
        assert records and records[0].levelno == logging.ERROR

    def test_custom_message(self):
        error = AccessError('Nope')
        assert error.to_dict()['error'] == 'Nope'
        assert error.status_code == 500


class TestGenericErrors:
    """Errors that are not access failures"""

    def test_unexpected_exception_is_generic_500(self, raising_client, caplog):
        with caplog.at_level(logging.ERROR):
            response = raising_client(KeyError('db_password'))

        assert response.status_code == 500
        assert response.get_json() == {
            'success': False,
            'error': 'Internal server error',
            'code': 'INTERNAL_ERROR'
        }
        assert 'db_password' not in response.get_data(as_text=True)
        assert 'Unhandled error' in caplog.text

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/does-not-exist')

        assert response.status_code == 404
        body = response.get_json()
        assert body['success'] is False
        assert body['code'] == 'NOT_FOUND'

    def test_wrong_method_is_json_405(self, client):
        response = client.delete('/health')

        assert response.status_code == 405
        assert response.get_json()['code'] == 'METHOD_NOT_ALLOWED'
