"""
Access errors and the central error translator.

Every failure raised by the credential verifier or the role authorizer is an
``AccessError`` subclass carrying its own status code, machine-readable code
and caller-facing message. ``register_error_handlers`` turns them (and any
other exception reaching the Flask boundary) into the JSON error body used by
the whole API.
"""

import logging
from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AccessError(Exception):
    """Base class for authentication and authorization failures"""
    status_code = 500
    code = 'INTERNAL_ERROR'
    message = 'Internal server error'

    def __init__(self, message=None, detail=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        # Server-side detail, logged but never sent to the caller
        self.detail = detail

    def to_dict(self):
        return {
            'success': False,
            'error': self.message,
            'code': self.code
        }


class MissingCredentialError(AccessError):
    status_code = 401
    code = 'TOKEN_REQUIRED'
    message = 'Authentication token is required'


class InvalidCredentialError(AccessError):
    status_code = 403
    code = 'INVALID_TOKEN'
    message = 'The provided token is not valid'


class ExpiredCredentialError(AccessError):
    status_code = 403
    code = 'TOKEN_EXPIRED'
    message = 'Token has expired, please log in again'


class UnknownOrInactiveIdentityError(AccessError):
    status_code = 401
    code = 'USER_INVALID'
    message = 'User not found or inactive'


class VerifierFaultError(AccessError):
    status_code = 500
    code = 'INTERNAL_ERROR'
    message = 'Internal server error'


class UnauthenticatedError(AccessError):
    status_code = 401
    code = 'NOT_AUTHENTICATED'
    message = 'You must be authenticated to access this resource'


class InsufficientRoleError(AccessError):
    status_code = 403
    code = 'INSUFFICIENT_PERMISSIONS'
    message = 'Insufficient permissions to access this resource'

    def __init__(self, required_roles, message=None):
        super().__init__(message)
        self.required_roles = [getattr(role, 'value', role) for role in required_roles]

    def to_dict(self):
        data = super().to_dict()
        data['required_roles'] = self.required_roles
        return data


def error_response(message, code, status_code):
    """JSON error body shared by handlers and the translator"""
    return jsonify({
        'success': False,
        'error': message,
        'code': code
    }), status_code


def register_error_handlers(app):
    """Install the error translator on the application"""

    @app.errorhandler(AccessError)
    def handle_access_error(error):
        if isinstance(error, VerifierFaultError):
            logger.error(f"Credential verification fault: {error.detail or error.message}")
        else:
            logger.info(f"Access denied ({error.code}): {error.detail or error.message}")

        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if error.status_code == 401:
            response.headers['WWW-Authenticate'] = 'Bearer'
        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        code = (error.name or 'error').upper().replace(' ', '_')
        return error_response(error.description or error.name, code, error.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {error}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)
