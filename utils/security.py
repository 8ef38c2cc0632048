"""
Security utilities: bearer-token issuing and verification, request origin
extraction and sanitization of audit data for display
"""
import re
import logging
from typing import Dict, Any, Optional, Callable

import jwt
from flask import request
from flask_jwt_extended import create_access_token as jwt_create_access_token
from flask_jwt_extended import create_refresh_token as jwt_create_refresh_token

from utils.errors import (
    MissingCredentialError,
    InvalidCredentialError,
    ExpiredCredentialError,
    UnknownOrInactiveIdentityError,
    VerifierFaultError,
)

logger = logging.getLogger(__name__)


def get_client_ip(req=None) -> str:
    """Get real client IP address with proxy support"""
    req = req or request
    # Check for forwarded IP (when behind proxy)
    forwarded_for = req.headers.get('X-Forwarded-For')
    if forwarded_for:
        # Take the first IP in the chain (original client)
        return forwarded_for.split(',')[0].strip()

    real_ip = req.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()

    return req.remote_addr or 'Unknown'


def extract_request_info(req=None) -> Dict[str, str]:
    """Network origin and client identifier of a request"""
    req = req or request
    return {
        'ip_address': get_client_ip(req)[:45],
        'user_agent': (req.headers.get('User-Agent') or '')[:255]
    }


def create_access_token(user) -> Dict[str, Any]:
    """Issue an access/refresh token pair for a user"""
    claims = {'role': user.role.value}
    access_token = jwt_create_access_token(identity=user.id, additional_claims=claims)
    refresh_token = jwt_create_refresh_token(identity=user.id)

    from flask import current_app
    expires = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    return {
        'token': access_token,
        'refresh_token': refresh_token,
        'token_type': 'Bearer',
        'token_expires_in': int(expires.total_seconds())
    }


class CredentialVerifier:
    """
    Resolves a bearer token to an active user.

    The signing secret and the identity lookup are injected at construction;
    ``identity_lookup(user_id)`` returns the user or ``None``. Verification
    has no side effects: it never modifies the user and never writes audit
    records.
    """

    def __init__(self, secret_key: Optional[str],
                 identity_lookup: Callable[[str], Any],
                 algorithm: str = 'HS256'):
        self._secret_key = secret_key
        self._identity_lookup = identity_lookup
        self._algorithm = algorithm

    @staticmethod
    def extract_bearer_token(authorization_header: Optional[str]) -> str:
        """Return the token of a ``Bearer <token>`` header"""
        if not authorization_header:
            raise MissingCredentialError(detail='Authorization header absent')

        scheme, _, token = authorization_header.strip().partition(' ')
        token = token.strip()
        if scheme.lower() != 'bearer' or not token:
            raise MissingCredentialError(detail='Authorization header is not a bearer token')
        return token

    def verify(self, authorization_header: Optional[str]):
        """Verify an ``Authorization`` header value and return the active user"""
        token = self.extract_bearer_token(authorization_header)
        return self.verify_token(token, token_type='access')

    def decode(self, token: str, token_type: str = 'access') -> Dict[str, Any]:
        """Check signature, expiry and token type; return the claims"""
        if not isinstance(self._secret_key, str) or not self._secret_key:
            raise VerifierFaultError(detail='JWT secret key is missing or malformed')

        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={'require': ['exp', 'sub']},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredCredentialError(detail='Token expiry has passed')
        except jwt.InvalidTokenError as e:
            raise InvalidCredentialError(detail=f'Token rejected: {e}')
        except jwt.PyJWTError as e:
            raise VerifierFaultError(detail=f'Token could not be verified: {e}')

        if claims.get('type') != token_type:
            raise InvalidCredentialError(
                detail=f"Expected {token_type} token, got {claims.get('type')!r}")
        if not isinstance(claims.get('sub'), str) or not claims['sub']:
            raise InvalidCredentialError(detail='Token subject is missing')
        return claims

    def verify_token(self, token: str, token_type: str = 'access'):
        """Verify a raw token and resolve the active user it names"""
        claims = self.decode(token, token_type)
        user_id = claims['sub']

        try:
            user = self._identity_lookup(user_id)
        except Exception as e:
            logger.exception(f"Identity lookup failed for user {user_id}")
            raise VerifierFaultError(detail=f'Identity lookup failed: {e}')

        if user is None or not getattr(user, 'is_active', False):
            raise UnknownOrInactiveIdentityError(detail=f'User {user_id} not found or inactive')
        return user


class AuditDetailsSanitizer:
    """
    Prepares stored audit details for the admin audit report.

    Secrets that ended up in a details payload are replaced outright. Contact
    and licence data from user profiles is shown with only its last four
    characters, and email addresses inside text are partially masked.
    """

    REDACTED_KEYS = ('password', 'secret', 'token', 'api_key', 'authorization', 'credential', 'hash')
    PARTIAL_KEYS = ('phone', 'emergency_contact_phone', 'license_number')
    VISIBLE_TAIL = 4

    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')

    def sanitize(self, details: Dict[str, Any]) -> Dict[str, Any]:
        return {key: self._sanitize_value(key, value) for key, value in details.items()}

    def _sanitize_value(self, key: str, value: Any) -> Any:
        key_lower = str(key).lower()
        if any(pattern in key_lower for pattern in self.REDACTED_KEYS):
            return '[REDACTED]'
        if key_lower in self.PARTIAL_KEYS and isinstance(value, str):
            return self.mask_tail(value)
        if isinstance(value, dict):
            return self.sanitize(value)
        if isinstance(value, list):
            return [self._sanitize_value(key, item) for item in value]
        if isinstance(value, str):
            return self.EMAIL_PATTERN.sub(lambda m: self.mask_email(m.group()), value)
        return value

    @classmethod
    def mask_tail(cls, value: str) -> str:
        if len(value) <= cls.VISIBLE_TAIL:
            return '*' * len(value)
        return '*' * (len(value) - cls.VISIBLE_TAIL) + value[-cls.VISIBLE_TAIL:]

    @staticmethod
    def mask_email(email: str) -> str:
        local, _, domain = email.partition('@')
        if len(local) <= 2:
            return f"{'*' * len(local)}@{domain}"
        return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}@{domain}"

    @staticmethod
    def mask_ip(ip_address: Optional[str]) -> Optional[str]:
        """Keep the network part of an address: two IPv4 octets or two IPv6 groups"""
        if not ip_address or ip_address == 'Unknown':
            return ip_address

        parts = ip_address.split('.')
        if len(parts) == 4:
            return f"{parts[0]}.{parts[1]}.xxx.xxx"

        parts = ip_address.split(':')
        if len(parts) >= 4:
            return f"{parts[0]}:{parts[1]}:xxxx:xxxx"

        return ip_address


def sanitize_audit_record(audit_log) -> Dict[str, Any]:
    """Details and origin of an audit row as shown in the audit report"""
    sanitizer = AuditDetailsSanitizer()
    return {
        'details': sanitizer.sanitize(audit_log.get_details()),
        'ip_address': sanitizer.mask_ip(audit_log.ip_address)
    }
