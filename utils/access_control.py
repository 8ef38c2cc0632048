"""
Route-level access control.

Each protected view declares who may call it with a capability descriptor:

- ``AnyOf(*roles)``: the caller's role must be one of ``roles``;
- ``SelfOrPrivileged(owner_param)``: admins and supervisors always pass,
  anyone else only when their own id equals the ``owner_param`` path value.

``protected`` runs the credential verifier, attaches the resolved user to
``flask.g`` and then evaluates the descriptor with ``authorize`` before the
view is invoked. Failures raise ``AccessError`` subclasses that the error
translator in ``utils.errors`` turns into responses, so the view never runs.
"""

import logging
from functools import wraps
from typing import Any, Mapping, Optional, Tuple

from flask import current_app, g, request

from models import UserRole
from utils.errors import UnauthenticatedError, InsufficientRoleError

logger = logging.getLogger(__name__)


class AnyOf:
    """Caller must hold one of the listed roles"""

    def __init__(self, *roles):
        if not roles:
            raise ValueError("AnyOf requires at least one role")
        self.roles: Tuple[UserRole, ...] = tuple(UserRole(role) for role in roles)

    def __repr__(self):
        return f"AnyOf({', '.join(role.value for role in self.roles)})"


class SelfOrPrivileged:
    """Caller must own the targeted resource or hold a privileged role"""

    # Supervisors are trusted for any subordinate resource; no
    # supervisor-to-driver relationship is checked.
    PRIVILEGED_ROLES = (UserRole.ADMIN, UserRole.SUPERVISOR)

    def __init__(self, owner_param: str = 'user_id'):
        self.owner_param = owner_param

    @property
    def roles(self) -> Tuple[UserRole, ...]:
        return self.PRIVILEGED_ROLES

    def __repr__(self):
        return f"SelfOrPrivileged({self.owner_param})"


def authorize(identity: Any, capability, view_args: Optional[Mapping[str, Any]] = None) -> None:
    """Allow or deny ``identity`` against a capability descriptor.

    Returns ``None`` when allowed. Raises ``UnauthenticatedError`` when there
    is no identity and ``InsufficientRoleError`` when the check fails.
    """
    if identity is None:
        raise UnauthenticatedError()

    if isinstance(capability, AnyOf):
        if identity.role in capability.roles:
            return
        raise InsufficientRoleError(
            capability.roles,
            'One of the following roles is required: '
            + ', '.join(role.value for role in capability.roles))

    if isinstance(capability, SelfOrPrivileged):
        if identity.role in capability.PRIVILEGED_ROLES:
            return
        owner_id = (view_args or {}).get(capability.owner_param)
        if owner_id is not None and str(identity.id) == str(owner_id):
            return
        raise InsufficientRoleError(capability.PRIVILEGED_ROLES)

    raise TypeError(f"Unknown capability descriptor: {capability!r}")


def get_current_user():
    """User resolved for the current request, if any"""
    return g.get('current_user')


def clear_request_identity():
    """Every request starts without a resolved user"""
    for key in ('current_user', 'current_user_id', 'current_username'):
        g.pop(key, None)


def authenticate_request():
    """Run the credential verifier and attach the user to the request context"""
    verifier = current_app.extensions['credential_verifier']
    user = verifier.verify(request.headers.get('Authorization'))

    g.current_user = user
    g.current_user_id = user.id
    g.current_username = user.username

    logger.info(f"{request.method} {request.path} - User: {user.username} ({user.role.value})")
    return user


def protected(capability=None):
    """Decorator: authenticate the caller, then check ``capability`` if given"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = authenticate_request()
            if capability is not None:
                authorize(user, capability, request.view_args)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


auth_required = protected()
admin_required = protected(AnyOf(UserRole.ADMIN))
supervisor_required = protected(AnyOf(UserRole.ADMIN, UserRole.SUPERVISOR))
