"""
Identity Service

Read access to user accounts for the credential verifier and the login flow.
"""

from typing import Optional
import logging
from sqlalchemy import or_
from app import db
from models import User

logger = logging.getLogger(__name__)


class IdentityService:
    """Service class for resolving user accounts"""

    @staticmethod
    def find_active_by_id(user_id: str) -> Optional[User]:
        """
        Resolve a user id to an active account.

        Returns None when the user does not exist or is inactive. Storage
        errors propagate to the caller.
        """
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return user

    @staticmethod
    def authenticate(login: str, password: str) -> Optional[User]:
        """
        Check a username-or-email / password pair.

        Args:
            login: Username or email address
            password: Plain text password

        Returns:
            The active user on success, None otherwise
        """
        login = (login or '').strip()
        if not login or not password:
            return None

        user = User.query.filter(
            or_(User.username == login, User.email == login.lower()),
            User.is_active.is_(True)
        ).first()

        if not user or not user.check_password(password):
            return None
        return user
