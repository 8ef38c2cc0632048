"""
Audit Service

Append-only audit trail for state-changing actions. Writes are best-effort:
a failed write is logged and reported as ``False`` but never raised, so the
outcome of the request that triggered it does not depend on the audit store.
"""

from typing import Optional, Dict, Any
import logging
import json
from flask import current_app, g, has_request_context
from sqlalchemy.orm import Session
from app import db
from models import AuditLog
from utils.security import extract_request_info

logger = logging.getLogger(__name__)


class AuditStore:
    """Appends audit rows through a session of its own.

    The handler's ``db.session`` is never used here, so an audit write holds
    no transaction shared with the primary action and cannot commit or roll
    it back.
    """

    def append(self, record: AuditLog) -> None:
        with Session(db.engine, expire_on_commit=False) as session:
            session.add(record)
            session.commit()


class AuditService:
    """Service class for centralized audit logging"""

    def __init__(self, store: Optional[AuditStore] = None):
        self.store = store or AuditStore()

    def log_action(self, action: str,
                   entity_type: str,
                   entity_id: Optional[Any] = None,
                   details: Optional[Dict[str, Any]] = None,
                   user_id: Optional[str] = None,
                   req=None) -> bool:
        """
        Record an audit event.

        Args:
            action: Action performed (CREATE, UPDATE, DELETE, LOGIN, ...)
            entity_type: Type of entity affected (e.g., 'User', 'Vehicle')
            entity_id: ID of the affected entity
            details: Additional details about the action
            user_id: ID of the acting user; defaults to the user resolved
                for the current request, or None for system actions
            req: Originating request, used for IP address and user agent

        Returns:
            bool: True if the record was written, False otherwise
        """
        try:
            if user_id is None and has_request_context():
                current_user = g.get('current_user')
                if current_user is not None:
                    user_id = current_user.id

            audit = AuditLog()
            audit.user_id = user_id
            audit.action = action
            audit.entity_type = entity_type
            audit.entity_id = str(entity_id) if entity_id is not None else None
            audit.details = json.dumps(details, default=str) if details else None

            if req is not None:
                request_info = extract_request_info(req)
                audit.ip_address = request_info['ip_address']
                audit.user_agent = request_info['user_agent']

            self.store.append(audit)
            logger.debug(f"Audit logged: {action} {entity_type}:{entity_id} by user {user_id}")
            return True

        except Exception:
            # Best-effort by contract: log and carry on, never re-raise.
            logger.exception(f"Error logging audit action '{action}' on {entity_type}:{entity_id}")
            return False

    def log_security_event(self, event_type: str, details: Dict[str, Any],
                           user_id: Optional[str] = None, req=None) -> bool:
        """
        Log security-related events (e.g., 'login_failed').

        Args:
            event_type: Type of security event
            details: Event details
            user_id: Related user, if known
            req: Originating request

        Returns:
            bool: True if logging successful
        """
        details = dict(details or {})
        correlation_id = g.get('correlation_id') if has_request_context() else None
        if correlation_id:
            details['correlation_id'] = correlation_id

        return self.log_action(
            action=f'SECURITY_{event_type.upper()}',
            entity_type='Security',
            details=details,
            user_id=user_id,
            req=req
        )


def get_audit_service() -> AuditService:
    return current_app.extensions['audit_service']


def log_audit(action, entity_type, entity_id=None, details=None, user_id=None, req=None):
    """Helper function to log audit events from route handlers"""
    return get_audit_service().log_action(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        user_id=user_id,
        req=req
    )
