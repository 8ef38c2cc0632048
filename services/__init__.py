"""
Service Layer

Business logic kept out of the route handlers:

- **IdentityService**: account lookup for token verification and login
- **AuditService**: best-effort, append-only audit trail
"""

from .identity_service import IdentityService
from .audit_service import AuditService, AuditStore, log_audit

__all__ = [
    'IdentityService',
    'AuditService',
    'AuditStore',
    'log_audit'
]
