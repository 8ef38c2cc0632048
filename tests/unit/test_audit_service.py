"""
Unit tests for the audit recorder
"""

import logging
from datetime import date
from unittest.mock import patch

import pytest
from flask import g, request

from app import db
from models import AuditLog, User, UserRole
from services.audit_service import AuditService, AuditStore, log_audit


@pytest.fixture
def audit_service(app):
    return AuditService(AuditStore())


class TestLogAction:
    """Recording audit events"""

    def test_explicit_actor(self, audit_service, driver_user):
        assert audit_service.log_action('UPDATE', 'User', driver_user.id, {'phone': '555-0100'},
                                        user_id=driver_user.id) is True

        record = AuditLog.query.one()
        assert record.user_id == driver_user.id
        assert record.action == 'UPDATE'
        assert record.entity_type == 'User'
        assert record.entity_id == driver_user.id
        assert record.get_details() == {'phone': '555-0100'}
        assert record.created_at is not None

    def test_actor_defaults_to_request_user(self, app, audit_service, admin_user, driver_user):
        headers = {'User-Agent': 'pytest-agent', 'X-Forwarded-For': '10.1.2.3, 172.16.0.1'}
        with app.test_request_context('/api/users', headers=headers):
            g.current_user = admin_user
            assert audit_service.log_action('DELETE', 'User', driver_user.id, req=request)

        record = AuditLog.query.one()
        assert record.user_id == admin_user.id
        assert record.ip_address == '10.1.2.3'
        assert record.user_agent == 'pytest-agent'

    def test_system_action_has_no_actor(self, audit_service):
        assert audit_service.log_action('CLEANUP', 'Session', details={'expired': 3})

        record = AuditLog.query.one()
        assert record.user_id is None
        assert record.ip_address is None

    def test_entity_id_stored_as_text(self, audit_service):
        audit_service.log_action('UPDATE', 'Vehicle', 42)

        assert AuditLog.query.one().entity_id == '42'

    def test_non_json_details_are_stringified(self, audit_service):
        audit_service.log_action('UPDATE', 'User', 'u1', {'license_expiry': date(2027, 1, 31)})

        assert AuditLog.query.one().get_details() == {'license_expiry': '2027-01-31'}

    def test_store_failure_is_swallowed_and_logged(self, audit_service, caplog):
        with patch.object(audit_service.store, 'append', side_effect=RuntimeError('disk full')), \
                caplog.at_level(logging.ERROR):
            result = audit_service.log_action('UPDATE', 'User', 'u1', {'phone': '1'})

        assert result is False
        assert "Error logging audit action 'UPDATE'" in caplog.text
        assert AuditLog.query.count() == 0

    def test_write_survives_rollback_of_primary_session(self, audit_service):
        pending = User(username='pending', email='pending@test.com', first_name='Pen',
                       last_name='Ding', role=UserRole.DRIVER)
        pending.set_password('secret1')
        db.session.add(pending)

        assert audit_service.log_action('CREATE', 'User', 'pending', {'username': 'pending'})
        db.session.rollback()

        assert AuditLog.query.filter_by(entity_id='pending').count() == 1
        assert User.query.filter_by(username='pending').first() is None

    def test_records_are_appended_in_order(self, audit_service):
        for action in ('CREATE', 'UPDATE', 'DELETE'):
            audit_service.log_action(action, 'User', 'u1')

        assert [r.action for r in AuditLog.query.order_by(AuditLog.id)] == ['CREATE', 'UPDATE', 'DELETE']


class TestSecurityEvents:
    """Security event convenience wrapper"""

    def test_security_event(self, app, audit_service):
        with app.test_request_context('/api/auth/login', headers={'X-Request-ID': 'req-123'}):
            g.correlation_id = 'req-123'
            audit_service.log_security_event('login_failed', {'login_method': 'email'}, req=request)

        record = AuditLog.query.one()
        assert record.action == 'SECURITY_LOGIN_FAILED'
        assert record.entity_type == 'Security'
        assert record.get_details() == {'login_method': 'email', 'correlation_id': 'req-123'}

    def test_security_event_without_details(self, audit_service):
        assert audit_service.log_security_event('token_reuse', None) is True
        assert AuditLog.query.one().details is None


class TestLogAuditHelper:
    """Module-level helper used by route handlers"""

    def test_uses_application_service(self, app):
        with patch.object(app.extensions['audit_service'], 'log_action', return_value=True) as log_action:
            assert log_audit('LOGOUT', 'User', 'u1') is True

        log_action.assert_called_once_with(action='LOGOUT', entity_type='User', entity_id='u1',
                                           details=None, user_id=None, req=None)
