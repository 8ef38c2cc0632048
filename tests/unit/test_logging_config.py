"""
Unit tests for logging setup and request tracking hooks
"""

import logging

from utils.logging_config import setup_logging, log_request_start, log_request_end


def scota_handlers():
    return [h for h in logging.getLogger().handlers if getattr(h, '_scota_handler', False)]


class TestSetupLogging:

    def test_repeated_setup_does_not_duplicate_handlers(self, app):
        before = len(scota_handlers())

        setup_logging(app)
        setup_logging(app)

        assert len(scota_handlers()) == before

    def test_foreign_root_handlers_are_kept(self, app):
        foreign = logging.NullHandler()
        logging.getLogger().addHandler(foreign)
        try:
            setup_logging(app)
            assert foreign in logging.getLogger().handlers
        finally:
            logging.getLogger().removeHandler(foreign)

    def test_log_level_from_environment(self, app, monkeypatch):
        monkeypatch.setenv('LOG_LEVEL', 'WARNING')
        try:
            setup_logging(app)
            assert logging.getLogger().level == logging.WARNING
        finally:
            monkeypatch.setenv('LOG_LEVEL', 'INFO')
            setup_logging(app)


class TestRequestHooks:

    def test_request_completion_is_logged(self, app, caplog):
        with app.test_request_context('/api/users', headers={'X-Request-ID': 'abc-1'}), \
                caplog.at_level(logging.INFO, logger='requests'):
            log_request_start()
            response = log_request_end(app.response_class(status=404))

        assert response.headers['X-Request-ID'] == 'abc-1'
        record = next(r for r in caplog.records if r.name == 'requests')
        assert record.levelno == logging.WARNING
        assert record.status_code == 404
        assert record.path == '/api/users'

    def test_correlation_id_generated_when_absent(self, app):
        with app.test_request_context('/health'):
            log_request_start()
            response = log_request_end(app.response_class(status=200))

        assert len(response.headers['X-Request-ID']) == 32
