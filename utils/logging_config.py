"""
Centralized logging configuration for S.C.O.T.A.
Provides structured JSON logging, correlation ids and request/response tracking
"""

import os
import sys
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Any
from flask import has_request_context, request, g
import traceback

request_logger = logging.getLogger('requests')


# Attributes every LogRecord has; anything else was passed through ``extra``
_RESERVED_RECORD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName',
    'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'message', 'taskName'
}


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging
    Includes correlation ID, request context, and application metadata
    """

    def __init__(self):
        super().__init__()
        self.application_name = "scota"
        self.environment = os.environ.get('FLASK_ENV', 'development')

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""

        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'application': self.application_name,
            'environment': self.environment
        }

        if has_request_context():
            if 'correlation_id' in g:
                log_data['correlation_id'] = g.correlation_id

            log_data['request'] = {
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
                'user_agent': request.headers.get('User-Agent', '')
            }

            if 'current_user_id' in g:
                log_data['user'] = {
                    'user_id': g.current_user_id,
                    'username': g.get('current_username', 'unknown')
                }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        extra_fields = {key: value for key, value in record.__dict__.items()
                        if key not in _RESERVED_RECORD_ATTRS}
        if extra_fields:
            log_data['extra'] = extra_fields

        if record.levelno in (logging.DEBUG, logging.ERROR):
            log_data['location'] = {
                'file': record.pathname,
                'function': record.funcName,
                'line': record.lineno
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """
    Filter to inject request context into log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if 'correlation_id' in g:
                record.correlation_id = g.correlation_id
            if 'request_start_time' in g:
                record.request_duration = datetime.now().timestamp() - g.request_start_time
        return True


def setup_logging(app=None) -> None:
    """
    Configure centralized logging for the application
    Handlers are installed on the root logger; module loggers propagate to it
    """

    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if log_level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        log_level = 'INFO'

    # JSON formatting for production, simple for development
    use_json_logging = (
        os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or
        os.environ.get('FLASK_ENV') == 'production'
    )

    if use_json_logging:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s in %(name)s: %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestContextFilter())

    # File handler for errors (always enabled)
    log_dir = os.environ.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)
    error_handler = logging.FileHandler(os.path.join(log_dir, 'error.log'))
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    error_handler.addFilter(RequestContextFilter())

    # File handler for all logs (optional)
    file_handler = None
    if os.environ.get('ENABLE_FILE_LOGGING', 'false').lower() == 'true':
        file_handler = logging.FileHandler(os.path.join(log_dir, 'application.log'))
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Replace our own handlers only, so repeated app creation does not duplicate output
    for handler in list(root_logger.handlers):
        if getattr(handler, '_scota_handler', False):
            root_logger.removeHandler(handler)
            handler.close()

    for handler in filter(None, (console_handler, error_handler, file_handler)):
        handler._scota_handler = True
        root_logger.addHandler(handler)

    # Silence noisy third-party loggers in production
    if os.environ.get('FLASK_ENV') == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={log_level}, json_format={use_json_logging}")


def log_request_start():
    """Assign a correlation id and mark the start of request processing"""
    g.correlation_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
    g.request_start_time = datetime.now().timestamp()


def log_request_end(response):
    """Log request completion with timing and response info"""
    if has_request_context() and 'request_start_time' in g:
        duration = datetime.now().timestamp() - g.request_start_time

        extra_data = {
            'method': request.method,
            'path': request.path,
            'status_code': response.status_code,
            'duration_ms': round(duration * 1000, 2),
            'response_size': response.content_length or 0
        }

        if 'current_user_id' in g:
            extra_data['user_id'] = g.current_user_id

        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400:
            log_level = logging.WARNING
        elif duration > 5.0:  # Slow requests
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        request_logger.log(log_level, f"Request completed: {request.method} {request.path}",
                           extra=extra_data)

    if 'correlation_id' in g:
        response.headers['X-Request-ID'] = g.correlation_id

    return response
