"""
Configuration validation for the authentication pipeline
Checks the signing secret, token lifetimes and database settings
"""
import os
import logging
from datetime import timedelta
from typing import Dict, List, Tuple, Any, Mapping

logger = logging.getLogger(__name__)

SUPPORTED_JWT_ALGORITHMS = ('HS256', 'HS384', 'HS512')
MIN_SECRET_LENGTH = 32


class ConfigValidationError(Exception):
    """Raised when critical configuration is missing or invalid"""
    pass


def validate_jwt_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate token signing configuration.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    secret = config.get('JWT_SECRET_KEY')
    if not secret:
        issues.append("Missing JWT_SECRET_KEY - token verification will fail")
    elif not isinstance(secret, str):
        issues.append("JWT_SECRET_KEY must be a string")
    elif len(secret) < MIN_SECRET_LENGTH:
        issues.append(f"JWT_SECRET_KEY should be at least {MIN_SECRET_LENGTH} characters for security")

    algorithm = config.get('JWT_ALGORITHM', 'HS256')
    if algorithm not in SUPPORTED_JWT_ALGORITHMS:
        issues.append(f"JWT_ALGORITHM must be one of {', '.join(SUPPORTED_JWT_ALGORITHMS)}")

    for key in ('JWT_ACCESS_TOKEN_EXPIRES', 'JWT_REFRESH_TOKEN_EXPIRES'):
        value = config.get(key)
        if isinstance(value, timedelta) and value.total_seconds() <= 0:
            issues.append(f"{key} must be a positive duration")

    return len(issues) == 0, issues


def validate_database_config(config: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """
    Validate database configuration for production.

    Returns:
        tuple: (is_valid: bool, issues: List[str])
    """
    issues = []

    database_url = config.get('SQLALCHEMY_DATABASE_URI') or ''
    if not database_url:
        issues.append("Missing database URL (DATABASE_URL)")
    elif database_url.startswith('sqlite') and os.getenv('FLASK_ENV') == 'production':
        issues.append("SQLite database configured in production - use PostgreSQL")

    return len(issues) == 0, issues


def check_production_readiness(config: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Comprehensive check of the authentication configuration.

    Returns:
        dict: Status information including issues and recommendations
    """
    debug_mode = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

    jwt_valid, jwt_issues = validate_jwt_config(config)
    db_valid, db_issues = validate_database_config(config)

    all_issues = jwt_issues + db_issues
    is_production_ready = bool(len(all_issues) == 0 and not debug_mode)

    result = {
        'production_ready': is_production_ready,
        'auth_configured': jwt_valid,
        'database_configured': db_valid,
        'debug_mode': debug_mode,
        'issues': all_issues,
        'recommendations': []
    }

    if debug_mode:
        result['recommendations'].append("Disable DEBUG mode for production deployment")

    if not jwt_valid:
        result['recommendations'].append("Set a strong JWT_SECRET_KEY before issuing tokens")

    if is_production_ready:
        logger.info("AUTH_CONFIG: Production readiness check PASSED")
    else:
        logger.warning(f"AUTH_CONFIG: Production readiness check FAILED - Issues: {len(all_issues)}")
        for issue in all_issues:
            logger.warning(f"AUTH_CONFIG: Issue - {issue}")

    return result


def validate_or_raise(config: Mapping[str, Any]) -> None:
    """
    Strict startup check: raise when token signing cannot work.

    Raises:
        ConfigValidationError: if the JWT configuration is invalid
    """
    jwt_valid, issues = validate_jwt_config(config)
    if not jwt_valid:
        raise ConfigValidationError('; '.join(issues))
