import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)
jwt = JWTManager()


def _int_env(name, default):
    raw = (os.environ.get(name) or '').strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return default


def create_app(config=None):
    # Create the app
    app = Flask(__name__)

    # Configure ProxyFix for proper client IP detection in production
    # x_for=1: Trust one proxy for X-Forwarded-For header (client IP)
    # x_proto=1: Trust one proxy for X-Forwarded-Proto header (HTTPS detection)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # JWT configuration. The secret is read once here and handed to the
    # credential verifier; it is never re-read from the environment afterwards.
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY')
    app.config['JWT_ALGORITHM'] = os.environ.get('JWT_ALGORITHM', 'HS256')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(
        minutes=_int_env('JWT_ACCESS_TOKEN_EXPIRES_MINUTES', 60))
    app.config['JWT_REFRESH_TOKEN_EXPIRES'] = timedelta(
        days=_int_env('JWT_REFRESH_TOKEN_EXPIRES_DAYS', 7))

    # Configure the database - use PostgreSQL in production, SQLite for development
    database_url = os.environ.get("DATABASE_URL") or "sqlite:///scota.db"
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("postgresql://"):
        # Ensure psycopg2 driver is specified
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_size": 10,
            "pool_recycle": 280,  # Slightly less than 5 minutes to prevent stale connections
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "scota",
            }
        }
    else:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_recycle": 300,
            "pool_pre_ping": True,
        }
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url

    if config:
        app.config.update(config)

    # Logging is configured before anything else logs through it
    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)
    app.before_request(log_request_start)
    app.after_request(log_request_end)

    # CORS Configuration (restricted origins)
    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]

    # Fallback to localhost for development only if no production origins set
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    # Initialize extensions
    db.init_app(app)
    jwt.init_app(app)

    # Access pipeline: verifier and audit recorder are built once per app
    from services.identity_service import IdentityService
    from services.audit_service import AuditService, AuditStore
    from utils.security import CredentialVerifier
    from utils.errors import register_error_handlers
    from utils.access_control import clear_request_identity

    app.extensions['credential_verifier'] = CredentialVerifier(
        secret_key=app.config.get('JWT_SECRET_KEY'),
        identity_lookup=IdentityService.find_active_by_id,
        algorithm=app.config['JWT_ALGORITHM'],
    )
    app.extensions['audit_service'] = AuditService(AuditStore())
    app.before_request(clear_request_identity)
    register_error_handlers(app)

    # Check auth configuration on startup; STRICT_CONFIG refuses to start
    from utils.config_validator import check_production_readiness, validate_or_raise
    check_production_readiness(app.config)
    if os.environ.get('STRICT_CONFIG', 'false').lower() == 'true':
        validate_or_raise(app.config)

    # Register blueprints
    from auth import auth_bp
    from user_routes import users_bp
    from audit_routes import audit_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(audit_bp, url_prefix='/api/audit')

    # Create tables
    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'environment': os.environ.get('FLASK_ENV', 'development')
        }, 200

    @app.route('/')
    def index():
        return {
            'message': 'S.C.O.T.A. - Fleet operations back office',
            'version': '1.0.0',
            'endpoints': {
                'health': '/health',
                'api': '/api/*'
            }
        }, 200

    return app
