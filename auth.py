from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError
from models import User, UserRole, db
from services.audit_service import log_audit, get_audit_service
from services.identity_service import IdentityService
from utils.access_control import auth_required, get_current_user
from utils.errors import error_response
from utils.security import create_access_token
from timezone_utils import get_local_time_naive
import re
import logging

auth_bp = Blueprint('auth', __name__)

PROFILE_FIELDS = ('first_name', 'last_name', 'phone', 'email', 'emergency_contact_name',
                  'emergency_contact_phone', 'address')

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9]{3,30}$')
PHONE_PATTERN = re.compile(r'^[+]?[\d\s\-()]+$')


def validate_email(email):
    """Basic email validation"""
    if not email:
        return None, "Email is required"

    email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    if re.match(email_pattern, email):
        return email.lower(), None
    else:
        return None, "Please enter a valid email address"


# Fields that must be JSON strings (or null) whenever a body carries them
TEXT_FIELDS = ('username', 'email', 'password', 'first_name', 'last_name', 'phone',
               'emergency_contact_name', 'emergency_contact_phone', 'address', 'notes',
               'license_number', 'license_expiry', 'employee_id', 'role', 'login',
               'refresh_token', 'current_password', 'new_password')


def get_json_body():
    """Request body as a JSON object, or None for anything else"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def validate_text_fields(data):
    for field in TEXT_FIELDS:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            return f"'{field}' must be a string"
    if 'is_active' in data and not isinstance(data['is_active'], bool):
        return "'is_active' must be true or false"
    return None


def validate_profile_fields(data):
    """Validate profile fields shared by profile and user updates"""
    error = validate_text_fields(data)
    if error:
        return error
    if 'email' in data:
        _, error = validate_email((data.get('email') or '').strip())
        if error:
            return error
    for field in ('phone', 'emergency_contact_phone'):
        value = data.get(field)
        if value and not PHONE_PATTERN.match(str(value)):
            return f"Invalid phone number in '{field}'"
    for field in ('first_name', 'last_name'):
        if field in data and not (data.get(field) or '').strip():
            return f"'{field}' cannot be empty"
    return None


@auth_bp.route('/register', methods=['POST'])
def register():
    """Self-registration; always creates a driver account"""
    data = get_json_body()
    if not data:
        return error_response('JSON data required', 'INVALID_REQUEST', 400)
    field_error = validate_text_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)

    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    first_name = (data.get('first_name') or '').strip()
    last_name = (data.get('last_name') or '').strip()
    email, email_error = validate_email((data.get('email') or '').strip())

    if not USERNAME_PATTERN.match(username):
        return error_response('Username must be 3-30 letters or digits', 'INVALID_USERNAME', 400)
    if email_error:
        return error_response(email_error, 'INVALID_EMAIL', 400)
    if len(password) < 6:
        return error_response('Password must be at least 6 characters', 'INVALID_PASSWORD', 400)
    if not first_name or not last_name:
        return error_response('First and last name are required', 'MISSING_FIELDS', 400)

    existing_user = User.query.filter((User.username == username) | (User.email == email)).first()
    if existing_user:
        return error_response('Username or email already in use', 'USER_EXISTS', 400)

    # SECURITY: Ignore client-provided role, only admins can elevate roles
    user = User()
    user.username = username
    user.email = email
    user.first_name = first_name
    user.last_name = last_name
    user.role = UserRole.DRIVER
    user.set_password(password)

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response('Username or email already in use', 'USER_EXISTS', 400)

    log_audit('REGISTER', 'User', user.id, {'role': user.role.value, 'email': user.email},
              user_id=user.id, req=request)

    logging.info(f"New user registered: {user.username}")

    return jsonify({
        'success': True,
        'message': 'User created successfully',
        'user': user.to_dict(),
        **create_access_token(user)
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange username/email and password for a token pair"""
    data = get_json_body()
    if not data:
        return error_response('JSON data required', 'INVALID_REQUEST', 400)
    field_error = validate_text_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)

    login_value = (data.get('login') or '').strip()
    password = data.get('password') or ''
    if not login_value or not password:
        return error_response('Username/email and password are required', 'MISSING_FIELDS', 400)

    user = IdentityService.authenticate(login_value, password)
    login_method = 'email' if '@' in login_value else 'username'

    if not user:
        get_audit_service().log_security_event('login_failed', {'login_method': login_method},
                                               req=request)
        logging.warning(f"Failed login attempt via {login_method}")
        return error_response('Invalid username/email or password', 'INVALID_CREDENTIALS', 401)

    user.last_login = get_local_time_naive()
    db.session.commit()

    log_audit('LOGIN', 'User', user.id, {'role': user.role.value, 'login_method': login_method},
              user_id=user.id, req=request)

    logging.info(f"Successful login for user {user.id}")

    return jsonify({
        'success': True,
        'message': 'Login successful',
        'user': user.to_dict(),
        **create_access_token(user)
    }), 200


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Issue a new token pair from a refresh token"""
    data = get_json_body() or {}
    field_error = validate_text_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)
    refresh_token = (data.get('refresh_token') or '').strip()
    if not refresh_token:
        return error_response('Refresh token is required', 'TOKEN_REQUIRED', 400)

    verifier = current_app.extensions['credential_verifier']
    user = verifier.verify_token(refresh_token, token_type='refresh')

    return jsonify({
        'success': True,
        'message': 'Token refreshed',
        **create_access_token(user)
    }), 200


@auth_bp.route('/profile', methods=['GET'])
@auth_required
def get_profile():
    return jsonify({'success': True, 'user': get_current_user().to_dict()})


@auth_bp.route('/profile', methods=['PUT'])
@auth_required
def update_profile():
    data = get_json_body()
    if not data:
        return error_response('JSON data required', 'INVALID_REQUEST', 400)

    error = validate_profile_fields(data)
    if error:
        return error_response(error, 'INVALID_FIELD', 400)

    user = get_current_user()
    changes = {}
    for field in PROFILE_FIELDS:
        if field in data:
            value = data[field]
            if field == 'email':
                value = value.strip().lower()
                if value != user.email and User.query.filter_by(email=value).first():
                    return error_response('Email already registered', 'EMAIL_IN_USE', 400)
            setattr(user, field, value)
            changes[field] = value

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response('Email already registered', 'EMAIL_IN_USE', 400)

    if changes:
        log_audit('UPDATE', 'User', user.id, changes, req=request)

    return jsonify({
        'success': True,
        'message': 'Profile updated successfully',
        'user': user.to_dict()
    })


@auth_bp.route('/change-password', methods=['PUT'])
@auth_required
def change_password():
    data = get_json_body() or {}
    field_error = validate_text_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)
    current_password = data.get('current_password') or ''
    new_password = data.get('new_password') or ''

    if not current_password or not new_password:
        return error_response('Current and new password are required', 'MISSING_FIELDS', 400)
    if len(new_password) < 6:
        return error_response('Password must be at least 6 characters', 'INVALID_PASSWORD', 400)

    user = get_current_user()
    if not user.check_password(current_password):
        return error_response('Current password is incorrect', 'INVALID_PASSWORD', 400)

    user.set_password(new_password)
    db.session.commit()

    log_audit('PASSWORD_CHANGE', 'User', user.id, req=request)

    return jsonify({'success': True, 'message': 'Password updated successfully'})


@auth_bp.route('/logout', methods=['POST'])
@auth_required
def logout():
    # Tokens expire by time alone; logout is acknowledged and recorded
    user = get_current_user()
    log_audit('LOGOUT', 'User', user.id, req=request)
    return jsonify({'success': True, 'message': 'Logout successful'})
