from datetime import date
from flask import Blueprint, request, jsonify
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import User, UserRole, db
from services.audit_service import log_audit
from utils.access_control import (SelfOrPrivileged, protected, auth_required,
                                  admin_required, supervisor_required, get_current_user)
from utils.errors import error_response
from auth import (validate_email, validate_profile_fields, validate_text_fields,
                  get_json_body, USERNAME_PATTERN)
import logging

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__)

self_or_privileged = protected(SelfOrPrivileged('user_id'))

# Fields anyone allowed by the route's capability may change
UPDATABLE_FIELDS = ('first_name', 'last_name', 'phone', 'email', 'license_number',
                    'license_expiry', 'employee_id', 'emergency_contact_name',
                    'emergency_contact_phone', 'address', 'notes')
ADMIN_ONLY_FIELDS = ('role', 'username')
STATUS_ROLES = (UserRole.ADMIN, UserRole.SUPERVISOR)


def _parse_role(value):
    try:
        return UserRole(value), None
    except ValueError:
        return None, f"Role must be one of: {', '.join(role.value for role in UserRole)}"


def _parse_date(value):
    if value in (None, ''):
        return None, None
    try:
        return date.fromisoformat(value), None
    except (TypeError, ValueError):
        return None, 'Dates must use the YYYY-MM-DD format'


def _page_args():
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = min(max(request.args.get('limit', 10, type=int) or 10, 1), 100)
    return page, limit


@users_bp.route('', methods=['GET'])
@supervisor_required
def list_users():
    """List users (admin/supervisor) with role, status and text filters"""
    page, limit = _page_args()
    role = request.args.get('role')
    active = request.args.get('active', 'true')
    search = (request.args.get('search') or '').strip()

    query = User.query
    if role:
        parsed_role, error = _parse_role(role)
        if error:
            return error_response(error, 'INVALID_ROLE', 400)
        query = query.filter(User.role == parsed_role)
    if active != 'all':
        query = query.filter(User.is_active.is_(active == 'true'))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
            User.username.ilike(pattern),
            User.email.ilike(pattern)
        ))

    pagination = query.order_by(User.first_name, User.last_name).paginate(
        page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'users': [user.to_dict() for user in pagination.items],
        'pagination': {
            'current_page': page,
            'total_pages': pagination.pages,
            'total_users': pagination.total,
            'per_page': limit
        }
    })


@users_bp.route('/drivers', methods=['GET'])
@auth_required
def list_drivers():
    """Active drivers, for assignment pickers"""
    drivers = User.query.filter_by(role=UserRole.DRIVER, is_active=True) \
                        .order_by(User.first_name, User.last_name).all()
    return jsonify({
        'success': True,
        'drivers': [{
            'id': driver.id,
            'name': driver.full_name,
            'username': driver.username,
            'phone': driver.phone,
            'license_number': driver.license_number,
            'license_expiry': driver.license_expiry.isoformat() if driver.license_expiry else None,
            'is_license_expired': driver.is_license_expired()
        } for driver in drivers]
    })


@users_bp.route('/<user_id>', methods=['GET'])
@self_or_privileged
def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return error_response('User not found', 'NOT_FOUND', 404)
    return jsonify({'success': True, 'user': user.to_dict()})


@users_bp.route('', methods=['POST'])
@admin_required
def create_user():
    data = get_json_body()
    if not data:
        return error_response('JSON data required', 'INVALID_REQUEST', 400)
    field_error = validate_text_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)

    username = (data.get('username') or '').strip()
    password = data.get('password') or ''
    email, email_error = validate_email((data.get('email') or '').strip())
    role, role_error = _parse_role(data.get('role', UserRole.DRIVER.value))
    license_expiry, date_error = _parse_date(data.get('license_expiry'))

    if not USERNAME_PATTERN.match(username):
        return error_response('Username must be 3-30 letters or digits', 'INVALID_USERNAME', 400)
    for error, code in ((email_error, 'INVALID_EMAIL'), (role_error, 'INVALID_ROLE'),
                        (date_error, 'INVALID_DATE')):
        if error:
            return error_response(error, code, 400)
    if len(password) < 6:
        return error_response('Password must be at least 6 characters', 'INVALID_PASSWORD', 400)
    field_error = validate_profile_fields(data)
    if field_error or not data.get('first_name') or not data.get('last_name'):
        return error_response(field_error or 'First and last name are required', 'INVALID_FIELD', 400)

    user = User()
    user.username = username
    user.email = email
    user.role = role
    user.set_password(password)
    user.first_name = data['first_name'].strip()
    user.last_name = data['last_name'].strip()
    user.phone = data.get('phone')
    user.license_number = data.get('license_number')
    user.license_expiry = license_expiry
    user.employee_id = data.get('employee_id') or None

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response('Username, email or employee ID already in use', 'DUPLICATE_DATA', 400)

    log_audit('CREATE', 'User', user.id, {'username': user.username, 'role': user.role.value},
              req=request)

    return jsonify({
        'success': True,
        'message': 'User created successfully',
        'user': user.to_dict()
    }), 201


@users_bp.route('/<user_id>', methods=['PUT'])
@self_or_privileged
def update_user(user_id):
    data = get_json_body()
    if not data:
        return error_response('JSON data required', 'INVALID_REQUEST', 400)

    user = db.session.get(User, user_id)
    if not user:
        return error_response('User not found', 'NOT_FOUND', 404)

    actor = get_current_user()
    if 'role' in data and actor.role != UserRole.ADMIN:
        return error_response('Only administrators can change roles', 'FORBIDDEN_FIELD', 403)
    if 'is_active' in data and actor.role not in STATUS_ROLES:
        return error_response('Only administrators and supervisors can activate or deactivate users',
                              'FORBIDDEN_FIELD', 403)

    field_error = validate_profile_fields(data)
    if field_error:
        return error_response(field_error, 'INVALID_FIELD', 400)
    if data.get('is_active') is False and user.id == actor.id:
        return error_response('You cannot deactivate your own account', 'SELF_DEACTIVATION', 400)

    allowed_fields = list(UPDATABLE_FIELDS)
    if actor.role == UserRole.ADMIN:
        allowed_fields.extend(ADMIN_ONLY_FIELDS)
    if actor.role in STATUS_ROLES:
        allowed_fields.append('is_active')

    changes = {}
    for field in allowed_fields:
        if field not in data:
            continue
        value = data[field]
        if field == 'role':
            value, error = _parse_role(value)
            if error:
                return error_response(error, 'INVALID_ROLE', 400)
        elif field == 'license_expiry':
            value, error = _parse_date(value)
            if error:
                return error_response(error, 'INVALID_DATE', 400)
        elif field == 'email':
            value = value.strip().lower()
        setattr(user, field, value)
        changes[field] = data[field]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response('Username, email or employee ID already in use', 'DUPLICATE_DATA', 400)

    if changes:
        log_audit('UPDATE', 'User', user.id, changes, req=request)

    return jsonify({
        'success': True,
        'message': 'User updated successfully',
        'user': user.to_dict()
    })


@users_bp.route('/<user_id>', methods=['DELETE'])
@admin_required
def deactivate_user(user_id):
    """Soft delete: the account is deactivated, never removed"""
    user = db.session.get(User, user_id)
    if not user:
        return error_response('User not found', 'NOT_FOUND', 404)

    if user.id == get_current_user().id:
        return error_response('You cannot deactivate your own account', 'SELF_DEACTIVATION', 400)

    user.is_active = False
    db.session.commit()

    log_audit('DELETE', 'User', user.id,
              {'username': user.username, 'role': user.role.value, 'reason': 'Deactivated by admin'},
              req=request)

    logger.info(f"User {user.username} deactivated")

    return jsonify({'success': True, 'message': 'User deactivated successfully'})
