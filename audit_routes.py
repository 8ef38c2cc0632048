from datetime import datetime, timedelta
from flask import Blueprint, request, jsonify
from sqlalchemy import func, desc, or_
from models import AuditLog, User, db
from utils.access_control import admin_required
from utils.errors import error_response
from utils.security import sanitize_audit_record
from timezone_utils import get_local_time_naive

# Read-only reporting over the audit trail; nothing here writes or deletes rows
audit_bp = Blueprint('audit', __name__)


def _parse_datetime(value):
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _serialize(log):
    sanitized = sanitize_audit_record(log)
    return {
        'id': log.id,
        'user_id': log.user_id,
        'user': {
            'id': log.user.id,
            'name': log.user.full_name,
            'role': log.user.role.value
        } if log.user else None,
        'action': log.action,
        'entity_type': log.entity_type,
        'entity_id': log.entity_id,
        'details': sanitized['details'],
        'ip_address': sanitized['ip_address'],
        'user_agent': log.user_agent,
        'created_at': log.created_at.isoformat() if log.created_at else None
    }


@audit_bp.route('', methods=['GET'])
@admin_required
def list_audit_logs():
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = min(max(request.args.get('limit', 20, type=int) or 20, 1), 100)

    query = AuditLog.query
    for field in ('action', 'entity_type', 'user_id', 'entity_id'):
        value = request.args.get(field)
        if value:
            query = query.filter(getattr(AuditLog, field) == value)

    search = (request.args.get('search') or '').strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            AuditLog.entity_id.ilike(pattern),
            AuditLog.details.ilike(pattern)
        ))

    start_date = _parse_datetime(request.args.get('start_date'))
    end_date = _parse_datetime(request.args.get('end_date'))
    if (request.args.get('start_date') and start_date is None) or \
            (request.args.get('end_date') and end_date is None):
        return error_response('Invalid date, use ISO 8601', 'INVALID_DATE', 400)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    pagination = query.order_by(desc(AuditLog.created_at), desc(AuditLog.id)).paginate(
        page=page, per_page=limit, error_out=False)

    return jsonify({
        'success': True,
        'logs': [_serialize(log) for log in pagination.items],
        'pagination': {
            'current_page': page,
            'total_pages': pagination.pages,
            'total_logs': pagination.total,
            'per_page': limit
        }
    })


@audit_bp.route('/stats', methods=['GET'])
@admin_required
def audit_stats():
    """Today's action count and the most active users of the last 7 days"""
    now = get_local_time_naive()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    today_actions = AuditLog.query.filter(AuditLog.created_at >= start_of_day).count()

    action_count = func.count(AuditLog.id).label('action_count')
    top_users = db.session.query(User, action_count) \
        .join(AuditLog, AuditLog.user_id == User.id) \
        .filter(AuditLog.created_at >= now - timedelta(days=7)) \
        .group_by(User.id) \
        .order_by(desc(action_count)) \
        .limit(5).all()

    return jsonify({
        'success': True,
        'today_actions': today_actions,
        'top_users': [{
            'user_id': user.id,
            'name': user.full_name,
            'action_count': count
        } for user, count in top_users]
    })
