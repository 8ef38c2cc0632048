import json
import uuid
from enum import Enum
from app import db
from sqlalchemy import Index
from sqlalchemy.ext.hybrid import hybrid_property
from werkzeug.security import generate_password_hash, check_password_hash
from timezone_utils import get_local_time_naive


# Enums for better data integrity
class UserRole(Enum):
    ADMIN = 'admin'
    SUPERVISOR = 'supervisor'
    DRIVER = 'driver'
    MECHANIC = 'mechanic'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(100), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.DRIVER, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Profile information
    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    phone = db.Column(db.String(20))
    profile_picture = db.Column(db.Text)
    address = db.Column(db.Text)
    notes = db.Column(db.Text)
    emergency_contact_name = db.Column(db.String(100))
    emergency_contact_phone = db.Column(db.String(20))

    # Driver specific
    license_number = db.Column(db.String(20))
    license_expiry = db.Column(db.Date)
    employee_id = db.Column(db.String(20), unique=True)

    last_login = db.Column(db.DateTime)

    # Audit fields
    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    @hybrid_property
    def full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.username

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def is_license_expired(self):
        if not self.license_expiry:
            return None
        return get_local_time_naive().date() > self.license_expiry

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role.value,
            'is_active': self.is_active,
            'license_number': self.license_number,
            'license_expiry': self.license_expiry.isoformat() if self.license_expiry else None,
            'employee_id': self.employee_id,
            'emergency_contact_name': self.emergency_contact_name,
            'emergency_contact_phone': self.emergency_contact_phone,
            'address': self.address,
            'notes': self.notes,
            'last_login': self.last_login.isoformat() if self.last_login else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<User {self.username}>'


class AuditLog(db.Model):
    """Append-only record of a state-changing action. Rows are never updated."""
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    # Nullable: system-initiated actions have no actor
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True, index=True)

    # Action details
    action = db.Column(db.String(50), nullable=False, index=True)
    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.String(50))
    details = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, nullable=False, index=True)

    # Relationships
    user = db.relationship('User', backref=db.backref('audit_logs', lazy='dynamic'))

    __table_args__ = (
        Index('idx_audit_date_user', 'created_at', 'user_id'),
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def get_details(self):
        if not self.details:
            return {}
        try:
            details = json.loads(self.details)
        except (TypeError, ValueError):
            return {}
        return details if isinstance(details, dict) else {}

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id}>'
