"""
Database models for the student clearance system.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text,
    ForeignKey, JSON, Index, Table, TypeDecorator, UniqueConstraint, event
)
from sqlalchemy.orm import declarative_base, relationship
import enum

Base = declarative_base()


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String(50)
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enum_class = enum_class

    def process_bind_param(self, value, dialect):
        """Convert enum to its value when writing to database."""
        if value is None:
            return None
        if isinstance(value, enum.Enum):
            return value.value
        return value

    def process_result_value(self, value, dialect):
        """Convert database value back to enum when reading."""
        if value is None:
            return None
        if isinstance(value, str):
            try:
                return self.enum_class(value)
            except ValueError:
                return value
        return value


# ============================================================================
# Enums - Must be defined before models that use them
# ============================================================================

class UserRole(str, enum.Enum):
    """User roles for authorization."""
    STUDENT = "student"
    OFFICER = "officer"
    STUDENT_AFFAIRS = "student-affairs"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    """User account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ClearanceStatus(str, enum.Enum):
    """Aggregate clearance state of a student."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"


class DepartmentStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_REVIEW = "under-review"


class RequirementStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNDER_REVIEW = "under-review"


class DocumentType(str, enum.Enum):
    """Kinds of documents a requirement can ask for."""
    TRANSCRIPT = "transcript"
    PAYMENT_RECEIPT = "payment-receipt"
    LIBRARY_CLEARANCE = "library-clearance"
    STUDENT_ID = "student-id"
    MEDICAL_CERTIFICATE = "medical-certificate"
    CHARACTER_REFERENCE = "character-reference"
    PROJECT_REPORT = "project-report"
    OTHER = "other"


class DocumentStatus(str, enum.Enum):
    """Document review lifecycle."""
    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"


class RejectionReason(str, enum.Enum):
    NOT_CLEAR = "not-clear"
    WRONG_TYPE = "wrong-type"
    EXPIRED = "expired"
    INCOMPLETE = "incomplete"
    OTHER = "other"


class RecordType(str, enum.Enum):
    """Clearance audit trail entry types."""
    DOCUMENT_UPLOAD = "document-upload"
    DOCUMENT_REVIEW = "document-review"
    DOCUMENT_APPROVAL = "document-approval"
    DOCUMENT_REJECTION = "document-rejection"
    DEPARTMENT_CLEARANCE = "department-clearance"
    FINAL_CLEARANCE = "final-clearance"
    SYSTEM_ACTION = "system-action"


class RecordStatus(str, enum.Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TokenPurpose(str, enum.Enum):
    """Single-use emailed token kinds."""
    MAGIC_LINK = "magic-link"
    PASSWORD_RESET = "password-reset"


# ============================================================================
# Models
# ============================================================================

department_requirements = Table(
    "department_requirements",
    Base.metadata,
    Column("department_id", Integer, ForeignKey("departments.id", ondelete="CASCADE"), primary_key=True),
    Column("requirement_id", Integer, ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True),
)


class Department(Base):
    """University department that signs off on student clearance."""
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    code = Column(String(20), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(EnumValue(DepartmentStatus), default=DepartmentStatus.ACTIVE, nullable=False)
    clearance_order = Column(Integer, default=1, nullable=False)  # Rank in sequential clearance
    officer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_department_officer"),
        nullable=True,
    )
    student_affairs_officer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_department_student_affairs"),
        nullable=True,
    )

    # Officer self-provisioning; a limit of 0/None means unlimited
    can_add_officers = Column(Boolean, default=False, nullable=False)
    officer_creation_limit = Column(Integer, nullable=True)
    officers_created = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    officer = relationship("User", foreign_keys=[officer_id], post_update=True)
    student_affairs_officer = relationship("User", foreign_keys=[student_affairs_officer_id], post_update=True)
    members = relationship("User", back_populates="department", foreign_keys="User.department_id")
    requirements = relationship("Requirement", secondary=department_requirements, back_populates="departments")

    __table_args__ = (
        Index('idx_department_status', 'status'),
        Index('idx_department_order', 'clearance_order'),
    )


class User(Base):
    """User model for authentication and authorization."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(EnumValue(UserRole), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    matric_no = Column(String(50), unique=True, nullable=True, index=True)  # Students only
    phone = Column(String(50), nullable=True)

    # Status flags
    status = Column(EnumValue(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    clearance_status = Column(EnumValue(ClearanceStatus), nullable=True)  # Students only

    # Credentials; empty until set through the magic link
    hashed_password = Column(String(255), default="", nullable=False)
    has_set_password = Column(Boolean, default=False, nullable=False)
    password_set_at = Column(DateTime, nullable=True)
    is_locked = Column(Boolean, default=False, nullable=False)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    department = relationship("Department", back_populates="members", foreign_keys=[department_id])
    creator = relationship("User", remote_side=[id], foreign_keys=[created_by])
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_user_role', 'role'),
        Index('idx_user_department', 'department_id'),
        Index('idx_user_created', 'created_at'),
    )


class Requirement(Base):
    """A document a department needs before it clears a student."""
    __tablename__ = "requirements"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    document_type = Column(EnumValue(DocumentType), default=DocumentType.OTHER, nullable=False)
    is_required = Column(Boolean, default=True, nullable=False)
    status = Column(EnumValue(RequirementStatus), default=RequirementStatus.ACTIVE, nullable=False)
    file_types = Column(JSON, nullable=False, default=lambda: ["pdf", "docx"])
    max_file_size_mb = Column(Integer, default=10, nullable=False)
    display_order = Column(Integer, default=1, nullable=False)
    instructions = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    departments = relationship("Department", secondary=department_requirements, back_populates="requirements")

    __table_args__ = (
        Index('idx_requirement_status', 'status'),
    )


class Document(Base):
    """One uploaded version of a student's document for a requirement."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String(255), nullable=False)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="CASCADE"), nullable=False)
    requirement_id = Column(Integer, ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False)
    storage_path = Column(String(512), nullable=False)  # s3://bucket/key or local path
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(20), nullable=False)
    status = Column(EnumValue(DocumentStatus), default=DocumentStatus.PENDING, nullable=False)

    # Review
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    review_notes = Column(Text, nullable=True)
    rejection_reason = Column(EnumValue(RejectionReason), nullable=True)
    custom_rejection_reason = Column(Text, nullable=True)

    # Versioning: one is_latest row per (student, requirement)
    version = Column(Integer, default=1, nullable=False)
    is_latest = Column(Boolean, default=True, nullable=False)

    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    student = relationship("User", foreign_keys=[student_id])
    department = relationship("Department")
    requirement = relationship("Requirement")
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_id])

    __table_args__ = (
        Index('idx_document_student', 'student_id'),
        Index('idx_document_department', 'department_id'),
        Index('idx_document_status', 'status'),
        Index('idx_document_latest', 'student_id', 'requirement_id', 'is_latest'),
        UniqueConstraint('student_id', 'requirement_id', 'version', name='uq_document_version'),
        Index('idx_document_created', 'created_at'),
    )


class ClearanceRecord(Base):
    """Append-only audit trail of clearance actions."""
    __tablename__ = "clearance_records"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True)
    record_type = Column(EnumValue(RecordType), nullable=False)
    status = Column(EnumValue(RecordStatus), default=RecordStatus.SUCCESS, nullable=False)
    action_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True)
    requirement_id = Column(Integer, ForeignKey("requirements.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)  # Free-form metadata ('metadata' is reserved)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    student = relationship("User", foreign_keys=[student_id])
    action_by = relationship("User", foreign_keys=[action_by_id])
    department = relationship("Department")

    __table_args__ = (
        Index('idx_record_student', 'student_id'),
        Index('idx_record_type', 'record_type'),
    )


@event.listens_for(ClearanceRecord, "before_update")
def _reject_record_update(mapper, connection, target):
    raise ValueError("Clearance records are append-only")


class AuthToken(Base):
    """Issued magic-link and password-reset tokens (single use)."""
    __tablename__ = "auth_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(EnumValue(TokenPurpose), nullable=False)
    token_hash = Column(String(255), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_auth_token_user', 'user_id', 'purpose'),
    )


class UserSession(Base):
    """Server-side session behind the HTTP-only auth cookie."""
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_hash = Column(String(255), unique=True, index=True, nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    last_activity = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index('idx_session_user', 'user_id'),
    )


class AuditLog(Base):
    """Audit log for security and compliance."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)  # e.g., "login", "user_create", "department_delete"
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(100), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_action', 'action'),
    )
