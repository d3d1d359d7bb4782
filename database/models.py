"""
Database models for the AgriModel research platform.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Date, Text,
    ForeignKey, JSON, Index, TypeDecorator, func, text
)
from sqlalchemy.orm import declarative_base, relationship
import enum

Base = declarative_base()


# ============================================================================
# Custom Type Decorator for Enum Values
# ============================================================================

class EnumValue(TypeDecorator):
    """Type decorator to ensure enum values (not names) are stored."""
    impl = String
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
    SUPER_ADMIN = "super_admin"
    COLLEGE_ADMIN = "college_admin"
    PROFESSOR = "professor"
    STUDENT = "student"
    DATA_SCIENTIST = "data_scientist"


class ApprovalStatus(str, enum.Enum):
    """Approval lifecycle shared by users and colleges."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubmissionStatus(str, enum.Enum):
    """Data submission lifecycle."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


# ============================================================================
# Tenancy and identity
# ============================================================================

class College(Base):
    """College/Institution model for multi-tenant support."""
    __tablename__ = "colleges"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    college_code = Column(String(50), unique=True, index=True, nullable=False)
    address = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    status = Column(EnumValue(ApprovalStatus, 20), default=ApprovalStatus.PENDING, nullable=False)
    created_by = Column(Integer, nullable=True)  # users.id of the super_admin or registering admin
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # The database refuses to delete a college that still has users
    users = relationship("User", back_populates="college", passive_deletes="all")

    __table_args__ = (
        Index('idx_college_status', 'status'),
    )


class User(Base):
    """Platform account. Every non-super_admin belongs to at most one college."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    user_code = Column(String(100), unique=True, nullable=True)  # e.g. student_1700000000000
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lower-cased
    password_hash = Column(String(255), nullable=False)
    role = Column(EnumValue(UserRole, 30), nullable=False)
    status = Column(EnumValue(ApprovalStatus, 20), default=ApprovalStatus.PENDING, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    college_id = Column(Integer, ForeignKey("colleges.id", ondelete="RESTRICT"), nullable=True)
    department = Column(String(255), nullable=True)
    profile_image_url = Column(Text, nullable=True)
    phone_number = Column(String(50), nullable=True)
    bio = Column(Text, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    college = relationship("College", back_populates="users")

    __table_args__ = (
        Index('idx_user_role', 'role'),
        Index('idx_user_status', 'status'),
        Index('idx_user_college', 'college_id'),
    )


# ============================================================================
# Research domain
# ============================================================================

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(100), nullable=True)
    status = Column(String(50), default="PLANNING", nullable=False)  # free-form lifecycle
    department = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    team_members = Column(JSON, default=list, nullable=False)  # list of user ids
    configuration = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    creator = relationship("User", foreign_keys=[created_by])
    sensors = relationship("Sensor", back_populates="project", passive_deletes=True)

    __table_args__ = (
        Index('idx_project_creator', 'created_by'),
        Index('idx_project_status', 'status'),
    )


class DataSubmission(Base):
    """Field data submitted by a student, reviewed by professors and admins."""
    __tablename__ = "data_submissions"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    submission_type = Column(String(100), default="comprehensive_research", nullable=False)
    data_content = Column(JSON, default=dict, nullable=False)
    image_urls = Column(JSON, default=list, nullable=False)
    video_urls = Column(JSON, default=list, nullable=False)
    file_urls = Column(JSON, default=list, nullable=False)
    audio_urls = Column(JSON, default=list, nullable=False)
    status = Column(EnumValue(SubmissionStatus, 20), default=SubmissionStatus.PENDING, nullable=False)
    quality_score = Column(Float, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        Index('idx_submission_student', 'student_id'),
        Index('idx_submission_project', 'project_id'),
        Index('idx_submission_status', 'status'),
    )


# At most one live draft per (student, project). NULL project ids never collide
# in a plain unique index, so the project is coalesced to 0.
Index(
    'uq_submission_draft',
    DataSubmission.student_id,
    func.coalesce(DataSubmission.project_id, 0),
    unique=True,
    postgresql_where=text("status = 'draft'"),
    sqlite_where=text("status = 'draft'"),
)


class Sensor(Base):
    __tablename__ = "sensors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    location = Column(JSON, nullable=True)
    configuration = Column(JSON, default=dict, nullable=False)
    status = Column(String(50), default="active", nullable=False)
    last_reading = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="sensors")
    readings = relationship("SensorReading", back_populates="sensor", passive_deletes=True)

    __table_args__ = (
        Index('idx_sensor_project', 'project_id'),
    )


class SensorReading(Base):
    __tablename__ = "sensor_readings"

    id = Column(Integer, primary_key=True, index=True)
    sensor_id = Column(Integer, ForeignKey("sensors.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    value = Column(Float, nullable=True)
    unit = Column(String(50), nullable=True)
    temperature = Column(Float, nullable=True)
    humidity = Column(Float, nullable=True)
    soil_moisture = Column(Float, nullable=True)
    ph_level = Column(Float, nullable=True)
    light_intensity = Column(Float, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)  # 'metadata' is reserved on declarative classes
    is_valid = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sensor = relationship("Sensor", back_populates="readings")

    __table_args__ = (
        Index('idx_reading_sensor_time', 'sensor_id', 'timestamp'),
    )


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(100), nullable=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)
    file_url = Column(Text, nullable=True)
    status = Column(EnumValue(ReportStatus, 20), default=ReportStatus.DRAFT, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        Index('idx_report_creator', 'created_by'),
        Index('idx_report_status', 'status'),
    )


class ResearchData(Base):
    __tablename__ = "research_data"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    data_type = Column(String(100), nullable=False)
    extra_metadata = Column("metadata", JSON, nullable=True)
    image_urls = Column(JSON, default=list, nullable=False)
    video_urls = Column(JSON, default=list, nullable=False)
    audio_urls = Column(JSON, default=list, nullable=False)
    file_urls = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        Index('idx_research_project', 'project_id'),
    )


class MLModel(Base):
    __tablename__ = "ml_models"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(100), nullable=True)
    framework = Column(String(100), nullable=True)
    status = Column(String(50), default="DRAFT", nullable=False)
    version = Column(String(50), default="1.0.0", nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    hyperparameters = Column(JSON, default=dict, nullable=False)
    training_config = Column(JSON, default=dict, nullable=False)
    metrics = Column(JSON, default=dict, nullable=False)
    deployment_config = Column(JSON, default=dict, nullable=False)
    accuracy = Column(Float, nullable=True)
    model_path = Column(Text, nullable=True)
    trained_at = Column(DateTime, nullable=True)
    deployed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    creator = relationship("User", foreign_keys=[created_by])


# ============================================================================
# Communication
# ============================================================================

class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=True)
    type = Column(String(50), default="direct", nullable=False)
    participant_ids = Column(JSON, default=list, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_message_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    messages = relationship("Message", back_populates="conversation", passive_deletes=True)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    message_type = Column(String(50), default="text", nullable=False)
    attachments = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index('idx_message_conversation', 'conversation_id', 'created_at'),
    )


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(50), default="general", nullable=False)
    priority = Column(String(20), default="normal", nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    target_roles = Column(JSON, default=list, nullable=False)  # empty means everyone
    target_colleges = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Discussion(Base):
    __tablename__ = "discussions"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String(100), nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_pinned = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    replies = relationship("DiscussionReply", back_populates="discussion", passive_deletes=True)


class DiscussionReply(Base):
    __tablename__ = "discussion_replies"

    id = Column(Integer, primary_key=True, index=True)
    discussion_id = Column(Integer, ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False)
    parent_reply_id = Column(Integer, ForeignKey("discussion_replies.id", ondelete="CASCADE"), nullable=True)
    content = Column(Text, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    attachments = Column(JSON, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    discussion = relationship("Discussion", back_populates="replies")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), default="info", nullable=False)
    related_type = Column(String(50), nullable=True)
    related_id = Column(Integer, nullable=True)
    action_url = Column(Text, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_notification_user_read', 'user_id', 'is_read'),
    )


# ============================================================================
# Audit
# ============================================================================

class AuditLog(Base):
    """Audit log for approvals and other sensitive actions."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)  # e.g. "user_approved", "submission_rejected"
    resource_type = Column(String(50), nullable=True)  # e.g. "user", "college", "data_submission"
    resource_id = Column(String(100), nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(String(500), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_user', 'user_id'),
        Index('idx_audit_action', 'action'),
    )
