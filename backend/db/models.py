from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    DateTime, UniqueConstraint, CheckConstraint, text,
)
from sqlalchemy.orm import relationship
from db.database import Base
from utils.datetime_utils import utcnow


ROLES = ("ADMIN", "TRAINER", "CLIENT")
REVIEW_STATUSES = ("PENDING", "APPROVED", "REJECTED")
COMPLETION_STATUSES = ("DONE", "MISSED")
QR_STATUSES = ("PENDING", "APPROVED", "REJECTED", "EXPIRED")
QR_FLOWS = ("DEVICE_APPROVAL", "SELF_SHARE")
NOTIFICATION_TYPES = (
    "NEW_MESSAGE",
    "MISSED_WORKOUT",
    "WORKOUT_DONE",
    "NEW_PLAN",
    "NEW_CLIENT",
    "TRAINER_CHANGE_REQUEST",
    "TRAINER_CHANGE_DECIDED",
    "TRAINER_APPROVED",
    "TRAINER_REJECTED",
    "ALERT",
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(Text, unique=True, nullable=False)
    email = Column(Text, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="CLIENT")  # ADMIN | TRAINER | CLIENT
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    avatar_url = Column(Text)
    bio = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    token_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    trainer_profile = relationship(
        "TrainerProfile", back_populates="user", uselist=False, foreign_keys="TrainerProfile.user_id"
    )
    client_profile = relationship("ClientProfile", back_populates="user", uselist=False)
    notifications = relationship("Notification", back_populates="recipient", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in ((self.first_name or "").strip(), (self.last_name or "").strip()) if part)
        return full or self.username


class TrainerProfile(Base):
    """A user's application to hold the TRAINER role, and its review state."""

    __tablename__ = "trainer_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    certification = Column(Text)
    specialties = Column(Text)  # JSON array
    avatar_url = Column(Text)
    document_urls = Column(Text)  # JSON array
    validated_by_admin = Column(Boolean, nullable=False, default=False)
    validated_at = Column(DateTime)
    review_status = Column(Text, nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED
    rejection_reason = Column(Text)
    rejected_at = Column(DateTime)
    reviewed_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    rating = Column(Float, nullable=False, default=0.0)
    hourly_rate = Column(Float)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="trainer_profile", foreign_keys=[user_id])
    clients = relationship("ClientProfile", back_populates="trainer")


class ClientProfile(Base):
    __tablename__ = "client_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=True, index=True)
    joined_at = Column(DateTime, default=utcnow)
    goals = Column(Text)
    injuries = Column(Text)
    preferences = Column(Text)
    current_weight = Column(Float)  # kg
    current_muscle_mass = Column(Float)  # percentage
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="client_profile")
    trainer = relationship("TrainerProfile", back_populates="clients")


class TrainerChangeRequest(Base):
    __tablename__ = "trainer_change_requests"
    __table_args__ = (
        # At most one open request per client.
        Index(
            "uq_trainer_change_requests_pending_client",
            "client_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
        CheckConstraint(
            "current_trainer_id IS NULL OR current_trainer_id != requested_trainer_id",
            name="ck_trainer_change_requests_distinct_trainer",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("client_profiles.id"), nullable=False, index=True)
    current_trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=True)
    requested_trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=False)
    reason = Column(Text)
    status = Column(Text, nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED
    decided_by_admin_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    client = relationship("ClientProfile", foreign_keys=[client_id])
    current_trainer = relationship("TrainerProfile", foreign_keys=[current_trainer_id])
    requested_trainer = relationship("TrainerProfile", foreign_keys=[requested_trainer_id])


class TrainingPlan(Base):
    __tablename__ = "training_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("client_profiles.id"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    frequency_per_week = Column(Integer, nullable=False)  # 3 | 4 | 5
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sessions = relationship(
        "TrainingSession",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="(TrainingSession.day_of_week, TrainingSession.order_index, TrainingSession.id)",
    )


class TrainingSession(Base):
    __tablename__ = "training_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("training_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sun .. 6=Sat
    order_index = Column(Integer, nullable=False, default=0)
    notes = Column(Text)
    exercises = Column(Text)  # JSON array of {name, sets, reps, notes, media_url}
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    plan = relationship("TrainingPlan", back_populates="sessions")


class CompletionLog(Base):
    __tablename__ = "completion_logs"
    __table_args__ = (
        UniqueConstraint("client_id", "session_id", "date", name="uq_completion_logs_client_session_date"),
        Index("ix_completion_logs_trainer_date", "trainer_id", "date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("client_profiles.id"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=False)
    # Plain references: logs outlive the plan/session they point at.
    plan_id = Column(Integer, nullable=False)
    session_id = Column(Integer, nullable=False, index=True)
    date = Column(DateTime, nullable=False)  # always UTC midnight
    status = Column(Text, nullable=False)  # DONE | MISSED
    reason = Column(Text)
    proof_image = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class QrLoginToken(Base):
    __tablename__ = "qr_login_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(Text, nullable=False, unique=True)
    flow = Column(Text, nullable=False)  # DEVICE_APPROVAL | SELF_SHARE
    status = Column(Text, nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED | EXPIRED
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(Text, nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_recipient_created", "recipient_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(Text, nullable=False)
    payload = Column(Text)  # JSON object
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    read_at = Column(DateTime)

    recipient = relationship("User", back_populates="notifications")


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("client_id", "trainer_id", name="uq_conversations_client_trainer"),
        CheckConstraint("participant_a_id != participant_b_id", name="ck_conversations_two_participants"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("client_profiles.id"), nullable=False)
    trainer_id = Column(Integer, ForeignKey("trainer_profiles.id"), nullable=False)
    participant_a_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    participant_b_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    last_message_at = Column(DateTime, index=True)
    last_message_text = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    messages = relationship("Message", back_populates="conversation", cascade="all, delete-orphan")

    @property
    def participant_ids(self) -> list[int]:
        return [int(self.participant_a_id), int(self.participant_b_id)]


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_conversation_created", "conversation_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    attachments = Column(Text)  # JSON array of URLs
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")


class BodyMetric(Base):
    __tablename__ = "body_metrics"
    __table_args__ = (Index("ix_body_metrics_user_recorded", "user_id", "recorded_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    weight = Column(Float)
    muscle_mass = Column(Float)
    completion_log_id = Column(Integer)
    recorded_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    target_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(Text, nullable=False)
    details_json = Column(Text)
    success = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class RateLimitAuditEvent(Base):
    __tablename__ = "rate_limit_audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(Text, nullable=False)
    scope_key = Column(Text, nullable=False)
    blocked = Column(Boolean, nullable=False, default=False)
    retry_after_seconds = Column(Integer)
    user_id = Column(Integer, nullable=True)
    ip_address = Column(Text)
    details_json = Column(Text)
    created_at = Column(DateTime, default=utcnow)
