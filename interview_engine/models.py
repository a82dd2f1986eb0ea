# interview_engine/models.py
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    String,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    JSON,
    Index,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from interview_engine.db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """
    Naive UTC timestamp. All invitation timestamps are stored naive-UTC so
    SQLite and PostgreSQL compare them the same way.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PatientInvitation(Base):
    __tablename__ = "patient_invitations"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=generate_uuid
    )
    physician_id: Mapped[str] = mapped_column(String, nullable=False)
    patient_email: Mapped[str] = mapped_column(String, nullable=False)
    patient_name: Mapped[str | None] = mapped_column(String, nullable=True)

    token_hash: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    form_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    patient_background: Mapped[str | None] = mapped_column(Text, nullable=True)
    interview_guidance: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    sessions: Mapped[list["InvitationSession"]] = relationship(
        "InvitationSession", back_populates="invitation", cascade="all, delete-orphan"
    )


class InvitationSession(Base):
    __tablename__ = "invitation_sessions"

    id: Mapped[str] = mapped_column(
        String, primary_key=True, default=generate_uuid
    )
    invitation_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("patient_invitations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_token_hash: Mapped[str] = mapped_column(
        String(128), nullable=False, unique=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(80), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    invitation: Mapped[PatientInvitation] = relationship(
        "PatientInvitation", back_populates="sessions"
    )


class InvitationAuditLog(Base):
    __tablename__ = "invitation_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invitation_id: Mapped[str | None] = mapped_column(
        String,
        ForeignKey("patient_invitations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(80), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class InvitationRateLimit(Base):
    __tablename__ = "invitation_rate_limits"

    bucket_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    window_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_invitation_rate_limits_expires_at", "expires_at"),
    )
