"""
Audit event model for the append-only audit trail.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Enum
from sqlalchemy.sql import func

from wgportal.core.database import Base


class AuditEventType(str, enum.Enum):
    """Audited event taxonomy."""
    LOGIN = "LOGIN"
    PEER_CLAIM = "PEER_CLAIM"
    PEER_ASSIGN = "PEER_ASSIGN"
    PEER_DOWNLOAD = "PEER_DOWNLOAD"
    PEER_REVOKE = "PEER_REVOKE"
    RESET_PASSWORD = "RESET_PASSWORD"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    LIMIT_CHANGE = "LIMIT_CHANGE"
    USER_DEACTIVATE = "USER_DEACTIVATE"
    IMPORT = "IMPORT"


class AuditEvent(Base):
    """Immutable audit log entry. Written once, never updated or deleted."""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    event_type = Column(
        Enum(AuditEventType, name="audit_event_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True,
    )

    # Who performed the action (None for the static admin key or system jobs)
    actor_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # What was acted on
    subject_table = Column(String(50), nullable=False)
    subject_id = Column(String(36), nullable=True, index=True)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
