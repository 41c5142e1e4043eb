"""Notification history model."""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class NotificationChannel(str, Enum):
    """Available notification channels."""
    EMAIL = "email"


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    SUBMISSION_PENDING = "submission_pending"      # first approver
    LEVEL_ADVANCED = "level_advanced"              # next approver
    SUBMISSION_APPROVED = "submission_approved"    # submitter
    SUBMISSION_REJECTED = "submission_rejected"    # submitter
    STATUS_CHANGED = "status_changed"              # plant admin
    SUBMISSION_RECEIVED = "submission_received"    # plant admin
    FORM_CREATED = "form_created"                  # every approver of a new form


class NotificationLog(Base):
    """
    Log of sent notifications for audit and debugging.
    """
    __tablename__ = "notification_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True)

    # Notification details
    channel = Column(String(50), nullable=False)
    event_type = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)

    # Related entities
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submission_id = Column(Uuid, ForeignKey("form_submissions.id", ondelete="SET NULL"), nullable=True, index=True)

    # Payload
    subject = Column(String(512), nullable=True)
    body = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)

    # Status
    status = Column(String(50), nullable=False, default="pending")  # pending, sent, failed, skipped
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, default=0)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User")
    submission = relationship("FormSubmission")

    def __repr__(self) -> str:
        return f"<NotificationLog {self.event_type} to {self.recipient}>"
