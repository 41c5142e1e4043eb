"""Form submission database models.

Stores submissions and their append-only approval history.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Text, Integer, Index, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class FormSubmission(Base):
    """
    One filled-in form and its position in the approval chain.

    Rows are never deleted; ``version`` guards against two approvers
    advancing the same level concurrently.
    """
    __tablename__ = "form_submissions"
    __table_args__ = (
        Index("ix_form_submissions_template_status", "template_id", "status"),
        Index("ix_form_submissions_level_status", "current_level", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    numerical_id = Column(Integer, unique=True, nullable=True)

    # Template reference (tagged: FORM_TEMPLATE or FORM)
    template_kind = Column(String(50), nullable=False, default="FORM_TEMPLATE")
    template_id = Column(Uuid, nullable=False, index=True)
    template_name = Column(String(255), nullable=True)  # snapshot at submission time
    form_numerical_id = Column(Integer, nullable=True, index=True)

    # Tenant scoping
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    plant_id = Column(Uuid, ForeignKey("plants.id"), nullable=True, index=True)
    submitted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assignment_id = Column(Uuid, nullable=True, index=True)

    # Payload
    data = Column(JSON, nullable=False, default=dict)
    files = Column(JSON, nullable=False, default=list)

    # Workflow state
    status = Column(String(50), nullable=False, default="PENDING_APPROVAL", index=True)
    current_level = Column(Integer, nullable=False, default=1)
    version = Column(Integer, nullable=False, default=1)

    # Decision tracking
    submitted_at = Column(DateTime, nullable=True, index=True)  # unset while DRAFT
    approved_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    rejected_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    plant = relationship("Plant")
    submitter = relationship("User", foreign_keys=[submitted_by])
    approver = relationship("User", foreign_keys=[approved_by])
    rejecter = relationship("User", foreign_keys=[rejected_by])
    history = relationship(
        "SubmissionHistory",
        back_populates="submission",
        order_by="SubmissionHistory.position",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<FormSubmission {self.numerical_id} [{self.status} L{self.current_level}]>"


class SubmissionHistory(Base):
    """
    One approve/reject action on a submission.

    Rows are only ever inserted. ``position`` keeps insertion order even
    when two actions share a timestamp.
    """
    __tablename__ = "submission_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id = Column(Uuid, ForeignKey("form_submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    level = Column(Integer, nullable=False)
    approver_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(50), nullable=False)  # APPROVED, REJECTED, SUBMITTED
    comments = Column(Text, nullable=True)
    actioned_at = Column(DateTime, default=datetime.utcnow, index=True)

    # Relationships
    submission = relationship("FormSubmission", back_populates="history")
    approver = relationship("User")

    def __repr__(self) -> str:
        return f"<SubmissionHistory L{self.level} {self.status}>"
