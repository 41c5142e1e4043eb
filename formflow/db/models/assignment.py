"""Template assignment database model.

An assignment asks one employee to fill in one template. It moves from
PENDING to FILLED when the employee's submission is created against it.
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class AssignmentStatus(str, Enum):
    PENDING = "PENDING"
    FILLED = "FILLED"


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Template reference (tagged like FormSubmission)
    template_kind = Column(String(50), nullable=False)
    template_id = Column(Uuid, nullable=False, index=True)

    employee_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    plant_id = Column(Uuid, ForeignKey("plants.id"), nullable=True, index=True)

    due_date = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=AssignmentStatus.PENDING.value, index=True)
    submission_id = Column(Uuid, ForeignKey("form_submissions.id", ondelete="SET NULL"), nullable=True)
    filled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = relationship("User", foreign_keys=[employee_id])
    assigner = relationship("User", foreign_keys=[assigned_by])
    submission = relationship("FormSubmission", foreign_keys=[submission_id])

    def __repr__(self) -> str:
        return f"<Assignment {self.template_kind}:{self.template_id} -> {self.employee_id} [{self.status}]>"
