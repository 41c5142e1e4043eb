"""Form definitions that submissions are filled against.

Two template variants exist side by side: the older ``FormTemplate``
(assigned to employees, flow stored as ``workflow``) and ``Form``
(published by plant admins, flow stored as ``approval_flow``). A submission
references exactly one of them through ``TemplateRef``.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class FormTemplate(Base):
    __tablename__ = "form_templates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    plant_id = Column(Uuid, ForeignKey("plants.id"), nullable=True, index=True)
    template_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    sections = Column(JSON, nullable=False, default=list)

    # Approval flow: [{"level": 1, "approver_id": "...", "name": "...", "description": ""}]
    workflow = Column(JSON, nullable=False, default=list)

    status = Column(String(50), nullable=False, default="PUBLISHED")
    is_active = Column(Boolean, default=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plant = relationship("Plant")

    @property
    def display_name(self) -> str:
        return self.template_name

    @property
    def flow_definition(self) -> list:
        return self.workflow or []

    def __repr__(self) -> str:
        return f"<FormTemplate {self.template_name}>"


class Form(Base):
    __tablename__ = "forms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    numerical_id = Column(Integer, unique=True, nullable=True)
    form_code = Column(String(100), nullable=True, index=True)  # human readable form id
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    plant_id = Column(Uuid, ForeignKey("plants.id"), nullable=True, index=True)
    form_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    fields = Column(JSON, nullable=False, default=list)
    sections = Column(JSON, nullable=False, default=list)

    # Approval flow: [{"level": 1, "approver_id": "...", "name": "...", "description": ""}]
    approval_flow = Column(JSON, nullable=False, default=list)

    status = Column(String(50), nullable=False, default="DRAFT", index=True)  # DRAFT, PUBLISHED, APPROVED, ARCHIVED
    is_template = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    archived_at = Column(DateTime, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plant = relationship("Plant")
    creator = relationship("User", foreign_keys=[created_by])

    @property
    def display_name(self) -> str:
        return self.form_name

    @property
    def flow_definition(self) -> list:
        return self.approval_flow or []

    def __repr__(self) -> str:
        return f"<Form {self.form_name} [{self.status}]>"
