"""Submission schemas shared by the submissions and approvals routers."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from formflow.core.approval.states import SubmissionStatus
from formflow.core.templates import TemplateVariant


class HistoryEntryResponse(BaseModel):
    level: int
    approver_id: Optional[UUID]
    status: str
    comments: Optional[str]
    actioned_at: datetime

    class Config:
        from_attributes = True


class SubmissionResponse(BaseModel):
    id: UUID
    numerical_id: Optional[int]
    template_kind: str
    template_id: UUID
    template_name: Optional[str]
    form_numerical_id: Optional[int]
    company_id: Optional[UUID]
    plant_id: Optional[UUID]
    submitted_by: Optional[UUID]
    assignment_id: Optional[UUID] = None
    data: Dict[str, Any]
    files: List[Any]
    status: str
    current_level: int
    submitted_at: Optional[datetime]
    approved_by: Optional[UUID]
    approved_at: Optional[datetime]
    rejected_by: Optional[UUID]
    rejected_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    approval_history: List[HistoryEntryResponse] = Field(default_factory=list, validation_alias="history")

    class Config:
        from_attributes = True
        populate_by_name = True


class AssignedSubmissionResponse(SubmissionResponse):
    is_actors_turn: bool
    actor_level: Optional[int]
    blocking_approver_name: Optional[str] = None


class SubmissionCreate(BaseModel):
    template_id: UUID
    template_kind: Optional[TemplateVariant] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    status: Optional[SubmissionStatus] = Field(None, description="Send DRAFT to save without submitting")
    plant_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    files: List[Dict[str, Any]] = Field(default_factory=list)
    assignment_id: Optional[UUID] = Field(None, description="Assignment this submission fills")


class ApprovalDecision(BaseModel):
    comments: Optional[str] = None
    data: Optional[Dict[str, Any]] = Field(None, description="Edited form data replacing the submitted payload")
