"""Template assignment API endpoints."""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from formflow.api.deps import get_db, get_current_user
from formflow.api.schemas.common import MessageResponse
from formflow.core.assignments import AssignmentService
from formflow.core.exceptions import FormFlowError, ValidationError
from formflow.core.rbac import ADMIN_ROLES, Role, require_role
from formflow.db.models import User

router = APIRouter(prefix="/assignments", tags=["assignments"])


# Schemas
class AssignmentCreate(BaseModel):
    template_id: Optional[UUID] = None
    template_ids: List[UUID] = Field(default_factory=list)
    employee_ids: List[UUID] = Field(..., min_length=1)
    due_date: Optional[datetime] = None


class AssignmentResponse(BaseModel):
    id: UUID
    template_kind: str
    template_id: UUID
    template_name: Optional[str] = None
    employee_id: UUID
    assigned_by: Optional[UUID]
    company_id: Optional[UUID]
    plant_id: Optional[UUID]
    due_date: Optional[datetime]
    status: str
    submission_id: Optional[UUID]
    filled_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentBatchResponse(BaseModel):
    message: str
    assignments: List[AssignmentResponse]
    errors: List[str] = Field(default_factory=list)


def _assignment_service(db: Session = Depends(get_db)) -> AssignmentService:
    return AssignmentService(db)


# Endpoints
@router.post("", response_model=AssignmentBatchResponse, status_code=status.HTTP_201_CREATED)
@require_role(Role.PLANT_ADMIN, Role.COMPANY_ADMIN)
async def assign_templates(
    payload: AssignmentCreate,
    service: AssignmentService = Depends(_assignment_service),
    current_user: User = Depends(get_current_user),
):
    """Assign one or more templates to employees. Archived templates are skipped."""
    template_ids = payload.template_ids or ([payload.template_id] if payload.template_id else [])
    try:
        if not template_ids:
            raise ValidationError("Invalid assignment data: templates and employees are required")
        batch = service.assign(current_user, template_ids, payload.employee_ids, payload.due_date)
        service.db.commit()
    except FormFlowError:
        service.db.rollback()
        raise

    assigned = len(template_ids) - len(batch.errors)
    return AssignmentBatchResponse(
        message=f"Successfully assigned {assigned} templates to {len(payload.employee_ids)} employees",
        assignments=[AssignmentResponse.model_validate(a) for a in batch.assignments],
        errors=batch.errors,
    )


@router.get("/mine", response_model=List[AssignmentResponse])
async def my_assignments(
    service: AssignmentService = Depends(_assignment_service),
    current_user: User = Depends(get_current_user),
    status: Optional[str] = None,
):
    """Assignments of the current user, newest first."""
    items = []
    for entry in service.list_mine(current_user, status=status):
        item = AssignmentResponse.model_validate(entry.assignment)
        item.template_name = entry.template.display_name
        items.append(item)
    return items


@router.get("/plant", response_model=List[AssignmentResponse])
@require_role(*ADMIN_ROLES)
async def plant_assignments(
    service: AssignmentService = Depends(_assignment_service),
    current_user: User = Depends(get_current_user),
):
    """Assignments in the admin's plant or company."""
    return [AssignmentResponse.model_validate(a) for a in service.list_for_plant(current_user)]


@router.get("/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: UUID,
    service: AssignmentService = Depends(_assignment_service),
    current_user: User = Depends(get_current_user),
):
    return AssignmentResponse.model_validate(service.get(assignment_id, current_user))


@router.delete("/{assignment_id}", response_model=MessageResponse)
@require_role(*ADMIN_ROLES)
async def delete_assignment(
    assignment_id: UUID,
    service: AssignmentService = Depends(_assignment_service),
    current_user: User = Depends(get_current_user),
):
    """Remove an assignment."""
    service.delete(assignment_id, current_user)
    service.db.commit()
    return MessageResponse(message="Assignment removed")
