"""Form management API endpoints."""

from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, AliasChoices
from sqlalchemy.orm import Session

from formflow.api.deps import get_db, get_current_user, get_notification_dispatcher
from formflow.api.schemas.common import MessageResponse, PaginatedResponse
from formflow.core.exceptions import FormFlowError
from formflow.core.forms import FormService
from formflow.core.rbac import Role, require_role
from formflow.db.models import User
from formflow.services.notifications import NotificationDispatcher

router = APIRouter(prefix="/forms", tags=["forms"])


# Schemas
class ApprovalLevelIn(BaseModel):
    approver_id: UUID = Field(..., validation_alias=AliasChoices("approver_id", "approverId"))
    name: Optional[str] = None
    description: Optional[str] = None


class FormBase(BaseModel):
    form_code: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    fields: List[Dict[str, Any]] = Field(default_factory=list)
    sections: List[Dict[str, Any]] = Field(default_factory=list)
    is_template: bool = False


class FormCreate(FormBase):
    form_name: str = Field(..., min_length=1, max_length=255)
    approval_flow: List[ApprovalLevelIn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("approval_flow", "approval_levels"),
    )
    status: str = "DRAFT"


class FormUpdate(BaseModel):
    form_code: Optional[str] = Field(None, max_length=100)
    form_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    fields: Optional[List[Dict[str, Any]]] = None
    sections: Optional[List[Dict[str, Any]]] = None
    approval_flow: Optional[List[ApprovalLevelIn]] = Field(
        None, validation_alias=AliasChoices("approval_flow", "approval_levels"),
    )
    status: Optional[str] = None
    is_template: Optional[bool] = None


class FormResponse(BaseModel):
    id: UUID
    numerical_id: Optional[int]
    form_code: Optional[str]
    company_id: UUID
    plant_id: Optional[UUID]
    form_name: str
    description: Optional[str]
    fields: List[Any]
    sections: List[Any]
    approval_flow: List[Dict[str, Any]]
    status: str
    is_template: bool
    archived_at: Optional[datetime]
    created_by: Optional[UUID]
    created_at: datetime
    updated_at: datetime
    submission_count: int = 0

    class Config:
        from_attributes = True


def _form_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> FormService:
    return FormService(db, dispatcher=dispatcher)


def _levels(levels: Optional[List[ApprovalLevelIn]]) -> Optional[List[Dict[str, Any]]]:
    if levels is None:
        return None
    return [level.model_dump() for level in levels]


# Endpoints
@router.post("", response_model=FormResponse, status_code=status.HTTP_201_CREATED)
@require_role(Role.PLANT_ADMIN)
async def create_form(
    payload: FormCreate,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Create a form in the current plant admin's plant."""
    data = payload.model_dump()
    data["approval_flow"] = _levels(payload.approval_flow)
    try:
        form = service.create_form(current_user, data)
        service.commit()
    except FormFlowError:
        service.rollback()
        raise

    return FormResponse.model_validate(form)


@router.get("", response_model=PaginatedResponse[FormResponse])
async def list_forms(
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
):
    """List active forms visible to the current user."""
    forms, total = service.list_forms(
        current_user, status=status, limit=per_page, offset=(page - 1) * per_page,
    )
    counts = service.submission_counts([f.id for f in forms])

    items = []
    for form in forms:
        item = FormResponse.model_validate(form)
        item.submission_count = counts.get(form.id, 0)
        items.append(item)
    return PaginatedResponse.create(items=items, total=total, page=page, per_page=per_page)


@router.get("/{form_id}", response_model=FormResponse)
async def get_form(
    form_id: UUID,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Get a specific form."""
    return FormResponse.model_validate(service.get_form(form_id, current_user))


@router.put("/{form_id}", response_model=FormResponse)
@require_role(Role.PLANT_ADMIN)
async def update_form(
    form_id: UUID,
    payload: FormUpdate,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Update a form. Submissions already in flight keep their level pointer."""
    data = payload.model_dump(exclude_unset=True)
    if "approval_flow" in data:
        data["approval_flow"] = _levels(payload.approval_flow)
    try:
        form = service.update_form(form_id, current_user, data)
        service.commit()
    except FormFlowError:
        service.rollback()
        raise

    return FormResponse.model_validate(form)


@router.patch("/{form_id}/archive", response_model=FormResponse)
@require_role(Role.PLANT_ADMIN)
async def archive_form(
    form_id: UUID,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Archive a form."""
    form = service.archive_form(form_id, current_user)
    service.commit()
    return FormResponse.model_validate(form)


@router.patch("/{form_id}/restore", response_model=FormResponse)
@require_role(Role.PLANT_ADMIN)
async def restore_form(
    form_id: UUID,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Restore an archived form to PUBLISHED."""
    form = service.restore_form(form_id, current_user)
    service.commit()
    return FormResponse.model_validate(form)


@router.delete("/{form_id}", response_model=MessageResponse)
@require_role(Role.PLANT_ADMIN)
async def delete_form(
    form_id: UUID,
    service: FormService = Depends(_form_service),
    current_user: User = Depends(get_current_user),
):
    """Soft delete a form."""
    service.delete_form(form_id, current_user)
    service.commit()
    return MessageResponse(message="Form removed successfully")
