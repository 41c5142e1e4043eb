"""Form submission API endpoints."""

from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from formflow.api.deps import get_current_user, get_submission_service
from formflow.api.schemas.common import PaginatedResponse
from formflow.api.schemas.submissions import (
    HistoryEntryResponse,
    SubmissionCreate,
    SubmissionResponse,
)
from formflow.core.approval.service import SubmissionService
from formflow.core.approval.states import SubmissionStatus
from formflow.core.exceptions import FormFlowError
from formflow.core.rbac import ADMIN_ROLES, require_role
from formflow.core.templates import resolve_template
from formflow.db.models import User

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_submission(
    payload: SubmissionCreate,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Fill in a form. Send status DRAFT to save without entering the flow."""
    try:
        ref = resolve_template(service.db, payload.template_id, payload.template_kind)
        submission = service.create_submission(
            ref,
            payload.data,
            payload.status,
            submitted_by=current_user.id,
            plant_id=payload.plant_id or current_user.plant_id,
            company_id=payload.company_id or current_user.company_id,
            files=payload.files,
            assignment_id=payload.assignment_id,
        )
        service.commit()
    except FormFlowError:
        service.rollback()
        raise

    return SubmissionResponse.model_validate(submission)


@router.get("", response_model=PaginatedResponse[SubmissionResponse])
async def list_submissions(
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    template_id: Optional[UUID] = None,
    status: Optional[SubmissionStatus] = None,
    submitted_by: Optional[UUID] = None,
    plant_id: Optional[UUID] = None,
    company_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """List submissions visible to the current user."""
    rows, total = service.list_submissions(
        current_user,
        template_id=template_id,
        status=status,
        submitted_by=submitted_by,
        plant_id=plant_id,
        company_id=company_id,
        start_date=start_date,
        end_date=end_date,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return PaginatedResponse.create(
        items=[SubmissionResponse.model_validate(r) for r in rows],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/template/{template_id}/analytics")
@require_role(*ADMIN_ROLES)
async def template_analytics(
    template_id: UUID,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Level-by-level approval progress for one template."""
    return service.get_level_stats(template_id, current_user)


@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(
    submission_id: UUID,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Get a specific submission."""
    return SubmissionResponse.model_validate(service.get_submission(submission_id, current_user))


@router.get("/{submission_id}/history", response_model=List[HistoryEntryResponse])
async def get_submission_history(
    submission_id: UUID,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Get the approval history of a submission, oldest first."""
    submission = service.get_submission(submission_id, current_user)
    return [HistoryEntryResponse.model_validate(h) for h in submission.history]


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
async def submit_draft(
    submission_id: UUID,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Send a saved draft into its approval flow."""
    try:
        submission = service.submit_draft(submission_id, current_user.id)
        service.commit()
    except FormFlowError:
        service.rollback()
        raise

    return SubmissionResponse.model_validate(submission)
