"""Approval workflow API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from formflow.api.deps import get_current_user, get_submission_service
from formflow.api.schemas.submissions import (
    ApprovalDecision,
    AssignedSubmissionResponse,
    SubmissionResponse,
)
from formflow.core.approval.service import SubmissionService
from formflow.core.approval.states import ApprovalAction
from formflow.core.exceptions import FormFlowError
from formflow.db.models import User

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _decide(
    service: SubmissionService,
    submission_id: UUID,
    current_user: User,
    action: ApprovalAction,
    decision: ApprovalDecision,
) -> SubmissionResponse:
    try:
        submission = service.process_approval(
            submission_id,
            current_user.id,
            action,
            comments=decision.comments,
            edited_data=decision.data,
        )
        service.commit()
    except FormFlowError:
        service.rollback()
        raise

    return SubmissionResponse.model_validate(submission)


@router.get("/assigned", response_model=List[AssignedSubmissionResponse])
async def list_assigned(
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """In-progress submissions on flows the current user approves."""
    items = []
    for item in service.get_submissions_pending_for(current_user.id):
        base = SubmissionResponse.model_validate(item.submission)
        items.append(AssignedSubmissionResponse(
            **base.model_dump(),
            is_actors_turn=item.turn.is_actors_turn,
            actor_level=item.turn.actor_level,
            blocking_approver_name=item.blocking_approver_name,
        ))
    return items


@router.get("/stats")
async def approver_stats(
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Pending and actioned counts for the current approver."""
    return service.approver_stats(current_user.id)


@router.post("/{submission_id}/approve", response_model=SubmissionResponse)
async def approve_submission(
    submission_id: UUID,
    decision: Optional[ApprovalDecision] = None,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Approve the current level of a submission."""
    return _decide(service, submission_id, current_user, ApprovalAction.APPROVE, decision or ApprovalDecision())


@router.post("/{submission_id}/reject", response_model=SubmissionResponse)
async def reject_submission(
    submission_id: UUID,
    decision: Optional[ApprovalDecision] = None,
    service: SubmissionService = Depends(get_submission_service),
    current_user: User = Depends(get_current_user),
):
    """Reject a submission at its current level."""
    return _decide(service, submission_id, current_user, ApprovalAction.REJECT, decision or ApprovalDecision())
