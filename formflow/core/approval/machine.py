"""Multi-level approval state machine.

Pure decision logic: given a submission, its flow and an action by an actor,
compute the next submission state. Nothing here touches the database; the
service layer loads, locks and persists around it.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from formflow.core.exceptions import AuthorizationError, ValidationError
from .flow import ApprovalFlow, same_identity
from .states import (
    ACTION_HISTORY_STATUS,
    ACTIONABLE_STATES,
    ApprovalAction,
    HistoryStatus,
    SubmissionStatus,
    TransitionOutcome,
    is_terminal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """One approve/reject action. Never modified once recorded."""
    level: int
    approver_id: Any
    status: HistoryStatus
    comments: Optional[str]
    actioned_at: datetime


@dataclass(frozen=True)
class SubmissionState:
    """Workflow view of a submission."""
    status: SubmissionStatus
    current_level: int
    data: Dict[str, Any] = field(default_factory=dict)
    approval_history: Tuple[HistoryEntry, ...] = ()
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Any = None
    rejected_at: Optional[datetime] = None
    rejected_by: Any = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a processed action."""
    submission: SubmissionState
    outcome: TransitionOutcome
    action: ApprovalAction
    actor_id: Any
    level: int
    next_approver_id: Any = None
    comments: Optional[str] = None


@dataclass(frozen=True)
class TurnInfo:
    """Whether it is an actor's turn on a submission."""
    is_actors_turn: bool
    actor_level: Optional[int]
    blocking_approver_id: Any = None


class ApprovalStateMachine:
    """
    State machine for multi-level sequential approval.

    Handles:
    - Initial state selection for new submissions
    - Per-level authorization of the acting approver
    - Level progression and terminal states
    - Append-only history recording
    """

    def __init__(
        self,
        flow: ApprovalFlow,
        *,
        allow_open_flow_actions: bool = True,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize the state machine.

        Args:
            flow: Approval flow of the submission's template (may be empty)
            allow_open_flow_actions: Let any caller act when the flow is empty
            clock: Source of action timestamps
        """
        self.flow = flow
        self.allow_open_flow_actions = allow_open_flow_actions
        self._clock = clock

    def initial_state(
        self,
        data: Optional[Dict[str, Any]] = None,
        requested_status: Optional[SubmissionStatus] = None,
    ) -> SubmissionState:
        """
        Compute the state of a freshly filled form.

        A DRAFT request stays a draft at level 0. Anything else enters the
        flow at level 1, or is approved outright when the flow is empty.
        """
        now = self._clock()
        if requested_status == SubmissionStatus.DRAFT:
            return SubmissionState(
                status=SubmissionStatus.DRAFT,
                current_level=0,
                data=dict(data or {}),
            )

        if self.flow:
            return SubmissionState(
                status=SubmissionStatus.PENDING_APPROVAL,
                current_level=1,
                data=dict(data or {}),
                submitted_at=now,
            )

        return SubmissionState(
            status=SubmissionStatus.APPROVED,
            current_level=0,
            data=dict(data or {}),
            submitted_at=now,
        )

    def submit_draft(self, submission: SubmissionState) -> SubmissionState:
        """
        Move a draft into the workflow.

        Raises:
            ValidationError: If the submission is not a draft
        """
        if submission.status != SubmissionStatus.DRAFT:
            raise ValidationError(
                f"Only drafts can be submitted, submission is {submission.status.value}"
            )
        return self.initial_state(submission.data, SubmissionStatus.PENDING_APPROVAL)

    def check_actor(self, submission: SubmissionState, actor_id: Any) -> None:
        """
        Verify that the actor may act on the submission's current level.

        Raises:
            ValidationError: If the submission accepts no actions
            AuthorizationError: If the actor is not the current approver
        """
        if submission.is_terminal:
            raise ValidationError(
                f"Submission is already {submission.status.value}; no further actions allowed"
            )
        if submission.status not in ACTIONABLE_STATES:
            raise ValidationError(
                f"Cannot act on a submission in state {submission.status.value}"
            )

        if not self.flow:
            if not self.allow_open_flow_actions:
                raise AuthorizationError(
                    "Form has no approval flow and open approvals are disabled",
                    actor_id=actor_id,
                )
            return

        current = self.flow.level(submission.current_level)
        if current is None:
            # Flow was edited after submission; never auto-advance past a missing level
            raise AuthorizationError(
                f"No approver found for level {submission.current_level}",
                actor_id=actor_id,
                level=submission.current_level,
            )
        if not same_identity(current.approver_id, actor_id):
            raise AuthorizationError(
                "You are not the authorized approver for this level",
                actor_id=actor_id,
                level=submission.current_level,
            )

    def process_action(
        self,
        submission: SubmissionState,
        actor_id: Any,
        action: ApprovalAction,
        *,
        comments: Optional[str] = None,
        edited_data: Optional[Dict[str, Any]] = None,
    ) -> TransitionResult:
        """
        Apply an approve/reject action.

        Args:
            submission: Current submission state (left untouched)
            actor_id: Identity of the acting user
            action: APPROVE or REJECT
            comments: Optional comment recorded in history
            edited_data: Replacement form data supplied by the approver

        Returns:
            TransitionResult carrying the new submission state

        Raises:
            ValidationError: If the submission accepts no actions
            AuthorizationError: If the actor is not the current approver
        """
        self.check_actor(submission, actor_id)

        now = self._clock()
        level = submission.current_level
        data = dict(edited_data) if edited_data is not None else submission.data

        entry = HistoryEntry(
            level=level,
            approver_id=actor_id,
            status=ACTION_HISTORY_STATUS[action],
            comments=comments,
            actioned_at=now,
        )
        history = submission.approval_history + (entry,)

        next_approver_id = None
        if action == ApprovalAction.REJECT:
            updated = replace(
                submission,
                status=SubmissionStatus.REJECTED,
                data=data,
                approval_history=history,
                rejected_at=now,
                rejected_by=actor_id,
            )
            outcome = TransitionOutcome.REJECTED
        else:
            next_level = self.flow.level(level + 1) if self.flow else None
            if next_level is not None:
                updated = replace(
                    submission,
                    status=SubmissionStatus.PENDING_APPROVAL,
                    current_level=next_level.level,
                    data=data,
                    approval_history=history,
                )
                outcome = TransitionOutcome.ADVANCED
                next_approver_id = next_level.approver_id
            else:
                updated = replace(
                    submission,
                    status=SubmissionStatus.APPROVED,
                    current_level=len(self.flow) + 1,
                    data=data,
                    approval_history=history,
                    approved_at=now,
                    approved_by=actor_id,
                )
                outcome = TransitionOutcome.APPROVED

        result = TransitionResult(
            submission=updated,
            outcome=outcome,
            action=action,
            actor_id=actor_id,
            level=level,
            next_approver_id=next_approver_id,
            comments=comments,
        )
        logger.debug(
            "Submission action %s by %s at level %s -> %s",
            action.value, actor_id, level, outcome.value,
        )
        return result

    def annotate_turn(self, submission: SubmissionState, actor_id: Any) -> TurnInfo:
        """
        Describe where an actor stands in the submission's chain.

        With an empty flow it is always the actor's turn. An actor may hold
        several levels; ``actor_level`` is the current level when it is
        theirs, else their next level ahead, else their last one behind.
        While a later level of theirs is waiting, the approver currently
        blocking is reported.
        """
        if not self.flow:
            return TurnInfo(is_actors_turn=True, actor_level=1)

        current_level = submission.current_level
        current = self.flow.level(current_level)
        if current is not None and same_identity(current.approver_id, actor_id):
            return TurnInfo(is_actors_turn=True, actor_level=current_level)

        mine = self.flow.levels_for(actor_id)
        ahead = [entry for entry in mine if entry.level > current_level]
        if ahead:
            blocking = current.approver_id if current else None
            return TurnInfo(is_actors_turn=False, actor_level=ahead[0].level, blocking_approver_id=blocking)

        return TurnInfo(is_actors_turn=False, actor_level=mine[-1].level if mine else None)


def create_submission(
    flow: ApprovalFlow,
    initial_data: Optional[Dict[str, Any]] = None,
    requested_status: Optional[SubmissionStatus] = None,
) -> SubmissionState:
    """Create a submission in a workflow-consistent initial state."""
    return ApprovalStateMachine(flow).initial_state(initial_data, requested_status)


def process_action(
    submission: SubmissionState,
    flow: ApprovalFlow,
    actor_id: Any,
    action: ApprovalAction,
    comments: Optional[str] = None,
    edited_data: Optional[Dict[str, Any]] = None,
) -> SubmissionState:
    """Apply one approve/reject action and return the updated submission."""
    machine = ApprovalStateMachine(flow)
    result = machine.process_action(
        submission, actor_id, action, comments=comments, edited_data=edited_data,
    )
    return result.submission
