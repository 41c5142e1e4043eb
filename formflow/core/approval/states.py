"""Submission workflow states and approval actions.

State Machine Diagram:

    ┌──────────┐   submit_draft
    │  DRAFT   │─────────────────┐
    └──────────┘                 │
                                 ▼
                      ┌──────────────────┐  APPROVE (more levels)
                      │ PENDING_APPROVAL │◄──────────┐
                      │   level 1..N     │───────────┘
                      └────┬────────┬────┘
             APPROVE (last)│        │REJECT (any level)
                      ┌────▼────┐ ┌─▼────────┐
                      │APPROVED │ │ REJECTED │
                      │level N+1│ │          │
                      └─────────┘ └──────────┘

A submission created against an empty flow goes straight to APPROVED with
level 0. SUBMITTED is a legacy in-progress state: the level's approver may
act on it exactly as on PENDING_APPROVAL, and on an empty flow any caller
may while open approvals are enabled.
"""

from enum import Enum
from typing import Set


class SubmissionStatus(str, Enum):
    """Lifecycle states of a form submission."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUBMITTED = "SUBMITTED"


class ApprovalAction(str, Enum):
    """Actions an approver can take on the current level."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @classmethod
    def parse(cls, value: str) -> "ApprovalAction":
        """Accept 'approve', 'approved', 'REJECT', 'rejected' and friends."""
        normalized = value.strip().upper()
        if normalized in ("APPROVE", "APPROVED"):
            return cls.APPROVE
        if normalized in ("REJECT", "REJECTED"):
            return cls.REJECT
        raise ValueError(f"Unknown approval action: {value}")


class HistoryStatus(str, Enum):
    """Status recorded on a single history entry."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUBMITTED = "SUBMITTED"


class TransitionOutcome(str, Enum):
    """What a processed action did to the submission."""

    ADVANCED = "advanced"      # moved to the next level
    APPROVED = "approved"      # passed the last level
    REJECTED = "rejected"


ACTION_HISTORY_STATUS = {
    ApprovalAction.APPROVE: HistoryStatus.APPROVED,
    ApprovalAction.REJECT: HistoryStatus.REJECTED,
}

# No transitions leave these states
TERMINAL_STATES: Set[SubmissionStatus] = {
    SubmissionStatus.APPROVED,
    SubmissionStatus.REJECTED,
}

# States in which an approver may act
ACTIONABLE_STATES: Set[SubmissionStatus] = {
    SubmissionStatus.PENDING_APPROVAL,
    SubmissionStatus.SUBMITTED,
}

# States shown in approver work queues
IN_PROGRESS_STATES: Set[SubmissionStatus] = {
    SubmissionStatus.PENDING_APPROVAL,
    SubmissionStatus.SUBMITTED,
}


def is_terminal(status: SubmissionStatus) -> bool:
    """Check whether a status accepts no further actions."""
    return status in TERMINAL_STATES
