"""Approval workflow module for FormFlow.

Implements the multi-level sequential approval state machine. The
persistent side lives in ``formflow.core.approval.service``.
"""

from .states import SubmissionStatus, ApprovalAction, TransitionOutcome, TERMINAL_STATES
from .flow import ApprovalFlow, ApprovalLevel
from .machine import ApprovalStateMachine, SubmissionState, create_submission, process_action

__all__ = [
    "SubmissionStatus",
    "ApprovalAction",
    "TransitionOutcome",
    "TERMINAL_STATES",
    "ApprovalFlow",
    "ApprovalLevel",
    "ApprovalStateMachine",
    "SubmissionState",
    "create_submission",
    "process_action",
]
