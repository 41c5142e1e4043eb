"""Tests for the approval state machine."""

import pytest
from uuid import uuid4
from datetime import datetime, timedelta

from formflow.core.approval.flow import ApprovalFlow
from formflow.core.approval.machine import (
    ApprovalStateMachine,
    SubmissionState,
    create_submission,
    process_action,
)
from formflow.core.approval.states import (
    ApprovalAction,
    HistoryStatus,
    SubmissionStatus,
    TransitionOutcome,
)
from formflow.core.exceptions import AuthorizationError, ValidationError


class FakeClock:
    """Clock advancing one hour per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(hours=1)
        return current


@pytest.fixture
def approvers():
    return uuid4(), uuid4()


@pytest.fixture
def flow(approvers):
    a, b = approvers
    return ApprovalFlow.from_levels([{"approver_id": a}, {"approver_id": b}])


@pytest.fixture
def machine(flow):
    return ApprovalStateMachine(flow, clock=FakeClock())


class TestInitialState:
    """Test state selection for new submissions."""

    def test_flow_starts_pending_at_level_one(self, machine):
        state = machine.initial_state({"qty": 3})
        assert state.status == SubmissionStatus.PENDING_APPROVAL
        assert state.current_level == 1
        assert state.data == {"qty": 3}
        assert state.submitted_at == datetime(2024, 1, 1, 9, 0)
        assert state.approval_history == ()

    def test_draft_stays_at_level_zero(self, machine):
        state = machine.initial_state({"qty": 3}, SubmissionStatus.DRAFT)
        assert state.status == SubmissionStatus.DRAFT
        assert state.current_level == 0
        assert state.submitted_at is None

    def test_empty_flow_is_approved_outright(self):
        state = create_submission(ApprovalFlow(), {"qty": 1})
        assert state.status == SubmissionStatus.APPROVED
        assert state.current_level == 0
        assert state.approved_at is None
        assert state.approval_history == ()

    def test_submit_draft(self, machine):
        draft = machine.initial_state({"qty": 3}, SubmissionStatus.DRAFT)
        submitted = machine.submit_draft(draft)
        assert submitted.status == SubmissionStatus.PENDING_APPROVAL
        assert submitted.current_level == 1
        assert submitted.data == {"qty": 3}

    def test_submit_non_draft_fails(self, machine):
        with pytest.raises(ValidationError, match="Only drafts"):
            machine.submit_draft(machine.initial_state())


class TestProcessAction:
    """Test approve/reject transitions."""

    def test_two_level_approval(self, machine, approvers):
        """Approving both levels in order completes the submission."""
        a, b = approvers
        state = machine.initial_state({"qty": 3})

        first = machine.process_action(state, a, ApprovalAction.APPROVE, comments="ok")
        assert first.outcome == TransitionOutcome.ADVANCED
        assert first.next_approver_id == b
        assert first.level == 1
        assert first.submission.status == SubmissionStatus.PENDING_APPROVAL
        assert first.submission.current_level == 2

        second = machine.process_action(first.submission, b, ApprovalAction.APPROVE)
        final = second.submission
        assert second.outcome == TransitionOutcome.APPROVED
        assert final.status == SubmissionStatus.APPROVED
        assert final.current_level == 3
        assert final.approved_by == b
        assert final.approved_at is not None

        assert [(h.level, h.approver_id, h.status) for h in final.approval_history] == [
            (1, a, HistoryStatus.APPROVED),
            (2, b, HistoryStatus.APPROVED),
        ]
        assert final.approval_history[0].comments == "ok"

    @pytest.mark.parametrize("length", [1, 3, 5])
    def test_full_approval_of_any_length(self, length):
        """N approvals in order finish at level N+1 with history 1..N."""
        chain = [uuid4() for _ in range(length)]
        machine = ApprovalStateMachine(
            ApprovalFlow.from_levels([{"approver_id": a} for a in chain]), clock=FakeClock(),
        )
        state = machine.initial_state({"qty": 1})
        for level, approver in enumerate(chain, start=1):
            assert state.current_level == level
            assert state.status == SubmissionStatus.PENDING_APPROVAL
            state = machine.process_action(state, approver, ApprovalAction.APPROVE).submission

        assert state.status == SubmissionStatus.APPROVED
        assert state.current_level == length + 1
        assert [h.level for h in state.approval_history] == list(range(1, length + 1))
        assert [h.approver_id for h in state.approval_history] == chain
        assert state.approved_by == chain[-1]

    def test_second_level_rejects(self, machine, approvers):
        """A approves, B rejects, and nobody can act afterwards."""
        a, b = approvers
        state = machine.process_action(machine.initial_state(), a, ApprovalAction.APPROVE).submission
        rejected = machine.process_action(state, b, ApprovalAction.REJECT).submission

        assert rejected.status == SubmissionStatus.REJECTED
        assert rejected.current_level == 2
        assert [h.level for h in rejected.approval_history] == [1, 2]
        for actor in (a, b):
            with pytest.raises(ValidationError):
                machine.process_action(rejected, actor, ApprovalAction.APPROVE)

    def test_input_state_is_untouched(self, machine, approvers):
        a, _ = approvers
        state = machine.initial_state({"qty": 3})
        machine.process_action(state, a, ApprovalAction.APPROVE)
        assert state.current_level == 1
        assert state.approval_history == ()

    def test_reject_at_first_level(self, machine, approvers):
        a, _ = approvers
        result = machine.process_action(
            machine.initial_state(), a, ApprovalAction.REJECT, comments="missing receipt",
        )
        rejected = result.submission
        assert result.outcome == TransitionOutcome.REJECTED
        assert rejected.status == SubmissionStatus.REJECTED
        assert rejected.current_level == 1
        assert rejected.rejected_by == a
        assert rejected.approval_history[-1].status == HistoryStatus.REJECTED
        assert rejected.approval_history[-1].comments == "missing receipt"

    def test_wrong_approver(self, machine, approvers):
        """The level-2 approver cannot act while level 1 is open."""
        _, b = approvers
        with pytest.raises(AuthorizationError) as exc_info:
            machine.process_action(machine.initial_state(), b, ApprovalAction.APPROVE)
        assert exc_info.value.level == 1

    def test_no_action_after_terminal(self, machine, approvers):
        a, _ = approvers
        rejected = machine.process_action(machine.initial_state(), a, ApprovalAction.REJECT).submission
        with pytest.raises(ValidationError, match="already REJECTED"):
            machine.process_action(rejected, a, ApprovalAction.APPROVE)

    def test_no_action_on_draft(self, machine, approvers):
        a, _ = approvers
        draft = machine.initial_state(None, SubmissionStatus.DRAFT)
        with pytest.raises(ValidationError):
            machine.process_action(draft, a, ApprovalAction.APPROVE)

    def test_missing_level_fails_closed(self, approvers):
        """A submission pointing past the flow is not auto-approved."""
        a, _ = approvers
        machine = ApprovalStateMachine(ApprovalFlow.from_levels([{"approver_id": a}]))
        state = SubmissionState(status=SubmissionStatus.PENDING_APPROVAL, current_level=2)
        with pytest.raises(AuthorizationError, match="No approver found for level 2"):
            machine.process_action(state, a, ApprovalAction.APPROVE)

    def test_edited_data_replaces_payload(self, machine, approvers):
        a, _ = approvers
        state = machine.initial_state({"qty": 3})
        result = machine.process_action(state, a, ApprovalAction.APPROVE, edited_data={"qty": 4})
        assert result.submission.data == {"qty": 4}
        assert state.data == {"qty": 3}

    def test_open_flow_action(self):
        """Any caller may act on an open-flow submission when allowed."""
        actor = uuid4()
        state = SubmissionState(status=SubmissionStatus.SUBMITTED, current_level=0)
        result = ApprovalStateMachine(ApprovalFlow()).process_action(state, actor, ApprovalAction.APPROVE)
        assert result.outcome == TransitionOutcome.APPROVED
        assert result.submission.current_level == 1
        assert result.submission.approval_history[0].level == 0

    def test_open_flow_action_disabled(self):
        machine = ApprovalStateMachine(ApprovalFlow(), allow_open_flow_actions=False)
        state = SubmissionState(status=SubmissionStatus.SUBMITTED, current_level=0)
        with pytest.raises(AuthorizationError):
            machine.process_action(state, uuid4(), ApprovalAction.APPROVE)

    def test_module_level_process_action(self, flow, approvers):
        a, _ = approvers
        state = create_submission(flow, {"x": 1})
        updated = process_action(state, flow, str(a), ApprovalAction.APPROVE)
        assert updated.current_level == 2


class TestTurnAnnotation:
    """Test queue annotation."""

    def test_annotate_turn_blocked(self, machine, approvers):
        a, b = approvers
        turn = machine.annotate_turn(machine.initial_state(), b)
        assert not turn.is_actors_turn
        assert turn.actor_level == 2
        assert turn.blocking_approver_id == a

    def test_annotate_turn_current(self, machine, approvers):
        a, _ = approvers
        turn = machine.annotate_turn(machine.initial_state(), a)
        assert turn.is_actors_turn
        assert turn.actor_level == 1
        assert turn.blocking_approver_id is None

    def test_annotate_turn_passed(self, machine, approvers):
        """Once past the actor's level nobody is reported as blocking."""
        a, _ = approvers
        state = machine.process_action(machine.initial_state(), a, ApprovalAction.APPROVE).submission
        turn = machine.annotate_turn(state, a)
        assert not turn.is_actors_turn
        assert turn.blocking_approver_id is None

    def test_annotate_turn_open_flow(self):
        turn = ApprovalStateMachine(ApprovalFlow()).annotate_turn(
            SubmissionState(status=SubmissionStatus.SUBMITTED, current_level=0), uuid4(),
        )
        assert turn.is_actors_turn
        assert turn.actor_level == 1

    def test_approver_holding_two_levels(self):
        """With flow [A, B, A] it is A's turn again once B has approved."""
        a, b = uuid4(), uuid4()
        flow = ApprovalFlow.from_levels([{"approver_id": a}, {"approver_id": b}, {"approver_id": a}])
        machine = ApprovalStateMachine(flow, clock=FakeClock())

        state = machine.process_action(machine.initial_state(), a, ApprovalAction.APPROVE).submission
        waiting = machine.annotate_turn(state, a)
        assert not waiting.is_actors_turn
        assert waiting.actor_level == 3
        assert waiting.blocking_approver_id == b

        state = machine.process_action(state, b, ApprovalAction.APPROVE).submission
        turn = machine.annotate_turn(state, a)
        assert turn.is_actors_turn
        assert turn.actor_level == 3
        assert turn.blocking_approver_id is None

        final = machine.process_action(state, a, ApprovalAction.APPROVE).submission
        assert final.status == SubmissionStatus.APPROVED
        assert [h.level for h in final.approval_history] == [1, 2, 3]
