"""Submission service for running form submissions through their approval flow.

Provides the persistent side of the approval state machine: loading and
locking submission rows, writing history, and queueing notifications that
are only sent once the transaction has committed.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, NamedTuple, Tuple, Union
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from formflow.core.assignments import AssignmentService
from formflow.core.config import Settings, get_settings
from formflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from formflow.core.numbering import SUBMISSION_SEQUENCE, next_number
from formflow.core.rbac import Role, can_view, scope_to_tenant
from formflow.core.templates import (
    TemplateRef,
    TemplateVariant,
    flow_for,
    load_template,
    resolve_template,
)
from formflow.db.models import Form, FormSubmission, FormTemplate, SubmissionHistory, User
from formflow.db.models.notification import NotificationEventType
from formflow.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationOutbox,
)

from .flow import ApprovalFlow
from .machine import ApprovalStateMachine, HistoryEntry, SubmissionState, TransitionResult, TurnInfo
from .states import (
    ApprovalAction,
    HistoryStatus,
    IN_PROGRESS_STATES,
    SubmissionStatus,
    TransitionOutcome,
)

logger = logging.getLogger(__name__)


class AssignedSubmission(NamedTuple):
    """A submission in an approver's queue, annotated with their turn."""
    submission: FormSubmission
    turn: TurnInfo
    blocking_approver_name: Optional[str] = None


def _as_uuid(value: Union[str, UUID]) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def state_from_row(row: FormSubmission) -> SubmissionState:
    """Build the state machine's view of a persisted submission."""
    return SubmissionState(
        status=SubmissionStatus(row.status),
        current_level=row.current_level or 0,
        data=dict(row.data or {}),
        approval_history=tuple(
            HistoryEntry(
                level=h.level,
                approver_id=h.approver_id,
                status=HistoryStatus(h.status),
                comments=h.comments,
                actioned_at=h.actioned_at,
            )
            for h in row.history
        ),
        submitted_at=row.submitted_at,
        approved_at=row.approved_at,
        approved_by=row.approved_by,
        rejected_at=row.rejected_at,
        rejected_by=row.rejected_by,
    )


class SubmissionService:
    """
    High-level service for form submissions.

    Handles:
    - Creating submissions in a workflow-consistent initial state
    - Approve/reject actions under a row lock and version check
    - Approver work queues with turn annotation
    - Per-template level statistics
    - Post-commit notification dispatch
    """

    def __init__(
        self,
        db: Session,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the submission service.

        Args:
            db: Database session
            dispatcher: Receives notification events after commit
            settings: Application settings (defaults to the cached ones)
        """
        self.db = db
        self.settings = settings or get_settings()
        self.outbox = NotificationOutbox(dispatcher)

    def _machine(self, flow: ApprovalFlow) -> ApprovalStateMachine:
        return ApprovalStateMachine(
            flow, allow_open_flow_actions=self.settings.allow_open_flow_actions,
        )

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def commit(self) -> None:
        """Commit, then hand buffered notifications to the dispatcher."""
        try:
            self.db.commit()
        except StaleDataError as e:
            self.rollback()
            raise ConflictError("Submission was modified by another request, retry the action") from e
        self.outbox.flush()

    def rollback(self) -> None:
        self.db.rollback()
        self.outbox.discard()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_submission(
        self,
        template_ref: TemplateRef,
        data: Optional[Dict[str, Any]] = None,
        requested_status: Optional[SubmissionStatus] = None,
        *,
        submitted_by: UUID,
        plant_id: Optional[UUID] = None,
        company_id: Optional[UUID] = None,
        files: Optional[List[Dict[str, Any]]] = None,
        assignment_id: Optional[UUID] = None,
    ) -> FormSubmission:
        """
        Create a submission against a template.

        With ``assignment_id`` the assignment is marked FILLED by this
        submission, drafts included.

        Returns:
            The new, flushed submission row

        Raises:
            NotFoundError: If the template does not exist
            ValidationError: If the template's flow is malformed
        """
        template = load_template(self.db, template_ref)
        flow = flow_for(template)
        state = self._machine(flow).initial_state(data, requested_status)

        row = FormSubmission(
            numerical_id=self._next_numerical_id(),
            template_kind=template_ref.kind.value,
            template_id=template.id,
            template_name=template.display_name,
            form_numerical_id=template.numerical_id if isinstance(template, Form) else None,
            company_id=company_id or template.company_id,
            plant_id=plant_id or template.plant_id,
            submitted_by=_as_uuid(submitted_by),
            data=state.data,
            files=files or [],
            status=state.status.value,
            current_level=state.current_level,
            submitted_at=state.submitted_at,
        )
        self.db.add(row)
        self.db.flush()
        if assignment_id is not None:
            AssignmentService(self.db).mark_filled(_as_uuid(assignment_id), row)

        logger.info(
            "Submission %s created for %s %s: %s",
            row.numerical_id, template_ref.kind.value, template.id, row.status,
        )
        if state.status != SubmissionStatus.DRAFT:
            self._queue_submitted_events(row, template, flow)
        return row

    def submit_draft(self, submission_id: UUID, actor_id: UUID) -> FormSubmission:
        """
        Move a draft into its approval flow.

        Raises:
            NotFoundError: If the submission does not exist
            AuthorizationError: If the actor did not write the draft
            ValidationError: If the submission is not a draft
        """
        row = self._lock(submission_id)
        if row.submitted_by is not None and row.submitted_by != _as_uuid(actor_id):
            raise AuthorizationError("Only the author can submit a draft", actor_id=actor_id)

        template = self._template_of(row)
        flow = flow_for(template)
        state = self._machine(flow).submit_draft(state_from_row(row))

        row.status = state.status.value
        row.current_level = state.current_level
        row.submitted_at = state.submitted_at
        self._flush()

        logger.info("Draft %s submitted: %s", row.numerical_id, row.status)
        self._queue_submitted_events(row, template, flow)
        return row

    def process_approval(
        self,
        submission_id: UUID,
        actor_id: UUID,
        action: Union[ApprovalAction, str],
        comments: Optional[str] = None,
        edited_data: Optional[Dict[str, Any]] = None,
    ) -> FormSubmission:
        """
        Apply an approve/reject action by the current level's approver.

        The row is locked for the rest of the transaction and written with a
        version check, so two approvers racing on the same level cannot both
        succeed.

        Returns:
            The updated, flushed submission row

        Raises:
            NotFoundError: If the submission does not exist
            AuthorizationError: If the actor is not the current approver
            ValidationError: If the submission accepts no actions
            ConflictError: If another request updated the row first
        """
        if not isinstance(action, ApprovalAction):
            try:
                action = ApprovalAction.parse(action)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        actor_id = _as_uuid(actor_id)

        row = self._lock(submission_id)
        template = self._template_of(row)
        flow = flow_for(template)

        before = state_from_row(row)
        result = self._machine(flow).process_action(
            before, actor_id, action, comments=comments, edited_data=edited_data,
        )
        self._apply(row, before, result.submission)
        self._flush()

        logger.info(
            "Submission %s %s by %s at level %s (%s)",
            row.numerical_id, action.value, actor_id, result.level, result.outcome.value,
        )
        self._queue_transition_events(row, template, result)
        return row

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_submission(self, submission_id: UUID, user: Optional[User] = None) -> FormSubmission:
        """
        Get a submission, checking that ``user`` may see it.

        Approvers on the submission's flow may always see it.
        """
        row = self.db.query(FormSubmission).filter(FormSubmission.id == submission_id).first()
        if row is None:
            raise NotFoundError("Submission", submission_id)
        if user is not None and not self._can_view(user, row):
            raise AuthorizationError("You do not have access to this submission", actor_id=user.id)
        return row

    def list_submissions(
        self,
        user: User,
        *,
        template_id: Optional[UUID] = None,
        status: Optional[SubmissionStatus] = None,
        submitted_by: Optional[UUID] = None,
        plant_id: Optional[UUID] = None,
        company_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[FormSubmission], int]:
        """List submissions visible to a user, newest first."""
        query = scope_to_tenant(
            self.db.query(FormSubmission), FormSubmission, user, owner_column="submitted_by",
        )
        if Role(user.role) == Role.SUPER_ADMIN:
            if plant_id:
                query = query.filter(FormSubmission.plant_id == plant_id)
            if company_id:
                query = query.filter(FormSubmission.company_id == company_id)

        if template_id:
            query = query.filter(FormSubmission.template_id == template_id)
        if status:
            query = query.filter(FormSubmission.status == SubmissionStatus(status).value)
        if submitted_by:
            query = query.filter(FormSubmission.submitted_by == submitted_by)
        if start_date:
            query = query.filter(FormSubmission.submitted_at >= start_date)
        if end_date:
            query = query.filter(FormSubmission.submitted_at <= end_date)

        total = query.count()
        rows = query.order_by(FormSubmission.created_at.desc()).offset(offset).limit(limit).all()
        return rows, total

    def get_submissions_pending_for(self, actor_id: UUID) -> List[AssignedSubmission]:
        """
        Get in-progress submissions on every flow the actor belongs to.

        Forms of the actor's plant without a flow are included while open
        approvals are enabled. Each entry says whether it is the actor's
        turn and, when an earlier level is still open, who is holding it.
        """
        actor_id = _as_uuid(actor_id)
        actor = self.db.query(User).filter(User.id == actor_id).first()
        if actor is None:
            raise NotFoundError("User", actor_id)

        flows = self._flows_for_approver(actor)
        if not flows:
            return []

        rows = self.db.query(FormSubmission).filter(
            FormSubmission.template_id.in_(list(flows)),
            FormSubmission.status.in_([s.value for s in IN_PROGRESS_STATES]),
        ).order_by(FormSubmission.created_at.desc()).all()

        assigned = []
        for row in rows:
            turn = self._machine(flows[row.template_id]).annotate_turn(state_from_row(row), actor_id)
            blocking_name = None
            if turn.blocking_approver_id is not None:
                blocking_name = self._user_name(turn.blocking_approver_id, "Previous Approver")
            assigned.append(AssignedSubmission(row, turn, blocking_name))
        return assigned

    def approver_stats(self, actor_id: UUID) -> Dict[str, int]:
        """Counts for an approver's dashboard."""
        actor_id = _as_uuid(actor_id)
        pending = sum(
            1 for item in self.get_submissions_pending_for(actor_id)
            if item.turn.is_actors_turn and item.turn.actor_level is not None
        )
        actioned = self.db.query(func.count(func.distinct(SubmissionHistory.submission_id))).filter(
            SubmissionHistory.approver_id == actor_id,
        ).scalar() or 0
        return {"pending_count": pending, "actioned_count": actioned}

    def get_level_stats(self, template_id: UUID, user: Optional[User] = None) -> Dict[str, Any]:
        """
        Level-by-level progress for every submission of a template.

        Admins only see submissions of their own plant or company.
        """
        from formflow.core.analytics import compute_level_stats

        ref = resolve_template(self.db, template_id, include_inactive=True)
        template = load_template(self.db, ref, include_inactive=True)

        query = self.db.query(FormSubmission).filter(FormSubmission.template_id == template_id)
        if user is not None and Role(user.role) in (Role.PLANT_ADMIN, Role.COMPANY_ADMIN):
            query = scope_to_tenant(query, FormSubmission, user)

        stats = compute_level_stats(
            (state_from_row(row) for row in query.all()), flow_for(template),
        )
        result = stats.to_dict()
        result["template_name"] = template.display_name
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, submission_id: UUID) -> FormSubmission:
        row = self.db.query(FormSubmission).filter(
            FormSubmission.id == submission_id
        ).with_for_update().first()
        if row is None:
            raise NotFoundError("Submission", submission_id)
        return row

    def _flush(self) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConflictError("Submission was modified by another request, retry the action") from e

    def _template_of(self, row: FormSubmission) -> Union[FormTemplate, Form]:
        ref = TemplateRef(TemplateVariant(row.template_kind), row.template_id)
        return load_template(self.db, ref, include_inactive=True)

    def _next_numerical_id(self) -> int:
        return next_number(self.db, SUBMISSION_SEQUENCE, FormSubmission.numerical_id)

    def _apply(self, row: FormSubmission, before: SubmissionState, after: SubmissionState) -> None:
        """Write a transition onto the row, appending only the new history."""
        start = len(before.approval_history)
        for position, entry in enumerate(after.approval_history[start:], start=start):
            row.history.append(SubmissionHistory(
                position=position,
                level=entry.level,
                approver_id=entry.approver_id,
                status=entry.status.value,
                comments=entry.comments,
                actioned_at=entry.actioned_at,
            ))

        if after.data is not before.data:
            row.data = dict(after.data)
        row.status = after.status.value
        row.current_level = after.current_level
        row.approved_at = after.approved_at
        row.approved_by = after.approved_by
        row.rejected_at = after.rejected_at
        row.rejected_by = after.rejected_by

    def _can_view(self, user: User, row: FormSubmission) -> bool:
        if can_view(user, row, owner_column="submitted_by"):
            return True
        try:
            flow = flow_for(self._template_of(row))
        except (NotFoundError, ValidationError):
            return False
        return flow.level_for(user.id) is not None

    def _flows_for_approver(self, actor: User) -> Dict[UUID, ApprovalFlow]:
        """Flows the actor sits on, keyed by template id.

        Soft-deleted templates still count while they have in-progress
        submissions.
        """
        in_flight = select(FormSubmission.template_id).where(
            FormSubmission.status.in_([s.value for s in IN_PROGRESS_STATES])
        )
        flows = {}
        for model in (FormTemplate, Form):
            query = self.db.query(model).filter(
                or_(model.is_active == True, model.id.in_(in_flight))  # noqa: E712
            )
            if actor.company_id:
                query = query.filter(model.company_id == actor.company_id)
            for template in query.all():
                try:
                    flow = flow_for(template)
                except ValidationError:
                    logger.warning("Skipping template %s with malformed approval flow", template.id)
                    continue
                if flow.level_for(actor.id) is not None:
                    flows[template.id] = flow
                elif (
                    not flow
                    and self.settings.allow_open_flow_actions
                    and actor.plant_id is not None
                    and template.plant_id == actor.plant_id
                ):
                    flows[template.id] = flow
        return flows

    def _user_name(self, user_id: Optional[UUID], default: str) -> str:
        if user_id is None:
            return default
        user = self.db.query(User).filter(User.id == user_id).first()
        return user.name if user and user.name else default

    def _plant_admin_ids(self, plant_id: Optional[UUID]) -> List[UUID]:
        if plant_id is None:
            return []
        admins = self.db.query(User.id).filter(
            User.plant_id == plant_id,
            User.role == Role.PLANT_ADMIN.value,
            User.is_active == True,  # noqa: E712
        ).all()
        return [admin.id for admin in admins]

    # ------------------------------------------------------------------
    # Notification events
    # ------------------------------------------------------------------

    def _context(self, row: FormSubmission, template, path: str, **extra) -> Dict[str, Any]:
        plant = row.plant
        context = {
            "form_name": row.template_name or template.display_name,
            "form_id": str(getattr(template, "numerical_id", None) or template.id),
            "submission_number": str(row.numerical_id or row.id),
            "submitter_name": self._user_name(row.submitted_by, "An employee"),
            "submitted_at": row.submitted_at.isoformat() if row.submitted_at else "",
            "plant_name": plant.name if plant else "",
            "level": row.current_level,
            "link": f"{self.settings.frontend_url}/{path}/{row.id}",
        }
        context.update(extra)
        return context

    def _event(self, event_type: NotificationEventType, recipient_id: UUID, row: FormSubmission, context) -> None:
        self.outbox.add(NotificationEvent(
            event_type=event_type,
            recipient_id=recipient_id,
            submission_id=row.id,
            company_id=row.company_id,
            context=context,
        ))

    def _history_names(self, row: FormSubmission) -> List[Dict[str, Any]]:
        return [
            {
                "name": self._user_name(h.approver_id, "Approver"),
                "date": h.actioned_at.isoformat() if h.actioned_at else "",
                "comments": h.comments or "",
            }
            for h in row.history
        ]

    def _queue_submitted_events(self, row: FormSubmission, template, flow: ApprovalFlow) -> None:
        if row.status == SubmissionStatus.PENDING_APPROVAL.value:
            first = flow.level(1)
            if first is not None:
                self._event(
                    NotificationEventType.SUBMISSION_PENDING, first.approver_id, row,
                    self._context(row, template, "employee/approvals"),
                )
        for admin_id in self._plant_admin_ids(row.plant_id):
            self._event(
                NotificationEventType.SUBMISSION_RECEIVED, admin_id, row,
                self._context(row, template, "plant/submissions"),
            )

    def _queue_transition_events(self, row: FormSubmission, template, result: TransitionResult) -> None:
        approver_name = self._user_name(result.actor_id, "An approver")

        if result.outcome == TransitionOutcome.ADVANCED and result.next_approver_id is not None:
            self._event(
                NotificationEventType.LEVEL_ADVANCED, result.next_approver_id, row,
                self._context(
                    row, template, "employee/approvals",
                    previous_approvals=self._history_names(row),
                ),
            )
        elif result.outcome == TransitionOutcome.APPROVED and row.submitted_by:
            self._event(
                NotificationEventType.SUBMISSION_APPROVED, row.submitted_by, row,
                self._context(
                    row, template, "employee/submissions",
                    previous_approvals=self._history_names(row),
                ),
            )
        elif result.outcome == TransitionOutcome.REJECTED and row.submitted_by:
            self._event(
                NotificationEventType.SUBMISSION_REJECTED, row.submitted_by, row,
                self._context(
                    row, template, "employee/submissions",
                    level=result.level, approver_name=approver_name, comments=result.comments or "",
                ),
            )

        status_label = "Rejected" if result.action == ApprovalAction.REJECT else "Approved"
        for admin_id in self._plant_admin_ids(row.plant_id):
            self._event(
                NotificationEventType.STATUS_CHANGED, admin_id, row,
                self._context(
                    row, template, "plant/submissions",
                    level=result.level, approver_name=approver_name,
                    status_label=status_label, comments=result.comments or "",
                ),
            )
