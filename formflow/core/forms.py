"""Form authoring: create, edit, archive and soft-delete forms.

Approval levels arrive as authored in the form builder and are normalized
through ``ApprovalFlow.from_levels`` before they are stored.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from formflow.core.approval.flow import ApprovalFlow
from formflow.core.config import Settings, get_settings
from formflow.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from formflow.core.numbering import FORM_SEQUENCE, next_number
from formflow.core.rbac import Role, can_view, scope_to_tenant
from formflow.db.models import Form, FormSubmission, User
from formflow.db.models.notification import NotificationEventType
from formflow.services.notifications import (
    NotificationDispatcher,
    NotificationEvent,
    NotificationOutbox,
)

logger = logging.getLogger(__name__)

FORM_STATUSES = ("DRAFT", "PUBLISHED", "APPROVED", "ARCHIVED")

# Statuses employees can fill in
FILLABLE_STATUSES = ("PUBLISHED", "APPROVED")

_EDITABLE_FIELDS = ("form_code", "form_name", "description", "fields", "sections", "status", "is_template")


class FormService:
    """Form CRUD scoped to the acting user's plant."""

    def __init__(
        self,
        db: Session,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.outbox = NotificationOutbox(dispatcher)

    def commit(self) -> None:
        self.db.commit()
        self.outbox.flush()

    def rollback(self) -> None:
        self.db.rollback()
        self.outbox.discard()

    def _build_flow(self, authored: Optional[List[Dict[str, Any]]], company_id: Optional[UUID]) -> ApprovalFlow:
        """Normalize authored levels and check every approver exists in the company."""
        flow = ApprovalFlow.from_levels(authored)
        flow.validate()

        approver_ids = set(flow.approver_ids())
        if approver_ids:
            query = self.db.query(User.id).filter(User.id.in_(list(approver_ids)), User.is_active == True)  # noqa: E712
            if company_id:
                query = query.filter(User.company_id == company_id)
            found = {row.id for row in query.all()}
            missing = approver_ids - found
            if missing:
                raise ValidationError(
                    f"Unknown approvers: {', '.join(sorted(str(m) for m in missing))}"
                )
        return flow

    def create_form(self, user: User, payload: Dict[str, Any]) -> Form:
        """
        Create a form in the author's plant.

        Every approver on the new form is notified once the transaction
        commits.
        """
        status = payload.get("status") or "DRAFT"
        if status not in FORM_STATUSES:
            raise ValidationError(f"Invalid form status: {status}")

        flow = self._build_flow(payload.get("approval_flow"), user.company_id)

        form = Form(
            numerical_id=next_number(self.db, FORM_SEQUENCE, Form.numerical_id),
            form_code=payload.get("form_code"),
            company_id=user.company_id,
            plant_id=user.plant_id,
            form_name=payload["form_name"],
            description=payload.get("description"),
            fields=payload.get("fields") or [],
            sections=payload.get("sections") or [],
            approval_flow=flow.to_list(),
            status=status,
            is_template=bool(payload.get("is_template")),
            created_by=user.id,
        )
        self.db.add(form)
        self.db.flush()
        logger.info("Form %s created with %d approval levels", form.id, len(flow))

        for level in flow:
            self.outbox.add(NotificationEvent(
                event_type=NotificationEventType.FORM_CREATED,
                recipient_id=level.approver_id,
                company_id=form.company_id,
                context={
                    "form_name": form.form_name,
                    "creator_name": user.name or "A plant admin",
                    "level": level.level,
                    "link": f"{self.settings.frontend_url}/plant/forms/{form.id}",
                },
            ))
        return form

    def get_form(self, form_id: UUID, user: Optional[User] = None) -> Form:
        form = self.db.query(Form).filter(Form.id == form_id, Form.is_active == True).first()  # noqa: E712
        if form is None:
            raise NotFoundError("Form", form_id)
        if user is not None and not can_view(user, form):
            raise AuthorizationError("You do not have access to this form", actor_id=user.id)
        return form

    def list_forms(
        self,
        user: User,
        *,
        status: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Form], int]:
        """List active forms; employees only see fillable ones of their plant."""
        query = scope_to_tenant(
            self.db.query(Form).filter(Form.is_active == True), Form, user,  # noqa: E712
        )
        if Role(user.role) == Role.EMPLOYEE:
            query = query.filter(Form.status.in_(FILLABLE_STATUSES))
        if status:
            query = query.filter(Form.status == status)

        total = query.count()
        forms = query.order_by(Form.created_at.desc()).offset(offset).limit(limit).all()
        return forms, total

    def submission_counts(self, form_ids: List[UUID]) -> Dict[UUID, int]:
        if not form_ids:
            return {}
        rows = self.db.query(FormSubmission.template_id, func.count(FormSubmission.id)).filter(
            FormSubmission.template_id.in_(form_ids)
        ).group_by(FormSubmission.template_id).all()
        return {template_id: count for template_id, count in rows}

    def update_form(self, form_id: UUID, user: User, payload: Dict[str, Any]) -> Form:
        """
        Update a form. A new approval flow only affects later actions;
        in-flight submissions pointing at a removed level fail closed.
        """
        form = self.get_form(form_id, user)
        if payload.get("status") is not None and payload["status"] not in FORM_STATUSES:
            raise ValidationError(f"Invalid form status: {payload['status']}")

        for name in _EDITABLE_FIELDS:
            if name in payload and payload[name] is not None:
                setattr(form, name, payload[name])
        if payload.get("approval_flow") is not None:
            form.approval_flow = self._build_flow(payload["approval_flow"], form.company_id).to_list()

        self.db.flush()
        logger.info("Form %s updated", form.id)
        return form

    def archive_form(self, form_id: UUID, user: User) -> Form:
        form = self.get_form(form_id, user)
        form.status = "ARCHIVED"
        form.archived_at = datetime.utcnow()
        self.db.flush()
        return form

    def restore_form(self, form_id: UUID, user: User) -> Form:
        form = self.get_form(form_id, user)
        form.status = "PUBLISHED"
        form.archived_at = None
        self.db.flush()
        return form

    def delete_form(self, form_id: UUID, user: User) -> None:
        """Soft delete; submissions keep resolving the form's flow."""
        form = self.get_form(form_id, user)
        form.is_active = False
        self.db.flush()
        logger.info("Form %s removed", form.id)
