"""Template assignments: plant admins ask employees to fill in a form.

An assignment is FILLED by the first submission that references it. The
assignment records which submission that was; the submission keeps the
assignment id.
"""

import logging
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from formflow.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from formflow.core.rbac import Role, can_view, scope_to_tenant
from formflow.core.templates import TemplateRef, TemplateVariant, load_template, resolve_template
from formflow.db.models import Assignment, AssignmentStatus, Form, FormSubmission, FormTemplate, User

logger = logging.getLogger(__name__)


class AssignmentBatch(NamedTuple):
    """Rows created by one assign call, plus the templates that were skipped."""
    assignments: List[Assignment]
    errors: List[str]


class AssignmentEntry(NamedTuple):
    assignment: Assignment
    template: Union[FormTemplate, Form]


class AssignmentService:
    """Create, list and fill template assignments."""

    def __init__(self, db: Session):
        self.db = db

    def assign(
        self,
        user: User,
        template_ids: Iterable[UUID],
        employee_ids: Iterable[UUID],
        due_date: Optional[datetime] = None,
    ) -> AssignmentBatch:
        """
        Assign every template to every employee.

        Missing and archived templates are skipped and reported in
        ``errors``; the others are still assigned.

        Raises:
            ValidationError: If nothing was requested or an employee is unknown
            NotFoundError: If no requested template could be assigned
        """
        template_ids = list(dict.fromkeys(template_ids))
        employee_ids = list(dict.fromkeys(employee_ids))
        if not template_ids or not employee_ids:
            raise ValidationError("Invalid assignment data: templates and employees are required")
        self._check_employees(employee_ids, user.company_id)

        created, errors = [], []
        for template_id in template_ids:
            try:
                ref = resolve_template(self.db, template_id)
            except NotFoundError:
                errors.append(f"Template with ID {template_id} not found")
                continue
            template = load_template(self.db, ref)
            if user.company_id and template.company_id != user.company_id:
                errors.append(f"Template with ID {template_id} not found")
                continue
            if template.status == "ARCHIVED":
                errors.append(f'Template "{template.display_name}" is archived and cannot be assigned')
                continue

            for employee_id in employee_ids:
                assignment = Assignment(
                    template_kind=ref.kind.value,
                    template_id=template.id,
                    employee_id=employee_id,
                    assigned_by=user.id,
                    company_id=user.company_id,
                    plant_id=user.plant_id,
                    due_date=due_date,
                    status=AssignmentStatus.PENDING.value,
                )
                self.db.add(assignment)
                created.append(assignment)

        if not created:
            logger.info("No assignment created: %s", "; ".join(errors))
            raise NotFoundError("Template", ", ".join(str(t) for t in template_ids))

        self.db.flush()
        logger.info(
            "Assigned %d templates to %d employees (%d skipped)",
            len(template_ids) - len(errors), len(employee_ids), len(errors),
        )
        return AssignmentBatch(created, errors)

    def list_mine(self, user: User, status: Optional[str] = None) -> List[AssignmentEntry]:
        """The user's assignments, newest first. Archived or removed templates are left out."""
        query = self.db.query(Assignment).filter(Assignment.employee_id == user.id)
        if status:
            query = query.filter(Assignment.status == status.upper())

        entries = []
        for assignment in query.order_by(Assignment.created_at.desc()).all():
            try:
                template = load_template(self.db, self._ref(assignment))
            except NotFoundError:
                continue
            if template.status == "ARCHIVED":
                continue
            entries.append(AssignmentEntry(assignment, template))
        return entries

    def list_for_plant(self, user: User) -> List[Assignment]:
        query = scope_to_tenant(self.db.query(Assignment), Assignment, user, owner_column="employee_id")
        return query.order_by(Assignment.created_at.desc()).all()

    def get(self, assignment_id: UUID, user: Optional[User] = None) -> Assignment:
        assignment = self.db.query(Assignment).filter(Assignment.id == assignment_id).first()
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        if user is not None and not can_view(user, assignment, owner_column="employee_id"):
            raise AuthorizationError("You do not have access to this assignment", actor_id=user.id)
        return assignment

    def delete(self, assignment_id: UUID, user: User) -> None:
        assignment = self.get(assignment_id, user)
        if Role(user.role) == Role.EMPLOYEE:
            raise AuthorizationError("Only admins can remove assignments", actor_id=user.id)
        self.db.delete(assignment)
        self.db.flush()
        logger.info("Assignment %s removed", assignment_id)

    def mark_filled(self, assignment_id: UUID, submission: FormSubmission) -> Assignment:
        """
        Link a new submission to the assignment it fulfils.

        Raises:
            NotFoundError: If the assignment does not exist
            AuthorizationError: If the submitter is not the assigned employee
            ValidationError: If the submission is for a different template
            ConflictError: If the assignment was already filled
        """
        assignment = self.db.query(Assignment).filter(
            Assignment.id == assignment_id
        ).with_for_update().first()
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        if assignment.employee_id != submission.submitted_by:
            raise AuthorizationError(
                "This assignment belongs to another employee", actor_id=submission.submitted_by,
            )
        if assignment.template_id != submission.template_id:
            raise ValidationError("Submission does not match the assigned template")
        if assignment.status != AssignmentStatus.PENDING.value:
            raise ConflictError(f"Assignment {assignment_id} is already {assignment.status}")

        assignment.status = AssignmentStatus.FILLED.value
        assignment.submission_id = submission.id
        assignment.filled_at = datetime.utcnow()
        submission.assignment_id = assignment.id
        self.db.flush()
        return assignment

    def _check_employees(self, employee_ids: List[UUID], company_id: Optional[UUID]) -> None:
        query = self.db.query(User.id).filter(User.id.in_(employee_ids), User.is_active == True)  # noqa: E712
        if company_id:
            query = query.filter(User.company_id == company_id)
        found = {row.id for row in query.all()}
        missing = set(employee_ids) - found
        if missing:
            raise ValidationError(f"Unknown employees: {', '.join(sorted(str(m) for m in missing))}")

    @staticmethod
    def _ref(assignment: Assignment) -> TemplateRef:
        return TemplateRef(TemplateVariant(assignment.template_kind), assignment.template_id)
