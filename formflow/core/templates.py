"""Tagged references to the form definition a submission was filled against."""

from enum import Enum
from typing import NamedTuple, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from formflow.core.approval.flow import ApprovalFlow
from formflow.core.exceptions import NotFoundError, ValidationError
from formflow.db.models import Form, FormTemplate


class TemplateVariant(str, Enum):
    FORM_TEMPLATE = "FORM_TEMPLATE"
    FORM = "FORM"


class TemplateRef(NamedTuple):
    """A submission binds to exactly one template variant."""
    kind: TemplateVariant
    id: UUID


_MODELS = {
    TemplateVariant.FORM_TEMPLATE: FormTemplate,
    TemplateVariant.FORM: Form,
}


def load_template(db: Session, ref: TemplateRef, include_inactive: bool = False) -> Union[FormTemplate, Form]:
    """
    Load the row behind a template reference.

    Soft-deleted rows are only returned with ``include_inactive``, which
    existing submissions need to keep resolving their flow.

    Raises:
        NotFoundError: If no matching row of that variant exists
    """
    model = _MODELS[ref.kind]
    query = db.query(model).filter(model.id == ref.id)
    if not include_inactive:
        query = query.filter(model.is_active == True)  # noqa: E712
    template = query.first()
    if template is None:
        raise NotFoundError("Template", ref.id)
    return template


def resolve_template(
    db: Session,
    template_id: UUID,
    kind: Optional[TemplateVariant] = None,
    include_inactive: bool = False,
) -> TemplateRef:
    """
    Work out which variant an id refers to.

    Without an explicit kind, FormTemplate is tried before Form.
    """
    if kind is not None:
        ref = TemplateRef(TemplateVariant(kind), template_id)
        load_template(db, ref, include_inactive=include_inactive)
        return ref

    for variant in (TemplateVariant.FORM_TEMPLATE, TemplateVariant.FORM):
        model = _MODELS[variant]
        query = db.query(model.id).filter(model.id == template_id)
        if not include_inactive:
            query = query.filter(model.is_active == True)  # noqa: E712
        if query.first():
            return TemplateRef(variant, template_id)
    raise NotFoundError("Template", template_id)


def flow_for(template: Union[FormTemplate, Form]) -> ApprovalFlow:
    """Approval flow stored on either template variant."""
    try:
        return ApprovalFlow.from_stored(template.flow_definition)
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Template {template.id} has a malformed approval flow") from e
