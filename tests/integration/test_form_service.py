"""Tests for form authoring."""

import pytest
from uuid import uuid4

from formflow.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from formflow.core.forms import FormService
from formflow.core.rbac import Role
from formflow.db.models.notification import NotificationEventType
from tests.factories import create_company, create_form, create_plant, create_user


pytestmark = [pytest.mark.db, pytest.mark.integration]


@pytest.fixture
def plant(db_session):
    return create_plant(db_session)


@pytest.fixture
def admin(db_session, plant):
    return create_user(db_session, plant=plant, role=Role.PLANT_ADMIN, name="Pat")


@pytest.fixture
def approvers(db_session, plant):
    return [create_user(db_session, plant=plant) for _ in range(2)]


@pytest.fixture
def service(db_session, dispatcher, settings):
    return FormService(db_session, dispatcher=dispatcher, settings=settings)


class TestCreateForm:

    def test_create_normalizes_levels(self, service, admin, approvers, dispatcher):
        form = service.create_form(admin, {
            "form_name": "Purchase Request",
            "approval_flow": [
                {"level": 5, "approver_id": str(approvers[0].id)},
                {"approverId": str(approvers[1].id), "name": "Finance"},
            ],
        })
        service.commit()

        assert form.status == "DRAFT"
        assert form.plant_id == admin.plant_id
        assert form.company_id == admin.company_id
        assert form.numerical_id == 1
        assert [(l["level"], l["approver_id"]) for l in form.approval_flow] == [
            (1, str(approvers[0].id)),
            (2, str(approvers[1].id)),
        ]
        assert form.approval_flow[1]["name"] == "Finance"

        created = dispatcher.of_type(NotificationEventType.FORM_CREATED)
        assert [(e.recipient_id, e.context["level"]) for e in created] == [
            (approvers[0].id, 1),
            (approvers[1].id, 2),
        ]
        assert created[0].context["creator_name"] == "Pat"

    def test_unknown_approver(self, service, admin, dispatcher):
        with pytest.raises(ValidationError, match="Unknown approvers"):
            service.create_form(admin, {"form_name": "X", "approval_flow": [{"approver_id": str(uuid4())}]})
        service.rollback()
        assert dispatcher.events == []

    def test_approver_from_another_company(self, db_session, service, admin):
        stranger = create_user(db_session, plant=create_plant(db_session, company=create_company(db_session)))
        with pytest.raises(ValidationError, match="Unknown approvers"):
            service.create_form(admin, {"form_name": "X", "approval_flow": [{"approver_id": str(stranger.id)}]})

    def test_invalid_status(self, service, admin):
        with pytest.raises(ValidationError, match="Invalid form status"):
            service.create_form(admin, {"form_name": "X", "status": "LIVE"})

    def test_form_without_flow(self, service, admin, dispatcher):
        form = service.create_form(admin, {"form_name": "Checklist", "status": "PUBLISHED"})
        service.commit()
        assert form.approval_flow == []
        assert dispatcher.events == []


class TestManageForm:

    def test_update_replaces_flow(self, db_session, service, admin, approvers, plant):
        form = create_form(db_session, plant=plant, approvers=approvers)
        updated = service.update_form(form.id, admin, {
            "form_name": "Renamed",
            "approval_flow": [{"approver_id": str(approvers[1].id)}],
        })
        assert updated.form_name == "Renamed"
        assert len(updated.approval_flow) == 1
        assert updated.approval_flow[0]["approver_id"] == str(approvers[1].id)

    def test_update_invalid_status(self, db_session, service, admin, plant):
        form = create_form(db_session, plant=plant)
        with pytest.raises(ValidationError):
            service.update_form(form.id, admin, {"status": "GONE"})

    def test_archive_and_restore(self, db_session, service, admin, plant):
        form = create_form(db_session, plant=plant)

        archived = service.archive_form(form.id, admin)
        assert archived.status == "ARCHIVED"
        assert archived.archived_at is not None

        restored = service.restore_form(form.id, admin)
        assert restored.status == "PUBLISHED"
        assert restored.archived_at is None

    def test_delete_is_soft(self, db_session, service, admin, plant):
        form = create_form(db_session, plant=plant)
        service.delete_form(form.id, admin)

        assert form.is_active is False
        with pytest.raises(NotFoundError):
            service.get_form(form.id)

    def test_other_plant_cannot_manage(self, db_session, service, plant):
        form = create_form(db_session, plant=plant)
        other_admin = create_user(
            db_session, plant=create_plant(db_session), role=Role.PLANT_ADMIN,
        )
        with pytest.raises(AuthorizationError):
            service.archive_form(form.id, other_admin)

    def test_employees_list_fillable_forms(self, db_session, service, plant, approvers):
        create_form(db_session, plant=plant, status="PUBLISHED")
        create_form(db_session, plant=plant, status="DRAFT")

        forms, total = service.list_forms(approvers[0])
        assert total == 1
        assert forms[0].status == "PUBLISHED"

    def test_submission_counts_empty(self, service):
        assert service.submission_counts([]) == {}
