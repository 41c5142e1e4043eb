"""HTTP tests for the submission and approval endpoints."""

import pytest
from fastapi.testclient import TestClient

from formflow.core.rbac import Role
from formflow.db.models.notification import NotificationEventType
from tests.factories import create_form, create_plant, create_user


pytestmark = [pytest.mark.db, pytest.mark.integration]


@pytest.fixture
def setup(db_session):
    plant = create_plant(db_session)
    people = {
        "submitter": create_user(db_session, plant=plant, name="Dana"),
        "first": create_user(db_session, plant=plant, name="Sam"),
        "second": create_user(db_session, plant=plant, name="Alex"),
        "admin": create_user(db_session, plant=plant, role=Role.PLANT_ADMIN),
    }
    form = create_form(db_session, plant=plant, approvers=[people["first"], people["second"]])
    db_session.commit()
    return form, people


def _create(client, form, user, auth_headers, **body):
    payload = {"template_id": str(form.id), "data": {"item": "gloves"}}
    payload.update(body)
    return client.post("/api/submissions", json=payload, headers=auth_headers(user))


class TestSubmissionEndpoints:

    def test_requires_authentication(self, client: TestClient):
        response = client.get("/api/submissions")
        assert response.status_code == 401

    def test_create_submission(self, client, setup, auth_headers, dispatcher):
        form, people = setup
        response = _create(client, form, people["submitter"], auth_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING_APPROVAL"
        assert data["current_level"] == 1
        assert data["template_kind"] == "FORM"
        assert data["data"] == {"item": "gloves"}
        assert data["approval_history"] == []
        assert len(dispatcher.of_type(NotificationEventType.SUBMISSION_PENDING)) == 1

    def test_create_unknown_template(self, client, setup, auth_headers):
        form, people = setup
        response = client.post(
            "/api/submissions",
            json={"template_id": str(people["first"].id)},
            headers=auth_headers(people["submitter"]),
        )
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_draft_then_submit(self, client, setup, auth_headers):
        form, people = setup
        draft = _create(client, form, people["submitter"], auth_headers, status="DRAFT").json()
        assert draft["status"] == "DRAFT"
        assert draft["submitted_at"] is None

        response = client.post(
            f"/api/submissions/{draft['id']}/submit", headers=auth_headers(people["submitter"]),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PENDING_APPROVAL"

    def test_list_and_get(self, client, setup, auth_headers):
        form, people = setup
        created = _create(client, form, people["submitter"], auth_headers).json()

        listing = client.get("/api/submissions", headers=auth_headers(people["submitter"])).json()
        assert listing["total"] == 1
        assert listing["pages"] == 1
        assert listing["items"][0]["id"] == created["id"]

        response = client.get(f"/api/submissions/{created['id']}", headers=auth_headers(people["second"]))
        assert response.status_code == 200

    def test_outsider_cannot_view(self, client, db_session, setup, auth_headers):
        form, people = setup
        created = _create(client, form, people["submitter"], auth_headers).json()
        outsider = create_user(db_session, plant=create_plant(db_session))
        db_session.commit()

        response = client.get(f"/api/submissions/{created['id']}", headers=auth_headers(outsider))
        assert response.status_code == 403


class TestApprovalEndpoints:

    def test_full_approval(self, client, setup, auth_headers):
        form, people = setup
        created = _create(client, form, people["submitter"], auth_headers).json()

        response = client.post(
            f"/api/approvals/{created['id']}/approve",
            json={"comments": "looks right"},
            headers=auth_headers(people["first"]),
        )
        assert response.status_code == 200
        assert response.json()["current_level"] == 2

        response = client.post(
            f"/api/approvals/{created['id']}/approve", headers=auth_headers(people["second"]),
        )
        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "APPROVED"
        assert data["current_level"] == 3
        assert [h["level"] for h in data["approval_history"]] == [1, 2]
        assert data["approval_history"][0]["comments"] == "looks right"

        history = client.get(
            f"/api/submissions/{created['id']}/history", headers=auth_headers(people["submitter"]),
        ).json()
        assert [h["status"] for h in history] == ["APPROVED", "APPROVED"]

    def test_wrong_approver_is_forbidden(self, client, setup, auth_headers):
        form, people = setup
        created = _create(client, form, people["submitter"], auth_headers).json()

        response = client.post(
            f"/api/approvals/{created['id']}/approve", headers=auth_headers(people["second"]),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "AuthorizationError"

    def test_reject_then_act_again(self, client, setup, auth_headers):
        form, people = setup
        created = _create(client, form, people["submitter"], auth_headers).json()

        response = client.post(
            f"/api/approvals/{created['id']}/reject",
            json={"comments": "incomplete"},
            headers=auth_headers(people["first"]),
        )
        assert response.json()["status"] == "REJECTED"

        response = client.post(
            f"/api/approvals/{created['id']}/approve", headers=auth_headers(people["first"]),
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_assigned_queue(self, client, setup, auth_headers):
        form, people = setup
        _create(client, form, people["submitter"], auth_headers)

        queue = client.get("/api/approvals/assigned", headers=auth_headers(people["second"])).json()
        assert len(queue) == 1
        assert queue[0]["is_actors_turn"] is False
        assert queue[0]["actor_level"] == 2
        assert queue[0]["blocking_approver_name"] == "Sam"

        stats = client.get("/api/approvals/stats", headers=auth_headers(people["first"])).json()
        assert stats == {"pending_count": 1, "actioned_count": 0}

    def test_template_analytics_requires_admin(self, client, setup, auth_headers):
        form, people = setup
        response = client.get(
            f"/api/submissions/template/{form.id}/analytics", headers=auth_headers(people["submitter"]),
        )
        assert response.status_code == 403

        response = client.get(
            f"/api/submissions/template/{form.id}/analytics", headers=auth_headers(people["admin"]),
        )
        assert response.status_code == 200
        assert response.json()["level_stats"] == [
            {"level": 1, "approved": 0, "total": 0},
            {"level": 2, "approved": 0, "total": 0},
        ]
