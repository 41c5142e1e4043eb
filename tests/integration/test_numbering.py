"""Tests for sequential human-readable ids."""

import asyncio
import json
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from formflow.api.main import integrity_error_handler
from formflow.core.numbering import FORM_SEQUENCE, SUBMISSION_SEQUENCE, next_number
from formflow.db.models import Form, FormSubmission, IdCounter


pytestmark = [pytest.mark.db, pytest.mark.integration]


class TestNextNumber:

    def test_seeds_from_existing_rows(self, db_session):
        """Rows written before the counter existed are not reused."""
        db_session.add(FormSubmission(numerical_id=41, template_id=uuid4()))
        db_session.flush()

        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 42
        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 43
        counter = db_session.query(IdCounter).filter(IdCounter.name == SUBMISSION_SEQUENCE).one()
        assert counter.value == 43

    def test_sequences_are_independent(self, db_session):
        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 1
        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 2
        assert next_number(db_session, FORM_SEQUENCE, Form.numerical_id) == 1

    def test_counter_wins_over_table_maximum(self, db_session):
        """Numbers of rows that were later removed are never handed out again."""
        db_session.add(IdCounter(name=SUBMISSION_SEQUENCE, value=100))
        db_session.add(FormSubmission(numerical_id=7, template_id=uuid4()))
        db_session.flush()

        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 101

    def test_rollback_releases_reservation(self, db_session):
        next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id)
        db_session.commit()
        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 2
        db_session.rollback()

        assert next_number(db_session, SUBMISSION_SEQUENCE, FormSubmission.numerical_id) == 2


class TestIntegrityErrorResponse:

    def test_unique_violation_is_a_conflict(self):
        request = MagicMock()
        request.url.path = "/api/submissions"
        exc = IntegrityError("INSERT INTO form_submissions", {}, Exception("UNIQUE constraint failed"))

        response = asyncio.run(integrity_error_handler(request, exc))

        assert response.status_code == 409
        assert json.loads(response.body)["error"] == "ConflictError"
