"""Tests for notification rendering, buffering and delivery."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from formflow.core.config import Settings
from formflow.core.exceptions import DependencyFailure
from formflow.db.models import NotificationLog
from formflow.db.models.notification import NotificationEventType
from formflow.services.notifications import (
    CeleryNotificationDispatcher,
    EMAIL_TEMPLATES,
    NotificationEvent,
    NotificationOutbox,
    NotificationService,
)
from tests.factories import RecordingDispatcher, create_plant, create_user


def _event(event_type=NotificationEventType.SUBMISSION_PENDING, recipient_id=None, **context):
    base = {
        "form_name": "Purchase Request",
        "form_id": "12",
        "submission_number": "42",
        "submitter_name": "Dana",
        "submitted_at": "2024-03-01T09:00:00",
        "plant_name": "North",
        "level": 1,
        "link": "http://forms.test/employee/approvals/abc",
    }
    base.update(context)
    return NotificationEvent(
        event_type=event_type,
        recipient_id=recipient_id or uuid4(),
        submission_id=uuid4(),
        context=base,
    )


class TestRendering:
    """Test email templates."""

    def test_every_event_type_has_a_template(self):
        assert set(EMAIL_TEMPLATES) == set(NotificationEventType)

    def test_pending_subject(self, settings):
        rendered = NotificationService(None, settings).render(_event())
        assert rendered["subject"] == "[Approval Required] 12 - Purchase Request | Level 1 Approval"
        assert "Submitted By: Dana" in rendered["body"]
        assert "http://forms.test/employee/approvals/abc" in rendered["body"]

    def test_level_advanced_lists_previous_approvals(self, settings):
        event = _event(
            NotificationEventType.LEVEL_ADVANCED,
            level=2,
            previous_approvals=[{"name": "Sam", "date": "2024-03-01", "comments": ""}],
        )
        rendered = NotificationService(None, settings).render(event)
        assert "- Sam (2024-03-01)" in rendered["body"]

    def test_rejected_without_comment(self, settings):
        event = _event(NotificationEventType.SUBMISSION_REJECTED, approver_name="Sam", comments="")
        rendered = NotificationService(None, settings).render(event)
        assert rendered["subject"].startswith("[Form Rejected]")
        assert "Reason: No reason provided" in rendered["body"]

    def test_status_changed_subject(self, settings):
        event = _event(
            NotificationEventType.STATUS_CHANGED, status_label="Approved", approver_name="Sam", level=2,
        )
        rendered = NotificationService(None, settings).render(event)
        assert rendered["subject"] == "[Form Approved] 12 - Purchase Request | Level 2 Approved by Sam"


class TestEventPayload:
    """Test the queue payload of an event."""

    def test_round_trip(self):
        event = _event()
        event.company_id = uuid4()
        restored = NotificationEvent.from_payload(event.to_payload())
        assert restored == event

    def test_payload_is_json_safe(self):
        payload = _event().to_payload()
        assert isinstance(payload["recipient_id"], str)
        assert payload["event_type"] == "submission_pending"
        assert payload["company_id"] is None


class TestOutbox:
    """Test post-commit buffering."""

    def test_flush_dispatches_in_order(self):
        dispatcher = RecordingDispatcher()
        outbox = NotificationOutbox(dispatcher)
        first, second = _event(), _event()
        outbox.add(first)
        outbox.add(second)

        assert dispatcher.events == []
        assert outbox.flush() == 2
        assert dispatcher.events == [first, second]
        assert outbox.pending == []

    def test_discard(self):
        dispatcher = RecordingDispatcher()
        outbox = NotificationOutbox(dispatcher)
        outbox.add(_event())
        outbox.discard()
        assert outbox.flush() == 0
        assert dispatcher.events == []

    def test_dispatch_failure_is_logged_and_swallowed(self):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = [DependencyFailure("notification broker"), None]
        outbox = NotificationOutbox(dispatcher)
        outbox.add(_event())
        outbox.add(_event())

        assert outbox.flush() == 1
        assert dispatcher.dispatch.call_count == 2

    def test_unexpected_dispatcher_error_is_swallowed(self):
        """Any dispatcher error is logged; later events are still handed over."""
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = [ConnectionError("broker down"), None, None]
        outbox = NotificationOutbox(dispatcher)
        for _ in range(3):
            outbox.add(_event())

        assert outbox.flush() == 2
        assert dispatcher.dispatch.call_count == 3
        assert outbox.pending == []

    def test_no_dispatcher(self):
        outbox = NotificationOutbox()
        outbox.add(_event())
        assert outbox.flush() == 0
        assert outbox.pending == []

    def test_celery_dispatcher_queues_payload(self):
        event = _event()
        with patch("formflow.workers.notification_tasks.deliver_notification") as task:
            CeleryNotificationDispatcher().dispatch(event)
        task.delay.assert_called_once_with(event.to_payload())

    def test_celery_dispatcher_wraps_broker_errors(self):
        with patch("formflow.workers.notification_tasks.deliver_notification") as task:
            task.delay.side_effect = ConnectionError("broker down")
            with pytest.raises(DependencyFailure, match="notification broker"):
                CeleryNotificationDispatcher().dispatch(_event())


class TestDelivery:
    """Test sending and logging emails."""

    def test_skipped_without_smtp(self, db_session, settings):
        user = create_user(db_session, plant=create_plant(db_session))
        log = asyncio.run(NotificationService(db_session, settings).send(_event(recipient_id=user.id)))

        assert log.status == "skipped"
        assert log.recipient == user.email
        assert log.attempts == 1
        assert log.sent_at is None
        assert db_session.query(NotificationLog).count() == 1

    def test_sent_via_smtp(self, db_session):
        settings = Settings(smtp_host="smtp.test", smtp_port=2525, smtp_use_tls=False)
        user = create_user(db_session, plant=create_plant(db_session))

        with patch("formflow.services.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
            log = asyncio.run(NotificationService(db_session, settings).send(_event(recipient_id=user.id)))

        assert log.status == "sent"
        assert log.sent_at is not None
        message = send.call_args.args[0]
        assert message["To"] == user.email
        assert message["Subject"].startswith("[Approval Required]")
        assert send.call_args.kwargs["hostname"] == "smtp.test"
        assert send.call_args.kwargs["port"] == 2525
        assert send.call_args.kwargs["start_tls"] is False

    def test_smtp_failure(self, db_session):
        settings = Settings(smtp_host="smtp.test")
        user = create_user(db_session, plant=create_plant(db_session))

        with patch(
            "formflow.services.notifications.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=OSError("connection refused"),
        ):
            with pytest.raises(DependencyFailure, match="smtp"):
                asyncio.run(NotificationService(db_session, settings).send(_event(recipient_id=user.id), attempt=2))

        log = db_session.query(NotificationLog).one()
        assert log.status == "failed"
        assert log.attempts == 2
        assert "connection refused" in log.error_message

    def test_inactive_recipient_is_skipped(self, db_session, settings):
        user = create_user(db_session, plant=create_plant(db_session), is_active=False)
        log = asyncio.run(NotificationService(db_session, settings).send(_event(recipient_id=user.id)))
        assert log is None
        assert db_session.query(NotificationLog).count() == 0

    def test_unknown_recipient_is_skipped(self, db_session, settings):
        assert NotificationService(db_session, settings).send_sync(_event()) is None
