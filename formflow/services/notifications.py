"""Notification service for submission workflow emails.

Handles:
- Building notification events while a transition is in flight
- Holding events until the transaction commits
- Handing events to a dispatcher (Celery in production)
- Rendering and delivering emails, with a log row per attempt
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, Dict, Any, List
from uuid import UUID

import aiosmtplib
from jinja2 import Template
from sqlalchemy.orm import Session

from formflow.core.config import Settings, get_settings
from formflow.core.exceptions import DependencyFailure
from formflow.db.models.notification import (
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
)
from formflow.db.models import User

logger = logging.getLogger(__name__)


# Email templates
EMAIL_TEMPLATES = {
    NotificationEventType.SUBMISSION_PENDING: {
        "subject": "[Approval Required] {{ form_id }} - {{ form_name }} | Level {{ level }} Approval",
        "body": """
A form has been submitted and needs your approval:

Form: {{ form_name }}
Submission: {{ submission_number }}
Submitted By: {{ submitter_name }}
Submitted At: {{ submitted_at }}
Plant: {{ plant_name }}

Please review at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.LEVEL_ADVANCED: {
        "subject": "[Approval Required] {{ form_id }} - {{ form_name }} | Level {{ level }} Approval",
        "body": """
A form is waiting for your approval at level {{ level }}:

Form: {{ form_name }}
Submission: {{ submission_number }}
Submitted By: {{ submitter_name }}
Submitted At: {{ submitted_at }}

Previous approvals:
{% for entry in previous_approvals %}- {{ entry.name }} ({{ entry.date }})
{% else %}- None
{% endfor %}
Please review at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.SUBMISSION_APPROVED: {
        "subject": "[Form Fully Approved] {{ form_id }} - {{ form_name }} | Final Approval Completed",
        "body": """
Your submission has been approved at every level:

Form: {{ form_name }}
Submission: {{ submission_number }}
Submitted At: {{ submitted_at }}

Approval trail:
{% for entry in previous_approvals %}- {{ entry.name }} ({{ entry.date }}){% if entry.comments %}: {{ entry.comments }}{% endif %}
{% endfor %}
View it at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.SUBMISSION_REJECTED: {
        "subject": "[Form Rejected] {{ form_id }} - {{ form_name }} | Rejected at Level {{ level }}",
        "body": """
Your submission has been rejected:

Form: {{ form_name }}
Submission: {{ submission_number }}
Rejected By: {{ approver_name }}
Reason: {{ comments or "No reason provided" }}

View it at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.STATUS_CHANGED: {
        "subject": "[Form {{ status_label }}] {{ form_id }} - {{ form_name }} | Level {{ level }} {{ status_label }} by {{ approver_name }}",
        "body": """
A submission in your plant was {{ status_label | lower }}:

Form: {{ form_name }}
Submission: {{ submission_number }}
Submitted By: {{ submitter_name }}
Actioned By: {{ approver_name }}
Comments: {{ comments or "-" }}

View it at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.SUBMISSION_RECEIVED: {
        "subject": "[Form Submitted] {{ form_id }} - {{ form_name }} | Submitted by {{ submitter_name }}",
        "body": """
A new submission was received in your plant:

Form: {{ form_name }}
Submission: {{ submission_number }}
Submitted By: {{ submitter_name }}
Submitted At: {{ submitted_at }}

View it at: {{ link }}

---
{{ app_name }}
        """,
    },
    NotificationEventType.FORM_CREATED: {
        "subject": "Action Required: Form Approval - {{ form_name }}",
        "body": """
You have been added as an approver on a new form:

Form: {{ form_name }}
Created By: {{ creator_name }}
Your Level: {{ level }}

View it at: {{ link }}

---
{{ app_name }}
        """,
    },
}


@dataclass
class NotificationEvent:
    """One email to one user, produced by a committed transition."""
    event_type: NotificationEventType
    recipient_id: UUID
    submission_id: Optional[UUID] = None
    company_id: Optional[UUID] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe form for the task queue."""
        return {
            "event_type": self.event_type.value,
            "recipient_id": str(self.recipient_id),
            "submission_id": str(self.submission_id) if self.submission_id else None,
            "company_id": str(self.company_id) if self.company_id else None,
            "context": self.context,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "NotificationEvent":
        return cls(
            event_type=NotificationEventType(payload["event_type"]),
            recipient_id=UUID(payload["recipient_id"]),
            submission_id=UUID(payload["submission_id"]) if payload.get("submission_id") else None,
            company_id=UUID(payload["company_id"]) if payload.get("company_id") else None,
            context=payload.get("context") or {},
        )


class NotificationDispatcher:
    """Hands committed events to whatever delivers them."""

    def dispatch(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class CeleryNotificationDispatcher(NotificationDispatcher):
    """Queues each event as a ``deliver_notification`` task."""

    def dispatch(self, event: NotificationEvent) -> None:
        from formflow.workers.notification_tasks import deliver_notification

        try:
            deliver_notification.delay(event.to_payload())
        except Exception as e:
            raise DependencyFailure("notification broker", e) from e


class NotificationOutbox:
    """
    Buffers events until the surrounding transaction has committed.

    Events are discarded on rollback so that nobody is told about a
    transition that never happened.
    """

    def __init__(self, dispatcher: Optional[NotificationDispatcher] = None):
        self.dispatcher = dispatcher
        self._events: List[NotificationEvent] = []

    def add(self, event: NotificationEvent) -> None:
        self._events.append(event)

    @property
    def pending(self) -> List[NotificationEvent]:
        return list(self._events)

    def discard(self) -> None:
        self._events.clear()

    def flush(self) -> int:
        """
        Dispatch buffered events. Call only after a successful commit.

        A failing dispatcher is logged per event and never raised: the
        transition it reports on is already committed.

        Returns:
            Number of events handed to the dispatcher
        """
        events, self._events = self._events, []
        if self.dispatcher is None:
            if events:
                logger.debug("No notification dispatcher configured, dropping %d events", len(events))
            return 0

        sent = 0
        for event in events:
            try:
                self.dispatcher.dispatch(event)
                sent += 1
            except Exception:
                logger.exception(
                    "Failed to dispatch %s notification for submission %s",
                    event.event_type.value, event.submission_id,
                )
        return sent


class NotificationService:
    """
    Renders and delivers notification emails.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        """
        Initialize notification service.

        Args:
            db: Database session
            settings: Application settings (defaults to the cached ones)
        """
        self.db = db
        self.settings = settings or get_settings()

    def render(self, event: NotificationEvent) -> Optional[Dict[str, str]]:
        """Render subject and body for an event, or None without a template."""
        template = EMAIL_TEMPLATES.get(event.event_type)
        if not template:
            logger.warning(f"No email template for event type: {event.event_type}")
            return None

        context = {"app_name": self.settings.app_name, "previous_approvals": []}
        context.update(event.context)
        return {
            "subject": Template(template["subject"]).render(**context).strip(),
            "body": Template(template["body"]).render(**context).strip() + "\n",
        }

    async def send(self, event: NotificationEvent, attempt: int = 1) -> Optional[NotificationLog]:
        """
        Deliver one event by email and record the attempt.

        Raises:
            DependencyFailure: If the SMTP server rejected the message
        """
        user = self.db.query(User).filter(User.id == event.recipient_id).first()
        if not user or not user.is_active or not user.email:
            logger.info(f"Skipping {event.event_type.value} notification, recipient {event.recipient_id} unavailable")
            return None

        rendered = self.render(event)
        if rendered is None:
            return None

        log = NotificationLog(
            company_id=event.company_id,
            channel=NotificationChannel.EMAIL.value,
            event_type=event.event_type.value,
            recipient=user.email,
            user_id=user.id,
            submission_id=event.submission_id,
            subject=rendered["subject"],
            body=rendered["body"],
            payload=event.context,
            status="pending",
            attempts=attempt,
        )
        self.db.add(log)
        self.db.flush()

        try:
            delivered = await self._deliver_email(user.email, rendered["subject"], rendered["body"])
        except Exception as e:
            logger.exception(f"Failed to send email to {user.email}")
            log.status = "failed"
            log.error_message = str(e)
            self.db.commit()
            raise DependencyFailure("smtp", e) from e

        log.status = "sent" if delivered else "skipped"
        log.sent_at = datetime.utcnow() if delivered else None
        self.db.commit()
        return log

    def send_sync(self, event: NotificationEvent, attempt: int = 1) -> Optional[NotificationLog]:
        """Synchronous wrapper for worker code."""
        return asyncio.run(self.send(event, attempt=attempt))

    async def _deliver_email(self, to_email: str, subject: str, body: str) -> bool:
        """Deliver the email via SMTP. Returns False when SMTP is not configured."""
        if not self.settings.smtp_host:
            logger.warning("SMTP not configured, skipping email delivery")
            return False

        msg = MIMEMultipart()
        msg["From"] = f"{self.settings.smtp_from_name} <{self.settings.smtp_from_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        await aiosmtplib.send(
            msg,
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            username=self.settings.smtp_user,
            password=self.settings.smtp_password,
            start_tls=self.settings.smtp_use_tls,
        )
        return True
