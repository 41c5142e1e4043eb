"""Database models for FormFlow."""

from formflow.db.models.company import Company, Plant
from formflow.db.models.assignment import Assignment, AssignmentStatus
from formflow.db.models.counter import IdCounter
from formflow.db.models.user import User
from formflow.db.models.form import FormTemplate, Form
from formflow.db.models.submission import FormSubmission, SubmissionHistory
from formflow.db.models.notification import (
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
)

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "Company",
    "Plant",
    "IdCounter",
    "User",
    "FormTemplate",
    "Form",
    "FormSubmission",
    "SubmissionHistory",
    "NotificationLog",
    "NotificationChannel",
    "NotificationEventType",
]
