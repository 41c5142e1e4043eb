"""Celery workers for FormFlow.

Provides async task processing for notification delivery.
"""

from .notification_tasks import celery_app, deliver_notification

__all__ = ["celery_app", "deliver_notification"]
