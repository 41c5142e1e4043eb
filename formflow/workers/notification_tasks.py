"""Celery tasks for notification delivery.

Emails are sent outside the request that produced them. A failed
delivery is retried a bounded number of times and then left in
``notification_logs`` as failed.
"""

from typing import Optional, Dict, Any
import logging

from celery import Celery, shared_task
from celery.signals import after_setup_logger

from formflow.common.logger import configure_from_settings
from formflow.core.config import get_settings
from formflow.core.exceptions import DependencyFailure
from formflow.db.session import SessionLocal
from formflow.services.notifications import NotificationEvent, NotificationService

logger = logging.getLogger(__name__)
settings = get_settings()

# Initialize Celery
celery_app = Celery(
    'formflow',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'formflow.workers.notification_tasks.deliver_notification': {'queue': 'notifications'},
    },
    task_default_queue='default',
)


@after_setup_logger.connect
def setup_worker_logging(**kwargs):
    """Attach the package handlers once Celery has configured its own."""
    configure_from_settings(settings)


@shared_task(
    bind=True,
    max_retries=settings.notification_max_retries,
    default_retry_delay=settings.notification_retry_delay,
)
def deliver_notification(self, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Async task to deliver a single notification.

    Args:
        payload: ``NotificationEvent.to_payload()`` output

    Returns:
        Summary of the logged attempt, or None when nothing was sent
    """
    event = NotificationEvent.from_payload(payload)
    db = SessionLocal()
    try:
        log = NotificationService(db).send_sync(event, attempt=self.request.retries + 1)
        if log is None:
            return None

        logger.info(f"Notification {event.event_type.value} to {log.recipient}: {log.status}")
        return {"id": str(log.id), "status": log.status}

    except DependencyFailure as e:
        logger.warning(
            f"Delivery of {event.event_type.value} failed "
            f"(attempt {self.request.retries + 1}/{self.max_retries + 1})"
        )
        raise self.retry(exc=e)

    finally:
        db.close()
