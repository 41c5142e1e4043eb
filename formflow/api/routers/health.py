"""Health check endpoints for FormFlow.

- /health: process is up
- /health/live: liveness, never touches collaborators
- /health/ready: database and notification broker are reachable

Email delivery is reported but never fails readiness: without an SMTP host
notifications are logged as skipped and approvals keep working.
"""

from datetime import datetime
from typing import Any, Dict

import redis
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from formflow import __version__
from formflow.api.deps import get_db
from formflow.core.approval.states import IN_PROGRESS_STATES
from formflow.core.config import get_settings
from formflow.db.models import FormSubmission

router = APIRouter(tags=["health"])
settings = get_settings()

# Checks whose failure takes the instance out of rotation
REQUIRED_CHECKS = ("database", "broker")


def _timestamp() -> str:
    return datetime.utcnow().isoformat()


def check_database(db: Session) -> Dict[str, Any]:
    """Run a cheap query and report the approval backlog."""
    try:
        backlog = db.query(func.count(FormSubmission.id)).filter(
            FormSubmission.status.in_([s.value for s in IN_PROGRESS_STATES])
        ).scalar()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "in_progress_submissions": backlog or 0}


def check_broker() -> Dict[str, Any]:
    """Ping the Celery broker when it is Redis."""
    url = settings.celery_broker
    if not url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "reason": "non-redis broker"}

    client = redis.from_url(url, socket_connect_timeout=2, socket_timeout=2)
    try:
        client.ping()
    except redis.RedisError as e:
        return {"status": "unhealthy", "error": str(e)}
    finally:
        client.close()
    return {"status": "healthy"}


def check_email() -> Dict[str, Any]:
    if not settings.smtp_host:
        return {"status": "degraded", "reason": "SMTP host not configured"}
    return {"status": "healthy", "smtp_host": settings.smtp_host}


@router.get("/health")
async def health_check():
    """Basic health check, 200 whenever the app is running."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": _timestamp(),
    }


@router.get("/health/live")
async def liveness_check():
    return {"status": "alive", "timestamp": _timestamp()}


@router.get("/health/ready")
async def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check.

    503 when the database or the broker is unreachable.
    """
    checks = {
        "database": check_database(db),
        "broker": check_broker(),
        "email": check_email(),
    }
    failed = [name for name in REQUIRED_CHECKS if checks[name]["status"] == "unhealthy"]

    body = {
        "status": "not_ready" if failed else "ready",
        "checks": checks,
        "timestamp": _timestamp(),
    }
    if failed:
        body["failed"] = failed
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if failed else status.HTTP_200_OK,
        content=body,
    )
