from typing import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from formflow.db.session import SessionLocal
from formflow.db.models import User
from formflow.core.security import decode_token
from formflow.core.approval.service import SubmissionService
from formflow.services.notifications import CeleryNotificationDispatcher, NotificationDispatcher

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dispatcher for post-commit notification events."""
    return CeleryNotificationDispatcher()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token:
        user_id = decode_token(token)
        if user_id:
            user = db.query(User).filter(User.id == user_id).first()
            if user and user.is_active:
                return user

    raise credentials_exception


def get_submission_service(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SubmissionService:
    """Submission service bound to the request's session."""
    return SubmissionService(db, dispatcher=dispatcher)
