"""Dashboard analytics API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from formflow.api.deps import get_db, get_current_user
from formflow.core.analytics import AnalyticsService
from formflow.core.rbac import ADMIN_ROLES, require_role
from formflow.db.models import User

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
@require_role(*ADMIN_ROLES)
async def dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    days: int = Query(30, ge=1, le=365),
    plant_id: Optional[UUID] = None,
):
    """Submission volume, decision rates and approver activity."""
    return AnalyticsService(db).dashboard(current_user, days=days, plant_id=plant_id)


@router.get("/plants")
@require_role(*ADMIN_ROLES)
async def plant_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    days: Optional[int] = Query(None, ge=1, le=365),
    company_id: Optional[UUID] = None,
):
    """Submission counts and decision time per plant."""
    return AnalyticsService(db).plant_stats(current_user, days=days, company_id=company_id)
