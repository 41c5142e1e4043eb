"""Plant management API endpoints."""

import logging
import secrets
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from formflow.api.deps import get_db, get_current_user
from formflow.api.schemas.common import MessageResponse
from formflow.core.exceptions import NotFoundError
from formflow.core.rbac import Role, require_role, has_role
from formflow.db.models import Company, Plant, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plants", tags=["plants"])


# Schemas
class PlantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = None
    plant_number: Optional[str] = Field(None, max_length=50)
    company_id: Optional[UUID] = Field(None, description="Only honoured for super admins")


class PlantResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    plant_number: Optional[str]
    location: Optional[str]
    code: str
    is_active: bool
    created_at: datetime
    admin_name: str = "N/A"
    admin_email: str = "N/A"

    class Config:
        from_attributes = True


def generate_plant_code() -> str:
    """Short code employees use to join a plant."""
    return f"PLT-{secrets.token_hex(3).upper()}"


def _plant_admin(db: Session, plant_id: UUID) -> Optional[User]:
    return db.query(User).filter(
        User.plant_id == plant_id,
        User.role == Role.PLANT_ADMIN.value,
    ).first()


# Endpoints
@router.post("", response_model=PlantResponse, status_code=status.HTTP_201_CREATED)
@require_role(Role.COMPANY_ADMIN)
async def create_plant(
    payload: PlantCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create a plant in the current company (or any company for super admins)."""
    if current_user.role == Role.SUPER_ADMIN.value:
        company_id = payload.company_id
    else:
        company_id = current_user.company_id

    if not company_id:
        raise HTTPException(status_code=400, detail="Company ID is required")
    if not db.query(Company.id).filter(Company.id == company_id).first():
        raise NotFoundError("Company", company_id)

    plant = Plant(
        company_id=company_id,
        name=payload.name,
        location=payload.location,
        plant_number=payload.plant_number,
        code=generate_plant_code(),
    )
    db.add(plant)
    db.commit()
    db.refresh(plant)

    logger.info(f"Plant {plant.code} created for company {company_id}")
    return PlantResponse.model_validate(plant)


@router.get("", response_model=List[PlantResponse])
@require_role(Role.COMPANY_ADMIN, Role.PLANT_ADMIN)
async def list_plants(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    company_id: Optional[UUID] = None,
):
    """List active plants visible to the current admin."""
    query = db.query(Plant).filter(Plant.is_active == True)  # noqa: E712

    if current_user.role == Role.COMPANY_ADMIN.value:
        query = query.filter(Plant.company_id == current_user.company_id)
    elif current_user.role == Role.PLANT_ADMIN.value:
        query = query.filter(Plant.id == current_user.plant_id)
    elif company_id:
        query = query.filter(Plant.company_id == company_id)

    items = []
    for plant in query.order_by(Plant.created_at.desc()).all():
        item = PlantResponse.model_validate(plant)
        admin = _plant_admin(db, plant.id)
        if admin:
            item.admin_name = admin.name
            item.admin_email = admin.email
        items.append(item)
    return items


@router.delete("/{plant_id}", response_model=MessageResponse)
@require_role(Role.COMPANY_ADMIN)
async def delete_plant(
    plant_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Soft delete a plant."""
    plant = db.query(Plant).filter(Plant.id == plant_id).first()
    if not plant:
        raise NotFoundError("Plant", plant_id)
    if not has_role(current_user, Role.SUPER_ADMIN) and plant.company_id != current_user.company_id:
        raise HTTPException(status_code=403, detail="Plant belongs to another company")

    plant.is_active = False
    db.commit()
    return MessageResponse(message="Plant removed successfully")
