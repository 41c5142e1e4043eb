import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, index=True)  # SUPER_ADMIN, COMPANY_ADMIN, PLANT_ADMIN, EMPLOYEE
    position = Column(String(255), nullable=True)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    plant_id = Column(Uuid, ForeignKey("plants.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="users")
    plant = relationship("Plant", back_populates="users")

    def __repr__(self) -> str:
        return f"<User {self.email} [{self.role}]>"
