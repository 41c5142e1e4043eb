import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from formflow.db.base import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    settings = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    plants = relationship("Plant", back_populates="company")
    users = relationship("User", back_populates="company")

    def __repr__(self) -> str:
        return f"<Company {self.slug}>"


class Plant(Base):
    __tablename__ = "plants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    plant_number = Column(String(50), nullable=True)
    location = Column(String(255), nullable=True)
    code = Column(String(20), unique=True, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    company = relationship("Company", back_populates="plants")
    users = relationship("User", back_populates="plant")

    def __repr__(self) -> str:
        return f"<Plant {self.code} {self.name}>"
