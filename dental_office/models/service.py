"""Service catalog model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from dental_office.database import Base

SERVICE_CATEGORIES = (
    "Preventive",
    "Restorative",
    "Cosmetic",
    "Orthodontic",
    "Surgical",
    "Emergency",
    "Consultation",
)


class Service(Base):
    """A treatment offered by the office."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(20), nullable=False, index=True)
    default_duration = Column(Integer, nullable=False)
    default_price = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DentistService(Base):
    """Links a dentist to a service with an optional custom price and duration."""
    __tablename__ = "dentist_services"
    __table_args__ = (UniqueConstraint("dentist_id", "service_id", name="uq_dentist_service"),)

    id = Column(Integer, primary_key=True)
    dentist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    custom_price = Column(Float, nullable=False)
    custom_duration = Column(Integer, nullable=False)
    is_offered = Column(Boolean, nullable=False, default=True)
    notes = Column(String(200), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    service = relationship("Service")
    dentist = relationship("User")
