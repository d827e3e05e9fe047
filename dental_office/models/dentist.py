"""Dentist profile and weekly working hours."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from dental_office.database import Base

SPECIALIZATIONS = (
    "General Dentistry",
    "Orthodontics",
    "Endodontics",
    "Periodontics",
    "Prosthodontics",
    "Oral Surgery",
    "Pediatric Dentistry",
    "Cosmetic Dentistry",
    "Implantology",
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_WORKING_HOURS = {
    "monday": {"start": "09:00", "end": "17:00", "is_working": True},
    "tuesday": {"start": "09:00", "end": "17:00", "is_working": True},
    "wednesday": {"start": "09:00", "end": "17:00", "is_working": True},
    "thursday": {"start": "09:00", "end": "17:00", "is_working": True},
    "friday": {"start": "09:00", "end": "17:00", "is_working": True},
    "saturday": {"start": "09:00", "end": "13:00", "is_working": False},
    "sunday": {"start": "00:00", "end": "00:00", "is_working": False},
}


class Dentist(Base):
    """Professional profile attached to a dentist account."""
    __tablename__ = "dentists"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    license_number = Column(String(50), unique=True, index=True, nullable=False)
    specialization = Column(JSON, nullable=False, default=list)
    experience = Column(Integer, nullable=False, default=0)
    education = Column(JSON, nullable=False, default=list)
    bio = Column(Text, nullable=False, default="")
    consultation_fee = Column(Float, nullable=False, default=0)
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    joined_date = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")


class WorkingHours(Base):
    """One weekday of a dentist's weekly schedule."""
    __tablename__ = "working_hours"
    __table_args__ = (UniqueConstraint("dentist_id", "day", name="uq_working_hours_dentist_day"),)

    id = Column(Integer, primary_key=True)
    dentist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    day = Column(String(10), nullable=False)
    start = Column(String(5), nullable=False)
    end = Column(String(5), nullable=False)
    is_working = Column(Boolean, nullable=False, default=False)
