"""Patient profile model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from dental_office.database import Base

GENDERS = ("male", "female", "other")


class Patient(Base):
    """Contact details attached to a patient account."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    birthdate = Column(Date, nullable=False)
    gender = Column(String(10), nullable=False)
    phone = Column(String(20), unique=True, index=True, nullable=False)
    address = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User")
