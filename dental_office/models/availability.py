"""Per-date availability overrides."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String

from dental_office.database import Base


class AvailabilityOverride(Base):
    """A time window replacing the weekly schedule on one specific date."""
    __tablename__ = "availability_overrides"

    id = Column(Integer, primary_key=True)
    dentist_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    start = Column(String(5), nullable=False)
    end = Column(String(5), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
