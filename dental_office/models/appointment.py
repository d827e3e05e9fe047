"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from dental_office.database import SLOT_HOLDING_STATUSES, Base

APPOINTMENT_STATUSES = ("pending", "scheduled", "confirmed", "completed", "cancelled", "no-show")


class Appointment(Base):
    """A booked visit of a patient with a dentist for one service."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    dentist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default="pending", index=True)
    notes = Column(String(1000), nullable=False, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_by = Column(String(10), nullable=True)  # patient/dentist
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    patient = relationship("User", foreign_keys=[patient_id])
    dentist = relationship("User", foreign_keys=[dentist_id])
    service = relationship("Service")

    @property
    def patient_name(self) -> str | None:
        return self.patient.name if self.patient else None

    @property
    def dentist_name(self) -> str | None:
        return self.dentist.name if self.dentist else None

    @property
    def service_name(self) -> str | None:
        return self.service.name if self.service else None

    def __repr__(self) -> str:
        return f"<Appointment dentist={self.dentist_id} {self.date} {self.time} {self.status}>"


# At most one slot-holding appointment per (dentist, date, time).
Index(
    "uq_appointments_active_slot",
    Appointment.dentist_id,
    Appointment.date,
    Appointment.time,
    unique=True,
    sqlite_where=Appointment.status.in_(SLOT_HOLDING_STATUSES),
    postgresql_where=Appointment.status.in_(SLOT_HOLDING_STATUSES),
)
