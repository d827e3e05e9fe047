from datetime import date, datetime

from pydantic import BaseModel

from dental_office.core.pagination import PaginationResponse


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: int
    service_id: int
    date: date
    time: str
    duration: int
    status: str
    notes: str = ''
    patient_name: str | None = None
    dentist_name: str | None = None
    service_name: str | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]
    pagination: PaginationResponse
