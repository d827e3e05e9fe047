from pydantic import BaseModel


class ServiceResponse(BaseModel):
    id: int
    name: str
    description: str
    category: str
    default_duration: int
    default_price: float
    is_active: bool

    class Config:
        from_attributes = True


class DentistServiceResponse(BaseModel):
    id: int
    dentist_id: int
    service_id: int
    custom_price: float
    custom_duration: int
    is_offered: bool
    notes: str
    service: ServiceResponse

    class Config:
        from_attributes = True
