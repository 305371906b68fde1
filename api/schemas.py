"""Request and response bodies for the booking API."""

from datetime import date as date_type, datetime, time as time_type
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from models import Appointment, AppointmentStatus, InsuranceProvider, PatientInfo


class AvailabilitySlot(BaseModel):
    time: str = Field(description="Start time, HH:MM")
    available: bool
    reason: Optional[str] = Field(default=None, description="Error code explaining why the slot is closed")


class AppointmentCreate(PatientInfo):
    date: date_type
    time: time_type
    # Plain string so unknown labels reach the engine and come back as InvalidServiceType
    service_type: str

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "date": "2025-01-15",
            "time": "09:20",
            "service_type": "Consulta",
            "patient_name": "Ana Pérez",
            "email": "ana@correo.com.ar",
            "phone": "1138151880",
            "is_first_time": True,
            "insurance": "IOMA"
        }
    })

    def patient(self) -> PatientInfo:
        return PatientInfo(**self.model_dump(include=set(PatientInfo.model_fields)))


class RescheduleRequest(BaseModel):
    date: date_type
    time: time_type


class StatusUpdate(BaseModel):
    status: str = Field(description="One of the AppointmentStatus values")


class CancelRequest(BaseModel):
    token: str = Field(min_length=1, description="Token from the cancellation link")


class ErrorResponse(BaseModel):
    error_code: str
    message: str


class AppointmentResponse(BaseModel):
    """Public view of an appointment. The cancellation token is never echoed back."""
    id: int
    date: date_type
    start_time: time_type
    end_time: time_type
    duration_minutes: int
    service_type: str
    status: AppointmentStatus

    patient_name: str
    email: str
    phone: str
    is_first_time: bool
    insurance: InsuranceProvider
    notes: str

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    attended_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> "AppointmentResponse":
        return cls(
            **appointment.model_dump(include=set(cls.model_fields) - {"end_time", "duration_minutes", "service_type"}),
            end_time=appointment.end_time,
            duration_minutes=appointment.duration_minutes,
            service_type=appointment.service_type.value
        )
