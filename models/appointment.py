"""
Appointment data models for the Clinic Slot Allocator.

This module defines the 'Output' of the booking engine:
specific time slots that have been committed to a patient.
"""

from datetime import date as date_type, time as time_type, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from .service import ServiceType, resolve_duration


class AppointmentStatus(str, Enum):
    """Lifecycle state of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    NO_SHOW = "no_show"
    CANCELLED_BY_PATIENT = "cancelled_by_patient"
    CANCELLED_BY_PROFESSIONAL = "cancelled_by_professional"

    @property
    def is_cancelled(self) -> bool:
        return self in CANCELLED_STATUSES


CANCELLED_STATUSES = frozenset({
    AppointmentStatus.CANCELLED_BY_PATIENT,
    AppointmentStatus.CANCELLED_BY_PROFESSIONAL,
})


class InsuranceProvider(str, Enum):
    PRIVATE = "Particular"
    IOMA = "IOMA"


class PatientInfo(BaseModel):
    """Contact details captured by the booking form."""
    patient_name: str = Field(min_length=2, description="Full name of the patient")
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Contact email")
    phone: str = Field(min_length=8, description="Contact phone number")
    is_first_time: bool = Field(default=False, description="First visit to the clinic")
    insurance: InsuranceProvider = Field(default=InsuranceProvider.PRIVATE)
    notes: str = Field(default="", description="Free text provided by the patient")
    patient_id: Optional[int] = Field(default=None, description="Linked patient record, if any")


class Appointment(PatientInfo):
    """
    A committed booking.
    Duration and end time are derived from the service type, never stored.
    """

    # --- Core Scheduling Data ---
    id: Optional[int] = Field(default=None, description="Assigned by the store on insert")
    date: date_type = Field(description="Calendar date (clinic timezone)")
    start_time: time_type = Field(description="Start time (clinic timezone)")
    service_type: ServiceType
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING)

    # --- Patient Self-Service ---
    cancellation_token: Optional[str] = Field(default=None, description="Secret for the cancellation link")
    cancellation_token_expires_at: Optional[datetime] = Field(default=None)

    # --- External Calendar ---
    calendar_event_id: Optional[str] = Field(default=None, description="Id in the exported calendar")

    # --- Audit Trail ---
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    attended_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None

    @property
    def duration_minutes(self) -> int:
        return resolve_duration(self.service_type)

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def end_time(self) -> time_type:
        return self.end.time()

    @property
    def is_active(self) -> bool:
        """Cancelled bookings stay on file but no longer occupy their slot."""
        return not self.status.is_cancelled

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "id": 42,
            "date": "2025-01-15",
            "start_time": "09:20:00",
            "service_type": "Consulta & PAP",
            "status": "pending",
            "patient_name": "Ana Pérez",
            "email": "ana@correo.com.ar",
            "phone": "1138151880",
            "is_first_time": True,
            "insurance": "IOMA",
            "notes": ""
        }
    })
