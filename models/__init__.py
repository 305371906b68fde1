"""
Data models package for the Clinic Slot Allocator.

This package exports the three core pillars of the data architecture:
1. Demand (ServiceType and its durations)
2. Supply (ScheduleConfig and its exclusions)
3. Output (Appointment, AppointmentStatus)
"""

from .service import (
    ServiceType,
    SERVICE_DURATIONS,
    SPECIAL_CASE_SERVICES,
    parse_service_type,
    resolve_duration,
    is_special_case_service
)

from .schedule_config import (
    ScheduleConfig,
    WorkWindow,
    VacationPeriod,
    normalize_weekday,
    weekday_name
)

from .appointment import (
    Appointment,
    AppointmentStatus,
    CANCELLED_STATUSES,
    InsuranceProvider,
    PatientInfo
)

__all__ = [
    # --- Demand Models ---
    "ServiceType",
    "SERVICE_DURATIONS",
    "SPECIAL_CASE_SERVICES",
    "parse_service_type",
    "resolve_duration",
    "is_special_case_service",

    # --- Supply Models ---
    "ScheduleConfig",
    "WorkWindow",
    "VacationPeriod",
    "normalize_weekday",
    "weekday_name",

    # --- Output Models ---
    "Appointment",
    "AppointmentStatus",
    "CANCELLED_STATUSES",
    "InsuranceProvider",
    "PatientInfo",
]
