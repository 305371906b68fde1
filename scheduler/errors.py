"""
Error taxonomy for the Slot Allocation Engine.

Codes are stable strings (part of the public API contract).
Exceptions wrap a code so callers can branch on it without parsing messages.
"""

from datetime import date as date_type, time as time_type
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Stable error codes reported to callers."""
    # Slot Validator rejections (user-correctable)
    NOT_A_WORKING_DAY = "NotAWorkingDay"
    OUTSIDE_WORKING_HOURS = "OutsideWorkingHours"
    MISALIGNED_GRID = "MisalignedGrid"
    MISALIGNED_EXTENDED_SERVICE_START = "MisalignedExtendedServiceStart"
    DATE_BLOCKED = "DateBlocked"
    SLOT_BLOCKED = "SlotBlocked"
    IN_VACATION_PERIOD = "InVacationPeriod"
    SLOT_IN_PAST = "SlotInPast"

    # Conflict Detector rejection
    SLOT_TAKEN = "SlotTaken"

    # Defects & infrastructure
    INVALID_SERVICE_TYPE = "InvalidServiceType"
    STORAGE_UNAVAILABLE = "StorageUnavailable"

    # Lifecycle
    APPOINTMENT_NOT_FOUND = "AppointmentNotFound"
    APPOINTMENT_NOT_ACTIVE = "AppointmentNotActive"
    CANCELLATION_EXPIRED = "CancellationExpired"
    INVALID_STATUS_TRANSITION = "InvalidStatusTransition"


@dataclass(frozen=True)
class SlotViolation:
    """Detailed reason why a candidate slot was rejected."""
    code: ErrorCode
    reason: str
    date: date_type
    start_time: time_type


class SchedulingError(Exception):
    """Base class for every error the engine raises on purpose."""

    code: ErrorCode

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class SlotRejected(SchedulingError):
    """Deterministic rejection from the Slot Validator or Conflict Detector."""

    def __init__(self, violation: SlotViolation):
        super().__init__(violation.code, violation.reason)
        self.violation = violation


class InvalidServiceType(SchedulingError):
    def __init__(self, service_type: object):
        super().__init__(ErrorCode.INVALID_SERVICE_TYPE, f"Unknown service type: {service_type!r}")
        self.service_type = service_type


class AppointmentNotFound(SchedulingError):
    def __init__(self, appointment_id: Optional[int] = None, message: Optional[str] = None):
        super().__init__(
            ErrorCode.APPOINTMENT_NOT_FOUND,
            message or f"Appointment {appointment_id} does not exist",
        )
        self.appointment_id = appointment_id


class AppointmentNotActive(SchedulingError):
    def __init__(self, appointment_id: int):
        super().__init__(ErrorCode.APPOINTMENT_NOT_ACTIVE, f"Appointment {appointment_id} is already cancelled")
        self.appointment_id = appointment_id


class CancellationExpired(SchedulingError):
    def __init__(self, appointment_id: int):
        super().__init__(
            ErrorCode.CANCELLATION_EXPIRED,
            "The cancellation link has expired; appointments can only be cancelled online up to 48 hours before",
        )
        self.appointment_id = appointment_id


class InvalidStatusTransition(SchedulingError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f"Cannot move appointment from '{current}' to '{requested}'",
        )


class StorageUnavailable(SchedulingError):
    """Raised once the retry budget for transient storage errors is exhausted."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(
            ErrorCode.STORAGE_UNAVAILABLE,
            f"Appointment storage unavailable after {attempts} attempts, please try again",
        )
        self.attempts = attempts
        self.last_error = last_error


class TransientStorageError(Exception):
    """Raised by store implementations for errors worth retrying (lock timeouts, dropped connections)."""
