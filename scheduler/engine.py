"""
The Slot Allocation Engine.

This module implements the core "Allocator" logic.
Every booking path runs the same pipeline:
1. Duration Resolution (service type -> minutes).
2. Structural Validation (working day, hours, grid, blocks) against a config snapshot.
3. Conflict Detection + Persist, inside one per-date unit of work in the store.
Transient storage failures are retried with tenacity, a bounded number of times; rejections never are.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import date as date_type, datetime, time as time_type, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed
)

from models import (
    Appointment,
    AppointmentStatus,
    PatientInfo,
    ScheduleConfig,
    ServiceType,
    parse_service_type
)
from . import settings
from .clock import clinic_now
from .conflicts import Candidate, ConflictDetector
from .constraints import SlotValidator, minutes_of
from .errors import (
    AppointmentNotActive,
    AppointmentNotFound,
    CancellationExpired,
    ErrorCode,
    InvalidStatusTransition,
    SlotRejected,
    SlotViolation,
    StorageUnavailable,
    TransientStorageError
)
from .notifications import AppointmentEvent, EventDispatcher, EventKind
from .state import AppointmentStore, ScheduleConfigSource
from .statistics import month_bounds, monthly_statistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotAvailability:
    """One row of the availability listing."""
    time: time_type
    available: bool
    reason: Optional[ErrorCode] = None


class SlotAllocator:
    """
    Main booking engine.
    Ingests booking requests, consults the ScheduleConfig, and commits Appointments.
    """

    def __init__(
        self,
        store: AppointmentStore,
        config_source: ScheduleConfigSource,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Callable[[], datetime] = clinic_now,
        retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.store = store
        self.config_source = config_source
        self.dispatcher = dispatcher
        self.clock = clock
        self.retries = settings.STORAGE_RETRIES if retries is None else retries
        self.backoff_seconds = settings.RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.sleep = sleep

        self.detector = ConflictDetector()

    # --- Booking ---

    def allocate(
        self,
        date: date_type,
        start_time: time_type,
        service_type: Union[ServiceType, str],
        patient: PatientInfo
    ) -> Appointment:
        """
        Book a slot. Returns the committed Appointment.
        Raises SlotRejected, InvalidServiceType or StorageUnavailable.
        """
        service = parse_service_type(service_type)
        validator = SlotValidator(self._config_snapshot())
        now = self.clock()

        # 1. Structural checks, outside the transaction
        violation = self._check_static(validator, date, start_time, service, now)
        if violation:
            logger.info(f"Rejected {service.value} on {date} {start_time:%H:%M}: {violation.code.value}")
            raise SlotRejected(violation)

        start = datetime.combine(date, start_time)
        draft = Appointment(
            **patient.model_dump(include=set(PatientInfo.model_fields)),
            date=date,
            start_time=start_time,
            service_type=service,
            status=AppointmentStatus.PENDING,
            cancellation_token=secrets.token_hex(32),
            cancellation_token_expires_at=start - timedelta(hours=settings.CANCELLATION_NOTICE_HOURS),
            created_at=now,
            updated_at=now
        )
        candidate = Candidate(date, start_time, service)

        # 2. Conflict check + insert, serialized per date
        def attempt() -> Appointment:
            with self.store.booking(date) as session:
                clash = self.detector.check(candidate, session.appointments)
                if clash:
                    raise SlotRejected(clash)
                return session.add(draft)

        try:
            created = self._with_retry("allocate", attempt)
        except SlotRejected as rejection:
            logger.info(f"Rejected {service.value} on {date} {start_time:%H:%M}: {rejection.code.value}")
            raise

        logger.info(f"Booked appointment {created.id}: {service.value} on {date} {start_time:%H:%M}")
        self._publish(EventKind.CREATED, created)
        return created

    def reschedule(self, appointment_id: int, new_date: date_type, new_time: time_type) -> Appointment:
        """
        Move an active appointment. Full validation and conflict detection run again,
        ignoring the appointment's own current slot.
        """
        current = self.get_appointment(appointment_id)
        if not current.is_active:
            raise AppointmentNotActive(appointment_id)

        validator = SlotValidator(self._config_snapshot())
        now = self.clock()

        violation = self._check_static(validator, new_date, new_time, current.service_type, now)
        if violation:
            logger.info(f"Rejected move of appointment {appointment_id} to {new_date} {new_time:%H:%M}: {violation.code.value}")
            raise SlotRejected(violation)

        new_start = datetime.combine(new_date, new_time)
        target = current.model_copy(update={
            "date": new_date,
            "start_time": new_time,
            "cancellation_token_expires_at": new_start - timedelta(hours=settings.CANCELLATION_NOTICE_HOURS),
            "updated_at": now
        })
        candidate = Candidate(new_date, new_time, current.service_type, appointment_id=appointment_id)

        def attempt() -> Appointment:
            with self.store.booking(new_date) as session:
                clash = self.detector.check(candidate, session.appointments)
                if clash:
                    raise SlotRejected(clash)
                return session.move(target)

        moved = self._with_retry("reschedule", attempt)
        logger.info(f"Moved appointment {appointment_id} from {current.date} {current.start_time:%H:%M} to {new_date} {new_time:%H:%M}")
        self._publish(EventKind.UPDATED, moved)
        return moved

    # --- Availability ---

    def availability(self, date: date_type, service_type: Union[ServiceType, str]) -> List[SlotAvailability]:
        """
        Candidate start times for a date, each tagged with the verdict allocate() would give.
        Non-working dates produce an empty list.
        """
        service = parse_service_type(service_type)
        validator = SlotValidator(self._config_snapshot())

        if validator.check_working_day(date):
            return []

        existing = self._with_retry("availability", lambda: self.store.list_for_date(date))
        now = self.clock()

        slots = []
        for start_time in self._candidate_times(validator, date):
            violation = self._check_static(validator, date, start_time, service, now)
            if violation is None:
                violation = self.detector.check(Candidate(date, start_time, service), existing)

            slots.append(SlotAvailability(
                time=start_time,
                available=violation is None,
                reason=violation.code if violation else None
            ))
        return slots

    def _candidate_times(self, validator: SlotValidator, date: date_type) -> List[time_type]:
        """20 minute grid from opening up to and including closing, plus the Special Slot."""
        window_start, window_end = validator.resolve_window(date)
        end_min = minutes_of(window_end)

        times = []
        current = minutes_of(window_start)
        while current <= end_min:
            times.append(time_type(current // 60, current % 60))
            current += settings.SLOT_GRANULARITY_MINUTES

        if settings.SPECIAL_SLOT not in times:
            times.append(settings.SPECIAL_SLOT)
        return sorted(times)

    def _check_static(
        self,
        validator: SlotValidator,
        date: date_type,
        start_time: time_type,
        service: ServiceType,
        now: datetime
    ) -> Optional[SlotViolation]:
        """Everything except the conflict check. Shared by allocate, reschedule and availability."""
        violation = validator.check_slot(date, start_time, service)
        if violation: return violation

        if datetime.combine(date, start_time) <= now:
            return SlotViolation(ErrorCode.SLOT_IN_PAST, "Selected time has already passed", date, start_time)
        return None

    # --- Lifecycle ---

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self._with_retry("lookup", lambda: self.store.get(appointment_id))
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment

    def update_status(self, appointment_id: int, status: Union[AppointmentStatus, str]) -> Appointment:
        """
        Staff-driven status change. Cancelled is terminal; setting the current status again is a no-op.
        """
        current = self.get_appointment(appointment_id)
        try:
            requested = AppointmentStatus(status)
        except ValueError:
            raise InvalidStatusTransition(current.status.value, str(status)) from None

        while True:
            if requested is current.status:
                return current
            if current.status.is_cancelled:
                raise InvalidStatusTransition(current.status.value, requested.value)

            changes = self._status_changes(requested)
            expected = current.status
            saved = self._with_retry(
                "update_status",
                lambda: self.store.change_status(appointment_id, expected, changes)
            )
            if saved is not None:
                break

            # Lost a race with another status write; decide again from the fresh record
            current = self.get_appointment(appointment_id)

        logger.info(f"Appointment {appointment_id}: {expected.value} -> {requested.value}")

        self._publish(EventKind.CANCELLED if requested.is_cancelled else EventKind.UPDATED, saved)
        return saved

    def _status_changes(self, requested: AppointmentStatus) -> Dict[str, Any]:
        """The status plus the audit timestamps that go with it."""
        now = self.clock()
        changes: Dict[str, Any] = {"status": requested, "updated_at": now}
        if requested is AppointmentStatus.ATTENDED:
            changes["attended_at"] = now
        elif requested is AppointmentStatus.NO_SHOW:
            changes["no_show_at"] = now
        elif requested.is_cancelled:
            changes["cancelled_at"] = now
            changes["cancelled_by"] = "patient" if requested is AppointmentStatus.CANCELLED_BY_PATIENT else "professional"
        return changes

    def cancel_by_token(self, token: str) -> Appointment:
        """Patient self-cancellation through the emailed link."""
        appointment = self._with_retry("cancel_lookup", lambda: self.store.get_by_cancellation_token(token))
        if appointment is None:
            raise AppointmentNotFound(None, "Invalid cancellation link")
        if not appointment.is_active:
            raise AppointmentNotActive(appointment.id)

        expires_at = appointment.cancellation_token_expires_at
        if expires_at is not None and self.clock() > expires_at:
            raise CancellationExpired(appointment.id)

        return self.update_status(appointment.id, AppointmentStatus.CANCELLED_BY_PATIENT)

    # --- Admin ---

    def get_config(self) -> ScheduleConfig:
        return self._config_snapshot()

    def update_config(self, config: ScheduleConfig) -> ScheduleConfig:
        """Replace the working-hours policy. Existing bookings are left untouched."""
        saved = self._with_retry("update_config", lambda: self.config_source.save(config))
        logger.info(f"Schedule config updated: days={sorted(saved.work_days)} hours={saved.start_time:%H:%M}-{saved.end_time:%H:%M}")
        return saved

    def statistics(self, year: int, month: int) -> Dict[str, Any]:
        first, last = month_bounds(year, month)
        appointments = self._with_retry("statistics", lambda: self.store.list_between(first, last))
        return monthly_statistics(year, month, appointments)

    # --- Internals ---

    def _config_snapshot(self) -> ScheduleConfig:
        return self._with_retry("load_config", self.config_source.get)

    def _with_retry(self, operation: str, fn: Callable[[], Any]) -> Any:
        """
        Run `fn`, retrying TransientStorageError up to `self.retries` times with a fixed backoff.
        Any other exception (including rejections) propagates immediately.
        """
        attempts = self.retries + 1
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_exception_type(TransientStorageError),
            sleep=self.sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )
        try:
            return retrying(fn)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"Giving up on {operation} after {attempts} attempts: {last_error}")
            raise StorageUnavailable(attempts, last_error) from last_error

    def _publish(self, kind: EventKind, appointment: Appointment) -> None:
        if self.dispatcher is None:
            return
        try:
            self.dispatcher.publish(AppointmentEvent(kind, appointment))
        except RuntimeError:
            # Executor already shut down; the booking itself is committed
            logger.exception(f"Could not publish {kind.value} event for appointment {appointment.id}")
