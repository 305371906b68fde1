"""
Appointment Store contract and in-memory implementation.

This module acts as the 'Memory' of the system. The store is the only
mutable shared resource, so it also owns the concurrency contract:
1. `booking(date)` opens a unit of work that is serialized per date.
2. Inside it, the snapshot of active appointments stays consistent until commit.
3. At most one active appointment may start at a given (date, time).
"""

import itertools
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from datetime import date as date_type
from typing import Any, ContextManager, Dict, Iterator, List, Optional

from models import Appointment, AppointmentStatus, ScheduleConfig
from .errors import AppointmentNotActive, AppointmentNotFound, ErrorCode, SlotRejected, SlotViolation

# Fields owned by the allocator's reschedule path
SCHEDULE_FIELDS = ("date", "start_time", "cancellation_token_expires_at")
MOVE_FIELDS = SCHEDULE_FIELDS + ("updated_at",)


class BookingSession(ABC):
    """Unit of work for a single date. Obtained from AppointmentStore.booking()."""

    date: date_type

    @property
    @abstractmethod
    def appointments(self) -> List[Appointment]:
        """Active appointments on this date, as of the start of the unit of work."""

    @abstractmethod
    def add(self, appointment: Appointment) -> Appointment:
        """Stage a new appointment. Returns it with its id assigned."""

    @abstractmethod
    def move(self, appointment: Appointment) -> Appointment:
        """
        Stage an existing appointment landing on this date (reschedule).
        Only the SCHEDULE_FIELDS are taken from `appointment`; everything else comes from the stored record.
        """


class AppointmentStore(ABC):
    """What the allocator needs from persistence."""

    @abstractmethod
    def booking(self, day: date_type) -> ContextManager[BookingSession]:
        """Serialized unit of work for `day`. Commits on clean exit, discards on error."""

    @abstractmethod
    def get(self, appointment_id: int) -> Optional[Appointment]: ...

    @abstractmethod
    def get_by_cancellation_token(self, token: str) -> Optional[Appointment]: ...

    @abstractmethod
    def list_for_date(self, day: date_type, include_cancelled: bool = False) -> List[Appointment]: ...

    @abstractmethod
    def list_between(self, start: date_type, end: date_type) -> List[Appointment]:
        """All appointments (any status) with start <= date <= end."""

    @abstractmethod
    def change_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        changes: Dict[str, Any]
    ) -> Optional[Appointment]:
        """
        Apply a status change (status plus its audit fields) only if the stored status is still `expected`.
        Returns None when another writer changed the status first.
        SCHEDULE_FIELDS in `changes` are ignored; moving goes through booking().move().
        """

    @abstractmethod
    def set_calendar_event_id(self, appointment_id: int, event_id: str) -> None:
        """Write the calendar event id and nothing else."""


class ScheduleConfigSource(ABC):
    """Read/write access to the singleton ScheduleConfig."""

    @abstractmethod
    def get(self) -> ScheduleConfig: ...

    @abstractmethod
    def save(self, config: ScheduleConfig) -> ScheduleConfig: ...


class StaticConfigSource(ScheduleConfigSource):
    """Keeps the config in memory. Used by tests and the demo runner."""

    def __init__(self, config: Optional[ScheduleConfig] = None):
        self._config = config or ScheduleConfig()
        self._lock = threading.Lock()

    def get(self) -> ScheduleConfig:
        with self._lock:
            return self._config

    def save(self, config: ScheduleConfig) -> ScheduleConfig:
        with self._lock:
            self._config = config
        return config


def slot_taken(appointment: Appointment) -> SlotRejected:
    """Translate a uniqueness violation into the engine's SlotTaken rejection."""
    return SlotRejected(SlotViolation(
        ErrorCode.SLOT_TAKEN,
        f"Another appointment already starts at {appointment.start_time:%H:%M}",
        appointment.date,
        appointment.start_time
    ))


class _InMemoryBooking(BookingSession):

    def __init__(self, store: "InMemoryAppointmentStore", day: date_type):
        self.date = day
        self._store = store
        self._snapshot = store.list_for_date(day)
        self.staged: List[Appointment] = []
        self.moved_ids = set()

    @property
    def appointments(self) -> List[Appointment]:
        return list(self._snapshot)

    def add(self, appointment: Appointment) -> Appointment:
        created = appointment.model_copy(update={"id": self._store._next_id()})
        self._stage(created)
        return created

    def move(self, appointment: Appointment) -> Appointment:
        stored = self._store.get(appointment.id) if appointment.id is not None else None
        if stored is None:
            raise AppointmentNotFound(appointment.id)
        if not stored.is_active:
            raise AppointmentNotActive(appointment.id)

        moved = stored.model_copy(update={f: getattr(appointment, f) for f in MOVE_FIELDS})
        self._stage(moved)
        self.moved_ids.add(moved.id)
        return moved

    def _stage(self, appointment: Appointment) -> None:
        # Emulates a unique index on (date, start_time) over active rows
        for other in self._snapshot + self.staged:
            if other.id != appointment.id and other.start_time == appointment.start_time and other.is_active:
                raise slot_taken(appointment)
        self.staged.append(appointment)


class InMemoryAppointmentStore(AppointmentStore):
    """
    Process-local store with a per-date mutex.
    Only valid for single-instance deployments; use the SQL store otherwise.
    One lock is kept for every date ever booked and none are dropped, so the lock map
    grows with the booking calendar for the lifetime of the process.
    """

    def __init__(self):
        self._records: Dict[int, Appointment] = {}
        # Date index for the engine's hot query
        self._by_date: Dict[date_type, List[int]] = defaultdict(list)
        self._tokens: Dict[str, int] = {}

        self._ids = itertools.count(1)
        self._guard = threading.RLock()
        self._date_locks: Dict[date_type, threading.Lock] = defaultdict(threading.Lock)

    def _next_id(self) -> int:
        with self._guard:
            return next(self._ids)

    def _lock_for(self, day: date_type) -> threading.Lock:
        with self._guard:
            return self._date_locks[day]

    @contextmanager
    def booking(self, day: date_type) -> Iterator[BookingSession]:
        with self._lock_for(day):
            session = _InMemoryBooking(self, day)
            yield session
            with self._guard:
                for appointment in session.staged:
                    if appointment.id in session.moved_ids:
                        appointment = self._merge_move(appointment)
                    self._write(appointment)

    def _merge_move(self, moved: Appointment) -> Appointment:
        # Status writes are not serialized by the date lock; re-read the record at commit
        current = self._records.get(moved.id)
        if current is None:
            raise AppointmentNotFound(moved.id)
        if not current.is_active:
            raise AppointmentNotActive(moved.id)
        return current.model_copy(update={f: getattr(moved, f) for f in MOVE_FIELDS})

    def _write(self, appointment: Appointment) -> None:
        with self._guard:
            previous = self._records.get(appointment.id)
            if previous is not None and previous.date != appointment.date:
                self._by_date[previous.date].remove(appointment.id)
            if previous is None or previous.date != appointment.date:
                self._by_date[appointment.date].append(appointment.id)
            self._records[appointment.id] = appointment
            if appointment.cancellation_token:
                self._tokens[appointment.cancellation_token] = appointment.id

    # --- Query Methods (Used by the allocator) ---

    def get(self, appointment_id: int) -> Optional[Appointment]:
        with self._guard:
            return self._records.get(appointment_id)

    def get_by_cancellation_token(self, token: str) -> Optional[Appointment]:
        with self._guard:
            appointment_id = self._tokens.get(token)
            return self._records.get(appointment_id) if appointment_id is not None else None

    def list_for_date(self, day: date_type, include_cancelled: bool = False) -> List[Appointment]:
        with self._guard:
            found = [self._records[i] for i in self._by_date.get(day, [])]
        if not include_cancelled:
            found = [a for a in found if a.is_active]
        return sorted(found, key=lambda a: a.start_time)

    def list_between(self, start: date_type, end: date_type) -> List[Appointment]:
        with self._guard:
            found = [a for a in self._records.values() if start <= a.date <= end]
        return sorted(found, key=lambda a: (a.date, a.start_time))

    # --- Narrow Writes ---

    def change_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        changes: Dict[str, Any]
    ) -> Optional[Appointment]:
        with self._guard:
            current = self._records.get(appointment_id)
            if current is None:
                raise AppointmentNotFound(appointment_id)
            if current.status is not expected:
                return None
            updated = current.model_copy(update={f: v for f, v in changes.items() if f not in SCHEDULE_FIELDS})
            self._write(updated)
        return updated

    def set_calendar_event_id(self, appointment_id: int, event_id: str) -> None:
        with self._guard:
            current = self._records.get(appointment_id)
            if current is None:
                raise AppointmentNotFound(appointment_id)
            self._write(current.model_copy(update={"calendar_event_id": event_id}))
