"""
SQL-backed Appointment Store and ScheduleConfig source.

Each booking() call is one database transaction:
1. Bump the per-date lock row (serializes writers for that date).
2. Load the active appointments for the date.
3. Let the caller check conflicts and stage an insert or move.
4. Commit. The partial unique index on (date, start_time) backs this up.
"""

import logging
from contextlib import contextmanager
from datetime import date as date_type
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from models import Appointment, AppointmentStatus, CANCELLED_STATUSES, ScheduleConfig
from scheduler.errors import AppointmentNotActive, AppointmentNotFound, TransientStorageError
from scheduler.state import (
    MOVE_FIELDS,
    SCHEDULE_FIELDS,
    AppointmentStore,
    BookingSession,
    ScheduleConfigSource,
    slot_taken
)
from .tables import AppointmentRow, BookingDayRow, ScheduleConfigRow

logger = logging.getLogger(__name__)

_CANCELLED_VALUES = [status.value for status in CANCELLED_STATUSES]
_CONFIG_ROW_ID = 1


def row_to_appointment(row: AppointmentRow) -> Appointment:
    return Appointment.model_validate(row, from_attributes=True)


def appointment_values(appointment: Appointment) -> Dict[str, Any]:
    """Column values for an appointment, enums flattened to their stored labels."""
    values = appointment.model_dump(exclude={"id"})
    values["service_type"] = appointment.service_type.value
    values["status"] = appointment.status.value
    values["insurance"] = appointment.insurance.value
    return values


class _SqlBooking(BookingSession):

    def __init__(self, session: Session, day: date_type):
        self.date = day
        self._session = session
        self._lock_day()

        rows = session.scalars(
            select(AppointmentRow)
            .where(AppointmentRow.date == day, AppointmentRow.status.not_in(_CANCELLED_VALUES))
            .order_by(AppointmentRow.start_time)
        ).all()
        self._snapshot = [row_to_appointment(r) for r in rows]

    def _lock_day(self) -> None:
        result = self._session.execute(
            update(BookingDayRow)
            .where(BookingDayRow.day == self.date)
            .values(version=BookingDayRow.version + 1)
        )
        if result.rowcount:
            return

        # First booking ever on this date: create the lock row
        self._session.add(BookingDayRow(day=self.date, version=1))
        try:
            self._session.flush()
        except IntegrityError as e:
            # Another writer created it first; retrying will take the UPDATE path
            raise TransientStorageError(f"Lock row for {self.date} created concurrently") from e

    @property
    def appointments(self) -> List[Appointment]:
        return list(self._snapshot)

    def add(self, appointment: Appointment) -> Appointment:
        row = AppointmentRow(**appointment_values(appointment))
        self._session.add(row)
        self._flush(appointment)
        return row_to_appointment(row)

    def move(self, appointment: Appointment) -> Appointment:
        row = self._session.get(AppointmentRow, appointment.id, with_for_update=True)
        if row is None:
            raise AppointmentNotFound(appointment.id)
        if row.status in _CANCELLED_VALUES:
            raise AppointmentNotActive(appointment.id)

        for field in MOVE_FIELDS:
            setattr(row, field, getattr(appointment, field))
        self._flush(appointment)
        return row_to_appointment(row)

    def _flush(self, appointment: Appointment) -> None:
        try:
            self._session.flush()
        except IntegrityError as e:
            raise slot_taken(appointment) from e


class SqlAppointmentStore(AppointmentStore):

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Short-lived session; connection-level failures surface as TransientStorageError."""
        session = self.session_factory()
        try:
            yield session
        except OperationalError as e:
            session.rollback()
            logger.warning(f"Database operational error: {e.orig}")
            raise TransientStorageError(str(e.orig)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def booking(self, day: date_type) -> Iterator[BookingSession]:
        with self._session() as session:
            unit = _SqlBooking(session, day)
            yield unit
            session.commit()

    def get(self, appointment_id: int) -> Optional[Appointment]:
        with self._session() as session:
            row = session.get(AppointmentRow, appointment_id)
            return row_to_appointment(row) if row is not None else None

    def get_by_cancellation_token(self, token: str) -> Optional[Appointment]:
        with self._session() as session:
            row = session.scalars(
                select(AppointmentRow).where(AppointmentRow.cancellation_token == token)
            ).first()
            return row_to_appointment(row) if row is not None else None

    def list_for_date(self, day: date_type, include_cancelled: bool = False) -> List[Appointment]:
        with self._session() as session:
            query = select(AppointmentRow).where(AppointmentRow.date == day)
            if not include_cancelled:
                query = query.where(AppointmentRow.status.not_in(_CANCELLED_VALUES))
            rows = session.scalars(query.order_by(AppointmentRow.start_time)).all()
            return [row_to_appointment(r) for r in rows]

    def list_between(self, start: date_type, end: date_type) -> List[Appointment]:
        with self._session() as session:
            rows = session.scalars(
                select(AppointmentRow)
                .where(AppointmentRow.date >= start, AppointmentRow.date <= end)
                .order_by(AppointmentRow.date, AppointmentRow.start_time)
            ).all()
            return [row_to_appointment(r) for r in rows]

    # --- Narrow Writes ---

    def change_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        changes: Dict[str, Any]
    ) -> Optional[Appointment]:
        """Single UPDATE guarded on the expected status."""
        values = {
            field: value.value if isinstance(value, Enum) else value
            for field, value in changes.items()
            if field not in SCHEDULE_FIELDS
        }
        with self._session() as session:
            result = session.execute(
                update(AppointmentRow)
                .where(AppointmentRow.id == appointment_id, AppointmentRow.status == expected.value)
                .values(**values)
            )
            session.commit()

            row = session.get(AppointmentRow, appointment_id)
            if row is None:
                raise AppointmentNotFound(appointment_id)
            if not result.rowcount:
                logger.info(f"Appointment {appointment_id} is no longer {expected.value}, status change skipped")
                return None
            return row_to_appointment(row)

    def set_calendar_event_id(self, appointment_id: int, event_id: str) -> None:
        with self._session() as session:
            result = session.execute(
                update(AppointmentRow)
                .where(AppointmentRow.id == appointment_id)
                .values(calendar_event_id=event_id)
            )
            session.commit()
            if not result.rowcount:
                raise AppointmentNotFound(appointment_id)


class SqlScheduleConfigSource(ScheduleConfigSource):
    """Stores the config as one JSON document; falls back to the defaults when none is saved."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self) -> ScheduleConfig:
        session = self.session_factory()
        try:
            row = session.get(ScheduleConfigRow, _CONFIG_ROW_ID)
            if row is None:
                return ScheduleConfig()
            return ScheduleConfig.model_validate(row.document)
        except OperationalError as e:
            raise TransientStorageError(str(e.orig)) from e
        finally:
            session.close()

    def save(self, config: ScheduleConfig) -> ScheduleConfig:
        document = config.model_dump(mode="json")
        session = self.session_factory()
        try:
            row = session.get(ScheduleConfigRow, _CONFIG_ROW_ID)
            if row is None:
                session.add(ScheduleConfigRow(id=_CONFIG_ROW_ID, document=document))
            else:
                row.document = document
            session.commit()
        except OperationalError as e:
            session.rollback()
            raise TransientStorageError(str(e.orig)) from e
        finally:
            session.close()
        return config
