"""Shared test fixtures."""
from contextlib import contextmanager
from datetime import date, datetime, time

import pytest

from models import Appointment, PatientInfo, ScheduleConfig, ServiceType
from scheduler.engine import SlotAllocator
from scheduler.errors import TransientStorageError
from scheduler.state import InMemoryAppointmentStore, StaticConfigSource

# 2025-01-15 is a Wednesday, the clinic's default working day
WEDNESDAY = date(2025, 1, 15)
TUESDAY = date(2025, 1, 14)
NOW = datetime(2025, 1, 13, 8, 0)


class FixedClock:
    """Injectable clock that tests can move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FlakyStore(InMemoryAppointmentStore):
    """In-memory store whose first `failures` booking() calls hit a transient error."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    @contextmanager
    def booking(self, day):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransientStorageError("database is locked")
        with super().booking(day) as session:
            yield session


def make_appointment(appointment_id, start, service=ServiceType.CONSULTATION, day=WEDNESDAY, **extra):
    """Build a stored-looking appointment without going through the allocator."""
    return Appointment(
        id=appointment_id,
        date=day,
        start_time=start,
        service_type=service,
        patient_name="Test Patient",
        email=f"patient{appointment_id}@example.com",
        phone="1130000000",
        **extra
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def config():
    """Default clinic config: Wednesdays, 09:00-12:00."""
    return ScheduleConfig()


@pytest.fixture
def config_source(config):
    return StaticConfigSource(config)


@pytest.fixture
def store():
    return InMemoryAppointmentStore()


@pytest.fixture
def sleeps():
    """Records backoff sleeps instead of actually sleeping."""
    return []


@pytest.fixture
def allocator(store, config_source, clock, sleeps):
    return SlotAllocator(store, config_source, clock=clock, backoff_seconds=0.01, sleep=sleeps.append)


@pytest.fixture
def patient():
    return PatientInfo(patient_name="Ana Pérez", email="ana@example.com", phone="1138151880")


@pytest.fixture
def make_patient():
    """Factory for distinct patients."""
    def _create(name: str = "Lucía Gómez", first_time: bool = False):
        handle = name.split()[0].lower()
        return PatientInfo(
            patient_name=name,
            email=f"{handle}@example.com",
            phone="1130000000",
            is_first_time=first_time
        )
    return _create


@pytest.fixture
def at():
    """Shorthand for wall-clock times: at("09:20")."""
    def _parse(hhmm: str) -> time:
        return datetime.strptime(hhmm, "%H:%M").time()
    return _parse
