from datetime import time

import pytest

from models import AppointmentStatus
from scheduler.engine import SlotAllocator
from scheduler.errors import SlotRejected
from scheduler.notifications import (
    AppointmentListener,
    CalendarClient,
    CalendarExport,
    CalendarExportState,
    EventDispatcher,
    EventKind,
    ReminderEmails,
    ReminderSender
)

from conftest import WEDNESDAY


class RecordingListener(AppointmentListener):
    name = "recorder"

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append((event.kind, event.appointment.id))


class ExplodingListener(AppointmentListener):
    name = "exploder"

    def handle(self, event):
        raise RuntimeError("SMTP down")


class FakeCalendar(CalendarClient):
    def __init__(self):
        self.created = []
        self.updated = []
        self.deleted = []

    def create_event(self, appointment):
        self.created.append(appointment.id)
        return f"evt-{appointment.id}"

    def update_event(self, event_id, appointment):
        self.updated.append(event_id)

    def delete_event(self, event_id):
        self.deleted.append(event_id)


class FakeSender(ReminderSender):
    def __init__(self):
        self.confirmations = []
        self.cancellations = []

    def send_confirmation(self, appointment):
        self.confirmations.append(appointment.email)

    def send_cancellation_notice(self, appointment):
        self.cancellations.append(appointment.email)


@pytest.fixture
def wire(store, config_source, clock):
    """Build an allocator around the given listeners; returns (allocator, dispatcher)."""
    def _build(*listeners):
        dispatcher = EventDispatcher(list(listeners), max_workers=2)
        return SlotAllocator(store, config_source, dispatcher=dispatcher, clock=clock), dispatcher
    return _build


def test_events_follow_the_lifecycle(wire, patient):
    recorder = RecordingListener()
    allocator, dispatcher = wire(recorder)

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    allocator.reschedule(appt.id, WEDNESDAY, time(10, 0))
    allocator.update_status(appt.id, AppointmentStatus.CANCELLED_BY_PROFESSIONAL)
    dispatcher.shutdown()

    assert sorted(recorder.events) == sorted([
        (EventKind.CREATED, appt.id),
        (EventKind.UPDATED, appt.id),
        (EventKind.CANCELLED, appt.id),
    ])


def test_rejected_bookings_emit_nothing(wire, patient, make_patient):
    recorder = RecordingListener()
    allocator, dispatcher = wire(recorder)

    allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    with pytest.raises(SlotRejected):
        allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", make_patient())
    dispatcher.shutdown()

    assert len(recorder.events) == 1


def test_failing_listener_never_breaks_a_booking(wire, store, patient, caplog):
    recorder = RecordingListener()
    allocator, dispatcher = wire(ExplodingListener(), recorder)

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    dispatcher.shutdown()

    assert store.get(appt.id) is not None
    assert recorder.events == [(EventKind.CREATED, appt.id)]
    assert "exploder" in caplog.text


def test_publish_after_shutdown_is_logged(wire, store, patient):
    allocator, dispatcher = wire(RecordingListener())
    dispatcher.shutdown()

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    assert store.get(appt.id) is not None


def test_calendar_export_states():
    export = CalendarExport()
    assert export.state is CalendarExportState.UNINITIALIZED

    export.initialize(FakeCalendar())
    assert export.state is CalendarExportState.READY

    export.set_enabled(False)
    assert export.state is CalendarExportState.DISABLED


def test_calendar_export_writes_back_event_id(wire, store, patient):
    calendar = FakeCalendar()
    allocator, dispatcher = wire(CalendarExport(client=calendar, store=store))

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    dispatcher.shutdown()

    assert calendar.created == [appt.id]
    assert store.get(appt.id).calendar_event_id == f"evt-{appt.id}"


def test_calendar_export_updates_and_deletes(wire, store, patient):
    calendar = FakeCalendar()
    export = CalendarExport(client=calendar, store=store)
    allocator, dispatcher = wire(export)

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    dispatcher.shutdown()

    second = EventDispatcher([export])
    allocator.dispatcher = second
    allocator.reschedule(appt.id, WEDNESDAY, time(10, 0))
    allocator.update_status(appt.id, AppointmentStatus.CANCELLED_BY_PATIENT)
    second.shutdown()

    assert calendar.updated == [f"evt-{appt.id}"]
    assert calendar.deleted == [f"evt-{appt.id}"]


def test_disabled_calendar_export_skips(wire, patient):
    calendar = FakeCalendar()
    allocator, dispatcher = wire(CalendarExport(client=calendar, enabled=False))

    allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    dispatcher.shutdown()

    assert calendar.created == []


def test_reminder_emails(wire, patient):
    sender = FakeSender()
    allocator, dispatcher = wire(ReminderEmails(sender))

    appt = allocator.allocate(WEDNESDAY, time(9, 0), "Consulta", patient)
    allocator.cancel_by_token(appt.cancellation_token)
    dispatcher.shutdown()

    assert sender.confirmations == [patient.email]
    assert sender.cancellations == [patient.email]
