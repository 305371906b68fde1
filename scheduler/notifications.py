"""
Post-commit side effects (calendar export, reminder emails).

Listeners run after a booking is committed, on a worker pool.
Their failures are logged and never propagate back into the booking flow.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from models import Appointment
from . import settings

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AppointmentEvent:
    kind: EventKind
    appointment: Appointment


class AppointmentListener(ABC):
    """Consumer of appointment events. Must tolerate being skipped."""

    name: str = "listener"

    @abstractmethod
    def handle(self, event: AppointmentEvent) -> None: ...


# --- Calendar Export Capability ---

class CalendarExportState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


class CalendarClient(ABC):
    """Boundary to the external calendar (one-way export). Implemented outside this repo."""

    @abstractmethod
    def create_event(self, appointment: Appointment) -> Optional[str]:
        """Returns the external event id."""

    @abstractmethod
    def update_event(self, event_id: str, appointment: Appointment) -> None: ...

    @abstractmethod
    def delete_event(self, event_id: str) -> None: ...


class CalendarExport(AppointmentListener):
    """
    Calendar export as an explicit capability instead of process-wide flags.
    Only a READY export talks to the client; the other states skip quietly.
    """

    name = "calendar_export"

    def __init__(self, client: Optional[CalendarClient] = None, enabled: bool = True, store=None):
        self._client = client
        self._enabled = enabled
        # Optional: lets the export write the event id back onto the appointment
        self._store = store
        self._lock = threading.Lock()

    @property
    def state(self) -> CalendarExportState:
        with self._lock:
            if not self._enabled:
                return CalendarExportState.DISABLED
            if self._client is None:
                return CalendarExportState.UNINITIALIZED
            return CalendarExportState.READY

    def initialize(self, client: CalendarClient) -> None:
        with self._lock:
            self._client = client
        logger.info("Calendar export initialized")

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
        logger.info(f"Calendar export {'enabled' if enabled else 'disabled'}")

    def handle(self, event: AppointmentEvent) -> None:
        state = self.state
        if state is not CalendarExportState.READY:
            logger.info(f"Calendar export {state.value}, skipping {event.kind.value} event for appointment {event.appointment.id}")
            return

        appt = event.appointment
        if event.kind is EventKind.CANCELLED:
            if appt.calendar_event_id:
                self._client.delete_event(appt.calendar_event_id)
            return

        if appt.calendar_event_id:
            self._client.update_event(appt.calendar_event_id, appt)
            return

        event_id = self._client.create_event(appt)
        if event_id and self._store is not None:
            self._store.set_calendar_event_id(appt.id, event_id)


# --- Reminder Emails ---

class ReminderSender(ABC):
    """Boundary to outbound email delivery. Implemented outside this repo."""

    @abstractmethod
    def send_confirmation(self, appointment: Appointment) -> None: ...

    @abstractmethod
    def send_cancellation_notice(self, appointment: Appointment) -> None: ...


class ReminderEmails(AppointmentListener):
    name = "reminder_emails"

    def __init__(self, sender: ReminderSender):
        self.sender = sender

    def handle(self, event: AppointmentEvent) -> None:
        if event.kind is EventKind.CANCELLED:
            self.sender.send_cancellation_notice(event.appointment)
        else:
            self.sender.send_confirmation(event.appointment)


# --- Dispatch ---

class EventDispatcher:
    """
    Fans events out to listeners on a thread pool.
    A failing listener is logged and does not affect other listeners or the caller.
    """

    def __init__(self, listeners: Optional[List[AppointmentListener]] = None, max_workers: Optional[int] = None):
        self.listeners: List[AppointmentListener] = list(listeners or [])
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.NOTIFICATION_WORKERS,
            thread_name_prefix="appointment-events"
        )

    def subscribe(self, listener: AppointmentListener) -> None:
        self.listeners.append(listener)

    def publish(self, event: AppointmentEvent) -> List[Future]:
        futures = []
        for listener in self.listeners:
            futures.append(self._executor.submit(self._deliver, listener, event))
        return futures

    @staticmethod
    def _deliver(listener: AppointmentListener, event: AppointmentEvent) -> None:
        try:
            listener.handle(event)
        except Exception:
            logger.exception(
                f"Listener '{listener.name}' failed on {event.kind.value} event for appointment {event.appointment.id}"
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
