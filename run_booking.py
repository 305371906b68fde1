"""
Main Execution Script for the Clinic Slot Allocator.

    python run_booking.py          # demo: book a sample day and print the report
    python run_booking.py serve    # run the HTTP API against DATABASE_URL
"""

import json
import logging
import sys
from datetime import date, datetime, timedelta

import uvicorn
from pydantic import ValidationError

from api.app import create_app
from models import PatientInfo, ScheduleConfig, ServiceType
from scheduler import settings
from scheduler.clock import clinic_now
from scheduler.engine import SlotAllocator
from scheduler.errors import SchedulingError
from scheduler.notifications import CalendarExport, EventDispatcher
from scheduler.state import InMemoryAppointmentStore, StaticConfigSource
from storage.database import create_db_engine, create_session_factory, init_database
from storage.repository import SqlAppointmentStore, SqlScheduleConfigSource

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger("Main")

# --- CONFIGURATION ---
CONFIG_FILENAME = "schedule_config.json"
DASHBOARD_FILENAME = "dashboard_data.json"
# ---------------------

DEMO_BOOKINGS = [
    ("09:00", ServiceType.CONSULTATION, "Ana Pérez"),
    ("09:20", ServiceType.CONSULTATION_PAP, "Lucía Gómez"),
    ("10:00", ServiceType.BIOPSY, "María Fernández"),
    ("10:20", ServiceType.CONSULTATION, "Sofía Díaz"),       # overlaps the biopsy
    ("11:00", ServiceType.REGENERATIVE_THERAPY, "Paula Ruiz"),
    ("11:40", ServiceType.CONSULTATION, "Carla Sosa"),       # special slot
    ("11:50", ServiceType.CONSULTATION, "Julia Romero"),     # off-grid
]


def save_config(config: ScheduleConfig, filename: str) -> None:
    with open(filename, 'w') as f:
        json.dump(config.model_dump(mode='json'), f, indent=2)
    logger.info(f"Saved schedule config to {filename}")


def load_config(filename: str) -> ScheduleConfig:
    """Read the cached config, falling back to the clinic defaults."""
    try:
        with open(filename, 'r') as f:
            config = ScheduleConfig.model_validate(json.load(f))
        logger.info(f"Loaded schedule config from {filename}")
        return config
    except (FileNotFoundError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Config file {filename} missing or invalid ({type(e).__name__}), using defaults")
        config = ScheduleConfig()
        save_config(config, filename)
        return config


def next_working_day(allocator: SlotAllocator, after: date) -> date:
    config = allocator.get_config()
    day = after + timedelta(days=1)
    for _ in range(366):
        if (config.is_regular_work_day(day) or config.is_occasional_work_day(day)) \
                and config.vacation_for(day) is None and not config.is_blocked_day(day):
            return day
        day += timedelta(days=1)
    raise RuntimeError("No working day in the next year; check the schedule config")


def export_dashboard_data(allocator: SlotAllocator, start: date, end: date, filename: str) -> None:
    """Serializes the booked calendar grouped by date for the staff dashboard."""
    logger.info(f"Exporting dashboard data to {filename}...")
    data = {"schedule": {}, "context": {}}

    current = start
    while current <= end:
        day_key = current.isoformat()
        booked = allocator.store.list_for_date(current, include_cancelled=True)
        if booked:
            data["schedule"][day_key] = [
                {**a.model_dump(mode='json', exclude={"cancellation_token"}), "end_time": a.end_time.isoformat()}
                for a in booked
            ]

        active = [a for a in booked if a.is_active]
        count = len(active)
        if count == 0: load = "Free"
        elif count <= 3: load = "Low"
        elif count <= 6: load = "Medium"
        else: load = "Full"
        data["context"][day_key] = {"date": day_key, "appointments": count, "load_intensity": load}

        current += timedelta(days=1)

    with open(filename, 'w') as f:
        json.dump(data, f, indent=2)
    logger.info("Dashboard data exported.")


def run_demo() -> None:
    logger.info("Starting Clinic Slot Allocator demo...")

    # --- PHASE 1: CONFIG ---
    config = load_config(CONFIG_FILENAME)
    dispatcher = EventDispatcher([CalendarExport(enabled=False)])
    allocator = SlotAllocator(InMemoryAppointmentStore(), StaticConfigSource(config), dispatcher=dispatcher)

    # --- PHASE 2: BOOKINGS ---
    day = next_working_day(allocator, clinic_now().date())
    logger.info(f"Booking demo day {day.isoformat()}")

    for hhmm, service, name in DEMO_BOOKINGS:
        patient = PatientInfo(patient_name=name, email=f"{name.split()[0].lower()}@example.com", phone="1130000000")
        try:
            appt = allocator.allocate(day, datetime.strptime(hhmm, "%H:%M").time(), service, patient)
            print(f"OK   {hhmm} {service.value:<40} -> appointment {appt.id}")
        except SchedulingError as e:
            print(f"FAIL {hhmm} {service.value:<40} -> {e.code.value}: {e.message}")

    # --- PHASE 3: REPORTING ---
    print("\n" + "=" * 50)
    print(f"AVAILABILITY {day.isoformat()} ({ServiceType.CONSULTATION.value})")
    print("=" * 50)
    for slot in allocator.availability(day, ServiceType.CONSULTATION):
        reason = f"  [{slot.reason.value}]" if slot.reason else ""
        print(f"{slot.time:%H:%M}  {'free' if slot.available else 'closed'}{reason}")

    print("\n" + "=" * 50)
    print("MONTHLY STATISTICS")
    print("=" * 50)
    print(json.dumps(allocator.statistics(day.year, day.month), indent=2))

    # --- PHASE 4: EXPORT ---
    export_dashboard_data(allocator, day, day + timedelta(days=6), DASHBOARD_FILENAME)
    dispatcher.shutdown()


def build_sql_allocator() -> SlotAllocator:
    engine = create_db_engine()
    init_database(engine)
    sessions = create_session_factory(engine)
    store = SqlAppointmentStore(sessions)
    dispatcher = EventDispatcher([CalendarExport(store=store)])
    return SlotAllocator(store, SqlScheduleConfigSource(sessions), dispatcher=dispatcher)


def main():
    if len(sys.argv) > 1 and sys.argv[1] == "serve":
        uvicorn.run(create_app(build_sql_allocator()), host="0.0.0.0", port=8000)
        return
    run_demo()


if __name__ == "__main__":
    main()
