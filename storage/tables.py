"""SQLAlchemy table definitions for appointments and the schedule config."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Index, Integer, String, Text, Time, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Rows in these states no longer hold their slot
_ACTIVE_ONLY = "status NOT IN ('cancelled_by_patient', 'cancelled_by_professional')"


class AppointmentRow(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    service_type = Column(String(64), nullable=False)
    status = Column(String(32), nullable=False, default="pending", index=True)

    # Patient
    patient_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    is_first_time = Column(Boolean, nullable=False, default=False)
    insurance = Column(String(50), nullable=False, default="Particular")
    notes = Column(Text, nullable=False, default="")
    patient_id = Column(Integer, nullable=True)

    # Self-service & calendar
    cancellation_token = Column(String(64), nullable=True, unique=True, index=True)
    cancellation_token_expires_at = Column(DateTime, nullable=True)
    calendar_event_id = Column(String(255), nullable=True)

    # Audit
    created_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(32), nullable=True)
    attended_at = Column(DateTime, nullable=True)
    no_show_at = Column(DateTime, nullable=True)

    __table_args__ = (
        # At most one active appointment per start time
        Index(
            "uq_appointments_active_slot",
            "date",
            "start_time",
            unique=True,
            sqlite_where=text(_ACTIVE_ONLY),
            postgresql_where=text(_ACTIVE_ONLY),
        ),
    )

    def __repr__(self):
        return f"<AppointmentRow(id={self.id}, date={self.date}, start={self.start_time}, status={self.status})>"


class BookingDayRow(Base):
    """Per-date lock row. Bumping `version` first serializes bookings on that date."""
    __tablename__ = "booking_days"

    day = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)


class ScheduleConfigRow(Base):
    """Singleton row holding the serialized ScheduleConfig."""
    __tablename__ = "schedule_config"

    id = Column(Integer, primary_key=True)
    document = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)
