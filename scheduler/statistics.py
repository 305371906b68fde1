"""
Monthly practice statistics.

Built from every appointment in the month, cancelled ones included,
so staff can see demand as well as attendance.
"""

import calendar
from collections import defaultdict
from datetime import date as date_type
from typing import Any, Dict, List

from models import Appointment, AppointmentStatus, ServiceType, weekday_name


def month_bounds(year: int, month: int) -> tuple:
    last_day = calendar.monthrange(year, month)[1]
    return date_type(year, month, 1), date_type(year, month, last_day)


def monthly_statistics(year: int, month: int, appointments: List[Appointment]) -> Dict[str, Any]:
    """
    Generate the report for one calendar month.
    Appointments outside the month are ignored.
    """
    first, last = month_bounds(year, month)
    in_month = [a for a in appointments if first <= a.date <= last]

    by_status = {status.value: 0 for status in AppointmentStatus}
    by_service = {service.value: 0 for service in ServiceType}
    by_weekday: Dict[str, int] = defaultdict(int)
    no_shows_per_patient: Dict[str, int] = defaultdict(int)
    first_time = 0

    for appt in in_month:
        by_status[appt.status.value] += 1
        by_service[appt.service_type.value] += 1
        by_weekday[weekday_name(appt.date)] += 1

        if appt.is_first_time:
            first_time += 1

        # Email is the only identity every booking carries
        if appt.status is AppointmentStatus.NO_SHOW:
            no_shows_per_patient[appt.email.lower()] += 1

    # --- Derived Rates ---
    cancelled = by_status[AppointmentStatus.CANCELLED_BY_PATIENT.value] + \
        by_status[AppointmentStatus.CANCELLED_BY_PROFESSIONAL.value]
    total = len(in_month)
    cancellation_rate = (cancelled / total * 100) if total else 0.0

    repeat_no_shows = [
        {"email": email, "no_shows": count}
        for email, count in sorted(no_shows_per_patient.items())
        if count > 1
    ]

    busiest_day = None
    if in_month:
        per_date: Dict[date_type, int] = defaultdict(int)
        for appt in in_month:
            per_date[appt.date] += 1
        day, count = max(per_date.items(), key=lambda x: (x[1], -x[0].toordinal()))
        busiest_day = {"date": day.isoformat(), "appointments": count}

    return {
        "year": year,
        "month": month,
        "total_appointments": total,
        "active_appointments": total - cancelled,
        "cancellation_rate": round(cancellation_rate, 1),
        "by_status": by_status,
        "by_service": by_service,
        "by_weekday": dict(by_weekday),
        "first_time_patients": first_time,
        "repeat_no_show_patients": repeat_no_shows,
        "busiest_day": busiest_day,
    }
