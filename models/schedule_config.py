"""
Working-hours policy for the clinic.

This module defines the 'Supply' side of the booking engine:
1. The regular weekly pattern (work days + default opening hours)
2. Occasional work days with their own hours
3. Exclusions (vacations, blocked days, blocked individual slots)
"""

import unicodedata
from datetime import date as date_type, time as time_type
from typing import Dict, List, Set, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# The admin UI historically stored Spanish day names, with and without accents.
_SPANISH_WEEKDAYS = {
    "lunes": "monday",
    "martes": "tuesday",
    "miercoles": "wednesday",
    "jueves": "thursday",
    "viernes": "friday",
    "sabado": "saturday",
    "domingo": "sunday",
}


def normalize_weekday(name: str) -> str:
    """
    Canonical weekday key: accents stripped, lower-cased, English.
    'Miércoles', 'miercoles' and 'Wednesday' all become 'wednesday'.
    """
    folded = unicodedata.normalize("NFKD", name or "")
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch)).lower().strip()
    folded = _SPANISH_WEEKDAYS.get(folded, folded)
    if folded not in WEEKDAY_NAMES:
        raise ValueError(f"Unknown weekday name: {name!r}")
    return folded


def weekday_name(day: date_type) -> str:
    """Canonical weekday key for a calendar date."""
    return WEEKDAY_NAMES[day.weekday()]


class WorkWindow(BaseModel):
    """Opening hours for a single day."""
    start_time: time_type = Field(description="Opening time (clinic timezone)")
    end_time: time_type = Field(description="Closing time (clinic timezone)")

    @model_validator(mode='after')
    def validate_times(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self


class VacationPeriod(BaseModel):
    """Inclusive date range during which the clinic is closed."""
    start: date_type
    end: date_type

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end < self.start:
            raise ValueError("Vacation end date cannot be before start date")
        return self

    def contains(self, day: date_type) -> bool:
        return self.start <= day <= self.end


class ScheduleConfig(BaseModel):
    """
    The clinic's working-hours policy (singleton, admin-mutated).
    The engine treats an instance as an immutable snapshot for the duration of a call.
    """

    # --- Regular Pattern ---
    work_days: Set[str] = Field(
        default_factory=lambda: {"wednesday"},
        description="Weekday names the clinic opens every week"
    )
    start_time: time_type = Field(default=time_type(9, 0), description="Default opening time")
    end_time: time_type = Field(default=time_type(12, 0), description="Default closing time")

    # --- Overrides ---
    occasional_work_days: List[date_type] = Field(
        default_factory=list,
        description="Specific dates worked even if their weekday is not a work day"
    )
    occasional_work_day_times: Dict[date_type, WorkWindow] = Field(
        default_factory=dict,
        description="Per-date opening hours for occasional work days"
    )

    # --- Exclusions ---
    vacation_periods: List[VacationPeriod] = Field(default_factory=list)
    blocked_days: List[date_type] = Field(default_factory=list, description="Whole dates closed by the admin")
    blocked_time_slots: Dict[date_type, List[time_type]] = Field(
        default_factory=dict,
        description="Individual start times closed by the admin, per date"
    )

    @field_validator('work_days', mode='before')
    @classmethod
    def normalize_work_days(cls, v):
        """Normalize once, centrally, so comparisons never depend on accents or case."""
        if v is None:
            return set()
        if isinstance(v, str):
            v = [v]
        return {normalize_weekday(day) for day in v}

    @model_validator(mode='after')
    def validate_hours(self):
        if self.start_time >= self.end_time:
            raise ValueError("End time must be strictly after start time")
        return self

    # --- Queries (used by the Slot Validator) ---

    def is_regular_work_day(self, day: date_type) -> bool:
        return weekday_name(day) in self.work_days

    def is_occasional_work_day(self, day: date_type) -> bool:
        return day in self.occasional_work_days

    def vacation_for(self, day: date_type):
        """Return the vacation period covering this date, if any."""
        for period in self.vacation_periods:
            if period.contains(day):
                return period
        return None

    def is_blocked_day(self, day: date_type) -> bool:
        return day in self.blocked_days

    def is_blocked_slot(self, day: date_type, start: time_type) -> bool:
        return start in self.blocked_time_slots.get(day, [])

    def window_for(self, day: date_type) -> Tuple[time_type, time_type]:
        """Effective (start, end) for a date: occasional override first, then the defaults."""
        override = self.occasional_work_day_times.get(day)
        if override is not None and self.is_occasional_work_day(day):
            return override.start_time, override.end_time
        return self.start_time, self.end_time

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "work_days": ["wednesday"],
            "start_time": "09:00:00",
            "end_time": "12:00:00",
            "occasional_work_days": ["2025-03-14"],
            "occasional_work_day_times": {
                "2025-03-14": {"start_time": "14:00:00", "end_time": "17:00:00"}
            },
            "vacation_periods": [{"start": "2025-01-01", "end": "2025-01-31"}],
            "blocked_days": ["2025-02-19"],
            "blocked_time_slots": {"2025-02-26": ["10:00:00"]}
        }
    })
