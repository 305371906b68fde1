"""
Hard Constraint Validation Logic (Slot Validator).

This module answers the binary question: "Is service X structurally allowed at Time Y?"
It knows nothing about other bookings; overlap is the Conflict Detector's job.
"""

from datetime import date as date_type, time as time_type
from typing import Optional, Tuple, Union

from models import ScheduleConfig, ServiceType, resolve_duration
from . import settings
from .errors import ErrorCode, SlotViolation


def minutes_of(t: time_type) -> int:
    """Minutes since midnight."""
    return t.hour * 60 + t.minute


def is_special_slot(start_time: time_type) -> bool:
    return start_time.hour == settings.SPECIAL_SLOT.hour and start_time.minute == settings.SPECIAL_SLOT.minute


class SlotValidator:
    """
    Validates the structural legality of a candidate slot against the ScheduleConfig.
    Checks run in a fixed order and the first failure wins.
    """

    def __init__(self, config: ScheduleConfig, grace_minutes: Optional[int] = None):
        self.config = config
        self.grace_minutes = settings.GRACE_MINUTES if grace_minutes is None else grace_minutes

    def check_slot(
        self,
        date: date_type,
        start_time: time_type,
        service_type: Union[ServiceType, str]
    ) -> Optional[SlotViolation]:
        """
        Master validation function. Returns None if Valid, Violation object if Invalid.
        Raises InvalidServiceType for labels outside the catalogue.
        """
        duration = resolve_duration(service_type)
        special = is_special_slot(start_time)

        # 1. Working Day (pattern or occasional, minus vacations and blocked days)
        violation = self.check_working_day(date, start_time)
        if violation: return violation

        # 2. Effective opening hours for this date
        window = self.resolve_window(date)

        # [SPECIAL SLOT]: hours, grid and sub-grid rules are waived entirely
        if not special:
            violation = self._check_hours(date, start_time, duration, window)
            if violation: return violation

            violation = self._check_grid(date, start_time)
            if violation: return violation

            violation = self._check_extended_start(date, start_time, duration, window)
            if violation: return violation

        # 3. Admin-blocked individual slots apply to everything
        if self.config.is_blocked_slot(date, start_time):
            return SlotViolation(ErrorCode.SLOT_BLOCKED, "This time slot has been blocked", date, start_time)

        return None # All clear!

    def check_working_day(self, date: date_type, start_time: time_type = time_type(0, 0)) -> Optional[SlotViolation]:
        """Day-level checks only. Also used by availability listing to short-circuit closed days."""
        cfg = self.config
        if not (cfg.is_regular_work_day(date) or cfg.is_occasional_work_day(date)):
            return SlotViolation(ErrorCode.NOT_A_WORKING_DAY, "Selected day is not a working day", date, start_time)

        vacation = cfg.vacation_for(date)
        if vacation:
            return SlotViolation(
                ErrorCode.IN_VACATION_PERIOD,
                f"The clinic is on vacation from {vacation.start.isoformat()} to {vacation.end.isoformat()}",
                date, start_time
            )

        if cfg.is_blocked_day(date):
            return SlotViolation(ErrorCode.DATE_BLOCKED, "This date has been blocked", date, start_time)

        return None

    def resolve_window(self, date: date_type) -> Tuple[time_type, time_type]:
        """Occasional-day hours if configured for this date, otherwise the default window."""
        return self.config.window_for(date)

    def _check_hours(
        self,
        date: date_type,
        start: time_type,
        duration: int,
        window: Tuple[time_type, time_type]
    ) -> Optional[SlotViolation]:
        """Starts at or after opening and finishes by closing plus the grace buffer."""
        open_min = minutes_of(window[0])
        close_min = minutes_of(window[1])
        start_min = minutes_of(start)
        end_min = start_min + duration

        if start_min < open_min:
            return SlotViolation(
                ErrorCode.OUTSIDE_WORKING_HOURS,
                f"Selected time is outside working hours ({window[0]:%H:%M}-{window[1]:%H:%M})",
                date, start
            )

        if end_min > close_min + self.grace_minutes:
            return SlotViolation(
                ErrorCode.OUTSIDE_WORKING_HOURS,
                f"A {duration} minute service starting at {start:%H:%M} would end too late",
                date, start
            )
        return None

    def _check_grid(self, date: date_type, start: time_type) -> Optional[SlotViolation]:
        """20 minute grid, with the legacy 30 minute grid still accepted."""
        if start.second or start.microsecond:
            return SlotViolation(ErrorCode.MISALIGNED_GRID, "Start times must be whole minutes", date, start)

        if start.minute % settings.SLOT_GRANULARITY_MINUTES == 0:
            return None
        if start.minute % settings.LEGACY_GRID_MINUTES == 0:
            return None

        return SlotViolation(
            ErrorCode.MISALIGNED_GRID,
            f"Appointments must start every {settings.SLOT_GRANULARITY_MINUTES} or {settings.LEGACY_GRID_MINUTES} minutes",
            date, start
        )

    def _check_extended_start(
        self,
        date: date_type,
        start: time_type,
        duration: int,
        window: Tuple[time_type, time_type]
    ) -> Optional[SlotViolation]:
        """40 minute services sit on a 40 minute sub-grid anchored at opening time."""
        if duration != settings.EXTENDED_GRID_MINUTES:
            return None

        offset = minutes_of(start) - minutes_of(window[0])
        if offset % settings.EXTENDED_GRID_MINUTES != 0:
            return SlotViolation(
                ErrorCode.MISALIGNED_EXTENDED_SERVICE_START,
                f"{duration} minute services must start on a {settings.EXTENDED_GRID_MINUTES} minute boundary from opening ({window[0]:%H:%M})",
                date, start
            )
        return None
