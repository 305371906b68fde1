"""
Overlap detection (Conflict Detector).

Given a candidate booking and the bookings already on that date,
decide whether the candidate collides with any of them.
"""

from dataclasses import dataclass
from datetime import date as date_type, time as time_type
from typing import Iterable, List, Optional, Union

from models import Appointment, ServiceType, is_special_case_service, resolve_duration
from .constraints import is_special_slot, minutes_of
from .errors import ErrorCode, SlotViolation


@dataclass(frozen=True)
class Candidate:
    """The slot being requested. Carries the id of the appointment being moved, if any."""
    date: date_type
    start_time: time_type
    service_type: Union[ServiceType, str]
    appointment_id: Optional[int] = None

    @property
    def duration_minutes(self) -> int:
        return resolve_duration(self.service_type)

    @property
    def exact_match_only(self) -> bool:
        """
        Relaxed rule: the Special Slot and special-case services only collide on an exact start match.
        See DESIGN.md (open question on regenerative therapy) before widening this.
        """
        return is_special_slot(self.start_time) or is_special_case_service(self.service_type)


class ConflictDetector:
    """
    Stateless overlap checker. All callers (allocate, reschedule, availability)
    go through this class so the rules exist in exactly one place.
    """

    def find_conflicts(self, candidate: Candidate, existing: Iterable[Appointment]) -> List[Appointment]:
        """Every active appointment the candidate collides with (for diagnostics)."""
        clashes = []
        cand_start = minutes_of(candidate.start_time)
        cand_end = cand_start + candidate.duration_minutes
        exact_only = candidate.exact_match_only

        for appt in existing:
            if appt.date != candidate.date: continue
            if not appt.is_active: continue
            # Reschedule path: an appointment never conflicts with itself
            if candidate.appointment_id is not None and appt.id == candidate.appointment_id: continue

            a_start = minutes_of(appt.start_time)

            if exact_only:
                if a_start == cand_start:
                    clashes.append(appt)
                continue

            a_end = a_start + appt.duration_minutes

            # Standard Overlap Logic: StartA < EndB and StartB < EndA
            if cand_start < a_end and a_start < cand_end:
                clashes.append(appt)

        return clashes

    def conflicts(self, candidate: Candidate, existing: Iterable[Appointment]) -> bool:
        return bool(self.find_conflicts(candidate, existing))

    def check(self, candidate: Candidate, existing: Iterable[Appointment]) -> Optional[SlotViolation]:
        """Same contract as SlotValidator.check_slot: None if free, a SlotTaken violation otherwise."""
        clashes = self.find_conflicts(candidate, existing)
        if not clashes:
            return None

        first = clashes[0]
        return SlotViolation(
            ErrorCode.SLOT_TAKEN,
            f"Selected time is not available (clashes with the {first.start_time:%H:%M} {first.service_type.value} booking)",
            candidate.date,
            candidate.start_time
        )
