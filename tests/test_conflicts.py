from datetime import time

import pytest

from models import AppointmentStatus, ServiceType
from scheduler.conflicts import Candidate, ConflictDetector
from scheduler.errors import ErrorCode

from conftest import TUESDAY, WEDNESDAY, make_appointment


@pytest.fixture
def detector():
    return ConflictDetector()


@pytest.fixture
def biopsy_at_ten():
    """One 40 minute booking occupying [10:00, 10:40)."""
    return [make_appointment(1, time(10, 0), ServiceType.BIOPSY)]


@pytest.mark.parametrize("start,service,clashes", [
    (time(10, 20), ServiceType.CONSULTATION, True),
    (time(10, 0), ServiceType.CONSULTATION, True),
    (time(9, 40), ServiceType.CONSULTATION_PAP, True),
    (time(10, 40), ServiceType.CONSULTATION, False),
    (time(9, 40), ServiceType.CONSULTATION, False),
    (time(9, 30), ServiceType.CONSULTATION_PAP, False),
])
def test_half_open_overlap(detector, biopsy_at_ten, start, service, clashes):
    """Back-to-back bookings touch but do not overlap."""
    assert detector.conflicts(Candidate(WEDNESDAY, start, service), biopsy_at_ten) is clashes


def test_longer_candidate_covers_existing(detector):
    """A 40 minute candidate collides with a shorter booking starting inside it."""
    existing = [make_appointment(1, time(10, 20))]
    assert detector.conflicts(Candidate(WEDNESDAY, time(10, 0), ServiceType.BIOPSY), existing)


def test_cancelled_bookings_ignored(detector):
    existing = [make_appointment(1, time(10, 0), status=AppointmentStatus.CANCELLED_BY_PATIENT)]
    assert not detector.conflicts(Candidate(WEDNESDAY, time(10, 0), ServiceType.CONSULTATION), existing)


def test_other_dates_ignored(detector):
    existing = [make_appointment(1, time(10, 0), day=TUESDAY)]
    assert not detector.conflicts(Candidate(WEDNESDAY, time(10, 0), ServiceType.CONSULTATION), existing)


def test_own_booking_ignored_when_moving(detector):
    """Rescheduling an appointment onto an overlapping slot of its own is fine."""
    existing = [make_appointment(7, time(9, 20), ServiceType.CONSULTATION_PAP)]
    assert not detector.conflicts(Candidate(WEDNESDAY, time(9, 30), ServiceType.CONSULTATION_PAP, appointment_id=7), existing)
    assert detector.conflicts(Candidate(WEDNESDAY, time(9, 30), ServiceType.CONSULTATION_PAP, appointment_id=8), existing)


def test_special_slot_only_collides_on_exact_start(detector):
    """A booking overlapping 11:40 does not block it; one starting there does."""
    overlapping = [make_appointment(1, time(11, 20), ServiceType.BIOPSY)]
    assert not detector.conflicts(Candidate(WEDNESDAY, time(11, 40), ServiceType.CONSULTATION), overlapping)

    same_start = [make_appointment(2, time(11, 40))]
    assert detector.conflicts(Candidate(WEDNESDAY, time(11, 40), ServiceType.IUD_PROCEDURE), same_start)


def test_regenerative_therapy_only_collides_on_exact_start(detector, biopsy_at_ten):
    assert not detector.conflicts(Candidate(WEDNESDAY, time(10, 20), ServiceType.REGENERATIVE_THERAPY), biopsy_at_ten)
    assert detector.conflicts(Candidate(WEDNESDAY, time(10, 0), ServiceType.REGENERATIVE_THERAPY), biopsy_at_ten)


def test_existing_regenerative_still_blocks_regular_candidates(detector):
    """The relaxed rule depends on the candidate, not on what is already booked."""
    existing = [make_appointment(1, time(10, 0), ServiceType.REGENERATIVE_THERAPY)]
    assert detector.conflicts(Candidate(WEDNESDAY, time(10, 20), ServiceType.CONSULTATION), existing)


def test_check_reports_slot_taken(detector, biopsy_at_ten):
    violation = detector.check(Candidate(WEDNESDAY, time(10, 20), ServiceType.CONSULTATION), biopsy_at_ten)
    assert violation.code is ErrorCode.SLOT_TAKEN
    assert violation.start_time == time(10, 20)
    assert detector.check(Candidate(WEDNESDAY, time(10, 40), ServiceType.CONSULTATION), biopsy_at_ten) is None


def test_find_conflicts_lists_every_clash(detector):
    existing = [
        make_appointment(1, time(10, 0)),
        make_appointment(2, time(10, 20)),
        make_appointment(3, time(11, 0)),
    ]
    clashes = detector.find_conflicts(Candidate(WEDNESDAY, time(10, 0), ServiceType.BIOPSY), existing)
    assert [a.id for a in clashes] == [1, 2]
