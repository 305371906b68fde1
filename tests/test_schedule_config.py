from datetime import date, time

import pytest
from pydantic import ValidationError

from models import ScheduleConfig, VacationPeriod, WorkWindow, normalize_weekday, weekday_name


@pytest.mark.parametrize("raw", ["Miércoles", "miercoles", "MIÉRCOLES", " wednesday ", "Wednesday"])
def test_weekday_normalization(raw):
    """Accents, case and language do not matter."""
    assert normalize_weekday(raw) == "wednesday"


def test_unknown_weekday_rejected():
    with pytest.raises(ValueError):
        normalize_weekday("funday")


def test_weekday_name_for_date():
    assert weekday_name(date(2025, 1, 15)) == "wednesday"


def test_work_days_normalized_on_load():
    """Spanish names stored by the admin UI are mapped once."""
    config = ScheduleConfig(work_days=["Miércoles", "lunes"])
    assert config.work_days == {"wednesday", "monday"}
    assert config.is_regular_work_day(date(2025, 1, 13))


def test_defaults():
    """No stored config means Wednesdays, 09:00-12:00."""
    config = ScheduleConfig()
    assert config.work_days == {"wednesday"}
    assert (config.start_time, config.end_time) == (time(9, 0), time(12, 0))


def test_hours_must_be_ordered():
    with pytest.raises(ValidationError):
        ScheduleConfig(start_time=time(12, 0), end_time=time(9, 0))
    with pytest.raises(ValidationError):
        WorkWindow(start_time=time(10, 0), end_time=time(10, 0))


def test_vacation_end_before_start_rejected():
    with pytest.raises(ValidationError):
        VacationPeriod(start=date(2025, 2, 1), end=date(2025, 1, 1))


def test_window_override_only_for_occasional_days():
    """A per-date window without the matching occasional day is ignored."""
    friday = date(2025, 3, 14)
    window = WorkWindow(start_time=time(14, 0), end_time=time(17, 0))

    orphan = ScheduleConfig(occasional_work_day_times={friday: window})
    assert orphan.window_for(friday) == (time(9, 0), time(12, 0))

    config = ScheduleConfig(occasional_work_days=[friday], occasional_work_day_times={friday: window})
    assert config.window_for(friday) == (time(14, 0), time(17, 0))


def test_json_document_reloads():
    """The SQL store persists the config as a JSON document."""
    config = ScheduleConfig.model_validate(ScheduleConfig.model_config["json_schema_extra"]["example"])
    reloaded = ScheduleConfig.model_validate(config.model_dump(mode="json"))
    assert reloaded == config
    assert reloaded.is_blocked_slot(date(2025, 2, 26), time(10, 0))
