"""Wall-clock helpers pinned to the clinic timezone."""

from datetime import datetime

import pytz

from . import settings


def clinic_tz() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    """Current local time at the clinic, as a naive datetime (the engine's canonical representation)."""
    return datetime.now(clinic_tz()).replace(tzinfo=None)
