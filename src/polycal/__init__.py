"""polycal public API.

Keep this surface small: users should mostly interact with functions re-exported here.
"""

# Initialize registry on import
from . import api_init as _api_init  # noqa: F401

from .api import (
    list_calendars,
    get_calendar,
    register_calendar,
    arithmetic,
    recurrence_engine,
    is_leap_year,
    days_in_month,
    days_in_year,
    weekday,
    moon_phase,
    day_info,
    is_recurring_match,
    occurrences_in_range,
    generate_random_occurrences,
    describe,
)
from .core.types import CalendarDefinition, DateComponents, NoteSchedule
from .engines.calendar import CalendarArithmetic
from .engines.recurrence import RecurrenceEngine

__all__ = [
    "list_calendars",
    "get_calendar",
    "register_calendar",
    "arithmetic",
    "recurrence_engine",
    "is_leap_year",
    "days_in_month",
    "days_in_year",
    "weekday",
    "moon_phase",
    "day_info",
    "is_recurring_match",
    "occurrences_in_range",
    "generate_random_occurrences",
    "describe",
    "CalendarDefinition",
    "DateComponents",
    "NoteSchedule",
    "CalendarArithmetic",
    "RecurrenceEngine",
]
