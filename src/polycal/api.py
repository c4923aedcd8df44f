from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Union

from .core.engine import CalendarRegistry
from .core.types import (
    CalendarDefinition,
    DateComponents,
    MoonPhaseResult,
    NoteSchedule,
    RandomOccurrenceCache,
)
from .engines.calendar import CalendarArithmetic
from .engines.describe import describe_schedule
from .engines.moon import MoonPhaseCalculator
from .engines.recurrence import DEFAULT_MAX_COUNT, RecurrenceEngine
from .engines.seeded import SeededRandomGenerator

CalendarRef = Union[str, CalendarDefinition]

_registry: Optional[CalendarRegistry] = None

def set_registry(reg: CalendarRegistry) -> None:
    global _registry
    _registry = reg

def _reg() -> CalendarRegistry:
    if _registry is None:
        raise RuntimeError("Calendar registry not initialized")
    return _registry

def list_calendars() -> List[str]:
    return _reg().list()

def get_calendar(name: str) -> CalendarDefinition:
    return _reg().get(name)

def register_calendar(name: str, calendar: CalendarDefinition, *, overwrite: bool = False) -> None:
    _reg().register(name, calendar, overwrite=overwrite)

def _definition(calendar: CalendarRef) -> CalendarDefinition:
    return _reg().get(calendar) if isinstance(calendar, str) else calendar

@lru_cache(maxsize=32)
def _arith_for(cal: CalendarDefinition) -> CalendarArithmetic:
    return CalendarArithmetic(cal)

def arithmetic(calendar: CalendarRef = "gregorian") -> CalendarArithmetic:
    return _arith_for(_definition(calendar))

def recurrence_engine(
    calendar: CalendarRef = "gregorian",
    linked: Optional[Mapping[str, NoteSchedule]] = None,
) -> RecurrenceEngine:
    return RecurrenceEngine(arithmetic(calendar), linked=linked)

# ============================================================
# Calendar questions
# ============================================================

def is_leap_year(year: int, *, calendar: CalendarRef = "gregorian") -> bool:
    return arithmetic(calendar).is_leap_year(year)

def days_in_month(month: int, year: int, *, calendar: CalendarRef = "gregorian") -> int:
    return arithmetic(calendar).days_in_month(month, year)

def days_in_year(year: int, *, calendar: CalendarRef = "gregorian") -> int:
    return arithmetic(calendar).days_in_year(year)

def weekday(d: DateComponents, *, calendar: CalendarRef = "gregorian") -> int:
    return arithmetic(calendar).weekday(d)

def moon_phase(d: DateComponents, moon: int = 0, *, calendar: CalendarRef = "gregorian") -> Optional[MoonPhaseResult]:
    return MoonPhaseCalculator(arithmetic(calendar)).phase(moon, d)

def day_info(d: DateComponents, *, calendar: CalendarRef = "gregorian") -> Dict[str, Any]:
    """Everything the arithmetic knows about one date."""
    a = arithmetic(calendar)
    mc = MoonPhaseCalculator(a)
    festival = a.find_festival_day(d)
    season = a.season(d)
    era = a.era(d)
    return {
        "date": d,
        "label": a.format_date(d),
        "display_year": a.display_year(d.year),
        "is_leap_year": a.is_leap_year(d.year),
        "day_of_year": a.day_of_year(d),
        "weekday": a.weekday(d),
        "weekday_name": a.weekday_name(d),
        "festival": festival.name if festival else None,
        "season": season.name if season else None,
        "era": era.era.name if era else None,
        "year_in_era": era.year_in_era if era else None,
        "moons": [mc.phase(i, d) for i in range(len(a.cal.moons))],
    }

# ============================================================
# Schedules
# ============================================================

def is_recurring_match(
    schedule: NoteSchedule,
    d: DateComponents,
    *,
    calendar: CalendarRef = "gregorian",
    cache: Optional[RandomOccurrenceCache] = None,
    linked: Optional[Mapping[str, NoteSchedule]] = None,
) -> bool:
    return recurrence_engine(calendar, linked).is_recurring_match(schedule, d, cache)

def occurrences_in_range(
    schedule: NoteSchedule,
    start: DateComponents,
    end: DateComponents,
    *,
    calendar: CalendarRef = "gregorian",
    max_count: Optional[int] = DEFAULT_MAX_COUNT,
    cache: Optional[RandomOccurrenceCache] = None,
    linked: Optional[Mapping[str, NoteSchedule]] = None,
) -> List[DateComponents]:
    return recurrence_engine(calendar, linked).occurrences_in_range(schedule, start, end, max_count, cache)

def generate_random_occurrences(
    schedule: NoteSchedule,
    year: int,
    *,
    calendar: CalendarRef = "gregorian",
) -> List[DateComponents]:
    return SeededRandomGenerator(arithmetic(calendar)).generate(schedule, year)

def describe(schedule: NoteSchedule, *, calendar: CalendarRef = "gregorian") -> str:
    return describe_schedule(schedule, arithmetic(calendar))
