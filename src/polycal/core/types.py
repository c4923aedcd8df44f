from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Literal, Optional, Tuple, Union

RepeatKind = Literal[
    "never", "daily", "weekly", "monthly", "yearly",
    "weekOfMonth", "seasonal", "range", "random", "moon", "computed",
]
SeasonTrigger = Literal["firstDay", "lastDay", "entire"]
CheckInterval = Literal["daily", "weekly", "monthly"]

# None (wildcard), exact value, or inclusive (min, max) with nullable bounds
RangeBit = Union[None, int, Tuple[Optional[int], Optional[int]]]


@dataclass(frozen=True, order=True)
class DateComponents:
    year: int
    month: int          # 0-indexed
    day_of_month: int   # 0-indexed
    hour: int = 0
    minute: int = 0
    second: int = 0

    def date_only(self) -> "DateComponents":
        if self.hour == 0 and self.minute == 0 and self.second == 0:
            return self
        return replace(self, hour=0, minute=0, second=0)

    @property
    def key(self) -> Tuple[int, int, int]:
        return (self.year, self.month, self.day_of_month)

    def isoformat(self) -> str:
        """Human form, months and days 1-based."""
        return f"{self.year:04d}-{self.month + 1:02d}-{self.day_of_month + 1:02d}"


@dataclass(frozen=True)
class LeapInterval:
    interval: int
    subtracts: bool = False
    offset: int = 0


@dataclass(frozen=True)
class LeapYearConfig:
    rule: str = "none"   # none | simple | gregorian | custom
    interval: Optional[int] = None
    start: int = 0
    pattern: Optional[str] = None


@dataclass(frozen=True)
class MonthDef:
    name: str
    days: int
    leap_days: Optional[int] = None
    abbreviation: Optional[str] = None

    def __post_init__(self) -> None:
        if self.days < 0:
            raise ValueError(f"Month '{self.name}' has a negative day count")
        if self.leap_days is not None and self.leap_days < 0:
            raise ValueError(f"Month '{self.name}' has a negative leap day count")


@dataclass(frozen=True)
class Festival:
    name: str
    month: Optional[int] = None        # 1-based
    day: Optional[int] = None          # 1-based
    day_of_year: Optional[int] = None  # 0-based
    leap_year_only: bool = False
    counts_for_weekday: bool = True


@dataclass(frozen=True)
class Season:
    name: str
    day_start: Optional[int] = None    # 0-based day of year
    day_end: Optional[int] = None
    month_start: Optional[int] = None  # 1-based
    month_end: Optional[int] = None
    day_start_of_month: Optional[int] = None  # 1-based
    day_end_of_month: Optional[int] = None
    duration: Optional[int] = None     # periodic model only
    icon: str = ""


@dataclass(frozen=True)
class Era:
    name: str
    abbreviation: str = ""
    start_year: int = 0
    end_year: Optional[int] = None
    format: Literal["prefix", "suffix"] = "suffix"
    template: Optional[str] = None


@dataclass(frozen=True)
class EraInfo:
    era: Era
    year_in_era: int
    display_year: int


@dataclass(frozen=True)
class MoonPhase:
    name: str
    icon: str = ""
    rising: Optional[str] = None
    fading: Optional[str] = None


@dataclass(frozen=True)
class Moon:
    name: str
    cycle_length: float
    reference_date: DateComponents
    cycle_day_adjust: float = 0.0
    phases: Tuple[MoonPhase, ...] = ()


@dataclass(frozen=True)
class Daylight:
    summer_solstice: int  # 0-based day of year
    winter_solstice: int


@dataclass(frozen=True)
class CalendarDefinition:
    """Immutable description of one calendar. Customise with dataclasses.replace."""
    name: str
    months: Tuple[MonthDef, ...] = ()
    weekdays: Tuple[str, ...] = ()
    days_per_year: Optional[int] = None  # monthless calendars
    year_zero: int = 0
    year_zero_exists: bool = True
    first_weekday: int = 0
    leap: LeapYearConfig = LeapYearConfig()
    seasons: Tuple[Season, ...] = ()
    season_model: Literal["dated", "periodic"] = "dated"
    season_offset: int = 0
    eras: Tuple[Era, ...] = ()
    festivals: Tuple[Festival, ...] = ()
    moons: Tuple[Moon, ...] = ()
    daylight: Optional[Daylight] = None
    hours_per_day: int = 24
    minutes_per_hour: int = 60
    seconds_per_minute: int = 60

    def __post_init__(self) -> None:
        if not self.months and self.days_per_year is None:
            raise ValueError(f"Calendar '{self.name}' needs months or days_per_year")

    @property
    def seconds_per_day(self) -> int:
        return self.hours_per_day * self.minutes_per_hour * self.seconds_per_minute


@dataclass(frozen=True)
class MoonPhaseResult:
    name: str
    sub_phase_name: str
    icon: str
    position: float
    day_in_cycle: int
    phase_index: int
    day_within_phase: int
    phase_duration: int


# ---------------------------------------------------------
# Schedules
# ---------------------------------------------------------

@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: float
    offset: float = 0


@dataclass(frozen=True)
class SeasonalConfig:
    season_index: int
    trigger: SeasonTrigger = "entire"


@dataclass(frozen=True)
class RangePattern:
    year: RangeBit = None
    month: RangeBit = None   # 0-based
    day: RangeBit = None     # 1-based


@dataclass(frozen=True)
class RandomConfig:
    seed: int
    probability: float
    check_interval: CheckInterval = "daily"


@dataclass(frozen=True)
class ComputedStep:
    type: str                       # anchor | daysAfter | weekdayOnOrAfter | firstAfter
    value: Optional[str] = None     # anchor name
    condition: Optional[str] = None # firstAfter condition name
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ComputedConfig:
    chain: Tuple[ComputedStep, ...] = ()
    # year -> (month 0-based, day 1-based)
    year_overrides: Dict[int, Tuple[int, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class MoonCondition:
    moon_index: int
    phase_start: float
    phase_end: float


@dataclass(frozen=True)
class LinkedEvent:
    note_id: str
    offset: int = 0


# payload fields that belong to a single repeat kind
KIND_PAYLOADS: Dict[str, Tuple[str, ...]] = {
    "weekOfMonth": ("weekday", "week_number"),
    "seasonal": ("seasonal",),
    "range": ("range_pattern",),
    "random": ("random",),
    "computed": ("computed",),
}


@dataclass(frozen=True)
class NoteSchedule:
    start_date: DateComponents
    repeat: str = "never"
    repeat_interval: int = 1
    end_date: Optional[DateComponents] = None
    repeat_end_date: Optional[DateComponents] = None
    max_occurrences: Optional[int] = None
    conditions: Tuple[Condition, ...] = ()
    weekday: Optional[int] = None       # 0-based weekday index
    week_number: Optional[int] = None   # 1-based, negative counts from month end
    seasonal: Optional[SeasonalConfig] = None
    range_pattern: Optional[RangePattern] = None
    random: Optional[RandomConfig] = None
    computed: Optional[ComputedConfig] = None
    moon_conditions: Tuple[MoonCondition, ...] = ()
    linked_event: Optional[LinkedEvent] = None
    id: str = ""
    title: str = ""

    def __post_init__(self) -> None:
        allowed = KIND_PAYLOADS.get(self.repeat, ())
        for kind, names in KIND_PAYLOADS.items():
            for name in names:
                if name not in allowed and getattr(self, name) is not None:
                    raise ValueError(f"A '{self.repeat}' schedule cannot carry {name} (only '{kind}' does)")


@dataclass(frozen=True)
class RandomOccurrenceCache:
    year: Optional[int] = None
    generated_at: Optional[Any] = None
    occurrences: Optional[Tuple[DateComponents, ...]] = None
