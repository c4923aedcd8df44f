"""
polycal.config
--------------
Build CalendarDefinition and NoteSchedule values from plain documents
(dicts, JSON or YAML files). Keys may be camelCase (as stored by calendar
tools) or snake_case.

Documents are validated by pydantic models, which are then turned into the
frozen core values. Only structurally invalid documents raise ConfigError;
unknown keys are ignored, and unknown rule names and kinds are kept and
degrade at evaluation time.
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from polycal.core.errors import ConfigError
from polycal.core.types import (
    CalendarDefinition,
    ComputedConfig,
    ComputedStep,
    Condition,
    DateComponents,
    Daylight,
    Era,
    Festival,
    KIND_PAYLOADS,
    LeapYearConfig,
    LinkedEvent,
    MonthDef,
    Moon,
    MoonCondition,
    MoonPhase,
    NoteSchedule,
    RandomConfig,
    RandomOccurrenceCache,
    RangePattern,
    Season,
    SeasonalConfig,
)

LOG = logging.getLogger(__name__)

PathLike = Union[str, Path]

M = TypeVar("M", bound=BaseModel)


def _values(value: Any) -> Any:
    """Accept both a bare list and the {"values": [...]} wrapper."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return value.get("values", [])
    return value


def _number(x: float) -> Union[int, float]:
    return int(x) if x.is_integer() else x


class _Doc(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


# -------------------- Dates --------------------


class DateDoc(_Doc):
    """
    {year, month, dayOfMonth} with 0-based month and day, {year, month, day}
    with a 1-based day, or an ISO "YYYY-MM-DD" string (1-based month and day).
    """

    year: int
    month: int = 0
    day_of_month: Optional[int] = Field(None, alias="dayOfMonth")
    day: Optional[int] = None
    hour: int = 0
    minute: int = 0
    second: int = 0

    @model_validator(mode="before")
    @classmethod
    def _from_scalar(cls, value: Any) -> Any:
        if isinstance(value, DateComponents):
            return {
                "year": value.year,
                "month": value.month,
                "dayOfMonth": value.day_of_month,
                "hour": value.hour,
                "minute": value.minute,
                "second": value.second,
            }
        # YAML reads unquoted YYYY-MM-DD as a date
        if isinstance(value, datetime.date):
            return {"year": value.year, "month": value.month - 1, "day": value.day}
        if isinstance(value, str):
            text = value.strip()
            neg = text.startswith("-")
            parts = (text[1:] if neg else text).split("-")
            if len(parts) != 3 or not all(p.isdigit() for p in parts):
                raise ValueError(f"Date string must be YYYY-MM-DD, got {value!r}")
            y, m, d = (int(p) for p in parts)
            return {"year": -y if neg else y, "month": m - 1, "day": d}
        return value

    def build(self) -> DateComponents:
        if self.day_of_month is not None:
            dom = self.day_of_month
        else:
            dom = (self.day if self.day is not None else 1) - 1
        return DateComponents(self.year, self.month, dom, self.hour, self.minute, self.second)


# -------------------- Calendars --------------------


class MonthDoc(_Doc):
    name: str = ""
    days: int = Field(ge=0)
    leap_days: Optional[int] = Field(None, ge=0, alias="leapDays")
    abbreviation: Optional[str] = None

    def build(self) -> MonthDef:
        return MonthDef(self.name, self.days, self.leap_days, self.abbreviation)


class LeapYearDoc(_Doc):
    rule: Optional[str] = None
    interval: Optional[int] = Field(None, validation_alias=AliasChoices("interval", "leapInterval", "leap_interval"))
    start: int = Field(0, validation_alias=AliasChoices("start", "leapStart", "leap_start"))
    pattern: Optional[str] = None

    def build(self) -> LeapYearConfig:
        rule = self.rule
        if rule is None:
            rule = "simple" if self.interval and self.interval > 0 else "none"
        return LeapYearConfig(rule=rule, interval=self.interval, start=self.start, pattern=self.pattern)


class SeasonDoc(_Doc):
    name: str = ""
    day_start: Optional[int] = Field(None, alias="dayStart")
    day_end: Optional[int] = Field(None, alias="dayEnd")
    month_start: Optional[int] = Field(None, alias="monthStart")
    month_end: Optional[int] = Field(None, alias="monthEnd")
    day_start_of_month: Optional[int] = Field(None, alias="dayStartOfMonth")
    day_end_of_month: Optional[int] = Field(None, alias="dayEndOfMonth")
    duration: Optional[int] = None
    icon: str = ""

    def build(self) -> Season:
        return Season(**self.model_dump())


class EraDoc(_Doc):
    name: str = ""
    abbreviation: str = Field("", validation_alias=AliasChoices("abbreviation", "short"))
    start_year: int = Field(0, alias="startYear")
    end_year: Optional[int] = Field(None, alias="endYear")
    format: str = "suffix"
    template: Optional[str] = None

    def build(self) -> Era:
        return Era(**self.model_dump())


class FestivalDoc(_Doc):
    name: str = ""
    month: Optional[int] = None
    day: Optional[int] = None
    day_of_year: Optional[int] = Field(None, alias="dayOfYear")
    leap_year_only: bool = Field(False, alias="leapYearOnly")
    counts_for_weekday: bool = Field(True, alias="countsForWeekday")

    def build(self) -> Festival:
        return Festival(**self.model_dump())


class MoonPhaseDoc(_Doc):
    name: str = ""
    icon: str = ""
    rising: Optional[str] = None
    fading: Optional[str] = None


class MoonDoc(_Doc):
    name: str = ""
    cycle_length: float = Field(0.0, alias="cycleLength")
    reference_date: DateDoc = Field(alias="referenceDate")
    cycle_day_adjust: float = Field(0.0, alias="cycleDayAdjust")
    phases: List[MoonPhaseDoc] = Field(default_factory=list)

    @field_validator("phases", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _values(value)

    def build(self) -> Moon:
        return Moon(
            name=self.name,
            cycle_length=self.cycle_length,
            reference_date=self.reference_date.build(),
            cycle_day_adjust=self.cycle_day_adjust,
            phases=tuple(MoonPhase(**p.model_dump()) for p in self.phases),
        )


class DaylightDoc(_Doc):
    summer_solstice: int = Field(alias="summerSolstice")
    winter_solstice: int = Field(alias="winterSolstice")


class CalendarDoc(_Doc):
    name: str = "custom"
    months: List[MonthDoc] = Field(default_factory=list)
    weekdays: List[str] = Field(default_factory=list, validation_alias=AliasChoices("weekdays", "days"))
    days_per_year: Optional[int] = Field(None, alias="daysPerYear")
    year_zero: int = Field(0, alias="yearZero")
    year_zero_exists: bool = Field(True, alias="yearZeroExists")
    first_weekday: int = Field(0, alias="firstWeekday")
    leap: Optional[LeapYearDoc] = Field(None, validation_alias=AliasChoices("leapYear", "leap_year", "leap"))
    seasons: List[SeasonDoc] = Field(default_factory=list)
    season_model: Optional[str] = Field(None, alias="seasonModel")
    season_offset: int = Field(0, alias="seasonOffset")
    eras: List[EraDoc] = Field(default_factory=list)
    festivals: List[FestivalDoc] = Field(default_factory=list)
    moons: List[MoonDoc] = Field(default_factory=list)
    daylight: Optional[DaylightDoc] = None
    hours_per_day: int = Field(24, alias="hoursPerDay")
    minutes_per_hour: int = Field(60, alias="minutesPerHour")
    seconds_per_minute: int = Field(60, alias="secondsPerMinute")

    @model_validator(mode="before")
    @classmethod
    def _lift_season_settings(cls, values: Any) -> Any:
        """A {type, offset, values} seasons block carries the season model."""
        if isinstance(values, Mapping) and isinstance(values.get("seasons"), Mapping):
            block = values["seasons"]
            values = dict(values)
            if "type" in block and not (values.get("seasonModel") or values.get("season_model")):
                values["seasonModel"] = block["type"]
            if "offset" in block:
                values.pop("season_offset", None)
                values["seasonOffset"] = block["offset"]
        return values

    @field_validator("months", "seasons", "eras", "festivals", "moons", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _values(value)

    @field_validator("weekdays", mode="before")
    @classmethod
    def _weekday_names(cls, value: Any) -> Any:
        items = _values(value)
        if isinstance(items, (list, tuple)):
            return [w.get("name", "") if isinstance(w, Mapping) else w for w in items]
        return items

    def build(self) -> CalendarDefinition:
        daylight = None
        if self.daylight is not None:
            daylight = Daylight(self.daylight.summer_solstice, self.daylight.winter_solstice)
        return CalendarDefinition(
            name=self.name,
            months=tuple(m.build() for m in self.months),
            weekdays=tuple(self.weekdays),
            days_per_year=self.days_per_year,
            year_zero=self.year_zero,
            year_zero_exists=self.year_zero_exists,
            first_weekday=self.first_weekday,
            leap=self.leap.build() if self.leap is not None else LeapYearConfig(),
            seasons=tuple(s.build() for s in self.seasons),
            season_model="periodic" if self.season_model == "periodic" else "dated",
            season_offset=self.season_offset,
            eras=tuple(e.build() for e in self.eras),
            festivals=tuple(f.build() for f in self.festivals),
            moons=tuple(m.build() for m in self.moons),
            daylight=daylight,
            hours_per_day=self.hours_per_day,
            minutes_per_hour=self.minutes_per_hour,
            seconds_per_minute=self.seconds_per_minute,
        )


# -------------------- Schedules --------------------


class ConditionDoc(_Doc):
    field: str = ""
    operator: str = Field("==", validation_alias=AliasChoices("op", "operator"))
    value: float = 0.0
    offset: float = 0.0

    def build(self) -> Condition:
        return Condition(self.field, self.operator, _number(self.value), _number(self.offset))


class RangeBoundsDoc(_Doc):
    lo: Optional[int] = Field(None, alias="min")
    hi: Optional[int] = Field(None, alias="max")


RangeBitDoc = Optional[Union[int, List[Optional[int]], RangeBoundsDoc]]


def _range_bit(bit: RangeBitDoc):
    if isinstance(bit, RangeBoundsDoc):
        return (bit.lo, bit.hi)
    if isinstance(bit, list):
        return (bit[0] if len(bit) > 0 else None, bit[1] if len(bit) > 1 else None)
    return bit


class RangePatternDoc(_Doc):
    year: RangeBitDoc = None
    month: RangeBitDoc = None
    day: RangeBitDoc = None

    def build(self) -> RangePattern:
        return RangePattern(_range_bit(self.year), _range_bit(self.month), _range_bit(self.day))


class SeasonalDoc(_Doc):
    season_index: int = Field(0, alias="seasonIndex")
    trigger: str = "entire"


class RandomDoc(_Doc):
    seed: int = 0
    probability: float = 0.0
    check_interval: str = Field("daily", alias="checkInterval")


class ComputedStepDoc(_Doc):
    type: str = ""
    value: Optional[str] = None
    condition: Optional[str] = None
    params: Optional[Dict[str, Any]] = None


class YearOverrideDoc(_Doc):
    month: int = 0
    day: int = 1


class ComputedDoc(_Doc):
    chain: List[ComputedStepDoc] = Field(default_factory=list)
    year_overrides: Optional[Dict[int, YearOverrideDoc]] = Field(None, alias="yearOverrides")

    @field_validator("chain", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _values(value)

    def build(self) -> ComputedConfig:
        return ComputedConfig(
            chain=tuple(ComputedStep(s.type, s.value, s.condition, dict(s.params or {})) for s in self.chain),
            year_overrides={y: (o.month, o.day) for y, o in (self.year_overrides or {}).items()},
        )


class MoonConditionDoc(_Doc):
    moon_index: int = Field(0, alias="moonIndex")
    phase_start: float = Field(0.0, alias="phaseStart")
    phase_end: float = Field(1.0, alias="phaseEnd")


class LinkedEventDoc(_Doc):
    note_id: str = Field("", alias="noteId")
    offset: int = 0


class ScheduleDoc(_Doc):
    start_date: DateDoc = Field(alias="startDate")
    repeat: str = "never"
    repeat_interval: int = Field(1, alias="repeatInterval")
    end_date: Optional[DateDoc] = Field(None, alias="endDate")
    repeat_end_date: Optional[DateDoc] = Field(None, alias="repeatEndDate")
    max_occurrences: Optional[int] = Field(None, alias="maxOccurrences")
    conditions: List[ConditionDoc] = Field(default_factory=list)
    weekday: Optional[int] = None
    week_number: Optional[int] = Field(None, alias="weekNumber")
    seasonal: Optional[SeasonalDoc] = Field(
        None, validation_alias=AliasChoices("seasonalConfig", "seasonal_config", "seasonal")
    )
    range_pattern: Optional[RangePatternDoc] = Field(None, alias="rangePattern")
    random: Optional[RandomDoc] = Field(None, validation_alias=AliasChoices("randomConfig", "random_config", "random"))
    computed: Optional[ComputedDoc] = Field(
        None, validation_alias=AliasChoices("computedConfig", "computed_config", "computed")
    )
    moon_conditions: List[MoonConditionDoc] = Field(default_factory=list, alias="moonConditions")
    linked_event: Optional[LinkedEventDoc] = Field(None, alias="linkedEvent")
    id: str = ""
    title: str = Field("", validation_alias=AliasChoices("title", "name"))

    @field_validator("conditions", "moon_conditions", mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        return _values(value)

    def build(self) -> NoteSchedule:
        payload = {
            "weekday": self.weekday,
            "week_number": self.week_number,
            "seasonal": SeasonalConfig(**self.seasonal.model_dump()) if self.seasonal else None,
            "range_pattern": self.range_pattern.build() if self.range_pattern else None,
            "random": RandomConfig(**self.random.model_dump()) if self.random else None,
            "computed": self.computed.build() if self.computed else None,
        }
        # stored notes keep the settings of kinds they no longer use
        allowed = KIND_PAYLOADS.get(self.repeat, ())
        stale = [k for k, v in payload.items() if v is not None and k not in allowed]
        if stale:
            LOG.debug("Dropping %s from a '%s' schedule", ", ".join(stale), self.repeat)
            payload.update(dict.fromkeys(stale))
        return NoteSchedule(
            start_date=self.start_date.build(),
            repeat=self.repeat,
            repeat_interval=self.repeat_interval,
            end_date=self.end_date.build() if self.end_date else None,
            repeat_end_date=self.repeat_end_date.build() if self.repeat_end_date else None,
            max_occurrences=self.max_occurrences,
            conditions=tuple(c.build() for c in self.conditions),
            moon_conditions=tuple(MoonCondition(**c.model_dump()) for c in self.moon_conditions),
            linked_event=LinkedEvent(**self.linked_event.model_dump()) if self.linked_event else None,
            id=self.id,
            title=self.title,
            **payload,
        )


class RandomCacheDoc(_Doc):
    year: Optional[int] = None
    generated_at: Any = Field(None, alias="generatedAt")
    occurrences: Optional[List[DateDoc]] = None


# -------------------- Conversion --------------------


def _validate(model: Type[M], doc: Any, what: str) -> M:
    try:
        return model.model_validate(doc)
    except ValidationError as exc:
        raise ConfigError(f"Invalid {what}: {exc}") from exc


def date_from_dict(doc: Any) -> DateComponents:
    if isinstance(doc, DateComponents):
        return doc
    return _validate(DateDoc, doc, "date").build()


def calendar_from_dict(doc: Any) -> CalendarDefinition:
    parsed = _validate(CalendarDoc, doc, "calendar")
    try:
        return parsed.build()
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def schedule_from_dict(doc: Any) -> NoteSchedule:
    return _validate(ScheduleDoc, doc, "schedule").build()


def random_cache_from_dict(doc: Any) -> Optional[RandomOccurrenceCache]:
    """Lenient: a missing or partial cache comes back with None fields."""
    if doc is None:
        return None
    parsed = _validate(RandomCacheDoc, doc, "random cache")
    occ = parsed.occurrences
    return RandomOccurrenceCache(
        year=parsed.year,
        generated_at=parsed.generated_at,
        occurrences=None if occ is None else tuple(d.build() for d in occ),
    )


# -------------------- Files --------------------


def read_document(path: PathLike) -> Any:
    p = Path(path)
    suffix = p.suffix.lower()
    with p.open("r", encoding="utf-8") as f:
        if suffix == ".json":
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"{p}: invalid JSON: {e}") from e
        if suffix in (".yaml", ".yml"):
            try:
                return yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"{p}: invalid YAML: {e}") from e
    raise ConfigError(f"{p}: unsupported file type '{suffix}' (use .json, .yaml or .yml)")


def load_calendar(path: PathLike) -> CalendarDefinition:
    cal = calendar_from_dict(read_document(path))
    LOG.debug("Loaded calendar '%s' from %s", cal.name, path)
    return cal


def load_schedules(path: PathLike) -> List[NoteSchedule]:
    """A list of schedules, a {"schedules": [...]} document, or a single schedule."""
    doc = read_document(path)
    if isinstance(doc, Mapping) and "schedules" in doc:
        doc = doc["schedules"]
    if isinstance(doc, Mapping):
        doc = [doc]
    if not isinstance(doc, list):
        raise ConfigError(f"{path}: expected a schedule or a list of schedules")
    out = [schedule_from_dict(d) for d in doc]
    LOG.debug("Loaded %d schedule(s) from %s", len(out), path)
    return out
