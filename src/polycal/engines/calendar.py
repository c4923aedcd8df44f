"""
polycal.engines.calendar
------------------------
Day arithmetic for arbitrary calendars. Converts (year, month, day) components
to linear day numbers and back, and resolves festivals, weekdays, seasons and
eras on top of that linearization.

Day 0 is the first day of internal year 0. Leap rules are evaluated on the
display year (internal year + year_zero).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from polycal.core.types import (
    CalendarDefinition,
    DateComponents,
    EraInfo,
    Festival,
    Season,
)
from polycal.engines.leap import LeapYearEngine

LOG = logging.getLogger(__name__)

_TEMPLATE_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
_TEMPLATE_ALIASES = {"name": "era", "abbreviation": "short"}


def in_day_range(doy: int, start: int, end: int) -> bool:
    """Inclusive day-of-year range; start > end wraps across the year boundary."""
    if start <= end:
        return start <= doy <= end
    return doy >= start or doy <= end


def format_era_template(template: str, context: Mapping[str, Any]) -> str:
    """Replace {{var}} placeholders. Unknown placeholders are left as written."""
    def sub(m: re.Match) -> str:
        key = m.group(1)
        key = _TEMPLATE_ALIASES.get(key, key)
        if key in context and context[key] is not None:
            return str(context[key])
        return m.group(0)

    return _TEMPLATE_RE.sub(sub, template)


def _starts(lengths: Tuple[int, ...]) -> Tuple[int, ...]:
    out = [0]
    for n in lengths:
        out.append(out[-1] + n)
    return tuple(out)


def _festival_doy(f: Festival, lengths: Tuple[int, ...], starts: Tuple[int, ...], leap: bool) -> Optional[int]:
    """0-based day of year of a festival for one year layout, None if it does not occur."""
    if f.leap_year_only and not leap:
        return None
    year_len = starts[-1]
    if f.day_of_year is not None:
        return f.day_of_year if 0 <= f.day_of_year < year_len else None
    if f.month is None or f.day is None:
        return None
    m, d = f.month - 1, f.day - 1
    if not (0 <= m < len(lengths)) or not (0 <= d < lengths[m]):
        return None
    return starts[m] + d


@dataclass(frozen=True)
class CalendarContext:
    """
    Everything the arithmetic needs, derived once from a CalendarDefinition
    and threaded explicitly through every call.
    """
    definition: CalendarDefinition
    leap: LeapYearEngine
    first_weekday: int
    year_zero: int
    year_zero_exists: bool
    common_lengths: Tuple[int, ...]
    leap_lengths: Tuple[int, ...]
    common_starts: Tuple[int, ...]
    leap_starts: Tuple[int, ...]
    # 0-based days of year that do not advance the weekday cycle
    skipped_common: FrozenSet[int]
    skipped_leap: FrozenSet[int]
    # first guess for from_days; the exact year is found by stepping
    mean_year_length: float

    @property
    def common_year_length(self) -> int:
        return self.common_starts[-1]

    @property
    def leap_year_length(self) -> int:
        return self.leap_starts[-1]

    @classmethod
    def from_definition(cls, cal: CalendarDefinition) -> "CalendarContext":
        if cal.months:
            common = tuple(m.days for m in cal.months)
            leap = tuple(m.leap_days if m.leap_days is not None else m.days for m in cal.months)
        else:
            n = cal.days_per_year or 0
            common, leap = (n,), (n + 1,)
        cs, ls = _starts(common), _starts(leap)

        def skipped(lengths, starts, is_leap) -> FrozenSet[int]:
            out = set()
            for f in cal.festivals:
                if f.counts_for_weekday:
                    continue
                doy = _festival_doy(f, lengths, starts, is_leap)
                if doy is not None:
                    out.add(doy)
            return frozenset(out)

        n_wd = len(cal.weekdays)
        leap_engine = LeapYearEngine(cal.leap, cal.year_zero_exists)
        return cls(
            definition=cal,
            leap=leap_engine,
            first_weekday=(cal.first_weekday % n_wd) if n_wd else 0,
            year_zero=cal.year_zero,
            year_zero_exists=cal.year_zero_exists,
            common_lengths=common,
            leap_lengths=leap,
            common_starts=cs,
            leap_starts=ls,
            skipped_common=skipped(common, cs, False),
            skipped_leap=skipped(leap, ls, True),
            mean_year_length=cs[-1] + (ls[-1] - cs[-1]) * leap_engine.leap_fraction,
        )


class CalendarArithmetic:
    """
    Calendar-agnostic date arithmetic. Never raises on bad dates; invalid
    indices give neutral results (0, None, False).
    """
    def __init__(self, calendar: Union[CalendarDefinition, CalendarContext]):
        self.ctx = calendar if isinstance(calendar, CalendarContext) else CalendarContext.from_definition(calendar)
        self.cal = self.ctx.definition

    @property
    def month_count(self) -> int:
        return len(self.ctx.common_lengths)

    @property
    def weekday_count(self) -> int:
        return len(self.cal.weekdays)

    @property
    def week_length(self) -> int:
        """Stride of one week; calendars without weekdays fall back to seven days."""
        return self.weekday_count or 7

    # ---------------------------------------------------------
    # Years and months
    # ---------------------------------------------------------

    def display_year(self, year: int) -> int:
        return year + self.ctx.year_zero

    def internal_year(self, display_year: int) -> int:
        return display_year - self.ctx.year_zero

    def is_leap_year(self, year: int) -> bool:
        return self.ctx.leap.is_leap(self.display_year(year))

    def leap_years_before(self, year: int) -> int:
        """Signed count of leap years among internal years [0, year)."""
        yz = self.ctx.year_zero
        return self.ctx.leap.count_leap_years(yz, yz + year)

    def month_lengths(self, year: int) -> Tuple[int, ...]:
        return self.ctx.leap_lengths if self.is_leap_year(year) else self.ctx.common_lengths

    def _month_starts(self, year: int) -> Tuple[int, ...]:
        return self.ctx.leap_starts if self.is_leap_year(year) else self.ctx.common_starts

    def days_in_month(self, month: int, year: int) -> int:
        lengths = self.month_lengths(year)
        if 0 <= month < len(lengths):
            return lengths[month]
        return 0

    def days_in_year(self, year: int) -> int:
        return self._month_starts(year)[-1]

    def days_before_year(self, year: int) -> int:
        common = self.ctx.common_year_length
        delta = self.ctx.leap_year_length - common
        return year * common + delta * self.leap_years_before(year)

    def months_between(self, a: DateComponents, b: DateComponents) -> int:
        return (b.year - a.year) * self.month_count + (b.month - a.month)

    def month_name(self, month: int) -> str:
        if 0 <= month < len(self.cal.months):
            return self.cal.months[month].name
        return ""

    # ---------------------------------------------------------
    # Linear day numbers
    # ---------------------------------------------------------

    def day_of_year(self, d: DateComponents) -> int:
        starts = self._month_starts(d.year)
        m = min(max(d.month, 0), len(starts) - 1)
        return starts[m] + d.day_of_month

    def is_valid(self, d: DateComponents) -> bool:
        return 0 <= d.day_of_month < self.days_in_month(d.month, d.year)

    def to_days(self, d: DateComponents) -> int:
        return self.days_before_year(d.year) + self.day_of_year(d)

    def from_days(self, n: int) -> DateComponents:
        common = self.ctx.common_year_length
        leap = self.ctx.leap_year_length
        if common <= 0 or leap <= 0:
            LOG.debug("Calendar '%s' has an empty year; from_days degrades to year 0", self.cal.name)
            return DateComponents(0, 0, 0)

        y = int(n // self.ctx.mean_year_length)
        while self.days_before_year(y) > n:
            y -= 1
        while self.days_before_year(y + 1) <= n:
            y += 1
        return self._walk_months(y, n - self.days_before_year(y))

    def _walk_months(self, year: int, doy: int) -> DateComponents:
        lengths = self.month_lengths(year)
        for m, length in enumerate(lengths):
            if doy < length:
                return DateComponents(year, m, doy)
            doy -= length
        return DateComponents(year, len(lengths) - 1, lengths[-1] - 1)

    def date_from_day_of_year(self, year: int, doy: int) -> DateComponents:
        if 0 <= doy < self.days_in_year(year):
            return self._walk_months(year, doy)
        return self.from_days(self.days_before_year(year) + doy)

    def add_days(self, d: DateComponents, n: int) -> DateComponents:
        out = self.from_days(self.to_days(d) + n)
        if d.hour or d.minute or d.second:
            out = DateComponents(out.year, out.month, out.day_of_month, d.hour, d.minute, d.second)
        return out

    def days_between(self, a: DateComponents, b: DateComponents) -> int:
        return self.to_days(b) - self.to_days(a)

    def compare(self, a: DateComponents, b: DateComponents) -> int:
        da, db = self.to_days(a), self.to_days(b)
        return (da > db) - (da < db)

    def same_day(self, a: DateComponents, b: DateComponents) -> bool:
        return self.to_days(a) == self.to_days(b)

    def clamp_day(self, year: int, month: int, day_of_month: int) -> DateComponents:
        """Components with the day clamped to the month's length."""
        dim = self.days_in_month(month, year)
        return DateComponents(year, month, min(day_of_month, max(dim - 1, 0)))

    def fraction_of_day(self, d: DateComponents) -> float:
        spd = self.cal.seconds_per_day
        if spd <= 0:
            return 0.0
        secs = (d.hour * self.cal.minutes_per_hour + d.minute) * self.cal.seconds_per_minute + d.second
        return secs / spd

    # ---------------------------------------------------------
    # Festivals
    # ---------------------------------------------------------

    def festival_day_of_year(self, f: Festival, year: int) -> Optional[int]:
        lengths = self.month_lengths(year)
        return _festival_doy(f, lengths, self._month_starts(year), self.is_leap_year(year))

    def find_festival_day(self, d: DateComponents) -> Optional[Festival]:
        doy = self.day_of_year(d)
        for f in self.cal.festivals:
            if self.festival_day_of_year(f, d.year) == doy:
                return f
        return None

    def is_festival_day(self, d: DateComponents) -> bool:
        return self.find_festival_day(d) is not None

    def festivals_in_year(self, year: int) -> List[Tuple[DateComponents, Festival]]:
        out = []
        for f in self.cal.festivals:
            doy = self.festival_day_of_year(f, year)
            if doy is not None:
                out.append((self._walk_months(year, doy), f))
        out.sort(key=lambda t: t[0])
        return out

    # ---------------------------------------------------------
    # Weekdays
    # ---------------------------------------------------------

    def _skipped(self, year: int) -> FrozenSet[int]:
        return self.ctx.skipped_leap if self.is_leap_year(year) else self.ctx.skipped_common

    def skipped_days_before_year(self, year: int) -> int:
        """Non-weekday festival days in internal years [0, year), signed."""
        common = len(self.ctx.skipped_common)
        delta = len(self.ctx.skipped_leap) - common
        return year * common + delta * self.leap_years_before(year)

    def weekday_days(self, d: DateComponents) -> int:
        """Linear day number with non-weekday festival days removed."""
        doy = self.day_of_year(d)
        in_year = sum(1 for s in self._skipped(d.year) if s < doy)
        return self.to_days(d) - self.skipped_days_before_year(d.year) - in_year

    def weekday(self, d: DateComponents) -> int:
        n = self.weekday_count
        if n == 0:
            return 0
        return (self.weekday_days(d) + self.ctx.first_weekday) % n

    def weekday_name(self, d: DateComponents) -> str:
        if not self.cal.weekdays:
            return ""
        return self.cal.weekdays[self.weekday(d)]

    def counts_for_weekday(self, d: DateComponents) -> bool:
        return self.day_of_year(d) not in self._skipped(d.year)

    def month_weekdays(self, year: int, month: int) -> List[Optional[int]]:
        """Weekday of each day in a month; None on days outside the weekday cycle."""
        dim = self.days_in_month(month, year)
        if dim == 0:
            return []
        n = self.week_length
        first = DateComponents(year, month, 0)
        base = self.weekday(first) if self.weekday_count else 0
        skipped = self._skipped(year)
        start = self.day_of_year(first)
        out: List[Optional[int]] = []
        counted = 0
        for i in range(dim):
            if start + i in skipped:
                out.append(None)
                continue
            out.append((base + counted) % n)
            counted += 1
        return out

    def weekday_occurrences(self, year: int, month: int, weekday: int) -> List[int]:
        """0-based days of month falling on `weekday`, in order."""
        return [i for i, wd in enumerate(self.month_weekdays(year, month)) if wd == weekday]

    def weekday_ordinal_in_month(self, d: DateComponents) -> int:
        """1-based occurrence of the date's weekday within its month, 0 off-cycle."""
        wds = self.month_weekdays(d.year, d.month)
        if not (0 <= d.day_of_month < len(wds)) or wds[d.day_of_month] is None:
            return 0
        target = wds[d.day_of_month]
        return sum(1 for wd in wds[: d.day_of_month + 1] if wd == target)

    def is_last_weekday_in_month(self, d: DateComponents) -> bool:
        wds = self.month_weekdays(d.year, d.month)
        if not (0 <= d.day_of_month < len(wds)) or wds[d.day_of_month] is None:
            return False
        target = wds[d.day_of_month]
        return all(wd != target for wd in wds[d.day_of_month + 1:])

    # ---------------------------------------------------------
    # Seasons
    # ---------------------------------------------------------

    def _periodic_durations(self, total: int) -> List[int]:
        seasons = self.cal.seasons
        explicit = sum(s.duration for s in seasons if s.duration)
        implicit = [i for i, s in enumerate(seasons) if not s.duration]
        out = [s.duration or 0 for s in seasons]
        if implicit:
            remaining = max(total - explicit, 0)
            base, rem = divmod(remaining, len(implicit))
            for k, i in enumerate(implicit):
                out[i] = base + (1 if k < rem else 0)
        return out

    def _dated_bounds(self, s: Season, year: int) -> Optional[Tuple[int, int]]:
        if s.day_start is not None and s.day_end is not None:
            return (s.day_start, s.day_end)
        if s.month_start is None or s.month_end is None:
            return None
        ms, me = s.month_start - 1, s.month_end - 1
        if not (0 <= ms < self.month_count and 0 <= me < self.month_count):
            return None
        starts = self._month_starts(year)
        end_len = self.days_in_month(me, year)
        ds = (s.day_start_of_month or 1) - 1
        de = (s.day_end_of_month - 1) if s.day_end_of_month else end_len - 1
        de = min(de, max(end_len - 1, 0))
        return (starts[ms] + ds, starts[me] + de)

    def season_bounds_for_year(self, year: int) -> List[Optional[Tuple[int, int]]]:
        """Inclusive 0-based (start, end) day-of-year per season; start > end wraps."""
        seasons = self.cal.seasons
        if not seasons:
            return []
        if self.cal.season_model != "periodic":
            return [self._dated_bounds(s, year) for s in seasons]

        total = self.days_in_year(year)
        if total <= 0:
            return [None] * len(seasons)
        out: List[Optional[Tuple[int, int]]] = []
        cum = 0
        for dur in self._periodic_durations(total):
            if dur <= 0:
                out.append(None)
                continue
            start = (self.cal.season_offset + cum) % total
            out.append((start, (start + dur - 1) % total))
            cum += dur
        return out

    def season_bounds(self, index: int, year: int) -> Optional[Tuple[int, int]]:
        bounds = self.season_bounds_for_year(year)
        if 0 <= index < len(bounds):
            return bounds[index]
        return None

    def season_index(self, d: DateComponents) -> int:
        """Index of the first season containing the date, 0 as fallback, -1 without seasons."""
        bounds = self.season_bounds_for_year(d.year)
        if not bounds:
            return -1
        doy = self.day_of_year(d)
        for i, b in enumerate(bounds):
            if b is not None and in_day_range(doy, b[0], b[1]):
                return i
        return 0

    def season(self, d: DateComponents) -> Optional[Season]:
        i = self.season_index(d)
        return self.cal.seasons[i] if i >= 0 else None

    # ---------------------------------------------------------
    # Eras
    # ---------------------------------------------------------

    def era(self, d: DateComponents) -> Optional[EraInfo]:
        eras = self.cal.eras
        if not eras:
            return None
        dy = self.display_year(d.year)
        for e in sorted(eras, key=lambda e: e.start_year, reverse=True):
            if e.start_year <= dy and (e.end_year is None or dy <= e.end_year):
                return EraInfo(era=e, year_in_era=dy - e.start_year + 1, display_year=dy)
        return EraInfo(era=eras[0], year_in_era=dy, display_year=dy)

    def format_year(self, d: DateComponents) -> str:
        info = self.era(d)
        if info is None:
            return str(self.display_year(d.year))
        e = info.era
        short = e.abbreviation or e.name
        if e.template:
            context: Dict[str, Any] = {
                "year": info.display_year,
                "yearInEra": info.year_in_era,
                "era": e.name,
                "short": short,
            }
            return format_era_template(e.template, context)
        if e.format == "prefix":
            return f"{short} {info.year_in_era}"
        return f"{info.year_in_era} {short}"

    def format_date(self, d: DateComponents) -> str:
        name = self.month_name(d.month) or str(d.month + 1)
        return f"{d.day_of_month + 1} {name}, {self.format_year(d)}"
