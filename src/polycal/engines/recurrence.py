"""
polycal.engines.recurrence
--------------------------
Decides whether a NoteSchedule is active on a date and enumerates its
occurrences over a range.

Every repeat kind is a pair of functions: a matcher deciding whether a date is
an occurrence start, and a generator yielding candidate starts (as linear day
numbers, ascending) between two bounds. Cross-cutting modifiers (first
occurrence span, multi-day windows, repeat end date, moon filters, conditions,
max occurrences) are applied once, around the per-kind rule.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Union

from polycal.core.types import (
    CalendarDefinition,
    DateComponents,
    MoonCondition,
    NoteSchedule,
    RandomOccurrenceCache,
)
from polycal.engines.calendar import CalendarArithmetic, in_day_range
from polycal.engines.computed import ComputedDateResolver
from polycal.engines.conditions import matches_conditions
from polycal.engines.moon import MoonPhaseCalculator
from polycal.engines.seeded import SeededRandomGenerator, needs_random_regeneration

LOG = logging.getLogger(__name__)

DEFAULT_MAX_COUNT = 100
SCAN_LIMIT = 10_000

# kinds that describe a state of the date rather than discrete starts
_STATE_KINDS = frozenset({"range", "moon"})


def range_bit_matches(bit, value: int) -> bool:
    """None matches anything, a scalar matches exactly, (min, max) inclusively."""
    if bit is None:
        return True
    if isinstance(bit, (tuple, list)):
        lo = bit[0] if len(bit) > 0 else None
        hi = bit[1] if len(bit) > 1 else None
        return (lo is None or value >= lo) and (hi is None or value <= hi)
    return value == bit


def moon_condition_matches(moons: MoonPhaseCalculator, cond: MoonCondition, d: DateComponents) -> bool:
    if not (0 <= cond.moon_index < len(moons.moons)):
        return False
    pos = moons.position(cond.moon_index, d)
    s, e = cond.phase_start, cond.phase_end
    if s <= e:
        return s <= pos <= e
    return pos >= s or pos <= e


Matcher = Callable[[NoteSchedule, DateComponents, Optional[RandomOccurrenceCache]], bool]
Starts = Callable[[NoteSchedule, int, int, Optional[RandomOccurrenceCache]], Iterator[int]]


class RecurrenceEngine:
    """
    Recurrence matching for one calendar.

    `linked` maps note ids to the schedules that linked events refer to.
    Results depend only on the calendar, the schedule, the queried dates and
    the optional random-occurrence cache.
    """
    def __init__(
        self,
        calendar: Union[CalendarDefinition, CalendarArithmetic],
        linked: Optional[Mapping[str, NoteSchedule]] = None,
    ):
        self.arith = calendar if isinstance(calendar, CalendarArithmetic) else CalendarArithmetic(calendar)
        self.moons = MoonPhaseCalculator(self.arith)
        self.random = SeededRandomGenerator(self.arith)
        self.computed = ComputedDateResolver(self.arith, self.moons)
        self.linked: Dict[str, NoteSchedule] = dict(linked or {})

        self._kinds: Dict[str, tuple[Matcher, Starts]] = {
            "never": (self._is_never, self._starts_never),
            "daily": (self._is_stride, self._starts_stride),
            "weekly": (self._is_stride, self._starts_stride),
            "monthly": (self._is_monthly, self._starts_monthly),
            "yearly": (self._is_yearly, self._starts_yearly),
            "weekOfMonth": (self._is_week_of_month, self._starts_week_of_month),
            "seasonal": (self._is_seasonal, self._starts_seasonal),
            "range": (self._is_range, self._starts_range),
            "random": (self._is_random, self._starts_random),
            "moon": (self._is_moon, self._starts_scan),
            "computed": (self._is_computed, self._starts_computed),
        }

    # ---------------------------------------------------------
    # Shared helpers
    # ---------------------------------------------------------

    @staticmethod
    def _interval(s: NoteSchedule) -> int:
        try:
            return max(int(s.repeat_interval or 1), 1)
        except (TypeError, ValueError):
            return 1

    def _stride(self, s: NoteSchedule) -> int:
        iv = self._interval(s)
        return iv * self.arith.week_length if s.repeat == "weekly" else iv

    def _duration(self, s: NoteSchedule) -> int:
        if s.end_date is None:
            return 0
        return max(self.arith.days_between(s.start_date.date_only(), s.end_date.date_only()), 0)

    def _is_state(self, s: NoteSchedule) -> bool:
        if s.repeat in _STATE_KINDS:
            return True
        return s.repeat == "seasonal" and s.seasonal is not None and s.seasonal.trigger == "entire"

    def _day(self, n: int) -> DateComponents:
        return self.arith.from_days(n)

    # ---------------------------------------------------------
    # Per-kind matchers (d is date-only and not before the start)
    # ---------------------------------------------------------

    def _is_never(self, s, d, cache) -> bool:
        return self.arith.same_day(s.start_date, d)

    def _is_stride(self, s, d, cache) -> bool:
        return self.arith.days_between(s.start_date, d) % self._stride(s) == 0

    def _is_monthly(self, s, d, cache) -> bool:
        a = self.arith
        if a.months_between(s.start_date, d) % self._interval(s) != 0:
            return False
        return d.day_of_month == a.clamp_day(d.year, d.month, s.start_date.day_of_month).day_of_month

    def _is_yearly(self, s, d, cache) -> bool:
        a = self.arith
        start = s.start_date
        if (d.year - start.year) % self._interval(s) != 0 or d.month != start.month:
            return False
        return d.day_of_month == a.clamp_day(d.year, d.month, start.day_of_month).day_of_month

    def _week_of_month_target(self, s: NoteSchedule):
        a = self.arith
        wd = s.weekday if s.weekday is not None else a.weekday(s.start_date)
        wn = s.week_number if s.week_number is not None else a.weekday_ordinal_in_month(s.start_date)
        return wd, wn

    def _week_of_month_day(self, s: NoteSchedule, year: int, month: int) -> Optional[int]:
        wd, wn = self._week_of_month_target(s)
        days = self.arith.weekday_occurrences(year, month, wd)
        if wn > 0 and wn <= len(days):
            return days[wn - 1]
        if wn < 0 and -wn <= len(days):
            return days[wn]
        return None

    def _is_week_of_month(self, s, d, cache) -> bool:
        if self.arith.months_between(s.start_date, d) % self._interval(s) != 0:
            return False
        return self._week_of_month_day(s, d.year, d.month) == d.day_of_month

    def _is_seasonal(self, s, d, cache) -> bool:
        cfg = s.seasonal
        if cfg is None:
            return False
        a = self.arith
        bounds = a.season_bounds(cfg.season_index, d.year)
        if bounds is None:
            return False
        b0, b1 = bounds
        doy = a.day_of_year(d)
        wraps = b0 > b1
        instance_year = d.year - 1 if wraps and doy <= b1 else d.year
        if (instance_year - s.start_date.year) % self._interval(s) != 0:
            return False
        if cfg.trigger == "firstDay":
            return doy == b0
        if cfg.trigger == "lastDay":
            return doy == b1
        if cfg.trigger == "entire":
            return in_day_range(doy, b0, b1)
        LOG.debug("Unknown seasonal trigger %r", cfg.trigger)
        return False

    def _is_range(self, s, d, cache) -> bool:
        rp = s.range_pattern
        if rp is None:
            return False
        return (
            range_bit_matches(rp.year, d.year)
            and range_bit_matches(rp.month, d.month)
            and range_bit_matches(rp.day, d.day_of_month + 1)
        )

    def _is_random(self, s, d, cache) -> bool:
        cfg = s.random
        if cfg is None or cfg.probability <= 0:
            return False
        if not self.random.is_candidate(s, cfg, d):
            return False
        if cache is not None and not needs_random_regeneration(cache) and cache.year == d.year:
            return any(o.key == d.key for o in cache.occurrences)
        return self.random.roll(cfg, d)

    def _is_moon(self, s, d, cache) -> bool:
        if not s.moon_conditions:
            return False
        return all(moon_condition_matches(self.moons, c, d) for c in s.moon_conditions)

    def _is_computed(self, s, d, cache) -> bool:
        iv = self._interval(s)
        for y in (d.year, d.year - 1):
            if (y - s.start_date.year) % iv != 0:
                continue
            r = self.computed.resolve(s.computed, y)
            if r is not None and self.arith.same_day(r, d):
                return True
        return False

    # ---------------------------------------------------------
    # Matching
    # ---------------------------------------------------------

    def _matches_kind(self, s: NoteSchedule, d: DateComponents, cache) -> bool:
        entry = self._kinds.get(s.repeat)
        if entry is None:
            LOG.debug("Unknown repeat kind %r", s.repeat)
            return False
        is_start = entry[0]
        a = self.arith
        off = a.days_between(s.start_date, d)
        dur = self._duration(s)

        if dur and off <= dur:
            return True
        if dur == 0 or self._is_state(s):
            return is_start(s, d, cache)
        if s.repeat in ("daily", "weekly"):
            return off % self._stride(s) <= dur

        # a multi-day window: some occurrence start lies in [d - dur, d]
        start_n = a.to_days(s.start_date)
        n = a.to_days(d)
        for k in range(dur + 1):
            if n - k < start_n:
                break
            if is_start(s, self._day(n - k), cache):
                return True
        return False

    def _match(
        self,
        s: Optional[NoteSchedule],
        d: Optional[DateComponents],
        cache: Optional[RandomOccurrenceCache],
        check_max: bool = True,
        seen: FrozenSet[str] = frozenset(),
    ) -> bool:
        if s is None or d is None:
            return False
        a = self.arith
        d = d.date_only()
        if s.linked_event is not None:
            return self._match_linked(s, d, seen)
        if a.compare(d, s.start_date.date_only()) < 0:
            return False
        if s.repeat_end_date is not None and a.compare(d, s.repeat_end_date.date_only()) > 0:
            return False
        if not self._matches_kind(s, d, cache):
            return False
        if s.moon_conditions and s.repeat != "moon" and not self._is_moon(s, d, cache):
            return False
        if not matches_conditions(a, s.conditions, d):
            return False
        if check_max and s.max_occurrences and s.max_occurrences > 0:
            if self.count_occurrences_up_to(s, d, cache) > s.max_occurrences:
                return False
        return True

    def is_recurring_match(
        self,
        schedule: Optional[NoteSchedule],
        date: Optional[DateComponents],
        cache: Optional[RandomOccurrenceCache] = None,
    ) -> bool:
        """Whether the schedule is active on `date`. Never raises on bad schedules."""
        return self._match(schedule, date, cache)

    # ---------------------------------------------------------
    # Linked events
    # ---------------------------------------------------------

    def _linked_target(self, s: NoteSchedule, seen: FrozenSet[str]) -> Optional[NoteSchedule]:
        note_id = s.linked_event.note_id
        if note_id in seen:
            LOG.debug("Linked event cycle through %r", note_id)
            return None
        target = self.linked.get(note_id)
        if target is None:
            LOG.debug("Linked note %r not found", note_id)
        return target

    def _match_linked(self, s: NoteSchedule, d: DateComponents, seen: FrozenSet[str]) -> bool:
        target = self._linked_target(s, seen)
        if target is None:
            return False
        a = self.arith
        if s.repeat_end_date is not None and a.compare(d, s.repeat_end_date.date_only()) > 0:
            return False
        base = a.add_days(d, -s.linked_event.offset)
        if not self._match(target, base, None, seen=seen | {s.linked_event.note_id}):
            return False
        return matches_conditions(a, s.conditions, d)

    def _linked_occurrences(
        self,
        s: NoteSchedule,
        lo: int,
        hi: int,
        max_count: Optional[int],
        seen: FrozenSet[str] = frozenset(),
    ) -> List[DateComponents]:
        target = self._linked_target(s, seen)
        if target is None:
            return []
        a = self.arith
        if s.repeat_end_date is not None:
            hi = min(hi, a.to_days(s.repeat_end_date.date_only()))
        if lo > hi:
            return []
        off = s.linked_event.offset
        if target.linked_event is not None:
            base = self._linked_occurrences(target, lo - off, hi - off, None, seen | {s.linked_event.note_id})
        else:
            base = self.occurrences_in_range(target, self._day(lo - off), self._day(hi - off), max_count=None)
        out = []
        for b in base:
            d = a.add_days(b, off)
            if matches_conditions(a, s.conditions, d):
                out.append(d)
                if max_count and len(out) >= max_count:
                    break
        return out

    # ---------------------------------------------------------
    # Candidate starts (linear day numbers, ascending, within [lo, hi])
    # ---------------------------------------------------------

    def _starts_never(self, s, lo, hi, cache) -> Iterator[int]:
        n = self.arith.to_days(s.start_date)
        if lo <= n <= hi:
            yield n

    def _starts_stride(self, s, lo, hi, cache) -> Iterator[int]:
        stride = self._stride(s)
        sd = self.arith.to_days(s.start_date)
        k = max(0, -(-(lo - sd) // stride))
        n = sd + k * stride
        while n <= hi:
            yield n
            n += stride

    def _month_steps(self, s: NoteSchedule, lo: int) -> Iterator[tuple[int, int]]:
        """(year, month) of every interval-th month from the one containing max(lo, start)."""
        a = self.arith
        start = s.start_date
        iv = self._interval(s)
        mc = a.month_count
        lo_date = self._day(max(lo, a.to_days(start)))
        k = max(0, a.months_between(start, lo_date) // iv)
        while True:
            total = start.year * mc + start.month + k * iv
            yield total // mc, total % mc
            k += 1

    def _starts_monthly(self, s, lo, hi, cache) -> Iterator[int]:
        a = self.arith
        for y, m in self._month_steps(s, lo):
            n = a.to_days(a.clamp_day(y, m, s.start_date.day_of_month))
            if n > hi:
                return
            if n >= lo:
                yield n

    def _starts_yearly(self, s, lo, hi, cache) -> Iterator[int]:
        a = self.arith
        start = s.start_date
        iv = self._interval(s)
        lo_date = self._day(max(lo, a.to_days(start)))
        y = start.year + max(0, (lo_date.year - start.year) // iv) * iv
        while True:
            n = a.to_days(a.clamp_day(y, start.month, start.day_of_month))
            if n > hi:
                return
            if n >= lo:
                yield n
            y += iv

    def _starts_week_of_month(self, s, lo, hi, cache) -> Iterator[int]:
        a = self.arith
        for y, m in self._month_steps(s, lo):
            if a.to_days(DateComponents(y, m, 0)) > hi:
                return
            dom = self._week_of_month_day(s, y, m)
            if dom is None:
                continue
            n = a.to_days(DateComponents(y, m, dom))
            if lo <= n <= hi:
                yield n

    def _starts_seasonal(self, s, lo, hi, cache) -> Iterator[int]:
        cfg = s.seasonal
        if cfg is None:
            return
        a = self.arith
        iv = self._interval(s)
        for y in range(self._day(lo).year - 1, self._day(hi).year + 1):
            if (y - s.start_date.year) % iv != 0:
                continue
            bounds = a.season_bounds(cfg.season_index, y)
            if bounds is None:
                continue
            b0, b1 = bounds
            first = a.days_before_year(y) + b0
            last = a.days_before_year(y + 1 if b0 > b1 else y) + b1
            if cfg.trigger == "firstDay":
                picks = [first]
            elif cfg.trigger == "lastDay":
                picks = [last]
            else:
                picks = range(max(first, lo), min(last, hi) + 1)
            for n in picks:
                if lo <= n <= hi:
                    yield n

    def _starts_range(self, s, lo, hi, cache) -> Iterator[int]:
        rp = s.range_pattern
        if rp is None:
            return
        a = self.arith
        lo_date, hi_date = self._day(lo), self._day(hi)
        for y in range(lo_date.year, hi_date.year + 1):
            if not range_bit_matches(rp.year, y):
                continue
            for m in range(a.month_count):
                if not range_bit_matches(rp.month, m):
                    continue
                base = a.to_days(DateComponents(y, m, 0))
                if base > hi:
                    return
                for dom in range(a.days_in_month(m, y)):
                    n = base + dom
                    if lo <= n <= hi and range_bit_matches(rp.day, dom + 1):
                        yield n

    def _starts_random(self, s, lo, hi, cache) -> Iterator[int]:
        a = self.arith
        for y in range(self._day(lo).year, self._day(hi).year + 1):
            if cache is not None and not needs_random_regeneration(cache) and cache.year == y:
                occ = cache.occurrences
            else:
                occ = self.random.generate(s, y)
            for o in occ:
                n = a.to_days(o)
                if lo <= n <= hi:
                    yield n

    def _starts_scan(self, s, lo, hi, cache) -> Iterator[int]:
        yield from range(lo, hi + 1)

    def _starts_computed(self, s, lo, hi, cache) -> Iterator[int]:
        a = self.arith
        iv = self._interval(s)
        found = set()
        for y in range(self._day(lo).year - 1, self._day(hi).year + 1):
            if (y - s.start_date.year) % iv != 0:
                continue
            r = self.computed.resolve(s.computed, y)
            if r is None:
                continue
            n = a.to_days(r)
            if lo <= n <= hi:
                found.add(n)
        yield from sorted(found)

    def _starts(self, s: NoteSchedule, lo: int, hi: int, cache) -> Iterator[int]:
        entry = self._kinds.get(s.repeat)
        if entry is None:
            LOG.debug("Unknown repeat kind %r", s.repeat)
            return iter(())
        return entry[1](s, lo, hi, cache)

    # ---------------------------------------------------------
    # Enumeration
    # ---------------------------------------------------------

    def occurrences_in_range(
        self,
        schedule: Optional[NoteSchedule],
        start: Optional[DateComponents],
        end: Optional[DateComponents],
        max_count: Optional[int] = DEFAULT_MAX_COUNT,
        cache: Optional[RandomOccurrenceCache] = None,
    ) -> List[DateComponents]:
        """Dates in [start, end] on which the schedule is active, ascending and unique."""
        if schedule is None or start is None or end is None:
            return []
        s = schedule
        a = self.arith
        lo, hi = a.to_days(start.date_only()), a.to_days(end.date_only())
        if s.linked_event is not None:
            return self._linked_occurrences(s, lo, hi, max_count)
        if s.repeat not in self._kinds:
            LOG.debug("Unknown repeat kind %r", s.repeat)
            return []

        lo = max(lo, a.to_days(s.start_date.date_only()))
        if s.repeat_end_date is not None:
            hi = min(hi, a.to_days(s.repeat_end_date.date_only()))
        if lo > hi:
            return []

        span = self._duration(s)
        dur = 0 if self._is_state(s) else span
        starts = self._starts(s, lo - dur, hi, cache)
        if span:
            # state kinds walk the first span day by day, the rest widen one start
            sd = a.to_days(s.start_date)
            first_span = range(sd, sd + (1 if dur else span + 1))
            starts = _chain_ascending(first_span, starts)

        capped = bool(s.max_occurrences and s.max_occurrences > 0)
        out: List[DateComponents] = []
        last = lo - 1
        steps = 0
        for n0 in starts:
            for n in range(max(n0, last + 1), min(n0 + dur, hi) + 1):
                d = self._day(n)
                last = n
                if not self._match(s, d, cache, check_max=False):
                    continue
                if capped and self.count_occurrences_up_to(s, d, cache) > s.max_occurrences:
                    return out
                out.append(d)
                if max_count and len(out) >= max_count:
                    return out
            steps += 1
            if steps > SCAN_LIMIT:
                LOG.debug("Scan limit reached enumerating %r schedule", s.repeat)
                break
        return out

    def count_occurrences_up_to(
        self,
        schedule: NoteSchedule,
        date: DateComponents,
        cache: Optional[RandomOccurrenceCache] = None,
    ) -> int:
        """1-based occurrence number of the latest occurrence start on or before `date`."""
        s = schedule
        a = self.arith
        d = date.date_only()
        start = s.start_date.date_only()
        if a.compare(d, start) < 0:
            return 0

        plain = not s.conditions and not s.moon_conditions
        if plain and s.repeat == "never":
            return 1
        if plain and s.repeat in ("daily", "weekly"):
            return a.days_between(start, d) // self._stride(s) + 1
        if plain and s.repeat == "monthly":
            iv = self._interval(s)
            mb = a.months_between(start, d)
            k = mb // iv
            if mb % iv == 0 and d.day_of_month < a.clamp_day(d.year, d.month, start.day_of_month).day_of_month:
                return k
            return k + 1
        if plain and s.repeat == "yearly":
            iv = self._interval(s)
            yb = d.year - start.year
            k = yb // iv
            anniversary = a.clamp_day(d.year, start.month, start.day_of_month)
            if yb % iv == 0 and a.compare(d, anniversary) < 0:
                return k
            return k + 1

        unlimited = replace(s, max_occurrences=None)
        lo, hi = a.to_days(start), a.to_days(d)
        count = 0
        for n in self._starts(unlimited, lo, hi, cache):
            if self._match(unlimited, self._day(n), cache, check_max=False):
                count += 1
        return count

    def describe(self, schedule: NoteSchedule) -> str:
        from polycal.engines.describe import describe_schedule
        return describe_schedule(schedule, self.arith)


def _chain_ascending(first: Iterator[int], rest: Iterator[int]) -> Iterator[int]:
    yield from first
    yield from rest
