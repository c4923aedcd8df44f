"""
polycal.engines.seeded
----------------------
Deterministic pseudo-random occurrences for the "random" repeat kind.

Values depend only on (seed, year, unit index); nothing here reads a clock or
any other ambient state.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Optional

from polycal.core.types import DateComponents, NoteSchedule, RandomConfig, RandomOccurrenceCache
from polycal.engines.calendar import CalendarArithmetic

_LCG_A = 1103515245
_LCG_C = 12345
_MASK32 = 0xFFFFFFFF
_MOD31 = 0x7FFFFFFF


def seeded_random(seed: int, year: int, unit: int) -> float:
    """Value in [0, 100) with two decimals."""
    h = abs(int(seed)) or 1
    h = ((h * _LCG_A + _LCG_C) & _MASK32) % _MOD31
    h = ((h + year * 31337) & _MASK32) % _MOD31
    h = ((h * _LCG_A + unit * 7919) & _MASK32) % _MOD31
    return (h % 10000) / 100


def needs_random_regeneration(cache: Optional[RandomOccurrenceCache], current_year: Optional[int] = None) -> bool:
    if cache is None or cache.year is None or cache.occurrences is None:
        return True
    return current_year is not None and cache.year != current_year


class SeededRandomGenerator:
    def __init__(self, arith: CalendarArithmetic):
        self.arith = arith

    def is_candidate(self, schedule: NoteSchedule, cfg: RandomConfig, d: DateComponents) -> bool:
        """Whether `d` is one of the units on which a coin is flipped."""
        a = self.arith
        start = schedule.start_date
        if cfg.check_interval == "weekly":
            return a.days_between(start, d) % a.week_length == 0
        if cfg.check_interval == "monthly":
            return d.day_of_month == a.clamp_day(d.year, d.month, start.day_of_month).day_of_month
        return True

    def roll(self, cfg: RandomConfig, d: DateComponents) -> bool:
        if cfg.probability >= 100:
            return True
        if cfg.probability <= 0:
            return False
        unit = self.arith.day_of_year(d) + 1
        return seeded_random(cfg.seed, d.year, unit) < cfg.probability

    def candidates(self, schedule: NoteSchedule, year: int) -> Iterator[DateComponents]:
        cfg = schedule.random
        if cfg is None:
            return
        a = self.arith
        start = schedule.start_date.date_only()
        first = max(a.days_before_year(year), a.to_days(start))
        last = a.days_before_year(year + 1) - 1
        if schedule.repeat_end_date is not None:
            last = min(last, a.to_days(schedule.repeat_end_date))
        if first > last:
            return

        if cfg.check_interval == "monthly":
            for m in range(a.month_count):
                c = a.clamp_day(year, m, start.day_of_month)
                if first <= a.to_days(c) <= last:
                    yield c
            return

        step = a.week_length if cfg.check_interval == "weekly" else 1
        s = a.to_days(start)
        n = s + (-(-(first - s) // step)) * step
        while n <= last:
            yield a.from_days(n)
            n += step

    def generate(self, schedule: NoteSchedule, year: int) -> List[DateComponents]:
        """Chronological occurrences of a random schedule within one year."""
        cfg = schedule.random
        if cfg is None or cfg.probability <= 0:
            return []
        return [d for d in self.candidates(schedule, year) if self.roll(cfg, d)]

    def build_cache(self, schedule: NoteSchedule, year: int, generated_at: Any = None) -> RandomOccurrenceCache:
        return RandomOccurrenceCache(
            year=year,
            generated_at=generated_at,
            occurrences=tuple(self.generate(schedule, year)),
        )


def generate_random_occurrences(arith: CalendarArithmetic, schedule: NoteSchedule, target_year: int) -> List[DateComponents]:
    return SeededRandomGenerator(arith).generate(schedule, target_year)
