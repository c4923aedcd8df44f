"""
polycal.engines.moon
--------------------
Moon cycle position and named phases.

Phase days are distributed FC-style for eight phases: new and full moon each
get floor(L/8) days, the six secondary phases share the rest with the
remainder going to the earliest of them. Other phase counts split L evenly.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Union

from polycal.core.types import DateComponents, Moon, MoonPhase, MoonPhaseResult
from polycal.engines.calendar import CalendarArithmetic

LOG = logging.getLogger(__name__)

DEFAULT_PHASES = (
    MoonPhase("New Moon"),
    MoonPhase("Waxing Crescent"),
    MoonPhase("First Quarter"),
    MoonPhase("Waxing Gibbous"),
    MoonPhase("Full Moon"),
    MoonPhase("Waning Gibbous"),
    MoonPhase("Last Quarter"),
    MoonPhase("Waning Crescent"),
)

FULL_START, FULL_END = 0.5, 0.625
NEW_END = 0.125

MoonRef = Union[int, Moon]


def _usable(moon: Optional[Moon]) -> bool:
    return (
        moon is not None
        and math.isfinite(moon.cycle_length)
        and moon.cycle_length > 0
        and math.isfinite(moon.cycle_day_adjust)
    )


def phase_distribution(cycle_length: float, phase_count: int = 8) -> List[int]:
    """Whole days per phase, summing to ceil(cycle_length)."""
    if phase_count <= 0 or not math.isfinite(cycle_length) or cycle_length <= 0:
        return []
    total = math.ceil(cycle_length)

    if phase_count != 8:
        base, rem = divmod(total, phase_count)
        return [base + (1 if i < rem else 0) for i in range(phase_count)]

    primary = total // 8
    secondary_total = total - 2 * primary
    base, rem = divmod(secondary_total, 6)
    out = [primary] * 8
    for k, i in enumerate((1, 2, 3, 5, 6, 7)):
        out[i] = base + (1 if k < rem else 0)
    return out


class MoonPhaseCalculator:
    def __init__(self, arith: CalendarArithmetic):
        self.arith = arith
        self.moons = arith.cal.moons

    def _moon(self, moon: MoonRef) -> Optional[Moon]:
        if isinstance(moon, Moon):
            return moon
        if isinstance(moon, int) and 0 <= moon < len(self.moons):
            return self.moons[moon]
        return None

    @staticmethod
    def phases_of(moon: Moon) -> Sequence[MoonPhase]:
        return moon.phases or DEFAULT_PHASES

    # ---------------------------------------------------------
    # Position
    # ---------------------------------------------------------

    def cycle_day(self, moon: MoonRef, d: DateComponents) -> Optional[float]:
        """Days into the cycle, in [0, cycle_length)."""
        m = self._moon(moon)
        if not _usable(m):
            LOG.debug("Moon %r is missing or degenerate", moon)
            return None
        a = self.arith
        since = a.days_between(m.reference_date, d) + a.fraction_of_day(d) - a.fraction_of_day(m.reference_date)
        L = m.cycle_length
        normalized = since % L
        return (normalized + m.cycle_day_adjust) % L

    def position(self, moon: MoonRef, d: DateComponents) -> float:
        m = self._moon(moon)
        day = self.cycle_day(m, d) if m is not None else None
        if day is None:
            return 0.0
        return day / m.cycle_length

    def phase(self, moon: MoonRef, d: DateComponents) -> Optional[MoonPhaseResult]:
        m = self._moon(moon)
        day = self.cycle_day(m, d) if m is not None else None
        if day is None:
            return None
        phases = self.phases_of(m)
        dist = phase_distribution(m.cycle_length, len(phases))
        day_in_cycle = min(int(math.floor(day)), sum(dist) - 1)

        idx, offset = len(dist) - 1, 0
        cum = 0
        for i, n in enumerate(dist):
            if day_in_cycle < cum + n:
                idx, offset = i, day_in_cycle - cum
                break
            cum += n

        p = phases[idx]
        duration = dist[idx]
        third = duration / 3
        if offset < third:
            sub = p.rising or f"Rising {p.name}"
        elif offset >= duration - third:
            sub = p.fading or f"Fading {p.name}"
        else:
            sub = p.name

        return MoonPhaseResult(
            name=p.name,
            sub_phase_name=sub,
            icon=p.icon,
            position=day / m.cycle_length,
            day_in_cycle=day_in_cycle,
            phase_index=idx,
            day_within_phase=offset,
            phase_duration=duration,
        )

    def is_moon_full(self, moon: MoonRef, d: DateComponents) -> bool:
        if not _usable(self._moon(moon)):
            return False
        return FULL_START <= self.position(moon, d) < FULL_END

    def is_new_moon(self, moon: MoonRef, d: DateComponents) -> bool:
        if not _usable(self._moon(moon)):
            return False
        return self.position(moon, d) < NEW_END

    # ---------------------------------------------------------
    # Searches
    # ---------------------------------------------------------

    def next_full_moon(self, moon: MoonRef, d: DateComponents, max_days: Optional[int] = None) -> Optional[DateComponents]:
        """First date strictly after `d` on which the moon is full."""
        m = self._moon(moon)
        if not _usable(m):
            return None
        limit = max_days if max_days is not None else math.ceil(m.cycle_length) + 1
        start = self.arith.to_days(d.date_only())
        for i in range(1, limit + 1):
            cand = self.arith.from_days(start + i)
            if self.is_moon_full(m, cand):
                return cand
        return None

    def _all_full(self, indices: Sequence[int], d: DateComponents) -> bool:
        return all(self.is_moon_full(i, d) for i in indices)

    def _indices(self, moon_indices: Optional[Sequence[int]]) -> List[int]:
        if moon_indices is None:
            return list(range(len(self.moons)))
        return [i for i in moon_indices if 0 <= i < len(self.moons)]

    def next_convergence(
        self,
        d: DateComponents,
        moon_indices: Optional[Sequence[int]] = None,
        max_days: int = 1000,
    ) -> Optional[DateComponents]:
        """First date strictly after `d` on which every listed moon is full."""
        indices = self._indices(moon_indices)
        if not indices:
            return None
        start = self.arith.to_days(d.date_only())
        for i in range(1, max_days + 1):
            cand = self.arith.from_days(start + i)
            if self._all_full(indices, cand):
                return cand
        return None

    def convergences_in_range(
        self,
        start: DateComponents,
        end: DateComponents,
        moon_indices: Optional[Sequence[int]] = None,
    ) -> List[DateComponents]:
        """First day of each run of simultaneous full moons in [start, end]."""
        indices = self._indices(moon_indices)
        if not indices:
            return []
        a = self.arith
        out: List[DateComponents] = []
        prev = False
        for n in range(a.to_days(start.date_only()), a.to_days(end.date_only()) + 1):
            cand = a.from_days(n)
            now = self._all_full(indices, cand)
            if now and not prev:
                out.append(cand)
            prev = now
        return out
