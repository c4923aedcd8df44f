"""
polycal.engines.computed
------------------------
Dates computed per year from a named anchor followed by a chain of
transforms, e.g. "first full moon after the spring equinox".

Anchors come from the calendar's seasons (season start days) or its daylight
solstices; equinoxes without a matching season fall back to the midpoint
between the solstices.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from polycal.core.types import ComputedConfig, ComputedStep, DateComponents
from polycal.engines.calendar import CalendarArithmetic
from polycal.engines.moon import MoonPhaseCalculator

LOG = logging.getLogger(__name__)

ANCHORS = ("springEquinox", "summerSolstice", "autumnEquinox", "winterSolstice")

# season-name keywords and the positional fallback index per anchor
_SEASON_KEYS = {
    "springEquinox": (("spring",), 0),
    "summerSolstice": (("summer",), 1),
    "autumnEquinox": (("autumn", "fall"), 2),
    "winterSolstice": (("winter",), 3),
}

# firstAfter searches at most this many days past the current point
FIRST_AFTER_LIMIT = 1000


def _int_param(params: Dict[str, Any], key: str, default: int = 0) -> int:
    try:
        return int(params.get(key, default))
    except (TypeError, ValueError):
        return default


class ComputedDateResolver:
    def __init__(self, arith: CalendarArithmetic, moons: Optional[MoonPhaseCalculator] = None):
        self.arith = arith
        self.moons = moons if moons is not None else MoonPhaseCalculator(arith)

    # ---------------------------------------------------------
    # Anchors
    # ---------------------------------------------------------

    def _season_start(self, anchor: str, year: int) -> Optional[int]:
        seasons = self.arith.cal.seasons
        if not seasons:
            return None
        keys, fallback = _SEASON_KEYS[anchor]
        index = None
        for i, s in enumerate(seasons):
            name = s.name.lower()
            if any(k in name for k in keys):
                index = i
                break
        if index is None and len(seasons) >= 4:
            index = fallback
        if index is None:
            return None
        bounds = self.arith.season_bounds(index, year)
        return bounds[0] if bounds is not None else None

    def _daylight_day(self, anchor: str, year: int) -> Optional[int]:
        dl = self.arith.cal.daylight
        if dl is None:
            return None
        if anchor == "summerSolstice":
            return dl.summer_solstice
        if anchor == "winterSolstice":
            return dl.winter_solstice
        total = self.arith.days_in_year(year)
        if total <= 0:
            return None
        if anchor == "springEquinox":
            a, b = dl.winter_solstice, dl.summer_solstice
        else:
            a, b = dl.summer_solstice, dl.winter_solstice
        return (a + ((b - a) % total) // 2) % total

    def anchor_date(self, anchor: Optional[str], year: int) -> Optional[DateComponents]:
        if anchor not in _SEASON_KEYS:
            LOG.debug("Unknown computed anchor %r", anchor)
            return None
        if anchor in ("summerSolstice", "winterSolstice"):
            doy = self._daylight_day(anchor, year)
            if doy is None:
                doy = self._season_start(anchor, year)
        else:
            doy = self._season_start(anchor, year)
            if doy is None:
                doy = self._daylight_day(anchor, year)
        if doy is None:
            LOG.debug("Anchor %s unresolved in calendar '%s'", anchor, self.arith.cal.name)
            return None
        return self.arith.date_from_day_of_year(year, doy)

    # ---------------------------------------------------------
    # Transforms
    # ---------------------------------------------------------

    def _first_after_test(self, step: ComputedStep) -> Optional[Callable[[DateComponents], bool]]:
        p = step.params
        a, mc = self.arith, self.moons
        moon = _int_param(p, "moon", _int_param(p, "moonIndex", 0))
        cond = step.condition
        if cond == "weekday":
            wd = _int_param(p, "weekday")
            return lambda d: a.weekday(d) == wd
        if cond == "fullMoon":
            return lambda d: mc.is_moon_full(moon, d)
        if cond == "newMoon":
            return lambda d: mc.is_new_moon(moon, d)
        if cond == "moonPhase":
            want = p.get("phase")

            def test(d: DateComponents) -> bool:
                r = mc.phase(moon, d)
                if r is None:
                    return False
                return r.phase_index == want or r.name == want

            return test
        if cond == "dayOfMonth":
            day = _int_param(p, "day", 1)
            return lambda d: d.day_of_month + 1 == day
        LOG.debug("Unknown firstAfter condition %r", cond)
        return None

    def apply_step(self, step: ComputedStep, current: DateComponents) -> Optional[DateComponents]:
        a = self.arith
        if step.type == "daysAfter":
            return a.add_days(current, _int_param(step.params, "days"))
        if step.type == "weekdayOnOrAfter":
            wd = _int_param(step.params, "weekday")
            for i in range(a.week_length):
                cand = a.add_days(current, i)
                if a.weekday(cand) == wd:
                    return cand
            return None
        if step.type == "firstAfter":
            test = self._first_after_test(step)
            if test is None:
                return None
            start = a.to_days(current)
            for i in range(1, FIRST_AFTER_LIMIT + 1):
                cand = a.from_days(start + i)
                if test(cand):
                    return cand
            LOG.debug("firstAfter %r found nothing within %d days", step.condition, FIRST_AFTER_LIMIT)
            return None
        LOG.debug("Unknown computed step %r", step.type)
        return None

    def resolve(self, config: Optional[ComputedConfig], year: int) -> Optional[DateComponents]:
        """The computed date for one year, or None when the chain cannot resolve."""
        if config is None:
            return None
        override = config.year_overrides.get(year)
        if override is not None:
            month, day = override
            return DateComponents(year, month, day - 1)
        if not config.chain:
            return None

        current: Optional[DateComponents] = None
        for step in config.chain:
            if step.type == "anchor":
                current = self.anchor_date(step.value, year)
            elif current is not None:
                current = self.apply_step(step, current)
            if current is None:
                return None
        return current


def resolve_computed_date(arith: CalendarArithmetic, config: Optional[ComputedConfig], year: int) -> Optional[DateComponents]:
    return ComputedDateResolver(arith).resolve(config, year)
