"""
polycal.engines.leap
--------------------
Leap-year rules evaluated as a vote over interval clauses.

A pattern such as "400,!100,4" parses into three clauses. Every clause whose
interval divides the (offset) year casts a vote: +1 for a plain clause, -1 for
a `!` clause. The year is a leap year when the net vote is positive.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Dict, List, Literal, Optional, Sequence

from polycal.core.types import LeapInterval, LeapYearConfig

LOG = logging.getLogger(__name__)

Vote = Literal["allow", "deny", "abstain"]

GREGORIAN_PATTERN = "400,!100,4"

# Longest stretch of years sampled for the mean leap fraction.
_MEAN_SAMPLE = 10_000

_DIGITS_RE = re.compile(r"\d+")


def parse_interval(token: Any, offset: int = 0) -> LeapInterval:
    """
    Parse one clause. `!` marks a subtracting clause, `+` discards the
    caller's offset. Anything unparseable degrades to an interval of 1.
    """
    if isinstance(token, (int, float)) and not isinstance(token, bool):
        if not math.isfinite(token):
            return LeapInterval(1, False, offset)
        return LeapInterval(max(int(token), 1), False, offset)
    if not isinstance(token, str):
        return LeapInterval(1, False, offset)

    s = token.strip()
    subtracts = s.startswith("!")
    if subtracts:
        s = s[1:].lstrip()
    if s.startswith("+"):
        offset = 0
        s = s[1:].lstrip()

    m = _DIGITS_RE.match(s)
    value = int(m.group(0)) if m else 1
    return LeapInterval(max(value, 1), subtracts, offset)


def parse_pattern(pattern: Any, offset: int = 0) -> List[LeapInterval]:
    if not isinstance(pattern, str) or not pattern.strip():
        return []
    segments = (seg.strip() for seg in pattern.split(","))
    return [parse_interval(seg, offset) for seg in segments if seg]


def vote_on_year(interval: LeapInterval, year: int, year_zero_exists: bool = True) -> Vote:
    mod = (year - interval.offset) % interval.interval
    if not year_zero_exists and year < 0:
        mod += 1
    mod %= interval.interval
    if mod != 0:
        return "abstain"
    return "deny" if interval.subtracts else "allow"


def intersects_year(intervals: Sequence[LeapInterval], year: int, year_zero_exists: bool = True) -> bool:
    net = 0
    for iv in intervals:
        vote = vote_on_year(iv, year, year_zero_exists)
        if vote == "allow":
            net += 1
        elif vote == "deny":
            net -= 1
    return net > 0


def rule_intervals(config: Optional[LeapYearConfig]) -> List[LeapInterval]:
    """Clauses equivalent to a leap rule. Rules that never leap give []."""
    if config is None:
        return []
    rule = config.rule
    if rule == "none":
        return []
    if rule == "simple":
        if config.interval is None or config.interval <= 0:
            return []
        return [LeapInterval(int(config.interval), False, config.start or 0)]
    if rule == "gregorian":
        return parse_pattern(GREGORIAN_PATTERN, 0)
    if rule == "custom":
        return parse_pattern(config.pattern, config.start or 0)
    LOG.debug("Unknown leap rule %r treated as no leap years", rule)
    return []


def is_leap_year(config: Optional[LeapYearConfig], year: int, year_zero_exists: bool = True) -> bool:
    intervals = rule_intervals(config)
    if not intervals:
        return False
    return intersects_year(intervals, year, year_zero_exists)


def describe_intervals(intervals: Sequence[LeapInterval]) -> str:
    if not intervals:
        return "No leap years"
    parts: List[str] = []
    for iv in sorted(intervals, key=lambda x: x.interval):
        unit = "year" if iv.interval == 1 else f"{iv.interval} years"
        if not parts:
            lead = "Every" if not iv.subtracts else "Never, except every"
            parts.append(f"{lead} {unit}")
        elif iv.subtracts:
            parts.append(f"except every {unit}")
        else:
            parts.append(f"unless every {unit}")
    return ", ".join(parts)


def leap_year_description(config: Optional[LeapYearConfig]) -> str:
    text = describe_intervals(rule_intervals(config))
    if config is not None and config.rule == "simple" and config.start:
        text += f" (starting from year {config.start})"
    return text


class LeapYearEngine:
    """
    A leap rule bound to a calendar's year-zero convention.

    Leap status is periodic in the year with period lcm(intervals) on each side
    of year zero. Counting keeps one prefix table per side, grown only as far
    as the queried years reach, so long periods cost nothing until used.
    """
    def __init__(self, config: Optional[LeapYearConfig], year_zero_exists: bool = True):
        self.config = config
        self.year_zero_exists = year_zero_exists
        self.intervals = tuple(rule_intervals(config))
        self.period = math.lcm(*(iv.interval for iv in self.intervals)) if self.intervals else 1

        # side -> counts over the first k years away from zero (0, 1, ... or -1, -2, ...)
        self._tables: Dict[int, List[int]] = {1: [0], -1: [0]}

        sample = min(self.period, _MEAN_SAMPLE)
        self.leap_fraction = self.count_leap_years(0, sample) / sample if self.intervals else 0.0
        if self.period > _MEAN_SAMPLE:
            LOG.debug("Leap period %d sampled over %d years for the mean", self.period, sample)

    def is_leap(self, year: int) -> bool:
        if not self.intervals:
            return False
        return intersects_year(self.intervals, year, self.year_zero_exists)

    def _table(self, side: int, k: int) -> List[int]:
        table = self._tables[side]
        while len(table) <= k:
            n = len(table) - 1
            year = n if side > 0 else -(n + 1)
            table.append(table[-1] + (1 if self.is_leap(year) else 0))
        return table

    def _from_zero(self, side: int, k: int) -> int:
        """Leap years among the first k years on one side of zero."""
        P = self.period
        q, r = divmod(k, P)
        if q:
            table = self._table(side, P)
            return q * table[P] + table[r]
        return self._table(side, r)[r]

    def count_leap_years(self, start: int, stop: int) -> int:
        """Leap years in [start, stop); negated when stop < start."""
        if stop < start:
            return -self.count_leap_years(stop, start)
        if not self.intervals or start == stop:
            return 0

        total = 0
        if stop > 0:
            total += self._from_zero(1, stop) - self._from_zero(1, max(start, 0))
        if start < 0:
            total += self._from_zero(-1, -start) - self._from_zero(-1, -min(stop, 0))
        return total

    def description(self) -> str:
        return leap_year_description(self.config)
