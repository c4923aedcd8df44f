"""English one-line descriptions of schedules."""

from __future__ import annotations

import re
from typing import List, Optional

from polycal.core.types import ComputedConfig, NoteSchedule, RangePattern
from polycal.engines.calendar import CalendarArithmetic

_ORDINALS = {1: "First", 2: "Second", 3: "Third", 4: "Fourth", 5: "Fifth", -1: "Last", -2: "Second-to-last"}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _every(n: int, unit: str) -> str:
    return f"Every {unit}" if n == 1 else f"Every {n} {unit}s"


def _title(camel: Optional[str]) -> str:
    if not camel:
        return "?"
    return " ".join(w.capitalize() for w in _CAMEL_RE.split(camel))


def _weekday_name(arith: Optional[CalendarArithmetic], index: Optional[int]) -> str:
    if arith is not None and index is not None and 0 <= index < arith.weekday_count:
        return arith.cal.weekdays[index]
    return f"weekday {index}"


def _month_name(arith: Optional[CalendarArithmetic], index: int) -> str:
    if arith is not None:
        name = arith.month_name(index)
        if name:
            return name
    return f"month {index + 1}"


def _bit(bit) -> str:
    if bit is None:
        return "any"
    if isinstance(bit, (tuple, list)):
        lo = bit[0] if len(bit) > 0 else None
        hi = bit[1] if len(bit) > 1 else None
        if lo is None and hi is None:
            return "any"
        if lo is None:
            return f"up to {hi}"
        if hi is None:
            return f"from {lo}"
        return f"{lo}-{hi}"
    return str(bit)


def _describe_range(rp: Optional[RangePattern]) -> str:
    if rp is None:
        return "Range: any date"
    month = rp.month
    if isinstance(month, int):
        month = month + 1
    elif isinstance(month, (tuple, list)):
        month = tuple(None if m is None else m + 1 for m in month)
    return f"Range: year {_bit(rp.year)}, month {_bit(month)}, day {_bit(rp.day)}"


def _describe_computed(cfg: Optional[ComputedConfig], arith: Optional[CalendarArithmetic]) -> str:
    if cfg is None or not cfg.chain:
        return "Computed date"
    parts: List[str] = []
    for step in cfg.chain:
        if step.type == "anchor":
            parts.append(_title(step.value))
        elif step.type == "daysAfter":
            parts.append(f"{step.params.get('days', 0)} days after")
        elif step.type == "weekdayOnOrAfter":
            parts.append(f"{_weekday_name(arith, step.params.get('weekday'))} on or after")
        elif step.type == "firstAfter":
            parts.append(f"first {_title(step.condition).lower()} after")
        else:
            parts.append(str(step.type))
    # outermost transform first
    return "Computed: " + " ".join(reversed(parts))


def describe_schedule(s: NoteSchedule, arith: Optional[CalendarArithmetic] = None) -> str:
    iv = max(int(s.repeat_interval or 1), 1)
    start = s.start_date
    kind = s.repeat

    if s.linked_event is not None:
        off = s.linked_event.offset
        if off == 0:
            text = f"Same day as note {s.linked_event.note_id}"
        else:
            rel = "after" if off > 0 else "before"
            text = f"{abs(off)} days {rel} note {s.linked_event.note_id}"
    elif kind == "never":
        text = "Does not repeat"
    elif kind == "daily":
        text = _every(iv, "day")
    elif kind == "weekly":
        text = _every(iv, "week")
        if arith is not None and arith.weekday_count:
            text += f" on {arith.weekday_name(start)}"
    elif kind == "monthly":
        text = f"{_every(iv, 'month')} on day {start.day_of_month + 1}"
    elif kind == "yearly":
        text = f"{_every(iv, 'year')} on {start.day_of_month + 1} {_month_name(arith, start.month)}"
    elif kind == "weekOfMonth":
        wd = s.weekday if s.weekday is not None else (arith.weekday(start) if arith is not None else None)
        wn = s.week_number if s.week_number is not None else 1
        ordinal = _ORDINALS.get(wn, f"#{wn}")
        scope = "every month" if iv == 1 else f"every {iv} months"
        text = f"{ordinal} {_weekday_name(arith, wd)} of {scope}"
    elif kind == "seasonal":
        cfg = s.seasonal
        if cfg is None:
            text = "Seasonal"
        else:
            season = f"season {cfg.season_index + 1}"
            if arith is not None and 0 <= cfg.season_index < len(arith.cal.seasons):
                season = arith.cal.seasons[cfg.season_index].name
            lead = {"firstDay": "First day of", "lastDay": "Last day of"}.get(cfg.trigger, "Every day during")
            text = f"{lead} {season}"
            if iv > 1:
                text += f", every {iv} years"
    elif kind == "range":
        text = _describe_range(s.range_pattern)
    elif kind == "random":
        cfg = s.random
        if cfg is None:
            text = "Random"
        else:
            unit = {"weekly": "week", "monthly": "month"}.get(cfg.check_interval, "day")
            text = f"{cfg.probability:g}% chance each {unit}"
    elif kind == "moon":
        if not s.moon_conditions:
            text = "Never (no moon conditions)"
        else:
            parts = []
            for c in s.moon_conditions:
                name = f"moon {c.moon_index + 1}"
                if arith is not None and 0 <= c.moon_index < len(arith.cal.moons):
                    name = arith.cal.moons[c.moon_index].name
                parts.append(f"{name} between {c.phase_start:.0%} and {c.phase_end:.0%} of its cycle")
            text = "When " + " and ".join(parts)
    elif kind == "computed":
        text = _describe_computed(s.computed, arith)
    else:
        text = "Unknown recurrence"

    if s.conditions:
        n = len(s.conditions)
        text += f" ({n} condition{'s' if n != 1 else ''})"
    if s.repeat_end_date is not None:
        text += f", until {s.repeat_end_date.isoformat()}"
    if s.max_occurrences:
        text += f", {s.max_occurrences} times"
    return text
