"""
polycal.engines.conditions
--------------------------
Extra AND-ed filters on schedules. A condition resolves one numeric property
of the date and compares it with an operator. Unknown fields and operators
never raise: the condition simply fails.
"""

from __future__ import annotations

import logging
import operator as _op
from typing import Callable, Dict, Optional, Sequence

from polycal.core.types import Condition, DateComponents
from polycal.engines.calendar import CalendarArithmetic

LOG = logging.getLogger(__name__)

_COMPARE: Dict[str, Callable[[float, float], bool]] = {
    "==": _op.eq,
    "!=": _op.ne,
    ">": _op.gt,
    "<": _op.lt,
    ">=": _op.ge,
    "<=": _op.le,
}


def _field_day(a: CalendarArithmetic, d: DateComponents) -> int:
    return d.day_of_month + 1


def _field_month(a: CalendarArithmetic, d: DateComponents) -> int:
    return d.month + 1


def _field_year(a: CalendarArithmetic, d: DateComponents) -> int:
    return d.year


def _field_day_of_year(a: CalendarArithmetic, d: DateComponents) -> int:
    return a.day_of_year(d) + 1


def _field_weekday(a: CalendarArithmetic, d: DateComponents) -> int:
    return a.weekday(d) + 1


def _field_week_number(a: CalendarArithmetic, d: DateComponents) -> int:
    return d.day_of_month // a.week_length + 1


def _field_days_before_month_end(a: CalendarArithmetic, d: DateComponents) -> int:
    return a.days_in_month(d.month, d.year) - 1 - d.day_of_month


FIELDS: Dict[str, Callable[[CalendarArithmetic, DateComponents], int]] = {
    "day": _field_day,
    "month": _field_month,
    "year": _field_year,
    "dayOfYear": _field_day_of_year,
    "weekday": _field_weekday,
    "weekNumberInMonth": _field_week_number,
    "daysBeforeMonthEnd": _field_days_before_month_end,
}

OPERATORS = tuple(_COMPARE) + ("%",)


def resolve_field(arith: CalendarArithmetic, field: str, d: DateComponents) -> Optional[int]:
    """Human (1-based) value of a date property, None for unknown fields."""
    fn = FIELDS.get(field)
    if fn is None:
        return None
    return fn(arith, d)


def evaluate_condition(arith: CalendarArithmetic, cond: Condition, d: DateComponents) -> bool:
    value = resolve_field(arith, cond.field, d)
    if value is None:
        LOG.debug("Unknown condition field %r", cond.field)
        return False
    if cond.operator == "%":
        if not cond.value:
            return False
        return (value - (cond.offset or 0)) % cond.value == 0
    cmp = _COMPARE.get(cond.operator)
    if cmp is None:
        LOG.debug("Unknown condition operator %r", cond.operator)
        return False
    return cmp(value, cond.value)


def matches_conditions(arith: CalendarArithmetic, conditions: Sequence[Condition], d: DateComponents) -> bool:
    return all(evaluate_condition(arith, c, d) for c in conditions)
