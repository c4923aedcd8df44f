# tests/test_recurrence.py

from dataclasses import replace

import pytest

from polycal.calendars.presets import GREGORIAN
from polycal.core.types import (
    ComputedConfig,
    ComputedStep,
    Condition,
    DateComponents,
    LinkedEvent,
    Moon,
    MoonCondition,
    NoteSchedule,
    RandomConfig,
    RandomOccurrenceCache,
    RangePattern,
    SeasonalConfig,
)
from polycal.engines.recurrence import RecurrenceEngine, moon_condition_matches, range_bit_matches


def D(y, m, d):
    return DateComponents(y, m - 1, d - 1)


@pytest.fixture(scope="module")
def eng():
    return RecurrenceEngine(GREGORIAN)


@pytest.fixture(scope="module")
def lunar():
    cal = replace(GREGORIAN, moons=(Moon("Test", 28, reference_date=D(2024, 1, 1)),))
    return RecurrenceEngine(cal)


def S(start, repeat="never", **kw):
    return NoteSchedule(start_date=start, repeat=repeat, **kw)


# ---------------------------------------------------------
# Simple kinds
# ---------------------------------------------------------

def test_never(eng):
    s = S(D(2024, 3, 15))
    assert eng.is_recurring_match(s, D(2024, 3, 15))
    assert eng.is_recurring_match(s, DateComponents(2024, 2, 14, 10, 30))
    assert not eng.is_recurring_match(s, D(2024, 3, 16))
    assert not eng.is_recurring_match(s, D(2025, 3, 15))


def test_daily_interval(eng):
    s = S(D(2024, 1, 1), "daily", repeat_interval=3)
    assert not eng.is_recurring_match(s, D(2023, 12, 29))
    assert eng.is_recurring_match(s, D(2024, 1, 1))
    assert eng.is_recurring_match(s, D(2024, 1, 4))
    assert not eng.is_recurring_match(s, D(2024, 1, 5))


def test_weekly_interval(eng):
    s = S(D(2024, 1, 1), "weekly", repeat_interval=2)
    assert eng.is_recurring_match(s, D(2024, 1, 15))
    assert not eng.is_recurring_match(s, D(2024, 1, 8))
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 2, 29)) == [
        D(2024, 1, 1), D(2024, 1, 15), D(2024, 1, 29), D(2024, 2, 12), D(2024, 2, 26),
    ]


def test_monthly_clamps_to_month_end(eng):
    s = S(D(2024, 1, 31), "monthly")
    assert eng.is_recurring_match(s, D(2024, 2, 29))
    assert not eng.is_recurring_match(s, D(2024, 2, 28))
    assert eng.is_recurring_match(s, D(2024, 3, 31))
    assert eng.is_recurring_match(s, D(2024, 4, 30))
    assert eng.is_recurring_match(s, D(2025, 2, 28))


def test_monthly_range(eng):
    s = S(D(2024, 1, 15), "monthly")
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 6, 30)) == [
        D(2024, 1, 15), D(2024, 2, 15), D(2024, 3, 15), D(2024, 4, 15), D(2024, 5, 15), D(2024, 6, 15),
    ]
    every_other = S(D(2024, 1, 15), "monthly", repeat_interval=2)
    assert not eng.is_recurring_match(every_other, D(2024, 2, 15))
    assert eng.is_recurring_match(every_other, D(2024, 3, 15))


def test_yearly(eng):
    s = S(D(2024, 2, 29), "yearly")
    assert eng.is_recurring_match(s, D(2025, 2, 28))
    assert eng.is_recurring_match(s, D(2028, 2, 29))
    assert not eng.is_recurring_match(s, D(2028, 2, 28))

    biennial = S(D(2024, 3, 1), "yearly", repeat_interval=2)
    assert not eng.is_recurring_match(biennial, D(2025, 3, 1))
    assert eng.is_recurring_match(biennial, D(2026, 3, 1))


def test_week_of_month(eng):
    second_tuesday = S(D(2024, 1, 9), "weekOfMonth", weekday=2, week_number=2)
    assert eng.is_recurring_match(second_tuesday, D(2024, 2, 13))
    assert not eng.is_recurring_match(second_tuesday, D(2024, 2, 6))
    assert eng.occurrences_in_range(second_tuesday, D(2024, 1, 1), D(2024, 3, 31)) == [
        D(2024, 1, 9), D(2024, 2, 13), D(2024, 3, 12),
    ]

    last_friday = S(D(2024, 1, 26), "weekOfMonth", weekday=5, week_number=-1)
    assert eng.is_recurring_match(last_friday, D(2024, 2, 23))
    assert eng.is_recurring_match(last_friday, D(2024, 3, 29))
    assert not eng.is_recurring_match(last_friday, D(2024, 3, 22))

    quarterly = replace(last_friday, repeat_interval=3)
    assert eng.is_recurring_match(quarterly, D(2024, 4, 26))
    assert not eng.is_recurring_match(quarterly, D(2024, 2, 23))


def test_week_of_month_defaults_from_start(eng):
    # 9 January 2024 is the second Tuesday
    s = S(D(2024, 1, 9), "weekOfMonth")
    assert eng.is_recurring_match(s, D(2024, 2, 13))


def test_fifth_weekday_skips_short_months(eng):
    s = S(D(2024, 1, 29), "weekOfMonth", weekday=1, week_number=5)
    # February 2024 has only four Mondays
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 4, 30)) == [D(2024, 1, 29), D(2024, 4, 29)]


# ---------------------------------------------------------
# Spans
# ---------------------------------------------------------

def test_multi_day_span(eng):
    s = S(D(2024, 1, 1), "daily", repeat_interval=7, end_date=D(2024, 1, 3))
    for day in (1, 2, 3, 8, 9, 10):
        assert eng.is_recurring_match(s, D(2024, 1, day)), day
    for day in (4, 7, 11):
        assert not eng.is_recurring_match(s, D(2024, 1, day)), day
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 1, 17)) == [
        D(2024, 1, d) for d in (1, 2, 3, 8, 9, 10, 15, 16, 17)
    ]


def test_multi_day_monthly_span(eng):
    s = S(D(2024, 1, 10), "monthly", end_date=D(2024, 1, 12))
    assert eng.is_recurring_match(s, D(2024, 2, 11))
    assert eng.is_recurring_match(s, D(2024, 2, 12))
    assert not eng.is_recurring_match(s, D(2024, 2, 13))
    assert not eng.is_recurring_match(s, D(2024, 2, 9))


def test_first_span_always_matches(eng):
    # 2 January 2024 is not the second Tuesday, but it is inside the first span
    s = S(D(2024, 1, 1), "weekOfMonth", weekday=2, week_number=2, end_date=D(2024, 1, 3))
    assert eng.is_recurring_match(s, D(2024, 1, 2))


def test_repeat_end_date(eng):
    s = S(D(2024, 1, 1), "daily", repeat_end_date=D(2024, 1, 10))
    assert eng.is_recurring_match(s, D(2024, 1, 10))
    assert not eng.is_recurring_match(s, D(2024, 1, 11))
    assert len(eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 1, 31))) == 10


# ---------------------------------------------------------
# Max occurrences
# ---------------------------------------------------------

def test_max_occurrences_daily(eng):
    s = S(D(2024, 1, 1), "daily", max_occurrences=5)
    assert eng.is_recurring_match(s, D(2024, 1, 5))
    assert not eng.is_recurring_match(s, D(2024, 1, 6))
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 1, 31)) == [D(2024, 1, d) for d in range(1, 6)]


def test_max_occurrences_monthly_count(eng):
    s = S(D(2024, 1, 15), "monthly", max_occurrences=3)
    assert eng.count_occurrences_up_to(s, D(2024, 3, 14)) == 2
    assert eng.count_occurrences_up_to(s, D(2024, 3, 15)) == 3
    assert eng.count_occurrences_up_to(s, D(2023, 12, 1)) == 0
    assert eng.is_recurring_match(s, D(2024, 3, 15))
    assert not eng.is_recurring_match(s, D(2024, 4, 15))


def test_max_occurrences_enumerated_kind(eng):
    s = S(D(2024, 1, 9), "weekOfMonth", weekday=2, week_number=2, max_occurrences=2)
    assert eng.is_recurring_match(s, D(2024, 2, 13))
    assert not eng.is_recurring_match(s, D(2024, 3, 12))


def test_count_yearly(eng):
    s = S(D(2024, 3, 1), "yearly")
    assert eng.count_occurrences_up_to(s, D(2026, 2, 28)) == 2
    assert eng.count_occurrences_up_to(s, D(2026, 3, 1)) == 3


# ---------------------------------------------------------
# Pattern kinds
# ---------------------------------------------------------

def test_range_bits():
    assert range_bit_matches(None, 5)
    assert range_bit_matches(5, 5)
    assert not range_bit_matches(5, 6)
    assert range_bit_matches((1, 3), 3)
    assert not range_bit_matches((1, 3), 4)
    assert range_bit_matches((None, 3), -10)
    assert range_bit_matches([2, None], 99)


def test_range_pattern(eng):
    s = S(D(2024, 1, 1), "range", range_pattern=RangePattern(year=2024, day=15))
    assert eng.is_recurring_match(s, D(2024, 3, 15))
    assert not eng.is_recurring_match(s, D(2025, 3, 15))
    assert not eng.is_recurring_match(s, D(2024, 3, 16))

    early = S(D(2024, 1, 1), "range", range_pattern=RangePattern(month=(0, 2), day=(None, 7)))
    assert eng.is_recurring_match(early, D(2024, 2, 5))
    assert not eng.is_recurring_match(early, D(2024, 4, 5))
    assert not eng.is_recurring_match(early, D(2024, 2, 8))

    feb_end = S(D(2024, 1, 1), "range", range_pattern=RangePattern(year=2024, month=(1, 1), day=(28, None)))
    assert eng.occurrences_in_range(feb_end, D(2024, 1, 1), D(2024, 12, 31)) == [D(2024, 2, 28), D(2024, 2, 29)]


def test_state_kinds_enumerate_first_span(eng, lunar):
    ranged = S(D(2024, 1, 1), "range", range_pattern=RangePattern(day=15), end_date=D(2024, 1, 3))
    phased = S(D(2024, 1, 20), "moon", moon_conditions=(MoonCondition(0, 0.0, 0.01),), end_date=D(2024, 1, 22))
    for e, s in [(eng, ranged), (lunar, phased)]:
        out = e.occurrences_in_range(s, D(2024, 1, 1), D(2024, 1, 31), max_count=None)
        matched = [
            e.arith.from_days(n)
            for n in range(e.arith.to_days(D(2024, 1, 1)), e.arith.to_days(D(2024, 1, 31)) + 1)
            if e.is_recurring_match(s, e.arith.from_days(n))
        ]
        assert out == matched
    assert eng.occurrences_in_range(ranged, D(2024, 1, 1), D(2024, 1, 31)) == [
        D(2024, 1, 1), D(2024, 1, 2), D(2024, 1, 3), D(2024, 1, 15),
    ]
    # 28-day moon referenced at 1 January: new again on the 29th
    assert lunar.occurrences_in_range(phased, D(2024, 1, 1), D(2024, 1, 31)) == [
        D(2024, 1, 20), D(2024, 1, 21), D(2024, 1, 22), D(2024, 1, 29),
    ]


def test_seasonal_triggers(eng):
    spring_first = S(D(2024, 1, 1), "seasonal", seasonal=SeasonalConfig(0, "firstDay"))
    assert eng.is_recurring_match(spring_first, D(2024, 3, 21))
    assert not eng.is_recurring_match(spring_first, D(2024, 3, 22))
    assert eng.occurrences_in_range(spring_first, D(2024, 1, 1), D(2026, 12, 31)) == [
        D(2024, 3, 21), D(2025, 3, 22), D(2026, 3, 22),
    ]

    summer_last = S(D(2024, 1, 1), "seasonal", seasonal=SeasonalConfig(1, "lastDay"))
    assert eng.is_recurring_match(summer_last, D(2024, 9, 21))

    winter = S(D(2024, 1, 1), "seasonal", seasonal=SeasonalConfig(3, "entire"))
    assert eng.is_recurring_match(winter, D(2025, 1, 15))
    assert eng.is_recurring_match(winter, D(2024, 12, 25))
    assert not eng.is_recurring_match(winter, D(2024, 6, 1))


def test_seasonal_interval_counts_wrapped_instances(eng):
    winter = S(D(2024, 1, 1), "seasonal", repeat_interval=2, seasonal=SeasonalConfig(3, "entire"))
    assert not eng.is_recurring_match(winter, D(2024, 1, 10))
    assert eng.is_recurring_match(winter, D(2024, 12, 25))
    assert eng.is_recurring_match(winter, D(2025, 1, 10))
    assert not eng.is_recurring_match(winter, D(2025, 12, 25))


def test_random_probability_extremes(eng):
    never = S(D(2024, 1, 1), "random", random=RandomConfig(1, 0))
    always = S(D(2024, 1, 1), "random", random=RandomConfig(1, 100, "weekly"))
    assert not eng.is_recurring_match(never, D(2024, 5, 5))
    # every weekly unit, and only those
    assert eng.is_recurring_match(always, D(2024, 5, 6))
    assert not eng.is_recurring_match(always, D(2024, 5, 5))


@pytest.mark.parametrize("interval", ["weekly", "monthly"])
def test_certain_random_agrees_with_enumeration(eng, interval):
    s = S(D(2024, 1, 10), "random", random=RandomConfig(9, 100, interval))
    out = eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 4, 30), max_count=None)
    matched = [
        eng.arith.from_days(n)
        for n in range(eng.arith.to_days(D(2024, 1, 1)), eng.arith.to_days(D(2024, 4, 30)) + 1)
        if eng.is_recurring_match(s, eng.arith.from_days(n))
    ]
    assert out == matched
    assert len(out) == (16 if interval == "weekly" else 4)


def test_random_matches_generated_set(eng):
    s = S(D(2024, 1, 1), "random", random=RandomConfig(42, 30))
    generated = eng.random.generate(s, 2024)
    assert generated
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 12, 31), max_count=None) == generated
    keys = {d.key for d in generated}
    for n in range(eng.arith.to_days(D(2024, 1, 1)), eng.arith.to_days(D(2024, 3, 1))):
        d = eng.arith.from_days(n)
        assert eng.is_recurring_match(s, d) == (d.key in keys)


def test_random_cache_takes_precedence(eng):
    s = S(D(2024, 1, 1), "random", random=RandomConfig(42, 30))
    cache = RandomOccurrenceCache(year=2024, occurrences=(D(2024, 5, 5),))
    assert eng.is_recurring_match(s, D(2024, 5, 5), cache)
    other = next(d for d in eng.random.generate(s, 2024) if d != D(2024, 5, 5))
    assert not eng.is_recurring_match(s, other, cache)
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 12, 31), cache=cache) == [D(2024, 5, 5)]

    stale = RandomOccurrenceCache(year=2023, occurrences=(D(2024, 5, 5),))
    assert eng.is_recurring_match(s, other, stale)


def test_moon_condition_matches(lunar):
    wrap = MoonCondition(0, 0.9, 0.1)
    a = lunar.arith
    for offset, expected in [(26, True), (0, True), (2, True), (3, False), (25, False)]:
        d = a.add_days(D(2024, 1, 1), offset)
        assert moon_condition_matches(lunar.moons, wrap, d) is expected, offset
    assert not moon_condition_matches(lunar.moons, MoonCondition(3, 0.0, 1.0), D(2024, 1, 1))


def test_moon_kind(lunar):
    s = S(D(2024, 1, 1), "moon", moon_conditions=(MoonCondition(0, 0.45, 0.55),))
    assert lunar.is_recurring_match(s, D(2024, 1, 15))
    assert not lunar.is_recurring_match(s, D(2024, 1, 13))
    assert lunar.occurrences_in_range(s, D(2024, 1, 1), D(2024, 2, 29)) == [
        D(2024, 1, 14), D(2024, 1, 15), D(2024, 1, 16), D(2024, 2, 11), D(2024, 2, 12), D(2024, 2, 13),
    ]

    both = S(D(2024, 1, 1), "moon", moon_conditions=(MoonCondition(0, 0.45, 0.55), MoonCondition(0, 0.5, 0.6)))
    assert lunar.is_recurring_match(both, D(2024, 1, 15))
    assert not lunar.is_recurring_match(both, D(2024, 1, 14))

    assert not lunar.is_recurring_match(S(D(2024, 1, 1), "moon"), D(2024, 1, 15))


def test_moon_filter_on_other_kinds(lunar):
    s = S(D(2024, 1, 1), "daily", moon_conditions=(MoonCondition(0, 0.45, 0.55),))
    assert lunar.is_recurring_match(s, D(2024, 1, 15))
    assert not lunar.is_recurring_match(s, D(2024, 1, 20))


def test_computed_kind(eng):
    cfg = ComputedConfig(chain=(ComputedStep("anchor", value="springEquinox"),))
    s = S(D(2020, 1, 1), "computed", computed=cfg)
    assert eng.is_recurring_match(s, D(2024, 3, 21))
    assert not eng.is_recurring_match(s, D(2024, 3, 22))
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2026, 12, 31)) == [
        D(2024, 3, 21), D(2025, 3, 22), D(2026, 3, 22),
    ]


def test_conditions_filter(eng):
    s = S(D(2024, 1, 1), "daily", conditions=(Condition("day", "%", 5),))
    assert eng.is_recurring_match(s, D(2024, 1, 10))
    assert not eng.is_recurring_match(s, D(2024, 1, 6))
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 1, 31)) == [
        D(2024, 1, 5), D(2024, 1, 10), D(2024, 1, 15), D(2024, 1, 20), D(2024, 1, 25), D(2024, 1, 30),
    ]


# ---------------------------------------------------------
# Linked events
# ---------------------------------------------------------

def test_linked_event():
    pay = S(D(2024, 1, 15), "monthly", id="pay")
    eng = RecurrenceEngine(GREGORIAN, linked={"pay": pay})
    s = S(D(2024, 1, 1), linked_event=LinkedEvent("pay", 2))
    assert eng.is_recurring_match(s, D(2024, 1, 17))
    assert eng.is_recurring_match(s, D(2024, 2, 17))
    assert not eng.is_recurring_match(s, D(2024, 1, 15))
    assert eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 3, 31)) == [
        D(2024, 1, 17), D(2024, 2, 17), D(2024, 3, 17),
    ]


def test_linked_event_missing_or_cyclic():
    a = S(D(2024, 1, 1), linked_event=LinkedEvent("b"))
    b = S(D(2024, 1, 1), linked_event=LinkedEvent("a"))
    eng = RecurrenceEngine(GREGORIAN, linked={"a": a, "b": b})
    assert not eng.is_recurring_match(a, D(2024, 1, 1))
    assert eng.occurrences_in_range(a, D(2024, 1, 1), D(2024, 1, 31)) == []
    orphan = S(D(2024, 1, 1), linked_event=LinkedEvent("nobody"))
    assert not eng.is_recurring_match(orphan, D(2024, 1, 1))


# ---------------------------------------------------------
# Enumeration and robustness
# ---------------------------------------------------------

def test_default_and_unbounded_max_count(eng):
    s = S(D(2024, 1, 1), "daily")
    assert len(eng.occurrences_in_range(s, D(2024, 1, 1), D(2025, 12, 31))) == 100
    assert len(eng.occurrences_in_range(s, D(2024, 1, 1), D(2024, 12, 31), max_count=None)) == 366
    assert eng.occurrences_in_range(s, D(2024, 2, 1), D(2024, 1, 1)) == []


def test_results_ascending_and_unique(eng):
    schedules = [
        S(D(2024, 1, 1), "daily", repeat_interval=2, end_date=D(2024, 1, 3)),
        S(D(2024, 1, 31), "monthly", end_date=D(2024, 2, 2)),
        S(D(2024, 2, 29), "yearly"),
        S(D(2024, 1, 1), "weekOfMonth", weekday=0, week_number=-1, end_date=D(2024, 1, 2)),
        S(D(2024, 1, 1), "seasonal", seasonal=SeasonalConfig(3, "entire")),
        S(D(2024, 1, 1), "random", random=RandomConfig(3, 10, "weekly")),
    ]
    for s in schedules:
        out = eng.occurrences_in_range(s, D(2024, 1, 1), D(2026, 12, 31), max_count=None)
        days = [eng.arith.to_days(d) for d in out]
        assert days == sorted(set(days)), s.repeat
        assert all(eng.is_recurring_match(s, d) for d in out[:20]), s.repeat


@pytest.mark.parametrize("schedule", [None, S(D(2024, 1, 1), "fortnightly")])
def test_bad_schedules_never_match(eng, schedule):
    assert not eng.is_recurring_match(schedule, D(2024, 1, 1))
    assert eng.occurrences_in_range(schedule, D(2024, 1, 1), D(2024, 12, 31)) == []


@pytest.mark.parametrize(
    "repeat, payload",
    [
        ("weekly", {"random": RandomConfig(1, 50)}),
        ("range", {"seasonal": SeasonalConfig(0)}),
        ("monthly", {"week_number": 2}),
        ("random", {"computed": ComputedConfig()}),
    ],
)
def test_payload_must_belong_to_repeat_kind(repeat, payload):
    with pytest.raises(ValueError, match="cannot carry"):
        S(D(2024, 1, 1), repeat, **payload)


def test_describe(eng):
    assert eng.describe(S(D(2024, 1, 1))) == "Does not repeat"
    assert eng.describe(S(D(2024, 1, 1), "daily", repeat_interval=3)) == "Every 3 days"
    assert eng.describe(S(D(2024, 1, 1), "weekly")) == "Every week on Monday"
    assert eng.describe(S(D(2024, 1, 15), "monthly")) == "Every month on day 15"
    assert eng.describe(S(D(2024, 3, 1), "yearly", repeat_interval=2)) == "Every 2 years on 1 March"
    assert eng.describe(S(D(2024, 1, 9), "weekOfMonth", weekday=2, week_number=2)) == "Second Tuesday of every month"
    assert eng.describe(S(D(2024, 1, 26), "weekOfMonth", weekday=5, week_number=-1, repeat_interval=3)) == (
        "Last Friday of every 3 months"
    )
    assert eng.describe(S(D(2024, 1, 1), "seasonal", seasonal=SeasonalConfig(1, "lastDay"))) == "Last day of Summer"
    assert eng.describe(S(D(2024, 1, 1), "range", range_pattern=RangePattern(year=2024, day=15))) == (
        "Range: year 2024, month any, day 15"
    )
    assert eng.describe(S(D(2024, 1, 1), "random", random=RandomConfig(1, 25, "weekly"))) == "25% chance each week"
    cfg = ComputedConfig(
        chain=(ComputedStep("anchor", value="springEquinox"), ComputedStep("daysAfter", params={"days": 49}))
    )
    assert eng.describe(S(D(2024, 1, 1), "computed", computed=cfg)) == "Computed: 49 days after Spring Equinox"
    assert eng.describe(
        S(D(2024, 1, 1), "daily", repeat_end_date=D(2024, 6, 30), max_occurrences=10, conditions=(Condition("day", "%", 2),))
    ) == "Every day (1 condition), until 2024-06-30, 10 times"
    assert eng.describe(S(D(2024, 1, 1), linked_event=LinkedEvent("pay", -3))) == "3 days before note pay"
