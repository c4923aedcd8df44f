# tests/test_moon.py

import math
from dataclasses import replace

import pytest

from polycal.calendars.presets import GREGORIAN, RENESCARA
from polycal.core.types import DateComponents, Moon, MoonPhase
from polycal.engines.calendar import CalendarArithmetic
from polycal.engines.moon import MoonPhaseCalculator, phase_distribution

REF = DateComponents(2024, 0, 0)


def _calc(*moons):
    return MoonPhaseCalculator(CalendarArithmetic(replace(GREGORIAN, moons=moons)))


@pytest.fixture
def mc():
    return _calc(Moon("Test", 28, reference_date=REF))


def _plus(mc, n):
    return mc.arith.add_days(REF, n)


@pytest.mark.parametrize("offset, expected", [(0, 0.0), (7, 0.25), (14, 0.5), (28, 0.0), (-14, 0.5), (-7, 0.75)])
def test_position(mc, offset, expected):
    assert mc.position(0, _plus(mc, offset)) == pytest.approx(expected)


def test_position_uses_time_of_day(mc):
    d = DateComponents(2024, 0, 0, 12)
    assert mc.position(0, d) == pytest.approx(0.5 / 28)


def test_cycle_day_adjust():
    mc = _calc(Moon("Test", 28, reference_date=REF, cycle_day_adjust=14))
    assert mc.position(0, REF) == pytest.approx(0.5)


def test_phase_distribution():
    assert phase_distribution(28) == [3, 4, 4, 4, 3, 4, 3, 3]
    assert phase_distribution(5) == [0, 1, 1, 1, 0, 1, 1, 0]
    assert phase_distribution(10, 4) == [3, 3, 2, 2]
    assert sum(phase_distribution(29.53059)) == 30
    for n in range(1, 120):
        assert sum(phase_distribution(n)) == n
    assert phase_distribution(0) == []
    assert phase_distribution(math.nan) == []


def test_phase_names(mc):
    p = mc.phase(0, REF)
    assert p.name == "New Moon"
    assert p.sub_phase_name == "Rising New Moon"
    assert p.phase_index == 0
    assert p.phase_duration == 3

    assert mc.phase(0, _plus(mc, 1)).sub_phase_name == "New Moon"
    assert mc.phase(0, _plus(mc, 2)).sub_phase_name == "Fading New Moon"

    p = mc.phase(0, _plus(mc, 14))
    assert p.name == "Waxing Gibbous"
    assert p.sub_phase_name == "Fading Waxing Gibbous"
    assert p.day_within_phase == 3

    p = mc.phase(0, _plus(mc, 15))
    assert p.name == "Full Moon"
    assert p.sub_phase_name == "Rising Full Moon"
    assert p.day_in_cycle == 15
    assert p.position == pytest.approx(15 / 28)


def test_custom_phase_labels():
    phases = (
        MoonPhase("Dark", icon="D", rising="Deepening"),
        MoonPhase("Bright", icon="B", fading="Dimming"),
    )
    mc = _calc(Moon("Two", 10, reference_date=REF, phases=phases))
    assert mc.phase(0, REF).sub_phase_name == "Deepening"
    assert mc.phase(0, REF).icon == "D"
    last = mc.phase(0, mc.arith.add_days(REF, 9))
    assert last.name == "Bright"
    assert last.sub_phase_name == "Dimming"


def test_full_and_new_window(mc):
    assert not mc.is_moon_full(0, _plus(mc, 13))
    assert mc.is_moon_full(0, _plus(mc, 14))
    assert mc.is_moon_full(0, _plus(mc, 17))
    assert not mc.is_moon_full(0, _plus(mc, 18))
    assert mc.is_new_moon(0, REF)
    assert mc.is_new_moon(0, _plus(mc, 3))
    assert not mc.is_new_moon(0, _plus(mc, 4))


@pytest.mark.parametrize(
    "moon",
    [
        Moon("Zero", 0, reference_date=REF),
        Moon("Neg", -5, reference_date=REF),
        Moon("NaN", math.nan, reference_date=REF),
        Moon("Inf", math.inf, reference_date=REF),
    ],
)
def test_degenerate_moons(moon):
    mc = _calc(moon)
    assert mc.phase(0, REF) is None
    assert mc.position(0, REF) == 0.0
    assert not mc.is_moon_full(0, REF)
    assert mc.next_full_moon(0, REF) is None


def test_missing_moon_index(mc):
    assert mc.phase(5, REF) is None
    assert mc.phase(-1, REF) is None
    assert mc.position(5, REF) == 0.0


def test_next_full_moon(mc):
    assert mc.next_full_moon(0, REF) == DateComponents(2024, 0, 14)
    # strictly after: from a full day the search moves on to the next cycle
    assert mc.next_full_moon(0, DateComponents(2024, 0, 17)) == DateComponents(2024, 1, 11)


def test_convergences():
    mc = _calc(
        Moon("A", 28, reference_date=REF),
        Moon("B", 28, reference_date=DateComponents(2024, 0, 2)),
    )
    assert mc.next_convergence(REF) == DateComponents(2024, 0, 16)
    assert mc.convergences_in_range(REF, DateComponents(2024, 2, 0)) == [
        DateComponents(2024, 0, 16),
        DateComponents(2024, 1, 13),
    ]
    assert mc.next_convergence(REF, moon_indices=[7]) is None
    assert mc.convergences_in_range(REF, REF, moon_indices=[]) == []


def test_renescara_moons():
    mc = MoonPhaseCalculator(CalendarArithmetic(RENESCARA))
    assert mc.position(0, DateComponents(3247, 0, 0)) == pytest.approx(0.0)
    assert mc.position(1, DateComponents(3247, 0, 18)) == pytest.approx(0.0)
    assert mc.is_moon_full(0, DateComponents(3247, 0, 14))
