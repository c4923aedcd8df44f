"""
polycal.calendars.presets
-------------------------
Built-in calendar definitions. Pure data; build engines from them with
CalendarArithmetic / RecurrenceEngine.
"""

from __future__ import annotations

from typing import Dict

from polycal.core.types import (
    CalendarDefinition,
    DateComponents,
    Daylight,
    Era,
    Festival,
    LeapYearConfig,
    MonthDef,
    Moon,
    Season,
)

GREGORIAN = CalendarDefinition(
    name="gregorian",
    months=(
        MonthDef("January", 31, abbreviation="Jan"),
        MonthDef("February", 28, leap_days=29, abbreviation="Feb"),
        MonthDef("March", 31, abbreviation="Mar"),
        MonthDef("April", 30, abbreviation="Apr"),
        MonthDef("May", 31, abbreviation="May"),
        MonthDef("June", 30, abbreviation="Jun"),
        MonthDef("July", 31, abbreviation="Jul"),
        MonthDef("August", 31, abbreviation="Aug"),
        MonthDef("September", 30, abbreviation="Sep"),
        MonthDef("October", 31, abbreviation="Oct"),
        MonthDef("November", 30, abbreviation="Nov"),
        MonthDef("December", 31, abbreviation="Dec"),
    ),
    weekdays=("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"),
    # proleptic day 0 (0000-01-01) is a Saturday
    first_weekday=6,
    leap=LeapYearConfig(rule="gregorian"),
    seasons=(
        Season("Spring", day_start=80, day_end=171),
        Season("Summer", day_start=172, day_end=264),
        Season("Autumn", day_start=265, day_end=354),
        Season("Winter", day_start=355, day_end=79),
    ),
    eras=(Era("Common Era", "CE", start_year=1),),
    moons=(
        Moon("Luna", 29.53059, reference_date=DateComponents(2000, 0, 5)),
    ),
    daylight=Daylight(summer_solstice=171, winter_solstice=354),
)

RENESCARA = CalendarDefinition(
    name="renescara",
    months=tuple(
        MonthDef(name, 28)
        for name in (
            "Thawmoon", "Seedmoon", "Blossmoon", "Greenmoon", "Summertide",
            "Goldmoon", "Harvestmoon", "Ambermoon", "Fadingmoon", "Frostmoon",
            "Winterdeep", "Ironmoon", "Shadowmoon",
        )
    ) + (MonthDef("Day of Threshold", 1),),
    weekdays=("Solday", "Ferriday", "Verday", "Midweek", "Mercday", "Shadeday", "Tideday"),
    first_weekday=0,
    festivals=(
        Festival("Firstlight Festival", month=1, day=15),
        Festival("Sowtide", month=2, day=7),
        Festival("Firstbloom", month=3, day=21),
        Festival("Greenfire", month=4, day=14),
        Festival("Solstice Crown", month=5, day=14),
        Festival("First Reaping", month=6, day=8),
        Festival("The Gathering", month=7, day=15),
        Festival("The Turning", month=8, day=21),
        Festival("Lastlight", month=9, day=7),
        Festival("Firstfrost Fair", month=10, day=14),
        Festival("The Long Night", month=11, day=1),
        Festival("Iron Feast", month=12, day=28),
        Festival("The Veilwalk", month=13, day=14),
        # outside the week: every year starts on Solday
        Festival("Day of Threshold", month=14, day=1, counts_for_weekday=False),
    ),
    moons=(
        Moon("Aela", 28, reference_date=DateComponents(3247, 0, 0)),
        Moon("Ruan", 73, reference_date=DateComponents(3247, 0, 18)),
    ),
    seasons=(
        Season("Spring", day_start=0, day_end=83),
        Season("Summer", day_start=84, day_end=167),
        Season("Autumn", day_start=168, day_end=251),
        Season("Winter", day_start=252, day_end=364),
    ),
)

PRESETS: Dict[str, CalendarDefinition] = {
    GREGORIAN.name: GREGORIAN,
    RENESCARA.name: RENESCARA,
}
