from __future__ import annotations

import argparse
import importlib
import inspect
import logging
import re
import sys

from polycal.core.types import CalendarDefinition, DateComponents


_DATE_RE = re.compile(r"^-?\d{1,6}-\d{2}-\d{2}$")


def _parse_ymd(s: str) -> DateComponents:
    from polycal.config import date_from_dict
    return date_from_dict(s)


def _run_module_main(modpath: str, argv: list[str]) -> int:
    """
    Import module and run its main().

    Supports:
      - main(argv: list[str] | None = None) -> int|None
      - main() -> int|None
    """
    mod = importlib.import_module(modpath)
    if not hasattr(mod, "main"):
        raise SystemExit(f"Module {modpath} has no main()")
    fn = getattr(mod, "main")

    sig = inspect.signature(fn)
    if len(sig.parameters) == 0:
        rv = fn()
    else:
        rv = fn(argv)
    return int(rv or 0)


def _add_calendar_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--calendar", default="gregorian", help="registered calendar name")
    p.add_argument("--calendar-file", default=None, help="calendar definition (.json/.yaml), overrides --calendar")


def _calendar(args: argparse.Namespace) -> CalendarDefinition:
    import polycal
    from polycal.config import load_calendar

    if args.calendar_file:
        return load_calendar(args.calendar_file)
    return polycal.get_calendar(args.calendar)


def cmd_date(argv: list[str]) -> int:
    import polycal

    p = argparse.ArgumentParser(prog="polycal date", description="Describe one date: weekday, season, era, festival, moons")
    p.add_argument("date", help="YYYY-MM-DD (1-based month and day)")
    _add_calendar_args(p)
    args = p.parse_args(argv)

    info = polycal.day_info(_parse_ymd(args.date), calendar=_calendar(args))
    print(f"{info['label']}")
    print(f"  weekday      = {info['weekday_name'] or info['weekday']}")
    print(f"  day of year  = {info['day_of_year'] + 1}")
    print(f"  leap year    = {info['is_leap_year']}")
    if info["season"]:
        print(f"  season       = {info['season']}")
    if info["era"]:
        print(f"  era          = {info['era']} (year {info['year_in_era']})")
    if info["festival"]:
        print(f"  festival     = {info['festival']}")
    for r in info["moons"]:
        if r is not None:
            print(f"  moon         = {r.sub_phase_name} (position {r.position:.3f})")
    return 0


def cmd_leap(argv: list[str]) -> int:
    from polycal.core.types import LeapYearConfig
    from polycal.engines.leap import LeapYearEngine, leap_year_description

    p = argparse.ArgumentParser(prog="polycal leap", description="Leap-year status of display years")
    p.add_argument("years", type=int, nargs="+", help="one year, or START END for a span")
    p.add_argument("--pattern", default=None, help='custom interval pattern, e.g. "400,!100,4"')
    p.add_argument("--no-year-zero", action="store_true", help="with --pattern: the calendar has no year 0")
    _add_calendar_args(p)
    args = p.parse_args(argv)

    if args.pattern is not None:
        config = LeapYearConfig(rule="custom", pattern=args.pattern)
        year_zero_exists = not args.no_year_zero
    else:
        cal = _calendar(args)
        config, year_zero_exists = cal.leap, cal.year_zero_exists
    eng = LeapYearEngine(config, year_zero_exists)

    print(f"Rule: {leap_year_description(config)}")
    if len(args.years) == 2:
        lo, hi = sorted(args.years)
        leaps = [y for y in range(lo, hi + 1) if eng.is_leap(y)]
        print(f"{len(leaps)} leap years in [{lo}, {hi}]")
        print(" ".join(str(y) for y in leaps))
        return 0
    for y in args.years:
        print(f"{y}: {'leap' if eng.is_leap(y) else 'common'}")
    return 0


def cmd_moon(argv: list[str]) -> int:
    from polycal.engines.calendar import CalendarArithmetic
    from polycal.engines.moon import MoonPhaseCalculator, phase_distribution

    p = argparse.ArgumentParser(prog="polycal moon", description="Moon phases on a date")
    p.add_argument("date", help="YYYY-MM-DD")
    p.add_argument("--moon", type=int, default=None, help="moon index (default: all)")
    p.add_argument("--next-full", action="store_true", help="also print the next full moon")
    _add_calendar_args(p)
    args = p.parse_args(argv)

    d = _parse_ymd(args.date)
    mc = MoonPhaseCalculator(CalendarArithmetic(_calendar(args)))
    indices = [args.moon] if args.moon is not None else range(len(mc.moons))
    for i in indices:
        r = mc.phase(i, d)
        if r is None:
            print(f"moon {i}: unavailable")
            continue
        moon = mc.moons[i]
        print(f"{moon.name}: {r.sub_phase_name}")
        print(f"  position       = {r.position:.4f}")
        print(f"  day in cycle   = {r.day_in_cycle}")
        print(f"  phase          = {r.phase_index} ({r.day_within_phase + 1}/{r.phase_duration})")
        print(f"  distribution   = {phase_distribution(moon.cycle_length, len(mc.phases_of(moon)))}")
        if args.next_full:
            nxt = mc.next_full_moon(i, d)
            print(f"  next full moon = {nxt.isoformat() if nxt else 'none'}")
    return 0


def cmd_occurrences(argv: list[str]) -> int:
    from polycal.config import load_schedules
    from polycal.engines.recurrence import RecurrenceEngine

    p = argparse.ArgumentParser(prog="polycal occurrences", description="List occurrences of schedules in a date range")
    p.add_argument("schedules", help="schedule file (.json/.yaml)")
    p.add_argument("start", help="YYYY-MM-DD")
    p.add_argument("end", help="YYYY-MM-DD")
    p.add_argument("--max", type=int, default=100, help="maximum occurrences per schedule")
    _add_calendar_args(p)
    args = p.parse_args(argv)

    schedules = load_schedules(args.schedules)
    linked = {s.id: s for s in schedules if s.id}
    eng = RecurrenceEngine(_calendar(args), linked=linked)
    start, end = _parse_ymd(args.start), _parse_ymd(args.end)

    for s in schedules:
        title = s.title or s.id or s.repeat
        print(f"{title}: {eng.describe(s)}")
        for d in eng.occurrences_in_range(s, start, end, max_count=args.max):
            print(f"  {d.isoformat()}  {eng.arith.weekday_name(d)}")
    return 0


def cmd_calendars(argv: list[str]) -> int:
    import polycal

    p = argparse.ArgumentParser(prog="polycal calendars", description="List registered calendars")
    p.parse_args(argv)
    for name in polycal.list_calendars():
        cal = polycal.get_calendar(name)
        a = polycal.arithmetic(cal)
        print(f"{name}: {a.month_count} months, {a.weekday_count}-day week, "
              f"{a.ctx.common_year_length}/{a.ctx.leap_year_length} days, {len(cal.moons)} moon(s)")
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    # Shorthand: `polycal YYYY-MM-DD ...`
    if argv and _DATE_RE.match(argv[0]):
        return cmd_date(argv)

    p = argparse.ArgumentParser(prog="polycal", description="Calendar arithmetic and recurrence toolkit CLI.")
    p.add_argument("--log-level", default="WARNING", help="logging level (DEBUG, INFO, ...)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("date", help="Describe one date")
    sub.add_parser("leap", help="Leap-year status of years")
    sub.add_parser("moon", help="Moon phases on a date")
    sub.add_parser("occurrences", help="List schedule occurrences in a range")
    sub.add_parser("calendars", help="List registered calendars")
    sub.add_parser("pretty-month", help="Print a month grid (diagnostics)")

    p_diag = sub.add_parser("diag", help="Diagnostics tools")
    p_diag.add_argument(
        "tool",
        choices=["leap-years", "pretty-month"],
        help="Which diagnostic to run",
    )

    args, rest = p.parse_known_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    if args.cmd == "date":
        return cmd_date(rest)

    if args.cmd == "leap":
        return cmd_leap(rest)

    if args.cmd == "moon":
        return cmd_moon(rest)

    if args.cmd == "occurrences":
        return cmd_occurrences(rest)

    if args.cmd == "calendars":
        return cmd_calendars(rest)

    if args.cmd == "pretty-month":
        return _run_module_main("polycal.diagnostics.pretty_month", rest)

    if args.cmd == "diag":
        tool_map = {
            "leap-years": "polycal.diagnostics.leap_years",
            "pretty-month": "polycal.diagnostics.pretty_month",
        }
        return _run_module_main(tool_map[args.tool], rest)

    raise RuntimeError("unreachable")


if __name__ == "__main__":
    raise SystemExit(main())
