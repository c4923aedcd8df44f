from __future__ import annotations

import argparse

import polycal
from polycal.core.types import DateComponents
from polycal.engines.calendar import CalendarArithmetic
from polycal.engines.moon import MoonPhaseCalculator


def dow_header(a: CalendarArithmetic, w: int = 6) -> str:
    names = a.cal.weekdays or tuple(str(i + 1) for i in range(a.week_length))
    return " ".join(n[:w - 1].ljust(w) for n in names)


def cell(top: str, bot: str, w: int = 6) -> tuple[str, str]:
    return (top[:w].ljust(w), bot[:w].ljust(w))


def print_grid(title: str, header: str, weeks: list[list[tuple[str, str]]]) -> None:
    print(title)
    print(header)
    print("-" * len(header))
    for wk in weeks:
        print(" ".join(c[0] for c in wk))
        print(" ".join(c[1] for c in wk))
    print()


def month_grid(a: CalendarArithmetic, year: int, month: int) -> list[list[tuple[str, str]]]:
    """Rows of (day label, marker) cells. Days outside the week go on their own row."""
    mc = MoonPhaseCalculator(a)
    n = a.week_length
    weeks: list[list[tuple[str, str]]] = []
    wk: list[tuple[str, str]] = []
    wds = a.month_weekdays(year, month)
    for i, wd in enumerate(wds):
        d = DateComponents(year, month, i)
        marks = ""
        if a.find_festival_day(d) is not None:
            marks += "*"
        marks += "".join("o" for k in range(len(a.cal.moons)) if mc.is_moon_full(k, d))
        if wd is None:
            if wk:
                weeks.append(wk)
            weeks.append([cell(f"{i + 1:2d}", marks + "~")])
            wk = []
            continue
        if not wk:
            wk = [cell("", "") for _ in range(wd)]
        wk.append(cell(f"{i + 1:2d}", marks))
        if len(wk) == n:
            weeks.append(wk)
            wk = []
    if wk:
        weeks.append(wk)
    return weeks


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        description="Print month grids. '*' festival, 'o' full moon, '~' outside the week."
    )
    p.add_argument("--calendar", default="gregorian")
    p.add_argument("--year", type=int, default=2024)
    p.add_argument("--month", type=int, default=None, help="1-based month (default: whole year)")
    args = p.parse_args(argv)

    a = polycal.arithmetic(args.calendar)
    months = [args.month - 1] if args.month is not None else range(a.month_count)
    header = dow_header(a)
    for m in months:
        title = f"{a.month_name(m) or m + 1} {a.format_year(DateComponents(args.year, m, 0))}"
        print_grid(title, header, month_grid(a, args.year, m))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
