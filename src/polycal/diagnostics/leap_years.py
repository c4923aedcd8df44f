#!/usr/bin/env python3
from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Dict, List, Optional

from polycal.core.types import LeapYearConfig
from polycal.engines.leap import LeapYearEngine, leap_year_description


def _need_numpy():
    try:
        import numpy as np
        return np
    except ImportError as e:
        raise RuntimeError('Need numpy. Install: pip install "polycal[diagnostics]"') from e


def _need_matplotlib():
    try:
        import matplotlib.pyplot as plt
        return plt
    except ImportError as e:
        raise RuntimeError('Need matplotlib. Install: pip install "polycal[diagnostics]"') from e


@dataclass(frozen=True)
class Rule:
    label: str
    config: LeapYearConfig
    year_zero_exists: bool = True


DEFAULT_RULES: Dict[str, Rule] = {
    "gregorian": Rule("Gregorian", LeapYearConfig(rule="gregorian")),
    "julian": Rule("Julian", LeapYearConfig(rule="simple", interval=4)),
    "128-year": Rule("128-year rule", LeapYearConfig(rule="custom", pattern="4,!128")),
    "none": Rule("No leap years", LeapYearConfig(rule="none")),
}


def parse_rules(s: str) -> List[str]:
    out = [x.strip() for x in s.split(",") if x.strip()]
    if not (1 <= len(out) <= 4):
        raise SystemExit("--rules must contain 1 to 4 comma-separated rules")
    return out


def leap_matrix(np, rules: List[Rule], start_year: int, end_year: int) -> "np.ndarray":
    years = range(start_year, end_year + 1)
    rows = []
    for r in rules:
        eng = LeapYearEngine(r.config, r.year_zero_exists)
        rows.append([1 if eng.is_leap(y) else 0 for y in years])
    return np.array(rows, dtype=int)


def mean_year(rule: Rule, common_days: int = 365, span: int = 10_000) -> float:
    eng = LeapYearEngine(rule.config, rule.year_zero_exists)
    return common_days + eng.count_leap_years(0, span) / span


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(
        description="Leap-year barcode across rules, with mean year lengths."
    )
    p.add_argument("--start-year", type=int, default=1880)
    p.add_argument("--end-year", type=int, default=2120)
    p.add_argument("--out", default="leap_years_barcode.png")
    p.add_argument("--title", default="Leap years across rules")
    p.add_argument(
        "--rules",
        default="gregorian,julian",
        help=f"Comma list of 1-4 rules from: {', '.join(DEFAULT_RULES)}.",
    )
    p.add_argument("--pattern", default=None, help="Add a custom interval pattern as an extra row.")
    p.add_argument("--no-plot", action="store_true", help="Only print the summary table.")
    args = p.parse_args(argv)

    start_year, end_year = args.start_year, args.end_year
    if end_year < start_year:
        raise SystemExit("--end-year must be >= --start-year")

    rules: List[Rule] = []
    for name in parse_rules(args.rules):
        if name not in DEFAULT_RULES:
            raise SystemExit(f"Unknown rule '{name}'. Choose from: {', '.join(DEFAULT_RULES)}")
        rules.append(DEFAULT_RULES[name])
    if args.pattern:
        rules.append(Rule(f"custom {args.pattern}", LeapYearConfig(rule="custom", pattern=args.pattern)))

    print(f"{'rule':<24} {'mean year':>12}  description")
    for r in rules:
        print(f"{r.label:<24} {mean_year(r):>12.6f}  {leap_year_description(r.config)}")

    if args.no_plot:
        return 0

    np = _need_numpy()
    plt = _need_matplotlib()

    M = leap_matrix(np, rules, start_year, end_year)
    fig, ax = plt.subplots(figsize=(max(6.0, (end_year - start_year + 1) / 20), 0.6 * len(rules) + 1.2))
    ax.imshow(M, aspect="auto", cmap="Greys", interpolation="nearest",
              extent=(start_year - 0.5, end_year + 0.5, len(rules) - 0.5, -0.5))
    ax.set_yticks(range(len(rules)))
    ax.set_yticklabels([r.label for r in rules])
    ax.set_xlabel("Year")
    ax.set_title(args.title)
    fig.tight_layout()
    fig.savefig(args.out, dpi=150)
    print(f"Wrote {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
