"""Diagnostics package.

- pretty_month: always available, text month grids for any registered calendar
- leap_years: optional plots (requires the diagnostics extras: numpy, matplotlib)
"""

__all__ = ["pretty_month", "leap_years"]
