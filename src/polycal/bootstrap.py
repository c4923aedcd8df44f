from __future__ import annotations

from .calendars.presets import PRESETS
from .core.engine import CalendarRegistry


def build_registry() -> CalendarRegistry:
    reg = CalendarRegistry()
    for name, cal in PRESETS.items():
        reg.register(name, cal)
    return reg
