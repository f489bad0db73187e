"""
clock.py — Injectable "today" for every due/window calculation

The engine never reads the wall clock directly. Callers pass a Clock:
  - SystemClock()           real date
  - FixedClock(date)        pinned date (tests, dry runs)
  - FixedClock.advance(n)   new clock n days later (date simulation)
"""

from dataclasses import dataclass
from datetime import date, timedelta


class Clock:
    """Source of the current calendar date."""

    def today(self) -> date:
        raise NotImplementedError


class SystemClock(Clock):
    def today(self) -> date:
        return date.today()

    def __repr__(self) -> str:
        return "SystemClock()"


@dataclass(frozen=True)
class FixedClock(Clock):
    current: date

    def today(self) -> date:
        return self.current

    def advance(self, days: int) -> "FixedClock":
        """Return a clock `days` later (negative moves back)."""
        return FixedClock(self.current + timedelta(days=days))

    def reset(self) -> "FixedClock":
        """Return a clock pinned to the real date."""
        return FixedClock(date.today())
