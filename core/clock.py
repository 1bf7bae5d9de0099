"""
Time source used by the sync managers, queue and worker.

Everything that reads "now" or waits goes through a Clock so tests can
substitute a fake that advances instantly.
"""

import asyncio
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall clock backed by asyncio.sleep."""

    def now(self) -> datetime:
        return utcnow()

    def today(self) -> date:
        return self.now().date()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


system_clock = Clock()


def subtract_years(value: date, years: int) -> date:
    """Same calendar day `years` earlier; Feb 29 becomes Feb 28."""
    try:
        return value.replace(year=value.year - years)
    except ValueError:
        return value.replace(year=value.year - years, day=28)
