"""Routes fills to one sink per calendar day."""

import logging
from dataclasses import dataclass, field
from datetime import date, timezone, tzinfo
from typing import AsyncIterable, Dict, Optional, Protocol, Set

from ..errors import SinkError
from ..models import Fill

logger = logging.getLogger(__name__)


class FillSink(Protocol):
    def write(self, fill: Fill) -> None:
        ...

    def close(self) -> None:
        ...


class SinkFactory(Protocol):
    def open(self, account_qualifier: Optional[str], day: date, append: bool = False) -> FillSink:
        ...


@dataclass
class WriterCursor:
    """The currently open sink and the day it belongs to."""
    target_date: date
    sink: FillSink


@dataclass
class WriteStats:
    """Statistics for one writer run."""
    files_opened: int = 0
    records_written: int = 0
    records_per_date: Dict[str, int] = field(default_factory=dict)


class PartitionedWriter:
    """
    Writes fills in arrival order, keeping at most one sink open.

    Dates are not assumed to be monotonic: the sink is swapped whenever a fill's
    day differs from the open one. A day seen earlier in the run is reopened in
    append mode, so every fill of a day ends up in that day's sink.
    """

    def __init__(
        self,
        sink_factory: SinkFactory,
        account_qualifier: Optional[str] = None,
        tz: tzinfo = timezone.utc
    ):
        self.sink_factory = sink_factory
        self.account_qualifier = account_qualifier
        self.tz = tz
        self.stats = WriteStats()

        self._current: Optional[WriterCursor] = None
        self._opened_dates: Set[date] = set()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.close()
        except SinkError as e:
            if exc_type is None:
                raise
            logger.error(f"Failed to close sink while handling {exc_type.__name__}: {e}")

    def date_of(self, fill: Fill) -> date:
        return fill.time.astimezone(self.tz).date()

    def _rotate(self, day: date) -> WriterCursor:
        self.close()

        append = day in self._opened_dates
        sink = self.sink_factory.open(self.account_qualifier, day, append=append)
        self._opened_dates.add(day)
        self.stats.files_opened += 1
        logger.info(f"Writing fills for {day.isoformat()}" + (" (appending)" if append else ""))

        self._current = WriterCursor(target_date=day, sink=sink)
        return self._current

    def write(self, fill: Fill) -> None:
        day = self.date_of(fill)
        current = self._current
        if current is None or current.target_date != day:
            current = self._rotate(day)

        current.sink.write(fill)

        self.stats.records_written += 1
        key = day.isoformat()
        self.stats.records_per_date[key] = self.stats.records_per_date.get(key, 0) + 1

    def close(self) -> None:
        """Close the open sink, if any. Safe to call repeatedly."""
        current, self._current = self._current, None
        if current is not None:
            current.sink.close()
            logger.debug(f"Closed sink for {current.target_date.isoformat()}")

    async def consume(self, fills: AsyncIterable[Fill]) -> WriteStats:
        """Write every fill of ``fills`` and close the last sink."""
        with self:
            async for fill in fills:
                self.write(fill)
        return self.stats
