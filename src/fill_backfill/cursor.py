"""
Backward pagination over the fill history.

The exchange returns at most ``page_limit`` fills per request, newest first,
and has no "has more" flag. The cursor therefore always asks for
``[EPOCH, end_time)`` and shrinks ``end_time`` after each page:

    end_time'       = second of the oldest fill in the page + 1 second
    oldest_id_seen' = smallest id in the page

The one-second pad keeps fills that share the oldest fill's second but did
not fit in the page; the id filter drops the ones that were already emitted.
A page that contributes nothing new ends the walk.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, List, Optional, Protocol

from .errors import InvalidDateRangeError
from .models import Fill

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MAX_FILL_ID = 2 ** 64 - 1
ONE_SECOND = timedelta(seconds=1)


class PageFetcher(Protocol):
    """Returns up to one page of fills in ``[start, end)``, newest first."""

    async def fetch(self, start: datetime, end: datetime) -> List[Fill]:
        ...


@dataclass(frozen=True)
class RequestCursor:
    """Pagination state for the next page request."""
    end_time: datetime
    oldest_id_seen: int = MAX_FILL_ID


def truncate_to_second(value: datetime) -> datetime:
    return value.replace(microsecond=0)


def validate_window(start_time: Optional[datetime], end_time: datetime) -> None:
    """Raise ``InvalidDateRangeError`` unless ``start_time < end_time``."""
    if start_time is not None and start_time >= end_time:
        raise InvalidDateRangeError(
            f"end ({end_time.isoformat()}) must be later than start ({start_time.isoformat()})"
        )


class FillCursor:
    """
    Lazy, deduplicated, newest-first sequence of fills in ``[start_time, end_time)``.

    ``next_batch()`` performs one page request; ``async for`` flattens the
    batches. Fetch errors propagate unchanged.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        end_time: datetime,
        start_time: Optional[datetime] = None,
        page_limit: Optional[int] = None
    ):
        validate_window(start_time, end_time)

        self.fetcher = fetcher
        self.start_time = start_time
        self.end_time = end_time
        self.page_limit = page_limit

        self._cursor: Optional[RequestCursor] = RequestCursor(end_time=end_time)
        self.pages_fetched = 0
        self.fills_emitted = 0

    @property
    def exhausted(self) -> bool:
        return self._cursor is None

    @property
    def cursor(self) -> Optional[RequestCursor]:
        return self._cursor

    def _before_start(self, fill: Fill) -> bool:
        return self.start_time is not None and fill.time < self.start_time

    def _accepts(self, fill: Fill, cursor: RequestCursor) -> bool:
        if fill.id >= cursor.oldest_id_seen:
            return False
        if self._before_start(fill):
            return False
        return fill.time < self.end_time

    async def next_batch(self) -> Optional[List[Fill]]:
        """Fetch the next page; ``None`` once the history is exhausted."""
        cursor = self._cursor
        if cursor is None:
            return None

        page = await self.fetcher.fetch(EPOCH, cursor.end_time)
        self.pages_fetched += 1

        fills = [fill for fill in page if self._accepts(fill, cursor)]
        if not fills:
            # a full page of already-emitted fills means the cursor cannot leave this second
            stalled = page and not any(self._before_start(fill) for fill in page)
            if stalled and self.page_limit is not None and len(page) >= self.page_limit:
                logger.warning(
                    f"A full page of {len(page)} fills before {cursor.end_time.isoformat()} "
                    f"contained no unseen fills; more than one page of fills share a second "
                    f"and older history may be incomplete"
                )
            logger.info(
                f"Fill history exhausted after {self.pages_fetched} pages, "
                f"{self.fills_emitted} fills"
            )
            self._cursor = None
            return None

        oldest_time = min(fill.time for fill in fills)
        oldest_id = min(fill.id for fill in fills)
        logger.info(
            f"{len(fills)} fills between {int(oldest_time.timestamp())} and "
            f"{int(cursor.end_time.timestamp())} "
            f"({oldest_time.strftime('%Y-%m-%dT%H:%M:%S')} - "
            f"{cursor.end_time.strftime('%Y-%m-%dT%H:%M:%S')})"
        )

        self._cursor = RequestCursor(
            end_time=truncate_to_second(oldest_time) + ONE_SECOND,
            oldest_id_seen=oldest_id
        )
        self.fills_emitted += len(fills)
        return fills

    async def __aiter__(self) -> AsyncIterator[Fill]:
        while True:
            batch = await self.next_batch()
            if batch is None:
                return
            for fill in batch:
                yield fill
