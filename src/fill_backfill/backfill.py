"""Fill backfill orchestration: REST pages -> cursor -> per-day CSV files."""

import logging
from datetime import date, datetime, time, timezone, tzinfo
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .clients.ftx_rest import FtxRESTClient
from .config.credentials import FtxCredential
from .config.settings import BackfillSettings
from .cursor import FillCursor, PageFetcher, truncate_to_second, validate_window
from .writers.csv_writer import CsvSinkFactory
from .writers.partitioned import PartitionedWriter, SinkFactory

logger = logging.getLogger(__name__)


def resolve_time_window(
    start_date: Optional[date],
    end_date: Optional[date],
    tz: tzinfo = timezone.utc,
    now: Optional[datetime] = None
) -> Tuple[Optional[datetime], datetime]:
    """
    Turn CLI dates into the cursor's ``[start, end)`` boundaries.

    Dates mean midnight in ``tz``. Without an end date the window ends at
    the current second.

    Raises:
        InvalidDateRangeError: If the start is not earlier than the end
    """
    start_time = datetime.combine(start_date, time.min, tzinfo=tz) if start_date else None

    if end_date is not None:
        end_time = datetime.combine(end_date, time.min, tzinfo=tz)
    else:
        end_time = truncate_to_second(now or datetime.now(timezone.utc))

    validate_window(start_time, end_time)
    return start_time, end_time


async def backfill_fills(
    fetcher: PageFetcher,
    sink_factory: SinkFactory,
    end_time: datetime,
    start_time: Optional[datetime] = None,
    account_qualifier: Optional[str] = None,
    tz: tzinfo = timezone.utc,
    page_limit: Optional[int] = None
) -> Dict[str, Any]:
    """Walk ``fetcher`` backward from ``end_time`` and write every fill to ``sink_factory``."""
    cursor = FillCursor(fetcher, end_time=end_time, start_time=start_time, page_limit=page_limit)
    writer = PartitionedWriter(sink_factory, account_qualifier=account_qualifier, tz=tz)

    write_stats = await writer.consume(cursor)

    return {
        "account": account_qualifier,
        "start_time": start_time.isoformat() if start_time else None,
        "end_time": end_time.isoformat(),
        "pages_fetched": cursor.pages_fetched,
        "records_written": write_stats.records_written,
        "files_opened": write_stats.files_opened,
        "records_per_date": dict(write_stats.records_per_date),
    }


class FillBackfill:
    """Downloads an account's fill history into ``outdir``."""

    def __init__(
        self,
        settings: BackfillSettings,
        credential: FtxCredential,
        outdir: Union[str, Path],
        sub_account: Optional[str] = None
    ):
        self.settings = settings
        self.credential = credential
        self.outdir = Path(outdir)
        self.sub_account = sub_account

        logger.info(
            f"FillBackfill initialized: account={sub_account or settings.output.default_qualifier}, "
            f"outdir={self.outdir}"
        )

    async def run(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> Dict[str, Any]:
        """Run one backfill. Every error aborts the run and propagates."""
        tz = self.settings.output.tzinfo
        start_time, end_time = resolve_time_window(start_date, end_date, tz)

        logger.info(
            f"Backfilling fills from {start_time.isoformat() if start_time else 'the beginning'} "
            f"to {end_time.isoformat()}"
        )

        sink_factory = CsvSinkFactory(self.outdir, self.settings.output.default_qualifier)
        rest_client = FtxRESTClient(
            config=self.settings.ftx,
            credential=self.credential,
            sub_account=self.sub_account,
            retry_config=self.settings.retry
        )

        async with rest_client:
            stats = await backfill_fills(
                rest_client,
                sink_factory,
                end_time=end_time,
                start_time=start_time,
                account_qualifier=self.sub_account,
                tz=tz,
                page_limit=self.settings.ftx.page_limit
            )

        logger.info(
            f"Backfill complete: {stats['records_written']} fills in "
            f"{len(stats['records_per_date'])} day files ({stats['pages_fetched']} pages)"
        )
        return stats
