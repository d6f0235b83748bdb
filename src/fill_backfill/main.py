"""Command-line entry point: download an account's fill history to per-day CSV files."""

import asyncio
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import click

from .backfill import FillBackfill, resolve_time_window
from .config.credentials import load_credential
from .config.settings import LoggingConfig, load_settings
from .errors import InvalidDateRangeError
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


def _to_date(value) -> Optional[date]:
    return value.date() if value is not None else None


@click.command()
@click.option("--credential", "credential_path", required=True,
              type=click.Path(dir_okay=False, path_type=Path),
              help="JSON file holding api_key and api_secret.")
@click.option("--outdir", required=True, type=click.Path(file_okay=False, path_type=Path),
              help="Output directory, created if absent.")
@click.option("--sub-account", default=None,
              help="Sub-account to download. Defaults to the main account.")
@click.option("--start", "start", default=None, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="Inclusive start date (yyyy-MM-dd).")
@click.option("--end", "end", default=None, type=click.DateTime(formats=["%Y-%m-%d"]),
              help="Exclusive end date (yyyy-MM-dd). Defaults to now.")
@click.option("--config", "config_file", default=lambda: os.getenv("CONFIG_FILE"),
              type=click.Path(dir_okay=False), help="YAML settings file.")
def cli(
    credential_path: Path,
    outdir: Path,
    sub_account: Optional[str],
    start,
    end,
    config_file: Optional[str]
) -> None:
    """Download fills and write them to <outdir>/<account>_<date>.csv."""
    start_date, end_date = _to_date(start), _to_date(end)

    if start_date is not None and end_date is not None and start_date >= end_date:
        setup_logging(LoggingConfig())
        logger.error("end date must be greater than start date")
        sys.exit(1)

    try:
        settings = load_settings(config_file)
    except (OSError, ValueError) as e:
        setup_logging(LoggingConfig())
        logger.error(f"Failed to load settings: {e}")
        sys.exit(1)

    setup_logging(settings.logging)

    try:
        resolve_time_window(start_date, end_date, settings.output.tzinfo)
    except InvalidDateRangeError as e:
        logger.error(str(e))
        sys.exit(1)

    try:
        credential = load_credential(credential_path)
        backfill = FillBackfill(settings, credential, outdir, sub_account=sub_account)
        asyncio.run(backfill.run(start_date=start_date, end_date=end_date))
    except InvalidDateRangeError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f"Backfill failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
