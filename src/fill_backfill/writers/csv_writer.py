"""Per-day CSV sinks for fill records."""

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Optional, Union

from ..errors import SinkError
from ..models import FILL_CSV_FIELDS, Fill

logger = logging.getLogger(__name__)


class CsvFillSink:
    """
    Append-only CSV file of fills with a fixed header.

    The header is written only when the file is created, not when it is
    reopened for appending.
    """

    def __init__(self, path: Path, append: bool = False):
        self.path = path
        self.rows_written = 0

        mode = 'a' if append else 'w'
        try:
            self._file = open(path, mode, newline='', encoding='utf-8')
        except OSError as e:
            raise SinkError(f"failed to create a file to write: {path}: {e}") from e

        self._writer = csv.DictWriter(self._file, fieldnames=FILL_CSV_FIELDS)
        if not append:
            try:
                self._write(self._writer.writeheader)
            except SinkError:
                self._file.close()
                raise

    @property
    def closed(self) -> bool:
        return self._file.closed

    def _write(self, func, *args) -> None:
        try:
            func(*args)
        except (OSError, ValueError) as e:
            raise SinkError(f"failed to write data to file {self.path}: {e}") from e

    def write(self, fill: Fill) -> None:
        self._write(self._writer.writerow, fill.to_csv_row())
        self.rows_written += 1

    def close(self) -> None:
        if self._file.closed:
            return
        try:
            self._file.close()
        except OSError as e:
            raise SinkError(f"failed to flush file {self.path}: {e}") from e


class CsvSinkFactory:
    """Creates ``<outdir>/<qualifier>_<YYYY-MM-DD>.csv`` sinks."""

    def __init__(self, outdir: Union[str, Path], default_qualifier: str = "main"):
        self.outdir = Path(outdir)
        self.default_qualifier = default_qualifier

    def path_for(self, account_qualifier: Optional[str], day: date) -> Path:
        qualifier = account_qualifier or self.default_qualifier
        return self.outdir / f"{qualifier}_{day.isoformat()}.csv"

    def open(self, account_qualifier: Optional[str], day: date, append: bool = False) -> CsvFillSink:
        try:
            self.outdir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SinkError(f"failed to create directory to put a file: {self.outdir}: {e}") from e

        path = self.path_for(account_qualifier, day)
        logger.debug(f"Opening {path} (append={append})")
        return CsvFillSink(path, append=append)
