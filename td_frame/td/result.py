from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Iterator, List, Optional, Tuple

import pandas as pd

from ..history import append_history
from ..table import RowTable
from .job import Job, JobStatus
from .stream import ContentDownloader, GzipReader, iter_records

if TYPE_CHECKING:
    from ..engine import QueryEngine

logger = logging.getLogger(__name__)


class ResultProxy:
    """Handle on a finished job's result set.

    Nothing is downloaded until ``read``, ``iter_records`` or
    ``to_dataframe`` is called, and the result can be streamed only once.
    """

    def __init__(self, engine: "QueryEngine", job: Job) -> None:
        self.engine = engine
        self.job = job
        self._reader: Optional[GzipReader] = None

    @property
    def status(self) -> JobStatus:
        return self.job.status

    def _ensure_finished(self) -> None:
        if not self.job.is_finished():
            self.job.wait()

    def size(self) -> Optional[int]:
        self._ensure_finished()
        return self.job.result_size

    def description(self) -> List[Tuple[str, str]]:
        self._ensure_finished()
        return self.job.result_schema

    def _open_reader(self) -> GzipReader:
        if self._reader is None:
            downloader = ContentDownloader(
                lambda: self.engine.connection.open_result(self.job.job_id),
                callback=lambda d: self.engine.wait_callback(self.job, d.downloaded_size),
                chunk_size=self.engine.chunk_size,
            )
            self._reader = GzipReader(downloader, chunk_size=self.engine.chunk_size)
        return self._reader

    @property
    def downloaded_size(self) -> int:
        if self._reader is None:
            return 0
        return self._reader.raw.downloaded_size

    def read(self, size: int = 16384) -> bytes:
        return self._open_reader().read(size)

    readpartial = read

    def iter_records(self) -> Iterator[Any]:
        return iter_records(self._open_reader(), self.engine.chunk_size)

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()

    def to_dataframe(self, parse_dates: Optional[Iterable[str]] = None) -> pd.DataFrame:
        fields = [name for name, _ in self.description()]
        table = RowTable(fields)
        try:
            for record in self.iter_records():
                table.append_row(record)
        finally:
            self.close()
        if parse_dates:
            table.parse_date_columns(parse_dates)
        self.engine.clear_progress_display()
        df = table.to_dataframe()
        append_history(
            {
                "status": "FETCHED",
                "job_id": self.job.job_id,
                "rows": len(table),
                "downloaded_bytes": self.downloaded_size,
            }
        )
        return df
