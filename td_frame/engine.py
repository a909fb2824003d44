from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from .errors import JobFailureError
from .history import append_history
from .progress import NullProgress, ProgressReporter
from .td.client import Connection
from .td.job import Job
from .td.result import ResultProxy

logger = logging.getLogger(__name__)

DEFAULT_ENGINE_TYPE = "presto"
TRANSPORT_PARAMS = ("result_url", "priority", "retry_limit")


class QueryEngine:
    def __init__(
        self,
        connection: Connection,
        database: str,
        params: Optional[Dict[str, Any]] = None,
        header: Union[bool, str] = False,
        show_progress: Union[bool, float] = False,
        clear_progress: bool = False,
        progress: Optional[ProgressReporter] = None,
        poll_interval: float = 2.0,
        chunk_size: int = 16384,
    ) -> None:
        self.connection = connection
        self.database = database
        self.params: Dict[str, Any] = dict(params or {})
        self.params.setdefault("type", DEFAULT_ENGINE_TYPE)
        self.header = header
        self.show_progress = show_progress
        self.clear_progress = clear_progress
        self.progress: ProgressReporter = progress or NullProgress()
        self.poll_interval = poll_interval
        self.chunk_size = chunk_size

    @property
    def type(self) -> str:
        return self.params["type"]

    def create_header(self, name: str) -> str:
        if not self.header:
            return ""
        if isinstance(self.header, str):
            return f"-- {self.header}\n"
        return f"-- {name}\n"

    def execute(self, query: str, **kwargs: Any) -> ResultProxy:
        params = dict(self.params)
        params.update(kwargs)
        engine_type = params.pop("type")
        transport = {key: params.pop(key, None) for key in TRANSPORT_PARAMS}

        issued_at = datetime.now(timezone.utc).replace(microsecond=0)
        job_id = self.connection.query(
            self.database,
            query,
            transport["result_url"],
            transport["priority"],
            transport["retry_limit"],
            params,
            type=engine_type,
        )
        job = Job(self.connection, job_id, issued_at=issued_at)
        job.type = engine_type
        job.database = self.database
        try:
            logger.info("submitted job %s to %s/%s", job_id, engine_type, self.database, extra={"job_id": job_id})
            append_history(
                {
                    "status": "SUBMITTED",
                    "job_id": job_id,
                    "type": engine_type,
                    "database": self.database,
                    "sql": query,
                    "issued_at": issued_at.isoformat(),
                }
            )
        except KeyboardInterrupt:
            job.kill()
            raise
        return self.get_result(job, wait=True)

    def wait_callback(self, job: Job, cursize: Optional[int] = None) -> None:
        self.display_progress(job, cursize)

    def display_progress(self, job: Job, cursize: Optional[int] = None) -> None:
        if self.show_progress is False:
            return
        if not isinstance(self.show_progress, bool) and job.issued_at:
            if datetime.now(timezone.utc) < job.issued_at + timedelta(seconds=self.show_progress):
                return
        self.progress.report(job, cursize)

    def clear_progress_display(self) -> None:
        if self.clear_progress:
            self.progress.clear()

    def get_result(self, job: Job, wait: bool = True) -> ResultProxy:
        if wait:
            try:
                job.wait(None, self.poll_interval, on_tick=self.wait_callback)
            except KeyboardInterrupt:
                job.kill()
                raise

        if not job.is_success():
            stderr = (job.debug or {}).get("stderr")
            if stderr:
                logger.error("%s", stderr, extra={"job_id": job.job_id})
            append_history(
                {
                    "status": "FAILED",
                    "job_id": job.job_id,
                    "job_status": job.status.value,
                    "database": self.database,
                }
            )
            raise JobFailureError(job.job_id, job.status.value, stderr)

        return ResultProxy(self, job)
