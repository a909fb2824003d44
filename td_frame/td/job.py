from __future__ import annotations

import enum
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from ..errors import APIError, JobTimeoutError

logger = logging.getLogger(__name__)


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    KILLED = "killed"

    @classmethod
    def parse(cls, value: str) -> "JobStatus":
        if value == "booting":
            return cls.QUEUED
        return cls(value)

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.SUCCESS, JobStatus.ERROR, JobStatus.KILLED})


class WaitOutcome(enum.Enum):
    FINISHED = "finished"
    TIMED_OUT = "timed_out"


class Job:
    """One query job on the remote service.

    The status only ever moves forward: once a job is terminal, later
    refreshes cannot return it to ``queued`` or ``running``.
    Not safe for concurrent use from several threads.
    """

    def __init__(
        self,
        connection: Any,
        job_id: str,
        status: JobStatus = JobStatus.QUEUED,
        issued_at: Optional[datetime] = None,
    ) -> None:
        self.connection = connection
        self.job_id = str(job_id)
        self.status = status
        self.issued_at = issued_at
        self.result_size: Optional[int] = None
        self.debug: Optional[Dict[str, Any]] = None
        self.url: Optional[str] = None
        self.type: Optional[str] = None
        self.database: Optional[str] = None
        self.result_schema: List[Tuple[str, str]] = []

    @classmethod
    def from_id(cls, connection: Any, job_id: str) -> "Job":
        job = cls(connection, job_id)
        job.refresh_status()
        return job

    def __repr__(self) -> str:
        return f"Job(job_id={self.job_id!r}, status={self.status.value!r})"

    def refresh_status(self) -> JobStatus:
        data = self.connection.show_job(self.job_id)
        status = JobStatus.parse(data["status"])
        if not self.status.terminal:
            self.status = status
        if data.get("result_size") is not None:
            self.result_size = int(data["result_size"])
        if data.get("debug"):
            self.debug = data["debug"]
        self.url = data.get("url") or self.url
        self.type = data.get("type") or self.type
        self.database = data.get("database") or self.database
        schema = _parse_schema(data.get("hive_result_schema"))
        if schema:
            self.result_schema = schema
        return self.status

    def is_finished(self) -> bool:
        return self.status.terminal

    def is_success(self) -> bool:
        return self.status is JobStatus.SUCCESS

    def _poll(
        self,
        timeout: Optional[float],
        poll_interval: float,
        on_tick: Optional[Callable[["Job"], None]],
    ) -> WaitOutcome:
        started_at = time.monotonic()
        while not self.is_finished():
            elapsed = time.monotonic() - started_at
            if timeout is not None and elapsed + poll_interval > timeout:
                return WaitOutcome.TIMED_OUT
            time.sleep(poll_interval)
            if on_tick is not None:
                on_tick(self)
            self.refresh_status()
            logger.debug("job %s is %s", self.job_id, self.status.value)
        return WaitOutcome.FINISHED

    def wait(
        self,
        timeout: Optional[float] = None,
        poll_interval: float = 2.0,
        on_tick: Optional[Callable[["Job"], None]] = None,
    ) -> None:
        if self._poll(timeout, poll_interval, on_tick) is WaitOutcome.TIMED_OUT:
            raise JobTimeoutError(f"job {self.job_id} still {self.status.value} after {timeout}s")

    def kill(self) -> None:
        try:
            self.connection.kill(self.job_id)
        except (httpx.HTTPError, APIError) as exc:
            logger.warning("kill request for job %s failed: %s", self.job_id, exc)


def _parse_schema(raw: Any) -> List[Tuple[str, str]]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = json.loads(raw)
    return [(str(item[0]), str(item[1])) for item in raw]
